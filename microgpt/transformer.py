"""
Transformer Block over Scalar Values

Each block has two sub-layers, both in Pre-Norm residual form:

    x = x + Attention(RMSNorm(x))
    x = x + FFN(RMSNorm(x))

The feed-forward network expands the embedding width by 4, applies ReLU and
projects back. Neither sub-layer has biases.

Reference:
    - "Attention Is All You Need" (Vaswani et al., 2017) - Section 3.3
    - "On Layer Normalization in the Transformer Architecture" (Xiong et al.,
      2020) - Pre-Norm placement

Classes:
    FeedForwardNetwork: Expand, ReLU, project
    TransformerBlock: Attention and feed-forward with residual connections
"""

from typing import List, Optional, Sequence

from microgpt.activations import relu
from microgpt.attention import AttentionTrace, KVCache, MultiHeadAttention
from microgpt.engine import Value
from microgpt.layers import Matrix, Vector, add, linear, rmsnorm


class FeedForwardNetwork:
    """
    Position-wise feed-forward network.

    Formula:
        FFN(x) = W_2 relu(W_1 x)

    Attributes:
        expand_weights: W_1, shape (4 * embedding_dim, embedding_dim)
        contract_weights: W_2, shape (embedding_dim, 4 * embedding_dim)
    """

    def __init__(self, expand_weights: Matrix, contract_weights: Matrix):
        self.expand_weights = expand_weights
        self.contract_weights = contract_weights

    def forward(self, x: Sequence[Value]) -> Vector:
        hidden = relu(linear(x, self.expand_weights))
        return linear(hidden, self.contract_weights)


class TransformerBlock:
    """
    One transformer layer.

    Attributes:
        attention: Multi-head self-attention of this layer
        feed_forward: Feed-forward network of this layer
        epsilon: RMSNorm epsilon
    """

    def __init__(
        self,
        attention: MultiHeadAttention,
        feed_forward: FeedForwardNetwork,
        epsilon: float = 1e-5,
    ):
        self.attention = attention
        self.feed_forward = feed_forward
        self.epsilon = epsilon

    def forward(
        self,
        x: Sequence[Value],
        position: int,
        cache: KVCache,
        traces: Optional[List[AttentionTrace]] = None,
    ) -> Vector:
        """
        Run the block for the token at ``position``.

        Args:
            x: Hidden state of the current token
            position: Sequence position
            cache: Key/value cache; this position's key/value is stored
            traces: Optional list collecting attention weights

        Returns:
            New hidden state of the same width
        """
        # Attention sub-layer
        residual = x
        x = rmsnorm(x, self.epsilon)
        x = self.attention.forward(x, position, cache, traces)
        x = add(x, residual)

        # Feed-forward sub-layer
        residual = x
        x = rmsnorm(x, self.epsilon)
        x = self.feed_forward.forward(x)
        return add(x, residual)
