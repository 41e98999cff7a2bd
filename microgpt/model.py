"""
GPT Language Model Implementation

This module assembles a complete GPT model on top of the scalar autograd
engine. The model predicts the next character one position at a time:

Architecture Overview:
    Token ID, Position
           |
    [Token Embedding] + [Position Embedding]
           |
    [RMSNorm]
           |
    [Transformer Block] x N
       - RMSNorm
       - Multi-Head Self-Attention (causal, key/value cache)
       - Residual Connection
       - RMSNorm
       - Feed-Forward Network (4x, ReLU)
       - Residual Connection
           |
    [Linear Projection] -> Vocabulary Logits

Differences from GPT-2: RMSNorm instead of LayerNorm, ReLU instead of GELU,
no biases anywhere, learned position embeddings, no final normalization.

Every weight is a leaf ``Value`` in the model's own ``Graph``. Parameters are
allocated before anything else, so a training step or a generation call can
release its transient nodes with ``model.graph.scope()``.

Reference:
    - "Language Models are Unsupervised Multitask Learners" (GPT-2, Radford et al., 2019)
    - Karpathy, "microgpt" (pure-Python GPT)

Classes:
    GPTConfig: Configuration dataclass for model hyperparameters
    GPTModel: Complete GPT language model
    ForwardResult: Logits and attention traces of one forward call
    LayerSummary, ArchitectureSummary: Read-only description for display

Functions:
    cross_entropy_loss: Negative log-probability of the target token
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from microgpt.activations import softmax
from microgpt.attention import AttentionTrace, KVCache, MultiHeadAttention
from microgpt.engine import Graph, Value
from microgpt.layers import Matrix, add, init_matrix, linear, rmsnorm
from microgpt.rng import Rng
from microgpt.transformer import FeedForwardNetwork, TransformerBlock


@dataclass
class GPTConfig:
    """
    Configuration for the GPT model.

    Attributes:
        vocab_size: Number of token ids, including the BOS marker
        n_embd: Width of the residual stream (d_model in papers)
        n_head: Number of attention heads
        n_layer: Number of transformer blocks
        block_size: Context length (number of position embeddings)
        init_std: Standard deviation of the Gaussian weight initialization
        rms_eps: Epsilon inside RMSNorm

    Default configuration: vocab=27 (a-z + BOS), embed=16, heads=4,
    layers=1, context=16. Small enough to train with scalar arithmetic.
    """

    vocab_size: int = 27
    n_embd: int = 16
    n_head: int = 4
    n_layer: int = 1
    block_size: int = 16
    init_std: float = 0.08
    rms_eps: float = 1e-5

    def __post_init__(self):
        for name in ("vocab_size", "n_embd", "n_head", "n_layer", "block_size"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.n_embd % self.n_head != 0:
            raise ValueError(
                f"Embedding dimension ({self.n_embd}) must be divisible by "
                f"number of heads ({self.n_head})"
            )

    @property
    def head_dim(self) -> int:
        return self.n_embd // self.n_head


@dataclass
class ForwardResult:
    """
    Output of one single-token forward pass.

    Attributes:
        logits: Unnormalized scores, one value per vocabulary id
        attention: One trace per (layer, head), each with a single row;
                   empty unless attention collection was requested
    """

    logits: List[Value]
    attention: List[AttentionTrace] = field(default_factory=list)


@dataclass
class LayerSummary:
    """One row of the architecture table."""

    name: str
    size: str
    params: int


@dataclass
class ArchitectureSummary:
    """
    Read-only description of the model for display.

    Attributes:
        embedding_dim, num_heads, num_layers, context_length, vocab_size:
            Hyperparameters
        total_parameters: Number of scalar parameters
        layers: Per-component parameter breakdown, in forward order
    """

    embedding_dim: int
    num_heads: int
    num_layers: int
    context_length: int
    vocab_size: int
    total_parameters: int
    layers: List[LayerSummary]


class GPTModel:
    """
    Complete GPT language model on scalar values.

    Example usage:
        config = GPTConfig(vocab_size=tokenizer.vocab_size)
        model = GPTModel(config, Rng(42))

        cache = model.new_cache()
        for position, token_id in enumerate(tokens):
            result = model.forward(token_id, position, cache)
            probabilities = softmax(result.logits)

    Attributes:
        config: Model configuration
        graph: Arena holding parameters and transient nodes
        state_dict: Named parameter matrices (insertion order is the
                    initialization order)
        parameters: All parameter values flattened in state_dict order
        blocks: Transformer blocks
    """

    def __init__(self, config: GPTConfig, rng: Rng):
        """
        Initialize all weights from ``rng``.

        Matrices are drawn in this order: wte, wpe, lm_head, then for each
        layer attn_wq, attn_wk, attn_wv, attn_wo, mlp_fc1, mlp_fc2.

        Args:
            config: Model hyperparameters
            rng: Random source used for the Gaussian initialization
        """
        self.config = config
        self.graph = Graph()

        def matrix(output_features: int, input_features: int) -> Matrix:
            return init_matrix(
                self.graph, rng, output_features, input_features, config.init_std
            )

        n_embd = config.n_embd
        self.state_dict: Dict[str, Matrix] = {
            "wte": matrix(config.vocab_size, n_embd),
            "wpe": matrix(config.block_size, n_embd),
            "lm_head": matrix(config.vocab_size, n_embd),
        }
        for i in range(config.n_layer):
            self.state_dict[f"layer{i}.attn_wq"] = matrix(n_embd, n_embd)
            self.state_dict[f"layer{i}.attn_wk"] = matrix(n_embd, n_embd)
            self.state_dict[f"layer{i}.attn_wv"] = matrix(n_embd, n_embd)
            self.state_dict[f"layer{i}.attn_wo"] = matrix(n_embd, n_embd)
            self.state_dict[f"layer{i}.mlp_fc1"] = matrix(4 * n_embd, n_embd)
            self.state_dict[f"layer{i}.mlp_fc2"] = matrix(n_embd, 4 * n_embd)

        self.parameters: List[Value] = [
            p for weights in self.state_dict.values() for row in weights for p in row
        ]

        self.blocks: List[TransformerBlock] = []
        for i in range(config.n_layer):
            attention = MultiHeadAttention(
                layer_index=i,
                num_heads=config.n_head,
                query_weights=self.state_dict[f"layer{i}.attn_wq"],
                key_weights=self.state_dict[f"layer{i}.attn_wk"],
                value_weights=self.state_dict[f"layer{i}.attn_wv"],
                output_weights=self.state_dict[f"layer{i}.attn_wo"],
            )
            feed_forward = FeedForwardNetwork(
                expand_weights=self.state_dict[f"layer{i}.mlp_fc1"],
                contract_weights=self.state_dict[f"layer{i}.mlp_fc2"],
            )
            self.blocks.append(TransformerBlock(attention, feed_forward, config.rms_eps))

    @property
    def num_parameters(self) -> int:
        """Total number of scalar parameters."""
        return len(self.parameters)

    def new_cache(self) -> KVCache:
        """Create an empty key/value cache sized to the context length."""
        return KVCache(self.config.n_layer, self.config.block_size)

    def forward(
        self,
        token_id: int,
        position: int,
        cache: KVCache,
        collect_attention: bool = False,
    ) -> ForwardResult:
        """
        Forward pass for a single token at a single position.

        The token's key/value pairs are stored in ``cache`` before attention
        reads it, so position ``p`` attends to positions ``0..p``. Call with
        positions 0, 1, 2, ... on the same cache to process a sequence.

        Args:
            token_id: Input token id
            position: Position of the token in the sequence
            cache: Key/value cache of the current sequence
            collect_attention: Record attention weights per layer and head

        Returns:
            ForwardResult with vocab_size logits and, if requested, traces

        Raises:
            ValueError: If token_id or position is out of range
        """
        if not 0 <= token_id < self.config.vocab_size:
            raise ValueError(
                f"Token id {token_id} is outside the vocabulary of size "
                f"{self.config.vocab_size}"
            )
        if not 0 <= position < self.config.block_size:
            raise ValueError(
                f"Position {position} is outside the context length "
                f"{self.config.block_size}"
            )

        traces: Optional[List[AttentionTrace]] = [] if collect_attention else None

        token_embedding = self.state_dict["wte"][token_id]
        position_embedding = self.state_dict["wpe"][position]
        x = add(token_embedding, position_embedding)
        x = rmsnorm(x, self.config.rms_eps)

        for block in self.blocks:
            x = block.forward(x, position, cache, traces)

        logits = linear(x, self.state_dict["lm_head"])
        return ForwardResult(logits=logits, attention=traces or [])

    def architecture(self) -> ArchitectureSummary:
        """
        Describe the model for display.

        Returns:
            ArchitectureSummary with a per-component parameter breakdown
        """
        c = self.config
        layers = [
            LayerSummary("Token Embedding", f"{c.vocab_size} x {c.n_embd}", c.vocab_size * c.n_embd),
            LayerSummary("Position Embedding", f"{c.block_size} x {c.n_embd}", c.block_size * c.n_embd),
        ]
        for i in range(c.n_layer):
            layers.extend(
                [
                    LayerSummary(f"Layer {i}: RMSNorm", f"{c.n_embd}", 0),
                    LayerSummary(
                        f"Layer {i}: Multi-Head Attention",
                        f"{c.n_head} heads, dim={c.head_dim}",
                        4 * c.n_embd * c.n_embd,
                    ),
                    LayerSummary(f"Layer {i}: RMSNorm", f"{c.n_embd}", 0),
                    LayerSummary(
                        f"Layer {i}: MLP (FC1 + ReLU + FC2)",
                        f"{c.n_embd} -> {4 * c.n_embd} -> {c.n_embd}",
                        2 * 4 * c.n_embd * c.n_embd,
                    ),
                ]
            )
        layers.append(
            LayerSummary("LM Head (Logits)", f"{c.n_embd} -> {c.vocab_size}", c.vocab_size * c.n_embd)
        )

        return ArchitectureSummary(
            embedding_dim=c.n_embd,
            num_heads=c.n_head,
            num_layers=c.n_layer,
            context_length=c.block_size,
            vocab_size=c.vocab_size,
            total_parameters=self.num_parameters,
            layers=layers,
        )


def cross_entropy_loss(logits: Sequence[Value], target_id: int) -> Value:
    """
    Cross-entropy loss for one position.

    Formula:
        loss = -log(softmax(logits)[target_id])

    A perfect prediction gives 0; a uniform guess gives log(vocab_size).

    Args:
        logits: Model output for one position
        target_id: The true next token

    Returns:
        Scalar loss value connected to the graph
    """
    probabilities = softmax(logits)
    return -probabilities[target_id].log()
