"""
Causal Multi-Head Self-Attention over Scalar Values

The model processes one token at a time. At position ``t`` the current token
produces a query, a key and a value vector. The key and value are stored in a
cache; the query is then compared against every cached key (positions
0..t) and the output is the softmax-weighted mix of the cached values.
Because only past and present positions are ever in the cache when a query
runs, the attention is causal by construction and no mask is needed.

Mathematical Formula (one head):
    scores_s  = (q . k_s) / sqrt(d_head)        for s = 0..t
    weights   = softmax(scores)
    output    = sum_s weights_s * v_s

Multi-head: the embedding width is split into ``num_heads`` contiguous
slices of ``head_dimension`` features; each slice attends independently and
the head outputs are concatenated before the output projection.

Reference: "Attention Is All You Need" Section 3.2

Classes:
    KVCache: Per-layer key/value storage indexed by position
    AttentionTrace: Recorded attention weights of one layer/head
    MultiHeadAttention: Projections and per-head attention for one layer

Functions:
    scaled_dot_product_attention: Attention for a single query
    merge_attention_traces: Append per-position traces into a running record
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from microgpt.activations import softmax
from microgpt.engine import Value, vsum
from microgpt.layers import Matrix, Vector, linear


class KVCache:
    """
    Key/value cache for one sequence.

    Holds, for every layer, a fixed-capacity slot list sized to the context
    length. ``store`` writes the slot of the current position and the
    attention reads every slot up to it. A cache is created for one training
    step or one generation call and thrown away afterwards.

    Attributes:
        num_layers: Number of transformer layers
        capacity: Maximum number of positions (the context length)
    """

    def __init__(self, num_layers: int, capacity: int):
        """
        Args:
            num_layers: Number of transformer layers
            capacity: Maximum number of positions that can be stored
        """
        self.num_layers = num_layers
        self.capacity = capacity
        self._keys: List[List[Optional[Vector]]] = [
            [None] * capacity for _ in range(num_layers)
        ]
        self._values: List[List[Optional[Vector]]] = [
            [None] * capacity for _ in range(num_layers)
        ]
        self._lengths = [0] * num_layers

    def store(self, layer: int, position: int, key: Vector, value: Vector) -> None:
        """
        Store the key and value computed at ``position``.

        Positions must be filled in order, one after another.

        Raises:
            ValueError: If position is out of capacity or not the next slot
        """
        if not 0 <= position < self.capacity:
            raise ValueError(
                f"Position {position} is outside the context length {self.capacity}"
            )
        if position != self._lengths[layer]:
            raise ValueError(
                f"Layer {layer} expects position {self._lengths[layer]}, got {position}"
            )
        self._keys[layer][position] = key
        self._values[layer][position] = value
        self._lengths[layer] = position + 1

    def keys(self, layer: int) -> List[Vector]:
        """Cached keys of a layer, in position order."""
        return self._keys[layer][: self._lengths[layer]]

    def values(self, layer: int) -> List[Vector]:
        """Cached values of a layer, in position order."""
        return self._values[layer][: self._lengths[layer]]

    def __len__(self) -> int:
        """Number of positions stored in the first layer."""
        return self._lengths[0] if self._lengths else 0


@dataclass
class AttentionTrace:
    """
    Attention weights recorded for one layer and head.

    ``weights[q][k]`` is how much query position ``q`` attended to key
    position ``k``. Row ``q`` has ``q + 1`` entries: later keys did not exist
    yet when that query ran.

    Attributes:
        layer: Layer index
        head: Head index
        weights: One row of attention weights per query position
    """

    layer: int
    head: int
    weights: List[List[float]] = field(default_factory=list)


def scaled_dot_product_attention(
    query: Sequence[Value],
    keys: Sequence[Sequence[Value]],
    values: Sequence[Sequence[Value]],
) -> Tuple[Vector, List[Value]]:
    """
    Attention of a single query over a list of cached keys and values.

    Args:
        query: Query vector of length d_head
        keys: One key vector (length d_head) per attended position
        values: One value vector (length d_head) per attended position

    Returns:
        output: Weighted sum of values, length d_head
        attention_weights: One weight per attended position, summing to 1
    """
    head_dimension = len(query)
    scale = 1.0 / head_dimension**0.5

    scores = [vsum(qj * kj for qj, kj in zip(query, key)) * scale for key in keys]
    attention_weights = softmax(scores)

    output = [
        vsum(weight * value[j] for weight, value in zip(attention_weights, values))
        for j in range(head_dimension)
    ]
    return output, attention_weights


class MultiHeadAttention:
    """
    Multi-Head Attention for one transformer layer.

    Computes q, k, v = W_q x, W_k x, W_v x for the current position, stores
    k and v in the cache, runs ``scaled_dot_product_attention`` for every
    head slice and projects the concatenated head outputs with W_o.

    Attributes:
        layer_index: Which layer this is (selects the cache slot)
        num_heads: Number of attention heads
        head_dimension: Width of each head
        query_weights, key_weights, value_weights, output_weights: Matrices
            of shape (embedding_dim, embedding_dim)

    Reference: "Attention Is All You Need" Section 3.2.2
    """

    def __init__(
        self,
        layer_index: int,
        num_heads: int,
        query_weights: Matrix,
        key_weights: Matrix,
        value_weights: Matrix,
        output_weights: Matrix,
    ):
        """
        Raises:
            ValueError: If the embedding width is not divisible by num_heads
        """
        embedding_dimension = len(query_weights)
        if embedding_dimension % num_heads != 0:
            raise ValueError(
                f"Embedding dimension ({embedding_dimension}) must be divisible by "
                f"number of heads ({num_heads})"
            )

        self.layer_index = layer_index
        self.num_heads = num_heads
        self.head_dimension = embedding_dimension // num_heads
        self.query_weights = query_weights
        self.key_weights = key_weights
        self.value_weights = value_weights
        self.output_weights = output_weights

    def forward(
        self,
        x: Sequence[Value],
        position: int,
        cache: KVCache,
        traces: Optional[List[AttentionTrace]] = None,
    ) -> Vector:
        """
        Attend from the current position over the cache.

        Args:
            x: Normalized input vector at this position
            position: Sequence position of x
            cache: Key/value cache of the current sequence
            traces: If given, one ``AttentionTrace`` per head is appended,
                    holding this position's weight row

        Returns:
            Output vector of the same width as x
        """
        query = linear(x, self.query_weights)
        key = linear(x, self.key_weights)
        value = linear(x, self.value_weights)
        cache.store(self.layer_index, position, key, value)

        cached_keys = cache.keys(self.layer_index)
        cached_values = cache.values(self.layer_index)

        concatenated: Vector = []
        for head in range(self.num_heads):
            start = head * self.head_dimension
            end = start + self.head_dimension

            head_output, attention_weights = scaled_dot_product_attention(
                query[start:end],
                [k[start:end] for k in cached_keys],
                [v[start:end] for v in cached_values],
            )
            concatenated.extend(head_output)

            if traces is not None:
                traces.append(
                    AttentionTrace(
                        layer=self.layer_index,
                        head=head,
                        weights=[[w.data for w in attention_weights]],
                    )
                )

        return linear(concatenated, self.output_weights)


def merge_attention_traces(
    merged: List[AttentionTrace], step_traces: Sequence[AttentionTrace]
) -> List[AttentionTrace]:
    """
    Fold one position's traces into a running per-layer/head record.

    Each trace in ``step_traces`` contributes its rows to the entry of
    ``merged`` with the same (layer, head); entries are created on first
    sight, keeping the order in which layer/head pairs first appear.

    Args:
        merged: Running record, modified in place
        step_traces: Traces produced by one forward call

    Returns:
        The same ``merged`` list
    """
    index = {(trace.layer, trace.head): trace for trace in merged}
    for trace in step_traces:
        existing = index.get((trace.layer, trace.head))
        if existing is None:
            existing = AttentionTrace(layer=trace.layer, head=trace.head)
            merged.append(existing)
            index[(trace.layer, trace.head)] = existing
        existing.weights.extend(list(row) for row in trace.weights)
    return merged
