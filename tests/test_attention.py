"""
Tests for causal multi-head attention.

Tests cover:
- Key/value cache bookkeeping
- Scaled dot-product attention for a single query
- Multi-head attention output width and traces
- Causal mask property over a full sequence
- Merging per-position traces

Reference: "Attention Is All You Need" Section 3.2
"""

import numpy as np
import pytest

from microgpt.engine import Graph
from microgpt.rng import Rng


def vector(graph, values):
    return [graph.leaf(v) for v in values]


class TestKVCache:
    """Fixed-capacity cache indexed by position."""

    def test_store_and_read_in_order(self):
        from microgpt.attention import KVCache

        graph = Graph()
        cache = KVCache(num_layers=2, capacity=4)
        k0, v0 = vector(graph, [1.0]), vector(graph, [2.0])
        k1, v1 = vector(graph, [3.0]), vector(graph, [4.0])

        cache.store(0, 0, k0, v0)
        cache.store(0, 1, k1, v1)

        assert cache.keys(0) == [k0, k1]
        assert cache.values(0) == [v0, v1]
        assert cache.keys(1) == []
        assert len(cache) == 2

    def test_position_beyond_capacity_raises(self):
        from microgpt.attention import KVCache

        graph = Graph()
        cache = KVCache(num_layers=1, capacity=1)
        cache.store(0, 0, vector(graph, [1.0]), vector(graph, [1.0]))

        with pytest.raises(ValueError):
            cache.store(0, 1, vector(graph, [1.0]), vector(graph, [1.0]))

    def test_skipping_positions_raises(self):
        from microgpt.attention import KVCache

        graph = Graph()
        cache = KVCache(num_layers=1, capacity=4)

        with pytest.raises(ValueError):
            cache.store(0, 2, vector(graph, [1.0]), vector(graph, [1.0]))


class TestScaledDotProductAttention:
    """
    Attention(q, K, V) = softmax(q . K^T / sqrt(d)) V for a single query.
    """

    def test_single_key_returns_value(self):
        from microgpt.attention import scaled_dot_product_attention

        graph = Graph()
        query = vector(graph, [0.3, -0.2])
        output, weights = scaled_dot_product_attention(
            query, [vector(graph, [1.0, 1.0])], [vector(graph, [5.0, -7.0])]
        )

        assert [w.data for w in weights] == [1.0]
        assert [o.data for o in output] == pytest.approx([5.0, -7.0])

    def test_weights_match_numpy(self):
        from microgpt.attention import scaled_dot_product_attention

        q = np.array([0.5, -1.0, 0.25, 2.0])
        keys = np.array([[1.0, 0.0, 0.0, 0.5], [0.0, -1.0, 1.0, 0.0], [0.2, 0.2, 0.2, 0.2]])
        values = np.array([[1.0, 2.0, 3.0, 4.0], [0.0, 1.0, 0.0, 1.0], [-1.0, -1.0, 1.0, 1.0]])

        scores = keys @ q / np.sqrt(4)
        expected_weights = np.exp(scores) / np.sum(np.exp(scores))
        expected_output = expected_weights @ values

        graph = Graph()
        output, weights = scaled_dot_product_attention(
            vector(graph, q.tolist()),
            [vector(graph, k.tolist()) for k in keys],
            [vector(graph, v.tolist()) for v in values],
        )

        np.testing.assert_allclose([w.data for w in weights], expected_weights, rtol=1e-10)
        np.testing.assert_allclose([o.data for o in output], expected_output, rtol=1e-10)


class TestMultiHeadAttention:
    """Projection, per-head attention and output projection."""

    @pytest.fixture
    def attention(self):
        from microgpt.attention import MultiHeadAttention
        from microgpt.layers import init_matrix

        graph = Graph()
        rng = Rng(0)
        matrices = [init_matrix(graph, rng, 8, 8, std=0.3) for _ in range(4)]
        return MultiHeadAttention(0, 2, *matrices)

    def test_head_dimension(self, attention):
        assert attention.head_dimension == 4

    def test_indivisible_width_raises(self):
        from microgpt.attention import MultiHeadAttention
        from microgpt.layers import init_matrix

        graph = Graph()
        matrices = [init_matrix(graph, Rng(0), 6, 6, std=0.1) for _ in range(4)]

        with pytest.raises(ValueError):
            MultiHeadAttention(0, 4, *matrices)

    def test_forward_output_width_and_traces(self, attention):
        from microgpt.attention import KVCache

        graph = attention.query_weights[0][0].graph
        cache = KVCache(num_layers=1, capacity=4)
        traces = []

        for position in range(3):
            x = vector(graph, [0.1 * (position + i) for i in range(8)])
            traces.clear()
            output = attention.forward(x, position, cache, traces)

        assert len(output) == 8
        assert len(cache) == 3
        assert [(t.layer, t.head) for t in traces] == [(0, 0), (0, 1)]
        assert all(len(t.weights) == 1 and len(t.weights[0]) == 3 for t in traces)

    def test_forward_without_traces(self, attention):
        from microgpt.attention import KVCache

        graph = attention.query_weights[0][0].graph
        output = attention.forward(vector(graph, [1.0] * 8), 0, KVCache(1, 2))

        assert len(output) == 8


class TestCausalMask:
    """Attention from a full sequence through the model obeys causality."""

    def test_rows_sum_to_one_and_future_is_zero(self):
        from microgpt.attention import merge_attention_traces
        from microgpt.model import GPTConfig, GPTModel
        from microgpt.utils import attention_matrix

        config = GPTConfig(vocab_size=5, n_embd=8, n_head=2, n_layer=2, block_size=6)
        model = GPTModel(config, Rng(3))
        cache = model.new_cache()
        merged = []

        for position, token_id in enumerate([4, 0, 1, 2, 3, 0]):
            result = model.forward(token_id, position, cache, collect_attention=True)
            merge_attention_traces(merged, result.attention)

        assert len(merged) == config.n_layer * config.n_head
        for trace in merged:
            matrix = attention_matrix(trace)
            assert matrix.shape == (6, 6)
            np.testing.assert_allclose(matrix.sum(axis=1), np.ones(6), atol=1e-12)
            assert np.all(matrix[np.triu_indices(6, k=1)] == 0.0)
            assert np.all(np.tril(matrix) >= 0.0)


class TestMergeAttentionTraces:
    def test_rows_appended_per_layer_head(self):
        from microgpt.attention import AttentionTrace, merge_attention_traces

        merged = []
        merge_attention_traces(
            merged, [AttentionTrace(0, 0, [[1.0]]), AttentionTrace(0, 1, [[1.0]])]
        )
        merge_attention_traces(
            merged, [AttentionTrace(0, 0, [[0.4, 0.6]]), AttentionTrace(0, 1, [[0.9, 0.1]])]
        )

        assert [(t.layer, t.head) for t in merged] == [(0, 0), (0, 1)]
        assert merged[0].weights == [[1.0], [0.4, 0.6]]
        assert merged[1].weights == [[1.0], [0.9, 0.1]]

    def test_merge_does_not_alias_input_rows(self):
        from microgpt.attention import AttentionTrace, merge_attention_traces

        step = AttentionTrace(0, 0, [[1.0]])
        merged = merge_attention_traces([], [step])
        step.weights[0][0] = 5.0

        assert merged[0].weights == [[1.0]]
