"""
Tests for autoregressive generation.

Tests cover:
- Temperature scaling of the output distribution
- Sample structure (alphabet, length bounds, BOS handling)
- Reproducibility from a shared random stream
- Argument validation
"""

import numpy as np
import pytest

from microgpt.engine import Graph
from microgpt.model import GPTConfig, GPTModel
from microgpt.rng import Rng
from microgpt.tokenizer import CharTokenizer


@pytest.fixture
def tokenizer():
    return CharTokenizer.from_documents(["abc", "cab"])


def build_generator(tokenizer, seed=0, block_size=5):
    from microgpt.generator import Generator

    config = GPTConfig(
        vocab_size=tokenizer.vocab_size, n_embd=8, n_head=2, block_size=block_size
    )
    model = GPTModel(config, Rng(seed))
    return Generator(model, tokenizer, Rng(seed + 100))


class TestScaledProbabilities:
    """p = softmax(logits / temperature)"""

    def test_temperature_one_is_plain_softmax(self):
        from microgpt.generator import scaled_probabilities

        graph = Graph()
        logits = np.array([1.0, 3.0, 2.0])
        probs = scaled_probabilities([graph.leaf(v) for v in logits.tolist()], 1.0)

        expected = np.exp(logits) / np.sum(np.exp(logits))
        np.testing.assert_allclose([p.data for p in probs], expected, rtol=1e-12)

    def test_zero_temperature_is_greedy(self):
        """Temperature is clamped, so 0 puts all mass on the arg max."""
        from microgpt.generator import scaled_probabilities

        graph = Graph()
        probs = scaled_probabilities([graph.leaf(v) for v in [1.0, 3.0, 2.0]], 0.0)

        assert [p.data for p in probs] == [0.0, 1.0, 0.0]

    def test_greedy_sampling_always_picks_max(self):
        from microgpt.generator import scaled_probabilities

        graph = Graph()
        probs = scaled_probabilities([graph.leaf(v) for v in [1.0, 3.0, 2.0]], 1e-9)
        rng = Rng(0)

        draws = {rng.sample_index([p.data for p in probs]) for _ in range(50)}

        assert draws == {1}

    def test_high_temperature_is_near_uniform(self):
        from microgpt.generator import scaled_probabilities

        graph = Graph()
        probs = scaled_probabilities([graph.leaf(v) for v in [1.0, 3.0, 2.0]], 1e6)

        np.testing.assert_allclose([p.data for p in probs], [1 / 3] * 3, rtol=1e-5)

    def test_lower_temperature_sharpens(self):
        from microgpt.generator import scaled_probabilities

        graph = Graph()
        logits = [graph.leaf(v) for v in [0.5, 1.5, 0.0]]

        cold = scaled_probabilities(logits, 0.5)[1].data
        warm = scaled_probabilities(logits, 1.0)[1].data
        hot = scaled_probabilities(logits, 2.0)[1].data

        assert cold > warm > hot


class TestGenerator:
    """Sampling from an (untrained) model."""

    def test_sample_structure(self, tokenizer):
        generator = build_generator(tokenizer)

        for _ in range(10):
            result = generator.generate(temperature=1.0)

            assert set(result.text) <= set(tokenizer.chars)
            assert len(result.token_ids) <= 5
            assert tokenizer.bos_id not in result.token_ids
            assert result.text == tokenizer.decode(result.token_ids)
            assert result.display_chars == list(result.text)

    def test_attention_rows_match_generated_tokens(self, tokenizer):
        generator = build_generator(tokenizer)

        result = generator.generate(temperature=1.0)

        for trace in result.attention:
            assert len(trace.weights) == len(result.token_ids)

    def test_max_length_bounds_sample(self, tokenizer):
        generator = build_generator(tokenizer)

        results = [generator.generate(temperature=2.0, max_length=2) for _ in range(10)]

        assert all(len(r.token_ids) <= 2 for r in results)

    @pytest.mark.parametrize("max_length", [0, 6, -1])
    def test_max_length_out_of_range_raises(self, tokenizer, max_length):
        generator = build_generator(tokenizer, block_size=5)

        with pytest.raises(ValueError):
            generator.generate(max_length=max_length)

    def test_generation_releases_transient_nodes(self, tokenizer):
        generator = build_generator(tokenizer)
        model = generator.model

        generator.generate()

        assert len(model.graph) == model.num_parameters

    def test_generation_does_not_touch_parameters(self, tokenizer):
        generator = build_generator(tokenizer)
        before = [p.data for p in generator.model.parameters]

        generator.generate_batch(3)

        assert [p.data for p in generator.model.parameters] == before

    def test_same_seed_same_samples(self, tokenizer):
        a = build_generator(tokenizer, seed=3)
        b = build_generator(tokenizer, seed=3)

        texts_a = [r.text for r in a.generate_batch(5, temperature=1.0)]
        texts_b = [r.text for r in b.generate_batch(5, temperature=1.0)]

        assert texts_a == texts_b

    def test_batch_count(self, tokenizer):
        generator = build_generator(tokenizer)

        assert generator.generate_batch(0) == []
        assert len(generator.generate_batch(4)) == 4

    def test_negative_batch_count_raises(self, tokenizer):
        generator = build_generator(tokenizer)

        with pytest.raises(ValueError):
            generator.generate_batch(-1)

    def test_immediate_bos_gives_empty_text(self, tokenizer):
        """If BOS is the certain first token, the sample is empty."""
        generator = build_generator(tokenizer)
        model = generator.model
        bos_id = tokenizer.bos_id
        lm_head = model.state_dict["lm_head"]
        for token_id, row in enumerate(lm_head):
            if token_id != bos_id:
                for w in row:
                    w.data = 0.0

        # The hidden state does not depend on lm_head, so rescaling the BOS
        # row rescales its logit.
        with model.graph.scope():
            logit = model.forward(bos_id, 0, model.new_cache()).logits[bos_id].data
        for w in lm_head[bos_id]:
            w.data *= 100.0 / logit

        result = generator.generate(temperature=1e-6)

        assert len(model.graph) == model.num_parameters
        assert result.text == ""
        assert result.token_ids == []
        assert result.attention == []

    @pytest.mark.parametrize("temperature", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_temperature_raises(self, tokenizer, temperature):
        from microgpt.generator import scaled_probabilities

        generator = build_generator(tokenizer)
        state = generator.rng.getstate()

        with pytest.raises(ValueError, match="Temperature"):
            generator.generate(temperature=temperature)
        with pytest.raises(ValueError, match="Temperature"):
            generator.generate_batch(2, temperature=temperature)
        with pytest.raises(ValueError, match="Temperature"):
            scaled_probabilities([Graph().leaf(1.0)], temperature)

        assert generator.rng.getstate() == state
        assert len(generator.model.graph) == generator.model.num_parameters
