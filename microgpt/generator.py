"""
Autoregressive Text Generation

Generation starts from the BOS marker at position 0 and repeats:

    1. Forward pass for the current token (reusing the key/value cache)
    2. Divide the logits by the temperature
    3. Softmax -> probabilities
    4. Sample the next token from the shared random stream
    5. Stop if the sample is BOS or the maximum length is reached

Temperature controls how adventurous sampling is:
    - close to 0: always the most likely token (greedy)
    - 1: the model's own distribution
    - large: close to uniform over the vocabulary

Classes:
    GenerationResult: Text, ids and attention of one sample
    Generator: Samples from a model with a shared ``Rng``

Functions:
    scaled_probabilities: Temperature-scaled softmax over logits
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from microgpt.activations import softmax
from microgpt.attention import AttentionTrace, merge_attention_traces
from microgpt.engine import Value
from microgpt.model import GPTModel
from microgpt.rng import Rng
from microgpt.tokenizer import CharTokenizer

logger = logging.getLogger(__name__)

# Temperatures below this are treated as this value (near-greedy sampling).
MIN_TEMPERATURE = 1e-6


@dataclass
class GenerationResult:
    """
    One generated sample.

    Attributes:
        text: Decoded text without BOS markers
        token_ids: Sampled ids, excluding the terminating BOS
        display_chars: Display label of each sampled id
        attention: Per layer/head traces, one row per generated token
    """

    text: str
    token_ids: List[int] = field(default_factory=list)
    display_chars: List[str] = field(default_factory=list)
    attention: List[AttentionTrace] = field(default_factory=list)


def _check_temperature(temperature: float) -> None:
    if not math.isfinite(temperature):
        raise ValueError(f"Temperature must be a finite number, got {temperature}")


def scaled_probabilities(logits: Sequence[Value], temperature: float) -> List[Value]:
    """
    Temperature-scaled softmax.

    Formula:
        p_i = softmax(logits / max(temperature, MIN_TEMPERATURE))_i

    Args:
        logits: Model output for one position
        temperature: Sampling temperature

    Returns:
        Probabilities, one per vocabulary id

    Raises:
        ValueError: If temperature is NaN or infinite
    """
    _check_temperature(temperature)
    temperature = max(temperature, MIN_TEMPERATURE)
    return softmax([logit / temperature for logit in logits])


class Generator:
    """
    Samples text from a ``GPTModel``.

    All samples draw from the same ``Rng``: a batch is reproducible as a
    whole for a given seed and call sequence, not sample by sample.

    Attributes:
        model: The model to sample from
        tokenizer: Tokenizer used to decode ids
        rng: Shared random source
    """

    def __init__(self, model: GPTModel, tokenizer: CharTokenizer, rng: Rng):
        self.model = model
        self.tokenizer = tokenizer
        self.rng = rng

    def generate(
        self, temperature: float = 0.5, max_length: Optional[int] = None
    ) -> GenerationResult:
        """
        Generate one sample.

        Args:
            temperature: Sampling temperature (clamped to MIN_TEMPERATURE)
            max_length: Maximum number of generated tokens; defaults to the
                        context length, which is also its upper bound

        Returns:
            GenerationResult for the sample

        Raises:
            ValueError: If max_length is not in [1, block_size] or the
                        temperature is not finite
        """
        _check_temperature(temperature)
        block_size = self.model.config.block_size
        if max_length is None:
            max_length = block_size
        if not 1 <= max_length <= block_size:
            raise ValueError(
                f"max_length must be between 1 and the context length "
                f"{block_size}, got {max_length}"
            )

        bos_id = self.tokenizer.bos_id
        token_ids: List[int] = []
        display_chars: List[str] = []
        attention: List[AttentionTrace] = []

        with self.model.graph.scope():
            cache = self.model.new_cache()
            token_id = bos_id
            for position in range(max_length):
                result = self.model.forward(
                    token_id, position, cache, collect_attention=True
                )
                probabilities = scaled_probabilities(result.logits, temperature)
                token_id = self.rng.sample_index([p.data for p in probabilities])
                if token_id == bos_id:
                    break

                token_ids.append(token_id)
                display_chars.append(self.tokenizer.token_to_char(token_id))
                merge_attention_traces(attention, result.attention)

        text = self.tokenizer.decode(token_ids)
        logger.debug("generated %r at temperature %.3f", text, temperature)
        return GenerationResult(
            text=text,
            token_ids=token_ids,
            display_chars=display_chars,
            attention=attention,
        )

    def generate_batch(
        self, count: int, temperature: float = 0.5, max_length: Optional[int] = None
    ) -> List[GenerationResult]:
        """
        Generate ``count`` samples one after another from the shared stream.

        Raises:
            ValueError: If count is negative or the temperature is not finite
        """
        _check_temperature(temperature)
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        return [self.generate(temperature, max_length) for _ in range(count)]
