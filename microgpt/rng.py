"""
Reproducible Random Number Generation

Weight initialization, corpus shuffling and token sampling all draw from a
single random stream. To make runs comparable bit-for-bit (same seed, same
calls, same numbers) we use the Mersenne Twister MT19937 generator exactly as
CPython's ``random`` module implements it:

- seeding through ``init_by_array`` on the absolute value of the seed
- ``random()`` built from two 32-bit outputs (27 + 26 bits = 53 bits)
- ``gauss()`` using the Box-Muller transform, caching the second sample
- ``shuffle()`` using Fisher-Yates with rejection sampling on raw bits

Instead of touching the process-wide ``random`` state, every component that
needs randomness receives an explicit ``Rng`` instance. Two models in the same
process therefore never disturb each other's streams.

Reference:
    Matsumoto & Nishimura, "Mersenne Twister: A 623-dimensionally
    equidistributed uniform pseudo-random number generator" (1998)

Classes:
    Rng: Seeded random source with weighted categorical sampling
"""

import math
import random
from bisect import bisect
from itertools import accumulate
from typing import Sequence


class Rng(random.Random):
    """
    Seeded Mersenne Twister random source.

    Inherits the legacy MT19937 core (``seed``, ``random``, ``gauss``,
    ``shuffle``, ``getrandbits``) from ``random.Random`` so the emitted stream
    is identical to ``random.seed(n)`` followed by the same calls. Adds a
    strict weighted categorical draw used for sampling tokens.

    Example:
        >>> rng = Rng(42)
        >>> rng.random()
        0.6394267984578837
        >>> rng.sample_index([0.0, 0.0, 1.0])
        2
    """

    def __init__(self, seed: int = 42):
        """
        Initialize the generator.

        Args:
            seed: Integer seed. The same seed always yields the same stream.
        """
        super().__init__(seed)

    def sample_index(self, weights: Sequence[float]) -> int:
        """
        Draw an index with probability proportional to its weight.

        Consumes exactly one uniform draw: builds the cumulative sum of the
        weights, scales a uniform number by the total and bisects. This is the
        same draw ``random.choices(range(n), weights=weights)`` performs.

        Args:
            weights: Non-negative weights, one per candidate index

        Returns:
            The sampled index in ``[0, len(weights))``

        Raises:
            ValueError: If weights is empty or its total is not a positive
                        finite number (e.g. all zeros or NaN). Such a vector
                        means the distribution is corrupted.
        """
        if len(weights) == 0:
            raise ValueError("Cannot sample from an empty weight vector")

        cumulative_weights = list(accumulate(weights))
        total = cumulative_weights[-1]
        if not (total > 0.0 and math.isfinite(total)):
            raise ValueError(
                f"Total of weights must be a positive finite number, got {total}"
            )

        return bisect(cumulative_weights, self.random() * total, 0, len(weights) - 1)
