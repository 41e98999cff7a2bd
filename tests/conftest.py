"""
Shared fixtures.

``ReferenceMersenneTwister`` is a from-scratch MT19937 written directly from
Matsumoto & Nishimura's reference code and CPython's seeding, shuffling and
Box-Muller rules. It shares no code with ``random`` so tests can compare
``Rng`` against an independent implementation.
"""

import math

import pytest

N = 624
M = 397
MATRIX_A = 0x9908B0DF
UPPER_MASK = 0x80000000
LOWER_MASK = 0x7FFFFFFF
TWO_PI = 2.0 * math.pi


class ReferenceMersenneTwister:
    """Legacy MT19937 stream as seeded by ``random.seed(int)``."""

    def __init__(self, seed):
        self.mt = [0] * N
        self.index = N
        self.gauss_next = None

        key = []
        remaining = abs(seed)
        while remaining:
            key.append(remaining & 0xFFFFFFFF)
            remaining >>= 32
        self._init_by_array(key or [0])

    def _init_genrand(self, s):
        mt = self.mt
        mt[0] = s & 0xFFFFFFFF
        for i in range(1, N):
            mt[i] = (1812433253 * (mt[i - 1] ^ (mt[i - 1] >> 30)) + i) & 0xFFFFFFFF
        self.index = N

    def _init_by_array(self, key):
        self._init_genrand(19650218)
        mt = self.mt
        i, j = 1, 0
        for _ in range(max(N, len(key))):
            mt[i] = ((mt[i] ^ ((mt[i - 1] ^ (mt[i - 1] >> 30)) * 1664525)) + key[j] + j) & 0xFFFFFFFF
            i += 1
            j += 1
            if i >= N:
                mt[0] = mt[N - 1]
                i = 1
            if j >= len(key):
                j = 0
        for _ in range(N - 1):
            mt[i] = ((mt[i] ^ ((mt[i - 1] ^ (mt[i - 1] >> 30)) * 1566083941)) - i) & 0xFFFFFFFF
            i += 1
            if i >= N:
                mt[0] = mt[N - 1]
                i = 1
        mt[0] = 0x80000000

    def _twist(self):
        mt = self.mt
        for k in range(N):
            y = (mt[k] & UPPER_MASK) | (mt[(k + 1) % N] & LOWER_MASK)
            mt[k] = mt[(k + M) % N] ^ (y >> 1) ^ (MATRIX_A if y & 1 else 0)
        self.index = 0

    def uint32(self):
        if self.index >= N:
            self._twist()
        y = self.mt[self.index]
        self.index += 1
        y ^= y >> 11
        y ^= (y << 7) & 0x9D2C5680
        y ^= (y << 15) & 0xEFC60000
        y ^= y >> 18
        return y

    def random(self):
        a = self.uint32() >> 5
        b = self.uint32() >> 6
        return (a * 67108864.0 + b) * (1.0 / 9007199254740992.0)

    def gauss(self, mu, sigma):
        z = self.gauss_next
        self.gauss_next = None
        if z is None:
            x2pi = self.random() * TWO_PI
            g2rad = math.sqrt(-2.0 * math.log(1.0 - self.random()))
            z = math.cos(x2pi) * g2rad
            self.gauss_next = math.sin(x2pi) * g2rad
        return mu + z * sigma

    def below(self, n):
        k = n.bit_length()
        r = self.uint32() >> (32 - k)
        while r >= n:
            r = self.uint32() >> (32 - k)
        return r

    def shuffle(self, items):
        for i in reversed(range(1, len(items))):
            j = self.below(i + 1)
            items[i], items[j] = items[j], items[i]

    def sample_index(self, weights):
        cumulative = []
        total = 0.0
        for w in weights:
            total += w
            cumulative.append(total)
        threshold = self.random() * total
        for i, c in enumerate(cumulative[:-1]):
            if threshold < c:
                return i
        return len(weights) - 1


@pytest.fixture
def reference_stream():
    """Factory for independent MT19937 streams: ``reference_stream(seed)``."""
    return ReferenceMersenneTwister
