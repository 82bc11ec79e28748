"""
Deterministic pseudo-random streams derived from string seeds.

A seed string is folded into a signed 32-bit integer with a polynomial
rolling hash, which then seeds a small linear congruential generator.
Independent sub-streams are obtained by offsetting the hashed seed with a
distinct constant per use-site. There is no module-level generator: every
generation step receives its own instance.
"""

# Sub-stream offsets. Each use-site gets its own so that landmass placement
# and classification draws are not correlated.
CONTINENT_STREAM = 0
ISLAND_STREAM = 99999
TERRAIN_STREAM = 77777
PARTITION_STREAM = 31337

# Per-landmass noise seed spacing
CONTINENT_NOISE_STEP = 12345
ISLAND_NOISE_STEP = 54321

_LCG_MULTIPLIER = 9301
_LCG_INCREMENT = 49297
_LCG_MODULUS = 233280


def _int32(n: int) -> int:
    """Truncate to a signed 32-bit integer."""
    n &= 0xFFFFFFFF
    return n - 0x100000000 if n & 0x80000000 else n


def hash_seed(seed: str) -> int:
    """Fold a seed string into a signed 32-bit integer (``acc*31 + ord(ch)``)."""
    acc = 0
    for char in seed:
        acc = _int32(acc * 31 + ord(char))
    return acc


class SeededRandom:
    """
    Linear congruential generator producing floats in [0, 1).

    ``state = (state * 9301 + 49297) mod 233280``
    """

    def __init__(self, seed_value: int):
        self.seed_value = seed_value
        self.state = seed_value
        self.call_count = 0

    @classmethod
    def from_seed(cls, seed: str, offset: int = 0) -> "SeededRandom":
        """Build a sub-stream for ``seed`` at the given use-site offset."""
        return cls(hash_seed(seed) + offset)

    def random(self) -> float:
        """Generate next random number in [0, 1)."""
        self.call_count += 1
        self.state = (self.state * _LCG_MULTIPLIER + _LCG_INCREMENT) % _LCG_MODULUS
        return self.state / _LCG_MODULUS

    def uniform(self, low: float, high: float) -> float:
        return low + self.random() * (high - low)

    def randint(self, n: int) -> int:
        """Integer in [0, n)."""
        return int(self.random() * n)
