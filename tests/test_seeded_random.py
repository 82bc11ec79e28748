"""Tests for seeded random streams."""

import pytest

from py_worldmap.core.seeded_random import (
    CONTINENT_STREAM,
    ISLAND_STREAM,
    PARTITION_STREAM,
    TERRAIN_STREAM,
    SeededRandom,
    hash_seed,
)


class TestHashSeed:
    """Test seed string hashing."""

    def test_known_values(self):
        assert hash_seed("") == 0
        assert hash_seed("a") == 97
        # 97*31*31 + 98*31 + 99
        assert hash_seed("abc") == 96354

    def test_truncates_to_int32(self):
        value = hash_seed("a fairly long seed string that overflows 32 bits")
        assert -(2 ** 31) <= value < 2 ** 31

    def test_overflow_wraps_negative(self):
        # Long strings of high code points overflow into the negative range
        values = [hash_seed("z" * n) for n in range(1, 20)]
        assert any(v < 0 for v in values)


class TestSeededRandom:
    """Test the linear congruential generator."""

    def test_first_value(self):
        rng = SeededRandom(0)
        assert rng.random() == pytest.approx(49297 / 233280)

    def test_range(self):
        rng = SeededRandom.from_seed("range")
        values = [rng.random() for _ in range(5000)]
        assert all(0.0 <= v < 1.0 for v in values)

    def test_reproducible(self):
        a = SeededRandom.from_seed("same")
        b = SeededRandom.from_seed("same")
        assert [a.random() for _ in range(100)] == [b.random() for _ in range(100)]

    def test_negative_seed_stays_in_range(self):
        rng = SeededRandom(-123456789)
        assert all(0.0 <= rng.random() < 1.0 for _ in range(100))

    def test_sub_streams_differ(self):
        offsets = [CONTINENT_STREAM, ISLAND_STREAM, TERRAIN_STREAM, PARTITION_STREAM]
        firsts = [SeededRandom.from_seed("world", offset).random() for offset in offsets]
        assert len(set(firsts)) == len(offsets)

    def test_helpers(self):
        rng = SeededRandom(42)
        for _ in range(200):
            assert 3.0 <= rng.uniform(3.0, 4.0) < 4.0
            assert 0 <= rng.randint(7) < 7
        assert rng.call_count == 400
