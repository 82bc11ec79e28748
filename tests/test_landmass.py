"""Tests for continent and island placement."""

import math

import numpy as np
import pytest

from py_worldmap.core.landmass import (
    MAX_ISLAND_ATTEMPTS,
    Continent,
    LandmassGenerator,
    generate_continents,
    generate_islands,
)
from py_worldmap.core.seeded_random import hash_seed


@pytest.fixture
def generator():
    return LandmassGenerator(2400, 1500, 6, 12, hash_seed("landmass"), 1.5)


class TestContinents:
    """Test continent placement."""

    def test_count_and_parameter_ranges(self):
        width, height = 2400, 1500
        continents = generate_continents(width, height, 6, hash_seed("c"))
        assert len(continents) == 6
        for c in continents:
            assert 1.0 <= c.falloff <= 1.3
            base_min = min(width, height) * 0.2 * 0.8
            base_max = min(width, height) * 0.35 * 1.2
            assert base_min <= c.radius_x <= base_max
            assert base_min <= c.radius_y <= base_max
            # Centres lie within 0.5 of the half extents around the middle
            assert abs(c.center_x / width - 0.5) <= 0.5
            assert abs(c.center_y / height - 0.5) <= 0.5

    def test_noise_seeds_are_spaced(self):
        seed_value = hash_seed("spacing")
        continents = generate_continents(1000, 1000, 3, seed_value)
        assert [c.seed for c in continents] == [seed_value, seed_value + 12345, seed_value + 24690]

    def test_zero_continents(self):
        assert generate_continents(1000, 1000, 0, 1) == []

    def test_elevation_outside_is_zero(self):
        continent = Continent(500, 500, 100, 50, 0.0, 1.0, 7)
        assert continent.elevation_at(900.0, 900.0, 1.5) == 0.0


class TestIslands:
    """Test island rejection sampling."""

    def test_islands_avoid_continent_cores(self):
        seed_value = hash_seed("islands")
        continents = generate_continents(2400, 1500, 6, seed_value)
        islands = generate_islands(2400, 1500, 12, seed_value, continents)
        for island in islands:
            for c in continents:
                assert math.hypot(island.center_x - c.center_x, island.center_y - c.center_y) >= c.average_radius
            assert 1.6 <= island.falloff <= 2.0
            assert 1500 * 0.03 <= island.radius <= 1500 * 0.08

    def test_unplaceable_islands_are_dropped(self):
        # One huge continent covering the whole map rejects every candidate
        blocker = Continent(500, 500, 5000, 5000, 0.0, 1.0, 0)
        islands = generate_islands(1000, 1000, 4, 99, [blocker])
        assert islands == []
        assert MAX_ISLAND_ATTEMPTS == 50


class TestLandmassGenerator:
    """Test the combined elevation field."""

    def test_deterministic(self):
        a = LandmassGenerator(800, 600, 3, 4, hash_seed("det"), 1.0)
        b = LandmassGenerator(800, 600, 3, 4, hash_seed("det"), 1.0)
        xs = np.linspace(0, 800, 40)
        ys = np.linspace(0, 600, 40)
        np.testing.assert_array_equal(a.elevation_at(xs, ys), b.elevation_at(xs, ys))

    def test_non_negative(self, generator):
        xs, ys = np.meshgrid(np.linspace(0, 2400, 80), np.linspace(0, 1500, 50))
        elevation = generator.elevation_at(xs, ys)
        assert elevation.shape == xs.shape
        assert elevation.min() >= 0.0

    def test_maximum_of_landmasses(self, generator):
        xs = np.linspace(0, 2400, 30)
        ys = np.linspace(0, 1500, 30)
        expected = np.zeros_like(xs)
        for landmass in generator.landmasses:
            expected = np.maximum(expected, landmass.elevation_at(xs, ys, generator.land_variance))
        np.testing.assert_allclose(generator.elevation_at(xs, ys), expected)

    def test_scalar_input_returns_float(self, generator):
        value = generator.elevation_at(1200.0, 750.0)
        assert isinstance(value, float)

    def test_has_land_somewhere(self, generator):
        xs, ys = np.meshgrid(np.linspace(0, 2400, 60), np.linspace(0, 1500, 40))
        assert generator.elevation_at(xs, ys).max() > 0
