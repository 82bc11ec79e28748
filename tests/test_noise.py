"""Tests for value noise and FBM."""

import numpy as np
import pytest

from py_worldmap.core.noise import fbm, noise2d, smooth_noise, smoothstep


class TestNoise2D:

    def test_range(self):
        xs, ys = np.meshgrid(np.arange(-50, 50), np.arange(-50, 50))
        values = noise2d(xs, ys, 17)
        assert values.min() >= 0.0
        assert values.max() < 1.0

    def test_scalar_matches_vector(self):
        xs = np.array([0.0, 1.0, 2.5])
        ys = np.array([3.0, -4.0, 7.25])
        vector = noise2d(xs, ys, 5)
        for i in range(3):
            assert noise2d(xs[i], ys[i], 5) == pytest.approx(vector[i])

    def test_seed_changes_value(self):
        assert noise2d(3, 4, 1) != noise2d(3, 4, 2)


class TestSmoothNoise:

    def test_smoothstep_endpoints(self):
        assert smoothstep(0.0) == 0.0
        assert smoothstep(1.0) == 1.0
        assert smoothstep(0.5) == pytest.approx(0.5)

    def test_lattice_points_equal_corner_noise(self):
        # On a lattice point the interpolation weight is zero
        assert smooth_noise(100.0, 150.0, 9, scale=50) == pytest.approx(noise2d(2.0, 3.0, 9))

    def test_continuity(self):
        a = smooth_noise(123.0, 456.0, 3)
        b = smooth_noise(123.001, 456.0, 3)
        assert abs(a - b) < 1e-3


class TestFBM:

    def test_range(self):
        xs, ys = np.meshgrid(np.linspace(0, 1000, 60), np.linspace(0, 800, 40))
        for octaves in (1, 3, 6):
            values = fbm(xs, ys, 42, octaves)
            assert values.min() >= 0.0
            assert values.max() < 1.0

    def test_single_octave_is_smooth_noise(self):
        assert fbm(10.0, 20.0, 7, octaves=1) == pytest.approx(smooth_noise(10.0, 20.0, 7))

    def test_deterministic(self):
        xs = np.linspace(0, 500, 25)
        np.testing.assert_array_equal(fbm(xs, xs, 11), fbm(xs, xs, 11))
