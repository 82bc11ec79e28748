"""
Value noise and fractal Brownian motion.

All functions accept scalars or NumPy arrays of coordinates, so a whole set
of cell sites can be sampled in one vectorized call.
"""

from typing import Union

import numpy as np

ArrayLike = Union[float, np.ndarray]

DEFAULT_SCALE = 50.0
OCTAVE_SEED_STEP = 1000


def noise2d(x: ArrayLike, y: ArrayLike, seed: float) -> ArrayLike:
    """Hash a lattice point and a seed into [0, 1) with sine scrambling."""
    n = np.sin(x * 12.9898 + y * 78.233 + seed) * 43758.5453
    return n - np.floor(n)


def smoothstep(t: ArrayLike) -> ArrayLike:
    return t * t * (3 - 2 * t)


def smooth_noise(x: ArrayLike, y: ArrayLike, seed: float, scale: float = DEFAULT_SCALE) -> ArrayLike:
    """
    Bilinear interpolation of lattice noise with smoothstep easing.

    Args:
        x, y: World coordinates
        seed: Noise seed
        scale: Lattice spacing in world units

    Returns:
        Noise value(s) in [0, 1)
    """
    scaled_x = np.asarray(x, dtype=np.float64) / scale
    scaled_y = np.asarray(y, dtype=np.float64) / scale

    x1 = np.floor(scaled_x)
    y1 = np.floor(scaled_y)
    x2 = x1 + 1
    y2 = y1 + 1

    sx = smoothstep(scaled_x - x1)
    sy = smoothstep(scaled_y - y1)

    n11 = noise2d(x1, y1, seed)
    n12 = noise2d(x1, y2, seed)
    n21 = noise2d(x2, y1, seed)
    n22 = noise2d(x2, y2, seed)

    i1 = n11 * (1 - sx) + n21 * sx
    i2 = n12 * (1 - sx) + n22 * sx
    return i1 * (1 - sy) + i2 * sy


def fbm(x: ArrayLike, y: ArrayLike, seed: float, octaves: int = 6) -> ArrayLike:
    """
    Fractal Brownian motion: octaves of smooth noise at doubling frequency
    and halving amplitude, normalized by the total amplitude.
    """
    value = 0.0
    amplitude = 0.5
    frequency = 1.0
    max_value = 0.0

    for i in range(octaves):
        value = value + smooth_noise(
            np.multiply(x, frequency), np.multiply(y, frequency), seed + i * OCTAVE_SEED_STEP
        ) * amplitude
        max_value += amplitude
        amplitude *= 0.5
        frequency *= 2.0

    return value / max_value
