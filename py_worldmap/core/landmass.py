"""
Continent and island placement plus the elevation field they define.

Continents are placed on a seeded ring around the map centre with
independent elliptical radii and rotation. Islands are scattered by
rejection sampling away from continent cores. The world elevation at a
point is the maximum contribution of any landmass, never the sum.
"""

import math
from dataclasses import dataclass
from typing import List, Union

import numpy as np
import structlog

from .noise import fbm
from .seeded_random import (
    CONTINENT_NOISE_STEP,
    CONTINENT_STREAM,
    ISLAND_NOISE_STEP,
    ISLAND_STREAM,
    SeededRandom,
)

logger = structlog.get_logger()

ArrayLike = Union[float, np.ndarray]

# Weights of the coarse / medium / fine FBM groups
NOISE_GROUPS = ((3, 0, 0.5), (5, 5000, 0.3), (6, 10000, 0.2))  # (octaves, seed offset, weight)

MAX_ISLAND_ATTEMPTS = 50


def _landmass_noise(x: ArrayLike, y: ArrayLike, seed: int) -> ArrayLike:
    """Weighted blend of the three FBM groups, centred on zero."""
    combined = 0.0
    for octaves, offset, weight in NOISE_GROUPS:
        combined = combined + fbm(x, y, seed + offset, octaves) * weight
    return combined - 0.5


@dataclass
class Continent:
    center_x: float
    center_y: float
    radius_x: float
    radius_y: float
    rotation: float
    falloff: float
    seed: int

    @property
    def average_radius(self) -> float:
        return (self.radius_x + self.radius_y) / 2

    def elevation_at(self, x: ArrayLike, y: ArrayLike, variance: float) -> ArrayLike:
        dx = np.asarray(x, dtype=np.float64) - self.center_x
        dy = np.asarray(y, dtype=np.float64) - self.center_y

        cos_r = math.cos(-self.rotation)
        sin_r = math.sin(-self.rotation)
        rotated_x = dx * cos_r - dy * sin_r
        rotated_y = dx * sin_r + dy * cos_r

        normalized = np.sqrt(
            (rotated_x * rotated_x) / (self.radius_x * self.radius_x)
            + (rotated_y * rotated_y) / (self.radius_y * self.radius_y)
        )
        base = np.maximum(0.0, 1.0 - np.power(normalized, self.falloff))
        noise = _landmass_noise(x, y, self.seed) * variance
        return np.where(base > 0, base + noise, 0.0)


@dataclass
class Island:
    center_x: float
    center_y: float
    radius: float
    falloff: float
    seed: int

    def elevation_at(self, x: ArrayLike, y: ArrayLike, variance: float) -> ArrayLike:
        dx = np.asarray(x, dtype=np.float64) - self.center_x
        dy = np.asarray(y, dtype=np.float64) - self.center_y
        normalized = np.sqrt(dx * dx + dy * dy) / self.radius

        base = np.maximum(0.0, 1.0 - np.power(normalized, self.falloff))
        # Islands are small; keep their coastlines calmer than continents
        noise = _landmass_noise(x, y, self.seed) * variance * 0.5
        return np.where(base > 0, base + noise, 0.0)


def generate_continents(width: float, height: float, count: int, seed_value: int) -> List[Continent]:
    """
    Place ``count`` continents around the map centre.

    Args:
        width, height: Map dimensions
        count: Number of continents
        seed_value: Hashed map seed

    Returns:
        List of continents
    """
    rng = SeededRandom(seed_value + CONTINENT_STREAM)
    continents = []

    for i in range(count):
        angle = (i / count) * math.pi * 2 + rng.random() * 0.5
        distance_from_center = 0.15 + rng.random() * 0.35

        center_x = width * (0.5 + math.cos(angle) * distance_from_center)
        center_y = height * (0.5 + math.sin(angle) * distance_from_center)

        base_radius = min(width, height) * (0.2 + rng.random() * 0.15)
        radius_x = base_radius * (0.8 + rng.random() * 0.4)
        radius_y = base_radius * (0.8 + rng.random() * 0.4)

        continents.append(
            Continent(
                center_x=center_x,
                center_y=center_y,
                radius_x=radius_x,
                radius_y=radius_y,
                rotation=rng.random() * math.pi * 2,
                falloff=rng.uniform(1.0, 1.3),
                seed=seed_value + i * CONTINENT_NOISE_STEP,
            )
        )

    return continents


def generate_islands(
    width: float, height: float, count: int, seed_value: int, continents: List[Continent]
) -> List[Island]:
    """
    Scatter islands away from continent cores.

    A candidate centre closer to any continent centre than that continent's
    average radius is rejected. Islands that cannot be placed within
    ``MAX_ISLAND_ATTEMPTS`` are dropped.
    """
    rng = SeededRandom(seed_value + ISLAND_STREAM)
    islands = []

    min_radius = min(width, height) * 0.03
    max_radius = min(width, height) * 0.08

    for i in range(count):
        placed = False
        center_x = center_y = 0.0

        for _ in range(MAX_ISLAND_ATTEMPTS):
            center_x = width * (0.1 + rng.random() * 0.8)
            center_y = height * (0.1 + rng.random() * 0.8)

            too_close = any(
                math.hypot(center_x - c.center_x, center_y - c.center_y) < c.average_radius
                for c in continents
            )
            if not too_close:
                placed = True
                break

        if not placed:
            logger.debug("Dropping island after placement attempts", island=i)
            continue

        islands.append(
            Island(
                center_x=center_x,
                center_y=center_y,
                radius=rng.uniform(min_radius, max_radius),
                falloff=rng.uniform(1.6, 2.0),
                seed=seed_value + i * ISLAND_NOISE_STEP,
            )
        )

    return islands


class LandmassGenerator:
    """Owns the landmass list of one map and evaluates its elevation field."""

    def __init__(
        self,
        width: float,
        height: float,
        num_continents: int,
        num_islands: int,
        seed_value: int,
        land_variance: float,
    ):
        self.width = width
        self.height = height
        self.land_variance = land_variance
        self.continents = generate_continents(width, height, num_continents, seed_value)
        self.islands = generate_islands(width, height, num_islands, seed_value, self.continents)

        logger.info(
            "Landmasses placed",
            continents=len(self.continents),
            islands=len(self.islands),
            islands_requested=num_islands,
        )

    @property
    def landmasses(self) -> list:
        return [*self.continents, *self.islands]

    def elevation_at(self, x: ArrayLike, y: ArrayLike) -> ArrayLike:
        """Maximum elevation contribution of any landmass (never below 0)."""
        elevation = np.zeros(np.broadcast(np.asarray(x), np.asarray(y)).shape)
        for landmass in self.landmasses:
            elevation = np.maximum(elevation, landmass.elevation_at(x, y, self.land_variance))
        if elevation.ndim == 0:
            return float(elevation)
        return elevation
