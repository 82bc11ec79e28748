"""
Terrain classification by elevation percentile.

The top ``land_tile_percentage`` of cells ranked by elevation become land,
so the land fraction does not depend on the shape or scale of the elevation
distribution. Land cells then draw a tile type and at most one resource
from two independent cumulative-probability tables.
"""

from collections import Counter
from typing import Dict, List, Optional, Sequence, TypeVar

import numpy as np
import structlog

from .errors import GenerationError
from .models import Cell, ResourceType, TerrainType, TileType
from .seeded_random import SeededRandom

logger = structlog.get_logger()

T = TypeVar("T")


def draw_cumulative(table: Dict[T, float], rng: SeededRandom) -> Optional[T]:
    """
    Draw one key of ``table`` by cumulative probability.

    Returns None when the draw lands in the residual probability mass.
    """
    rand = rng.random()
    cumulative = 0.0
    for key, weight in table.items():
        cumulative += weight
        if rand < cumulative:
            return key
    return None


class TerrainClassifier:
    """Assigns land/water, tile type and resource to partitioned cells."""

    def __init__(
        self,
        land_tile_percentage: float,
        tile_type_weights: Dict[TileType, float],
        resource_scarcity: Dict[ResourceType, float],
    ):
        if not 0.0 <= land_tile_percentage <= 1.0:
            raise GenerationError(f"land_tile_percentage must be in [0, 1], got {land_tile_percentage}")
        if not tile_type_weights:
            raise GenerationError("At least one tile type weight is required")
        for name, table in (("tile type", tile_type_weights), ("resource", resource_scarcity)):
            negative = [k for k, v in table.items() if v < 0]
            if negative:
                raise GenerationError(f"Negative {name} weights: {negative}")

        self.land_tile_percentage = land_tile_percentage
        self.tile_type_weights = dict(tile_type_weights)
        self.resource_scarcity = dict(resource_scarcity)

    def assign_tile_type(self, rng: SeededRandom) -> TileType:
        tile_type = draw_cumulative(self.tile_type_weights, rng)
        if tile_type is None:
            # Rounding pushed the cumulative sum past 1.0
            return next(iter(self.tile_type_weights))
        return tile_type

    def assign_resource(self, rng: SeededRandom) -> Optional[ResourceType]:
        return draw_cumulative(self.resource_scarcity, rng)

    def classify(self, cells: List[Cell], elevations: Sequence[float], rng: SeededRandom) -> int:
        """
        Classify cells in place.

        Args:
            cells: Partitioned cells
            elevations: Elevation of each cell's site, same order as ``cells``
            rng: Classification stream

        Returns:
            Number of land cells
        """
        if len(cells) != len(elevations):
            raise GenerationError(f"Got {len(elevations)} elevations for {len(cells)} cells")

        # Stable sort keeps ties in partition order, so the ranking is deterministic
        order = np.argsort(-np.asarray(elevations, dtype=np.float64), kind="stable")
        land_count = int(len(cells) * self.land_tile_percentage)

        for rank, index in enumerate(order):
            cell = cells[int(index)]
            if rank < land_count:
                cell.terrain = TerrainType.LAND
                cell.tile_type = self.assign_tile_type(rng)
                cell.resource = self.assign_resource(rng)
            else:
                cell.terrain = TerrainType.WATER
                cell.tile_type = None
                cell.resource = None

        self._log_distribution(cells, land_count)
        return land_count

    def _log_distribution(self, cells: List[Cell], land_count: int) -> None:
        resources = Counter(c.resource.value for c in cells if c.resource is not None)
        with_resources = sum(resources.values())
        logger.info(
            "Terrain classified",
            cells=len(cells),
            land_cells=land_count,
            land_cells_with_resources=with_resources,
            resource_share=round(with_resources / land_count, 3) if land_count else 0.0,
            resources=dict(resources),
        )
