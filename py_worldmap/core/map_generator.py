"""
Map build pipeline.

Runs landmass placement, cell partitioning and terrain classification as
one synchronous computation and returns an immutable MapData.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

import numpy as np
import structlog

from . import defaults
from .errors import GenerationError, WorldMapError
from .landmass import LandmassGenerator
from .models import MapData, ResourceType, TileType
from .partition import PartitionConfig, create_partitioner
from .seeded_random import PARTITION_STREAM, TERRAIN_STREAM, SeededRandom, hash_seed
from .terrain import TerrainClassifier

logger = structlog.get_logger()


@dataclass
class GenerationParams:
    """Everything that determines a generated map besides its seed."""

    width: float = defaults.MAP_WIDTH
    height: float = defaults.MAP_HEIGHT
    partition: PartitionConfig = field(default_factory=PartitionConfig)
    num_continents: int = defaults.NUMBER_OF_CONTINENTS
    num_islands: int = defaults.NUMBER_OF_ISLANDS
    land_variance: float = defaults.LAND_VARIANCE
    land_tile_percentage: float = defaults.LAND_TILE_PERCENTAGE
    tile_types: Dict[TileType, float] = field(default_factory=lambda: dict(defaults.TILE_TYPES))
    resource_scarcity: Dict[ResourceType, float] = field(
        default_factory=lambda: dict(defaults.RESOURCE_SCARCITY)
    )

    def validate(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise GenerationError(f"Map size must be positive, got {self.width}x{self.height}")
        if self.num_continents < 0 or self.num_islands < 0:
            raise GenerationError("Landmass counts must not be negative")


def generate_map(seed: str, params: Optional[GenerationParams] = None, map_id: Optional[str] = None) -> MapData:
    """
    Generate a complete map.

    The same seed and parameters always produce the same cells, polygons,
    neighbours and terrain/resource assignment; only ``id`` and timestamps
    differ between runs.

    Args:
        seed: Seed string
        params: Generation parameters (defaults when omitted)
        map_id: Explicit map id, random when omitted

    Returns:
        Generated map

    Raises:
        GenerationError: bad parameters or unexpected geometry failure
    """
    params = params or GenerationParams()
    params.validate()

    seed_value = hash_seed(seed)
    logger.info(
        "Generating map",
        seed=seed,
        width=params.width,
        height=params.height,
        strategy=params.partition.strategy,
    )

    try:
        landmasses = LandmassGenerator(
            params.width,
            params.height,
            params.num_continents,
            params.num_islands,
            seed_value,
            params.land_variance,
        )

        partitioner = create_partitioner(params.partition, params.width, params.height)
        cells = partitioner.partition(params.width, params.height, SeededRandom(seed_value + PARTITION_STREAM))

        if cells:
            sites = np.array([cell.site for cell in cells], dtype=np.float64)
            elevations = np.atleast_1d(landmasses.elevation_at(sites[:, 0], sites[:, 1]))
        else:
            elevations = np.zeros(0)

        classifier = TerrainClassifier(params.land_tile_percentage, params.tile_types, params.resource_scarcity)
        classifier.classify(cells, elevations, SeededRandom(seed_value + TERRAIN_STREAM))
    except WorldMapError:
        raise
    except Exception as e:
        logger.error("Map generation failed", seed=seed, error=str(e))
        raise GenerationError(f"Map generation failed: {e}") from e

    now = datetime.now(timezone.utc)
    map_data = MapData(
        id=map_id or f"map-{uuid.uuid4().hex[:12]}",
        seed=seed,
        width=params.width,
        height=params.height,
        cells=tuple(cells),
        created_at=now,
        updated_at=now,
    )
    logger.info("Map generated", map_id=map_data.id, cells=len(cells))
    return map_data
