#!/usr/bin/env python3
"""Generate a new world map and store it as the active map."""

import argparse
import sys
import time
from typing import List, Optional

import structlog

from ..config.logging import configure_logging
from ..core import defaults
from ..core.errors import GenerationError, StorageError
from ..core.map_generator import GenerationParams, generate_map
from ..core.models import MapData
from ..core.partition import PartitionConfig
from .connection import Database, db
from .repository import MapRepository

logger = structlog.get_logger()


def regenerate_map(
    seed: Optional[str] = None, params: Optional[GenerationParams] = None, database: Database = db
) -> MapData:
    """
    Replace the active map with a freshly generated one.

    Territories, settlements and cached tiles of the previous map are
    removed along with it.

    Raises:
        GenerationError: bad parameters or a failed generation
        StorageError: the map could not be saved
    """
    seed = seed or f"seed-{int(time.time() * 1000)}"
    params = params or GenerationParams()

    map_data = generate_map(seed, params)
    config = {
        "seed": seed,
        "width": params.width,
        "height": params.height,
        "partition": params.partition.strategy,
        "hex_size": params.partition.hex_size,
        "min_distance": params.partition.min_distance,
        "num_continents": params.num_continents,
        "num_islands": params.num_islands,
        "land_variance": params.land_variance,
        "land_tile_percentage": params.land_tile_percentage,
    }
    MapRepository(database).replace_active_map(map_data, config=config)

    land = len(map_data.land_cells)
    logger.info(
        "Map regenerated",
        map_id=map_data.id,
        seed=seed,
        size=f"{map_data.width:g}x{map_data.height:g}",
        cells=len(map_data.cells),
        land_cells=land,
        water_cells=len(map_data.cells) - land,
    )
    return map_data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a new world map and make it the active map")
    parser.add_argument("seed", nargs="?", help="Seed string (time-based when omitted)")
    parser.add_argument("--width", type=float, default=defaults.MAP_WIDTH, help="Map width in world pixels")
    parser.add_argument("--height", type=float, default=defaults.MAP_HEIGHT, help="Map height in world pixels")
    parser.add_argument("--partition", choices=["hex", "voronoi"], default=defaults.PARTITION_STRATEGY)
    parser.add_argument("--hex-size", type=float, default=defaults.HEX_SIZE, help="Hexagon radius")
    parser.add_argument("--min-distance", type=float, help="Voronoi site spacing")
    parser.add_argument("--db-url", help="Database URL (DB_URL from the environment when omitted)")
    return parser


def main(argv: Optional[List[str]] = None, database: Database = db) -> int:
    """Command-line entry point; returns the process exit code."""
    args = build_parser().parse_args(argv)
    configure_logging()

    params = GenerationParams(
        width=args.width,
        height=args.height,
        partition=PartitionConfig(
            strategy=args.partition, hex_size=args.hex_size, min_distance=args.min_distance
        ),
    )

    try:
        if not database.is_initialized:
            database.initialize(args.db_url)
        regenerate_map(args.seed, params, database)
    except (GenerationError, StorageError) as e:
        logger.error("Map regeneration failed", error=str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
