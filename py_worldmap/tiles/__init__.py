"""
Tile pyramid: geometry, rasterization, caching and client-side scheduling.
"""

from .geometry import TileBounds, calculate_tile_bounds, tiles_for_viewport, world_tile_size
from .rasterizer import TileRasterizer
from .cache import InMemoryTileStore, InvalidationTracker, TileCacheStore, TileStore
from .scheduler import HttpTileFetcher, LoadedTile, ProgressiveTileScheduler, TileFetcher, scale_to_zoom

__all__ = ['TileBounds', 'calculate_tile_bounds', 'tiles_for_viewport', 'world_tile_size',
           'TileRasterizer', 'InMemoryTileStore', 'InvalidationTracker', 'TileCacheStore', 'TileStore',
           'HttpTileFetcher', 'LoadedTile', 'ProgressiveTileScheduler', 'TileFetcher', 'scale_to_zoom']
