"""
Tile pyramid geometry: world tile sizes, bounds and coordinate mapping.

A tile at zoom ``z`` is ``TILE_PIXELS[z]`` pixels square and covers
``TILE_PIXELS[z] * ZOOM_MULTIPLIERS[z]`` world pixels on each side.
"""

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from ..core.errors import TileValidationError
from ..core.models import Cell, Viewport

MIN_ZOOM = 0
MAX_ZOOM = 4
ZOOM_LEVELS = range(MIN_ZOOM, MAX_ZOOM + 1)

ZOOM_MULTIPLIERS = (1, 2, 4, 8, 16)

# Base raster size per zoom; finer levels render larger rasters for quality
TILE_PIXELS = (256, 256, 512, 512, 1024)

# Cells are selected by site within the bounds expanded by this fraction of the world tile size
CELL_PADDING_FRACTION = 0.1

TileCoordinate = Tuple[int, int]


@dataclass(frozen=True)
class TileBounds:
    min_x: float
    max_x: float
    min_y: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


def validate_zoom(zoom: int) -> int:
    if isinstance(zoom, bool) or not isinstance(zoom, int) or not MIN_ZOOM <= zoom <= MAX_ZOOM:
        raise TileValidationError(f"Invalid zoom level {zoom!r}. Must be between {MIN_ZOOM} and {MAX_ZOOM}.")
    return zoom


def tile_pixels(zoom: int) -> int:
    return TILE_PIXELS[validate_zoom(zoom)]


def world_tile_size(zoom: int) -> int:
    """World pixels covered by one side of a tile at ``zoom``."""
    return TILE_PIXELS[validate_zoom(zoom)] * ZOOM_MULTIPLIERS[zoom]


def tile_scale(zoom: int) -> float:
    """Tile pixels per world pixel."""
    return tile_pixels(zoom) / world_tile_size(zoom)


def calculate_tile_bounds(tile_x: int, tile_y: int, zoom: int, map_width: float, map_height: float) -> TileBounds:
    """World-space bounds of a tile, clamped to the map extents."""
    size = world_tile_size(zoom)
    min_x = tile_x * size
    min_y = tile_y * size
    return TileBounds(
        min_x=max(0, min_x),
        max_x=min(map_width, min_x + size),
        min_y=max(0, min_y),
        max_y=min(map_height, min_y + size),
    )


def tile_grid_size(zoom: int, map_width: float, map_height: float) -> Tuple[int, int]:
    """Number of tiles along x and y needed to cover the map at ``zoom``."""
    size = world_tile_size(zoom)
    return max(1, math.ceil(map_width / size)), max(1, math.ceil(map_height / size))


def world_to_tile(world_x: float, world_y: float, zoom: int) -> TileCoordinate:
    size = world_tile_size(zoom)
    return math.floor(world_x / size), math.floor(world_y / size)


def tiles_for_viewport(viewport: Viewport, zoom: int, map_width: float, map_height: float) -> List[TileCoordinate]:
    """
    Tiles intersecting a viewport, clipped to the map's tile grid.

    Args:
        viewport: Visible world rectangle
        zoom: Zoom level
        map_width, map_height: Map extents

    Returns:
        Tile coordinates in column-major order
    """
    size = world_tile_size(zoom)
    tiles_x, tiles_y = tile_grid_size(zoom, map_width, map_height)

    min_x = math.floor(max(0, viewport.x) / size)
    max_x = math.ceil(min(map_width, viewport.x + viewport.width) / size)
    min_y = math.floor(max(0, viewport.y) / size)
    max_y = math.ceil(min(map_height, viewport.y + viewport.height) / size)

    return [
        (x, y)
        for x in range(min_x, min(max_x, tiles_x))
        for y in range(min_y, min(max_y, tiles_y))
    ]


def all_tiles_for_zoom(zoom: int, map_width: float, map_height: float) -> List[TileCoordinate]:
    tiles_x, tiles_y = tile_grid_size(zoom, map_width, map_height)
    return [(x, y) for x in range(tiles_x) for y in range(tiles_y)]


def is_tile_in_map(tile_x: int, tile_y: int, zoom: int, map_width: float, map_height: float) -> bool:
    tiles_x, tiles_y = tile_grid_size(zoom, map_width, map_height)
    return 0 <= tile_x < tiles_x and 0 <= tile_y < tiles_y


def cells_for_tile(cells: Sequence[Cell], bounds: TileBounds, zoom: int) -> List[Cell]:
    """Cells whose site falls within the tile bounds plus padding."""
    padding = world_tile_size(zoom) * CELL_PADDING_FRACTION
    min_x, max_x = bounds.min_x - padding, bounds.max_x + padding
    min_y, max_y = bounds.min_y - padding, bounds.max_y + padding
    return [
        cell for cell in cells
        if min_x <= cell.site[0] <= max_x and min_y <= cell.site[1] <= max_y
    ]
