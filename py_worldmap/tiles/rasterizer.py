"""
Tile rasterization with Pillow.

Renders the cells around one tile into a square RGBA canvas and returns PNG
bytes. Rendering reads only the immutable map and a caller-supplied
ownership snapshot, so concurrent renders are safe.
"""

import io
import math
from typing import List, Optional, Sequence, Tuple

import structlog
from PIL import Image, ImageDraw

from ..core.defaults import RESOURCE_COLORS
from ..core.models import Cell, MapData, MapView, OwnershipSnapshot, Point, TerrainType
from .geometry import (
    TileBounds,
    calculate_tile_bounds,
    cells_for_tile,
    tile_pixels,
    world_tile_size,
)

logger = structlog.get_logger()

RGBA = Tuple[int, int, int, int]

BACKGROUND_COLOR = "#f5f5f5"
WATER_COLOR = "#3498db"
LAND_COLOR = "#ffffff"
UNKNOWN_OWNER_COLOR = "#9b59b6"
RESOURCE_ALPHA = 0.3
OUTLINE_COLOR: RGBA = (153, 153, 153, 128)
OUTLINE_MIN_ZOOM = 2


def hex_to_rgba(color: str, alpha: float = 1.0) -> RGBA:
    """Convert ``#rrggbb`` to an RGBA tuple; malformed colours become white."""
    value = color.lstrip("#")
    try:
        if len(value) != 6:
            raise ValueError(color)
        r, g, b = int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)
    except ValueError:
        r, g, b = 255, 255, 255
    return r, g, b, int(round(alpha * 255))


def terrain_color(cell: Cell) -> str:
    return WATER_COLOR if cell.terrain is TerrainType.WATER else LAND_COLOR


def cell_fill_color(cell: Cell, view: MapView, ownership: OwnershipSnapshot) -> RGBA:
    """Fill colour of a cell under the given view."""
    if view is MapView.TERRAIN:
        return hex_to_rgba(terrain_color(cell))

    if view is MapView.POLITICAL:
        owner_id = ownership.territories.get(cell.id)
        if owner_id is not None:
            return hex_to_rgba(ownership.owner_colors.get(owner_id, UNKNOWN_OWNER_COLOR))
        return hex_to_rgba(terrain_color(cell))

    if view is MapView.RESOURCES:
        if cell.resource is not None:
            return hex_to_rgba(RESOURCE_COLORS[cell.resource], RESOURCE_ALPHA)
        return hex_to_rgba(terrain_color(cell))

    raise ValueError(f"Unhandled map view: {view!r}")


def simplify_polygon(polygon: Sequence[Point], zoom: int) -> Sequence[Point]:
    """Drop vertices of many-sided polygons at the coarse zoom levels."""
    if zoom >= 2 or len(polygon) <= 6:
        return polygon
    step = math.ceil(len(polygon) / 4) if zoom == 0 else math.ceil(len(polygon) / 6)
    simplified = [p for i, p in enumerate(polygon) if i % step == 0]
    return simplified if len(simplified) >= 3 else polygon


def _is_well_formed(polygon) -> bool:
    if not polygon or len(polygon) < 3:
        return False
    for vertex in polygon:
        if len(vertex) != 2:
            return False
        if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in vertex):
            return False
    return True


class TileRasterizer:
    """Renders map tiles for a zoom level and view."""

    def __init__(self, image_format: str = "PNG"):
        self.image_format = image_format

    def render(
        self,
        map_data: MapData,
        tile_x: int,
        tile_y: int,
        zoom: int,
        view: MapView,
        ownership: Optional[OwnershipSnapshot] = None,
    ) -> bytes:
        """
        Render one tile of a map.

        Args:
            map_data: Generated map
            tile_x, tile_y: Tile coordinate at ``zoom``
            zoom: Zoom level (0-4)
            view: Rendering lens
            ownership: Territory snapshot, only read by the political view

        Returns:
            Encoded raster bytes
        """
        bounds = calculate_tile_bounds(tile_x, tile_y, zoom, map_data.width, map_data.height)
        cells = cells_for_tile(map_data.cells, bounds, zoom)
        return self.render_cells(cells, bounds, zoom, view, ownership)

    def render_cells(
        self,
        cells: Sequence[Cell],
        bounds: TileBounds,
        zoom: int,
        view: MapView,
        ownership: Optional[OwnershipSnapshot] = None,
    ) -> bytes:
        ownership = ownership or OwnershipSnapshot()
        size = tile_pixels(zoom)
        scale = size / world_tile_size(zoom)
        offset_x, offset_y = -bounds.min_x, -bounds.min_y

        image = Image.new("RGBA", (size, size), hex_to_rgba(BACKGROUND_COLOR))
        draw = ImageDraw.Draw(image, "RGBA")

        skipped = 0
        for cell in cells:
            if not _is_well_formed(cell.polygon):
                skipped += 1
                continue

            points: List[Point] = [
                ((x + offset_x) * scale, (y + offset_y) * scale)
                for x, y in simplify_polygon(cell.polygon, zoom)
            ]
            draw.polygon(points, fill=cell_fill_color(cell, view, ownership))
            if zoom >= OUTLINE_MIN_ZOOM:
                draw.polygon(points, outline=OUTLINE_COLOR)

        if skipped:
            logger.debug("Skipped malformed cells", skipped=skipped, zoom=zoom)

        return self.encode(image)

    def encode(self, image: Image.Image) -> bytes:
        buffer = io.BytesIO()
        image.convert("RGB").save(buffer, format=self.image_format, optimize=True)
        return buffer.getvalue()
