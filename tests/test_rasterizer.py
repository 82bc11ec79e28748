"""Tests for tile rasterization."""

import io

import pytest
from PIL import Image

from py_worldmap.core.models import Cell, MapView, OwnershipSnapshot, ResourceType, TerrainType, TileType
from py_worldmap.tiles.geometry import TileBounds, tile_pixels
from py_worldmap.tiles.rasterizer import (
    TileRasterizer,
    cell_fill_color,
    hex_to_rgba,
    simplify_polygon,
)

BACKGROUND = (245, 245, 245)
WATER = (52, 152, 219)


def square_cell(cell_id="sq", terrain=TerrainType.LAND, resource=None, size=256):
    return Cell(
        cell_id,
        (size / 2, size / 2),
        [(0.0, 0.0), (float(size), 0.0), (float(size), float(size)), (0.0, float(size))],
        terrain=terrain,
        tile_type=TileType.PLAINS if terrain is TerrainType.LAND else None,
        resource=resource,
    )


def decode(data):
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


@pytest.fixture
def rasterizer():
    return TileRasterizer()


class TestColors:

    def test_hex_to_rgba(self):
        assert hex_to_rgba("#3498db") == (52, 152, 219, 255)
        assert hex_to_rgba("#000000", 0.0) == (0, 0, 0, 0)

    def test_malformed_color_is_white(self):
        assert hex_to_rgba("#xyz") == (255, 255, 255, 255)
        assert hex_to_rgba("not-a-color") == (255, 255, 255, 255)

    def test_terrain_view(self):
        snapshot = OwnershipSnapshot()
        assert cell_fill_color(square_cell(terrain=TerrainType.WATER), MapView.TERRAIN, snapshot)[:3] == WATER
        assert cell_fill_color(square_cell(), MapView.TERRAIN, snapshot)[:3] == (255, 255, 255)

    def test_political_view(self):
        snapshot = OwnershipSnapshot(territories={"sq": "p1", "other": "p2"}, owner_colors={"p1": "#ff0000"})
        assert cell_fill_color(square_cell(), MapView.POLITICAL, snapshot) == (255, 0, 0, 255)
        # Owner without a known colour
        assert cell_fill_color(square_cell("other"), MapView.POLITICAL, snapshot)[:3] == (155, 89, 182)
        # Unowned cells fall back to terrain colours
        assert cell_fill_color(square_cell("free"), MapView.POLITICAL, snapshot)[:3] == (255, 255, 255)

    def test_resources_view(self):
        snapshot = OwnershipSnapshot()
        color = cell_fill_color(square_cell(resource=ResourceType.GOLD), MapView.RESOURCES, snapshot)
        assert color[:3] == (255, 215, 0)
        assert 0 < color[3] < 255
        assert cell_fill_color(square_cell(terrain=TerrainType.WATER), MapView.RESOURCES, snapshot)[:3] == WATER


class TestSimplifyPolygon:

    def test_hexagons_untouched(self):
        hexagon = [(float(i), 0.0) for i in range(6)]
        assert simplify_polygon(hexagon, 0) == hexagon

    def test_coarse_zoom_drops_vertices(self):
        polygon = [(float(i), float(i % 3)) for i in range(12)]
        assert len(simplify_polygon(polygon, 0)) == 4
        assert len(simplify_polygon(polygon, 1)) == 6
        assert simplify_polygon(polygon, 2) == polygon

    def test_step_rounds_up(self):
        polygon = [(float(i), float(i % 2)) for i in range(7)]
        # ceil(7 / 4) = 2 keeps indices 0, 2, 4, 6
        assert len(simplify_polygon(polygon, 0)) == 4
        polygon = [(float(i), float(i % 2)) for i in range(9)]
        # ceil(9 / 4) = 3 keeps indices 0, 3, 6
        assert len(simplify_polygon(polygon, 0)) == 3


class TestTileRasterizer:
    """Test rendered raster output."""

    @pytest.mark.parametrize("zoom", [0, 1, 2, 3, 4])
    def test_empty_tile_is_background(self, rasterizer, zoom):
        size = tile_pixels(zoom)
        data = rasterizer.render_cells([], TileBounds(0, 256, 0, 256), zoom, MapView.TERRAIN)
        image = decode(data)
        assert image.format == "PNG"
        assert image.size == (size, size)
        assert image.getpixel((size // 2, size // 2)) == BACKGROUND

    def test_water_cell_fills_tile(self, rasterizer):
        cell = square_cell(terrain=TerrainType.WATER)
        image = decode(rasterizer.render_cells([cell], TileBounds(0, 256, 0, 256), 0, MapView.TERRAIN))
        assert image.getpixel((128, 128)) == WATER

    def test_political_fill(self, rasterizer):
        snapshot = OwnershipSnapshot(territories={"sq": "p1"}, owner_colors={"p1": "#00ff00"})
        data = rasterizer.render_cells([square_cell()], TileBounds(0, 256, 0, 256), 0, MapView.POLITICAL, snapshot)
        assert decode(data).getpixel((128, 128)) == (0, 255, 0)

    def test_resource_overlay_is_translucent(self, rasterizer):
        cell = square_cell(resource=ResourceType.COAL)
        pixel = decode(rasterizer.render_cells([cell], TileBounds(0, 256, 0, 256), 0, MapView.RESOURCES)).getpixel(
            (128, 128)
        )
        assert pixel != BACKGROUND
        assert pixel != (44, 44, 44)

    def test_cells_offset_into_tile(self, rasterizer):
        # Tile (1, 0) at zoom 0 covers world x 256..512
        cell = Cell(
            "shifted",
            (300.0, 50.0),
            [(256.0, 0.0), (384.0, 0.0), (384.0, 128.0), (256.0, 128.0)],
            terrain=TerrainType.WATER,
        )
        image = decode(rasterizer.render_cells([cell], TileBounds(256, 512, 0, 256), 0, MapView.TERRAIN))
        assert image.getpixel((60, 60)) == WATER
        assert image.getpixel((200, 200)) == BACKGROUND

    def test_malformed_cells_skipped(self, rasterizer):
        broken = Cell("broken", (10.0, 10.0), [(0.0, 0.0), (1.0, 1.0)], terrain=TerrainType.WATER)
        nan_cell = Cell(
            "nan",
            (10.0, 10.0),
            [(0.0, 0.0), (float("nan"), 0.0), (0.0, 256.0)],
            terrain=TerrainType.WATER,
        )
        good = square_cell(size=64, terrain=TerrainType.WATER)
        image = decode(rasterizer.render_cells([broken, nan_cell, good], TileBounds(0, 256, 0, 256), 0, MapView.TERRAIN))
        assert image.getpixel((32, 32)) == WATER
        assert image.getpixel((200, 200)) == BACKGROUND

    def test_render_map_tile(self, rasterizer, small_map):
        image = decode(rasterizer.render(small_map, 0, 0, 0, MapView.TERRAIN))
        assert image.size == (256, 256)
        colors = {image.getpixel((x, y)) for x in range(5, 195, 10) for y in range(5, 195, 10)}
        assert WATER in colors

    def test_small_map_at_coarsest_zoom(self, rasterizer, small_map):
        image = decode(rasterizer.render(small_map, 0, 0, 4, MapView.TERRAIN))
        assert image.size == (1024, 1024)
        # 16384 world pixels per tile leave the 200x200 map in one corner
        assert image.getpixel((1000, 1000)) == BACKGROUND

    def test_render_is_deterministic(self, rasterizer, small_map):
        a = rasterizer.render(small_map, 0, 0, 2, MapView.TERRAIN)
        b = rasterizer.render(small_map, 0, 0, 2, MapView.TERRAIN)
        assert a == b
