"""Tests for hex and Voronoi cell partitioning."""

import math

import pytest
from shapely.geometry import Point, Polygon, box
from shapely.ops import unary_union

from py_worldmap.core.errors import GenerationError
from py_worldmap.core.models import Cell
from py_worldmap.core.partition import (
    HexGridPartitioner,
    PartitionConfig,
    VoronoiPartitioner,
    create_partitioner,
    ensure_symmetric_neighbors,
    hex_neighbors,
    hex_to_pixel,
    hexagon_vertices,
    poisson_disc_sample,
)
from py_worldmap.core.seeded_random import PARTITION_STREAM, SeededRandom


def assert_symmetric(cells):
    by_id = {c.id: c for c in cells}
    for cell in cells:
        assert len(set(cell.neighbors)) == len(cell.neighbors)
        for neighbor_id in cell.neighbors:
            assert neighbor_id in by_id
            assert cell.id in by_id[neighbor_id].neighbors


def coverage_gap(cells, width, height):
    """Area of the map rectangle not covered by any cell polygon."""
    union = unary_union([Polygon(c.polygon).buffer(0) for c in cells])
    return box(0, 0, width, height).difference(union).area


class TestHexGeometry:

    def test_hex_to_pixel(self):
        assert hex_to_pixel(0, 0, 10) == (0.0, 0.0)
        x, y = hex_to_pixel(1, 0, 10)
        assert x == pytest.approx(10 * math.sqrt(3) / 2)
        assert y == pytest.approx(15)

    def test_vertices_start_at_top(self):
        vertices = hexagon_vertices(0, 0, 10)
        assert len(vertices) == 6
        assert vertices[0] == pytest.approx((0.0, -10.0))
        for vx, vy in vertices:
            assert math.hypot(vx, vy) == pytest.approx(10)

    def test_neighbor_tables_depend_on_parity(self):
        assert (0, 0) in hex_neighbors(1, 0)
        assert (0, 1) in hex_neighbors(1, 0)
        assert (1, -1) in hex_neighbors(2, 0)
        assert len(hex_neighbors(3, 3)) == 6


class TestHexGridPartitioner:
    """Test the regular hex partition."""

    def test_baseline_cell_count(self):
        cells = HexGridPartitioner(30).partition(200, 200)
        # 3 even rows of 5 plus 3 odd rows of 4
        assert len(cells) == 27

    def test_ids_and_polygons(self):
        cells = HexGridPartitioner(30).partition(200, 200)
        assert cells[0].id == "hex-0-0"
        assert all(len(c.polygon) == 6 for c in cells)
        assert len({c.id for c in cells}) == len(cells)

    def test_adjacency_symmetric(self):
        assert_symmetric(HexGridPartitioner(25).partition(400, 300))

    def test_interior_cell_has_six_neighbors(self):
        cells = {c.id: c for c in HexGridPartitioner(20).partition(400, 400)}
        assert len(cells["hex-4-4"].neighbors) == 6

    @pytest.mark.parametrize("width,height,size", [(200, 200, 30), (400, 250, 20), (1000, 600, 45)])
    def test_full_coverage(self, width, height, size):
        cells = HexGridPartitioner(size).partition(width, height)
        assert coverage_gap(cells, width, height) < 1e-6 * width * height

    def test_rejects_non_positive_size(self):
        with pytest.raises(GenerationError):
            HexGridPartitioner(0)


class TestPoissonDisc:

    def test_min_distance_respected(self):
        points = poisson_disc_sample(300, 200, 20, SeededRandom(5))
        assert len(points) > 50
        for i, (ax, ay) in enumerate(points):
            assert 0 <= ax < 300 and 0 <= ay < 200
            for bx, by in points[i + 1:]:
                assert math.hypot(ax - bx, ay - by) >= 20 - 1e-9

    def test_deterministic(self):
        a = poisson_disc_sample(200, 200, 15, SeededRandom(77))
        b = poisson_disc_sample(200, 200, 15, SeededRandom(77))
        assert a == b


class TestVoronoiPartitioner:
    """Test the irregular Voronoi partition."""

    @pytest.fixture
    def cells(self):
        return VoronoiPartitioner(25).partition(400, 300, SeededRandom(1234 + PARTITION_STREAM))

    def test_ids_in_sampling_order(self, cells):
        assert [c.id for c in cells] == [f"cell-{i}" for i in range(len(cells))]

    def test_polygons_inside_map(self, cells):
        for cell in cells:
            assert len(cell.polygon) >= 3
            for x, y in cell.polygon:
                assert -1e-6 <= x <= 400 + 1e-6
                assert -1e-6 <= y <= 300 + 1e-6

    def test_adjacency_symmetric(self, cells):
        assert_symmetric(cells)
        assert all(cell.neighbors for cell in cells)

    def test_full_coverage(self, cells):
        assert coverage_gap(cells, 400, 300) < 1e-3 * 400 * 300

    def test_site_inside_own_polygon(self, cells):
        for cell in cells:
            assert Polygon(cell.polygon).buffer(1e-3).contains(Point(cell.site))

    def test_deterministic(self):
        a = VoronoiPartitioner(30).partition(300, 300, SeededRandom(9))
        b = VoronoiPartitioner(30).partition(300, 300, SeededRandom(9))
        assert [c.to_dict() for c in a] == [c.to_dict() for c in b]


class TestPartitionHelpers:

    def test_ensure_symmetric_neighbors(self):
        a = Cell("a", (0, 0), [(0, 0), (1, 0), (0, 1)], neighbors=["b"])
        b = Cell("b", (1, 1), [(1, 1), (2, 1), (1, 2)], neighbors=[])
        assert ensure_symmetric_neighbors([a, b]) == 1
        assert b.neighbors == ["a"]

    def test_create_partitioner(self):
        assert isinstance(create_partitioner(PartitionConfig("hex", 10), 100, 100), HexGridPartitioner)
        voronoi = create_partitioner(PartitionConfig("voronoi"), 1000, 500)
        assert isinstance(voronoi, VoronoiPartitioner)
        assert voronoi.min_distance == pytest.approx(10)

    def test_unknown_strategy(self):
        with pytest.raises(GenerationError):
            create_partitioner(PartitionConfig("triangles"), 100, 100)
