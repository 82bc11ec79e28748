"""Tests for end-to-end map generation."""

import pytest

from py_worldmap.core.errors import GenerationError
from py_worldmap.core.map_generator import GenerationParams, generate_map
from py_worldmap.core.models import Cell, TerrainType
from py_worldmap.core.partition import PartitionConfig


def cells_signature(map_data):
    return [cell.to_dict() for cell in map_data.cells]


class TestGenerateMap:
    """Test determinism and the properties of a generated map."""

    def test_baseline_scenario(self, small_map):
        assert len(small_map.cells) == 27
        terrains = {cell.terrain for cell in small_map.cells}
        assert TerrainType.LAND in terrains
        assert TerrainType.WATER in terrains
        # floor(27 * 0.4)
        assert len(small_map.land_cells) == 10

    def test_same_seed_same_map(self, small_params):
        a = generate_map("determinism", small_params(width=500, height=400))
        b = generate_map("determinism", small_params(width=500, height=400))
        assert cells_signature(a) == cells_signature(b)
        assert a.id != b.id

    def test_same_seed_same_voronoi_map(self, small_params):
        params = small_params(width=400, height=300, partition=PartitionConfig(strategy="voronoi", min_distance=20))
        a = generate_map("voronoi", params)
        b = generate_map("voronoi", params)
        assert cells_signature(a) == cells_signature(b)

    def test_different_seeds_differ(self, small_params):
        a = generate_map("one", small_params(width=500, height=400))
        b = generate_map("two", small_params(width=500, height=400))
        assert [c.terrain for c in a.cells] != [c.terrain for c in b.cells]

    @pytest.mark.parametrize("strategy", ["hex", "voronoi"])
    def test_land_fraction(self, strategy):
        params = GenerationParams(
            width=900,
            height=600,
            partition=PartitionConfig(strategy=strategy, hex_size=15, min_distance=18),
        )
        map_data = generate_map("fraction", params)
        fraction = len(map_data.land_cells) / len(map_data.cells)
        assert fraction == pytest.approx(0.4, abs=1 / len(map_data.cells) + 1e-9)

    def test_resources_only_on_land(self, medium_map):
        for cell in medium_map.cells:
            if cell.terrain is TerrainType.WATER:
                assert cell.tile_type is None
                assert cell.resource is None
            else:
                assert cell.tile_type is not None

    def test_adjacency_symmetric(self, medium_map):
        by_id = {cell.id: cell for cell in medium_map.cells}
        for cell in medium_map.cells:
            for neighbor_id in cell.neighbors:
                assert cell.id in by_id[neighbor_id].neighbors

    def test_explicit_map_id(self, small_map):
        assert small_map.id == "map-abc"
        assert small_map.seed == "abc"
        assert small_map.created_at == small_map.updated_at

    def test_generated_id_format(self, small_params):
        map_data = generate_map("ids", small_params())
        assert map_data.id.startswith("map-")

    def test_cells_round_trip_through_dict(self, small_map):
        for cell in small_map.cells:
            assert Cell.from_dict(cell.to_dict()) == cell

    def test_rejects_bad_size(self, small_params):
        with pytest.raises(GenerationError):
            generate_map("bad", small_params(width=0))

    def test_wraps_unexpected_failures(self, monkeypatch, small_params):
        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr("py_worldmap.core.map_generator.create_partitioner", explode)
        with pytest.raises(GenerationError, match="boom"):
            generate_map("boom", small_params())
