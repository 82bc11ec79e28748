"""
Core map generation functionality.
"""

from .errors import GenerationError, MapNotFoundError, StorageError, TileValidationError, WorldMapError
from .models import (
    Cell, MapData, MapView, TerrainType, TileType, ResourceType, InvalidationReason,
    TileKey, TileRequest, Viewport, OwnershipSnapshot
)
from .seeded_random import SeededRandom, hash_seed
from .landmass import LandmassGenerator
from .partition import PartitionConfig, CellPartitioner, HexGridPartitioner, VoronoiPartitioner, create_partitioner
from .terrain import TerrainClassifier
from .map_generator import GenerationParams, generate_map

__all__ = ['GenerationError', 'MapNotFoundError', 'StorageError', 'TileValidationError', 'WorldMapError',
           'Cell', 'MapData', 'MapView', 'TerrainType', 'TileType', 'ResourceType', 'InvalidationReason',
           'TileKey', 'TileRequest', 'Viewport', 'OwnershipSnapshot',
           'SeededRandom', 'hash_seed', 'LandmassGenerator',
           'PartitionConfig', 'CellPartitioner', 'HexGridPartitioner', 'VoronoiPartitioner', 'create_partitioner',
           'TerrainClassifier', 'GenerationParams', 'generate_map']
