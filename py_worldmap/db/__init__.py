"""
Database utilities and models.

This package provides:
- SQLAlchemy models for maps, cached tiles and world state
- Database connection management
- Repositories for the active map, tile cache and territory ownership
"""

from .connection import Database, db
from .models import (
    Base, Map, MapTile, TileCacheInvalidation, TilePrecomputeJob, Player, Settlement, Territory
)
from .repository import MapRepository, SqlOwnershipSource, SqlTileStore

__all__ = [
    # Connection management
    'Database', 'db',

    # Repositories
    'MapRepository', 'SqlOwnershipSource', 'SqlTileStore',

    # Models
    'Base', 'Map', 'MapTile', 'TileCacheInvalidation', 'TilePrecomputeJob',
    'Player', 'Settlement', 'Territory'
]
