"""
SQLAlchemy-backed persistence for maps, tiles and ownership snapshots.
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Set

import structlog
from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError

from ..core.errors import StorageError
from ..core.models import Cell, InvalidationRecord, MapData, MapView, OwnershipSnapshot, TileKey
from ..tiles.cache import TileStore
from .connection import Database, db
from .models import Map, MapTile, Player, Settlement, Territory, TileCacheInvalidation, utcnow

logger = structlog.get_logger()


def _map_from_row(row: Map) -> MapData:
    return MapData(
        id=row.id,
        seed=row.seed,
        width=row.width,
        height=row.height,
        cells=tuple(Cell.from_dict(c) for c in row.cells or []),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def map_metadata(map_data: MapData) -> Dict[str, Any]:
    """Map summary without cells."""
    return {
        "id": map_data.id,
        "seed": map_data.seed,
        "width": map_data.width,
        "height": map_data.height,
        "cells_count": len(map_data.cells),
        "created_at": map_data.created_at.isoformat() if map_data.created_at else None,
        "updated_at": map_data.updated_at.isoformat() if map_data.updated_at else None,
    }


class MapRepository:
    """Stores the active map. Replacing it removes everything tied to the old cells."""

    def __init__(self, database: Database = db):
        self.database = database

    def replace_active_map(self, map_data: MapData, config: Optional[Dict[str, Any]] = None) -> None:
        """
        Persist a freshly generated map as the only active map.

        Tiles, invalidation records, territories and settlements of earlier
        maps are deleted in the same transaction.

        Raises:
            StorageError: the database rejected the write
        """
        try:
            with self.database.get_session() as session:
                session.query(TileCacheInvalidation).delete(synchronize_session=False)
                session.query(MapTile).delete(synchronize_session=False)
                session.query(Territory).delete(synchronize_session=False)
                session.query(Settlement).delete(synchronize_session=False)
                session.query(Map).delete(synchronize_session=False)

                session.add(
                    Map(
                        id=map_data.id,
                        seed=map_data.seed,
                        width=map_data.width,
                        height=map_data.height,
                        cells_count=len(map_data.cells),
                        cells=[cell.to_dict() for cell in map_data.cells],
                        config_json=json.dumps(config, default=str) if config is not None else None,
                        created_at=map_data.created_at,
                        updated_at=map_data.updated_at,
                    )
                )
        except SQLAlchemyError as e:
            logger.error("Failed to save map", map_id=map_data.id, error=str(e))
            raise StorageError(f"Failed to save map {map_data.id}: {e}") from e

        logger.info("Map saved", map_id=map_data.id, cells=len(map_data.cells))

    def get_map(self, map_id: str) -> Optional[MapData]:
        with self.database.get_session() as session:
            row = session.get(Map, map_id)
            return _map_from_row(row) if row is not None else None

    def get_current_map(self) -> Optional[MapData]:
        with self.database.get_session() as session:
            row = session.query(Map).order_by(Map.created_at.desc()).first()
            return _map_from_row(row) if row is not None else None

    def get_current_metadata(self) -> Optional[Dict[str, Any]]:
        with self.database.get_session() as session:
            row = (
                session.query(Map.id, Map.seed, Map.width, Map.height, Map.cells_count, Map.created_at, Map.updated_at)
                .order_by(Map.created_at.desc())
                .first()
            )
            if row is None:
                return None
            return {
                "id": row.id,
                "seed": row.seed,
                "width": row.width,
                "height": row.height,
                "cells_count": row.cells_count,
                "created_at": row.created_at.isoformat() if row.created_at else None,
                "updated_at": row.updated_at.isoformat() if row.updated_at else None,
            }

    def get_cell(self, map_id: str, cell_id: str) -> Optional[Cell]:
        map_data = self.get_map(map_id)
        return map_data.cell_by_id(cell_id) if map_data is not None else None


class SqlOwnershipSource:
    """Builds ownership snapshots from the territories and players tables."""

    def __init__(self, database: Database = db):
        self.database = database

    def __call__(self, map_id: str) -> OwnershipSnapshot:
        # Territories are not keyed by map; replacing the map clears them
        with self.database.get_session() as session:
            territories = {cell_id: player_id for cell_id, player_id in session.query(Territory.cell_id, Territory.player_id)}
            colors = {player_id: color for player_id, color in session.query(Player.id, Player.color)}
        return OwnershipSnapshot(territories=territories, owner_colors=colors)


def _key_filter(model, key: TileKey):
    return and_(
        model.map_id == key.map_id,
        model.zoom_level == key.zoom,
        model.tile_x == key.tile_x,
        model.tile_y == key.tile_y,
        model.view_mode == key.view.value,
    )


class SqlTileStore(TileStore):
    """Tile store on the map_tiles and tile_cache_invalidation tables."""

    def __init__(self, database: Database = db):
        self.database = database

    def get_tile(self, key: TileKey) -> Optional[bytes]:
        with self.database.get_session() as session:
            row = session.get(MapTile, key.cache_id)
            return bytes(row.tile_data) if row is not None else None

    def put_tile(self, key: TileKey, data: bytes) -> None:
        now = utcnow()
        with self.database.get_session() as session:
            session.merge(
                MapTile(
                    id=key.cache_id,
                    map_id=key.map_id,
                    zoom_level=key.zoom,
                    tile_x=key.tile_x,
                    tile_y=key.tile_y,
                    view_mode=key.view.value,
                    tile_data=data,
                    created_at=now,
                    updated_at=now,
                )
            )

    def add_invalidations(self, records: Sequence[InvalidationRecord]) -> None:
        with self.database.get_session() as session:
            session.add_all(
                [
                    TileCacheInvalidation(
                        map_id=record.key.map_id,
                        zoom_level=record.key.zoom,
                        tile_x=record.key.tile_x,
                        tile_y=record.key.tile_y,
                        view_mode=record.key.view.value,
                        reason=record.reason.value,
                        created_at=record.created_at,
                    )
                    for record in records
                ]
            )

    def has_invalidation(self, key: TileKey) -> bool:
        with self.database.get_session() as session:
            row = session.query(TileCacheInvalidation.id).filter(_key_filter(TileCacheInvalidation, key)).first()
            return row is not None

    def clear_invalidation(self, key: TileKey, before: Optional[datetime] = None) -> None:
        with self.database.get_session() as session:
            query = session.query(TileCacheInvalidation).filter(_key_filter(TileCacheInvalidation, key))
            if before is not None:
                query = query.filter(TileCacheInvalidation.created_at <= before)
            query.delete(synchronize_session=False)

    def invalidated_keys(self, map_id: str) -> Set[TileKey]:
        with self.database.get_session() as session:
            rows = (
                session.query(
                    TileCacheInvalidation.zoom_level,
                    TileCacheInvalidation.tile_x,
                    TileCacheInvalidation.tile_y,
                    TileCacheInvalidation.view_mode,
                )
                .filter(TileCacheInvalidation.map_id == map_id)
                .distinct()
                .all()
            )
        return {TileKey(map_id, zoom, x, y, MapView(view)) for zoom, x, y, view in rows}

    def purge_map(self, map_id: str) -> None:
        with self.database.get_session() as session:
            session.query(TileCacheInvalidation).filter(
                TileCacheInvalidation.map_id == map_id
            ).delete(synchronize_session=False)
            session.query(MapTile).filter(MapTile.map_id == map_id).delete(synchronize_session=False)
