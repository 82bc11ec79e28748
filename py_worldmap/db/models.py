"""Database models for map, tile cache and world-state storage."""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship
import uuid
from datetime import datetime, timezone

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_id():
    return str(uuid.uuid4())


class Map(Base):
    """Generated map. Only the most recent row is the active map."""

    __tablename__ = "maps"

    id = Column(String(64), primary_key=True)
    seed = Column(String(255), nullable=False)
    width = Column(Float, nullable=False)
    height = Column(Float, nullable=False)
    cells_count = Column(Integer, nullable=False)
    cells = Column(JSON, nullable=False)  # List of serialized Cell dicts
    config_json = Column(Text)  # JSON blob of generation parameters
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    tiles = relationship("MapTile", back_populates="map", cascade="all, delete-orphan")


class MapTile(Base):
    """Rendered tile raster, one row per (map, zoom, x, y, view)."""

    __tablename__ = "map_tiles"

    id = Column(String(128), primary_key=True)  # TileKey.cache_id
    map_id = Column(String(64), ForeignKey("maps.id", ondelete="CASCADE"), nullable=False)
    zoom_level = Column(Integer, nullable=False)
    tile_x = Column(Integer, nullable=False)
    tile_y = Column(Integer, nullable=False)
    view_mode = Column(String(20), nullable=False)
    tile_data = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    map = relationship("Map", back_populates="tiles")


class TileCacheInvalidation(Base):
    """Pending invalidation of a cached tile. Several rows may target one tile."""

    __tablename__ = "tile_cache_invalidation"
    __table_args__ = (
        Index("idx_tile_invalidation_key", "map_id", "zoom_level", "tile_x", "tile_y", "view_mode"),
    )

    id = Column(String(64), primary_key=True, default=new_id)
    map_id = Column(String(64), nullable=False)
    zoom_level = Column(Integer, nullable=False)
    tile_x = Column(Integer, nullable=False)
    tile_y = Column(Integer, nullable=False)
    view_mode = Column(String(20), nullable=False)
    reason = Column(String(32), nullable=False)  # territory-change, settlement-change, resource-change
    created_at = Column(DateTime(timezone=True), default=utcnow)


class TilePrecomputeJob(Base):
    """Track background tile pyramid renders."""

    __tablename__ = "tile_precompute_jobs"

    id = Column(String(64), primary_key=True, default=new_id)
    map_id = Column(String(64), nullable=False)

    status = Column(String(20), default="pending")  # pending, running, completed, failed
    progress_percent = Column(Integer, default=0)
    tiles_total = Column(Integer, default=0)
    tiles_rendered = Column(Integer, default=0)
    tiles_failed = Column(Integer, default=0)
    error_message = Column(Text)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))


class Player(Base):
    """Player nation. Owned by the player service; read here for territory colours."""

    __tablename__ = "players"

    id = Column(String(64), primary_key=True, default=new_id)
    guest_id = Column(String(64), unique=True, nullable=False)
    nation_name = Column(String(255), nullable=False)
    color = Column(String(7), nullable=False)  # Hex color code
    population = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    settlements = relationship("Settlement", back_populates="player", cascade="all, delete-orphan")
    territories = relationship("Territory", back_populates="player", cascade="all, delete-orphan")


class Settlement(Base):
    """Settlement placed on a map cell."""

    __tablename__ = "settlements"

    id = Column(String(64), primary_key=True, default=new_id)
    player_id = Column(String(64), ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    cell_id = Column(String(64), nullable=False, index=True)
    position = Column(JSON, nullable=False)  # [x, y]
    radius = Column(Float, default=5)
    population = Column(Integer, default=100)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    player = relationship("Player", back_populates="settlements")


class Territory(Base):
    """Ownership of one cell by a player."""

    __tablename__ = "territories"

    id = Column(String(64), primary_key=True, default=new_id)
    cell_id = Column(String(64), nullable=False, index=True)
    player_id = Column(String(64), ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    settlement_id = Column(String(64), ForeignKey("settlements.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    player = relationship("Player", back_populates="territories")
