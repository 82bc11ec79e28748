"""
Tile caching and invalidation.

Rendered tiles are stored behind the ``TileStore`` interface. World-state
changes (territory, settlement and resource changes) write invalidation
records for every zoom level and view of the affected tiles; a tile with an
invalidation record is re-rendered on its next request.
"""

import math
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

import structlog

from ..core.errors import MapNotFoundError, TileValidationError
from ..core.models import (
    InvalidationReason,
    InvalidationRecord,
    MapData,
    MapView,
    OwnershipSnapshot,
    Point,
    TileKey,
    Viewport,
)
from .geometry import (
    ZOOM_LEVELS,
    all_tiles_for_zoom,
    is_tile_in_map,
    tiles_for_viewport,
    validate_zoom,
    world_to_tile,
)
from .rasterizer import TileRasterizer

logger = structlog.get_logger()

MapProvider = Callable[[str], Optional[MapData]]
OwnershipProvider = Callable[[str], OwnershipSnapshot]
ProgressCallback = Callable[[int, int], None]

DEFAULT_RADIUS_STEP = 100


class TileStore(ABC):
    """Persistence for rendered tiles and their invalidation records."""

    @abstractmethod
    def get_tile(self, key: TileKey) -> Optional[bytes]:
        ...

    @abstractmethod
    def put_tile(self, key: TileKey, data: bytes) -> None:
        """Insert or overwrite a rendered tile."""

    @abstractmethod
    def add_invalidations(self, records: Sequence[InvalidationRecord]) -> None:
        ...

    @abstractmethod
    def has_invalidation(self, key: TileKey) -> bool:
        ...

    @abstractmethod
    def clear_invalidation(self, key: TileKey, before: Optional[datetime] = None) -> None:
        """Drop the records of a key, only those created at or before ``before`` when given."""

    @abstractmethod
    def invalidated_keys(self, map_id: str) -> Set[TileKey]:
        ...

    @abstractmethod
    def purge_map(self, map_id: str) -> None:
        """Drop every tile and invalidation record of a map."""


class InMemoryTileStore(TileStore):
    """Process-local store, used by tests and single-process deployments."""

    def __init__(self):
        self.tiles: Dict[TileKey, bytes] = {}
        self.invalidations: Dict[TileKey, InvalidationRecord] = {}

    def get_tile(self, key: TileKey) -> Optional[bytes]:
        return self.tiles.get(key)

    def put_tile(self, key: TileKey, data: bytes) -> None:
        self.tiles[key] = data

    def add_invalidations(self, records: Sequence[InvalidationRecord]) -> None:
        for record in records:
            self.invalidations[record.key] = record

    def has_invalidation(self, key: TileKey) -> bool:
        return key in self.invalidations

    def clear_invalidation(self, key: TileKey, before: Optional[datetime] = None) -> None:
        record = self.invalidations.get(key)
        if record is not None and (before is None or record.created_at <= before):
            del self.invalidations[key]

    def invalidated_keys(self, map_id: str) -> Set[TileKey]:
        return {key for key in self.invalidations if key.map_id == map_id}

    def purge_map(self, map_id: str) -> None:
        self.tiles = {k: v for k, v in self.tiles.items() if k.map_id != map_id}
        self.invalidations = {k: v for k, v in self.invalidations.items() if k.map_id != map_id}


class InvalidationTracker:
    """Writes invalidation records for the tiles touched by a world change."""

    def __init__(self, store: TileStore, views: Iterable[MapView] = tuple(MapView)):
        self.store = store
        self.views = tuple(views)

    def keys_for_point(self, map_id: str, x: float, y: float) -> List[TileKey]:
        """Every (zoom, view) key of the tiles containing a world point."""
        keys = []
        for zoom in ZOOM_LEVELS:
            tile_x, tile_y = world_to_tile(x, y, zoom)
            keys.extend(TileKey(map_id, zoom, tile_x, tile_y, view) for view in self.views)
        return keys

    def invalidate(self, map_id: str, x: float, y: float, reason: InvalidationReason) -> List[TileKey]:
        return self.invalidate_points(map_id, [(x, y)], reason)

    def invalidate_points(
        self, map_id: str, points: Iterable[Point], reason: InvalidationReason
    ) -> List[TileKey]:
        """
        Invalidate the tiles containing each point.

        Keys shared by several points are written once.

        Returns:
            Invalidated keys in first-seen order
        """
        seen: Set[TileKey] = set()
        keys: List[TileKey] = []
        for x, y in points:
            if x < 0 or y < 0:
                continue
            for key in self.keys_for_point(map_id, x, y):
                if key not in seen:
                    seen.add(key)
                    keys.append(key)
        return self._write(keys, reason)

    def invalidate_radius(
        self,
        map_id: str,
        center: Point,
        radius: float,
        reason: InvalidationReason,
        step: float = DEFAULT_RADIUS_STEP,
    ) -> List[Point]:
        """
        Invalidate the tiles around a point.

        Samples a grid with ``step`` spacing over the square bounding the
        circle and keeps points within ``radius`` of the centre. Tiles that
        the circle only grazes between grid points are not invalidated.

        Args:
            map_id: Map id
            center: World-space centre
            radius: World-space radius
            reason: Invalidation reason
            step: Grid spacing

        Returns:
            The sampled points that were invalidated
        """
        if step <= 0:
            raise ValueError(f"step must be positive, got {step}")

        cx, cy = center
        samples = int(math.floor(2 * radius / step)) + 1 if radius >= 0 else 0
        points = []
        for i in range(samples):
            x = cx - radius + i * step
            for j in range(samples):
                y = cy - radius + j * step
                if math.hypot(x - cx, y - cy) <= radius:
                    points.append((x, y))

        keys = self.invalidate_points(map_id, points, reason)
        logger.info(
            "Invalidated tile radius",
            map_id=map_id,
            center=center,
            radius=radius,
            points=len(points),
            keys=len(keys),
        )
        return points

    def invalidate_viewport(
        self,
        map_id: str,
        viewport: Viewport,
        reason: InvalidationReason,
        map_width: float,
        map_height: float,
    ) -> List[TileKey]:
        """Invalidate every tile intersecting a world rectangle at every zoom and view."""
        keys = [
            TileKey(map_id, zoom, tile_x, tile_y, view)
            for zoom in ZOOM_LEVELS
            for tile_x, tile_y in tiles_for_viewport(viewport, zoom, map_width, map_height)
            for view in self.views
        ]
        return self._write(keys, reason)

    def is_invalidated(self, key: TileKey) -> bool:
        return self.store.has_invalidation(key)

    def clear(self, key: TileKey, before: Optional[datetime] = None) -> None:
        self.store.clear_invalidation(key, before)

    def _write(self, keys: List[TileKey], reason: InvalidationReason) -> List[TileKey]:
        if keys:
            now = datetime.now(timezone.utc)
            self.store.add_invalidations([InvalidationRecord(key, reason, now) for key in keys])
        return keys


class TileCacheStore:
    """
    Read-through tile cache.

    ``get`` serves stored bytes unless the key carries an invalidation
    record, otherwise renders, stores and returns a fresh tile. Storage
    faults are logged and degrade to re-rendering; they never reach the
    caller.
    """

    def __init__(
        self,
        store: TileStore,
        rasterizer: TileRasterizer,
        map_provider: MapProvider,
        ownership_provider: Optional[OwnershipProvider] = None,
        tracker: Optional[InvalidationTracker] = None,
    ):
        self.store = store
        self.rasterizer = rasterizer
        self.map_provider = map_provider
        self.ownership_provider = ownership_provider or (lambda map_id: OwnershipSnapshot())
        self.tracker = tracker or InvalidationTracker(store)
        self._maps: Dict[str, MapData] = {}

    def load_map(self, map_id: str) -> MapData:
        """Load a map through the provider; maps are immutable so they are memoized."""
        map_data = self._maps.get(map_id)
        if map_data is None:
            map_data = self.map_provider(map_id)
            if map_data is None:
                raise MapNotFoundError(map_id)
            self._maps[map_id] = map_data
        return map_data

    def forget_maps(self) -> None:
        """Drop memoized maps, e.g. after the active map was replaced."""
        self._maps.clear()

    def get(self, key: TileKey) -> bytes:
        """
        Fetch a tile, rendering it on a miss.

        Raises:
            TileValidationError: bad zoom or coordinates outside the map's tile grid
            MapNotFoundError: unknown map id
        """
        validate_zoom(key.zoom)

        try:
            invalidated = self.tracker.is_invalidated(key)
        except Exception as e:
            logger.warning("Invalidation lookup failed", tile=key.cache_id, error=str(e))
            invalidated = True

        if not invalidated:
            try:
                cached = self.store.get_tile(key)
            except Exception as e:
                logger.warning("Tile cache read failed", tile=key.cache_id, error=str(e))
                cached = None
            if cached is not None:
                return cached

        map_data = self.load_map(key.map_id)
        if not is_tile_in_map(key.tile_x, key.tile_y, key.zoom, map_data.width, map_data.height):
            raise TileValidationError(
                f"Tile ({key.tile_x}, {key.tile_y}) is outside the map at zoom {key.zoom}"
            )

        started = datetime.now(timezone.utc)
        data = self._render(map_data, key)
        self._save(key, data, started)
        return data

    def precompute(self, map_id: str, progress: Optional[ProgressCallback] = None) -> Dict[str, int]:
        """
        Render and store the full tile pyramid of a map.

        A tile that fails to render or store is logged and counted as failed.

        Returns:
            Counts of ``total``, ``rendered`` and ``failed`` tiles
        """
        map_data = self.load_map(map_id)
        keys = [
            TileKey(map_id, zoom, tile_x, tile_y, view)
            for zoom in ZOOM_LEVELS
            for tile_x, tile_y in all_tiles_for_zoom(zoom, map_data.width, map_data.height)
            for view in MapView
        ]
        total = len(keys)
        rendered = failed = 0

        logger.info("Precomputing tiles", map_id=map_id, total=total)
        for done, key in enumerate(keys, start=1):
            try:
                started = datetime.now(timezone.utc)
                if self._save(key, self._render(map_data, key), started):
                    rendered += 1
                else:
                    failed += 1
            except Exception as e:
                failed += 1
                logger.error("Tile precompute failed", tile=key.cache_id, error=str(e))
            if progress is not None:
                progress(done, total)

        logger.info("Tile precompute finished", map_id=map_id, rendered=rendered, failed=failed)
        return {"total": total, "rendered": rendered, "failed": failed}

    def _render(self, map_data: MapData, key: TileKey) -> bytes:
        ownership = None
        if key.view is MapView.POLITICAL:
            ownership = self.ownership_provider(map_data.id)
        return self.rasterizer.render(map_data, key.tile_x, key.tile_y, key.zoom, key.view, ownership)

    def _save(self, key: TileKey, data: bytes, started: datetime) -> bool:
        # The invalidation stays until fresh bytes are stored. Records newer
        # than the render start describe changes the render may have missed.
        try:
            self.store.put_tile(key, data)
        except Exception as e:
            logger.error("Tile cache write failed", tile=key.cache_id, error=str(e))
            return False

        try:
            self.tracker.clear(key, before=started)
        except Exception as e:
            logger.error("Invalidation clear failed", tile=key.cache_id, error=str(e))
        return True
