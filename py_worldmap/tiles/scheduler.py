"""
Client-side progressive tile loading.

The scheduler owns a request queue drained at a fixed rate, deduplicates
tiles across overlapping viewport updates, and can walk the whole pyramid
zoom by zoom. All state lives on a single asyncio event loop; nothing here
is thread-safe.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Set, Tuple

import httpx
import structlog

from ..config import settings
from ..core.models import MapView, TileRequest, Viewport
from .geometry import MAX_ZOOM, ZOOM_LEVELS, all_tiles_for_zoom, tiles_for_viewport

logger = structlog.get_logger()

TileId = Tuple[int, int, int, MapView]

DEFAULT_POLL_INTERVAL = 0.1


def scale_to_zoom(scale: float) -> int:
    """Zoom level for a client display scale."""
    if scale < 0.5:
        return 0
    if scale < 1:
        return 1
    if scale < 2:
        return 2
    if scale < 4:
        return 3
    return MAX_ZOOM


def tile_id(request: TileRequest) -> TileId:
    return (request.zoom, request.x, request.y, request.view)


@dataclass
class LoadedTile:
    """Outcome of one tile load. Failed loads are kept so they are not retried."""

    request: TileRequest
    data: Optional[bytes] = None
    error: Optional[str] = None

    @property
    def url(self) -> str:
        return self.request.url

    @property
    def loaded(self) -> bool:
        return self.error is None


class TileFetcher(ABC):
    """Asynchronous source of tile bytes."""

    @abstractmethod
    async def fetch(self, request: TileRequest) -> bytes:
        ...

    async def aclose(self) -> None:
        pass


class HttpTileFetcher(TileFetcher):
    """Fetches tiles from the tile API over HTTP."""

    def __init__(self, base_url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._owns_client = client is None

    async def fetch(self, request: TileRequest) -> bytes:
        response = await self.client.get(request.url)
        response.raise_for_status()
        return response.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


TileCallback = Callable[[LoadedTile], None]
ProgressCallback = Callable[[int, int, int], None]


class ProgressiveTileScheduler:
    """
    Rate-limited, deduplicating tile request scheduler.

    Usage::

        async with ProgressiveTileScheduler(map_id, width, height, fetcher) as scheduler:
            scheduler.update_viewport(viewport, scale=1.5, view=MapView.TERRAIN)
            await scheduler.preload_all(MapView.TERRAIN)
    """

    def __init__(
        self,
        map_id: str,
        map_width: float,
        map_height: float,
        fetcher: TileFetcher,
        requests_per_second: Optional[float] = None,
        debounce_ms: Optional[float] = None,
        max_queue_size: Optional[int] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_tile_load: Optional[TileCallback] = None,
        on_tile_error: Optional[TileCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        # Unset limits come from the application settings
        if requests_per_second is None:
            requests_per_second = settings.tile_requests_per_second
        if debounce_ms is None:
            debounce_ms = settings.viewport_debounce_ms
        if max_queue_size is None:
            max_queue_size = settings.tile_queue_max_size

        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")

        self.map_id = map_id
        self.map_width = map_width
        self.map_height = map_height
        self.fetcher = fetcher
        self.interval = 1.0 / requests_per_second
        self.debounce = debounce_ms / 1000.0
        self.max_queue_size = max_queue_size
        self.poll_interval = poll_interval
        self.on_tile_load = on_tile_load
        self.on_tile_error = on_tile_error
        self.on_progress = on_progress

        self.queue: Deque[TileRequest] = deque()
        self.queued: Set[TileId] = set()
        self.in_flight: Set[TileId] = set()
        self.loaded: Dict[TileId, LoadedTile] = {}

        # Zooms and view the latest viewport update asked for
        self.target_zooms: Set[int] = set()
        self.target_view: Optional[MapView] = None

        self.is_preloading = False
        self.preload_zoom = 0
        self.preload_view: Optional[MapView] = None
        self._preload_ids: Set[TileId] = set()

        self._drain_task: Optional[asyncio.Task] = None
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._fetch_tasks: Set[asyncio.Task] = set()

    async def __aenter__(self) -> "ProgressiveTileScheduler":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def start(self) -> None:
        """Start draining the queue. Must be called from a running event loop."""
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def close(self) -> None:
        """Cancel the debounce timer, the drain loop and outstanding fetches."""
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

        tasks = list(self._fetch_tasks)
        if self._drain_task is not None:
            tasks.append(self._drain_task)
            self._drain_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._fetch_tasks.clear()
        self.clear_cache()
        await self.fetcher.aclose()

    async def _drain(self) -> None:
        # One dequeue per interval no matter how many requests are waiting
        while True:
            if self.queue:
                request = self.queue.popleft()
                self.queued.discard(tile_id(request))
                self._dispatch(request)
            await asyncio.sleep(self.interval)

    def _dispatch(self, request: TileRequest) -> None:
        key = tile_id(request)
        if key in self.in_flight or key in self.loaded:
            return
        self.in_flight.add(key)
        task = asyncio.get_running_loop().create_task(self._load(request))
        self._fetch_tasks.add(task)
        task.add_done_callback(self._fetch_tasks.discard)

    async def _load(self, request: TileRequest) -> None:
        key = tile_id(request)
        try:
            data = await self.fetcher.fetch(request)
        except Exception as e:
            tile = LoadedTile(request, error=str(e) or type(e).__name__)
        else:
            tile = LoadedTile(request, data=data)

        self.in_flight.discard(key)
        self.loaded[key] = tile

        if self.is_preloading and key in self._preload_ids:
            self._report_progress()

        if tile.loaded:
            if self.on_tile_load is not None:
                self.on_tile_load(tile)
        else:
            logger.warning("Tile load failed", url=tile.url, error=tile.error)
            if self.on_tile_error is not None:
                self.on_tile_error(tile)

    def update_viewport(self, viewport: Viewport, scale: float, view: MapView, progressive: bool = True) -> None:
        """
        Request the tiles of a viewport after the debounce window.

        A call made within the window of an earlier one replaces it.

        Args:
            viewport: Visible world rectangle
            scale: Client display scale, mapped to a zoom level
            view: Rendering lens to request
            progressive: Also request the next coarser zoom level
        """
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        self._debounce_handle = asyncio.get_running_loop().call_later(
            self.debounce, self._apply_viewport, viewport, scale, view, progressive
        )

    def _apply_viewport(self, viewport: Viewport, scale: float, view: MapView, progressive: bool) -> None:
        self._debounce_handle = None
        zoom = scale_to_zoom(scale)
        zooms = [zoom]
        if progressive and zoom > 0:
            zooms.append(zoom - 1)

        self.target_zooms = set(zooms)
        self.target_view = view
        dropped = self._purge_stale()

        added = 0
        for level in zooms:
            for x, y in tiles_for_viewport(viewport, level, self.map_width, self.map_height):
                added += self._enqueue(TileRequest(self.map_id, level, x, y, view))

        capped = self._enforce_queue_cap()
        logger.debug(
            "Viewport updated",
            zoom=zoom,
            view=view.value,
            queued=added,
            dropped_stale=dropped,
            dropped_over_cap=capped,
        )

    def _is_wanted(self, request: TileRequest) -> bool:
        if request.view == self.target_view and request.zoom in self.target_zooms:
            return True
        return self.is_preloading and request.view == self.preload_view and request.zoom == self.preload_zoom

    def _purge_stale(self) -> int:
        kept = deque(r for r in self.queue if self._is_wanted(r))
        dropped = len(self.queue) - len(kept)
        if dropped:
            self.queue = kept
            self.queued = {tile_id(r) for r in kept}
        return dropped

    def _enforce_queue_cap(self) -> int:
        # The queue is in priority order, so overflow is cut from the tail
        dropped = 0
        while len(self.queue) > self.max_queue_size:
            request = self.queue.pop()
            self.queued.discard(tile_id(request))
            dropped += 1
        return dropped

    def _enqueue(self, request: TileRequest) -> int:
        key = tile_id(request)
        if key in self.loaded or key in self.in_flight or key in self.queued:
            return 0
        self.queue.append(request)
        self.queued.add(key)
        return 1

    async def preload_all(self, view: MapView) -> None:
        """
        Load every tile of the pyramid for one view, zoom 0 first.

        Each zoom level must be fully loaded (failed tiles count as loaded)
        before the next one is queued. Progress is reported as
        ``(loaded, total, zoom)`` through ``on_progress``.
        """
        if self.is_preloading:
            return

        tiles_by_zoom = {
            zoom: all_tiles_for_zoom(zoom, self.map_width, self.map_height) for zoom in ZOOM_LEVELS
        }
        self._preload_ids = {
            (zoom, x, y, view) for zoom, tiles in tiles_by_zoom.items() for x, y in tiles
        }
        self.preload_view = view
        self.is_preloading = True
        logger.info("Preloading tiles", map_id=self.map_id, view=view.value, total=len(self._preload_ids))

        try:
            for zoom in ZOOM_LEVELS:
                self.preload_zoom = zoom
                self._report_progress()
                while True:
                    missing = [(x, y) for x, y in tiles_by_zoom[zoom] if (zoom, x, y, view) not in self.loaded]
                    if not missing:
                        break
                    for x, y in missing:
                        self._enqueue(TileRequest(self.map_id, zoom, x, y, view))
                    self._enforce_queue_cap()
                    await asyncio.sleep(self.poll_interval)
        finally:
            self.is_preloading = False

        logger.info("Preload complete", map_id=self.map_id, view=view.value)

    @property
    def preload_total(self) -> int:
        return len(self._preload_ids)

    @property
    def preload_loaded(self) -> int:
        return sum(1 for key in self._preload_ids if key in self.loaded)

    def _report_progress(self) -> None:
        if self.on_progress is not None:
            self.on_progress(self.preload_loaded, self.preload_total, self.preload_zoom)

    def is_preload_complete(self) -> bool:
        return (
            not self.is_preloading
            and self.preload_total > 0
            and self.preload_loaded >= self.preload_total
        )

    def get_tile(self, zoom: int, x: int, y: int, view: MapView) -> Optional[LoadedTile]:
        return self.loaded.get((zoom, x, y, view))

    def pending(self) -> List[TileRequest]:
        """Snapshot of the queued requests in dequeue order."""
        return list(self.queue)

    def clear_cache(self) -> None:
        self.loaded.clear()
        self.in_flight.clear()
        self.queue.clear()
        self.queued.clear()
