"""FastAPI main application."""

from fastapi import FastAPI, BackgroundTasks, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional, Tuple
import structlog
import time
import uuid
from datetime import datetime, timezone

from ..config import settings
from ..config.logging import configure_logging
from ..core import defaults
from ..core.errors import GenerationError, MapNotFoundError, StorageError, TileValidationError
from ..core.map_generator import GenerationParams, generate_map as build_map
from ..core.models import InvalidationReason, MapData, MapView, ResourceType, TileKey, TileRequest, TileType
from ..core.partition import PartitionConfig
from ..db.connection import db
from ..db.models import TilePrecomputeJob
from ..db.repository import MapRepository, SqlOwnershipSource, SqlTileStore, map_metadata
from ..tiles.cache import InvalidationTracker, TileCacheStore
from ..tiles.geometry import MAX_ZOOM, MIN_ZOOM, validate_zoom
from ..tiles.rasterizer import TileRasterizer

configure_logging()

logger = structlog.get_logger()

# Initialize FastAPI app
app = FastAPI(
    title="World Map Tile API",
    description="Seeded world map generation served as a cached tile pyramid",
    version="0.1.0",
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.allowed_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Services share the global database handle; it is bound on startup
repository = MapRepository(db)
tile_store = SqlTileStore(db)
tracker = InvalidationTracker(tile_store)
tile_cache = TileCacheStore(
    tile_store,
    TileRasterizer(),
    map_provider=repository.get_map,
    ownership_provider=SqlOwnershipSource(db),
    tracker=tracker,
)


# Request/Response models
class MapGenerationRequest(BaseModel):
    """Request to generate a new map."""

    seed: Optional[str] = Field(None, description="Seed string; a timestamp seed is used when omitted")
    width: float = Field(defaults.MAP_WIDTH, gt=0, le=settings.max_map_width, description="Map width")
    height: float = Field(defaults.MAP_HEIGHT, gt=0, le=settings.max_map_height, description="Map height")
    partition: Literal["hex", "voronoi"] = Field(defaults.PARTITION_STRATEGY, description="Cell partition strategy")
    hex_size: float = Field(defaults.HEX_SIZE, gt=0, description="Hex radius for the hex partition")
    min_distance: Optional[float] = Field(None, gt=0, description="Minimum site distance for the Voronoi partition")
    num_continents: int = Field(defaults.NUMBER_OF_CONTINENTS, ge=0, le=64)
    num_islands: int = Field(defaults.NUMBER_OF_ISLANDS, ge=0, le=256)
    land_variance: float = Field(defaults.LAND_VARIANCE, ge=0, description="Coastline roughness")
    land_tile_percentage: float = Field(defaults.LAND_TILE_PERCENTAGE, ge=0, le=1)
    tile_types: Optional[Dict[TileType, float]] = Field(None, description="Tile type weights")
    resource_scarcity: Optional[Dict[ResourceType, float]] = Field(None, description="Resource probabilities")

    def to_params(self) -> GenerationParams:
        params = GenerationParams(
            width=self.width,
            height=self.height,
            partition=PartitionConfig(
                strategy=self.partition, hex_size=self.hex_size, min_distance=self.min_distance
            ),
            num_continents=self.num_continents,
            num_islands=self.num_islands,
            land_variance=self.land_variance,
            land_tile_percentage=self.land_tile_percentage,
        )
        if self.tile_types is not None:
            params.tile_types = dict(self.tile_types)
        if self.resource_scarcity is not None:
            params.resource_scarcity = dict(self.resource_scarcity)
        return params


class TileRequestModel(BaseModel):
    map_id: str
    zoom: int = Field(..., ge=MIN_ZOOM, le=MAX_ZOOM)
    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)
    view: MapView = MapView.TERRAIN


class TileBatchRequest(BaseModel):
    tiles: List[TileRequestModel] = Field(default_factory=list)
    progressive: bool = True


class JobResponse(BaseModel):
    """Response with job information."""

    job_id: str
    status: str
    progress_percent: int
    message: str
    map_id: Optional[str] = None
    tiles_total: int = 0
    tiles_rendered: int = 0
    tiles_failed: int = 0
    error_message: Optional[str] = None


class SettlementEvent(BaseModel):
    position: Tuple[float, float]
    radius: Optional[float] = Field(None, gt=0)


class CellEvent(BaseModel):
    cell_id: str
    reason: InvalidationReason = InvalidationReason.TERRITORY_CHANGE


# Error handlers
@app.exception_handler(TileValidationError)
async def tile_validation_error_handler(request: Request, exc: TileValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(MapNotFoundError)
async def map_not_found_handler(request: Request, exc: MapNotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.detail, "map_id": exc.map_id})


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    return JSONResponse(status_code=500, content={"detail": "Failed to generate map", "error": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    return JSONResponse(status_code=500, content={"detail": "Failed to save map", "error": str(exc)})


# Event handlers
@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    logger.info("Starting World Map Tile API")
    if not db.is_initialized:
        db.initialize()
    logger.info("API startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Shutting down World Map Tile API")


def parse_tile_key(map_id: str, zoom: str, x: str, y: str, view: str) -> TileKey:
    """Validate raw tile path parameters before any lookup or rendering."""
    try:
        zoom_level = int(zoom)
    except ValueError:
        raise TileValidationError(f"Invalid zoom level {zoom!r}. Must be between {MIN_ZOOM} and {MAX_ZOOM}.")
    validate_zoom(zoom_level)

    try:
        tile_x, tile_y = int(x), int(y)
    except ValueError:
        raise TileValidationError("Invalid tile coordinates.")
    if tile_x < 0 or tile_y < 0:
        raise TileValidationError("Tile coordinates must not be negative.")

    try:
        view_mode = MapView(view)
    except ValueError:
        raise TileValidationError(f"Invalid view mode {view!r}.")

    return TileKey(map_id, zoom_level, tile_x, tile_y, view_mode)


def map_payload(map_data: MapData) -> Dict[str, Any]:
    payload = map_metadata(map_data)
    payload["cells"] = [cell.to_dict() for cell in map_data.cells]
    return payload


def _job_response(job: TilePrecomputeJob) -> JobResponse:
    return JobResponse(
        job_id=str(job.id),
        status=job.status,
        progress_percent=job.progress_percent or 0,
        message=f"Job {job.status}",
        map_id=job.map_id,
        tiles_total=job.tiles_total or 0,
        tiles_rendered=job.tiles_rendered or 0,
        tiles_failed=job.tiles_failed or 0,
        error_message=job.error_message,
    )


def _create_precompute_job(map_id: str) -> str:
    job_id = str(uuid.uuid4())
    with db.get_session() as session:
        session.add(TilePrecomputeJob(id=job_id, map_id=map_id, status="pending"))
    return job_id


# API endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "World Map Tile API",
        "version": "0.1.0",
        "status": "running"
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    try:
        db.ping()
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        raise HTTPException(status_code=503, detail="Service unhealthy")


@app.get("/tiles/{map_id}/{zoom}/{x}/{y}")
def get_tile(map_id: str, zoom: str, x: str, y: str, view: str = Query(MapView.TERRAIN.value)):
    """
    Serve one tile as PNG.

    Cached bytes are returned unless the tile was invalidated; otherwise the
    tile is rendered, stored and returned.
    """
    key = parse_tile_key(map_id, zoom, x, y, view)
    data = tile_cache.get(key)
    return Response(
        content=data,
        media_type="image/png",
        headers={"Cache-Control": f"public, max-age={settings.tile_cache_max_age}, immutable"},
    )


@app.post("/tiles/batch")
async def batch_tiles(request: TileBatchRequest):
    """Resolve tile requests to URLs, coarse zoom levels first when progressive."""
    if not request.tiles:
        raise HTTPException(status_code=400, detail="Invalid tiles array")

    tiles = sorted(request.tiles, key=lambda t: t.zoom) if request.progressive else list(request.tiles)
    resolved = []
    for tile in tiles:
        tile_request = TileRequest(tile.map_id, tile.zoom, tile.x, tile.y, tile.view)
        resolved.append({**tile.model_dump(mode="json"), "url": tile_request.url})

    return {"tiles": resolved, "count": len(resolved)}


@app.post("/maps/generate")
def generate_map(request: MapGenerationRequest, background_tasks: BackgroundTasks):
    """
    Generate and store a new active map.

    The previous map and everything tied to it is replaced. The tile pyramid
    is rendered in the background; use /jobs/{job_id} to follow it.
    """
    seed = request.seed or f"seed-{int(time.time() * 1000)}"
    logger.info("Map generation requested", seed=seed, width=request.width, height=request.height)

    map_data = build_map(seed, request.to_params())
    repository.replace_active_map(map_data, config=request.model_dump(mode="json"))
    tile_cache.forget_maps()

    job_id = None
    try:
        job_id = _create_precompute_job(map_data.id)
        background_tasks.add_task(run_tile_precompute, job_id, map_data.id)
    except Exception as e:
        logger.error("Failed to schedule tile precompute", map_id=map_data.id, error=str(e))

    return {"map": map_payload(map_data), "job_id": job_id}


@app.get("/maps/current")
def get_current_map():
    """Latest generated map with its cells."""
    map_data = repository.get_current_map()
    return {"map": map_payload(map_data) if map_data is not None else None}


@app.get("/maps/metadata")
def get_current_map_metadata():
    """Latest generated map without cells."""
    return {"map": repository.get_current_metadata()}


@app.post("/maps/{map_id}/tiles/precompute", response_model=JobResponse)
def precompute_tiles(map_id: str, background_tasks: BackgroundTasks):
    """Start rendering the full tile pyramid of a map."""
    tile_cache.load_map(map_id)
    job_id = _create_precompute_job(map_id)
    background_tasks.add_task(run_tile_precompute, job_id, map_id)
    return JobResponse(
        job_id=job_id,
        status="pending",
        progress_percent=0,
        message="Tile precompute job started",
        map_id=map_id,
    )


@app.get("/jobs/{job_id}", response_model=JobResponse)
def get_job_status(job_id: str):
    """Get status of a tile precompute job."""
    with db.get_session() as session:
        job = session.get(TilePrecomputeJob, job_id)

        if not job:
            raise HTTPException(status_code=404, detail="Job not found")

        return _job_response(job)


@app.post("/maps/{map_id}/events/settlement")
def settlement_changed(map_id: str, event: SettlementEvent):
    """Invalidate tiles around a settlement that was created or removed."""
    tile_cache.load_map(map_id)
    radius = event.radius or settings.settlement_invalidation_radius
    points = tracker.invalidate_radius(map_id, event.position, radius, InvalidationReason.SETTLEMENT_CHANGE)
    return {"map_id": map_id, "radius": radius, "sampled_points": len(points)}


@app.post("/maps/{map_id}/events/cell")
def cell_changed(map_id: str, event: CellEvent):
    """Invalidate the tiles containing a cell whose owner or resource changed."""
    map_data = tile_cache.load_map(map_id)
    cell = map_data.cell_by_id(event.cell_id)
    if cell is None:
        raise MapNotFoundError(map_id, detail=f"Cell {event.cell_id} not found")

    keys = tracker.invalidate(map_id, cell.site[0], cell.site[1], event.reason)
    return {"map_id": map_id, "cell_id": cell.id, "reason": event.reason.value, "invalidated": len(keys)}


# Background task functions
def run_tile_precompute(job_id: str, map_id: str):
    """
    Background task to render the full tile pyramid of a map.
    """
    logger.info("Starting tile precompute", job_id=job_id, map_id=map_id)

    try:
        with db.get_session() as session:
            job = session.get(TilePrecomputeJob, job_id)
            job.status = "running"
            job.started_at = datetime.now(timezone.utc)

        last_percent = 0

        def report(done: int, total: int):
            nonlocal last_percent
            percent = int(done * 100 / total) if total else 100
            # Persist only whole-percent steps
            if percent != last_percent:
                last_percent = percent
                with db.get_session() as session:
                    session.get(TilePrecomputeJob, job_id).progress_percent = percent

        stats = tile_cache.precompute(map_id, progress=report)

        with db.get_session() as session:
            job = session.get(TilePrecomputeJob, job_id)
            job.status = "completed"
            job.progress_percent = 100
            job.tiles_total = stats["total"]
            job.tiles_rendered = stats["rendered"]
            job.tiles_failed = stats["failed"]
            job.completed_at = datetime.now(timezone.utc)

        logger.info("Tile precompute completed", job_id=job_id, **stats)

    except Exception as e:
        logger.error("Tile precompute failed", job_id=job_id, error=str(e))
        with db.get_session() as session:
            job = session.get(TilePrecomputeJob, job_id)
            if job is not None:
                job.status = "failed"
                job.error_message = str(e)
                job.completed_at = datetime.now(timezone.utc)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
