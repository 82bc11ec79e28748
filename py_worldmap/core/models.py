"""Map, cell and tile data structures."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

Point = Tuple[float, float]


class TerrainType(str, Enum):
    WATER = "water"
    LAND = "land"


class TileType(str, Enum):
    PLAINS = "plains"
    WOODS = "woods"
    MOUNTAINS = "mountains"
    HILLS = "hills"
    DESERT = "desert"
    SWAMP = "swamp"


class ResourceType(str, Enum):
    WHEAT = "wheat"
    WATER = "water"
    WOOD = "wood"
    COTTON = "cotton"
    BRONZE = "bronze"
    IRON = "iron"
    GOLD = "gold"
    COAL = "coal"
    WILDLIFE = "wildlife"


class MapView(str, Enum):
    """Rendering lens of a tile. Values double as the URL literals."""

    TERRAIN = "terrain"
    POLITICAL = "political"
    RESOURCES = "resources"


class InvalidationReason(str, Enum):
    TERRITORY_CHANGE = "territory-change"
    SETTLEMENT_CHANGE = "settlement-change"
    RESOURCE_CHANGE = "resource-change"


@dataclass
class Cell:
    """
    Atomic polygonal unit of the map.

    ``tile_type`` and ``resource`` are only ever set on land cells.
    """

    id: str
    site: Point
    polygon: List[Point]
    neighbors: List[str] = field(default_factory=list)
    terrain: TerrainType = TerrainType.WATER
    tile_type: Optional[TileType] = None
    resource: Optional[ResourceType] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "site": [self.site[0], self.site[1]],
            "polygon": [[x, y] for x, y in self.polygon],
            "neighbors": list(self.neighbors),
            "terrain": self.terrain.value,
        }
        if self.tile_type is not None:
            data["tileType"] = self.tile_type.value
        if self.resource is not None:
            data["resource"] = self.resource.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cell":
        tile_type = data.get("tileType")
        resource = data.get("resource")
        return cls(
            id=data["id"],
            site=(float(data["site"][0]), float(data["site"][1])),
            polygon=[(float(p[0]), float(p[1])) for p in data.get("polygon") or []],
            neighbors=list(data.get("neighbors") or []),
            terrain=TerrainType(data.get("terrain", TerrainType.WATER.value)),
            tile_type=TileType(tile_type) if tile_type else None,
            resource=ResourceType(resource) if resource else None,
        )


@dataclass(frozen=True)
class MapData:
    """A generated map. Immutable once built; replaced only by regeneration."""

    id: str
    seed: str
    width: float
    height: float
    cells: Tuple[Cell, ...]
    created_at: datetime
    updated_at: datetime

    def cell_by_id(self, cell_id: str) -> Optional[Cell]:
        for cell in self.cells:
            if cell.id == cell_id:
                return cell
        return None

    @property
    def land_cells(self) -> List[Cell]:
        return [c for c in self.cells if c.terrain is TerrainType.LAND]


@dataclass(frozen=True)
class TileKey:
    """Address of one rendered tile in the pyramid."""

    map_id: str
    zoom: int
    tile_x: int
    tile_y: int
    view: MapView

    @property
    def cache_id(self) -> str:
        return f"{self.map_id}-{self.zoom}-{self.tile_x}-{self.tile_y}-{self.view.value}"

    @property
    def local_key(self) -> Tuple[int, int, int, MapView]:
        """Key without the map id, as tracked by a single-map client."""
        return (self.zoom, self.tile_x, self.tile_y, self.view)


@dataclass
class CachedTile:
    key: TileKey
    data: bytes
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class InvalidationRecord:
    key: TileKey
    reason: InvalidationReason
    created_at: datetime


@dataclass(frozen=True)
class Viewport:
    """Visible world rectangle in world pixels."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class TileRequest:
    map_id: str
    zoom: int
    x: int
    y: int
    view: MapView

    @property
    def key(self) -> TileKey:
        return TileKey(self.map_id, self.zoom, self.x, self.y, self.view)

    @property
    def url(self) -> str:
        return f"/tiles/{self.map_id}/{self.zoom}/{self.x}/{self.y}?view={self.view.value}"


@dataclass
class OwnershipSnapshot:
    """Territory ownership as seen at fetch time."""

    territories: Dict[str, str] = field(default_factory=dict)  # cell id -> owner id
    owner_colors: Dict[str, str] = field(default_factory=dict)  # owner id -> "#rrggbb"
