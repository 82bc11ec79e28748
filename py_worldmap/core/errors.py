"""Error taxonomy shared by generation, tiling and the API layer."""


class WorldMapError(Exception):
    """Base class for all py-worldmap errors."""


class TileValidationError(WorldMapError, ValueError):
    """Bad zoom level, tile coordinate or view mode."""


class MapNotFoundError(WorldMapError):
    """The requested map (or one of its cells) does not exist."""

    def __init__(self, map_id: str, detail: str = "Map not found"):
        super().__init__(f"{detail}: {map_id}")
        self.map_id = map_id
        self.detail = detail


class GenerationError(WorldMapError):
    """Map generation failed because of bad parameters or unexpected geometry."""


class StorageError(WorldMapError):
    """A generated result could not be persisted."""
