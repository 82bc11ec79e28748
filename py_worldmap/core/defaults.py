"""
Default map generation parameters.

Weights are probabilities: tile-type weights should sum to 1.0, resource
scarcity values give the share of land cells carrying each resource and the
remainder carries none.
"""

from .models import ResourceType, TileType

MAP_WIDTH = 2400
MAP_HEIGHT = 1500

PARTITION_STRATEGY = "hex"
HEX_SIZE = 20

# Voronoi min site distance = min(MAP_WIDTH, MAP_HEIGHT) / CELL_DENSITY_DIVISOR
CELL_DENSITY_DIVISOR = 50

NUMBER_OF_CONTINENTS = 6
NUMBER_OF_ISLANDS = 12

# Coastline roughness, 0.1 (smooth) to 1.5 (jagged)
LAND_VARIANCE = 1.5

LAND_TILE_PERCENTAGE = 0.4

TILE_TYPES = {
    TileType.PLAINS: 0.35,
    TileType.WOODS: 0.25,
    TileType.MOUNTAINS: 0.10,
    TileType.HILLS: 0.15,
    TileType.DESERT: 0.10,
    TileType.SWAMP: 0.05,
}

# Ordered rarest first
RESOURCE_SCARCITY = {
    ResourceType.GOLD: 0.02,
    ResourceType.BRONZE: 0.08,
    ResourceType.IRON: 0.08,
    ResourceType.COAL: 0.08,
    ResourceType.WHEAT: 0.12,
    ResourceType.WOOD: 0.15,
    ResourceType.COTTON: 0.10,
    ResourceType.WILDLIFE: 0.12,
    ResourceType.WATER: 0.10,
}

RESOURCE_COLORS = {
    ResourceType.WHEAT: "#F4D03F",
    ResourceType.WATER: "#3498DB",
    ResourceType.WOOD: "#8B4513",
    ResourceType.COTTON: "#FFFFFF",
    ResourceType.BRONZE: "#CD7F32",
    ResourceType.IRON: "#708090",
    ResourceType.GOLD: "#FFD700",
    ResourceType.COAL: "#2C2C2C",
    ResourceType.WILDLIFE: "#8B7355",
}
