"""
Cell partitioning of the map rectangle.

Two interchangeable strategies share one contract: every point of
[0, width] x [0, height] is covered by some cell, cell ids are stable for the
same seed and parameters, and adjacency is symmetric.

- HexGridPartitioner: pointy-top hexagons in offset coordinates.
- VoronoiPartitioner: Poisson-disc sites, Voronoi regions clipped to the map,
  neighbours from the Delaunay triangulation.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import structlog
from scipy.spatial import Delaunay, QhullError, Voronoi
from shapely.geometry import MultiPoint, Polygon, box

from . import defaults
from .errors import GenerationError
from .models import Cell, Point
from .seeded_random import SeededRandom

logger = structlog.get_logger()

SQRT3 = math.sqrt(3)

# Offset-coordinate neighbour tables for pointy-top rows, (d_row, d_col)
ODD_ROW_NEIGHBORS = ((-1, 0), (-1, 1), (0, 1), (1, 1), (1, 0), (0, -1))
EVEN_ROW_NEIGHBORS = ((-1, -1), (-1, 0), (0, 1), (1, 0), (1, -1), (0, -1))

POISSON_ATTEMPTS = 30


@dataclass
class PartitionConfig:
    """Selects and parameterizes a partition strategy."""

    strategy: str = "hex"  # "hex" | "voronoi"
    hex_size: float = 20.0
    min_distance: Optional[float] = None  # voronoi; defaults to min(w, h) / CELL_DENSITY_DIVISOR


class CellPartitioner(ABC):
    """Decomposes the map rectangle into adjacency-linked polygonal cells."""

    name = "base"

    @abstractmethod
    def partition(self, width: float, height: float, rng: SeededRandom) -> List[Cell]:
        """Return cells (terrain unassigned) covering the map."""


def ensure_symmetric_neighbors(cells: List[Cell]) -> int:
    """
    Add any missing back-references so that adjacency is symmetric.

    Returns:
        Number of back-references added
    """
    by_id = {cell.id: cell for cell in cells}
    added = 0
    for cell in cells:
        for neighbor_id in list(cell.neighbors):
            neighbor = by_id.get(neighbor_id)
            if neighbor is not None and cell.id not in neighbor.neighbors:
                neighbor.neighbors.append(cell.id)
                added += 1
    return added


# ---------------------------------------------------------------------------
# Hex grid
# ---------------------------------------------------------------------------

def hex_to_pixel(row: int, col: int, hex_size: float) -> Point:
    """Centre of the hexagon at offset coordinates (row, col)."""
    x = hex_size * SQRT3 * (col + (row % 2) * 0.5)
    y = hex_size * 1.5 * row
    return x, y


def hexagon_vertices(center_x: float, center_y: float, hex_size: float) -> List[Point]:
    """Six vertices of a pointy-top hexagon, starting at the top, 60 degrees apart."""
    vertices = []
    for i in range(6):
        angle = (math.pi / 3) * i
        vertices.append((center_x + hex_size * math.sin(angle), center_y - hex_size * math.cos(angle)))
    return vertices


def hex_neighbors(row: int, col: int) -> List[Tuple[int, int]]:
    offsets = ODD_ROW_NEIGHBORS if row % 2 == 1 else EVEN_ROW_NEIGHBORS
    return [(row + dr, col + dc) for dr, dc in offsets]


class HexGridPartitioner(CellPartitioner):
    """Pointy-top hexagons of a fixed radius."""

    name = "hex"

    def __init__(self, hex_size: float):
        if hex_size <= 0:
            raise GenerationError(f"hex_size must be positive, got {hex_size}")
        self.hex_size = hex_size

    def partition(self, width: float, height: float, rng: Optional[SeededRandom] = None) -> List[Cell]:
        s = self.hex_size
        cols = math.ceil(width / (s * SQRT3)) + 1
        rows = math.ceil(height / (s * 1.5)) + 1

        cells: List[Cell] = []
        by_position: Dict[Tuple[int, int], Cell] = {}

        for row in range(rows):
            for col in range(cols):
                cx, cy = hex_to_pixel(row, col, s)
                # Skip hexagons completely outside the map
                if cx < -s or cx > width + s or cy < -s or cy > height + s:
                    continue

                cell = Cell(id=f"hex-{row}-{col}", site=(cx, cy), polygon=hexagon_vertices(cx, cy, s))
                cells.append(cell)
                by_position[(row, col)] = cell

        for (row, col), cell in by_position.items():
            for position in hex_neighbors(row, col):
                neighbor = by_position.get(position)
                if neighbor is not None:
                    cell.neighbors.append(neighbor.id)

        ensure_symmetric_neighbors(cells)
        logger.info("Hex grid partitioned", rows=rows, cols=cols, cells=len(cells))
        return cells


# ---------------------------------------------------------------------------
# Irregular Voronoi
# ---------------------------------------------------------------------------

def poisson_disc_sample(
    width: float, height: float, min_distance: float, rng: SeededRandom, attempts: int = POISSON_ATTEMPTS
) -> List[Point]:
    """
    Bridson Poisson-disc sampling.

    A background grid with cell size ``min_distance / sqrt(2)`` holds at most
    one sample per cell, so the distance check only needs a 5x5 window.

    Args:
        width, height: Sampling domain
        min_distance: Minimum distance between samples
        rng: Random stream
        attempts: Candidates tried around an active point before retiring it

    Returns:
        Samples in placement order
    """
    cell_size = min_distance / math.sqrt(2)
    grid_w = max(1, math.ceil(width / cell_size))
    grid_h = max(1, math.ceil(height / cell_size))
    grid = [[-1] * grid_w for _ in range(grid_h)]
    min_sq = min_distance * min_distance

    points: List[Point] = []

    def add(point: Point) -> None:
        gx = min(int(point[0] / cell_size), grid_w - 1)
        gy = min(int(point[1] / cell_size), grid_h - 1)
        grid[gy][gx] = len(points)
        points.append(point)

    def fits(x: float, y: float) -> bool:
        gx = int(x / cell_size)
        gy = int(y / cell_size)
        for j in range(max(0, gy - 2), min(grid_h, gy + 3)):
            for i in range(max(0, gx - 2), min(grid_w, gx + 3)):
                index = grid[j][i]
                if index >= 0:
                    px, py = points[index]
                    if (px - x) ** 2 + (py - y) ** 2 < min_sq:
                        return False
        return True

    add((rng.random() * width, rng.random() * height))
    active = [0]

    while active:
        slot = rng.randint(len(active))
        ox, oy = points[active[slot]]
        placed = False

        for _ in range(attempts):
            angle = rng.random() * 2 * math.pi
            radius = min_distance * (1 + rng.random())
            x = ox + math.cos(angle) * radius
            y = oy + math.sin(angle) * radius
            if 0 <= x < width and 0 <= y < height and fits(x, y):
                active.append(len(points))
                add((x, y))
                placed = True
                break

        if not placed:
            active.pop(slot)

    return points


def get_mirrored_boundary_points(points: np.ndarray, width: float, height: float) -> np.ndarray:
    """
    Reflect every site across the four map edges.

    With the reflections present, the Voronoi region of each real site is
    exactly its bounded region inside the map rectangle.
    """
    mirrored = []
    eps = 1e-9
    for x, y in points:
        if x > eps:
            mirrored.append([-x, y])
        if width - x > eps:
            mirrored.append([2 * width - x, y])
        if y > eps:
            mirrored.append([x, -y])
        if height - y > eps:
            mirrored.append([x, 2 * height - y])
    return np.array(mirrored, dtype=np.float64).reshape(-1, 2)


def fallback_square(site: Point, half_size: float) -> List[Point]:
    x, y = site
    return [(x - half_size, y - half_size), (x + half_size, y - half_size),
            (x + half_size, y + half_size), (x - half_size, y + half_size)]


def _dedupe_ring(coords, precision: int = 3) -> List[Point]:
    ring: List[Point] = []
    seen = set()
    for x, y in coords:
        point = (round(float(x), precision), round(float(y), precision))
        if point in seen:
            continue
        seen.add(point)
        ring.append(point)
    return ring


def build_region_polygon(vor: Voronoi, index: int, clip: Polygon) -> List[Point]:
    """
    Boundary of one site's Voronoi region clipped to the map.

    Returns an empty list when the region is infinite or degenerate.
    """
    region = vor.regions[vor.point_region[index]]
    if not region or -1 in region:
        return []

    shape = MultiPoint([tuple(v) for v in vor.vertices[region]]).convex_hull.intersection(clip)
    if shape.is_empty or not isinstance(shape, Polygon):
        return []

    ring = _dedupe_ring(shape.exterior.coords)
    return ring if len(ring) >= 3 else []


def delaunay_neighbors(points: np.ndarray) -> List[List[int]]:
    """Neighbour index lists from the Delaunay triangulation of the sites."""
    n = len(points)
    neighbors: List[List[int]] = [[] for _ in range(n)]
    if n < 3:
        if n == 2:
            neighbors = [[1], [0]]
        return neighbors

    try:
        tri = Delaunay(points)
    except QhullError as e:
        logger.warning("Delaunay triangulation failed", error=str(e), sites=n)
        return neighbors

    indptr, indices = tri.vertex_neighbor_vertices
    for i in range(n):
        neighbors[i] = sorted(int(j) for j in indices[indptr[i]:indptr[i + 1]])
    return neighbors


class VoronoiPartitioner(CellPartitioner):
    """Irregular cells from Poisson-disc sites."""

    name = "voronoi"

    def __init__(self, min_distance: float):
        if min_distance <= 0:
            raise GenerationError(f"min_distance must be positive, got {min_distance}")
        self.min_distance = min_distance

    def partition(self, width: float, height: float, rng: SeededRandom) -> List[Cell]:
        sites = poisson_disc_sample(width, height, self.min_distance, rng)
        points = np.array(sites, dtype=np.float64)
        logger.info("Poisson-disc sites placed", sites=len(sites), min_distance=self.min_distance)

        clip = box(0, 0, width, height)
        polygons: List[List[Point]] = [[] for _ in sites]
        try:
            all_points = np.vstack([points, get_mirrored_boundary_points(points, width, height)])
            vor = Voronoi(all_points)
            for i in range(len(sites)):
                polygons[i] = build_region_polygon(vor, i, clip)
        except QhullError as e:
            logger.warning("Voronoi diagram failed, using square cells", error=str(e))

        half_size = self.min_distance / 4
        degenerate = 0
        cells: List[Cell] = []
        for i, site in enumerate(sites):
            polygon = polygons[i]
            if not polygon:
                polygon = fallback_square(site, half_size)
                degenerate += 1
            cells.append(Cell(id=f"cell-{i}", site=(float(site[0]), float(site[1])), polygon=polygon))

        for i, neighbor_indices in enumerate(delaunay_neighbors(points)):
            cells[i].neighbors = [f"cell-{j}" for j in neighbor_indices]

        added = ensure_symmetric_neighbors(cells)
        logger.info(
            "Voronoi partitioned",
            cells=len(cells),
            degenerate_cells=degenerate,
            symmetric_fixes=added,
        )
        return cells


def create_partitioner(config: PartitionConfig, width: float, height: float) -> CellPartitioner:
    """Build the partitioner selected by ``config.strategy``."""
    if config.strategy == "hex":
        return HexGridPartitioner(config.hex_size)
    if config.strategy == "voronoi":
        min_distance = config.min_distance or min(width, height) / defaults.CELL_DENSITY_DIVISOR
        return VoronoiPartitioner(min_distance)
    raise GenerationError(f"Unknown partition strategy: {config.strategy}")
