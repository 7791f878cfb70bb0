"""
Hex coordinate math for Hex Skirmish.
Axial (q, r) coordinates with cube conversion, distance, rings, pixel layout,
line of sight and a cost-limited A* pathfinder.
"""

import math
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple

# E, NE, NW, W, SW, SE
DIRECTIONS: List[Tuple[int, int]] = [(1, 0), (1, -1), (0, -1), (-1, 0), (-1, 1), (0, 1)]

# Keyed by terrain value so this module needs nothing from models
TERRAIN_MOVEMENT_COST = {
    'mountain': 2.0,
    'forest': 1.5,
}

LOS_BLOCKING_TERRAIN = {'mountain', 'forest'}

# Any mapping of (q, r) to objects carrying a `terrain` attribute
Grid = Mapping[Tuple[int, int], Any]


class HexCoord(NamedTuple):
    """Axial hex coordinate. Compares and hashes like the plain tuple (q, r)."""
    q: int
    r: int

    @property
    def key(self) -> str:
        return f"{self.q},{self.r}"

    @classmethod
    def from_key(cls, key: str) -> 'HexCoord':
        q, r = key.split(',')
        return cls(int(q), int(r))


def terrain_name(terrain: Any) -> str:
    """Plain string name of a terrain, whether given as enum or str."""
    return getattr(terrain, 'value', terrain)


class Cube(NamedTuple):
    x: float
    y: float
    z: float


def axial_to_cube(coord: Tuple[float, float]) -> Cube:
    """Convert axial (q, r) to cube coordinates (x=q, z=r, y=-x-z)."""
    x, z = coord[0], coord[1]
    return Cube(x, -x - z, z)


def cube_to_axial(cube: Cube) -> Tuple[float, float]:
    return (cube.x, cube.z)


def round_hex(coord: Tuple[float, float]) -> HexCoord:
    """
    Round fractional axial coordinates to the nearest hex.

    The component with the largest rounding error is recomputed from the
    other two so the cube constraint x + y + z = 0 still holds.
    """
    cube = axial_to_cube(coord)
    rx, ry, rz = round(cube.x), round(cube.y), round(cube.z)

    x_diff = abs(rx - cube.x)
    y_diff = abs(ry - cube.y)
    z_diff = abs(rz - cube.z)

    if x_diff > y_diff and x_diff > z_diff:
        rx = -ry - rz
    elif y_diff > z_diff:
        ry = -rx - rz
    else:
        rz = -rx - ry

    return HexCoord(int(rx), int(rz))


def hex_distance(a: Tuple[int, int], b: Tuple[int, int]) -> int:
    """
    Calculate distance between two hexes.

    Args:
        a: First hex as (q, r)
        b: Second hex as (q, r)

    Returns:
        Number of hex steps between a and b
    """
    ac = axial_to_cube(a)
    bc = axial_to_cube(b)
    return int(max(abs(ac.x - bc.x), abs(ac.y - bc.y), abs(ac.z - bc.z)))


def get_neighbors(coord: Tuple[int, int]) -> List[HexCoord]:
    """Get the 6 neighbouring coordinates in direction order E, NE, NW, W, SW, SE."""
    q, r = coord
    return [HexCoord(q + dq, r + dr) for dq, dr in DIRECTIONS]


def is_adjacent(a: Tuple[int, int], b: Tuple[int, int]) -> bool:
    return hex_distance(a, b) == 1


def get_ring(center: Tuple[int, int], radius: int) -> List[HexCoord]:
    """
    Enumerate the hexes at exactly `radius` steps from center.

    Args:
        center: Ring centre
        radius: Ring radius; 0 yields just the centre

    Returns:
        6 * radius coordinates (1 for radius 0) walking around the ring
    """
    if radius == 0:
        return [HexCoord(*center)]

    results = []
    # Start radius steps to the SW, then walk each direction radius times
    q = center[0] + DIRECTIONS[4][0] * radius
    r = center[1] + DIRECTIONS[4][1] * radius
    for dq, dr in DIRECTIONS:
        for _ in range(radius):
            results.append(HexCoord(q, r))
            q += dq
            r += dr
    return results


def get_spiral(center: Tuple[int, int], radius: int) -> List[HexCoord]:
    """Enumerate every hex within `radius` of center, ring by ring outward."""
    results = [HexCoord(*center)]
    for ring_radius in range(1, radius + 1):
        results.extend(get_ring(center, ring_radius))
    return results


def get_hexes_in_range(grid: Grid, center: Tuple[int, int], radius: int) -> List[Any]:
    return [h for coord, h in grid.items() if hex_distance(center, coord) <= radius]


def is_edge_hex(coord: Tuple[int, int], grid_radius: int) -> bool:
    """True if coord lies on the outer rim of a hexagonal grid of the given radius."""
    q, r = coord
    return abs(q) == grid_radius or abs(r) == grid_radius or abs(q + r) == grid_radius


def hex_to_pixel(coord: Tuple[int, int], size: float) -> Tuple[float, float]:
    """Centre of a hex in pixels for a flat-top layout."""
    q, r = coord
    x = size * (3 / 2 * q)
    y = size * (math.sqrt(3) / 2 * q + math.sqrt(3) * r)
    return (x, y)


def pixel_to_hex(point: Tuple[float, float], size: float) -> HexCoord:
    """Hex containing a pixel position (inverse of hex_to_pixel)."""
    x, y = point
    q = (2 / 3 * x) / size
    r = (-1 / 3 * x + math.sqrt(3) / 3 * y) / size
    return round_hex((q, r))


def hex_line(start: Tuple[int, int], end: Tuple[int, int]) -> List[HexCoord]:
    """
    Hexes on the straight line between two hexes, both endpoints included.

    Samples distance + 1 points by linear interpolation in cube space and
    rounds each to the nearest hex.
    """
    distance = hex_distance(start, end)
    if distance == 0:
        return [HexCoord(*start)]

    a = axial_to_cube(start)
    b = axial_to_cube(end)
    results = []
    for i in range(distance + 1):
        t = i / distance
        # Nudge off exact hex edges so rounding is stable
        x = a.x * (1 - t) + b.x * t + 1e-6
        z = a.z * (1 - t) + b.z * t + 1e-6
        results.append(round_hex((x, z)))
    return results


def is_in_line_of_sight(
    start: Tuple[int, int],
    end: Tuple[int, int],
    grid: Grid,
    max_range: int
) -> bool:
    """
    Check range and line of sight between two hexes.

    Mountains and forests strictly between the endpoints block the line;
    the endpoints themselves never block.
    """
    if hex_distance(start, end) > max_range:
        return False

    line = hex_line(start, end)
    for coord in line[1:-1]:
        hex_obj = grid.get(coord)
        if hex_obj and terrain_name(hex_obj.terrain) in LOS_BLOCKING_TERRAIN:
            return False
    return True


def movement_cost(terrain: Any) -> float:
    """Cost to enter a hex: mountain 2, forest 1.5, anything else 1."""
    return TERRAIN_MOVEMENT_COST.get(terrain_name(terrain), 1.0)


def _is_passable(hex_obj: Any, allow_water: bool) -> bool:
    if hex_obj is None:
        return False
    if terrain_name(hex_obj.terrain) == 'water' and not allow_water:
        return False
    return True


def find_path(
    start: Tuple[int, int],
    goal: Tuple[int, int],
    grid: Grid,
    max_cost: float,
    allow_water: bool = False
) -> Optional[List[HexCoord]]:
    """
    A* pathfinding over the hex grid with a movement cost budget.

    Args:
        start: Starting hex coordinates (q, r)
        goal: Goal hex coordinates (q, r)
        grid: Map of coordinates to hexes; missing coordinates are impassable
        max_cost: Maximum total terrain cost the path may spend
        allow_water: Let the path cross water (flying units)

    Returns:
        List of coordinates from start to goal inclusive, or None if no path
        fits within max_cost
    """
    start = HexCoord(*start)
    goal = HexCoord(*goal)

    open_set = {start}
    came_from: Dict[HexCoord, HexCoord] = {}
    g_score: Dict[HexCoord, float] = {start: 0.0}
    f_score: Dict[HexCoord, float] = {start: hex_distance(start, goal)}

    while open_set:
        current = min(open_set, key=lambda c: f_score.get(c, float('inf')))

        if current == goal:
            path = [current]
            while current in came_from:
                current = came_from[current]
                path.append(current)
            path.reverse()
            return path

        open_set.remove(current)

        for neighbor in get_neighbors(current):
            neighbor_hex = grid.get(neighbor)
            if not _is_passable(neighbor_hex, allow_water):
                continue

            tentative_g_score = g_score[current] + movement_cost(neighbor_hex.terrain)
            if tentative_g_score > max_cost:
                continue

            if neighbor not in g_score or tentative_g_score < g_score[neighbor]:
                came_from[neighbor] = current
                g_score[neighbor] = tentative_g_score
                f_score[neighbor] = tentative_g_score + hex_distance(neighbor, goal)
                open_set.add(neighbor)

    return None


def reachable_hexes(
    start: Tuple[int, int],
    grid: Grid,
    max_cost: float,
    allow_water: bool = False
) -> Dict[HexCoord, float]:
    """
    All coordinates reachable from start within max_cost, with their cheapest cost.

    The start hex is included at cost 0.
    """
    start = HexCoord(*start)
    costs: Dict[HexCoord, float] = {start: 0.0}
    frontier = [start]

    while frontier:
        current = min(frontier, key=lambda c: costs[c])
        frontier.remove(current)
        for neighbor in get_neighbors(current):
            neighbor_hex = grid.get(neighbor)
            if not _is_passable(neighbor_hex, allow_water):
                continue
            cost = costs[current] + movement_cost(neighbor_hex.terrain)
            if cost > max_cost:
                continue
            if neighbor not in costs or cost < costs[neighbor]:
                costs[neighbor] = cost
                frontier.append(neighbor)

    return costs
