"""
Map generation module for Hex Skirmish.
Builds a hexagonal grid of the configured radius, assigns terrain from three
Perlin noise fields, nudges the terrain mix toward the configured distribution
and scatters resource hexes through a mid-radius band.
"""

import logging
import math
import random
from typing import Dict, List, Optional

import numpy as np
from noise import pnoise2

from config import GameSettings
from hex_utils import HexCoord, get_neighbors, get_spiral, hex_distance
from models import Hex, TerrainType, make_hex

logger = logging.getLogger(__name__)

CENTER = HexCoord(0, 0)

# Terrain types the distribution targets cover; resource hexes are placed separately
BALANCED_TERRAIN = [
    TerrainType.PLAIN,
    TerrainType.MOUNTAIN,
    TerrainType.FOREST,
    TerrainType.WATER,
    TerrainType.DESERT,
]

RESOURCE_BLOCKED_TERRAIN = {TerrainType.WATER, TerrainType.MOUNTAIN}

NoiseField = Dict[HexCoord, float]


def generate_noise_field(
    coords: List[HexCoord],
    rng: random.Random,
    scale: float,
    octaves: int = 2
) -> NoiseField:
    """
    Sample a smooth Perlin noise field over the given coordinates.

    Each field gets its own noise base drawn from rng, so three calls give
    three independent fields. Values are min-max normalised to [0, 1].

    Args:
        coords: Coordinates to sample
        rng: Random source choosing the noise base and offset
        scale: Larger values give larger terrain clusters
        octaves: Perlin octaves

    Returns:
        Mapping of coordinate to a value in [0, 1]
    """
    base = rng.randint(0, 255)
    offset_x = rng.uniform(0, 100)
    offset_y = rng.uniform(0, 100)

    samples = []
    for q, r in coords:
        # Sample at the hex centre so clusters are round rather than skewed
        x = q + r / 2
        y = r * math.sqrt(3) / 2
        samples.append(pnoise2((x + offset_x) / scale, (y + offset_y) / scale,
                               octaves=octaves, persistence=0.5, lacunarity=2.0,
                               base=base))

    values = np.array(samples, dtype=float)
    low, high = values.min(), values.max()
    if high - low < 1e-9:
        normalised = np.full(len(values), 0.5)
    else:
        normalised = (values - low) / (high - low)
    return {coord: float(v) for coord, v in zip(coords, normalised)}


def classify_terrain(height: float, moisture: float, temperature: float) -> TerrainType:
    """Pick a terrain type from noise values by fixed thresholds."""
    if height > 0.75:
        return TerrainType.MOUNTAIN
    if height > 0.6 and moisture > 0.5:
        return TerrainType.FOREST
    if height < 0.3:
        return TerrainType.WATER
    if moisture < 0.3 and temperature > 0.6:
        return TerrainType.DESERT
    return TerrainType.PLAIN


def terrain_distribution(map_data: Dict[HexCoord, Hex]) -> Dict[str, float]:
    """Fraction of the map covered by each terrain type."""
    total = len(map_data)
    counts = {t.value: 0 for t in TerrainType}
    for hex_obj in map_data.values():
        counts[hex_obj.terrain.value] += 1
    if total == 0:
        return {name: 0.0 for name in counts}
    return {name: count / total for name, count in counts.items()}


def _pick_replacement(
    under_represented: List[TerrainType],
    height: float,
    moisture: float
) -> TerrainType:
    """Choose the under-represented terrain that best fits the noise values."""
    if TerrainType.MOUNTAIN in under_represented and height > 0.6:
        return TerrainType.MOUNTAIN
    if TerrainType.FOREST in under_represented and moisture > 0.5:
        return TerrainType.FOREST
    if TerrainType.WATER in under_represented and height < 0.35:
        return TerrainType.WATER
    if TerrainType.DESERT in under_represented and moisture < 0.4:
        return TerrainType.DESERT
    if TerrainType.PLAIN in under_represented:
        return TerrainType.PLAIN
    return under_represented[0]


def balance_terrain(
    map_data: Dict[HexCoord, Hex],
    targets: Dict[str, float],
    height: NoiseField,
    moisture: NoiseField,
    rng: random.Random,
    passes: int = 3,
    tolerance: float = 0.02,
    interior_chance: float = 0.2
) -> Dict[HexCoord, Hex]:
    """
    Nudge the terrain mix toward the target distribution.

    Hexes of an over-represented type are reassigned when they sit on a
    cluster boundary (at least one neighbour of a different terrain) or,
    with probability interior_chance, when they are interior. Boundary-first
    reassignment erodes clusters from the edge and keeps biomes coherent.

    Args:
        map_data: Map to adjust in place
        targets: Terrain name -> target fraction
        height: Height noise field
        moisture: Moisture noise field
        rng: Random source for interior reassignment rolls
        passes: Maximum number of sweeps over the map
        tolerance: Stop once every type is within this of its target
        interior_chance: Probability of reassigning an interior hex

    Returns:
        The adjusted map
    """
    total = len(map_data)
    if total == 0:
        return map_data

    target = {t: targets.get(t.value, 0.0) for t in BALANCED_TERRAIN}
    counts = {t: 0 for t in BALANCED_TERRAIN}
    for hex_obj in map_data.values():
        if hex_obj.terrain in counts:
            counts[hex_obj.terrain] += 1

    for _ in range(passes):
        actual = {t: counts[t] / total for t in BALANCED_TERRAIN}
        if all(abs(actual[t] - target[t]) <= tolerance for t in BALANCED_TERRAIN):
            break

        for coord, hex_obj in map_data.items():
            current = hex_obj.terrain
            if current not in target or actual[current] <= target[current]:
                continue

            under_represented = [t for t in BALANCED_TERRAIN if actual[t] < target[t]]
            if not under_represented:
                break

            neighbor_terrains = {
                map_data[n].terrain for n in get_neighbors(coord) if n in map_data
            }
            is_edge_hex = any(t != current for t in neighbor_terrains)
            if not is_edge_hex and rng.random() >= interior_chance:
                continue

            new_type = _pick_replacement(under_represented, height[coord], moisture[coord])
            hex_obj.terrain = new_type
            counts[current] -= 1
            counts[new_type] += 1
            actual[current] = counts[current] / total
            actual[new_type] = counts[new_type] / total

    return map_data


def place_resource_hexes(
    map_data: Dict[HexCoord, Hex],
    count: int,
    rng: random.Random,
    band: tuple = (3, 8),
    value_range: tuple = (2, 4)
) -> List[HexCoord]:
    """
    Mark resource hexes in a ring band around the centre.

    Candidates lie strictly between band[0] and band[1] from the centre and
    are neither water nor mountain.

    Returns:
        Coordinates of the new resource hexes
    """
    inner, outer = band
    candidates = [
        coord for coord, hex_obj in map_data.items()
        if inner < hex_distance(coord, CENTER) < outer
        and hex_obj.terrain not in RESOURCE_BLOCKED_TERRAIN
        and not hex_obj.is_base
    ]
    rng.shuffle(candidates)

    chosen = candidates[:count]
    if len(chosen) < count:
        logger.warning("Only %d of %d resource hexes could be placed", len(chosen), count)

    for coord in chosen:
        hex_obj = map_data[coord]
        hex_obj.terrain = TerrainType.RESOURCE
        hex_obj.is_resource_hex = True
        hex_obj.resource_value = rng.randint(value_range[0], value_range[1])
    return chosen


def generate_map(settings: Optional[GameSettings] = None,
                 rng: Optional[random.Random] = None) -> Dict[HexCoord, Hex]:
    """
    Generate a procedural hex map.

    Args:
        settings: Grid radius, terrain targets and resource options
        rng: Random source; the same seed gives the same map

    Returns:
        Dictionary mapping coordinates to Hex objects, without units or bases
    """
    settings = settings or GameSettings()
    rng = rng or random.Random()

    coords = get_spiral(CENTER, settings.grid_size)

    height = generate_noise_field(coords, rng, settings.noise_scale)
    moisture = generate_noise_field(coords, rng, settings.noise_scale)
    temperature = generate_noise_field(coords, rng, settings.noise_scale)

    map_data: Dict[HexCoord, Hex] = {}
    for coord in coords:
        terrain = classify_terrain(height[coord], moisture[coord], temperature[coord])
        map_data[coord] = make_hex(coord.q, coord.r, terrain)

    balance_terrain(
        map_data,
        settings.terrain_distribution,
        height,
        moisture,
        rng,
        passes=settings.balance_passes,
        tolerance=settings.balance_tolerance,
        interior_chance=settings.interior_reassign_chance,
    )

    place_resource_hexes(
        map_data,
        settings.resource_hex_count,
        rng,
        band=settings.get_resource_band(),
        value_range=settings.resource_value_range,
    )

    summarize_map(map_data)
    return map_data


def summarize_map(map_data: Dict[HexCoord, Hex]) -> Dict[str, object]:
    """
    Collect terrain statistics for a generated map and log them.

    Returns:
        {'total_hexes': int, 'distribution': {terrain: fraction}, 'resource_hexes': int}
    """
    distribution = terrain_distribution(map_data)
    summary = {
        'total_hexes': len(map_data),
        'distribution': distribution,
        'resource_hexes': sum(1 for h in map_data.values() if h.is_resource_hex),
    }
    logger.info(
        "Map generated: %d hexes, %d resource hexes, terrain %s",
        summary['total_hexes'],
        summary['resource_hexes'],
        ", ".join(f"{name} {fraction:.1%}" for name, fraction in distribution.items()),
    )
    return summary
