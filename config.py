"""
Game configuration for Hex Skirmish.

All tunable constants live in one GameSettings object that is passed to the
world generator and the turn engine. Values come from config.json next to
this module; anything missing falls back to the defaults below.
"""

import json
import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Optional, Tuple

CONFIG_PATH = os.path.join(os.path.dirname(__file__), 'config.json')

DEFAULT_TERRAIN_DISTRIBUTION = {
    'plain': 0.45,
    'mountain': 0.15,
    'forest': 0.20,
    'water': 0.10,
    'desert': 0.10,
}


@dataclass
class GameSettings:
    grid_size: int = 8  # Radius of the hexagonal grid
    planning_phase_time: int = 60  # Seconds per planning phase
    ai_difficulty: str = 'medium'
    terrain_distribution: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_TERRAIN_DISTRIBUTION))
    resource_hex_count: int = 10
    resource_value_range: Tuple[int, int] = (2, 4)
    # Resource hexes sit strictly between these distances from the centre;
    # None derives them from grid_size
    resource_band: Optional[Tuple[int, int]] = None
    balance_passes: int = 3
    balance_tolerance: float = 0.02
    interior_reassign_chance: float = 0.2
    noise_scale: float = 6.0
    starting_points: int = 20
    max_base_health: int = 50
    siege_range: int = 3
    medic_heal_amount: int = 1

    def get_resource_band(self) -> Tuple[int, int]:
        """Exclusive (inner, outer) distance band for resource hexes."""
        if self.resource_band is not None:
            return tuple(self.resource_band)
        return (self.grid_size * 3 // 8, self.grid_size)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GameSettings':
        """Build settings from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        for key in ('resource_value_range', 'resource_band'):
            if values.get(key) is not None:
                values[key] = tuple(values[key])
        return cls(**values)


def load_config(path: Optional[str] = None) -> GameSettings:
    """
    Load game settings from a JSON file.

    Args:
        path: Config file to read (default: config.json beside this module)

    Returns:
        GameSettings with file values layered over the defaults
    """
    config_path = path or CONFIG_PATH
    try:
        with open(config_path, 'r') as f:
            config = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        # Use defaults if config file is missing or invalid
        config = {}
    return GameSettings.from_dict(config)
