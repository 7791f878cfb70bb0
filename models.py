# Models for game elements: hexes, units, players and pending intents

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from hex_utils import HexCoord

PLAYER = 'player'
AI = 'ai'
FACTIONS = (PLAYER, AI)


def opponent_of(faction: str) -> str:
    return AI if faction == PLAYER else PLAYER


class TerrainType(Enum):
    PLAIN = "plain"
    MOUNTAIN = "mountain"
    FOREST = "forest"
    WATER = "water"
    DESERT = "desert"
    RESOURCE = "resource"


class UnitType(Enum):
    INFANTRY = "infantry"
    TANK = "tank"
    ARTILLERY = "artillery"
    HELICOPTER = "helicopter"
    MEDIC = "medic"


class Ability(Enum):
    RANGED_ATTACK = "rangedAttack"
    HEALING = "healing"
    TERRAIN_BONUS = "terrainBonus"
    RAPID_MOVEMENT = "rapidMovement"
    STEALTH = "stealth"


@dataclass(frozen=True)
class UnitStats:
    """Fixed statistics shared by every unit of one type."""
    movement_range: int
    attack_power: int
    max_lifespan: int
    cost: int
    abilities: Tuple[Ability, ...] = ()


UNIT_STATS: Dict[UnitType, UnitStats] = {
    UnitType.INFANTRY: UnitStats(movement_range=2, attack_power=2, max_lifespan=5, cost=5),
    UnitType.TANK: UnitStats(movement_range=3, attack_power=4, max_lifespan=8, cost=12,
                             abilities=(Ability.TERRAIN_BONUS,)),
    UnitType.ARTILLERY: UnitStats(movement_range=1, attack_power=5, max_lifespan=3, cost=10,
                                  abilities=(Ability.RANGED_ATTACK,)),
    UnitType.HELICOPTER: UnitStats(movement_range=5, attack_power=3, max_lifespan=4, cost=15,
                                   abilities=(Ability.RAPID_MOVEMENT,)),
    UnitType.MEDIC: UnitStats(movement_range=2, attack_power=1, max_lifespan=4, cost=8,
                              abilities=(Ability.HEALING,)),
}


@dataclass
class Hex:
    """
    One grid cell.

    The occupying unit is referenced by id only; the unit itself lives in
    GameState.units.
    """
    id: str
    coordinates: HexCoord
    terrain: TerrainType
    is_base: bool = False
    is_resource_hex: bool = False
    resource_value: int = 0  # Points per round to the occupant's owner
    owner: Optional[str] = None  # Faction owning the base on this hex
    unit_id: Optional[str] = None
    base_health: Optional[int] = None  # Set only on base hexes

    @property
    def is_occupied(self) -> bool:
        return self.unit_id is not None


def make_hex(q: int, r: int, terrain: TerrainType = TerrainType.PLAIN) -> Hex:
    return Hex(id=f"hex-{q}-{r}", coordinates=HexCoord(q, r), terrain=terrain)


@dataclass
class Unit:
    id: str
    type: UnitType
    owner: str  # 'player' or 'ai'
    position: HexCoord
    movement_range: int
    attack_power: int
    lifespan: int  # Current health
    max_lifespan: int
    cost: int
    abilities: List[Ability] = field(default_factory=list)
    has_moved: bool = False
    is_engaged_in_combat: bool = False

    def has_ability(self, ability: Ability) -> bool:
        return ability in self.abilities

    @property
    def can_fly(self) -> bool:
        """Flying units may cross and retreat onto water."""
        return self.has_ability(Ability.RAPID_MOVEMENT)

    @property
    def health_fraction(self) -> float:
        return self.lifespan / self.max_lifespan


def create_unit(unit_id: str, unit_type: UnitType, owner: str, position: Tuple[int, int]) -> Unit:
    """Create a unit at full health from the stats table."""
    stats = UNIT_STATS[unit_type]
    return Unit(
        id=unit_id,
        type=unit_type,
        owner=owner,
        position=HexCoord(*position),
        movement_range=stats.movement_range,
        attack_power=stats.attack_power,
        lifespan=stats.max_lifespan,
        max_lifespan=stats.max_lifespan,
        cost=stats.cost,
        abilities=list(stats.abilities),
    )


@dataclass
class Player:
    """
    One faction's resources, base and roster.

    The roster holds unit ids in purchase order; GameState.units owns the units.
    """
    id: str
    type: str  # 'player' or 'ai'
    points: int = 20
    base_location: Optional[HexCoord] = None
    base_health: Optional[int] = None
    max_base_health: Optional[int] = None
    unit_ids: List[str] = field(default_factory=list)

    def update_points(self, amount: int) -> None:
        """Update points, ensuring they don't go below 0."""
        self.points = max(0, self.points + amount)


@dataclass
class Move:
    """A queued movement order, consumed by execute_moves."""
    unit_id: str
    player_id: str
    from_hex: HexCoord
    to_hex: HexCoord


@dataclass
class Purchase:
    """A queued unit purchase, consumed by execute_moves."""
    player_id: str
    unit_type: UnitType
    position: HexCoord


@dataclass
class Combat:
    hex_coordinates: HexCoord
    attackers: List[str]  # Unit ids
    defenders: List[str]  # Unit ids
    resolved: bool = False
    retreating: Optional[List[str]] = None
