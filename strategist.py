"""
Computer opponent for Hex Skirmish.

Decides the AI faction's purchases and moves once per planning phase and
whether AI defenders retreat in combat. Behaviour is driven by a table of
difficulty weights and an injected random.Random, so a seeded rng replays
the same decisions.
"""

import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from hex_utils import HexCoord, find_path, get_neighbors, hex_distance, reachable_hexes
from models import (
    AI, UNIT_STATS, Move, Purchase, TerrainType, Unit, UnitType, opponent_of,
)
from orders import add_pending_move, add_pending_purchase
from resolution import current_participants, resolve_combat
from state import COMBAT, GameState, log_event

THREAT_RADIUS = 3
DEFENSE_RADIUS = 5
PLACEMENT_BLOCKED_TERRAIN = {TerrainType.WATER, TerrainType.MOUNTAIN}


@dataclass
class DifficultySettings:
    attack_aggressiveness: float
    defense_preference: float
    resource_focus: float
    unit_diversity_desire: float
    retreat_threshold: float


DIFFICULTY_SETTINGS: Dict[str, DifficultySettings] = {
    'easy': DifficultySettings(
        attack_aggressiveness=0.3,
        defense_preference=0.7,
        resource_focus=0.4,
        unit_diversity_desire=0.3,
        retreat_threshold=0.7,
    ),
    'medium': DifficultySettings(
        attack_aggressiveness=0.5,
        defense_preference=0.5,
        resource_focus=0.6,
        unit_diversity_desire=0.6,
        retreat_threshold=0.5,
    ),
    'hard': DifficultySettings(
        attack_aggressiveness=0.8,
        defense_preference=0.4,
        resource_focus=0.7,
        unit_diversity_desire=0.8,
        retreat_threshold=0.3,
    ),
}


def get_difficulty(name: Optional[str]) -> DifficultySettings:
    """Look up a difficulty tier; unknown names fall back to medium."""
    return DIFFICULTY_SETTINGS.get(name or 'medium', DIFFICULTY_SETTINGS['medium'])


@dataclass
class ThreatAssessment:
    base_under_threat: bool = False
    enemy_units_near_base: List[str] = field(default_factory=list)
    enemy_strength_near_base: int = 0
    threatened_units: Dict[str, float] = field(default_factory=dict)  # unit id -> threat level


def assess_threats(game_state: GameState, faction: str = AI) -> ThreatAssessment:
    """
    Measure pressure on a faction's base and units.

    The base is under threat when at least two enemy units, or more than 5
    enemy attack power, are within 3 hexes of it. A unit's threat level is
    the attack power of adjacent enemies divided by its current lifespan.
    """
    assessment = ThreatAssessment()
    player = game_state.get_player(faction)
    enemies = game_state.get_player_units(opponent_of(faction))

    if player is not None and player.base_location is not None:
        near_base = [e for e in enemies
                     if hex_distance(e.position, player.base_location) <= THREAT_RADIUS]
        assessment.enemy_units_near_base = [e.id for e in near_base]
        assessment.enemy_strength_near_base = sum(e.attack_power for e in near_base)
        assessment.base_under_threat = (len(near_base) >= 2
                                        or assessment.enemy_strength_near_base > 5)

    for unit in game_state.get_player_units(faction):
        adjacent_attack = sum(e.attack_power for e in enemies
                              if hex_distance(e.position, unit.position) == 1)
        if adjacent_attack > 0:
            assessment.threatened_units[unit.id] = adjacent_attack / unit.lifespan
    return assessment


def find_resource_opportunities(game_state: GameState, faction: str = AI) -> List[HexCoord]:
    """Resource hexes not held by one of the faction's own units."""
    opportunities = []
    for coord, hex_obj in game_state.hexes.items():
        if not hex_obj.is_resource_hex:
            continue
        occupant = game_state.get_unit_at(coord)
        if occupant is None or occupant.owner != faction:
            opportunities.append(coord)
    return opportunities


def _placement_hexes(game_state: GameState, faction: str) -> List[HexCoord]:
    player = game_state.get_player(faction)
    if player is None or player.base_location is None:
        return []
    positions = []
    for coord in get_neighbors(player.base_location):
        hex_obj = game_state.get_hex(coord)
        if hex_obj is None or hex_obj.is_occupied:
            continue
        if hex_obj.terrain in PLACEMENT_BLOCKED_TERRAIN:
            continue
        positions.append(coord)
    return positions


def _first_affordable(points: int, preferences: List[UnitType]) -> Optional[UnitType]:
    for unit_type in preferences:
        if UNIT_STATS[unit_type].cost <= points:
            return unit_type
    return None


def decide_purchase(game_state: GameState, settings: DifficultySettings,
                    threats: ThreatAssessment, rng: random.Random,
                    faction: str = AI) -> Optional[Purchase]:
    """
    Choose at most one unit to buy this turn.

    Priority: tank (else infantry) when the base is threatened; helicopter
    (else infantry) to chase resources; artillery, tank or infantry when
    feeling aggressive; otherwise the affordable type with the fewest copies.
    """
    player = game_state.get_player(faction)
    cheapest = min(stats.cost for stats in UNIT_STATS.values())
    if player is None or player.points < cheapest:
        return None
    positions = _placement_hexes(game_state, faction)
    if not positions:
        return None

    points = player.points
    unit_type = None
    if threats.base_under_threat:
        unit_type = _first_affordable(points, [UnitType.TANK, UnitType.INFANTRY])
    elif (find_resource_opportunities(game_state, faction)
          and rng.random() < settings.resource_focus):
        unit_type = _first_affordable(points, [UnitType.HELICOPTER, UnitType.INFANTRY])
    elif rng.random() < settings.attack_aggressiveness:
        unit_type = _first_affordable(points, [UnitType.ARTILLERY, UnitType.TANK, UnitType.INFANTRY])
    else:
        counts = {t: 0 for t in UNIT_STATS}
        for unit in game_state.get_player_units(faction):
            counts[unit.type] += 1
        affordable = [t for t in UNIT_STATS if UNIT_STATS[t].cost <= points]
        unit_type = min(affordable, key=lambda t: counts[t])

    if unit_type is None:
        return None
    return Purchase(player_id=player.id, unit_type=unit_type, position=rng.choice(positions))


class _MovePlanner:
    """Per-turn move planning: knows which hexes earlier orders already claimed."""

    def __init__(self, game_state: GameState, faction: str, claimed: Set[HexCoord]):
        self.game_state = game_state
        self.faction = faction
        self.claimed = claimed

    def is_free(self, coord: HexCoord, unit: Unit) -> bool:
        hex_obj = self.game_state.get_hex(coord)
        if hex_obj is None or hex_obj.is_occupied or coord in self.claimed:
            return False
        return hex_obj.terrain != TerrainType.WATER or unit.can_fly

    def advance_toward(self, unit: Unit, goal: HexCoord) -> Optional[HexCoord]:
        """
        Furthest free hex along the cheapest path to goal within movement range.

        Falls back to the reachable hex closest to goal when no full path
        exists. Returns None when no step brings the unit closer.
        """
        grid = self.game_state.hexes
        budget = 2.0 * len(grid)
        path = find_path(unit.position, goal, grid, budget, allow_water=unit.can_fly)
        reachable = reachable_hexes(unit.position, grid, unit.movement_range,
                                    allow_water=unit.can_fly)
        if path is not None:
            steps = [c for c in path[1:] if c in reachable]
            for coord in reversed(steps):
                if self.is_free(coord, unit):
                    return coord
            return None

        current = hex_distance(unit.position, goal)
        candidates = [c for c in reachable if self.is_free(c, unit)
                      and hex_distance(c, goal) < current]
        if not candidates:
            return None
        return min(candidates, key=lambda c: hex_distance(c, goal))

    def random_destination(self, unit: Unit, rng: random.Random) -> Optional[HexCoord]:
        reachable = reachable_hexes(unit.position, self.game_state.hexes,
                                    unit.movement_range, allow_water=unit.can_fly)
        candidates = [c for c in reachable if c != unit.position and self.is_free(c, unit)]
        if not candidates:
            return None
        return rng.choice(candidates)

    def retreat_destination(self, unit: Unit) -> Optional[HexCoord]:
        player = self.game_state.get_player(self.faction)
        if player.base_location is not None:
            destination = self.advance_toward(unit, player.base_location)
            if destination is not None:
                return destination

        enemies = self.game_state.get_player_units(opponent_of(self.faction))
        best = None
        best_gain = 0
        for coord in get_neighbors(unit.position):
            if not self.is_free(coord, unit):
                continue
            gain = sum(hex_distance(coord, e.position) - hex_distance(unit.position, e.position)
                       for e in enemies)
            if best is None or gain > best_gain:
                best = coord
                best_gain = gain
        return best

    def defend_destination(self, unit: Unit, threats: ThreatAssessment) -> Optional[HexCoord]:
        base = self.game_state.get_player(self.faction).base_location
        base_ring = set(get_neighbors(base))
        intruders = []
        for uid in threats.enemy_units_near_base:
            enemy = self.game_state.get_unit(uid)
            if enemy is not None and enemy.position in base_ring:
                intruders.append(enemy)
        if intruders:
            target = min(intruders, key=lambda e: hex_distance(unit.position, e.position))
            return self.advance_toward(unit, target.position)

        guard_posts = [c for c in get_neighbors(base) if self.is_free(c, unit)]
        if not guard_posts:
            return None
        post = min(guard_posts, key=lambda c: hex_distance(unit.position, c))
        return self.advance_toward(unit, post)

    def resource_destination(self, unit: Unit, opportunities: List[HexCoord]) -> Optional[HexCoord]:
        for coord in sorted(opportunities, key=lambda c: hex_distance(unit.position, c)):
            if coord in self.claimed:
                continue
            destination = self.advance_toward(unit, coord)
            if destination is not None:
                return destination
        return None


def decide_moves(game_state: GameState, settings: DifficultySettings,
                 threats: ThreatAssessment, rng: random.Random,
                 faction: str = AI, claimed: Optional[Set[HexCoord]] = None) -> List[Move]:
    """
    Choose one move per idle unit.

    For each unit the first behaviour that yields a destination wins:
    retreat when its threat level exceeds the retreat threshold, defend a
    threatened base, capture resources, attack the enemy base, or wander to
    a random reachable hex. A behaviour that finds nowhere to go falls
    through to the next one.

    Args:
        game_state: Current game state (read only)
        settings: Difficulty weights
        threats: Result of assess_threats for the faction
        rng: Random source for every roll
        faction: Faction to move
        claimed: Hexes already taken by earlier orders this turn

    Returns:
        Moves in roster order
    """
    player = game_state.get_player(faction)
    if player is None:
        return []
    planner = _MovePlanner(game_state, faction, set(claimed or ()))
    opportunities = find_resource_opportunities(game_state, faction)
    enemy_base = game_state.get_player(opponent_of(faction)).base_location

    moves = []
    for unit in game_state.get_player_units(faction):
        if unit.has_moved or unit.is_engaged_in_combat:
            continue

        destination = None
        if threats.threatened_units.get(unit.id, 0) > settings.retreat_threshold:
            destination = planner.retreat_destination(unit)
        if (destination is None and threats.base_under_threat
                and player.base_location is not None
                and hex_distance(unit.position, player.base_location) < DEFENSE_RADIUS
                and rng.random() < settings.defense_preference):
            destination = planner.defend_destination(unit, threats)
        if (destination is None and opportunities
                and unit.type in (UnitType.INFANTRY, UnitType.HELICOPTER)
                and rng.random() < settings.resource_focus):
            destination = planner.resource_destination(unit, opportunities)
        if destination is None:
            if enemy_base is not None and rng.random() < settings.attack_aggressiveness:
                destination = planner.advance_toward(unit, enemy_base)
            if destination is None:
                destination = planner.random_destination(unit, rng)

        if destination is None or destination == unit.position:
            continue
        planner.claimed.add(destination)
        moves.append(Move(unit_id=unit.id, player_id=player.id,
                          from_hex=unit.position, to_hex=destination))
    return moves


def get_ai_orders(game_state: GameState, difficulty: Optional[str] = None,
                  rng: Optional[random.Random] = None,
                  faction: str = AI) -> Tuple[List[Move], List[Purchase]]:
    """
    Decide a faction's orders for this planning phase without queuing them.

    Returns:
        (moves, purchases)
    """
    settings = get_difficulty(difficulty or game_state.difficulty)
    rng = rng or random.Random()
    threats = assess_threats(game_state, faction)

    purchases = []
    purchase = decide_purchase(game_state, settings, threats, rng, faction)
    if purchase is not None:
        purchases.append(purchase)

    claimed = {p.position for p in purchases}
    moves = decide_moves(game_state, settings, threats, rng, faction, claimed)
    return moves, purchases


def take_ai_turn(game_state: GameState, difficulty: Optional[str] = None,
                 rng: Optional[random.Random] = None, faction: str = AI) -> GameState:
    """Queue the faction's orders through the same functions a human uses."""
    moves, purchases = get_ai_orders(game_state, difficulty, rng, faction)
    for purchase in purchases:
        add_pending_purchase(game_state, purchase.player_id, purchase.unit_type, purchase.position)
    for move in moves:
        add_pending_move(game_state, move.unit_id, move.player_id, move.to_hex)
    log_event(game_state, f"{faction} queued {len(purchases)} purchases and {len(moves)} moves",
              faction=faction)
    return game_state


def decide_combat_retreat(game_state: GameState, combat_index: int,
                          difficulty: Optional[str] = None,
                          rng: Optional[random.Random] = None,
                          faction: str = AI) -> bool:
    """
    Whether the faction's defenders should retreat from a combat.

    Retreat when outgunned by more than half again, when defenders are worn
    below the retreat threshold, or on a cautious random roll.
    """
    if not 0 <= combat_index < len(game_state.combats):
        return False
    settings = get_difficulty(difficulty or game_state.difficulty)
    rng = rng or random.Random()

    attackers, defenders = current_participants(game_state, game_state.combats[combat_index])
    defenders = [d for d in defenders if d.owner == faction]
    if not defenders:
        return False

    attack_strength = sum(a.attack_power for a in attackers)
    defense_strength = sum(d.attack_power for d in defenders)
    if attack_strength > defense_strength * 1.5:
        return True
    average_health = sum(d.health_fraction for d in defenders) / len(defenders)
    if average_health < settings.retreat_threshold:
        return True
    return rng.random() < (1 - settings.attack_aggressiveness) * 0.3


def resolve_ai_combats(game_state: GameState, difficulty: Optional[str] = None,
                       rng: Optional[random.Random] = None, faction: str = AI) -> GameState:
    """Resolve every open combat in which the faction defends."""
    rng = rng or random.Random()
    for index, combat in enumerate(list(game_state.combats)):
        if game_state.current_phase != COMBAT:
            break
        if combat.resolved:
            continue
        _, defenders = current_participants(game_state, combat)
        if not any(d.owner == faction for d in defenders):
            continue
        retreat = decide_combat_retreat(game_state, index, difficulty, rng, faction)
        log_event(game_state, f"{faction} {'retreats' if retreat else 'fights'} at "
                              f"{tuple(combat.hex_coordinates)}", faction=faction)
        resolve_combat(game_state, index, retreat)
    return game_state
