"""
Combat detection and resolution.

A combat forms around a defending unit and every adjacent enemy. The
defending side either retreats to a free neighbour or fights; damage is
simultaneous and split evenly across each side.
"""

import math
from typing import Any, Dict, List, Optional, Tuple

from hex_utils import HexCoord, get_neighbors, is_adjacent
from models import Ability, Combat, TerrainType, Unit
from state import (
    COMBAT, GameRuleError, GameState, NoRetreatAvailable, log_event, log_rule_error,
)
from upkeep import check_victory, start_next_planning_phase

TERRAIN_BONUS_TERRAIN = {TerrainType.MOUNTAIN, TerrainType.FOREST}
TERRAIN_BONUS_MULTIPLIER = 1.5


def detect_combats(game_state: GameState) -> List[Combat]:
    """
    Find every combat after movement.

    Occupied hexes are visited in grid order. A unit that is not yet part of
    a combat and has adjacent enemies becomes the defender of a new combat,
    with those enemies as attackers. All participants are flagged engaged.
    """
    combats = []
    involved = set()
    for coord, hex_obj in game_state.hexes.items():
        if hex_obj.unit_id is None or hex_obj.unit_id in involved:
            continue
        unit = game_state.get_unit(hex_obj.unit_id)
        if unit is None:
            continue

        attackers = []
        for neighbor in get_neighbors(coord):
            other = game_state.get_unit_at(neighbor)
            if other is not None and other.owner != unit.owner:
                attackers.append(other)
        if not attackers:
            continue

        combat = Combat(hex_coordinates=coord,
                        attackers=[a.id for a in attackers],
                        defenders=[unit.id])
        for participant in attackers + [unit]:
            participant.is_engaged_in_combat = True
            involved.add(participant.id)
        combats.append(combat)
        log_event(game_state, f"Combat at {tuple(coord)}: {unit.id} attacked by {len(attackers)}",
                  attackers=combat.attackers, defenders=combat.defenders)
    return combats


def current_participants(game_state: GameState, combat: Combat) -> Tuple[List[Unit], List[Unit]]:
    """
    Re-read a combat's participants from the unit arena.

    Dead units are dropped, as are attackers no longer adjacent to the combat
    hex and defenders no longer standing on it.
    """
    attackers = []
    for uid in combat.attackers:
        unit = game_state.get_unit(uid)
        if unit is not None and is_adjacent(unit.position, combat.hex_coordinates):
            attackers.append(unit)
    defenders = []
    for uid in combat.defenders:
        unit = game_state.get_unit(uid)
        if unit is not None and unit.position == combat.hex_coordinates:
            defenders.append(unit)
    return attackers, defenders


def find_retreat_hex(game_state: GameState, unit: Unit) -> Optional[HexCoord]:
    """First neighbour in direction order that exists, is empty and is not water (unless flying)."""
    for coord in get_neighbors(unit.position):
        hex_obj = game_state.get_hex(coord)
        if hex_obj is None or hex_obj.is_occupied:
            continue
        if hex_obj.terrain == TerrainType.WATER and not unit.can_fly:
            continue
        return coord
    return None


def retreat_unit(game_state: GameState, unit: Unit) -> HexCoord:
    """
    Move a unit to its retreat hex.

    Raises:
        NoRetreatAvailable: If no neighbour qualifies
    """
    destination = find_retreat_hex(game_state, unit)
    if destination is None:
        raise NoRetreatAvailable(f"{unit.id} has nowhere to retreat and is destroyed")
    game_state.move_unit(unit.id, destination)
    unit.is_engaged_in_combat = False
    return destination


def calculate_combat_damage(attackers: List[Unit], defenders: List[Unit],
                            terrain: TerrainType) -> Tuple[int, int]:
    """
    Per-unit damage for both sides of a fight.

    Args:
        attackers: Attacking units
        defenders: Defending units
        terrain: Terrain of the combat hex

    Returns:
        (damage to each attacker, damage to each defender); always at least 1
        for a side that is present
    """
    attack_total = sum(u.attack_power for u in attackers)
    defense_total = float(sum(u.attack_power for u in defenders))
    if terrain in TERRAIN_BONUS_TERRAIN and any(
            d.has_ability(Ability.TERRAIN_BONUS) for d in defenders):
        defense_total *= TERRAIN_BONUS_MULTIPLIER

    damage_to_attackers = max(1, math.floor(defense_total / len(attackers))) if attackers else 0
    damage_to_defenders = max(1, math.floor(attack_total / len(defenders))) if defenders else 0
    return damage_to_attackers, damage_to_defenders


def _apply_damage(game_state: GameState, units: List[Unit], damage: int,
                  results: Dict[str, Any]) -> None:
    for unit in units:
        unit.lifespan -= damage
        results['damage'][unit.id] = damage
        if unit.lifespan <= 0:
            game_state.remove_unit(unit.id)
            results['destroyed'].append(unit.id)
            log_event(game_state, f"{unit.id} destroyed in combat", unit_id=unit.id)


def _retire_stale_combats(game_state: GameState) -> None:
    """Mark combats with no attackers or defenders left as resolved."""
    for combat in game_state.combats:
        if combat.resolved:
            continue
        attackers, defenders = current_participants(game_state, combat)
        if not attackers or not defenders:
            combat.resolved = True
            for unit in attackers + defenders:
                unit.is_engaged_in_combat = False
            log_event(game_state, f"Combat at {tuple(combat.hex_coordinates)} ended without a fight")


def resolve_combat(game_state: GameState, combat_index: int, retreat: bool) -> GameState:
    """
    Resolve one combat, by retreat or by fighting.

    Args:
        game_state: Current game state, in the combat phase
        combat_index: Index into game_state.combats
        retreat: True if the defenders try to retreat instead of fighting

    Returns:
        The updated game state; unchanged for a stale index, a resolved
        combat or the wrong phase
    """
    if game_state.current_phase != COMBAT:
        log_event(game_state, f"Cannot resolve combat during {game_state.current_phase}",
                  error_type='wrong_phase')
        return game_state
    if not 0 <= combat_index < len(game_state.combats):
        log_event(game_state, f"No combat at index {combat_index}", error_type='stale_combat')
        return game_state
    combat = game_state.combats[combat_index]
    if combat.resolved:
        return game_state

    attackers, defenders = current_participants(game_state, combat)
    results: Dict[str, Any] = {'damage': {}, 'destroyed': [], 'retreated': []}

    if retreat:
        for defender in defenders:
            try:
                destination = retreat_unit(game_state, defender)
            except GameRuleError as e:
                log_rule_error(game_state, e)
                game_state.remove_unit(defender.id)
                results['destroyed'].append(defender.id)
                continue
            results['retreated'].append(defender.id)
            log_event(game_state, f"{defender.id} retreated to {tuple(destination)}",
                      unit_id=defender.id)
        combat.retreating = results['retreated']
    elif attackers and defenders:
        terrain = game_state.hexes[combat.hex_coordinates].terrain
        to_attackers, to_defenders = calculate_combat_damage(attackers, defenders, terrain)
        log_event(game_state, f"Combat at {tuple(combat.hex_coordinates)} fought",
                  damage_to_attackers=to_attackers, damage_to_defenders=to_defenders)
        _apply_damage(game_state, attackers, to_attackers, results)
        _apply_damage(game_state, defenders, to_defenders, results)

    combat.resolved = True
    _retire_stale_combats(game_state)

    if check_victory(game_state) is not None:
        return game_state
    if all(c.resolved for c in game_state.combats):
        start_next_planning_phase(game_state)
    return game_state
