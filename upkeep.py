"""
End-of-round upkeep for Hex Skirmish.
Runs once all combats of a round are resolved (or none occurred):

- Siege damage to bases from enemy units in range
- Immediate game over when a base reaches 0
- Resource collection from occupied resource hexes
- Medic healing of adjacent friendly units
- Reset unit flags, advance the turn and return to planning
"""

from typing import Any, Dict, List, Optional

from hex_utils import get_neighbors, hex_distance
from models import FACTIONS, Ability, opponent_of
from state import (
    GAME_OVER, PLANNING, GameState, log_event, reset_planning_timer,
)


def calculate_siege_damage(game_state: GameState, faction: str) -> int:
    """
    Siege damage a faction's base takes this round.

    Args:
        game_state: Current game state
        faction: Owner of the base under siege

    Returns:
        Summed attack power of enemy units within siege range of the base
    """
    player = game_state.get_player(faction)
    if player is None or player.base_location is None:
        return 0
    siege_range = game_state.settings.siege_range
    return sum(
        unit.attack_power
        for unit in game_state.get_player_units(opponent_of(faction))
        if hex_distance(unit.position, player.base_location) <= siege_range
    )


def apply_siege_damage(game_state: GameState) -> Dict[str, int]:
    """
    Damage every base by the enemy attack power around it, flooring at 0.

    Returns:
        Damage dealt per faction's base
    """
    damage_dealt = {}
    for faction in FACTIONS:
        player = game_state.get_player(faction)
        if player is None or player.base_health is None:
            continue
        damage = calculate_siege_damage(game_state, faction)
        damage_dealt[faction] = damage
        if damage <= 0:
            continue

        player.base_health = max(0, player.base_health - damage)
        base_hex = game_state.get_base_hex(faction)
        if base_hex is not None:
            base_hex.base_health = player.base_health
        log_event(game_state, f"{faction} base takes {damage} siege damage",
                  faction=faction, damage=damage, base_health=player.base_health)
    return damage_dealt


def find_fallen_base_winner(game_state: GameState) -> Optional[str]:
    """
    Winner decided by base health, if any base has fallen.

    Bases are checked in faction order and the last fallen one decides, so
    if both bases fall in the same round the human player wins.
    """
    winner = None
    for faction in FACTIONS:
        player = game_state.get_player(faction)
        if player is not None and player.base_health is not None and player.base_health <= 0:
            winner = opponent_of(faction)
    return winner


def collect_resources(game_state: GameState) -> Dict[str, int]:
    """
    Grant each occupied resource hex's value to the occupant's owner.

    Returns:
        Points gained per faction
    """
    yields = {faction: 0 for faction in FACTIONS}
    for hex_obj in game_state.hexes.values():
        if not hex_obj.is_resource_hex or hex_obj.unit_id is None:
            continue
        unit = game_state.get_unit(hex_obj.unit_id)
        if unit is None:
            continue
        game_state.players[unit.owner].update_points(hex_obj.resource_value)
        yields[unit.owner] += hex_obj.resource_value

    for faction, amount in yields.items():
        if amount > 0:
            log_event(game_state, f"{faction} collected {amount} points from resource hexes",
                      faction=faction, amount=amount)
    return yields


def apply_healing(game_state: GameState) -> Dict[str, int]:
    """
    Each medic restores lifespan to adjacent damaged friendly units.

    Returns:
        Lifespan restored per unit id
    """
    heal_amount = game_state.settings.medic_heal_amount
    healed: Dict[str, int] = {}
    for medic in list(game_state.units.values()):
        if not medic.has_ability(Ability.HEALING):
            continue
        for coord in get_neighbors(medic.position):
            patient = game_state.get_unit_at(coord)
            if patient is None or patient.owner != medic.owner:
                continue
            if patient.lifespan >= patient.max_lifespan:
                continue
            restored = min(heal_amount, patient.max_lifespan - patient.lifespan)
            patient.lifespan += restored
            healed[patient.id] = healed.get(patient.id, 0) + restored
            log_event(game_state, f"{medic.id} healed {patient.id} for {restored}",
                      unit_id=patient.id, amount=restored)
    return healed


def reset_unit_flags(game_state: GameState) -> None:
    for unit in game_state.units.values():
        unit.has_moved = False
        unit.is_engaged_in_combat = False


def end_game(game_state: GameState, winner: str, victory_type: str) -> None:
    game_state.winner = winner
    game_state.current_phase = GAME_OVER
    log_event(game_state, f"Game over: {winner} wins by {victory_type}",
              winner=winner, victory_type=victory_type)


def find_base_capture(game_state: GameState) -> Optional[str]:
    """Faction with a unit standing on the opposing base, if any."""
    for faction in FACTIONS:
        base_hex = game_state.get_base_hex(opponent_of(faction))
        if base_hex is None or base_hex.unit_id is None:
            continue
        occupant = game_state.get_unit(base_hex.unit_id)
        if occupant is not None and occupant.owner == faction:
            return faction
    return None


def check_victory(game_state: GameState) -> Optional[str]:
    """
    End the game if a unit stands on the opposing base.

    Capture overrides any earlier result, including a siege victory.

    Returns:
        The winning faction, or the existing winner, or None
    """
    capturer = find_base_capture(game_state)
    if capturer is not None:
        end_game(game_state, capturer, 'base_captured')
        return capturer
    return game_state.winner


def start_next_planning_phase(game_state: GameState) -> Dict[str, Any]:
    """
    Run the end-of-round pipeline.

    Siege damage comes first; a destroyed base ends the game immediately and
    nothing else runs. Otherwise resources are collected, medics heal,
    unit flags reset and the next turn's planning phase begins.

    Args:
        game_state: Current game state

    Returns:
        Dictionary with the pipeline results:
        - 'siege_damage': Damage per faction's base
        - 'winner': Faction that won by siege, if any
        - 'resource_yields': Points gained per faction
        - 'healing': Lifespan restored per unit id
    """
    results: Dict[str, Any] = {
        'siege_damage': {},
        'winner': None,
        'resource_yields': {},
        'healing': {},
    }

    results['siege_damage'] = apply_siege_damage(game_state)
    winner = find_fallen_base_winner(game_state)
    if winner is not None:
        end_game(game_state, winner, 'siege')
        results['winner'] = winner
        return results

    results['resource_yields'] = collect_resources(game_state)
    results['healing'] = apply_healing(game_state)

    reset_unit_flags(game_state)
    game_state.combats = []
    game_state.turn_number += 1
    game_state.current_phase = PLANNING
    reset_planning_timer(game_state)
    log_event(game_state, f"Turn {game_state.turn_number} planning phase begins")
    return results


def get_upkeep_summary(game_state: GameState) -> Dict[str, Any]:
    """
    Preview what the next upkeep would do, without changing anything.

    Returns:
        Per faction: base health, incoming siege damage and the resource
        hexes it currently holds
    """
    summary: Dict[str, Any] = {'turn': game_state.turn_number, 'factions': {}}
    for faction in FACTIONS:
        player = game_state.get_player(faction)
        held: List[Dict[str, int]] = []
        for coord, hex_obj in game_state.hexes.items():
            if not hex_obj.is_resource_hex or hex_obj.unit_id is None:
                continue
            unit = game_state.get_unit(hex_obj.unit_id)
            if unit is not None and unit.owner == faction:
                held.append({'q': coord.q, 'r': coord.r, 'value': hex_obj.resource_value})
        summary['factions'][faction] = {
            'base_health': player.base_health if player else None,
            'incoming_siege_damage': calculate_siege_damage(game_state, faction),
            'resource_hexes': held,
            'expected_income': sum(h['value'] for h in held),
        }
    return summary
