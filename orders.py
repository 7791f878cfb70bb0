"""
Pending intents and simultaneous execution.

Both factions queue purchases and moves during planning; execute_moves
applies them in queue order, then hands over to combat detection or the
end-of-round pipeline.
"""

import uuid
from typing import Dict, List, Tuple

from hex_utils import HexCoord, hex_distance, reachable_hexes
from models import (
    UNIT_STATS, Move, Purchase, TerrainType, UnitType, create_unit,
)
from resolution import detect_combats
from state import (
    COMBAT, EXECUTION, PLANNING, GameRuleError, GameState, IllegalMove,
    InsufficientFunds, InvalidPlacement, InvariantViolation, log_event,
    log_rule_error,
)
from upkeep import check_victory, start_next_planning_phase

PURCHASE_BLOCKED_TERRAIN = {TerrainType.WATER, TerrainType.MOUNTAIN}


def _new_unit_id() -> str:
    return f"unit-{uuid.uuid4()}"


def add_pending_purchase(game_state: GameState, player_id: str,
                         unit_type: UnitType, position: Tuple[int, int]) -> GameState:
    """Queue a purchase. Validation happens at execution."""
    game_state.pending_purchases.append(
        Purchase(player_id=player_id, unit_type=unit_type, position=HexCoord(*position)))
    log_event(game_state, f"Purchase of {unit_type.value} queued at {tuple(position)}",
              player_id=player_id)
    return game_state


def add_pending_move(game_state: GameState, unit_id: str, player_id: str,
                     to: Tuple[int, int]) -> GameState:
    """
    Queue a move for a unit, replacing any earlier move for the same unit.

    Only ownership is checked here; reachability is the caller's job
    (see get_valid_moves) and occupancy is checked at execution.
    """
    try:
        unit = game_state.get_unit(unit_id)
        if unit is None:
            raise InvariantViolation(f"Cannot queue move: unit {unit_id} not found")
        player = game_state.get_player_by_id(player_id)
        if player is None or unit.owner != player.type:
            raise InvariantViolation(f"Unit {unit_id} does not belong to {player_id}")
    except GameRuleError as e:
        log_rule_error(game_state, e)
        return game_state

    game_state.pending_moves = [m for m in game_state.pending_moves if m.unit_id != unit_id]
    game_state.pending_moves.append(
        Move(unit_id=unit_id, player_id=player_id, from_hex=unit.position, to_hex=HexCoord(*to)))
    log_event(game_state, f"Move queued for {unit_id} to {tuple(to)}", player_id=player_id)
    return game_state


def cancel_pending_move(game_state: GameState, unit_id: str) -> GameState:
    before = len(game_state.pending_moves)
    game_state.pending_moves = [m for m in game_state.pending_moves if m.unit_id != unit_id]
    if len(game_state.pending_moves) < before:
        log_event(game_state, f"Move for {unit_id} cancelled")
    return game_state


def get_valid_moves(game_state: GameState, unit_id: str) -> List[HexCoord]:
    """
    Empty destinations a unit can reach this turn.

    Args:
        game_state: Current game state
        unit_id: Unit to move

    Returns:
        Reachable coordinates within movement range, excluding the unit's own
        hex and occupied hexes; an empty enemy base is included
    """
    unit = game_state.get_unit(unit_id)
    if unit is None or unit.has_moved:
        return []
    costs = reachable_hexes(unit.position, game_state.hexes, unit.movement_range,
                            allow_water=unit.can_fly)
    return [
        coord for coord in costs
        if coord != unit.position and not game_state.hexes[coord].is_occupied
    ]


def validate_move(game_state: GameState, unit_id: str, to: Tuple[int, int]) -> None:
    """
    Raises:
        IllegalMove: If the destination is not among get_valid_moves
    """
    if HexCoord(*to) not in get_valid_moves(game_state, unit_id):
        raise IllegalMove(f"Unit {unit_id} cannot move to {tuple(to)}")


def pending_cost(game_state: GameState, player_id: str) -> int:
    """Total cost of a player's queued purchases."""
    return sum(UNIT_STATS[p.unit_type].cost
               for p in game_state.pending_purchases if p.player_id == player_id)


def validate_purchase(game_state: GameState, purchase: Purchase, reserved: int = 0) -> None:
    """
    Check a purchase against the current state.

    Args:
        game_state: Current game state
        purchase: Purchase to check
        reserved: Points already committed to earlier purchases

    Raises:
        InvariantViolation: Unknown player
        InsufficientFunds: Cost exceeds the player's free points
        InvalidPlacement: Missing, occupied, blocked or non-adjacent hex
    """
    player = game_state.get_player_by_id(purchase.player_id)
    if player is None:
        raise InvariantViolation(f"Unknown player {purchase.player_id}")

    cost = UNIT_STATS[purchase.unit_type].cost
    available = player.points - reserved
    if cost > available:
        raise InsufficientFunds(
            f"{player.type} cannot afford {purchase.unit_type.value} (has {available}, needs {cost})")

    hex_obj = game_state.get_hex(purchase.position)
    if hex_obj is None:
        raise InvalidPlacement(f"No hex at {tuple(purchase.position)}")
    if hex_obj.is_occupied:
        raise InvalidPlacement(f"{hex_obj.id} is occupied")
    if hex_obj.terrain in PURCHASE_BLOCKED_TERRAIN:
        raise InvalidPlacement(f"Cannot place a unit on {hex_obj.terrain.value}")
    if player.base_location is None or hex_distance(player.base_location, purchase.position) != 1:
        raise InvalidPlacement(f"{hex_obj.id} is not adjacent to the {player.type} base")


def _apply_purchases(game_state: GameState) -> Dict[str, List[str]]:
    results = {'created': [], 'errors': []}
    for purchase in game_state.pending_purchases:
        try:
            validate_purchase(game_state, purchase)
        except GameRuleError as e:
            results['errors'].append(str(e))
            log_rule_error(game_state, e)
            continue

        player = game_state.get_player_by_id(purchase.player_id)
        unit = create_unit(_new_unit_id(), purchase.unit_type, player.type, purchase.position)
        player.update_points(-unit.cost)
        game_state.place_unit(unit)
        results['created'].append(unit.id)
        log_event(game_state, f"{player.type} bought {unit.type.value} at {tuple(unit.position)}",
                  unit_id=unit.id, cost=unit.cost)
    return results


def _check_move(game_state: GameState, move: Move) -> None:
    unit = game_state.get_unit(move.unit_id)
    if unit is None:
        raise InvariantViolation(f"Unit {move.unit_id} no longer exists, move skipped")
    target = game_state.get_hex(move.to_hex)
    if target is None:
        raise IllegalMove(f"No hex at {tuple(move.to_hex)}")
    if target.is_occupied and target.unit_id != unit.id:
        raise IllegalMove(f"{target.id} is occupied")


def _apply_moves(game_state: GameState) -> Dict[str, List[str]]:
    results = {'moved': [], 'errors': []}
    for move in game_state.pending_moves:
        try:
            _check_move(game_state, move)
        except GameRuleError as e:
            results['errors'].append(str(e))
            log_rule_error(game_state, e)
            continue

        unit = game_state.get_unit(move.unit_id)
        source = unit.position
        game_state.move_unit(unit.id, move.to_hex)
        unit.has_moved = True
        results['moved'].append(unit.id)
        log_event(game_state, f"{unit.id} moved from {tuple(source)} to {tuple(move.to_hex)}",
                  unit_id=unit.id)
    return results


def execute_moves(game_state: GameState) -> GameState:
    """
    Apply every queued purchase and move, then detect combat.

    Only runs from the planning phase. Rejected intents are skipped and
    logged. With no combat the end-of-round pipeline runs immediately.
    """
    if game_state.current_phase != PLANNING:
        log_event(game_state, f"Cannot execute moves during {game_state.current_phase}",
                  error_type='wrong_phase')
        return game_state

    log_event(game_state, "Execution started",
              purchases=len(game_state.pending_purchases), moves=len(game_state.pending_moves))

    _apply_purchases(game_state)
    _apply_moves(game_state)
    game_state.pending_purchases = []
    game_state.pending_moves = []
    game_state.current_phase = EXECUTION

    combats = detect_combats(game_state)
    if combats:
        game_state.combats = combats
        game_state.current_phase = COMBAT
        log_event(game_state, f"{len(combats)} combats detected")
    else:
        start_next_planning_phase(game_state)

    check_victory(game_state)
    return game_state
