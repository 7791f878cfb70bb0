"""
Game state management for Hex Skirmish.
Holds the aggregate game state, keeps the hex grid and player rosters in
step with the unit arena, handles base placement during setup and converts
the state to and from a plain snapshot dict.

Phases: setup -> planning -> execution -> combat -> planning ... -> gameOver
"""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from config import GameSettings, load_config
from hex_utils import HexCoord, hex_distance, is_edge_hex
from map_gen import generate_map
from models import (
    AI, FACTIONS, PLAYER, Ability, Combat, Hex, Move, Player, Purchase,
    TerrainType, Unit, UnitType,
)

logger = logging.getLogger(__name__)

SETUP = 'setup'
PLANNING = 'planning'
EXECUTION = 'execution'
COMBAT = 'combat'
GAME_OVER = 'gameOver'
PHASES = (SETUP, PLANNING, EXECUTION, COMBAT, GAME_OVER)

BASE_BLOCKED_TERRAIN = {TerrainType.WATER, TerrainType.MOUNTAIN}

SAVE_SLOT = 'hexStrategyGameSave'


class GameRuleError(Exception):
    """Base class for rule violations; the engine turns these into no-ops."""
    error_type = 'rule_violation'


class InvalidPlacement(GameRuleError):
    """Base or purchase on disallowed terrain, an occupied hex or out of range."""
    error_type = 'invalid_placement'


class InsufficientFunds(GameRuleError):
    """Purchase costs more than the player's points."""
    error_type = 'insufficient_funds'


class IllegalMove(GameRuleError):
    """Destination unreachable, occupied or outside movement range."""
    error_type = 'illegal_move'


class NoRetreatAvailable(GameRuleError):
    """A retreating unit has no free neighbour and is destroyed in place."""
    error_type = 'no_retreat'


class InvariantViolation(GameRuleError):
    """A referenced unit or hex is missing: a caller or engine bug."""
    error_type = 'invariant_violation'


@dataclass
class GameState:
    """
    Complete game state.

    Units live only in `units`. Hex.unit_id and Player.unit_ids are id views
    kept in step by place_unit, move_unit and remove_unit; nothing else
    should touch them.
    """
    game_id: str
    hexes: Dict[HexCoord, Hex] = field(default_factory=dict)
    units: Dict[str, Unit] = field(default_factory=dict)
    players: Dict[str, Player] = field(default_factory=dict)  # Keyed by faction
    current_phase: str = SETUP
    turn_number: int = 0
    planning_time_remaining: int = 60
    pending_moves: List[Move] = field(default_factory=list)
    pending_purchases: List[Purchase] = field(default_factory=list)
    combats: List[Combat] = field(default_factory=list)
    winner: Optional[str] = None
    difficulty: str = 'medium'
    settings: GameSettings = field(default_factory=GameSettings)
    log: List[Dict[str, Any]] = field(default_factory=list)

    def get_player(self, faction: str) -> Optional[Player]:
        return self.players.get(faction)

    def get_player_by_id(self, player_id: str) -> Optional[Player]:
        """Get a player by their ID."""
        for player in self.players.values():
            if player.id == player_id:
                return player
        return None

    def get_hex(self, coord: Tuple[int, int]) -> Optional[Hex]:
        return self.hexes.get(HexCoord(*coord))

    def get_unit(self, unit_id: str) -> Optional[Unit]:
        return self.units.get(unit_id)

    def get_unit_at(self, coord: Tuple[int, int]) -> Optional[Unit]:
        """Get the unit at a specific position, if any."""
        hex_obj = self.get_hex(coord)
        if hex_obj is None or hex_obj.unit_id is None:
            return None
        return self.units.get(hex_obj.unit_id)

    def get_player_units(self, faction: str) -> List[Unit]:
        """Live units of a faction in roster order."""
        player = self.players.get(faction)
        if player is None:
            return []
        return [self.units[uid] for uid in player.unit_ids if uid in self.units]

    def get_base_hex(self, faction: str) -> Optional[Hex]:
        player = self.players.get(faction)
        if player is None or player.base_location is None:
            return None
        return self.get_hex(player.base_location)

    def place_unit(self, unit: Unit) -> None:
        """Add a new unit to the arena, its hex and its owner's roster."""
        hex_obj = self.get_hex(unit.position)
        player = self.players.get(unit.owner)
        if hex_obj is None or player is None:
            raise InvariantViolation(f"Cannot place unit {unit.id} at {unit.position}")
        if hex_obj.unit_id is not None:
            raise InvariantViolation(f"Hex {hex_obj.id} already holds unit {hex_obj.unit_id}")
        self.units[unit.id] = unit
        hex_obj.unit_id = unit.id
        player.unit_ids.append(unit.id)

    def move_unit(self, unit_id: str, to: Tuple[int, int]) -> Unit:
        """Move a unit to an empty hex, updating both hexes."""
        unit = self.units.get(unit_id)
        if unit is None:
            raise InvariantViolation(f"Unit {unit_id} not found")
        source = self.get_hex(unit.position)
        target = self.get_hex(to)
        if source is None or target is None:
            raise InvariantViolation(f"Hex missing for move of {unit_id} to {to}")
        if target.unit_id is not None and target.unit_id != unit_id:
            raise InvariantViolation(f"Hex {target.id} already holds unit {target.unit_id}")
        if source.unit_id == unit_id:
            source.unit_id = None
        target.unit_id = unit_id
        unit.position = target.coordinates
        return unit

    def remove_unit(self, unit_id: str) -> Optional[Unit]:
        """Destroy a unit: drop it from the arena, its hex and its roster."""
        unit = self.units.pop(unit_id, None)
        if unit is None:
            return None
        hex_obj = self.get_hex(unit.position)
        if hex_obj is not None and hex_obj.unit_id == unit_id:
            hex_obj.unit_id = None
        player = self.players.get(unit.owner)
        if player is not None and unit_id in player.unit_ids:
            player.unit_ids.remove(unit_id)
        return unit

    def check_consistency(self) -> List[str]:
        """
        List every breach of the grid/roster/arena mirror and lifespan invariants.

        Returns:
            Human-readable problems; empty when the state is consistent
        """
        problems = []
        for coord, hex_obj in self.hexes.items():
            if hex_obj.unit_id is None:
                continue
            unit = self.units.get(hex_obj.unit_id)
            if unit is None:
                problems.append(f"{hex_obj.id} references missing unit {hex_obj.unit_id}")
                continue
            if unit.position != coord:
                problems.append(f"{unit.id} at {unit.position} but listed on {hex_obj.id}")
            owners = [p.type for p in self.players.values() if unit.id in p.unit_ids]
            if owners != [unit.owner]:
                problems.append(f"{unit.id} appears in rosters {owners}")
        for unit in self.units.values():
            hex_obj = self.get_hex(unit.position)
            if hex_obj is None or hex_obj.unit_id != unit.id:
                problems.append(f"{unit.id} is not on its hex {unit.position}")
            if not 0 < unit.lifespan <= unit.max_lifespan:
                problems.append(f"{unit.id} has lifespan {unit.lifespan}/{unit.max_lifespan}")
        for player in self.players.values():
            for uid in player.unit_ids:
                if uid not in self.units:
                    problems.append(f"Roster of {player.type} lists missing unit {uid}")
        return problems


def log_event(game_state: GameState, event: str, **kwargs) -> None:
    """
    Add an event to the game state log.

    Args:
        game_state: Current game state
        event: Description of the event
        **kwargs: Additional event data to include
    """
    log_entry = {
        'turn': game_state.turn_number,
        'phase': game_state.current_phase,
        'event': event,
        **kwargs
    }
    game_state.log.append(log_entry)


def log_rule_error(game_state: GameState, error: GameRuleError) -> None:
    """Record a rejected action; invariant breaches also go to the logger."""
    if isinstance(error, InvariantViolation):
        logger.warning("Invariant violation in game %s: %s", game_state.game_id, error)
    log_event(game_state, str(error), error_type=error.error_type)


def create_player(faction: str, starting_points: int = 20) -> Player:
    return Player(id=f"{faction}-{uuid.uuid4()}", type=faction, points=starting_points)


def initialize_game(settings: Optional[GameSettings] = None,
                    seed: Optional[int] = None,
                    difficulty: Optional[str] = None) -> GameState:
    """
    Initialize a new game in the setup phase.

    Args:
        settings: Game settings (default: loaded from config.json)
        seed: Seed for map generation; None gives a fresh random map
        difficulty: AI difficulty tier (default: settings.ai_difficulty)

    Returns:
        New GameState with a generated map, two players and no bases
    """
    settings = settings or load_config()
    rng = random.Random(seed)

    game_state = GameState(
        game_id=str(uuid.uuid4()),
        hexes=generate_map(settings, rng),
        players={
            faction: create_player(faction, settings.starting_points)
            for faction in FACTIONS
        },
        current_phase=SETUP,
        turn_number=0,
        planning_time_remaining=settings.planning_phase_time,
        difficulty=difficulty or settings.ai_difficulty,
        settings=settings,
    )
    log_event(game_state, "Game created", seed=seed, hex_count=len(game_state.hexes))
    return game_state


def validate_base_location(game_state: GameState, faction: str, coord: Tuple[int, int]) -> Hex:
    """
    Check that a faction may put its base on coord.

    Raises:
        InvalidPlacement: With the reason the location is refused

    Returns:
        The hex to become the base
    """
    player = game_state.get_player(faction)
    if player is None:
        raise InvariantViolation(f"Unknown faction {faction}")
    if player.base_location is not None:
        raise InvalidPlacement(f"{faction} already has a base at {player.base_location}")
    hex_obj = game_state.get_hex(coord)
    if hex_obj is None:
        raise InvalidPlacement(f"No hex at {tuple(coord)}")
    if hex_obj.terrain in BASE_BLOCKED_TERRAIN:
        raise InvalidPlacement(f"Cannot build a base on {hex_obj.terrain.value}")
    if hex_obj.is_resource_hex:
        raise InvalidPlacement("Cannot build a base on a resource hex")
    if hex_obj.is_base:
        raise InvalidPlacement(f"{hex_obj.id} is already a base")
    return hex_obj


def set_base_location(game_state: GameState, faction: str, coord: Tuple[int, int]) -> GameState:
    """
    Place a faction's base. Starts turn 1 once both bases exist.

    Invalid locations leave the state unchanged apart from a log entry.
    """
    try:
        hex_obj = validate_base_location(game_state, faction, coord)
    except GameRuleError as e:
        log_rule_error(game_state, e)
        return game_state

    max_health = game_state.settings.max_base_health
    hex_obj.is_base = True
    hex_obj.owner = faction
    hex_obj.base_health = max_health

    player = game_state.players[faction]
    player.base_location = hex_obj.coordinates
    player.base_health = max_health
    player.max_base_health = max_health
    log_event(game_state, f"{faction} base placed at {tuple(hex_obj.coordinates)}",
              faction=faction, q=hex_obj.coordinates.q, r=hex_obj.coordinates.r)

    if all(p.base_location is not None for p in game_state.players.values()):
        game_state.current_phase = PLANNING
        game_state.turn_number = 1
        game_state.planning_time_remaining = game_state.settings.planning_phase_time
        log_event(game_state, "Both bases placed, planning phase begins")

    return game_state


def is_valid_base_hex(hex_obj: Hex) -> bool:
    return (hex_obj.terrain not in BASE_BLOCKED_TERRAIN
            and not hex_obj.is_resource_hex
            and not hex_obj.is_base)


def find_opposing_base_location(game_state: GameState, coord: Tuple[int, int]) -> Optional[HexCoord]:
    """
    The valid edge hex furthest from coord; ties keep the first in grid order.

    Returns:
        Coordinates for the opposing base, or None if no edge hex is valid
    """
    grid_size = game_state.settings.grid_size
    best = None
    max_distance = 0
    for hex_coord, hex_obj in game_state.hexes.items():
        if not is_valid_base_hex(hex_obj) or not is_edge_hex(hex_coord, grid_size):
            continue
        distance = hex_distance(hex_coord, coord)
        if distance > max_distance:
            max_distance = distance
            best = hex_coord
    return best


def place_bases(game_state: GameState, coord: Tuple[int, int]) -> GameState:
    """
    Place the human base on an edge hex, then the AI base as far away as possible.

    Non-edge or otherwise invalid locations leave the state unchanged.
    """
    if game_state.current_phase != SETUP:
        log_event(game_state, "Bases can only be placed during setup", error_type='invalid_placement')
        return game_state
    if not is_edge_hex(coord, game_state.settings.grid_size):
        log_rule_error(game_state, InvalidPlacement(f"{tuple(coord)} is not an edge hex"))
        return game_state

    set_base_location(game_state, PLAYER, coord)
    if game_state.players[PLAYER].base_location is None:
        return game_state

    ai_coord = find_opposing_base_location(game_state, coord)
    if ai_coord is None:
        log_rule_error(game_state, InvalidPlacement("No valid location left for the AI base"))
        return game_state
    return set_base_location(game_state, AI, ai_coord)


def reset_planning_timer(game_state: GameState) -> None:
    game_state.planning_time_remaining = game_state.settings.planning_phase_time


def tick_planning_timer(game_state: GameState, seconds: int = 1) -> bool:
    """
    Count the planning timer down.

    Returns:
        True once the timer has run out; the caller then runs execute_moves
    """
    if game_state.current_phase != PLANNING:
        return False
    game_state.planning_time_remaining = max(0, game_state.planning_time_remaining - seconds)
    return game_state.planning_time_remaining == 0


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


def _coord_to_dict(coord: Optional[Tuple[int, int]]) -> Optional[Dict[str, int]]:
    if coord is None:
        return None
    return {'q': coord[0], 'r': coord[1]}


def _coord_from_dict(data: Optional[Dict[str, int]]) -> Optional[HexCoord]:
    if data is None:
        return None
    return HexCoord(int(data['q']), int(data['r']))


def unit_to_dict(unit: Unit) -> Dict[str, Any]:
    return {
        'id': unit.id,
        'type': unit.type.value,
        'owner': unit.owner,
        'position': _coord_to_dict(unit.position),
        'movement_range': unit.movement_range,
        'attack_power': unit.attack_power,
        'lifespan': unit.lifespan,
        'max_lifespan': unit.max_lifespan,
        'cost': unit.cost,
        'abilities': [a.value for a in unit.abilities],
        'has_moved': unit.has_moved,
        'is_engaged_in_combat': unit.is_engaged_in_combat,
    }


def state_to_dict(game_state: GameState) -> Dict[str, Any]:
    """
    Serialize the full game state to JSON-compatible data.

    The result holds everything needed by state_from_dict; there is no
    other hidden state.
    """
    return {
        'game_id': game_state.game_id,
        'current_phase': game_state.current_phase,
        'turn_number': game_state.turn_number,
        'planning_time_remaining': game_state.planning_time_remaining,
        'winner': game_state.winner,
        'difficulty': game_state.difficulty,
        'settings': game_state.settings.to_dict(),
        'hexes': [
            {
                'id': h.id,
                'q': coord.q,
                'r': coord.r,
                'terrain': h.terrain.value,
                'is_base': h.is_base,
                'is_resource_hex': h.is_resource_hex,
                'resource_value': h.resource_value,
                'owner': h.owner,
                'unit_id': h.unit_id,
                'base_health': h.base_health,
            }
            for coord, h in game_state.hexes.items()
        ],
        'units': {uid: unit_to_dict(u) for uid, u in game_state.units.items()},
        'players': {
            faction: {
                'id': p.id,
                'type': p.type,
                'points': p.points,
                'base_location': _coord_to_dict(p.base_location),
                'base_health': p.base_health,
                'max_base_health': p.max_base_health,
                'unit_ids': list(p.unit_ids),
            }
            for faction, p in game_state.players.items()
        },
        'pending_moves': [
            {
                'unit_id': m.unit_id,
                'player_id': m.player_id,
                'from': _coord_to_dict(m.from_hex),
                'to': _coord_to_dict(m.to_hex),
            }
            for m in game_state.pending_moves
        ],
        'pending_purchases': [
            {
                'player_id': p.player_id,
                'unit_type': p.unit_type.value,
                'position': _coord_to_dict(p.position),
            }
            for p in game_state.pending_purchases
        ],
        'combats': [
            {
                'hex_coordinates': _coord_to_dict(c.hex_coordinates),
                'attackers': list(c.attackers),
                'defenders': list(c.defenders),
                'resolved': c.resolved,
                'retreating': list(c.retreating) if c.retreating is not None else None,
            }
            for c in game_state.combats
        ],
        'log': list(game_state.log),
    }


def state_from_dict(data: Dict[str, Any]) -> GameState:
    """Rebuild a GameState from the output of state_to_dict."""
    hexes = {}
    for h in data['hexes']:
        coord = HexCoord(int(h['q']), int(h['r']))
        hexes[coord] = Hex(
            id=h['id'],
            coordinates=coord,
            terrain=TerrainType(h['terrain']),
            is_base=h['is_base'],
            is_resource_hex=h['is_resource_hex'],
            resource_value=h['resource_value'],
            owner=h['owner'],
            unit_id=h['unit_id'],
            base_health=h['base_health'],
        )

    units = {}
    for uid, u in data['units'].items():
        units[uid] = Unit(
            id=u['id'],
            type=UnitType(u['type']),
            owner=u['owner'],
            position=_coord_from_dict(u['position']),
            movement_range=u['movement_range'],
            attack_power=u['attack_power'],
            lifespan=u['lifespan'],
            max_lifespan=u['max_lifespan'],
            cost=u['cost'],
            abilities=[Ability(a) for a in u['abilities']],
            has_moved=u['has_moved'],
            is_engaged_in_combat=u['is_engaged_in_combat'],
        )

    players = {
        faction: Player(
            id=p['id'],
            type=p['type'],
            points=p['points'],
            base_location=_coord_from_dict(p['base_location']),
            base_health=p['base_health'],
            max_base_health=p['max_base_health'],
            unit_ids=list(p['unit_ids']),
        )
        for faction, p in data['players'].items()
    }

    return GameState(
        game_id=data['game_id'],
        hexes=hexes,
        units=units,
        players=players,
        current_phase=data['current_phase'],
        turn_number=data['turn_number'],
        planning_time_remaining=data['planning_time_remaining'],
        pending_moves=[
            Move(unit_id=m['unit_id'], player_id=m['player_id'],
                 from_hex=_coord_from_dict(m['from']), to_hex=_coord_from_dict(m['to']))
            for m in data['pending_moves']
        ],
        pending_purchases=[
            Purchase(player_id=p['player_id'], unit_type=UnitType(p['unit_type']),
                     position=_coord_from_dict(p['position']))
            for p in data['pending_purchases']
        ],
        combats=[
            Combat(
                hex_coordinates=_coord_from_dict(c['hex_coordinates']),
                attackers=list(c['attackers']),
                defenders=list(c['defenders']),
                resolved=c['resolved'],
                retreating=list(c['retreating']) if c['retreating'] is not None else None,
            )
            for c in data['combats']
        ],
        winner=data['winner'],
        difficulty=data['difficulty'],
        settings=GameSettings.from_dict(data['settings']),
        log=list(data.get('log', [])),
    )


def make_save_data(game_state: GameState, additional_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build the save-slot record: state snapshot plus incidental UI state.

    additional_data carries selected_hex, is_ai_turn, timer and difficulty.
    """
    extra = {
        'selected_hex': None,
        'is_ai_turn': False,
        'timer': game_state.planning_time_remaining,
        'difficulty': game_state.difficulty,
    }
    extra.update(additional_data or {})
    return {
        'game_state': state_to_dict(game_state),
        'additional_data': extra,
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }


def load_save_data(save_data: Dict[str, Any]) -> Tuple[GameState, Dict[str, Any]]:
    """Restore a game from a save-slot record."""
    game_state = state_from_dict(save_data['game_state'])
    additional = dict(save_data.get('additional_data') or {})
    if additional.get('difficulty'):
        game_state.difficulty = additional['difficulty']
    return game_state, additional


def get_game_summary(game_state: GameState) -> Dict[str, Any]:
    """
    Get a compact summary of the current game state for API responses.

    Args:
        game_state: Current game state

    Returns:
        Dictionary with phase, turn and per-player totals
    """
    return {
        'game_id': game_state.game_id,
        'turn': game_state.turn_number,
        'phase': game_state.current_phase,
        'winner': game_state.winner,
        'players': {
            faction: {
                'id': player.id,
                'points': player.points,
                'base_health': player.base_health,
                'units': len(player.unit_ids),
            }
            for faction, player in game_state.players.items()
        },
        'pending_moves': len(game_state.pending_moves),
        'pending_purchases': len(game_state.pending_purchases),
        'unresolved_combats': sum(1 for c in game_state.combats if not c.resolved),
    }
