from flask import Flask, request, jsonify
from flask_cors import CORS
from hex_utils import HexCoord
from models import PLAYER, Purchase, UnitType
from state import (
    COMBAT, PLANNING, SAVE_SLOT, SETUP, GameRuleError, GameState, get_game_summary,
    initialize_game, load_save_data, make_save_data, place_bases, state_to_dict,
)
from orders import (
    add_pending_move, add_pending_purchase, cancel_pending_move, execute_moves,
    get_valid_moves, pending_cost, validate_move, validate_purchase,
)
from resolution import resolve_combat
from strategist import resolve_ai_combats, take_ai_turn
from upkeep import get_upkeep_summary
from typing import Any, Dict, Optional, Tuple
import random

app = Flask(__name__)
CORS(app)  # Enable CORS for all routes
games: Dict[str, GameState] = {}  # In-memory storage for game states
ai_rngs: Dict[str, random.Random] = {}  # Per-game random source for the AI
saved_games: Dict[str, Dict[str, Any]] = {}  # Single save slot, keyed by SAVE_SLOT


def _state_response(game_state: GameState, **extra) -> Dict[str, Any]:
    response = {
        'state': state_to_dict(game_state),
        'summary': get_game_summary(game_state),
        'upkeep_preview': get_upkeep_summary(game_state),
    }
    response.update(extra)
    return response


def _parse_coord(data: Dict[str, Any]) -> Optional[HexCoord]:
    try:
        return HexCoord(int(data['q']), int(data['r']))
    except (KeyError, ValueError, TypeError):
        return None


def _player_id(game_state: GameState) -> str:
    return game_state.players[PLAYER].id


def _json_body() -> Tuple[Optional[Dict[str, Any]], Optional[Any]]:
    data = request.get_json(silent=True)
    if data is None:
        return None, (jsonify({'error': 'Invalid JSON data'}), 400)
    return data, None


@app.route('/api/game/new', methods=['POST'])
def new_game():
    """Create a new game with an optional seed and difficulty."""
    try:
        data, error = _json_body()
        if error:
            return error

        seed = data.get('seed')
        if seed is not None:
            try:
                seed = int(seed)
            except (ValueError, TypeError):
                return jsonify({'error': 'Seed must be an integer'}), 400

        difficulty = data.get('difficulty')
        if difficulty is not None and difficulty not in ('easy', 'medium', 'hard'):
            return jsonify({'error': f'Invalid difficulty: {difficulty}'}), 400

        game_state = initialize_game(seed=seed, difficulty=difficulty)
        games[game_state.game_id] = game_state
        ai_rngs[game_state.game_id] = random.Random(seed)

        return jsonify({'game_id': game_state.game_id})

    except Exception as e:
        return jsonify({'error': f'Failed to create game: {str(e)}'}), 500


@app.route('/api/game/<game_id>/state', methods=['GET'])
def get_game_state(game_id: str):
    """Retrieve the current game state for the given game ID."""
    try:
        if game_id not in games:
            return jsonify({'error': 'Game not found'}), 404
        return jsonify(_state_response(games[game_id]))

    except Exception as e:
        return jsonify({'error': f'Failed to retrieve game state: {str(e)}'}), 500


@app.route('/api/game/<game_id>/base', methods=['POST'])
def place_base(game_id: str):
    """Place the human base on an edge hex; the AI base goes opposite."""
    try:
        if game_id not in games:
            return jsonify({'error': 'Game not found'}), 404
        game_state = games[game_id]

        data, error = _json_body()
        if error:
            return error
        coord = _parse_coord(data)
        if coord is None:
            return jsonify({'error': 'Base location must have integer q and r'}), 400
        if game_state.current_phase != SETUP:
            return jsonify({'error': 'Bases can only be placed during setup'}), 400

        place_bases(game_state, coord)
        if game_state.current_phase == SETUP:
            reason = game_state.log[-1]['event'] if game_state.log else 'Invalid base location'
            return jsonify({'error': reason}), 400

        return jsonify(_state_response(game_state))

    except Exception as e:
        return jsonify({'error': f'Failed to place base: {str(e)}'}), 500


@app.route('/api/game/<game_id>/purchase', methods=['POST'])
def queue_purchase(game_id: str):
    """Queue a unit purchase for the human player."""
    try:
        if game_id not in games:
            return jsonify({'error': 'Game not found'}), 404
        game_state = games[game_id]
        if game_state.current_phase != PLANNING:
            return jsonify({'error': 'Purchases can only be queued during planning'}), 400

        data, error = _json_body()
        if error:
            return error
        try:
            unit_type = UnitType(data.get('unit_type'))
        except ValueError:
            return jsonify({'error': f"Invalid unit type: {data.get('unit_type')}"}), 400
        coord = _parse_coord(data)
        if coord is None:
            return jsonify({'error': 'Purchase position must have integer q and r'}), 400

        player_id = _player_id(game_state)
        purchase = Purchase(player_id=player_id, unit_type=unit_type, position=coord)
        try:
            validate_purchase(game_state, purchase, reserved=pending_cost(game_state, player_id))
        except GameRuleError as e:
            return jsonify({'error': str(e), 'error_type': e.error_type}), 400

        add_pending_purchase(game_state, player_id, unit_type, coord)
        return jsonify({'pending_purchases': len(game_state.pending_purchases)})

    except Exception as e:
        return jsonify({'error': f'Failed to queue purchase: {str(e)}'}), 500


@app.route('/api/game/<game_id>/move', methods=['POST'])
def queue_move(game_id: str):
    """Queue a move for one of the human player's units."""
    try:
        if game_id not in games:
            return jsonify({'error': 'Game not found'}), 404
        game_state = games[game_id]
        if game_state.current_phase != PLANNING:
            return jsonify({'error': 'Moves can only be queued during planning'}), 400

        data, error = _json_body()
        if error:
            return error
        unit_id = data.get('unit_id')
        unit = game_state.get_unit(unit_id) if unit_id else None
        if unit is None or unit.owner != PLAYER:
            return jsonify({'error': f'Unit {unit_id} not found'}), 400
        coord = _parse_coord(data)
        if coord is None:
            return jsonify({'error': 'Move target must have integer q and r'}), 400

        try:
            validate_move(game_state, unit_id, coord)
        except GameRuleError as e:
            return jsonify({'error': str(e), 'error_type': e.error_type}), 400

        add_pending_move(game_state, unit_id, _player_id(game_state), coord)
        return jsonify({'pending_moves': len(game_state.pending_moves)})

    except Exception as e:
        return jsonify({'error': f'Failed to queue move: {str(e)}'}), 500


@app.route('/api/game/<game_id>/move/<unit_id>', methods=['DELETE'])
def withdraw_move(game_id: str, unit_id: str):
    """Withdraw a queued move."""
    try:
        if game_id not in games:
            return jsonify({'error': 'Game not found'}), 404
        game_state = games[game_id]
        cancel_pending_move(game_state, unit_id)
        return jsonify({'pending_moves': len(game_state.pending_moves)})

    except Exception as e:
        return jsonify({'error': f'Failed to cancel move: {str(e)}'}), 500


@app.route('/api/game/<game_id>/valid-moves/<unit_id>', methods=['GET'])
def valid_moves(game_id: str, unit_id: str):
    """List the hexes a unit may move to this turn."""
    try:
        if game_id not in games:
            return jsonify({'error': 'Game not found'}), 404
        game_state = games[game_id]
        if game_state.get_unit(unit_id) is None:
            return jsonify({'error': f'Unit {unit_id} not found'}), 404

        return jsonify({
            'unit_id': unit_id,
            'valid_moves': [{'q': c.q, 'r': c.r} for c in get_valid_moves(game_state, unit_id)],
        })

    except Exception as e:
        return jsonify({'error': f'Failed to compute valid moves: {str(e)}'}), 500


@app.route('/api/game/<game_id>/end-turn', methods=['POST'])
def end_turn(game_id: str):
    """Let the AI queue its orders, execute the round and auto-resolve AI-defended combats."""
    try:
        if game_id not in games:
            return jsonify({'error': 'Game not found'}), 404
        game_state = games[game_id]
        if game_state.current_phase != PLANNING:
            return jsonify({'error': 'Turns can only be ended during planning'}), 400

        rng = ai_rngs.setdefault(game_id, random.Random())
        take_ai_turn(game_state, rng=rng)
        execute_moves(game_state)
        if game_state.current_phase == COMBAT:
            resolve_ai_combats(game_state, rng=rng)

        return jsonify(_state_response(game_state))

    except Exception as e:
        return jsonify({'error': f'Failed to end turn: {str(e)}'}), 500


@app.route('/api/game/<game_id>/combat/<int:combat_index>', methods=['POST'])
def resolve_player_combat(game_id: str, combat_index: int):
    """Resolve one combat with the human player's fight-or-retreat choice."""
    try:
        if game_id not in games:
            return jsonify({'error': 'Game not found'}), 404
        game_state = games[game_id]
        if game_state.current_phase != COMBAT:
            return jsonify({'error': 'No combat in progress'}), 400
        if combat_index >= len(game_state.combats) or game_state.combats[combat_index].resolved:
            return jsonify({'error': f'No open combat at index {combat_index}'}), 400

        data = request.get_json(silent=True) or {}
        retreat = bool(data.get('retreat', False))
        resolve_combat(game_state, combat_index, retreat)
        if game_state.current_phase == COMBAT:
            resolve_ai_combats(game_state, rng=ai_rngs.setdefault(game_id, random.Random()))

        return jsonify(_state_response(game_state))

    except Exception as e:
        return jsonify({'error': f'Failed to resolve combat: {str(e)}'}), 500


@app.route('/api/game/<game_id>/log', methods=['GET'])
def get_game_log(game_id: str):
    """Retrieve the full game log for analysis."""
    try:
        if game_id not in games:
            return jsonify({'error': 'Game not found'}), 404

        game_state = games[game_id]
        return jsonify({
            'game_id': game_id,
            'turn': game_state.turn_number,
            'phase': game_state.current_phase,
            'log': game_state.log
        })

    except Exception as e:
        return jsonify({'error': f'Failed to retrieve game log: {str(e)}'}), 500


@app.route('/api/game/<game_id>/save', methods=['POST'])
def save_game(game_id: str):
    """Store the game in the save slot, with optional UI state."""
    try:
        if game_id not in games:
            return jsonify({'error': 'Game not found'}), 404

        data = request.get_json(silent=True) or {}
        additional = {key: data[key] for key in ('selected_hex', 'is_ai_turn', 'timer')
                      if key in data}
        save_data = make_save_data(games[game_id], additional)
        saved_games[SAVE_SLOT] = save_data
        return jsonify({'game_id': game_id, 'timestamp': save_data['timestamp']})

    except Exception as e:
        return jsonify({'error': f'Failed to save game: {str(e)}'}), 500


@app.route('/api/game/load', methods=['POST'])
def load_game():
    """Restore the game held in the save slot."""
    try:
        if SAVE_SLOT not in saved_games:
            return jsonify({'error': 'No saved game'}), 404

        game_state, additional = load_save_data(saved_games[SAVE_SLOT])
        games[game_state.game_id] = game_state
        ai_rngs[game_state.game_id] = random.Random()
        return jsonify({'game_id': game_state.game_id, 'additional_data': additional})

    except Exception as e:
        return jsonify({'error': f'Failed to load game: {str(e)}'}), 500


if __name__ == '__main__':
    app.run(debug=True)
