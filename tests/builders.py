"""Board builders and helpers shared by the test modules."""

from config import GameSettings
from hex_utils import HexCoord, get_neighbors, get_spiral, is_edge_hex
from models import AI, PLAYER, Player, TerrainType, create_unit, make_hex
from state import PLANNING, GameState, is_valid_base_hex


def make_board_state(radius=4, terrain=None, player_base=None, ai_base=None,
                     phase=PLANNING, points=20):
    """
    Create an all-plain board for rule tests.

    terrain maps coordinates to TerrainType overrides. Bases are placed
    directly, at full health, without the setup phase.
    """
    settings = GameSettings(grid_size=radius)
    hexes = {}
    for coord in get_spiral((0, 0), radius):
        hexes[coord] = make_hex(coord.q, coord.r, (terrain or {}).get(coord, TerrainType.PLAIN))

    state = GameState(
        game_id="test",
        hexes=hexes,
        players={
            PLAYER: Player(id="human", type=PLAYER, points=points),
            AI: Player(id="computer", type=AI, points=points),
        },
        current_phase=phase,
        turn_number=1,
        planning_time_remaining=settings.planning_phase_time,
        settings=settings,
    )
    for faction, location in ((PLAYER, player_base), (AI, ai_base)):
        if location is not None:
            put_base(state, faction, location)
    return state


def put_base(state, faction, coord, health=None):
    health = state.settings.max_base_health if health is None else health
    hex_obj = state.hexes[HexCoord(*coord)]
    hex_obj.is_base = True
    hex_obj.owner = faction
    hex_obj.base_health = health
    player = state.players[faction]
    player.base_location = HexCoord(*coord)
    player.base_health = health
    player.max_base_health = state.settings.max_base_health


def add_unit(state, unit_type, owner, coord, unit_id=None, lifespan=None):
    """Put a unit straight onto the board through the arena."""
    unit_id = unit_id or f"{owner}-{unit_type.value}-{coord[0]}-{coord[1]}"
    unit = create_unit(unit_id, unit_type, owner, coord)
    if lifespan is not None:
        unit.lifespan = lifespan
    state.place_unit(unit)
    return unit


def make_resource(state, coord, value=3):
    hex_obj = state.hexes[HexCoord(*coord)]
    hex_obj.terrain = TerrainType.RESOURCE
    hex_obj.is_resource_hex = True
    hex_obj.resource_value = value
    return hex_obj


def find_placement_hex(state, coord):
    """First neighbour of coord where a purchased unit could be placed, or None."""
    for neighbor in get_neighbors(coord):
        hex_obj = state.hexes.get(neighbor)
        if hex_obj is None or hex_obj.is_occupied:
            continue
        if hex_obj.terrain not in (TerrainType.WATER, TerrainType.MOUNTAIN):
            return neighbor
    return None


def find_edge_base_hex(state):
    """First edge hex in grid order that can hold a base with room to deploy beside it."""
    for coord, hex_obj in state.hexes.items():
        if (is_edge_hex(coord, state.settings.grid_size) and is_valid_base_hex(hex_obj)
                and find_placement_hex(state, coord) is not None):
            return coord
    raise AssertionError("No valid edge hex on the test map")


def events(state, error_type=None):
    """Event strings from the log, optionally only rejected actions of one type."""
    return [entry['event'] for entry in state.log
            if error_type is None or entry.get('error_type') == error_type]


def create_api_game(client, seed=42, difficulty=None):
    """Create a new game via API, return game_id."""
    body = {"seed": seed}
    if difficulty:
        body["difficulty"] = difficulty
    resp = client.post("/api/game/new", json=body)
    assert resp.status_code == 200
    return resp.json["game_id"]


def place_bases_api(client, game_id):
    """Place the human base on the first valid edge hex via API."""
    from app import games
    coord = find_edge_base_hex(games[game_id])
    resp = client.post(f"/api/game/{game_id}/base", json={"q": coord.q, "r": coord.r})
    assert resp.status_code == 200
    return resp.json
