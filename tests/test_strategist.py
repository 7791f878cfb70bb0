"""
Tests for the computer opponent: threat assessment, purchases, moves and
combat retreat decisions.
"""

import random

import pytest

from hex_utils import HexCoord, get_ring, hex_distance
from models import AI, PLAYER, Combat, TerrainType, UnitType
from orders import execute_moves, pending_cost
from resolution import detect_combats
from state import COMBAT, state_to_dict
from strategist import (
    DIFFICULTY_SETTINGS,
    DifficultySettings,
    ThreatAssessment,
    assess_threats,
    decide_combat_retreat,
    decide_moves,
    decide_purchase,
    find_resource_opportunities,
    get_ai_orders,
    get_difficulty,
    resolve_ai_combats,
    take_ai_turn,
)
from tests.builders import add_unit, make_board_state, make_resource

PLAYER_BASE = (-4, 0)
AI_BASE = (4, 0)


class FixedRandom(random.Random):
    """Random whose rolls always come out the same."""

    def __init__(self, value):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


def weights(**overrides):
    values = dict(attack_aggressiveness=0.0, defense_preference=0.0, resource_focus=0.0,
                  unit_diversity_desire=0.0, retreat_threshold=0.5)
    values.update(overrides)
    return DifficultySettings(**values)


@pytest.fixture
def board():
    return make_board_state(player_base=PLAYER_BASE, ai_base=AI_BASE)


def test_difficulty_table():
    assert set(DIFFICULTY_SETTINGS) == {'easy', 'medium', 'hard'}
    assert DIFFICULTY_SETTINGS['hard'].attack_aggressiveness > DIFFICULTY_SETTINGS['easy'].attack_aggressiveness
    assert get_difficulty('nightmare') is DIFFICULTY_SETTINGS['medium']
    assert get_difficulty(None) is DIFFICULTY_SETTINGS['medium']


class TestAssessment:
    """Threats and resource opportunities."""

    def test_two_enemies_threaten_base(self, board):
        add_unit(board, UnitType.INFANTRY, PLAYER, (2, 0))
        add_unit(board, UnitType.INFANTRY, PLAYER, (3, -2))
        threats = assess_threats(board, AI)
        assert threats.base_under_threat
        assert len(threats.enemy_units_near_base) == 2
        assert threats.enemy_strength_near_base == 4

    def test_single_tank_is_not_a_threat(self, board):
        add_unit(board, UnitType.TANK, PLAYER, (2, 0))
        add_unit(board, UnitType.INFANTRY, PLAYER, (-1, 0))
        threats = assess_threats(board, AI)
        assert not threats.base_under_threat
        assert threats.enemy_strength_near_base == 4

    def test_unit_threat_level(self, board):
        add_unit(board, UnitType.INFANTRY, AI, (0, 0), unit_id="a", lifespan=2)
        add_unit(board, UnitType.TANK, PLAYER, (1, 0))
        threats = assess_threats(board, AI)
        assert threats.threatened_units == {"a": 2.0}

    def test_resource_opportunities(self, board):
        for coord in [(0, 0), (1, 1), (2, -1)]:
            make_resource(board, coord)
        add_unit(board, UnitType.INFANTRY, AI, (1, 1))
        add_unit(board, UnitType.INFANTRY, PLAYER, (2, -1))
        assert set(find_resource_opportunities(board, AI)) == {(0, 0), (2, -1)}


class TestPurchaseDecision:
    """One purchase at most, chosen by priority."""

    def test_no_points(self):
        state = make_board_state(player_base=PLAYER_BASE, ai_base=AI_BASE, points=4)
        assert decide_purchase(state, weights(), ThreatAssessment(), random.Random(0)) is None

    def test_no_placement_hex(self):
        water = {c: TerrainType.WATER for c in get_ring(AI_BASE, 1)}
        state = make_board_state(player_base=PLAYER_BASE, ai_base=AI_BASE, terrain=water)
        assert decide_purchase(state, weights(), ThreatAssessment(), random.Random(0)) is None

    def test_threatened_base_buys_tank(self, board):
        threats = ThreatAssessment(base_under_threat=True)
        purchase = decide_purchase(board, weights(), threats, random.Random(0))
        assert purchase.unit_type == UnitType.TANK
        assert purchase.player_id == "computer"
        assert hex_distance(purchase.position, AI_BASE) == 1

        board.players[AI].points = 10
        purchase = decide_purchase(board, weights(), threats, random.Random(0))
        assert purchase.unit_type == UnitType.INFANTRY

    def test_resources_buy_helicopter(self, board):
        make_resource(board, (0, 0))
        purchase = decide_purchase(board, weights(resource_focus=1.0), ThreatAssessment(),
                                   random.Random(0))
        assert purchase.unit_type == UnitType.HELICOPTER

    def test_aggression_buys_artillery(self, board):
        purchase = decide_purchase(board, weights(attack_aggressiveness=1.0), ThreatAssessment(),
                                   random.Random(0))
        assert purchase.unit_type == UnitType.ARTILLERY

    def test_otherwise_least_owned_type(self, board):
        add_unit(board, UnitType.INFANTRY, AI, (0, 0))
        purchase = decide_purchase(board, weights(), ThreatAssessment(), random.Random(0))
        assert purchase.unit_type == UnitType.TANK


class TestMoveDecision:
    """Move choice for idle units."""

    def test_destinations_are_never_shared(self, board):
        for coord in [(0, 0), (1, 0), (0, 1), (1, -1)]:
            add_unit(board, UnitType.INFANTRY, AI, coord)
        claimed = {HexCoord(0, -1), HexCoord(-1, 1)}

        moves = decide_moves(board, weights(), ThreatAssessment(), random.Random(3),
                             claimed=claimed)

        destinations = [m.to_hex for m in moves]
        assert len(moves) == 4
        assert len(set(destinations)) == len(destinations)
        assert not claimed & set(destinations)
        assert all(board.get_unit_at(d) is None for d in destinations)

    def test_threatened_unit_retreats_toward_base(self, board):
        add_unit(board, UnitType.INFANTRY, AI, (0, 0), unit_id="a", lifespan=1)
        add_unit(board, UnitType.TANK, PLAYER, (-1, 0))
        threats = assess_threats(board, AI)

        moves = decide_moves(board, weights(), threats, random.Random(0))

        assert len(moves) == 1
        assert moves[0].unit_id == "a"
        assert hex_distance(moves[0].to_hex, AI_BASE) == 2

    def test_attack_advances_on_enemy_base(self, board):
        add_unit(board, UnitType.INFANTRY, AI, (2, 0), unit_id="a")
        moves = decide_moves(board, weights(attack_aggressiveness=1.0), ThreatAssessment(),
                             random.Random(0))
        assert hex_distance(moves[0].to_hex, PLAYER_BASE) == 4

    def test_defender_moves_to_guard_post(self, board):
        add_unit(board, UnitType.INFANTRY, PLAYER, (2, 0))
        add_unit(board, UnitType.INFANTRY, PLAYER, (1, 1))
        add_unit(board, UnitType.INFANTRY, AI, (4, -2), unit_id="guard")
        threats = assess_threats(board, AI)
        assert threats.base_under_threat

        moves = decide_moves(board, weights(defense_preference=1.0), threats, random.Random(0))

        assert [(m.unit_id, m.to_hex) for m in moves] == [("guard", (4, -1))]

    def test_defender_intercepts_intruder_next_to_base(self, board):
        add_unit(board, UnitType.INFANTRY, PLAYER, (3, 0))
        add_unit(board, UnitType.INFANTRY, PLAYER, (1, 1))
        add_unit(board, UnitType.TANK, AI, (4, -3), unit_id="tank")
        threats = assess_threats(board, AI)

        moves = decide_moves(board, weights(defense_preference=1.0), threats, random.Random(0))

        assert len(moves) == 1
        assert hex_distance(moves[0].to_hex, (3, 0)) == 1

    def test_distant_units_do_not_defend(self, board):
        add_unit(board, UnitType.INFANTRY, PLAYER, (2, 0))
        add_unit(board, UnitType.INFANTRY, PLAYER, (1, 1))
        # Exactly five hexes from the base
        add_unit(board, UnitType.INFANTRY, AI, (-1, 0), unit_id="far")
        threats = assess_threats(board, AI)

        moves = decide_moves(board, weights(defense_preference=1.0, attack_aggressiveness=1.0),
                             threats, FixedRandom(0.0))

        assert hex_distance(moves[0].to_hex, PLAYER_BASE) == 1

    def test_blocked_defence_falls_through_to_attack(self, board):
        add_unit(board, UnitType.INFANTRY, PLAYER, (3, 0))
        add_unit(board, UnitType.INFANTRY, PLAYER, (1, 0))
        add_unit(board, UnitType.INFANTRY, AI, (3, 1), unit_id="stuck")
        threats = assess_threats(board, AI)
        assert threats.base_under_threat

        moves = decide_moves(board, weights(defense_preference=1.0, attack_aggressiveness=1.0),
                             threats, FixedRandom(0.0))

        assert [m.unit_id for m in moves] == ["stuck"]
        assert moves[0].to_hex != (3, 0)
        assert hex_distance(moves[0].to_hex, PLAYER_BASE) < hex_distance((3, 1), PLAYER_BASE)

    def test_infantry_heads_for_nearest_resource(self, board):
        make_resource(board, (2, 0))
        make_resource(board, (-3, 0))
        add_unit(board, UnitType.INFANTRY, AI, (0, 0), unit_id="a")

        moves = decide_moves(board, weights(resource_focus=1.0), ThreatAssessment(),
                             random.Random(0))

        assert [(m.unit_id, m.to_hex) for m in moves] == [("a", (2, 0))]

    def test_tanks_ignore_resources(self, board):
        make_resource(board, (2, 0))
        add_unit(board, UnitType.TANK, AI, (0, 0), unit_id="tank")

        moves = decide_moves(board, weights(resource_focus=1.0, attack_aggressiveness=1.0),
                             ThreatAssessment(), random.Random(0))

        assert moves[0].to_hex != (2, 0)
        assert hex_distance(moves[0].to_hex, PLAYER_BASE) == 1

    def test_busy_units_stay(self, board):
        moved = add_unit(board, UnitType.INFANTRY, AI, (0, 0))
        fighting = add_unit(board, UnitType.INFANTRY, AI, (2, 0))
        moved.has_moved = True
        fighting.is_engaged_in_combat = True
        assert decide_moves(board, weights(), ThreatAssessment(), random.Random(0)) == []


class TestOrders:
    """Whole-turn order generation."""

    def test_orders_are_deterministic_and_pure(self, based_game):
        ai_base = based_game.players[AI].base_location
        add_unit(based_game, UnitType.INFANTRY, PLAYER, (0, 0))
        before = state_to_dict(based_game)

        first = get_ai_orders(based_game, 'hard', random.Random(7))
        second = get_ai_orders(based_game, 'hard', random.Random(7))

        assert first == second
        assert state_to_dict(based_game) == before
        for purchase in first[1]:
            assert hex_distance(purchase.position, ai_base) == 1

    def test_take_ai_turn_queues_and_executes(self, based_game):
        ai_player = based_game.players[AI]
        take_ai_turn(based_game, rng=random.Random(1))

        assert len(based_game.pending_purchases) <= 1
        assert all(p.player_id == ai_player.id for p in based_game.pending_purchases)
        assert pending_cost(based_game, ai_player.id) <= ai_player.points

        execute_moves(based_game)
        assert based_game.check_consistency() == []


class TestCombatDecisions:
    """Retreat or fight for AI defenders."""

    def test_outgunned_defender_retreats(self, board):
        add_unit(board, UnitType.INFANTRY, AI, (0, 0))
        add_unit(board, UnitType.TANK, PLAYER, (1, 0))
        add_unit(board, UnitType.INFANTRY, PLAYER, (-1, 0))
        board.combats = detect_combats(board)
        assert decide_combat_retreat(board, 0, 'medium', FixedRandom(0.99))

    def test_worn_defender_retreats(self, board):
        add_unit(board, UnitType.TANK, AI, (0, 0), lifespan=2)
        add_unit(board, UnitType.INFANTRY, PLAYER, (1, 0))
        board.combats = detect_combats(board)
        assert decide_combat_retreat(board, 0, 'medium', FixedRandom(0.99))

    def test_healthy_defender_fights(self, board):
        add_unit(board, UnitType.TANK, AI, (0, 0))
        add_unit(board, UnitType.INFANTRY, PLAYER, (1, 0))
        board.combats = detect_combats(board)
        assert not decide_combat_retreat(board, 0, 'medium', FixedRandom(0.99))
        assert decide_combat_retreat(board, 0, 'medium', FixedRandom(0.0))

    def test_not_an_ai_defence(self, board):
        add_unit(board, UnitType.INFANTRY, PLAYER, (0, 0))
        add_unit(board, UnitType.TANK, AI, (1, 0))
        board.combats = detect_combats(board)
        assert not decide_combat_retreat(board, 0, 'medium', FixedRandom(0.0))
        assert not decide_combat_retreat(board, 3, 'medium', FixedRandom(0.0))

    def test_resolve_ai_combats_leaves_player_defences(self, board):
        add_unit(board, UnitType.INFANTRY, AI, (0, 0), unit_id="a")
        add_unit(board, UnitType.INFANTRY, PLAYER, (1, 0), unit_id="p")
        add_unit(board, UnitType.INFANTRY, PLAYER, (-3, 0), unit_id="q")
        add_unit(board, UnitType.INFANTRY, AI, (-2, 0), unit_id="b")
        board.combats = [
            Combat(hex_coordinates=HexCoord(0, 0), attackers=["p"], defenders=["a"]),
            Combat(hex_coordinates=HexCoord(-3, 0), attackers=["b"], defenders=["q"]),
        ]
        board.current_phase = COMBAT

        resolve_ai_combats(board, 'medium', FixedRandom(0.99))

        assert board.combats[0].resolved
        assert not board.combats[1].resolved
        assert board.current_phase == COMBAT
        assert board.units["a"].lifespan == 3
        assert board.units["q"].lifespan == 5
