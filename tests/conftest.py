"""Shared test fixtures."""

import random

import pytest

from state import PLANNING, initialize_game, place_bases
from tests.builders import find_edge_base_hex


@pytest.fixture
def game():
    """Fresh game in setup phase (seed=42)."""
    return initialize_game(seed=42)


@pytest.fixture
def based_game(game):
    """Seeded game with both bases placed, in the planning phase of turn 1."""
    place_bases(game, find_edge_base_hex(game))
    assert game.current_phase == PLANNING
    return game


@pytest.fixture
def rng():
    """Deterministic RNG seeded at 42."""
    return random.Random(42)


@pytest.fixture
def api_client():
    """Flask test client."""
    from app import app

    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client
