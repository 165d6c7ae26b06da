import os
import random
import sys

import pytest

# Ensure the backend root (containing the `ito` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from ito.config import Config
from ito.game.models import PLAYING
from ito.game.registry import RoomRegistry
from ito.game.rules import RULESETS
from ito.game.service import GameMachine
from ito.server import create_app

NOW = 1_000_000


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SOCKETIO_ASYNC_MODE = 'threading'
    SCHEDULER_ENABLED = False
    TRUST_PROXY_HEADERS = False
    ADMIN_TOKEN = 'test-admin'
    DEFAULT_RULESET = 'cooperative'


@pytest.fixture()
def machine():
    return GameMachine(rng=random.Random(1234))


@pytest.fixture()
def registry():
    return RoomRegistry(rng=random.Random(99))


@pytest.fixture()
def make_room(registry):
    """Room 'r1' hosted by 'u0' with players u0..u{n-1}, still in the lobby."""
    def _make(players=2, ruleset='cooperative', **settings):
        room, _ = registry.join('r1', 'Host', 'sid-0', user_id='u0', now=NOW)
        for i in range(1, players):
            registry.join('r1', f'P{i}', f'sid-{i}', user_id=f'u{i}', now=NOW)
        room.settings.ruleset = ruleset
        room.settings.deck_policy = RULESETS[ruleset].default_deck_policy
        for key, value in settings.items():
            setattr(room.settings, key, value)
        room.current_hand_count = room.settings.initial_hand_count
        room.current_lifes = room.settings.max_lifes
        return room
    return _make


@pytest.fixture()
def playing_room(make_room, machine):
    """Cooperative room already past theme selection."""
    def _make(players=2, **settings):
        room = make_room(players=players, **settings)
        assert machine.start_game(room, 'u0', now=NOW).ok
        machine.select_theme(room, 'u0', theme_id=room.theme_candidates[0].id, now=NOW)
        assert room.phase == PLAYING
        return room
    return _make


def place(machine, room, cards, now=NOW):
    for i, card in enumerate(cards):
        machine.move_card(room, card.owner_id, card.id, i, now=now)


def finish(machine, room, now=NOW):
    outcome = None
    for p in room.active_players():
        outcome = machine.submit_done(room, p.user_id, now=now)
    return outcome


@pytest.fixture()
def flask_app():
    app, _ = create_app(TestConfig)
    yield app


@pytest.fixture()
def socketio(flask_app):
    return flask_app.extensions['ito']['socketio']


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app, socketio):
    clients = []

    def _make():
        c = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(c)
        return c

    yield _make
    for c in clients:
        try:
            if c.is_connected():
                c.disconnect()
        except Exception:
            pass
