import os
import sys
from decimal import Decimal

import pytest

# Ensure the backend root (containing the `yahtzee` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from yahtzee import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MIN_SEATS = 2
    MAX_SEATS = 6
    MAX_ROUNDS = 13
    INITIAL_BALANCE = Decimal('1000.00')
    MATCH_CODE_LENGTH = 6
    DICE_SEED = 1234
    LOG_LEVEL = 'DEBUG'


class ScriptedDice:
    """Stands in for random.Random; hands out faces from a fixed script."""

    def __init__(self, faces):
        self.faces = list(faces)

    def randint(self, low, high):
        return self.faces.pop(0)


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import yahtzee.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture()
def services(flask_app):
    from yahtzee.services import get_services
    return get_services()


@pytest.fixture()
def make_player(flask_app):
    """Register a player, optionally bringing their balance down to ``balance``."""
    from yahtzee.services import get_services
    from yahtzee.services.players import register_player

    def _make(username, balance=None):
        player = register_player(username, 'password')
        if balance is not None:
            surplus = player.balance - Decimal(str(balance))
            if surplus > 0:
                get_services().ledger.withdraw(player, surplus, 'test setup')
        return player

    return _make


@pytest.fixture()
def script_dice(services):
    """Replace the dice source with scripted faces for the rest of the test."""
    def _script(*faces):
        services.rounds.rng = ScriptedDice(faces)
        return services.rounds.rng
    return _script


@pytest.fixture()
def started_match(services, make_player):
    """Two seated players, stake 100, match started. Alice holds the turn."""
    alice = make_player('alice')
    bob = make_player('bob')
    match = services.matches.create(alice, '100.00', 2)
    services.matches.join(match, bob)
    services.matches.start(match)
    return match, alice, bob


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite database so worker threads get their own connections.

    No app context is pushed; each thread pushes its own.
    """
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'matches.db'}"

    application = create_app(FileConfig)
    with application.app_context():
        import yahtzee.models  # noqa: F401
        db.create_all()
    yield application
    with application.app_context():
        db.drop_all()
        db.engine.dispose()
