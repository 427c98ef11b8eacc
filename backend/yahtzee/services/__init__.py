"""Core services: ledger, dice rounds, match lifecycle.

HTTP routes and socket handlers import from here; nothing in this package
knows about requests or sockets.
"""

import random
from contextlib import contextmanager

from flask import current_app

from yahtzee import db


@contextmanager
def atomic():
    """Commit-or-rollback scope around one state transition.

    Nested scopes join the outermost one: only the outermost commits, and
    any exception rolls the whole unit back before propagating.
    """
    session = db.session
    depth = session.info.get('atomic_depth', 0)
    session.info['atomic_depth'] = depth + 1
    try:
        yield session
        if depth == 0:
            session.commit()
        else:
            session.flush()
    except Exception:
        if depth == 0:
            session.rollback()
        raise
    finally:
        session.info['atomic_depth'] = depth


def reload_for_update(instance):
    """Re-read a row under a write lock so checks see the latest commit."""
    db.session.flush()
    db.session.refresh(instance, with_for_update=True)
    return instance


class GameServices:
    """Per-app wiring of the ledger, round engine and match lifecycle."""

    def __init__(self, app):
        from .locks import LockRegistry
        from .ledger import Ledger
        from .games.rounds import RoundEngine
        from .games.lifecycle import MatchLifecycle

        self.match_locks = LockRegistry('match')
        self.player_locks = LockRegistry('player')
        self.ledger = Ledger(self.player_locks)
        self.rounds = RoundEngine(rng=random.Random(app.config.get('DICE_SEED')))
        self.matches = MatchLifecycle(self.ledger, self.rounds, self.match_locks)


def get_services() -> GameServices:
    return current_app.extensions['yahtzee']
