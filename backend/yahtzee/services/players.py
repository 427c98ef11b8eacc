from flask import current_app

from yahtzee import db
from yahtzee.models import Player
from yahtzee.services import atomic, get_services
from yahtzee.services.errors import UsernameTaken, ValidationError


def register_player(username, password):
    """Create a player and credit the welcome balance as a DEPOSIT."""
    username = (username or '').strip()
    if not username or not password:
        raise ValidationError('Username and password are required')
    if Player.query.filter_by(username=username).first():
        raise UsernameTaken('Username already exists')

    with atomic():
        player = Player(username=username, active=True)
        player.set_password(password)
        db.session.add(player)
        db.session.flush()
        initial = current_app.config.get('INITIAL_BALANCE')
        if initial:
            get_services().ledger.deposit(player, initial, 'Welcome bonus - initial deposit')
    current_app.logger.info(f"[register] player={player.username} balance={player.balance}")
    return player


def authenticate(username, password):
    player = Player.query.filter_by(username=username).first()
    if player is None:
        current_app.logger.warning(f"[login-reject] unknown user={username}")
        return None
    if not player.check_password(password):
        current_app.logger.warning(f"[login-reject] bad password user={username}")
        return None
    if not player.active:
        current_app.logger.warning(f"[login-reject] deactivated user={username}")
        return None
    player.touch()
    db.session.commit()
    return player


def set_active(player, active, reason=''):
    with atomic():
        player.active = active
    if active:
        current_app.logger.info(f"[reactivate-player] player={player.username}")
    else:
        current_app.logger.warning(f"[deactivate-player] player={player.username}: {reason}")
    return player
