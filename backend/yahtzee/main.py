from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from yahtzee.services.errors import YahtzeeError
from yahtzee.services.players import register_player, authenticate

main = Blueprint('main', __name__)


@main.errorhandler(YahtzeeError)
def handle_game_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Yahtzee match server!'})


@main.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    player = register_player(data.get('username'), data.get('password'))
    login_user(player)
    return jsonify({'success': True, 'player': player.to_dict()}), 201


@main.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    player = authenticate(data.get('username'), data.get('password'))
    if player is None:
        return jsonify({'error': 'Invalid username or password'}), 401
    login_user(player, remember=True)
    return jsonify({'success': True, 'player': player.to_dict()})


@main.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({'success': True, 'player': current_user.to_dict()})


@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})
