from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from yahtzee.services import get_services
from yahtzee.services.errors import YahtzeeError

players = Blueprint('players', __name__)


@players.errorhandler(YahtzeeError)
def handle_game_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


def _me():
    return current_user._get_current_object()


def _money_dict(values):
    return {k: str(v) for k, v in values.items()}


@players.route('/deposit', methods=['POST'])
@login_required
def deposit():
    data = request.get_json(silent=True) or {}
    tx = get_services().ledger.deposit(_me(), data.get('amount'), data.get('description') or 'Deposit')
    return jsonify({'transaction': tx.to_dict(), 'balance': str(current_user.balance)}), 201


@players.route('/withdraw', methods=['POST'])
@login_required
def withdraw():
    data = request.get_json(silent=True) or {}
    tx = get_services().ledger.withdraw(_me(), data.get('amount'), data.get('description') or 'Withdrawal')
    return jsonify({'transaction': tx.to_dict(), 'balance': str(current_user.balance)}), 201


@players.route('/transactions', methods=['GET'])
@login_required
def transactions():
    limit = request.args.get('limit', type=int)
    history = get_services().ledger.history(_me(), limit=limit)
    return jsonify([tx.to_dict() for tx in history])


@players.route('/summary', methods=['GET'])
@login_required
def summary():
    return jsonify(_money_dict(get_services().ledger.summary(_me())))


@players.route('/reconcile', methods=['GET'])
@login_required
def reconcile():
    services = get_services()
    services.ledger.assert_reconciled(_me())
    return jsonify({'reconciled': True, 'balance': str(current_user.balance)})
