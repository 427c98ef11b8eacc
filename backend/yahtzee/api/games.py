from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from yahtzee import socketio
from yahtzee.models import MatchStatus
from yahtzee.services import get_services
from yahtzee.services.errors import YahtzeeError, NotSeated
from yahtzee.services.games.scoring import score


games = Blueprint('games', __name__)


@games.errorhandler(YahtzeeError)
def handle_game_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


def _me():
    return current_user._get_current_object()


def _broadcast(match):
    socketio.emit('state_update', {'match_code': match.code}, to=f"match:{match.code}", namespace='/ws')


def _match_or_404(code):
    match = get_services().matches.find_by_code(code)
    if match is None:
        return None, (jsonify({'error': 'Match not found', 'kind': 'NotFound'}), 404)
    return match, None


def _state(match):
    matches = get_services().matches
    payload = match.to_dict()
    payload['standings'] = [s.to_dict() for s in matches.standings(match)]
    current = match.current_turn_player
    turn = matches.rounds.open_turn(match, current) if current is not None else None
    payload['current_turn'] = turn.to_dict() if turn else None
    return payload


@games.route('', methods=['GET'])
def list_matches():
    stake = request.args.get('stake')
    return jsonify([m.to_dict(include_seats=False) for m in get_services().matches.available_matches(stake)])


@games.route('/create', methods=['POST'])
@login_required
def create_match():
    data = request.get_json(silent=True) or {}
    match = get_services().matches.create(_me(), data.get('stake_amount'), data.get('max_seats'))
    return jsonify({
        'message': 'New match created!',
        'match_code': match.code,
        'match': match.to_dict(),
    }), 201


@games.route('/join', methods=['POST'])
@login_required
def join_match():
    data = request.get_json(silent=True) or {}
    match_code = data.get('match_code')
    if not match_code:
        return jsonify({'error': 'Match code is required', 'kind': 'ValidationError'}), 400
    match, missing = _match_or_404(match_code)
    if missing:
        return missing
    seat = get_services().matches.join(match, _me())
    _broadcast(match)
    return jsonify(seat.to_dict()), 201


@games.route('/<string:match_code>/state', methods=['GET'])
def get_match_state(match_code):
    match, missing = _match_or_404(match_code)
    if missing:
        return missing
    return jsonify(_state(match))


@games.route('/<string:match_code>/start', methods=['POST'])
@login_required
def start_match(match_code):
    match, missing = _match_or_404(match_code)
    if missing:
        return missing
    if match.seat_for(current_user) is None:
        raise NotSeated('Only seated players may start the match')
    get_services().matches.start(match)
    _broadcast(match)
    return jsonify(_state(match))


@games.route('/<string:match_code>/leave', methods=['POST'])
@login_required
def leave_match(match_code):
    match, missing = _match_or_404(match_code)
    if missing:
        return missing
    get_services().matches.leave(match, _me())
    _broadcast(match)
    return jsonify(_state(match))


@games.route('/<string:match_code>/forfeit', methods=['POST'])
@login_required
def forfeit_match(match_code):
    match, missing = _match_or_404(match_code)
    if missing:
        return missing
    get_services().matches.forfeit(match, _me())
    _broadcast(match)
    return jsonify(_state(match))


@games.route('/<string:match_code>/cancel', methods=['POST'])
@login_required
def cancel_match(match_code):
    data = request.get_json(silent=True) or {}
    match, missing = _match_or_404(match_code)
    if missing:
        return missing
    if match.seat_for(current_user) is None:
        raise NotSeated('Only seated players may cancel the match')
    reason = data.get('reason') or f'cancelled by {current_user.username}'
    refunds = get_services().matches.cancel(match, reason)
    _broadcast(match)
    return jsonify({'match': _state(match), 'refunds': [tx.to_dict() for tx in refunds]})


@games.route('/<string:match_code>/turn', methods=['POST'])
@login_required
def take_turn(match_code):
    data = request.get_json(silent=True) or {}
    match, missing = _match_or_404(match_code)
    if missing:
        return missing
    turn = get_services().matches.take_turn(match, _me(), data.get('round_number'))
    _broadcast(match)
    return jsonify(turn.to_dict()), 201


@games.route('/<string:match_code>/roll', methods=['POST'])
@login_required
def roll(match_code):
    data = request.get_json(silent=True) or {}
    match, missing = _match_or_404(match_code)
    if missing:
        return missing
    matches = get_services().matches
    turn = matches.roll_dice(match, _me(), data.get('keep_mask'))
    _broadcast(match)
    payload = turn.to_dict()
    payload['can_roll_again'] = matches.rounds.can_roll_again(turn)
    return jsonify(payload)


@games.route('/<string:match_code>/score', methods=['POST'])
@login_required
def score_turn(match_code):
    data = request.get_json(silent=True) or {}
    match, missing = _match_or_404(match_code)
    if missing:
        return missing
    turn = get_services().matches.score_turn(match, _me(), data.get('category'))
    _broadcast(match)
    return jsonify({'turn': turn.to_dict(), 'match': _state(match),
                    'finished': match.status == MatchStatus.FINISHED})


@games.route('/<string:match_code>/suggestions', methods=['GET'])
@login_required
def suggestions(match_code):
    match, missing = _match_or_404(match_code)
    if missing:
        return missing
    matches = get_services().matches
    turn = matches.rounds.open_turn(match, _me())
    if turn is None or not turn.roll_count:
        return jsonify([])
    return jsonify([
        {'category': c.value, 'name': c.display_name, 'score': score(turn.final_dice, c)}
        for c in matches.suggest_for_turn(match, _me())
    ])
