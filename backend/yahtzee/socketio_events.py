from flask_socketio import join_room, leave_room, emit
from yahtzee import socketio
from flask import current_app, request
from typing import Dict


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    match_code = _sid_to_match.pop(_get_sid(), None)
    if match_code:
        current_app.logger.debug(f"[ws-disconnect] match={match_code}")


def _match_code(data):
    match_code = (data or {}).get('match_code')
    if not match_code:
        emit('error', {'message': 'match_code is required'})
        return None
    return match_code.upper()


def handle_join_match(data):
    match_code = _match_code(data)
    if not match_code:
        return
    # A socket watches one match at a time
    previous = _sid_to_match.get(_get_sid())
    if previous and previous != match_code:
        leave_room(f"match:{previous}")
        emit('left', {'room': f"match:{previous}"})
    room = f"match:{match_code}"
    join_room(room)
    _sid_to_match[_get_sid()] = match_code
    emit('joined', {'room': room})


def handle_leave_match(data):
    match_code = _match_code(data)
    if not match_code:
        return
    room = f"match:{match_code}"
    leave_room(room)
    if _sid_to_match.get(_get_sid()) == match_code:
        _sid_to_match.pop(_get_sid(), None)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


# Socket id -> match code the client is watching
_sid_to_match: Dict[str, str] = {}


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'join_match': handle_join_match,
        'leave_match': handle_leave_match,
        'ping': handle_ping,
    }
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        for event, handler in handlers.items():
            socketio.on_event(event, handler, namespace=namespace)
