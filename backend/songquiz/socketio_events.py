from flask import current_app, request
from flask_socketio import emit, join_room, leave_room
from songquiz import socketio, WS_NAMESPACE
from songquiz.services.games import PAUSED, PLAYING, WAITING, RoomFull
from typing import Any, Dict


def _registry():
    return current_app.extensions['room_registry']


def _get_sid() -> str:
    return request.sid  # type: ignore


def _payload(data) -> Dict[str, Any]:
    return data if isinstance(data, dict) else {}


def _room_for(data, required: bool = True):
    """Look up the room named in ``data``; emits an error when it is missing."""
    code = _payload(data).get('room_id')
    if not code:
        if required:
            emit('error', {'message': 'room_id is required'})
        return None
    room = _registry().get(code)
    if room is None and required:
        emit('error', {'message': f"Room {str(code).upper()} not found"})
    return room


def _broadcast_rooms() -> None:
    socketio.emit('rooms_update', _registry().list_rooms(), namespace=WS_NAMESPACE)


def _joined_payload(room) -> Dict[str, Any]:
    return {
        'room_id': room.code,
        'host_id': room.host_id,
        'player_id': _get_sid(),
        'settings': room.settings.to_dict(),
        'players': room.roster(),
        'status': room.status,
    }


def _profile(data):
    data = _payload(data)
    name = str(data.get('username') or '').strip()[:32]
    user_id = data.get('user_id')
    try:
        user_id = int(user_id) if user_id is not None else None
    except (TypeError, ValueError):
        user_id = None
    return name, str(data.get('avatar') or ''), user_id


# ---- connection ----

def handle_connect(auth=None):
    emit('connected', {'player_id': _get_sid()})


def handle_disconnect(reason=None):
    sid = _get_sid()
    registry = _registry()
    rooms = registry.rooms_for(sid)
    for room in rooms:
        current_app.logger.info(f"[disconnect] room={room.code} player={sid}")
        registry.leave(room.code, sid)
    if rooms:
        _broadcast_rooms()


# ---- lobby ----

def handle_create_room(data):
    name, avatar, user_id = _profile(data)
    if not name:
        emit('error', {'message': 'username is required'})
        return
    sid = _get_sid()
    registry = _registry()
    room = registry.create(sid, _payload(data).get('settings'))
    join_room(room.code)
    registry.join(room.code, sid, name, avatar, user_id=user_id)
    emit('lobby:joined', _joined_payload(room))
    _broadcast_rooms()


def handle_join_room(data):
    name, avatar, user_id = _profile(data)
    if not name:
        emit('error', {'message': 'username is required'})
        return
    room = _room_for(data)
    if room is None:
        return
    sid = _get_sid()
    try:
        joined = _registry().join(room.code, sid, name, avatar, user_id=user_id)
    except RoomFull:
        emit('error', {'message': 'Room is full'})
        return
    if joined is None:
        emit('error', {'message': f"Room {room.code} not found"})
        return
    join_room(room.code)
    emit('lobby:joined', _joined_payload(room))
    if room.status != WAITING:
        emit('game_state_sync', room.get_sync_state())
    _broadcast_rooms()


def handle_leave_room(data):
    room = _room_for(data, required=False)
    if room is None:
        return
    leave_room(room.code)
    if _registry().leave(room.code, _get_sid()):
        _broadcast_rooms()


def handle_toggle_ready(data):
    room = _room_for(data, required=False)
    if room is not None:
        room.toggle_ready(_get_sid())


def handle_transfer_host(data):
    room = _room_for(data, required=False)
    if room is None:
        return
    target = _payload(data).get('target_id')
    if target and room.transfer_host(_get_sid(), target):
        _broadcast_rooms()


def handle_update_settings(data):
    room = _room_for(data, required=False)
    if room is None:
        return
    if room.update_settings(_get_sid(), _payload(data).get('settings')):
        _broadcast_rooms()


def handle_get_rooms(data=None):
    emit('rooms_update', _registry().list_rooms())


# ---- game ----

def handle_start_game(data):
    room = _room_for(data)
    if room is None:
        return
    if room.host_id != _get_sid():
        emit('error', {'message': 'Only the host can start the game'})
        return
    if room.start_game():
        _broadcast_rooms()


def handle_answer(data):
    room = _room_for(data, required=False)
    if room is None:
        return
    data = _payload(data)
    room.submit_answer(_get_sid(), data.get('answer'), data.get('mode'))


def handle_vote_pause(data):
    room = _room_for(data, required=False)
    if room is not None and room.status in (PLAYING, PAUSED):
        room.toggle_pause(_get_sid())


def handle_vote_skip(data):
    room = _room_for(data, required=False)
    if room is not None:
        room.vote_skip(_get_sid())


def handle_skip_round(data):
    room = _room_for(data, required=False)
    if room is not None and room.host_id == _get_sid():
        room.force_end_round()


def handle_return_to_lobby(data):
    room = _room_for(data, required=False)
    if room is None:
        return
    room.return_to_lobby(_get_sid())
    _broadcast_rooms()


def handle_cancel_game(data):
    room = _room_for(data, required=False)
    if room is None or room.host_id != _get_sid():
        return
    room.cancel_game()
    _broadcast_rooms()


def handle_get_game_state(data):
    room = _room_for(data)
    if room is not None:
        emit('game_state_sync', room.get_sync_state())


EVENTS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'lobby:create': handle_create_room,
    'lobby:join': handle_join_room,
    'leave_room': handle_leave_room,
    'toggle_ready': handle_toggle_ready,
    'transfer_host': handle_transfer_host,
    'update_room_settings': handle_update_settings,
    'get_rooms': handle_get_rooms,
    'start_game': handle_start_game,
    'game:answer': handle_answer,
    'vote_pause': handle_vote_pause,
    'vote_skip': handle_vote_skip,
    'game:skip_round': handle_skip_round,
    'game:return_to_lobby': handle_return_to_lobby,
    'game:cancel': handle_cancel_game,
    'get_game_state': handle_get_game_state,
}


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    for name, handler in EVENTS.items():
        socketio.on_event(name, handler, namespace=WS_NAMESPACE)

    if testing:
        # Test-only mirror on default namespace
        for name, handler in EVENTS.items():
            socketio.on_event(name, handler, namespace='/')
