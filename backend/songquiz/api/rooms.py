from flask import Blueprint, jsonify, current_app

rooms = Blueprint('rooms', __name__)


def _registry():
    return current_app.extensions['room_registry']


@rooms.route('', methods=['GET'])
def list_rooms():
    return jsonify(_registry().list_rooms())


@rooms.route('/<string:code>/state', methods=['GET'])
def room_state(code):
    room = _registry().get(code)
    if room is None:
        return jsonify({'error': 'Room not found'}), 404
    return jsonify(room.get_sync_state())
