from flask import Blueprint, jsonify, current_app
from songquiz import db
from songquiz.models import User

main = Blueprint('main', __name__)


@main.route('/health')
def health():
    registry = current_app.extensions['room_registry']
    return jsonify({'status': 'ok', 'rooms': len(registry)})


@main.route('/anime')
def anime_names():
    """Names, franchise and alt names for client-side autocompletion."""
    registry = current_app.extensions['room_registry']
    return jsonify(registry.provider.list_anime_names())


@main.route('/users/<int:user_id>/stats')
def user_stats(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({'error': 'User not found'}), 404
    return jsonify(user.to_dict())
