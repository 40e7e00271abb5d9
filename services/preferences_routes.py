from flask import jsonify, request

from backend.auth import get_current_user
from backend.errors import ValidationError
from backend.preferences import get_preferences, set_preferences


def api_preferences():
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401
    if request.method == 'GET':
        return jsonify(get_preferences(user.id).to_dict())
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return jsonify(set_preferences(user.id, data).to_dict())
