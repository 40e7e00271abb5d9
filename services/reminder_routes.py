"""Reminder CRUD and per-occurrence action routes."""

from flask import current_app, jsonify, request

from backend.auth import get_current_user, user_capabilities
from backend.errors import NotFoundError, ValidationError
from backend.permissions import is_allowed
from backend import reminder_service


def _require_reader():
    """(user, capabilities, None), or (None, None, error_response)."""
    user = get_current_user()
    if not user:
        return None, None, (jsonify({'error': 'No user selected'}), 401)
    caps = user_capabilities(user)
    if not caps['canRead']:
        return None, None, (jsonify({'error': 'Forbidden: Calendar read access required'}), 403)
    return user, caps, None


def _with_flags(payload, caps, user_id):
    is_owner = payload['owner_id'] == user_id
    payload['can_edit'] = is_allowed('edit', caps, payload['is_global'], is_owner)
    payload['can_delete'] = is_allowed('delete', caps, payload['is_global'], is_owner)
    return payload


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def api_reminders():
    user, caps, error = _require_reader()
    if error:
        return error

    if request.method == 'POST':
        reminder = reminder_service.create_reminder(user, _json_body(), caps)
        payload = reminder_service.get_reminder_payload(user, reminder.id)
        return jsonify(_with_flags(payload, caps, user.id)), 201

    filter_name = (request.args.get('filter') or 'all').strip().lower()
    reminders = reminder_service.list_reminders(user, filter_name)
    return jsonify([_with_flags(r, caps, user.id) for r in reminders])


def api_reminder_detail(reminder_id):
    user, caps, error = _require_reader()
    if error:
        return error

    if request.method == 'GET':
        payload = reminder_service.get_reminder_payload(user, reminder_id)
        return jsonify(_with_flags(payload, caps, user.id))

    if request.method == 'DELETE':
        reminder_service.delete_reminder(user, reminder_id, caps)
        return jsonify({'success': True, 'deleted': reminder_id})

    data = _json_body()
    if not data:
        return jsonify({'error': 'No fields to update'}), 400
    reminder_service.update_reminder(user, reminder_id, data, caps)
    # Editing may hand the reminder to a scope the caller can no longer see
    try:
        payload = reminder_service.get_reminder_payload(user, reminder_id)
    except NotFoundError:
        return jsonify({'success': True, 'id': reminder_id})
    return jsonify(_with_flags(payload, caps, user.id))


def _occurrence_date_arg():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        data = {}
    return data.get('occurrence_date') or request.args.get('occurrence_date')


def api_reminder_snooze(reminder_id):
    user, _caps, error = _require_reader()
    if error:
        return error
    if request.method == 'DELETE':
        result = reminder_service.unsnooze_reminder(user, reminder_id)
    else:
        result = reminder_service.snooze_reminder(user, reminder_id)
    current_app.logger.info("Reminder %s %s by user %s", reminder_id, result['action'], user.id)
    return jsonify(result)


def api_reminder_ignore(reminder_id):
    user, _caps, error = _require_reader()
    if error:
        return error
    if request.method == 'DELETE':
        result = reminder_service.unignore_reminder(user, reminder_id, _occurrence_date_arg())
    else:
        result = reminder_service.ignore_reminder(user, reminder_id)
    current_app.logger.info("Reminder %s %s by user %s", reminder_id, result['action'], user.id)
    return jsonify(result)


def api_reminder_complete(reminder_id):
    user, _caps, error = _require_reader()
    if error:
        return error
    if request.method == 'DELETE':
        result = reminder_service.uncomplete_reminder(user, reminder_id, _occurrence_date_arg())
    else:
        result = reminder_service.complete_reminder(user, reminder_id)
    current_app.logger.info("Reminder %s %s by user %s", reminder_id, result['action'], user.id)
    return jsonify(result)


def api_reminders_snoozed():
    user, caps, error = _require_reader()
    if error:
        return error
    return jsonify([_with_flags(r, caps, user.id) for r in reminder_service.list_snoozed(user)])


def api_reminders_history():
    user, _caps, error = _require_reader()
    if error:
        return error
    days = request.args.get('days')
    if days is not None:
        try:
            days = int(days)
        except ValueError:
            return jsonify({'error': 'days must be an integer'}), 400
        if days < 1 or days > 365:
            return jsonify({'error': 'days must be between 1 and 365'}), 400
    return jsonify(reminder_service.list_history(user, days))
