"""Calendar subscription feed, token management, capability and manual-send routes."""

from flask import current_app, jsonify, request

from backend.auth import get_current_user, user_capabilities
from backend.ical_feed import (
    build_feed_for_user,
    get_or_create_calendar_token,
    regenerate_calendar_token,
    resolve_calendar_token,
    subscription_url,
)
from backend.notification_scheduler import run_reminder_tick

FEED_HEADERS = {
    'Content-Type': 'text/calendar; charset=utf-8',
    'Cache-Control': 'no-cache, no-store, must-revalidate',
}


def calendar_feed():
    """Public iCal feed; the query token is the only credential."""
    token = request.args.get('token')
    if not token:
        return 'Missing token', 401, {'Content-Type': 'text/plain; charset=utf-8'}
    user_id = resolve_calendar_token(token)
    if user_id is None:
        current_app.logger.warning("Calendar feed requested with unknown token")
        return 'Invalid token', 401, {'Content-Type': 'text/plain; charset=utf-8'}
    return build_feed_for_user(user_id), 200, FEED_HEADERS


def api_calendar_token():
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401
    token = get_or_create_calendar_token(user.id)
    return jsonify({'token': token, 'subscription_url': subscription_url(token)})


def api_calendar_token_regenerate():
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401
    token = regenerate_calendar_token(user.id)
    return jsonify({'token': token, 'subscription_url': subscription_url(token)})


def api_calendar_permissions():
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401
    return jsonify(user_capabilities(user))


def api_calendar_send_now():
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401
    if not user_capabilities(user)['canEditGlobal']:
        return jsonify({'error': 'Forbidden: Global edit access required'}), 403
    current_app.logger.info("Manual reminder tick triggered by user %s", user.id)
    return jsonify(run_reminder_tick())
