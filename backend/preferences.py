"""User preference store: timezone, notification email and opt-in flag."""

from backend.clock import local_today
from backend.errors import ValidationError
from models import db, UserPreference
from services.validation_service import is_valid_timezone, parse_bool


def get_preferences(user_id):
    prefs = db.session.get(UserPreference, user_id)
    if prefs is None:
        prefs = UserPreference(user_id=user_id, timezone='UTC', email_notifications=False, theme='system')
    return prefs


def set_preferences(user_id, patch):
    """Apply a partial update; unspecified fields keep their stored value."""
    if not isinstance(patch, dict):
        raise ValidationError('Request body must be a JSON object')
    prefs = db.session.get(UserPreference, user_id)
    if prefs is None:
        prefs = UserPreference(user_id=user_id, timezone='UTC', email_notifications=False, theme='system')
        db.session.add(prefs)

    if 'timezone' in patch:
        tz_name = patch.get('timezone')
        if not is_valid_timezone(tz_name):
            raise ValidationError('timezone must be a valid IANA timezone name')
        prefs.timezone = tz_name
    if 'email' in patch:
        email = (patch.get('email') or '').strip() or None
        if email and '@' not in email:
            raise ValidationError('email must be a valid email address')
        prefs.email = email
    if 'email_notifications' in patch:
        prefs.email_notifications = parse_bool(patch.get('email_notifications'))
    if 'theme' in patch:
        theme = (patch.get('theme') or 'system').strip().lower()
        if theme not in ('light', 'dark', 'system'):
            raise ValidationError('theme must be light, dark, or system')
        prefs.theme = theme
    db.session.commit()
    return prefs


def get_users_for_timezones(timezones=None):
    """
    Opted-in users with an email address. With timezones=None every opted-in
    user is returned (the caller filters by local hour).
    """
    query = UserPreference.query.filter(
        UserPreference.email_notifications.is_(True),
        UserPreference.email.isnot(None),
    )
    if timezones is not None:
        if not timezones:
            return []
        query = query.filter(UserPreference.timezone.in_(list(timezones)))
    return [
        {'user_id': p.user_id, 'email': p.email, 'timezone': p.timezone}
        for p in query.order_by(UserPreference.user_id.asc()).all()
    ]


def today_for_user(user_id, now_utc=None):
    prefs = db.session.get(UserPreference, user_id)
    return local_today(prefs.timezone if prefs else None, now_utc)
