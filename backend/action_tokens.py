"""
One-click email action tokens. Issued in snooze/ignore pairs when a
notification goes out; each is redeemable once, until its expiry.
"""

import secrets
from datetime import datetime, time, timedelta

from flask import current_app

from backend.clock import local_today, utc_now
from backend.errors import InvalidStateError, NotFoundError
from backend.reminder_service import resolve_occurrence, set_occurrence_flags
from models import db, EmailActionToken, Reminder, UserPreference

ACTION_SNOOZE = 'snooze'
ACTION_IGNORE = 'ignore'
ACTIONS = (ACTION_SNOOZE, ACTION_IGNORE)

SUCCESS_MESSAGES = {
    ACTION_SNOOZE: "You've snoozed this reminder. You'll receive one final email on the due date.",
    ACTION_IGNORE: "You've ignored this occurrence. You won't receive any more emails about it.",
}


def generate_token():
    # 192 bits, URL-safe
    return secrets.token_urlsafe(24)


def token_expiry(occurrence_date, ttl_days=None):
    ttl_days = ttl_days if ttl_days is not None else current_app.config.get('ACTION_TOKEN_TTL_DAYS', 7)
    return datetime.combine(occurrence_date + timedelta(days=ttl_days), time.min)


def issue_action_tokens(user_id, reminder_id, occurrence_date):
    """Persist a fresh snooze + ignore pair and return {action: token}. Does not commit."""
    expires_at = token_expiry(occurrence_date)
    tokens = {}
    for action in ACTIONS:
        token = generate_token()
        db.session.add(EmailActionToken(
            token=token,
            user_id=user_id,
            reminder_id=reminder_id,
            occurrence_date=occurrence_date,
            action=action,
            expires_at=expires_at,
            created_at=utc_now(),
        ))
        tokens[action] = token
    db.session.flush()
    return tokens


def _today_for(user_id, now):
    prefs = db.session.get(UserPreference, user_id)
    return local_today(prefs.timezone if prefs else None, now)


def claim_token(token, now):
    """Mark the token used unless another redeemer got there first. Does not commit."""
    claimed = EmailActionToken.query.filter(
        EmailActionToken.token == token,
        EmailActionToken.used_at.is_(None),
    ).update({'used_at': now}, synchronize_session=False)
    return claimed == 1


def redeem_action_token(token, now=None):
    """
    Apply the token's action and mark it used in one transaction. Raises
    NotFoundError for unknown tokens and InvalidStateError for used, expired,
    or no-longer-valid snooze tokens. Returns (token_row, reminder_title).
    """
    now = now or utc_now()
    row = db.session.get(EmailActionToken, token) if token else None
    if row is None:
        raise NotFoundError('Invalid or expired link')
    if row.used_at is not None:
        raise InvalidStateError('This action has already been performed')
    if now > row.expires_at:
        raise InvalidStateError('This link has expired')
    if row.action not in ACTIONS:
        raise InvalidStateError('Invalid or unsupported action link')

    reminder = db.session.get(Reminder, row.reminder_id)
    if reminder is None:
        raise NotFoundError('This reminder no longer exists')

    if row.action == ACTION_SNOOZE and row.occurrence_date == _today_for(row.user_id, now):
        raise InvalidStateError('Cannot snooze a reminder that is due today. You can still ignore it.')

    if not claim_token(token, now):
        db.session.rollback()
        raise InvalidStateError('This action has already been performed')

    try:
        if row.action == ACTION_SNOOZE:
            set_occurrence_flags(row.user_id, row.reminder_id, row.occurrence_date, snoozed=True)
        else:
            resolve_occurrence(row.user_id, reminder, 'ignored', row.occurrence_date, now)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Email action %s applied for user %s reminder %s occurrence %s",
        row.action, row.user_id, row.reminder_id, row.occurrence_date,
    )
    return row, reminder.title
