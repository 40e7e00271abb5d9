"""
Hourly reminder email tick.

Each tick picks the users for whom it is currently REMINDER_EMAIL_HOUR local
time, walks every reminder visible to them, and emails the occurrences that
are inside their advance-notice window and not yet handled. A send-log row per
(user, reminder, occurrence) keeps re-runs from emailing twice; a failed send
writes no log row, so the next tick retries it.
"""

import pytz
from flask import current_app
from sqlalchemy.exc import IntegrityError

from backend.action_tokens import issue_action_tokens
from backend.clock import utc_now
from backend.due_window import DUE_TODAY, classify_due, notification_skip_reason
from backend.email_service import (
    email_transport,
    reminder_subject,
    render_reminder_email_html,
    render_reminder_email_text,
    send_email,
)
from backend.preferences import get_users_for_timezones
from backend.reminder_service import visible_reminders_query
from models import db, Reminder, ReminderEmailLog, ReminderUserState

# UTC hour -> zones where it is 07:00 local at standard (non-DST) offsets.
# Only used with REMINDER_TIMEZONE_MODE=fixed; it drifts by an hour during DST.
TIMEZONES_BY_7AM_UTC = {
    7: ['Europe/London', 'Europe/Dublin', 'Africa/Casablanca'],
    6: ['Europe/Paris', 'Europe/Berlin', 'Europe/Madrid', 'Africa/Lagos'],
    5: ['Europe/Helsinki', 'Africa/Cairo', 'Europe/Athens'],
    4: ['Europe/Moscow', 'Asia/Kuwait', 'Africa/Nairobi'],
    3: ['Asia/Dubai', 'Asia/Muscat'],
    2: ['Asia/Karachi', 'Asia/Tashkent'],
    1: ['Asia/Dhaka', 'Asia/Almaty', 'Asia/Kolkata'],
    0: ['Asia/Bangkok', 'Asia/Jakarta', 'Asia/Ho_Chi_Minh'],
    23: ['Asia/Shanghai', 'Asia/Singapore', 'Asia/Hong_Kong', 'Australia/Perth'],
    22: ['Asia/Tokyo', 'Asia/Seoul'],
    21: ['Australia/Sydney', 'Australia/Melbourne', 'Pacific/Guam'],
    20: ['Pacific/Noumea', 'Asia/Vladivostok'],
    19: ['Pacific/Auckland', 'Pacific/Fiji'],
    18: ['Pacific/Midway', 'Pacific/Pago_Pago'],
    17: ['Pacific/Honolulu'],
    16: ['America/Anchorage'],
    15: ['America/Los_Angeles', 'America/Vancouver', 'America/Tijuana'],
    14: ['America/Denver', 'America/Phoenix'],
    13: ['America/Chicago', 'America/Mexico_City'],
    12: ['America/New_York', 'America/Toronto', 'America/Bogota'],
    11: ['America/Halifax', 'America/Caracas'],
    10: ['America/Sao_Paulo', 'America/Buenos_Aires'],
    9: ['Atlantic/South_Georgia'],
    8: ['Atlantic/Azores', 'Atlantic/Cape_Verde'],
}


def timezones_for_utc_hour(utc_hour):
    return list(TIMEZONES_BY_7AM_UTC.get(utc_hour, []))


def _local_moment(tz_name, now_utc):
    try:
        tz = pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        return None
    return pytz.UTC.localize(now_utc).astimezone(tz)


def users_due_now(now_utc):
    """
    Opted-in users whose local time is in the send hour, each with their local
    'today'. In fixed mode the static table picks the zones and 'today' is
    still taken from the user's own zone.
    """
    mode = current_app.config.get('REMINDER_TIMEZONE_MODE', 'local')
    send_hour = int(current_app.config.get('REMINDER_EMAIL_HOUR', 7))

    if mode == 'fixed':
        zones = timezones_for_utc_hour(now_utc.hour)
        if not zones:
            return []
        candidates = get_users_for_timezones(zones)
    else:
        candidates = get_users_for_timezones()

    due = []
    for user in candidates:
        local = _local_moment(user['timezone'], now_utc)
        if local is None:
            current_app.logger.warning("User %s has unknown timezone %s; skipping", user['user_id'], user['timezone'])
            continue
        if mode != 'fixed' and local.hour != send_hour:
            continue
        due.append(dict(user, today=local.date()))
    return due


def _already_sent(user_id, reminder_id, occurrence_date):
    return ReminderEmailLog.query.filter_by(
        user_id=user_id, reminder_id=reminder_id, occurrence_date=occurrence_date
    ).first() is not None


def _record_send(user_id, reminder_id, occurrence_date, now):
    db.session.add(ReminderEmailLog(
        user_id=user_id, reminder_id=reminder_id, occurrence_date=occurrence_date, sent_at=now
    ))
    try:
        db.session.commit()
    except IntegrityError:
        # An overlapping tick logged this occurrence first
        db.session.rollback()
        current_app.logger.info(
            "Send log for user %s reminder %s occurrence %s already present", user_id, reminder_id, occurrence_date
        )


def process_reminder(user, reminder, today, base_url, now):
    """Returns 'sent', 'skipped', or 'failed'."""
    status = classify_due(today, reminder.next_due, reminder.advance_notice_days)
    state = ReminderUserState.query.filter_by(
        user_id=user['user_id'], reminder_id=reminder.id, occurrence_date=reminder.next_due
    ).first()
    sent_before = _already_sent(user['user_id'], reminder.id, reminder.next_due)
    reason = notification_skip_reason(status, state, sent_before)
    if reason:
        return 'skipped'

    occurrence_date = reminder.next_due
    is_due_today = status == DUE_TODAY
    tokens = issue_action_tokens(user['user_id'], reminder.id, occurrence_date)
    db.session.commit()

    doc = reminder.document
    data = {
        'title': reminder.title,
        'description': reminder.description,
        'next_due': occurrence_date,
        'doc_title': doc.title if doc else None,
        'doc_url': f'/docs/{doc.slug}' if doc else None,
    }
    action_urls = {
        'snooze': f"{base_url}/api/email-action/{tokens['snooze']}",
        'ignore': f"{base_url}/api/email-action/{tokens['ignore']}",
        'dashboard': base_url,
    }

    sent = send_email(
        user['email'],
        reminder_subject(reminder.title, is_due_today),
        render_reminder_email_html(data, action_urls, is_due_today),
        render_reminder_email_text(data, action_urls, is_due_today),
    )
    if not sent:
        current_app.logger.error(
            "Failed to send reminder email to user %s for reminder %s occurrence %s",
            user['user_id'], reminder.id, occurrence_date,
        )
        return 'failed'

    _record_send(user['user_id'], reminder.id, occurrence_date, now)
    current_app.logger.info(
        "Sent reminder email to user %s for reminder %s occurrence %s", user['user_id'], reminder.id, occurrence_date
    )
    return 'sent'


def process_user(user, base_url, now, stats):
    reminders = visible_reminders_query(user['user_id']).order_by(Reminder.next_due.asc()).all()
    for reminder in reminders:
        reminder_id = reminder.id
        occurrence_date = reminder.next_due
        try:
            outcome = process_reminder(user, reminder, user['today'], base_url, now)
        except Exception:
            db.session.rollback()
            current_app.logger.exception(
                "Error processing reminder %s occurrence %s for user %s", reminder_id, occurrence_date, user['user_id']
            )
            outcome = 'failed'
        stats[outcome] += 1


def run_reminder_tick(now=None):
    """Run one hourly pass. Returns counters for logging and the manual trigger route."""
    now = now or utc_now()
    stats = {'utc_hour': now.hour, 'users': 0, 'sent': 0, 'skipped': 0, 'failed': 0}

    if email_transport() is None:
        current_app.logger.error("No email transport configured; skipping reminder email tick")
        stats['disabled'] = True
        return stats

    users = users_due_now(now)
    if not users:
        current_app.logger.info("No users at send hour for UTC hour %s", now.hour)
        return stats

    base_url = current_app.config.get('HUB_BASE_URL', '').rstrip('/')
    stats['users'] = len(users)
    current_app.logger.info("Processing reminder emails for %s users", len(users))
    for user in users:
        try:
            process_user(user, base_url, now, stats)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Error processing reminders for user %s", user['user_id'])
            stats['failed'] += 1

    current_app.logger.info(
        "Reminder tick done: sent=%s skipped=%s failed=%s", stats['sent'], stats['skipped'], stats['failed']
    )
    return stats
