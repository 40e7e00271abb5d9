"""
iCalendar (RFC 5545) subscription feed and the per-user tokens that unlock it.
"""

import secrets
from datetime import timedelta

from flask import current_app

from backend.clock import utc_now
from backend.reminder_service import visible_reminders_query
from backend.storage import upsert
from models import db, CalendarToken, Reminder

CRLF = '\r\n'
MAX_LINE_OCTETS = 75
PRODID = '-//Hub//Reminders//EN'


def escape_ical_text(value):
    """TEXT value escaping: backslash first, then ; , and newlines."""
    if not value:
        return ''
    return (
        value.replace('\\', '\\\\')
        .replace(';', '\\;')
        .replace(',', '\\,')
        .replace('\r\n', '\\n')
        .replace('\n', '\\n')
        .replace('\r', '\\n')
    )


def fold_line(line):
    """
    Split a content line into 75-octet chunks; continuation lines start with a
    single space, which counts toward their 75. Multi-byte characters are never
    split across chunks.
    """
    if len(line.encode('utf-8')) <= MAX_LINE_OCTETS:
        return line

    chunks = []
    current = ''
    current_octets = 0
    limit = MAX_LINE_OCTETS
    for char in line:
        size = len(char.encode('utf-8'))
        if current_octets + size > limit:
            chunks.append(current)
            current = ''
            current_octets = 0
            limit = MAX_LINE_OCTETS - 1
        current += char
        current_octets += size
    chunks.append(current)
    return (CRLF + ' ').join(chunks)


def _format_date(value):
    return value.strftime('%Y%m%d')


def _format_stamp(value):
    return value.strftime('%Y%m%dT%H%M%SZ')


def _uid_domain(base_url):
    host = base_url.split('://', 1)[-1].split('/', 1)[0].split(':', 1)[0]
    return host or 'hub.local'


def render_event(reminder, base_url, now):
    domain = _uid_domain(base_url)
    lines = [
        'BEGIN:VEVENT',
        f'UID:reminder-{reminder.id}@{domain}',
        f'DTSTAMP:{_format_stamp(reminder.updated_at or now)}',
        f'DTSTART;VALUE=DATE:{_format_date(reminder.next_due)}',
        f'DTEND;VALUE=DATE:{_format_date(reminder.next_due + timedelta(days=1))}',
        f'SUMMARY:{escape_ical_text(reminder.title)}',
    ]

    description = escape_ical_text(reminder.description)
    doc = reminder.document
    if doc is not None:
        doc_line = f'Document: {base_url}/docs/{doc.slug}'
        description = f'{description}\\n\\n{doc_line}' if description else doc_line
    if description:
        lines.append(f'DESCRIPTION:{description}')

    if reminder.rrule:
        lines.append(f'RRULE:{reminder.rrule}')

    if reminder.advance_notice_days and reminder.advance_notice_days > 0:
        lines.extend([
            'BEGIN:VALARM',
            f'TRIGGER:-P{reminder.advance_notice_days}D',
            'ACTION:DISPLAY',
            f'DESCRIPTION:Reminder: {escape_ical_text(reminder.title)}',
            'END:VALARM',
        ])
    lines.append('END:VEVENT')
    return lines


def render_calendar(reminders, base_url, now=None, calendar_name=None):
    """Whole VCALENDAR document as a CRLF-terminated string."""
    now = now or utc_now()
    base_url = (base_url or '').rstrip('/')
    lines = [
        'BEGIN:VCALENDAR',
        'VERSION:2.0',
        f'PRODID:{PRODID}',
        'CALSCALE:GREGORIAN',
        'METHOD:PUBLISH',
        f'X-WR-CALNAME:{escape_ical_text(calendar_name or "Hub Reminders")}',
        'REFRESH-INTERVAL;VALUE=DURATION:PT1H',
        'X-PUBLISHED-TTL:PT1H',
    ]
    for reminder in reminders:
        lines.extend(render_event(reminder, base_url, now))
    lines.append('END:VCALENDAR')
    return CRLF.join(fold_line(line) for line in lines) + CRLF


def build_feed_for_user(user_id, now=None):
    reminders = visible_reminders_query(user_id).order_by(Reminder.next_due.asc(), Reminder.id.asc()).all()
    config = current_app.config
    return render_calendar(
        reminders,
        config.get('HUB_BASE_URL', ''),
        now=now,
        calendar_name=config.get('CALENDAR_NAME'),
    )


# --- Subscription tokens ---

def generate_calendar_token():
    return secrets.token_hex(32)


def subscription_url(token):
    base_url = current_app.config.get('HUB_BASE_URL', '').rstrip('/')
    return f'{base_url}/calendar.ics?token={token}'


def get_or_create_calendar_token(user_id):
    row = db.session.get(CalendarToken, user_id)
    if row:
        return row.token
    token = generate_calendar_token()
    # A concurrent first request may have inserted already; keep whichever landed
    upsert(CalendarToken, {'user_id': user_id}, {'user_id': user_id}, {'token': token, 'created_at': utc_now()})
    db.session.commit()
    db.session.expire_all()
    return db.session.get(CalendarToken, user_id).token


def regenerate_calendar_token(user_id):
    """Replace the user's token; the previous feed URL stops working immediately."""
    token = generate_calendar_token()
    now = utc_now()
    upsert(CalendarToken, {'user_id': user_id}, {'token': token, 'created_at': now})
    db.session.commit()
    current_app.logger.info("Calendar token regenerated for user %s", user_id)
    return token


def resolve_calendar_token(token):
    """User id for a subscription token, or None."""
    if not token:
        return None
    row = CalendarToken.query.filter_by(token=token).first()
    return row.user_id if row else None
