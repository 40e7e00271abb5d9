import re
from datetime import date, datetime

import pytz

from backend.errors import ValidationError
from backend.recurrence import MAX_INTERVAL, is_valid_rrule, rrule_interval

TITLE_MAX_CHARS = 100
DESCRIPTION_MAX_CHARS = 500
ADVANCE_NOTICE_MAX_DAYS = 365
DEFAULT_ADVANCE_NOTICE_DAYS = 7

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ["1", "true", "yes", "on"]


def parse_day_value(raw):
    """Parse a strict YYYY-MM-DD string into a date; return None on failure."""
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str) or not DATE_PATTERN.match(raw):
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_advance_notice_days(raw):
    if isinstance(raw, bool):
        return None
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    if not isinstance(raw, int):
        return None
    if not (0 <= raw <= ADVANCE_NOTICE_MAX_DAYS):
        return None
    return raw


def is_valid_timezone(name):
    return isinstance(name, str) and name in pytz.all_timezones_set


def validate_reminder_payload(data, partial=False):
    """
    Validate and normalize reminder fields. With partial=True only the keys
    present in data are checked (update semantics). Raises ValidationError on
    the first violated constraint; returns a dict of cleaned values.
    """
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    cleaned = {}

    if not partial and (not data.get('title') or not data.get('next_due')):
        raise ValidationError('Title and next_due are required')

    if 'title' in data:
        title = data.get('title')
        if not isinstance(title, str) or not title.strip():
            raise ValidationError('Title is required')
        if len(title) > TITLE_MAX_CHARS:
            raise ValidationError(f'Title must not exceed {TITLE_MAX_CHARS} characters')
        cleaned['title'] = title.strip()

    if 'description' in data:
        description = data.get('description')
        if description is not None and not isinstance(description, str):
            raise ValidationError('Description must be a string')
        if description and len(description) > DESCRIPTION_MAX_CHARS:
            raise ValidationError(f'Description must not exceed {DESCRIPTION_MAX_CHARS} characters')
        cleaned['description'] = description or None

    if 'next_due' in data:
        next_due = parse_day_value(data.get('next_due'))
        if next_due is None:
            raise ValidationError('next_due must be in YYYY-MM-DD format')
        cleaned['next_due'] = next_due

    if 'rrule' in data:
        rrule = data.get('rrule')
        if rrule and not is_valid_rrule(rrule):
            raise ValidationError('Invalid RRULE format. Must be a valid RFC 5545 recurrence rule.')
        if rrule:
            interval = rrule_interval(rrule)
            if interval is None or not 1 <= interval <= MAX_INTERVAL:
                raise ValidationError(f'RRULE INTERVAL must be an integer between 1 and {MAX_INTERVAL}')
        cleaned['rrule'] = rrule or None

    if 'advance_notice_days' in data:
        days = parse_advance_notice_days(data.get('advance_notice_days'))
        if days is None:
            raise ValidationError(
                f'advance_notice_days must be an integer between 0 and {ADVANCE_NOTICE_MAX_DAYS}'
            )
        cleaned['advance_notice_days'] = days
    elif not partial:
        cleaned['advance_notice_days'] = DEFAULT_ADVANCE_NOTICE_DAYS

    if 'doc_id' in data:
        doc_id = data.get('doc_id')
        if doc_id in (None, ''):
            cleaned['doc_id'] = None
        else:
            try:
                cleaned['doc_id'] = int(doc_id)
            except (TypeError, ValueError):
                raise ValidationError('doc_id must be an integer')

    if 'is_global' in data:
        cleaned['is_global'] = parse_bool(data.get('is_global'))
    elif not partial:
        cleaned['is_global'] = False

    return cleaned
