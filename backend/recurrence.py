"""Next-occurrence arithmetic for single-FREQ recurrence rules."""

import calendar
import re
from datetime import date, timedelta

RRULE_PATTERN = re.compile(r"^FREQ=(DAILY|WEEKLY|MONTHLY|YEARLY)(;[A-Z]+=[A-Za-z0-9,]+)*$")
MAX_INTERVAL = 999


def is_valid_rrule(rrule):
    return isinstance(rrule, str) and bool(RRULE_PATTERN.match(rrule))


def rrule_interval(rrule):
    """The INTERVAL value as written, 1 when absent, or None when it is not a whole number."""
    for chunk in (rrule or '').split(';'):
        key, _, value = chunk.partition('=')
        if key.strip().upper() == 'INTERVAL':
            value = value.strip()
            return int(value) if value.isdigit() else None
    return 1


def parse_rrule(rrule):
    """Split 'FREQ=MONTHLY;INTERVAL=3' into ('MONTHLY', 3). Unknown parts are ignored."""
    parts = {}
    for chunk in (rrule or '').split(';'):
        if '=' not in chunk:
            continue
        key, value = chunk.split('=', 1)
        parts[key.strip().upper()] = value.strip()
    freq = parts.get('FREQ', '').upper()
    try:
        interval = int(parts.get('INTERVAL') or 1)
    except (TypeError, ValueError):
        interval = 1
    return freq, max(interval, 1)


def _add_months(day_value, months):
    month_index = day_value.month - 1 + months
    year = day_value.year + month_index // 12
    month = month_index % 12 + 1
    _, last_dom = calendar.monthrange(year, month)
    return date(year, month, min(day_value.day, last_dom))


def next_occurrence(rrule, current_due):
    """
    Return the due date one interval after current_due, or None when the
    frequency is not recognized or the step runs past the last representable
    date. Month and year steps clamp to the last day of the target month
    (Jan 31 + 1 month -> Feb 28/29).
    """
    freq, interval = parse_rrule(rrule)
    try:
        if freq == 'DAILY':
            return current_due + timedelta(days=interval)
        if freq == 'WEEKLY':
            return current_due + timedelta(weeks=interval)
        if freq == 'MONTHLY':
            return _add_months(current_due, interval)
        if freq == 'YEARLY':
            return _add_months(current_due, 12 * interval)
    except (ValueError, OverflowError):
        return None
    return None


def describe_recurrence(rrule):
    """Short label for list views."""
    if not rrule:
        return None
    freq, interval = parse_rrule(rrule)
    if freq == 'WEEKLY':
        return 'Weekly'
    if freq == 'MONTHLY' and interval == 3:
        return 'Quarterly'
    if freq == 'MONTHLY':
        return 'Monthly'
    if freq == 'YEARLY':
        return 'Yearly'
    if freq == 'DAILY':
        return 'Daily'
    return 'Recurring'
