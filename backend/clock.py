from datetime import datetime

import pytz
from flask import current_app


def utc_now():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(pytz.UTC).replace(tzinfo=None)


def resolve_timezone(tz_name=None):
    name = tz_name or current_app.config.get('DEFAULT_TIMEZONE', 'UTC')
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        current_app.logger.warning("Unknown timezone %s; falling back to UTC", name)
        return pytz.UTC


def local_now(tz_name=None, now_utc=None):
    tz = resolve_timezone(tz_name)
    moment = now_utc or utc_now()
    return pytz.UTC.localize(moment).astimezone(tz)


def local_today(tz_name=None, now_utc=None):
    return local_now(tz_name, now_utc).date()
