"""
Timezone utility functions for the Prode application

Datetimes are stored as naive UTC; these helpers convert at the edges.
"""

from datetime import datetime, timezone

import pytz
from flask import current_app


def get_app_timezone():
    """Get the application's configured timezone"""
    try:
        timezone_name = current_app.config.get("TIMEZONE", "UTC")
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        return pytz.UTC


def get_utc_time():
    """Get current time in UTC"""
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """Return an aware UTC datetime, treating naive values as UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_naive_utc(dt):
    """Convert to the naive UTC form used for storage"""
    if dt is None:
        return None
    return ensure_utc(dt).replace(tzinfo=None)


def convert_to_app_timezone(dt):
    """Convert a stored (naive UTC) datetime to the application's timezone"""
    if dt is None:
        return None
    return ensure_utc(dt).astimezone(get_app_timezone())


def convert_to_utc(dt):
    """Convert a datetime to UTC"""
    if dt is None:
        return None

    # If datetime is naive, assume it's in the application timezone
    if dt.tzinfo is None:
        dt = get_app_timezone().localize(dt)

    return dt.astimezone(timezone.utc)
