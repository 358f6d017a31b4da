from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ConfigurationError

_WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


def parse_time(value):
    text = str(value).strip()
    parts = text.split(":")
    try:
        hour = int(parts[0])
        minute = int(parts[1]) if len(parts) > 1 else 0
        second = int(parts[2]) if len(parts) > 2 else 0
    except ValueError as exc:
        raise ConfigurationError(f"Invalid time value: {value}") from exc

    if len(parts) > 3 or not (0 <= hour <= 23 and 0 <= minute <= 59 and 0 <= second <= 59):
        raise ConfigurationError(f"Invalid time value: {value}")

    return time(hour, minute, second)


def parse_days(value):
    if value is None:
        return set()
    if isinstance(value, str):
        value = value.split(",")
    days = set()
    for item in value:
        token = str(item).strip().lower()[:3]
        if token in _WEEKDAYS:
            days.add(token)
    return days


def load_zone(name):
    try:
        return ZoneInfo(str(name).strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown timezone: {name}") from exc


def _weekday_token(day):
    return _WEEKDAYS[day.weekday()]


def _window_for(day, start, end, zone):
    window_start = datetime.combine(day, start, tzinfo=zone)
    window_end = datetime.combine(day, end, tzinfo=zone)
    if window_end < window_start:
        window_end = datetime.combine(day + timedelta(days=1), end, tzinfo=zone)
    return window_start.astimezone(timezone.utc), window_end.astimezone(timezone.utc)


def is_in_range(starttime, endtime, timezone_name, days, now=None):
    """Return True when ``now`` falls inside the schedule's active window.

    The window is ``[start, end)`` in the schedule's own zone. A window whose
    end is earlier than its start runs past midnight and belongs to the day it
    started on, so ``22:00-06:00`` on a Wednesday still covers Thursday 02:00.
    A window with identical start and end is never active.
    """
    zone = load_zone(timezone_name)
    start = parse_time(starttime)
    end = parse_time(endtime)
    if start == end:
        return False

    active_days = parse_days(days)
    if not active_days:
        return False

    if now is None:
        now = datetime.now(tz=zone)
    elif now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    local_now = now.astimezone(zone)
    instant = local_now.astimezone(timezone.utc)

    today = local_now.date()
    if _weekday_token(today) in active_days:
        window_start, window_end = _window_for(today, start, end, zone)
        if window_start <= instant < window_end:
            return True

    # carry-over from a midnight-spanning window that began yesterday
    if end < start:
        yesterday = today - timedelta(days=1)
        if _weekday_token(yesterday) in active_days:
            window_start, window_end = _window_for(yesterday, start, end, zone)
            if window_start <= instant < window_end:
                return True

    return False
