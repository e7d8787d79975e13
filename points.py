"""
Daily attendance points for Cougar Cash.

Points for a school day come from the weekday schedule unless a calendar
override for that date says otherwise.
"""

import calendar
from collections import namedtuple
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP

DayPoints = namedtuple('DayPoints', ['points', 'reason', 'classification'])

SPECIAL_EVENT_BASE_POINTS = 5

# weekday() -> (points, reason, classification); Saturday/Sunday are handled separately
WEEKDAY_SCHEDULE = {
    0: (2, "Motivation Monday", 'standard_low'),
    1: (1, "Daily Attendance", 'standard_low'),
    2: (1, "Daily Attendance", 'standard_low'),
    3: (1, "Daily Attendance", 'standard_low'),
    4: (5, "Focus Friday", 'standard_high'),
}


def parse_local_date(value):
    """
    Return a ``date`` for a ``YYYY-MM-DD`` string (or pass dates through).

    The string is split into its calendar components instead of going through
    a timestamp parse, so the weekday never shifts with the server's UTC offset.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    year, month, day = (int(part) for part in str(value).strip().split('-'))
    return date(year, month, day)


def _override_for(day, overrides):
    """Find the override for ``day`` in a dict keyed by date/ISO string or in an iterable of events."""
    if overrides is None:
        return None
    if isinstance(overrides, dict):
        return overrides.get(day) or overrides.get(day.isoformat())
    for event in overrides:
        if parse_local_date(_field(event, 'date')) == day:
            return event
    return None


def _nearest_point(value):
    """Round half away from zero (2.5 -> 3), not to even."""
    return int(Decimal(str(value)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def _field(event, name):
    if isinstance(event, dict):
        return event.get(name)
    return getattr(event, name, None)


def get_day_points(day, overrides=None):
    """
    Calculate the attendance points a date is worth.

    Precedence:
        1. ``no_school`` / ``break`` override -> 0 (beats weekends)
        2. ``override_points`` set -> that value
        3. ``special`` event or ``bonus_points`` -> (5 + bonus) * multiplier
        4. Weekday schedule: Mon 2, Tue-Thu 1, Fri 5, weekend 0

    Args:
        day: ``date`` or ``YYYY-MM-DD`` string.
        overrides: Calendar overrides, either a dict keyed by date or an
            iterable of objects/dicts with ``date`` and ``event_type``.

    Returns:
        DayPoints: ``(points, reason, classification)``
    """
    day = parse_local_date(day)
    event = _override_for(day, overrides)

    if event is not None:
        event_type = _field(event, 'event_type')
        title = _field(event, 'title')

        if event_type == 'no_school':
            return DayPoints(0, title or "No School", 'no_school')
        if event_type == 'break':
            return DayPoints(0, title or "Holiday Break", 'break')

        override_points = _field(event, 'override_points')
        if override_points is not None:
            return DayPoints(int(override_points), title or "Manual Adjustment", 'custom')

        bonus = _field(event, 'bonus_points')
        if event_type == 'special' or bonus:
            multiplier = _field(event, 'point_multiplier') or 1
            total = (SPECIAL_EVENT_BASE_POINTS + (bonus or 0)) * multiplier
            return DayPoints(_nearest_point(total), f"Special Event: {title}", 'special')

    if day.weekday() >= 5:
        return DayPoints(0, "No School", 'weekend')

    points, reason, classification = WEEKDAY_SCHEDULE[day.weekday()]
    return DayPoints(points, reason, classification)


def points_for_month(year, month, overrides=None):
    """Return ``[(date, DayPoints), ...]`` for every day of the month."""
    _, days_in_month = calendar.monthrange(year, month)
    results = []
    for day_number in range(1, days_in_month + 1):
        day = date(year, month, day_number)
        results.append((day, get_day_points(day, overrides)))
    return results
