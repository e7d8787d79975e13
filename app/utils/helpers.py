"""
Common utility functions for Cougar Cash.

This module provides reusable helper functions for:
- Date/time handling (UTC ISO-8601 output, school-local "now")
- Point/dollar conversion
- Request value parsing
- Markdown to HTML conversion with sanitization
"""

from datetime import date, datetime, timezone

import bleach
import markdown
import pytz
from flask import current_app
from markupsafe import Markup

from app.utils.constants import POINTS_PER_DOLLAR
from points import parse_local_date


def format_utc_iso(dt):
    """Return a UTC ISO-8601 string (with trailing Z) for a datetime or None."""
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def format_date(value):
    return value.isoformat() if value else None


def get_school_timezone():
    """Return the configured school timezone, falling back to Los Angeles."""
    tz_name = current_app.config.get('SCHOOL_TIMEZONE') or 'America/Los_Angeles'
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        current_app.logger.warning(f"Invalid SCHOOL_TIMEZONE '{tz_name}', defaulting to LA.")
        return pytz.timezone('America/Los_Angeles')


def school_now():
    """Current time as an aware datetime in the school timezone."""
    return datetime.now(timezone.utc).astimezone(get_school_timezone())


def school_today():
    return school_now().date()


def points_to_dollars(points):
    return round((points or 0) / POINTS_PER_DOLLAR, 2)


def dollars_to_points(amount):
    """Convert a dollar amount (str/float) to whole points."""
    return int(round(float(amount) * POINTS_PER_DOLLAR))


def format_dollars(points):
    return f"${(points or 0) / POINTS_PER_DOLLAR:.2f}"


def parse_date_value(value):
    """
    Parse an optional ``YYYY-MM-DD`` request value.

    Returns None for empty values; raises ValueError for malformed ones.
    """
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    return parse_local_date(value)


def parse_datetime_value(value):
    """Parse an optional ISO-8601 timestamp; naive values are taken as UTC."""
    if value in (None, ''):
        return None
    dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_optional_int(value):
    if value in (None, ''):
        return None
    return int(value)


def parse_optional_float(value):
    if value in (None, ''):
        return None
    return float(value)


def as_utc(dt):
    """Ensure a datetime read back from the database is timezone-aware UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def render_markdown(text):
    """
    Convert Markdown text to sanitized HTML.

    Used for announcement bodies. Supports headers, emphasis, lists, links,
    tables and blockquotes; everything else is stripped.

    Args:
        text: Markdown formatted text string

    Returns:
        Markup object containing sanitized HTML
    """
    if not text:
        return Markup('')

    md = markdown.Markdown(extensions=[
        'extra',          # Tables, fenced code blocks, abbreviations, attr_list
        'nl2br',          # Convert newlines to <br> tags
        'sane_lists',
    ])
    html = md.convert(text)

    allowed_tags = [
        'p', 'br', 'span',
        'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
        'strong', 'em', 'u', 's', 'del', 'code', 'pre',
        'ul', 'ol', 'li',
        'a',
        'table', 'thead', 'tbody', 'tr', 'th', 'td',
        'blockquote',
        'hr',
    ]

    allowed_attributes = {
        'a': ['href', 'title', 'rel'],
        'th': ['align'],
        'td': ['align'],
    }

    cleaner = bleach.Cleaner(
        tags=allowed_tags,
        attributes=allowed_attributes,
        protocols=['http', 'https', 'mailto'],
        strip=True,
        strip_comments=True,
    )
    return Markup(cleaner.clean(html))
