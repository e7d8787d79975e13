"""
Monthly point-award budget for staff.

Each admin may hand out at most ``monthly_award_limit`` points per calendar
month. The used counter is never swept: when the stored ``last_reset_month``
is not the current month the counter simply reads as zero, and it is only
rewritten when an award succeeds.
"""

from collections import namedtuple
from datetime import datetime, timezone

POINTS_PER_DOLLAR = 10
DEFAULT_MONTHLY_AWARD_LIMIT = 1000

AwardDecision = namedtuple('AwardDecision', ['allowed', 'message', 'used', 'month', 'remaining'])


def current_month(now=None, tz=None):
    """Return the ``YYYY-MM`` month for ``now`` in the school timezone."""
    if now is None:
        now = datetime.now(timezone.utc)
    if tz is not None:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        now = now.astimezone(tz)
    return now.strftime('%Y-%m')


def effective_used(points_awarded_this_month, last_reset_month, month):
    """Used points for ``month``; a counter from an earlier month reads as zero."""
    if last_reset_month != month:
        return 0
    return points_awarded_this_month or 0


def effective_limit(monthly_award_limit):
    """An unset or zero limit falls back to the default budget."""
    return monthly_award_limit or DEFAULT_MONTHLY_AWARD_LIMIT


def remaining_budget(monthly_award_limit, points_awarded_this_month, last_reset_month, now=None, tz=None):
    limit = effective_limit(monthly_award_limit)
    used = effective_used(points_awarded_this_month, last_reset_month, current_month(now, tz))
    return max(0, limit - used)


def check_award(monthly_award_limit, points_awarded_this_month, last_reset_month, requested, now=None, tz=None):
    """
    Decide whether an award of ``requested`` points fits in this month's budget.

    Args:
        monthly_award_limit: Admin's monthly limit in points (None or 0 -> default).
        points_awarded_this_month: Stored used counter.
        last_reset_month: ``YYYY-MM`` the stored counter belongs to.
        requested: Points to award.
        now: Wall-clock time, defaults to the current UTC time.
        tz: School timezone for deciding the month.

    Returns:
        AwardDecision: ``allowed`` plus a display message. When allowed,
        ``used`` and ``month`` are the values the caller must persist as
        ``points_awarded_this_month`` and ``last_reset_month``.
    """
    limit = effective_limit(monthly_award_limit)
    month = current_month(now, tz)
    used = effective_used(points_awarded_this_month, last_reset_month, month)

    if used + requested > limit:
        remaining = limit - used
        return AwardDecision(
            False,
            f"Monthly budget exceeded. You have ${remaining / POINTS_PER_DOLLAR:.2f} remaining.",
            used,
            month,
            remaining,
        )

    new_used = used + requested
    return AwardDecision(True, "Award within budget.", new_used, month, limit - new_used)
