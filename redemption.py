"""
Scan-time redemption rules for purchased vouchers and passes.

A purchase record carries exactly one validity regime, chosen when it is
bought. ``classify_redemption`` finds the record a scanned code belongs to and
decides whether the scan is valid, returning the field changes the caller must
save. Nothing here touches the database.
"""

import enum
from collections import namedtuple
from datetime import datetime, time, timedelta, timezone

ATHLETIC_PASS_CATEGORY = 'Athletic Pass'

RedemptionResult = namedtuple('RedemptionResult', ['success', 'message', 'record', 'changes'])


class ValidityRegime(enum.Enum):
    ONE_SHOT = 'one_shot'
    DURATION_WINDOW = 'duration_window'
    FIXED_WINDOW = 'fixed_window'
    ATHLETIC_PASS = 'athletic_pass'


class FulfillmentStatus(enum.Enum):
    PENDING = 'pending'
    READY = 'ready'
    FULFILLED = 'fulfilled'


def regime_for_item(category=None, duration_days=None, start_date=None, end_date=None):
    """
    Pick the validity regime for a new purchase from its store item settings.

    Athletic passes win over everything, then a positive duration, then a
    complete start/end pair. Anything else is a one-shot voucher.
    """
    if category == ATHLETIC_PASS_CATEGORY:
        return ValidityRegime.ATHLETIC_PASS
    if duration_days and duration_days > 0:
        return ValidityRegime.DURATION_WINDOW
    if start_date and end_date:
        return ValidityRegime.FIXED_WINDOW
    return ValidityRegime.ONE_SHOT


def _as_utc(dt):
    """Ensure a datetime is timezone-aware and in UTC (naive values are taken as UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _localize(tz, naive):
    # pytz zones need localize() to pick the right DST offset
    if hasattr(tz, 'localize'):
        return tz.localize(naive)
    return naive.replace(tzinfo=tz)


def start_of_day(day, tz):
    return _as_utc(_localize(tz, datetime.combine(day, time.min)))


def end_of_day(day, tz):
    """Last instant (23:59:59.999999 local) of ``day``."""
    return _as_utc(_localize(tz, datetime.combine(day, time.max)))


def _matches(record, code):
    if record.code == code:
        return True
    return bool(record.external_barcode) and record.external_barcode == code


def find_record(code, records):
    """Return the first record whose code or external barcode equals ``code``."""
    for record in records:
        if _matches(record, code):
            return record
    return None


def _fulfillment_status(record):
    status = record.fulfillment_status
    if status is None:
        return None
    return FulfillmentStatus(status)


def _classify_fulfillment(record):
    status = _fulfillment_status(record)
    changes = {'redeemed': True, 'fulfillment_status': FulfillmentStatus.FULFILLED}
    if status == FulfillmentStatus.PENDING:
        # Staff never marked it ready; the first scan still hands it over.
        return RedemptionResult(True, "Order fulfilled and picked up!", record, changes)
    if status == FulfillmentStatus.READY:
        return RedemptionResult(True, "Order picked up successfully!", record, changes)
    return None


def _classify_duration(record, now, tz):
    if record.redeemed:
        return RedemptionResult(False, "This pass has expired.", record, {})

    if record.activation_date is None:
        return RedemptionResult(
            True,
            f"Activated! Valid for {record.duration_days} days.",
            record,
            {'activation_date': now},
        )

    expiry = _as_utc(record.activation_date) + timedelta(days=record.duration_days)
    if now < expiry:
        local_expiry = expiry.astimezone(tz)
        return RedemptionResult(True, f"Active! Expires on {local_expiry.strftime('%m/%d/%Y')}.", record, {})

    return RedemptionResult(False, "Pass has expired.", record, {'redeemed': True})


def _classify_fixed_window(record, now, tz):
    if now < start_of_day(record.start_date, tz):
        return RedemptionResult(False, f"Not valid yet. Starts {record.start_date.isoformat()}.", record, {})
    if now > end_of_day(record.end_date, tz):
        return RedemptionResult(False, "Pass has expired.", record, {'redeemed': True})
    return RedemptionResult(True, f"Valid Pass! (Expires {record.end_date.isoformat()})", record, {})


def _classify_one_shot(record, now, tz):
    if record.expiration_date and end_of_day(record.expiration_date, tz) < now:
        return RedemptionResult(False, "Voucher expired.", record, {})
    if record.redeemed:
        return RedemptionResult(False, "Already used.", record, {})
    return RedemptionResult(True, f"Verified! Redeemed {record.item_name}.", record, {'redeemed': True})


def classify_redemption(code, records, now=None, tz=None):
    """
    Classify a scanned code against the roster's purchase records.

    Only the first record matching ``code`` (by code or external barcode) is
    evaluated. Athletic passes always pass; an unredeemed order awaiting
    fulfillment is handed over; otherwise the record's regime decides.

    Args:
        code: Scanned or typed code, matched exactly.
        records: Iterable of purchase records in roster order.
        now: Current time. Naive values are treated as UTC.
        tz: School timezone used for calendar-day boundaries. Defaults to
            the timezone of ``now`` (UTC when naive).

    Returns:
        RedemptionResult: ``(success, message, record, changes)`` where
        ``changes`` maps field names to new values. An empty dict means
        nothing needs saving.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if tz is None:
        tz = now.tzinfo or timezone.utc
    now = _as_utc(now)

    record = find_record(code, records)
    if record is None:
        return RedemptionResult(False, "Code not found.", None, {})

    regime = ValidityRegime(record.regime)

    if regime == ValidityRegime.ATHLETIC_PASS:
        return RedemptionResult(True, "Valid Athletic Pass", record, {})

    if record.requires_fulfillment and not record.redeemed:
        result = _classify_fulfillment(record)
        if result is not None:
            return result

    if regime == ValidityRegime.DURATION_WINDOW:
        return _classify_duration(record, now, tz)
    if regime == ValidityRegime.FIXED_WINDOW:
        return _classify_fixed_window(record, now, tz)
    return _classify_one_shot(record, now, tz)


def apply_changes(record, changes):
    """Copy a classification's field changes onto the record."""
    for field, value in changes.items():
        setattr(record, field, value)
    return record
