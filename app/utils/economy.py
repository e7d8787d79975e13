"""
Economy operations shared by the student and staff blueprints.

Every function here only stages changes on ``db.session``; the calling route
runs the save step (``save_snapshot``) and owns the rollback.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from app.extensions import db
from app.models import (
    AttendanceRecord, BuddyConflict, CalendarEvent, HallPass, HallPassLockout,
    Notification, PollVote, PurchaseRecord, Student, StudentGroup, StoreItem
)
from app.utils.codes import generate_hall_pass_code, generate_purchase_code
from app.utils.helpers import format_dollars, school_today
from award_budget import check_award, current_month
from points import get_day_points
from redemption import FulfillmentStatus, ValidityRegime, regime_for_item


@dataclass
class AttendanceSummary:
    """Outcome of recording one day's attendance."""
    date: str
    points: int
    reason: str
    present: int = 0
    absent: int = 0
    skipped: List[str] = field(default_factory=list)
    unknown: List[str] = field(default_factory=list)

    @property
    def processed(self):
        return self.present + self.absent

    def to_dict(self):
        return {
            'date': self.date,
            'points': self.points,
            'reason': self.reason,
            'processed': self.processed,
            'present': self.present,
            'absent': self.absent,
            'skipped': self.skipped,
            'unknown': self.unknown,
        }


# -------------------- POINTS & NOTIFICATIONS --------------------

def notify(student, title, message, kind='general'):
    note = Notification(student=student, title=title, message=message, kind=kind)
    db.session.add(note)
    return note


def post_points(student, points, reason, kind, admin=None, day=None, present=True, floor_at_zero=False):
    """
    Change a student's balance and append the matching ledger entry.

    With ``floor_at_zero`` the balance never drops below zero (manual
    deductions); the ledger still records the requested amount.
    """
    new_total = student.total_points + points
    if floor_at_zero:
        new_total = max(0, new_total)
    student.total_points = new_total

    record = AttendanceRecord(
        student=student,
        date=day or school_today(),
        present=present,
        points_awarded=points,
        reason=reason,
        kind=kind,
        awarded_by=admin.id if admin else None,
    )
    db.session.add(record)
    return record


def calendar_overrides():
    """All calendar overrides keyed by date."""
    return {event.date: event for event in CalendarEvent.query.all()}


def record_attendance(day, entries, overrides=None) -> AttendanceSummary:
    """
    Record attendance for ``day`` and pay present students the day's points.

    Args:
        day: ``date`` being recorded.
        entries: Iterable of ``(student_number, present)`` pairs.
        overrides: Calendar overrides; loaded from the database when None.

    A student who already has an attendance entry for ``day`` is skipped, so
    re-submitting the same report does not pay twice.
    """
    if overrides is None:
        overrides = calendar_overrides()
    day_points = get_day_points(day, overrides)
    summary = AttendanceSummary(date=day.isoformat(), points=day_points.points, reason=day_points.reason)

    for student_number, present in entries:
        student = Student.query.filter_by(student_number=str(student_number)).first()
        if student is None:
            summary.unknown.append(str(student_number))
            continue

        existing = AttendanceRecord.query.filter_by(student_id=student.id, date=day, kind='attendance').first()
        if existing:
            summary.skipped.append(student.student_number)
            continue

        points = day_points.points if present else 0
        post_points(
            student, points,
            "Daily Attendance" if present else "Absent",
            'attendance', day=day, present=bool(present),
        )
        if present:
            summary.present += 1
            if points > 0:
                notify(
                    student,
                    'Cougar Bucks Earned!',
                    f"You earned {format_dollars(points)} for attendance on {day.isoformat()}.",
                )
        else:
            summary.absent += 1

    return summary


def award_points(admin, student, points, reason, now=None, tz=None):
    """
    Award budgeted points from ``admin`` to ``student``.

    Returns the ``AwardDecision``; nothing is staged when it is denied.
    """
    decision = check_award(
        admin.monthly_award_limit,
        admin.points_awarded_this_month,
        admin.last_reset_month,
        points,
        now=now,
        tz=tz,
    )
    if not decision.allowed:
        return decision

    reason = reason or "Teacher Award"
    post_points(student, points, reason, 'award', admin=admin)
    admin.points_awarded_this_month = decision.used
    admin.last_reset_month = decision.month
    notify(
        student,
        'Cougar Bucks Received!',
        f"You received {format_dollars(points)} from {admin.name}. Reason: {reason}.",
    )
    return decision


def charge_points(student, points, reason) -> Tuple[bool, str]:
    """Deduct a point-checkout charge, refusing when the balance is short."""
    if student.total_points < points:
        return False, f"Insufficient Funds. Student has {format_dollars(student.total_points)}"

    reason = reason or "School Store Purchase"
    post_points(student, -points, reason, 'checkout')
    notify(
        student,
        'Cougar Bucks Spent',
        f"Deducted {format_dollars(points)} from your balance for: {reason}.",
        kind='purchase',
    )
    return True, f"Successfully deducted {format_dollars(points)} from {student.name}."


# -------------------- STORE --------------------

def _unique_code(generator, model):
    while True:
        code = generator()
        if not model.query.filter_by(code=code).first():
            return code


def build_purchase(student, item, now=None):
    """Create the redeemable record for one unit of ``item``; only the regime's own fields are copied."""
    regime = regime_for_item(item.category, item.duration_days, item.start_date, item.end_date)
    purchase = PurchaseRecord(
        code=_unique_code(generate_purchase_code, PurchaseRecord),
        student=student,
        store_item=item,
        item_name=item.name,
        cost=item.cost,
        category=item.category,
        image=item.image,
        redeemed=False,
        regime=regime,
        requires_fulfillment=bool(item.requires_fulfillment),
        fulfillment_status=FulfillmentStatus.PENDING if item.requires_fulfillment else None,
        external_barcode=item.external_barcode,
    )
    if now is not None:
        purchase.purchased_at = now

    if regime == ValidityRegime.ONE_SHOT:
        purchase.expiration_date = item.expiration_date
    elif regime == ValidityRegime.DURATION_WINDOW:
        purchase.duration_days = item.duration_days
    elif regime == ValidityRegime.FIXED_WINDOW:
        purchase.start_date = item.start_date
        purchase.end_date = item.end_date

    db.session.add(purchase)
    return purchase


def cart_total(item_ids):
    items = StoreItem.query.filter(StoreItem.id.in_(set(item_ids))).all() if item_ids else []
    costs = {item.id: item.cost for item in items}
    return sum(costs.get(item_id, 0) for item_id in item_ids)


def checkout(student, item_ids, from_cart=False, now=None) -> Tuple[bool, str, List[PurchaseRecord]]:
    """
    Buy the given store items (ids may repeat) for ``student``.

    All-or-nothing: stock and funds are checked for the whole order before
    anything is staged.
    """
    if not item_ids:
        return False, "Your cart is empty.", []

    wanted = Counter(item_ids)
    items = {item.id: item for item in StoreItem.query.filter(StoreItem.id.in_(list(wanted))).all()}
    missing = [item_id for item_id in wanted if item_id not in items]
    if missing:
        return False, "Some items are no longer available.", []

    out_of_stock = [items[item_id].name for item_id, count in wanted.items() if items[item_id].quantity < count]
    if out_of_stock:
        return False, f"Some items are out of stock: {', '.join(out_of_stock)}", []

    total_cost = sum(items[item_id].cost * count for item_id, count in wanted.items())
    if student.total_points < total_cost:
        return False, "Insufficient points.", []

    purchases = []
    pass_increase = 0
    for item_id in item_ids:
        item = items[item_id]
        item.quantity -= 1
        pass_increase += item.hall_pass_increase or 0
        purchases.append(build_purchase(student, item, now=now))

    student.total_points -= total_cost
    student.hall_pass_limit += pass_increase
    if from_cart:
        student.cart = []

    names = ', '.join(purchase.item_name for purchase in purchases)
    notify(student, 'Purchase Complete', f"You bought {names} for {format_dollars(total_cost)}.", kind='purchase')

    message = "Purchase successful! Check your Wallet."
    if pass_increase > 0:
        message += f" Your Hall Pass limit has been increased by {pass_increase}!"
    return True, message, purchases


def mark_order_ready(purchase):
    purchase.fulfillment_status = FulfillmentStatus.READY
    notify(
        purchase.student,
        'Order Ready!',
        f'Your order for "{purchase.item_name}" is ready for pickup at the school store.',
        kind='order_ready',
    )


def pending_orders():
    """Physical orders not yet handed over, oldest first."""
    return PurchaseRecord.query.filter(
        PurchaseRecord.requires_fulfillment.is_(True),
        db.or_(
            PurchaseRecord.fulfillment_status.is_(None),
            PurchaseRecord.fulfillment_status != FulfillmentStatus.FULFILLED,
        ),
    ).order_by(PurchaseRecord.purchased_at.asc(), PurchaseRecord.id.asc()).all()


# -------------------- HALL PASSES --------------------

def active_lockout(hhmm) -> Optional[HallPassLockout]:
    for lockout in HallPassLockout.query.order_by(HallPassLockout.start_time).all():
        if lockout.covers(hhmm):
            return lockout
    return None


def conflicting_buddy_out(student):
    """Return True when a student this one may not be out with has an active pass."""
    conflicts = BuddyConflict.query.filter(
        db.or_(BuddyConflict.student_a_id == student.id, BuddyConflict.student_b_id == student.id)
    ).all()
    for conflict in conflicts:
        other_id = conflict.other_student_id(student.id)
        if other_id and HallPass.query.filter_by(student_id=other_id, status='active').first():
            return True
    return False


def issue_hall_pass(student, pass_type, local_now) -> Tuple[bool, str, Optional[HallPass]]:
    """
    Issue a hall pass after the lockout, buddy and monthly limit checks.

    Args:
        student: Requesting student.
        pass_type: One of ``HALL_PASS_TYPES``.
        local_now: Aware datetime in the school timezone.
    """
    hhmm = local_now.strftime('%H:%M')
    lockout = active_lockout(hhmm)
    if lockout:
        return False, (
            f"Hall passes are currently restricted: {lockout.label}. "
            f"They will be available after {lockout.end_time}."
        ), None

    if conflicting_buddy_out(student):
        return False, (
            "Conflict: You cannot leave class while certain restricted students are already out on a pass. "
            "Please wait for their return."
        ), None

    month = current_month(local_now)
    used = student.hall_passes_used(month)
    if used >= student.hall_pass_limit:
        return False, "You have reached your hall pass limit for the month.", None

    hall_pass = HallPass(
        code=_unique_code(generate_hall_pass_code, HallPass),
        student=student,
        pass_type=pass_type,
        status='active',
    )
    db.session.add(hall_pass)
    student.hall_passes_used_this_month = used + 1
    student.hall_pass_reset_month = month
    return True, f"{pass_type} pass issued.", hall_pass


def return_hall_pass(hall_pass, now):
    hall_pass.status = 'returned'
    hall_pass.returned_at = now


# -------------------- EVENTS & ROSTER --------------------

def check_in_event(admin, student, points, event_name=None, day=None) -> Tuple[bool, str]:
    """
    Pay a student for attending a school event, once per event per day.

    Event rewards are outside the admin's monthly award budget.
    """
    day = day or school_today()
    reason = (event_name or '').strip() or "Event Attendance"
    already = AttendanceRecord.query.filter_by(
        student_id=student.id, date=day, kind='event', reason=reason
    ).first()
    if already:
        return False, f"{student.name} is already checked in."

    post_points(student, points, reason, 'event', admin=admin, day=day)
    notify(
        student,
        'Event Reward!',
        f"You earned {format_dollars(points)} for attending: {(event_name or '').strip() or 'School Event'}.",
    )
    return True, f"Checked in {student.name} (+{format_dollars(points)})"


def delete_students(students):
    """
    Remove students with everything that belongs to them.

    Ledger, purchases, notifications and hall passes go with the relationship
    cascades; votes, buddy conflicts and group memberships are cleared here.
    """
    ids = {student.id for student in students}
    if not ids:
        return 0

    PollVote.query.filter(PollVote.student_id.in_(ids)).delete(synchronize_session=False)
    BuddyConflict.query.filter(
        db.or_(BuddyConflict.student_a_id.in_(ids), BuddyConflict.student_b_id.in_(ids))
    ).delete(synchronize_session=False)
    for group in StudentGroup.query.all():
        members = list(group.student_ids or [])
        if any(student_id in ids for student_id in members):
            group.student_ids = [student_id for student_id in members if student_id not in ids]

    for student in students:
        db.session.delete(student)
    return len(ids)
