"""
Admin routes for Cougar Cash.

Contains all staff-facing functionality: the code scanner, budgeted awards,
point checkout, the student directory and groups, event check-in, attendance,
the points calendar, store inventory and orders, hall pass monitoring, polls,
announcements and staff accounts. Every route requires an admin session
holding the route's permission.
"""

from datetime import datetime, timedelta, timezone

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from app.auth import get_current_admin, permission_required
from app.extensions import db
from app.models import (
    Admin, Announcement, BuddyConflict, CalendarEvent, HallPass, HallPassLockout,
    Poll, PollOption, PollVote, PurchaseRecord, Student, StudentGroup, StoreItem
)
from app.utils.codes import generate_login_code, normalize_code
from app.utils.constants import ADMIN_PERMISSIONS, CALENDAR_EVENT_TYPES, DEFAULT_POST_LIFETIME_DAYS, GROUP_TYPES
from app.utils.economy import (
    award_points, charge_points, check_in_event, delete_students, mark_order_ready,
    pending_orders, post_points, record_attendance, return_hall_pass
)
from app.utils.helpers import (
    dollars_to_points, format_dollars, get_school_timezone, parse_date_value,
    parse_datetime_value, parse_optional_float, parse_optional_int, points_to_dollars
)
from app.utils.snapshot import save_snapshot
from award_budget import effective_limit, effective_used, current_month, remaining_budget
from redemption import FulfillmentStatus, apply_changes, classify_redemption

# Create blueprint
admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


def _error(message, status_code=400):
    return jsonify({"status": "error", "message": message}), status_code


def _json():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _save_failed(action):
    db.session.rollback()
    current_app.logger.error(f"{action} failed", exc_info=True)
    return _error("An error occurred. Please try again.", 500)


def _positive_points(value):
    """Convert a dollar amount from the request to points; None when missing, malformed or not positive."""
    try:
        points = dollars_to_points(value)
    except (TypeError, ValueError):
        return None
    return points if points > 0 else None


def _parsed(data, field, parser):
    """Parse one request field; malformed values raise ValueError naming the field."""
    try:
        return parser(data.get(field))
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value for {field}.")


def _id_list(value):
    """A JSON list of integer ids; raises ValueError for anything else."""
    if not isinstance(value, list) or any(isinstance(v, bool) or not isinstance(v, int) for v in value):
        raise ValueError("Student ids must be a list of integers.")
    return value


def _student_by_number(student_number):
    if student_number in (None, ''):
        return None
    return Student.query.filter_by(student_number=str(student_number).strip()).first()


def _unique_login_code(model):
    while True:
        code = generate_login_code()
        if not model.query.filter_by(login_code=code).first():
            return code


# -------------------- SCANNER --------------------

@admin_bp.route('/redeem', methods=['POST'])
@permission_required('scanner')
def redeem():
    """
    Scan a voucher, pass or order code.

    The classifier decides the outcome and the field changes; any changes are
    saved whether or not the scan succeeded (an expired pass is retired on
    the scan that finds it expired). A code that is not a purchase but is an
    active hall pass returns the student who holds it.
    """
    code = normalize_code(_json().get('code'))
    if not code:
        return _error("Code is required.")

    records = (
        PurchaseRecord.query
        .filter(or_(PurchaseRecord.code == code, PurchaseRecord.external_barcode == code))
        .order_by(PurchaseRecord.student_id, PurchaseRecord.id)
        .all()
    )

    if not records:
        hall_pass = HallPass.query.filter_by(code=code, status='active').first()
        if hall_pass:
            return jsonify({
                "status": "success",
                "message": f"Active {hall_pass.pass_type} pass for {hall_pass.student.name}.",
                "hall_pass": hall_pass.to_dict(),
                "student": hall_pass.student.to_dict(),
            })

    result = classify_redemption(code, records, now=datetime.now(timezone.utc), tz=get_school_timezone())
    if result.record is None:
        current_app.logger.info(f"Scan of unknown code {code}")
        return _error(result.message, 404)

    if result.changes:
        try:
            apply_changes(result.record, result.changes)
            save_snapshot('students')
        except SQLAlchemyError:
            return _save_failed(f"Saving redemption of {code}")

    purchase = result.record
    current_app.logger.info(
        f"Redemption scan {code} by admin {get_current_admin().id}: success={result.success} ({result.message})"
    )
    return jsonify({
        "status": "success" if result.success else "error",
        "message": result.message,
        "purchase": purchase.to_dict(),
        "student": purchase.student.to_dict() if purchase.student else None,
    }), 200 if result.success else 400


# -------------------- AWARDS & CHECKOUT --------------------

@admin_bp.route('/award', methods=['POST'])
@permission_required('award-points')
def award():
    data = _json()
    student = _student_by_number(data.get('student_number'))
    if not student:
        return _error("Student not found.", 404)

    points = _positive_points(data.get('amount'))
    if points is None:
        return _error("Amount must be a positive dollar value.")

    admin = get_current_admin()
    decision = award_points(
        admin, student, points, (data.get('reason') or '').strip(),
        now=datetime.now(timezone.utc), tz=get_school_timezone(),
    )
    if not decision.allowed:
        return _error(decision.message)

    try:
        save_snapshot('students', 'admins')
    except SQLAlchemyError:
        return _save_failed(f"Award from admin {admin.id}")

    current_app.logger.info(f"Admin {admin.id} awarded {points} points to student {student.id}")
    return jsonify({
        "status": "success",
        "message": f"Awarded {format_dollars(points)} to {student.name}.",
        "student": student.to_dict(),
        "budget": {
            "limit": points_to_dollars(effective_limit(admin.monthly_award_limit)),
            "used": points_to_dollars(decision.used),
            "remaining": points_to_dollars(decision.remaining),
        },
    })


@admin_bp.route('/budget')
@permission_required('award-points')
def budget():
    admin = get_current_admin()
    tz = get_school_timezone()
    now = datetime.now(timezone.utc)
    month = current_month(now, tz)
    used = effective_used(admin.points_awarded_this_month, admin.last_reset_month, month)
    remaining = remaining_budget(
        admin.monthly_award_limit, admin.points_awarded_this_month, admin.last_reset_month, now=now, tz=tz
    )
    return jsonify({
        "status": "success",
        "month": month,
        "limit": points_to_dollars(effective_limit(admin.monthly_award_limit)),
        "used": points_to_dollars(used),
        "remaining": points_to_dollars(remaining),
    })


@admin_bp.route('/checkout', methods=['POST'])
@permission_required('point-checkout')
def point_checkout():
    """Charge a student's points at the physical register."""
    data = _json()
    student = _student_by_number(data.get('student_number'))
    if not student:
        return _error("Student not found.", 404)

    points = _positive_points(data.get('price'))
    if points is None:
        return _error("Price must be a positive dollar value.")

    success, message = charge_points(student, points, (data.get('reason') or '').strip())
    if not success:
        return _error(message)

    try:
        save_snapshot('students')
    except SQLAlchemyError:
        return _save_failed(f"Point checkout for student {student.id}")

    current_app.logger.info(f"Point checkout of {points} points for student {student.id}")
    return jsonify({"status": "success", "message": message, "student": student.to_dict()})


# -------------------- STUDENT DIRECTORY --------------------

@admin_bp.route('/students')
@permission_required('student-directory')
def list_students():
    query = Student.query
    search = (request.args.get('q') or '').strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Student.name.ilike(like), Student.student_number.ilike(like)))
    group_id = request.args.get('group_id', type=int)
    if group_id is not None:
        group = db.session.get(StudentGroup, group_id)
        if not group:
            return _error("Group not found.", 404)
        query = query.filter(Student.id.in_(group.student_ids or []))
    students = query.order_by(Student.name).all()
    return jsonify({"status": "success", "students": [student.to_dict() for student in students]})


@admin_bp.route('/students', methods=['POST'])
@permission_required('student-directory')
def create_student():
    data = _json()
    student_number = str(data.get('student_number') or '').strip()
    name = (data.get('name') or '').strip()
    if not student_number or not name:
        return _error("Student number and name are required.")
    if _student_by_number(student_number):
        return _error("A student with that number already exists.", 409)

    login_code = normalize_code(data.get('login_code')) or _unique_login_code(Student)
    if Student.query.filter_by(login_code=login_code).first():
        return _error("That login code is already in use.", 409)

    student = Student(
        student_number=student_number,
        name=name,
        email=(data.get('email') or '').strip() or None,
        login_code=login_code,
        total_points=0,
        cart=[],
        favorites=[],
    )
    try:
        db.session.add(student)
        save_snapshot('students')
    except SQLAlchemyError:
        return _save_failed("Creating student")

    current_app.logger.info(f"Created student {student.id} ({student_number})")
    data = student.to_dict()
    data['login_code'] = student.login_code
    return jsonify({"status": "success", "message": f"Added {name}.", "student": data}), 201


@admin_bp.route('/students/<int:student_id>')
@permission_required('student-directory')
def student_detail(student_id):
    student = db.session.get(Student, student_id)
    if not student:
        return _error("Student not found.", 404)
    data = student.to_dict()
    data['login_code'] = student.login_code
    data['history'] = [record.to_dict() for record in reversed(student.attendance_records)]
    data['purchases'] = [purchase.to_dict() for purchase in reversed(student.purchases)]
    return jsonify({"status": "success", "student": data})


def _adjustment(data):
    """Return ``(signed_points, reason)`` or raise ValueError."""
    points = _positive_points(data.get('amount'))
    if points is None:
        raise ValueError("Amount must be a positive dollar value.")
    action = (data.get('action') or 'add').lower()
    if action not in ('add', 'deduct'):
        raise ValueError("Action must be 'add' or 'deduct'.")
    reason = (data.get('reason') or '').strip() or ("Manual Adjustment" if action == 'add' else "Manual Deduction")
    return (points if action == 'add' else -points), reason


@admin_bp.route('/students/<int:student_id>/adjust', methods=['POST'])
@permission_required('student-directory')
def adjust_student(student_id):
    student = db.session.get(Student, student_id)
    if not student:
        return _error("Student not found.", 404)
    try:
        points, reason = _adjustment(_json())
    except ValueError as e:
        return _error(str(e))

    admin = get_current_admin()
    try:
        post_points(student, points, reason, 'adjustment', admin=admin, floor_at_zero=True)
        save_snapshot('students')
    except SQLAlchemyError:
        return _save_failed(f"Adjusting student {student_id}")

    current_app.logger.info(f"Admin {admin.id} adjusted student {student.id} by {points} points")
    return jsonify({"status": "success", "message": f"Updated {student.name}'s balance.", "student": student.to_dict()})


@admin_bp.route('/students/bulk-adjust', methods=['POST'])
@permission_required('student-directory')
def bulk_adjust_students():
    data = _json()
    try:
        student_ids = _id_list(data.get('student_ids') or [])
        if not student_ids:
            raise ValueError("Select at least one student.")
        points, reason = _adjustment(data)
    except ValueError as e:
        return _error(str(e))

    students = Student.query.filter(Student.id.in_(student_ids)).all()
    if not students:
        return _error("No matching students.", 404)

    admin = get_current_admin()
    try:
        for student in students:
            post_points(student, points, reason, 'adjustment', admin=admin, floor_at_zero=True)
        save_snapshot('students')
    except SQLAlchemyError:
        return _save_failed("Bulk adjustment")

    current_app.logger.info(f"Admin {admin.id} adjusted {len(students)} students by {points} points")
    return jsonify({"status": "success", "message": f"Updated {len(students)} student(s).", "updated": len(students)})


@admin_bp.route('/students/bulk-delete', methods=['POST'])
@permission_required('student-directory')
def bulk_delete_students():
    """Delete the selected students and everything recorded for them."""
    try:
        student_ids = _id_list(_json().get('student_ids') or [])
    except ValueError as e:
        return _error(str(e))
    if not student_ids:
        return _error("Select at least one student.")

    students = Student.query.filter(Student.id.in_(student_ids)).all()
    if not students:
        return _error("No matching students.", 404)

    try:
        deleted = delete_students(students)
        save_snapshot('students', 'hall_passes', 'hall_pass_conflicts', 'polls', 'groups')
    except SQLAlchemyError:
        return _save_failed("Bulk delete")

    current_app.logger.info(f"Admin {get_current_admin().id} deleted {deleted} student(s): {sorted(student_ids)}")
    return jsonify({"status": "success", "message": f"Deleted {deleted} student(s).", "deleted": deleted})


# -------------------- GROUPS --------------------

def _apply_group_fields(group, data):
    """Copy request fields onto a group; raises ValueError for invalid input."""
    if 'name' in data:
        group.name = (data.get('name') or '').strip()
    if not group.name:
        raise ValueError("Group name is required.")
    if 'type' in data:
        group.group_type = data.get('type')
    if group.group_type not in GROUP_TYPES:
        raise ValueError(f"Group type must be one of: {', '.join(GROUP_TYPES)}.")
    if 'student_ids' in data:
        student_ids = list(dict.fromkeys(_id_list(data.get('student_ids') or [])))
        found = {student.id for student in Student.query.filter(Student.id.in_(student_ids)).all()}
        if len(found) != len(student_ids):
            raise ValueError("Some students in this group do not exist.")
        group.student_ids = student_ids


@admin_bp.route('/groups')
@permission_required('student-directory')
def list_groups():
    groups = StudentGroup.query.order_by(StudentGroup.name).all()
    return jsonify({"status": "success", "groups": [group.to_dict() for group in groups]})


@admin_bp.route('/groups', methods=['POST'])
@permission_required('student-directory')
def create_group():
    group = StudentGroup(group_type='Class', student_ids=[])
    try:
        _apply_group_fields(group, _json())
    except ValueError as e:
        return _error(str(e))

    try:
        db.session.add(group)
        save_snapshot('groups')
    except SQLAlchemyError:
        return _save_failed("Creating group")
    return jsonify({"status": "success", "message": f"Created {group.name}.", "group": group.to_dict()}), 201


@admin_bp.route('/groups/<int:group_id>', methods=['PUT'])
@permission_required('student-directory')
def update_group(group_id):
    group = db.session.get(StudentGroup, group_id)
    if not group:
        return _error("Group not found.", 404)
    try:
        _apply_group_fields(group, _json())
    except ValueError as e:
        db.session.rollback()
        return _error(str(e))

    try:
        save_snapshot('groups')
    except SQLAlchemyError:
        return _save_failed(f"Updating group {group_id}")
    return jsonify({"status": "success", "message": f"Updated {group.name}.", "group": group.to_dict()})


@admin_bp.route('/groups/<int:group_id>', methods=['DELETE'])
@permission_required('student-directory')
def delete_group(group_id):
    group = db.session.get(StudentGroup, group_id)
    if not group:
        return _error("Group not found.", 404)
    try:
        db.session.delete(group)
        save_snapshot('groups')
    except SQLAlchemyError:
        return _save_failed(f"Deleting group {group_id}")
    return jsonify({"status": "success", "message": "Group removed."})


# -------------------- EVENT CHECK-IN --------------------

@admin_bp.route('/events/checkin', methods=['POST'])
@permission_required('event-checkin')
def event_checkin():
    """
    Scan a student card at an event door and pay the event reward.

    Body: ``{"student_number": "...", "amount": "1.00", "event_name": "..."}``
    """
    data = _json()
    student = _student_by_number(data.get('student_number'))
    if not student:
        return _error("Student card not recognized.", 404)

    points = _positive_points(data.get('amount'))
    if points is None:
        return _error("Amount must be a positive dollar value.")

    admin = get_current_admin()
    success, message = check_in_event(admin, student, points, data.get('event_name'))
    if not success:
        return _error(message, 409)

    try:
        save_snapshot('students')
    except SQLAlchemyError:
        return _save_failed(f"Event check-in for student {student.id}")

    current_app.logger.info(f"Admin {admin.id} checked in student {student.id} for {points} points")
    return jsonify({"status": "success", "message": message, "student": student.to_dict()})


# -------------------- ATTENDANCE & CALENDAR --------------------

@admin_bp.route('/attendance', methods=['POST'])
@permission_required('attendance')
def attendance():
    """
    Record a day's attendance.

    Body: ``{"date": "YYYY-MM-DD", "records": [{"student_number": "...", "present": true}]}``
    """
    data = _json()
    try:
        day = parse_date_value(data.get('date'))
    except ValueError:
        return _error("Date must be formatted YYYY-MM-DD.")
    if day is None:
        return _error("Date is required.")

    records = data.get('records') or []
    if not isinstance(records, list) or not records:
        return _error("At least one attendance record is required.")
    if not all(isinstance(record, dict) for record in records):
        return _error("Each attendance record must be an object.")
    entries = [(record.get('student_number'), bool(record.get('present'))) for record in records]

    try:
        summary = record_attendance(day, entries)
        save_snapshot('students')
    except SQLAlchemyError:
        return _save_failed(f"Recording attendance for {day}")

    current_app.logger.info(
        f"Attendance for {day}: {summary.present} present, {summary.absent} absent, {len(summary.skipped)} skipped"
    )
    return jsonify({
        "status": "success",
        "message": f"Recorded attendance for {summary.processed} student(s).",
        "summary": summary.to_dict(),
    })


@admin_bp.route('/calendar')
@permission_required('calendar')
def list_calendar():
    events = CalendarEvent.query.order_by(CalendarEvent.date).all()
    return jsonify({"status": "success", "events": [event.to_dict() for event in events]})


def _save_calendar_event(day, data):
    """
    Create, update or remove the override for ``day``.

    Returns the saved event, or None when the override was removed. Raises
    ValueError for invalid input.
    """
    event_type = data.get('event_type') or 'default'
    if event_type not in CALENDAR_EVENT_TYPES:
        raise ValueError(f"Event type must be one of: {', '.join(CALENDAR_EVENT_TYPES)}.")
    title = (data.get('title') or '').strip() or None

    event = CalendarEvent.query.filter_by(date=day).first()
    if event_type == 'default' and not title:
        if event:
            db.session.delete(event)
        return None

    override_points = _parsed(data, 'override_points', parse_optional_int)
    bonus_points = _parsed(data, 'bonus_points', parse_optional_int)
    point_multiplier = _parsed(data, 'point_multiplier', parse_optional_float)

    if event is None:
        event = CalendarEvent(date=day)
        db.session.add(event)
    event.title = title
    event.event_type = event_type
    event.override_points = override_points
    event.bonus_points = bonus_points
    event.point_multiplier = point_multiplier
    return event


@admin_bp.route('/calendar/<date_str>', methods=['PUT'])
@permission_required('calendar')
def save_calendar_day(date_str):
    try:
        day = parse_date_value(date_str)
    except ValueError:
        return _error("Date must be formatted YYYY-MM-DD.")

    try:
        event = _save_calendar_event(day, _json())
    except ValueError as e:
        db.session.rollback()
        return _error(str(e))

    try:
        save_snapshot('calendar_events')
    except SQLAlchemyError:
        return _save_failed(f"Saving calendar override for {date_str}")

    if event is None:
        return jsonify({"status": "success", "message": f"Override removed for {day.isoformat()}.", "event": None})
    return jsonify({"status": "success", "message": f"Saved {day.isoformat()}.", "event": event.to_dict()})


@admin_bp.route('/calendar/<date_str>', methods=['DELETE'])
@permission_required('calendar')
def delete_calendar_day(date_str):
    try:
        day = parse_date_value(date_str)
    except ValueError:
        return _error("Date must be formatted YYYY-MM-DD.")

    event = CalendarEvent.query.filter_by(date=day).first()
    if not event:
        return _error("No override for that date.", 404)

    try:
        db.session.delete(event)
        save_snapshot('calendar_events')
    except SQLAlchemyError:
        return _save_failed(f"Deleting calendar override for {date_str}")
    return jsonify({"status": "success", "message": f"Override removed for {day.isoformat()}."})


@admin_bp.route('/calendar/bulk', methods=['POST'])
@permission_required('calendar')
def bulk_calendar():
    """Apply the same override to every date in ``dates``."""
    data = _json()
    dates = data.get('dates') or []
    if not dates:
        return _error("Select at least one date.")

    try:
        days = [parse_date_value(value) for value in dates]
    except (TypeError, ValueError):
        return _error("Dates must be formatted YYYY-MM-DD.")

    try:
        saved = [_save_calendar_event(day, data) for day in days]
    except ValueError as e:
        db.session.rollback()
        return _error(str(e))

    try:
        save_snapshot('calendar_events')
    except SQLAlchemyError:
        return _save_failed("Bulk calendar update")

    updated = sum(1 for event in saved if event is not None)
    return jsonify({
        "status": "success",
        "message": f"Updated {updated} day(s), cleared {len(saved) - updated}.",
        "events": [event.to_dict() for event in saved if event is not None],
    })


# -------------------- STORE --------------------

def _apply_item_fields(item, data):
    """Copy request fields onto a store item; raises ValueError for invalid input."""
    if 'name' in data:
        item.name = (data.get('name') or '').strip()
    if not item.name:
        raise ValueError("Item name is required.")

    if 'price' in data:
        points = _positive_points(data.get('price'))
        if points is None:
            raise ValueError("Price must be a positive dollar value.")
        item.cost = points
    if item.cost is None:
        raise ValueError("Price is required.")

    for field in ('description', 'image', 'external_barcode'):
        if field in data:
            setattr(item, field, (data.get(field) or '').strip() or None)
    if 'category' in data:
        item.category = (data.get('category') or '').strip() or 'General'
    if 'quantity' in data:
        quantity = _parsed(data, 'quantity', parse_optional_int) or 0
        if quantity < 0:
            raise ValueError("Quantity cannot be negative.")
        item.quantity = quantity
    for field in ('expiration_date', 'start_date', 'end_date'):
        if field in data:
            setattr(item, field, _parsed(data, field, parse_date_value))
    for field in ('duration_days', 'hall_pass_increase'):
        if field in data:
            setattr(item, field, _parsed(data, field, parse_optional_int))
    if 'requires_fulfillment' in data:
        item.requires_fulfillment = bool(data.get('requires_fulfillment'))

    if item.start_date and item.end_date and item.start_date > item.end_date:
        raise ValueError("Start date must be on or before the end date.")


@admin_bp.route('/store/items')
@permission_required('store')
def list_store_items():
    items = StoreItem.query.order_by(StoreItem.category, StoreItem.name).all()
    return jsonify({"status": "success", "items": [item.to_dict() for item in items]})


@admin_bp.route('/store/items', methods=['POST'])
@permission_required('store')
def create_store_item():
    item = StoreItem(category='General', quantity=0, requires_fulfillment=False)
    try:
        _apply_item_fields(item, _json())
    except ValueError as e:
        return _error(str(e))

    try:
        db.session.add(item)
        save_snapshot('store_items')
    except SQLAlchemyError:
        return _save_failed("Creating store item")

    current_app.logger.info(f"Created store item {item.id} ({item.name})")
    return jsonify({"status": "success", "message": f"Added {item.name}.", "item": item.to_dict()}), 201


@admin_bp.route('/store/items/<int:item_id>', methods=['PUT'])
@permission_required('store')
def update_store_item(item_id):
    item = db.session.get(StoreItem, item_id)
    if not item:
        return _error("Item not found.", 404)
    try:
        _apply_item_fields(item, _json())
    except ValueError as e:
        db.session.rollback()
        return _error(str(e))

    try:
        save_snapshot('store_items')
    except SQLAlchemyError:
        return _save_failed(f"Updating store item {item_id}")
    return jsonify({"status": "success", "message": f"Updated {item.name}.", "item": item.to_dict()})


@admin_bp.route('/store/items/<int:item_id>', methods=['DELETE'])
@permission_required('store')
def delete_store_item(item_id):
    """Delete an item; purchases already made keep their own copy of its details."""
    item = db.session.get(StoreItem, item_id)
    if not item:
        return _error("Item not found.", 404)

    try:
        for purchase in item.purchases:
            purchase.store_item_id = None
        db.session.delete(item)
        save_snapshot('store_items')
    except SQLAlchemyError:
        return _save_failed(f"Deleting store item {item_id}")

    current_app.logger.info(f"Deleted store item {item_id}")
    return jsonify({"status": "success", "message": "Item deleted."})


# -------------------- ORDERS --------------------

@admin_bp.route('/orders')
@permission_required('orders')
def list_orders():
    orders = []
    for purchase in pending_orders():
        data = purchase.to_dict()
        data['student_name'] = purchase.student.name if purchase.student else None
        orders.append(data)
    return jsonify({"status": "success", "orders": orders})


@admin_bp.route('/orders/<code>/ready', methods=['POST'])
@permission_required('orders')
def order_ready(code):
    purchase = PurchaseRecord.query.filter_by(code=normalize_code(code)).first()
    if not purchase or not purchase.requires_fulfillment:
        return _error("Order not found.", 404)
    if purchase.redeemed or purchase.fulfillment_status == FulfillmentStatus.FULFILLED:
        return _error("This order has already been picked up.")
    if purchase.fulfillment_status == FulfillmentStatus.READY:
        return _error("This order is already marked ready.")

    try:
        mark_order_ready(purchase)
        save_snapshot('students')
    except SQLAlchemyError:
        return _save_failed(f"Marking order {code} ready")

    current_app.logger.info(f"Order {purchase.code} marked ready for student {purchase.student_id}")
    return jsonify({
        "status": "success",
        "message": f"{purchase.item_name} is ready for {purchase.student.name}.",
        "order": purchase.to_dict(),
    })


# -------------------- HALL PASS MONITOR --------------------

@admin_bp.route('/hall-passes')
@permission_required('hall-pass-monitor')
def list_hall_passes():
    status = request.args.get('status', 'active')
    query = HallPass.query
    if status != 'all':
        query = query.filter_by(status=status)
    passes = query.order_by(HallPass.issued_at.desc()).all()
    return jsonify({"status": "success", "hall_passes": [hall_pass.to_dict() for hall_pass in passes]})


@admin_bp.route('/hall-passes/<code>/return', methods=['POST'])
@permission_required('hall-pass-monitor')
def return_pass(code):
    hall_pass = HallPass.query.filter_by(code=normalize_code(code)).first()
    if not hall_pass:
        return _error("Hall pass not found.", 404)
    if hall_pass.status != 'active':
        return _error("This pass has already been returned.")

    try:
        return_hall_pass(hall_pass, datetime.now(timezone.utc))
        save_snapshot('hall_passes')
    except SQLAlchemyError:
        return _save_failed(f"Returning hall pass {code}")

    return jsonify({
        "status": "success",
        "message": f"{hall_pass.student.name} has returned.",
        "hall_pass": hall_pass.to_dict(),
    })


@admin_bp.route('/hall-passes/lockouts')
@permission_required('hall-pass-monitor')
def list_lockouts():
    lockouts = HallPassLockout.query.order_by(HallPassLockout.start_time).all()
    return jsonify({"status": "success", "lockouts": [lockout.to_dict() for lockout in lockouts]})


def _valid_hhmm(value):
    try:
        datetime.strptime(value, '%H:%M')
    except (TypeError, ValueError):
        return False
    return len(value) == 5


@admin_bp.route('/hall-passes/lockouts', methods=['POST'])
@permission_required('hall-pass-monitor')
def create_lockout():
    data = _json()
    label = (data.get('label') or '').strip()
    start_time = data.get('start_time')
    end_time = data.get('end_time')
    if not label:
        return _error("Label is required.")
    if not (_valid_hhmm(start_time) and _valid_hhmm(end_time)):
        return _error("Times must be formatted HH:MM.")
    if start_time > end_time:
        return _error("Start time must be before end time.")

    lockout = HallPassLockout(label=label, start_time=start_time, end_time=end_time)
    try:
        db.session.add(lockout)
        save_snapshot('hall_pass_lockouts')
    except SQLAlchemyError:
        return _save_failed("Creating hall pass lockout")
    return jsonify({"status": "success", "message": "Lockout added.", "lockout": lockout.to_dict()}), 201


@admin_bp.route('/hall-passes/lockouts/<int:lockout_id>', methods=['DELETE'])
@permission_required('hall-pass-monitor')
def delete_lockout(lockout_id):
    lockout = db.session.get(HallPassLockout, lockout_id)
    if not lockout:
        return _error("Lockout not found.", 404)
    try:
        db.session.delete(lockout)
        save_snapshot('hall_pass_lockouts')
    except SQLAlchemyError:
        return _save_failed(f"Deleting lockout {lockout_id}")
    return jsonify({"status": "success", "message": "Lockout removed."})


@admin_bp.route('/hall-passes/conflicts')
@permission_required('hall-pass-monitor')
def list_conflicts():
    conflicts = BuddyConflict.query.order_by(BuddyConflict.id).all()
    return jsonify({"status": "success", "conflicts": [conflict.to_dict() for conflict in conflicts]})


@admin_bp.route('/hall-passes/conflicts', methods=['POST'])
@permission_required('hall-pass-monitor')
def create_conflict():
    data = _json()
    try:
        ids = _id_list(data.get('student_ids') or [])
    except ValueError as e:
        return _error(str(e))
    if len(ids) != 2 or ids[0] == ids[1]:
        return _error("Choose two different students.")
    students = Student.query.filter(Student.id.in_(ids)).all()
    if len(students) != 2:
        return _error("Student not found.", 404)

    conflict = BuddyConflict(
        student_a_id=ids[0],
        student_b_id=ids[1],
        reason=(data.get('reason') or '').strip() or 'Restricted Buddy Group',
    )
    try:
        db.session.add(conflict)
        save_snapshot('hall_pass_conflicts')
    except SQLAlchemyError:
        return _save_failed("Creating buddy conflict")
    return jsonify({"status": "success", "message": "Conflict added.", "conflict": conflict.to_dict()}), 201


@admin_bp.route('/hall-passes/conflicts/<int:conflict_id>', methods=['DELETE'])
@permission_required('hall-pass-monitor')
def delete_conflict(conflict_id):
    conflict = db.session.get(BuddyConflict, conflict_id)
    if not conflict:
        return _error("Conflict not found.", 404)
    try:
        db.session.delete(conflict)
        save_snapshot('hall_pass_conflicts')
    except SQLAlchemyError:
        return _save_failed(f"Deleting conflict {conflict_id}")
    return jsonify({"status": "success", "message": "Conflict removed."})


# -------------------- POLLS & ANNOUNCEMENTS --------------------

def _expiry(data):
    """Requested expiry, or the default lifetime from now. Raises ValueError when malformed."""
    expires_at = parse_datetime_value(data.get('expires_at'))
    return expires_at or datetime.now(timezone.utc) + timedelta(days=DEFAULT_POST_LIFETIME_DAYS)


@admin_bp.route('/polls')
@permission_required('polls-announcements')
def list_polls():
    polls = Poll.query.order_by(Poll.created_at.desc()).all()
    return jsonify({"status": "success", "polls": [poll.to_dict() for poll in polls]})


@admin_bp.route('/polls', methods=['POST'])
@permission_required('polls-announcements')
def create_poll():
    data = _json()
    question = (data.get('question') or '').strip()
    options = [str(option).strip() for option in (data.get('options') or []) if str(option).strip()]
    if not question:
        return _error("Question is required.")
    if len(options) < 2:
        return _error("A poll needs at least two options.")
    try:
        expires_at = _expiry(data)
    except ValueError:
        return _error("Invalid expiry time.")

    poll = Poll(question=question, expires_at=expires_at, is_active=True, created_by=get_current_admin().id)
    poll.options = [PollOption(text=text, position=position) for position, text in enumerate(options)]
    try:
        db.session.add(poll)
        save_snapshot('polls')
    except SQLAlchemyError:
        return _save_failed("Creating poll")
    return jsonify({"status": "success", "message": "Poll created.", "poll": poll.to_dict()}), 201


@admin_bp.route('/polls/<int:poll_id>', methods=['PUT'])
@permission_required('polls-announcements')
def update_poll(poll_id):
    poll = db.session.get(Poll, poll_id)
    if not poll:
        return _error("Poll not found.", 404)
    data = _json()
    try:
        if 'question' in data and (data.get('question') or '').strip():
            poll.question = data['question'].strip()
        if 'is_active' in data:
            poll.is_active = bool(data['is_active'])
        if 'expires_at' in data:
            poll.expires_at = parse_datetime_value(data['expires_at'])
    except ValueError:
        db.session.rollback()
        return _error("Invalid expiry time.")

    try:
        save_snapshot('polls')
    except SQLAlchemyError:
        return _save_failed(f"Updating poll {poll_id}")
    return jsonify({"status": "success", "message": "Poll updated.", "poll": poll.to_dict()})


@admin_bp.route('/polls/<int:poll_id>', methods=['DELETE'])
@permission_required('polls-announcements')
def delete_poll(poll_id):
    poll = db.session.get(Poll, poll_id)
    if not poll:
        return _error("Poll not found.", 404)
    try:
        PollVote.query.filter_by(poll_id=poll.id).delete()
        db.session.delete(poll)
        save_snapshot('polls')
    except SQLAlchemyError:
        return _save_failed(f"Deleting poll {poll_id}")
    return jsonify({"status": "success", "message": "Poll deleted."})


@admin_bp.route('/announcements')
@permission_required('polls-announcements')
def list_announcements():
    posts = Announcement.query.order_by(Announcement.created_at.desc()).all()
    return jsonify({"status": "success", "announcements": [ann.to_dict() for ann in posts]})


@admin_bp.route('/announcements', methods=['POST'])
@permission_required('polls-announcements')
def create_announcement():
    data = _json()
    title = (data.get('title') or '').strip()
    content = (data.get('content') or '').strip()
    if not title or not content:
        return _error("Title and content are required.")
    try:
        expires_at = _expiry(data)
    except ValueError:
        return _error("Invalid expiry time.")

    announcement = Announcement(
        title=title, content=content, expires_at=expires_at,
        is_active=True, created_by=get_current_admin().id,
    )
    try:
        db.session.add(announcement)
        save_snapshot('announcements')
    except SQLAlchemyError:
        return _save_failed("Creating announcement")
    return jsonify({
        "status": "success", "message": "Announcement posted.", "announcement": announcement.to_dict()
    }), 201


@admin_bp.route('/announcements/<int:announcement_id>', methods=['PUT'])
@permission_required('polls-announcements')
def update_announcement(announcement_id):
    announcement = db.session.get(Announcement, announcement_id)
    if not announcement:
        return _error("Announcement not found.", 404)
    data = _json()
    try:
        for field in ('title', 'content'):
            if field in data and (data.get(field) or '').strip():
                setattr(announcement, field, data[field].strip())
        if 'is_active' in data:
            announcement.is_active = bool(data['is_active'])
        if 'expires_at' in data:
            announcement.expires_at = parse_datetime_value(data['expires_at'])
    except ValueError:
        db.session.rollback()
        return _error("Invalid expiry time.")

    try:
        save_snapshot('announcements')
    except SQLAlchemyError:
        return _save_failed(f"Updating announcement {announcement_id}")
    return jsonify({"status": "success", "message": "Announcement updated.", "announcement": announcement.to_dict()})


@admin_bp.route('/announcements/<int:announcement_id>', methods=['DELETE'])
@permission_required('polls-announcements')
def delete_announcement(announcement_id):
    announcement = db.session.get(Announcement, announcement_id)
    if not announcement:
        return _error("Announcement not found.", 404)
    try:
        db.session.delete(announcement)
        save_snapshot('announcements')
    except SQLAlchemyError:
        return _save_failed(f"Deleting announcement {announcement_id}")
    return jsonify({"status": "success", "message": "Announcement deleted."})


# -------------------- STAFF ACCOUNTS --------------------

def _apply_admin_fields(admin, data):
    """Copy request fields onto an admin; raises ValueError for invalid input."""
    if 'name' in data:
        admin.name = (data.get('name') or '').strip()
    if not admin.name:
        raise ValueError("Name is required.")
    if 'email' in data:
        admin.email = (data.get('email') or '').strip() or None
    if 'permissions' in data:
        permissions = list(dict.fromkeys(data.get('permissions') or []))
        unknown = [p for p in permissions if p not in ADMIN_PERMISSIONS]
        if unknown:
            raise ValueError(f"Unknown permission(s): {', '.join(unknown)}.")
        admin.permissions = permissions
    if 'monthly_award_limit' in data:
        try:
            limit = dollars_to_points(data.get('monthly_award_limit'))
        except (TypeError, ValueError):
            raise ValueError("Monthly award limit must be a dollar value.")
        if limit < 0:
            raise ValueError("Monthly award limit cannot be negative.")
        admin.monthly_award_limit = limit


@admin_bp.route('/admins')
@permission_required('manage-admins')
def list_admins():
    admins = Admin.query.order_by(Admin.name).all()
    return jsonify({"status": "success", "admins": [admin.to_dict() for admin in admins]})


@admin_bp.route('/admins', methods=['POST'])
@permission_required('manage-admins')
def create_admin():
    data = _json()
    admin = Admin(
        permissions=[],
        monthly_award_limit=current_app.config['DEFAULT_MONTHLY_AWARD_LIMIT'],
        points_awarded_this_month=0,
    )
    try:
        _apply_admin_fields(admin, data)
    except ValueError as e:
        return _error(str(e))

    admin.login_code = normalize_code(data.get('login_code')) or _unique_login_code(Admin)
    if Admin.query.filter_by(login_code=admin.login_code).first():
        return _error("That login code is already in use.", 409)

    try:
        db.session.add(admin)
        save_snapshot('admins')
    except SQLAlchemyError:
        return _save_failed("Creating admin")

    current_app.logger.info(f"Admin {get_current_admin().id} created admin {admin.id}")
    payload = admin.to_dict()
    payload['login_code'] = admin.login_code
    return jsonify({"status": "success", "message": f"Added {admin.name}.", "admin": payload}), 201


@admin_bp.route('/admins/<int:admin_id>', methods=['PUT'])
@permission_required('manage-admins')
def update_admin(admin_id):
    admin = db.session.get(Admin, admin_id)
    if not admin:
        return _error("Admin not found.", 404)
    try:
        _apply_admin_fields(admin, _json())
    except ValueError as e:
        db.session.rollback()
        return _error(str(e))

    try:
        save_snapshot('admins')
    except SQLAlchemyError:
        return _save_failed(f"Updating admin {admin_id}")
    return jsonify({"status": "success", "message": f"Updated {admin.name}.", "admin": admin.to_dict()})


@admin_bp.route('/admins/<int:admin_id>', methods=['DELETE'])
@permission_required('manage-admins')
def delete_admin(admin_id):
    if admin_id == get_current_admin().id:
        return _error("You cannot delete your own account.")
    admin = db.session.get(Admin, admin_id)
    if not admin:
        return _error("Admin not found.", 404)
    try:
        db.session.delete(admin)
        save_snapshot('admins')
    except SQLAlchemyError:
        return _save_failed(f"Deleting admin {admin_id}")
    current_app.logger.info(f"Admin {admin_id} deleted")
    return jsonify({"status": "success", "message": "Admin removed."})
