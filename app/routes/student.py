"""
Student routes for Cougar Cash.

Contains all student-facing functionality: balance and history, the store
(cart, favorites, checkout), hall passes, polls, announcements and the
points calendar.
"""

from datetime import datetime, timezone

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.auth import login_required, get_logged_in_student
from app.extensions import db
from app.models import Announcement, Notification, Poll, PollOption, PollVote, StoreItem
from app.utils.constants import HALL_PASS_TYPES
from app.utils.economy import calendar_overrides, cart_total, checkout, issue_hall_pass
from app.utils.helpers import school_now, school_today
from app.utils.snapshot import save_snapshot
from award_budget import current_month
from points import points_for_month

# Create blueprint
student_bp = Blueprint('student', __name__, url_prefix='/api/student')


def _error(message, status_code=400):
    return jsonify({"status": "error", "message": message}), status_code


def _save_failed(action, student):
    db.session.rollback()
    current_app.logger.error(f"{action} failed for student {student.id}", exc_info=True)
    return _error("An error occurred. Please try again.", 500)


# -------------------- ACCOUNT --------------------

@student_bp.route('/me')
@login_required
def me():
    """Balance, hall pass usage and wallet for the logged-in student."""
    student = get_logged_in_student()
    month = current_month(school_now())
    data = student.to_dict(month=month)
    data['wallet'] = [purchase.to_dict() for purchase in reversed(student.purchases)]
    data['active_hall_pass'] = next(
        (hall_pass.to_dict() for hall_pass in student.hall_passes if hall_pass.status == 'active'),
        None,
    )
    data['unread_notifications'] = sum(1 for note in student.notifications if not note.read)
    return jsonify({"status": "success", "student": data})


@student_bp.route('/history')
@login_required
def history():
    student = get_logged_in_student()
    entries = sorted(student.attendance_records, key=lambda record: (record.date, record.id), reverse=True)
    return jsonify({"status": "success", "history": [entry.to_dict() for entry in entries]})


@student_bp.route('/notifications')
@login_required
def notifications():
    student = get_logged_in_student()
    return jsonify({"status": "success", "notifications": [note.to_dict() for note in student.notifications]})


@student_bp.route('/notifications/read', methods=['POST'])
@login_required
def mark_notifications_read():
    """Mark the given notification ids (or all of them) as read."""
    student = get_logged_in_student()
    data = request.get_json(silent=True) or {}
    ids = data.get('ids')

    query = Notification.query.filter_by(student_id=student.id, read=False)
    if ids:
        query = query.filter(Notification.id.in_(ids))

    try:
        updated = 0
        for note in query.all():
            note.read = True
            updated += 1
        save_snapshot('students')
    except SQLAlchemyError:
        return _save_failed("Marking notifications read", student)
    return jsonify({"status": "success", "message": f"{updated} notification(s) marked as read."})


# -------------------- STORE --------------------

@student_bp.route('/store')
@login_required
def store():
    items = StoreItem.query.filter(StoreItem.quantity > 0).order_by(StoreItem.category, StoreItem.name).all()
    return jsonify({"status": "success", "items": [item.to_dict() for item in items]})


@student_bp.route('/cart/<int:item_id>', methods=['POST'])
@login_required
def add_to_cart(item_id):
    student = get_logged_in_student()
    item = db.session.get(StoreItem, item_id)
    if not item:
        return _error("Item not found.", 404)
    if not item.in_stock:
        return _error(f"{item.name} is out of stock.")

    cart = list(student.cart or [])
    if cart_total(cart) + item.cost > student.total_points:
        return _error("Insufficient points to add this item.")

    try:
        student.cart = cart + [item.id]
        save_snapshot('students')
    except SQLAlchemyError:
        return _save_failed("Add to cart", student)
    return jsonify({"status": "success", "message": f"{item.name} added to cart.", "cart": student.cart})


@student_bp.route('/cart/<int:item_id>', methods=['DELETE'])
@login_required
def remove_from_cart(item_id):
    """Remove one occurrence of the item from the cart."""
    student = get_logged_in_student()
    cart = list(student.cart or [])
    if item_id not in cart:
        return _error("Item is not in your cart.", 404)

    cart.remove(item_id)
    try:
        student.cart = cart
        save_snapshot('students')
    except SQLAlchemyError:
        return _save_failed("Remove from cart", student)
    return jsonify({"status": "success", "message": "Item removed from cart.", "cart": student.cart})


@student_bp.route('/favorites/<int:item_id>', methods=['POST'])
@login_required
def toggle_favorite(item_id):
    student = get_logged_in_student()
    if not db.session.get(StoreItem, item_id):
        return _error("Item not found.", 404)

    favorites = list(student.favorites or [])
    if item_id in favorites:
        favorites.remove(item_id)
        favorited = False
    else:
        favorites.append(item_id)
        favorited = True

    try:
        student.favorites = favorites
        save_snapshot('students')
    except SQLAlchemyError:
        return _save_failed("Toggle favorite", student)
    return jsonify({"status": "success", "favorited": favorited, "favorites": student.favorites})


@student_bp.route('/checkout', methods=['POST'])
@login_required
def checkout_cart():
    """
    Buy items now (``{"item_ids": [...]}``) or check out the whole cart.

    One purchase record is created per unit bought.
    """
    student = get_logged_in_student()
    data = request.get_json(silent=True) or {}
    item_ids = data.get('item_ids')
    from_cart = not item_ids
    if from_cart:
        item_ids = list(student.cart or [])

    try:
        item_ids = [int(item_id) for item_id in item_ids]
    except (TypeError, ValueError):
        return _error("Item ids must be integers.")

    success, message, purchases = checkout(student, item_ids, from_cart=from_cart)
    if not success:
        return _error(message)

    try:
        save_snapshot('students', 'store_items')
    except SQLAlchemyError:
        return _save_failed("Checkout", student)

    current_app.logger.info(
        f"Student {student.id} bought {len(purchases)} item(s): {', '.join(p.code for p in purchases)}"
    )
    return jsonify({
        "status": "success",
        "message": message,
        "purchases": [purchase.to_dict() for purchase in purchases],
        "balance": student.balance_dollars,
    })


# -------------------- HALL PASSES --------------------

@student_bp.route('/hall-pass', methods=['POST'])
@login_required
def request_hall_pass():
    student = get_logged_in_student()
    data = request.get_json(silent=True) or {}
    pass_type = data.get('type')
    if pass_type not in HALL_PASS_TYPES:
        return _error(f"Pass type must be one of: {', '.join(HALL_PASS_TYPES)}.")

    if any(hall_pass.status == 'active' for hall_pass in student.hall_passes):
        return _error("You already have an active hall pass.")

    success, message, hall_pass = issue_hall_pass(student, pass_type, school_now())
    if not success:
        return _error(message, 403)

    try:
        save_snapshot('students', 'hall_passes')
    except SQLAlchemyError:
        return _save_failed("Hall pass request", student)

    current_app.logger.info(f"Hall pass {hall_pass.code} issued to student {student.id}")
    return jsonify({"status": "success", "message": message, "hall_pass": hall_pass.to_dict()})


# -------------------- POLLS & ANNOUNCEMENTS --------------------

@student_bp.route('/polls')
@login_required
def polls():
    student = get_logged_in_student()
    now = datetime.now(timezone.utc)
    open_polls = [poll for poll in Poll.query.order_by(Poll.created_at.desc()).all() if poll.is_open(now)]
    return jsonify({"status": "success", "polls": [poll.to_dict(student_id=student.id) for poll in open_polls]})


@student_bp.route('/polls/<int:poll_id>/vote', methods=['POST'])
@login_required
def vote(poll_id):
    student = get_logged_in_student()
    poll = db.session.get(Poll, poll_id)
    if not poll:
        return _error("Poll not found.", 404)
    if not poll.is_open():
        return _error("This poll is closed.")

    data = request.get_json(silent=True) or {}
    option = db.session.get(PollOption, data.get('option_id')) if data.get('option_id') else None
    if not option or option.poll_id != poll.id:
        return _error("Invalid option.")

    if PollVote.query.filter_by(poll_id=poll.id, student_id=student.id).first():
        return _error("You have already voted in this poll.")

    try:
        db.session.add(PollVote(poll_id=poll.id, option_id=option.id, student_id=student.id))
        save_snapshot('polls')
    except IntegrityError:
        db.session.rollback()
        return _error("You have already voted in this poll.")
    except SQLAlchemyError:
        return _save_failed("Poll vote", student)

    return jsonify({"status": "success", "message": "Vote recorded.", "poll": poll.to_dict(student_id=student.id)})


@student_bp.route('/announcements')
@login_required
def announcements():
    now = datetime.now(timezone.utc)
    posts = [ann for ann in Announcement.query.order_by(Announcement.created_at.desc()).all() if ann.should_display(now)]
    return jsonify({"status": "success", "announcements": [ann.to_dict() for ann in posts]})


# -------------------- CALENDAR --------------------

@student_bp.route('/calendar')
@login_required
def calendar():
    """Points for every day of ``?month=YYYY-MM`` (default: this month)."""
    month_param = request.args.get('month')
    try:
        if month_param:
            year, month = (int(part) for part in month_param.split('-'))
        else:
            today = school_today()
            year, month = today.year, today.month
        overrides = calendar_overrides()
        days = points_for_month(year, month, overrides)
    except ValueError:
        return _error("Month must be formatted YYYY-MM.")

    return jsonify({
        "status": "success",
        "month": f"{year:04d}-{month:02d}",
        "days": [
            {
                "date": day.isoformat(),
                "points": day_points.points,
                "reason": day_points.reason,
                "classification": day_points.classification,
                "event": overrides[day].to_dict() if day in overrides else None,
            }
            for day, day_points in days
        ],
    })
