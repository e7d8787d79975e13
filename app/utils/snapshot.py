"""
Whole-collection snapshots of application state.

``save_snapshot`` is the explicit save step routes call after a successful
mutation: it commits the session, then mirrors the named collections.
``export_snapshot`` builds the same documents for ``flask export-snapshot``.
"""

from app.extensions import db
from app.models import (
    Admin, Announcement, BuddyConflict, CalendarEvent, HallPass,
    HallPassLockout, Poll, Student, StudentGroup, StoreItem
)
from app.utils.cloud_mirror import mirror_collection, mirror_enabled


def _students():
    items = []
    for student in Student.query.order_by(Student.id).all():
        data = student.to_dict()
        data['hall_passes_used_this_month'] = student.hall_passes_used_this_month
        data['hall_pass_reset_month'] = student.hall_pass_reset_month
        data['attendance_history'] = [record.to_dict() for record in student.attendance_records]
        data['purchase_history'] = [purchase.to_dict() for purchase in student.purchases]
        data['notifications'] = [note.to_dict() for note in student.notifications]
        items.append(data)
    return items


def _admins():
    items = []
    for admin in Admin.query.order_by(Admin.id).all():
        data = admin.to_dict()
        data['points_awarded_this_month'] = admin.points_awarded_this_month
        data['last_reset_month'] = admin.last_reset_month
        items.append(data)
    return items


COLLECTIONS = {
    'students': _students,
    'admins': _admins,
    'store_items': lambda: [item.to_dict() for item in StoreItem.query.order_by(StoreItem.id)],
    'calendar_events': lambda: [event.to_dict() for event in CalendarEvent.query.order_by(CalendarEvent.date)],
    'hall_passes': lambda: [hall_pass.to_dict() for hall_pass in HallPass.query.order_by(HallPass.id)],
    'polls': lambda: [poll.to_dict() for poll in Poll.query.order_by(Poll.id)],
    'announcements': lambda: [ann.to_dict() for ann in Announcement.query.order_by(Announcement.id)],
    'hall_pass_lockouts': lambda: [lock.to_dict() for lock in HallPassLockout.query.order_by(HallPassLockout.id)],
    'hall_pass_conflicts': lambda: [conf.to_dict() for conf in BuddyConflict.query.order_by(BuddyConflict.id)],
    'groups': lambda: [group.to_dict() for group in StudentGroup.query.order_by(StudentGroup.id)],
}


def serialize_collection(name):
    try:
        builder = COLLECTIONS[name]
    except KeyError:
        raise ValueError(f"Unknown collection: {name}")
    return builder()


def export_snapshot(names=None):
    """Return ``{collection: [items]}`` for the requested (default: all) collections."""
    names = names or list(COLLECTIONS)
    return {name: serialize_collection(name) for name in names}


def save_snapshot(*collections):
    """
    Commit the current session and mirror the touched collections.

    Database errors propagate to the caller, which owns the rollback.
    """
    db.session.commit()
    if not mirror_enabled():
        return
    for name in collections:
        mirror_collection(name, serialize_collection(name))
