"""
Database models for Cougar Cash.

All SQLAlchemy models are defined here with proper relationships and properties.
Times are stored as UTC in the database.
"""

from datetime import datetime, timezone

from app.extensions import db
from app.utils.constants import DEFAULT_HALL_PASS_LIMIT, DEFAULT_MONTHLY_AWARD_LIMIT
from app.utils.helpers import as_utc, format_date, format_utc_iso, points_to_dollars, render_markdown
from award_budget import effective_used
from redemption import FulfillmentStatus, ValidityRegime


def _utc_now():
    """Helper function for timezone-aware datetime defaults in SQLAlchemy models."""
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# -------------------- PEOPLE --------------------

class Student(db.Model):
    __tablename__ = 'students'
    id = db.Column(db.Integer, primary_key=True)
    # Number printed on the student ID card; this is what the scanner reads
    student_number = db.Column(db.String(20), unique=True, nullable=False)
    login_code = db.Column(db.String(10), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=True)

    total_points = db.Column(db.Integer, default=0, nullable=False)

    hall_pass_limit = db.Column(db.Integer, default=DEFAULT_HALL_PASS_LIMIT, nullable=False)
    hall_passes_used_this_month = db.Column(db.Integer, default=0, nullable=False)
    hall_pass_reset_month = db.Column(db.String(7), nullable=True)  # YYYY-MM the counter belongs to

    # Lists of StoreItem ids; always reassign, never mutate in place
    cart = db.Column(db.JSON, default=list, nullable=False)
    favorites = db.Column(db.JSON, default=list, nullable=False)

    created_at = db.Column(db.DateTime, default=_utc_now)

    attendance_records = db.relationship(
        'AttendanceRecord', backref='student', lazy=True,
        cascade='all, delete-orphan', order_by='AttendanceRecord.id',
    )
    purchases = db.relationship(
        'PurchaseRecord', backref='student', lazy=True,
        cascade='all, delete-orphan', order_by='PurchaseRecord.id',
    )
    notifications = db.relationship(
        'Notification', backref='student', lazy=True,
        cascade='all, delete-orphan', order_by='Notification.id.desc()',
    )
    hall_passes = db.relationship('HallPass', backref='student', lazy=True, cascade='all, delete-orphan')

    @property
    def balance_dollars(self):
        return points_to_dollars(self.total_points)

    def hall_passes_used(self, month):
        """Passes used in ``month``; a counter left over from an earlier month reads as zero."""
        return effective_used(self.hall_passes_used_this_month, self.hall_pass_reset_month, month)

    def to_dict(self, month=None):
        data = {
            'id': self.id,
            'student_number': self.student_number,
            'name': self.name,
            'email': self.email,
            'total_points': self.total_points,
            'balance': self.balance_dollars,
            'hall_pass_limit': self.hall_pass_limit,
            'cart': list(self.cart or []),
            'favorites': list(self.favorites or []),
        }
        if month is not None:
            data['hall_passes_used'] = self.hall_passes_used(month)
        return data


class Admin(db.Model):
    __tablename__ = 'admins'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=True)
    login_code = db.Column(db.String(10), unique=True, nullable=False)
    permissions = db.Column(db.JSON, default=list, nullable=False)

    # Monthly award budget, all in points
    monthly_award_limit = db.Column(db.Integer, default=DEFAULT_MONTHLY_AWARD_LIMIT, nullable=False)
    points_awarded_this_month = db.Column(db.Integer, default=0, nullable=False)
    last_reset_month = db.Column(db.String(7), nullable=True)  # YYYY-MM

    created_at = db.Column(db.DateTime, default=_utc_now)

    def has_permission(self, permission):
        return permission in (self.permissions or [])

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'permissions': list(self.permissions or []),
            'monthly_award_limit': self.monthly_award_limit,
            'monthly_award_limit_dollars': points_to_dollars(self.monthly_award_limit),
        }


class StudentGroup(db.Model):
    """A named roster (class, team, club) used to select students in bulk."""
    __tablename__ = 'student_groups'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    group_type = db.Column(db.String(20), default='Class', nullable=False)  # Class, Team, Club, Other
    # Student ids; always reassign, never mutate in place
    student_ids = db.Column(db.JSON, default=list, nullable=False)
    created_at = db.Column(db.DateTime, default=_utc_now)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'type': self.group_type,
            'student_ids': list(self.student_ids or []),
        }


# -------------------- POINTS LEDGER --------------------

class AttendanceRecord(db.Model):
    """
    One signed change to a student's points.

    ``kind`` separates daily attendance from staff awards, manual
    adjustments and point checkouts. Only ``attendance`` entries count when
    deciding whether a day has already been recorded.
    """
    __tablename__ = 'attendance_records'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    present = db.Column(db.Boolean, default=True, nullable=False)
    points_awarded = db.Column(db.Integer, default=0, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    kind = db.Column(db.String(20), default='attendance', nullable=False)  # attendance, award, adjustment, checkout
    awarded_by = db.Column(db.Integer, db.ForeignKey('admins.id', ondelete='SET NULL'), nullable=True, index=True)
    created_at = db.Column(db.DateTime, default=_utc_now)

    awarded_by_admin = db.relationship('Admin', backref=db.backref('awards', lazy='dynamic'))

    def to_dict(self):
        return {
            'id': self.id,
            'date': format_date(self.date),
            'present': self.present,
            'points_awarded': self.points_awarded,
            'amount': points_to_dollars(self.points_awarded),
            'reason': self.reason,
            'kind': self.kind,
            'awarded_by': self.awarded_by,
        }


class Notification(db.Model):
    __tablename__ = 'notifications'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True)
    title = db.Column(db.String(120), nullable=False)
    message = db.Column(db.Text, nullable=False)
    kind = db.Column(db.String(20), default='general', nullable=False)  # order_ready, general, purchase
    read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=_utc_now)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'message': self.message,
            'kind': self.kind,
            'read': self.read,
            'created_at': format_utc_iso(self.created_at),
        }


# -------------------- STORE MODELS --------------------

class StoreItem(db.Model):
    __tablename__ = 'store_items'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    cost = db.Column(db.Integer, nullable=False)  # points
    image = db.Column(db.String(500), nullable=True)
    category = db.Column(db.String(50), nullable=False, default='General')
    quantity = db.Column(db.Integer, default=0, nullable=False)

    # Validity template copied onto each purchase
    expiration_date = db.Column(db.Date, nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    duration_days = db.Column(db.Integer, nullable=True)

    requires_fulfillment = db.Column(db.Boolean, default=False, nullable=False)
    external_barcode = db.Column(db.String(100), nullable=True)
    hall_pass_increase = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, default=_utc_now)

    @property
    def in_stock(self):
        return self.quantity > 0

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'cost': self.cost,
            'price': points_to_dollars(self.cost),
            'image': self.image,
            'category': self.category,
            'quantity': self.quantity,
            'expiration_date': format_date(self.expiration_date),
            'start_date': format_date(self.start_date),
            'end_date': format_date(self.end_date),
            'duration_days': self.duration_days,
            'requires_fulfillment': self.requires_fulfillment,
            'external_barcode': self.external_barcode,
            'hall_pass_increase': self.hall_pass_increase,
        }


class PurchaseRecord(db.Model):
    """
    A redeemable unit bought from the store.

    ``regime`` is fixed at purchase time and decides which validity rules
    apply when the code is scanned (see ``redemption.classify_redemption``).
    """
    __tablename__ = 'purchase_records'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True)
    store_item_id = db.Column(db.Integer, db.ForeignKey('store_items.id', ondelete='SET NULL'), nullable=True)

    purchased_at = db.Column(db.DateTime, default=_utc_now, nullable=False)
    item_name = db.Column(db.String(100), nullable=False)
    cost = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(50), nullable=False)
    image = db.Column(db.String(500), nullable=True)
    redeemed = db.Column(db.Boolean, default=False, nullable=False)

    regime = db.Column(
        db.Enum(ValidityRegime, name='validity_regime', values_callable=_enum_values),
        default=ValidityRegime.ONE_SHOT,
        nullable=False,
    )
    expiration_date = db.Column(db.Date, nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    duration_days = db.Column(db.Integer, nullable=True)
    activation_date = db.Column(db.DateTime, nullable=True)  # first successful scan of a duration pass

    requires_fulfillment = db.Column(db.Boolean, default=False, nullable=False)
    fulfillment_status = db.Column(
        db.Enum(FulfillmentStatus, name='fulfillment_status', values_callable=_enum_values),
        nullable=True,
    )
    external_barcode = db.Column(db.String(100), nullable=True, index=True)

    store_item = db.relationship('StoreItem', backref=db.backref('purchases', lazy='dynamic'))

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'student_id': self.student_id,
            'item_name': self.item_name,
            'cost': self.cost,
            'category': self.category,
            'image': self.image,
            'purchased_at': format_utc_iso(self.purchased_at),
            'redeemed': self.redeemed,
            'regime': self.regime.value if self.regime else None,
            'expiration_date': format_date(self.expiration_date),
            'start_date': format_date(self.start_date),
            'end_date': format_date(self.end_date),
            'duration_days': self.duration_days,
            'activation_date': format_utc_iso(self.activation_date),
            'requires_fulfillment': self.requires_fulfillment,
            'fulfillment_status': self.fulfillment_status.value if self.fulfillment_status else None,
            'external_barcode': self.external_barcode,
        }


# -------------------- CALENDAR --------------------

class CalendarEvent(db.Model):
    """Staff override for a single school day's attendance points."""
    __tablename__ = 'calendar_events'
    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, unique=True, nullable=False)
    title = db.Column(db.String(120), nullable=True)
    event_type = db.Column(db.String(20), default='default', nullable=False)  # special, no_school, break, custom, default
    override_points = db.Column(db.Integer, nullable=True)
    bonus_points = db.Column(db.Integer, nullable=True)
    point_multiplier = db.Column(db.Float, nullable=True)

    def to_dict(self):
        return {
            'date': format_date(self.date),
            'title': self.title,
            'event_type': self.event_type,
            'override_points': self.override_points,
            'bonus_points': self.bonus_points,
            'point_multiplier': self.point_multiplier,
        }


# -------------------- HALL PASS MODELS --------------------

class HallPass(db.Model):
    __tablename__ = 'hall_passes'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True)
    pass_type = db.Column(db.String(20), nullable=False)  # Restroom, Library, Nurse, Office, Other
    status = db.Column(db.String(20), default='active', nullable=False)  # active, returned
    issued_at = db.Column(db.DateTime, default=_utc_now, nullable=False)
    returned_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        minutes_out = None
        if self.issued_at:
            end = as_utc(self.returned_at) or datetime.now(timezone.utc)
            minutes_out = int((end - as_utc(self.issued_at)).total_seconds() // 60)
        return {
            'id': self.id,
            'code': self.code,
            'student_id': self.student_id,
            'student_name': self.student.name if self.student else None,
            'type': self.pass_type,
            'status': self.status,
            'issued_at': format_utc_iso(self.issued_at),
            'returned_at': format_utc_iso(self.returned_at),
            'minutes_out': minutes_out,
        }


class HallPassLockout(db.Model):
    """Daily time window (local HH:MM, inclusive) during which passes are refused."""
    __tablename__ = 'hall_pass_lockouts'
    id = db.Column(db.Integer, primary_key=True)
    label = db.Column(db.String(120), nullable=False)
    start_time = db.Column(db.String(5), nullable=False)
    end_time = db.Column(db.String(5), nullable=False)

    def covers(self, hhmm):
        return self.start_time <= hhmm <= self.end_time

    def to_dict(self):
        return {'id': self.id, 'label': self.label, 'start_time': self.start_time, 'end_time': self.end_time}


class BuddyConflict(db.Model):
    """Two students who may not be out on passes at the same time."""
    __tablename__ = 'buddy_conflicts'
    id = db.Column(db.Integer, primary_key=True)
    student_a_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    student_b_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    reason = db.Column(db.String(255), default='Restricted Buddy Group', nullable=False)

    def other_student_id(self, student_id):
        if self.student_a_id == student_id:
            return self.student_b_id
        if self.student_b_id == student_id:
            return self.student_a_id
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'student_ids': [self.student_a_id, self.student_b_id],
            'reason': self.reason,
        }


# -------------------- POLLS & ANNOUNCEMENTS --------------------

class Poll(db.Model):
    __tablename__ = 'polls'
    id = db.Column(db.Integer, primary_key=True)
    question = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey('admins.id', ondelete='SET NULL'), nullable=True)

    options = db.relationship(
        'PollOption', backref='poll', lazy=True,
        cascade='all, delete-orphan', order_by='PollOption.position',
    )
    votes = db.relationship('PollVote', backref='poll', lazy='dynamic', cascade='all, delete-orphan')

    def is_expired(self, now=None):
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return as_utc(self.expires_at) <= now

    def is_open(self, now=None):
        return self.is_active and not self.is_expired(now)

    def to_dict(self, student_id=None):
        data = {
            'id': self.id,
            'question': self.question,
            'created_at': format_utc_iso(self.created_at),
            'expires_at': format_utc_iso(self.expires_at),
            'is_active': self.is_active,
            'options': [option.to_dict() for option in self.options],
        }
        if student_id is not None:
            vote = self.votes.filter_by(student_id=student_id).first()
            data['voted_option_id'] = vote.option_id if vote else None
        return data


class PollOption(db.Model):
    __tablename__ = 'poll_options'
    id = db.Column(db.Integer, primary_key=True)
    poll_id = db.Column(db.Integer, db.ForeignKey('polls.id', ondelete='CASCADE'), nullable=False)
    text = db.Column(db.String(255), nullable=False)
    position = db.Column(db.Integer, default=0, nullable=False)

    votes = db.relationship('PollVote', backref='option', lazy='dynamic')

    def to_dict(self):
        return {'id': self.id, 'text': self.text, 'votes': self.votes.count()}


class PollVote(db.Model):
    __tablename__ = 'poll_votes'
    id = db.Column(db.Integer, primary_key=True)
    poll_id = db.Column(db.Integer, db.ForeignKey('polls.id', ondelete='CASCADE'), nullable=False)
    option_id = db.Column(db.Integer, db.ForeignKey('poll_options.id', ondelete='CASCADE'), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id', ondelete='CASCADE'), nullable=False)
    created_at = db.Column(db.DateTime, default=_utc_now)

    __table_args__ = (
        db.UniqueConstraint('poll_id', 'student_id', name='uq_poll_votes_poll_student'),
    )


class Announcement(db.Model):
    __tablename__ = 'announcements'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)  # Markdown
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey('admins.id', ondelete='SET NULL'), nullable=True)

    def is_expired(self, now=None):
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return as_utc(self.expires_at) <= now

    def should_display(self, now=None):
        return self.is_active and not self.is_expired(now)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'content': self.content,
            'content_html': str(render_markdown(self.content)),
            'created_at': format_utc_iso(self.created_at),
            'expires_at': format_utc_iso(self.expires_at),
            'is_active': self.is_active,
        }
