"""
Tests for paying students who check in at school events.
"""
from app import db
from app.models import Admin, AttendanceRecord, Notification


def check_in(client, student_number='1001', amount='2.00', event_name='Fall Concert'):
    return client.post('/api/admin/events/checkin', json={
        'student_number': student_number, 'amount': amount, 'event_name': event_name,
    })


def test_check_in_pays_reward(admin_client, test_student, test_admin):
    resp = check_in(admin_client)
    assert resp.status_code == 200
    assert resp.json['message'] == "Checked in Ava Martinez (+$2.00)"

    db.session.refresh(test_student)
    assert test_student.total_points == 520
    entry = AttendanceRecord.query.one()
    assert entry.kind == 'event'
    assert entry.reason == 'Fall Concert'
    assert entry.awarded_by == test_admin.id
    note = Notification.query.filter_by(student_id=test_student.id).one()
    assert note.title == 'Event Reward!'
    assert note.message == "You earned $2.00 for attending: Fall Concert."


def test_duplicate_check_in_refused(admin_client, test_student):
    check_in(admin_client)
    resp = check_in(admin_client)
    assert resp.status_code == 409
    assert resp.json['message'] == "Ava Martinez is already checked in."

    db.session.refresh(test_student)
    assert test_student.total_points == 520


def test_other_event_same_day_allowed(admin_client, test_student):
    check_in(admin_client)
    assert check_in(admin_client, event_name='Science Fair').status_code == 200


def test_default_event_name(admin_client, test_student):
    check_in(admin_client, event_name='')
    assert AttendanceRecord.query.one().reason == 'Event Attendance'
    assert Notification.query.one().message == "You earned $2.00 for attending: School Event."


def test_unknown_card_and_bad_amount(admin_client, test_student):
    resp = check_in(admin_client, student_number='0000')
    assert resp.status_code == 404
    assert resp.json['message'] == "Student card not recognized."
    assert check_in(admin_client, amount='free').status_code == 400
    assert AttendanceRecord.query.count() == 0


def test_does_not_use_award_budget(admin_client, test_student, test_admin):
    check_in(admin_client, amount='5.00')
    db.session.refresh(test_admin)
    assert test_admin.points_awarded_this_month == 0


def test_requires_event_permission(client, test_student):
    admin = Admin(name='Door Monitor', login_code='333333', permissions=['scanner'],
                  monthly_award_limit=0, points_awarded_this_month=0)
    db.session.add(admin)
    db.session.commit()
    with client.session_transaction() as sess:
        sess['is_admin'] = True
        sess['admin_id'] = admin.id
    assert check_in(client).status_code == 403
