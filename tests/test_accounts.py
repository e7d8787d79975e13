"""
Tests for the student directory, staff accounts and the student's own account views.
"""
from app import db
from app.models import (
    Admin, AttendanceRecord, BuddyConflict, HallPass, Notification, Poll, PollOption, PollVote,
    Student, StudentGroup
)
from app.utils.economy import notify


class TestStudentDirectory:

    def test_create_generates_login_code(self, admin_client):
        resp = admin_client.post('/api/admin/students', json={'student_number': '2001', 'name': 'Eli Brooks'})
        assert resp.status_code == 201
        code = resp.json['student']['login_code']
        assert len(code) == 6 and code.isdigit()
        assert Student.query.filter_by(student_number='2001').one().total_points == 0

    def test_duplicate_number(self, admin_client, test_student):
        resp = admin_client.post('/api/admin/students', json={'student_number': '1001', 'name': 'Copy'})
        assert resp.status_code == 409

    def test_search(self, admin_client, test_student, other_student):
        students = admin_client.get('/api/admin/students?q=noah').json['students']
        assert [s['name'] for s in students] == ['Noah Kim']

    def test_deduct_floors_at_zero(self, admin_client, test_student):
        resp = admin_client.post(f'/api/admin/students/{test_student.id}/adjust', json={
            'amount': 60, 'action': 'deduct', 'reason': 'Lost library book',
        })
        assert resp.status_code == 200
        db.session.refresh(test_student)
        assert test_student.total_points == 0
        assert AttendanceRecord.query.one().points_awarded == -600

    def test_adjust_rejects_bad_action(self, admin_client, test_student):
        resp = admin_client.post(f'/api/admin/students/{test_student.id}/adjust', json={
            'amount': 1, 'action': 'double',
        })
        assert resp.status_code == 400

    def test_bulk_adjust(self, admin_client, test_student, other_student):
        resp = admin_client.post('/api/admin/students/bulk-adjust', json={
            'student_ids': [test_student.id, other_student.id], 'amount': 2, 'reason': 'Field Day',
        })
        assert resp.json['updated'] == 2
        db.session.refresh(other_student)
        assert other_student.total_points == 20

    def test_bulk_adjust_rejects_malformed_ids(self, admin_client, test_student):
        resp = admin_client.post('/api/admin/students/bulk-adjust', json={'student_ids': 'abc', 'amount': 1})
        assert resp.status_code == 400
        assert resp.json['status'] == 'error'
        assert admin_client.post('/api/admin/students/bulk-adjust', json=[1, 2]).status_code == 400
        db.session.refresh(test_student)
        assert test_student.total_points == 500

    def test_detail_includes_history(self, admin_client, test_student):
        admin_client.post(f'/api/admin/students/{test_student.id}/adjust', json={'amount': 1})
        detail = admin_client.get(f'/api/admin/students/{test_student.id}').json['student']
        assert detail['login_code'] == '123456'
        assert detail['history'][0]['reason'] == 'Manual Adjustment'


class TestStaffAccounts:

    def test_create_limit_in_dollars(self, admin_client):
        resp = admin_client.post('/api/admin/admins', json={
            'name': 'Coach Reyes', 'permissions': ['scanner', 'award-points'], 'monthly_award_limit': '25.50',
        })
        assert resp.status_code == 201
        admin = Admin.query.filter_by(name='Coach Reyes').one()
        assert admin.monthly_award_limit == 255
        assert admin.permissions == ['scanner', 'award-points']

    def test_unknown_permission(self, admin_client):
        resp = admin_client.post('/api/admin/admins', json={'name': 'X', 'permissions': ['superuser']})
        assert resp.status_code == 400
        assert 'superuser' in resp.json['message']

    def test_cannot_delete_self(self, admin_client, test_admin):
        resp = admin_client.delete(f'/api/admin/admins/{test_admin.id}')
        assert resp.status_code == 400
        assert db.session.get(Admin, test_admin.id) is not None

    def test_update_and_delete_other(self, admin_client):
        other = Admin(name='Mr. Lee', login_code='222222', permissions=['scanner'],
                      monthly_award_limit=0, points_awarded_this_month=0)
        db.session.add(other)
        db.session.commit()

        resp = admin_client.put(f'/api/admin/admins/{other.id}', json={'permissions': ['scanner', 'orders']})
        assert resp.json['admin']['permissions'] == ['scanner', 'orders']

        assert admin_client.delete(f'/api/admin/admins/{other.id}').status_code == 200
        assert db.session.get(Admin, other.id) is None


class TestStudentAccount:

    def test_me(self, student_client, test_student):
        data = student_client.get('/api/student/me').json['student']
        assert data['name'] == 'Ava Martinez'
        assert data['balance'] == 50.0
        assert data['wallet'] == []
        assert data['active_hall_pass'] is None
        assert data['hall_passes_used'] == 0

    def test_history_newest_first(self, admin_client, student_client, test_student):
        admin_client.post('/api/admin/award', json={'student_number': '1001', 'amount': 1, 'reason': 'First'})
        admin_client.post('/api/admin/award', json={'student_number': '1001', 'amount': 1, 'reason': 'Second'})
        history = student_client.get('/api/student/history').json['history']
        assert [entry['reason'] for entry in history] == ['Second', 'First']

    def test_mark_notifications_read(self, student_client, test_student):
        notify(test_student, 'One', 'First message')
        notify(test_student, 'Two', 'Second message')
        db.session.commit()

        assert student_client.get('/api/student/me').json['student']['unread_notifications'] == 2
        first_id = Notification.query.filter_by(title='One').one().id

        resp = student_client.post('/api/student/notifications/read', json={'ids': [first_id]})
        assert resp.status_code == 200
        assert student_client.get('/api/student/me').json['student']['unread_notifications'] == 1

        student_client.post('/api/student/notifications/read', json={})
        assert student_client.get('/api/student/me').json['student']['unread_notifications'] == 0


class TestBulkDelete:

    def test_deletes_students_and_their_records(self, admin_client, test_student, other_student, store_item):
        poll = Poll(question="Mascot?")
        poll.options = [PollOption(text="Cougar", position=0), PollOption(text="Hawk", position=1)]
        group = StudentGroup(name="Robotics", group_type="Club", student_ids=[test_student.id, other_student.id])
        db.session.add_all([poll, group])
        db.session.flush()
        db.session.add_all([
            PollVote(poll_id=poll.id, option_id=poll.options[0].id, student_id=test_student.id),
            BuddyConflict(student_a_id=test_student.id, student_b_id=other_student.id),
            HallPass(code='HP-GONE01', student_id=test_student.id, pass_type='Library', status='active'),
        ])
        db.session.commit()
        admin_client.post(f'/api/admin/students/{test_student.id}/adjust', json={'amount': 1})

        resp = admin_client.post('/api/admin/students/bulk-delete', json={'student_ids': [test_student.id]})
        assert resp.status_code == 200
        assert resp.json['deleted'] == 1

        assert [s.name for s in Student.query.all()] == ['Noah Kim']
        assert AttendanceRecord.query.count() == 0
        assert HallPass.query.count() == 0
        assert PollVote.query.count() == 0
        assert BuddyConflict.query.count() == 0
        assert db.session.get(StudentGroup, group.id).student_ids == [other_student.id]

    def test_requires_ids(self, admin_client, test_student):
        assert admin_client.post('/api/admin/students/bulk-delete', json={}).status_code == 400
        assert admin_client.post('/api/admin/students/bulk-delete', json={'student_ids': 'all'}).status_code == 400
        assert admin_client.post('/api/admin/students/bulk-delete', json={'student_ids': [999]}).status_code == 404
        assert Student.query.count() == 1


class TestGroups:

    def test_create_and_filter_directory(self, admin_client, test_student, other_student):
        resp = admin_client.post('/api/admin/groups', json={
            'name': 'Varsity Soccer', 'type': 'Team', 'student_ids': [other_student.id],
        })
        assert resp.status_code == 201
        group_id = resp.json['group']['id']

        students = admin_client.get(f'/api/admin/students?group_id={group_id}').json['students']
        assert [s['name'] for s in students] == ['Noah Kim']
        assert admin_client.get('/api/admin/students?group_id=999').status_code == 404

    def test_validation(self, admin_client, test_student):
        assert admin_client.post('/api/admin/groups', json={'name': ''}).status_code == 400
        assert admin_client.post('/api/admin/groups', json={'name': 'Band', 'type': 'Orchestra'}).status_code == 400
        resp = admin_client.post('/api/admin/groups', json={'name': 'Band', 'student_ids': [test_student.id, 999]})
        assert resp.status_code == 400
        assert StudentGroup.query.count() == 0

    def test_update_and_delete(self, admin_client, test_student):
        group = StudentGroup(name='Period 3', group_type='Class', student_ids=[])
        db.session.add(group)
        db.session.commit()

        resp = admin_client.put(f'/api/admin/groups/{group.id}', json={'student_ids': [test_student.id]})
        assert resp.json['group']['student_ids'] == [test_student.id]
        assert admin_client.get('/api/admin/groups').json['groups'][0]['name'] == 'Period 3'

        assert admin_client.delete(f'/api/admin/groups/{group.id}').status_code == 200
        assert StudentGroup.query.count() == 0
