"""
Tests for login, logout and the route guards.
"""
from datetime import datetime, timedelta, timezone

from app import db
from app.models import Admin


def test_student_login(client, test_student):
    resp = client.post('/api/login', json={'role': 'student', 'code': '123456'})
    assert resp.status_code == 200
    assert resp.json['status'] == 'success'
    with client.session_transaction() as sess:
        assert sess['student_id'] == test_student.id
        assert 'is_admin' not in sess


def test_admin_login(client, test_admin):
    resp = client.post('/api/login', json={'role': 'admin', 'code': ' 999999 '})
    assert resp.status_code == 200
    with client.session_transaction() as sess:
        assert sess['is_admin'] is True
        assert sess['admin_id'] == test_admin.id


def test_student_code_does_not_log_in_admin(client, test_student):
    resp = client.post('/api/login', json={'role': 'admin', 'code': '123456'})
    assert resp.status_code == 401
    assert resp.json['message'] == "Invalid login code."


def test_login_requires_code(client):
    resp = client.post('/api/login', json={'role': 'student'})
    assert resp.status_code == 400


def test_login_rejects_unknown_role(client, test_student):
    resp = client.post('/api/login', json={'role': 'janitor', 'code': '123456'})
    assert resp.status_code == 400


def test_logout_clears_session(student_client):
    resp = student_client.post('/api/logout')
    assert resp.status_code == 200
    assert student_client.get('/api/student/me').status_code == 401


def test_student_routes_require_login(client):
    resp = client.get('/api/student/me')
    assert resp.status_code == 401
    assert resp.json['status'] == 'error'


def test_expired_student_session(client, test_student):
    stale = datetime.now(timezone.utc) - timedelta(minutes=45)
    with client.session_transaction() as sess:
        sess['student_id'] = test_student.id
        sess['last_activity'] = stale.isoformat()
    resp = client.get('/api/student/me')
    assert resp.status_code == 401
    assert "expired" in resp.json['message']


def test_admin_routes_require_admin(student_client):
    resp = student_client.get('/api/admin/students')
    assert resp.status_code == 401


def test_missing_permission_is_forbidden(client):
    admin = Admin(name="Coach", login_code="111111", permissions=['scanner'])
    db.session.add(admin)
    db.session.commit()
    with client.session_transaction() as sess:
        sess['is_admin'] = True
        sess['admin_id'] = admin.id

    assert client.get('/api/admin/students').status_code == 403
    assert client.post('/api/admin/redeem', json={'code': 'TX-NONE00'}).status_code == 404


def test_deleted_admin_session_is_invalid(client):
    with client.session_transaction() as sess:
        sess['is_admin'] = True
        sess['admin_id'] = 4242
    resp = client.get('/api/admin/budget')
    assert resp.status_code == 401


def test_csrf_token_endpoint(client):
    resp = client.get('/api/csrf-token')
    assert resp.status_code == 200
    assert resp.json['csrf_token']
