import os
import sys
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Override env vars for testing
os.environ["SECRET_KEY"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FLASK_ENV"] = "testing"
os.environ["SCHOOL_TIMEZONE"] = "America/Los_Angeles"
os.environ["RATELIMIT_ENABLED"] = "false"
os.environ.setdefault("RATELIMIT_STORAGE_URI", "memory://")
os.environ.pop("CLOUD_MIRROR_URL", None)


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from app import app as flask_app, db
from app.models import Admin, Student, StoreItem
from app.utils.constants import ADMIN_PERMISSIONS


@pytest.fixture
def app():
    """Provide the Flask app instance for tests."""
    flask_app.config.update(
        TESTING=True,
        WTF_CSRF_ENABLED=False,
        RATELIMIT_ENABLED=False,
        ENV="testing",
        SESSION_COOKIE_SECURE=False,
        CLOUD_MIRROR_URL=None,
    )
    yield flask_app


@pytest.fixture
def client(app):
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    client = flask_app.test_client()
    yield client
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def test_student(client):
    stu = Student(
        student_number="1001",
        login_code="123456",
        name="Ava Martinez",
        email="ava@example.edu",
        total_points=500,
        cart=[],
        favorites=[],
    )
    db.session.add(stu)
    db.session.commit()
    return stu


@pytest.fixture
def other_student(client):
    stu = Student(
        student_number="1002",
        login_code="654321",
        name="Noah Kim",
        total_points=0,
        cart=[],
        favorites=[],
    )
    db.session.add(stu)
    db.session.commit()
    return stu


@pytest.fixture
def test_admin(client):
    admin = Admin(
        name="Ms. Rivera",
        login_code="999999",
        permissions=list(ADMIN_PERMISSIONS),
        monthly_award_limit=1000,
        points_awarded_this_month=0,
    )
    db.session.add(admin)
    db.session.commit()
    return admin


@pytest.fixture
def store_item(client):
    item = StoreItem(name="Homework Pass", cost=50, category="Privilege", quantity=10)
    db.session.add(item)
    db.session.commit()
    return item


@pytest.fixture
def student_client(client, test_student):
    with client.session_transaction() as sess:
        sess['student_id'] = test_student.id
    return client


@pytest.fixture
def admin_client(client, test_admin):
    with client.session_transaction() as sess:
        sess['is_admin'] = True
        sess['admin_id'] = test_admin.id
    return client
