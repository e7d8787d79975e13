"""
Authentication and authorization utilities for Cougar Cash.

Contains session management helpers, authentication decorators, and timeout
logic. Login codes are plaintext; the signed Flask session cookie is the only
credential after login.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps

from flask import session, jsonify, current_app


# -------------------- SESSION CONFIGURATION --------------------

SESSION_TIMEOUT_MINUTES = 30

STUDENT_SESSION_KEYS = ('student_id', 'last_activity')
ADMIN_SESSION_KEYS = ('is_admin', 'admin_id', 'last_activity')


def _unauthorized(message="Unauthorized"):
    return jsonify({"status": "error", "message": message}), 401


def _session_expired(now):
    """True when the session has been idle longer than the timeout."""
    last_activity = session.get('last_activity')
    if not last_activity:
        return False
    return (now - datetime.fromisoformat(last_activity)) > timedelta(minutes=SESSION_TIMEOUT_MINUTES)


def clear_session(keys):
    for key in keys:
        session.pop(key, None)


# -------------------- AUTHENTICATION DECORATORS --------------------

def login_required(f):
    """
    Decorator to require student authentication for a route.

    Returns 401 JSON when no student is logged in or the session has been
    idle longer than ``SESSION_TIMEOUT_MINUTES``.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'student_id' not in session:
            return _unauthorized()

        now = datetime.now(timezone.utc)
        if _session_expired(now):
            clear_session(STUDENT_SESSION_KEYS)
            return _unauthorized("Session expired. Please log in again.")

        if get_logged_in_student() is None:
            clear_session(STUDENT_SESSION_KEYS)
            return _unauthorized("Session is invalid. Please log in again.")

        session['last_activity'] = now.isoformat()
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """
    Decorator to require admin authentication for a route.

    Enforces session timeout based on last activity.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get("is_admin"):
            return _unauthorized("You must be an admin to do that.")

        admin = get_current_admin()
        if not admin:
            clear_session(ADMIN_SESSION_KEYS)
            return _unauthorized("Admin session is invalid. Please log in again.")

        now = datetime.now(timezone.utc)
        if _session_expired(now):
            clear_session(ADMIN_SESSION_KEYS)
            return _unauthorized("Admin session expired. Please log in again.")

        session['last_activity'] = now.isoformat()
        return f(*args, **kwargs)
    return decorated_function


def permission_required(permission):
    """
    Decorator factory requiring an admin holding ``permission``.

    Implies ``admin_required``. Responds 403 when the admin lacks the
    permission.
    """
    def decorator(f):
        @wraps(f)
        @admin_required
        def decorated_function(*args, **kwargs):
            admin = get_current_admin()
            if not admin.has_permission(permission):
                current_app.logger.warning(f"Admin {admin.id} denied '{permission}' access")
                return jsonify({"status": "error", "message": "You do not have permission to do that."}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


# -------------------- HELPER FUNCTIONS --------------------

def get_logged_in_student():
    """
    Get the currently logged-in student from the session.

    Returns:
        Student: The logged-in Student object, or None if not logged in.
    """
    # Import here to avoid circular imports
    from app.extensions import db
    from app.models import Student
    return db.session.get(Student, session['student_id']) if 'student_id' in session else None


def get_current_admin():
    """Return the logged-in admin based on the session state."""
    if not session.get("is_admin"):
        return None
    admin_id = session.get("admin_id")
    if not admin_id:
        return None
    from app.extensions import db
    from app.models import Admin  # Imported lazily to avoid circular import
    return db.session.get(Admin, admin_id)


def log_in_student(student):
    clear_session(ADMIN_SESSION_KEYS)
    session['student_id'] = student.id
    session['last_activity'] = datetime.now(timezone.utc).isoformat()


def log_in_admin(admin):
    clear_session(STUDENT_SESSION_KEYS)
    session['is_admin'] = True
    session['admin_id'] = admin.id
    session['last_activity'] = datetime.now(timezone.utc).isoformat()
