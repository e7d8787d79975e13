"""
API routes for Cougar Cash.

Session endpoints shared by both roles: login with a plaintext code, logout
and the CSRF token bootstrap for browser clients.
"""

from flask import Blueprint, request, jsonify, session, current_app
from flask_wtf.csrf import generate_csrf

from app.auth import (
    ADMIN_SESSION_KEYS, STUDENT_SESSION_KEYS, clear_session, log_in_admin, log_in_student
)
from app.extensions import limiter
from app.models import Admin, Student
from app.utils.codes import normalize_code

# Create blueprint
api_bp = Blueprint('api', __name__, url_prefix='/api')


# -------------------- SESSION API --------------------

@api_bp.route('/login', methods=['POST'])
@limiter.limit("10 per minute")
def login():
    """
    Log a student or staff member in with their login code.

    Body: ``{"role": "student" | "admin", "code": "123456"}``
    """
    data = request.get_json(silent=True) or {}
    role = (data.get('role') or 'student').lower()
    code = normalize_code(data.get('code'))

    if not code:
        return jsonify({"status": "error", "message": "Login code is required."}), 400
    if role not in ('student', 'admin'):
        return jsonify({"status": "error", "message": "Role must be 'student' or 'admin'."}), 400

    if role == 'student':
        student = Student.query.filter_by(login_code=code).first()
        if not student:
            current_app.logger.info("Failed student login attempt")
            return jsonify({"status": "error", "message": "Invalid login code."}), 401
        log_in_student(student)
        current_app.logger.info(f"Student {student.id} logged in")
        return jsonify({"status": "success", "message": f"Welcome, {student.name}!", "student": student.to_dict()})

    admin = Admin.query.filter_by(login_code=code).first()
    if not admin:
        current_app.logger.info("Failed admin login attempt")
        return jsonify({"status": "error", "message": "Invalid login code."}), 401
    log_in_admin(admin)
    current_app.logger.info(f"Admin {admin.id} logged in")
    return jsonify({"status": "success", "message": f"Welcome, {admin.name}!", "admin": admin.to_dict()})


@api_bp.route('/logout', methods=['POST'])
def logout():
    clear_session(STUDENT_SESSION_KEYS + ADMIN_SESSION_KEYS)
    session.clear()
    return jsonify({"status": "success", "message": "Logged out."})


@api_bp.route('/csrf-token', methods=['GET'])
def csrf_token():
    return jsonify({"status": "success", "csrf_token": generate_csrf()})
