"""
Shared Flask extension instances.

Centralized to avoid circular imports. Extensions are initialized
here but configured in create_app().
"""

import os

from flask import has_request_context, request, session
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_wtf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions (without binding to an app yet)
db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()


def client_address():
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded_for = request.headers.get('X-Forwarded-For')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    return request.remote_addr or get_remote_address()


def rate_limit_key():
    """
    Rate limit per signed-in account, falling back to the client address.

    A whole campus usually shares one public IP, so keying by address alone
    would make every student and scanner station share a single bucket.
    """
    if not has_request_context():
        return '127.0.0.1'
    if session.get('is_admin') and session.get('admin_id'):
        return f"admin:{session['admin_id']}"
    if session.get('student_id'):
        return f"student:{session['student_id']}"
    return f"ip:{client_address()}"


def limiter_storage_uri():
    """RATELIMIT_STORAGE_URI, then REDIS_URL, then in-process memory."""
    return (
        os.environ.get('RATELIMIT_STORAGE_URI')
        or os.environ.get('REDIS_URL')
        or 'memory://'
    )


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=["2000 per day", "500 per hour"],
    storage_uri=limiter_storage_uri(),
    strategy="fixed-window"
)
