"""
Application factory for Cougar Cash.

This module provides create_app() which initializes Flask, extensions,
logging, JSON error handlers, and registers blueprints.
"""

import os
import logging
from logging.handlers import RotatingFileHandler

from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFError
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# Validate required environment variables
required_env_vars = ["SECRET_KEY", "DATABASE_URL", "FLASK_ENV"]
missing_vars = [var for var in required_env_vars if not os.getenv(var)]
if missing_vars:
    raise RuntimeError(
        "Missing required environment variables: " + ", ".join(missing_vars)
    )


def _env_flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _error(message, status_code):
    return jsonify({"status": "error", "message": message}), status_code


# -------------------- APPLICATION FACTORY --------------------

def create_app():
    """
    Application factory function.

    Creates and configures the Flask application, initializes extensions,
    sets up logging, and registers blueprints and CLI commands.

    Returns:
        Flask: Configured Flask application instance
    """
    app = Flask(__name__)

    # -------------------- CONFIGURATION --------------------
    from award_budget import DEFAULT_MONTHLY_AWARD_LIMIT

    app.config.from_mapping(
        DEBUG=False,
        ENV=os.environ["FLASK_ENV"],
        SECRET_KEY=os.environ["SECRET_KEY"],
        SQLALCHEMY_DATABASE_URI=os.environ["DATABASE_URL"],
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SESSION_COOKIE_SECURE=os.environ["FLASK_ENV"] == "production",
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        SCHOOL_TIMEZONE=os.getenv("SCHOOL_TIMEZONE", "America/Los_Angeles"),
        RATELIMIT_ENABLED=_env_flag("RATELIMIT_ENABLED", True),
        CLOUD_MIRROR_URL=os.getenv("CLOUD_MIRROR_URL"),
        CLOUD_MIRROR_TOKEN=os.getenv("CLOUD_MIRROR_TOKEN"),
        CLOUD_MIRROR_TIMEOUT=float(os.getenv("CLOUD_MIRROR_TIMEOUT", "5")),
        DEFAULT_MONTHLY_AWARD_LIMIT=int(os.getenv("DEFAULT_MONTHLY_AWARD_LIMIT", DEFAULT_MONTHLY_AWARD_LIMIT)),
    )

    # -------------------- EXTENSIONS --------------------
    from app.extensions import db, migrate, csrf, limiter

    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    limiter.init_app(app)

    # -------------------- LOGGING --------------------
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    log_format = os.getenv(
        "LOG_FORMAT",
        "[%(asctime)s] %(levelname)s in %(module)s: %(message)s",
    )

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(logging.Formatter(log_format))

    app.logger.setLevel(log_level)
    # Prevent duplicate log entries by clearing handlers first
    app.logger.handlers.clear()
    app.logger.addHandler(stream_handler)

    if os.getenv("FLASK_ENV", app.config.get("ENV")) == "production":
        log_file = os.getenv("LOG_FILE", "app.log")
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        app.logger.addHandler(file_handler)

    # -------------------- REGISTER BLUEPRINTS --------------------
    from app.routes.main import main_bp
    from app.routes.api import api_bp
    from app.routes.student import student_bp
    from app.routes.admin import admin_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(admin_bp)

    # -------------------- ERROR HANDLERS --------------------
    @app.errorhandler(404)
    def not_found(e):
        return _error("Not found.", 404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return _error("Method not allowed.", 405)

    @app.errorhandler(429)
    def rate_limited(e):
        app.logger.warning(f"Rate limit hit on {request.path}: {e.description}")
        return _error("Too many requests. Please slow down.", 429)

    @app.errorhandler(CSRFError)
    def csrf_failed(e):
        return _error(e.description, 400)

    @app.errorhandler(500)
    def internal_error(e):
        app.logger.error(f"Unhandled error on {request.path}: {e}")
        return _error("An unexpected error occurred.", 500)

    # -------------------- SECURITY HEADERS --------------------
    @app.after_request
    def set_security_headers(response):
        response.headers['X-Frame-Options'] = 'SAMEORIGIN'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        return response

    # -------------------- CLI COMMANDS --------------------
    from app import cli_commands
    cli_commands.init_app(app)

    return app


# Create a default application instance for wsgi.py and the test suite
app = create_app()

# Re-export commonly used objects for convenience
from app.extensions import db  # noqa: E402
from app.models import Admin, Student  # noqa: E402

__all__ = [
    "app",
    "create_app",
    "db",
    "Admin",
    "Student",
]
