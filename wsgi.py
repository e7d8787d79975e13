"""
WSGI entry point for Cougar Cash.

For gunicorn: wsgi:app
"""

from app import app  # noqa: F401
