"""
Utility modules for Cougar Cash.

This package contains reusable helpers and constants:
- helpers: Date/time, currency and request-parsing helpers, Markdown rendering
- constants: Application-wide constants (permissions, hall pass types, demo catalog)
- codes: Voucher, hall pass and login code generation
- economy: Point, store and hall pass operations shared by the blueprints
- snapshot / cloud_mirror: The explicit save step and the optional remote copy
"""

from app.utils.helpers import format_utc_iso, render_markdown
from app.utils.constants import ADMIN_PERMISSIONS

__all__ = [
    'format_utc_iso',
    'render_markdown',
    'ADMIN_PERMISSIONS',
]
