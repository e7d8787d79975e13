"""
Utilities for generating the short codes printed on cards, vouchers and passes.

Voucher codes look like ``TX-7K2M9P``, hall pass codes like ``HP-A7K2M9``
and login codes are six digits.
"""

import secrets
import string

# Exclude ambiguous characters: 0/O, 1/I
CODE_ALPHABET = (
    string.ascii_uppercase.replace('O', '').replace('I', '')
    + string.digits.replace('0', '').replace('1', '')
)


def _random_code(length):
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_purchase_code(length=6):
    """
    Generate a redeemable voucher code for a purchase.

    Examples:
        "TX-A7K2M9"
        "TX-P3XW8R"
    """
    return f"TX-{_random_code(length)}"


def generate_hall_pass_code(length=6):
    return f"HP-{_random_code(length)}"


def generate_login_code():
    """Return a six digit numeric login code."""
    return ''.join(secrets.choice(string.digits) for _ in range(6))


def normalize_code(code):
    """
    Strip whitespace around a scanned or typed code.

    Case is preserved: codes are matched exactly.
    """
    if not code:
        return ""
    return str(code).strip()
