"""
Application-wide constants for Cougar Cash.

Currency conversion, admin permission names, hall pass types and the demo
catalog used by ``flask seed-demo``.
"""

from award_budget import POINTS_PER_DOLLAR, DEFAULT_MONTHLY_AWARD_LIMIT  # noqa: F401

ADMIN_PERMISSIONS = [
    'attendance',
    'calendar',
    'store',
    'scanner',
    'student-directory',
    'orders',
    'manage-admins',
    'point-checkout',
    'hall-pass-monitor',
    'award-points',
    'polls-announcements',
    'event-checkin',
]

GROUP_TYPES = ['Class', 'Team', 'Club', 'Other']

HALL_PASS_TYPES = ['Restroom', 'Library', 'Nurse', 'Office', 'Other']

CALENDAR_EVENT_TYPES = ['special', 'no_school', 'break', 'custom', 'default']

DEFAULT_HALL_PASS_LIMIT = 5

# Polls and announcements stay up a week unless an expiry is given
DEFAULT_POST_LIFETIME_DAYS = 7

DEMO_STORE_ITEMS = [
    {"name": "Homework Pass", "description": "Skip one homework assignment.", "cost": 50,
     "category": "Privilege", "quantity": 100},
    {"name": "Front of Lunch Line", "description": "Cut to the front for one week.", "cost": 120,
     "category": "Privilege", "quantity": 20, "duration_days": 7},
    {"name": "Spirit Week Hat Pass", "description": "Wear a hat during spirit week.", "cost": 80,
     "category": "Privilege", "quantity": 50},
    {"name": "Cougar Hoodie", "description": "Official school hoodie.", "cost": 400,
     "category": "Apparel", "quantity": 15, "requires_fulfillment": True},
    {"name": "LCC Athletic Pass", "description": "Entry to all home games.", "cost": 300,
     "category": "Athletic Pass", "quantity": 200},
    {"name": "Extra Hall Pass", "description": "Raises your hall pass limit by one.", "cost": 30,
     "category": "Privilege", "quantity": 500, "hall_pass_increase": 1},
]
