"""
Flask CLI commands for database setup, demo data and snapshots.
"""

import json

import click
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models import Admin, Student, StoreItem
from app.utils.cloud_mirror import mirror_collection, mirror_enabled
from app.utils.codes import generate_login_code
from app.utils.constants import ADMIN_PERMISSIONS, DEMO_STORE_ITEMS
from app.utils.snapshot import export_snapshot

DEMO_ADMIN = {"name": "Demo Admin", "email": "admin@example.edu", "login_code": "999999"}

DEMO_STUDENTS = [
    ("1001", "Ava Martinez", "ava.martinez@example.edu"),
    ("1002", "Noah Kim", "noah.kim@example.edu"),
    ("1003", "Mia Johnson", "mia.johnson@example.edu"),
    ("1004", "Liam Nguyen", "liam.nguyen@example.edu"),
    ("1005", "Sofia Patel", "sofia.patel@example.edu"),
]


def _unused_login_code(model, taken):
    while True:
        code = generate_login_code()
        if code not in taken and not model.query.filter_by(login_code=code).first():
            taken.add(code)
            return code


@click.command('init-db')
def init_db_command():
    """Create all database tables (use `flask db upgrade` once migrations exist)."""
    db.create_all()
    click.echo("✓ Database tables created.")


@click.command('seed-demo')
def seed_demo_command():
    """
    Load a demo admin, a handful of students and the demo store catalog.

    Existing rows (matched by login code, student number or item name) are
    left untouched, so the command can be re-run safely.
    """
    created = {"admins": 0, "students": 0, "store_items": 0}
    taken = set()

    try:
        if not Admin.query.filter_by(login_code=DEMO_ADMIN["login_code"]).first():
            db.session.add(Admin(
                name=DEMO_ADMIN["name"],
                email=DEMO_ADMIN["email"],
                login_code=DEMO_ADMIN["login_code"],
                permissions=list(ADMIN_PERMISSIONS),
                points_awarded_this_month=0,
            ))
            created["admins"] += 1

        for student_number, name, email in DEMO_STUDENTS:
            if Student.query.filter_by(student_number=student_number).first():
                continue
            student = Student(
                student_number=student_number,
                name=name,
                email=email,
                login_code=_unused_login_code(Student, taken),
                total_points=100,
                cart=[],
                favorites=[],
            )
            db.session.add(student)
            created["students"] += 1
            click.echo(f"  + {name} ({student_number}) login code {student.login_code}")

        for fields in DEMO_STORE_ITEMS:
            if StoreItem.query.filter_by(name=fields["name"]).first():
                continue
            db.session.add(StoreItem(**fields))
            created["store_items"] += 1

        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"\n✗ Error seeding demo data: {str(e)}", err=True)
        raise click.Abort()

    click.echo(
        f"✓ Seeded {created['admins']} admin(s), {created['students']} student(s), "
        f"{created['store_items']} store item(s)."
    )
    click.echo(f"  Demo admin login code: {DEMO_ADMIN['login_code']}")


@click.command('export-snapshot')
@click.argument('path', required=False, type=click.Path(dir_okay=False, writable=True))
@click.option('--mirror', is_flag=True, help='Also push every collection to the cloud mirror')
def export_snapshot_command(path, mirror):
    """Write every collection as JSON to PATH (or stdout)."""
    snapshot = export_snapshot()
    payload = json.dumps(snapshot, indent=2, sort_keys=True)

    if path:
        with open(path, 'w', encoding='utf-8') as f:
            f.write(payload)
        counts = ", ".join(f"{name}={len(items)}" for name, items in snapshot.items())
        click.echo(f"✓ Snapshot written to {path} ({counts})")
    else:
        click.echo(payload)

    if mirror:
        if not mirror_enabled():
            click.echo("⚠ CLOUD_MIRROR_URL is not set; nothing mirrored.", err=True)
            return
        failed = [name for name, items in snapshot.items() if not mirror_collection(name, items)]
        if failed:
            click.echo(f"⚠ Mirror failed for: {', '.join(failed)}", err=True)
        else:
            click.echo("✓ All collections mirrored.", err=True)


def init_app(app):
    """Register CLI commands with Flask app."""
    app.cli.add_command(init_db_command)
    app.cli.add_command(seed_demo_command)
    app.cli.add_command(export_snapshot_command)
