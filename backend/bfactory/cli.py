# Overview: Flask CLI command groups for bootstrap and maintenance.

# backend/bfactory/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to bfactory (PowerShell: $env:FLASK_APP="bfactory").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create a demo outlet, category and products (requires DEBUG_SEED_ENABLED).
#
# Users:
# - python -m flask users list [--role outlet]
# - python -m flask users create-admin --name "Admin" --email admin@bfactory.local --password "Password123!"
#
# Subscriptions:
# - python -m flask subscriptions expire
#   Mark active subscriptions past their end date as expired.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired session tokens.
# - python -m flask maintenance cleanup-notifications [--days 30]
#   Delete notification outbox rows older than the retention window.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, Product
from .models.users import ROLE_ADMIN, ROLE_OUTLET, VALID_ROLES
from .services import auth_service, notification_service, session_service, subscription_service
from .validation import ServiceError


@click.group('system')
def system_group():
    """Database bootstrap and demo data."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("Dropping all tables...")
    db.drop_all()
    click.echo("Creating schema...")
    db.create_all()
    click.echo("OK Database reset.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create a demo outlet with a few breakfast products."""
    if not current_app.config.get("DEBUG_SEED_ENABLED"):
        click.echo("FAIL Seeding is disabled (set DEBUG_SEED_ENABLED).")
        return

    outlet = auth_service.find_by_email("outlet@bfactory.local")
    if outlet is None:
        outlet = auth_service.create_user(
            name="Demo Outlet",
            email="outlet@bfactory.local",
            password="Outlet123!",
            role=ROLE_OUTLET,
            store_name="Demo Breakfast Bar",
        )

    category = db.session.query(Category).filter_by(name="Breakfast").first()
    if category is None:
        category = Category(name="Breakfast", description="Morning staples", featured=True)
        db.session.add(category)
        db.session.flush()

    created = 0
    for name, price_cents, quantity in (
        ("Hausa Koko", 500, 40),
        ("Waakye", 1500, 25),
        ("Tea Bread", 800, 30),
    ):
        exists = db.session.query(Product).filter_by(outlet_id=outlet.id, name=name).first()
        if exists:
            continue
        db.session.add(Product(
            outlet_id=outlet.id,
            category_id=category.id,
            name=name,
            price_cents=price_cents,
            quantity=quantity,
        ))
        created += 1

    db.session.commit()
    click.echo(f"OK Seeded {created} products for outlet {outlet.email}.")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('list')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), default=None)
@with_appcontext
def list_users_cli(role):
    users = auth_service.list_users(role)
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        click.echo(f"{user.id:>5}  {user.role:<7} {user.status:<9} {user.email}")


@users_group.command('create-admin')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_admin_cli(name, email, password):
    """
    Create an admin account.

    Admins cannot self-register over HTTP; this is the bootstrap path.
    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter, one lowercase letter and one digit
    - At least one special character
    """
    try:
        user = auth_service.create_user(name=name, email=email, password=password, role=ROLE_ADMIN)
    except ServiceError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"OK Created admin {user.email} (id={user.id})")


@click.group('subscriptions')
def subscriptions_group():
    """Subscription maintenance."""


@subscriptions_group.command('expire')
@with_appcontext
def expire_subscriptions_cli():
    count = subscription_service.expire_overdue()
    click.echo(f"Expired {count} subscriptions.")


@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} expired sessions.")


@maintenance_group.command('cleanup-notifications')
@click.option('--days', type=click.IntRange(min=1), default=notification_service.RETENTION_DAYS, show_default=True,
              help='Keep notifications newer than this many days')
@with_appcontext
def cleanup_notifications_cli(days):
    deleted = notification_service.cleanup_notifications(days)
    click.echo(f"Deleted {deleted} notifications older than {days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(subscriptions_group)
    app.cli.add_command(maintenance_group)
