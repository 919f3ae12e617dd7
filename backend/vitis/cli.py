# Overview: Flask CLI command groups for bootstrap, users, and the stock digest.

# backend/vitis/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-password "Password123!"]
#   Idempotent bootstrap: creates tables and a default admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username jdoe --email jdoe@vitis.local --password "Password123!" --role cashier
#   Create a user (prompts if options are omitted).
#
# Stock digest:
# - python -m flask digest preview
#   Print the digest subject and the products it would list.
# - python -m flask digest send
#   Send the digest now.
# - python -m flask digest run
#   Keep running; send at each DIGEST_HOURS hour in DIGEST_TIMEZONE.

import time
from datetime import datetime, timezone

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services.auth_service import create_user, PasswordValidationError
from .services import digest_service
from .validation import ConflictError
from .time_utils import next_run_at


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-password', default='Password123!', help='Password for the default admin')
@with_appcontext
def init_system(admin_password):
    """
    Create tables and a default admin user.

    Safe to run multiple times: existing tables and users are kept.
    """
    click.echo("START Initializing Vitis system...")
    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(username="admin").first()
    if existing:
        click.echo("WARN  User 'admin' already exists, skipping...")
    else:
        try:
            create_user("admin", "admin@vitis.local", admin_password, role="admin", full_name="Administrator")
            click.echo("PASS Created user: admin (admin@vitis.local) with role 'admin'")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for 'admin': {str(e)}")
            return

    click.echo("\n" + "="*60)
    click.echo("DONE Vitis System Initialized Successfully!")
    click.echo("="*60)
    click.echo("\nChange the admin password before going to production.")


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

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'manager', 'cashier']), prompt=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, email, password, role, full_name):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(username, email, password, role=role, full_name=full_name)
        click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except (ConflictError, ValueError) as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<9} {'Active'}")
    click.echo("="*70)
    for user in users:
        active_str = "yes" if user.is_active else "no"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<9} {active_str}")


@click.group('digest')
def digest_group():
    """Critical-stock email digest."""


@digest_group.command('preview')
@with_appcontext
def preview_digest():
    """Print the digest subject and ranked products without sending."""
    summary = digest_service.get_stock_summary()
    products = digest_service.get_critical_products(current_app.config.get("DIGEST_PRODUCT_LIMIT", 10))

    click.echo(f"Subject: {digest_service.digest_subject(summary)}")
    click.echo(
        f"Out of stock: {summary.out_of_stock}  Critical: {summary.critical}  "
        f"Near critical: {summary.near_critical}  Total: {summary.total}"
    )
    if not products:
        click.echo("No products need attention.")
        return
    for p in products:
        click.echo(f"  [{p.label:<12}] {p.name} ({p.category or 'No category'}): {p.stock}/{p.min_stock}")


@digest_group.command('send')
@with_appcontext
def send_digest():
    """Send the digest now."""
    result = digest_service.send_stock_digest()
    if result.sent:
        click.echo(f"PASS Digest sent to {result.recipient}: {result.subject}")
    else:
        click.echo(f"FAIL Digest not sent: {result.error}")


@digest_group.command('run')
@click.option('--max-runs', type=int, default=0, help='Stop after this many sends (0 = run forever)')
@with_appcontext
def run_digest_scheduler(max_runs):
    """
    Send the digest at every DIGEST_HOURS hour in DIGEST_TIMEZONE.

    Failures are logged and the loop continues to the next slot.
    """
    config = current_app.config
    hours = config.get("DIGEST_HOURS") or [8, 12]
    tz_name = config.get("DIGEST_TIMEZONE", "UTC")
    click.echo(f"START Digest scheduler: hours {hours} in {tz_name}")

    runs = 0
    while not max_runs or runs < max_runs:
        now = datetime.now(timezone.utc)
        target = next_run_at(now, hours, tz_name)
        delay = (target - now).total_seconds()
        current_app.logger.info("Next stock digest at %s", target.isoformat())
        time.sleep(max(delay, 0))

        try:
            result = digest_service.send_stock_digest()
            if not result.sent:
                current_app.logger.warning("Scheduled digest not sent: %s", result.error)
        except Exception:
            current_app.logger.exception("Scheduled digest failed")
        finally:
            db.session.remove()
        runs += 1


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(digest_group)
