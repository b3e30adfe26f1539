# Overview: Flask CLI command groups for bootstrap, inspection, and the reminder sweep.

# backend/bufet/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` in production).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection:
# - python -m flask users list
#   List all users with role, active status and balance.
# - python -m flask users promote someone@example.com
#   Grant the office_assistant role.
#
# Reminders (schedule with cron, e.g. 0 9 1 * *):
# - python -m flask reminders send [--threshold-cents -500]
#   Email every user whose balance is below the threshold.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, ROLE_OFFICE_ASSISTANT
from .services import ledger_service, reminder_service
from .services.notification_service import format_cents


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Existing data is left alone."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User inspection commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role and balance."""
    rows = ledger_service.list_balances(order_by="email")

    if not rows:
        click.echo("No users found.")
        return

    active = {u.id: u.is_active for u in db.session.query(User).all()}

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<18} {'Active':<8} {'Balance'}")
    click.echo("="*90)

    for row in rows:
        active_str = "Yes" if active.get(row["id"]) else "No"
        click.echo(
            f"{row['id']:<5} {row['email']:<35} {row['role']:<18} {active_str:<8} "
            f"{format_cents(row['balance_cents'])}"
        )

    click.echo("="*90 + "\n")


@users_group.command('promote')
@click.argument('email')
@with_appcontext
def promote_user(email):
    """Grant the office_assistant role to an existing user."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User not found: {email}")

    if user.role == ROLE_OFFICE_ASSISTANT:
        click.echo(f"SKIP {user.email} is already {ROLE_OFFICE_ASSISTANT}")
        return

    user.role = ROLE_OFFICE_ASSISTANT
    db.session.commit()
    click.echo(f"PASS {user.email} is now {ROLE_OFFICE_ASSISTANT}")


@click.group('reminders')
def reminders_group():
    """Debt reminder commands."""


@reminders_group.command('send')
@click.option('--threshold-cents', type=int, default=None,
              help='Remind users below this balance (default DEBT_REMINDER_THRESHOLD_CENTS)')
@with_appcontext
def send_reminders(threshold_cents):
    """Email every user whose balance is below the threshold."""
    results = reminder_service.send_debt_reminders(threshold_cents=threshold_cents)

    for row in results:
        status = "PASS" if row["success"] else "FAIL"
        line = f"{status} {row['email']} ({format_cents(row['balance_cents'])})"
        if not row["success"]:
            line += f": {row.get('error')}"
        click.echo(line)

    sent = sum(1 for r in results if r["success"])
    click.echo(f"Reminder job completed: {sent} sent, {len(results) - sent} failed")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(reminders_group)
