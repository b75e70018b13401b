# Overview: Flask CLI command groups for bootstrap, user management and ledger maintenance.

# backend/salesboard/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--password "Password123!"]
#   Idempotent: creates tables and the default admin + accountant users.
# - python -m flask system wipe --yes
#   Clear orders, aggregates and upload history; users are kept.
#
# Users:
# - python -m flask users list
# - python -m flask users create --username anna --password "Password123!" --role accountant --full-name "Anna K."
#
# Ledger:
# - python -m flask ledger import ./sales_2024.xlsx --username admin
#   Ingest a spreadsheet from disk as the given admin user.
# - python -m flask ledger rebuild-aggregates
#   Recompute year/month/day/product aggregates from the orders table.
# - python -m flask ledger verify-aggregates
#   Check aggregates against each other and a fresh ledger scan (exit 1 on mismatch).

import os

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLES, User
from .repositories import PersistenceError, get_repository
from .services import ingest_service, reporting_service
from .services.auth_service import PasswordValidationError, create_user, list_users
from .services.ingest_service import AuthorizationError, IngestionFailed
from .services.workbook_reader import StructuralError


DEFAULT_USERS = [
    ("admin", "Administrator", ROLE_ADMIN),
    ("accountant", "Accountant", ROLE_ACCOUNTANT),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default='Password123!', show_default=True, help='Password for newly created default users')
@with_appcontext
def init_system(password):
    """
    Create tables and the default users.

    Existing users are left untouched.
    SECURITY: Change default passwords immediately in production!
    """
    click.echo("START Initializing salesboard...")
    db.create_all()
    click.echo("PASS Tables ready")

    for username, full_name, role in DEFAULT_USERS:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"PASS User exists: {username}")
            continue
        try:
            create_user(username=username, password=password, full_name=full_name, role=role)
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed: {e}")
            raise SystemExit(1)
        click.echo(f"PASS Created user: {username} ({role})")

    click.echo("DONE System initialized")


@system_group.command('wipe')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def wipe_data(yes):
    """
    Clear all sales data: orders, aggregates and upload history.

    Users and their sessions are kept.
    """
    if not yes:
        click.confirm("WARN This will DELETE all sales data. Are you sure?", abort=True)

    repository = get_repository()
    try:
        repository.clear_all()
    except PersistenceError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Sales data cleared ({repository.backend_name} ledger)")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--full-name', default='', help='Display name')
@with_appcontext
def create_user_cli(username, password, role, full_name):
    """
    Create a user.

    Password must have 8+ chars, upper and lower case, a digit and a special char.
    """
    try:
        user = create_user(username=username, password=password, full_name=full_name, role=role)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        raise SystemExit(1)
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {user.username} with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users."""
    users = list_users()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<30} {'Role':<12} {'Active'}")
    click.echo("="*80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.full_name:<30} {user.role:<12} {active_str}")
    click.echo("="*80 + "\n")


@click.group('ledger')
def ledger_group():
    """Order ledger and aggregate maintenance."""


@ledger_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--username', default='admin', show_default=True, help='Admin user recorded as uploader')
@with_appcontext
def import_file_cli(path, username):
    """Ingest a .xlsx/.xls file from disk."""
    user = db.session.query(User).filter_by(username=username, is_active=True).first()
    if not user:
        click.echo(f"FAIL Active user '{username}' not found")
        raise SystemExit(1)

    with open(path, "rb") as fh:
        data = fh.read()

    try:
        stats = ingest_service.ingest_upload(
            data,
            file_name=os.path.basename(path),
            file_size=len(data),
            uploader_id=user.id,
            uploader_role=user.role,
            repository=get_repository(),
            **ingest_service.ingest_options(current_app.config),
        )
    except (AuthorizationError, StructuralError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    except IngestionFailed as e:
        click.echo(f"FAIL {e} (partial: {e.stats.to_dict()})")
        raise SystemExit(1)

    click.echo(f"PASS {stats.summary_message()}")
    if stats.skipped:
        click.echo(f"     Skipped {stats.skipped} short/blank rows")


@ledger_group.command('rebuild-aggregates')
@with_appcontext
def rebuild_aggregates_cli():
    """Recompute all aggregates from the orders table."""
    count = reporting_service.rebuild_aggregates(repository=get_repository())
    click.echo(f"PASS Rebuilt aggregates from {count} orders")


@ledger_group.command('verify-aggregates')
@with_appcontext
def verify_aggregates_cli():
    """Exit 1 when the aggregates disagree with each other or with the ledger."""
    problems = reporting_service.verify_aggregates(repository=get_repository())
    if problems:
        for problem in problems:
            click.echo(f"FAIL {problem}")
        raise SystemExit(1)
    click.echo("PASS Aggregates consistent with ledger")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
