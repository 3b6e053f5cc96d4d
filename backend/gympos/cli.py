# Overview: Flask CLI command groups for bootstrap, tenant setup, tokens and wallet maintenance.

# backend/gympos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to gympos (PowerShell: $env:FLASK_APP="gympos").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--gym "Gym Name"] [--gym-code MAIN]
#   Idempotent bootstrap: creates a default gym with its wallets and an owner user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Gym management (MULTI-TENANT):
# - python -m flask gyms list
# - python -m flask gyms create --name "Iron Temple" --code "IRON"
#
# Users and tokens:
# - python -m flask users create --gym-id 1 --name "Owner" --email owner@gym.local --role gym_owner
# - python -m flask users issue-token --email owner@gym.local [--ttl-hours 24]
#   Prints a bearer token; only its hash is stored.
#
# Wallet maintenance:
# - python -m flask wallets reset-today-income [--gym-id 1]
#   Daily job: zero today_income.
# - python -m flask wallets reconcile [--gym-id 1]
#   Compare every wallet balance with its ledger.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .models import Gym, User, Wallet
from .models.auth import ROLE_GYM_OWNER, ROLE_SUPER_ADMIN, VALID_ROLES
from .services import session_service, tenant_service, wallet_service
from .services.session_service import SessionError
from .validation import ConflictError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--gym', 'gym_name', default='Default Gym', help='Gym name')
@click.option('--gym-code', default='DEFAULT', help='Gym code')
@click.option('--owner-email', default='owner@gympos.local', help='Email of the default owner')
@with_appcontext
def init_system(gym_name, gym_code, owner_email):
    """
    Initialize GymPOS: default gym, its wallets and an owner user.

    Safe to run repeatedly; existing rows are reused.
    """
    click.echo("START Initializing GymPOS...")

    db.create_all()

    gym = db.session.query(Gym).filter_by(code=gym_code).first()
    if not gym:
        gym = tenant_service.create_gym(name=gym_name, code=gym_code)
        click.echo(f"PASS Created gym: {gym.name} (ID: {gym.id}, Code: {gym.code})")
    else:
        wallet_service.provision_wallets(db.session, gym.id)
        db.session.commit()
        click.echo(f"PASS Using existing gym: {gym.name} (ID: {gym.id})")

    owner = db.session.query(User).filter_by(email=owner_email).first()
    if not owner:
        owner = User(gym_id=gym.id, name="Owner", email=owner_email, role=ROLE_GYM_OWNER, is_active=True)
        db.session.add(owner)
        db.session.commit()
        click.echo(f"PASS Created owner: {owner.email} (ID: {owner.id})")
    else:
        click.echo(f"WARN  User '{owner_email}' already exists, skipping...")

    click.echo("\nDONE GymPOS initialized.")
    click.echo(f"Issue a token with: python -m flask users issue-token --email {owner.email}")


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


@click.group('gyms')
def gyms_group():
    """Gym (tenant) management commands."""


@gyms_group.command('list')
@with_appcontext
def list_gyms_cli():
    gyms = tenant_service.list_gyms()
    if not gyms:
        click.echo("No gyms found")
        return
    for gym in gyms:
        status = "active" if gym.is_active else "inactive"
        click.echo(f"{gym.id:>4}  {gym.code or '-':<12} {gym.name} ({status})")


@gyms_group.command('create')
@click.option('--name', required=True, help='Gym name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--address', default=None)
@click.option('--phone', default=None)
@click.option('--email', default=None)
@with_appcontext
def create_gym_cli(name, code, address, phone, email):
    """Create a new gym (tenant) with one wallet per payment channel."""
    try:
        gym = tenant_service.create_gym(name=name, code=code, address=address, phone=phone, email=email)
    except ConflictError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created gym: {gym.name} (ID: {gym.id}, Code: {gym.code})")


@click.group('users')
def users_group():
    """User and token commands."""


@users_group.command('create')
@click.option('--gym-id', type=int, default=None, help='Gym ID (omit for super admins)')
@click.option('--name', required=True)
@click.option('--email', required=True)
@click.option('--role', type=click.Choice(VALID_ROLES), default=ROLE_GYM_OWNER, show_default=True)
@with_appcontext
def create_user_cli(gym_id, name, email, role):
    if role != ROLE_SUPER_ADMIN:
        if gym_id is None:
            click.echo("FAIL --gym-id is required for gym users")
            return
        if not db.session.query(Gym).filter_by(id=gym_id).first():
            click.echo(f"FAIL Gym ID {gym_id} not found")
            return
    else:
        gym_id = None

    if db.session.query(User).filter_by(email=email).first():
        click.echo(f"FAIL User with email '{email}' already exists")
        return

    user = User(gym_id=gym_id, name=name, email=email, role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user: {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('issue-token')
@click.option('--email', required=True)
@click.option('--ttl-hours', type=int, default=None, help='Token lifetime (defaults to SESSION_TTL_HOURS)')
@with_appcontext
def issue_token_cli(email, ttl_hours):
    """Issue a bearer token for a user. The token is printed once."""
    user = db.session.query(User).filter_by(email=email).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return

    ttl = timedelta(hours=ttl_hours) if ttl_hours else None
    try:
        session, token = session_service.create_session(user.id, ttl=ttl)
    except SessionError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Token for {user.email} (expires {session.expires_at.isoformat()}Z):")
    click.echo(token)


@click.group('wallets')
def wallets_group():
    """Wallet maintenance commands."""


@wallets_group.command('reset-today-income')
@click.option('--gym-id', type=int, default=None, help='Only this gym')
@with_appcontext
def reset_today_income_cli(gym_id):
    count = wallet_service.reset_today_income(gym_id)
    click.echo(f"PASS Reset today's income on {count} wallet(s)")


@wallets_group.command('reconcile')
@click.option('--gym-id', type=int, default=None, help='Only this gym')
@with_appcontext
def reconcile_cli(gym_id):
    """Report wallets whose balance differs from their ledger."""
    q = db.session.query(Wallet)
    if gym_id is not None:
        q = q.filter_by(gym_id=gym_id)

    mismatches = 0
    for wallet in q.order_by(Wallet.gym_id, Wallet.id).all():
        result = wallet_service.reconcile_wallet(wallet.id)
        if result["balanced"]:
            click.echo(f"PASS gym {wallet.gym_id} {wallet.wallet_type}: {result['current_balance']}")
        else:
            mismatches += 1
            click.echo(
                f"FAIL gym {wallet.gym_id} {wallet.wallet_type}: "
                f"balance {result['current_balance']} != ledger {result['expected_balance']}"
            )

    if mismatches:
        raise click.ClickException(f"{mismatches} wallet(s) out of balance")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(gyms_group)
    app.cli.add_command(users_group)
    app.cli.add_command(wallets_group)
