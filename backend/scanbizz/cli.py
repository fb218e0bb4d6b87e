# Overview: Flask CLI command groups for database setup, accounts and offline queue maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables, device and remote (deletes all data).
#
# Accounts:
# - python -m flask accounts list
#   List identity provider accounts.
# - python -m flask accounts create --email owner@example.com --password "secret1"
#   Create an email/password account (prompts if options are omitted).
#
# Offline queue:
# - python -m flask sync status --uid <uid>
#   Show pending actions and the last sync time for an account.
# - python -m flask sync replay --uid <uid>
#   Replay the account's pending actions against the remote store.
# - python -m flask sync clear --uid <uid> --yes
#   Drop the account's pending actions without applying them.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Account
from .services import get_services
from .services.identity_service import IdentityError, PasswordValidationError
from .services.offline_queue import OfflineQueue
from .services.sync_service import SyncReconciler
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the remote documents bind!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask accounts create' to add an account.")


@click.group('accounts')
def accounts_group():
    """Identity provider account commands."""


@accounts_group.command('list')
@with_appcontext
def list_accounts():
    """List all accounts."""
    accounts = db.session.query(Account).order_by(Account.id.asc()).all()

    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'UID':<34} {'Email':<35} {'Provider':<12} {'Active':<8} {'Last login'}")
    click.echo("="*100)

    for account in accounts:
        active_str = "Yes" if account.is_active else "No"
        last_login = to_utc_z(account.last_login_at) if account.last_login_at else "never"
        click.echo(f"{account.uid:<34} {account.email:<35} {account.provider:<12} {active_str:<8} {last_login}")

    click.echo("="*100 + "\n")


@accounts_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_account_cli(email, password):
    """
    Create an email/password account.

    The account starts without a PIN; the first sign-in goes through PIN
    setup. Password must be at least 6 characters.
    """
    try:
        identity = get_services().identity_provider.create_account(email, password)
    except (IdentityError, PasswordValidationError) as e:
        click.echo(f"FAIL {e}")
        return
    except Exception:
        current_app.logger.exception("Failed to create account")
        click.echo("FAIL Unexpected error, see log")
        return

    click.echo(f"PASS Created account {identity.email} (uid: {identity.uid})")


@click.group('sync')
def sync_group():
    """Offline queue inspection and replay."""


def _queue_for(uid: str) -> OfflineQueue:
    return OfflineQueue(get_services().storage, uid)


@sync_group.command('status')
@click.option('--uid', required=True, help='Account uid')
@with_appcontext
def sync_status(uid):
    """Show pending actions for an account."""
    queue = _queue_for(uid)
    actions = queue.drain()
    last_sync = queue.last_sync_timestamp()

    click.echo(f"Pending actions: {len(actions)}")
    click.echo(f"Last sync: {to_utc_z(last_sync) if last_sync else 'never'}")
    for index, action in enumerate(actions, start=1):
        click.echo(f"  {index}. {action.type.value:<14} {action.action_id} {to_utc_z(action.enqueued_at)}")


@sync_group.command('replay')
@click.option('--uid', required=True, help='Account uid')
@with_appcontext
def sync_replay(uid):
    """Replay an account's pending actions now."""
    services = get_services()
    if not services.connectivity.is_online():
        click.echo("FAIL Remote store is marked offline")
        return

    reconciler = SyncReconciler(_queue_for(uid), services.mutations, services.session, services.activity)
    result = reconciler.replay(uid)

    if result.ok:
        click.echo(f"PASS Replayed {result.applied} actions ({result.skipped} already applied)")
    else:
        click.echo(
            f"FAIL Stopped after {result.applied + result.skipped} actions: {result.error} "
            f"({result.remaining} still queued)"
        )


@sync_group.command('clear')
@click.option('--uid', required=True, help='Account uid')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def sync_clear(uid, yes):
    """Drop an account's pending actions without applying them."""
    queue = _queue_for(uid)
    count = len(queue)
    if count == 0:
        click.echo("Nothing queued.")
        return
    if not yes:
        click.confirm(f"WARN This discards {count} unsynced actions. Are you sure?", abort=True)
    queue.clear()
    click.echo(f"PASS Discarded {count} pending actions")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(sync_group)
