# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/toolcrib/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Items:
# - python -m flask items list
#   List items with stock/total.
# - python -m flask items create --name "Drill" --brand Bosch --type "Power tool" --stock 5 [--sku DR1234]
#   Create an item (same rules and history entry as the API).
#
# Loans:
# - python -m flask loans list [--status ACTIVE]
#   List loans, newest first.
# - python -m flask loans return 12
#   Return a loan.
#
# History:
# - python -m flask history tail --limit 20
#   Show the most recent history entries.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Item, Loan, HistoryEntry
from .services import inventory_service, loan_service
from .services.history_service import list_recent
from .validation import ValidationError, NotFoundError, ConflictError, TransactionAbortedError, enforce_rules_item_create
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create any missing tables. Existing data is left alone."""
    click.echo("START Initializing tool crib database...")
    db.create_all()
    click.echo(
        f"PASS Ready: {db.session.query(Item).count()} items, "
        f"{db.session.query(Loan).count()} loans, "
        f"{db.session.query(HistoryEntry).count()} history entries"
    )


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


@click.group('items')
def items_group():
    """Item ledger inspection and bootstrap."""


@items_group.command('list')
@with_appcontext
def list_items_cli():
    """List all items."""
    items = inventory_service.list_items()

    if not items:
        click.echo("No items found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'SKU':<10} {'Name':<30} {'Brand':<15} {'Stock':>6} {'Total':>6}")
    click.echo("="*80)

    for item in items:
        click.echo(
            f"{item.id:<5} {item.sku:<10} {item.name[:30]:<30} {(item.brand or '-')[:15]:<15} "
            f"{item.stock:>6} {item.total:>6}"
        )

    click.echo("="*80 + "\n")


@items_group.command('create')
@click.option('--name', required=True, help='Item name')
@click.option('--brand', required=True, help='Brand')
@click.option('--type', 'item_type', required=True, help='Type/category')
@click.option('--sku', default=None, help='SKU (generated from the name when omitted)')
@click.option('--stock', type=int, required=True, help='Units owned (all on the shelf)')
@with_appcontext
def create_item_cli(name, brand, item_type, sku, stock):
    """Create an item."""
    patch = {"name": name.strip(), "brand": brand.strip(), "type": item_type.strip(), "sku": sku, "stock": stock}
    try:
        if not patch["name"]:
            raise ValidationError("name cannot be blank")
        enforce_rules_item_create(patch)
        item = inventory_service.create_item(patch=patch)
    except (ValidationError, TransactionAbortedError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created item {item.name} (ID: {item.id}, SKU: {item.sku}, units: {item.total})")


@click.group('loans')
def loans_group():
    """Loan inspection and maintenance."""


@loans_group.command('list')
@click.option('--status', type=click.Choice(loan_service.LOAN_STATUSES), default=None, help='Filter by status')
@with_appcontext
def list_loans_cli(status):
    """List loans, newest first."""
    loans = loan_service.list_loans(status=status)

    if not loans:
        click.echo("No loans found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Date':<22} {'Responsible':<25} {'Units':>5}  {'Status':<9} {'Returned'}")
    click.echo("="*80)

    for loan in loans:
        click.echo(
            f"{loan.id:<5} {to_utc_z(loan.date):<22} {loan.responsible[:25]:<25} {loan.unit_count:>5}  "
            f"{loan.status:<9} {to_utc_z(loan.return_date) or '-'}"
        )

    click.echo("="*80 + "\n")


@loans_group.command('return')
@click.argument('loan_id', type=int)
@with_appcontext
def return_loan_cli(loan_id):
    """Return a loan and restore its units."""
    try:
        loan = loan_service.return_loan(loan_id)
    except (NotFoundError, ConflictError, TransactionAbortedError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Loan {loan.id} returned ({loan.unit_count} units back on the shelf)")


@click.group('history')
def history_group():
    """Audit history inspection."""


@history_group.command('tail')
@click.option('--limit', type=int, default=20, help='Number of entries')
@with_appcontext
def tail_history_cli(limit):
    """Show the most recent history entries."""
    for entry in list_recent(limit=max(1, limit)):
        click.echo(f"{to_utc_z(entry.occurred_at)}  {entry.action:<10} {entry.description}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(items_group)
    app.cli.add_command(loans_group)
    app.cli.add_command(history_group)
