# Overview: Flask CLI command groups for bootstrap, ledger inspection and maintenance.

# backend/tradesphere/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock ledger:
# - python -m flask ledger reconcile [--product-id 3]
#   Compare current_stock / stock items with the movement log; exit 1 on drift.
#
# Invoices:
# - python -m flask invoices mark-overdue [--as-of 2025-08-02]
#   Move SENT/PARTIAL invoices past their due date to OVERDUE.
#
# Catalog:
# - python -m flask catalog low-stock
#   List active products at or below their reorder point.
#
# Batches:
# - python -m flask batches expiring [--days 30] [--as-of 2025-08-02]
#   List batches expiring within the window with urgency and value at risk.

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .services import batch_service, catalog_service, invoice_service, stock_ledger_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (existing tables are left untouched)."""
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


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection commands."""


@ledger_group.command('reconcile')
@click.option('--product-id', type=int, default=None, help='Only check this product')
@with_appcontext
def reconcile(product_id):
    """Check the cached stock counters against the movement log."""
    drift = stock_ledger_service.find_stock_drift(product_id)
    if not drift:
        click.echo("PASS Stock ledger is consistent.")
        return

    click.echo(f"FAIL {len(drift)} discrepancy(ies) found:")
    for row in drift:
        if row["scope"] == "product":
            click.echo(
                f"  product {row['product_id']} ({row['sku']}): current_stock={row['current_stock']} "
                f"stock_items={row['stock_item_total']} movements={row['movement_total']}"
            )
        else:
            click.echo(
                f"  product {row['product_id']} @ location {row['location_id']}: "
                f"stock_item={row['stock_item_quantity']} movements={row['movement_quantity']}"
            )
    raise SystemExit(1)


@click.group('invoices')
def invoices_group():
    """Invoice maintenance commands."""


@invoices_group.command('mark-overdue')
@click.option('--as-of', default=None, help='Cutoff date (YYYY-MM-DD), defaults to today')
@with_appcontext
def mark_overdue(as_of):
    """Move unpaid invoices past their due date to OVERDUE."""
    try:
        invoices = invoice_service.mark_overdue_invoices(as_of)
    except DomainError as e:
        raise click.ClickException(str(e)) from e

    if not invoices:
        click.echo("No invoices to mark overdue.")
        return
    for invoice in invoices:
        click.echo(
            f"  {invoice.invoice_number}: due {invoice.due_date.isoformat()} "
            f"amount_due={invoice.amount_due_cents}"
        )
    click.echo(f"PASS Marked {len(invoices)} invoice(s) overdue.")


@click.group('catalog')
def catalog_group():
    """Catalog inspection commands."""


@catalog_group.command('low-stock')
@with_appcontext
def low_stock():
    """List active products at or below their reorder point."""
    products = catalog_service.list_low_stock()
    if not products:
        click.echo("No products at or below reorder point.")
        return
    click.echo(f"{'SKU':<20} {'NAME':<40} {'STOCK':>8} {'REORDER':>8}")
    for p in products:
        click.echo(f"{p.sku:<20} {p.name[:40]:<40} {p.current_stock:>8} {p.reorder_point:>8}")


@click.group('batches')
def batches_group():
    """Batch tracking commands."""


@batches_group.command('expiring')
@click.option('--days', default=30, show_default=True, type=int, help='Window in days')
@click.option('--as-of', default=None, help='Reference date (YYYY-MM-DD), defaults to today')
@with_appcontext
def expiring(days, as_of):
    """List batches expiring within the window."""
    try:
        report = batch_service.expiring_batches(days=days, as_of=as_of)
    except DomainError as e:
        raise click.ClickException(str(e)) from e

    if not report["items"]:
        click.echo(f"No batches expiring within {days} day(s).")
        return
    click.echo(f"{'BATCH':<16} {'SKU':<16} {'QTY':>6} {'EXPIRES':<10} {'DAYS':>5} {'URGENCY':<8}")
    for row in report["items"]:
        click.echo(
            f"{row['batch_number']:<16} {row['product_sku']:<16} {row['quantity']:>6} "
            f"{row['expiry_date']:<10} {row['days_until_expiry']:>5} {row['urgency']:<8}"
        )
    summary = report["summary"]
    click.echo(
        f"{summary['total_batches']} batch(es), {summary['critical']} critical, "
        f"value at risk {summary['total_value_at_risk_cents']} cents"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(invoices_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(batches_group)
