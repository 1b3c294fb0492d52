# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/clothpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--store "Main Store"] [--code MAIN]
#   Idempotent bootstrap: creates tables (if missing) and the default store.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory inspection:
# - python -m flask inventory check [--store-id 1]
#   Verify derived stock fields for every product; exits 1 on violations.
# - python -m flask inventory history --product-id 7 [--limit 20]
#   Show a product's stock ledger, newest first.

import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Store, Product


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--store', 'store_name', default='Main Store', help='Default store name')
@click.option('--code', 'store_code', default='MAIN', help='Default store code')
@with_appcontext
def init_system(store_name, store_code):
    """Create the schema (if missing) and the default store."""
    click.echo("START Initializing store database...")

    db.create_all()
    click.echo("PASS Schema ready")

    store = db.session.query(Store).filter_by(code=store_code).first()
    if not store:
        store = Store(name=store_name, code=store_code, is_active=True)
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id}, Code: {store.code})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")


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


@click.group('inventory')
def inventory_group():
    """Stock ledger inspection commands."""


@inventory_group.command('check')
@click.option('--store-id', type=int, default=None, help='Only check one store')
@with_appcontext
def check_inventory(store_id):
    """Recompute derived stock for every product and report mismatches."""
    from .services.product_kinds import check_invariants

    query = db.session.query(Product).order_by(Product.id.asc())
    if store_id is not None:
        query = query.filter(Product.store_id == store_id)

    checked = 0
    failures = 0
    for product in query:
        checked += 1
        problems = check_invariants(product)
        if problems:
            failures += 1
            click.echo(f"FAIL {product.sku} (ID: {product.id}, {product.kind}): {'; '.join(problems)}")

    if failures:
        click.echo(f"\nFAIL {failures} of {checked} products violate stock invariants")
        sys.exit(1)
    click.echo(f"PASS {checked} products consistent")


@inventory_group.command('history')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--limit', type=int, default=None, help='Number of entries (default HISTORY_DEFAULT_LIMIT)')
@with_appcontext
def show_history(product_id, limit):
    """Print a product's stock ledger, newest first."""
    from .services.inventory_service import load_product
    from .services.stock_ledger_service import history
    from .errors import NotFoundError, ValidationError

    try:
        product = load_product(product_id)
        entries = list(history(product, limit))
    except (NotFoundError, ValidationError) as e:
        raise click.ClickException(str(e))

    click.echo(f"{product.sku} {product.name} ({product.kind}) stock={product.stock_level} {product.base_unit}")
    if not entries:
        click.echo("No stock entries.")
        return

    click.echo(f"\n{'ID':<6} {'Type':<14} {'Component':<10} {'Qty':>10} {'Price':>12} {'Total':>14} {'Supplier':<20} Created")
    click.echo("-" * 110)
    for e in entries:
        supplier = e.supplier.name if e.supplier else "-"
        click.echo(
            f"{e.id:<6} {e.entry_type:<14} {(e.component_name or '-'):<10} {str(e.quantity):>10} "
            f"{str(e.buying_price):>12} {str(e.total_cost):>14} {supplier[:20]:<20} {e.created_at}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
