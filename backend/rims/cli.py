# backend/rims/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Store bootstrap/repair:
# - python -m flask store init-db
#   Create any missing tables (idempotent).
# - python -m flask store reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask store seed
#   Load demo suppliers, items and a customer through the ledger.
#
# Ledger inspection:
# - python -m flask ledger stats
#   Dashboard totals (units, retail value, low-stock count, categories).
# - python -m flask ledger low-stock
#   Items at or below their low-stock threshold.
# - python -m flask ledger export-inventory --output inventory.csv
#   Inventory CSV (stdout when --output is omitted).

from dataclasses import replace

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .ledger import Ledger, LedgerSettings, SqlStore, StockAdjustment, TransactionType
from .ledger import customer_service, inventory_service, purchasing_service, reporting_service


DEMO_SUPPLIERS = [
    {"name": "TechSupply Co", "contact_person": "John Tech", "email": "contact@techsupply.co",
     "phone": "555-0101", "address": "123 Silicon Ave, San Jose, CA", "rating": 4.8},
    {"name": "FashionWholesale", "contact_person": "Sarah Style", "email": "orders@fashionwholesale.com",
     "phone": "555-0102", "address": "456 Fashion Dist, New York, NY", "rating": 4.2},
    {"name": "HomeGoods Inc", "contact_person": "Mike Home", "email": "sales@homegoods.inc",
     "phone": "555-0103", "address": "789 Warehouse Blvd, Chicago, IL", "rating": 3.9},
    {"name": "GlobalFoods", "contact_person": "Elena Food", "email": "sales@globalfoods.com",
     "phone": "555-0104", "address": "321 Market St, Seattle, WA", "rating": 4.5},
    {"name": "OfficeDepot", "contact_person": "David Desk", "email": "b2b@officedepot.fake",
     "phone": "555-0105", "address": "654 Corp Park, Austin, TX", "rating": 4.0},
]

# (sku, name, category, cost, price, threshold, supplier, {location: qty})
DEMO_ITEMS = [
    ("ELEC-001", "Wireless Barcode Scanner", "Electronics", 4500, 8999, 15, "TechSupply Co",
     {"loc-1": 100, "loc-2": 15, "loc-3": 9}),
    ("CLOTH-055", "Cotton Crew Neck T-Shirt (L)", "Clothing", 850, 2499, 10, "FashionWholesale",
     {"loc-1": 0, "loc-2": 2, "loc-3": 2}),
    ("HOME-102", "Ceramic Coffee Mug Set", "Home", 1200, 3500, 5, "HomeGoods Inc",
     {"loc-1": 20, "loc-2": 15, "loc-3": 10}),
    ("OFF-778", "Ergonomic Office Chair", "Office", 11000, 24999, 3, "OfficeDepot",
     {"loc-1": 5, "loc-2": 1, "loc-3": 2}),
    ("GROC-999", "Arabica Coffee Beans (1kg)", "Groceries", 1400, 2850, 20, "GlobalFoods",
     {"loc-1": 50, "loc-2": 20, "loc-3": 12}),
    ("ELEC-204", "USB-C Charging Cable (2m)", "Electronics", 250, 1299, 50, "TechSupply Co",
     {"loc-1": 150, "loc-2": 50, "loc-3": 50}),
    ("CLOTH-022", "Denim Jeans (32/32)", "Clothing", 2200, 6500, 10, "FashionWholesale",
     {"loc-1": 10, "loc-2": 4, "loc-3": 4}),
]


def _cli_ledger() -> Ledger:
    """Ledger over the local database, flushing every write before returning."""
    settings = replace(LedgerSettings.from_config(current_app.config), sync_mode="inline")
    ledger = Ledger(SqlStore(current_app._get_current_object()), settings=settings)
    ledger.load()
    return ledger


@click.group('store')
def store_group():
    """Durable store bootstrap and repair commands."""


@store_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Safe to run repeatedly."""
    db.create_all()
    click.echo("OK Tables created")


@store_group.command('reset-db')
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

    click.echo("OK Database reset complete")


@store_group.command('seed')
@with_appcontext
def seed():
    """
    Load demo data through the ledger so every unit has a transaction.

    Example:
        flask store seed
    """
    db.create_all()
    ledger = _cli_ledger()
    if ledger.inventory:
        click.echo(f"Store already holds {len(ledger.inventory)} items; nothing seeded.")
        return

    for data in DEMO_SUPPLIERS:
        purchasing_service.add_supplier(ledger, **data)

    for sku, name, category, cost, price, threshold, supplier, distribution in DEMO_ITEMS:
        item = inventory_service.add_item(
            ledger,
            sku=sku,
            name=name,
            category=category,
            supplier=supplier,
            cost_price_cents=cost,
            selling_price_cents=price,
            low_stock_threshold=threshold,
            location_id="loc-1",
            initial_stock=distribution["loc-1"],
        )
        for location_id in ("loc-2", "loc-3"):
            inventory_service.bulk_adjust_stock(
                ledger,
                [StockAdjustment(item.id, distribution[location_id])],
                location_id,
                "Opening Stock",
                type=TransactionType.RESTOCK,
            )

    customer_service.add_customer(ledger, name="Jane Doe", phone="555-0199", email="jane@example.com")

    if ledger.sync.dropped:
        click.echo(f"WARN {len(ledger.sync.dropped)} writes were rejected by the store", err=True)
    click.echo(
        f"OK Seeded {len(ledger.suppliers)} suppliers, {len(ledger.inventory)} items, "
        f"{len(ledger.transactions)} transactions"
    )


@click.group('ledger')
def ledger_group():
    """Ledger inspection commands."""


@ledger_group.command('stats')
@with_appcontext
def stats():
    """Dashboard totals for the whole catalog."""
    ledger = _cli_ledger()
    data = reporting_service.dashboard_stats(ledger)
    click.echo(f"Units on hand:    {data['total_items']}")
    click.echo(f"Retail value:     {data['total_value_cents'] / 100:,.2f}")
    click.echo(f"Low-stock items:  {data['low_stock_count']}")
    click.echo(f"Categories:       {data['categories']}")


@ledger_group.command('low-stock')
@click.option('--limit', type=int, default=None, help='Show at most N items')
@with_appcontext
def low_stock(limit):
    """
    List items at or below their threshold.

    Example:
        flask ledger low-stock --limit 5
    """
    ledger = _cli_ledger()
    items = reporting_service.low_stock_items(ledger, limit=limit)
    if not items:
        click.echo("No low-stock items.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'SKU':<12} {'Name':<35} {'Stock':>8} {'Threshold':>10}")
    click.echo("="*70)
    for item in items:
        click.echo(f"{item.sku:<12} {item.name[:35]:<35} {item.stock_quantity:>8} {item.low_stock_threshold:>10}")
    click.echo("="*70 + "\n")


@ledger_group.command('export-inventory')
@click.option('--output', type=click.Path(dir_okay=False, writable=True), default=None,
              help='Write CSV to this file instead of stdout')
@with_appcontext
def export_inventory(output):
    """Export the inventory as CSV."""
    ledger = _cli_ledger()
    content = reporting_service.export_inventory_csv(ledger)
    if output:
        with open(output, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        click.echo(f"OK Wrote {len(ledger.inventory)} items to {output}")
    else:
        click.echo(content, nl=False)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(store_group)
    app.cli.add_command(ledger_group)
