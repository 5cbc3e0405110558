# Overview: Flask CLI command groups for bootstrap, inspection, and pricing checks.

# backend/pharmacy/cli.py
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
# Inventory inspection:
# - python -m flask inventory alerts [--today 2026-01-31]
#   List low-stock and expiry warnings.
# - python -m flask inventory price --invoice-price-cents 100000 --discount 10 --vat 16 --other-charges-cents 5000
#   Print net cost and minimum selling price for a set of invoice terms.

import click
from flask.cli import with_appcontext

from .extensions import db, local_cache
from .services import product_service
from .services.pricing import PricingInputs, derive_pricing
from .time_utils import parse_iso_date


def _money(cents: int) -> str:
    return f"{cents // 100}.{cents % 100:02d}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Existing data is kept."""
    db.create_all()
    click.echo("PASS Database tables ready")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """
    DEV/TEST only: drop all tables and recreate them.

    Also clears the local stock-take progress cache.
    """
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    local_cache.clear()
    click.echo("PASS Database reset (all data deleted)")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('alerts')
@click.option('--today', default=None, help='Reference date (YYYY-MM-DD), defaults to today (UTC)')
@with_appcontext
def alerts(today):
    """List low-stock and expiry alerts."""
    try:
        reference = parse_iso_date(today)
    except ValueError:
        raise click.BadParameter("must be YYYY-MM-DD", param_hint="--today")

    found = product_service.get_stock_alerts(today=reference)
    if not found:
        click.echo("No stock alerts")
        return
    for alert in found:
        click.echo(f"[{alert.alert_type}] {alert.message}")
    click.echo(f"{len(found)} alert(s)")


@inventory_group.command('price')
@click.option('--invoice-price-cents', type=int, default=None)
@click.option('--discount', 'discount_percent', type=float, default=None, help='Supplier discount %')
@click.option('--vat', 'vat_percent', type=float, default=0.0, help='VAT rate %')
@click.option('--other-charges-cents', type=int, default=None)
@click.option('--cost-price-cents', type=int, default=None, help='Manual cost when no invoice price')
@click.option('--selling-price-cents', type=int, default=None, help='Requested selling price')
def price(invoice_price_cents, discount_percent, vat_percent, other_charges_cents,
          cost_price_cents, selling_price_cents):
    """Print the derived cost and price for a set of invoice terms."""
    inputs = PricingInputs(
        invoice_price_cents=invoice_price_cents,
        supplier_discount_percent=discount_percent,
        vat_rate_percent=vat_percent,
        other_charges_cents=other_charges_cents,
        cost_price_cents=cost_price_cents,
    )
    result = derive_pricing(inputs, selling_price_cents)
    click.echo(f"Net cost:              {_money(result.net_cost_cents)}")
    click.echo(f"Minimum selling price: {_money(result.minimum_selling_price_cents)}")
    click.echo(f"Selling price:         {_money(result.selling_price_cents)}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
