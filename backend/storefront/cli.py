# Overview: Flask CLI command groups for bootstrap, stock intake, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create tables if missing and a default admin (admin / Password123!).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username staff --email staff@axis.local --password "Password123!" --role admin
#
# Inventory:
# - python -m flask inventory add-product --sku IOT-GW-01 --name "IoT Gateway" --price 1000 --stock 5
# - python -m flask inventory add-units --sku IOT-GW-01 --count 3
# - python -m flask inventory stock --sku IOT-GW-01
#
# Maintenance:
# - python -m flask maintenance expire-quotes
#   Move every quote past price_valid_until to EXPIRED.
# - python -m flask maintenance cleanup-sessions
#   Deactivate lapsed sessions; delete inactive ones older than 30 days.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import StorefrontError
from .extensions import db
from .models import Product, User
from .services import inventory_service, rfq_service, session_service
from .services.auth_service import create_user
from .services.rfq_service import parse_money
from .workflow import UserRole


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create missing tables and a default admin account.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing storefront...")
    db.create_all()

    if db.session.query(User).filter_by(role=UserRole.ADMIN).first():
        click.echo("WARN  An admin user already exists, skipping...")
        return

    try:
        user = create_user(
            username="admin",
            email="admin@axis.local",
            password="Password123!",
            role=UserRole.ADMIN,
            first_name="Store",
            last_name="Admin",
        )
        click.echo(f"PASS Created admin: {user.username} ({user.user_code}) / Password123!")
    except StorefrontError as e:
        click.echo(f"FAIL Could not create admin: {e.message}")


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


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        click.echo(f"{user.user_code:<10} {user.username:<20} {user.email:<30} {user.role.value:<9} {user.status.value}")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'customer']), default='customer', show_default=True)
@click.option('--first-name', default=None)
@click.option('--last-name', default=None)
@with_appcontext
def create_user_cli(username, email, password, role, first_name, last_name):
    """Create a user. Password must be at least 8 characters."""
    try:
        user = create_user(
            username=username,
            email=email.strip().lower(),
            password=password,
            role=UserRole(role),
            first_name=first_name,
            last_name=last_name,
        )
        click.echo(f"PASS Created user: {user.username} ({user.user_code}) with role '{role}'")
    except StorefrontError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")


@users_group.command('revoke-sessions')
@click.argument('username')
@with_appcontext
def revoke_sessions_cli(username):
    """Force-logout a user (ends their active session)."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return
    count = session_service.revoke_all_user_sessions(user.id, reason="revoked by admin")
    click.echo(f"PASS Revoked {count} session(s) for {username}")


@click.group('inventory')
def inventory_group():
    """Product and stock intake commands."""


def _product_by_sku(sku: str) -> Product | None:
    return db.session.query(Product).filter_by(sku=sku).first()


@inventory_group.command('add-product')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price', default=None, help='Catalog unit price')
@click.option('--currency', default=None)
@click.option('--stock', type=int, default=0, show_default=True, help='Initial IN_STOCK units')
@with_appcontext
def add_product_cli(sku, name, price, currency, stock):
    """Create a product and, optionally, its initial units."""
    if _product_by_sku(sku):
        click.echo(f"FAIL Product with SKU {sku} already exists")
        return
    try:
        product = Product(
            sku=sku,
            name=name,
            slug=sku.lower(),
            base_price=parse_money(price, "price"),
            currency=currency or current_app.config["DEFAULT_CURRENCY"],
            is_active=True,
        )
        db.session.add(product)
        db.session.commit()
        if stock > 0:
            inventory_service.add_units(product.id, stock)
        click.echo(f"PASS Created product {sku} with {stock} unit(s)")
    except StorefrontError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")


@inventory_group.command('add-units')
@click.option('--sku', required=True)
@click.option('--count', type=int, required=True)
@with_appcontext
def add_units_cli(sku, count):
    product = _product_by_sku(sku)
    if not product:
        click.echo(f"FAIL Product {sku} not found")
        return
    try:
        units = inventory_service.add_units(product.id, count)
    except StorefrontError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Added {len(units)} unit(s): {units[0].machine_id} .. {units[-1].machine_id}")


@inventory_group.command('stock')
@click.option('--sku', required=True)
@with_appcontext
def stock_cli(sku):
    product = _product_by_sku(sku)
    if not product:
        click.echo(f"FAIL Product {sku} not found")
        return
    click.echo(f"{sku}: {inventory_service.count_in_stock(product.id)} in stock")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('expire-quotes')
@with_appcontext
def expire_quotes_cli():
    """Expire every quote past its price_valid_until."""
    expired = rfq_service.expire_stale_quotes()
    click.echo(f"Expired {expired} quote(s).")


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    deactivated, deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deactivated {deactivated} lapsed session(s), deleted {deleted} old session(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(maintenance_group)
