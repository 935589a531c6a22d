"""initial storefront schema

Revision ID: 0001_storefront
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the transactional core:
- users / user_sessions: accounts and the single active session per user
- products / product_units: catalog entries and allocatable stock units
- cart_sessions / cart_items: per-user staging area
- rfqs / rfq_items: quote requests and staff pricing
- orders / order_items / payments: accepted quotes, unit bindings, cash settlement

Status columns are VARCHARs holding closed enum values (see storefront.workflow).
Three partial unique indexes carry the concurrency invariants:
- uq_user_sessions_one_active: one active session per user
- uq_cart_sessions_one_active: one ACTIVE cart per user
- uq_cart_items_active_product: one ACTIVE line per (cart, product)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_storefront'
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, nullable=True):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    # ============================================================================
    # users / user_sessions
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_code', sa.String(length=16), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='customer'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        _ts('created_at', nullable=False),
        _ts('last_login_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index('ix_users_username', ['username'], unique=True)
        batch_op.create_index('ix_users_email', ['email'], unique=True)

    op.create_table(
        'user_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        _ts('created_at', nullable=False),
        _ts('expires_at', nullable=False),
        _ts('last_activity', nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts('ended_at'),
        sa.Column('end_reason', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_sessions_user_id', 'user_sessions', ['user_id'], unique=False)
    op.create_index('ix_user_sessions_token_hash', 'user_sessions', ['token_hash'], unique=False)
    op.create_index(
        'uq_user_sessions_one_active', 'user_sessions', ['user_id'], unique=True,
        sqlite_where=sa.text('is_active = 1'),
        postgresql_where=sa.text('is_active'),
    )

    # ============================================================================
    # products / product_units
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=True),
        sa.Column('base_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='PHP'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts('created_at', nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_sku', 'products', ['sku'], unique=True)

    op.create_table(
        'product_units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('machine_id', sa.String(length=96), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='IN_STOCK'),
        _ts('created_at', nullable=False),
        _ts('reserved_at'),
        _ts('sold_at'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('machine_id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_units_product_id', 'product_units', ['product_id'], unique=False)
    op.create_index('ix_product_units_alloc', 'product_units', ['product_id', 'status', 'created_at'], unique=False)

    # ============================================================================
    # cart_sessions / cart_items
    # ============================================================================
    op.create_table(
        'cart_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        _ts('created_at', nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cart_sessions_user_id', 'cart_sessions', ['user_id'], unique=False)
    op.create_index(
        'uq_cart_sessions_one_active', 'cart_sessions', ['user_id'], unique=True,
        sqlite_where=sa.text("status = 'ACTIVE'"),
        postgresql_where=sa.text("status = 'ACTIVE'"),
    )

    op.create_table(
        'cart_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cart_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='PHP'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('rfq_id', sa.Integer(), nullable=True),  # no FK: rfq_items points back here
        _ts('created_at', nullable=False),
        _ts('updated_at', nullable=False),
        sa.ForeignKeyConstraint(['cart_id'], ['cart_sessions.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cart_items_cart_id', 'cart_items', ['cart_id'], unique=False)
    op.create_index('ix_cart_items_rfq_id', 'cart_items', ['rfq_id'], unique=False)
    op.create_index(
        'uq_cart_items_active_product', 'cart_items', ['cart_id', 'product_id'], unique=True,
        sqlite_where=sa.text("status = 'ACTIVE'"),
        postgresql_where=sa.text("status = 'ACTIVE'"),
    )

    # ============================================================================
    # rfqs / rfq_items
    # ============================================================================
    op.create_table(
        'rfqs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('company_name', sa.String(length=255), nullable=True),
        sa.Column('contact_name', sa.String(length=255), nullable=True),
        sa.Column('contact_email', sa.String(length=255), nullable=True),
        sa.Column('contact_phone', sa.String(length=64), nullable=True),
        sa.Column('use_case', sa.Text(), nullable=True),
        sa.Column('site_info', sa.Text(), nullable=True),
        sa.Column('additional_notes', sa.Text(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='PHP'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING_REVIEW'),
        _ts('price_valid_until'),
        _ts('quoted_at'),
        _ts('decided_at'),
        sa.Column('decision_reason', sa.String(length=255), nullable=True),
        _ts('created_at', nullable=False),
        _ts('updated_at', nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_rfqs_user_id', 'rfqs', ['user_id'], unique=False)
    op.create_index('ix_rfqs_user_created', 'rfqs', ['user_id', 'created_at'], unique=False)
    op.create_index('ix_rfqs_status_valid_until', 'rfqs', ['status', 'price_valid_until'], unique=False)

    op.create_table(
        'rfq_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rfq_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('cart_line_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='PHP'),
        sa.Column('quoted_unit_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('quoted_total_price', sa.Numeric(14, 2), nullable=True),
        sa.Column('line_lead_time_days', sa.Integer(), nullable=True),
        sa.Column('line_notes', sa.Text(), nullable=True),
        sa.Column('line_status', sa.String(length=32), nullable=False, server_default='PENDING_REVIEW'),
        _ts('created_at', nullable=False),
        sa.ForeignKeyConstraint(['rfq_id'], ['rfqs.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['cart_line_id'], ['cart_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_rfq_items_rfq_id', 'rfq_items', ['rfq_id'], unique=False)

    # ============================================================================
    # orders / order_items / payments
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rfq_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='AWAITING_PICKUP'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='PHP'),
        sa.Column('total_price', sa.Numeric(14, 2), nullable=False),
        sa.Column('pickup_location', sa.String(length=255), nullable=True),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='UNPAID'),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('amount_received', sa.Numeric(14, 2), nullable=True),
        sa.Column('change_given', sa.Numeric(14, 2), nullable=True),
        _ts('created_at', nullable=False),
        _ts('ready_at'),
        _ts('paid_at'),
        _ts('completed_at'),
        _ts('cancelled_at'),
        sa.Column('cancel_reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['rfq_id'], ['rfqs.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('rfq_id'),  # one order per RFQ
        sqlite_autoincrement=True
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'], unique=False)
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'], unique=False)

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('rfq_line_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_unit_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(14, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(14, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='PHP'),
        _ts('created_at', nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['rfq_line_id'], ['rfq_items.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['product_unit_id'], ['product_units.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'], unique=False)
    op.create_index('ix_order_items_product_unit_id', 'order_items', ['product_unit_id'], unique=False)

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='CASH'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='CAPTURED'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='PHP'),
        sa.Column('amount_due', sa.Numeric(14, 2), nullable=False),
        sa.Column('amount_received', sa.Numeric(14, 2), nullable=False),
        sa.Column('change_given', sa.Numeric(14, 2), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        _ts('created_at', nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payments_order_id', 'payments', ['order_id'], unique=False)


def downgrade():
    op.drop_table('payments')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('rfq_items')
    op.drop_table('rfqs')
    op.drop_table('cart_items')
    op.drop_table('cart_sessions')
    op.drop_table('product_units')
    op.drop_table('products')
    op.drop_table('user_sessions')
    op.drop_table('users')
