"""create_terminal_schema

Revision ID: a1c4e7f0b2d5
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c4e7f0b2d5'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(precision=20, scale=4)

role_enum = sa.Enum('ADMIN', 'MANAGER', 'CASHIER', name='roleenum')
pricing_enum = sa.Enum('INCLUSIVE', 'EXCLUSIVE', name='pricingtype')
kind_enum = sa.Enum('INVENTORY', 'SERVICE', name='productkind')
payment_enum = sa.Enum('CASH', 'CARD', 'MPESA', 'POINTS', name='paymentmethod')
discount_enum = sa.Enum('PERCENTAGE', 'FIXED', name='discounttype')
shift_status_enum = sa.Enum('ACTIVE', 'CLOSED', name='shiftstatus')
outbox_status_enum = sa.Enum('PENDING', 'SYNCING', 'SYNCED', name='outboxstatus')


def upgrade() -> None:
    """Create users, catalog, customers, shifts, sales, cart and outbox tables."""
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('username', sa.String(150), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('role', role_enum, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('table_name', sa.String(100), nullable=False),
        sa.Column('record_id', sa.String(255), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('changed_by', sa.Uuid(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_audit_table_record', 'audit_logs', ['table_name', 'record_id'])
    op.create_index('ix_audit_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_action', 'audit_logs', ['action'])

    op.create_table(
        'products',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('sku', sa.String(50), nullable=True, unique=True),
        sa.Column('price', MONEY, nullable=False),
        sa.Column('pricing_type', pricing_enum, nullable=False),
        sa.Column('product_kind', kind_enum, nullable=False),
        sa.Column('cost_price', MONEY, nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('price >= 0', name='ck_product_price_non_negative'),
        sa.CheckConstraint('cost_price >= 0', name='ck_product_cost_price_non_negative'),
        sa.CheckConstraint('stock >= 0', name='ck_product_stock_non_negative'),
    )
    op.create_index('ix_products_sku', 'products', ['sku'])

    op.create_table(
        'customers',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('loyalty_points', sa.Integer(), nullable=False),
        sa.Column('total_spent', MONEY, nullable=False),
        sa.Column('last_purchase_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('loyalty_points >= 0', name='ck_customer_points_non_negative'),
    )
    op.create_index('ix_customers_name', 'customers', ['name'])
    op.create_index('ix_customers_phone', 'customers', ['phone'])

    op.create_table(
        'shifts',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('operator_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('operator_name', sa.String(255), nullable=False),
        sa.Column('status', shift_status_enum, nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('starting_float', MONEY, nullable=False),
        sa.Column('payment_breakdown', sa.JSON(), nullable=True),
        sa.Column('sale_count', sa.Integer(), nullable=True),
        sa.Column('total_sales', MONEY, nullable=True),
        sa.Column('total_cash_tendered', MONEY, nullable=True),
        sa.Column('total_change_given', MONEY, nullable=True),
        sa.Column('expected_cash', MONEY, nullable=True),
        sa.Column('actual_cash', MONEY, nullable=True),
        sa.Column('variance', MONEY, nullable=True),
        sa.CheckConstraint('starting_float >= 0', name='ck_shift_float_non_negative'),
    )
    op.create_index('ix_shifts_operator', 'shifts', ['operator_id'])
    op.create_index('ix_shifts_status', 'shifts', ['status'])
    op.create_index('ix_shifts_started_at', 'shifts', ['started_at'])

    op.create_table(
        'sales',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('shift_id', sa.String(64), sa.ForeignKey('shifts.id'), nullable=False),
        sa.Column('customer_id', sa.String(64), sa.ForeignKey('customers.id'), nullable=True),
        sa.Column('cashier_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('cashier_name', sa.String(255), nullable=False),
        sa.Column('subtotal', MONEY, nullable=False),
        sa.Column('discount_type', discount_enum, nullable=True),
        sa.Column('discount_value', MONEY, nullable=True),
        sa.Column('discount_amount', MONEY, nullable=False),
        sa.Column('tax', MONEY, nullable=False),
        sa.Column('total', MONEY, nullable=False),
        sa.Column('change', MONEY, nullable=False),
        sa.Column('points_earned', sa.Integer(), nullable=False),
        sa.Column('points_used', sa.Integer(), nullable=False),
        sa.Column('points_value', MONEY, nullable=False),
        sa.Column('points_balance_after', sa.Integer(), nullable=False),
        sa.Column('quotation_id', sa.String(64), nullable=True),
        sa.Column('synced', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('discount_amount >= 0', name='ck_sale_discount_non_negative'),
        sa.CheckConstraint('discount_amount <= subtotal', name='ck_sale_discount_within_subtotal'),
        sa.CheckConstraint('"change" >= 0', name='ck_sale_change_non_negative'),
    )
    op.create_index('ix_sales_shift', 'sales', ['shift_id'])
    op.create_index('ix_sales_customer', 'sales', ['customer_id'])
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])
    op.create_index('ix_sales_synced', 'sales', ['synced'])

    op.create_table(
        'sale_lines',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('sale_id', sa.String(64), sa.ForeignKey('sales.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('product_kind', kind_enum, nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', MONEY, nullable=False),
        sa.Column('pricing_type', pricing_enum, nullable=False),
        sa.Column('unit_cost', MONEY, nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_sale_line_quantity_positive'),
    )
    op.create_index('ix_sale_lines_sale', 'sale_lines', ['sale_id'])

    op.create_table(
        'sale_payments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('sale_id', sa.String(64), sa.ForeignKey('sales.id'), nullable=False),
        sa.Column('method', payment_enum, nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('tendered', MONEY, nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.CheckConstraint('amount >= 0', name='ck_sale_payment_amount_non_negative'),
    )
    op.create_index('ix_sale_payments_sale', 'sale_payments', ['sale_id'])
    op.create_index('ix_sale_payments_method', 'sale_payments', ['method'])

    op.create_table(
        'cart_lines',
        sa.Column('product_id', sa.String(64), primary_key=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', MONEY, nullable=False),
        sa.Column('pricing_type', pricing_enum, nullable=False),
        sa.Column('product_kind', kind_enum, nullable=False),
        sa.Column('unit_cost', MONEY, nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_cart_line_quantity_positive'),
    )

    op.create_table(
        'outbox_entries',
        sa.Column('sequence', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('sale_id', sa.String(64), nullable=False, unique=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', outbox_status_enum, nullable=False),
        sa.Column('attempt_count', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_outbox_status', 'outbox_entries', ['status'])
    op.create_index('ix_outbox_created_at', 'outbox_entries', ['created_at'])


def downgrade() -> None:
    """Drop every terminal table."""
    op.drop_table('outbox_entries')
    op.drop_table('cart_lines')
    op.drop_table('sale_payments')
    op.drop_table('sale_lines')
    op.drop_table('sales')
    op.drop_table('shifts')
    op.drop_table('customers')
    op.drop_table('products')
    op.drop_table('audit_logs')
    op.drop_table('users')
