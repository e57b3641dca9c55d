"""Create orders

Revision ID: 0001_create_orders
Revises:
Create Date: 2026-10-18

Creates the orders table:
- number: externally visible ORD_YYYYMMDD_NNN, unique
- status: received -> cooking -> ready -> completed (or cancelled)
"""

from alembic import op
import sqlalchemy as sa

revision = '0001_create_orders'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('number', sa.String(32), nullable=False),
        sa.Column('customer_name', sa.String(100), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('table_number', sa.Integer(), nullable=True),
        sa.Column('delivery_address', sa.Text(), nullable=True),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('priority', sa.Integer(), server_default='1', nullable=False),
        sa.Column('status', sa.String(20), server_default='received', nullable=False),
        sa.Column('processed_by', sa.String(100), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('number', name='uq_orders_number'),
        sa.CheckConstraint("type IN ('dine_in', 'takeout', 'delivery')", name='ck_orders_type'),
    )
    op.create_index('idx_orders_status', 'orders', ['status'])


def downgrade():
    op.drop_index('idx_orders_status', table_name='orders')
    op.drop_table('orders')
