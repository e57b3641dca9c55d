"""Create order_status_log

Revision ID: 0003_create_order_status_log
Revises: 0002_create_order_items
Create Date: 2026-10-18

Append-only audit trail: one row per status transition.
"""

from alembic import op
import sqlalchemy as sa

revision = '0003_create_order_status_log'
down_revision = '0002_create_order_items'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'order_status_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('changed_by', sa.String(100), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
    )
    op.create_index('idx_order_status_log_order_changed', 'order_status_log', ['order_id', 'changed_at'])


def downgrade():
    op.drop_index('idx_order_status_log_order_changed', table_name='order_status_log')
    op.drop_table('order_status_log')
