"""Create workers

Revision ID: 0004_create_workers
Revises: 0003_create_order_status_log
Create Date: 2026-10-18

Kitchen worker registry. Rows are upserted by name on registration and
kept after shutdown (status 'offline') so processed counters survive.
"""

from alembic import op
import sqlalchemy as sa

revision = '0004_create_workers'
down_revision = '0003_create_order_status_log'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'workers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('type', sa.String(100), server_default='general', nullable=False),
        sa.Column('status', sa.String(10), server_default='online', nullable=False),
        sa.Column('last_seen', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('orders_processed', sa.Integer(), server_default='0', nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_workers_name'),
        sa.CheckConstraint("status IN ('online', 'offline')", name='ck_workers_status'),
    )


def downgrade():
    op.drop_table('workers')
