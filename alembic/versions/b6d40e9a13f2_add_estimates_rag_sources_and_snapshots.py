"""Add estimates, rag_sources and customer_snapshots.

Revision ID: b6d40e9a13f2
Revises: 8f3b2d61c7a9
Create Date: 2026-10-18

All three reference customers.id and follow a customer through merges.
customer_snapshots holds at most one row per customer.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'b6d40e9a13f2'
down_revision = '8f3b2d61c7a9'
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the estimate, knowledge-source and snapshot tables."""
    op.create_table(
        'estimates',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=True),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', sa.String(32), nullable=True),
    )
    op.create_index('ix_estimates_customer_id', 'estimates', ['customer_id'])

    op.create_table(
        'rag_sources',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'), nullable=True),
        sa.Column('source_type', sa.String(32), nullable=False),
        sa.Column('title', sa.String(), nullable=True),
    )
    op.create_index('ix_rag_sources_customer_id', 'rag_sources', ['customer_id'])

    op.create_table(
        'customer_snapshots',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'),
                  nullable=False, unique=True),
        sa.Column('open_balance', sa.Numeric(12, 2), nullable=True),
        sa.Column('overdue_balance', sa.Numeric(12, 2), nullable=True),
        sa.Column('payload', postgresql.JSONB(), nullable=True),
        sa.Column('captured_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
    )


def downgrade() -> None:
    """Drop the estimate, knowledge-source and snapshot tables."""
    op.drop_table('customer_snapshots')
    op.drop_index('ix_rag_sources_customer_id', table_name='rag_sources')
    op.drop_table('rag_sources')
    op.drop_index('ix_estimates_customer_id', table_name='estimates')
    op.drop_table('estimates')
