"""Add customer_scores and merge tombstone columns.

Revision ID: 8f3b2d61c7a9
Revises: 5c1e9a7d2b40
Create Date: 2026-04-14

Merged customers are kept for audit with merged_into_id set instead of
being deleted. customer_scores holds at most one row per customer.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '8f3b2d61c7a9'
down_revision = '5c1e9a7d2b40'
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Add tombstone columns and customer_scores."""
    op.add_column('customers', sa.Column('merged_into_id', sa.Integer(),
                  sa.ForeignKey('customers.id'), nullable=True,
                  comment='Surviving customer after a merge'))
    op.add_column('customers', sa.Column('merged_at', sa.TIMESTAMP(timezone=True),
                  nullable=True))
    op.create_index('ix_customers_live', 'customers', ['id'],
                    postgresql_where=sa.text('merged_into_id IS NULL'))

    op.create_table(
        'customer_scores',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'),
                  nullable=False, unique=True),
        sa.Column('health_score', sa.Integer(), nullable=True),
        sa.Column('churn_risk', sa.String(16), nullable=True),
        sa.Column('last_calculated_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )


def downgrade() -> None:
    """Drop customer_scores and tombstone columns."""
    op.drop_table('customer_scores')
    op.drop_index('ix_customers_live', table_name='customers')
    op.drop_column('customers', 'merged_at')
    op.drop_column('customers', 'merged_into_id')
