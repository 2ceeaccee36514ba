"""Create customer identity tables.

Revision ID: 5c1e9a7d2b40
Revises:
Create Date: 2026-03-02

Adds the canonical customers table, provider identities with the
(provider, external_id) idempotency key, interactions, and the
customer-owned tables that merges re-point.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '5c1e9a7d2b40'
down_revision = None
branch_labels = None
depends_on = None


def _customer_fk(nullable: bool = True) -> sa.Column:
    return sa.Column('customer_id', sa.Integer(), sa.ForeignKey('customers.id'),
                     nullable=nullable, index=True)


def upgrade() -> None:
    """Create customer identity tables."""
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('primary_email', sa.String(), nullable=True,
                  comment='Lower-cased, trimmed email'),
        sa.Column('primary_phone', sa.String(32), nullable=True,
                  comment='E.164-like normalized phone'),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('company', sa.String(), nullable=True),
        sa.Column('is_vip', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('credit_risk_level', sa.String(32), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
    )
    op.create_index('ix_customers_primary_email', 'customers', ['primary_email'])
    op.create_index('ix_customers_primary_phone', 'customers', ['primary_phone'])

    op.create_table(
        'customer_identities',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _customer_fk(nullable=False),
        sa.Column('provider', sa.String(32), nullable=False,
                  comment='storefront, accounting, marketplace, fulfillment, marketing, manual, self_reported'),
        sa.Column('external_id', sa.String(), nullable=True,
                  comment='Provider-native id or address_hash:<16 hex>'),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone', sa.String(32), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True,
                  comment='identity_type, original_external_id, address snapshot'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.UniqueConstraint('provider', 'external_id',
                            name='uq_customer_identities_provider_external'),
    )
    op.create_index('idx_customer_identities_email', 'customer_identities', ['email'])
    op.create_index('idx_customer_identities_phone', 'customer_identities', ['phone'])

    op.create_table(
        'tickets',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _customer_fk(),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='new'),
    )

    op.create_table(
        'interactions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _customer_fk(nullable=False),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('tickets.id'), nullable=True),
        sa.Column('comment_id', sa.Integer(), nullable=True),
        sa.Column('channel', sa.String(32), nullable=False,
                  comment='email, ticket, self_id_form, marketplace_api, storefront_webhook, marketing, telephony'),
        sa.Column('direction', sa.String(16), nullable=False, server_default='inbound'),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('occurred_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _customer_fk(),
        sa.Column('provider', sa.String(32), nullable=False),
        sa.Column('external_id', sa.String(), nullable=True),
        sa.Column('order_number', sa.String(), nullable=True),
        sa.Column('total', sa.Numeric(12, 2), nullable=True),
        sa.Column('placed_at', sa.TIMESTAMP(timezone=True), nullable=True),
    )

    op.create_table(
        'contacts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _customer_fk(nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone', sa.String(32), nullable=True),
    )

    op.create_table(
        'calls',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _customer_fk(),
        sa.Column('direction', sa.String(16), nullable=False),
        sa.Column('started_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  server_default=sa.text('now()')),
    )

    op.create_table(
        'opportunities',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _customer_fk(nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('stage', sa.String(32), nullable=False, server_default='lead'),
    )

    op.create_table(
        'crm_tasks',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _customer_fk(),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='open'),
        sa.Column('reason', sa.Text(), nullable=True),
    )

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _customer_fk(),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('balance', sa.Numeric(12, 2), nullable=True),
    )

    op.create_table(
        'shipments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _customer_fk(),
        sa.Column('tracking_number', sa.String(), nullable=True),
        sa.Column('status', sa.String(32), nullable=True),
    )


def downgrade() -> None:
    """Drop customer identity tables."""
    for table in (
        'shipments', 'invoices', 'crm_tasks', 'opportunities', 'calls',
        'contacts', 'orders', 'interactions', 'tickets',
    ):
        op.drop_table(table)
    op.drop_index('idx_customer_identities_phone', table_name='customer_identities')
    op.drop_index('idx_customer_identities_email', table_name='customer_identities')
    op.drop_table('customer_identities')
    op.drop_index('ix_customers_primary_phone', table_name='customers')
    op.drop_index('ix_customers_primary_email', table_name='customers')
    op.drop_table('customers')
