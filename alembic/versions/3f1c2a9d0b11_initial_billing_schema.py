"""Initial billing schema

Revision ID: 3f1c2a9d0b11
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '3f1c2a9d0b11'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'subscription',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('modified_at', sa.DateTime(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('plan_code', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('valid_from', sa.DateTime(), nullable=False),
        sa.Column('valid_to', sa.DateTime(), nullable=False),
        sa.Column('invoices_used', sa.Integer(), nullable=False),
        sa.Column('acts_used', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', name='uq_subscription_tenant_id'),
    )
    op.create_index('ix_subscription_tenant_id', 'subscription', ['tenant_id'])

    op.create_table(
        'free_trial_grant',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('modified_at', sa.DateTime(), nullable=False),
        sa.Column('key_hash', sa.String(length=64), nullable=False),
        sa.Column('invoice_used_at', sa.DateTime(), nullable=True),
        sa.Column('act_used_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key_hash'),
    )

    op.create_table(
        'payment_intent',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('modified_at', sa.DateTime(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('provider', sa.String(length=20), nullable=False),
        sa.Column('plan_code', sa.String(length=50), nullable=False),
        sa.Column('amount_minor', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=30), nullable=False),
        sa.Column('external_payment_id', sa.String(length=100), nullable=True),
        sa.Column('approval_url', sa.String(), nullable=True),
        sa.Column('last_callback_payload', sa.JSON(), nullable=True),
        sa.Column('last_gateway_status', sa.String(length=100), nullable=True),
        sa.Column('requires_review', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_payment_id'),
    )
    op.create_index('ix_payment_intent_tenant_id', 'payment_intent', ['tenant_id'])
    # Pending sweep scans non-terminal intents by age
    op.create_index('ix_payment_intent_status_modified', 'payment_intent', ['status', 'modified_at'])

    op.create_table(
        'document',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('modified_at', sa.DateTime(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('kind', sa.String(length=20), nullable=False),
        sa.Column('number', sa.String(length=200), nullable=False),
        sa.Column('counterparty_tax_id', sa.String(length=50), nullable=False),
        sa.Column('purpose', sa.String(), nullable=True),
        sa.Column('amount_minor', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'number', name='uq_document_tenant_number'),
    )
    op.create_index('ix_document_tenant_id', 'document', ['tenant_id'])


def downgrade() -> None:
    op.drop_index('ix_document_tenant_id', table_name='document')
    op.drop_table('document')
    op.drop_index('ix_payment_intent_status_modified', table_name='payment_intent')
    op.drop_index('ix_payment_intent_tenant_id', table_name='payment_intent')
    op.drop_table('payment_intent')
    op.drop_table('free_trial_grant')
    op.drop_index('ix_subscription_tenant_id', table_name='subscription')
    op.drop_table('subscription')
