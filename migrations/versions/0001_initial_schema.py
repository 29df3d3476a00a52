"""
initial schema: users, provider accounts, cost records, resources,
recommendations and alerts

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18

cost_records, resources and recommendations reference provider accounts
through (provider, account_id) with no foreign key, since the target
table depends on the provider.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _account_columns():
    return [
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('last_sync', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True, index=True),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False, server_default='member'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Credential columns hold AES ciphertext
    op.create_table(
        'aws_accounts',
        *_account_columns(),
        sa.Column('account_id', sa.String(12), nullable=False),
        sa.Column('region', sa.String(), nullable=True),
        sa.Column('access_key_id', sa.String(), nullable=True),
        sa.Column('secret_access_key', sa.String(), nullable=True),
        sa.Column('role_arn', sa.String(), nullable=True),
        sa.Column('role_external_id', sa.String(), nullable=True),
        sa.UniqueConstraint('user_id', 'account_id', name='uq_user_aws_account'),
    )
    op.create_table(
        'azure_accounts',
        *_account_columns(),
        sa.Column('subscription_id', sa.String(), nullable=False),
        sa.Column('directory_tenant_id', sa.String(), nullable=True),
        sa.Column('client_id', sa.String(), nullable=True),
        sa.Column('client_secret', sa.String(), nullable=True),
        sa.UniqueConstraint('user_id', 'subscription_id', name='uq_user_azure_subscription'),
    )
    op.create_table(
        'gcp_accounts',
        *_account_columns(),
        sa.Column('project_id', sa.String(), nullable=False),
        sa.Column('service_account_json', sa.Text(), nullable=True),
        sa.UniqueConstraint('user_id', 'project_id', name='uq_user_gcp_project'),
    )

    op.create_table(
        'cost_records',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('provider', sa.String(10), nullable=False),
        sa.Column('account_id', sa.Uuid(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False, index=True),
        sa.Column('service', sa.String(), nullable=False, index=True),
        sa.Column('region', sa.String(), nullable=True),
        sa.Column('resource_id', sa.String(), nullable=True, index=True),
        sa.Column('cost', sa.Numeric(18, 8), nullable=False),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('usage_quantity', sa.Numeric(18, 6), nullable=True),
        sa.Column('usage_unit', sa.String(), nullable=True),
        sa.Column('tags', JSON, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        'ix_cost_records_provider_account_date',
        'cost_records',
        ['provider', 'account_id', 'date'],
    )

    op.create_table(
        'resources',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('provider', sa.String(10), nullable=False),
        sa.Column('account_id', sa.Uuid(), nullable=False),
        sa.Column('resource_id', sa.String(), nullable=False),
        sa.Column('resource_name', sa.String(), nullable=True),
        sa.Column('resource_type', sa.String(), nullable=False, index=True),
        sa.Column('region', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('utilization', sa.Float(), nullable=True),
        sa.Column('cost_per_month', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('tags', JSON, nullable=True),
        sa.Column('metrics', JSON, nullable=True),
        sa.Column('configuration', JSON, nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('provider', 'account_id', 'resource_id', name='uq_provider_account_resource'),
    )
    op.create_index('ix_resources_provider_account', 'resources', ['provider', 'account_id'])

    op.create_table(
        'recommendations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('provider', sa.String(10), nullable=False),
        sa.Column('account_id', sa.Uuid(), nullable=False),
        sa.Column('resource_id', sa.String(), nullable=True, index=True),
        sa.Column('resource_type', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('recommendation_type', sa.String(20), nullable=True, index=True),
        sa.Column('impact', sa.String(10), nullable=True),
        sa.Column('potential_savings', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('status', sa.String(20), nullable=True, index=True),
        sa.Column('action_details', JSON, nullable=True),
        sa.Column('metadata', JSON, nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_recommendations_provider_account', 'recommendations', ['provider', 'account_id'])

    op.create_table(
        'alerts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('provider', sa.String(10), nullable=True),
        sa.Column('account_id', sa.Uuid(), nullable=True),
        sa.Column('resource_id', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('severity', sa.String(10), nullable=True, index=True),
        sa.Column('status', sa.String(15), nullable=True, index=True),
        sa.Column('category', sa.String(15), nullable=True),
        sa.Column('metadata', JSON, nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('alerts')
    op.drop_index('ix_recommendations_provider_account', table_name='recommendations')
    op.drop_table('recommendations')
    op.drop_index('ix_resources_provider_account', table_name='resources')
    op.drop_table('resources')
    op.drop_index('ix_cost_records_provider_account_date', table_name='cost_records')
    op.drop_table('cost_records')
    op.drop_table('gcp_accounts')
    op.drop_table('azure_accounts')
    op.drop_table('aws_accounts')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
