# backend/alembic/versions/001_initial_migration.py
"""Initial migration

Revision ID: 001
Revises: 
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False),
        sa.Column('full_name', sa.String(255)),
        sa.Column('avatar_url', sa.String(500)),
        sa.Column('external_id', sa.String(255)),
        sa.Column('provider', sa.String(50)),
        sa.Column('token_balance', sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column('total_tokens_purchased', sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column('total_tokens_used', sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column('free_tokens_granted', sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('is_admin', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('last_login', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('token_balance >= 0', name='users_token_balance_non_negative'),
    )
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_external_id', 'users', ['external_id'])

    # Create generations table
    op.create_table(
        'generations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('status', sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column('product_image_ref', sa.String(1000), nullable=False),
        sa.Column('model_image_ref', sa.String(1000)),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('parameters', sa.JSON(), nullable=False),
        sa.Column('token_cost', sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column('tokens_used', sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column('retry_count', sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column('completed_at', sa.DateTime()),
        sa.Column('processing_time_ms', sa.Integer()),
        sa.Column('error', sa.Text()),
        sa.Column('result_ref', sa.String(1000)),
        sa.Column('external_id', sa.String(255), unique=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled')",
            name='generations_status_check',
        ),
        sa.CheckConstraint('retry_count >= 0 AND retry_count <= 3', name='generations_retry_count_check'),
        sa.CheckConstraint('tokens_used >= 0', name='generations_tokens_used_check'),
    )
    op.create_index('ix_generations_user_id', 'generations', ['user_id'])
    op.create_index('ix_generations_status', 'generations', ['status'])
    op.create_index('ix_generations_external_id', 'generations', ['external_id'])
    op.create_index('ix_generations_user_created', 'generations', ['user_id', 'created_at'])
    op.create_index('ix_generations_user_status', 'generations', ['user_id', 'status'])
    op.create_index('ix_generations_created_at', 'generations', ['created_at'])

    # Create usage_events table
    op.create_table(
        'usage_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('ip_address', sa.String(64)),
        sa.Column('session_id', sa.String(255)),
    )
    op.create_index('ix_usage_events_user_id', 'usage_events', ['user_id'])
    op.create_index('ix_usage_events_action', 'usage_events', ['action'])
    op.create_index('ix_usage_events_timestamp', 'usage_events', ['timestamp'])
    op.create_index('ix_usage_events_user_action', 'usage_events', ['user_id', 'action'])
    op.create_index('ix_usage_events_user_timestamp', 'usage_events', ['user_id', 'timestamp'])

    # Create token_purchases table
    op.create_table(
        'token_purchases',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('tokens', sa.Integer(), nullable=False),
        sa.Column('package_name', sa.String(100), nullable=False),
        sa.Column('package_display_name', sa.String(255)),
        sa.Column('status', sa.String(20), server_default=sa.text("'pending'"), nullable=False),
        sa.Column('transaction_id', sa.String(100), unique=True, nullable=False),
        sa.Column('payment_method', sa.String(50)),
        sa.Column('payment_reference', sa.String(255)),
        sa.Column('error', sa.Text()),
        sa.Column('completed_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name='token_purchases_status_check',
        ),
    )
    op.create_index('ix_token_purchases_user_id', 'token_purchases', ['user_id'])
    op.create_index('ix_token_purchases_status', 'token_purchases', ['status'])

    # Create token_transactions table (ledger)
    op.create_table(
        'token_transactions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('recorded_amount', sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('generation_id', sa.Uuid(), sa.ForeignKey('generations.id', ondelete='SET NULL')),
        sa.Column('purchase_id', sa.Uuid(), sa.ForeignKey('token_purchases.id')),
        sa.Column('reason', sa.String(255)),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('generation_id', 'kind', name='token_transactions_generation_kind_key'),
        sa.CheckConstraint("kind IN ('debit', 'credit', 'grant')", name='token_transactions_kind_check'),
    )
    op.create_index('ix_token_transactions_user_id', 'token_transactions', ['user_id'])
    op.create_index('ix_token_transactions_generation_id', 'token_transactions', ['generation_id'])
    op.create_index('ix_token_transactions_created_at', 'token_transactions', ['created_at'])

    # Create file_assets table
    op.create_table(
        'file_assets',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('filename', sa.String(255), nullable=False),
        sa.Column('content_type', sa.String(100), nullable=False),
        sa.Column('size_bytes', sa.Integer(), nullable=False),
        sa.Column('storage_ref', sa.String(1000), nullable=False),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('width', sa.Integer()),
        sa.Column('height', sa.Integer()),
        sa.Column('format', sa.String(20)),
        sa.Column('generation_id', sa.Uuid(), sa.ForeignKey('generations.id', ondelete='SET NULL')),
        sa.Column('uploaded_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_file_assets_user_id', 'file_assets', ['user_id'])
    op.create_index('ix_file_assets_category', 'file_assets', ['category'])
    op.create_index('ix_file_assets_storage_ref', 'file_assets', ['storage_ref'])
    op.create_index('ix_file_assets_uploaded_at', 'file_assets', ['uploaded_at'])


def downgrade() -> None:
    op.drop_table('file_assets')
    op.drop_table('token_transactions')
    op.drop_table('token_purchases')
    op.drop_table('usage_events')
    op.drop_table('generations')
    op.drop_table('users')
