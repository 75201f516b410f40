"""create instagram snapshot tables

Revision ID: 0001
Revises:
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'instagram_accounts',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('user_id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('instagram_id', sa.String(255), nullable=False),
        sa.Column('instagram_handle', sa.String(255), nullable=False),
        sa.Column('account_type', sa.String(20), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_sync_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'instagram_id', name='uix_instagram_accounts_user_instagram'),
    )
    op.create_index('ix_instagram_accounts_user_id', 'instagram_accounts', ['user_id'])
    op.create_index('ix_instagram_accounts_is_active', 'instagram_accounts', ['is_active'])

    op.create_table(
        'daily_snapshots',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('account_id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('snapshot_date', sa.Date(), nullable=False),
        sa.Column('followers_count', sa.Integer(), nullable=True),
        sa.Column('following_count', sa.Integer(), nullable=True),
        sa.Column('media_count', sa.Integer(), nullable=True),
        sa.Column('total_likes', sa.Integer(), nullable=True),
        sa.Column('total_comments', sa.Integer(), nullable=True),
        sa.Column('engagement_rate', sa.Float(), nullable=True),
        sa.Column('avg_likes_per_post', sa.Float(), nullable=True),
        sa.Column('avg_comments_per_post', sa.Float(), nullable=True),
        sa.Column('posts_published_count', sa.Integer(), nullable=True),
        sa.Column('raw_profile_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['instagram_accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'snapshot_date', name='uix_daily_snapshots_account_date'),
    )
    op.create_index('ix_daily_snapshots_account_id', 'daily_snapshots', ['account_id'])

    op.create_table(
        'post_snapshots',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('account_id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('instagram_post_id', sa.String(255), nullable=False),
        sa.Column('snapshot_date', sa.Date(), nullable=False),
        sa.Column('post_type', sa.String(50), nullable=True),
        sa.Column('caption', sa.Text(), nullable=True),
        sa.Column('permalink', sa.String(1000), nullable=True),
        sa.Column('media_url', sa.Text(), nullable=True),
        sa.Column('thumbnail_url', sa.Text(), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('likes_count', sa.Integer(), nullable=True),
        sa.Column('comments_count', sa.Integer(), nullable=True),
        sa.Column('reach', sa.Integer(), nullable=True),
        sa.Column('impressions', sa.Integer(), nullable=True),
        sa.Column('saves_count', sa.Integer(), nullable=True),
        sa.Column('raw_post_data', sa.JSON(), nullable=True),
        sa.Column('raw_insights_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['instagram_accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'account_id', 'instagram_post_id', 'snapshot_date',
            name='uix_post_snapshots_account_post_date',
        ),
    )
    op.create_index('ix_post_snapshots_account_id', 'post_snapshots', ['account_id'])

    op.create_table(
        'sync_logs',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('account_id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('sync_type', sa.String(20), nullable=False),
        sa.Column(
            'status',
            sa.Enum('started', 'completed', 'failed', name='syncstatus', create_type=True),
            nullable=False,
        ),
        sa.Column('records_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['instagram_accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sync_logs_account_id', 'sync_logs', ['account_id'])
    op.create_index('ix_sync_logs_started_at', 'sync_logs', ['started_at'])


def downgrade() -> None:
    op.drop_table('sync_logs')
    op.drop_table('post_snapshots')
    op.drop_table('daily_snapshots')
    op.drop_table('instagram_accounts')
    op.drop_table('users')
    op.execute("DROP TYPE IF EXISTS syncstatus")
