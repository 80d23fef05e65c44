"""create trade offer tables

Revision ID: 1c2d3e4f5a6b
Revises:
Create Date: 2026-10-18 00:01:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '1c2d3e4f5a6b'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Profile directory
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('username', sa.String(100), nullable=False, unique=True),
        sa.Column('api_key_hash', sa.String(64), nullable=False, unique=True),
        sa.Column('bio', sa.Text, nullable=True),
        sa.Column('avatar_url', sa.String(512), nullable=True),
        sa.Column('trades_completed', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_users_username', 'users', ['username'])
    op.create_index('ix_users_api_key_hash', 'users', ['api_key_hash'])

    op.create_table(
        'blocked_users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('blocker_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('blocked_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('blocker_id', 'blocked_id', name='uq_blocked_users_pair'),
    )
    op.create_index('ix_blocked_users_blocker_id', 'blocked_users', ['blocker_id'])
    op.create_index('ix_blocked_users_blocked_id', 'blocked_users', ['blocked_id'])

    # Item catalog
    op.create_table(
        'items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('image_url', sa.String(512), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_items_owner_id', 'items', ['owner_id'])

    op.create_table(
        'item_interests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', sa.String(36), sa.ForeignKey('items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('user_id', 'item_id', name='uq_item_interests_user_item'),
    )
    op.create_index('ix_item_interests_user_id', 'item_interests', ['user_id'])

    # Offers
    op.create_table(
        'offers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('sender_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('receiver_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('offered_item_id', sa.String(36), sa.ForeignKey('items.id'), nullable=False),
        sa.Column('wanted_item_id', sa.String(36), sa.ForeignKey('items.id'), nullable=False),
        sa.Column('additional_offered_ids', sa.JSON, nullable=False),
        sa.Column('additional_wanted_ids', sa.JSON, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('sender_confirmed_completion', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('receiver_confirmed_completion', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.TIMESTAMP, nullable=True),
        sa.Column('countered_from_id', sa.String(36), sa.ForeignKey('offers.id'), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )

    # Lookups by participant and by item slot, each narrowed by status
    op.create_index('ix_offers_sender_status', 'offers', ['sender_id', 'status'])
    op.create_index('ix_offers_receiver_status', 'offers', ['receiver_id', 'status'])
    op.create_index('ix_offers_offered_item_status', 'offers', ['offered_item_id', 'status'])
    op.create_index('ix_offers_wanted_item_status', 'offers', ['wanted_item_id', 'status'])

    # Notifications
    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('offer_id', sa.String(36), sa.ForeignKey('offers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('body', sa.Text, nullable=False),
        sa.Column('read_at', sa.TIMESTAMP, nullable=True),
        sa.Column('created_at', sa.TIMESTAMP, nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_offer_id', 'notifications', ['offer_id'])
    op.create_index('ix_notifications_read_at', 'notifications', ['read_at'])


def downgrade() -> None:
    op.drop_index('ix_notifications_read_at', 'notifications')
    op.drop_index('ix_notifications_offer_id', 'notifications')
    op.drop_index('ix_notifications_user_id', 'notifications')
    op.drop_table('notifications')

    op.drop_index('ix_offers_wanted_item_status', 'offers')
    op.drop_index('ix_offers_offered_item_status', 'offers')
    op.drop_index('ix_offers_receiver_status', 'offers')
    op.drop_index('ix_offers_sender_status', 'offers')
    op.drop_table('offers')

    op.drop_index('ix_item_interests_user_id', 'item_interests')
    op.drop_table('item_interests')

    op.drop_index('ix_items_owner_id', 'items')
    op.drop_table('items')

    op.drop_index('ix_blocked_users_blocked_id', 'blocked_users')
    op.drop_index('ix_blocked_users_blocker_id', 'blocked_users')
    op.drop_table('blocked_users')

    op.drop_index('ix_users_api_key_hash', 'users')
    op.drop_index('ix_users_username', 'users')
    op.drop_table('users')
