"""add committed offer unique indexes

Revision ID: 2d3e4f5a6b7c
Revises: 1c2d3e4f5a6b
Create Date: 2026-10-18 00:02:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '2d3e4f5a6b7c'
down_revision = '1c2d3e4f5a6b'
branch_labels = None
depends_on = None

COMMITTED = sa.text("status IN ('pending', 'accepted')")
ACCEPTED = sa.text("status = 'accepted'")


def upgrade() -> None:
    # Concurrent creates and accepts are serialized by these partial indexes
    op.create_index(
        'uq_offers_committed_pair', 'offers', ['sender_id', 'offered_item_id', 'wanted_item_id'],
        unique=True, sqlite_where=COMMITTED, postgresql_where=COMMITTED,
    )
    op.create_index(
        'uq_offers_committed_offered_item', 'offers', ['offered_item_id'],
        unique=True, sqlite_where=COMMITTED, postgresql_where=COMMITTED,
    )
    op.create_index(
        'uq_offers_accepted_wanted_item', 'offers', ['wanted_item_id'],
        unique=True, sqlite_where=ACCEPTED, postgresql_where=ACCEPTED,
    )


def downgrade() -> None:
    op.drop_index('uq_offers_accepted_wanted_item', 'offers')
    op.drop_index('uq_offers_committed_offered_item', 'offers')
    op.drop_index('uq_offers_committed_pair', 'offers')
