"""add normalized neighborhood key to listings

Revision ID: 002_listing_neighborhood_key
Revises: 001_initial_schema
Create Date: 2026-10-18 15:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002_listing_neighborhood_key'
down_revision = '001_initial_schema'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        'listings',
        sa.Column('neighborhood_key', sa.String(100), nullable=False, server_default=''),
    )
    # Same folding as criteria_matcher.normalize_area
    op.execute(
        "UPDATE listings SET neighborhood_key = "
        "regexp_replace(lower(btrim(neighborhood)), '[[:space:]_-]+', ' ', 'g')"
    )
    op.create_index(
        'idx_listings_neighborhood_key_active', 'listings', ['neighborhood_key', 'is_active']
    )


def downgrade() -> None:
    op.drop_index('idx_listings_neighborhood_key_active', table_name='listings')
    op.drop_column('listings', 'neighborhood_key')
