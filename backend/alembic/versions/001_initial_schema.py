"""initial alert engine schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'alerts',
        sa.Column('id', sa.String(50), primary_key=True),
        sa.Column('user_id', sa.String(100), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('areas', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('min_price', sa.Integer(), nullable=True),
        sa.Column('max_price', sa.Integer(), nullable=True),
        sa.Column('min_beds', sa.Integer(), nullable=True),
        sa.Column('max_beds', sa.Integer(), nullable=True),
        sa.Column('min_baths', sa.Float(), nullable=True),
        sa.Column('no_fee', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('filter_rent_stabilized', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('enable_email', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('enable_sms', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('notify_only_new', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('preferred_frequency', sa.String(20), nullable=False, server_default='1hour'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('last_checked', sa.DateTime(timezone=True), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_alerts_user_id', 'alerts', ['user_id'])
    op.create_index('idx_alerts_is_active', 'alerts', ['is_active'])
    op.create_index('idx_alerts_last_checked', 'alerts', ['last_checked'])

    op.create_table(
        'listings',
        sa.Column('id', sa.String(100), primary_key=True),
        sa.Column('source', sa.String(50), nullable=False, server_default='streeteasy'),
        sa.Column('external_id', sa.String(100), nullable=False),
        sa.Column('address', sa.String(500), nullable=False, server_default=''),
        sa.Column('neighborhood', sa.String(100), nullable=False, server_default=''),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('title', sa.String(500), nullable=True),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('bedrooms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bathrooms', sa.Float(), nullable=False, server_default='0'),
        sa.Column('sqft', sa.Integer(), nullable=True),
        sa.Column('no_fee', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('listing_url', sa.Text(), nullable=False, server_default=''),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('rent_stabilization_status', sa.String(20), nullable=False, server_default='unknown'),
        sa.Column('rent_stabilization_probability', sa.Float(), nullable=True),
        sa.Column('rent_stabilization_reason', sa.Text(), nullable=True),
        sa.Column('rent_stabilization_checked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('building_id', sa.String(20), nullable=True),
        sa.Column('raw_data', postgresql.JSONB(), nullable=True),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
    )
    op.create_index('idx_listings_neighborhood', 'listings', ['neighborhood'])
    op.create_index('idx_listings_price', 'listings', ['price'])
    op.create_index('idx_listings_first_seen_at', 'listings', ['first_seen_at'])
    op.create_index('idx_listings_is_active', 'listings', ['is_active'])

    op.create_table(
        'notification_records',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('alert_id', sa.String(50), nullable=False),
        sa.Column('listing_id', sa.String(100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('alert_id', 'listing_id', name='uq_notification_records_pair'),
    )
    op.create_index('idx_notification_records_alert', 'notification_records', ['alert_id'])

    op.create_table(
        'notification_deliveries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('alert_id', sa.String(50), nullable=False),
        sa.Column('listing_id', sa.String(100), nullable=False),
        sa.Column('channel', sa.String(20), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('provider_message_id', sa.String(255), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_notification_deliveries_alert', 'notification_deliveries', ['alert_id'])
    op.create_index('idx_notification_deliveries_channel', 'notification_deliveries', ['channel', 'success'])

    op.create_table(
        'cron_runs',
        sa.Column('id', sa.String(50), primary_key=True),
        sa.Column('job_name', sa.String(50), nullable=False, server_default='check-alerts'),
        sa.Column('trigger', sa.String(20), nullable=False, server_default='beat'),
        sa.Column('status', sa.String(20), nullable=False, server_default='started'),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('alerts_processed', sa.Integer(), server_default='0'),
        sa.Column('alerts_skipped', sa.Integer(), server_default='0'),
        sa.Column('alerts_deferred', sa.Integer(), server_default='0'),
        sa.Column('listings_fetched', sa.Integer(), server_default='0'),
        sa.Column('listings_matched', sa.Integer(), server_default='0'),
        sa.Column('notifications_sent', sa.Integer(), server_default='0'),
        sa.Column('error_count', sa.Integer(), server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('error_samples', postgresql.JSONB(), nullable=True),
    )
    op.create_index('idx_cron_runs_status', 'cron_runs', ['status'])
    op.create_index('idx_cron_runs_started_at', 'cron_runs', ['started_at'])


def downgrade() -> None:
    op.drop_table('cron_runs')
    op.drop_table('notification_deliveries')
    op.drop_table('notification_records')
    op.drop_table('listings')
    op.drop_table('alerts')
