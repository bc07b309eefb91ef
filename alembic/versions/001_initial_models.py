"""Initial database models

Revision ID: 001_initial_models
Revises: 
Create Date: 2026-10-18

Creates all base tables:
- buildings
- patios
- weather_slices
- precomputed_sun_exposure
- precomputation_schedules
- cache_entries
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from geoalchemy2 import Geometry


# revision identifiers, used by Alembic.
revision: str = '001_initial_models'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all initial tables."""

    # Buildings table
    op.create_table(
        'buildings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('footprint', Geometry(geometry_type='POLYGON', srid=4326), nullable=False),
        sa.Column('height_m', sa.Float(), nullable=False),
        sa.Column('height_source', sa.String(50), nullable=False, server_default='heuristic'),
        sa.Column('quality_score', sa.Float(), nullable=False, server_default='0.5'),
        sa.Column('admin_height_override_m', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Patios table
    op.create_table(
        'patios',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('geometry', Geometry(geometry_type='POLYGON', srid=4326), nullable=True),
        sa.Column('polygon_quality', sa.Float(), nullable=False, server_default='0.5'),
        sa.Column('venue_id', postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('venue_name', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Weather slices table
    op.create_table(
        'weather_slices',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('cloud_cover', sa.Float(), nullable=False),
        sa.Column('precipitation_probability', sa.Float(), nullable=False, server_default='0'),
        sa.Column('is_forecast', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('source', sa.String(100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Precomputed sun exposure table
    op.create_table(
        'precomputed_sun_exposure',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('patio_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('patios.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('slot_date', sa.Date(), nullable=False, index=True),
        sa.Column('time_slot', sa.Time(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('local_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sun_exposure_percent', sa.Float(), nullable=False),
        sa.Column('state', sa.String(20), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('sunlit_area_m2', sa.Float(), nullable=False, server_default='0'),
        sa.Column('shaded_area_m2', sa.Float(), nullable=False, server_default='0'),
        sa.Column('solar_elevation', sa.Float(), nullable=False),
        sa.Column('solar_azimuth', sa.Float(), nullable=False),
        sa.Column('affecting_buildings_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('calculation_duration_ms', sa.Float(), nullable=True),
        sa.Column('computed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('computation_version', sa.String(40), nullable=False),
        sa.Column('is_stale', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_precomputed_patio_timestamp', 'precomputed_sun_exposure', ['patio_id', 'timestamp'])

    # Precomputation schedules table
    op.create_table(
        'precomputation_schedules',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('target_date', sa.Date(), nullable=False, unique=True, index=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='scheduled', index=True),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('patios_total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('patios_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.String(1024), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Distributed cache tier
    op.create_table(
        'cache_entries',
        sa.Column('key', sa.String(255), primary_key=True),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Create spatial indexes (if_not_exists for idempotency - GeoAlchemy2 may auto-create these)
    op.create_index('idx_buildings_footprint', 'buildings', ['footprint'], postgresql_using='gist', if_not_exists=True)
    op.create_index('idx_patios_geometry', 'patios', ['geometry'], postgresql_using='gist', if_not_exists=True)


def downgrade() -> None:
    """Drop all tables in reverse order."""
    op.drop_index('idx_patios_geometry', table_name='patios')
    op.drop_index('idx_buildings_footprint', table_name='buildings')
    op.drop_index('ix_precomputed_patio_timestamp', table_name='precomputed_sun_exposure')

    op.drop_table('cache_entries')
    op.drop_table('precomputation_schedules')
    op.drop_table('precomputed_sun_exposure')
    op.drop_table('weather_slices')
    op.drop_table('patios')
    op.drop_table('buildings')
