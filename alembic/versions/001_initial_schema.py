"""Initial schema - connections, sync logs, mappings, unmapped references, schedules

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'store_connections',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('store_domain', sa.String(), nullable=False),
        sa.Column('encrypted_token', sa.Text(), nullable=False),
        sa.Column('environment', sa.String(), nullable=False, server_default='production'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('shop', 'store_domain', name='uq_store_connection_shop_domain'),
    )
    op.create_index('ix_store_connections_id', 'store_connections', ['id'])
    op.create_index('ix_store_connections_shop', 'store_connections', ['shop'])

    op.create_table(
        'sync_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('connection_id', sa.Integer(),
                  sa.ForeignKey('store_connections.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sync_type', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='in_progress'),
        sa.Column('summary', sa.JSON(), nullable=True),
        sa.Column('logs', sa.JSON(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_sync_logs_id', 'sync_logs', ['id'])
    op.create_index('ix_sync_logs_shop', 'sync_logs', ['shop'])
    op.create_index('ix_sync_logs_connection_id', 'sync_logs', ['connection_id'])
    op.create_index('ix_sync_logs_sync_type', 'sync_logs', ['sync_type'])
    op.create_index('ix_sync_logs_status', 'sync_logs', ['status'])

    op.create_table(
        'resource_mappings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('connection_id', sa.Integer(),
                  sa.ForeignKey('store_connections.id', ondelete='CASCADE'), nullable=False),
        sa.Column('resource_type', sa.String(), nullable=False),
        sa.Column('production_id', sa.String(), nullable=False),
        sa.Column('staging_id', sa.String(), nullable=False),
        sa.Column('production_gid', sa.String(), nullable=False),
        sa.Column('staging_gid', sa.String(), nullable=False),
        sa.Column('match_key', sa.String(), nullable=False),
        sa.Column('match_value', sa.String(), nullable=False),
        sa.Column('sync_id', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('connection_id', 'resource_type', 'production_id', name='uq_resource_mapping_production'),
    )
    op.create_index('ix_resource_mappings_id', 'resource_mappings', ['id'])
    op.create_index('ix_resource_mappings_sync_id', 'resource_mappings', ['sync_id'])
    op.create_index('ix_resource_mappings_connection_type', 'resource_mappings', ['connection_id', 'resource_type'])
    op.create_index('ix_resource_mappings_match', 'resource_mappings', ['connection_id', 'match_key', 'match_value'])

    op.create_table(
        'unmapped_references',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('connection_id', sa.Integer(),
                  sa.ForeignKey('store_connections.id', ondelete='CASCADE'), nullable=False),
        sa.Column('resource_type', sa.String(), nullable=False),
        sa.Column('production_id', sa.String(), nullable=False),
        sa.Column('production_gid', sa.String(), nullable=False),
        sa.Column('context', sa.String(), nullable=False),
        sa.Column('found_in_sync_type', sa.String(), nullable=False),
        sa.Column('attempted_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('resolved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('connection_id', 'production_gid', 'context', name='uq_unmapped_reference_context'),
    )
    op.create_index('ix_unmapped_references_id', 'unmapped_references', ['id'])
    op.create_index('ix_unmapped_references_connection_resolved', 'unmapped_references', ['connection_id', 'resolved'])

    op.create_table(
        'sync_schedules',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('shop', sa.String(), nullable=False),
        sa.Column('connection_id', sa.Integer(),
                  sa.ForeignKey('store_connections.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('sync_types', sa.JSON(), nullable=False),
        sa.Column('frequency', sa.String(), nullable=False, server_default='daily'),
        sa.Column('hour', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('minute', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('day_of_week', sa.Integer(), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_run_status', sa.String(), nullable=True),
        sa.Column('last_run_summary', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_sync_schedules_id', 'sync_schedules', ['id'])
    op.create_index('ix_sync_schedules_shop', 'sync_schedules', ['shop'])


def downgrade() -> None:
    op.drop_table('sync_schedules')
    op.drop_table('unmapped_references')
    op.drop_table('resource_mappings')
    op.drop_table('sync_logs')
    op.drop_table('store_connections')
