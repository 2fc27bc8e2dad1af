"""Archived and synced appointments, merge log members, flattened client count

Revision ID: 002_external_appointments_and_merge_members
Revises: 001_initial_client_merge_schema
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002_external_appointments_and_merge_members'
down_revision = '001_initial_client_merge_schema'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'archived_appointments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('service_name', sa.String(length=255), nullable=True),
        sa.Column('starts_at', sa.DateTime(), nullable=True),
        sa.Column('archived_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_archived_appointments_organization_id', 'archived_appointments', ['organization_id'])
    op.create_index('ix_archived_appointments_client_id', 'archived_appointments', ['client_id'])

    op.create_table(
        'external_appointments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('external_appointment_id', sa.String(length=100), nullable=False),
        sa.Column('external_client_id', sa.String(length=100), nullable=True),
        sa.Column('service_name', sa.String(length=255), nullable=True),
        sa.Column('starts_at', sa.DateTime(), nullable=True),
        sa.Column('synced_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_external_appointments_organization_id', 'external_appointments', ['organization_id'])
    op.create_index('ix_external_appointments_external_client_id', 'external_appointments', ['external_client_id'])

    op.add_column(
        'client_merge_logs',
        sa.Column('flattened_clients', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'client_merge_log_members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merge_log_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.ForeignKeyConstraint(['merge_log_id'], ['client_merge_logs.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_client_merge_log_members_merge_log_id', 'client_merge_log_members', ['merge_log_id'])
    op.create_index('ix_client_merge_log_members_client_id', 'client_merge_log_members', ['client_id'])

    # Backfill members for merges logged before this revision
    logs = sa.table(
        'client_merge_logs',
        sa.column('id', sa.Integer()),
        sa.column('primary_client_id', sa.Integer()),
        sa.column('secondary_client_ids', sa.JSON()),
    )
    members = sa.table(
        'client_merge_log_members',
        sa.column('merge_log_id', sa.Integer()),
        sa.column('client_id', sa.Integer()),
        sa.column('role', sa.String()),
    )
    rows = []
    for log_id, primary_id, secondary_ids in op.get_bind().execute(
        sa.select(logs.c.id, logs.c.primary_client_id, logs.c.secondary_client_ids)
    ):
        rows.append({'merge_log_id': log_id, 'client_id': primary_id, 'role': 'primary'})
        rows.extend(
            {'merge_log_id': log_id, 'client_id': int(client_id), 'role': 'secondary'}
            for client_id in secondary_ids or []
        )
    if rows:
        op.bulk_insert(members, rows)


def downgrade() -> None:
    op.drop_table('client_merge_log_members')
    op.drop_column('client_merge_logs', 'flattened_clients')
    op.drop_table('external_appointments')
    op.drop_table('archived_appointments')
