"""Initial schema: organizations, clients, client-owned records, merge and audit logs

Revision ID: 001_initial_client_merge_schema
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_client_merge_schema'
down_revision = None
branch_labels = None
depends_on = None


def _tenant_columns():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_organizations_id', 'organizations', ['id'])
    op.create_index('ix_organizations_slug', 'organizations', ['slug'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=50), nullable=False, server_default='stylist'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_organization_id', 'users', ['organization_id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'clients',
        *_tenant_columns(),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('mobile', sa.String(length=50), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('preferred_stylist_id', sa.Integer(), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_vip', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('external_client_id', sa.String(length=100), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('merged_into_client_id', sa.Integer(), nullable=True),
        sa.Column('merged_at', sa.DateTime(), nullable=True),
        sa.Column('merged_by', sa.Integer(), nullable=True),
        sa.Column('merge_log_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['preferred_stylist_id'], ['users.id']),
        sa.ForeignKeyConstraint(['merged_into_client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['merged_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('id', 'organization_id', 'email', 'mobile', 'external_client_id',
                   'status', 'merged_into_client_id', 'merge_log_id'):
        op.create_index(f'ix_clients_{column}', 'clients', [column])

    op.create_table(
        'appointments',
        *_tenant_columns(),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('stylist_id', sa.Integer(), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('service_name', sa.String(length=255), nullable=True),
        sa.Column('starts_at', sa.DateTime(), nullable=True),
        sa.Column('total_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='booked'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['stylist_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'client_notes',
        *_tenant_columns(),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('author_id', sa.Integer(), nullable=True),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['author_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'client_loyalty_points',
        *_tenant_columns(),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('points_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'points_transactions',
        *_tenant_columns(),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'client_balances',
        *_tenant_columns(),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('salon_credit_balance', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('gift_card_balance', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'balance_transactions',
        *_tenant_columns(),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('balance_type', sa.String(length=30), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'promotion_redemptions',
        *_tenant_columns(),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('promotion_code', sa.String(length=50), nullable=False),
        sa.Column('redeemed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'refund_records',
        *_tenant_columns(),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('appointment_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['appointment_id'], ['appointments.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'vouchers',
        *_tenant_columns(),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('value', sa.Numeric(10, 2), nullable=False),
        sa.Column('issued_to_client_id', sa.Integer(), nullable=True),
        sa.Column('redeemed_by_client_id', sa.Integer(), nullable=True),
        sa.Column('redeemed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['issued_to_client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['redeemed_by_client_id'], ['clients.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_vouchers_issued_to_client_id', 'vouchers', ['issued_to_client_id'])
    op.create_index('ix_vouchers_redeemed_by_client_id', 'vouchers', ['redeemed_by_client_id'])

    for table in ('appointments', 'client_notes', 'client_loyalty_points', 'points_transactions',
                  'client_balances', 'balance_transactions', 'promotion_redemptions', 'refund_records'):
        op.create_index(f'ix_{table}_client_id', table, ['client_id'])
    for table in ('appointments', 'client_notes', 'client_loyalty_points', 'points_transactions',
                  'client_balances', 'balance_transactions', 'promotion_redemptions',
                  'refund_records', 'vouchers'):
        op.create_index(f'ix_{table}_organization_id', table, ['organization_id'])

    op.create_table(
        'client_merge_logs',
        *_tenant_columns(),
        sa.Column('primary_client_id', sa.Integer(), nullable=False),
        sa.Column('secondary_client_ids', sa.JSON(), nullable=False),
        sa.Column('before_snapshots', sa.JSON(), nullable=False),
        sa.Column('primary_before_snapshot', sa.JSON(), nullable=True),
        sa.Column('field_resolutions', sa.JSON(), nullable=True),
        sa.Column('reparented_counts', sa.JSON(), nullable=True),
        sa.Column('performed_by', sa.Integer(), nullable=False),
        sa.Column('performed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('undo_expires_at', sa.DateTime(), nullable=False),
        sa.Column('is_undone', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('undone_at', sa.DateTime(), nullable=True),
        sa.Column('undone_by', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.ForeignKeyConstraint(['primary_client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['performed_by'], ['users.id']),
        sa.ForeignKeyConstraint(['undone_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_client_merge_logs_organization_id', 'client_merge_logs', ['organization_id'])
    op.create_index('ix_client_merge_logs_primary_client_id', 'client_merge_logs', ['primary_client_id'])
    op.create_index('ix_client_merge_logs_performed_at', 'client_merge_logs', ['performed_at'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('user_email', sa.String(length=255), nullable=True),
        sa.Column('organization_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('resource_type', sa.String(length=100), nullable=True),
        sa.Column('resource_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['organization_id'], ['organizations.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_organization_id', 'audit_logs', ['organization_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])


def downgrade() -> None:
    for table in ('audit_logs', 'client_merge_logs', 'vouchers', 'refund_records',
                  'promotion_redemptions', 'balance_transactions', 'client_balances',
                  'points_transactions', 'client_loyalty_points', 'client_notes',
                  'appointments', 'clients', 'users', 'organizations'):
        op.drop_table(table)
