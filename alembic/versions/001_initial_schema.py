"""Initial schema for asset audits

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-01-01 00:00:00.000000

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
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='VIEWER'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_users')
    )
    op.create_index('ix_users_id', 'users', ['id'], unique=False)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('department', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_employees')
    )
    op.create_index('ix_employees_id', 'employees', ['id'], unique=False)
    op.create_index('ix_employees_name', 'employees', ['name'], unique=False)
    op.create_index('ix_employees_email', 'employees', ['email'], unique=True)

    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('address', sa.String(500), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_locations')
    )
    op.create_index('ix_locations_id', 'locations', ['id'], unique=False)
    op.create_index('ix_locations_name', 'locations', ['name'], unique=True)

    # Canonical inventory; the audit tables only ever write back into it
    op.create_table(
        'assets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.String(100), nullable=False),
        sa.Column('type', sa.String(100), nullable=True),
        sa.Column('model', sa.String(255), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('status', sa.String(50), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_by', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['employees.id'], name='fk_assets_user_id_employees', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_assets')
    )
    op.create_index('ix_assets_id', 'assets', ['id'], unique=False)
    op.create_index('ix_assets_asset_id', 'assets', ['asset_id'], unique=True)
    op.create_index('ix_assets_location', 'assets', ['location'], unique=False)
    op.create_index('ix_assets_user_id', 'assets', ['user_id'], unique=False)

    op.create_table(
        'audit_plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='Planning'),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], name='fk_audit_plans_created_by_users', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_audit_plans')
    )
    op.create_index('ix_audit_plans_id', 'audit_plans', ['id'], unique=False)

    op.create_table(
        'audit_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audit_plan_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('auditor_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='Assigned'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['audit_plan_id'], ['audit_plans.id'], name='fk_audit_assignments_audit_plan_id_audit_plans', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], name='fk_audit_assignments_location_id_locations', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['auditor_id'], ['employees.id'], name='fk_audit_assignments_auditor_id_employees', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_audit_assignments'),
        sa.UniqueConstraint('audit_plan_id', 'location_id', 'auditor_id', name='uq_audit_assignment_plan_location_auditor')
    )
    op.create_index('ix_audit_assignments_id', 'audit_assignments', ['id'], unique=False)
    op.create_index('ix_audit_assignments_audit_plan_id', 'audit_assignments', ['audit_plan_id'], unique=False)
    op.create_index('ix_audit_assignments_auditor_id', 'audit_assignments', ['auditor_id'], unique=False)

    op.create_table(
        'audit_assets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audit_plan_id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=False),
        sa.Column('original_location', sa.String(255), nullable=True),
        sa.Column('original_user', sa.String(255), nullable=True),
        sa.Column('current_status', sa.String(50), nullable=True),
        sa.Column('current_location', sa.String(255), nullable=True),
        sa.Column('current_user', sa.String(255), nullable=True),
        sa.Column('auditor_notes', sa.Text(), nullable=True),
        sa.Column('audited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('audited_by', sa.String(255), nullable=True),
        sa.Column('audit_status', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('resolved', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['audit_plan_id'], ['audit_plans.id'], name='fk_audit_assets_audit_plan_id_audit_plans', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], name='fk_audit_assets_asset_id_assets', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_audit_assets')
    )
    op.create_index('ix_audit_assets_id', 'audit_assets', ['id'], unique=False)
    op.create_index('ix_audit_assets_audit_plan_id', 'audit_assets', ['audit_plan_id'], unique=False)
    op.create_index('ix_audit_assets_asset_id', 'audit_assets', ['asset_id'], unique=False)
    op.create_index('ix_audit_asset_plan_asset', 'audit_assets', ['audit_plan_id', 'asset_id'], unique=False)

    op.create_table(
        'corrective_actions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audit_asset_id', sa.Integer(), nullable=False),
        sa.Column('audit_plan_id', sa.Integer(), nullable=False),
        sa.Column('issue', sa.Text(), nullable=False),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('assigned_to', sa.Integer(), nullable=True),
        sa.Column('priority', sa.String(20), nullable=False, server_default='medium'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('completed_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['audit_asset_id'], ['audit_assets.id'], name='fk_corrective_actions_audit_asset_id_audit_assets', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['audit_plan_id'], ['audit_plans.id'], name='fk_corrective_actions_audit_plan_id_audit_plans', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['assigned_to'], ['employees.id'], name='fk_corrective_actions_assigned_to_employees', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_corrective_actions')
    )
    op.create_index('ix_corrective_actions_id', 'corrective_actions', ['id'], unique=False)
    op.create_index('ix_corrective_actions_audit_asset_id', 'corrective_actions', ['audit_asset_id'], unique=False)
    op.create_index('ix_corrective_actions_audit_plan_id', 'corrective_actions', ['audit_plan_id'], unique=False)
    op.create_index('ix_corrective_actions_assigned_to', 'corrective_actions', ['assigned_to'], unique=False)
    op.create_index('ix_corrective_actions_status', 'corrective_actions', ['status'], unique=False)
    op.create_index('ix_corrective_actions_due_date', 'corrective_actions', ['due_date'], unique=False)

    op.create_table(
        'corrective_action_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('corrective_action_id', sa.Integer(), nullable=False),
        sa.Column('audit_assignment_id', sa.Integer(), nullable=True),
        sa.Column('assigned_to_employee_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('progress_notes', sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(['corrective_action_id'], ['corrective_actions.id'], name='fk_corrective_action_assignments_corrective_action_id_corrective_actions', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['audit_assignment_id'], ['audit_assignments.id'], name='fk_corrective_action_assignments_audit_assignment_id_audit_assignments', ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['assigned_to_employee_id'], ['employees.id'], name='fk_corrective_action_assignments_assigned_to_employee_id_employees', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_corrective_action_assignments')
    )
    op.create_index('ix_corrective_action_assignments_id', 'corrective_action_assignments', ['id'], unique=False)
    op.create_index('ix_corrective_action_assignments_corrective_action_id', 'corrective_action_assignments', ['corrective_action_id'], unique=False)
    op.create_index('ix_corrective_action_assignments_assigned_to_employee_id', 'corrective_action_assignments', ['assigned_to_employee_id'], unique=False)

    # Append-only plan event log
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('audit_plan_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['audit_plan_id'], ['audit_plans.id'], name='fk_audit_logs_audit_plan_id_audit_plans', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_audit_logs_user_id_users', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name='pk_audit_logs')
    )
    op.create_index('ix_audit_logs_id', 'audit_logs', ['id'], unique=False)
    op.create_index('ix_audit_logs_audit_plan_id', 'audit_logs', ['audit_plan_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_audit_logs_audit_plan_id', table_name='audit_logs')
    op.drop_index('ix_audit_logs_id', table_name='audit_logs')
    op.drop_table('audit_logs')

    op.drop_index('ix_corrective_action_assignments_assigned_to_employee_id', table_name='corrective_action_assignments')
    op.drop_index('ix_corrective_action_assignments_corrective_action_id', table_name='corrective_action_assignments')
    op.drop_index('ix_corrective_action_assignments_id', table_name='corrective_action_assignments')
    op.drop_table('corrective_action_assignments')

    for name in ('due_date', 'status', 'assigned_to', 'audit_plan_id', 'audit_asset_id', 'id'):
        op.drop_index(f'ix_corrective_actions_{name}', table_name='corrective_actions')
    op.drop_table('corrective_actions')

    op.drop_index('ix_audit_asset_plan_asset', table_name='audit_assets')
    for name in ('asset_id', 'audit_plan_id', 'id'):
        op.drop_index(f'ix_audit_assets_{name}', table_name='audit_assets')
    op.drop_table('audit_assets')

    for name in ('auditor_id', 'audit_plan_id', 'id'):
        op.drop_index(f'ix_audit_assignments_{name}', table_name='audit_assignments')
    op.drop_table('audit_assignments')

    op.drop_index('ix_audit_plans_id', table_name='audit_plans')
    op.drop_table('audit_plans')

    for name in ('user_id', 'location', 'asset_id', 'id'):
        op.drop_index(f'ix_assets_{name}', table_name='assets')
    op.drop_table('assets')

    op.drop_index('ix_locations_name', table_name='locations')
    op.drop_index('ix_locations_id', table_name='locations')
    op.drop_table('locations')

    op.drop_index('ix_employees_email', table_name='employees')
    op.drop_index('ix_employees_name', table_name='employees')
    op.drop_index('ix_employees_id', table_name='employees')
    op.drop_table('employees')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')
