"""Create permission catalog, role, binding, escalation and audit tables

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str | None = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=None if nullable else sa.func.now(),
        nullable=nullable,
    )


def upgrade() -> None:
    """Apply schema changes."""
    op.create_table(
        'permissions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=100), nullable=False),
        sa.Column('resource', sa.String(length=50), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('severity', sa.String(length=20), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_system', sa.Boolean(), server_default='false', nullable=False),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_permissions')),
        sa.CheckConstraint(
            "severity IN ('low', 'medium', 'high', 'critical')",
            name='valid_permission_severity',
        ),
    )
    op.create_index('ix_permissions_code', 'permissions', ['code'], unique=True)
    op.create_index('ix_permissions_resource', 'permissions', ['resource'], unique=False)

    op.create_table(
        'roles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_system', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_roles')),
    )
    op.create_index('ix_roles_code', 'roles', ['code'], unique=True)

    op.create_table(
        'role_permissions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('role_code', sa.String(length=100), nullable=False),
        sa.Column('permission_code', sa.String(length=100), nullable=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(
            ['role_code'], ['roles.code'],
            name=op.f('fk_role_permissions_role_code_roles'),
            ondelete='CASCADE', onupdate='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['permission_code'], ['permissions.code'],
            name=op.f('fk_role_permissions_permission_code_permissions'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_role_permissions')),
        sa.UniqueConstraint(
            'role_code', 'permission_code', name='uq_role_permissions_role_permission'
        ),
    )
    op.create_index('ix_role_permissions_role_code', 'role_permissions', ['role_code'], unique=False)
    op.create_index(
        'ix_role_permissions_permission_code', 'role_permissions', ['permission_code'], unique=False
    )

    op.create_table(
        'admin_users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_admin_users')),
    )
    op.create_index('ix_admin_users_email', 'admin_users', ['email'], unique=True)

    op.create_table(
        'admin_role_bindings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('admin_id', sa.Uuid(), nullable=False),
        sa.Column('role_code', sa.String(length=100), nullable=False),
        sa.Column('is_primary', sa.Boolean(), server_default='false', nullable=False),
        _timestamp('expires_at', nullable=True),
        sa.Column('assigned_by', sa.Uuid(), nullable=True),
        _timestamp('assigned_at'),
        sa.ForeignKeyConstraint(
            ['admin_id'], ['admin_users.id'],
            name=op.f('fk_admin_role_bindings_admin_id_admin_users'),
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['role_code'], ['roles.code'],
            name=op.f('fk_admin_role_bindings_role_code_roles'),
            ondelete='CASCADE', onupdate='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['assigned_by'], ['admin_users.id'],
            name=op.f('fk_admin_role_bindings_assigned_by_admin_users'),
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_admin_role_bindings')),
        sa.UniqueConstraint('admin_id', 'role_code', name='uq_admin_role_bindings_admin_role'),
    )
    op.create_index('ix_admin_role_bindings_admin_id', 'admin_role_bindings', ['admin_id'], unique=False)
    op.create_index('ix_admin_role_bindings_role_code', 'admin_role_bindings', ['role_code'], unique=False)
    op.create_index(
        'uq_admin_role_bindings_primary',
        'admin_role_bindings',
        ['admin_id'],
        unique=True,
        postgresql_where=sa.text('is_primary'),
        sqlite_where=sa.text('is_primary'),
    )

    op.create_table(
        'admin_permission_overrides',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('admin_id', sa.Uuid(), nullable=False),
        sa.Column('permission_code', sa.String(length=100), nullable=False),
        sa.Column('grant_type', sa.String(length=10), nullable=False),
        sa.Column('constraints', sa.JSON(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('granted_by', sa.Uuid(), nullable=True),
        _timestamp('created_at'),
        _timestamp('expires_at', nullable=True),
        sa.ForeignKeyConstraint(
            ['admin_id'], ['admin_users.id'],
            name=op.f('fk_admin_permission_overrides_admin_id_admin_users'),
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['permission_code'], ['permissions.code'],
            name=op.f('fk_admin_permission_overrides_permission_code_permissions'),
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['granted_by'], ['admin_users.id'],
            name=op.f('fk_admin_permission_overrides_granted_by_admin_users'),
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_admin_permission_overrides')),
        sa.UniqueConstraint(
            'admin_id', 'permission_code',
            name='uq_admin_permission_overrides_admin_permission',
        ),
        sa.CheckConstraint("grant_type IN ('grant', 'deny')", name='valid_grant_type'),
    )
    op.create_index(
        'ix_admin_permission_overrides_admin_id', 'admin_permission_overrides', ['admin_id'], unique=False
    )
    op.create_index(
        'ix_admin_permission_overrides_permission_code',
        'admin_permission_overrides',
        ['permission_code'],
        unique=False,
    )

    op.create_table(
        'escalation_rules',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('trigger_type', sa.String(length=20), nullable=False),
        sa.Column('resource_code', sa.String(length=50), nullable=False),
        sa.Column('action_code', sa.String(length=50), nullable=False),
        sa.Column('trigger_conditions', sa.JSON(), nullable=False),
        sa.Column('escalate_to_role_code', sa.String(length=100), nullable=True),
        sa.Column('escalate_to_admin_id', sa.Uuid(), nullable=True),
        sa.Column('action_type', sa.String(length=20), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_escalation_rules')),
        sa.CheckConstraint(
            "trigger_type IN ('threshold', 'count', 'time', 'pattern')",
            name='valid_trigger_type',
        ),
        sa.CheckConstraint(
            "action_type IN ('require_approval', 'notify', 'block')",
            name='valid_escalation_action_type',
        ),
        sa.CheckConstraint(
            '(escalate_to_role_code IS NULL) <> (escalate_to_admin_id IS NULL)',
            name='single_escalation_target',
        ),
    )
    op.create_index('ix_escalation_rules_resource_code', 'escalation_rules', ['resource_code'], unique=False)
    op.create_index('ix_escalation_rules_action_code', 'escalation_rules', ['action_code'], unique=False)

    op.create_table(
        'approval_requests',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('rule_id', sa.Uuid(), nullable=True),
        sa.Column('admin_id', sa.Uuid(), nullable=False),
        sa.Column('resource_code', sa.String(length=50), nullable=False),
        sa.Column('action_code', sa.String(length=50), nullable=False),
        sa.Column('context_snapshot', sa.JSON(), nullable=False),
        sa.Column('escalate_to_role_code', sa.String(length=100), nullable=True),
        sa.Column('escalate_to_admin_id', sa.Uuid(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        _timestamp('created_at'),
        _timestamp('resolved_at', nullable=True),
        sa.Column('resolved_by', sa.Uuid(), nullable=True),
        sa.Column('decision_notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ['rule_id'], ['escalation_rules.id'],
            name=op.f('fk_approval_requests_rule_id_escalation_rules'),
            ondelete='SET NULL',
        ),
        sa.ForeignKeyConstraint(
            ['admin_id'], ['admin_users.id'],
            name=op.f('fk_approval_requests_admin_id_admin_users'),
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['resolved_by'], ['admin_users.id'],
            name=op.f('fk_approval_requests_resolved_by_admin_users'),
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_approval_requests')),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'expired')",
            name='valid_approval_status',
        ),
    )
    op.create_index('ix_approval_requests_rule_id', 'approval_requests', ['rule_id'], unique=False)
    op.create_index('ix_approval_requests_admin_id', 'approval_requests', ['admin_id'], unique=False)
    op.create_index('ix_approval_requests_status', 'approval_requests', ['status'], unique=False)
    op.create_index(
        'ix_approval_requests_escalate_to_role_code',
        'approval_requests',
        ['escalate_to_role_code'],
        unique=False,
    )
    op.create_index(
        'ix_approval_requests_escalate_to_admin_id',
        'approval_requests',
        ['escalate_to_admin_id'],
        unique=False,
    )

    op.create_table(
        'action_counters',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('admin_id', sa.Uuid(), nullable=False),
        sa.Column('resource_code', sa.String(length=50), nullable=False),
        sa.Column('action_code', sa.String(length=50), nullable=False),
        sa.Column('day', sa.Date(), nullable=False),
        sa.Column('action_count', sa.Integer(), nullable=False),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_action_counters')),
        sa.UniqueConstraint(
            'admin_id', 'resource_code', 'action_code', 'day',
            name='uq_action_counters_scope',
        ),
    )
    op.create_index('ix_action_counters_admin_id', 'action_counters', ['admin_id'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('actor_type', sa.String(length=50), nullable=False),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('entity_type', sa.String(length=100), nullable=False),
        sa.Column('entity_id', sa.String(length=255), nullable=False),
        sa.Column('before', sa.JSON(), nullable=True),
        sa.Column('after', sa.JSON(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_audit_logs')),
        sa.CheckConstraint(
            "actor_type IN ('user', 'system', 'anonymous')",
            name='valid_actor_type',
        ),
    )
    for column in ('actor_id', 'actor_type', 'action', 'entity_type', 'entity_id', 'created_at'):
        op.create_index(f'ix_audit_logs_{column}', 'audit_logs', [column], unique=False)


def downgrade() -> None:
    """Revert schema changes."""
    op.drop_table('audit_logs')
    op.drop_table('action_counters')
    op.drop_table('approval_requests')
    op.drop_table('escalation_rules')
    op.drop_table('admin_permission_overrides')
    op.drop_index('uq_admin_role_bindings_primary', table_name='admin_role_bindings')
    op.drop_table('admin_role_bindings')
    op.drop_table('admin_users')
    op.drop_table('role_permissions')
    op.drop_table('roles')
    op.drop_table('permissions')
