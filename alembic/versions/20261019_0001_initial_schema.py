"""Initial schema - projects, shared resources, assignments, export history

Revision ID: 0001
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Projects table
    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('slug', sa.String(120), unique=True, nullable=False, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('project_info', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('priority', sa.String(20), nullable=False, server_default='medium'),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('ai_context_summary', sa.Text(), nullable=True),
        sa.Column('include_in_ai_context', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    # Shared resources
    op.create_table(
        'agents',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('display_name', sa.String(200), nullable=True),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('role', sa.String(200), nullable=False, server_default=''),
        sa.Column('style', sa.String(200), nullable=False, server_default=''),
        sa.Column('prompt_content', sa.Text(), nullable=False, server_default=''),
        sa.Column('agent_config', sa.JSON(), nullable=False),
        sa.Column('icon', sa.String(16), nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        'rules',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('rule_content', sa.Text(), nullable=False),
        sa.Column('category', sa.String(100), nullable=False, server_default='general'),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        'hooks',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('trigger', sa.String(30), nullable=False),
        sa.Column('tool_matcher', sa.String(200), nullable=True),
        sa.Column('command', sa.Text(), nullable=False),
        sa.Column('working_directory', sa.String(500), nullable=True),
        sa.Column('timeout_ms', sa.Integer(), nullable=False, server_default='60000'),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    # Dependency edges (project independent)
    op.create_table(
        'resource_dependencies',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('source_resource_type', sa.String(20), nullable=False),
        sa.Column('source_resource_id', sa.String(32), nullable=False),
        sa.Column('target_resource_type', sa.String(20), nullable=False),
        sa.Column('target_resource_id', sa.String(32), nullable=False),
        sa.Column('dependency_type', sa.String(20), nullable=False, server_default='requires'),
        sa.Column('is_critical', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('dependency_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            'source_resource_type', 'source_resource_id',
            'target_resource_type', 'target_resource_id',
            'dependency_type',
            name='uq_resource_dependencies_edge',
        ),
    )
    op.create_index(
        'idx_resource_dependencies_source', 'resource_dependencies',
        ['source_resource_type', 'source_resource_id'],
    )
    op.create_index(
        'idx_resource_dependencies_target', 'resource_dependencies',
        ['target_resource_type', 'target_resource_id'],
    )

    # Assignments
    op.create_table(
        'project_resources',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('resource_type', sa.String(20), nullable=False),
        sa.Column('resource_id', sa.String(32), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('assignment_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('config_overrides', sa.JSON(), nullable=False),
        sa.Column('assigned_by', sa.String(200), nullable=True),
        sa.Column('assignment_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('project_id', 'resource_type', 'resource_id', name='uq_project_resources_identity'),
    )
    # At most one primary per (project, resource_type)
    op.create_index(
        'uq_project_resources_primary', 'project_resources',
        ['project_id', 'resource_type'],
        unique=True,
        sqlite_where=sa.text('is_primary'),
        postgresql_where=sa.text('is_primary'),
    )

    op.create_table(
        'project_resource_overrides',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('first_resource', sa.String(64), nullable=False),
        sa.Column('second_resource', sa.String(64), nullable=False),
        sa.Column('granted_by', sa.String(200), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('project_id', 'first_resource', 'second_resource', name='uq_project_resource_overrides_pair'),
    )

    # Export history (append-only)
    op.create_table(
        'export_history',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('project_id', sa.Integer(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=False, index=True),
        sa.Column('export_format', sa.String(20), nullable=False, server_default='claude-code'),
        sa.Column('template_version', sa.String(20), nullable=False),
        sa.Column('included_resources', sa.JSON(), nullable=False),
        sa.Column('file_manifest', sa.JSON(), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('processing_started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processing_completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processing_duration_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('exported_by', sa.String(200), nullable=True),
        *_timestamps(),
    )

    # Event logs table (append-only)
    op.create_table(
        'event_logs',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(64), nullable=False, index=True),
        sa.Column('actor', sa.String(200), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('request_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )
    op.create_index('ix_event_logs_entity', 'event_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_event_logs_type_time', 'event_logs', ['event_type', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_event_logs_type_time', 'event_logs')
    op.drop_index('ix_event_logs_entity', 'event_logs')
    op.drop_table('event_logs')
    op.drop_table('export_history')
    op.drop_table('project_resource_overrides')
    op.drop_index('uq_project_resources_primary', 'project_resources')
    op.drop_table('project_resources')
    op.drop_index('idx_resource_dependencies_target', 'resource_dependencies')
    op.drop_index('idx_resource_dependencies_source', 'resource_dependencies')
    op.drop_table('resource_dependencies')
    op.drop_table('hooks')
    op.drop_table('rules')
    op.drop_table('agents')
    op.drop_table('projects')
