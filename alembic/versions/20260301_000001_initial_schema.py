"""Initial process engine schema

Revision ID: 20260301_000001
Revises: 
Create Date: 2026-03-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '20260301_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create function_registry table
    op.create_table(
        'function_registry',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('function_code', sa.String(100), nullable=False),
        sa.Column('implementation_type', sa.String(50), nullable=False, server_default='USER_TASK'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('endpoint_or_path', sa.String(1024), nullable=True),
        sa.Column('input_schema', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('output_schema', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('ui_widget_id', sa.String(255), nullable=True),
        sa.Column('ui_definitions', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('timeout_seconds', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_function_registry_function_code', 'function_registry', ['function_code'], unique=True)

    # Create workflow_templates table
    op.create_table(
        'workflow_templates',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('template_code', sa.String(100), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('workflow_type', sa.String(100), nullable=False),
        sa.Column('maturity_gate', sa.String(100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('definition', postgresql.JSONB(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_workflow_templates_template_code', 'workflow_templates', ['template_code'], unique=True)
    op.create_index('ix_workflow_templates_workflow_type', 'workflow_templates', ['workflow_type'])

    # Create workflow_instances table
    op.create_table(
        'workflow_instances',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('workflow_template_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('instance_name', sa.String(255), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='RUNNING'),
        sa.Column('current_node_id', sa.String(255), nullable=False),
        sa.Column('input_data', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['workflow_template_id'], ['workflow_templates.id'], ondelete='RESTRICT'),
    )
    op.create_index('ix_workflow_instances_workflow_template_id', 'workflow_instances', ['workflow_template_id'])
    op.create_index('ix_workflow_instances_status', 'workflow_instances', ['status'])
    op.create_index('ix_workflow_instances_status_created', 'workflow_instances', ['status', 'created_at'])

    # Create instance_context table
    op.create_table(
        'instance_context',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('workflow_instance_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('context_data', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['workflow_instance_id'], ['workflow_instances.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('workflow_instance_id', 'version', name='uq_instance_context_version'),
    )
    op.create_index('ix_instance_context_workflow_instance_id', 'instance_context', ['workflow_instance_id'])

    # Create instance_tasks table
    op.create_table(
        'instance_tasks',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('workflow_instance_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('node_id', sa.String(255), nullable=False),
        sa.Column('function_code', sa.String(100), nullable=False),
        sa.Column('task_type', sa.String(50), nullable=False, server_default='USER_TASK'),
        sa.Column('status', sa.String(50), nullable=False, server_default='PENDING'),
        sa.Column('assigned_to', sa.String(255), nullable=True),
        sa.Column('input_data', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('output_data', postgresql.JSONB(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['workflow_instance_id'], ['workflow_instances.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_instance_tasks_workflow_instance_id', 'instance_tasks', ['workflow_instance_id'])
    op.create_index('ix_instance_tasks_status', 'instance_tasks', ['status'])
    op.create_index('ix_instance_tasks_assigned_to', 'instance_tasks', ['assigned_to'])
    op.create_index('ix_instance_tasks_instance_node', 'instance_tasks', ['workflow_instance_id', 'node_id'])
    op.create_index('ix_instance_tasks_assignee_status', 'instance_tasks', ['assigned_to', 'status'])

    # Create workflow_execution_queue table
    op.create_table(
        'workflow_execution_queue',
        sa.Column('queue_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('workflow_instance_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('trigger_type', sa.String(50), nullable=False, server_default='MANUAL'),
        sa.Column('trigger_node_id', sa.String(255), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='PENDING'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('queue_id'),
        sa.ForeignKeyConstraint(['workflow_instance_id'], ['workflow_instances.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_workflow_execution_queue_workflow_instance_id', 'workflow_execution_queue', ['workflow_instance_id'])
    op.create_index('ix_execution_queue_status_created', 'workflow_execution_queue', ['status', 'created_at'])

    # Create workflow_history table
    op.create_table(
        'workflow_history',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('workflow_instance_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('node_id', sa.String(255), nullable=True),
        sa.Column('task_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('actor_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['workflow_instance_id'], ['workflow_instances.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_workflow_history_workflow_instance_id', 'workflow_history', ['workflow_instance_id'])
    op.create_index('ix_workflow_history_instance_created', 'workflow_history', ['workflow_instance_id', 'created_at'])


def downgrade() -> None:
    op.drop_table('workflow_history')
    op.drop_table('workflow_execution_queue')
    op.drop_table('instance_tasks')
    op.drop_table('instance_context')
    op.drop_table('workflow_instances')
    op.drop_table('workflow_templates')
    op.drop_table('function_registry')
