"""Repository abstraction for engine persistence backends."""

from __future__ import annotations

from typing import Any, Optional, Protocol
from uuid import UUID

from process_engine.core.models import (
    ExecutionQueueItem,
    FunctionRegistryEntry,
    GraphDefinition,
    HistoryEvent,
    ImplementationType,
    InstanceContext,
    InstanceTask,
    WorkflowInstance,
    WorkflowTemplate,
)
from process_engine.core.state_machine import InstanceStatus, QueueItemStatus, TaskStatus


class Repository(Protocol):
    """
    Protocol for engine persistence backends.

    Each call is its own unit of work; callers must not assume atomicity
    across calls. Conditional updates (claims, task resolution) are atomic.
    """

    # ==================== Templates ====================

    async def create_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Persist a template; raises DuplicateTemplateCode."""

    async def get_template(self, template_id: UUID) -> Optional[WorkflowTemplate]:
        """Get template by id."""

    async def get_template_by_code(self, template_code: str) -> Optional[WorkflowTemplate]:
        """Get template by its unique code."""

    async def list_templates(
        self,
        workflow_type: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> list[WorkflowTemplate]:
        """List templates, newest first."""

    async def update_template_definition(
        self, template_id: UUID, definition: GraphDefinition
    ) -> Optional[WorkflowTemplate]:
        """Replace a template's definition as a whole."""

    async def set_template_active(
        self, template_id: UUID, is_active: bool
    ) -> Optional[WorkflowTemplate]:
        """Activate or deactivate a template."""

    # ==================== Function Registry ====================

    async def create_function(self, entry: FunctionRegistryEntry) -> FunctionRegistryEntry:
        """Register a function; raises DuplicateFunctionCode."""

    async def get_function(self, function_code: str) -> Optional[FunctionRegistryEntry]:
        """Get a registry entry by function code."""

    async def list_functions(
        self,
        implementation_type: Optional[ImplementationType] = None,
        is_active: Optional[bool] = None,
    ) -> list[FunctionRegistryEntry]:
        """List registry entries ordered by function code."""

    async def set_function_active(
        self, function_code: str, is_active: bool
    ) -> Optional[FunctionRegistryEntry]:
        """Activate or deactivate a registry entry."""

    # ==================== Instances ====================

    async def create_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Persist a new instance."""

    async def get_instance(self, instance_id: UUID) -> Optional[WorkflowInstance]:
        """Get instance by id."""

    async def list_instances(
        self,
        template_id: Optional[UUID] = None,
        status: Optional[InstanceStatus] = None,
    ) -> list[WorkflowInstance]:
        """List instances, newest first."""

    async def update_instance_position(
        self,
        instance_id: UUID,
        current_node_id: str,
        status: InstanceStatus,
    ) -> None:
        """Move an instance to a node and set its status."""

    async def set_instance_status(
        self,
        instance_id: UUID,
        status: InstanceStatus,
        error_message: Optional[str] = None,
    ) -> None:
        """Set an instance's status without moving it."""

    # ==================== Context ====================

    async def append_context(
        self, instance_id: UUID, context_data: dict[str, Any]
    ) -> InstanceContext:
        """Append the next context version for an instance."""

    async def get_latest_context(self, instance_id: UUID) -> Optional[InstanceContext]:
        """Get the highest context version."""

    async def list_context_versions(self, instance_id: UUID) -> list[InstanceContext]:
        """All context versions, oldest first."""

    # ==================== Tasks ====================

    async def create_task(self, task: InstanceTask) -> InstanceTask:
        """Persist a new task."""

    async def get_task(self, task_id: UUID) -> Optional[InstanceTask]:
        """Get task by id."""

    async def list_tasks(self, instance_id: UUID) -> list[InstanceTask]:
        """Tasks of an instance, oldest first."""

    async def list_pending_tasks(self, assignee: str) -> list[InstanceTask]:
        """PENDING tasks assigned to someone, oldest first."""

    async def list_tasks_by_status(
        self,
        status: TaskStatus,
        task_types: Optional[list[ImplementationType]] = None,
        limit: int = 10,
    ) -> list[InstanceTask]:
        """Tasks in a status, optionally filtered by type, oldest first."""

    async def transition_task(
        self,
        task_id: UUID,
        expected: set[TaskStatus],
        new_status: TaskStatus,
        output_data: Optional[dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> Optional[InstanceTask]:
        """
        Conditionally move a task to a new status.

        Returns the updated task, or None when its current status is not in
        ``expected``.
        """

    # ==================== Execution Queue ====================

    async def enqueue(self, item: ExecutionQueueItem) -> ExecutionQueueItem:
        """Persist a new queue item."""

    async def get_queue_item(self, queue_id: UUID) -> Optional[ExecutionQueueItem]:
        """Get queue item by id."""

    async def claim_queue_item(self, queue_id: UUID) -> Optional[ExecutionQueueItem]:
        """Atomically move PENDING -> PROCESSING; None if the claim was lost."""

    async def release_queue_item(self, queue_id: UUID) -> None:
        """Move PROCESSING -> PENDING."""

    async def finish_queue_item(
        self,
        queue_id: UUID,
        status: QueueItemStatus,
        error_message: Optional[str] = None,
    ) -> None:
        """Move PROCESSING -> COMPLETED/FAILED and stamp processed_at."""

    async def list_pending_queue_items(self, limit: int) -> list[ExecutionQueueItem]:
        """Oldest PENDING queue items."""

    async def list_queue_items(self, instance_id: UUID) -> list[ExecutionQueueItem]:
        """Queue items of an instance, oldest first."""

    # ==================== History ====================

    async def add_history(self, event: HistoryEvent) -> HistoryEvent:
        """Append a history event."""

    async def list_history(self, instance_id: UUID) -> list[HistoryEvent]:
        """History of an instance, oldest first."""

    # ==================== Health ====================

    async def ping(self) -> bool:
        """Check that the backend is reachable."""
