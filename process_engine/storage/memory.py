"""In-memory implementation of the engine repository."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from process_engine.core.errors import DuplicateFunctionCode, DuplicateTemplateCode
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
from process_engine.core.state_machine import (
    InstanceStatus,
    QueueItemStateMachine,
    QueueItemStatus,
    TaskStateMachine,
    TaskStatus,
)
from process_engine.storage.repository import Repository


class InMemoryRepository(Repository):
    """Store engine state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._templates: dict[UUID, WorkflowTemplate] = {}
        self._functions: dict[str, FunctionRegistryEntry] = {}
        self._instances: dict[UUID, WorkflowInstance] = {}
        self._contexts: dict[UUID, list[InstanceContext]] = {}
        self._tasks: dict[UUID, InstanceTask] = {}
        self._queue: dict[UUID, ExecutionQueueItem] = {}
        self._history: list[HistoryEvent] = []

    # ------------------------------------------------------------------
    # Templates

    async def create_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        if any(t.template_code == template.template_code for t in self._templates.values()):
            raise DuplicateTemplateCode(template.template_code)
        self._templates[template.id] = template.model_copy(deep=True)
        return template.model_copy(deep=True)

    async def get_template(self, template_id: UUID) -> Optional[WorkflowTemplate]:
        template = self._templates.get(template_id)
        return template.model_copy(deep=True) if template else None

    async def get_template_by_code(self, template_code: str) -> Optional[WorkflowTemplate]:
        for template in self._templates.values():
            if template.template_code == template_code:
                return template.model_copy(deep=True)
        return None

    async def list_templates(
        self,
        workflow_type: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> list[WorkflowTemplate]:
        templates = [
            t for t in self._templates.values()
            if (workflow_type is None or t.workflow_type == workflow_type)
            and (is_active is None or t.is_active == is_active)
        ]
        templates.sort(key=lambda t: t.created_at, reverse=True)
        return [t.model_copy(deep=True) for t in templates]

    async def update_template_definition(
        self, template_id: UUID, definition: GraphDefinition
    ) -> Optional[WorkflowTemplate]:
        template = self._templates.get(template_id)
        if not template:
            return None
        template.definition = definition.model_copy(deep=True)
        template.updated_at = datetime.utcnow()
        return template.model_copy(deep=True)

    async def set_template_active(
        self, template_id: UUID, is_active: bool
    ) -> Optional[WorkflowTemplate]:
        template = self._templates.get(template_id)
        if not template:
            return None
        template.is_active = is_active
        template.updated_at = datetime.utcnow()
        return template.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Function registry

    async def create_function(self, entry: FunctionRegistryEntry) -> FunctionRegistryEntry:
        if entry.function_code in self._functions:
            raise DuplicateFunctionCode(entry.function_code)
        self._functions[entry.function_code] = entry.model_copy(deep=True)
        return entry.model_copy(deep=True)

    async def get_function(self, function_code: str) -> Optional[FunctionRegistryEntry]:
        entry = self._functions.get(function_code)
        return entry.model_copy(deep=True) if entry else None

    async def list_functions(
        self,
        implementation_type: Optional[ImplementationType] = None,
        is_active: Optional[bool] = None,
    ) -> list[FunctionRegistryEntry]:
        entries = [
            e for e in self._functions.values()
            if (implementation_type is None or e.implementation_type == implementation_type)
            and (is_active is None or e.is_active == is_active)
        ]
        entries.sort(key=lambda e: e.function_code)
        return [e.model_copy(deep=True) for e in entries]

    async def set_function_active(
        self, function_code: str, is_active: bool
    ) -> Optional[FunctionRegistryEntry]:
        entry = self._functions.get(function_code)
        if not entry:
            return None
        entry.is_active = is_active
        entry.updated_at = datetime.utcnow()
        return entry.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Instances

    async def create_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        self._instances[instance.id] = instance.model_copy(deep=True)
        return instance.model_copy(deep=True)

    async def get_instance(self, instance_id: UUID) -> Optional[WorkflowInstance]:
        instance = self._instances.get(instance_id)
        return instance.model_copy(deep=True) if instance else None

    async def list_instances(
        self,
        template_id: Optional[UUID] = None,
        status: Optional[InstanceStatus] = None,
    ) -> list[WorkflowInstance]:
        instances = [
            i for i in self._instances.values()
            if (template_id is None or i.workflow_template_id == template_id)
            and (status is None or i.status == status)
        ]
        instances.sort(key=lambda i: i.created_at, reverse=True)
        return [i.model_copy(deep=True) for i in instances]

    async def update_instance_position(
        self,
        instance_id: UUID,
        current_node_id: str,
        status: InstanceStatus,
    ) -> None:
        instance = self._instances.get(instance_id)
        if not instance:
            return
        now = datetime.utcnow()
        instance.current_node_id = current_node_id
        instance.status = status
        instance.updated_at = now
        if status == InstanceStatus.COMPLETED and instance.completed_at is None:
            instance.completed_at = now

    async def set_instance_status(
        self,
        instance_id: UUID,
        status: InstanceStatus,
        error_message: Optional[str] = None,
    ) -> None:
        instance = self._instances.get(instance_id)
        if not instance:
            return
        now = datetime.utcnow()
        instance.status = status
        instance.updated_at = now
        if error_message:
            instance.error_message = error_message
        if status == InstanceStatus.COMPLETED and instance.completed_at is None:
            instance.completed_at = now

    # ------------------------------------------------------------------
    # Context

    async def append_context(
        self, instance_id: UUID, context_data: dict[str, Any]
    ) -> InstanceContext:
        versions = self._contexts.setdefault(instance_id, [])
        next_version = versions[-1].version + 1 if versions else 1
        context = InstanceContext(
            workflow_instance_id=instance_id,
            version=next_version,
            context_data=dict(context_data),
        )
        versions.append(context)
        return context.model_copy(deep=True)

    async def get_latest_context(self, instance_id: UUID) -> Optional[InstanceContext]:
        versions = self._contexts.get(instance_id)
        return versions[-1].model_copy(deep=True) if versions else None

    async def list_context_versions(self, instance_id: UUID) -> list[InstanceContext]:
        return [c.model_copy(deep=True) for c in self._contexts.get(instance_id, [])]

    # ------------------------------------------------------------------
    # Tasks

    async def create_task(self, task: InstanceTask) -> InstanceTask:
        self._tasks[task.id] = task.model_copy(deep=True)
        return task.model_copy(deep=True)

    async def get_task(self, task_id: UUID) -> Optional[InstanceTask]:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def list_tasks(self, instance_id: UUID) -> list[InstanceTask]:
        tasks = [t for t in self._tasks.values() if t.workflow_instance_id == instance_id]
        tasks.sort(key=lambda t: t.created_at)
        return [t.model_copy(deep=True) for t in tasks]

    async def list_pending_tasks(self, assignee: str) -> list[InstanceTask]:
        tasks = [
            t for t in self._tasks.values()
            if t.assigned_to == assignee and t.status == TaskStatus.PENDING
        ]
        tasks.sort(key=lambda t: t.created_at)
        return [t.model_copy(deep=True) for t in tasks]

    async def list_tasks_by_status(
        self,
        status: TaskStatus,
        task_types: Optional[list[ImplementationType]] = None,
        limit: int = 10,
    ) -> list[InstanceTask]:
        tasks = [
            t for t in self._tasks.values()
            if t.status == status and (task_types is None or t.task_type in task_types)
        ]
        tasks.sort(key=lambda t: t.created_at)
        return [t.model_copy(deep=True) for t in tasks[:limit]]

    async def transition_task(
        self,
        task_id: UUID,
        expected: set[TaskStatus],
        new_status: TaskStatus,
        output_data: Optional[dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> Optional[InstanceTask]:
        task = self._tasks.get(task_id)
        if not task or task.status not in expected:
            return None

        TaskStateMachine(task.status).transition(new_status)

        now = datetime.utcnow()
        task.status = new_status
        task.updated_at = now
        if new_status == TaskStatus.IN_PROGRESS:
            task.started_at = now
        elif new_status in (TaskStatus.COMPLETED, TaskStatus.FAILED):
            task.completed_at = now
        if output_data is not None:
            task.output_data = dict(output_data)
        if error_message:
            task.error_message = error_message
        return task.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Execution queue

    async def enqueue(self, item: ExecutionQueueItem) -> ExecutionQueueItem:
        self._queue[item.queue_id] = item.model_copy(deep=True)
        return item.model_copy(deep=True)

    async def get_queue_item(self, queue_id: UUID) -> Optional[ExecutionQueueItem]:
        item = self._queue.get(queue_id)
        return item.model_copy(deep=True) if item else None

    async def claim_queue_item(self, queue_id: UUID) -> Optional[ExecutionQueueItem]:
        item = self._queue.get(queue_id)
        if not item or item.status != QueueItemStatus.PENDING:
            return None
        item.status = QueueItemStatus.PROCESSING
        return item.model_copy(deep=True)

    async def release_queue_item(self, queue_id: UUID) -> None:
        item = self._queue.get(queue_id)
        if not item:
            return
        QueueItemStateMachine(item.status).transition(QueueItemStatus.PENDING)
        item.status = QueueItemStatus.PENDING

    async def finish_queue_item(
        self,
        queue_id: UUID,
        status: QueueItemStatus,
        error_message: Optional[str] = None,
    ) -> None:
        item = self._queue.get(queue_id)
        if not item:
            return
        QueueItemStateMachine(item.status).transition(status)
        item.status = status
        item.processed_at = datetime.utcnow()
        if error_message:
            item.error_message = error_message

    async def list_pending_queue_items(self, limit: int) -> list[ExecutionQueueItem]:
        items = [i for i in self._queue.values() if i.status == QueueItemStatus.PENDING]
        items.sort(key=lambda i: i.created_at)
        return [i.model_copy(deep=True) for i in items[:limit]]

    async def list_queue_items(self, instance_id: UUID) -> list[ExecutionQueueItem]:
        items = [i for i in self._queue.values() if i.workflow_instance_id == instance_id]
        items.sort(key=lambda i: i.created_at)
        return [i.model_copy(deep=True) for i in items]

    # ------------------------------------------------------------------
    # History

    async def add_history(self, event: HistoryEvent) -> HistoryEvent:
        self._history.append(event.model_copy(deep=True))
        return event

    async def list_history(self, instance_id: UUID) -> list[HistoryEvent]:
        return [
            e.model_copy(deep=True) for e in self._history
            if e.workflow_instance_id == instance_id
        ]

    async def ping(self) -> bool:
        return True
