"""
Task manager.

Creates tasks when an instance reaches a TASK node, validates and records
their completion, and runs automated (service and agent) tasks through the
service task executor.

The task manager only writes task rows, context versions, history and queue
items; it never moves the instance itself.
"""

import logging
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from process_engine.core.errors import (
    FunctionNotFound,
    SchemaValidationError,
    ServiceTaskFailed,
    TaskAlreadyResolved,
    TaskNotAssigned,
    TaskNotFound,
)
from process_engine.core.models import (
    AUTOMATED_TASK_TYPES,
    ExecutionQueueItem,
    FunctionRegistryEntry,
    HistoryEventType,
    InstanceTask,
    TriggerType,
    WorkflowInstance,
    WorkflowNode,
)
from process_engine.core.schema import FieldDescriptor, describe_fields, validate_against_schema
from process_engine.core.state_machine import TaskStatus
from process_engine.orchestrator.context import ContextStore
from process_engine.orchestrator.history import HistoryRecorder
from process_engine.orchestrator.registry import FunctionRegistry
from process_engine.storage.repository import Repository
from process_engine.workers.service_tasks import ServiceTaskExecutor

logger = logging.getLogger(__name__)


class PendingTask(BaseModel):
    """A PENDING task joined with what a form needs to render it."""

    task: InstanceTask
    description: Optional[str] = None
    input_schema: dict[str, Any] = Field(default_factory=dict)
    output_schema: dict[str, Any] = Field(default_factory=dict)
    fields: list[FieldDescriptor] = Field(default_factory=list)
    ui_widget_id: Optional[str] = None
    ui_definitions: dict[str, Any] = Field(default_factory=dict)


class TaskManager:
    """Task lifecycle: create, complete, fail and list pending work."""

    def __init__(
        self,
        repository: Repository,
        registry: FunctionRegistry,
        context_store: ContextStore,
        history: HistoryRecorder,
        service_executor: Optional[ServiceTaskExecutor] = None,
    ):
        self.repository = repository
        self.registry = registry
        self.context_store = context_store
        self.history = history
        self.service_executor = service_executor

    async def create_task(
        self,
        instance: WorkflowInstance,
        node: WorkflowNode,
    ) -> Optional[InstanceTask]:
        """
        Create the task for a TASK node the instance just reached.

        An unknown or inactive function is logged and no task is created; the
        instance stays at the node.
        """
        try:
            entry = await self.registry.require(node.function_code or "")
        except FunctionNotFound as e:
            logger.error(f"Cannot create task for node {node.id} of instance {instance.id}: {e}")
            return None

        assignee = instance.task_assignments.get(node.id)
        task = InstanceTask(
            workflow_instance_id=instance.id,
            node_id=node.id,
            function_code=entry.function_code,
            task_type=entry.implementation_type,
            assigned_to=str(assignee) if assignee is not None else None,
            input_data=dict(node.input_data),
        )
        task = await self.repository.create_task(task)

        await self.history.record(
            instance.id,
            HistoryEventType.TASK_CREATED,
            f"Task created for node {node.id}",
            node_id=node.id,
            task_id=task.id,
            function_code=entry.function_code,
            assigned_to=task.assigned_to,
        )
        logger.info(
            f"Created {task.task_type.value} task {task.id} for node {node.id}, "
            f"assigned to {task.assigned_to}"
        )

        if entry.implementation_type in AUTOMATED_TASK_TYPES:
            return await self.execute_automated_task(task, entry)
        return task

    async def complete_task(
        self,
        task_id: UUID,
        output: dict[str, Any],
        actor_id: Optional[str] = None,
    ) -> InstanceTask:
        """
        Record a human task's output and request the instance to advance.

        Raises:
            TaskNotFound: Unknown task id
            TaskNotAssigned: actor_id given and not the assignee
            TaskAlreadyResolved: Task is no longer PENDING
            SchemaValidationError: Output does not satisfy the function's output schema
        """
        task = await self.repository.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)

        if actor_id is not None and task.assigned_to != actor_id:
            raise TaskNotAssigned(task_id, actor_id)

        if task.status != TaskStatus.PENDING:
            raise TaskAlreadyResolved(task_id, task.status.value)

        entry = await self.registry.lookup(task.function_code)
        schema = entry.output_schema if entry else {}
        errors = validate_against_schema(output, schema)
        if errors:
            raise SchemaValidationError([e.to_dict() for e in errors])

        completed = await self.repository.transition_task(
            task_id, {TaskStatus.PENDING}, TaskStatus.COMPLETED, output_data=output
        )
        if completed is None:
            current = await self.repository.get_task(task_id)
            raise TaskAlreadyResolved(task_id, current.status.value if current else "unknown")

        await self._record_completion(completed, output, actor_id)
        return completed

    async def fail_task(
        self,
        task_id: UUID,
        error_message: str,
        actor_id: Optional[str] = None,
    ) -> InstanceTask:
        """
        Mark a task FAILED. The instance stays at the task's node.

        Raises:
            TaskNotFound: Unknown task id
            TaskNotAssigned: actor_id given and not the assignee
            TaskAlreadyResolved: Task is already COMPLETED or FAILED
        """
        task = await self.repository.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)

        if actor_id is not None and task.assigned_to != actor_id:
            raise TaskNotAssigned(task_id, actor_id)

        failed = await self.repository.transition_task(
            task_id,
            {TaskStatus.PENDING, TaskStatus.IN_PROGRESS},
            TaskStatus.FAILED,
            error_message=error_message,
        )
        if failed is None:
            raise TaskAlreadyResolved(task_id, task.status.value)

        await self.history.record(
            failed.workflow_instance_id,
            HistoryEventType.TASK_FAILED,
            f"{failed.task_type.value} failed: {error_message}",
            node_id=failed.node_id,
            task_id=failed.id,
            actor_id=actor_id,
            function_code=failed.function_code,
            error=error_message,
        )
        logger.warning(f"Task {failed.id} failed: {error_message}")
        return failed

    async def pending_tasks(self, assignee: str) -> list[PendingTask]:
        """PENDING tasks assigned to someone, oldest first."""
        tasks = await self.repository.list_pending_tasks(assignee)

        entries: dict[str, Optional[FunctionRegistryEntry]] = {}
        pending = []
        for task in tasks:
            if task.function_code not in entries:
                entries[task.function_code] = await self.registry.lookup(task.function_code)
            entry = entries[task.function_code]

            if entry is None:
                pending.append(PendingTask(task=task))
                continue

            pending.append(PendingTask(
                task=task,
                description=entry.description,
                input_schema=entry.input_schema,
                output_schema=entry.output_schema,
                fields=describe_fields(entry.output_schema),
                ui_widget_id=entry.ui_widget_id,
                ui_definitions=entry.ui_definitions,
            ))
        return pending

    # ==================== Automated Tasks ====================

    async def execute_automated_task(
        self,
        task: InstanceTask,
        entry: FunctionRegistryEntry,
    ) -> InstanceTask:
        """
        Call a service/agent task's endpoint and resolve the task with the result.

        Failures mark the task FAILED and are not raised; the instance stays
        at the node.
        """
        if self.service_executor is None:
            logger.info(f"Service task execution disabled; task {task.id} left PENDING")
            return task

        started = await self.repository.transition_task(
            task.id, {TaskStatus.PENDING}, TaskStatus.IN_PROGRESS
        )
        if started is None:
            logger.info(f"Task {task.id} was picked up elsewhere")
            return task

        try:
            output = await self.service_executor.call(started, entry)
        except ServiceTaskFailed as e:
            return await self.fail_task(started.id, e.message)

        errors = validate_against_schema(output, entry.output_schema)
        if errors:
            summary = "; ".join(e.message for e in errors)
            return await self.fail_task(started.id, f"Output validation failed: {summary}")

        completed = await self.repository.transition_task(
            started.id, {TaskStatus.IN_PROGRESS}, TaskStatus.COMPLETED, output_data=output
        )
        if completed is None:
            logger.warning(f"Task {started.id} was resolved while its endpoint was running")
            return started

        await self._record_completion(completed, output, None)
        return completed

    async def run_orphaned_service_tasks(self, limit: int) -> int:
        """
        Execute automated tasks still PENDING, e.g. created while the service
        executor was disabled. Tasks left IN_PROGRESS by a crash mid-call are
        not picked up.

        Returns:
            Number of tasks executed
        """
        if self.service_executor is None:
            return 0

        tasks = await self.repository.list_tasks_by_status(
            TaskStatus.PENDING, list(AUTOMATED_TASK_TYPES), limit
        )
        executed = 0
        for task in tasks:
            entry = await self.registry.lookup(task.function_code)
            if entry is None or not entry.endpoint_or_path:
                logger.warning(f"Orphaned task {task.id} has no callable function")
                continue
            try:
                await self.execute_automated_task(task, entry)
            except Exception as e:
                logger.error(f"Error executing orphaned task {task.id}: {e}", exc_info=True)
                continue
            executed += 1

        if executed:
            logger.info(f"Executed {executed} orphaned service tasks")
        return executed

    async def _record_completion(
        self,
        task: InstanceTask,
        output: dict[str, Any],
        actor_id: Optional[str],
    ) -> None:
        """Context version, history and queue item that follow every completion."""
        instance_id = task.workflow_instance_id

        await self.context_store.record_node_output(instance_id, task.node_id, output)

        await self.history.record(
            instance_id,
            HistoryEventType.TASK_COMPLETED,
            f"{task.task_type.value} completed: {task.function_code}",
            node_id=task.node_id,
            task_id=task.id,
            actor_id=actor_id,
            function_code=task.function_code,
        )

        await self.repository.enqueue(ExecutionQueueItem(
            workflow_instance_id=instance_id,
            trigger_type=TriggerType.TASK_COMPLETED,
            trigger_node_id=task.node_id,
            metadata={"task_id": str(task.id), "task_type": task.task_type.value},
        ))
        logger.info(f"Task {task.id} completed; queued advance of instance {instance_id}")
