"""
Process engine.

Boundary facade that wires the registry, template service, instance and task
managers, context store and queue processor over one repository, and
triggers queue drains after the events that make progress possible
(instance creation and task completion).
"""

import logging
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from process_engine.config import Settings, get_settings
from process_engine.core.errors import InstanceNotFound
from process_engine.core.models import HistoryEvent, InstanceTask, WorkflowInstance
from process_engine.core.state_machine import InstanceStatus, TaskStatus
from process_engine.orchestrator.context import ContextStore
from process_engine.orchestrator.history import HistoryRecorder
from process_engine.orchestrator.instances import InstanceManager
from process_engine.orchestrator.processor import DrainResult, QueueProcessor
from process_engine.orchestrator.registry import FunctionRegistry
from process_engine.orchestrator.tasks import PendingTask, TaskManager
from process_engine.orchestrator.templates import TemplateService
from process_engine.storage.redis.cache import RedisCache
from process_engine.storage.repository import Repository
from process_engine.workers.service_tasks import ServiceTaskExecutor

logger = logging.getLogger(__name__)

NOT_STARTED = "NOT_STARTED"


class TaskProgress(BaseModel):
    """One TASK node of an instance, with its task if it was created."""

    task_id: Optional[UUID] = None
    node_id: str
    task_name: str
    function_code: Optional[str] = None
    task_type: Optional[str] = None
    status: str = NOT_STARTED
    assigned_to: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None


class InstanceStatusView(BaseModel):
    """Read model of an instance's progress."""

    instance_id: UUID
    template_id: UUID
    instance_name: Optional[str] = None
    status: InstanceStatus
    current_node_id: str
    current_node_name: Optional[str] = None
    error_message: Optional[str] = None
    tasks: list[TaskProgress] = Field(default_factory=list)
    completed_tasks: int = 0
    total_tasks: int = 0
    progress_percentage: int = 0
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


class ProcessEngine:
    """Entry point for collaborators of the orchestration core."""

    def __init__(
        self,
        repository: Repository,
        cache: Optional[RedisCache] = None,
        service_executor: Optional[ServiceTaskExecutor] = None,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.cache = cache
        self.service_executor = service_executor
        self.settings = settings or get_settings()

        self.registry = FunctionRegistry(repository)
        self.templates = TemplateService(repository, self.registry)
        self.context = ContextStore(repository)
        self.history = HistoryRecorder(repository)
        self.instances = InstanceManager(repository, self.registry, self.context, self.history)
        self.tasks = TaskManager(
            repository,
            self.registry,
            self.context,
            self.history,
            service_executor=service_executor,
        )
        self.processor = QueueProcessor(
            repository,
            self.tasks,
            self.context,
            self.history,
            cache=cache,
            settings=self.settings,
        )

    async def close(self) -> None:
        if self.service_executor is not None:
            await self.service_executor.close()

    # ==================== Instances ====================

    async def create_instance(
        self,
        template_id: UUID,
        assignments: Optional[dict[str, str]] = None,
        initial_context: Optional[dict[str, Any]] = None,
        instance_name: Optional[str] = None,
    ) -> WorkflowInstance:
        """Create an instance and drain the queue so it leaves its START node."""
        instance = await self.instances.create_instance(
            template_id,
            assignments=assignments,
            initial_context=initial_context,
            instance_name=instance_name,
        )
        await self._drain_after_trigger()
        return instance

    async def get_instance_status(self, instance_id: UUID) -> InstanceStatusView:
        """
        Build the status read model of an instance.

        Every TASK node of the template is listed: with its most recent task
        if one was created, otherwise as NOT_STARTED with the expected assignee.
        """
        if self.cache is not None:
            cached = await self.cache.get_instance_status(instance_id)
            if cached:
                return InstanceStatusView(**cached)

        instance = await self.instances.get_instance(instance_id)
        template = await self.templates.get_template(instance.workflow_template_id)
        definition = template.definition

        latest_by_node: dict[str, InstanceTask] = {}
        for task in await self.repository.list_tasks(instance_id):
            latest_by_node[task.node_id] = task

        descriptions: dict[str, Optional[str]] = {}
        progress = []
        for node in definition.get_task_nodes():
            task = latest_by_node.get(node.id)
            if task is None:
                assignee = instance.task_assignments.get(node.id)
                progress.append(TaskProgress(
                    node_id=node.id,
                    task_name=node.label or node.function_code or node.id,
                    function_code=node.function_code,
                    assigned_to=str(assignee) if assignee is not None else None,
                ))
                continue

            if task.function_code not in descriptions:
                entry = await self.registry.lookup(task.function_code)
                descriptions[task.function_code] = entry.description if entry else None

            progress.append(TaskProgress(
                task_id=task.id,
                node_id=task.node_id,
                task_name=descriptions[task.function_code] or node.label or task.function_code,
                function_code=task.function_code,
                task_type=task.task_type.value,
                status=task.status.value,
                assigned_to=task.assigned_to,
                created_at=task.created_at,
                started_at=task.started_at,
                completed_at=task.completed_at,
                error_message=task.error_message,
            ))

        total = len(progress)
        completed = sum(1 for t in progress if t.status == TaskStatus.COMPLETED.value)
        current_node = definition.resolve_node(instance.current_node_id)

        view = InstanceStatusView(
            instance_id=instance.id,
            template_id=instance.workflow_template_id,
            instance_name=instance.instance_name,
            status=instance.status,
            current_node_id=instance.current_node_id,
            current_node_name=(current_node.label or current_node.id) if current_node else None,
            error_message=instance.error_message,
            tasks=progress,
            completed_tasks=completed,
            total_tasks=total,
            progress_percentage=round(completed / total * 100) if total else 0,
            created_at=instance.created_at,
            updated_at=instance.updated_at,
            completed_at=instance.completed_at,
        )

        if self.cache is not None:
            await self.cache.cache_instance_status(instance_id, view.model_dump(mode="json"))
        return view

    async def get_history(self, instance_id: UUID) -> list[HistoryEvent]:
        if await self.repository.get_instance(instance_id) is None:
            raise InstanceNotFound(instance_id)
        return await self.history.list(instance_id)

    # ==================== Tasks ====================

    async def get_pending_tasks(self, assignee: str) -> list[PendingTask]:
        return await self.tasks.pending_tasks(assignee)

    async def complete_task(
        self,
        task_id: UUID,
        output: dict[str, Any],
        actor_id: Optional[str] = None,
    ) -> InstanceTask:
        """Complete a task and drain the queue so its instance moves on."""
        task = await self.tasks.complete_task(task_id, output, actor_id=actor_id)
        await self._invalidate_status(task.workflow_instance_id)
        await self._drain_after_trigger()
        return task

    async def fail_task(
        self,
        task_id: UUID,
        error_message: str,
        actor_id: Optional[str] = None,
    ) -> InstanceTask:
        task = await self.tasks.fail_task(task_id, error_message, actor_id=actor_id)
        await self._invalidate_status(task.workflow_instance_id)
        return task

    # ==================== Queue ====================

    async def process_queue(self, limit: Optional[int] = None) -> DrainResult:
        return await self.processor.drain_queue(limit)

    async def _drain_after_trigger(self) -> None:
        if self.settings.queue.drain_on_trigger:
            await self.processor.drain_queue()

    async def _invalidate_status(self, instance_id: UUID) -> None:
        if self.cache is not None:
            await self.cache.invalidate_instance_status(instance_id)
