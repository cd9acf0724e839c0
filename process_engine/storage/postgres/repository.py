"""
Repository layer for engine data access on PostgreSQL.

Each method runs in its own session; conditional updates use a guarded
UPDATE ... RETURNING so concurrent callers cannot both win.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError

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
from process_engine.core.state_machine import InstanceStatus, QueueItemStatus, TaskStatus
from process_engine.storage.postgres.database import Database
from process_engine.storage.postgres.models import (
    ExecutionQueueModel,
    FunctionRegistryModel,
    InstanceContextModel,
    InstanceTaskModel,
    WorkflowHistoryModel,
    WorkflowInstanceModel,
    WorkflowTemplateModel,
)


class PostgresRepository:
    """Repository for templates, registry entries and instance runtime records."""

    def __init__(self, database: Database):
        self.database = database

    # ==================== Template Operations ====================

    async def create_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Create a new template."""
        model = WorkflowTemplateModel(
            id=template.id,
            template_code=template.template_code,
            name=template.name,
            workflow_type=template.workflow_type,
            maturity_gate=template.maturity_gate,
            description=template.description,
            is_active=template.is_active,
            definition=template.definition.model_dump(mode="json"),
            created_at=template.created_at,
            updated_at=template.updated_at,
        )
        try:
            async with self.database.session() as session:
                session.add(model)
                await session.flush()
        except IntegrityError as exc:
            raise DuplicateTemplateCode(template.template_code) from exc
        return self.model_to_template(model)

    async def get_template(self, template_id: UUID) -> Optional[WorkflowTemplate]:
        """Get template by ID."""
        async with self.database.session() as session:
            result = await session.execute(
                select(WorkflowTemplateModel).where(WorkflowTemplateModel.id == template_id)
            )
            model = result.scalar_one_or_none()
        return self.model_to_template(model) if model else None

    async def get_template_by_code(self, template_code: str) -> Optional[WorkflowTemplate]:
        """Get template by code."""
        async with self.database.session() as session:
            result = await session.execute(
                select(WorkflowTemplateModel).where(
                    WorkflowTemplateModel.template_code == template_code
                )
            )
            model = result.scalars().first()
        return self.model_to_template(model) if model else None

    async def list_templates(
        self,
        workflow_type: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> list[WorkflowTemplate]:
        """List templates, newest first."""
        query = select(WorkflowTemplateModel)
        if workflow_type is not None:
            query = query.where(WorkflowTemplateModel.workflow_type == workflow_type)
        if is_active is not None:
            query = query.where(WorkflowTemplateModel.is_active == is_active)

        async with self.database.session() as session:
            result = await session.execute(query.order_by(WorkflowTemplateModel.created_at.desc()))
            models = result.scalars().all()
        return [self.model_to_template(m) for m in models]

    async def update_template_definition(
        self, template_id: UUID, definition: GraphDefinition
    ) -> Optional[WorkflowTemplate]:
        """Replace a template's definition."""
        async with self.database.session() as session:
            result = await session.execute(
                update(WorkflowTemplateModel)
                .where(WorkflowTemplateModel.id == template_id)
                .values(definition=definition.model_dump(mode="json"), updated_at=datetime.utcnow())
                .returning(WorkflowTemplateModel)
            )
            model = result.scalar_one_or_none()
        return self.model_to_template(model) if model else None

    async def set_template_active(
        self, template_id: UUID, is_active: bool
    ) -> Optional[WorkflowTemplate]:
        """Activate or deactivate a template."""
        async with self.database.session() as session:
            result = await session.execute(
                update(WorkflowTemplateModel)
                .where(WorkflowTemplateModel.id == template_id)
                .values(is_active=is_active, updated_at=datetime.utcnow())
                .returning(WorkflowTemplateModel)
            )
            model = result.scalar_one_or_none()
        return self.model_to_template(model) if model else None

    # ==================== Function Registry Operations ====================

    async def create_function(self, entry: FunctionRegistryEntry) -> FunctionRegistryEntry:
        """Register a new function."""
        model = FunctionRegistryModel(
            id=entry.id,
            function_code=entry.function_code,
            implementation_type=entry.implementation_type.value,
            description=entry.description,
            endpoint_or_path=entry.endpoint_or_path,
            input_schema=entry.input_schema,
            output_schema=entry.output_schema,
            ui_widget_id=entry.ui_widget_id,
            ui_definitions=entry.ui_definitions,
            timeout_seconds=entry.timeout_seconds,
            is_active=entry.is_active,
            created_at=entry.created_at,
            updated_at=entry.updated_at,
        )
        try:
            async with self.database.session() as session:
                session.add(model)
                await session.flush()
        except IntegrityError as exc:
            raise DuplicateFunctionCode(entry.function_code) from exc
        return self.model_to_function(model)

    async def get_function(self, function_code: str) -> Optional[FunctionRegistryEntry]:
        """Get registry entry by code."""
        async with self.database.session() as session:
            result = await session.execute(
                select(FunctionRegistryModel).where(
                    FunctionRegistryModel.function_code == function_code
                )
            )
            model = result.scalar_one_or_none()
        return self.model_to_function(model) if model else None

    async def list_functions(
        self,
        implementation_type: Optional[ImplementationType] = None,
        is_active: Optional[bool] = None,
    ) -> list[FunctionRegistryEntry]:
        """List registry entries ordered by code."""
        query = select(FunctionRegistryModel)
        if implementation_type is not None:
            query = query.where(
                FunctionRegistryModel.implementation_type == implementation_type.value
            )
        if is_active is not None:
            query = query.where(FunctionRegistryModel.is_active == is_active)

        async with self.database.session() as session:
            result = await session.execute(query.order_by(FunctionRegistryModel.function_code))
            models = result.scalars().all()
        return [self.model_to_function(m) for m in models]

    async def set_function_active(
        self, function_code: str, is_active: bool
    ) -> Optional[FunctionRegistryEntry]:
        """Activate or deactivate a registry entry."""
        async with self.database.session() as session:
            result = await session.execute(
                update(FunctionRegistryModel)
                .where(FunctionRegistryModel.function_code == function_code)
                .values(is_active=is_active, updated_at=datetime.utcnow())
                .returning(FunctionRegistryModel)
            )
            model = result.scalar_one_or_none()
        return self.model_to_function(model) if model else None

    # ==================== Instance Operations ====================

    async def create_instance(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Create a new instance."""
        model = WorkflowInstanceModel(
            id=instance.id,
            workflow_template_id=instance.workflow_template_id,
            instance_name=instance.instance_name,
            status=instance.status.value,
            current_node_id=instance.current_node_id,
            input_data=instance.input_data,
            created_at=instance.created_at,
            updated_at=instance.updated_at,
        )
        async with self.database.session() as session:
            session.add(model)
            await session.flush()
        return self.model_to_instance(model)

    async def get_instance(self, instance_id: UUID) -> Optional[WorkflowInstance]:
        """Get instance by ID."""
        async with self.database.session() as session:
            result = await session.execute(
                select(WorkflowInstanceModel).where(WorkflowInstanceModel.id == instance_id)
            )
            model = result.scalar_one_or_none()
        return self.model_to_instance(model) if model else None

    async def list_instances(
        self,
        template_id: Optional[UUID] = None,
        status: Optional[InstanceStatus] = None,
    ) -> list[WorkflowInstance]:
        """List instances, newest first."""
        query = select(WorkflowInstanceModel)
        if template_id is not None:
            query = query.where(WorkflowInstanceModel.workflow_template_id == template_id)
        if status is not None:
            query = query.where(WorkflowInstanceModel.status == status.value)

        async with self.database.session() as session:
            result = await session.execute(query.order_by(WorkflowInstanceModel.created_at.desc()))
            models = result.scalars().all()
        return [self.model_to_instance(m) for m in models]

    async def update_instance_position(
        self,
        instance_id: UUID,
        current_node_id: str,
        status: InstanceStatus,
    ) -> None:
        """Move an instance to a node."""
        values: dict[str, Any] = {
            "current_node_id": current_node_id,
            "status": status.value,
            "updated_at": datetime.utcnow(),
        }
        if status == InstanceStatus.COMPLETED:
            values["completed_at"] = datetime.utcnow()

        async with self.database.session() as session:
            await session.execute(
                update(WorkflowInstanceModel)
                .where(WorkflowInstanceModel.id == instance_id)
                .values(**values)
            )

    async def set_instance_status(
        self,
        instance_id: UUID,
        status: InstanceStatus,
        error_message: Optional[str] = None,
    ) -> None:
        """Update instance status."""
        values: dict[str, Any] = {"status": status.value, "updated_at": datetime.utcnow()}
        if status == InstanceStatus.COMPLETED:
            values["completed_at"] = datetime.utcnow()
        if error_message:
            values["error_message"] = error_message

        async with self.database.session() as session:
            await session.execute(
                update(WorkflowInstanceModel)
                .where(WorkflowInstanceModel.id == instance_id)
                .values(**values)
            )

    # ==================== Context Operations ====================

    async def append_context(
        self, instance_id: UUID, context_data: dict[str, Any]
    ) -> InstanceContext:
        """
        Append the next context version.

        The instance row is locked while the next version number is computed;
        the unique (instance, version) constraint backs this up.
        """
        async with self.database.session() as session:
            await session.execute(
                select(WorkflowInstanceModel.id)
                .where(WorkflowInstanceModel.id == instance_id)
                .with_for_update()
            )
            result = await session.execute(
                select(func.coalesce(func.max(InstanceContextModel.version), 0))
                .where(InstanceContextModel.workflow_instance_id == instance_id)
            )
            next_version = result.scalar_one() + 1

            model = InstanceContextModel(
                workflow_instance_id=instance_id,
                version=next_version,
                context_data=context_data,
                created_at=datetime.utcnow(),
            )
            session.add(model)
            await session.flush()
        return self.model_to_context(model)

    async def get_latest_context(self, instance_id: UUID) -> Optional[InstanceContext]:
        """Get the highest context version."""
        async with self.database.session() as session:
            result = await session.execute(
                select(InstanceContextModel)
                .where(InstanceContextModel.workflow_instance_id == instance_id)
                .order_by(InstanceContextModel.version.desc())
                .limit(1)
            )
            model = result.scalar_one_or_none()
        return self.model_to_context(model) if model else None

    async def list_context_versions(self, instance_id: UUID) -> list[InstanceContext]:
        """All context versions, oldest first."""
        async with self.database.session() as session:
            result = await session.execute(
                select(InstanceContextModel)
                .where(InstanceContextModel.workflow_instance_id == instance_id)
                .order_by(InstanceContextModel.version)
            )
            models = result.scalars().all()
        return [self.model_to_context(m) for m in models]

    # ==================== Task Operations ====================

    async def create_task(self, task: InstanceTask) -> InstanceTask:
        """Create a new task."""
        model = InstanceTaskModel(
            id=task.id,
            workflow_instance_id=task.workflow_instance_id,
            node_id=task.node_id,
            function_code=task.function_code,
            task_type=task.task_type.value,
            status=task.status.value,
            assigned_to=task.assigned_to,
            input_data=task.input_data,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )
        async with self.database.session() as session:
            session.add(model)
            await session.flush()
        return self.model_to_task(model)

    async def get_task(self, task_id: UUID) -> Optional[InstanceTask]:
        """Get task by ID."""
        async with self.database.session() as session:
            result = await session.execute(
                select(InstanceTaskModel).where(InstanceTaskModel.id == task_id)
            )
            model = result.scalar_one_or_none()
        return self.model_to_task(model) if model else None

    async def list_tasks(self, instance_id: UUID) -> list[InstanceTask]:
        """Tasks of an instance, oldest first."""
        async with self.database.session() as session:
            result = await session.execute(
                select(InstanceTaskModel)
                .where(InstanceTaskModel.workflow_instance_id == instance_id)
                .order_by(InstanceTaskModel.created_at)
            )
            models = result.scalars().all()
        return [self.model_to_task(m) for m in models]

    async def list_pending_tasks(self, assignee: str) -> list[InstanceTask]:
        """PENDING tasks assigned to someone."""
        async with self.database.session() as session:
            result = await session.execute(
                select(InstanceTaskModel)
                .where(
                    and_(
                        InstanceTaskModel.assigned_to == assignee,
                        InstanceTaskModel.status == TaskStatus.PENDING.value,
                    )
                )
                .order_by(InstanceTaskModel.created_at)
            )
            models = result.scalars().all()
        return [self.model_to_task(m) for m in models]

    async def list_tasks_by_status(
        self,
        status: TaskStatus,
        task_types: Optional[list[ImplementationType]] = None,
        limit: int = 10,
    ) -> list[InstanceTask]:
        """Tasks in a status, oldest first."""
        query = select(InstanceTaskModel).where(InstanceTaskModel.status == status.value)
        if task_types is not None:
            query = query.where(InstanceTaskModel.task_type.in_([t.value for t in task_types]))

        async with self.database.session() as session:
            result = await session.execute(
                query.order_by(InstanceTaskModel.created_at).limit(limit)
            )
            models = result.scalars().all()
        return [self.model_to_task(m) for m in models]

    async def transition_task(
        self,
        task_id: UUID,
        expected: set[TaskStatus],
        new_status: TaskStatus,
        output_data: Optional[dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> Optional[InstanceTask]:
        """
        Conditionally update task status.

        The WHERE clause only matches while the stored status is one of
        ``expected``, so a task cannot be resolved twice.
        """
        now = datetime.utcnow()
        values: dict[str, Any] = {"status": new_status.value, "updated_at": now}

        if new_status == TaskStatus.IN_PROGRESS:
            values["started_at"] = now
        elif new_status in (TaskStatus.COMPLETED, TaskStatus.FAILED):
            values["completed_at"] = now

        if output_data is not None:
            values["output_data"] = output_data
        if error_message:
            values["error_message"] = error_message

        async with self.database.session() as session:
            result = await session.execute(
                update(InstanceTaskModel)
                .where(
                    and_(
                        InstanceTaskModel.id == task_id,
                        InstanceTaskModel.status.in_([s.value for s in expected]),
                    )
                )
                .values(**values)
                .returning(InstanceTaskModel)
            )
            model = result.scalar_one_or_none()
        return self.model_to_task(model) if model else None

    # ==================== Queue Operations ====================

    async def enqueue(self, item: ExecutionQueueItem) -> ExecutionQueueItem:
        """Create a new queue item."""
        model = ExecutionQueueModel(
            queue_id=item.queue_id,
            workflow_instance_id=item.workflow_instance_id,
            trigger_type=item.trigger_type.value,
            trigger_node_id=item.trigger_node_id,
            status=item.status.value,
            item_metadata=item.metadata,
            created_at=item.created_at,
        )
        async with self.database.session() as session:
            session.add(model)
            await session.flush()
        return self.model_to_queue_item(model)

    async def get_queue_item(self, queue_id: UUID) -> Optional[ExecutionQueueItem]:
        """Get queue item by ID."""
        async with self.database.session() as session:
            result = await session.execute(
                select(ExecutionQueueModel).where(ExecutionQueueModel.queue_id == queue_id)
            )
            model = result.scalar_one_or_none()
        return self.model_to_queue_item(model) if model else None

    async def claim_queue_item(self, queue_id: UUID) -> Optional[ExecutionQueueItem]:
        """Move a PENDING item to PROCESSING; None when another processor got it first."""
        async with self.database.session() as session:
            result = await session.execute(
                update(ExecutionQueueModel)
                .where(
                    and_(
                        ExecutionQueueModel.queue_id == queue_id,
                        ExecutionQueueModel.status == QueueItemStatus.PENDING.value,
                    )
                )
                .values(status=QueueItemStatus.PROCESSING.value)
                .returning(ExecutionQueueModel)
            )
            model = result.scalar_one_or_none()
        return self.model_to_queue_item(model) if model else None

    async def release_queue_item(self, queue_id: UUID) -> None:
        """Return a PROCESSING item to PENDING."""
        async with self.database.session() as session:
            await session.execute(
                update(ExecutionQueueModel)
                .where(
                    and_(
                        ExecutionQueueModel.queue_id == queue_id,
                        ExecutionQueueModel.status == QueueItemStatus.PROCESSING.value,
                    )
                )
                .values(status=QueueItemStatus.PENDING.value)
            )

    async def finish_queue_item(
        self,
        queue_id: UUID,
        status: QueueItemStatus,
        error_message: Optional[str] = None,
    ) -> None:
        """Mark a PROCESSING item COMPLETED or FAILED."""
        values: dict[str, Any] = {"status": status.value, "processed_at": datetime.utcnow()}
        if error_message:
            values["error_message"] = error_message

        async with self.database.session() as session:
            await session.execute(
                update(ExecutionQueueModel)
                .where(
                    and_(
                        ExecutionQueueModel.queue_id == queue_id,
                        ExecutionQueueModel.status == QueueItemStatus.PROCESSING.value,
                    )
                )
                .values(**values)
            )

    async def list_pending_queue_items(self, limit: int) -> list[ExecutionQueueItem]:
        """Oldest PENDING items."""
        async with self.database.session() as session:
            result = await session.execute(
                select(ExecutionQueueModel)
                .where(ExecutionQueueModel.status == QueueItemStatus.PENDING.value)
                .order_by(ExecutionQueueModel.created_at)
                .limit(limit)
            )
            models = result.scalars().all()
        return [self.model_to_queue_item(m) for m in models]

    async def list_queue_items(self, instance_id: UUID) -> list[ExecutionQueueItem]:
        """Queue items of an instance, oldest first."""
        async with self.database.session() as session:
            result = await session.execute(
                select(ExecutionQueueModel)
                .where(ExecutionQueueModel.workflow_instance_id == instance_id)
                .order_by(ExecutionQueueModel.created_at)
            )
            models = result.scalars().all()
        return [self.model_to_queue_item(m) for m in models]

    # ==================== History Operations ====================

    async def add_history(self, event: HistoryEvent) -> HistoryEvent:
        """Append a history event."""
        model = WorkflowHistoryModel(
            id=event.id,
            workflow_instance_id=event.workflow_instance_id,
            event_type=event.event_type.value,
            node_id=event.node_id,
            task_id=event.task_id,
            description=event.description,
            event_metadata=event.metadata,
            actor_id=event.actor_id,
            created_at=event.created_at,
        )
        async with self.database.session() as session:
            session.add(model)
            await session.flush()
        return event

    async def list_history(self, instance_id: UUID) -> list[HistoryEvent]:
        """History of an instance, oldest first."""
        async with self.database.session() as session:
            result = await session.execute(
                select(WorkflowHistoryModel)
                .where(WorkflowHistoryModel.workflow_instance_id == instance_id)
                .order_by(WorkflowHistoryModel.created_at)
            )
            models = result.scalars().all()
        return [self.model_to_history(m) for m in models]

    async def ping(self) -> bool:
        """Check database connectivity."""
        return await self.database.health_check()

    # ==================== Helper Methods ====================

    def model_to_template(self, model: WorkflowTemplateModel) -> WorkflowTemplate:
        """Convert database model to domain model."""
        return WorkflowTemplate(
            id=model.id,
            template_code=model.template_code,
            name=model.name,
            workflow_type=model.workflow_type,
            maturity_gate=model.maturity_gate,
            description=model.description,
            is_active=model.is_active,
            definition=GraphDefinition(**model.definition),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def model_to_function(self, model: FunctionRegistryModel) -> FunctionRegistryEntry:
        """Convert database model to domain model."""
        return FunctionRegistryEntry(
            id=model.id,
            function_code=model.function_code,
            implementation_type=model.implementation_type,
            description=model.description,
            endpoint_or_path=model.endpoint_or_path,
            input_schema=model.input_schema,
            output_schema=model.output_schema,
            ui_widget_id=model.ui_widget_id,
            ui_definitions=model.ui_definitions,
            timeout_seconds=model.timeout_seconds,
            is_active=model.is_active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def model_to_instance(self, model: WorkflowInstanceModel) -> WorkflowInstance:
        """Convert database model to domain model."""
        return WorkflowInstance(
            id=model.id,
            workflow_template_id=model.workflow_template_id,
            instance_name=model.instance_name,
            status=model.status,
            current_node_id=model.current_node_id,
            input_data=model.input_data,
            error_message=model.error_message,
            created_at=model.created_at,
            updated_at=model.updated_at,
            completed_at=model.completed_at,
        )

    def model_to_context(self, model: InstanceContextModel) -> InstanceContext:
        """Convert database model to domain model."""
        return InstanceContext(
            id=model.id,
            workflow_instance_id=model.workflow_instance_id,
            version=model.version,
            context_data=model.context_data,
            created_at=model.created_at,
        )

    def model_to_task(self, model: InstanceTaskModel) -> InstanceTask:
        """Convert database model to domain model."""
        return InstanceTask(
            id=model.id,
            workflow_instance_id=model.workflow_instance_id,
            node_id=model.node_id,
            function_code=model.function_code,
            task_type=model.task_type,
            status=model.status,
            assigned_to=model.assigned_to,
            input_data=model.input_data,
            output_data=model.output_data,
            error_message=model.error_message,
            created_at=model.created_at,
            started_at=model.started_at,
            completed_at=model.completed_at,
            updated_at=model.updated_at,
        )

    def model_to_queue_item(self, model: ExecutionQueueModel) -> ExecutionQueueItem:
        """Convert database model to domain model."""
        return ExecutionQueueItem(
            queue_id=model.queue_id,
            workflow_instance_id=model.workflow_instance_id,
            trigger_type=model.trigger_type,
            trigger_node_id=model.trigger_node_id,
            status=model.status,
            error_message=model.error_message,
            metadata=model.item_metadata,
            created_at=model.created_at,
            processed_at=model.processed_at,
        )

    def model_to_history(self, model: WorkflowHistoryModel) -> HistoryEvent:
        """Convert database model to domain model."""
        return HistoryEvent(
            id=model.id,
            workflow_instance_id=model.workflow_instance_id,
            event_type=model.event_type,
            node_id=model.node_id,
            task_id=model.task_id,
            description=model.description,
            metadata=model.event_metadata,
            actor_id=model.actor_id,
            created_at=model.created_at,
        )
