"""
Instance manager.

Creates instances of a template at its START node. Advancing the instance is
left to the queue processor.
"""

import logging
from typing import Any, Optional
from uuid import UUID

from process_engine.core.errors import (
    InstanceNotFound,
    MissingAssignment,
    TemplateInactive,
    TemplateNotFound,
    TemplateValidationError,
)
from process_engine.core.graph import ValidationError
from process_engine.core.models import (
    AUTOMATED_TASK_TYPES,
    TASK_ASSIGNMENTS_KEY,
    ExecutionQueueItem,
    HistoryEventType,
    TriggerType,
    WorkflowInstance,
    WorkflowTemplate,
)
from process_engine.core.state_machine import InstanceStatus
from process_engine.orchestrator.context import ContextStore
from process_engine.orchestrator.history import HistoryRecorder
from process_engine.orchestrator.registry import FunctionRegistry
from process_engine.storage.repository import Repository

logger = logging.getLogger(__name__)


class InstanceManager:
    """Instance creation and lookups."""

    def __init__(
        self,
        repository: Repository,
        registry: FunctionRegistry,
        context_store: ContextStore,
        history: HistoryRecorder,
    ):
        self.repository = repository
        self.registry = registry
        self.context_store = context_store
        self.history = history

    async def create_instance(
        self,
        template_id: UUID,
        assignments: Optional[dict[str, str]] = None,
        initial_context: Optional[dict[str, Any]] = None,
        instance_name: Optional[str] = None,
    ) -> WorkflowInstance:
        """
        Start a new instance at the template's START node.

        Writes context version 1 and enqueues exactly one advance request.

        Raises:
            TemplateNotFound: Unknown template id
            TemplateInactive: Template is deactivated
            MissingAssignment: A human TASK node has no assignee
        """
        assignments = dict(assignments or {})

        template = await self.repository.get_template(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        if not template.is_active:
            raise TemplateInactive(template_id)

        entry_node = template.definition.get_entry_node()
        if entry_node is None:
            raise TemplateValidationError([
                ValidationError("NO_ENTRY_POINT", "Workflow has no START node without incoming transitions")
            ])

        missing = await self._missing_assignments(template, assignments)
        if missing:
            raise MissingAssignment(missing)

        instance = WorkflowInstance(
            workflow_template_id=template.id,
            instance_name=instance_name,
            status=InstanceStatus.RUNNING,
            current_node_id=entry_node.id,
            input_data={TASK_ASSIGNMENTS_KEY: assignments},
        )
        instance = await self.repository.create_instance(instance)

        await self.context_store.initialize(instance.id, initial_context or {})

        await self.history.record(
            instance.id,
            HistoryEventType.INSTANCE_CREATED,
            f"Instance created from template {template.template_code}",
            node_id=entry_node.id,
            template_id=str(template.id),
            instance_name=instance_name,
        )

        await self.repository.enqueue(ExecutionQueueItem(
            workflow_instance_id=instance.id,
            trigger_type=TriggerType.INSTANCE_CREATED,
            trigger_node_id=entry_node.id,
        ))

        logger.info(
            f"Created instance {instance.id} of template {template.template_code} "
            f"at node {entry_node.id}"
        )
        return instance

    async def get_instance(self, instance_id: UUID) -> WorkflowInstance:
        instance = await self.repository.get_instance(instance_id)
        if instance is None:
            raise InstanceNotFound(instance_id)
        return instance

    async def list_instances(
        self,
        template_id: Optional[UUID] = None,
        status: Optional[InstanceStatus] = None,
    ) -> list[WorkflowInstance]:
        return await self.repository.list_instances(template_id, status)

    async def _missing_assignments(
        self,
        template: WorkflowTemplate,
        assignments: dict[str, str],
    ) -> list[str]:
        """TASK nodes performed by a person that have no assignee, in definition order."""
        functions = await self.registry.entries_for(template.definition)

        missing = []
        for node in template.definition.get_task_nodes():
            entry = functions.get(node.function_code or "")
            if entry is not None and entry.implementation_type in AUTOMATED_TASK_TYPES:
                continue
            if not assignments.get(node.id):
                missing.append(node.id)
        return missing
