"""
Execution queue processor.

Advances instances one transition per queue item:

1. Claim the item (PENDING -> PROCESSING as one conditional update)
2. Load the instance and its template definition
3. Resolve the current node
4. No outgoing transitions: the instance completes
5. Otherwise take the first transition (definition order) whose condition
   holds against the latest context, move the instance, and create a task
   when the destination is a TASK node

Errors while advancing fail the queue item and leave the instance as it is.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional
from uuid import UUID

from process_engine.config import Settings, get_settings
from process_engine.core.conditions import evaluate_condition
from process_engine.core.errors import CurrentNodeMissing, DefinitionMissing
from process_engine.core.models import (
    ExecutionQueueItem,
    HistoryEventType,
    NodeType,
    WorkflowNode,
)
from process_engine.core.state_machine import InstanceStatus, QueueItemStatus
from process_engine.orchestrator.context import ContextStore
from process_engine.orchestrator.history import HistoryRecorder
from process_engine.orchestrator.tasks import TaskManager
from process_engine.storage.redis.cache import RedisCache
from process_engine.storage.repository import Repository

logger = logging.getLogger(__name__)


@dataclass
class DrainResult:
    """Counts from one drain of the execution queue."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class QueueProcessor:
    """Processes execution queue items."""

    def __init__(
        self,
        repository: Repository,
        task_manager: TaskManager,
        context_store: ContextStore,
        history: HistoryRecorder,
        cache: Optional[RedisCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.task_manager = task_manager
        self.context_store = context_store
        self.history = history
        self.cache = cache
        self.settings = settings or get_settings()

    async def drain_queue(self, limit: Optional[int] = None) -> DrainResult:
        """
        Process up to ``limit`` PENDING items, oldest first, one at a time.

        Items that are claimed by someone else in the meantime are skipped and
        not counted as processed. A ``limit`` of zero or less processes nothing.
        """
        if limit is None:
            limit = self.settings.queue.drain_limit
        result = DrainResult()
        if limit <= 0:
            return result

        await self.task_manager.run_orphaned_service_tasks(limit)

        items = await self.repository.list_pending_queue_items(limit)
        if not items:
            logger.debug("No pending queue items")
            return result

        logger.info(f"Found {len(items)} pending queue items")

        for item in items:
            outcome = await self._process(item.queue_id)
            if outcome is None:
                result.skipped += 1
                continue

            result.processed += 1
            if outcome:
                result.succeeded += 1
            else:
                result.failed += 1

        logger.info(
            f"Processed {result.processed} items: "
            f"{result.succeeded} succeeded, {result.failed} failed, {result.skipped} skipped"
        )
        return result

    async def process_queue_item(self, queue_id: UUID) -> bool:
        """
        Process one queue item.

        Returns:
            True if the item completed; False if it failed or was not ours to process
        """
        return bool(await self._process(queue_id))

    async def _process(self, queue_id: UUID) -> Optional[bool]:
        item = await self.repository.claim_queue_item(queue_id)
        if item is None:
            logger.debug(f"Queue item {queue_id} is not pending; skipping")
            return None

        instance_id = item.workflow_instance_id
        token = None
        if self.cache is not None:
            token = await self.cache.acquire_instance_lock(instance_id)
            if token is None:
                await self.repository.release_queue_item(queue_id)
                logger.info(f"Instance {instance_id} is being advanced elsewhere; deferring {queue_id}")
                return None

        try:
            await self._advance(item)
        except Exception as e:
            logger.error(f"Error processing queue item {queue_id}: {e}", exc_info=True)
            await self.repository.finish_queue_item(queue_id, QueueItemStatus.FAILED, str(e))
            return False
        finally:
            if self.cache is not None:
                await self.cache.invalidate_instance_status(instance_id)
                if token is not None:
                    await self.cache.release_instance_lock(instance_id, token)

        await self.repository.finish_queue_item(queue_id, QueueItemStatus.COMPLETED)
        await self._check_position(instance_id)
        return True

    async def _advance(self, item: ExecutionQueueItem) -> None:
        """Move the instance along at most one transition."""
        instance = await self.repository.get_instance(item.workflow_instance_id)
        if instance is None:
            raise DefinitionMissing(f"Workflow instance not found: {item.workflow_instance_id}")

        template = await self.repository.get_template(instance.workflow_template_id)
        if template is None:
            raise DefinitionMissing(f"Workflow template not found: {instance.workflow_template_id}")

        definition = template.definition
        current = definition.resolve_node(instance.current_node_id)
        if current is None:
            raise CurrentNodeMissing(instance.current_node_id)

        outgoing = definition.outgoing_transitions(current.id)
        if not outgoing:
            await self._complete_at(
                instance.id, current, was_completed=instance.status == InstanceStatus.COMPLETED
            )
            return

        context = await self.context_store.latest(instance.id)

        for transition in outgoing:
            if not evaluate_condition(transition.condition, context):
                continue

            destination = definition.resolve_node(transition.to_node_id)
            if destination is None:
                logger.error(
                    f"Transition {transition.id} of instance {instance.id} points to "
                    f"unknown node {transition.to_node_id}; trying the next one"
                )
                continue

            logger.info(f"Instance {instance.id}: {current.id} -> {destination.id}")

            if destination.type == NodeType.END:
                status = InstanceStatus.COMPLETED
            else:
                status = InstanceStatus.RUNNING
            await self.repository.update_instance_position(instance.id, destination.id, status)
            instance.current_node_id = destination.id
            instance.status = status

            await self.history.record(
                instance.id,
                HistoryEventType.TRANSITION,
                f"Transitioned from {current.id} to {destination.id}",
                node_id=destination.id,
                from_node_id=current.id,
                to_node_id=destination.id,
                condition=transition.condition,
            )

            if destination.type == NodeType.TASK:
                await self.task_manager.create_task(instance, destination)
            elif destination.type == NodeType.END:
                await self.history.record(
                    instance.id,
                    HistoryEventType.WORKFLOW_COMPLETED,
                    "Workflow completed successfully",
                    node_id=destination.id,
                )
                logger.info(f"Instance {instance.id} completed")
            return

        logger.warning(f"No transitions matched for node {current.id} of instance {instance.id}")

    async def _complete_at(self, instance_id: UUID, node: WorkflowNode, was_completed: bool) -> None:
        """A node without outgoing transitions terminates the instance."""
        await self.repository.set_instance_status(instance_id, InstanceStatus.COMPLETED)
        if was_completed:
            return

        await self.history.record(
            instance_id,
            HistoryEventType.WORKFLOW_COMPLETED,
            f"Workflow completed at {node.type.value} node {node.id} without outgoing transitions",
            node_id=node.id,
        )
        logger.info(f"Instance {instance_id} completed at terminal node {node.id}")

    async def _check_position(self, instance_id: UUID) -> None:
        """Log an error if the instance points at a node its template does not have."""
        instance = await self.repository.get_instance(instance_id)
        if instance is None:
            return
        template = await self.repository.get_template(instance.workflow_template_id)
        if template is None or instance.current_node_id not in template.definition.node_ids:
            logger.error(
                f"Instance {instance_id} is at node {instance.current_node_id}, "
                "which is not part of its template"
            )
