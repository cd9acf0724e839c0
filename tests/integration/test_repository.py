"""
Repository contract tests against the in-memory backend.
"""

from uuid import uuid4

import pytest

from process_engine.core.errors import DuplicateFunctionCode, DuplicateTemplateCode
from process_engine.core.models import (
    ExecutionQueueItem,
    FunctionRegistryEntry,
    GraphDefinition,
    ImplementationType,
    InstanceTask,
    WorkflowInstance,
    WorkflowTemplate,
)
from process_engine.core.state_machine import (
    InstanceStatus,
    InvalidStateTransitionError,
    QueueItemStatus,
    TaskStatus,
)
from process_engine.storage.memory import InMemoryRepository


def _template(code: str = "TPL") -> WorkflowTemplate:
    return WorkflowTemplate(
        template_code=code,
        name="Template",
        workflow_type="test",
        definition=GraphDefinition(nodes=[{"id": "s", "type": "START"}]),
    )


class TestTemplatesAndFunctions:
    @pytest.mark.asyncio
    async def test_duplicate_template_code(self, repository: InMemoryRepository):
        await repository.create_template(_template("DUP"))

        with pytest.raises(DuplicateTemplateCode):
            await repository.create_template(_template("DUP"))

    @pytest.mark.asyncio
    async def test_duplicate_function_code(self, repository):
        await repository.create_function(FunctionRegistryEntry(function_code="F"))

        with pytest.raises(DuplicateFunctionCode):
            await repository.create_function(FunctionRegistryEntry(function_code="F"))

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, repository):
        template = await repository.create_template(_template())
        template.name = "changed"

        stored = await repository.get_template(template.id)

        assert stored.name == "Template"

    @pytest.mark.asyncio
    async def test_list_filters(self, repository):
        a = await repository.create_template(_template("A"))
        await repository.create_template(_template("B"))
        await repository.set_template_active(a.id, False)

        active = await repository.list_templates(is_active=True)

        assert [t.template_code for t in active] == ["B"]
        assert (await repository.get_template_by_code("A")).is_active is False

    @pytest.mark.asyncio
    async def test_functions_sorted_by_code(self, repository):
        for code in ("ZETA", "ALPHA"):
            await repository.create_function(FunctionRegistryEntry(function_code=code))

        functions = await repository.list_functions()

        assert [f.function_code for f in functions] == ["ALPHA", "ZETA"]


class TestContextVersions:
    """Context writes append a new version each time."""

    @pytest.mark.asyncio
    async def test_versions_increment_from_one(self, repository):
        instance_id = uuid4()

        first = await repository.append_context(instance_id, {"a": 1})
        second = await repository.append_context(instance_id, {"a": 1, "b": 2})

        assert (first.version, second.version) == (1, 2)
        latest = await repository.get_latest_context(instance_id)
        assert latest.context_data == {"a": 1, "b": 2}
        assert [c.version for c in await repository.list_context_versions(instance_id)] == [1, 2]

    @pytest.mark.asyncio
    async def test_no_context(self, repository):
        assert await repository.get_latest_context(uuid4()) is None


class TestQueueClaims:
    """Claim, release and finish of execution queue items."""

    @pytest.mark.asyncio
    async def test_claim_is_exclusive(self, repository):
        item = await repository.enqueue(ExecutionQueueItem(workflow_instance_id=uuid4()))

        first = await repository.claim_queue_item(item.queue_id)
        second = await repository.claim_queue_item(item.queue_id)

        assert first.status == QueueItemStatus.PROCESSING
        assert second is None

    @pytest.mark.asyncio
    async def test_release_and_reclaim(self, repository):
        item = await repository.enqueue(ExecutionQueueItem(workflow_instance_id=uuid4()))
        await repository.claim_queue_item(item.queue_id)

        await repository.release_queue_item(item.queue_id)

        assert (await repository.get_queue_item(item.queue_id)).status == QueueItemStatus.PENDING
        assert await repository.claim_queue_item(item.queue_id) is not None

    @pytest.mark.asyncio
    async def test_finish_requires_claim(self, repository):
        item = await repository.enqueue(ExecutionQueueItem(workflow_instance_id=uuid4()))

        with pytest.raises(InvalidStateTransitionError):
            await repository.finish_queue_item(item.queue_id, QueueItemStatus.COMPLETED)

    @pytest.mark.asyncio
    async def test_finish_stamps_processed_at(self, repository):
        item = await repository.enqueue(ExecutionQueueItem(workflow_instance_id=uuid4()))
        await repository.claim_queue_item(item.queue_id)

        await repository.finish_queue_item(item.queue_id, QueueItemStatus.FAILED, "boom")

        stored = await repository.get_queue_item(item.queue_id)
        assert stored.status == QueueItemStatus.FAILED
        assert stored.error_message == "boom"
        assert stored.processed_at is not None

    @pytest.mark.asyncio
    async def test_pending_items_oldest_first_with_limit(self, repository):
        instance_id = uuid4()
        items = [
            await repository.enqueue(ExecutionQueueItem(workflow_instance_id=instance_id))
            for _ in range(3)
        ]
        await repository.claim_queue_item(items[0].queue_id)

        pending = await repository.list_pending_queue_items(limit=1)

        assert [i.queue_id for i in pending] == [items[1].queue_id]


class TestTaskTransitions:
    @pytest.mark.asyncio
    async def test_transition_when_status_expected(self, repository):
        task = await repository.create_task(
            InstanceTask(workflow_instance_id=uuid4(), node_id="n", function_code="F")
        )

        done = await repository.transition_task(
            task.id, {TaskStatus.PENDING}, TaskStatus.COMPLETED, output_data={"ok": True}
        )

        assert done.status == TaskStatus.COMPLETED
        assert done.output_data == {"ok": True}
        assert done.completed_at is not None

    @pytest.mark.asyncio
    async def test_transition_when_status_unexpected(self, repository):
        task = await repository.create_task(
            InstanceTask(workflow_instance_id=uuid4(), node_id="n", function_code="F")
        )
        await repository.transition_task(task.id, {TaskStatus.PENDING}, TaskStatus.COMPLETED)

        again = await repository.transition_task(task.id, {TaskStatus.PENDING}, TaskStatus.COMPLETED)

        assert again is None

    @pytest.mark.asyncio
    async def test_start_stamps_started_at(self, repository):
        task = await repository.create_task(InstanceTask(
            workflow_instance_id=uuid4(),
            node_id="n",
            function_code="F",
            task_type=ImplementationType.SERVICE_TASK,
        ))

        started = await repository.transition_task(task.id, {TaskStatus.PENDING}, TaskStatus.IN_PROGRESS)

        assert started.started_at is not None
        assert await repository.list_tasks_by_status(
            TaskStatus.IN_PROGRESS, [ImplementationType.SERVICE_TASK]
        )

    @pytest.mark.asyncio
    async def test_pending_tasks_by_assignee(self, repository):
        instance_id = uuid4()
        mine = await repository.create_task(InstanceTask(
            workflow_instance_id=instance_id, node_id="a", function_code="F", assigned_to="alice"
        ))
        await repository.create_task(InstanceTask(
            workflow_instance_id=instance_id, node_id="b", function_code="F", assigned_to="bob"
        ))

        pending = await repository.list_pending_tasks("alice")

        assert [t.id for t in pending] == [mine.id]


class TestInstances:
    @pytest.mark.asyncio
    async def test_completion_stamps_completed_at(self, repository):
        instance = await repository.create_instance(
            WorkflowInstance(workflow_template_id=uuid4(), current_node_id="s")
        )

        await repository.update_instance_position(instance.id, "end", InstanceStatus.COMPLETED)

        stored = await repository.get_instance(instance.id)
        assert stored.current_node_id == "end"
        assert stored.completed_at is not None
