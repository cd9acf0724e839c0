"""Audit trail of instance events."""

from typing import Any, Optional
from uuid import UUID

from process_engine.core.models import HistoryEvent, HistoryEventType
from process_engine.storage.repository import Repository


class HistoryRecorder:
    """Appends history events for instances."""

    def __init__(self, repository: Repository):
        self.repository = repository

    async def record(
        self,
        instance_id: UUID,
        event_type: HistoryEventType,
        description: str,
        node_id: Optional[str] = None,
        task_id: Optional[UUID] = None,
        actor_id: Optional[str] = None,
        **metadata: Any,
    ) -> HistoryEvent:
        event = HistoryEvent(
            workflow_instance_id=instance_id,
            event_type=event_type,
            node_id=node_id,
            task_id=task_id,
            description=description,
            metadata=metadata,
            actor_id=actor_id,
        )
        return await self.repository.add_history(event)

    async def list(self, instance_id: UUID) -> list[HistoryEvent]:
        return await self.repository.list_history(instance_id)
