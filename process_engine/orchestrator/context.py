"""
Context store.

Instance context is append-only: every write produces a new version, and
readers always see the highest version.
"""

import logging
from typing import Any
from uuid import UUID

from process_engine.core.models import InstanceContext
from process_engine.storage.repository import Repository

logger = logging.getLogger(__name__)


class ContextStore:
    """Versioned key/value context per instance."""

    def __init__(self, repository: Repository):
        self.repository = repository

    async def initialize(self, instance_id: UUID, initial_context: dict[str, Any]) -> InstanceContext:
        """Write version 1 for a new instance."""
        return await self.repository.append_context(instance_id, dict(initial_context))

    async def latest(self, instance_id: UUID) -> dict[str, Any]:
        """Data of the latest version; empty when nothing was written."""
        context = await self.repository.get_latest_context(instance_id)
        return context.context_data if context else {}

    async def latest_version(self, instance_id: UUID) -> int:
        context = await self.repository.get_latest_context(instance_id)
        return context.version if context else 0

    async def append(self, instance_id: UUID, context_data: dict[str, Any]) -> InstanceContext:
        """Write a full snapshot as the next version."""
        context = await self.repository.append_context(instance_id, context_data)
        logger.debug(f"Context of instance {instance_id} is now at version {context.version}")
        return context

    async def record_node_output(
        self,
        instance_id: UUID,
        node_id: str,
        output: dict[str, Any],
    ) -> InstanceContext:
        """Merge a node's output over the latest version under its node id."""
        data = await self.latest(instance_id)
        data[node_id] = output
        return await self.append(instance_id, data)

    async def versions(self, instance_id: UUID) -> list[InstanceContext]:
        return await self.repository.list_context_versions(instance_id)
