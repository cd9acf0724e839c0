"""
Function registry.

Catalog of the functions TASK nodes reference: how each is carried out and
the data contract its output must satisfy.
"""

import logging
from typing import Optional

from process_engine.core.errors import FunctionNotFound
from process_engine.core.models import (
    FunctionRegistryEntry,
    GraphDefinition,
    ImplementationType,
)
from process_engine.storage.repository import Repository

logger = logging.getLogger(__name__)


class FunctionRegistry:
    """Lookups and registration of function registry entries."""

    def __init__(self, repository: Repository):
        self.repository = repository

    async def register(self, entry: FunctionRegistryEntry) -> FunctionRegistryEntry:
        """Add an entry; raises DuplicateFunctionCode if the code is taken."""
        created = await self.repository.create_function(entry)
        logger.info(
            f"Registered function {created.function_code} ({created.implementation_type.value})"
        )
        return created

    async def lookup(self, function_code: str) -> Optional[FunctionRegistryEntry]:
        """Entry for a code, or None."""
        return await self.repository.get_function(function_code)

    async def require(self, function_code: str) -> FunctionRegistryEntry:
        """Entry for a code; raises FunctionNotFound if missing or inactive."""
        entry = await self.repository.get_function(function_code)
        if entry is None or not entry.is_active:
            raise FunctionNotFound(function_code)
        return entry

    async def list(
        self,
        implementation_type: Optional[ImplementationType] = None,
        is_active: Optional[bool] = None,
    ) -> list[FunctionRegistryEntry]:
        return await self.repository.list_functions(implementation_type, is_active)

    async def set_active(self, function_code: str, is_active: bool) -> FunctionRegistryEntry:
        entry = await self.repository.set_function_active(function_code, is_active)
        if entry is None:
            raise FunctionNotFound(function_code)
        return entry

    async def entries_for(self, definition: GraphDefinition) -> dict[str, FunctionRegistryEntry]:
        """
        Registry entries referenced by the TASK nodes of a definition.

        Unknown codes are simply absent from the result.
        """
        entries: dict[str, FunctionRegistryEntry] = {}
        for node in definition.get_task_nodes():
            code = node.function_code
            if not code or code in entries:
                continue
            entry = await self.repository.get_function(code)
            if entry is not None:
                entries[code] = entry
        return entries
