"""
Template service.

Templates are validated against the function registry when created and when
their definition is replaced. They are never deleted, only deactivated.
"""

import logging
from typing import Any, Optional
from uuid import UUID

from process_engine.core.errors import TemplateNotFound, TemplateValidationError
from process_engine.core.graph import TemplateValidator, ValidationResult
from process_engine.core.models import GraphDefinition, WorkflowTemplate
from process_engine.orchestrator.registry import FunctionRegistry
from process_engine.storage.repository import Repository

logger = logging.getLogger(__name__)


class TemplateService:
    """Create, validate and look up workflow templates."""

    def __init__(self, repository: Repository, registry: FunctionRegistry):
        self.repository = repository
        self.registry = registry

    async def create_template(self, template_json: dict[str, Any]) -> WorkflowTemplate:
        """
        Parse, validate and persist a template.

        Raises:
            pydantic.ValidationError: If the payload is malformed
            TemplateValidationError: If the graph fails validation
            DuplicateTemplateCode: If the template code is taken
        """
        template = WorkflowTemplate(**template_json)
        functions = await self.registry.entries_for(template.definition)
        result = TemplateValidator(template.definition, functions).validate()
        self._raise_on_errors(template.template_code, result)

        created = await self.repository.create_template(template)
        logger.info(
            f"Created template {created.template_code} ({created.id}) "
            f"with {len(created.definition.nodes)} nodes"
        )
        return created

    async def replace_definition(
        self, template_id: UUID, definition: GraphDefinition
    ) -> WorkflowTemplate:
        """Validate and replace a template's whole definition."""
        template = await self.get_template(template_id)

        functions = await self.registry.entries_for(definition)
        result = TemplateValidator(definition, functions).validate()
        self._raise_on_errors(template.template_code, result)

        updated = await self.repository.update_template_definition(template_id, definition)
        if updated is None:
            raise TemplateNotFound(template_id)
        logger.info(f"Replaced definition of template {updated.template_code}")
        return updated

    async def set_active(self, template_id: UUID, is_active: bool) -> WorkflowTemplate:
        template = await self.repository.set_template_active(template_id, is_active)
        if template is None:
            raise TemplateNotFound(template_id)
        logger.info(
            f"Template {template.template_code} {'activated' if is_active else 'deactivated'}"
        )
        return template

    async def get_template(self, template_id: UUID) -> WorkflowTemplate:
        template = await self.repository.get_template(template_id)
        if template is None:
            raise TemplateNotFound(template_id)
        return template

    async def list_templates(
        self,
        workflow_type: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> list[WorkflowTemplate]:
        return await self.repository.list_templates(workflow_type, is_active)

    def _raise_on_errors(self, template_code: str, result: ValidationResult) -> None:
        for warning in result.warnings:
            logger.warning(f"Template {template_code}: {warning.code}: {warning.message}")
        if not result.is_valid:
            raise TemplateValidationError(result.errors)
