"""
Template service and function registry tests.
"""

from uuid import uuid4

import pytest
from pydantic import ValidationError

from process_engine.core.errors import (
    DuplicateTemplateCode,
    FunctionNotFound,
    TemplateNotFound,
    TemplateValidationError,
)
from process_engine.core.models import GraphDefinition, ImplementationType


class TestTemplateService:
    """Tests for TemplateService."""

    @pytest.mark.asyncio
    async def test_create_template(self, engine, registered_functions, sample_template_json):
        template = await engine.templates.create_template(sample_template_json)

        stored = await engine.templates.get_template(template.id)
        assert stored.template_code == "LOAN_REVIEW"
        assert stored.maturity_gate == "GA"
        assert [n.id for n in stored.definition.nodes] == ["start", "review", "approve", "end"]

    @pytest.mark.asyncio
    async def test_duplicate_code(self, engine, registered_functions, sample_template_json):
        await engine.templates.create_template(sample_template_json)

        with pytest.raises(DuplicateTemplateCode):
            await engine.templates.create_template(sample_template_json)

    @pytest.mark.asyncio
    async def test_unregistered_function_rejected(self, engine, sample_template_json):
        with pytest.raises(TemplateValidationError) as exc_info:
            await engine.templates.create_template(sample_template_json)

        codes = [e.code for e in exc_info.value.errors]
        assert codes == ["UNKNOWN_FUNCTION", "UNKNOWN_FUNCTION"]
        assert await engine.templates.list_templates() == []

    @pytest.mark.asyncio
    async def test_malformed_payload(self, engine):
        with pytest.raises(ValidationError):
            await engine.templates.create_template({"template_code": "X", "name": "X"})

    @pytest.mark.asyncio
    async def test_replace_definition(self, engine, sample_template):
        definition = GraphDefinition(
            nodes=[
                {"id": "start", "type": "START"},
                {"id": "review", "type": "TASK", "function_code": "REVIEW_APPLICATION"},
                {"id": "end", "type": "END"},
            ],
            transitions=[
                {"id": "t1", "from_node_id": "start", "to_node_id": "review"},
                {"id": "t2", "from_node_id": "review", "to_node_id": "end"},
            ],
        )

        updated = await engine.templates.replace_definition(sample_template.id, definition)

        assert [n.id for n in updated.definition.nodes] == ["start", "review", "end"]

    @pytest.mark.asyncio
    async def test_replace_definition_validates(self, engine, sample_template):
        definition = GraphDefinition(nodes=[{"id": "only", "type": "END"}])

        with pytest.raises(TemplateValidationError):
            await engine.templates.replace_definition(sample_template.id, definition)

        stored = await engine.templates.get_template(sample_template.id)
        assert len(stored.definition.nodes) == 4

    @pytest.mark.asyncio
    async def test_activation(self, engine, sample_template):
        await engine.templates.set_active(sample_template.id, False)

        assert await engine.templates.list_templates(is_active=True) == []
        assert len(await engine.templates.list_templates(workflow_type="lending")) == 1

    @pytest.mark.asyncio
    async def test_unknown_template(self, engine):
        with pytest.raises(TemplateNotFound):
            await engine.templates.get_template(uuid4())


class TestFunctionRegistry:
    """Tests for FunctionRegistry."""

    @pytest.mark.asyncio
    async def test_require_inactive(self, engine, registered_functions):
        await engine.registry.set_active("FINAL_APPROVAL", False)

        with pytest.raises(FunctionNotFound):
            await engine.registry.require("FINAL_APPROVAL")
        assert (await engine.registry.lookup("FINAL_APPROVAL")).is_active is False

    @pytest.mark.asyncio
    async def test_list_by_type(self, engine, registered_functions):
        services = await engine.registry.list(implementation_type=ImplementationType.SERVICE_TASK)

        assert [f.function_code for f in services] == ["CREDIT_SCORE"]

    @pytest.mark.asyncio
    async def test_entries_for_definition(self, engine, registered_functions, sample_template_json):
        definition = GraphDefinition(**sample_template_json["definition"])

        entries = await engine.registry.entries_for(definition)

        assert set(entries) == {"REVIEW_APPLICATION", "FINAL_APPROVAL"}
