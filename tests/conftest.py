"""
Pytest fixtures and configuration for tests.
"""

from typing import Any, Optional
from uuid import uuid4

import pytest
import pytest_asyncio

from process_engine.config import Environment, Settings, StorageBackend
from process_engine.config.settings import QueueSettings, RedisSettings, ServiceTaskSettings
from process_engine.core.models import (
    FunctionRegistryEntry,
    ImplementationType,
    WorkflowTemplate,
)
from process_engine.orchestrator.engine import ProcessEngine
from process_engine.storage.memory import InMemoryRepository


def _settings(drain_on_trigger: bool) -> Settings:
    return Settings(
        environment=Environment.TEST,
        debug=True,
        log_level="DEBUG",
        storage_backend=StorageBackend.MEMORY,
        redis=RedisSettings(enabled=False),
        queue=QueueSettings(drain_limit=10, drain_on_trigger=drain_on_trigger),
        service_task=ServiceTaskSettings(enabled=False),
    )


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings; queue drains after every trigger."""
    return _settings(drain_on_trigger=True)


@pytest.fixture
def manual_settings() -> Settings:
    """Test settings where the queue is only drained explicitly."""
    return _settings(drain_on_trigger=False)


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def engine(repository, test_settings) -> ProcessEngine:
    """Engine that advances instances as soon as they are created or a task completes."""
    return ProcessEngine(repository, settings=test_settings)


@pytest.fixture
def manual_engine(repository, manual_settings) -> ProcessEngine:
    """Engine whose queue must be drained by the test."""
    return ProcessEngine(repository, settings=manual_settings)


@pytest.fixture
def review_function() -> FunctionRegistryEntry:
    """Human review with a required decision."""
    return FunctionRegistryEntry(
        function_code="REVIEW_APPLICATION",
        implementation_type=ImplementationType.USER_TASK,
        description="Review application",
        output_schema={
            "type": "object",
            "properties": {
                "decision": {"type": "string", "enum": ["approve", "reject"], "title": "Decision"},
                "comment": {"type": "string", "maxLength": 500},
            },
            "required": ["decision"],
        },
        ui_widget_id="review-form",
    )


@pytest.fixture
def approval_function() -> FunctionRegistryEntry:
    return FunctionRegistryEntry(
        function_code="FINAL_APPROVAL",
        implementation_type=ImplementationType.USER_TASK,
        description="Final approval",
        output_schema={
            "type": "object",
            "properties": {
                "approved": {"type": "boolean"},
                "amount": {"type": "number", "minimum": 0},
            },
            "required": ["approved"],
        },
    )


@pytest.fixture
def scoring_function() -> FunctionRegistryEntry:
    """Automated scoring service."""
    return FunctionRegistryEntry(
        function_code="CREDIT_SCORE",
        implementation_type=ImplementationType.SERVICE_TASK,
        description="Credit scoring",
        endpoint_or_path="/internal/credit-score",
        output_schema={
            "type": "object",
            "properties": {"score": {"type": "integer", "minimum": 0, "maximum": 1000}},
            "required": ["score"],
        },
        timeout_seconds=5,
    )


@pytest_asyncio.fixture
async def registered_functions(repository, review_function, approval_function, scoring_function):
    """Register the sample functions in the repository."""
    for entry in (review_function, approval_function, scoring_function):
        await repository.create_function(entry)
    return {
        "review": review_function,
        "approval": approval_function,
        "scoring": scoring_function,
    }


@pytest.fixture
def sample_template_json() -> dict:
    """Linear two-step review: start -> review -> approve -> end."""
    return {
        "template_code": "LOAN_REVIEW",
        "name": "Loan Review",
        "workflow_type": "lending",
        "maturity_gate": "GA",
        "definition": {
            "nodes": [
                {"id": "start", "type": "START", "label": "Start"},
                {
                    "id": "review",
                    "type": "TASK",
                    "label": "Review",
                    "function_code": "REVIEW_APPLICATION",
                    "input_data": {"checklist": ["income", "identity"]},
                },
                {"id": "approve", "type": "TASK", "label": "Approve", "function_code": "FINAL_APPROVAL"},
                {"id": "end", "type": "END", "label": "Done"},
            ],
            "transitions": [
                {"id": "t1", "from_node_id": "start", "to_node_id": "review"},
                {"id": "t2", "from_node_id": "review", "to_node_id": "approve"},
                {"id": "t3", "from_node_id": "approve", "to_node_id": "end"},
            ],
        },
    }


@pytest.fixture
def sample_assignments() -> dict[str, str]:
    return {"review": "alice", "approve": "bob"}


@pytest_asyncio.fixture
async def sample_template(engine, registered_functions, sample_template_json) -> WorkflowTemplate:
    """The linear review template, created through the template service."""
    return await engine.templates.create_template(sample_template_json)


@pytest.fixture
def build_template():
    """Factory creating a template from node and transition lists."""

    async def _build(
        engine: ProcessEngine,
        nodes: list[dict[str, Any]],
        transitions: list[dict[str, Any]],
        template_code: Optional[str] = None,
    ) -> WorkflowTemplate:
        return await engine.templates.create_template({
            "template_code": template_code or f"TPL_{uuid4().hex[:8].upper()}",
            "name": "Test Template",
            "workflow_type": "test",
            "definition": {"nodes": nodes, "transitions": transitions},
        })

    return _build
