"""
Domain models for the process orchestration engine.

All models use Pydantic for validation and serialization with full Python 3.10+ type hints.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from process_engine.core.schema import is_valid_json_schema
from process_engine.core.state_machine import InstanceStatus, QueueItemStatus, TaskStatus

# Key inside WorkflowInstance.input_data holding node_id -> assignee
TASK_ASSIGNMENTS_KEY = "_task_assignments"


class NodeType(str, Enum):
    """Supported node types."""

    START = "START"
    TASK = "TASK"
    END = "END"


class ImplementationType(str, Enum):
    """How a registered function is carried out."""

    USER_TASK = "USER_TASK"
    SERVICE_TASK = "SERVICE_TASK"
    AI_AGENT_TASK = "AI_AGENT_TASK"


# Implementation types executed by calling the function's endpoint
AUTOMATED_TASK_TYPES = {ImplementationType.SERVICE_TASK, ImplementationType.AI_AGENT_TASK}


class TriggerType(str, Enum):
    """What caused a queue item to be enqueued."""

    INSTANCE_CREATED = "INSTANCE_CREATED"
    TASK_COMPLETED = "TASK_COMPLETED"
    MANUAL = "MANUAL"


class HistoryEventType(str, Enum):
    """Workflow history event types."""

    INSTANCE_CREATED = "INSTANCE_CREATED"
    TRANSITION = "TRANSITION"
    TASK_CREATED = "TASK_CREATED"
    TASK_COMPLETED = "TASK_COMPLETED"
    TASK_FAILED = "TASK_FAILED"
    WORKFLOW_COMPLETED = "WORKFLOW_COMPLETED"


# ==================== Template Graph ====================

class Position(BaseModel):
    """Canvas position of a node in the designer."""

    x: float = 0.0
    y: float = 0.0


class WorkflowNode(BaseModel):
    """A single step in a workflow template graph."""

    id: str = Field(..., min_length=1, max_length=255, description="Node id, unique within the template")
    type: NodeType = Field(..., description="START, TASK or END")
    label: str = Field(default="", description="Display name")
    function_code: Optional[str] = Field(default=None, description="Registry function (TASK nodes)")
    position: Position = Field(default_factory=Position)
    input_data: dict[str, Any] = Field(default_factory=dict, description="Static input for created tasks")
    config: dict[str, Any] = Field(default_factory=dict)


class WorkflowTransition(BaseModel):
    """A directed edge between two nodes, optionally guarded by a condition."""

    id: str = Field(..., min_length=1, max_length=255)
    from_node_id: str = Field(..., min_length=1)
    to_node_id: str = Field(..., min_length=1)
    condition: Optional[str] = Field(default=None, description="Guard; see core.conditions")
    label: Optional[str] = None


class GraphDefinition(BaseModel):
    """Definition value object: ordered nodes and ordered transitions."""

    nodes: list[WorkflowNode] = Field(..., min_length=1, description="Ordered node list")
    transitions: list[WorkflowTransition] = Field(default_factory=list, description="Ordered transitions")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("nodes")
    @classmethod
    def validate_unique_node_ids(cls, v: list[WorkflowNode]) -> list[WorkflowNode]:
        """Ensure all node IDs are unique."""
        ids = [node.id for node in v]
        if len(ids) != len(set(ids)):
            duplicates = [x for x in ids if ids.count(x) > 1]
            raise ValueError(f"Duplicate node IDs found: {set(duplicates)}")
        return v

    def resolve_node(self, node_id: Optional[str]) -> Optional[WorkflowNode]:
        """Get node by ID, or None when it is not part of the definition."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def outgoing_transitions(self, node_id: str) -> list[WorkflowTransition]:
        """Transitions leaving a node, in definition order."""
        return [t for t in self.transitions if t.from_node_id == node_id]

    def incoming_transitions(self, node_id: str) -> list[WorkflowTransition]:
        """Transitions entering a node, in definition order."""
        return [t for t in self.transitions if t.to_node_id == node_id]

    def get_start_nodes(self) -> list[WorkflowNode]:
        """All START-typed nodes."""
        return [node for node in self.nodes if node.type == NodeType.START]

    def get_entry_node(self) -> Optional[WorkflowNode]:
        """The START node with no incoming transitions (first one in definition order)."""
        for node in self.get_start_nodes():
            if not self.incoming_transitions(node.id):
                return node
        return None

    def get_task_nodes(self) -> list[WorkflowNode]:
        """All TASK-typed nodes, in definition order."""
        return [node for node in self.nodes if node.type == NodeType.TASK]

    @property
    def node_ids(self) -> set[str]:
        """Set of every node id."""
        return {node.id for node in self.nodes}


class WorkflowTemplate(BaseModel):
    """Workflow template. Each template has a unique template code."""

    id: UUID = Field(default_factory=uuid4)
    template_code: str = Field(..., min_length=1, max_length=100, description="Unique template code")
    name: str = Field(..., min_length=1, max_length=255)
    workflow_type: str = Field(..., min_length=1, max_length=100)
    maturity_gate: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    is_active: bool = True
    definition: GraphDefinition

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


# ==================== Function Registry ====================

class FunctionRegistryEntry(BaseModel):
    """Catalog entry describing how a TASK node's work is carried out."""

    id: UUID = Field(default_factory=uuid4)
    function_code: str = Field(..., min_length=1, max_length=100)
    implementation_type: ImplementationType = ImplementationType.USER_TASK
    description: Optional[str] = None
    endpoint_or_path: Optional[str] = Field(default=None, description="Endpoint for service/agent tasks")
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )
    output_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )
    ui_widget_id: Optional[str] = None
    ui_definitions: dict[str, Any] = Field(default_factory=dict)
    timeout_seconds: int = Field(default=60, ge=1, le=3600)
    is_active: bool = True

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("input_schema", "output_schema")
    @classmethod
    def validate_schema_shape(cls, v: dict[str, Any]) -> dict[str, Any]:
        """Schemas must be object schemas with typed properties."""
        if not is_valid_json_schema(v):
            raise ValueError("Schema must be an object schema whose properties all declare a valid type")
        return v

    @model_validator(mode="after")
    def validate_endpoint(self) -> "FunctionRegistryEntry":
        """Service and agent tasks need an endpoint to call."""
        if self.implementation_type in AUTOMATED_TASK_TYPES and not self.endpoint_or_path:
            raise ValueError(
                f"endpoint_or_path is required for {self.implementation_type.value}"
            )
        return self


# ==================== Runtime Records ====================

class WorkflowInstance(BaseModel):
    """One running execution of a template."""

    id: UUID = Field(default_factory=uuid4)
    workflow_template_id: UUID
    instance_name: Optional[str] = None
    status: InstanceStatus = InstanceStatus.RUNNING
    current_node_id: str
    input_data: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def task_assignments(self) -> dict[str, Any]:
        """node_id -> assignee map captured at creation."""
        return self.input_data.get(TASK_ASSIGNMENTS_KEY) or {}


class InstanceContext(BaseModel):
    """One version of an instance's context data."""

    id: UUID = Field(default_factory=uuid4)
    workflow_instance_id: UUID
    version: int = Field(..., ge=1)
    context_data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class InstanceTask(BaseModel):
    """A unit of work created when an instance visits a TASK node."""

    id: UUID = Field(default_factory=uuid4)
    workflow_instance_id: UUID
    node_id: str
    function_code: str
    task_type: ImplementationType = ImplementationType.USER_TASK
    status: TaskStatus = TaskStatus.PENDING
    assigned_to: Optional[str] = None
    input_data: dict[str, Any] = Field(default_factory=dict)
    output_data: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ExecutionQueueItem(BaseModel):
    """A request to re-evaluate and advance one instance."""

    queue_id: UUID = Field(default_factory=uuid4)
    workflow_instance_id: UUID
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_node_id: Optional[str] = None
    status: QueueItemStatus = QueueItemStatus.PENDING
    error_message: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    processed_at: Optional[datetime] = None


class HistoryEvent(BaseModel):
    """Audit record of something that happened to an instance."""

    id: UUID = Field(default_factory=uuid4)
    workflow_instance_id: UUID
    event_type: HistoryEventType
    node_id: Optional[str] = None
    task_id: Optional[UUID] = None
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    actor_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
