"""Core domain models and business logic."""

from process_engine.core.conditions import evaluate_condition
from process_engine.core.graph import TemplateValidator, ValidationResult
from process_engine.core.models import (
    ExecutionQueueItem,
    FunctionRegistryEntry,
    GraphDefinition,
    HistoryEvent,
    ImplementationType,
    InstanceContext,
    InstanceTask,
    NodeType,
    TriggerType,
    WorkflowInstance,
    WorkflowNode,
    WorkflowTemplate,
    WorkflowTransition,
)
from process_engine.core.state_machine import (
    InstanceStatus,
    QueueItemStateMachine,
    QueueItemStatus,
    TaskStateMachine,
    TaskStatus,
)

__all__ = [
    "ExecutionQueueItem",
    "FunctionRegistryEntry",
    "GraphDefinition",
    "HistoryEvent",
    "ImplementationType",
    "InstanceContext",
    "InstanceTask",
    "NodeType",
    "TriggerType",
    "WorkflowInstance",
    "WorkflowNode",
    "WorkflowTemplate",
    "WorkflowTransition",
    "InstanceStatus",
    "QueueItemStatus",
    "QueueItemStateMachine",
    "TaskStatus",
    "TaskStateMachine",
    "TemplateValidator",
    "ValidationResult",
    "evaluate_condition",
]
