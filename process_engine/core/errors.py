"""
Engine exception hierarchy.

Validation errors are raised synchronously at the call boundary and leave
state unchanged. Advance errors abort a single queue item.
"""

from typing import Any, Optional


class ProcessEngineError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)


# ==================== Validation Errors ====================

class TemplateNotFound(ProcessEngineError):
    """Raised when a template id does not resolve."""

    def __init__(self, template_id: Any):
        self.template_id = template_id
        super().__init__(f"Workflow template not found: {template_id}", template_id=str(template_id))


class TemplateInactive(ProcessEngineError):
    """Raised when instantiating a deactivated template."""

    def __init__(self, template_id: Any):
        self.template_id = template_id
        super().__init__(f"Workflow template is not active: {template_id}", template_id=str(template_id))


class DuplicateTemplateCode(ProcessEngineError):
    """Raised when a template code is already taken."""

    def __init__(self, template_code: str):
        self.template_code = template_code
        super().__init__(f"Template code already exists: {template_code}", template_code=template_code)


class TemplateValidationError(ProcessEngineError):
    """Raised when a template definition fails graph validation."""

    def __init__(self, errors: list[Any]):
        self.errors = errors
        summary = "; ".join(f"{e.code}: {e.message}" for e in errors)
        super().__init__(f"Workflow template validation failed: {summary}")


class FunctionNotFound(ProcessEngineError):
    """Raised when a function code does not resolve in the registry."""

    def __init__(self, function_code: str):
        self.function_code = function_code
        super().__init__(f"Function not found: {function_code}", function_code=function_code)


class DuplicateFunctionCode(ProcessEngineError):
    """Raised when registering a function code twice."""

    def __init__(self, function_code: str):
        self.function_code = function_code
        super().__init__(f"Function code already exists: {function_code}", function_code=function_code)


class MissingAssignment(ProcessEngineError):
    """Raised when a human task node has no assignee at instance creation."""

    def __init__(self, node_ids: list[str]):
        self.node_ids = node_ids
        super().__init__(
            f"Missing task assignments for nodes: {', '.join(node_ids)}",
            node_ids=node_ids,
        )


class InstanceNotFound(ProcessEngineError):
    """Raised when an instance id does not resolve."""

    def __init__(self, instance_id: Any):
        self.instance_id = instance_id
        super().__init__(f"Workflow instance not found: {instance_id}", instance_id=str(instance_id))


class TaskNotFound(ProcessEngineError):
    """Raised when a task id does not resolve."""

    def __init__(self, task_id: Any):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}", task_id=str(task_id))


class TaskAlreadyResolved(ProcessEngineError):
    """Raised when completing a task that is no longer PENDING."""

    def __init__(self, task_id: Any, status: str):
        self.task_id = task_id
        self.status = status
        super().__init__(f"Task is already {status.lower()}", task_id=str(task_id), status=status)


class TaskNotAssigned(ProcessEngineError):
    """Raised when the completing actor is not the task's assignee."""

    def __init__(self, task_id: Any, actor_id: str):
        self.task_id = task_id
        self.actor_id = actor_id
        super().__init__(f"Task {task_id} is not assigned to {actor_id}", task_id=str(task_id))


class SchemaValidationError(ProcessEngineError):
    """Raised when task output does not satisfy the output schema."""

    def __init__(self, errors: list[dict[str, str]]):
        self.errors = errors
        super().__init__("Output validation failed", errors=errors)


# ==================== Advance Errors ====================

class AdvanceError(ProcessEngineError):
    """Fatal error while advancing an instance; fails the queue item."""


class DefinitionMissing(AdvanceError):
    """Raised when the instance or its template definition cannot be loaded."""


class CurrentNodeMissing(AdvanceError):
    """Raised when current_node_id is not a node of the definition."""

    def __init__(self, node_id: Optional[str]):
        self.node_id = node_id
        super().__init__(f"Current node not found: {node_id}", node_id=node_id)


# ==================== Task Execution Errors ====================

class ServiceTaskFailed(ProcessEngineError):
    """Raised when a service or agent task endpoint call does not succeed."""
