"""
Template graph validation.

Runs once when a template is created (or its definition replaced); the
processor does not re-validate at runtime.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Optional

from process_engine.core.models import (
    FunctionRegistryEntry,
    GraphDefinition,
    NodeType,
)


@dataclass
class ValidationError:
    """Represents a single validation error."""

    code: str
    message: str
    node_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationResult:
    """Result of template graph validation."""

    is_valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationError] = field(default_factory=list)

    entry_node_id: Optional[str] = None
    reachable_nodes: set[str] = field(default_factory=set)

    def add_error(
        self,
        code: str,
        message: str,
        node_id: Optional[str] = None,
        **details: Any,
    ) -> None:
        """Add a validation error."""
        self.errors.append(ValidationError(code, message, node_id, details))
        self.is_valid = False

    def add_warning(
        self,
        code: str,
        message: str,
        node_id: Optional[str] = None,
        **details: Any,
    ) -> None:
        """Add a validation warning."""
        self.warnings.append(ValidationError(code, message, node_id, details))


class TemplateValidator:
    """
    Validates a template graph against the function registry.

    The graph may contain cycles; only references, entry point, and
    function bindings are checked.
    """

    def __init__(
        self,
        definition: GraphDefinition,
        functions: dict[str, FunctionRegistryEntry],
    ):
        self.definition = definition
        self.functions = functions
        self._node_ids = definition.node_ids

    def validate(self) -> ValidationResult:
        """
        Perform full validation of the template graph.

        Returns:
            ValidationResult with errors, warnings, and the entry node
        """
        result = ValidationResult(is_valid=True)

        self._validate_transition_references(result)
        self._validate_unique_transition_ids(result)
        self._validate_entry_point(result)
        self._validate_task_functions(result)
        self._check_terminal_nodes(result)
        self._check_unreachable_nodes(result)

        return result

    def _validate_transition_references(self, result: ValidationResult) -> None:
        """Every transition must connect two existing nodes."""
        for transition in self.definition.transitions:
            for end in ("from_node_id", "to_node_id"):
                node_id = getattr(transition, end)
                if node_id not in self._node_ids:
                    result.add_error(
                        code="INVALID_TRANSITION",
                        message=(
                            f"Transition '{transition.id}' references non-existent node '{node_id}'"
                        ),
                        node_id=node_id,
                        transition_id=transition.id,
                        end=end,
                    )

    def _validate_unique_transition_ids(self, result: ValidationResult) -> None:
        seen: set[str] = set()
        for transition in self.definition.transitions:
            if transition.id in seen:
                result.add_error(
                    code="DUPLICATE_TRANSITION_ID",
                    message=f"Duplicate transition id '{transition.id}'",
                    transition_id=transition.id,
                )
            seen.add(transition.id)

    def _validate_entry_point(self, result: ValidationResult) -> None:
        """Exactly one START node without incoming transitions is the entry point."""
        start_nodes = self.definition.get_start_nodes()
        if not start_nodes:
            result.add_error(
                code="NO_START_NODE",
                message="Workflow has no START node",
            )
            return

        entry_candidates = [
            node.id for node in start_nodes
            if not self.definition.incoming_transitions(node.id)
        ]
        if not entry_candidates:
            result.add_error(
                code="NO_ENTRY_POINT",
                message="Every START node has incoming transitions",
            )
        elif len(entry_candidates) > 1:
            result.add_error(
                code="MULTIPLE_ENTRY_POINTS",
                message=f"More than one START node without incoming transitions: {entry_candidates}",
                entry_nodes=entry_candidates,
            )
        else:
            result.entry_node_id = entry_candidates[0]

    def _validate_task_functions(self, result: ValidationResult) -> None:
        """TASK nodes need a function code that is registered and active."""
        for node in self.definition.get_task_nodes():
            if not node.function_code:
                result.add_error(
                    code="MISSING_FUNCTION_CODE",
                    message=f"TASK node '{node.id}' has no function code",
                    node_id=node.id,
                )
                continue

            entry = self.functions.get(node.function_code)
            if entry is None:
                result.add_error(
                    code="UNKNOWN_FUNCTION",
                    message=f"TASK node '{node.id}' references unknown function '{node.function_code}'",
                    node_id=node.id,
                    function_code=node.function_code,
                )
            elif not entry.is_active:
                result.add_error(
                    code="INACTIVE_FUNCTION",
                    message=f"TASK node '{node.id}' references inactive function '{node.function_code}'",
                    node_id=node.id,
                    function_code=node.function_code,
                )

    def _check_terminal_nodes(self, result: ValidationResult) -> None:
        """Non-END nodes without transitions complete the instance when reached."""
        for node in self.definition.nodes:
            if node.type != NodeType.END and not self.definition.outgoing_transitions(node.id):
                result.add_warning(
                    code="IMPLICIT_END",
                    message=(
                        f"{node.type.value} node '{node.id}' has no outgoing transitions "
                        "and will complete the instance"
                    ),
                    node_id=node.id,
                )

    def _check_unreachable_nodes(self, result: ValidationResult) -> None:
        """Check for nodes that cannot be reached from the entry point."""
        if result.entry_node_id is None:
            return

        reachable = {result.entry_node_id}
        queue = deque([result.entry_node_id])

        while queue:
            node_id = queue.popleft()
            for transition in self.definition.outgoing_transitions(node_id):
                neighbor = transition.to_node_id
                if neighbor in self._node_ids and neighbor not in reachable:
                    reachable.add(neighbor)
                    queue.append(neighbor)

        result.reachable_nodes = reachable

        unreachable = [node.id for node in self.definition.nodes if node.id not in reachable]
        if unreachable:
            result.add_warning(
                code="UNREACHABLE_NODES",
                message=f"Nodes {unreachable} are not reachable from the START node",
                unreachable_nodes=unreachable,
            )
