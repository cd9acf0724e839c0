"""
Unit tests for template graph validation.
"""

from process_engine.core.graph import TemplateValidator
from process_engine.core.models import FunctionRegistryEntry, GraphDefinition


def _functions(*codes: str, inactive: tuple[str, ...] = ()) -> dict[str, FunctionRegistryEntry]:
    entries = {code: FunctionRegistryEntry(function_code=code) for code in codes}
    for code in inactive:
        entries[code] = FunctionRegistryEntry(function_code=code, is_active=False)
    return entries


def _validate(nodes, transitions, functions=None):
    definition = GraphDefinition(nodes=nodes, transitions=transitions)
    return TemplateValidator(definition, functions if functions is not None else _functions("A", "B")).validate()


def _codes(items) -> list[str]:
    return [item.code for item in items]


class TestTemplateValidator:
    """Tests for TemplateValidator."""

    def test_valid_linear_template(self):
        result = _validate(
            nodes=[
                {"id": "s", "type": "START"},
                {"id": "a", "type": "TASK", "function_code": "A"},
                {"id": "e", "type": "END"},
            ],
            transitions=[
                {"id": "t1", "from_node_id": "s", "to_node_id": "a"},
                {"id": "t2", "from_node_id": "a", "to_node_id": "e"},
            ],
        )

        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []
        assert result.entry_node_id == "s"
        assert result.reachable_nodes == {"s", "a", "e"}

    def test_cycles_are_allowed(self):
        """Rework loops are valid graphs."""
        result = _validate(
            nodes=[
                {"id": "s", "type": "START"},
                {"id": "a", "type": "TASK", "function_code": "A"},
                {"id": "b", "type": "TASK", "function_code": "B"},
                {"id": "e", "type": "END"},
            ],
            transitions=[
                {"id": "t1", "from_node_id": "s", "to_node_id": "a"},
                {"id": "t2", "from_node_id": "a", "to_node_id": "b"},
                {"id": "t3", "from_node_id": "b", "to_node_id": "a", "condition": "needs_rework"},
                {"id": "t4", "from_node_id": "b", "to_node_id": "e"},
            ],
        )

        assert result.is_valid

    def test_transition_to_missing_node(self):
        result = _validate(
            nodes=[{"id": "s", "type": "START"}, {"id": "e", "type": "END"}],
            transitions=[{"id": "t1", "from_node_id": "s", "to_node_id": "ghost"}],
        )

        assert not result.is_valid
        assert "INVALID_TRANSITION" in _codes(result.errors)
        assert result.errors[0].node_id == "ghost"

    def test_duplicate_transition_ids(self):
        result = _validate(
            nodes=[{"id": "s", "type": "START"}, {"id": "e", "type": "END"}],
            transitions=[
                {"id": "t1", "from_node_id": "s", "to_node_id": "e"},
                {"id": "t1", "from_node_id": "s", "to_node_id": "e"},
            ],
        )

        assert "DUPLICATE_TRANSITION_ID" in _codes(result.errors)

    def test_no_start_node(self):
        result = _validate(
            nodes=[{"id": "a", "type": "TASK", "function_code": "A"}, {"id": "e", "type": "END"}],
            transitions=[{"id": "t1", "from_node_id": "a", "to_node_id": "e"}],
        )

        assert _codes(result.errors) == ["NO_START_NODE"]
        assert result.entry_node_id is None

    def test_multiple_entry_points(self):
        result = _validate(
            nodes=[
                {"id": "s1", "type": "START"},
                {"id": "s2", "type": "START"},
                {"id": "e", "type": "END"},
            ],
            transitions=[
                {"id": "t1", "from_node_id": "s1", "to_node_id": "e"},
                {"id": "t2", "from_node_id": "s2", "to_node_id": "e"},
            ],
        )

        assert "MULTIPLE_ENTRY_POINTS" in _codes(result.errors)

    def test_start_with_incoming_transition_only(self):
        result = _validate(
            nodes=[{"id": "s", "type": "START"}, {"id": "a", "type": "TASK", "function_code": "A"}],
            transitions=[
                {"id": "t1", "from_node_id": "s", "to_node_id": "a"},
                {"id": "t2", "from_node_id": "a", "to_node_id": "s"},
            ],
        )

        assert "NO_ENTRY_POINT" in _codes(result.errors)

    def test_task_without_function_code(self):
        result = _validate(
            nodes=[{"id": "s", "type": "START"}, {"id": "a", "type": "TASK"}, {"id": "e", "type": "END"}],
            transitions=[
                {"id": "t1", "from_node_id": "s", "to_node_id": "a"},
                {"id": "t2", "from_node_id": "a", "to_node_id": "e"},
            ],
        )

        assert _codes(result.errors) == ["MISSING_FUNCTION_CODE"]
        assert result.errors[0].node_id == "a"

    def test_unknown_and_inactive_functions(self):
        result = _validate(
            nodes=[
                {"id": "s", "type": "START"},
                {"id": "a", "type": "TASK", "function_code": "NOPE"},
                {"id": "b", "type": "TASK", "function_code": "OLD"},
                {"id": "e", "type": "END"},
            ],
            transitions=[
                {"id": "t1", "from_node_id": "s", "to_node_id": "a"},
                {"id": "t2", "from_node_id": "a", "to_node_id": "b"},
                {"id": "t3", "from_node_id": "b", "to_node_id": "e"},
            ],
            functions=_functions("A", inactive=("OLD",)),
        )

        assert _codes(result.errors) == ["UNKNOWN_FUNCTION", "INACTIVE_FUNCTION"]
        assert result.errors[0].details["function_code"] == "NOPE"

    def test_non_end_node_without_transitions_is_a_warning(self):
        """A TASK node without outgoing transitions completes the instance."""
        result = _validate(
            nodes=[{"id": "s", "type": "START"}, {"id": "a", "type": "TASK", "function_code": "A"}],
            transitions=[{"id": "t1", "from_node_id": "s", "to_node_id": "a"}],
        )

        assert result.is_valid
        assert _codes(result.warnings) == ["IMPLICIT_END"]
        assert result.warnings[0].node_id == "a"

    def test_unreachable_nodes_warning(self):
        result = _validate(
            nodes=[
                {"id": "s", "type": "START"},
                {"id": "e", "type": "END"},
                {"id": "orphan", "type": "TASK", "function_code": "A"},
            ],
            transitions=[
                {"id": "t1", "from_node_id": "s", "to_node_id": "e"},
                {"id": "t2", "from_node_id": "orphan", "to_node_id": "e"},
            ],
        )

        assert result.is_valid
        assert "UNREACHABLE_NODES" in _codes(result.warnings)
        unreachable = next(w for w in result.warnings if w.code == "UNREACHABLE_NODES")
        assert unreachable.details["unreachable_nodes"] == ["orphan"]
