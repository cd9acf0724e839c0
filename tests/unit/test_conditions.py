"""
Unit tests for transition condition evaluation.
"""

import pytest

from process_engine.core.conditions import evaluate_condition


class TestEvaluateCondition:
    """Tests for evaluate_condition."""

    @pytest.mark.parametrize("condition", [None, "", "   ", "true", " true "])
    def test_pass_through_conditions(self, condition):
        assert evaluate_condition(condition, {}) is True

    def test_false_literal_blocks(self):
        assert evaluate_condition("false", {"anything": 1}) is False

    def test_expressions_default_to_true(self):
        """Expressions are not evaluated, whatever the context holds."""
        context = {"review": {"decision": "reject"}}

        assert evaluate_condition("review.decision == 'approve'", context) is True

    def test_context_is_not_modified(self):
        context = {"a": 1}

        evaluate_condition("a > 0", context)

        assert context == {"a": 1}
