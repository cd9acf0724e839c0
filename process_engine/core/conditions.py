"""
Transition condition evaluation.

The condition language is intentionally minimal: only the literal ``"false"``
blocks a transition. Missing, empty and ``"true"`` conditions pass, and any
other expression is not evaluated and defaults to permit.
"""

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

TRUE_LITERALS = {"", "true"}
FALSE_LITERAL = "false"


def evaluate_condition(condition: Optional[str], context: dict[str, Any]) -> bool:
    """
    Evaluate a transition condition against an instance context snapshot.

    Args:
        condition: Condition text from the transition
        context: Latest instance context data (read-only)

    Returns:
        True if the transition may be taken
    """
    if condition is None:
        return True

    text = condition.strip()
    if text in TRUE_LITERALS:
        return True
    if text == FALSE_LITERAL:
        return False

    logger.info(f"Condition '{text}' is not evaluated; defaulting to true")
    return True
