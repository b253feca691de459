"""
RatePilot Condition Evaluator

Evaluates AND/OR condition trees against field inputs.

Key features:
- Strict equality for eq/ne/in/notIn (no coercion)
- Numeric coercion for gt/gte/lt/lte/between
- Missing fields evaluate false, except isFalse which evaluates true
- Short-circuit AND/OR; skipped children never appear in the trace
- Every evaluated leaf is recorded in a flat trace
- Groups nested deeper than MAX_CONDITION_DEPTH are rejected
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from ..exceptions import InvalidConditionError
from ..models import (
    ConditionGroup,
    ConditionLeaf,
    ConditionNode,
    ConditionOperator,
    ConditionTraceEntry,
    FieldValue,
    LogicOperator,
    strict_contains,
    strict_equals,
    to_number,
)


_TRUE_VALUES = (True, "true", 1)
_FALSE_VALUES = (False, "false", 0)

# Deepest group nesting accepted by the evaluator
MAX_CONDITION_DEPTH = 100


# =============================================================================
# Comparison Operators
# =============================================================================

def _ordered(actual: Any, expected: Any, op: ConditionOperator) -> bool:
    a = to_number(actual)
    b = to_number(expected)
    if math.isnan(a) or math.isnan(b):
        return False
    if op == ConditionOperator.GT:
        return a > b
    if op == ConditionOperator.GTE:
        return a >= b
    if op == ConditionOperator.LT:
        return a < b
    return a <= b


def _matches_literal(actual: Any, literals: tuple) -> bool:
    return any(strict_equals(actual, literal) for literal in literals)


def compare_values(
    actual: Any,
    operator: ConditionOperator,
    expected: Any,
    expected_end: Optional[Any] = None,
) -> bool:
    """
    Compare a present (non-None) field value with an expected value.

    Args:
        actual: The field value from the inputs
        operator: Comparison operator
        expected: Expected value (a list for in/notIn)
        expected_end: Upper bound for between (defaults to expected)

    Returns:
        Boolean result of the comparison
    """
    if operator == ConditionOperator.EQ:
        return strict_equals(actual, expected)

    elif operator == ConditionOperator.NE:
        return not strict_equals(actual, expected)

    elif operator in (
        ConditionOperator.GT, ConditionOperator.GTE,
        ConditionOperator.LT, ConditionOperator.LTE,
    ):
        return _ordered(actual, expected, operator)

    elif operator == ConditionOperator.BETWEEN:
        upper = expected if expected_end is None else expected_end
        return (
            _ordered(actual, expected, ConditionOperator.GTE)
            and _ordered(actual, upper, ConditionOperator.LTE)
        )

    elif operator == ConditionOperator.IN:
        return isinstance(expected, list) and strict_contains(expected, actual)

    elif operator == ConditionOperator.NOT_IN:
        return isinstance(expected, list) and not strict_contains(expected, actual)

    elif operator == ConditionOperator.CONTAINS:
        return isinstance(actual, str) and isinstance(expected, str) and expected in actual

    elif operator == ConditionOperator.IS_TRUE:
        return _matches_literal(actual, _TRUE_VALUES)

    elif operator == ConditionOperator.IS_FALSE:
        return _matches_literal(actual, _FALSE_VALUES)

    return False


def evaluate_leaf(
    leaf: ConditionLeaf,
    inputs: Mapping[str, FieldValue],
) -> ConditionTraceEntry:
    """Evaluate one leaf and return its trace entry."""
    actual = inputs.get(leaf.field_code)

    if actual is None:
        # Absence only satisfies isFalse
        result = leaf.operator == ConditionOperator.IS_FALSE
    else:
        result = compare_values(actual, leaf.operator, leaf.value, leaf.value_end)

    return ConditionTraceEntry(
        condition_id=leaf.id,
        field_code=leaf.field_code,
        operator=leaf.operator,
        expected_value=leaf.value,
        actual_value=actual,
        result=result,
    )


# =============================================================================
# Condition Evaluator
# =============================================================================

@dataclass
class ConditionEvaluator:
    """
    Evaluates condition trees with short-circuit semantics.

    Usage:
        evaluator = ConditionEvaluator()
        fired = evaluator.evaluate(version.conditions, inputs)
        for entry in evaluator.trace:
            print(entry.field_code, entry.result)
    """

    trace: list[ConditionTraceEntry] = field(default_factory=list)

    def evaluate(
        self,
        node: ConditionNode,
        inputs: Mapping[str, FieldValue],
    ) -> bool:
        """
        Evaluate a condition tree, resetting the trace.

        Raises:
            InvalidConditionError: If a node is neither a leaf nor a group,
                or groups nest deeper than MAX_CONDITION_DEPTH
        """
        self.trace = []
        return self._evaluate_node(node, inputs, 0)

    def _evaluate_node(
        self,
        node: ConditionNode,
        inputs: Mapping[str, FieldValue],
        depth: int,
    ) -> bool:
        if isinstance(node, ConditionLeaf):
            entry = evaluate_leaf(node, inputs)
            self.trace.append(entry)
            return entry.result
        if isinstance(node, ConditionGroup):
            if depth >= MAX_CONDITION_DEPTH:
                raise InvalidConditionError(
                    message=f"Condition groups nested deeper than {MAX_CONDITION_DEPTH}",
                    details={"group_id": node.id},
                )
            if not node.conditions:
                return True
            if node.operator == LogicOperator.AND:
                return self._evaluate_and(node.conditions, inputs, depth + 1)
            return self._evaluate_or(node.conditions, inputs, depth + 1)
        raise InvalidConditionError(
            message=f"Unknown condition node type: {type(node).__name__}",
        )

    def _evaluate_and(
        self,
        children: list[ConditionNode],
        inputs: Mapping[str, FieldValue],
        depth: int,
    ) -> bool:
        """AND in declared order; stops at the first false child."""
        for child in children:
            if not self._evaluate_node(child, inputs, depth):
                return False
        return True

    def _evaluate_or(
        self,
        children: list[ConditionNode],
        inputs: Mapping[str, FieldValue],
        depth: int,
    ) -> bool:
        """OR in declared order; stops at the first true child."""
        for child in children:
            if self._evaluate_node(child, inputs, depth):
                return True
        return False


# =============================================================================
# Convenience Functions
# =============================================================================

def evaluate_condition(
    node: ConditionNode,
    inputs: Mapping[str, FieldValue],
) -> tuple[bool, list[ConditionTraceEntry]]:
    """Evaluate a tree and return (result, leaf trace)."""
    evaluator = ConditionEvaluator()
    result = evaluator.evaluate(node, inputs)
    return result, evaluator.trace
