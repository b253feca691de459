"""
RatePilot Rating Models

Models for the premium-calculation graph and its evaluation results.

Key components:
- RatingStep: One node of the dependency graph
- RatingTable: Preloaded table data for lookup steps
- EvaluationContext: Inputs, state and table cache for one evaluation
- EvaluationResult: Outputs, per-step trace, errors and result hash
- DeterminismValidationResult: Static checks with a dependency graph
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

from .enums import (
    ConditionOperator,
    EvaluationErrorType,
    RoundingMode,
    StepType,
    ValidationWarningType,
)
from .values import FieldValue


Number = Union[int, float]


# =============================================================================
# Step Definitions
# =============================================================================

@dataclass
class StepCondition:
    """Single comparison used by a conditional step."""
    field_code: str
    operator: ConditionOperator
    value: Any = None
    value_end: Optional[Any] = None


@dataclass
class LookupDimension:
    """Maps a table dimension to the field that supplies its value."""
    field_code: str
    dimension_name: str = ""


@dataclass
class RatingStep:
    """
    A single step in the rating algorithm.

    Only the payload fields relevant to `type` are read.

    Attributes:
        id: Stable step ID
        order: Tie-break order for topological sorting
        type: Step kind
        name: Display name
        output_field_code: Field this step writes (unique per step set)
        inputs: Field codes this step reads
    """
    id: str
    order: int
    type: StepType
    output_field_code: str
    name: str = ""
    inputs: list[str] = field(default_factory=list)
    enabled: bool = True
    description: Optional[str] = None

    # constant
    constant_value: Optional[Number] = None

    # factor
    factor_value: Optional[Number] = None
    factor_field_code: Optional[str] = None

    # tableLookup
    table_version_id: Optional[str] = None
    lookup_dimensions: list[LookupDimension] = field(default_factory=list)

    # expression
    expression: Optional[str] = None

    # minmax
    min_value: Optional[Number] = None
    max_value: Optional[Number] = None
    min_field_code: Optional[str] = None
    max_field_code: Optional[str] = None

    # fee
    fee_amount: Optional[Number] = None
    fee_field_code: Optional[str] = None

    # conditional
    condition: Optional[StepCondition] = None
    then_value: Optional[Number] = None
    else_value: Optional[Number] = None

    # rounding
    rounding_mode: RoundingMode = RoundingMode.NONE
    rounding_precision: int = 0

    # state applicability
    all_states: bool = True
    states: list[str] = field(default_factory=list)

    def is_state_filtered(self, state: Optional[str]) -> bool:
        """True when this step does not apply to the given state."""
        if self.all_states or not self.states or not state:
            return False
        return state not in self.states


# =============================================================================
# Tables and Context
# =============================================================================

@dataclass
class TableDimension:
    """One dimension of a rating table, in key order."""
    name: str
    field_code: str
    values: list[str] = field(default_factory=list)


@dataclass
class RatingTable:
    """
    Rating table data.

    Values are keyed by the dimension values joined with "-" in dimension
    order (e.g. "A-1-High" -> 1.25).
    """
    table_version_id: str
    dimensions: list[TableDimension] = field(default_factory=list)
    values: dict[str, Number] = field(default_factory=dict)


@dataclass
class EvaluationContext:
    """Inputs for one rating evaluation. Tables are read-only."""
    inputs: dict[str, FieldValue] = field(default_factory=dict)
    state: Optional[str] = None
    effective_date: Optional[date] = None
    tables: dict[str, RatingTable] = field(default_factory=dict)


# =============================================================================
# Evaluation Results
# =============================================================================

@dataclass
class StepTraceEntry:
    """Record of one attempted step, in evaluation order."""
    step_id: str
    step_name: str
    step_type: StepType
    order: int
    input_values: dict[str, FieldValue]
    resolved_values: dict[str, Number]
    output_value: Optional[Number]
    output_field_code: str
    applied: bool
    skip_reason: Optional[str] = None
    table_lookup_key: Optional[str] = None
    evaluated_expression: Optional[str] = None
    pre_rounding_value: Optional[Number] = None
    rounding_mode: Optional[RoundingMode] = None
    execution_time_ms: float = 0.0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "step_name": self.step_name,
            "step_type": self.step_type.value,
            "order": self.order,
            "input_values": dict(self.input_values),
            "resolved_values": dict(self.resolved_values),
            "output_value": self.output_value,
            "output_field_code": self.output_field_code,
            "applied": self.applied,
            "skip_reason": self.skip_reason,
            "table_lookup_key": self.table_lookup_key,
            "evaluated_expression": self.evaluated_expression,
            "pre_rounding_value": self.pre_rounding_value,
            "rounding_mode": self.rounding_mode.value if self.rounding_mode else None,
            "execution_time_ms": self.execution_time_ms,
            "warnings": list(self.warnings),
        }


@dataclass
class EvaluationErrorRecord:
    """Tagged error reported inside an evaluation result."""
    code: EvaluationErrorType
    message: str
    step_id: Optional[str] = None
    step_name: Optional[str] = None
    field_code: Optional[str] = None
    step_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.step_id:
            result["step_id"] = self.step_id
            result["step_name"] = self.step_name
            result["field_code"] = self.field_code
        if self.step_ids:
            result["step_ids"] = list(self.step_ids)
        return result


@dataclass
class EvaluationResult:
    """Fully traced, deterministic rating result."""
    success: bool
    outputs: dict[str, Number]
    trace: list[StepTraceEntry]
    errors: list[EvaluationErrorRecord]
    warnings: list[str]
    result_hash: str
    steps_hash: str
    rate_program_version_id: str = ""
    final_premium: Optional[Number] = None
    execution_time_ms: float = 0.0
    evaluated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def error_messages(self) -> list[str]:
        return [e.message for e in self.errors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "outputs": dict(self.outputs),
            "final_premium": self.final_premium,
            "trace": [t.to_dict() for t in self.trace],
            "errors": [e.to_dict() for e in self.errors],
            "warnings": list(self.warnings),
            "result_hash": self.result_hash,
            "steps_hash": self.steps_hash,
            "rate_program_version_id": self.rate_program_version_id,
            "execution_time_ms": self.execution_time_ms,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


@dataclass
class TopologicalSortResult:
    """Execution order, or the steps left over by a cycle."""
    sorted: list[RatingStep]
    has_cycle: bool = False
    cycle_steps: list[str] = field(default_factory=list)


# =============================================================================
# Determinism Validation
# =============================================================================

@dataclass
class DeterminismError:
    code: EvaluationErrorType
    message: str
    step_ids: list[str] = field(default_factory=list)
    field_codes: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "step_ids": list(self.step_ids),
            "field_codes": list(self.field_codes),
        }


@dataclass
class DeterminismWarning:
    code: ValidationWarningType
    message: str
    step_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "step_id": self.step_id}


@dataclass
class DependencyNode:
    """Node in the step dependency graph."""
    step_id: str
    step_name: str
    output_field_code: str
    depends_on: list[str]
    depended_on_by: list[str]
    order: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "step_name": self.step_name,
            "output_field_code": self.output_field_code,
            "depends_on": list(self.depends_on),
            "depended_on_by": list(self.depended_on_by),
            "order": self.order,
        }


@dataclass
class DeterminismValidationResult:
    errors: list[DeterminismError]
    warnings: list[DeterminismWarning]
    dependency_graph: list[DependencyNode]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "dependency_graph": [n.to_dict() for n in self.dependency_graph],
        }


# =============================================================================
# Rating Test Cases
# =============================================================================

@dataclass
class RatingTestCase:
    """Fixed inputs with expected outputs for one rate program version."""
    id: str
    name: str
    inputs: dict[str, FieldValue]
    expected_outputs: dict[str, Number]
    rate_program_version_id: str = ""
    state: Optional[str] = None
    expected_final_premium: Optional[Number] = None
    tolerance: Optional[float] = None
    description: Optional[str] = None


@dataclass
class TestDifference:
    field_code: str
    expected: Number
    actual: Number
    difference: Number
    within_tolerance: bool

    __test__ = False


@dataclass
class TestRunResult:
    test_case_id: str
    passed: bool
    actual_outputs: dict[str, Number]
    differences: list[TestDifference]
    actual_final_premium: Optional[Number] = None
    execution_time_ms: float = 0.0
    run_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    __test__ = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "test_case_id": self.test_case_id,
            "passed": self.passed,
            "actual_outputs": dict(self.actual_outputs),
            "actual_final_premium": self.actual_final_premium,
            "differences": [
                {
                    "field_code": d.field_code,
                    "expected": d.expected,
                    "actual": d.actual,
                    "difference": d.difference,
                    "within_tolerance": d.within_tolerance,
                }
                for d in self.differences
            ],
            "execution_time_ms": self.execution_time_ms,
            "run_at": self.run_at.isoformat(),
        }
