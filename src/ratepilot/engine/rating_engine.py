"""
RatePilot Rating Engine

Evaluates a rate program (a graph of rating steps) into field outputs with a
full per-step trace and a result hash.

Key features:
- Kahn topological sort with deterministic (order, id) tie-breaking
- Cycle detection: no partial outputs are returned for a cyclic program
- Per-step skip reasons; only load-bearing failures affect success
- Decimal-backed rounding (none/up/down/nearest/bankers/truncate)
- Result hash = combine(inputs hash, steps hash, outputs hash)
- Static determinism validation with a dependency graph
"""
from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field
from decimal import ROUND_CEILING, ROUND_DOWN, ROUND_FLOOR, ROUND_HALF_EVEN, Decimal
from typing import Any, Mapping, Optional, Sequence, Union

from ..canon import combine_hashes, fast_hash, hash_sorted_by_id
from ..exceptions import InvalidExpressionError
from ..models import (
    DependencyNode,
    DeterminismError,
    DeterminismValidationResult,
    DeterminismWarning,
    EvaluationContext,
    EvaluationErrorRecord,
    EvaluationErrorType,
    EvaluationResult,
    FieldValue,
    Number,
    RatingStep,
    RatingTable,
    RatingTestCase,
    RoundingMode,
    StepTraceEntry,
    StepType,
    TestDifference,
    TestRunResult,
    TopologicalSortResult,
    ValidationWarningType,
    coerce_pool_value,
    format_number,
    is_number,
)
from .condition_evaluator import compare_values
from .expression import evaluate_expression


logger = logging.getLogger(__name__)


# Output names treated as terminal results
FINAL_PREMIUM_FIELDS = ("final_premium", "total_premium")
TERMINAL_NAME_MARKERS = ("premium", "total")

DEFAULT_TEST_TOLERANCE = 0.001


# =============================================================================
# Topological Ordering
# =============================================================================

def _order_key(step: RatingStep) -> tuple[int, str]:
    return (step.order, step.id)


def topological_sort(steps: Sequence[RatingStep]) -> TopologicalSortResult:
    """
    Order steps so every step follows the steps whose outputs it reads.

    An edge A -> B exists when B's inputs contain A's output field code.
    A step never depends on itself, so an input step may read and write
    the same field code. Ready steps are released in ascending
    (order, id) at every frontier expansion, so the result does not
    depend on list order.

    Returns:
        TopologicalSortResult. On a cycle, `sorted` is empty and
        `cycle_steps` lists the ids that could not be ordered.
    """
    output_to_step = {step.output_field_code: step for step in steps}
    by_id = {step.id: step for step in steps}

    dependents: dict[str, list[str]] = {step.id: [] for step in steps}
    in_degree: dict[str, int] = {step.id: 0 for step in steps}

    for step in steps:
        seen: set[str] = set()
        for input_code in step.inputs:
            dependency = output_to_step.get(input_code)
            if dependency is None or dependency.id == step.id or dependency.id in seen:
                continue
            seen.add(dependency.id)
            dependents[dependency.id].append(step.id)
            in_degree[step.id] += 1

    queue = deque(sorted((s for s in steps if in_degree[s.id] == 0), key=_order_key))
    ordered: list[RatingStep] = []

    while queue:
        current = queue.popleft()
        ordered.append(current)

        newly_ready: list[RatingStep] = []
        for dependent_id in dependents[current.id]:
            in_degree[dependent_id] -= 1
            if in_degree[dependent_id] == 0:
                newly_ready.append(by_id[dependent_id])
        queue.extend(sorted(newly_ready, key=_order_key))

    if len(ordered) != len(steps):
        ordered_ids = {s.id for s in ordered}
        cycle_steps = [s.id for s in steps if s.id not in ordered_ids]
        return TopologicalSortResult(sorted=[], has_cycle=True, cycle_steps=cycle_steps)

    return TopologicalSortResult(sorted=ordered)


# =============================================================================
# Rounding
# =============================================================================

_DECIMAL_ROUNDING = {
    RoundingMode.UP: ROUND_CEILING,
    RoundingMode.DOWN: ROUND_FLOOR,
    RoundingMode.BANKERS: ROUND_HALF_EVEN,
    RoundingMode.TRUNCATE: ROUND_DOWN,
}

_HALF = Decimal("0.5")


def apply_rounding(
    value: Number,
    mode: Union[RoundingMode, str],
    precision: int = 0,
) -> Number:
    """
    Round a value at the given number of decimal places.

    The value is scaled by 10^precision, rounded to an integer, and
    rescaled. Scaling happens on the shortest decimal representation of
    the float, so representation noise cannot cross a rounding boundary.

    Example:
        >>> apply_rounding(2.5, "bankers", 0)
        2.0
        >>> apply_rounding(1.001, "up", 2)
        1.01
    """
    mode = RoundingMode(mode)
    if mode == RoundingMode.NONE or not math.isfinite(value):
        return value

    scaled = Decimal(repr(value)).scaleb(precision)
    if mode == RoundingMode.NEAREST:
        # Half up toward positive infinity
        rounded = (scaled + _HALF).to_integral_value(rounding=ROUND_FLOOR)
    else:
        rounded = scaled.to_integral_value(rounding=_DECIMAL_ROUNDING[mode])
    return float(rounded.scaleb(-precision))


# =============================================================================
# Table Lookup
# =============================================================================

def _key_part(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(value)
    return str(value)


def table_lookup(
    table: RatingTable,
    dimension_values: Mapping[str, Any],
) -> Optional[tuple[Number, str]]:
    """
    Look up a table value by dimension values.

    The key joins the values in table dimension order with "-".

    Returns:
        Tuple of (value, key), or None when a dimension value is missing or
        no entry exists for the key
    """
    parts: list[str] = []
    for dimension in table.dimensions:
        value = dimension_values.get(dimension.field_code)
        if value is None:
            return None
        parts.append(_key_part(value))

    key = "-".join(parts)
    if key not in table.values:
        return None
    return table.values[key], key


# =============================================================================
# Step Evaluation
# =============================================================================

@dataclass
class StepOutcome:
    """Result of evaluating one step, before rounding."""
    value: Optional[Number] = None
    applied: bool = False
    skip_reason: Optional[str] = None
    table_lookup_key: Optional[str] = None
    evaluated_expression: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    filtered: bool = False


def _skip(reason: str, **kwargs: Any) -> StepOutcome:
    return StepOutcome(skip_reason=reason, **kwargs)


def build_value_pool(
    inputs: Mapping[str, FieldValue],
    computed: Mapping[str, Number],
) -> dict[str, Number]:
    """
    Merge computed outputs with numeric-coerced inputs.

    Inputs win over a computed output of the same name.
    """
    pool: dict[str, Number] = dict(computed)
    for key, raw in inputs.items():
        coerced = coerce_pool_value(raw)
        if coerced is not None:
            pool[key] = coerced
    return pool


def _evaluate_input(step: RatingStep, context: EvaluationContext, pool: dict[str, Number]) -> StepOutcome:
    input_code = step.inputs[0] if step.inputs else None
    if not input_code:
        return _skip("No input field specified")

    raw = context.inputs.get(input_code)
    if raw is None:
        return _skip(f"Input field {input_code} not provided")

    value = coerce_pool_value(raw)
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return _skip(f"Input field {input_code} is not a valid number")
    return StepOutcome(value=value, applied=True)


def _evaluate_constant(step: RatingStep, context: EvaluationContext, pool: dict[str, Number]) -> StepOutcome:
    if step.constant_value is None:
        return _skip("No constant value specified")
    return StepOutcome(value=step.constant_value, applied=True)


def _evaluate_factor(step: RatingStep, context: EvaluationContext, pool: dict[str, Number]) -> StepOutcome:
    base_code = step.inputs[0] if step.inputs else None
    if not base_code or base_code not in pool:
        return _skip(f"Base field {base_code} not available")

    if step.factor_field_code and step.factor_field_code in pool:
        factor = pool[step.factor_field_code]
    elif step.factor_value is not None:
        factor = step.factor_value
    else:
        return _skip("No factor value specified")

    return StepOutcome(value=pool[base_code] * factor, applied=True)


def _evaluate_table_lookup(step: RatingStep, context: EvaluationContext, pool: dict[str, Number]) -> StepOutcome:
    if not step.table_version_id:
        return _skip("No table version specified")

    table = context.tables.get(step.table_version_id)
    if table is None:
        return _skip(f"Table {step.table_version_id} not loaded")

    dimension_values: dict[str, Any] = {}
    for dimension in step.lookup_dimensions:
        value = context.inputs.get(dimension.field_code)
        if value is None:
            value = pool.get(dimension.field_code)
        if value is not None:
            dimension_values[dimension.field_code] = value

    found = table_lookup(table, dimension_values)
    if found is None:
        attempted = "-".join(_key_part(v) for v in dimension_values.values())
        return _skip("Table lookup failed - no matching value", table_lookup_key=attempted)

    value, key = found
    return StepOutcome(value=value, applied=True, table_lookup_key=key)


def _evaluate_expression(step: RatingStep, context: EvaluationContext, pool: dict[str, Number]) -> StepOutcome:
    if not step.expression:
        return _skip("No expression specified")
    try:
        result, substituted = evaluate_expression(step.expression, pool)
    except InvalidExpressionError as e:
        return _skip(f"Expression error: {e.message}")
    return StepOutcome(value=result, applied=True, evaluated_expression=substituted)


def _evaluate_minmax(step: RatingStep, context: EvaluationContext, pool: dict[str, Number]) -> StepOutcome:
    input_code = step.inputs[0] if step.inputs else None
    if not input_code or input_code not in pool:
        return _skip(f"Input field {input_code} not available")

    value = pool[input_code]
    warnings: list[str] = []

    minimum = pool[step.min_field_code] if step.min_field_code and step.min_field_code in pool else step.min_value
    if minimum is not None and value < minimum:
        warnings.append(f"Value {format_number(value)} capped to minimum {format_number(minimum)}")
        value = minimum

    maximum = pool[step.max_field_code] if step.max_field_code and step.max_field_code in pool else step.max_value
    if maximum is not None and value > maximum:
        warnings.append(f"Value {format_number(value)} capped to maximum {format_number(maximum)}")
        value = maximum

    return StepOutcome(value=value, applied=True, warnings=warnings)


def _evaluate_fee(step: RatingStep, context: EvaluationContext, pool: dict[str, Number]) -> StepOutcome:
    if step.fee_field_code and step.fee_field_code in pool:
        fee = pool[step.fee_field_code]
    elif step.fee_amount is not None:
        fee = step.fee_amount
    else:
        return _skip("No fee amount specified")

    input_code = step.inputs[0] if step.inputs else None
    if input_code and input_code in pool:
        return StepOutcome(value=pool[input_code] + fee, applied=True)
    return StepOutcome(value=fee, applied=True)


def _evaluate_conditional(step: RatingStep, context: EvaluationContext, pool: dict[str, Number]) -> StepOutcome:
    condition = step.condition
    if condition is None:
        return _skip("No condition specified")

    actual = context.inputs.get(condition.field_code)
    if actual is None:
        actual = pool.get(condition.field_code)

    met = actual is not None and compare_values(
        actual, condition.operator, condition.value, condition.value_end,
    )

    value = step.then_value if met else step.else_value
    if value is None:
        return _skip(f"No {'then' if met else 'else'} value specified")
    return StepOutcome(value=value, applied=True)


_STEP_HANDLERS = {
    StepType.INPUT: _evaluate_input,
    StepType.CONSTANT: _evaluate_constant,
    StepType.FACTOR: _evaluate_factor,
    StepType.TABLE_LOOKUP: _evaluate_table_lookup,
    StepType.EXPRESSION: _evaluate_expression,
    StepType.MINMAX: _evaluate_minmax,
    StepType.FEE: _evaluate_fee,
    StepType.CONDITIONAL: _evaluate_conditional,
}


def evaluate_step(
    step: RatingStep,
    context: EvaluationContext,
    computed: Mapping[str, Number],
) -> StepOutcome:
    """
    Evaluate one step against the inputs and outputs computed so far.

    Disabled and state-filtered steps are skipped with a readable reason.
    """
    if not step.enabled:
        return _skip("Step is disabled", filtered=True)

    if step.is_state_filtered(context.state):
        return _skip(f"Not applicable for state {context.state}", filtered=True)

    handler = _STEP_HANDLERS.get(step.type)
    if handler is None:
        return _skip(f"Unknown step type: {step.type}")

    pool = build_value_pool(context.inputs, computed)
    try:
        return handler(step, context, pool)
    except (ArithmeticError, TypeError, ValueError) as e:
        return _skip(f"Error: {e}")


# =============================================================================
# Evaluation
# =============================================================================

def hash_steps(steps: Sequence[RatingStep]) -> str:
    """Hash step definitions independently of list order."""
    return hash_sorted_by_id(steps)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def evaluate(
    steps: Sequence[RatingStep],
    context: EvaluationContext,
    rate_program_version_id: str = "",
) -> EvaluationResult:
    """
    Evaluate a rate program for one context.

    Args:
        steps: Rating steps of one rate program version
        context: Inputs, state and preloaded tables
        rate_program_version_id: Version ID carried into the result

    Returns:
        EvaluationResult with outputs, trace, errors and result hash.
        A cyclic program returns CYCLE_DETECTED with no outputs and no trace.
    """
    start = time.perf_counter()
    steps_hash = hash_steps(steps)

    sort_result = topological_sort(steps)
    if sort_result.has_cycle:
        message = (
            "Circular dependency detected involving steps: "
            + ", ".join(sort_result.cycle_steps)
        )
        logger.warning(message)
        return EvaluationResult(
            success=False,
            outputs={},
            trace=[],
            errors=[EvaluationErrorRecord(
                code=EvaluationErrorType.CYCLE_DETECTED,
                message=message,
                step_ids=list(sort_result.cycle_steps),
            )],
            warnings=[],
            result_hash="",
            steps_hash=steps_hash,
            rate_program_version_id=rate_program_version_id,
            execution_time_ms=_elapsed_ms(start),
        )

    consumed: set[str] = set()
    for step in sort_result.sorted:
        consumed.update(step.inputs)

    computed: dict[str, Number] = {}
    trace: list[StepTraceEntry] = []
    errors: list[EvaluationErrorRecord] = []
    warnings: list[str] = []

    for step in sort_result.sorted:
        step_start = time.perf_counter()

        input_values: dict[str, FieldValue] = {}
        for input_code in step.inputs:
            value = context.inputs.get(input_code)
            if value is None:
                value = computed.get(input_code)
            input_values[input_code] = value

        outcome = evaluate_step(step, context, computed)

        final_value = outcome.value
        pre_rounding: Optional[Number] = None
        if outcome.applied and final_value is not None:
            pre_rounding = final_value
            final_value = apply_rounding(final_value, step.rounding_mode, step.rounding_precision)
            computed[step.output_field_code] = final_value

        trace.append(StepTraceEntry(
            step_id=step.id,
            step_name=step.name,
            step_type=step.type,
            order=step.order,
            input_values=input_values,
            resolved_values=dict(computed),
            output_value=final_value,
            output_field_code=step.output_field_code,
            applied=outcome.applied,
            skip_reason=outcome.skip_reason,
            table_lookup_key=outcome.table_lookup_key,
            evaluated_expression=outcome.evaluated_expression,
            pre_rounding_value=pre_rounding,
            rounding_mode=step.rounding_mode,
            execution_time_ms=_elapsed_ms(step_start),
            warnings=list(outcome.warnings),
        ))
        warnings.extend(outcome.warnings)

        logger.debug(
            "Step %s (%s) applied=%s value=%s skip=%s",
            step.id, step.type.value, outcome.applied, final_value, outcome.skip_reason,
        )

        if not outcome.applied and not outcome.filtered and outcome.skip_reason:
            is_critical = (
                step.type == StepType.INPUT
                or step.output_field_code in consumed
            )
            if is_critical:
                logger.warning("Step %s failed: %s", step.id, outcome.skip_reason)
                errors.append(EvaluationErrorRecord(
                    code=EvaluationErrorType.STEP_FAILED,
                    message=outcome.skip_reason,
                    step_id=step.id,
                    step_name=step.name,
                    field_code=step.output_field_code,
                ))

    result_hash = combine_hashes(
        fast_hash(context.inputs),
        steps_hash,
        fast_hash(computed),
    )

    final_premium: Optional[Number] = None
    for name in FINAL_PREMIUM_FIELDS:
        if computed.get(name) is not None:
            final_premium = computed[name]
            break

    elapsed = _elapsed_ms(start)
    logger.info(
        "Evaluated %d steps for %s: success=%s",
        len(trace), rate_program_version_id or "<unversioned>", not errors,
        extra={"result_hash": result_hash, "duration_ms": round(elapsed, 3)},
    )

    return EvaluationResult(
        success=not errors,
        outputs=computed,
        trace=trace,
        errors=errors,
        warnings=warnings,
        result_hash=result_hash,
        steps_hash=steps_hash,
        rate_program_version_id=rate_program_version_id,
        final_premium=final_premium,
        execution_time_ms=elapsed,
    )


# =============================================================================
# Determinism Validation
# =============================================================================

def validate_determinism(
    steps: Sequence[RatingStep],
    available_field_codes: Sequence[str],
) -> DeterminismValidationResult:
    """
    Check a rate program without evaluating it.

    Errors: CYCLE_DETECTED, UNDEFINED_FIELD, INVALID_EXPRESSION (dry run
    with every input set to 1), TABLE_NOT_FOUND.
    Warnings: UNUSED_STEP for outputs nobody reads, unless the field name
    marks a terminal result.

    Never raises.
    """
    errors: list[DeterminismError] = []
    warnings: list[DeterminismWarning] = []

    output_to_step = {step.output_field_code: step for step in steps}
    available = set(available_field_codes)

    sort_result = topological_sort(steps)
    if sort_result.has_cycle:
        errors.append(DeterminismError(
            code=EvaluationErrorType.CYCLE_DETECTED,
            message="Circular dependency detected in steps: " + ", ".join(sort_result.cycle_steps),
            step_ids=list(sort_result.cycle_steps),
        ))

    for step in steps:
        missing = [
            code for code in step.inputs
            if code not in available and code not in output_to_step
        ]
        if missing:
            errors.append(DeterminismError(
                code=EvaluationErrorType.UNDEFINED_FIELD,
                message=f'Step "{step.name}" references undefined fields: {", ".join(missing)}',
                step_ids=[step.id],
                field_codes=missing,
            ))

        if step.type == StepType.EXPRESSION and step.expression:
            dummy_values = {code: 1 for code in step.inputs}
            try:
                evaluate_expression(step.expression, dummy_values)
            except InvalidExpressionError as e:
                errors.append(DeterminismError(
                    code=EvaluationErrorType.INVALID_EXPRESSION,
                    message=f'Step "{step.name}" has invalid expression: {e.message}',
                    step_ids=[step.id],
                ))

        if step.type == StepType.TABLE_LOOKUP and not step.table_version_id:
            errors.append(DeterminismError(
                code=EvaluationErrorType.TABLE_NOT_FOUND,
                message=f'Step "{step.name}" references a table lookup but no table version is specified',
                step_ids=[step.id],
            ))

    dependency_graph: list[DependencyNode] = []
    for step in steps:
        consumers = [
            other.id for other in steps
            if other.id != step.id and step.output_field_code in other.inputs
        ]
        is_terminal = any(marker in step.output_field_code for marker in TERMINAL_NAME_MARKERS)
        if not consumers and not is_terminal:
            warnings.append(DeterminismWarning(
                code=ValidationWarningType.UNUSED_STEP,
                message=f'Step "{step.name}" output "{step.output_field_code}" is not used by any other step',
                step_id=step.id,
            ))

        depends_on: list[str] = []
        for code in step.inputs:
            dependency = output_to_step.get(code)
            if dependency is not None and dependency.id != step.id and dependency.id not in depends_on:
                depends_on.append(dependency.id)

        dependency_graph.append(DependencyNode(
            step_id=step.id,
            step_name=step.name,
            output_field_code=step.output_field_code,
            depends_on=depends_on,
            depended_on_by=consumers,
            order=step.order,
        ))

    if errors:
        logger.warning("Determinism validation found %d error(s)", len(errors))

    return DeterminismValidationResult(
        errors=errors,
        warnings=warnings,
        dependency_graph=dependency_graph,
    )


# =============================================================================
# Test Cases
# =============================================================================

def run_test_case(
    test_case: RatingTestCase,
    steps: Sequence[RatingStep],
    tables: Optional[Mapping[str, RatingTable]] = None,
) -> TestRunResult:
    """
    Evaluate a test case and compare against its expected outputs.

    Every expected field gets a difference row. Missing actual outputs
    count as 0. An expected final premium adds a row only when it fails.
    """
    context = EvaluationContext(
        inputs=dict(test_case.inputs),
        state=test_case.state,
        tables=dict(tables or {}),
    )
    result = evaluate(steps, context, test_case.rate_program_version_id)
    tolerance = test_case.tolerance if test_case.tolerance is not None else DEFAULT_TEST_TOLERANCE

    differences: list[TestDifference] = []
    passed = True
    for field_code, expected in test_case.expected_outputs.items():
        actual = result.outputs.get(field_code, 0)
        difference = abs(expected - actual)
        within = difference <= tolerance
        passed = passed and within
        differences.append(TestDifference(
            field_code=field_code,
            expected=expected,
            actual=actual,
            difference=difference,
            within_tolerance=within,
        ))

    if test_case.expected_final_premium is not None:
        actual_premium = result.final_premium if result.final_premium is not None else 0
        difference = abs(test_case.expected_final_premium - actual_premium)
        if difference > tolerance:
            passed = False
            differences.append(TestDifference(
                field_code="final_premium",
                expected=test_case.expected_final_premium,
                actual=actual_premium,
                difference=difference,
                within_tolerance=False,
            ))

    return TestRunResult(
        test_case_id=test_case.id,
        passed=passed,
        actual_outputs=result.outputs,
        differences=differences,
        actual_final_premium=result.final_premium,
        execution_time_ms=result.execution_time_ms,
    )
