"""
RatePilot Regression Runner

Deterministic batch execution of QA scenarios against the rating engine,
with field-level tolerance diffs, optional baseline comparison, and the QA
gate that guards publishing.

Key features:
- Scenarios run independently; one failing scenario never stops the batch
- Engine failures are reported as `error`, mismatches as `fail`
- Baseline evaluation is best effort and never changes a scenario status
- QARun carries a run hash over the ordered scenario result hashes
"""
from __future__ import annotations

import logging
import time
from datetime import date
from typing import Mapping, Optional, Sequence

from ..canon import combine_hashes
from ..exceptions import RatePilotError
from ..models import (
    EvaluationContext,
    IssueSeverity,
    Number,
    QAGateConfig,
    QAGateIssue,
    QAGateMode,
    QAGateResult,
    QARun,
    QARunStatus,
    RatingStep,
    RatingTable,
    RegressionRunInput,
    Scenario,
    ScenarioFieldDiff,
    ScenarioResult,
    ScenarioStatus,
)
from .rating_engine import evaluate


logger = logging.getLogger(__name__)


# =============================================================================
# Field Diffs
# =============================================================================

def compute_field_diffs(
    expected: Mapping[str, Number],
    actual: Mapping[str, Number],
    tolerance: float,
) -> list[ScenarioFieldDiff]:
    """
    Compare expected and actual outputs field by field.

    Absent fields count as 0. Only fields outside tolerance are returned,
    sorted by field code.
    """
    diffs: list[ScenarioFieldDiff] = []
    for field_code in sorted(set(expected) | set(actual)):
        exp = expected.get(field_code, 0)
        act = actual.get(field_code, 0)
        delta = act - exp
        abs_delta = abs(delta)
        if exp != 0:
            pct_change = delta / abs(exp) * 100
        else:
            pct_change = 100.0 if act != 0 else 0.0

        if abs_delta > tolerance:
            diffs.append(ScenarioFieldDiff(
                field_code=field_code,
                expected=exp,
                actual=act,
                delta=delta,
                abs_delta=abs_delta,
                pct_change=pct_change,
                within_tolerance=False,
            ))
    return diffs


# =============================================================================
# Scenario Execution
# =============================================================================

def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def run_single_scenario(
    scenario: Scenario,
    draft_steps: Sequence[RatingStep],
    draft_version_id: str,
    baseline_steps: Optional[Sequence[RatingStep]] = None,
    baseline_version_id: Optional[str] = None,
    tables: Optional[Mapping[str, RatingTable]] = None,
    effective_date: Optional[date] = None,
) -> ScenarioResult:
    """
    Evaluate one scenario against the draft steps.

    Returns:
        ScenarioResult with status pass, fail or error. Never raises for
        evaluation problems.
    """
    start = time.perf_counter()
    try:
        context = EvaluationContext(
            inputs=dict(scenario.inputs),
            state=scenario.state_code,
            effective_date=effective_date,
            tables=dict(tables or {}),
        )
        draft = evaluate(draft_steps, context, draft_version_id)

        if not draft.success:
            return ScenarioResult(
                scenario_id=scenario.id,
                scenario_name=scenario.name,
                status=ScenarioStatus.ERROR,
                actual_outputs=draft.outputs,
                expected_outputs=dict(scenario.expected_outputs),
                error_message="; ".join(draft.error_messages),
                result_hash=draft.result_hash,
                execution_time_ms=_elapsed_ms(start),
            )

        diffs = compute_field_diffs(scenario.expected_outputs, draft.outputs, scenario.tolerance)

        baseline_outputs: Optional[dict[str, Number]] = None
        if baseline_steps is not None and baseline_version_id:
            try:
                baseline = evaluate(baseline_steps, context, baseline_version_id)
                if baseline.success:
                    baseline_outputs = baseline.outputs
            except (RatePilotError, ArithmeticError, TypeError, ValueError) as e:
                logger.warning("Baseline evaluation failed for scenario %s: %s", scenario.id, e)

        return ScenarioResult(
            scenario_id=scenario.id,
            scenario_name=scenario.name,
            status=ScenarioStatus.PASS if not diffs else ScenarioStatus.FAIL,
            actual_outputs=draft.outputs,
            expected_outputs=dict(scenario.expected_outputs),
            diffs=diffs,
            baseline_outputs=baseline_outputs,
            result_hash=draft.result_hash,
            execution_time_ms=_elapsed_ms(start),
        )
    except Exception as e:
        logger.exception("Unexpected error running scenario %s", scenario.id)
        return ScenarioResult(
            scenario_id=scenario.id,
            scenario_name=scenario.name,
            status=ScenarioStatus.ERROR,
            actual_outputs={},
            expected_outputs=dict(scenario.expected_outputs),
            error_message=str(e) or "Unexpected evaluation error",
            execution_time_ms=_elapsed_ms(start),
        )


def run_regression(
    run_input: RegressionRunInput,
    effective_date: Optional[date] = None,
) -> QARun:
    """
    Run every active scenario and aggregate the outcome.

    Status is `error` when every result errored, `failed` when anything
    failed or errored, else `passed`.
    """
    start = time.perf_counter()
    results: list[ScenarioResult] = []

    for scenario in run_input.scenarios:
        if not scenario.is_active:
            continue
        results.append(run_single_scenario(
            scenario,
            run_input.draft_steps,
            run_input.draft_version_id,
            run_input.baseline_steps,
            run_input.baseline_version_id,
            run_input.tables,
            effective_date,
        ))

    passed = sum(1 for r in results if r.status == ScenarioStatus.PASS)
    failed = sum(1 for r in results if r.status == ScenarioStatus.FAIL)
    errored = sum(1 for r in results if r.status == ScenarioStatus.ERROR)

    if errored > 0 and passed == 0 and failed == 0:
        status = QARunStatus.ERROR
    elif failed > 0 or errored > 0:
        status = QARunStatus.FAILED
    else:
        status = QARunStatus.PASSED

    run_hash = combine_hashes(*(r.result_hash or "" for r in results))

    logger.info(
        "QA run for %s: %s (%d passed, %d failed, %d errors)",
        run_input.draft_version_id, status.value, passed, failed, errored,
        extra={"result_hash": run_hash},
    )

    return QARun(
        status=status,
        results=tuple(results),
        total_scenarios=len(results),
        passed_count=passed,
        failed_count=failed,
        error_count=errored,
        run_hash=run_hash,
        draft_version_id=run_input.draft_version_id,
        total_execution_time_ms=_elapsed_ms(start),
    )


# =============================================================================
# QA Gate
# =============================================================================

def evaluate_qa_gate(
    config: QAGateConfig,
    run: QARun,
    scenarios: Sequence[Scenario],
) -> QAGateResult:
    """
    Decide whether a QA run allows publishing.

    Modes:
    - disabled: always passes with no issues
    - advisory: issues are warnings, always passes
    - required: issues are errors and block

    A required active scenario that is missing from the run counts as not
    passed.
    """
    if config.mode == QAGateMode.DISABLED:
        return QAGateResult(passed=True, mode=QAGateMode.DISABLED, issues=[])

    issue_type = IssueSeverity.ERROR if config.mode == QAGateMode.REQUIRED else IssueSeverity.WARNING
    issues: list[QAGateIssue] = []

    if run.pass_rate < config.min_pass_rate:
        issues.append(QAGateIssue(
            type=issue_type,
            message=(
                f"QA pass rate {run.pass_rate * 100:.1f}% is below required "
                f"{config.min_pass_rate * 100:.1f}% "
                f"({run.failed_count} failed, {run.error_count} errors)"
            ),
        ))

    if config.require_mandatory_pass:
        status_by_id = {r.scenario_id: r.status for r in run.results}
        not_passed = [
            s.name for s in scenarios
            if s.is_required and s.is_active
            and status_by_id.get(s.id) != ScenarioStatus.PASS
        ]
        if not_passed:
            issues.append(QAGateIssue(
                type=issue_type,
                message=f"{len(not_passed)} mandatory scenario(s) did not pass: {', '.join(not_passed)}",
            ))

    if run.status == QARunStatus.ERROR:
        issues.append(QAGateIssue(type=issue_type, message="QA run encountered evaluation errors"))

    passed = not any(i.type == IssueSeverity.ERROR for i in issues)
    if not passed:
        logger.warning("QA gate blocked: %s", "; ".join(i.message for i in issues))

    return QAGateResult(passed=passed, mode=config.mode, issues=issues)
