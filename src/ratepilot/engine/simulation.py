"""
RatePilot Simulation Orchestrator

Runs a quote simulation for one input context in three independent phases:

1. Underwriting: rules engine, summarized into a decision
2. Premium: rating engine
3. Forms: forms applicable in the quote state

A phase that raises is logged and returned as a failed result carrying the
error message; the other phases still run, so callers can present partial
results.
"""
from __future__ import annotations

import logging
import time
from typing import Mapping, Optional, Sequence

from ..models import (
    ApplicableForm,
    FormsPhaseResult,
    FormUseRecord,
    EvaluationContext,
    EvaluationErrorRecord,
    EvaluationErrorType,
    PremiumPhaseResult,
    RatingStep,
    RatingTable,
    RuleEvaluationContext,
    RuleWithVersion,
    SimulationInput,
    SimulationOutput,
    UWFiredRule,
    UWPhaseResult,
)
from .rating_engine import evaluate
from .rules_engine import evaluate_rules


logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


# =============================================================================
# Underwriting Phase
# =============================================================================

def run_uw_phase(
    rules: Sequence[RuleWithVersion],
    sim_input: SimulationInput,
) -> UWPhaseResult:
    """Evaluate underwriting rules. decision is the aggregate action."""
    start = time.perf_counter()
    try:
        result = evaluate_rules(rules, RuleEvaluationContext(
            inputs=dict(sim_input.inputs),
            product_version_id=sim_input.product_version_id,
            effective_date=sim_input.effective_date,
            state=sim_input.state_code,
            coverage_version_id=sim_input.coverage_version_id,
        ))
    except Exception as e:
        logger.exception("Underwriting phase failed")
        return UWPhaseResult(
            decision=None,
            severity=None,
            fired_rule_count=0,
            total_rule_count=len(rules),
            errors=[f"Underwriting evaluation failed: {e}"],
            execution_time_ms=_elapsed_ms(start),
        )

    fired = [
        UWFiredRule(
            rule_id=entry.rule_id,
            rule_name=entry.rule_name,
            action=entry.outcome.action,
            severity=entry.outcome.severity,
            message=entry.outcome.message,
        )
        for entry in result.fired_rules
        if entry.outcome is not None
    ]

    return UWPhaseResult(
        decision=result.aggregate_action,
        severity=result.aggregate_severity,
        fired_rule_count=len(fired),
        total_rule_count=len(rules),
        fired_rules=fired,
        trace=result.trace,
        errors=list(result.errors),
        execution_time_ms=result.execution_time_ms,
        result_hash=result.result_hash,
    )


# =============================================================================
# Premium Phase
# =============================================================================

def run_premium_phase(
    steps: Sequence[RatingStep],
    sim_input: SimulationInput,
    rate_program_version_id: str = "",
    tables: Optional[Mapping[str, RatingTable]] = None,
) -> PremiumPhaseResult:
    """Evaluate the rate program for the simulation inputs."""
    start = time.perf_counter()
    try:
        result = evaluate(steps, EvaluationContext(
            inputs=dict(sim_input.inputs),
            state=sim_input.state_code,
            effective_date=sim_input.effective_date,
            tables=dict(tables or {}),
        ), rate_program_version_id)
    except Exception as e:
        logger.exception("Premium phase failed")
        return PremiumPhaseResult(
            success=False,
            errors=[EvaluationErrorRecord(
                code=EvaluationErrorType.STEP_FAILED,
                message=f"Premium evaluation failed: {e}",
            )],
            execution_time_ms=_elapsed_ms(start),
        )

    return PremiumPhaseResult(
        success=result.success,
        outputs=result.outputs,
        final_premium=result.final_premium,
        trace=result.trace,
        errors=result.errors,
        warnings=result.warnings,
        execution_time_ms=result.execution_time_ms,
        result_hash=result.result_hash,
    )


# =============================================================================
# Forms Phase
# =============================================================================

def resolve_applicable_forms(
    form_records: Sequence[FormUseRecord],
    state_code: str,
) -> FormsPhaseResult:
    """
    Select forms that apply in a state.

    A form applies when it has no jurisdictions or lists the state.
    Groups keep input order.
    """
    applicable: list[ApplicableForm] = []
    by_use_type: dict[str, list[ApplicableForm]] = {}

    for record in form_records:
        if record.jurisdictions and state_code not in record.jurisdictions:
            continue
        form = ApplicableForm(
            form_id=record.form_id,
            form_number=record.form_number,
            form_title=record.form_title,
            type=record.type,
            use_type=record.use_type,
            edition_date=record.edition_date,
        )
        applicable.append(form)
        by_use_type.setdefault(record.use_type, []).append(form)

    return FormsPhaseResult(
        applicable_forms=applicable,
        total_form_count=len(applicable),
        by_use_type=by_use_type,
    )


def _run_forms_phase(
    form_records: Sequence[FormUseRecord],
    state_code: str,
) -> FormsPhaseResult:
    try:
        return resolve_applicable_forms(form_records, state_code)
    except Exception as e:
        logger.exception("Forms phase failed")
        return FormsPhaseResult(
            applicable_forms=[],
            total_form_count=0,
            by_use_type={},
            errors=[f"Forms resolution failed: {e}"],
        )


# =============================================================================
# Orchestration
# =============================================================================

def run_simulation(
    sim_input: SimulationInput,
    rules: Sequence[RuleWithVersion],
    steps: Sequence[RatingStep],
    form_records: Sequence[FormUseRecord],
    rate_program_version_id: str = "",
    tables: Optional[Mapping[str, RatingTable]] = None,
) -> SimulationOutput:
    """
    Run all three phases for one input context.

    Always returns all three results.
    """
    start = time.perf_counter()

    uw_result = run_uw_phase(rules, sim_input)
    premium_result = run_premium_phase(steps, sim_input, rate_program_version_id, tables)
    forms_result = _run_forms_phase(form_records, sim_input.state_code)

    elapsed = _elapsed_ms(start)
    logger.info(
        "Simulation for %s/%s: decision=%s premium=%s forms=%d",
        sim_input.product_version_id,
        sim_input.state_code,
        uw_result.decision.value if uw_result.decision else None,
        premium_result.final_premium,
        forms_result.total_form_count,
        extra={"duration_ms": round(elapsed, 3)},
    )

    return SimulationOutput(
        uw_result=uw_result,
        premium_result=premium_result,
        forms_result=forms_result,
        total_execution_time_ms=elapsed,
    )
