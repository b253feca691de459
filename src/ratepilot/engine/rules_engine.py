"""
RatePilot Underwriting Rules Engine

Evaluates scoped, versioned underwriting rules against field inputs.

Key features:
- Scope filtering by product version, state, coverage and effective dates
- Fully traced condition evaluation with short-circuit AND/OR
- Most-conservative aggregation of fired outcomes
- Result hash over inputs, rule definitions and fire decisions
- Pre-publish validation and product-level readiness checks

Same inputs + same rule versions => identical outcomes, trace and hash.
"""
from __future__ import annotations

import logging
import time
import uuid
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Optional, Sequence

from ..canon import combine_hashes, fast_hash
from ..exceptions import RatePilotError
from ..models import (
    ConditionGroup,
    ConditionLeaf,
    ConditionNode,
    ConditionOperator,
    IssueSeverity,
    LogicOperator,
    ReadinessIssue,
    ReadinessIssueType,
    RuleAction,
    RuleEvaluationContext,
    RuleEvaluationResult,
    RuleOutcome,
    RuleReadinessResult,
    RuleScope,
    RuleSeverity,
    RuleStatus,
    RuleTraceEntry,
    RuleType,
    RuleValidationIssue,
    RuleValidationResult,
    RuleWithVersion,
    UnderwritingRuleVersion,
)
from .condition_evaluator import ConditionEvaluator


logger = logging.getLogger(__name__)


IdFactory = Callable[[], str]


# =============================================================================
# Severity and Action Ranking
# =============================================================================

SEVERITY_ORDER = [RuleSeverity.INFO, RuleSeverity.WARNING, RuleSeverity.ERROR, RuleSeverity.BLOCK]
ACTION_ORDER = [
    RuleAction.ACCEPT,
    RuleAction.FLAG,
    RuleAction.REQUIRE_DOCS,
    RuleAction.REFER,
    RuleAction.DECLINE,
]


def severity_rank(severity: RuleSeverity) -> int:
    return SEVERITY_ORDER.index(severity)


def action_rank(action: RuleAction) -> int:
    return ACTION_ORDER.index(action)


def most_severe(severities: Iterable[RuleSeverity]) -> Optional[RuleSeverity]:
    """Highest-ranked severity, or None for an empty input."""
    return max(severities, key=severity_rank, default=None)


def most_conservative(actions: Iterable[RuleAction]) -> Optional[RuleAction]:
    """Highest-ranked action, or None for an empty input."""
    return max(actions, key=action_rank, default=None)


# =============================================================================
# Scope Filtering
# =============================================================================

def _as_date(value: date) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def check_scope(
    version: UnderwritingRuleVersion,
    context: RuleEvaluationContext,
) -> Optional[str]:
    """
    Check whether a rule version applies to the context.

    Returns:
        None when in scope, otherwise a readable skip reason
    """
    scope = version.scope
    if scope.product_version_id != context.product_version_id:
        return (
            f"Product version mismatch (rule: {scope.product_version_id}, "
            f"context: {context.product_version_id})"
        )

    if scope.state_code and scope.state_code != context.state:
        return f"State mismatch (rule: {scope.state_code}, context: {context.state})"

    if scope.coverage_version_id and scope.coverage_version_id != context.coverage_version_id:
        return "Coverage version mismatch"

    effective = _as_date(context.effective_date)
    if version.effective_start and effective < _as_date(version.effective_start):
        return f"Not yet effective (starts {version.effective_start.isoformat()})"
    if version.effective_end and effective > _as_date(version.effective_end):
        return f"Expired (ended {version.effective_end.isoformat()})"

    return None


# =============================================================================
# Evaluation
# =============================================================================

def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def evaluate_rules(
    rules: Sequence[RuleWithVersion],
    context: RuleEvaluationContext,
) -> RuleEvaluationResult:
    """
    Evaluate rules in input order.

    Out-of-scope rules land in passed_rules with a skip reason and an
    empty condition trace. A rule whose tree raises is reported in
    errors and does not fire.

    Args:
        rules: Rules paired with the versions to evaluate
        context: Inputs and scope for this evaluation

    Returns:
        RuleEvaluationResult with aggregate outcome and result hash
    """
    start = time.perf_counter()
    trace: list[RuleTraceEntry] = []
    fired_rules: list[RuleTraceEntry] = []
    passed_rules: list[RuleTraceEntry] = []
    errors: list[str] = []

    evaluator = ConditionEvaluator()

    for rule in rules:
        rule_start = time.perf_counter()

        skip_reason = check_scope(rule.version, context)
        if skip_reason is not None:
            logger.debug("Rule %s skipped: %s", rule.rule_id, skip_reason)
            entry = RuleTraceEntry(
                rule_id=rule.rule_id,
                rule_version_id=rule.version.id,
                rule_name=rule.rule_name,
                rule_type=rule.rule_type,
                fired=False,
                outcome=None,
                skip_reason=skip_reason,
                execution_time_ms=_elapsed_ms(rule_start),
            )
            trace.append(entry)
            passed_rules.append(entry)
            continue

        fired = False
        try:
            fired = evaluator.evaluate(rule.version.conditions, context.inputs)
        except (RatePilotError, TypeError, ValueError, AttributeError, RecursionError) as e:
            message = e.message if isinstance(e, RatePilotError) else str(e)
            logger.warning("Rule %s failed to evaluate: %s", rule.rule_id, message)
            errors.append(f'Rule "{rule.rule_name}": {message}')

        entry = RuleTraceEntry(
            rule_id=rule.rule_id,
            rule_version_id=rule.version.id,
            rule_name=rule.rule_name,
            rule_type=rule.rule_type,
            fired=fired,
            outcome=rule.version.outcome if fired else None,
            condition_trace=list(evaluator.trace),
            execution_time_ms=_elapsed_ms(rule_start),
        )
        trace.append(entry)
        if fired:
            fired_rules.append(entry)
        else:
            passed_rules.append(entry)

    aggregate_severity = most_severe(r.outcome.severity for r in fired_rules)
    aggregate_action = most_conservative(r.outcome.action for r in fired_rules)

    inputs_hash = fast_hash(context.inputs)
    rules_hash = fast_hash([
        {
            "id": r.version.id,
            "conditions": r.version.conditions,
            "outcome": r.version.outcome,
        }
        for r in rules
    ])
    outcomes_hash = fast_hash([
        {"rule_id": r.rule_id, "fired": r.fired} for r in fired_rules
    ])
    result_hash = combine_hashes(inputs_hash, rules_hash, outcomes_hash)

    elapsed = _elapsed_ms(start)
    logger.info(
        "Evaluated %d rules: %d fired, aggregate=%s",
        len(rules), len(fired_rules),
        aggregate_action.value if aggregate_action else None,
        extra={"result_hash": result_hash, "duration_ms": round(elapsed, 3)},
    )

    return RuleEvaluationResult(
        fired_rules=fired_rules,
        passed_rules=passed_rules,
        trace=trace,
        aggregate_action=aggregate_action,
        aggregate_severity=aggregate_severity,
        errors=errors,
        result_hash=result_hash,
        execution_time_ms=elapsed,
    )


# =============================================================================
# Validation
# =============================================================================

_NO_VALUE_OPERATORS = (ConditionOperator.IS_TRUE, ConditionOperator.IS_FALSE)


def validate_rule_version(
    version: UnderwritingRuleVersion,
    available_field_codes: Sequence[str],
) -> RuleValidationResult:
    """
    Check a rule version before publishing.

    Never raises. is_valid is False only when an error-level issue exists.
    """
    issues: list[RuleValidationIssue] = []
    referenced: list[str] = []
    field_set = set(available_field_codes)

    def walk(node: ConditionNode, path: str) -> None:
        if isinstance(node, ConditionLeaf):
            if node.field_code and node.field_code not in referenced:
                referenced.append(node.field_code)

            if not node.field_code:
                issues.append(RuleValidationIssue(
                    type=IssueSeverity.ERROR,
                    message="Condition has no field selected",
                    path=path,
                ))
            elif node.field_code not in field_set:
                issues.append(RuleValidationIssue(
                    type=IssueSeverity.ERROR,
                    message=f'Field "{node.field_code}" is not in the data dictionary',
                    path=path,
                    field_code=node.field_code,
                ))

            if node.operator == ConditionOperator.BETWEEN and node.value_end is None:
                issues.append(RuleValidationIssue(
                    type=IssueSeverity.ERROR,
                    message='"between" operator requires an end value',
                    path=path,
                ))

            if (
                node.operator in (ConditionOperator.IN, ConditionOperator.NOT_IN)
                and not isinstance(node.value, list)
            ):
                issues.append(RuleValidationIssue(
                    type=IssueSeverity.ERROR,
                    message=f'"{node.operator.value}" operator requires an array value',
                    path=path,
                ))

            if node.value == "" and node.operator not in _NO_VALUE_OPERATORS:
                issues.append(RuleValidationIssue(
                    type=IssueSeverity.WARNING,
                    message="Condition value is empty",
                    path=path,
                ))
            return

        if not node.conditions:
            issues.append(RuleValidationIssue(
                type=IssueSeverity.WARNING,
                message="Empty condition group",
                path=path,
            ))
        for i, child in enumerate(node.conditions):
            walk(child, f"{path}.conditions[{i}]")

    walk(version.conditions, "conditions")

    if not version.outcome.message:
        issues.append(RuleValidationIssue(
            type=IssueSeverity.WARNING,
            message="Outcome message is empty",
        ))

    if not version.scope.product_version_id:
        issues.append(RuleValidationIssue(
            type=IssueSeverity.ERROR,
            message="Rule must be scoped to a product version",
        ))

    return RuleValidationResult(issues=issues, referenced_field_codes=referenced)


# =============================================================================
# Readiness
# =============================================================================

def check_rule_readiness(
    rules: Sequence[RuleWithVersion],
    product_version_id: str,
    available_field_codes: Sequence[str],
    today: Optional[date] = None,
) -> RuleReadinessResult:
    """
    Summarize rule readiness for a product version.

    Reports expired published rules, draft-only rules, unknown field
    references, contradictory outcomes within one scope, and a missing
    published eligibility rule.

    Args:
        rules: All rule versions known for the product
        product_version_id: Product version to check
        available_field_codes: Data dictionary field codes
        today: Reference date for expiry (defaults to the current UTC date)
    """
    if today is None:
        today = datetime.now(timezone.utc).date()

    issues: list[ReadinessIssue] = []
    scoped = [r for r in rules if r.version.scope.product_version_id == product_version_id]
    published = [r for r in scoped if r.version.status == RuleStatus.PUBLISHED]
    drafts = [r for r in scoped if r.version.status == RuleStatus.DRAFT]

    for rule in published:
        end = rule.version.effective_end
        if end and _as_date(end) < today:
            issues.append(ReadinessIssue(
                type=ReadinessIssueType.EXPIRED_RULE,
                severity=IssueSeverity.WARNING,
                message=f'Rule "{rule.rule_name}" expired on {end.isoformat()}',
                rule_ids=[rule.rule_id],
                rule_names=[rule.rule_name],
            ))

    published_ids = {r.rule_id for r in published}
    for draft in drafts:
        if draft.rule_id not in published_ids:
            issues.append(ReadinessIssue(
                type=ReadinessIssueType.DRAFT_ONLY,
                severity=IssueSeverity.WARNING,
                message=f'Rule "{draft.rule_name}" exists only as a draft',
                rule_ids=[draft.rule_id],
                rule_names=[draft.rule_name],
            ))

    field_set = set(available_field_codes)
    for rule in published:
        validation = validate_rule_version(rule.version, available_field_codes)
        for issue in validation.issues:
            if (
                issue.type == IssueSeverity.ERROR
                and issue.field_code
                and issue.field_code not in field_set
            ):
                issues.append(ReadinessIssue(
                    type=ReadinessIssueType.INVALID_FIELD_REF,
                    severity=IssueSeverity.ERROR,
                    message=f'Rule "{rule.rule_name}" references unknown field "{issue.field_code}"',
                    rule_ids=[rule.rule_id],
                    rule_names=[rule.rule_name],
                ))

    by_type_and_scope: dict[str, list[RuleWithVersion]] = {}
    for rule in published:
        scope = rule.version.scope
        key = "|".join([
            rule.rule_type.value,
            scope.state_code or "ALL",
            scope.coverage_version_id or "ALL",
        ])
        by_type_and_scope.setdefault(key, []).append(rule)

    for group in by_type_and_scope.values():
        if len(group) < 2:
            continue
        actions = {r.version.outcome.action for r in group}
        if RuleAction.ACCEPT in actions and (
            RuleAction.DECLINE in actions or RuleAction.REFER in actions
        ):
            names = ", ".join(f'"{r.rule_name}"' for r in group)
            issues.append(ReadinessIssue(
                type=ReadinessIssueType.CONFLICTING_RULES,
                severity=IssueSeverity.ERROR,
                message=f"Conflicting rules: {names} have contradictory outcomes",
                rule_ids=[r.rule_id for r in group],
                rule_names=[r.rule_name for r in group],
            ))

    has_eligibility = any(r.rule_type == RuleType.ELIGIBILITY for r in published)
    if scoped and not has_eligibility:
        issues.append(ReadinessIssue(
            type=ReadinessIssueType.MISSING_RULE,
            severity=IssueSeverity.INFO,
            message="No published eligibility rules found for this product version",
        ))

    return RuleReadinessResult(
        total_rules=len(scoped),
        published_rules=len(published),
        draft_rules=len(drafts),
        issues=issues,
    )


# =============================================================================
# Tree Helpers
# =============================================================================

def extract_field_codes(node: ConditionNode) -> list[str]:
    """Flat list of leaf field codes, in tree order."""
    if isinstance(node, ConditionLeaf):
        return [node.field_code] if node.field_code else []
    codes: list[str] = []
    for child in node.conditions:
        codes.extend(extract_field_codes(child))
    return codes


def _uuid_id() -> str:
    return f"cond_{uuid.uuid4().hex}"


def make_condition_id(id_factory: Optional[IdFactory] = None) -> str:
    return (id_factory or _uuid_id)()


def create_empty_leaf(id_factory: Optional[IdFactory] = None) -> ConditionLeaf:
    return ConditionLeaf(
        id=make_condition_id(id_factory),
        field_code="",
        operator=ConditionOperator.EQ,
        value="",
    )


def create_empty_group(
    operator: LogicOperator = LogicOperator.AND,
    id_factory: Optional[IdFactory] = None,
) -> ConditionGroup:
    """New group holding one empty leaf, ready for editing."""
    return ConditionGroup(
        id=make_condition_id(id_factory),
        operator=operator,
        conditions=[create_empty_leaf(id_factory)],
    )


def create_default_outcome() -> RuleOutcome:
    return RuleOutcome(action=RuleAction.FLAG, message="", severity=RuleSeverity.WARNING)


def create_default_scope(product_version_id: str = "") -> RuleScope:
    return RuleScope(product_version_id=product_version_id)
