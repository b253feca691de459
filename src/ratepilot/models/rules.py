"""
RatePilot Underwriting Rule Models

Models for scoped, versioned underwriting rules and their evaluation.

Key components:
- ConditionLeaf / ConditionGroup: AND/OR condition trees
- UnderwritingRuleVersion: Immutable-once-published rule snapshot
- RuleWithVersion: A rule shell paired with the version to evaluate
- RuleEvaluationResult: Fired/passed rules, aggregate outcome, trace, hash
- RuleValidationResult / RuleReadinessResult: Pre-publish checks
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

from .enums import (
    ConditionOperator,
    IssueSeverity,
    LogicOperator,
    ReadinessIssueType,
    RuleAction,
    RuleSeverity,
    RuleStatus,
    RuleType,
)
from .values import FieldValue


# =============================================================================
# Condition Trees
# =============================================================================

@dataclass
class ConditionLeaf:
    """
    Single field comparison.

    Attributes:
        id: Condition ID (for trace and editor references)
        field_code: Input field to read
        operator: Comparison operator
        value: Expected value (a list for in/notIn)
        value_end: Upper bound for between
    """
    id: str
    field_code: str
    operator: ConditionOperator
    value: Any = ""
    value_end: Optional[Any] = None

    @property
    def kind(self) -> str:
        return "leaf"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "kind": "leaf",
            "id": self.id,
            "field_code": self.field_code,
            "operator": self.operator.value,
            "value": self.value,
        }
        if self.value_end is not None:
            result["value_end"] = self.value_end
        return result


@dataclass
class ConditionGroup:
    """Ordered group of child conditions joined by AND or OR."""
    id: str
    operator: LogicOperator = LogicOperator.AND
    conditions: list["ConditionNode"] = field(default_factory=list)

    @property
    def kind(self) -> str:
        return "group"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "group",
            "id": self.id,
            "operator": self.operator.value,
            "conditions": [c.to_dict() for c in self.conditions],
        }


ConditionNode = Union[ConditionLeaf, ConditionGroup]


# =============================================================================
# Rule Versions
# =============================================================================

@dataclass
class RuleOutcome:
    action: RuleAction
    message: str = ""
    severity: RuleSeverity = RuleSeverity.WARNING
    required_docs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "message": self.message,
            "severity": self.severity.value,
            "required_docs": list(self.required_docs),
        }


@dataclass
class RuleScope:
    """
    Where a rule version applies.

    A None state_code means all states. A None coverage_version_id means
    all coverages.
    """
    product_version_id: str
    state_code: Optional[str] = None
    coverage_version_id: Optional[str] = None


@dataclass
class UnderwritingRuleVersion:
    """Snapshot of a rule's conditions, outcome and scope."""
    id: str
    rule_id: str
    conditions: ConditionGroup
    outcome: RuleOutcome
    scope: RuleScope
    version_number: int = 1
    status: RuleStatus = RuleStatus.DRAFT
    effective_start: Optional[date] = None
    effective_end: Optional[date] = None
    summary: Optional[str] = None


@dataclass
class RuleWithVersion:
    """A rule shell paired with the version to evaluate."""
    rule_id: str
    rule_name: str
    rule_type: RuleType
    version: UnderwritingRuleVersion


@dataclass
class RuleEvaluationContext:
    """Inputs and scope for one rules evaluation."""
    inputs: dict[str, FieldValue]
    product_version_id: str
    effective_date: date
    state: Optional[str] = None
    coverage_version_id: Optional[str] = None


# =============================================================================
# Evaluation Results
# =============================================================================

@dataclass
class ConditionTraceEntry:
    """One leaf comparison that actually ran."""
    condition_id: str
    field_code: str
    operator: ConditionOperator
    expected_value: Any
    actual_value: FieldValue
    result: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "condition_id": self.condition_id,
            "field_code": self.field_code,
            "operator": self.operator.value,
            "expected_value": self.expected_value,
            "actual_value": self.actual_value,
            "result": self.result,
        }


@dataclass
class RuleTraceEntry:
    rule_id: str
    rule_version_id: str
    rule_name: str
    rule_type: RuleType
    fired: bool
    outcome: Optional[RuleOutcome]
    condition_trace: list[ConditionTraceEntry] = field(default_factory=list)
    skip_reason: Optional[str] = None
    execution_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_version_id": self.rule_version_id,
            "rule_name": self.rule_name,
            "rule_type": self.rule_type.value,
            "fired": self.fired,
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "condition_trace": [c.to_dict() for c in self.condition_trace],
            "skip_reason": self.skip_reason,
            "execution_time_ms": self.execution_time_ms,
        }


@dataclass
class RuleEvaluationResult:
    fired_rules: list[RuleTraceEntry]
    passed_rules: list[RuleTraceEntry]
    trace: list[RuleTraceEntry]
    aggregate_action: Optional[RuleAction]
    aggregate_severity: Optional[RuleSeverity]
    errors: list[str]
    result_hash: str
    execution_time_ms: float = 0.0
    evaluated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "fired_rules": [r.to_dict() for r in self.fired_rules],
            "passed_rules": [r.to_dict() for r in self.passed_rules],
            "aggregate_action": self.aggregate_action.value if self.aggregate_action else None,
            "aggregate_severity": self.aggregate_severity.value if self.aggregate_severity else None,
            "errors": list(self.errors),
            "result_hash": self.result_hash,
            "execution_time_ms": self.execution_time_ms,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


# =============================================================================
# Validation and Readiness
# =============================================================================

@dataclass
class RuleValidationIssue:
    type: IssueSeverity
    message: str
    path: Optional[str] = None
    field_code: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "path": self.path,
            "field_code": self.field_code,
        }


@dataclass
class RuleValidationResult:
    issues: list[RuleValidationIssue]
    referenced_field_codes: list[str]

    @property
    def is_valid(self) -> bool:
        return not any(i.type == IssueSeverity.ERROR for i in self.issues)


@dataclass
class ReadinessIssue:
    type: ReadinessIssueType
    severity: IssueSeverity
    message: str
    rule_ids: list[str] = field(default_factory=list)
    rule_names: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "rule_ids": list(self.rule_ids),
            "rule_names": list(self.rule_names),
        }


@dataclass
class RuleReadinessResult:
    total_rules: int
    published_rules: int
    draft_rules: int
    issues: list[ReadinessIssue]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_rules": self.total_rules,
            "published_rules": self.published_rules,
            "draft_rules": self.draft_rules,
            "issues": [i.to_dict() for i in self.issues],
        }
