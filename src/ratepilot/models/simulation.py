"""
RatePilot Simulation Models

Input and phase results for the three-phase quote simulation:
underwriting rules, premium rating and forms applicability.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from .enums import RuleAction, RuleSeverity
from .rating import EvaluationErrorRecord, Number, StepTraceEntry
from .rules import RuleTraceEntry
from .values import FieldValue


@dataclass
class SimulationInput:
    product_id: str
    product_version_id: str
    state_code: str
    effective_date: date
    inputs: dict[str, FieldValue] = field(default_factory=dict)
    coverage_version_id: Optional[str] = None


# =============================================================================
# Forms
# =============================================================================

@dataclass
class FormUseRecord:
    """
    A form attached to the product.

    An empty jurisdictions list means the form applies in every state.
    """
    form_id: str
    form_number: str
    form_title: str
    type: str
    use_type: str
    edition_date: Optional[str] = None
    jurisdictions: list[str] = field(default_factory=list)


@dataclass
class ApplicableForm:
    form_id: str
    form_number: str
    form_title: str
    type: str
    use_type: str
    edition_date: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "form_id": self.form_id,
            "form_number": self.form_number,
            "form_title": self.form_title,
            "type": self.type,
            "use_type": self.use_type,
            "edition_date": self.edition_date,
        }


@dataclass
class FormsPhaseResult:
    applicable_forms: list[ApplicableForm]
    total_form_count: int
    by_use_type: dict[str, list[ApplicableForm]]
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "applicable_forms": [f.to_dict() for f in self.applicable_forms],
            "total_form_count": self.total_form_count,
            "by_use_type": {
                k: [f.to_dict() for f in v] for k, v in self.by_use_type.items()
            },
            "errors": list(self.errors),
        }


# =============================================================================
# Underwriting and Premium Phases
# =============================================================================

@dataclass
class UWFiredRule:
    rule_id: str
    rule_name: str
    action: RuleAction
    severity: RuleSeverity
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "action": self.action.value,
            "severity": self.severity.value,
            "message": self.message,
        }


@dataclass
class UWPhaseResult:
    """
    Underwriting summary. decision is None when no rule fired.
    """
    decision: Optional[RuleAction]
    severity: Optional[RuleSeverity]
    fired_rule_count: int
    total_rule_count: int
    fired_rules: list[UWFiredRule] = field(default_factory=list)
    trace: list[RuleTraceEntry] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    execution_time_ms: float = 0.0
    result_hash: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision.value if self.decision else None,
            "severity": self.severity.value if self.severity else None,
            "fired_rule_count": self.fired_rule_count,
            "total_rule_count": self.total_rule_count,
            "fired_rules": [r.to_dict() for r in self.fired_rules],
            "trace": [t.to_dict() for t in self.trace],
            "errors": list(self.errors),
            "execution_time_ms": self.execution_time_ms,
            "result_hash": self.result_hash,
        }


@dataclass
class PremiumPhaseResult:
    success: bool
    outputs: dict[str, Number] = field(default_factory=dict)
    final_premium: Optional[Number] = None
    trace: list[StepTraceEntry] = field(default_factory=list)
    errors: list[EvaluationErrorRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    execution_time_ms: float = 0.0
    result_hash: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "outputs": dict(self.outputs),
            "final_premium": self.final_premium,
            "trace": [t.to_dict() for t in self.trace],
            "errors": [e.to_dict() for e in self.errors],
            "warnings": list(self.warnings),
            "execution_time_ms": self.execution_time_ms,
            "result_hash": self.result_hash,
        }


@dataclass
class SimulationOutput:
    uw_result: UWPhaseResult
    premium_result: PremiumPhaseResult
    forms_result: FormsPhaseResult
    total_execution_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "uw_result": self.uw_result.to_dict(),
            "premium_result": self.premium_result.to_dict(),
            "forms_result": self.forms_result.to_dict(),
            "total_execution_time_ms": self.total_execution_time_ms,
        }
