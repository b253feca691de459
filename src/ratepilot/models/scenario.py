"""
RatePilot Regression Models

Scenarios, QA runs and the QA gate that guards publishing a rate program.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .enums import IssueSeverity, QAGateMode, QARunStatus, ScenarioStatus
from .rating import Number, RatingStep, RatingTable
from .values import FieldValue


@dataclass
class Scenario:
    """Named fixed input set with expected outputs."""
    id: str
    name: str
    inputs: dict[str, FieldValue]
    expected_outputs: dict[str, Number]
    tolerance: float = 0.01
    state_code: Optional[str] = None
    rate_program_id: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    is_required: bool = False
    is_active: bool = True


@dataclass
class ScenarioFieldDiff:
    """A field whose actual value fell outside tolerance."""
    field_code: str
    expected: Number
    actual: Number
    delta: Number
    abs_delta: Number
    pct_change: float
    within_tolerance: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "field_code": self.field_code,
            "expected": self.expected,
            "actual": self.actual,
            "delta": self.delta,
            "abs_delta": self.abs_delta,
            "pct_change": self.pct_change,
            "within_tolerance": self.within_tolerance,
        }


@dataclass
class ScenarioResult:
    scenario_id: str
    scenario_name: str
    status: ScenarioStatus
    actual_outputs: dict[str, Number]
    expected_outputs: dict[str, Number]
    diffs: list[ScenarioFieldDiff] = field(default_factory=list)
    baseline_outputs: Optional[dict[str, Number]] = None
    error_message: Optional[str] = None
    result_hash: Optional[str] = None
    execution_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario_id": self.scenario_id,
            "scenario_name": self.scenario_name,
            "status": self.status.value,
            "actual_outputs": dict(self.actual_outputs),
            "expected_outputs": dict(self.expected_outputs),
            "diffs": [d.to_dict() for d in self.diffs],
            "baseline_outputs": dict(self.baseline_outputs) if self.baseline_outputs is not None else None,
            "error_message": self.error_message,
            "result_hash": self.result_hash,
            "execution_time_ms": self.execution_time_ms,
        }


@dataclass
class RegressionRunInput:
    """Everything one regression run needs."""
    scenarios: list[Scenario]
    draft_steps: list[RatingStep]
    draft_version_id: str
    baseline_steps: Optional[list[RatingStep]] = None
    baseline_version_id: Optional[str] = None
    tables: dict[str, RatingTable] = field(default_factory=dict)


@dataclass(frozen=True)
class QARun:
    """
    Batch result over a set of scenarios.

    Immutable: re-running produces a new QARun.
    """
    status: QARunStatus
    results: tuple[ScenarioResult, ...]
    total_scenarios: int
    passed_count: int
    failed_count: int
    error_count: int
    run_hash: str
    draft_version_id: str = ""
    total_execution_time_ms: float = 0.0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def pass_rate(self) -> float:
        """Passed / total. An empty run has a pass rate of 0."""
        if self.total_scenarios == 0:
            return 0.0
        return self.passed_count / self.total_scenarios

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "results": [r.to_dict() for r in self.results],
            "total_scenarios": self.total_scenarios,
            "passed_count": self.passed_count,
            "failed_count": self.failed_count,
            "error_count": self.error_count,
            "pass_rate": self.pass_rate,
            "run_hash": self.run_hash,
            "draft_version_id": self.draft_version_id,
            "total_execution_time_ms": self.total_execution_time_ms,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# QA Gate
# =============================================================================

@dataclass
class QAGateConfig:
    mode: QAGateMode = QAGateMode.REQUIRED
    min_pass_rate: float = 1.0
    require_mandatory_pass: bool = True
    auto_run_on_review: bool = False


@dataclass
class QAGateIssue:
    type: IssueSeverity
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "message": self.message}


@dataclass
class QAGateResult:
    passed: bool
    mode: QAGateMode
    issues: list[QAGateIssue] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "mode": self.mode.value,
            "issues": [i.to_dict() for i in self.issues],
        }
