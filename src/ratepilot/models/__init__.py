"""
RatePilot Models

All domain models for the RatePilot evaluation engines.

Exports all models organized by category for convenient imports:

    from ratepilot.models import (
        # Enums
        StepType, RoundingMode, RuleAction, RuleSeverity,
        # Rating
        RatingStep, RatingTable, EvaluationContext, EvaluationResult,
        # Rules
        ConditionLeaf, ConditionGroup, RuleWithVersion,
        # Deviations
        Override, DiffEntry, DiffResult,
        # Regression
        Scenario, QARun, QAGateConfig,
        # Simulation
        SimulationInput, FormUseRecord, SimulationOutput,
    )
"""
from __future__ import annotations

# =============================================================================
# Enums
# =============================================================================
from .enums import (
    ConditionOperator,
    DeviationCategory,
    DeviationIssueType,
    DiffStatus,
    EvaluationErrorType,
    IssueSeverity,
    LogicOperator,
    QAGateMode,
    QARunStatus,
    ReadinessIssueType,
    RoundingMode,
    RuleAction,
    RuleSeverity,
    RuleStatus,
    RuleType,
    ScenarioStatus,
    StepType,
    ValidationWarningType,
)

# =============================================================================
# Field Values
# =============================================================================
from .values import (
    FieldValue,
    coerce_pool_value,
    format_number,
    is_number,
    strict_contains,
    strict_equals,
    to_number,
    value_type_family,
)

# =============================================================================
# Rating
# =============================================================================
from .rating import (
    DependencyNode,
    DeterminismError,
    DeterminismValidationResult,
    DeterminismWarning,
    EvaluationContext,
    EvaluationErrorRecord,
    EvaluationResult,
    LookupDimension,
    Number,
    RatingStep,
    RatingTable,
    RatingTestCase,
    StepCondition,
    StepTraceEntry,
    TableDimension,
    TestDifference,
    TestRunResult,
    TopologicalSortResult,
)

# =============================================================================
# Rules
# =============================================================================
from .rules import (
    ConditionGroup,
    ConditionLeaf,
    ConditionNode,
    ConditionTraceEntry,
    ReadinessIssue,
    RuleEvaluationContext,
    RuleEvaluationResult,
    RuleOutcome,
    RuleReadinessResult,
    RuleScope,
    RuleTraceEntry,
    RuleValidationIssue,
    RuleValidationResult,
    RuleWithVersion,
    UnderwritingRuleVersion,
)

# =============================================================================
# Deviations
# =============================================================================
from .deviation import (
    ConflictRecord,
    DeviationValidationIssue,
    DiffEntry,
    DiffResult,
    LeafPath,
    Override,
)

# =============================================================================
# Regression
# =============================================================================
from .scenario import (
    QAGateConfig,
    QAGateIssue,
    QAGateResult,
    QARun,
    RegressionRunInput,
    Scenario,
    ScenarioFieldDiff,
    ScenarioResult,
)

# =============================================================================
# Simulation
# =============================================================================
from .simulation import (
    ApplicableForm,
    FormsPhaseResult,
    FormUseRecord,
    PremiumPhaseResult,
    SimulationInput,
    SimulationOutput,
    UWFiredRule,
    UWPhaseResult,
)

# =============================================================================
# Bundles
# =============================================================================
from .bundles import (
    FormCatalog,
    RateProgram,
    RuleSet,
    StateDeviation,
)


__all__ = [
    # Enums
    "ConditionOperator",
    "DeviationCategory",
    "DeviationIssueType",
    "DiffStatus",
    "EvaluationErrorType",
    "IssueSeverity",
    "LogicOperator",
    "QAGateMode",
    "QARunStatus",
    "ReadinessIssueType",
    "RoundingMode",
    "RuleAction",
    "RuleSeverity",
    "RuleStatus",
    "RuleType",
    "ScenarioStatus",
    "StepType",
    "ValidationWarningType",
    # Field values
    "FieldValue",
    "coerce_pool_value",
    "format_number",
    "is_number",
    "strict_contains",
    "strict_equals",
    "to_number",
    "value_type_family",
    # Rating
    "DependencyNode",
    "DeterminismError",
    "DeterminismValidationResult",
    "DeterminismWarning",
    "EvaluationContext",
    "EvaluationErrorRecord",
    "EvaluationResult",
    "LookupDimension",
    "Number",
    "RatingStep",
    "RatingTable",
    "RatingTestCase",
    "StepCondition",
    "StepTraceEntry",
    "TableDimension",
    "TestDifference",
    "TestRunResult",
    "TopologicalSortResult",
    # Rules
    "ConditionGroup",
    "ConditionLeaf",
    "ConditionNode",
    "ConditionTraceEntry",
    "ReadinessIssue",
    "RuleEvaluationContext",
    "RuleEvaluationResult",
    "RuleOutcome",
    "RuleReadinessResult",
    "RuleScope",
    "RuleTraceEntry",
    "RuleValidationIssue",
    "RuleValidationResult",
    "RuleWithVersion",
    "UnderwritingRuleVersion",
    # Deviations
    "ConflictRecord",
    "DeviationValidationIssue",
    "DiffEntry",
    "DiffResult",
    "LeafPath",
    "Override",
    # Regression
    "QAGateConfig",
    "QAGateIssue",
    "QAGateResult",
    "QARun",
    "RegressionRunInput",
    "Scenario",
    "ScenarioFieldDiff",
    "ScenarioResult",
    # Simulation
    "ApplicableForm",
    "FormsPhaseResult",
    "FormUseRecord",
    "PremiumPhaseResult",
    "SimulationInput",
    "SimulationOutput",
    "UWFiredRule",
    "UWPhaseResult",
    # Bundles
    "FormCatalog",
    "RateProgram",
    "RuleSet",
    "StateDeviation",
]
