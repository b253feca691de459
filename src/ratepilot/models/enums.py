"""
RatePilot Enumerations

All enumeration types used throughout the RatePilot engines.
Organized by engine for clarity.

All enums inherit from (str, Enum) for JSON serialization compatibility.
"""
from __future__ import annotations

from enum import Enum


# =============================================================================
# Rating Steps
# =============================================================================

class StepType(str, Enum):
    """Kinds of node in the premium-calculation graph."""
    INPUT = "input"
    CONSTANT = "constant"
    FACTOR = "factor"
    TABLE_LOOKUP = "tableLookup"
    EXPRESSION = "expression"
    MINMAX = "minmax"
    FEE = "fee"
    CONDITIONAL = "conditional"


class RoundingMode(str, Enum):
    """Rounding applied to a step's value before downstream steps see it."""
    NONE = "none"
    UP = "up"                # Ceiling at precision
    DOWN = "down"            # Floor at precision
    NEAREST = "nearest"      # Round half up
    BANKERS = "bankers"      # Round half to even
    TRUNCATE = "truncate"    # Toward zero


class EvaluationErrorType(str, Enum):
    """Tagged structural error kinds reported inside results."""
    CYCLE_DETECTED = "CYCLE_DETECTED"
    STEP_FAILED = "STEP_FAILED"
    INVALID_EXPRESSION = "INVALID_EXPRESSION"
    UNDEFINED_FIELD = "UNDEFINED_FIELD"
    TABLE_NOT_FOUND = "TABLE_NOT_FOUND"


class ValidationWarningType(str, Enum):
    """Non-blocking determinism warnings."""
    UNUSED_STEP = "UNUSED_STEP"


# =============================================================================
# Conditions
# =============================================================================

class LogicOperator(str, Enum):
    """Logical operator of a condition group."""
    AND = "AND"
    OR = "OR"


class ConditionOperator(str, Enum):
    """Leaf comparison operators shared by rules and conditional steps."""
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    BETWEEN = "between"
    IN = "in"
    NOT_IN = "notIn"
    CONTAINS = "contains"
    IS_TRUE = "isTrue"
    IS_FALSE = "isFalse"


# =============================================================================
# Underwriting Rules
# =============================================================================

class RuleType(str, Enum):
    """Purpose of an underwriting rule."""
    ELIGIBILITY = "eligibility"
    REFERRAL = "referral"
    VALIDATION = "validation"


class RuleStatus(str, Enum):
    """Lifecycle status of a rule version."""
    DRAFT = "draft"
    REVIEW = "review"
    APPROVED = "approved"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class RuleAction(str, Enum):
    """
    Outcome action of a fired rule.

    Declared from least to most conservative.
    """
    ACCEPT = "accept"
    FLAG = "flag"
    REQUIRE_DOCS = "require_docs"
    REFER = "refer"
    DECLINE = "decline"


class RuleSeverity(str, Enum):
    """Outcome severity, declared from least to most severe."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    BLOCK = "block"


class IssueSeverity(str, Enum):
    """Severity of a validation or readiness issue."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ReadinessIssueType(str, Enum):
    """Kinds of readiness finding over a product version's rules."""
    DRAFT_ONLY = "draft_only"
    EXPIRED_RULE = "expired_rule"
    INVALID_FIELD_REF = "invalid_field_ref"
    CONFLICTING_RULES = "conflicting_rules"
    MISSING_RULE = "missing_rule"


# =============================================================================
# State Deviations
# =============================================================================

class DiffStatus(str, Enum):
    """Inheritance status of one config path in a state view."""
    INHERITED = "inherited"
    OVERRIDDEN = "overridden"
    CONFLICT = "conflict"
    ADDED = "added"
    REMOVED = "removed"


class DeviationCategory(str, Enum):
    """Display grouping for override rows."""
    LIMITS = "limits"
    DEDUCTIBLES = "deductibles"
    RATES = "rates"
    RULES = "rules"
    FORMS = "forms"
    ELIGIBILITY = "eligibility"
    GENERAL = "general"


class DeviationIssueType(str, Enum):
    """Override integrity findings."""
    ORPHANED_OVERRIDE = "orphaned_override"
    CONFLICT = "conflict"
    TYPE_MISMATCH = "type_mismatch"
    REQUIRED_FIELD = "required_field"
    OUT_OF_RANGE = "out_of_range"
    ALIASED_OVERRIDE = "aliased_override"


# =============================================================================
# Regression / QA
# =============================================================================

class ScenarioStatus(str, Enum):
    """Result of running one scenario."""
    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"


class QARunStatus(str, Enum):
    """Overall status of a QA run."""
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"


class QAGateMode(str, Enum):
    """How QA results affect publishing."""
    DISABLED = "disabled"
    ADVISORY = "advisory"    # Issues reported, never blocking
    REQUIRED = "required"    # Issues block
