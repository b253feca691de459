"""
RatePilot Exception Hierarchy

Domain-specific exceptions for product configuration evaluation.
All exceptions include error codes for tracking and logging.

Exception codes follow the pattern: RP_<CATEGORY>_<SPECIFIC>

Engines report structural problems inside their results (cycles, failed
steps, invalid expressions) rather than raising. These exceptions cover
misuse of the library and pack loading failures.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class RatePilotError(Exception):
    """
    Base exception for all RatePilot errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (RP_*)
        details: Additional context about the error
        source_id: Associated step, rule or scenario ID if applicable
    """
    message: str
    code: str = "RP_INTERNAL_ERROR"
    details: dict[str, Any] = field(default_factory=dict)
    source_id: Optional[str] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [f"[{self.code}] {self.message}"]
        if self.source_id:
            parts.append(f"(source: {self.source_id})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging/CLI output."""
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.source_id:
            result["source_id"] = self.source_id
        return result


# =============================================================================
# Pack Errors
# =============================================================================

@dataclass
class PackLoadError(RatePilotError):
    """Failed to load a pack from file."""
    code: str = "RP_PACK_LOAD_ERROR"


@dataclass
class PackValidationError(RatePilotError):
    """Pack schema or reference validation failed."""
    code: str = "RP_PACK_VALIDATION_ERROR"


@dataclass
class PackVersionMismatch(RatePilotError):
    """Pack schema version doesn't match expected version."""
    code: str = "RP_PACK_VERSION_MISMATCH"


# =============================================================================
# Evaluation Errors
# =============================================================================

@dataclass
class EvaluationError(RatePilotError):
    """Base for failures while evaluating an expression or condition."""
    code: str = "RP_EVALUATION_ERROR"


@dataclass
class InvalidExpressionError(EvaluationError):
    """Expression could not be parsed or produced a non-finite result."""
    code: str = "RP_INVALID_EXPRESSION"


@dataclass
class InvalidConditionError(EvaluationError):
    """Condition structure is invalid."""
    code: str = "RP_INVALID_CONDITION"


# =============================================================================
# Deviation Errors
# =============================================================================

@dataclass
class OverrideNotFoundError(RatePilotError):
    """No override exists at the requested path."""
    code: str = "RP_OVERRIDE_NOT_FOUND"
