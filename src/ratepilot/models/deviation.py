"""
RatePilot State Deviation Models

Field-level overrides layered over a base product configuration, and the
inheritance view computed from them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .enums import DeviationCategory, DeviationIssueType, DiffStatus, IssueSeverity


@dataclass
class Override:
    """
    One field-level patch.

    base_value is a snapshot taken when the override was created. Drift
    between it and the live base is detected, never prevented.
    """
    path: str
    value: Any
    base_value: Any = None
    field_label: Optional[str] = None
    category: Optional[DeviationCategory] = None
    note: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "value": self.value,
            "base_value": self.base_value,
            "field_label": self.field_label,
            "category": self.category.value if self.category else None,
            "note": self.note,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class LeafPath:
    path: str
    value: Any


@dataclass
class DiffEntry:
    """One row of the inheritance view for a state."""
    path: str
    field_label: str
    category: DeviationCategory
    status: DiffStatus
    base_value: Any
    effective_value: Any
    override_value: Any = None
    has_override: bool = False
    # Set only for conflict rows
    conflict_base_value: Any = None
    original_base_value: Any = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "path": self.path,
            "field_label": self.field_label,
            "category": self.category.value,
            "status": self.status.value,
            "base_value": self.base_value,
            "effective_value": self.effective_value,
        }
        if self.has_override:
            result["override_value"] = self.override_value
        if self.status == DiffStatus.CONFLICT:
            result["conflict_base_value"] = self.conflict_base_value
            result["original_base_value"] = self.original_base_value
        return result


@dataclass
class DiffResult:
    state_code: str
    state_name: str
    entries: list[DiffEntry]
    override_count: int
    conflict_count: int
    base_hash: str

    def entry(self, path: str) -> Optional[DiffEntry]:
        """Find the row for a path."""
        for e in self.entries:
            if e.path == path:
                return e
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state_code": self.state_code,
            "state_name": self.state_name,
            "entries": [e.to_dict() for e in self.entries],
            "override_count": self.override_count,
            "conflict_count": self.conflict_count,
            "base_hash": self.base_hash,
        }


@dataclass
class ConflictRecord:
    path: str
    override: Override
    current_base_value: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "override": self.override.to_dict(),
            "current_base_value": self.current_base_value,
        }


@dataclass
class DeviationValidationIssue:
    path: str
    field_label: str
    type: DeviationIssueType
    message: str
    severity: IssueSeverity
    base_value: Any = None
    override_value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "field_label": self.field_label,
            "type": self.type.value,
            "message": self.message,
            "severity": self.severity.value,
            "base_value": self.base_value,
            "override_value": self.override_value,
        }
