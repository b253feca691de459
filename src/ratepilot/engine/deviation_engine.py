"""
RatePilot Deviation Engine

Pure functions for layering state overrides over a base product
configuration. Configurations are plain nested dicts; overrides are keyed
by dot path.

Core operations:
- get_nested_value / set_nested_value / remove_nested_value: dot-path access
- apply_overrides: merge base + overrides into the effective config
- compute_diff: full inheritance view for one state
- detect_conflicts: overrides whose base drifted since they were set
- validate_overrides: orphan, drift, type, null and sign checks
- promote_override / revert_override: fold an override into base or drop it

set/remove are copy-on-write: only the ancestors of the touched path are
copied and every other branch keeps its identity.
"""
from __future__ import annotations

import copy
import logging
import re
from typing import Any, Mapping, Optional

from ..canon import deep_equal, fast_hash
from ..exceptions import OverrideNotFoundError
from ..models import (
    ConflictRecord,
    DeviationCategory,
    DeviationIssueType,
    DeviationValidationIssue,
    DiffEntry,
    DiffResult,
    DiffStatus,
    IssueSeverity,
    LeafPath,
    Override,
    format_number,
    is_number,
    value_type_family,
)


logger = logging.getLogger(__name__)


Config = dict[str, Any]


# =============================================================================
# Dot-Path Helpers
# =============================================================================

def _resolve(obj: Any, path: str) -> tuple[Any, bool]:
    """Walk a dot path. Returns (value, found)."""
    if obj is None or not path:
        return None, False
    current = obj
    for segment in path.split("."):
        if not isinstance(current, dict) or segment not in current:
            return None, False
        current = current[segment]
    return current, True


def get_nested_value(obj: Any, path: str) -> Any:
    """
    Resolve a dot path in a nested dict.

    Returns None if any segment is missing.

    Example:
        >>> get_nested_value({"limits": {"occurrence": 1000000}}, "limits.occurrence")
        1000000
    """
    value, _ = _resolve(obj, path)
    return value


def set_nested_value(obj: Config, path: str, value: Any) -> Config:
    """
    Return a copy of obj with value set at path.

    Intermediate dicts are created as needed; a non-dict intermediate is
    replaced by a new dict. The input is never mutated.
    """
    segments = path.split(".")
    root = dict(obj)
    current = root
    for segment in segments[:-1]:
        child = current.get(segment)
        child = dict(child) if isinstance(child, dict) else {}
        current[segment] = child
        current = child
    current[segments[-1]] = value
    return root


def remove_nested_value(obj: Config, path: str) -> Config:
    """
    Return a copy of obj without the key at path.

    A missing intermediate leaves the copy unchanged.
    """
    segments = path.split(".")
    root = dict(obj)
    current = root
    for segment in segments[:-1]:
        child = current.get(segment)
        if not isinstance(child, dict):
            return root
        child = dict(child)
        current[segment] = child
        current = child
    current.pop(segments[-1], None)
    return root


# =============================================================================
# Applying Overrides
# =============================================================================

def _precedence(path: str) -> tuple[int, str]:
    return (path.count("."), path)


def apply_overrides(base: Config, overrides: Mapping[str, Override]) -> Config:
    """
    Merge base with overrides into the effective config.

    Overrides apply in ascending path depth, then path order, so when two
    paths alias ("a.b" and "a.b.c") the deeper one wins. Neither base nor
    the override values are shared with the result.
    """
    result = copy.deepcopy(base)
    for path in sorted(overrides, key=_precedence):
        result = set_nested_value(result, path, copy.deepcopy(overrides[path].value))
    return result


# =============================================================================
# Diff Computation
# =============================================================================

def enumerate_leaf_paths(obj: Any, prefix: str = "") -> list[LeafPath]:
    """
    Enumerate every terminal (path, value) pair in sorted key order.

    Lists are leaves. An empty nested dict is itself a leaf.
    """
    if not isinstance(obj, dict):
        return [LeafPath(path=prefix, value=obj)] if prefix else []

    if not obj:
        return [LeafPath(path=prefix, value=obj)] if prefix else []

    leaves: list[LeafPath] = []
    for key in sorted(obj):
        child_path = f"{prefix}.{key}" if prefix else str(key)
        leaves.extend(enumerate_leaf_paths(obj[key], child_path))
    return leaves


_CATEGORY_KEYWORDS = [
    (("limit",), DeviationCategory.LIMITS),
    (("deductible",), DeviationCategory.DEDUCTIBLES),
    (("rate", "premium", "factor"), DeviationCategory.RATES),
    (("rule",), DeviationCategory.RULES),
    (("form",), DeviationCategory.FORMS),
    (("eligib",), DeviationCategory.ELIGIBILITY),
]


def infer_category(path: str) -> DeviationCategory:
    """Pick a display category from keywords in the path."""
    lower = path.lower()
    for keywords, category in _CATEGORY_KEYWORDS:
        if any(k in lower for k in keywords):
            return category
    return DeviationCategory.GENERAL


def path_to_label(path: str) -> str:
    """
    Human-friendly label from the last path segment.

    Example:
        >>> path_to_label("coverages.waterBackup_limit")
        'Water Backup Limit'
    """
    last = path.split(".")[-1] or path
    text = re.sub(r"([A-Z])", r" \1", last).replace("_", " ")
    text = re.sub(r"^\s", "", text)
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), text)


def _label(override: Override, path: str) -> str:
    return override.field_label or path_to_label(path)


def _category(override: Override, path: str) -> DeviationCategory:
    return override.category or infer_category(path)


def compute_diff(
    base: Config,
    overrides: Mapping[str, Override],
    state_code: str,
    state_name: str,
) -> DiffResult:
    """
    Build the inheritance view of a state over the base config.

    Every base leaf is inherited, overridden, or in conflict (the
    override's captured base value no longer matches). Overrides whose
    path is not a base leaf are reported as added, carrying whatever value
    the path currently resolves to as base_value.
    """
    entries: list[DiffEntry] = []
    leaves = enumerate_leaf_paths(base)
    conflict_count = 0

    for leaf in leaves:
        override = overrides.get(leaf.path)
        if override is None:
            entries.append(DiffEntry(
                path=leaf.path,
                field_label=path_to_label(leaf.path),
                category=infer_category(leaf.path),
                status=DiffStatus.INHERITED,
                base_value=leaf.value,
                effective_value=leaf.value,
            ))
            continue

        drifted = not deep_equal(override.base_value, leaf.value)
        if drifted:
            conflict_count += 1
        entries.append(DiffEntry(
            path=leaf.path,
            field_label=_label(override, leaf.path),
            category=_category(override, leaf.path),
            status=DiffStatus.CONFLICT if drifted else DiffStatus.OVERRIDDEN,
            base_value=leaf.value,
            effective_value=override.value,
            override_value=override.value,
            has_override=True,
            conflict_base_value=leaf.value if drifted else None,
            original_base_value=override.base_value if drifted else None,
        ))

    leaf_paths = {leaf.path for leaf in leaves}
    for path, override in overrides.items():
        if path in leaf_paths:
            continue
        entries.append(DiffEntry(
            path=path,
            field_label=_label(override, path),
            category=_category(override, path),
            status=DiffStatus.ADDED,
            base_value=get_nested_value(base, path),
            effective_value=override.value,
            override_value=override.value,
            has_override=True,
        ))

    if conflict_count:
        logger.warning("State %s has %d conflicting override(s)", state_code, conflict_count)

    return DiffResult(
        state_code=state_code,
        state_name=state_name,
        entries=entries,
        override_count=len(overrides),
        conflict_count=conflict_count,
        base_hash=fast_hash(base),
    )


# =============================================================================
# Conflict Detection
# =============================================================================

def detect_conflicts(
    base: Config,
    overrides: Mapping[str, Override],
) -> list[ConflictRecord]:
    """
    Find overrides whose captured base value no longer matches the base.

    A path that no longer resolves compares as None.
    """
    conflicts: list[ConflictRecord] = []
    for path, override in overrides.items():
        current = get_nested_value(base, path)
        if not deep_equal(override.base_value, current):
            conflicts.append(ConflictRecord(
                path=path,
                override=override,
                current_base_value=current,
            ))
    return conflicts


# =============================================================================
# Validation
# =============================================================================

def _aliased_paths(paths: list[str]) -> dict[str, str]:
    """Map each shadowed path to the deeper path that writes inside it."""
    aliased: dict[str, str] = {}
    for path in paths:
        for other in paths:
            if other != path and other.startswith(path + ".") and path not in aliased:
                aliased[path] = other
    return aliased


def validate_overrides(
    base: Config,
    overrides: Mapping[str, Override],
) -> list[DeviationValidationIssue]:
    """
    Check every override against the current base.

    Never raises. Only type mismatches are errors.
    """
    issues: list[DeviationValidationIssue] = []
    leaf_paths = {leaf.path for leaf in enumerate_leaf_paths(base)}

    for path, override in overrides.items():
        label = _label(override, path)
        name = override.field_label or path
        current, found = _resolve(base, path)

        if path not in leaf_paths and not found:
            issues.append(DeviationValidationIssue(
                path=path,
                field_label=label,
                type=DeviationIssueType.ORPHANED_OVERRIDE,
                message=f'"{name}" no longer exists in the base product',
                severity=IssueSeverity.WARNING,
                override_value=override.value,
            ))
            continue

        if not deep_equal(override.base_value, current):
            issues.append(DeviationValidationIssue(
                path=path,
                field_label=label,
                type=DeviationIssueType.CONFLICT,
                message=f'Base value for "{name}" has changed since the override was set',
                severity=IssueSeverity.WARNING,
                base_value=current,
                override_value=override.value,
            ))

        base_type = value_type_family(current)
        override_type = value_type_family(override.value)
        if base_type and override_type and base_type != override_type:
            issues.append(DeviationValidationIssue(
                path=path,
                field_label=label,
                type=DeviationIssueType.TYPE_MISMATCH,
                message=f"Type mismatch: base is {base_type}, override is {override_type}",
                severity=IssueSeverity.ERROR,
                base_value=current,
                override_value=override.value,
            ))

        if current is not None and override.value is None:
            issues.append(DeviationValidationIssue(
                path=path,
                field_label=label,
                type=DeviationIssueType.REQUIRED_FIELD,
                message=f'"{name}" is set to null but has a base value',
                severity=IssueSeverity.WARNING,
                base_value=current,
                override_value=override.value,
            ))

        if is_number(current) and is_number(override.value) and current > 0 and override.value < 0:
            issues.append(DeviationValidationIssue(
                path=path,
                field_label=label,
                type=DeviationIssueType.OUT_OF_RANGE,
                message=(
                    f"Override is negative ({format_number(override.value)}) "
                    f"but base is positive ({format_number(current)})"
                ),
                severity=IssueSeverity.WARNING,
                base_value=current,
                override_value=override.value,
            ))

    for path, deeper in _aliased_paths(sorted(overrides)).items():
        override = overrides[path]
        issues.append(DeviationValidationIssue(
            path=path,
            field_label=_label(override, path),
            type=DeviationIssueType.ALIASED_OVERRIDE,
            message=f'Override "{path}" is partly replaced by the deeper override "{deeper}"',
            severity=IssueSeverity.WARNING,
            override_value=override.value,
        ))

    return issues


# =============================================================================
# Promote / Revert
# =============================================================================

def _require_override(overrides: Mapping[str, Override], path: str) -> Override:
    override = overrides.get(path)
    if override is None:
        raise OverrideNotFoundError(
            message=f"No override exists at path '{path}'",
            details={"path": path, "available": sorted(overrides)},
        )
    return override


def revert_override(
    overrides: Mapping[str, Override],
    path: str,
) -> dict[str, Override]:
    """
    Drop the override at path so the state inherits the base again.

    Raises:
        OverrideNotFoundError: If no override exists at path
    """
    _require_override(overrides, path)
    return {p: o for p, o in overrides.items() if p != path}


def promote_override(
    base: Config,
    overrides: Mapping[str, Override],
    path: str,
) -> tuple[Config, dict[str, Override]]:
    """
    Write an override's value into the base and drop the override.

    Returns:
        Tuple of (new base, remaining overrides). Inputs are not mutated.

    Raises:
        OverrideNotFoundError: If no override exists at path
    """
    override = _require_override(overrides, path)
    new_base = set_nested_value(base, path, copy.deepcopy(override.value))
    logger.info("Promoted override %s into base", path)
    return new_base, revert_override(overrides, path)
