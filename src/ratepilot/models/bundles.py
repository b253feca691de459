"""
RatePilot Configuration Bundles

Domain-level groupings of the records loaded from one pack file.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .deviation import Override
from .rating import RatingStep, RatingTable
from .rules import RuleWithVersion
from .scenario import QAGateConfig, Scenario
from .simulation import FormUseRecord


@dataclass
class RateProgram:
    """One rate program version with its tables and QA scenarios."""
    rate_program_version_id: str
    steps: list[RatingStep]
    tables: dict[str, RatingTable] = field(default_factory=dict)
    available_field_codes: list[str] = field(default_factory=list)
    scenarios: list[Scenario] = field(default_factory=list)
    qa_gate: QAGateConfig = field(default_factory=QAGateConfig)
    name: Optional[str] = None


@dataclass
class RuleSet:
    """Underwriting rule versions for one product version."""
    product_version_id: str
    rules: list[RuleWithVersion]
    available_field_codes: list[str] = field(default_factory=list)


@dataclass
class StateDeviation:
    """A state's overrides over a base configuration, keyed by path."""
    state_code: str
    state_name: str
    base: dict[str, Any]
    overrides: dict[str, Override] = field(default_factory=dict)


@dataclass
class FormCatalog:
    forms: list[FormUseRecord] = field(default_factory=list)
