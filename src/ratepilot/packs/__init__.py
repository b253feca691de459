"""
RatePilot Configuration Packs

Schema validation and loading for configuration packs.

Packs are YAML or JSON files carrying one piece of product
configuration: a rate program (steps, tables, QA scenarios), an
underwriting rule set, a state deviation, or a forms catalog. The
`kind` field selects the schema.

Usage:
    from ratepilot.packs import load_pack, PackLoader

    # Load a single pack
    program = load_pack("path/to/rate_program.yaml").rate_program

    # Use a loader for multiple packs (caches by source path)
    loader = PackLoader()
    rules = loader.load("path/to/rules.yaml").expect("rule_set").rule_set
    forms = loader.load("path/to/forms.yaml").expect("forms").forms
"""
from __future__ import annotations

from .loader import (
    LoadedPack,
    PackLoader,
    load_pack,
    load_pack_from_string,
    validate_reference_integrity,
)
from .schema import (
    PACK_KINDS,
    SCHEMA_VERSION,
    ConditionSchema,
    FormsPackSchema,
    FormUseSchema,
    OverrideSchema,
    RateProgramPackSchema,
    RatingStepSchema,
    RatingTableSchema,
    RuleSchema,
    RuleSetPackSchema,
    ScenarioSchema,
    StateDeviationPackSchema,
    check_schema_version,
    validate_pack,
)

__all__ = [
    # Version
    "SCHEMA_VERSION",
    "PACK_KINDS",
    # Loader
    "LoadedPack",
    "PackLoader",
    "load_pack",
    "load_pack_from_string",
    # Validation
    "validate_pack",
    "validate_reference_integrity",
    "check_schema_version",
    # Schemas (for advanced usage)
    "RateProgramPackSchema",
    "RatingStepSchema",
    "RatingTableSchema",
    "ScenarioSchema",
    "RuleSetPackSchema",
    "RuleSchema",
    "ConditionSchema",
    "StateDeviationPackSchema",
    "OverrideSchema",
    "FormsPackSchema",
    "FormUseSchema",
]
