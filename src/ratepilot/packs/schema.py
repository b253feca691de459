"""
RatePilot Pack Schemas

Pydantic models for validating configuration pack YAML/JSON files.

These schemas define the structure of packs that can be loaded at
runtime. They map to the domain models in ratepilot.models.

Pack kinds:
- rate_program: rating steps, tables, QA scenarios and gate config
- rule_set: underwriting rule versions for one product version
- state_deviation: base configuration plus one state's overrides
- forms: form catalog with jurisdictions

Field names are snake_case; the camelCase spellings used by exported
documents are accepted as aliases.

Schema versioning:
- schema_version field tracks breaking changes
- Loaders should check version compatibility
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Literal, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# Schema Version
# =============================================================================

SCHEMA_VERSION = "1.0.0"


# =============================================================================
# Enums as Literals (for YAML validation)
# =============================================================================

StepTypeValue = Literal[
    "input", "constant", "factor", "tableLookup",
    "expression", "minmax", "fee", "conditional"
]

RoundingModeValue = Literal["none", "up", "down", "nearest", "bankers", "truncate"]

ConditionOperatorValue = Literal[
    "eq", "ne", "gt", "gte", "lt", "lte", "between",
    "in", "notIn", "contains", "isTrue", "isFalse"
]

LogicOperatorValue = Literal["AND", "OR"]

RuleTypeValue = Literal["eligibility", "referral", "validation"]

RuleStatusValue = Literal["draft", "review", "approved", "published", "archived"]

RuleActionValue = Literal["accept", "flag", "require_docs", "refer", "decline"]

RuleSeverityValue = Literal["info", "warning", "error", "block"]

DeviationCategoryValue = Literal[
    "limits", "deductibles", "rates", "rules", "forms", "eligibility", "general"
]

QAGateModeValue = Literal["disabled", "advisory", "required"]

NumberValue = Union[int, float]

FieldValueSchema = Union[bool, int, float, str, None]


class PackModel(BaseModel):
    """Base for every pack schema: camelCase aliases, unknown fields rejected."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


# =============================================================================
# Rate Program Schemas
# =============================================================================

class StepConditionSchema(PackModel):
    """Single comparison for a conditional step."""
    field_code: str = Field(..., min_length=1, description="Field to compare")
    operator: ConditionOperatorValue = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Expected value")
    value_end: Any = Field(None, description="Upper bound for between")


class LookupDimensionSchema(PackModel):
    field_code: str = Field(..., min_length=1)
    dimension_name: str = Field("", description="Table dimension this field feeds")


class RatingStepSchema(PackModel):
    """Schema for one rating step."""
    id: str = Field(..., min_length=1, description="Stable step ID")
    order: int = Field(0, description="Tie-break order")
    type: StepTypeValue = Field(..., description="Step kind")
    name: str = Field("", description="Display name")
    output_field_code: str = Field(..., min_length=1, description="Field this step writes")
    inputs: list[str] = Field(default_factory=list, description="Fields this step reads")
    enabled: bool = Field(True)
    description: Optional[str] = None

    constant_value: Optional[NumberValue] = None
    factor_value: Optional[NumberValue] = None
    factor_field_code: Optional[str] = None
    table_version_id: Optional[str] = None
    lookup_dimensions: list[LookupDimensionSchema] = Field(default_factory=list)
    expression: Optional[str] = None
    min_value: Optional[NumberValue] = None
    max_value: Optional[NumberValue] = None
    min_field_code: Optional[str] = None
    max_field_code: Optional[str] = None
    fee_amount: Optional[NumberValue] = None
    fee_field_code: Optional[str] = None
    condition: Optional[StepConditionSchema] = None
    then_value: Optional[NumberValue] = None
    else_value: Optional[NumberValue] = None

    rounding_mode: RoundingModeValue = Field("none")
    rounding_precision: int = Field(0, ge=0, le=12, description="Decimal places")

    all_states: bool = Field(True, description="False restricts the step to `states`")
    states: list[str] = Field(default_factory=list)


class TableDimensionSchema(PackModel):
    name: str = Field(..., min_length=1)
    field_code: str = Field(..., min_length=1)
    values: list[str] = Field(default_factory=list)


class RatingTableSchema(PackModel):
    """Table values keyed by dimension values joined with '-'."""
    table_version_id: str = Field(..., min_length=1)
    dimensions: list[TableDimensionSchema] = Field(default_factory=list)
    values: dict[str, NumberValue] = Field(default_factory=dict)


class ScenarioSchema(PackModel):
    """Schema for a QA scenario."""
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    inputs: dict[str, FieldValueSchema] = Field(default_factory=dict)
    expected_outputs: dict[str, NumberValue] = Field(default_factory=dict)
    tolerance: float = Field(0.01, ge=0)
    state_code: Optional[str] = None
    rate_program_id: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    is_required: bool = Field(False)
    is_active: bool = Field(True)


class QAGateConfigSchema(PackModel):
    mode: QAGateModeValue = Field("required")
    min_pass_rate: float = Field(1.0, ge=0, le=1)
    require_mandatory_pass: bool = Field(True)
    auto_run_on_review: bool = Field(False)


class RateProgramPackSchema(PackModel):
    """
    Top-level schema for a rate program pack.

    A rate program pack carries one version of the rating algorithm with
    everything needed to evaluate and regression-test it.
    """
    schema_version: str = Field(SCHEMA_VERSION, description="Schema version for compatibility")
    kind: Literal["rate_program"]
    rate_program_version_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    steps: list[RatingStepSchema] = Field(default_factory=list)
    tables: list[RatingTableSchema] = Field(default_factory=list)
    available_field_codes: list[str] = Field(default_factory=list)
    scenarios: list[ScenarioSchema] = Field(default_factory=list)
    qa_gate: QAGateConfigSchema = Field(default_factory=QAGateConfigSchema)


# =============================================================================
# Rule Set Schemas
# =============================================================================

class ConditionSchema(PackModel):
    """
    Schema for a condition tree node.

    Groups (kind=group) use AND/OR with child conditions.
    Leaves (kind=leaf) compare one field.
    """
    kind: Literal["leaf", "group"] = Field(..., description="Node kind")
    id: Optional[str] = Field(None, description="Condition ID (generated from path if absent)")
    operator: str = Field(..., description="AND/OR for groups, comparison for leaves")

    # Groups
    conditions: list["ConditionSchema"] = Field(default_factory=list)

    # Leaves
    field_code: str = Field("", description="Input field for comparison")
    value: Any = Field("", description="Expected value")
    value_end: Any = Field(None, description="Upper bound for between")

    @model_validator(mode="after")
    def validate_structure(self) -> "ConditionSchema":
        """Validate operator against node kind."""
        if self.kind == "group":
            if self.operator not in ("AND", "OR"):
                raise ValueError(f"Group operator must be AND or OR, got '{self.operator}'")
        else:
            if self.operator not in get_args(ConditionOperatorValue):
                raise ValueError(f"Unknown comparison operator '{self.operator}'")
            if self.conditions:
                raise ValueError("Leaf conditions cannot have children")
        return self


class RuleOutcomeSchema(PackModel):
    action: RuleActionValue = Field(...)
    message: str = Field("")
    severity: RuleSeverityValue = Field("warning")
    required_docs: list[str] = Field(default_factory=list)


class RuleScopeSchema(PackModel):
    """Scope overrides; product version defaults to the pack's."""
    product_version_id: Optional[str] = None
    state_code: Optional[str] = None
    coverage_version_id: Optional[str] = None


class RuleSchema(PackModel):
    """Schema for one rule paired with one of its versions."""
    rule_id: str = Field(..., min_length=1)
    rule_name: str = Field(..., min_length=1)
    rule_type: RuleTypeValue = Field(...)
    version_id: str = Field(..., min_length=1, description="Rule version ID")
    version_number: int = Field(1, ge=1)
    status: RuleStatusValue = Field("published")
    conditions: ConditionSchema = Field(..., description="Root condition group")
    outcome: RuleOutcomeSchema = Field(...)
    scope: RuleScopeSchema = Field(default_factory=RuleScopeSchema)
    effective_start: Optional[date] = None
    effective_end: Optional[date] = None
    summary: Optional[str] = None

    @model_validator(mode="after")
    def validate_root(self) -> "RuleSchema":
        if self.conditions.kind != "group":
            raise ValueError("Rule conditions must be rooted at a group")
        if self.effective_start and self.effective_end and self.effective_end < self.effective_start:
            raise ValueError("effective_end is before effective_start")
        return self


class RuleSetPackSchema(PackModel):
    """Top-level schema for an underwriting rule set pack."""
    schema_version: str = Field(SCHEMA_VERSION)
    kind: Literal["rule_set"]
    product_version_id: str = Field(..., min_length=1)
    available_field_codes: list[str] = Field(default_factory=list)
    rules: list[RuleSchema] = Field(default_factory=list)


# =============================================================================
# State Deviation Schemas
# =============================================================================

class OverrideSchema(PackModel):
    path: str = Field(..., min_length=1, description="Dot path into the base config")
    value: Any = Field(None)
    base_value: Any = Field(None, description="Base value when the override was set")
    field_label: Optional[str] = None
    category: Optional[DeviationCategoryValue] = None
    note: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


class StateDeviationPackSchema(PackModel):
    """Top-level schema for a state deviation pack."""
    schema_version: str = Field(SCHEMA_VERSION)
    kind: Literal["state_deviation"]
    state_code: str = Field(..., min_length=1)
    state_name: str = Field("")
    base: dict[str, Any] = Field(default_factory=dict)
    overrides: list[OverrideSchema] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_paths(self) -> "StateDeviationPackSchema":
        seen: set[str] = set()
        for override in self.overrides:
            if override.path in seen:
                raise ValueError(f"Duplicate override path: '{override.path}'")
            seen.add(override.path)
        return self


# =============================================================================
# Forms Schemas
# =============================================================================

class FormUseSchema(PackModel):
    form_id: str = Field(..., min_length=1)
    form_number: str = Field(...)
    form_title: str = Field(...)
    type: str = Field(..., description="e.g. policy, endorsement")
    use_type: str = Field(..., description="e.g. base, endorsement, condition")
    edition_date: Optional[str] = None
    jurisdictions: list[str] = Field(default_factory=list, description="Empty = all states")


class FormsPackSchema(PackModel):
    """Top-level schema for a forms catalog pack."""
    schema_version: str = Field(SCHEMA_VERSION)
    kind: Literal["forms"]
    forms: list[FormUseSchema] = Field(default_factory=list)


# =============================================================================
# Validation Helpers
# =============================================================================

PackSchema = Annotated[
    Union[
        RateProgramPackSchema,
        RuleSetPackSchema,
        StateDeviationPackSchema,
        FormsPackSchema,
    ],
    Field(discriminator="kind"),
]

_PACK_ADAPTER: TypeAdapter[Any] = TypeAdapter(PackSchema)

PACK_KINDS = ("rate_program", "rule_set", "state_deviation", "forms")


def validate_pack(data: dict[str, Any]) -> Any:
    """
    Validate a pack dictionary against the schema for its kind.

    Args:
        data: Dictionary loaded from YAML/JSON

    Returns:
        One of the *PackSchema models, selected by `kind`

    Raises:
        pydantic.ValidationError: If validation fails
    """
    return _PACK_ADAPTER.validate_python(data)


def check_schema_version(data: dict[str, Any]) -> bool:
    """
    Check if a pack's schema version is compatible.

    Args:
        data: Dictionary with schema_version (or schemaVersion) field

    Returns:
        True if the major version matches
    """
    pack_version = str(data.get("schema_version", data.get("schemaVersion", SCHEMA_VERSION)))
    pack_major = pack_version.split(".")[0]
    current_major = SCHEMA_VERSION.split(".")[0]
    return pack_major == current_major
