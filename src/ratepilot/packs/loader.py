"""
RatePilot Pack Loader

Loads and validates configuration packs from YAML or JSON files.

Converts Pydantic schema models to RatePilot domain models.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import ValidationError

from ..canon import content_hash
from ..exceptions import PackLoadError, PackValidationError, PackVersionMismatch
from ..models import (
    ConditionGroup,
    ConditionLeaf,
    ConditionNode,
    ConditionOperator,
    DeviationCategory,
    FormCatalog,
    FormUseRecord,
    LogicOperator,
    LookupDimension,
    Override,
    QAGateConfig,
    QAGateMode,
    RateProgram,
    RatingStep,
    RatingTable,
    RoundingMode,
    RuleAction,
    RuleOutcome,
    RuleScope,
    RuleSet,
    RuleSeverity,
    RuleStatus,
    RuleType,
    RuleWithVersion,
    Scenario,
    StateDeviation,
    StepCondition,
    StepType,
    TableDimension,
    UnderwritingRuleVersion,
)
from .schema import (
    SCHEMA_VERSION,
    ConditionSchema,
    FormsPackSchema,
    FormUseSchema,
    OverrideSchema,
    QAGateConfigSchema,
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


logger = logging.getLogger(__name__)


# =============================================================================
# Loaded Pack
# =============================================================================

@dataclass
class LoadedPack:
    """
    A validated pack converted to domain models.

    Exactly one of the payload attributes is set, matching `kind`.
    """
    kind: str
    pack_hash: str
    schema_version: str = SCHEMA_VERSION
    source: Optional[str] = None
    rate_program: Optional[RateProgram] = None
    rule_set: Optional[RuleSet] = None
    deviation: Optional[StateDeviation] = None
    forms: Optional[FormCatalog] = None

    def expect(self, kind: str) -> "LoadedPack":
        """
        Assert the pack kind.

        Raises:
            PackValidationError: If the pack is of another kind
        """
        if self.kind != kind:
            raise PackValidationError(
                message=f"Expected a '{kind}' pack, got '{self.kind}'",
                details={"expected": kind, "actual": self.kind, "source": self.source},
            )
        return self


# =============================================================================
# Reference Integrity Validation
# =============================================================================

def _duplicates(values: list[str]) -> list[str]:
    seen: set[str] = set()
    dupes: list[str] = []
    for value in values:
        if value in seen and value not in dupes:
            dupes.append(value)
        seen.add(value)
    return dupes


def validate_reference_integrity(pack: LoadedPack, path: str = "") -> None:
    """
    Validate internal references are consistent.

    Catches:
    - Duplicate step IDs and duplicate step output field codes
    - Lookup steps referencing tables missing from the pack
    - Duplicate table and scenario IDs
    - Duplicate rule version IDs
    - Duplicate form IDs

    Args:
        pack: The loaded pack to validate
        path: File path for error messages

    Raises:
        ValueError: If reference integrity errors are found
    """
    errors: list[str] = []

    if pack.rate_program is not None:
        program = pack.rate_program
        for step_id in _duplicates([s.id for s in program.steps]):
            errors.append(f"Duplicate step ID: '{step_id}'")
        for code in _duplicates([s.output_field_code for s in program.steps]):
            errors.append(f"Duplicate output field code: '{code}'")
        for step in program.steps:
            if (
                step.type == StepType.TABLE_LOOKUP
                and step.table_version_id
                and step.table_version_id not in program.tables
            ):
                errors.append(
                    f"Step '{step.id}' references non-existent table '{step.table_version_id}'"
                )
        for scenario_id in _duplicates([s.id for s in program.scenarios]):
            errors.append(f"Duplicate scenario ID: '{scenario_id}'")

    if pack.rule_set is not None:
        for version_id in _duplicates([r.version.id for r in pack.rule_set.rules]):
            errors.append(f"Duplicate rule version ID: '{version_id}'")

    if pack.forms is not None:
        for form_id in _duplicates([f.form_id for f in pack.forms.forms]):
            errors.append(f"Duplicate form ID: '{form_id}'")

    if errors:
        path_str = f" in {path}" if path else ""
        raise ValueError(
            f"Reference integrity errors{path_str}:\n" +
            "\n".join(f"  - {e}" for e in errors)
        )


# =============================================================================
# Schema to Model Converters
# =============================================================================

def _convert_step(schema: RatingStepSchema) -> RatingStep:
    """Convert RatingStepSchema to RatingStep model."""
    condition = None
    if schema.condition is not None:
        condition = StepCondition(
            field_code=schema.condition.field_code,
            operator=ConditionOperator(schema.condition.operator),
            value=schema.condition.value,
            value_end=schema.condition.value_end,
        )

    return RatingStep(
        id=schema.id,
        order=schema.order,
        type=StepType(schema.type),
        output_field_code=schema.output_field_code,
        name=schema.name or schema.id,
        inputs=list(schema.inputs),
        enabled=schema.enabled,
        description=schema.description,
        constant_value=schema.constant_value,
        factor_value=schema.factor_value,
        factor_field_code=schema.factor_field_code,
        table_version_id=schema.table_version_id,
        lookup_dimensions=[
            LookupDimension(field_code=d.field_code, dimension_name=d.dimension_name)
            for d in schema.lookup_dimensions
        ],
        expression=schema.expression,
        min_value=schema.min_value,
        max_value=schema.max_value,
        min_field_code=schema.min_field_code,
        max_field_code=schema.max_field_code,
        fee_amount=schema.fee_amount,
        fee_field_code=schema.fee_field_code,
        condition=condition,
        then_value=schema.then_value,
        else_value=schema.else_value,
        rounding_mode=RoundingMode(schema.rounding_mode),
        rounding_precision=schema.rounding_precision,
        all_states=schema.all_states,
        states=list(schema.states),
    )


def _convert_table(schema: RatingTableSchema) -> RatingTable:
    """Convert RatingTableSchema to RatingTable model."""
    return RatingTable(
        table_version_id=schema.table_version_id,
        dimensions=[
            TableDimension(name=d.name, field_code=d.field_code, values=list(d.values))
            for d in schema.dimensions
        ],
        values=dict(schema.values),
    )


def _convert_scenario(schema: ScenarioSchema) -> Scenario:
    """Convert ScenarioSchema to Scenario model."""
    return Scenario(
        id=schema.id,
        name=schema.name,
        inputs=dict(schema.inputs),
        expected_outputs=dict(schema.expected_outputs),
        tolerance=schema.tolerance,
        state_code=schema.state_code,
        rate_program_id=schema.rate_program_id,
        description=schema.description,
        tags=list(schema.tags),
        is_required=schema.is_required,
        is_active=schema.is_active,
    )


def _convert_qa_gate(schema: QAGateConfigSchema) -> QAGateConfig:
    return QAGateConfig(
        mode=QAGateMode(schema.mode),
        min_pass_rate=schema.min_pass_rate,
        require_mandatory_pass=schema.require_mandatory_pass,
        auto_run_on_review=schema.auto_run_on_review,
    )


def _convert_rate_program(schema: RateProgramPackSchema) -> RateProgram:
    """Convert RateProgramPackSchema to RateProgram model."""
    return RateProgram(
        rate_program_version_id=schema.rate_program_version_id,
        steps=[_convert_step(s) for s in schema.steps],
        tables={t.table_version_id: _convert_table(t) for t in schema.tables},
        available_field_codes=list(schema.available_field_codes),
        scenarios=[_convert_scenario(s) for s in schema.scenarios],
        qa_gate=_convert_qa_gate(schema.qa_gate),
        name=schema.name,
    )


def _convert_condition(schema: ConditionSchema, default_id: str) -> ConditionNode:
    """
    Convert ConditionSchema to a ConditionLeaf or ConditionGroup.

    Nodes without an ID get one derived from their tree position.
    """
    node_id = schema.id or default_id
    if schema.kind == "group":
        return ConditionGroup(
            id=node_id,
            operator=LogicOperator(schema.operator),
            conditions=[
                _convert_condition(child, f"{node_id}.{i}")
                for i, child in enumerate(schema.conditions)
            ],
        )
    return ConditionLeaf(
        id=node_id,
        field_code=schema.field_code,
        operator=ConditionOperator(schema.operator),
        value=schema.value,
        value_end=schema.value_end,
    )


def _convert_rule(schema: RuleSchema, product_version_id: str) -> RuleWithVersion:
    """Convert RuleSchema to RuleWithVersion model."""
    conditions = _convert_condition(schema.conditions, f"{schema.version_id}.root")
    assert isinstance(conditions, ConditionGroup)

    version = UnderwritingRuleVersion(
        id=schema.version_id,
        rule_id=schema.rule_id,
        conditions=conditions,
        outcome=RuleOutcome(
            action=RuleAction(schema.outcome.action),
            message=schema.outcome.message,
            severity=RuleSeverity(schema.outcome.severity),
            required_docs=list(schema.outcome.required_docs),
        ),
        scope=RuleScope(
            product_version_id=(
                schema.scope.product_version_id
                if schema.scope.product_version_id is not None
                else product_version_id
            ),
            state_code=schema.scope.state_code,
            coverage_version_id=schema.scope.coverage_version_id,
        ),
        version_number=schema.version_number,
        status=RuleStatus(schema.status),
        effective_start=schema.effective_start,
        effective_end=schema.effective_end,
        summary=schema.summary,
    )
    return RuleWithVersion(
        rule_id=schema.rule_id,
        rule_name=schema.rule_name,
        rule_type=RuleType(schema.rule_type),
        version=version,
    )


def _convert_rule_set(schema: RuleSetPackSchema) -> RuleSet:
    return RuleSet(
        product_version_id=schema.product_version_id,
        rules=[_convert_rule(r, schema.product_version_id) for r in schema.rules],
        available_field_codes=list(schema.available_field_codes),
    )


def _convert_override(schema: OverrideSchema) -> Override:
    """Convert OverrideSchema to Override model."""
    return Override(
        path=schema.path,
        value=schema.value,
        base_value=schema.base_value,
        field_label=schema.field_label,
        category=DeviationCategory(schema.category) if schema.category else None,
        note=schema.note,
        created_by=schema.created_by,
        created_at=schema.created_at,
    )


def _convert_deviation(schema: StateDeviationPackSchema) -> StateDeviation:
    return StateDeviation(
        state_code=schema.state_code,
        state_name=schema.state_name or schema.state_code,
        base=dict(schema.base),
        overrides={o.path: _convert_override(o) for o in schema.overrides},
    )


def _convert_form(schema: FormUseSchema) -> FormUseRecord:
    return FormUseRecord(
        form_id=schema.form_id,
        form_number=schema.form_number,
        form_title=schema.form_title,
        type=schema.type,
        use_type=schema.use_type,
        edition_date=schema.edition_date,
        jurisdictions=list(schema.jurisdictions),
    )


def _convert_pack(schema: Any, pack_hash: str, source: Optional[str]) -> LoadedPack:
    """Convert a validated pack schema to a LoadedPack."""
    pack = LoadedPack(
        kind=schema.kind,
        pack_hash=pack_hash,
        schema_version=schema.schema_version,
        source=source,
    )
    if isinstance(schema, RateProgramPackSchema):
        pack.rate_program = _convert_rate_program(schema)
    elif isinstance(schema, RuleSetPackSchema):
        pack.rule_set = _convert_rule_set(schema)
    elif isinstance(schema, StateDeviationPackSchema):
        pack.deviation = _convert_deviation(schema)
    elif isinstance(schema, FormsPackSchema):
        pack.forms = FormCatalog(forms=[_convert_form(f) for f in schema.forms])
    return pack


# =============================================================================
# Pack Loader
# =============================================================================

class PackLoader:
    """
    Loads configuration packs from YAML or JSON files.

    Usage:
        loader = PackLoader()
        pack = loader.load("path/to/rate_program.yaml")
        program = pack.expect("rate_program").rate_program
    """

    def __init__(self, strict_version: bool = True):
        """
        Initialize the loader.

        Args:
            strict_version: If True, reject packs with incompatible schema versions
        """
        self.strict_version = strict_version

        # Loaded packs by source path
        self._packs: dict[str, LoadedPack] = {}

    def load(self, path: Union[str, Path]) -> LoadedPack:
        """
        Load a pack from a file.

        Args:
            path: Path to YAML or JSON file

        Returns:
            LoadedPack with the payload for its kind

        Raises:
            PackLoadError: If file cannot be read
            PackValidationError: If validation fails
            PackVersionMismatch: If schema version incompatible
        """
        path = Path(path)

        try:
            data = self._load_file(path)
        except (OSError, yaml.YAMLError, json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PackLoadError(
                message=f"Failed to load pack: {e}",
                details={"path": str(path), "error": str(e)},
            )

        pack = self.load_data(data, source=str(path))
        self._packs[str(path)] = pack
        return pack

    def load_data(self, data: Any, source: Optional[str] = None) -> LoadedPack:
        """
        Validate and convert already-parsed pack data.

        Raises:
            PackLoadError: If the data is not a mapping
            PackValidationError: If validation fails
            PackVersionMismatch: If schema version incompatible
        """
        if not isinstance(data, dict):
            raise PackLoadError(
                message="Pack content must be a mapping",
                details={"source": source, "type": type(data).__name__},
            )

        if self.strict_version and not check_schema_version(data):
            pack_version = data.get("schema_version", data.get("schemaVersion", "unknown"))
            raise PackVersionMismatch(
                message=f"Schema version mismatch: pack has {pack_version}, expected {SCHEMA_VERSION}",
                details={
                    "pack_version": pack_version,
                    "expected_version": SCHEMA_VERSION,
                },
            )

        try:
            schema = validate_pack(data)
        except ValidationError as e:
            raise PackValidationError(
                message=f"Pack validation failed: {e.error_count()} errors",
                details={"errors": e.errors(include_url=False), "source": source},
            )

        pack = _convert_pack(schema, content_hash(data), source)

        try:
            validate_reference_integrity(pack, source or "")
        except ValueError as e:
            raise PackValidationError(
                message="Reference integrity validation failed",
                details={"errors": str(e), "source": source},
            )

        logger.debug("Loaded %s pack from %s (hash %s)", pack.kind, source, pack.pack_hash[:12])
        return pack

    def _load_file(self, path: Path) -> Any:
        """Load data from YAML or JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in {".yaml", ".yml"}:
                return yaml.safe_load(f)
            elif path.suffix.lower() == ".json":
                return json.load(f)
            else:
                # Try YAML first, then JSON
                content = f.read()
                try:
                    return yaml.safe_load(content)
                except yaml.YAMLError:
                    return json.loads(content)

    def get_pack(self, source: Union[str, Path]) -> Optional[LoadedPack]:
        """Get a previously loaded pack by its source path."""
        return self._packs.get(str(source))

    def list_packs(self) -> list[str]:
        """List source paths of all loaded packs."""
        return list(self._packs.keys())


# =============================================================================
# Convenience Functions
# =============================================================================

def load_pack(path: Union[str, Path]) -> LoadedPack:
    """
    Load a pack from a file.

    Convenience function that creates a temporary loader.

    Args:
        path: Path to YAML or JSON file

    Returns:
        LoadedPack
    """
    loader = PackLoader()
    return loader.load(path)


def load_pack_from_string(
    content: str,
    format: str = "yaml",
) -> LoadedPack:
    """
    Load a pack from a string.

    Args:
        content: YAML or JSON string
        format: "yaml" or "json"

    Returns:
        LoadedPack
    """
    try:
        if format.lower() == "json":
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise PackLoadError(
            message=f"Failed to parse pack: {e}",
            details={"format": format, "error": str(e)},
        )

    return PackLoader().load_data(data)
