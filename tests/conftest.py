"""
Pytest configuration and fixtures for RatePilot tests.

Provides helper factories and common fixtures matching actual model definitions.
"""
import pytest
from datetime import date
from itertools import count

from ratepilot.models import (
    ConditionGroup,
    ConditionLeaf,
    ConditionOperator,
    EvaluationContext,
    FormUseRecord,
    LogicOperator,
    Override,
    RatingStep,
    RatingTable,
    RoundingMode,
    RuleAction,
    RuleEvaluationContext,
    RuleOutcome,
    RuleScope,
    RuleSeverity,
    RuleStatus,
    RuleType,
    RuleWithVersion,
    Scenario,
    SimulationInput,
    StepType,
    TableDimension,
    UnderwritingRuleVersion,
)


PRODUCT_VERSION_ID = "pv-ho3-2025"
EFFECTIVE_DATE = date(2025, 6, 1)

_condition_ids = count(1)


# =============================================================================
# Rating Factories
# =============================================================================

def make_step(
    id: str,
    type: StepType,
    output_field_code: str,
    inputs: list = None,
    order: int = 0,
    name: str = None,
    **kwargs,
) -> RatingStep:
    """Create a RatingStep with required fields."""
    return RatingStep(
        id=id,
        order=order,
        type=type,
        output_field_code=output_field_code,
        name=name or id,
        inputs=list(inputs or []),
        **kwargs,
    )


def make_context(
    inputs: dict = None,
    state: str = None,
    tables: dict = None,
) -> EvaluationContext:
    """Create an EvaluationContext."""
    return EvaluationContext(
        inputs=dict(inputs or {}),
        state=state,
        effective_date=EFFECTIVE_DATE,
        tables=dict(tables or {}),
    )


def make_territory_table() -> RatingTable:
    """Two-dimension territory table keyed territory-construction."""
    return RatingTable(
        table_version_id="tbl-territory-v1",
        dimensions=[
            TableDimension(name="territory", field_code="territory", values=["1", "2"]),
            TableDimension(name="construction", field_code="construction", values=["frame", "masonry"]),
        ],
        values={
            "1-frame": 1.25,
            "1-masonry": 1.1,
            "2-frame": 1.5,
            "2-masonry": 1.3,
        },
    )


def make_basic_steps() -> list:
    """base_rate input -> territory factor x1.25 -> final_premium."""
    return [
        make_step("s1", StepType.INPUT, "base_rate", ["base_rate"], order=1),
        make_step(
            "s2", StepType.FACTOR, "territory_adjusted", ["base_rate"], order=2,
            factor_value=1.25,
        ),
        make_step(
            "s3", StepType.EXPRESSION, "final_premium", ["territory_adjusted"], order=3,
            expression="territory_adjusted",
            rounding_mode=RoundingMode.NEAREST,
            rounding_precision=2,
        ),
    ]


# =============================================================================
# Rule Factories
# =============================================================================

def make_leaf(
    field_code: str,
    operator: ConditionOperator,
    value=None,
    value_end=None,
    id: str = None,
) -> ConditionLeaf:
    """Create a ConditionLeaf with a generated ID."""
    return ConditionLeaf(
        id=id or f"leaf-{next(_condition_ids)}",
        field_code=field_code,
        operator=operator,
        value=value,
        value_end=value_end,
    )


def make_group(
    *conditions,
    operator: LogicOperator = LogicOperator.AND,
    id: str = None,
) -> ConditionGroup:
    """Create a ConditionGroup over the given children."""
    return ConditionGroup(
        id=id or f"group-{next(_condition_ids)}",
        operator=operator,
        conditions=list(conditions),
    )


def make_rule(
    rule_id: str,
    conditions: ConditionGroup = None,
    action: RuleAction = RuleAction.FLAG,
    severity: RuleSeverity = RuleSeverity.WARNING,
    message: str = "Rule fired",
    rule_type: RuleType = RuleType.ELIGIBILITY,
    status: RuleStatus = RuleStatus.PUBLISHED,
    product_version_id: str = PRODUCT_VERSION_ID,
    state_code: str = None,
    coverage_version_id: str = None,
    effective_start: date = None,
    effective_end: date = None,
    rule_name: str = None,
    version_id: str = None,
) -> RuleWithVersion:
    """Create a RuleWithVersion with required fields."""
    if conditions is None:
        conditions = make_group(make_leaf("year_built", ConditionOperator.LT, 1950))

    version = UnderwritingRuleVersion(
        id=version_id or f"{rule_id}-v1",
        rule_id=rule_id,
        conditions=conditions,
        outcome=RuleOutcome(action=action, message=message, severity=severity),
        scope=RuleScope(
            product_version_id=product_version_id,
            state_code=state_code,
            coverage_version_id=coverage_version_id,
        ),
        status=status,
        effective_start=effective_start,
        effective_end=effective_end,
    )
    return RuleWithVersion(
        rule_id=rule_id,
        rule_name=rule_name or rule_id,
        rule_type=rule_type,
        version=version,
    )


def make_rule_context(
    inputs: dict = None,
    state: str = "CA",
    effective_date: date = EFFECTIVE_DATE,
    product_version_id: str = PRODUCT_VERSION_ID,
    coverage_version_id: str = None,
) -> RuleEvaluationContext:
    """Create a RuleEvaluationContext."""
    return RuleEvaluationContext(
        inputs=dict(inputs or {}),
        product_version_id=product_version_id,
        effective_date=effective_date,
        state=state,
        coverage_version_id=coverage_version_id,
    )


# =============================================================================
# Deviation Factories
# =============================================================================

def make_override(path: str, value, base_value=None, **kwargs) -> Override:
    """Create an Override."""
    return Override(path=path, value=value, base_value=base_value, **kwargs)


def make_overrides(*overrides) -> dict:
    """Key overrides by path."""
    return {o.path: o for o in overrides}


def make_base_config() -> dict:
    """Base product configuration used by the deviation tests."""
    return {
        "limits": {"occurrence": 1000000, "aggregate": 2000000},
        "deductibles": {"aop": 500, "wind": 1000},
        "rates": {"base": 850.0},
        "eligibility": {"maxAge": 50, "allowPools": True},
        "forms": ["HO-3", "HO-04-90"],
    }


# =============================================================================
# Regression Factories
# =============================================================================

def make_scenario(
    id: str,
    inputs: dict = None,
    expected_outputs: dict = None,
    tolerance: float = 0.01,
    is_required: bool = False,
    is_active: bool = True,
    state_code: str = None,
    name: str = None,
) -> Scenario:
    """Create a Scenario with required fields."""
    return Scenario(
        id=id,
        name=name or f"Scenario {id}",
        inputs=dict(inputs or {}),
        expected_outputs=dict(expected_outputs or {}),
        tolerance=tolerance,
        state_code=state_code,
        is_required=is_required,
        is_active=is_active,
    )


# =============================================================================
# Simulation Factories
# =============================================================================

def make_form(
    form_id: str,
    use_type: str = "base",
    jurisdictions: list = None,
    type: str = "policy",
) -> FormUseRecord:
    """Create a FormUseRecord."""
    return FormUseRecord(
        form_id=form_id,
        form_number=f"FRM-{form_id.upper()}",
        form_title=f"Form {form_id}",
        type=type,
        use_type=use_type,
        edition_date="2024-01",
        jurisdictions=list(jurisdictions or []),
    )


def make_forms() -> list:
    """f1 everywhere, f2 in CA/NY, f3 in TX, f4 a CA condition form."""
    return [
        make_form("f1", use_type="base"),
        make_form("f2", use_type="endorsement", jurisdictions=["CA", "NY"], type="endorsement"),
        make_form("f3", use_type="endorsement", jurisdictions=["TX"], type="endorsement"),
        make_form("f4", use_type="condition", jurisdictions=["CA"]),
    ]


def make_simulation_input(
    inputs: dict = None,
    state_code: str = "CA",
    effective_date: date = EFFECTIVE_DATE,
) -> SimulationInput:
    """Create a SimulationInput."""
    return SimulationInput(
        product_id="ho3",
        product_version_id=PRODUCT_VERSION_ID,
        state_code=state_code,
        effective_date=effective_date,
        inputs=dict(inputs or {}),
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def basic_steps():
    """Three-step rate program producing final_premium."""
    return make_basic_steps()


@pytest.fixture
def territory_table():
    return make_territory_table()


@pytest.fixture
def base_config():
    return make_base_config()


@pytest.fixture
def forms():
    return make_forms()


@pytest.fixture
def fixtures_dir():
    """Path to the YAML/JSON pack fixtures."""
    from pathlib import Path
    return Path(__file__).parent / "fixtures"
