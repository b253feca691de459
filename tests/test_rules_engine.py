"""
Tests for RatePilot Underwriting Rules Engine

Tests cover:
- Scope filtering (product version, state, coverage, effective dates)
- Fired/passed partitioning and the condition trace
- Most-conservative aggregation
- Result hash determinism
- Rule version validation and product readiness
- Tree helpers
"""
from datetime import date
from itertools import count

import pytest

from ratepilot.engine.condition_evaluator import MAX_CONDITION_DEPTH
from ratepilot.engine.rules_engine import (
    action_rank,
    check_rule_readiness,
    check_scope,
    create_default_outcome,
    create_default_scope,
    create_empty_group,
    create_empty_leaf,
    evaluate_rules,
    extract_field_codes,
    make_condition_id,
    most_conservative,
    most_severe,
    severity_rank,
    validate_rule_version,
)
from ratepilot.models import (
    ConditionGroup,
    ConditionOperator,
    IssueSeverity,
    LogicOperator,
    ReadinessIssueType,
    RuleAction,
    RuleSeverity,
    RuleStatus,
    RuleType,
)

from tests.conftest import (
    PRODUCT_VERSION_ID,
    make_group,
    make_leaf,
    make_rule,
    make_rule_context,
)


Op = ConditionOperator


# =============================================================================
# Ranking Tests
# =============================================================================

class TestRanking:
    """Tests for severity and action ordering."""

    def test_severity_order(self):
        """Test info < warning < error < block."""
        ranks = [severity_rank(s) for s in (
            RuleSeverity.INFO, RuleSeverity.WARNING, RuleSeverity.ERROR, RuleSeverity.BLOCK,
        )]
        assert ranks == sorted(ranks)

    def test_action_order(self):
        """Test accept < flag < require_docs < refer < decline."""
        assert action_rank(RuleAction.ACCEPT) < action_rank(RuleAction.FLAG)
        assert action_rank(RuleAction.REFER) < action_rank(RuleAction.DECLINE)

    def test_most_severe_and_conservative(self):
        """Test aggregation helpers."""
        assert most_severe([RuleSeverity.INFO, RuleSeverity.BLOCK]) == RuleSeverity.BLOCK
        assert most_conservative([RuleAction.ACCEPT, RuleAction.REFER]) == RuleAction.REFER
        assert most_severe([]) is None
        assert most_conservative([]) is None


# =============================================================================
# Scope Tests
# =============================================================================

class TestCheckScope:
    """Tests for check_scope."""

    def test_in_scope(self):
        """Test a matching rule is in scope."""
        rule = make_rule("r1")
        assert check_scope(rule.version, make_rule_context()) is None

    def test_product_version_mismatch(self):
        """Test a rule for another product version is skipped."""
        rule = make_rule("r1", product_version_id="other")
        reason = check_scope(rule.version, make_rule_context())
        assert reason.startswith("Product version mismatch")

    def test_state_scope(self):
        """Test a state-scoped rule only applies in its state."""
        rule = make_rule("r1", state_code="FL")
        assert check_scope(rule.version, make_rule_context(state="FL")) is None
        assert check_scope(rule.version, make_rule_context(state="CA")).startswith("State mismatch")

    def test_state_scoped_rule_without_context_state(self):
        """Test a state-scoped rule is skipped when the context has no state."""
        rule = make_rule("r1", state_code="FL")
        assert check_scope(rule.version, make_rule_context(state=None)) is not None

    def test_coverage_scope(self):
        """Test a coverage-scoped rule requires the same coverage."""
        rule = make_rule("r1", coverage_version_id="cov-a")
        assert check_scope(rule.version, make_rule_context(coverage_version_id="cov-a")) is None
        assert check_scope(rule.version, make_rule_context()) == "Coverage version mismatch"

    def test_not_yet_effective(self):
        """Test a rule starting after the effective date is skipped."""
        rule = make_rule("r1", effective_start=date(2026, 1, 1))
        assert check_scope(rule.version, make_rule_context()) == (
            "Not yet effective (starts 2026-01-01)"
        )

    def test_expired(self):
        """Test a rule that ended before the effective date is skipped."""
        rule = make_rule("r1", effective_end=date(2025, 1, 1))
        assert check_scope(rule.version, make_rule_context()) == "Expired (ended 2025-01-01)"

    def test_date_bounds_inclusive(self):
        """Test the start and end dates themselves are in scope."""
        rule = make_rule("r1", effective_start=date(2025, 6, 1), effective_end=date(2025, 6, 1))
        assert check_scope(rule.version, make_rule_context(effective_date=date(2025, 6, 1))) is None


# =============================================================================
# Evaluation Tests
# =============================================================================

class TestEvaluateRules:
    """Tests for evaluate_rules."""

    def test_fired_and_passed(self):
        """Test rules partition into fired and passed."""
        old_home = make_rule(
            "old-home",
            make_group(make_leaf("year_built", Op.LT, 1950)),
            action=RuleAction.REFER,
            severity=RuleSeverity.ERROR,
        )
        pool = make_rule(
            "pool",
            make_group(make_leaf("has_pool", Op.IS_TRUE)),
            action=RuleAction.REQUIRE_DOCS,
        )
        result = evaluate_rules(
            [old_home, pool],
            make_rule_context({"year_built": 1940, "has_pool": False}),
        )
        assert [r.rule_id for r in result.fired_rules] == ["old-home"]
        assert [r.rule_id for r in result.passed_rules] == ["pool"]
        assert result.aggregate_action == RuleAction.REFER
        assert result.aggregate_severity == RuleSeverity.ERROR
        assert result.success

    def test_no_rules_fired(self):
        """Test aggregates are None when nothing fires."""
        rule = make_rule("r1", make_group(make_leaf("year_built", Op.LT, 1950)))
        result = evaluate_rules([rule], make_rule_context({"year_built": 2000}))
        assert result.fired_rules == []
        assert result.aggregate_action is None
        assert result.aggregate_severity is None

    def test_most_severe_wins(self):
        """Test info + block aggregates to block."""
        info = make_rule("info", make_group(), severity=RuleSeverity.INFO, action=RuleAction.FLAG)
        block = make_rule("block", make_group(), severity=RuleSeverity.BLOCK,
                          action=RuleAction.DECLINE)
        result = evaluate_rules([info, block], make_rule_context())
        assert result.aggregate_severity == RuleSeverity.BLOCK
        assert result.aggregate_action == RuleAction.DECLINE

    def test_out_of_scope_rule_passed_with_reason(self):
        """Test skipped rules carry a reason and no condition trace."""
        rule = make_rule("fl-only", make_group(), state_code="FL")
        result = evaluate_rules([rule], make_rule_context(state="CA"))
        entry = result.trace[0]
        assert not entry.fired
        assert entry.skip_reason.startswith("State mismatch")
        assert entry.condition_trace == []
        assert result.passed_rules == [entry]

    def test_short_circuit_trace(self):
        """Test AND [false, true] records one condition trace entry."""
        rule = make_rule("r1", make_group(
            make_leaf("a", Op.IS_TRUE),
            make_leaf("b", Op.IS_TRUE),
        ))
        result = evaluate_rules([rule], make_rule_context({"a": False, "b": True}))
        assert len(result.trace[0].condition_trace) == 1

    def test_outcome_only_on_fired(self):
        """Test the outcome is attached only when a rule fires."""
        rule = make_rule("r1", make_group(make_leaf("a", Op.IS_TRUE)), message="Check A")
        fired = evaluate_rules([rule], make_rule_context({"a": True}))
        passed = evaluate_rules([rule], make_rule_context({"a": False}))
        assert fired.trace[0].outcome.message == "Check A"
        assert passed.trace[0].outcome is None

    def test_hash_deterministic(self):
        """Test identical evaluations share a hash."""
        rules = [make_rule("r1", make_group(make_leaf("a", Op.GT, 5, id="c1"), id="g1"))]
        a = evaluate_rules(rules, make_rule_context({"a": 10}))
        b = evaluate_rules(rules, make_rule_context({"a": 10}))
        assert a.result_hash == b.result_hash

    def test_hash_changes_with_fired_set(self):
        """Test a different fire decision changes the hash."""
        rules = [make_rule("r1", make_group(make_leaf("a", Op.GT, 5, id="c1"), id="g1"))]
        a = evaluate_rules(rules, make_rule_context({"a": 10}))
        b = evaluate_rules(rules, make_rule_context({"a": 1}))
        assert a.result_hash != b.result_hash

    def test_bad_tree_reported_as_error(self):
        """Test a malformed tree is reported and does not fire."""
        rule = make_rule("bad", make_group(make_leaf("a", Op.IS_TRUE)), rule_name="Bad Rule")
        rule.version.conditions.conditions.append("not a node")
        result = evaluate_rules([rule], make_rule_context({"a": True}))
        assert not result.success
        assert result.errors[0].startswith('Rule "Bad Rule":')
        assert result.fired_rules == []

    def test_overly_nested_tree_reported_as_error(self):
        """Test a tree nested past the evaluator limit is an error, not a crash."""
        node = make_leaf("a", Op.IS_TRUE)
        for _ in range(MAX_CONDITION_DEPTH + 5):
            node = make_group(node)
        rules = [
            make_rule("deep", node, rule_name="Deep Rule"),
            make_rule("ok", make_group(make_leaf("a", Op.IS_TRUE))),
        ]
        result = evaluate_rules(rules, make_rule_context({"a": True}))
        assert len(result.errors) == 1
        assert "nested deeper" in result.errors[0]
        assert [r.rule_id for r in result.fired_rules] == ["ok"]

    def test_serializes(self):
        """Test the result serializes to plain data."""
        rule = make_rule("r1", make_group(make_leaf("a", Op.IS_TRUE)))
        data = evaluate_rules([rule], make_rule_context({"a": True})).to_dict()
        assert data["aggregate_action"] == "flag"
        assert data["fired_rules"][0]["condition_trace"][0]["operator"] == "isTrue"


# =============================================================================
# Validation Tests
# =============================================================================

class TestValidateRuleVersion:
    """Tests for validate_rule_version."""

    def test_valid_rule(self):
        """Test a well-formed rule has no issues."""
        rule = make_rule("r1", make_group(make_leaf("year_built", Op.LT, 1950)))
        result = validate_rule_version(rule.version, ["year_built"])
        assert result.is_valid
        assert result.issues == []
        assert result.referenced_field_codes == ["year_built"]

    def test_unknown_field(self):
        """Test fields outside the data dictionary are errors."""
        rule = make_rule("r1", make_group(make_leaf("ghost", Op.EQ, 1)))
        result = validate_rule_version(rule.version, ["year_built"])
        assert not result.is_valid
        assert result.issues[0].field_code == "ghost"
        assert result.issues[0].path == "conditions.conditions[0]"

    def test_missing_field(self):
        """Test a leaf with no field is an error."""
        rule = make_rule("r1", make_group(make_leaf("", Op.EQ, 1)))
        result = validate_rule_version(rule.version, [])
        assert result.issues[0].message == "Condition has no field selected"

    def test_between_requires_end(self):
        """Test between without an end value is an error."""
        rule = make_rule("r1", make_group(make_leaf("age", Op.BETWEEN, 10)))
        result = validate_rule_version(rule.version, ["age"])
        assert any("end value" in i.message for i in result.issues)

    def test_in_requires_list(self):
        """Test in/notIn with a scalar is an error."""
        rule = make_rule("r1", make_group(make_leaf("state", Op.IN, "CA")))
        result = validate_rule_version(rule.version, ["state"])
        assert any('"in" operator requires an array value' == i.message for i in result.issues)

    def test_empty_value_and_group_warnings(self):
        """Test empty values and empty groups are warnings only."""
        rule = make_rule("r1", make_group(
            make_leaf("a", Op.EQ, ""),
            make_group(),
            make_leaf("b", Op.IS_TRUE, ""),
        ), message="")
        result = validate_rule_version(rule.version, ["a", "b"])
        assert result.is_valid
        messages = [i.message for i in result.issues]
        assert messages.count("Condition value is empty") == 1
        assert "Empty condition group" in messages
        assert "Outcome message is empty" in messages

    def test_nested_paths(self):
        """Test issue paths follow the tree."""
        rule = make_rule("r1", make_group(
            make_leaf("a", Op.EQ, 1),
            make_group(make_leaf("ghost", Op.EQ, 1)),
        ))
        result = validate_rule_version(rule.version, ["a"])
        assert result.issues[0].path == "conditions.conditions[1].conditions[0]"

    def test_referenced_codes_deduped(self):
        """Test referenced field codes are unique and skip empties."""
        rule = make_rule("r1", make_group(
            make_leaf("a", Op.EQ, 1),
            make_leaf("a", Op.EQ, 2),
            make_leaf("", Op.EQ, 3),
        ))
        result = validate_rule_version(rule.version, ["a"])
        assert result.referenced_field_codes == ["a"]

    def test_requires_product_version(self):
        """Test an unscoped rule is an error."""
        rule = make_rule("r1", product_version_id="")
        result = validate_rule_version(rule.version, ["year_built"])
        assert not result.is_valid


# =============================================================================
# Readiness Tests
# =============================================================================

class TestCheckRuleReadiness:
    """Tests for check_rule_readiness."""

    TODAY = date(2025, 6, 1)

    def _types(self, result):
        return [i.type for i in result.issues]

    def test_ready_product(self):
        """Test a published eligibility rule with known fields is ready."""
        rules = [make_rule("r1")]
        result = check_rule_readiness(rules, PRODUCT_VERSION_ID, ["year_built"], self.TODAY)
        assert result.issues == []
        assert result.published_rules == 1

    def test_expired_rule(self):
        """Test published rules past their end date are flagged."""
        rules = [make_rule("r1", effective_end=date(2025, 1, 1))]
        result = check_rule_readiness(rules, PRODUCT_VERSION_ID, ["year_built"], self.TODAY)
        assert ReadinessIssueType.EXPIRED_RULE in self._types(result)

    def test_draft_only(self):
        """Test a rule with only a draft version is flagged."""
        rules = [make_rule("r1"), make_rule("r2", status=RuleStatus.DRAFT)]
        result = check_rule_readiness(rules, PRODUCT_VERSION_ID, ["year_built"], self.TODAY)
        draft_issues = [i for i in result.issues if i.type == ReadinessIssueType.DRAFT_ONLY]
        assert [i.rule_ids for i in draft_issues] == [["r2"]]
        assert result.draft_rules == 1

    def test_draft_with_published_version_not_flagged(self):
        """Test a draft of an already-published rule is fine."""
        rules = [
            make_rule("r1"),
            make_rule("r1", status=RuleStatus.DRAFT, version_id="r1-v2"),
        ]
        result = check_rule_readiness(rules, PRODUCT_VERSION_ID, ["year_built"], self.TODAY)
        assert ReadinessIssueType.DRAFT_ONLY not in self._types(result)

    def test_invalid_field_ref(self):
        """Test published rules referencing unknown fields are errors."""
        rules = [make_rule("r1", make_group(make_leaf("ghost", Op.EQ, 1)))]
        result = check_rule_readiness(rules, PRODUCT_VERSION_ID, [], self.TODAY)
        issue = next(i for i in result.issues if i.type == ReadinessIssueType.INVALID_FIELD_REF)
        assert issue.severity == IssueSeverity.ERROR

    def test_conflicting_rules(self):
        """Test accept and decline in one scope conflict."""
        rules = [
            make_rule("accept", action=RuleAction.ACCEPT),
            make_rule("decline", action=RuleAction.DECLINE),
        ]
        result = check_rule_readiness(rules, PRODUCT_VERSION_ID, ["year_built"], self.TODAY)
        issue = next(i for i in result.issues if i.type == ReadinessIssueType.CONFLICTING_RULES)
        assert issue.rule_ids == ["accept", "decline"]

    def test_different_states_do_not_conflict(self):
        """Test accept and decline in different state scopes are fine."""
        rules = [
            make_rule("accept", action=RuleAction.ACCEPT, state_code="CA"),
            make_rule("decline", action=RuleAction.DECLINE, state_code="FL"),
        ]
        result = check_rule_readiness(rules, PRODUCT_VERSION_ID, ["year_built"], self.TODAY)
        assert ReadinessIssueType.CONFLICTING_RULES not in self._types(result)

    def test_missing_eligibility_rule(self):
        """Test a product without published eligibility rules gets an info issue."""
        rules = [make_rule("r1", rule_type=RuleType.REFERRAL)]
        result = check_rule_readiness(rules, PRODUCT_VERSION_ID, ["year_built"], self.TODAY)
        issue = next(i for i in result.issues if i.type == ReadinessIssueType.MISSING_RULE)
        assert issue.severity == IssueSeverity.INFO

    def test_other_product_versions_ignored(self):
        """Test rules for other product versions are not counted."""
        rules = [make_rule("r1", product_version_id="other")]
        result = check_rule_readiness(rules, PRODUCT_VERSION_ID, [], self.TODAY)
        assert result.total_rules == 0
        assert result.issues == []


# =============================================================================
# Tree Helper Tests
# =============================================================================

class TestTreeHelpers:
    """Tests for editor helpers."""

    def test_extract_field_codes(self):
        """Test field codes come back in tree order."""
        tree = make_group(
            make_leaf("a", Op.EQ, 1),
            make_group(make_leaf("b", Op.EQ, 1), make_leaf("", Op.EQ, 1)),
        )
        assert extract_field_codes(tree) == ["a", "b"]

    def test_injectable_ids(self):
        """Test condition IDs come from the given factory."""
        ids = count(1)
        group = create_empty_group(LogicOperator.OR, id_factory=lambda: f"id-{next(ids)}")
        assert isinstance(group, ConditionGroup)
        assert group.id == "id-1"
        assert group.conditions[0].id == "id-2"
        assert group.operator == LogicOperator.OR

    def test_default_ids_are_unique(self):
        """Test generated IDs do not repeat."""
        assert make_condition_id() != make_condition_id()

    def test_empty_leaf(self):
        """Test the editor's blank leaf."""
        leaf = create_empty_leaf(lambda: "x")
        assert leaf.field_code == ""
        assert leaf.operator == ConditionOperator.EQ

    def test_defaults(self):
        """Test default outcome and scope."""
        assert create_default_outcome().action == RuleAction.FLAG
        assert create_default_outcome().severity == RuleSeverity.WARNING
        assert create_default_scope("pv-1").product_version_id == "pv-1"
        assert create_default_scope().state_code is None


@pytest.mark.parametrize("severity", list(RuleSeverity))
def test_every_severity_ranked(severity):
    """Test every severity has a rank."""
    assert severity_rank(severity) >= 0
