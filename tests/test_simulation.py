"""
Tests for RatePilot Simulation Orchestrator

Tests cover:
- Forms applicability by state
- Each phase in isolation
- Phase isolation when one phase raises
"""
from ratepilot.engine import simulation
from ratepilot.engine.simulation import (
    resolve_applicable_forms,
    run_premium_phase,
    run_simulation,
    run_uw_phase,
)
from ratepilot.models import EvaluationErrorType, RuleAction, RuleSeverity

from tests.conftest import make_basic_steps, make_rule, make_simulation_input


def _boom(*args, **kwargs):
    raise RuntimeError("boom")


# =============================================================================
# Forms Tests
# =============================================================================

class TestResolveApplicableForms:
    """Tests for resolve_applicable_forms."""

    def test_california(self, forms):
        """Test global forms plus forms listing CA."""
        result = resolve_applicable_forms(forms, "CA")
        assert [f.form_id for f in result.applicable_forms] == ["f1", "f2", "f4"]
        assert result.total_form_count == 3

    def test_state_with_only_global_forms(self, forms):
        """Test a state not listed anywhere gets only global forms."""
        result = resolve_applicable_forms(forms, "FL")
        assert [f.form_id for f in result.applicable_forms] == ["f1"]

    def test_grouped_by_use_type(self, forms):
        """Test grouping keeps input order."""
        result = resolve_applicable_forms(forms, "CA")
        assert list(result.by_use_type) == ["base", "endorsement", "condition"]
        assert [f.form_id for f in result.by_use_type["endorsement"]] == ["f2"]

    def test_no_forms(self):
        """Test an empty catalog."""
        result = resolve_applicable_forms([], "CA")
        assert result.total_form_count == 0
        assert result.by_use_type == {}

    def test_serializes(self, forms):
        """Test the forms result serializes."""
        data = resolve_applicable_forms(forms, "TX").to_dict()
        assert data["total_form_count"] == 2
        assert data["applicable_forms"][1]["form_number"] == "FRM-F3"


# =============================================================================
# Phase Tests
# =============================================================================

class TestPhases:
    """Tests for the underwriting and premium phases."""

    def test_uw_phase_decision(self):
        """Test the decision is the aggregate action of fired rules."""
        rules = [
            make_rule("old-home"),
            make_rule("pool", action=RuleAction.REFER, severity=RuleSeverity.WARNING,
                      conditions=None),
        ]
        result = run_uw_phase(rules, make_simulation_input({"year_built": 1940}))
        assert result.decision == RuleAction.REFER
        assert result.fired_rule_count == 2
        assert result.total_rule_count == 2
        assert result.result_hash

    def test_uw_phase_no_fired_rules(self):
        """Test decision is None when nothing fires."""
        result = run_uw_phase([make_rule("old-home")], make_simulation_input({"year_built": 2000}))
        assert result.decision is None
        assert result.fired_rule_count == 0
        assert result.fired_rules == []

    def test_premium_phase(self):
        """Test the premium phase carries the final premium."""
        result = run_premium_phase(
            make_basic_steps(), make_simulation_input({"base_rate": 1000}), "rp-1",
        )
        assert result.success is True
        assert result.final_premium == 1250
        assert result.result_hash

    def test_premium_phase_failed_evaluation(self):
        """Test a failed evaluation is reported, not raised."""
        result = run_premium_phase(make_basic_steps(), make_simulation_input({}))
        assert result.success is False
        assert result.final_premium is None
        assert result.errors[0].code == EvaluationErrorType.STEP_FAILED


# =============================================================================
# Orchestration Tests
# =============================================================================

class TestRunSimulation:
    """Tests for run_simulation."""

    def test_all_phases(self, forms):
        """Test a full simulation."""
        output = run_simulation(
            make_simulation_input({"base_rate": 1000, "year_built": 1940}),
            rules=[make_rule("old-home")],
            steps=make_basic_steps(),
            form_records=forms,
            rate_program_version_id="rp-1",
        )
        assert output.uw_result.decision == RuleAction.FLAG
        assert output.premium_result.final_premium == 1250
        assert output.forms_result.total_form_count == 3

        data = output.to_dict()
        assert data["uw_result"]["decision"] == "flag"
        assert data["premium_result"]["success"] is True

    def test_premium_exception_isolated(self, forms, monkeypatch):
        """Test a raising rating engine leaves the other phases intact."""
        monkeypatch.setattr(simulation, "evaluate", _boom)
        output = run_simulation(
            make_simulation_input({"base_rate": 1000, "year_built": 1940}),
            rules=[make_rule("old-home")],
            steps=make_basic_steps(),
            form_records=forms,
        )
        assert output.premium_result.success is False
        assert output.premium_result.errors[0].message == "Premium evaluation failed: boom"
        assert output.uw_result.decision == RuleAction.FLAG
        assert output.forms_result.total_form_count == 3

    def test_uw_exception_isolated(self, forms, monkeypatch):
        """Test a raising rules engine leaves the other phases intact."""
        monkeypatch.setattr(simulation, "evaluate_rules", _boom)
        output = run_simulation(
            make_simulation_input({"base_rate": 1000}),
            rules=[make_rule("old-home")],
            steps=make_basic_steps(),
            form_records=forms,
        )
        assert output.uw_result.decision is None
        assert output.uw_result.errors == ["Underwriting evaluation failed: boom"]
        assert output.uw_result.total_rule_count == 1
        assert output.premium_result.success is True

    def test_forms_exception_isolated(self, forms, monkeypatch):
        """Test a raising forms resolver leaves the other phases intact."""
        monkeypatch.setattr(simulation, "resolve_applicable_forms", _boom)
        output = run_simulation(
            make_simulation_input({"base_rate": 1000}),
            rules=[],
            steps=make_basic_steps(),
            form_records=forms,
        )
        assert output.forms_result.errors == ["Forms resolution failed: boom"]
        assert output.forms_result.applicable_forms == []
        assert output.premium_result.final_premium == 1250
