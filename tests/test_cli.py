"""
Tests for the ratepilot command-line interface

Each command prints JSON on stdout and returns a deterministic exit code.
"""
import json

import pytest

from ratepilot import __version__
from ratepilot.cli import ExitCode, load_inputs, main, InputError


def run(capsys, *argv):
    """Run the CLI and return (exit code, parsed stdout, stderr)."""
    code = main(list(argv))
    captured = capsys.readouterr()
    output = json.loads(captured.out) if captured.out.strip().startswith("{") else None
    return code, output, captured.err


class TestValidatePack:
    """Tests for validate-pack."""

    def test_rate_program(self, capsys, fixtures_dir):
        code, report, _ = run(capsys, "validate-pack", "--pack", str(fixtures_dir / "rate_program.yaml"))
        assert code == ExitCode.OK
        assert report["valid"] is True
        assert report["kind"] == "rate_program"
        assert report["step_count"] == 7
        assert report["scenario_count"] == 2
        assert report["determinism"]["errors"] == []

    def test_rule_set(self, capsys, fixtures_dir):
        code, report, _ = run(capsys, "validate-pack", "-p", str(fixtures_dir / "rules.yaml"))
        assert code == ExitCode.OK
        assert [r["rule_id"] for r in report["rules"]] == ["old-home", "unfenced-pool", "high-coverage"]
        assert all(r["is_valid"] for r in report["rules"])
        assert "readiness" in report

    def test_deviation_warnings_only(self, capsys, fixtures_dir):
        """Test conflicts and orphans are reported without failing."""
        code, report, _ = run(capsys, "validate-pack", "-p", str(fixtures_dir / "ca_deviation.yaml"))
        assert code == ExitCode.OK
        assert report["override_count"] == 3
        types = sorted(i["type"] for i in report["issues"])
        assert types == ["conflict", "orphaned_override"]

    def test_forms(self, capsys, fixtures_dir):
        code, report, _ = run(capsys, "validate-pack", "-p", str(fixtures_dir / "forms.json"))
        assert code == ExitCode.OK
        assert report["form_count"] == 4

    def test_invalid_program_fails(self, capsys, tmp_path):
        """Test a program reading an undefined field exits FAILED."""
        path = tmp_path / "bad.yaml"
        path.write_text(
            "kind: rate_program\n"
            "rate_program_version_id: rp-bad\n"
            "steps:\n"
            "  - id: s1\n"
            "    type: factor\n"
            "    output_field_code: final_premium\n"
            "    inputs: [ghost]\n"
            "    factor_value: 2\n"
        )
        code, report, _ = run(capsys, "validate-pack", "-p", str(path))
        assert code == ExitCode.FAILED
        assert report["valid"] is False

    def test_schema_error(self, capsys, tmp_path):
        """Test a schema violation exits PACK_ERROR."""
        path = tmp_path / "bad.yaml"
        path.write_text("kind: rate_program\nrate_program_version_id: rp\nsteps: [{id: s1}]\n")
        code, _, err = run(capsys, "validate-pack", "-p", str(path))
        assert code == ExitCode.PACK_ERROR
        assert "RP_PACK_VALIDATION_ERROR" in err

    def test_missing_file(self, capsys, tmp_path):
        code, _, err = run(capsys, "validate-pack", "-p", str(tmp_path / "nope.yaml"))
        assert code == ExitCode.INPUT_INVALID
        assert err.startswith("ERROR: Pack file not found")


class TestRate:
    """Tests for rate."""

    def test_rate_from_file(self, capsys, fixtures_dir):
        code, result, _ = run(
            capsys, "rate",
            "--pack", str(fixtures_dir / "rate_program.yaml"),
            "--inputs", str(fixtures_dir / "quote.yaml"),
            "--state", "CA",
            "--date", "2025-06-01",
        )
        assert code == ExitCode.OK
        assert result["success"] is True
        assert result["final_premium"] == 1275
        assert result["rate_program_version_id"] == "rp-ho3-ca-v2"

    def test_rate_inline_missing_input(self, capsys, fixtures_dir):
        """Test a failed evaluation exits FAILED with the result printed."""
        code, result, _ = run(
            capsys, "rate",
            "--pack", str(fixtures_dir / "rate_program.yaml"),
            "--inputs", '{"territory": 1, "construction": "frame"}',
        )
        assert code == ExitCode.FAILED
        assert result["success"] is False

    def test_wrong_pack_kind(self, capsys, fixtures_dir):
        code, _, err = run(
            capsys, "rate",
            "--pack", str(fixtures_dir / "rules.yaml"),
            "--inputs", "{}",
        )
        assert code == ExitCode.PACK_ERROR
        assert "Expected a 'rate_program' pack" in err

    def test_bad_inline_json(self, capsys, fixtures_dir):
        code, _, err = run(
            capsys, "rate",
            "--pack", str(fixtures_dir / "rate_program.yaml"),
            "--inputs", "{base_rate: ",
        )
        assert code == ExitCode.INPUT_INVALID
        assert "Failed to read inputs" in err

    def test_bad_date(self, capsys, fixtures_dir):
        code, _, err = run(
            capsys, "rate",
            "--pack", str(fixtures_dir / "rate_program.yaml"),
            "--inputs", "{}",
            "--date", "06/01/2025",
        )
        assert code == ExitCode.INPUT_INVALID
        assert "Invalid date" in err


class TestRules:
    """Tests for rules."""

    def test_decline(self, capsys, fixtures_dir):
        code, result, _ = run(
            capsys, "rules",
            "--pack", str(fixtures_dir / "rules.yaml"),
            "--inputs", '{"year_built": 1990, "has_pool": true, "pool_fenced": false}',
            "--state", "CA",
            "--date", "2025-06-01",
        )
        assert code == ExitCode.OK
        assert result["aggregate_action"] == "decline"
        assert result["aggregate_severity"] == "block"

    def test_state_scoped_rule_skipped(self, capsys, fixtures_dir):
        code, result, _ = run(
            capsys, "rules",
            "--pack", str(fixtures_dir / "rules.yaml"),
            "--inputs", '{"year_built": 1990, "has_pool": true, "pool_fenced": false}',
            "--state", "TX",
            "--date", "2025-06-01",
        )
        assert code == ExitCode.OK
        assert result["aggregate_action"] is None
        assert result["fired_rules"] == []


class TestDiff:
    """Tests for diff."""

    def test_diff_with_effective(self, capsys, fixtures_dir):
        code, report, _ = run(
            capsys, "diff", "--pack", str(fixtures_dir / "ca_deviation.yaml"), "--effective",
        )
        assert code == ExitCode.OK
        assert report["conflict_count"] == 1
        assert [c["path"] for c in report["conflicts"]] == ["deductibles.aop"]
        assert report["effective_config"]["deductibles"]["aop"] == 1000
        assert report["effective_config"]["deductibles"]["earthquake"] == 0.1

    def test_diff_without_effective(self, capsys, fixtures_dir):
        _, report, _ = run(capsys, "diff", "--pack", str(fixtures_dir / "ca_deviation.yaml"))
        assert "effective_config" not in report


class TestRegress:
    """Tests for regress."""

    def test_scenarios_pass(self, capsys, fixtures_dir):
        code, report, _ = run(
            capsys, "regress", "--pack", str(fixtures_dir / "rate_program.yaml"),
            "--date", "2025-06-01",
        )
        assert code == ExitCode.OK
        assert report["run"]["status"] == "passed"
        assert report["run"]["passed_count"] == 2
        assert report["gate"]["passed"] is True

    def test_with_baseline(self, capsys, fixtures_dir):
        pack = str(fixtures_dir / "rate_program.yaml")
        code, report, _ = run(capsys, "regress", "--pack", pack, "--baseline", pack)
        assert code == ExitCode.OK
        assert report["run"]["results"][0]["baseline_outputs"]["final_premium"] == 1275

    def test_gate_blocks(self, capsys, fixtures_dir, tmp_path):
        """Test a failing required scenario exits FAILED."""
        text = (fixtures_dir / "rate_program.yaml").read_text()
        path = tmp_path / "draft.yaml"
        path.write_text(text.replace("feeAmount: 25", "feeAmount: 30"))
        code, report, _ = run(capsys, "regress", "--pack", str(path))
        assert code == ExitCode.FAILED
        assert report["gate"]["passed"] is False
        assert report["run"]["failed_count"] == 2


class TestSimulate:
    """Tests for simulate."""

    def test_full_simulation(self, capsys, fixtures_dir):
        code, output, _ = run(
            capsys, "simulate",
            "--rates", str(fixtures_dir / "rate_program.yaml"),
            "--rules", str(fixtures_dir / "rules.yaml"),
            "--forms", str(fixtures_dir / "forms.json"),
            "--inputs", str(fixtures_dir / "quote.yaml"),
            "--state", "CA",
            "--date", "2025-06-01",
        )
        assert code == ExitCode.OK
        assert output["uw_result"]["decision"] == "refer"
        assert output["premium_result"]["final_premium"] == 1275
        assert output["forms_result"]["total_form_count"] == 3


class TestMain:
    """Tests for argument handling."""

    def test_no_command(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out.lower()

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_load_inputs_rejects_non_mapping(self, tmp_path):
        path = tmp_path / "inputs.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(InputError):
            load_inputs(str(path))

    def test_load_inputs_empty_file(self, tmp_path):
        path = tmp_path / "inputs.yaml"
        path.write_text("")
        assert load_inputs(str(path)) == {}
