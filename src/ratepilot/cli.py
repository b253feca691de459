#!/usr/bin/env python3
"""
RatePilot CLI - Product Configuration Runner

Command-line interface for evaluating configuration packs. Every command
prints a JSON document on stdout; diagnostics go to stderr.

Usage:
    ratepilot validate-pack --pack rate_program.yaml
    ratepilot rate --pack rate_program.yaml --inputs quote.json --state CA
    ratepilot rules --pack rules.yaml --inputs quote.json --state CA --date 2026-01-01
    ratepilot diff --pack ca_deviation.yaml
    ratepilot regress --pack draft.yaml --baseline published.yaml
    ratepilot simulate --rates rate_program.yaml --rules rules.yaml \\
        --forms forms.yaml --inputs quote.json --state CA

Exit Codes:
    0   OK              - Command succeeded
    1   FAILED          - Evaluation failed, validation errors, or QA gate blocked
    10  INPUT_INVALID   - Invalid input file or argument
    11  PACK_ERROR      - Pack loading/validation failed
    20  INTERNAL_ERROR  - Unexpected internal error
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml

from . import __version__
from .engine import (
    apply_overrides,
    check_rule_readiness,
    compute_diff,
    detect_conflicts,
    evaluate,
    evaluate_qa_gate,
    evaluate_rules,
    run_regression,
    run_simulation,
    validate_determinism,
    validate_overrides,
    validate_rule_version,
)
from .exceptions import RatePilotError
from .models import (
    EvaluationContext,
    IssueSeverity,
    RegressionRunInput,
    RuleEvaluationContext,
    SimulationInput,
)
from .packs import LoadedPack, PackLoader


logger = logging.getLogger(__name__)


# ============================================================================
# EXIT CODES
# ============================================================================

class ExitCode:
    """Deterministic exit codes for pipeline integration."""
    OK = 0                # Command succeeded
    FAILED = 1            # Evaluation failed / gate blocked
    INPUT_INVALID = 10    # Invalid input files or arguments
    PACK_ERROR = 11       # Pack validation/loading failed
    INTERNAL_ERROR = 20   # Unexpected error


class InputError(Exception):
    """Raised for unreadable inputs or bad arguments."""


# ============================================================================
# LOGGING
# ============================================================================

LOG_LEVEL_ENV = "RATEPILOT_LOG_LEVEL"


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Add extra fields if present
        if hasattr(record, "result_hash"):
            log_entry["result_hash"] = record.result_hash
        if hasattr(record, "run_hash"):
            log_entry["run_hash"] = record.run_hash
        if hasattr(record, "duration_ms"):
            log_entry["duration_ms"] = record.duration_ms
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(level: Optional[str] = None) -> None:
    """Send JSON logs to stderr at the given level (env var, then WARNING)."""
    level_name = (level or os.environ.get(LOG_LEVEL_ENV) or "WARNING").upper()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter())
    root = logging.getLogger("ratepilot")
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, level_name, logging.WARNING))
    root.propagate = False


# ============================================================================
# OUTPUT HELPERS
# ============================================================================

def json_dumps(obj: Any, indent: int = 2) -> str:
    """Serialize to JSON with dates and enums rendered as strings."""
    return json.dumps(obj, indent=indent, sort_keys=True, default=str)


def print_json(obj: Any) -> None:
    print(json_dumps(obj))


def print_error(text: str):
    print(f"ERROR: {text}", file=sys.stderr)


# ============================================================================
# INPUT HELPERS
# ============================================================================

def load_inputs(value: str) -> dict[str, Any]:
    """
    Read a field-value mapping.

    Accepts inline JSON (starting with "{") or a path to a JSON/YAML file.
    """
    try:
        if value.lstrip().startswith("{"):
            data = json.loads(value)
        else:
            path = Path(value)
            if not path.exists():
                raise InputError(f"Inputs file not found: {path}")
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError, OSError) as e:
        raise InputError(f"Failed to read inputs: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InputError("Inputs must be a mapping of field codes to values")
    return data


def parse_date(value: Optional[str]) -> date:
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InputError(f"Invalid date '{value}' (expected YYYY-MM-DD)")


def load_pack_file(loader: PackLoader, value: str, kind: str) -> LoadedPack:
    path = Path(value)
    if not path.exists():
        raise InputError(f"Pack file not found: {path}")
    return loader.load(path).expect(kind)


# ============================================================================
# COMMANDS
# ============================================================================

def cmd_validate_pack(args):
    """Validate a pack file and run the static checks for its kind."""
    path = Path(args.pack)
    if not path.exists():
        raise InputError(f"Pack file not found: {path}")

    pack = PackLoader().load(path)
    report: dict[str, Any] = {
        "valid": True,
        "kind": pack.kind,
        "schema_version": pack.schema_version,
        "pack_hash": pack.pack_hash,
    }

    if pack.rate_program is not None:
        program = pack.rate_program
        result = validate_determinism(program.steps, program.available_field_codes)
        report["valid"] = result.is_valid
        report["rate_program_version_id"] = program.rate_program_version_id
        report["step_count"] = len(program.steps)
        report["scenario_count"] = len(program.scenarios)
        report["determinism"] = result.to_dict()

    elif pack.rule_set is not None:
        rule_set = pack.rule_set
        validations = []
        for rule in rule_set.rules:
            result = validate_rule_version(rule.version, rule_set.available_field_codes)
            if not result.is_valid:
                report["valid"] = False
            validations.append({
                "rule_id": rule.rule_id,
                "rule_version_id": rule.version.id,
                "is_valid": result.is_valid,
                "issues": [i.to_dict() for i in result.issues],
                "referenced_field_codes": result.referenced_field_codes,
            })
        readiness = check_rule_readiness(
            rule_set.rules,
            rule_set.product_version_id,
            rule_set.available_field_codes,
        )
        report["product_version_id"] = rule_set.product_version_id
        report["rules"] = validations
        report["readiness"] = readiness.to_dict()

    elif pack.deviation is not None:
        deviation = pack.deviation
        issues = validate_overrides(deviation.base, deviation.overrides)
        report["valid"] = not any(i.severity == IssueSeverity.ERROR for i in issues)
        report["state_code"] = deviation.state_code
        report["override_count"] = len(deviation.overrides)
        report["issues"] = [i.to_dict() for i in issues]

    elif pack.forms is not None:
        report["form_count"] = len(pack.forms.forms)

    print_json(report)
    return ExitCode.OK if report["valid"] else ExitCode.FAILED


def cmd_rate(args):
    """Evaluate a rate program for one set of inputs."""
    program = load_pack_file(PackLoader(), args.pack, "rate_program").rate_program
    context = EvaluationContext(
        inputs=load_inputs(args.inputs),
        state=args.state,
        effective_date=parse_date(args.date),
        tables=program.tables,
    )
    result = evaluate(program.steps, context, program.rate_program_version_id)
    print_json(result.to_dict())
    return ExitCode.OK if result.success else ExitCode.FAILED


def cmd_rules(args):
    """Evaluate an underwriting rule set for one set of inputs."""
    rule_set = load_pack_file(PackLoader(), args.pack, "rule_set").rule_set
    context = RuleEvaluationContext(
        inputs=load_inputs(args.inputs),
        product_version_id=rule_set.product_version_id,
        effective_date=parse_date(args.date),
        state=args.state,
        coverage_version_id=args.coverage,
    )
    result = evaluate_rules(rule_set.rules, context)
    print_json(result.to_dict())
    return ExitCode.OK if result.success else ExitCode.FAILED


def cmd_diff(args):
    """Show the inheritance view of a state deviation."""
    deviation = load_pack_file(PackLoader(), args.pack, "state_deviation").deviation
    diff = compute_diff(
        deviation.base,
        deviation.overrides,
        deviation.state_code,
        deviation.state_name,
    )
    report = diff.to_dict()
    report["conflicts"] = [
        c.to_dict() for c in detect_conflicts(deviation.base, deviation.overrides)
    ]
    if args.effective:
        report["effective_config"] = apply_overrides(deviation.base, deviation.overrides)
    print_json(report)
    return ExitCode.OK


def cmd_regress(args):
    """Run the rate program's scenarios and evaluate its QA gate."""
    loader = PackLoader()
    draft = load_pack_file(loader, args.pack, "rate_program").rate_program

    baseline = None
    if args.baseline:
        baseline = load_pack_file(loader, args.baseline, "rate_program").rate_program

    run_input = RegressionRunInput(
        scenarios=draft.scenarios,
        draft_steps=draft.steps,
        draft_version_id=draft.rate_program_version_id,
        baseline_steps=baseline.steps if baseline else None,
        baseline_version_id=baseline.rate_program_version_id if baseline else None,
        tables={**(baseline.tables if baseline else {}), **draft.tables},
    )
    run = run_regression(run_input, effective_date=parse_date(args.date))
    gate = evaluate_qa_gate(draft.qa_gate, run, draft.scenarios)

    print_json({"run": run.to_dict(), "gate": gate.to_dict()})
    return ExitCode.OK if gate.passed else ExitCode.FAILED


def cmd_simulate(args):
    """Run underwriting, premium and forms phases for one quote."""
    loader = PackLoader()
    program = load_pack_file(loader, args.rates, "rate_program").rate_program
    rule_set = load_pack_file(loader, args.rules, "rule_set").rule_set
    forms = load_pack_file(loader, args.forms, "forms").forms

    sim_input = SimulationInput(
        product_id=args.product or rule_set.product_version_id,
        product_version_id=rule_set.product_version_id,
        state_code=args.state,
        effective_date=parse_date(args.date),
        inputs=load_inputs(args.inputs),
        coverage_version_id=args.coverage,
    )
    output = run_simulation(
        sim_input,
        rule_set.rules,
        program.steps,
        forms.forms,
        rate_program_version_id=program.rate_program_version_id,
        tables=program.tables,
    )
    print_json(output.to_dict())
    return ExitCode.OK if output.premium_result.success else ExitCode.FAILED


# ============================================================================
# MAIN
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ratepilot",
        description="RatePilot CLI - deterministic product configuration evaluation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit Codes:
  0   OK              Command succeeded
  1   FAILED          Evaluation failed or QA gate blocked
  10  INPUT_INVALID   Invalid input files or arguments
  11  PACK_ERROR      Pack validation failed
  20  INTERNAL_ERROR  Unexpected error

Examples:
  ratepilot validate-pack --pack rate_program.yaml
  ratepilot rate --pack rate_program.yaml --inputs '{"base_rate": 1000}'
  ratepilot regress --pack draft.yaml --baseline published.yaml
        """
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        help=f"Log level (default: ${LOG_LEVEL_ENV} or WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # validate-pack
    val_parser = subparsers.add_parser("validate-pack", help="Validate a pack file")
    val_parser.add_argument("--pack", "-p", required=True, help="Pack YAML/JSON file")
    val_parser.set_defaults(func=cmd_validate_pack)

    # rate
    rate_parser = subparsers.add_parser("rate", help="Evaluate a rate program")
    rate_parser.add_argument("--pack", "-p", required=True, help="Rate program pack")
    rate_parser.add_argument("--inputs", "-i", required=True, help="Inputs JSON/YAML file or inline JSON")
    rate_parser.add_argument("--state", "-s", help="State code for state-filtered steps")
    rate_parser.add_argument("--date", help="Effective date (YYYY-MM-DD, default today)")
    rate_parser.set_defaults(func=cmd_rate)

    # rules
    rules_parser = subparsers.add_parser("rules", help="Evaluate underwriting rules")
    rules_parser.add_argument("--pack", "-p", required=True, help="Rule set pack")
    rules_parser.add_argument("--inputs", "-i", required=True, help="Inputs JSON/YAML file or inline JSON")
    rules_parser.add_argument("--state", "-s", help="State code")
    rules_parser.add_argument("--coverage", help="Coverage version ID")
    rules_parser.add_argument("--date", help="Effective date (YYYY-MM-DD, default today)")
    rules_parser.set_defaults(func=cmd_rules)

    # diff
    diff_parser = subparsers.add_parser("diff", help="Show a state deviation against its base")
    diff_parser.add_argument("--pack", "-p", required=True, help="State deviation pack")
    diff_parser.add_argument("--effective", action="store_true",
                             help="Include the effective configuration")
    diff_parser.set_defaults(func=cmd_diff)

    # regress
    regress_parser = subparsers.add_parser("regress", help="Run QA scenarios and the QA gate")
    regress_parser.add_argument("--pack", "-p", required=True, help="Draft rate program pack")
    regress_parser.add_argument("--baseline", "-b", help="Baseline rate program pack")
    regress_parser.add_argument("--date", help="Effective date (YYYY-MM-DD, default today)")
    regress_parser.set_defaults(func=cmd_regress)

    # simulate
    sim_parser = subparsers.add_parser("simulate", help="Run a full quote simulation")
    sim_parser.add_argument("--rates", required=True, help="Rate program pack")
    sim_parser.add_argument("--rules", required=True, help="Rule set pack")
    sim_parser.add_argument("--forms", required=True, help="Forms pack")
    sim_parser.add_argument("--inputs", "-i", required=True, help="Inputs JSON/YAML file or inline JSON")
    sim_parser.add_argument("--state", "-s", required=True, help="State code")
    sim_parser.add_argument("--coverage", help="Coverage version ID")
    sim_parser.add_argument("--product", help="Product ID (default: product version ID)")
    sim_parser.add_argument("--date", help="Effective date (YYYY-MM-DD, default today)")
    sim_parser.set_defaults(func=cmd_simulate)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except InputError as e:
        print_error(str(e))
        return ExitCode.INPUT_INVALID
    except RatePilotError as e:
        print_error(str(e))
        print(json_dumps({"error": e.to_dict()}), file=sys.stderr)
        return ExitCode.PACK_ERROR
    except Exception as e:
        logger.exception("Unexpected error")
        print_error(f"Unexpected error: {e}")
        return ExitCode.INTERNAL_ERROR


if __name__ == "__main__":
    sys.exit(main())
