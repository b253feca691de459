"""
RatePilot Engine

Deterministic evaluation engines for product configuration.

Services:
- Rating engine: Evaluate rate programs into premiums with a full trace
- Rules engine: Evaluate scoped underwriting rules
- Condition evaluator: AND/OR condition trees with strict comparisons
- Deviation engine: Layer state overrides over a base configuration
- Regression runner: Run QA scenarios and the publish gate
- Simulation: Underwriting + premium + forms for one quote

Usage:
    from ratepilot.engine import (
        evaluate,
        evaluate_rules,
        apply_overrides,
        compute_diff,
        run_regression,
        evaluate_qa_gate,
        run_simulation,
    )
"""
from __future__ import annotations

from .condition_evaluator import (
    ConditionEvaluator,
    compare_values,
    evaluate_condition,
    evaluate_leaf,
)
from .deviation_engine import (
    apply_overrides,
    compute_diff,
    detect_conflicts,
    enumerate_leaf_paths,
    get_nested_value,
    infer_category,
    path_to_label,
    promote_override,
    remove_nested_value,
    revert_override,
    set_nested_value,
    validate_overrides,
)
from .expression import evaluate_expression
from .rating_engine import (
    apply_rounding,
    evaluate,
    evaluate_step,
    hash_steps,
    run_test_case,
    table_lookup,
    topological_sort,
    validate_determinism,
)
from .regression_runner import (
    compute_field_diffs,
    evaluate_qa_gate,
    run_regression,
    run_single_scenario,
)
from .rules_engine import (
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
    severity_rank,
    validate_rule_version,
)
from .simulation import (
    resolve_applicable_forms,
    run_premium_phase,
    run_simulation,
    run_uw_phase,
)


__all__ = [
    # Conditions
    "ConditionEvaluator",
    "compare_values",
    "evaluate_condition",
    "evaluate_leaf",
    # Expressions
    "evaluate_expression",
    # Rating
    "apply_rounding",
    "evaluate",
    "evaluate_step",
    "hash_steps",
    "run_test_case",
    "table_lookup",
    "topological_sort",
    "validate_determinism",
    # Rules
    "action_rank",
    "check_rule_readiness",
    "check_scope",
    "create_default_outcome",
    "create_default_scope",
    "create_empty_group",
    "create_empty_leaf",
    "evaluate_rules",
    "extract_field_codes",
    "make_condition_id",
    "severity_rank",
    "validate_rule_version",
    # Deviations
    "apply_overrides",
    "compute_diff",
    "detect_conflicts",
    "enumerate_leaf_paths",
    "get_nested_value",
    "infer_category",
    "path_to_label",
    "promote_override",
    "remove_nested_value",
    "revert_override",
    "set_nested_value",
    "validate_overrides",
    # Regression
    "compute_field_diffs",
    "evaluate_qa_gate",
    "run_regression",
    "run_single_scenario",
    # Simulation
    "resolve_applicable_forms",
    "run_premium_phase",
    "run_simulation",
    "run_uw_phase",
]
