"""
RatePilot - Deterministic Insurance Product Configuration Engines

RatePilot evaluates insurance product configuration: it rates a quote
through a dependency graph of steps, runs scoped underwriting rules,
layers state deviations over a base configuration, and guards publishing
with a regression QA gate.

Core Principle: "Same inputs, same configuration, same hash."

Key Features:
- Rating graph with topological ordering, rounding and a per-step trace
- AND/OR underwriting rules with strict comparisons and aggregation
- Dot-path state overrides with conflict detection and promote/revert
- Scenario regression against a baseline with a configurable QA gate
- Quote simulation (underwriting + premium + forms) for one context
- YAML/JSON configuration packs validated with pydantic

Quick Start:
    from ratepilot.models import EvaluationContext
    from ratepilot.engine import evaluate
    from ratepilot.packs import load_pack

    program = load_pack("packs/rate_program.yaml").rate_program
    result = evaluate(
        program.steps,
        EvaluationContext(inputs={"base_rate": 1000}, tables=program.tables),
        program.rate_program_version_id,
    )
    print(result.final_premium, result.result_hash)

Version: 1.0.0
"""
from __future__ import annotations

__version__ = "1.0.0"
__author__ = "RatePilot Team"

# =============================================================================
# Exceptions
# =============================================================================
from .exceptions import (
    EvaluationError,
    InvalidConditionError,
    InvalidExpressionError,
    OverrideNotFoundError,
    PackLoadError,
    PackValidationError,
    PackVersionMismatch,
    RatePilotError,
)

# =============================================================================
# Hashing
# =============================================================================
from .canon import (
    canonical_json,
    combine_hashes,
    content_hash,
    deep_equal,
    fast_hash,
)

# =============================================================================
# Engines
# =============================================================================
from .engine import (
    apply_overrides,
    compute_diff,
    evaluate,
    evaluate_qa_gate,
    evaluate_rules,
    run_regression,
    run_simulation,
    validate_determinism,
)

# =============================================================================
# Packs
# =============================================================================
from .packs import (
    LoadedPack,
    PackLoader,
    load_pack,
    load_pack_from_string,
)


__all__ = [
    # Version
    "__version__",
    # Exceptions
    "RatePilotError",
    "PackLoadError",
    "PackValidationError",
    "PackVersionMismatch",
    "EvaluationError",
    "InvalidExpressionError",
    "InvalidConditionError",
    "OverrideNotFoundError",
    # Hashing
    "canonical_json",
    "combine_hashes",
    "content_hash",
    "deep_equal",
    "fast_hash",
    # Engines
    "apply_overrides",
    "compute_diff",
    "evaluate",
    "evaluate_qa_gate",
    "evaluate_rules",
    "run_regression",
    "run_simulation",
    "validate_determinism",
    # Packs
    "LoadedPack",
    "PackLoader",
    "load_pack",
    "load_pack_from_string",
]
