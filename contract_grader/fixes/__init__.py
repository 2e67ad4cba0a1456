"""Remediation patches bound to the source text they were derived from."""

from contract_grader.fixes.patching import (
    ApplyResult,
    FixOutcome,
    PatchConflictError,
    StalePatchError,
    apply_fixes,
    apply_operations,
    apply_unified_diff,
)
from contract_grader.fixes.templates import (
    FIX_TEMPLATES,
    STRUCTURED_EDIT,
    TEXTUAL_DIFF,
    FixItem,
    Patch,
    generate_fixes,
    has_template,
)

__all__ = [
    "FIX_TEMPLATES",
    "STRUCTURED_EDIT",
    "TEXTUAL_DIFF",
    "ApplyResult",
    "FixItem",
    "FixOutcome",
    "Patch",
    "PatchConflictError",
    "StalePatchError",
    "apply_fixes",
    "apply_operations",
    "apply_unified_diff",
    "generate_fixes",
    "has_template",
]
