"""Path namespacing."""

from __future__ import annotations

from contract_grader.checkpoints import RuleId
from contract_grader.config import StandardsConfig
from contract_grader.document import ApiDocument
from contract_grader.rules.base import CategoryTally, RuleResult


class NamingEvaluator:
    """Every path must live under the versioned API prefix."""

    evaluator_id = "naming"
    category = "naming"

    def __init__(self, standards: StandardsConfig | None = None) -> None:
        self._prefix = (standards or StandardsConfig()).api_prefix

    def evaluate(self, document: ApiDocument) -> RuleResult:
        tally = CategoryTally(self.category)
        for path_item in document.paths:
            if path_item.path.startswith(self._prefix):
                continue
            tally.violation(
                RuleId.NAME_NAMESPACE,
                f"Path {path_item.path} must start with {self._prefix}.",
                path_item.pointer,
            )
            tally.auto_fail(f"NAME-NAMESPACE: {path_item.path} is outside {self._prefix}")
        return tally.result()
