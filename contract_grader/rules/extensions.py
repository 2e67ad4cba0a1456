"""Vendor-extension hygiene."""

from __future__ import annotations

from contract_grader.checkpoints import RuleId
from contract_grader.config import StandardsConfig
from contract_grader.document import ApiDocument, iter_extensions
from contract_grader.rules.base import CategoryTally, RuleResult

DEPRECATION_EXTENSIONS = frozenset({"x-deprecated", "x-deprecation-date", "x-sunset"})
RECOGNIZED_EXTENSIONS = DEPRECATION_EXTENSIONS | {
    "x-example",
    "x-examples",
    "x-internal",
    "x-beta",
    "x-stable",
}
EXCESSIVE_LIMIT = 50
UNKNOWN_LIMIT = 10


class ExtensionsEvaluator:
    """Reward namespaced and deprecation extensions, penalize extension sprawl."""

    evaluator_id = "extensions"
    category = "extensions"

    def __init__(self, standards: StandardsConfig | None = None) -> None:
        self._namespace = (standards or StandardsConfig()).extension_namespace

    def evaluate(self, document: ApiDocument) -> RuleResult:
        tally = CategoryTally(self.category)
        extensions = list(iter_extensions(document.raw))
        keys = [key for key, _location in extensions]

        namespaced = [key for key in keys if self._is_namespaced(key)]
        if not namespaced:
            message = (
                f"No extensions use the '{self._namespace}' namespace."
                if keys
                else f"No vendor extensions; '{self._namespace}-*' extensions are recommended."
            )
            tally.violation(RuleId.EXT_NAMESPACE, message, "", severity="info")

        if not any(key in DEPRECATION_EXTENSIONS for key in keys):
            tally.violation(
                RuleId.EXT_DEPRECATION,
                "No deprecation-marker extensions (x-deprecated, x-sunset) are used.",
                "",
                severity="info",
            )

        if len(keys) > EXCESSIVE_LIMIT:
            tally.violation(
                RuleId.EXT_EXCESSIVE,
                f"{len(keys)} vendor extensions exceed the limit of {EXCESSIVE_LIMIT}.",
                "",
            )

        unknown = [
            (key, location)
            for key, location in extensions
            if key not in RECOGNIZED_EXTENSIONS and not self._is_namespaced(key)
        ]
        if len(unknown) > UNKNOWN_LIMIT:
            sample = ", ".join(sorted({key for key, _location in unknown})[:5])
            tally.violation(
                RuleId.EXT_UNKNOWN,
                f"{len(unknown)} unrecognized extensions (e.g. {sample}).",
                unknown[0][1],
            )
        return tally.result()

    def _is_namespaced(self, key: str) -> bool:
        return key == self._namespace or key.startswith(f"{self._namespace}-")
