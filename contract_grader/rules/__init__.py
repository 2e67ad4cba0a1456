"""Rules package."""

from collections.abc import Callable
from dataclasses import dataclass

from contract_grader.config import StandardsConfig
from contract_grader.detection.base import QUERY_LANGUAGE_STYLE, STREAMING_RPC_STYLE
from contract_grader.rules.base import Evaluator
from contract_grader.rules.extensions import ExtensionsEvaluator
from contract_grader.rules.http_semantics import HttpSemanticsEvaluator
from contract_grader.rules.naming import NamingEvaluator
from contract_grader.rules.pagination import PaginationEvaluator
from contract_grader.rules.tenancy import TenancyEvaluator
from contract_grader.rules.webhooks import WebhooksEvaluator

# Evaluators that do not apply to non-resource styles.
_RESOURCE_ONLY = ("pagination", "http_semantics")
PROFILE_EXCLUSIONS: dict[str, tuple[str, ...]] = {
    QUERY_LANGUAGE_STYLE: _RESOURCE_ONLY,
    STREAMING_RPC_STYLE: _RESOURCE_ONLY,
}


@dataclass(frozen=True, slots=True)
class RuleInfo:
    """Evaluator metadata for listing and selection."""

    evaluator_id: str
    name: str
    description: str
    category: str
    default_enabled: bool


@dataclass(frozen=True, slots=True)
class _RuleSpec:
    evaluator_id: str
    factory: Callable[[], Evaluator]
    name: str
    description: str
    category: str


def build_rules(
    *,
    enabled_rule_ids: list[str] | None = None,
    disabled_rule_ids: list[str] | None = None,
    standards: StandardsConfig | None = None,
    profile: str | None = None,
) -> list[Evaluator]:
    """Build evaluators applying enable/disable filters and an optional profile subset."""
    specs = _ordered_rule_specs(standards or StandardsConfig())
    registry = {spec.evaluator_id: spec for spec in specs}
    disabled_set = set(disabled_rule_ids or [])
    requested_ids = set(enabled_rule_ids or []) | disabled_set

    unknown = [rule_id for rule_id in requested_ids if rule_id not in registry]
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ValueError(f"Unknown rule ids: {joined}")

    if enabled_rule_ids is None:
        selected_ids = [spec.evaluator_id for spec in specs]
    else:
        selected_ids = _dedupe(enabled_rule_ids)

    excluded = set(PROFILE_EXCLUSIONS.get(profile, ())) if profile else set()
    return [
        registry[rule_id].factory()
        for rule_id in selected_ids
        if rule_id not in disabled_set and rule_id not in excluded
    ]


def rule_ids_for_profile(profile: str) -> list[str]:
    """Evaluator ids that apply to a detected profile."""
    excluded = set(PROFILE_EXCLUSIONS.get(profile, ()))
    return [
        spec.evaluator_id
        for spec in _ordered_rule_specs(StandardsConfig())
        if spec.evaluator_id not in excluded
    ]


def list_rule_info() -> list[RuleInfo]:
    """Return metadata for all known evaluators."""
    return [
        RuleInfo(
            evaluator_id=spec.evaluator_id,
            name=spec.name,
            description=spec.description,
            category=spec.category,
            default_enabled=True,
        )
        for spec in _ordered_rule_specs(StandardsConfig())
    ]


def _ordered_rule_specs(standards: StandardsConfig) -> list[_RuleSpec]:
    return [
        _spec(TenancyEvaluator, TenancyEvaluator),
        _spec(PaginationEvaluator, PaginationEvaluator),
        _spec(HttpSemanticsEvaluator, HttpSemanticsEvaluator),
        _spec(WebhooksEvaluator, WebhooksEvaluator),
        _spec(ExtensionsEvaluator, lambda: ExtensionsEvaluator(standards)),
        _spec(NamingEvaluator, lambda: NamingEvaluator(standards)),
    ]


def _spec(rule_cls: type, factory: Callable[[], Evaluator]) -> _RuleSpec:
    return _RuleSpec(
        evaluator_id=rule_cls.evaluator_id,
        factory=factory,
        name=rule_cls.__name__,
        description=(rule_cls.__doc__ or "").strip(),
        category=rule_cls.category,
    )


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        output.append(item)
    return output
