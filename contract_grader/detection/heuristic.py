"""Deterministic soft classifier used as the second opinion in consensus.

It scores every profile from ratio and count features (how much of the API
looks like a style) rather than from the yes/no pattern baskets, so the two
paths can disagree in useful ways.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field

from contract_grader.detection.base import (
    BOUNDED_CONTEXT_STYLE,
    DETECTED_PROFILES,
    MULTI_TENANT_SAAS,
    QUERY_LANGUAGE_STYLE,
    RESOURCE_STYLE,
    STREAMING_RPC_STYLE,
    all_header_names,
    all_scopes,
    body_schemas,
    has_tenant_header,
    schema_properties,
    success_schemas,
)
from contract_grader.document import ApiDocument, Operation

SIGNIFICANT_SCORE = 30.0
# Leader share of the significant profiles' combined score below which the
# verdict is ambiguous.
AMBIGUITY_SHARE = 0.7

_CRUD = ("get", "post", "put", "patch", "delete")
_SUCCESS = ("200", "201", "202", "204")
_CUSTOM_VERB = re.compile(r":[A-Za-z]\w*$")
_STREAM_MEDIA = frozenset({"text/event-stream", "application/x-ndjson"})
_SAAS_PATHS = re.compile(r"admin|billing|subscription|tenant|organization", re.IGNORECASE)
_HEALTH = re.compile(r"/(health|healthz|ready|alive|ping)(/|$)", re.IGNORECASE)
_EVENTS = re.compile(r"/(events|messages|publish|subscribe)(/|$)", re.IGNORECASE)
_TRACING = ("x-request-id", "x-b3-", "traceparent")


@dataclass(frozen=True, slots=True)
class HeuristicVerdict:
    profile: str | None
    confidence: float
    scores: dict[str, float] = field(default_factory=dict)
    ambiguous: bool = False
    evidence: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "profile": self.profile,
            "confidence": self.confidence,
            "scores": dict(self.scores),
            "ambiguous": self.ambiguous,
            "evidence": list(self.evidence),
        }


@dataclass(frozen=True, slots=True)
class _Feature:
    profile: str
    name: str
    value: float
    weight: float


def classify(document: ApiDocument) -> HeuristicVerdict:
    """Score each profile in [0, 100] and pick a leader with shaped confidence."""
    ops = list(document.operations())
    if not ops:
        return HeuristicVerdict(None, 0.0, {profile: 0.0 for profile in DETECTED_PROFILES})

    features = _features(document, ops)
    scores: dict[str, float] = {}
    for profile in DETECTED_PROFILES:
        own = [item for item in features if item.profile == profile]
        total = sum(item.weight for item in own)
        earned = sum(_clamp01(item.value) * item.weight for item in own)
        scores[profile] = round(earned / total * 100, 2) if total else 0.0

    ranked = sorted(
        DETECTED_PROFILES, key=lambda name: (-scores[name], DETECTED_PROFILES.index(name))
    )
    leader, runner_up = ranked[0], ranked[1]
    top = scores[leader]
    evidence = tuple(
        f"{item.profile}.{item.name}={item.value:.2f}" for item in features if item.value > 0
    )
    if top <= 0:
        return HeuristicVerdict(None, 0.0, scores, False, evidence)

    confidence = top / 100
    separation = top - scores[runner_up]
    if separation > 30:
        confidence = min(0.95, confidence * 1.1)
    elif separation < 10:
        confidence *= 0.8
    if top < 20:
        confidence = min(confidence, 0.4)

    significant = [scores[name] for name in ranked if scores[name] > SIGNIFICANT_SCORE]
    ambiguous = len(significant) >= 2 and top / sum(significant) < AMBIGUITY_SHARE
    return HeuristicVerdict(leader, round(confidence, 4), scores, ambiguous, evidence)


def _features(document: ApiDocument, ops: list[Operation]) -> list[_Feature]:
    paths = [item.path for item in document.paths]
    path_count = max(len(paths), 1)
    op_count = len(ops)
    verbs = {operation.method for operation in ops}
    success_codes = {code for operation in ops for code in operation.status_codes()}
    header_names = all_header_names(document)

    literal_tails = [_literal_tail(path) for path in paths]
    posts = [operation for operation in ops if operation.method == "post"]
    query_posts = sum(
        1
        for operation in posts
        if any(
            "query" in schema_properties(document, item)
            for item in body_schemas(document, operation)
        )
    )
    envelope = any(
        {"data", "errors"} <= schema_properties(document, schema)
        for operation in ops
        for schema in success_schemas(document, operation)
    )
    streaming = any(
        {media.name for media in response.content} & _STREAM_MEDIA
        for operation in ops
        for response in operation.responses
    )
    tenant_ops = sum(1 for operation in ops if has_tenant_header(document, operation))

    return [
        _Feature(RESOURCE_STYLE, "path_parameters", _ratio(paths, lambda p: "{" in p), 0.25),
        _Feature(RESOURCE_STYLE, "crud_coverage", len(verbs & set(_CRUD)) / 5, 0.3),
        _Feature(
            RESOURCE_STYLE,
            "plural_segments",
            sum(1 for tail in literal_tails if tail.endswith("s")) / path_count,
            0.2,
        ),
        _Feature(RESOURCE_STYLE, "status_variety", len(success_codes & set(_SUCCESS)) / 3, 0.25),
        _Feature(
            QUERY_LANGUAGE_STYLE,
            "single_post_endpoint",
            1.0 if len(paths) == 1 and verbs == {"post"} else 0.0,
            0.35,
        ),
        _Feature(QUERY_LANGUAGE_STYLE, "query_documents", query_posts / max(len(posts), 1), 0.35),
        _Feature(QUERY_LANGUAGE_STYLE, "data_errors_envelope", 1.0 if envelope else 0.0, 0.3),
        _Feature(
            STREAMING_RPC_STYLE,
            "custom_verbs",
            _ratio(paths, lambda p: bool(_CUSTOM_VERB.search(p))),
            0.4,
        ),
        _Feature(
            STREAMING_RPC_STYLE,
            "qualified_operation_ids",
            sum(1 for operation in ops if "." in operation.operation_id) / op_count,
            0.3,
        ),
        _Feature(STREAMING_RPC_STYLE, "streaming_media", 1.0 if streaming else 0.0, 0.3),
        _Feature(MULTI_TENANT_SAAS, "tenant_coverage", tenant_ops / op_count, 0.5),
        _Feature(
            MULTI_TENANT_SAAS,
            "scoped_security",
            1.0 if any(":" in scope for scope in all_scopes(document)) else 0.0,
            0.25,
        ),
        _Feature(
            MULTI_TENANT_SAAS,
            "account_paths",
            3 * _ratio(paths, lambda p: bool(_SAAS_PATHS.search(p))),
            0.25,
        ),
        _Feature(
            BOUNDED_CONTEXT_STYLE,
            "health_endpoint",
            1.0 if any(_HEALTH.search(path) for path in paths) else 0.0,
            0.35,
        ),
        _Feature(
            BOUNDED_CONTEXT_STYLE,
            "tracing_headers",
            1.0 if any(name.startswith(_TRACING) for name in header_names) else 0.0,
            0.35,
        ),
        _Feature(
            BOUNDED_CONTEXT_STYLE,
            "event_endpoints",
            1.0 if any(_EVENTS.search(path) for path in paths) else 0.0,
            0.3,
        ),
    ]


def _ratio(paths: list[str], predicate: Callable[[str], bool]) -> float:
    if not paths:
        return 0.0
    return sum(1 for path in paths if predicate(path)) / len(paths)


def _literal_tail(path: str) -> str:
    for segment in reversed(path.strip("/").split("/")):
        if segment and not segment.startswith("{"):
            return segment.split(":", 1)[0]
    return ""


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))
