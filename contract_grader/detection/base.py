"""Shared detection types and document probes."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from contract_grader.document import ApiDocument, Operation, ParameterRef, Schema

logger = logging.getLogger(__name__)

RESOURCE_STYLE = "resource-style"
QUERY_LANGUAGE_STYLE = "query-language-style"
STREAMING_RPC_STYLE = "streaming-rpc-style"
MULTI_TENANT_SAAS = "multi-tenant-saas"
BOUNDED_CONTEXT_STYLE = "bounded-context-style"
FALLBACK_PROFILE = "generic-resource-style"

DETECTED_PROFILES = (
    RESOURCE_STYLE,
    QUERY_LANGUAGE_STYLE,
    STREAMING_RPC_STYLE,
    MULTI_TENANT_SAAS,
    BOUNDED_CONTEXT_STYLE,
)
KNOWN_PROFILES = DETECTED_PROFILES + (FALLBACK_PROFILE,)

TENANT_HEADERS = frozenset(
    {
        "x-organization-id",
        "x-org-id",
        "x-tenant-id",
        "x-company-id",
        "x-account-id",
        "x-workspace-id",
        "x-team-id",
    }
)
_TENANT_REF_MARKERS = ("organization", "tenant", "workspace")


@dataclass(frozen=True, slots=True)
class DetectionSignal:
    """One detector's verdict for its candidate profile."""

    profile_candidate: str
    weight: float
    evidence: tuple[str, ...] = ()

    @property
    def percent(self) -> float:
        return round(self.weight * 100, 2)

    def to_dict(self) -> dict[str, object]:
        return {
            "profile": self.profile_candidate,
            "confidence": self.weight,
            "evidence": list(self.evidence),
        }


@dataclass(frozen=True, slots=True)
class Pattern:
    """A weighted structural probe returning evidence text when it matches."""

    name: str
    weight: float
    probe: Callable[[ApiDocument], str | None]


@dataclass(frozen=True, slots=True)
class PatternDetector:
    profile: str
    patterns: tuple[Pattern, ...]

    def detect(self, document: ApiDocument) -> DetectionSignal:
        """Score = matched pattern weight / total pattern weight.

        A document without operations, or one a probe cannot handle, yields
        zero confidence.
        """
        total = sum(pattern.weight for pattern in self.patterns)
        if total <= 0 or not any(True for _ in document.operations()):
            return DetectionSignal(self.profile, 0.0)

        matched = 0.0
        evidence: list[str] = []
        for pattern in self.patterns:
            try:
                hit = pattern.probe(document)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "Detector %s pattern %s failed: %s", self.profile, pattern.name, exc
                )
                return DetectionSignal(self.profile, 0.0)
            if hit:
                matched += pattern.weight
                evidence.append(f"{pattern.name}: {hit}")
        return DetectionSignal(self.profile, round(matched / total, 4), tuple(evidence))


def operations(document: ApiDocument) -> list[Operation]:
    return list(document.operations())


def path_names(document: ApiDocument) -> list[str]:
    return [item.path for item in document.paths]


def methods(document: ApiDocument) -> set[str]:
    return {operation.method for operation in document.operations()}


def search_paths(document: ApiDocument, pattern: re.Pattern[str]) -> list[str]:
    return [path for path in path_names(document) if pattern.search(path)]


def body_schemas(document: ApiDocument, operation: Operation) -> list[Schema]:
    if operation.request_body is None:
        return []
    resolved = (document.resolve_schema(media.schema) for media in operation.request_body.content)
    return [schema for schema in resolved if schema is not None]


def success_schemas(document: ApiDocument, operation: Operation) -> list[Schema]:
    found: list[Schema] = []
    for response in operation.responses:
        if not response.is_success:
            continue
        schema = document.resolve_schema(response.first_schema())
        if schema is not None:
            found.append(schema)
    return found


def schema_properties(document: ApiDocument, schema: Schema) -> set[str]:
    names = schema.property_names()
    for part in schema.all_of:
        resolved = document.resolve_schema(part)
        if resolved is not None:
            names.update(resolved.property_names())
    return names


def has_tenant_header(document: ApiDocument, operation: Operation) -> bool:
    """Tenant-scoping header by name, or by a reference named like one."""
    if document.header_names(operation) & TENANT_HEADERS:
        return True
    return any(
        isinstance(item, ParameterRef)
        and any(marker in item.name.lower() for marker in _TENANT_REF_MARKERS)
        for item in operation.all_parameters()
    )


def all_header_names(document: ApiDocument) -> set[str]:
    names = set(document.component_parameter_header_names())
    for operation in document.operations():
        names.update(document.header_names(operation))
    return names


def all_scopes(document: ApiDocument) -> set[str]:
    scopes: set[str] = set()
    for scheme in document.components.security_schemes.values():
        scopes.update(scheme.scopes)
    for operation in document.operations():
        scopes.update(operation.security_scopes)
    return scopes


def clip(items: list[str], limit: int = 3) -> str:
    shown = ", ".join(items[:limit])
    return shown if len(items) <= limit else f"{shown} (+{len(items) - limit} more)"
