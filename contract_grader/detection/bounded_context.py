"""Bounded-context (microservice) detector."""

from __future__ import annotations

import re

from contract_grader.detection.base import (
    BOUNDED_CONTEXT_STYLE,
    Pattern,
    PatternDetector,
    all_header_names,
    clip,
    path_names,
    search_paths,
)
from contract_grader.document import ApiDocument

_HEALTH = re.compile(r"/(health|healthz|ready|readiness|alive|liveness|ping)(/|$)", re.IGNORECASE)
_EVENTS = re.compile(r"/(events|messages|publish|subscribe)(/|$)", re.IGNORECASE)
_METRICS = re.compile(r"/(metrics|stats|prometheus)(/|$)", re.IGNORECASE)
_VERSION_PREFIX = re.compile(r"^/(api/)?(v\d+/)?")
_DOMAIN_SEGMENT = re.compile(r"^([a-z][a-z-]*)/")
_TRACING_MARKERS = ("x-request-id", "x-b3-", "x-correlation-id", "traceparent")


def _health(document: ApiDocument) -> str | None:
    found = search_paths(document, _HEALTH)
    return f"health checks {clip(found)}" if found else None


def _tracing(document: ApiDocument) -> str | None:
    found = sorted(
        name
        for name in all_header_names(document)
        if any(name.startswith(marker) for marker in _TRACING_MARKERS)
    )
    return f"tracing headers {', '.join(found)}" if found else None


def _single_domain(document: ApiDocument) -> str | None:
    domains: set[str] = set()
    paths = path_names(document)
    for path in paths:
        match = _DOMAIN_SEGMENT.match(_VERSION_PREFIX.sub("", path, count=1))
        if match:
            domains.add(match.group(1))
    if len(domains) == 1 and len(paths) >= 2:
        return f"single service domain '{next(iter(domains))}'"
    return None


def _events(document: ApiDocument) -> str | None:
    found = search_paths(document, _EVENTS)
    return f"event endpoints {clip(found)}" if found else None


def _metrics(document: ApiDocument) -> str | None:
    found = search_paths(document, _METRICS)
    return f"metrics endpoints {clip(found)}" if found else None


DETECTOR = PatternDetector(
    profile=BOUNDED_CONTEXT_STYLE,
    patterns=(
        Pattern("health_checks", 1.0, _health),
        Pattern("tracing_headers", 1.0, _tracing),
        Pattern("single_service_domain", 0.8, _single_domain),
        Pattern("event_endpoints", 0.6, _events),
        Pattern("metrics", 0.6, _metrics),
    ),
)
