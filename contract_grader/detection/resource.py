"""Request/response resource-style detector."""

from __future__ import annotations

import re

from contract_grader.detection.base import (
    RESOURCE_STYLE,
    Pattern,
    PatternDetector,
    clip,
    methods,
    operations,
    path_names,
    schema_properties,
    search_paths,
)
from contract_grader.document import ApiDocument, Operation

_HIERARCHY = re.compile(r"/[\w-]+/\{[\w-]+\}/[\w-]+")
_VERSIONED = re.compile(r"/v\d+(/|$)")
_QUERY_NAMES = frozenset({"page", "limit", "sort", "filter", "search", "q", "after", "before"})
_STANDARD_VERBS = frozenset({"get", "post", "put", "patch", "delete"})
_CONVENTIONAL_STATUSES = {
    "get": {"200"},
    "post": {"201"},
    "put": {"200", "204"},
    "patch": {"200", "204"},
    "delete": {"202", "204"},
}


def _collection_item_pairs(document: ApiDocument) -> str | None:
    paths = path_names(document)
    pairs = [
        path
        for path in paths
        if any(
            other.startswith(path.rstrip("/") + "/{") and other.endswith("}")
            for other in paths
        )
    ]
    return f"collection/item pairs for {clip(pairs)}" if pairs else None


def _hierarchy(document: ApiDocument) -> str | None:
    nested = search_paths(document, _HIERARCHY)
    return f"nested resources {clip(nested)}" if nested else None


def _verb_diversity(document: ApiDocument) -> str | None:
    used = sorted(methods(document) & _STANDARD_VERBS)
    return f"verbs {', '.join(used)}" if len(used) >= 3 else None


def _conventional(operation: Operation) -> bool:
    expected = _CONVENTIONAL_STATUSES.get(operation.method)
    return expected is not None and bool(expected & set(operation.status_codes()))


def _status_conventions(document: ApiDocument) -> str | None:
    ops = operations(document)
    ratio = sum(1 for operation in ops if _conventional(operation)) / len(ops)
    return f"{ratio:.0%} of operations use conventional statuses" if ratio > 0.6 else None


def _query_params(document: ApiDocument) -> str | None:
    found: set[str] = set()
    for operation in document.operations():
        for parameter in operation.all_parameters():
            resolved = document.resolve_parameter(parameter)
            name = resolved.name if resolved is not None else parameter.name
            if resolved is not None and resolved.location != "query":
                continue
            if name.lower() in _QUERY_NAMES:
                found.add(name)
    return f"query parameters {', '.join(sorted(found))}" if found else None


def _hypermedia(document: ApiDocument) -> str | None:
    for name, schema in sorted(document.components.schemas.items()):
        if schema_properties(document, schema) & {"_links", "links", "href"}:
            return f"schema {name} carries links"
    return None


def _content_negotiation(document: ApiDocument) -> str | None:
    media: set[str] = set()
    for operation in document.operations():
        for response in operation.responses:
            media.update(item.name for item in response.content)
    rich = {"application/xml", "application/hal+json", "text/csv"} & media
    if rich or len(media - {"application/problem+json"}) > 1:
        return f"media types {', '.join(sorted(media))}"
    return None


def _versioning(document: ApiDocument) -> str | None:
    versioned = search_paths(document, _VERSIONED)
    return f"versioned paths {clip(versioned)}" if versioned else None


def _idempotent_verbs(document: ApiDocument) -> str | None:
    used = sorted(methods(document) & {"put", "delete"})
    return f"idempotent verbs {', '.join(used)}" if used else None


def _representations(document: ApiDocument) -> str | None:
    names = [
        name
        for name in sorted(document.components.schemas)
        if not any(marker in name.lower() for marker in ("error", "request", "response"))
    ]
    return f"resource schemas {clip(names)}" if names else None


DETECTOR = PatternDetector(
    profile=RESOURCE_STYLE,
    patterns=(
        Pattern("collection_item", 0.95, _collection_item_pairs),
        Pattern("resource_hierarchy", 0.9, _hierarchy),
        Pattern("verb_diversity", 0.85, _verb_diversity),
        Pattern("status_conventions", 0.7, _status_conventions),
        Pattern("query_params", 0.6, _query_params),
        Pattern("hypermedia", 0.5, _hypermedia),
        Pattern("content_negotiation", 0.6, _content_negotiation),
        Pattern("versioning", 0.7, _versioning),
        Pattern("idempotent_verbs", 0.6, _idempotent_verbs),
        Pattern("resource_representation", 0.7, _representations),
    ),
)
