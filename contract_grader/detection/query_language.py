"""Query-language-style detector (single endpoint, query documents in the body)."""

from __future__ import annotations

import re

from contract_grader.detection.base import (
    QUERY_LANGUAGE_STYLE,
    Pattern,
    PatternDetector,
    body_schemas,
    methods,
    operations,
    path_names,
    schema_properties,
    success_schemas,
)
from contract_grader.document import ApiDocument, collect_text

_ENDPOINT_NAME = re.compile(r"graphql|gql", re.IGNORECASE)
_VOCABULARY = ("mutation", "subscription", "resolver", "fragment", "introspection")
_WORD = re.compile(r"[a-z_]+")


def _single_endpoint(document: ApiDocument) -> str | None:
    paths = path_names(document)
    return f"single endpoint {paths[0]}" if len(paths) == 1 else None


def _endpoint_name(document: ApiDocument) -> str | None:
    named = [path for path in path_names(document) if _ENDPOINT_NAME.search(path)]
    return f"endpoint named {named[0]}" if named else None


def _post_only(document: ApiDocument) -> str | None:
    return "only POST operations" if methods(document) == {"post"} else None


def _body_properties(document: ApiDocument) -> set[str]:
    names: set[str] = set()
    for operation in operations(document):
        if operation.method != "post":
            continue
        for schema in body_schemas(document, operation):
            names.update(schema_properties(document, schema))
    return names


def _query_body(document: ApiDocument) -> str | None:
    return "request body declares 'query'" if "query" in _body_properties(document) else None


def _variables(document: ApiDocument) -> str | None:
    present = sorted(_body_properties(document) & {"variables", "operationName"})
    return f"request body declares {', '.join(present)}" if present else None


def _response_envelope(document: ApiDocument) -> str | None:
    for operation in operations(document):
        for schema in success_schemas(document, operation):
            if {"data", "errors"} <= schema_properties(document, schema):
                return f"{operation.label} returns a data/errors envelope"
    return None


def _vocabulary(document: ApiDocument) -> str | None:
    words = set(_WORD.findall(collect_text(document.raw)))
    found = [term for term in _VOCABULARY if term in words]
    return f"vocabulary {', '.join(found)}" if len(found) >= 2 else None


def _introspection(document: ApiDocument) -> str | None:
    text = collect_text(document.raw)
    return "introspection fields" if "__schema" in text or "__type" in text else None


def _narrow_verbs(document: ApiDocument) -> str | None:
    used = methods(document)
    return f"{len(used)} distinct verb(s)" if len(used) <= 2 else None


DETECTOR = PatternDetector(
    profile=QUERY_LANGUAGE_STYLE,
    patterns=(
        Pattern("single_endpoint", 1.0, _single_endpoint),
        Pattern("endpoint_name", 0.8, _endpoint_name),
        Pattern("post_only", 0.95, _post_only),
        Pattern("query_body", 0.9, _query_body),
        Pattern("variables_map", 0.6, _variables),
        Pattern("response_envelope", 0.85, _response_envelope),
        Pattern("vocabulary", 0.7, _vocabulary),
        Pattern("introspection", 0.8, _introspection),
        Pattern("narrow_verbs", 0.6, _narrow_verbs),
    ),
)
