"""Streaming-RPC-style detector (custom method verbs, protobuf vocabulary)."""

from __future__ import annotations

import re

from contract_grader.detection.base import (
    STREAMING_RPC_STYLE,
    Pattern,
    PatternDetector,
    clip,
    operations,
    schema_properties,
    search_paths,
    success_schemas,
)
from contract_grader.document import ApiDocument, collect_text

_CUSTOM_METHOD = re.compile(r":[A-Za-z]\w*$")
_STANDARD_METHOD = re.compile(r":(get|list|create|update|delete|batch\w*|search)$", re.IGNORECASE)
_RESOURCE_NAME = re.compile(r"/(projects|organizations|folders|locations)/\{")
_STREAM_MEDIA = frozenset({"text/event-stream", "application/x-ndjson", "application/grpc"})
_MASK_NAMES = frozenset({"updatemask", "update_mask", "fieldmask", "field_mask"})
_STATUS_NAMES = (
    "invalid_argument",
    "failed_precondition",
    "deadline_exceeded",
    "resource_exhausted",
    "unavailable",
    "unimplemented",
)


def _custom_methods(document: ApiDocument) -> str | None:
    found = search_paths(document, _CUSTOM_METHOD)
    return f"custom methods {clip(found)}" if found else None


def _standard_methods(document: ApiDocument) -> str | None:
    found = search_paths(document, _STANDARD_METHOD)
    return f"standard method suffixes {clip(found)}" if found else None


def _service_naming(document: ApiDocument) -> str | None:
    dotted = [op.operation_id for op in operations(document) if "." in op.operation_id]
    return f"qualified operation ids {clip(dotted)}" if dotted else None


def _protobuf(document: ApiDocument) -> str | None:
    text = collect_text(document.raw)
    markers = [marker for marker in ("protobuf", "google.rpc", ".proto") if marker in text]
    return f"protobuf vocabulary {', '.join(markers)}" if markers else None


def _field_mask(document: ApiDocument) -> str | None:
    for operation in operations(document):
        for parameter in operation.all_parameters():
            if parameter.name.lower() in _MASK_NAMES:
                return f"{operation.label} accepts {parameter.name}"
    return None


def _streaming(document: ApiDocument) -> str | None:
    for operation in operations(document):
        for response in operation.responses:
            media = {item.name for item in response.content} & _STREAM_MEDIA
            if media:
                return f"{operation.label} streams {', '.join(sorted(media))}"
        if "stream" in operation.operation_id.lower():
            return f"{operation.label} is a streaming call"
    return None


def _resource_names(document: ApiDocument) -> str | None:
    found = search_paths(document, _RESOURCE_NAME)
    return f"hierarchical resource names {clip(found)}" if found else None


def _long_running(document: ApiDocument) -> str | None:
    for operation in operations(document):
        if "/operations" in operation.path:
            return f"operations collection {operation.path}"
        for schema in success_schemas(document, operation):
            if {"name", "done"} <= schema_properties(document, schema):
                return f"{operation.label} returns a long-running operation"
    return None


def _error_model(document: ApiDocument) -> str | None:
    text = collect_text(document.raw)
    found = [name for name in _STATUS_NAMES if name in text]
    return f"rpc status codes {', '.join(found)}" if found else None


def _transcoding(document: ApiDocument) -> str | None:
    text = collect_text(document.raw)
    return "http transcoding annotations" if "google.api.http" in text else None


DETECTOR = PatternDetector(
    profile=STREAMING_RPC_STYLE,
    patterns=(
        Pattern("custom_methods", 1.0, _custom_methods),
        Pattern("standard_method_suffixes", 0.9, _standard_methods),
        Pattern("service_naming", 0.85, _service_naming),
        Pattern("protobuf_refs", 0.9, _protobuf),
        Pattern("field_mask", 0.7, _field_mask),
        Pattern("streaming", 0.8, _streaming),
        Pattern("resource_names", 0.75, _resource_names),
        Pattern("long_running", 0.6, _long_running),
        Pattern("error_model", 0.65, _error_model),
        Pattern("transcoding", 0.7, _transcoding),
    ),
)
