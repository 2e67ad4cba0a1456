"""Fix templates keyed by checkpoint id.

Every fix produced from one source text carries the same preimage hash, so a
consumer can refuse to apply patches once the document has drifted.
"""

from __future__ import annotations

import difflib
import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from contract_grader.checkpoints import RuleId
from contract_grader.config import StandardsConfig
from contract_grader.document import (
    ApiDocument,
    Operation,
    build_document,
    escape_token,
    pointer,
    resolve_pointer,
    split_pointer,
)
from contract_grader.loader import content_hash, parse_tree
from contract_grader.rules.base import Finding
from contract_grader.rules.pagination import KEYSET_PARAMS, SORT_PARAM
from contract_grader.rules.tenancy import BRANCH_HEADER_PARAM, ORG_HEADER_PARAM

PatchKind = Literal["structured-edit", "textual-diff"]
Risk = Literal["low", "medium", "high"]

STRUCTURED_EDIT: PatchKind = "structured-edit"
TEXTUAL_DIFF: PatchKind = "textual-diff"
PARAMETER_REF_PREFIX = "#/components/parameters/"
_VERSIONED_PREFIX = re.compile(r"^/api/v\d+/")
_ETAG: dict[str, Any] = {
    "description": "Entity tag of the representation",
    "schema": {"type": "string"},
}
_LOCATION: dict[str, Any] = {
    "description": "URL of the job status resource",
    "schema": {"type": "string", "format": "uri"},
}
_RATE_LIMIT: dict[str, dict[str, Any]] = {
    "X-RateLimit-Limit": {
        "description": "Requests allowed per window",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Requests left in the current window",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "Seconds until the window resets",
        "schema": {"type": "integer"},
    },
}


@dataclass(frozen=True, slots=True)
class Patch:
    kind: PatchKind
    preimage_hash: str
    body: str

    def operations(self) -> list[dict[str, Any]]:
        """Decoded structured-edit operations."""
        if self.kind != STRUCTURED_EDIT:
            return []
        decoded = json.loads(self.body)
        if not isinstance(decoded, list):
            raise ValueError("structured-edit body must be a JSON list")
        return decoded

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "preimage_hash": self.preimage_hash, "body": self.body}


@dataclass(frozen=True, slots=True)
class FixItem:
    """One machine-applicable remediation for one finding."""

    rule_id: str
    severity: str
    location_path: str
    description: str
    suggested_text: str
    patch: Patch
    rationale: str
    risk: Risk

    def to_dict(self) -> dict[str, object]:
        return {
            "rule_id": self.rule_id,
            "severity": self.severity,
            "location_path": self.location_path,
            "description": self.description,
            "suggested_text": self.suggested_text,
            "patch": self.patch.to_dict(),
            "rationale": self.rationale,
            "risk": self.risk,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FixItem:
        """Rebuild a fix from ``to_dict`` output; raises ``ValueError`` on bad shapes."""
        patch = data.get("patch")
        if not isinstance(patch, dict):
            raise ValueError("fix is missing its patch")
        kind = patch.get("kind")
        if kind not in (STRUCTURED_EDIT, TEXTUAL_DIFF):
            raise ValueError(f"unknown patch kind: {kind!r}")
        risk = data.get("risk", "medium")
        if risk not in ("low", "medium", "high"):
            raise ValueError(f"unknown risk: {risk!r}")
        try:
            return cls(
                rule_id=str(data["rule_id"]),
                severity=str(data.get("severity", "warn")),
                location_path=str(data.get("location_path", "")),
                description=str(data.get("description", "")),
                suggested_text=str(data.get("suggested_text", "")),
                patch=Patch(
                    kind=kind,
                    preimage_hash=str(patch["preimage_hash"]),
                    body=str(patch["body"]),
                ),
                rationale=str(data.get("rationale", "")),
                risk=risk,
            )
        except KeyError as exc:
            raise ValueError(f"fix is missing field {exc.args[0]!r}") from exc


@dataclass(slots=True)
class _FixContext:
    source_text: str
    preimage_hash: str
    source_name: str
    standards: StandardsConfig
    tree: dict[str, Any] | None
    document: ApiDocument | None
    lines: list[str] = field(default_factory=list)
    _by_parameters: dict[str, Operation] = field(default_factory=dict)

    def operation_at(self, parameters_pointer: str) -> Operation | None:
        if self.document is not None and not self._by_parameters:
            for operation in self.document.operations():
                self._by_parameters[operation.parameters_pointer] = operation
        return self._by_parameters.get(parameters_pointer)

    def node_at(self, location: str) -> Any:
        if self.tree is None:
            return None
        try:
            return resolve_pointer(self.tree, location)
        except (KeyError, ValueError):
            return None


Template = Callable[[Finding, _FixContext], FixItem]


def generate_fixes(
    findings: list[Finding],
    source_text: str,
    *,
    standards: StandardsConfig | None = None,
    source_name: str = "openapi.yaml",
) -> list[FixItem]:
    """Map findings with a registered template to exactly one fix each."""
    try:
        tree: dict[str, Any] | None = parse_tree(source_text)
    except ValueError:
        tree = None
    context = _FixContext(
        source_text=source_text,
        preimage_hash=content_hash(source_text),
        source_name=source_name,
        standards=standards or StandardsConfig(),
        tree=tree,
        document=build_document(tree) if tree is not None else None,
        lines=source_text.splitlines(),
    )
    fixes: list[FixItem] = []
    for finding in findings:
        template = FIX_TEMPLATES.get(finding.rule_id)
        if template is not None:
            fixes.append(template(finding, context))
    return fixes


def has_template(rule_id: str) -> bool:
    return rule_id in FIX_TEMPLATES


def _structured(
    finding: Finding,
    context: _FixContext,
    ops: list[dict[str, Any]],
    *,
    description: str,
    suggested_text: str,
    rationale: str,
    risk: Risk,
) -> FixItem:
    return FixItem(
        rule_id=finding.rule_id,
        severity=finding.severity,
        location_path=finding.location_path,
        description=description,
        suggested_text=suggested_text,
        patch=Patch(STRUCTURED_EDIT, context.preimage_hash, json.dumps(ops, default=str)),
        rationale=rationale,
        risk=risk,
    )


def _ref_suggestion(names: list[str]) -> str:
    return "\n".join(
        ["parameters:"] + [f"  - $ref: '{PARAMETER_REF_PREFIX}{name}'" for name in names]
    )


def _add_refs(finding: Finding, names: list[str]) -> list[dict[str, Any]]:
    target = f"{finding.location_path}/-"
    return [
        {"op": "add", "path": target, "value": {"$ref": PARAMETER_REF_PREFIX + name}}
        for name in names
    ]


def _org_header(finding: Finding, context: _FixContext) -> FixItem:
    return _structured(
        finding,
        context,
        _add_refs(finding, [ORG_HEADER_PARAM]),
        description=f"Add the {ORG_HEADER_PARAM} reference to the operation parameters",
        suggested_text=_ref_suggestion([ORG_HEADER_PARAM]),
        rationale="Row-level tenant isolation needs the organization on every request.",
        risk="low",
    )


def _branch_header(finding: Finding, context: _FixContext) -> FixItem:
    return _structured(
        finding,
        context,
        _add_refs(finding, [BRANCH_HEADER_PARAM]),
        description=f"Add the {BRANCH_HEADER_PARAM} reference to the operation parameters",
        suggested_text=_ref_suggestion([BRANCH_HEADER_PARAM]),
        rationale="Branch context scopes data for multi-location organizations.",
        risk="low",
    )


def _keyset(finding: Finding, context: _FixContext) -> FixItem:
    operation = context.operation_at(finding.location_path)
    missing = list(KEYSET_PARAMS)
    if operation is not None:
        missing = [name for name in KEYSET_PARAMS if not operation.has_parameter_ref(name)]
    names = missing or list(KEYSET_PARAMS)
    return _structured(
        finding,
        context,
        _add_refs(finding, names),
        description=f"Add {', '.join(names)} references to the list endpoint",
        suggested_text=_ref_suggestion(names),
        rationale="Key-set cursors give stable pages under concurrent writes; offsets do not.",
        risk="low",
    )


def _sort(finding: Finding, context: _FixContext) -> FixItem:
    return _structured(
        finding,
        context,
        _add_refs(finding, [SORT_PARAM]),
        description=f"Add the {SORT_PARAM} reference to the list endpoint",
        suggested_text=_ref_suggestion([SORT_PARAM]),
        rationale="Key-set pages need an explicit, client-visible ordering.",
        risk="low",
    )


def _no_offset(finding: Finding, context: _FixContext) -> FixItem:
    ops: list[dict[str, Any]] = []
    current = context.node_at(finding.location_path)
    if current is not None:
        ops.append({"op": "test", "path": finding.location_path, "value": current})
    ops.append({"op": "remove", "path": finding.location_path})
    return _structured(
        finding,
        context,
        ops,
        description="Remove the offset/page parameter and rely on key-set parameters",
        suggested_text="Delete the offset, page, page_size and pageNumber style parameters.",
        rationale="Offset pagination is disallowed; clients page with AfterKey/BeforeKey/Limit.",
        risk="medium",
    )


def _post_status(finding: Finding, context: _FixContext) -> FixItem:
    responses = finding.location_path.rsplit("/", 1)[0]
    return _structured(
        finding,
        context,
        [{"op": "move", "from": f"{responses}/200", "path": f"{responses}/201"}],
        description="Return 201 Created instead of 200 from the create operation",
        suggested_text="responses:\n  '201':\n    description: Created",
        rationale="201 tells clients a new resource exists and where to find it.",
        risk="medium",
    )


def _delete_status(finding: Finding, context: _FixContext) -> FixItem:
    responses = finding.location_path
    if context.node_at(f"{responses}/200") is not None:
        ops: list[dict[str, Any]] = [
            {"op": "move", "from": f"{responses}/200", "path": f"{responses}/204"}
        ]
    else:
        ops = [{"op": "add", "path": f"{responses}/204", "value": {"description": "Deleted"}}]
    return _structured(
        finding,
        context,
        ops,
        description="Return 204 No Content from the delete operation",
        suggested_text="responses:\n  '204':\n    description: Deleted",
        rationale="A delete has nothing to return; 204 (or 202 when queued) says so.",
        risk="medium",
    )


def _get_body(finding: Finding, context: _FixContext) -> FixItem:
    return _structured(
        finding,
        context,
        [{"op": "remove", "path": finding.location_path}],
        description="Remove the request body from the GET operation",
        suggested_text="Move filter fields into query parameters.",
        rationale="GET bodies have no defined semantics and are dropped by many proxies.",
        risk="high",
    )


def _oauth2(finding: Finding, context: _FixContext) -> FixItem:
    scheme = {
        "type": "oauth2",
        "flows": {
            "clientCredentials": {
                "tokenUrl": "https://auth.example.com/oauth/token",
                "scopes": {},
            }
        },
    }
    return _structured(
        finding,
        context,
        [{"op": "add", "path": f"{finding.location_path}/OAuth2", "value": scheme}],
        description="Declare an OAuth2 security scheme",
        suggested_text=(
            "components:\n  securitySchemes:\n    OAuth2:\n      type: oauth2\n"
            "      flows:\n        clientCredentials:\n"
            "          tokenUrl: https://auth.example.com/oauth/token\n          scopes: {}"
        ),
        rationale="OAuth2 is the organization's required authorization mechanism.",
        risk="medium",
    )


def _header_ops(
    finding: Finding, context: _FixContext, headers: dict[str, dict[str, Any]]
) -> tuple[list[str], list[dict[str, Any]]]:
    current = context.node_at(finding.location_path)
    present = {str(name).lower() for name in current} if isinstance(current, dict) else set()
    names = [name for name in headers if name.lower() not in present] or list(headers)
    target = finding.location_path
    ops = [
        {"op": "add", "path": f"{target}/{escape_token(name)}", "value": headers[name]}
        for name in names
    ]
    return names, ops


def _header_suggestion(headers: dict[str, dict[str, Any]], names: list[str]) -> str:
    lines = ["headers:"]
    for name in names:
        lines += [f"  {name}:", "    schema:", f"      type: {headers[name]['schema']['type']}"]
    return "\n".join(lines)


def _etag(finding: Finding, context: _FixContext) -> FixItem:
    headers = {"ETag": _ETAG}
    names, ops = _header_ops(finding, context, headers)
    return _structured(
        finding,
        context,
        ops,
        description="Declare an ETag header on the cacheable response",
        suggested_text=_header_suggestion(headers, names),
        rationale="Entity tags let clients revalidate with If-None-Match instead of refetching.",
        risk="low",
    )


def _rate_limit(finding: Finding, context: _FixContext) -> FixItem:
    headers = _RATE_LIMIT
    names, ops = _header_ops(finding, context, headers)
    return _structured(
        finding,
        context,
        ops,
        description=f"Declare {', '.join(names)} on the response",
        suggested_text=_header_suggestion(headers, names),
        rationale="Clients throttle themselves when every response reports the remaining quota.",
        risk="low",
    )


def _accepted_location(finding: Finding, context: _FixContext) -> FixItem:
    headers = {"Location": _LOCATION}
    names, ops = _header_ops(finding, context, headers)
    return _structured(
        finding,
        context,
        ops,
        description="Declare a Location header pointing at the job status resource",
        suggested_text=_header_suggestion(headers, names),
        rationale="A 202 is only useful when the client can poll the accepted job.",
        risk="low",
    )


def _not_modified(finding: Finding, context: _FixContext) -> FixItem:
    return _structured(
        finding,
        context,
        [
            {
                "op": "add",
                "path": f"{finding.location_path}/304",
                "value": {"description": "Not modified"},
            }
        ],
        description="Declare 304 Not Modified for conditional requests",
        suggested_text="responses:\n  '304':\n    description: Not modified",
        rationale="Conditional GETs answer 304 when the client copy is still current.",
        risk="low",
    )


def _namespace(finding: Finding, context: _FixContext) -> FixItem:
    tokens = split_pointer(finding.location_path)
    path = tokens[-1] if tokens else ""
    renamed = _prefixed(path, context.standards.api_prefix)
    description = f"Rename {path} to {renamed}"
    rationale = f"All endpoints live under {context.standards.api_prefix} for versioning."
    diff = _rename_diff(context, path, renamed)
    if diff is None:
        # No key line to rewrite (e.g. minified JSON); move the path item instead.
        return _structured(
            finding,
            context,
            [{"op": "move", "from": finding.location_path, "path": pointer("paths", renamed)}],
            description=description,
            suggested_text=f"{renamed}:",
            rationale=rationale,
            risk="medium",
        )
    return FixItem(
        rule_id=finding.rule_id,
        severity=finding.severity,
        location_path=finding.location_path,
        description=description,
        suggested_text=f"{renamed}:",
        patch=Patch(TEXTUAL_DIFF, context.preimage_hash, diff),
        rationale=rationale,
        risk="medium",
    )


def _prefixed(path: str, prefix: str) -> str:
    if _VERSIONED_PREFIX.match(path):
        return _VERSIONED_PREFIX.sub(prefix, path, count=1)
    return prefix.rstrip("/") + "/" + path.lstrip("/")


def _rename_diff(context: _FixContext, path: str, renamed: str) -> str | None:
    name = context.source_name
    key_line = re.compile(r"^(\s*)(['\"]?)" + re.escape(path) + r"\2\s*:")
    for index, line in enumerate(context.lines):
        if key_line.match(line):
            updated = list(context.lines)
            updated[index] = line.replace(path, renamed, 1)
            diff = difflib.unified_diff(
                context.lines, updated, fromfile=f"a/{name}", tofile=f"b/{name}", n=0, lineterm=""
            )
            return "\n".join(diff) + "\n"
    return None


FIX_TEMPLATES: dict[str, Template] = {
    RuleId.NAME_NAMESPACE: _namespace,
    RuleId.SEC_ORG_HDR: _org_header,
    RuleId.SEC_BRANCH_HDR: _branch_header,
    RuleId.SEC_OAUTH2: _oauth2,
    RuleId.PAG_KEYSET: _keyset,
    RuleId.PAG_SORT: _sort,
    RuleId.PAG_NO_OFFSET: _no_offset,
    RuleId.HTTP_POST_STATUS: _post_status,
    RuleId.HTTP_DELETE_STATUS: _delete_status,
    RuleId.HTTP_GET_BODY: _get_body,
    RuleId.HTTP_ETAG: _etag,
    RuleId.HTTP_304: _not_modified,
    RuleId.HTTP_RATE_LIMIT: _rate_limit,
    RuleId.HTTP_202_LOCATION: _accepted_location,
}
