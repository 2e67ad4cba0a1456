"""Source parsing and structural pre-checks."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import yaml

from contract_grader.checkpoints import STRUCTURE_CATEGORY
from contract_grader.document import ApiDocument, build_document
from contract_grader.rules.base import Finding

logger = logging.getLogger(__name__)

REQUIRED_OPENAPI_VERSION = "3.0.3"
PARSE_RULE_ID = "OAS-PARSE"
STRUCT_RULE_ID = "OAS-STRUCT"


@dataclass(slots=True)
class LoadedSource:
    """Parsed source text with its structural findings."""

    text: str
    tree: dict[str, Any]
    document: ApiDocument
    source_hash: str
    findings: list[Finding] = field(default_factory=list)

    @property
    def is_json(self) -> bool:
        return looks_like_json(self.text)


def content_hash(text: str) -> str:
    """SHA-256 hex digest of the UTF-8 encoded text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def looks_like_json(text: str) -> bool:
    return text.lstrip().startswith("{")


def parse_tree(text: str) -> dict[str, Any]:
    """Parse YAML or JSON text into a mapping.

    JSON-looking text is read with ``json`` and only falls back to YAML when
    that fails. Raises ``ValueError`` when the text is not parseable or is not
    a mapping.
    """
    loaded: Any = None
    parsed = False
    if looks_like_json(text):
        try:
            loaded = json.loads(text)
            parsed = True
        except json.JSONDecodeError as exc:
            logger.debug("JSON parse failed, retrying as YAML: %s", exc)
    if not parsed:
        try:
            loaded = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ValueError(f"Unparseable document: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Document root must be a mapping, got {type(loaded).__name__}")
    return loaded


def json_indent(text: str) -> int | str | None:
    """Indentation unit of a JSON source; ``None`` for single-line sources."""
    lines = text.strip().splitlines()
    if len(lines) <= 1:
        return None
    for line in lines[1:]:
        stripped = line.lstrip(" \t")
        if not stripped or len(stripped) == len(line):
            continue
        leading = line[: len(line) - len(stripped)]
        return "\t" if leading.startswith("\t") else len(leading)
    return 2


def dump_tree(
    tree: dict[str, Any], *, as_json: bool, indent: int | str | None = 2
) -> str:
    """Serialize a tree back to text in the source's flavor."""
    if as_json:
        return json.dumps(tree, indent=indent, ensure_ascii=False) + "\n"
    return yaml.safe_dump(tree, sort_keys=False, allow_unicode=True, default_flow_style=False)


def load_source(text: str, *, source_name: str = "openapi.yaml") -> LoadedSource:
    """Parse ``text`` and run baseline shape checks.

    Problems are reported as ``structure`` findings; this function does not
    raise for document content.
    """
    findings: list[Finding] = []
    try:
        tree = parse_tree(text)
    except ValueError as exc:
        logger.info("Could not parse %s: %s", source_name, exc)
        findings.append(_structural(PARSE_RULE_ID, str(exc), ""))
        tree = {}

    if tree or not findings:
        findings.extend(check_structure(tree))

    return LoadedSource(
        text=text,
        tree=tree,
        document=build_document(tree),
        source_hash=content_hash(text),
        findings=findings,
    )


def check_structure(tree: dict[str, Any]) -> list[Finding]:
    """Baseline OpenAPI 3.0.3 shape requirements."""
    findings: list[Finding] = []
    version = tree.get("openapi")
    if version != REQUIRED_OPENAPI_VERSION:
        findings.append(
            _structural(
                STRUCT_RULE_ID,
                f"openapi must be '{REQUIRED_OPENAPI_VERSION}', got {version!r}.",
                "/openapi",
            )
        )

    info = tree.get("info")
    title = info.get("title") if isinstance(info, dict) else None
    if not isinstance(title, str) or not title.strip():
        findings.append(_structural(STRUCT_RULE_ID, "info.title is required.", "/info/title"))

    if not isinstance(tree.get("paths"), dict):
        findings.append(_structural(STRUCT_RULE_ID, "paths must be an object.", "/paths"))
    return findings


def _structural(rule_id: str, message: str, location: str) -> Finding:
    return Finding(
        rule_id=rule_id,
        severity="error",
        message=message,
        location_path=location,
        category=STRUCTURE_CATEGORY,
    )
