"""Hash-checked, conflict-aware application of generated fixes."""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from contract_grader.document import pointer, split_pointer
from contract_grader.fixes.templates import STRUCTURED_EDIT, TEXTUAL_DIFF, FixItem
from contract_grader.loader import (
    content_hash,
    dump_tree,
    json_indent,
    looks_like_json,
    parse_tree,
)

logger = logging.getLogger(__name__)

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_MISSING = object()


class StalePatchError(ValueError):
    """A fix was derived from different source text than the one given."""


class PatchConflictError(ValueError):
    """A fix cannot be applied to the current tree or text."""


@dataclass(frozen=True, slots=True)
class FixOutcome:
    rule_id: str
    location_path: str
    status: str
    reason: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "rule_id": self.rule_id,
            "location_path": self.location_path,
            "status": self.status,
            "reason": self.reason,
        }


@dataclass(slots=True)
class ApplyResult:
    text: str
    outcomes: list[FixOutcome] = field(default_factory=list)
    dry_run: bool = False

    @property
    def changed(self) -> bool:
        return any(outcome.status in ("applied", "would-apply") for outcome in self.outcomes)

    @property
    def conflicts(self) -> list[FixOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status == "conflict"]

    def to_dict(self) -> dict[str, object]:
        return {
            "dry_run": self.dry_run,
            "changed": self.changed,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


def apply_fixes(source_text: str, fixes: list[FixItem], *, dry_run: bool = False) -> ApplyResult:
    """Apply fixes to ``source_text``.

    Raises :class:`StalePatchError` before touching anything when any fix was
    generated from different text. Individual fixes that do not apply are
    reported as ``conflict`` outcomes and leave the document as it was.
    """
    current_hash = content_hash(source_text)
    stale = [fix for fix in fixes if fix.patch.preimage_hash != current_hash]
    if stale:
        raise StalePatchError("patch stale: re-grade before applying")

    applied_status = "would-apply" if dry_run else "applied"
    outcomes: list[FixOutcome] = []
    text = source_text

    # Textual diffs match lines of the graded text.
    for fix in fixes:
        if fix.patch.kind != TEXTUAL_DIFF:
            continue
        try:
            text = apply_unified_diff(text, fix.patch.body)
        except PatchConflictError as exc:
            logger.info("Fix %s at %s conflicts: %s", fix.rule_id, fix.location_path, exc)
            outcomes.append(FixOutcome(fix.rule_id, fix.location_path, "conflict", str(exc)))
            continue
        outcomes.append(FixOutcome(fix.rule_id, fix.location_path, applied_status))

    structured = [fix for fix in fixes if fix.patch.kind == STRUCTURED_EDIT]
    if structured:
        try:
            tree: dict[str, Any] | None = parse_tree(text)
        except ValueError as exc:
            logger.info("Structured fixes cannot apply: %s", exc)
            tree = None
        renames = _renamed_paths(source_text, tree) if text != source_text else {}
        touched = False
        for fix in _application_order(structured):
            if tree is None:
                outcomes.append(
                    FixOutcome(fix.rule_id, fix.location_path, "conflict", "source is unparseable")
                )
                continue
            try:
                operations = _follow_renames(fix.patch.operations(), renames)
                tree = apply_operations(tree, operations)
            except (PatchConflictError, ValueError) as exc:
                logger.info("Fix %s at %s conflicts: %s", fix.rule_id, fix.location_path, exc)
                outcomes.append(FixOutcome(fix.rule_id, fix.location_path, "conflict", str(exc)))
                continue
            touched = True
            outcomes.append(FixOutcome(fix.rule_id, fix.location_path, applied_status))
        if touched and tree is not None:
            as_json = looks_like_json(source_text)
            indent = json_indent(source_text) if as_json else 2
            text = dump_tree(tree, as_json=as_json, indent=indent)

    return ApplyResult(text=text, outcomes=outcomes, dry_run=dry_run)


def apply_operations(tree: dict[str, Any], operations: list[dict[str, Any]]) -> dict[str, Any]:
    """Apply structured-edit operations to a copy of ``tree``; all or nothing."""
    working = copy.deepcopy(tree)
    for operation in operations:
        if not isinstance(operation, dict):
            raise PatchConflictError("operation must be an object")
        op = operation.get("op")
        path = operation.get("path")
        if not isinstance(path, str):
            raise PatchConflictError(f"{op} is missing a path")
        if op == "add":
            _add(working, path, copy.deepcopy(operation.get("value")))
        elif op == "remove":
            _remove(working, path)
        elif op == "replace":
            _remove(working, path)
            _add(working, path, copy.deepcopy(operation.get("value")))
        elif op == "move":
            value = _remove(working, _from(operation))
            _add(working, path, value)
        elif op == "copy":
            _add(working, path, copy.deepcopy(_get(working, _from(operation))))
        elif op == "test":
            if _get(working, path) != operation.get("value"):
                raise PatchConflictError(f"test failed at {path}")
        else:
            raise PatchConflictError(f"unsupported operation {op!r}")
    return working


def apply_unified_diff(text: str, diff: str) -> str:
    """Apply a unified diff conservatively.

    Each hunk must match at its stated line or at exactly one other place.
    """
    hunks = _parse_hunks(diff)
    if not hunks:
        raise PatchConflictError("diff has no hunks")

    lines = text.splitlines()
    placed: list[tuple[int, list[str], list[str]]] = []
    for start, old, new in hunks:
        placed.append((_locate(lines, start, old), old, new))

    placed.sort(key=lambda item: item[0])
    for (first, first_old, _), (second, _, _) in zip(placed, placed[1:]):
        if first + len(first_old) > second:
            raise PatchConflictError("hunks overlap")

    for position, old, new in reversed(placed):
        lines[position : position + len(old)] = new
    trailing = "\n" if text.endswith("\n") or not text else ""
    return "\n".join(lines) + trailing


def _application_order(fixes: list[FixItem]) -> list[FixItem]:
    """Additions, then removals from the highest index, then moves deepest first."""
    additive: list[FixItem] = []
    removals: list[FixItem] = []
    relocations: list[FixItem] = []
    for fix in fixes:
        names = _operation_names(fix)
        if "remove" in names:
            removals.append(fix)
        elif "move" in names:
            relocations.append(fix)
        else:
            additive.append(fix)
    removals.sort(key=lambda fix: _pointer_key(fix.location_path), reverse=True)
    relocations.sort(key=lambda fix: len(_pointer_key(fix.location_path)), reverse=True)
    return additive + removals + relocations


def _operation_names(fix: FixItem) -> set[str]:
    try:
        operations = fix.patch.operations()
    except ValueError:
        return set()
    return {str(item.get("op")) for item in operations if isinstance(item, dict)}


def _renamed_paths(source_text: str, tree: dict[str, Any] | None) -> dict[str, str]:
    """Path keys renamed by textual diffs, matched by position."""
    if tree is None:
        return {}
    try:
        before = parse_tree(source_text)
    except ValueError:
        return {}
    old_keys = [str(key) for key in _paths_of(before)]
    new_keys = [str(key) for key in _paths_of(tree)]
    if len(old_keys) != len(new_keys):
        return {}
    return {old: new for old, new in zip(old_keys, new_keys) if old != new}


def _paths_of(tree: dict[str, Any]) -> dict[Any, Any]:
    paths = tree.get("paths")
    return paths if isinstance(paths, dict) else {}


def _follow_renames(
    operations: list[dict[str, Any]], renames: dict[str, str]
) -> list[dict[str, Any]]:
    if not renames:
        return operations
    followed: list[dict[str, Any]] = []
    for operation in operations:
        if isinstance(operation, dict):
            operation = dict(operation)
            for name in ("path", "from"):
                value = operation.get(name)
                if isinstance(value, str):
                    operation[name] = _renamed_pointer(value, renames)
        followed.append(operation)
    return followed


def _renamed_pointer(value: str, renames: dict[str, str]) -> str:
    try:
        tokens = split_pointer(value)
    except ValueError:
        return value
    if len(tokens) < 2 or tokens[0] != "paths" or tokens[1] not in renames:
        return value
    tokens[1] = renames[tokens[1]]
    return pointer(*tokens)


def _pointer_key(value: str) -> tuple[tuple[int, int, str], ...]:
    try:
        tokens = split_pointer(value)
    except ValueError:
        return ()
    return tuple((1, int(token), "") if token.isdigit() else (0, 0, token) for token in tokens)


def _from(operation: dict[str, Any]) -> str:
    source = operation.get("from")
    if not isinstance(source, str):
        raise PatchConflictError(f"{operation.get('op')} is missing 'from'")
    return source


def _key(container: dict[Any, Any], token: str) -> Any:
    if token not in container and token.isdigit() and int(token) in container:
        return int(token)
    return token


def _get(tree: Any, path: str) -> Any:
    node = tree
    for token in _tokens(path):
        node = _child(node, token)
        if node is _MISSING:
            raise PatchConflictError(f"path not found: {path}")
    return node


def _child(node: Any, token: str) -> Any:
    if isinstance(node, dict):
        return node.get(_key(node, token), _MISSING)
    if isinstance(node, list) and token.isdigit() and int(token) < len(node):
        return node[int(token)]
    return _MISSING


def _parent(tree: Any, path: str, *, create: bool) -> tuple[Any, str]:
    tokens = _tokens(path)
    if not tokens:
        raise PatchConflictError("cannot edit the document root")
    node = tree
    for index, token in enumerate(tokens[:-1]):
        child = _child(node, token)
        if child is _MISSING:
            if not create or not isinstance(node, dict):
                raise PatchConflictError(f"path not found: {path}")
            child = [] if index == len(tokens) - 2 and tokens[-1] == "-" else {}
            node[token] = child
        node = child
    return node, tokens[-1]


def _add(tree: Any, path: str, value: Any) -> None:
    parent, token = _parent(tree, path, create=True)
    if isinstance(parent, dict):
        parent[_key(parent, token)] = value
    elif isinstance(parent, list):
        if token == "-":
            parent.append(value)
        elif token.isdigit() and int(token) <= len(parent):
            parent.insert(int(token), value)
        else:
            raise PatchConflictError(f"index out of range: {path}")
    else:
        raise PatchConflictError(f"cannot add below a scalar: {path}")


def _remove(tree: Any, path: str) -> Any:
    parent, token = _parent(tree, path, create=False)
    if isinstance(parent, dict):
        key = _key(parent, token)
        if key not in parent:
            raise PatchConflictError(f"path not found: {path}")
        return parent.pop(key)
    if isinstance(parent, list) and token.isdigit() and int(token) < len(parent):
        return parent.pop(int(token))
    raise PatchConflictError(f"path not found: {path}")


def _tokens(path: str) -> list[str]:
    try:
        return split_pointer(path)
    except ValueError as exc:
        raise PatchConflictError(str(exc)) from exc


def _parse_hunks(diff: str) -> list[tuple[int, list[str], list[str]]]:
    hunks: list[tuple[int, list[str], list[str]]] = []
    current: tuple[int, list[str], list[str]] | None = None
    for line in diff.splitlines():
        header = _HUNK_HEADER.match(line)
        if header:
            start = int(header.group(1))
            old_count = int(header.group(2)) if header.group(2) is not None else 1
            # A zero-length old range names the line after which to insert.
            current = (start if old_count == 0 else start - 1, [], [])
            hunks.append(current)
            continue
        if current is None:
            continue
        if line.startswith("-"):
            current[1].append(line[1:])
        elif line.startswith("+"):
            current[2].append(line[1:])
        elif line.startswith(" "):
            current[1].append(line[1:])
            current[2].append(line[1:])
    return hunks


def _locate(lines: list[str], expected: int, old: list[str]) -> int:
    if not old:
        if 0 <= expected <= len(lines):
            return expected
        raise PatchConflictError(f"insertion point {expected} is outside the document")
    if lines[expected : expected + len(old)] == old:
        return expected
    matches = [
        index
        for index in range(len(lines) - len(old) + 1)
        if lines[index : index + len(old)] == old
    ]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise PatchConflictError("hunk context not found")
    raise PatchConflictError(f"hunk context matches {len(matches)} places")
