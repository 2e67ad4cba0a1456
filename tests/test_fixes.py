"""Tests for fix generation and hash-checked patch application."""

from __future__ import annotations

import hashlib
import json

import pytest

from contract_grader.fixes import (
    STRUCTURED_EDIT,
    TEXTUAL_DIFF,
    FixItem,
    Patch,
    PatchConflictError,
    StalePatchError,
    apply_fixes,
    apply_operations,
    apply_unified_diff,
    generate_fixes,
)
from contract_grader.grading import grade_source
from contract_grader.loader import content_hash, load_source, parse_tree
from tests.helpers_docs import (
    ITEM,
    ITEMS,
    compliant_document,
    list_without_keyset,
    rate_limit_headers,
    to_yaml,
    without_org_header,
)

LIST_PARAMETERS = "/paths/~1api~1v2~1items/get/parameters"


def test_missing_keyset_yields_one_fix_with_three_additions() -> None:
    text = to_yaml(list_without_keyset())
    report = grade_source(text)
    assert [finding.rule_id for finding in report.findings] == ["PAG-KEYSET"]

    fixes = generate_fixes(report.findings, text)
    assert len(fixes) == 1
    fix = fixes[0]
    assert fix.rule_id == "PAG-KEYSET"
    assert fix.location_path == LIST_PARAMETERS
    assert fix.risk == "low"
    operations = fix.patch.operations()
    assert [operation["op"] for operation in operations] == ["add", "add", "add"]
    assert {operation["path"] for operation in operations} == {f"{LIST_PARAMETERS}/-"}
    assert [operation["value"]["$ref"] for operation in operations] == [
        "#/components/parameters/AfterKey",
        "#/components/parameters/BeforeKey",
        "#/components/parameters/Limit",
    ]


def test_every_fix_carries_the_source_hash() -> None:
    raw = compliant_document()
    raw["paths"][ITEMS]["get"]["parameters"] = []
    raw["components"]["securitySchemes"] = {}
    raw["paths"][ITEMS]["post"]["responses"] = {"200": {"description": "OK"}}
    text = to_yaml(raw)
    fixes = generate_fixes(grade_source(text).findings, text)

    expected = hashlib.sha256(text.encode("utf-8")).hexdigest()
    assert fixes
    assert {fix.patch.preimage_hash for fix in fixes} == {expected}
    assert {fix.rule_id for fix in fixes} == {
        "SEC-ORG-HDR",
        "SEC-BRANCH-HDR",
        "SEC-OAUTH2",
        "PAG-KEYSET",
        "PAG-SORT",
        "HTTP-POST-STATUS",
        "HTTP-RATE-LIMIT",
    }


def test_applying_generated_fixes_restores_full_marks() -> None:
    raw = compliant_document()
    raw["paths"][ITEMS]["get"]["parameters"] = []
    raw["components"]["securitySchemes"] = {}
    raw["paths"][ITEMS]["post"]["responses"] = {"200": {"description": "OK"}}
    raw["paths"][ITEM]["delete"]["responses"]["200"] = raw["paths"][ITEM]["delete"][
        "responses"
    ].pop("204")
    text = to_yaml(raw)
    assert not grade_source(text).grade.passed

    result = apply_fixes(text, generate_fixes(grade_source(text).findings, text))
    assert result.conflicts == []
    assert result.changed
    regraded = grade_source(result.text)
    assert regraded.findings == []
    assert regraded.grade.score == 100


def test_offset_removals_apply_from_the_highest_index() -> None:
    raw = compliant_document()
    raw["paths"][ITEMS]["get"]["parameters"] += [
        {"name": "offset", "in": "query"},
        {"name": "page", "in": "query"},
    ]
    text = to_yaml(raw)
    fixes = generate_fixes(grade_source(text).findings, text)
    assert [fix.location_path for fix in fixes] == [
        f"{LIST_PARAMETERS}/6",
        f"{LIST_PARAMETERS}/7",
    ]
    assert fixes[0].patch.operations()[0]["op"] == "test"

    result = apply_fixes(text, fixes)
    assert [outcome.status for outcome in result.outcomes] == ["applied", "applied"]
    assert grade_source(result.text).grade.passed


def test_namespace_fix_is_a_textual_diff() -> None:
    raw = compliant_document()
    raw["paths"]["/items"] = raw["paths"].pop(ITEMS)
    text = to_yaml(raw)
    fixes = generate_fixes(grade_source(text).findings, text, source_name="items.yaml")
    assert len(fixes) == 1
    fix = fixes[0]
    assert fix.patch.kind == TEXTUAL_DIFF
    assert fix.patch.body.startswith("--- a/items.yaml\n+++ b/items.yaml\n@@ ")
    assert "-  /items:\n+  /api/v2/items:\n" in fix.patch.body

    result = apply_fixes(text, fixes)
    assert "  /api/v2/items:\n" in result.text
    assert grade_source(result.text).grade.score == 100


def test_generating_fixes_twice_is_byte_identical() -> None:
    raw = compliant_document()
    raw["paths"][ITEMS]["get"]["parameters"] = []
    raw["paths"][ITEMS]["post"]["responses"] = {"200": {"description": "OK"}}
    raw["paths"]["/items"] = raw["paths"].pop(ITEM)
    text = to_yaml(raw)
    findings = grade_source(text).findings

    first = [fix.to_dict() for fix in generate_fixes(findings, text)]
    second = [fix.to_dict() for fix in generate_fixes(findings, text)]
    assert first == second
    assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)


def test_missing_http_headers_and_304_are_fixed_by_additions() -> None:
    raw = compliant_document()
    single = raw["paths"][ITEM]["get"]["responses"]
    del single["200"]["headers"]
    del single["304"]
    del raw["paths"][ITEMS]["post"]["responses"]["201"]["headers"]
    raw["paths"][ITEM]["delete"]["responses"]["202"] = {
        "description": "Deletion queued",
        "headers": rate_limit_headers(),
    }
    text = to_yaml(raw)
    report = grade_source(text)
    assert sorted({finding.rule_id for finding in report.findings}) == [
        "HTTP-202-LOCATION",
        "HTTP-304",
        "HTTP-ETAG",
        "HTTP-RATE-LIMIT",
    ]

    fixes = generate_fixes(report.findings, text)
    assert {fix.risk for fix in fixes} == {"low"}
    etag = next(fix for fix in fixes if fix.rule_id == "HTTP-ETAG")
    assert [operation["path"] for operation in etag.patch.operations()] == [
        "/paths/~1api~1v2~1items~1{itemId}/get/responses/200/headers/ETag"
    ]

    result = apply_fixes(text, fixes)
    assert result.conflicts == []
    regraded = grade_source(result.text)
    assert regraded.findings == []
    assert regraded.grade.score == 100


def test_tab_indented_json_grades_and_keeps_numbers() -> None:
    raw = without_org_header()
    raw["components"]["schemas"]["Item"]["properties"]["count"] = {
        "type": "integer",
        "maximum": "MAXIMUM",
    }
    text = json.dumps(raw, indent="\t").replace('"MAXIMUM"', "1e5")
    loaded = load_source(text)
    assert loaded.findings == []
    assert loaded.is_json

    report = grade_source(text)
    assert [finding.rule_id for finding in report.findings] == ["SEC-ORG-HDR"]

    result = apply_fixes(text, generate_fixes(report.findings, text))
    assert [outcome.status for outcome in result.outcomes] == ["applied"]
    assert '\n\t"openapi": "3.0.3",' in result.text
    count = parse_tree(result.text)["components"]["schemas"]["Item"]["properties"]["count"]
    assert count["maximum"] == 100000
    assert isinstance(count["maximum"], float)
    assert grade_source(result.text).grade.score == 100


def test_rename_and_structured_fixes_apply_together_on_json() -> None:
    raw = without_org_header()
    raw["paths"]["/items"] = raw["paths"].pop(ITEMS)
    text = json.dumps(raw, indent=4)
    report = grade_source(text)
    assert sorted(finding.rule_id for finding in report.findings) == [
        "NAME-NAMESPACE",
        "SEC-ORG-HDR",
    ]

    fixes = generate_fixes(report.findings, text, source_name="openapi.json")
    assert {fix.patch.kind for fix in fixes} == {STRUCTURED_EDIT, TEXTUAL_DIFF}
    result = apply_fixes(text, fixes)
    assert [outcome.status for outcome in result.outcomes] == ["applied", "applied"]
    assert '\n    "paths": {' in result.text
    regraded = grade_source(result.text)
    assert regraded.findings == []
    assert regraded.grade.score == 100


def test_namespace_fix_on_minified_json_moves_the_path_item() -> None:
    raw = compliant_document()
    raw["paths"]["/items"] = raw["paths"].pop(ITEMS)
    text = json.dumps(raw)
    fixes = generate_fixes(grade_source(text).findings, text)
    assert len(fixes) == 1
    assert fixes[0].patch.kind == STRUCTURED_EDIT
    assert fixes[0].patch.operations() == [
        {"op": "move", "from": "/paths/~1items", "path": "/paths/~1api~1v2~1items"}
    ]

    result = apply_fixes(text, fixes)
    assert result.conflicts == []
    assert "\n" not in result.text.strip()
    assert grade_source(result.text).grade.score == 100


def test_dry_run_reports_would_apply() -> None:
    text = to_yaml(list_without_keyset())
    fixes = generate_fixes(grade_source(text).findings, text)
    result = apply_fixes(text, fixes, dry_run=True)
    assert [outcome.status for outcome in result.outcomes] == ["would-apply"]
    assert result.to_dict()["dry_run"] is True


def test_stale_fix_is_refused_before_any_change() -> None:
    text = to_yaml(list_without_keyset())
    fixes = generate_fixes(grade_source(text).findings, text)
    with pytest.raises(StalePatchError, match="patch stale: re-grade before applying"):
        apply_fixes(text + "# edited\n", fixes)


def test_conflicting_fix_is_reported_and_leaves_text_alone() -> None:
    text = to_yaml(compliant_document())
    fix = _manual_fix(text, [{"op": "remove", "path": "/paths/~1nowhere"}])
    result = apply_fixes(text, [fix])
    assert result.text == text
    assert not result.changed
    assert [outcome.status for outcome in result.conflicts] == ["conflict"]
    assert "path not found" in result.conflicts[0].reason


def test_structured_fix_on_unparseable_source_conflicts() -> None:
    text = "openapi: [unclosed"
    result = apply_fixes(text, [_manual_fix(text, [{"op": "remove", "path": "/openapi"}])])
    assert result.conflicts[0].reason == "source is unparseable"


def test_fix_item_from_dict_validates_shape() -> None:
    text = to_yaml(list_without_keyset())
    fix = generate_fixes(grade_source(text).findings, text)[0]
    assert FixItem.from_dict(json.loads(json.dumps(fix.to_dict()))) == fix

    broken = fix.to_dict()
    broken["patch"] = {"kind": "zip", "preimage_hash": "x", "body": ""}
    with pytest.raises(ValueError, match="unknown patch kind"):
        FixItem.from_dict(broken)


def test_apply_operations_is_all_or_nothing() -> None:
    tree = {"a": {"b": 1}, "list": [1, 2]}
    updated = apply_operations(
        tree,
        [
            {"op": "copy", "from": "/a", "path": "/c"},
            {"op": "move", "from": "/a/b", "path": "/a/d"},
            {"op": "replace", "path": "/list/0", "value": 9},
            {"op": "test", "path": "/c/b", "value": 1},
        ],
    )
    assert updated == {"a": {"d": 1}, "list": [9, 2], "c": {"b": 1}}
    assert tree == {"a": {"b": 1}, "list": [1, 2]}

    with pytest.raises(PatchConflictError, match="test failed"):
        apply_operations(
            tree,
            [
                {"op": "add", "path": "/x", "value": 1},
                {"op": "test", "path": "/x", "value": 2},
            ],
        )
    assert "x" not in tree


def test_apply_unified_diff_requires_unique_context() -> None:
    text = "a\nb\na\n"
    assert apply_unified_diff(text, "@@ -1,0 +2 @@\n+x\n") == "a\nx\nb\na\n"
    assert apply_unified_diff(text, "@@ -2 +2 @@\n-b\n+B\n") == "a\nB\na\n"
    with pytest.raises(PatchConflictError, match="matches 2 places"):
        apply_unified_diff(text, "@@ -9 +9 @@\n-a\n+c\n")
    with pytest.raises(PatchConflictError, match="not found"):
        apply_unified_diff(text, "@@ -1 +1 @@\n-z\n+c\n")


def _manual_fix(text: str, operations: list[dict[str, object]]) -> FixItem:
    return FixItem(
        rule_id="PAG-NO-OFFSET",
        severity="error",
        location_path="/paths",
        description="manual",
        suggested_text="",
        patch=Patch(STRUCTURED_EDIT, content_hash(text), json.dumps(operations)),
        rationale="",
        risk="medium",
    )
