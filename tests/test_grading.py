"""End-to-end grading tests over the public API."""

from __future__ import annotations

import json

from contract_grader.grading import GradingOptions, grade_source, normalize_finding, sort_findings
from contract_grader.rules.base import Finding
from contract_grader.validators import RefsValidator
from tests.helpers_docs import (
    ITEMS,
    compliant_document,
    list_without_keyset,
    minimal_document,
    param_ref,
    query_language_document,
    to_yaml,
    with_webhook,
    without_org_header,
)


def test_compliant_document_scores_full_marks() -> None:
    report = grade_source(to_yaml(compliant_document()), validators=[RefsValidator()])
    assert report.grade.score == 100
    assert report.grade.passed
    assert report.grade.letter == "A+"
    assert report.findings == []
    assert report.waived_categories == []
    assert [run.status for run in report.validator_runs] == ["ran"]


def test_score_stays_in_range_for_varied_inputs() -> None:
    texts = [
        to_yaml(compliant_document()),
        to_yaml(minimal_document()),
        to_yaml(query_language_document()),
        to_yaml(without_org_header()),
        "not: [valid",
        "",
        json.dumps({"openapi": "2.0", "paths": {"/x": {"get": {}}}}),
    ]
    for text in texts:
        score = grade_source(text).grade.score
        assert 0 <= score <= 100


def test_minimal_document_passes_with_fallback_detection() -> None:
    report = grade_source(to_yaml(minimal_document()))
    assert report.detection.fallback_used
    assert report.grade.passed
    assert report.grade.score == 90
    assert {finding.rule_id for finding in report.findings} == {
        "SEC-OAUTH2",
        "EXT-NAMESPACE",
        "EXT-DEPRECATION",
    }


def test_missing_org_header_auto_fails_with_path_in_reason() -> None:
    report = grade_source(to_yaml(without_org_header()))
    assert not report.grade.passed
    assert report.grade.letter == "F"
    assert report.grade.score == 92
    assert any(ITEMS in reason for reason in report.grade.auto_fail_reasons)


def test_unsigned_webhook_does_not_fail_the_grade() -> None:
    report = grade_source(to_yaml(with_webhook()))
    assert report.grade.passed
    assert report.grade.score == 87
    assert report.findings[0].rule_id == "WEBHOOK-SIGNATURE"


def test_unparseable_source_fails_with_structure_reason() -> None:
    report = grade_source("openapi: [unclosed")
    assert not report.grade.passed
    assert report.grade.auto_fail_reasons[0].startswith("OAS-PARSE: ")
    assert report.findings[0].category == "structure"


def test_grading_is_deterministic_across_worker_counts() -> None:
    text = to_yaml(list_without_keyset())
    first = grade_source(text).to_dict()
    second = grade_source(text).to_dict()
    parallel = grade_source(text, options=GradingOptions(workers=4)).to_dict()
    assert first == second == parallel


def test_profile_rules_waive_non_applicable_categories() -> None:
    text = to_yaml(query_language_document())
    report = grade_source(text, options=GradingOptions(profile_rules=True))
    assert report.detection.primary_profile == "query-language-style"
    assert report.waived_categories == ["pagination", "http"]
    assert "pagination" not in report.evaluated_rules
    waived = {item.category: item for item in report.grade.per_category}
    assert waived["http"].points_added == waived["http"].points_max == 30

    full = grade_source(text)
    assert full.waived_categories == []


def test_disabled_evaluator_is_credited_in_full() -> None:
    options = GradingOptions(disabled_rule_ids=["naming"])
    raw = compliant_document()
    raw["paths"]["/items"] = raw["paths"].pop(ITEMS)
    report = grade_source(to_yaml(raw), options=options)
    assert report.waived_categories == ["naming"]
    assert report.grade.passed


def test_validator_findings_are_reported_without_auto_fail() -> None:
    raw = compliant_document()
    raw["paths"][ITEMS]["get"]["parameters"].append(param_ref("Missing"))
    report = grade_source(to_yaml(raw), validators=[RefsValidator()])
    assert [finding.rule_id for finding in report.findings] == ["OAS-REF"]
    assert report.findings[0].location_path == "/paths/~1api~1v2~1items/get/parameters/6/$ref"
    assert report.grade.passed
    assert report.grade.score == 100


def test_unregistered_findings_are_normalized_to_structure_errors() -> None:
    external = Finding("oas3-schema", "warn", "bad", "/paths", "naming")
    normalized = normalize_finding(external)
    assert normalized.severity == "error"
    assert normalized.category == "structure"

    registered = Finding("PAG-SORT", "warn", "sort", "/paths", "pagination")
    assert normalize_finding(registered) is registered


def test_sort_findings_orders_by_severity_then_location() -> None:
    findings = [
        Finding("PAG-SORT", "warn", "b", "/paths/~1b", "pagination"),
        Finding("EXT-NAMESPACE", "info", "c", "", "extensions"),
        Finding("PAG-SORT", "warn", "a", "/paths/~1a", "pagination"),
        Finding("SEC-ORG-HDR", "error", "d", "/paths/~1a", "security"),
    ]
    ordered = sort_findings(findings)
    assert [item.message for item in ordered] == ["d", "a", "b", "c"]
