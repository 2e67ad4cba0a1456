"""Tests for structural validator delegation and isolation."""

from __future__ import annotations

import json
import sys
import time

import pytest

from contract_grader.config import ValidatorsConfig
from contract_grader.document import ApiDocument, build_document
from contract_grader.rules.base import Finding
from contract_grader.validators import (
    CommandValidator,
    RefsValidator,
    ValidatorBase,
    ValidatorError,
    ValidatorTimeoutError,
    build_validators,
    list_validator_info,
    run_validators,
)
from tests.helpers_docs import compliant_document, param_ref, to_yaml


class _SlowValidator(ValidatorBase):
    validator_id = "slow"

    def validate(self, document: ApiDocument, source_text: str) -> list[Finding]:
        time.sleep(1.0)
        return []


class _BrokenValidator(ValidatorBase):
    validator_id = "broken"

    def validate(self, document: ApiDocument, source_text: str) -> list[Finding]:
        raise RuntimeError("boom")


def test_refs_validator_reports_unresolved_local_refs() -> None:
    raw = compliant_document()
    raw["components"]["schemas"]["Item"]["properties"]["owner"] = {
        "$ref": "#/components/schemas/Owner"
    }
    raw["components"]["schemas"]["Link"] = {"$ref": "https://example.com/link.yaml"}
    findings = RefsValidator().validate(build_document(raw), "")
    assert [finding.location_path for finding in findings] == [
        "/components/schemas/Item/properties/owner/$ref"
    ]
    assert findings[0].rule_id == "OAS-REF"
    assert findings[0].category == "structure"


def test_timed_out_validator_contributes_nothing() -> None:
    document = build_document(compliant_document())
    findings, runs = run_validators(
        document, "", [_SlowValidator(), RefsValidator()], timeout_seconds=0.05
    )
    assert findings == []
    assert [run.status for run in runs] == ["timeout", "ran"]
    assert runs[0].elapsed_ms is not None


def test_command_validator_times_out_under_its_own_limit() -> None:
    validator = CommandValidator(
        [sys.executable, "-c", "import time; time.sleep(30)"], timeout_seconds=0.2
    )
    with pytest.raises(ValidatorTimeoutError, match="timed out after 0.2s"):
        validator.validate(build_document({}), "")

    findings, runs = run_validators(build_document({}), "", [validator], timeout_seconds=10.0)
    assert findings == []
    assert runs[0].status == "timeout"
    assert runs[0].reason.endswith("timed out after 0.2s")
    assert runs[0].elapsed_ms is not None
    assert runs[0].elapsed_ms < 10_000


def test_failing_validator_is_isolated() -> None:
    raw = compliant_document()
    raw["paths"]["/api/v2/items"]["get"]["parameters"].append(param_ref("Missing"))
    findings, runs = run_validators(build_document(raw), "", [_BrokenValidator(), RefsValidator()])
    assert [finding.rule_id for finding in findings] == ["OAS-REF"]
    assert runs[0].status == "failed"
    assert runs[0].reason == "RuntimeError: boom"
    assert runs[1].findings == 1


def test_command_validator_without_command_is_skipped() -> None:
    _, runs = run_validators(build_document({}), "", [CommandValidator()])
    assert runs[0].status == "skipped"
    assert runs[0].reason == "no command configured"


def test_command_validator_parses_spectral_json() -> None:
    payload = [
        {"code": "oas3-schema", "message": "bad path", "path": ["paths", "/items"], "severity": 1},
        {"code": "info-contact", "message": "add contact", "path": ["info"], "severity": "hint"},
    ]
    script = f"import sys; sys.stdin.read(); print({json.dumps(json.dumps(payload))})"
    validator = CommandValidator([sys.executable, "-c", script])
    text = to_yaml(compliant_document())
    findings = validator.validate(build_document(compliant_document()), text)
    assert [(item.rule_id, item.severity, item.location_path) for item in findings] == [
        ("oas3-schema", "warn", "/paths/~1items"),
        ("info-contact", "info", "/info"),
    ]


def test_command_validator_substitutes_source_path() -> None:
    script = (
        "import json, sys; text = open(sys.argv[1], encoding='utf-8').read(); "
        "print(json.dumps([{'code': 'len', 'message': str(len(text)), 'path': []}]))"
    )
    validator = CommandValidator([sys.executable, "-c", script, "{source}"])
    findings = validator.validate(build_document({}), "openapi: 3.0.3\n")
    assert findings[0].message == "15"
    assert findings[0].severity == "error"


def test_command_validator_rejects_non_json_output() -> None:
    validator = CommandValidator([sys.executable, "-c", "print('hello')"])
    with pytest.raises(ValidatorError, match="did not print JSON"):
        validator.validate(build_document({}), "")


def test_build_validators_follows_config() -> None:
    validators = build_validators(
        ValidatorsConfig(enable=["refs", "command", "refs"], command=["lint"], timeout_seconds=3)
    )
    assert [validator.validator_id for validator in validators] == ["refs", "command"]
    command = validators[1]
    assert isinstance(command, CommandValidator)
    assert command.command == ["lint"]
    assert command.timeout_seconds == 3

    with pytest.raises(ValueError, match="Unknown validator ids: nope"):
        build_validators(ValidatorsConfig(enable=["nope"]))
    assert [item.validator_id for item in list_validator_info()] == ["refs", "command"]
