"""Tests for config loading and rules/config CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from contract_grader.cli import app
from contract_grader.config import load_app_config
from tests.helpers_docs import to_yaml, with_webhook

runner = CliRunner()


def test_load_app_config_prefers_dot_file_over_pyproject(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "pyproject.toml").write_text(
        "\n".join(
            [
                "[tool.contract_grader]",
                'format = "human"',
                "fail_below = 80",
            ]
        ),
        encoding="utf-8",
    )
    (repo / ".contract-grader.toml").write_text(
        "\n".join(
            [
                'format = "json"',
                "fail_below = 25",
                "workers = 3",
                "",
                "[rules]",
                'enable = ["naming"]',
                'disable = ["webhooks"]',
                "",
                "[detection]",
                "min_confidence = 0.65",
                "allow_hybrid = false",
            ]
        ),
        encoding="utf-8",
    )

    config = load_app_config(repo)
    assert config.format == "json"
    assert config.fail_below == 25
    assert config.workers == 3
    assert config.rule_enable == ["naming"]
    assert config.rule_disable == ["webhooks"]
    assert config.detection.min_confidence == 0.65
    assert config.detection.allow_hybrid is False
    assert config.detection.prefer_heuristic is True
    assert config.standards.api_prefix == "/api/v2/"
    assert config.source == str(repo / ".contract-grader.toml")


def test_load_app_config_reads_pyproject_hyphenated_key(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "pyproject.toml").write_text(
        "\n".join(
            [
                '[tool."contract-grader"]',
                'format = "json"',
                "",
                '[tool."contract-grader".standards]',
                'api_prefix = "/api/v3/"',
                'extension_namespace = "x-acme"',
            ]
        ),
        encoding="utf-8",
    )

    config = load_app_config(repo)
    assert config.format == "json"
    assert config.standards.api_prefix == "/api/v3/"
    assert config.standards.extension_namespace == "x-acme"
    assert config.source == str(repo / "pyproject.toml")


def test_load_app_config_defaults_without_files(tmp_path: Path) -> None:
    config = load_app_config(tmp_path)
    assert config.source is None
    assert config.format == "human"
    assert config.validators.enable == ["refs"]
    assert config.detection.fallback_profile == "generic-resource-style"


def test_load_app_config_from_explicit_config_path(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / ".contract-grader.toml").write_text('format = "human"', encoding="utf-8")
    config_path = repo / "custom.toml"
    config_path.write_text(
        "\n".join(
            [
                'format = "json"',
                "",
                "[validators]",
                'enable = ["refs", "command"]',
                'command = ["spectral", "lint", "{source}"]',
                "timeout_seconds = 2.5",
            ]
        ),
        encoding="utf-8",
    )

    config = load_app_config(repo, config_path=Path("custom.toml"))
    assert config.format == "json"
    assert config.validators.enable == ["refs", "command"]
    assert config.validators.command == ["spectral", "lint", "{source}"]
    assert config.validators.timeout_seconds == 2.5
    assert config.source == str(config_path)


@pytest.mark.parametrize(
    ("lines", "message"),
    [
        (["fail_below = 120"], "fail_below must be between 0 and 100"),
        (["workers = 0"], "workers must be >= 1"),
        (["[detection]", "min_confidence = 2"], "detection.min_confidence"),
        (["[detection]", 'fallback_profile = "soap"'], "detection.fallback_profile"),
        (["[standards]", 'api_prefix = "api"'], "standards.api_prefix"),
        (["[standards]", 'extension_namespace = "acme"'], "standards.extension_namespace"),
        (["[validators]", "timeout_seconds = 0"], "validators.timeout_seconds"),
        (["rules = 3"], "rules must be a table"),
    ],
)
def test_load_app_config_rejects_invalid_values(
    tmp_path: Path, lines: list[str], message: str
) -> None:
    (tmp_path / ".contract-grader.toml").write_text("\n".join(lines), encoding="utf-8")
    with pytest.raises(ValueError, match=message):
        load_app_config(tmp_path)


def test_rules_command_json_lists_enabled_state_from_config(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / ".contract-grader.toml").write_text(
        "\n".join(
            [
                "[rules]",
                'enable = ["tenancy", "pagination", "webhooks"]',
                'disable = ["webhooks"]',
            ]
        ),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["rules", "--repo", str(repo), "--format", "json"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    rules_by_id = {item["evaluator_id"]: item for item in payload["rules"]}

    assert rules_by_id["tenancy"]["enabled"] is True
    assert rules_by_id["pagination"]["enabled"] is True
    assert rules_by_id["webhooks"]["enabled"] is False
    assert rules_by_id["naming"]["enabled"] is False
    assert rules_by_id["naming"]["category"] == "naming"
    assert payload["meta"]["config_source"] == str(repo / ".contract-grader.toml")


def test_rules_command_rejects_unknown_rule_ids(tmp_path: Path) -> None:
    (tmp_path / ".contract-grader.toml").write_text(
        "\n".join(["[rules]", 'enable = ["magnitude"]']), encoding="utf-8"
    )
    result = runner.invoke(app, ["rules", "--repo", str(tmp_path)])
    assert result.exit_code != 0
    assert "Unknown rule ids: magnitude" in result.output


def test_config_command_json_shows_resolved_values(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / ".contract-grader.toml").write_text(
        "\n".join(
            [
                'format = "json"',
                "fail_below = 42",
                "",
                "[rules]",
                'enable = ["naming", "tenancy"]',
            ]
        ),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["config", "--repo", str(repo), "--format", "json"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["format"] == "json"
    assert payload["fail_below"] == 42
    assert payload["rules"]["enable"] == ["naming", "tenancy"]
    assert payload["active_rule_ids"] == ["naming", "tenancy"]
    assert payload["detection"]["min_confidence"] == 0.5
    assert payload["validators"]["timeout_seconds"] == 10.0
    assert payload["source"] == str(repo / ".contract-grader.toml")


def test_grade_uses_config_defaults_for_format_threshold_and_rules(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / ".contract-grader.toml").write_text(
        "\n".join(
            [
                'format = "json"',
                "fail_below = 95",
                "",
                "[rules]",
                'disable = ["http_semantics"]',
            ]
        ),
        encoding="utf-8",
    )

    result = runner.invoke(
        app, ["grade", "--repo", str(repo), "--stdin"], input=to_yaml(with_webhook())
    )
    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["grade"]["passed"] is True
    assert payload["grade"]["score"] == 90
    assert payload["waived_categories"] == ["http"]
    assert "http_semantics" not in payload["evaluated_rules"]

    override = runner.invoke(
        app,
        ["grade", "--repo", str(repo), "--stdin", "--fail-below", "90"],
        input=to_yaml(with_webhook()),
    )
    assert override.exit_code == 0


def test_config_init_and_validate_commands(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    config_path = repo / ".contract-grader.toml"

    init_result = runner.invoke(app, ["config-init", "--out", str(config_path)])
    assert init_result.exit_code == 0
    assert config_path.exists()
    content = config_path.read_text(encoding="utf-8")
    assert "[detection]" in content
    assert "[standards]" in content
    assert "[validators]" in content

    again = runner.invoke(app, ["config-init", "--out", str(config_path)])
    assert again.exit_code != 0

    validate_result = runner.invoke(
        app,
        ["config-validate", "--repo", str(repo), "--config", str(config_path), "--format", "json"],
    )
    assert validate_result.exit_code == 0
    payload = json.loads(validate_result.stdout)
    assert payload["ok"] is True
    assert payload["active_rule_ids"] == [
        "tenancy",
        "pagination",
        "http_semantics",
        "webhooks",
        "extensions",
        "naming",
    ]
    assert payload["validators"] == ["refs"]


def test_config_validate_reports_unknown_validator(tmp_path: Path) -> None:
    config_path = tmp_path / ".contract-grader.toml"
    config_path.write_text("\n".join(["[validators]", 'enable = ["swagger"]']), encoding="utf-8")
    result = runner.invoke(
        app, ["config-validate", "--repo", str(tmp_path), "--config", str(config_path)]
    )
    assert result.exit_code != 0
    assert "Unknown validator ids: swagger" in result.output
