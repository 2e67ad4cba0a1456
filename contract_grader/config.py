"""Configuration loading for contract-grader."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from contract_grader.detection.base import FALLBACK_PROFILE, KNOWN_PROFILES

CONFIG_FILENAMES = (".contract-grader.toml", "contract-grader.toml")
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TOOL_KEYS = ("contract_grader", "contract-grader")


@dataclass(slots=True)
class DetectionConfig:
    """Profile consensus options."""

    min_confidence: float = 0.5
    prefer_heuristic: bool = True
    allow_hybrid: bool = True
    fallback_profile: str = FALLBACK_PROFILE
    profile_rules: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "min_confidence": self.min_confidence,
            "prefer_heuristic": self.prefer_heuristic,
            "allow_hybrid": self.allow_hybrid,
            "fallback_profile": self.fallback_profile,
            "profile_rules": self.profile_rules,
        }


@dataclass(frozen=True, slots=True)
class StandardsConfig:
    """Organization-specific naming standards."""

    api_prefix: str = "/api/v2/"
    extension_namespace: str = "x-org"

    def to_dict(self) -> dict[str, Any]:
        return {"api_prefix": self.api_prefix, "extension_namespace": self.extension_namespace}


@dataclass(slots=True)
class ValidatorsConfig:
    """External structural validator delegation."""

    enable: list[str] = field(default_factory=lambda: ["refs"])
    timeout_seconds: float = 10.0
    command: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "enable": list(self.enable),
            "timeout_seconds": self.timeout_seconds,
            "command": list(self.command),
        }


@dataclass(slots=True)
class AppConfig:
    """Runtime configuration values resolved from project files."""

    format: str = "human"
    fail_below: int | None = None
    workers: int = 1
    rule_enable: list[str] | None = None
    rule_disable: list[str] = field(default_factory=list)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    standards: StandardsConfig = field(default_factory=StandardsConfig)
    validators: ValidatorsConfig = field(default_factory=ValidatorsConfig)
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format,
            "fail_below": self.fail_below,
            "workers": self.workers,
            "rules": {
                "enable": list(self.rule_enable) if self.rule_enable is not None else None,
                "disable": list(self.rule_disable),
            },
            "detection": self.detection.to_dict(),
            "standards": self.standards.to_dict(),
            "validators": self.validators.to_dict(),
            "source": self.source,
        }


def load_app_config(repo: Path, config_path: Path | None = None) -> AppConfig:
    """Load config from explicit path or repository-local files with precedence."""
    repo = repo.resolve()
    if config_path is not None:
        resolved = config_path if config_path.is_absolute() else (repo / config_path)
        if not resolved.exists():
            raise ValueError(f"Config file does not exist: {resolved}")
        mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
        return _from_mapping(mapping, source=str(resolved))

    for filename in CONFIG_FILENAMES:
        resolved = repo / filename
        if resolved.exists():
            mapping = _extract_config_mapping(_load_toml(resolved), source_path=resolved)
            return _from_mapping(mapping, source=str(resolved))

    pyproject_path = repo / PYPROJECT_FILENAME
    if pyproject_path.exists():
        mapping = _extract_config_mapping(_load_toml(pyproject_path), source_path=pyproject_path)
        if mapping:
            return _from_mapping(mapping, source=str(pyproject_path))

    return AppConfig()


def default_config_template() -> str:
    """Return a starter config template."""
    return "\n".join(
        [
            'format = "human"',
            "fail_below = 80",
            "workers = 1",
            "",
            "[rules]",
            "enable = [",
            '  "tenancy",',
            '  "pagination",',
            '  "http_semantics",',
            '  "webhooks",',
            '  "extensions",',
            '  "naming",',
            "]",
            "disable = []",
            "",
            "[detection]",
            "min_confidence = 0.5",
            "prefer_heuristic = true",
            "allow_hybrid = true",
            f'fallback_profile = "{FALLBACK_PROFILE}"',
            "profile_rules = false",
            "",
            "[standards]",
            'api_prefix = "/api/v2/"',
            'extension_namespace = "x-org"',
            "",
            "[validators]",
            'enable = ["refs"]',
            "timeout_seconds = 10",
            '# command = ["spectral", "lint", "--format", "json", "{source}"]',
            "",
        ]
    )


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as file_obj:
            loaded = tomllib.load(file_obj)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in {path}: {exc}") from exc
    if not isinstance(loaded, dict):
        return {}
    return loaded


def _extract_config_mapping(loaded: dict[str, Any], *, source_path: Path) -> dict[str, Any]:
    if source_path.name == PYPROJECT_FILENAME:
        section = _find_pyproject_tool_section(loaded)
        return section if section is not None else {}

    tool_section = _find_pyproject_tool_section(loaded)
    if tool_section is not None:
        return tool_section
    return loaded


def _find_pyproject_tool_section(loaded: dict[str, Any]) -> dict[str, Any] | None:
    tool = loaded.get("tool")
    if not isinstance(tool, dict):
        return None
    for key in PYPROJECT_TOOL_KEYS:
        section = tool.get(key)
        if isinstance(section, dict):
            return section
    return None


def _from_mapping(mapping: dict[str, Any], *, source: str) -> AppConfig:
    rules_mapping = _as_table(mapping.get("rules"), "rules")
    detection_mapping = _as_table(mapping.get("detection"), "detection")
    standards_mapping = _as_table(mapping.get("standards"), "standards")
    validators_mapping = _as_table(mapping.get("validators"), "validators")

    raw_format = mapping.get("format", "human")
    format_value = str(raw_format).lower()
    if format_value not in {"human", "json"}:
        format_value = "human"

    raw_fail = mapping.get("fail_below")
    if raw_fail is None:
        fail_value: int | None = None
    elif isinstance(raw_fail, int) and not isinstance(raw_fail, bool):
        if not 0 <= raw_fail <= 100:
            raise ValueError("fail_below must be between 0 and 100")
        fail_value = raw_fail
    else:
        raise ValueError("fail_below must be an integer")

    workers = _as_int(mapping.get("workers", 1), "workers")
    if workers < 1:
        raise ValueError("workers must be >= 1")

    return AppConfig(
        format=format_value,
        fail_below=fail_value,
        workers=workers,
        rule_enable=_as_str_list_or_none(rules_mapping.get("enable")),
        rule_disable=_as_str_list(rules_mapping.get("disable")),
        detection=_parse_detection_config(detection_mapping),
        standards=_parse_standards_config(standards_mapping),
        validators=_parse_validators_config(validators_mapping),
        source=source,
    )


def _parse_detection_config(value: dict[str, Any]) -> DetectionConfig:
    min_confidence = _as_float(value.get("min_confidence", 0.5), "detection.min_confidence")
    if not 0.0 <= min_confidence <= 1.0:
        raise ValueError("detection.min_confidence must be between 0 and 1")
    return DetectionConfig(
        min_confidence=min_confidence,
        prefer_heuristic=_as_bool(
            value.get("prefer_heuristic", True), "detection.prefer_heuristic"
        ),
        allow_hybrid=_as_bool(value.get("allow_hybrid", True), "detection.allow_hybrid"),
        fallback_profile=_as_choice(
            value.get("fallback_profile", FALLBACK_PROFILE),
            set(KNOWN_PROFILES),
            "detection.fallback_profile",
        ),
        profile_rules=_as_bool(value.get("profile_rules", False), "detection.profile_rules"),
    )


def _parse_standards_config(value: dict[str, Any]) -> StandardsConfig:
    api_prefix = _as_str(value.get("api_prefix", "/api/v2/"), "standards.api_prefix")
    if not api_prefix.startswith("/"):
        raise ValueError("standards.api_prefix must start with '/'")
    namespace = _as_str(
        value.get("extension_namespace", "x-org"), "standards.extension_namespace"
    )
    if not namespace.startswith("x-"):
        raise ValueError("standards.extension_namespace must start with 'x-'")
    return StandardsConfig(api_prefix=api_prefix, extension_namespace=namespace)


def _parse_validators_config(value: dict[str, Any]) -> ValidatorsConfig:
    timeout = _as_float(value.get("timeout_seconds", 10.0), "validators.timeout_seconds")
    if timeout <= 0:
        raise ValueError("validators.timeout_seconds must be > 0")
    enable = value.get("enable")
    return ValidatorsConfig(
        enable=["refs"] if enable is None else _as_str_list(enable),
        timeout_seconds=timeout,
        command=_as_str_list(value.get("command")),
    )


def _as_table(value: Any, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{field_name} must be a table/object")
    return value


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError("Expected a list of strings")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError("Expected a list of strings")
        items.append(item)
    return items


def _as_str_list_or_none(value: Any) -> list[str] | None:
    if value is None:
        return None
    return _as_str_list(value)


def _as_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")
    return value


def _as_choice(raw: Any, allowed: set[str], field_name: str) -> str:
    value = str(raw).lower()
    if value not in allowed:
        choices = ", ".join(sorted(allowed))
        raise ValueError(f"{field_name} must be one of: {choices}")
    return value


def _as_int(raw: Any, field_name: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"{field_name} must be an integer")
    return raw


def _as_bool(raw: Any, field_name: str) -> bool:
    if not isinstance(raw, bool):
        raise ValueError(f"{field_name} must be a boolean")
    return raw


def _as_float(raw: Any, field_name: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"{field_name} must be a number")
    return float(raw)
