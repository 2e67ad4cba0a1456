"""Optional structural validators delegated outside the core grader."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from pathlib import Path
from subprocess import TimeoutExpired, run
from typing import Any

from contract_grader.checkpoints import STRUCTURE_CATEGORY
from contract_grader.config import ValidatorsConfig
from contract_grader.document import ApiDocument, iter_refs, pointer, resolve_pointer
from contract_grader.rules.base import Finding, Severity

logger = logging.getLogger(__name__)

REF_RULE_ID = "OAS-REF"
SOURCE_PLACEHOLDER = "{source}"
_SPECTRAL_SEVERITY: dict[int, Severity] = {0: "error", 1: "warn", 2: "info", 3: "info"}
_NAMED_SEVERITY: dict[str, Severity] = {
    "error": "error",
    "warn": "warn",
    "warning": "warn",
    "info": "info",
    "hint": "info",
}


class ValidatorError(RuntimeError):
    """Raised when an external validator cannot produce findings."""


class ValidatorTimeoutError(ValidatorError):
    """Raised when an external validator outlives its timeout."""


@dataclass(frozen=True, slots=True)
class ValidatorInfo:
    """Public validator metadata."""

    validator_id: str
    description: str
    default_enabled: bool


@dataclass(slots=True)
class ValidatorRun:
    """Per-validator execution record."""

    validator_id: str
    status: str
    reason: str
    elapsed_ms: int | None = None
    findings: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "validator_id": self.validator_id,
            "status": self.status,
            "reason": self.reason,
            "elapsed_ms": self.elapsed_ms,
            "findings": self.findings,
        }


class ValidatorBase:
    """Base class for structural validators."""

    validator_id: str = ""
    default_enabled: bool = False

    def validate(self, document: ApiDocument, source_text: str) -> list[Finding]:
        """Inspect the document and emit structural findings."""
        raise NotImplementedError


class RefsValidator(ValidatorBase):
    """Reports local $ref targets that do not exist in the document."""

    validator_id = "refs"
    default_enabled = True

    def validate(self, document: ApiDocument, source_text: str) -> list[Finding]:
        findings: list[Finding] = []
        for ref, location in iter_refs(document.raw):
            if not ref.startswith("#"):
                continue
            try:
                resolve_pointer(document.raw, ref[1:])
            except (KeyError, ValueError):
                findings.append(
                    Finding(
                        rule_id=REF_RULE_ID,
                        severity="error",
                        message=f"Unresolved reference {ref}",
                        location_path=location,
                        category=STRUCTURE_CATEGORY,
                    )
                )
        return findings


class CommandValidator(ValidatorBase):
    """Runs an external linter that prints Spectral-style JSON results."""

    validator_id = "command"

    def __init__(self, command: list[str] | None = None, timeout_seconds: float = 10.0) -> None:
        self.command = list(command or [])
        self.timeout_seconds = timeout_seconds

    def validate(self, document: ApiDocument, source_text: str) -> list[Finding]:
        if not self.command:
            return []
        if any(SOURCE_PLACEHOLDER in arg for arg in self.command):
            return self._run_with_file(source_text)
        return self._run(self.command, stdin=source_text)

    def _run_with_file(self, source_text: str) -> list[Finding]:
        with tempfile.NamedTemporaryFile(
            "w", prefix="contract-grader-", suffix=".yaml", delete=False, encoding="utf-8"
        ) as handle:
            handle.write(source_text)
            temp_path = Path(handle.name)
        try:
            args = [arg.replace(SOURCE_PLACEHOLDER, str(temp_path)) for arg in self.command]
            return self._run(args, stdin=None)
        finally:
            temp_path.unlink(missing_ok=True)

    def _run(self, args: list[str], *, stdin: str | None) -> list[Finding]:
        try:
            completed = run(
                args,
                input=stdin,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout_seconds,
                env=os.environ.copy(),
            )
        except TimeoutExpired as exc:
            raise ValidatorTimeoutError(
                f"{args[0]} timed out after {self.timeout_seconds}s"
            ) from exc
        except OSError as exc:
            raise ValidatorError(f"{args[0]} could not start: {exc}") from exc

        output = completed.stdout.strip()
        if not output:
            if completed.returncode != 0:
                stderr = completed.stderr.strip()
                raise ValidatorError(stderr or f"{args[0]} exited with {completed.returncode}")
            return []
        try:
            payload = json.loads(output)
        except json.JSONDecodeError as exc:
            raise ValidatorError(f"{args[0]} did not print JSON: {exc}") from exc
        if not isinstance(payload, list):
            raise ValidatorError(f"{args[0]} printed {type(payload).__name__}, expected a list")
        return [_spectral_finding(item) for item in payload if isinstance(item, dict)]


def list_validator_info() -> list[ValidatorInfo]:
    """List built-in validators."""
    return [
        ValidatorInfo(
            validator_id=cls.validator_id,
            description=(cls.__doc__ or "").strip(),
            default_enabled=cls.default_enabled,
        )
        for cls in _VALIDATOR_CLASSES
    ]


def build_validators(config: ValidatorsConfig | None = None) -> list[ValidatorBase]:
    """Instantiate the enabled validators; raises ``ValueError`` on unknown ids."""
    config = config or ValidatorsConfig()
    known = {cls.validator_id for cls in _VALIDATOR_CLASSES}
    unknown = sorted(item for item in set(config.enable) if item not in known)
    if unknown:
        raise ValueError(f"Unknown validator ids: {', '.join(unknown)}")

    validators: list[ValidatorBase] = []
    for validator_id in _dedupe(config.enable):
        if validator_id == CommandValidator.validator_id:
            validators.append(CommandValidator(config.command, config.timeout_seconds))
        else:
            validators.append(RefsValidator())
    return validators


def run_validators(
    document: ApiDocument,
    source_text: str,
    validators: list[ValidatorBase],
    *,
    timeout_seconds: float = 10.0,
) -> tuple[list[Finding], list[ValidatorRun]]:
    """Run each validator behind a timeout.

    A validator that raises or exceeds its timeout contributes no findings;
    its failure is logged and recorded on the returned run. Command validators
    run inline under their own subprocess timeout, which kills the child.
    """
    findings: list[Finding] = []
    runs: list[ValidatorRun] = []
    for validator in validators:
        run_record = ValidatorRun(validator.validator_id, status="skipped", reason="unscheduled")
        if isinstance(validator, CommandValidator) and not validator.command:
            run_record.reason = "no command configured"
            runs.append(run_record)
            continue
        findings.extend(_run_one(validator, document, source_text, run_record, timeout_seconds))
        runs.append(run_record)
    return findings, runs


def _run_one(
    validator: ValidatorBase,
    document: ApiDocument,
    source_text: str,
    run_record: ValidatorRun,
    timeout_seconds: float,
) -> list[Finding]:
    start = time.perf_counter()
    try:
        if isinstance(validator, CommandValidator):
            produced = validator.validate(document, source_text)
        else:
            produced = _run_in_thread(validator, document, source_text, timeout_seconds)
    except (FutureTimeoutError, ValidatorTimeoutError) as exc:
        logger.warning("Validator %s timed out: %s", validator.validator_id, exc)
        run_record.status = "timeout"
        run_record.reason = str(exc) or f"exceeded {timeout_seconds}s"
        return []
    except Exception as exc:
        logger.warning("Validator %s failed: %s", validator.validator_id, exc)
        run_record.status = "failed"
        run_record.reason = f"{exc.__class__.__name__}: {exc}"
        return []
    finally:
        run_record.elapsed_ms = int((time.perf_counter() - start) * 1000)

    run_record.status = "ran"
    run_record.reason = "completed"
    run_record.findings = len(produced)
    return produced


def _run_in_thread(
    validator: ValidatorBase,
    document: ApiDocument,
    source_text: str,
    timeout_seconds: float,
) -> list[Finding]:
    """Run an in-process validator on a worker thread.

    Python threads cannot be cancelled: a worker that times out keeps running
    until ``validate`` returns, and interpreter exit waits for it.
    """
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="contract-grader-validator")
    try:
        return pool.submit(validator.validate, document, source_text).result(
            timeout=timeout_seconds
        )
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


def _spectral_finding(item: dict[str, Any]) -> Finding:
    raw_path = item.get("path")
    path = raw_path if isinstance(raw_path, list) else []
    severity = item.get("severity", 0)
    resolved: Severity = "error"
    if isinstance(severity, str):
        resolved = _NAMED_SEVERITY.get(severity.lower(), "error")
    elif isinstance(severity, int):
        resolved = _SPECTRAL_SEVERITY.get(severity, "error")
    return Finding(
        rule_id=str(item.get("code") or "external"),
        severity=resolved,
        message=str(item.get("message") or ""),
        location_path=pointer(*path),
        category=STRUCTURE_CATEGORY,
    )


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        output.append(item)
    return output


_VALIDATOR_CLASSES: tuple[type[ValidatorBase], ...] = (RefsValidator, CommandValidator)
