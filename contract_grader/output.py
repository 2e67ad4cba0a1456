"""Output rendering."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

import click

from contract_grader import __version__
from contract_grader.checkpoints import Checkpoint
from contract_grader.detection import DetectionResult
from contract_grader.fixes import ApplyResult, FixItem
from contract_grader.grading import GradingReport
from contract_grader.rules.base import Finding

_SEVERITY_COLORS = {"error": "red", "warn": "yellow", "info": "cyan"}
_RISK_COLORS = {"low": "green", "medium": "yellow", "high": "red"}


def render_grade_human(report: GradingReport, *, limit: int = 20) -> str:
    """Render a compact colorized grade summary."""
    grade = report.grade
    status, color = ("PASS", "green") if grade.passed else ("FAIL", "red")
    lines: list[str] = [
        click.style(
            f"Score: {grade.score}/100 ({grade.letter}) {status}",
            fg=color,
            bold=True,
        ),
        _detection_line(report.detection),
    ]

    lines.append(click.style("Categories:", bold=True))
    for item in grade.per_category:
        waived = " (waived)" if item.category in report.waived_categories else ""
        lines.append(f"- {item.category}: {item.points_added}/{item.points_max}{waived}")

    if grade.auto_fail_reasons:
        lines.append(click.style("Auto-fail reasons:", fg="red", bold=True))
        lines.extend(f"- {reason}" for reason in grade.auto_fail_reasons)

    if report.findings:
        lines.append(click.style(f"Findings ({len(report.findings)}):", bold=True))
        for finding in report.findings[:limit]:
            lines.append(_finding_line(finding))
        if len(report.findings) > limit:
            lines.append(f"... {len(report.findings) - limit} more (use --format json)")

    failed = [run for run in report.validator_runs if run.status in ("failed", "timeout")]
    for run in failed:
        lines.append(
            click.style(f"Validator {run.validator_id} {run.status}: {run.reason}", fg="yellow")
        )
    return "\n".join(lines)


def render_detection_human(result: DetectionResult) -> str:
    lines = [_detection_line(result)]
    if result.secondary_profiles:
        lines.append(click.style("Secondary profiles:", bold=True))
        for item in result.secondary_profiles:
            lines.append(f"- {item.profile} ({item.confidence:.0%})")
    lines.append(click.style("Signals:", bold=True))
    for signal in sorted(result.signals, key=lambda item: -item.weight):
        lines.append(f"- {signal.profile_candidate}: {signal.percent:.1f}%")
        for evidence in signal.evidence:
            lines.append(f"    {evidence}")
    if result.heuristic is not None and result.heuristic.profile is not None:
        lines.append(
            f"Heuristic: {result.heuristic.profile} ({result.heuristic.confidence:.0%})"
            + (" ambiguous" if result.heuristic.ambiguous else "")
        )
    for warning in result.warnings:
        lines.append(click.style(f"warning: {warning}", fg="yellow"))
    return "\n".join(lines)


def render_fixes_human(fixes: list[FixItem]) -> str:
    if not fixes:
        return click.style("No fixes available.", fg="green")
    lines = [click.style(f"Fixes ({len(fixes)}):", bold=True)]
    for index, fix in enumerate(fixes, start=1):
        risk = click.style(fix.risk, fg=_RISK_COLORS.get(fix.risk, "white"))
        lines.append(f"{index}. [{fix.rule_id}] {fix.description} (risk: {risk})")
        lines.append(f"   at: {fix.location_path or '/'}")
        lines.append(f"   why: {fix.rationale}")
        lines.append(f"   patch: {fix.patch.kind}")
    return "\n".join(lines)


def render_apply_human(result: ApplyResult) -> str:
    lines: list[str] = []
    for outcome in result.outcomes:
        color = "red" if outcome.status == "conflict" else "green"
        reason = f": {outcome.reason}" if outcome.reason else ""
        lines.append(
            click.style(f"{outcome.status}", fg=color)
            + f" [{outcome.rule_id}] {outcome.location_path}{reason}"
        )
    if not lines:
        lines.append("Nothing to apply.")
    return "\n".join(lines)


def render_checkpoints_human(checkpoints: list[Checkpoint]) -> str:
    lines: list[str] = []
    for checkpoint in checkpoints:
        flag = click.style(" auto-fail", fg="red") if checkpoint.auto_fail else ""
        lines.append(
            f"{checkpoint.id} [{checkpoint.category}] {checkpoint.weight} pts{flag}: "
            f"{checkpoint.description}"
        )
    return "\n".join(lines)


def build_meta(*, input_source: str) -> dict[str, Any]:
    return {
        "generated_at": datetime.now(tz=UTC)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z"),
        "input_source": input_source,
        "version": __version__,
    }


def build_grade_payload(report: GradingReport, *, input_source: str) -> dict[str, Any]:
    """Build stable JSON payload for CI and automation."""
    payload = report.to_dict()
    payload["meta"] = build_meta(input_source=input_source)
    return payload


def render_json(payload: dict[str, Any], *, input_source: str | None = None) -> str:
    """Serialize a payload, attaching ``meta`` when an input source is given."""
    if input_source is not None and "meta" not in payload:
        payload = {**payload, "meta": build_meta(input_source=input_source)}
    return json.dumps(payload, sort_keys=True)


def _detection_line(result: DetectionResult) -> str:
    suffix = " (fallback)" if result.fallback_used else ""
    hybrid = " hybrid" if result.is_hybrid else ""
    return (
        f"Profile: {result.primary_profile}{hybrid} "
        f"{result.confidence:.0%} via {result.method}{suffix}"
    )


def _finding_line(finding: Finding) -> str:
    label = click.style(
        finding.severity.upper(), fg=_SEVERITY_COLORS.get(finding.severity, "white")
    )
    return f"{label} [{finding.rule_id}] {finding.message} ({finding.location_path or '/'})"
