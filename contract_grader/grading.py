"""Grading orchestration: load, detect, evaluate, validate, aggregate."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace

from contract_grader.checkpoints import (
    CATEGORY_ORDER,
    STRUCTURE_CATEGORY,
    category_max,
    is_registered,
)
from contract_grader.config import AppConfig, StandardsConfig
from contract_grader.detection import DetectionOptions, DetectionResult, detect_profile
from contract_grader.loader import LoadedSource, load_source
from contract_grader.rules import build_rules
from contract_grader.rules.base import SEVERITY_ORDER, CategoryScore, Evaluator, Finding, RuleResult
from contract_grader.scoring import CompositeGrade, aggregate
from contract_grader.validators import ValidatorBase, ValidatorRun, run_validators

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GradingOptions:
    """Knobs for one grading run."""

    detection: DetectionOptions = field(default_factory=DetectionOptions)
    profile_rules: bool = False
    workers: int = 1
    enabled_rule_ids: list[str] | None = None
    disabled_rule_ids: list[str] = field(default_factory=list)
    standards: StandardsConfig = field(default_factory=StandardsConfig)
    validator_timeout_seconds: float = 10.0

    @classmethod
    def from_config(cls, config: AppConfig) -> GradingOptions:
        detection = config.detection
        return cls(
            detection=DetectionOptions(
                min_confidence=detection.min_confidence,
                prefer_heuristic=detection.prefer_heuristic,
                allow_hybrid=detection.allow_hybrid,
                fallback_profile=detection.fallback_profile,
            ),
            profile_rules=detection.profile_rules,
            workers=config.workers,
            enabled_rule_ids=config.rule_enable,
            disabled_rule_ids=list(config.rule_disable),
            standards=config.standards,
            validator_timeout_seconds=config.validators.timeout_seconds,
        )


@dataclass(slots=True)
class GradingReport:
    """Everything one grading run produced."""

    detection: DetectionResult
    grade: CompositeGrade
    findings: list[Finding]
    source_hash: str
    validator_runs: list[ValidatorRun] = field(default_factory=list)
    waived_categories: list[str] = field(default_factory=list)
    evaluated_rules: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "detection": self.detection.to_dict(),
            "grade": self.grade.to_dict(),
            "findings": [finding.to_dict() for finding in self.findings],
            "source_hash": self.source_hash,
            "validator_runs": [run.to_dict() for run in self.validator_runs],
            "waived_categories": list(self.waived_categories),
            "evaluated_rules": list(self.evaluated_rules),
        }


def grade_source(
    text: str,
    *,
    options: GradingOptions | None = None,
    validators: list[ValidatorBase] | None = None,
    source_name: str = "openapi.yaml",
) -> GradingReport:
    """Grade raw contract text.

    Document problems never raise here; they surface as findings. Unknown
    evaluator ids in ``options`` raise ``ValueError``.
    """
    loaded = load_source(text, source_name=source_name)
    return grade_loaded(loaded, options=options, validators=validators)


def grade_loaded(
    loaded: LoadedSource,
    *,
    options: GradingOptions | None = None,
    validators: list[ValidatorBase] | None = None,
) -> GradingReport:
    options = options or GradingOptions()
    document = loaded.document

    if options.profile_rules:
        detection = detect_profile(document, options.detection, workers=options.workers)
        evaluators = _evaluators(options, profile=detection.primary_profile)
        results = _evaluate(evaluators, loaded, workers=options.workers)
    else:
        evaluators = _evaluators(options, profile=None)
        detection, results = _detect_and_evaluate(evaluators, loaded, options)

    validator_findings: list[Finding] = []
    validator_runs: list[ValidatorRun] = []
    if validators:
        validator_findings, validator_runs = run_validators(
            document,
            loaded.text,
            validators,
            timeout_seconds=options.validator_timeout_seconds,
        )

    category_scores = [result.category_score for result in results]
    evaluated = {score.category for score in category_scores}
    waived = [category for category in CATEGORY_ORDER if category not in evaluated]
    for category in waived:
        points = category_max(category)
        category_scores.append(CategoryScore(category, points, points))
    if waived:
        logger.debug("Waived categories: %s", ", ".join(waived))

    auto_fail_reasons = [f"{item.rule_id}: {item.message}" for item in loaded.findings]
    for result in results:
        auto_fail_reasons.extend(result.auto_fail_reasons)

    findings = list(loaded.findings)
    for result in results:
        findings.extend(result.findings)
    findings.extend(validator_findings)

    return GradingReport(
        detection=detection,
        grade=aggregate(category_scores, auto_fail_reasons),
        findings=sort_findings([normalize_finding(finding) for finding in findings]),
        source_hash=loaded.source_hash,
        validator_runs=validator_runs,
        waived_categories=waived,
        evaluated_rules=[evaluator.evaluator_id for evaluator in evaluators],
    )


def normalize_finding(finding: Finding) -> Finding:
    """Ad-hoc findings outside the registry are structural errors."""
    if is_registered(finding.rule_id):
        return finding
    if finding.severity == "error" and finding.category == STRUCTURE_CATEGORY:
        return finding
    return replace(finding, severity="error", category=STRUCTURE_CATEGORY)


def sort_findings(findings: list[Finding]) -> list[Finding]:
    return sorted(
        findings,
        key=lambda item: (
            SEVERITY_ORDER.get(item.severity, len(SEVERITY_ORDER)),
            item.category,
            item.rule_id,
            item.location_path,
        ),
    )


def _evaluators(options: GradingOptions, *, profile: str | None) -> list[Evaluator]:
    return build_rules(
        enabled_rule_ids=options.enabled_rule_ids,
        disabled_rule_ids=options.disabled_rule_ids,
        standards=options.standards,
        profile=profile,
    )


def _evaluate(
    evaluators: list[Evaluator], loaded: LoadedSource, *, workers: int
) -> list[RuleResult]:
    document = loaded.document
    if workers <= 1 or len(evaluators) <= 1:
        return [evaluator.evaluate(document) for evaluator in evaluators]
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(lambda evaluator: evaluator.evaluate(document), evaluators))


def _detect_and_evaluate(
    evaluators: list[Evaluator], loaded: LoadedSource, options: GradingOptions
) -> tuple[DetectionResult, list[RuleResult]]:
    document = loaded.document
    if options.workers <= 1:
        detection = detect_profile(document, options.detection)
        return detection, [evaluator.evaluate(document) for evaluator in evaluators]
    with ThreadPoolExecutor(max_workers=options.workers) as pool:
        pending = pool.submit(detect_profile, document, options.detection)
        results = list(pool.map(lambda evaluator: evaluator.evaluate(document), evaluators))
        return pending.result(), results
