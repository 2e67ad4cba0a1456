"""Rule data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Protocol

from contract_grader.checkpoints import RuleId, category_max, get_checkpoint
from contract_grader.document import ApiDocument

Severity = Literal["error", "warn", "info"]
SEVERITY_ORDER: dict[str, int] = {"error": 0, "warn": 1, "info": 2}


@dataclass(frozen=True, slots=True)
class Finding:
    rule_id: str
    severity: Severity
    message: str
    location_path: str
    category: str

    def to_dict(self) -> dict[str, str]:
        return {
            "rule_id": str(self.rule_id),
            "severity": self.severity,
            "message": self.message,
            "location_path": self.location_path,
            "category": self.category,
        }


@dataclass(frozen=True, slots=True)
class CategoryScore:
    category: str
    points_added: int
    points_max: int

    def to_dict(self) -> dict[str, object]:
        return {
            "category": self.category,
            "points_added": self.points_added,
            "points_max": self.points_max,
        }


@dataclass(slots=True)
class RuleResult:
    """Output of one evaluator run."""

    findings: list[Finding]
    category_score: CategoryScore
    auto_fail_reasons: list[str] = field(default_factory=list)


class Evaluator(Protocol):
    evaluator_id: str
    category: str

    def evaluate(self, document: ApiDocument) -> RuleResult:
        """Inspect the document and score one compliance category."""


class CategoryTally:
    """Collect findings for one category and derive its score.

    The score starts at the category maximum and loses each violated
    checkpoint's weight once, however many findings that checkpoint produced.
    """

    def __init__(self, category: str) -> None:
        self.category = category
        self.findings: list[Finding] = []
        self.auto_fail_reasons: list[str] = []
        self._violated: list[str] = []

    def violation(
        self,
        rule_id: RuleId,
        message: str,
        location_path: str,
        *,
        severity: Severity | None = None,
    ) -> Finding:
        checkpoint = get_checkpoint(rule_id)
        if checkpoint is None or checkpoint.category != self.category:
            raise ValueError(f"{rule_id} is not a {self.category} checkpoint")
        resolved = severity or ("error" if checkpoint.auto_fail else "warn")
        finding = Finding(
            rule_id=str(rule_id),
            severity=resolved,
            message=message,
            location_path=location_path,
            category=self.category,
        )
        self.findings.append(finding)
        if str(rule_id) not in self._violated:
            self._violated.append(str(rule_id))
        return finding

    def auto_fail(self, reason: str) -> None:
        if reason not in self.auto_fail_reasons:
            self.auto_fail_reasons.append(reason)

    def violated(self, rule_id: RuleId) -> bool:
        return str(rule_id) in self._violated

    def result(self) -> RuleResult:
        points_max = category_max(self.category)
        penalty = 0
        for rule_id in self._violated:
            checkpoint = get_checkpoint(rule_id)
            if checkpoint is not None:
                penalty += checkpoint.weight
        return RuleResult(
            findings=list(self.findings),
            category_score=CategoryScore(
                category=self.category,
                points_added=max(0, points_max - penalty),
                points_max=points_max,
            ),
            auto_fail_reasons=list(self.auto_fail_reasons),
        )
