"""Composite score aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field

from contract_grader.checkpoints import CATEGORY_ORDER
from contract_grader.rules.base import CategoryScore

# Lower bound of each letter band, best first.
LETTER_BANDS: tuple[tuple[int, str], ...] = (
    (97, "A+"),
    (93, "A"),
    (90, "A-"),
    (87, "B+"),
    (83, "B"),
    (80, "B-"),
    (70, "C"),
    (60, "D"),
)
FAILING_LETTER = "F"


@dataclass(slots=True)
class CompositeGrade:
    """Aggregated grade over all category scores."""

    score: int
    per_category: list[CategoryScore]
    auto_fail_reasons: list[str] = field(default_factory=list)
    passed: bool = True
    letter: str = FAILING_LETTER

    def to_dict(self) -> dict[str, object]:
        return {
            "score": self.score,
            "per_category": [item.to_dict() for item in self.per_category],
            "auto_fail_reasons": list(self.auto_fail_reasons),
            "passed": self.passed,
            "letter": self.letter,
        }


def aggregate(
    category_scores: list[CategoryScore], auto_fail_reasons: list[str]
) -> CompositeGrade:
    """Sum category points, clamp to [0, 100], and apply the auto-fail override.

    Category points are taken as reported; each evaluator already keeps its
    points within ``[0, points_max]``.
    """
    ordered = sorted(category_scores, key=_category_rank)
    score = _clamp(sum(item.points_added for item in ordered))
    reasons = list(auto_fail_reasons)
    passed = not reasons
    return CompositeGrade(
        score=score,
        per_category=ordered,
        auto_fail_reasons=reasons,
        passed=passed,
        letter=letter_grade(score, auto_failed=not passed),
    )


def letter_grade(score: int, *, auto_failed: bool = False) -> str:
    if auto_failed:
        return FAILING_LETTER
    for floor, letter in LETTER_BANDS:
        if score >= floor:
            return letter
    return FAILING_LETTER


def _category_rank(item: CategoryScore) -> tuple[int, str]:
    if item.category in CATEGORY_ORDER:
        return (CATEGORY_ORDER.index(item.category), item.category)
    return (len(CATEGORY_ORDER), item.category)


def _clamp(value: int, lower: int = 0, upper: int = 100) -> int:
    return max(lower, min(upper, value))
