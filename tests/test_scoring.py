"""Tests for composite score aggregation."""

from __future__ import annotations

from contract_grader.rules.base import CategoryScore
from contract_grader.scoring import aggregate, letter_grade


def test_aggregate_sums_points_in_category_order() -> None:
    grade = aggregate(
        [
            CategoryScore("naming", 10, 10),
            CategoryScore("security", 17, 25),
            CategoryScore("pagination", 15, 15),
        ],
        [],
    )
    assert grade.score == 42
    assert [item.category for item in grade.per_category] == ["security", "pagination", "naming"]
    assert grade.passed
    assert grade.letter == "F"


def test_aggregate_clamps_to_score_range() -> None:
    high = aggregate([CategoryScore("security", 80, 25), CategoryScore("http", 80, 30)], [])
    assert high.score == 100
    low = aggregate([CategoryScore("security", -40, 25)], [])
    assert low.score == 0


def test_auto_fail_reason_fails_regardless_of_score() -> None:
    grade = aggregate(
        [CategoryScore("security", 25, 25), CategoryScore("http", 30, 30)],
        ["NAME-NAMESPACE: /items is outside /api/v2/"],
    )
    assert grade.score == 55
    assert not grade.passed
    assert grade.letter == "F"
    assert grade.to_dict()["auto_fail_reasons"] == ["NAME-NAMESPACE: /items is outside /api/v2/"]


def test_letter_grade_bands() -> None:
    assert letter_grade(100) == "A+"
    assert letter_grade(97) == "A+"
    assert letter_grade(96) == "A"
    assert letter_grade(90) == "A-"
    assert letter_grade(85) == "B"
    assert letter_grade(70) == "C"
    assert letter_grade(60) == "D"
    assert letter_grade(59) == "F"
    assert letter_grade(100, auto_failed=True) == "F"
