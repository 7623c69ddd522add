"""Tests for nestdoctor.scoring: score reduction, labels, weights and the min-score gate."""

from __future__ import annotations

import pytest

from nestdoctor.errors import ConfigurationError, ValidationError
from nestdoctor.models import Diagnostic, Score
from nestdoctor.scoring import (
    ScoreWeights,
    calculate_score,
    check_min_score,
    score_label,
    validate_min_score,
)


def _diag(severity: str = "error", category: str = "correctness") -> Diagnostic:
    return Diagnostic(
        file_path="a.ts",
        line=1,
        column=1,
        message="m",
        help="h",
        rule="r",
        category=category,
        severity=severity,
    )


class TestCalculateScore:
    def test_no_diagnostics(self) -> None:
        assert calculate_score([], 10) == Score(value=100, label="Excellent")

    def test_single_error_in_ten_files(self) -> None:
        # penalty 3.0 * 1.3 = 3.9 -> 100 - 3.9 = 96.1
        assert calculate_score([_diag()], 10) == Score(value=96, label="Excellent")

    def test_empty_project(self) -> None:
        assert calculate_score([_diag()] * 50, 0).value == 100

    def test_clamped_at_zero(self) -> None:
        score = calculate_score([_diag("error", "security")] * 100, 1)
        assert score == Score(value=0, label="Critical")

    def test_rounds_half_up(self) -> None:
        # 2 info/architecture diagnostics in 2 files: 100 - 1.0 / 2 * 10 = 95.0
        assert calculate_score([_diag("info", "architecture")] * 2, 2).value == 95
        # 1 info/architecture in 4 files: 100 - 0.5 / 4 * 10 = 98.75
        assert calculate_score([_diag("info", "architecture")], 4).value == 99

    def test_monotonic_in_diagnostics(self) -> None:
        previous = 100
        for n in range(30):
            value = calculate_score([_diag("warning", "performance")] * n, 5).value
            assert value <= previous
            previous = value

    def test_bounds(self) -> None:
        for n in (0, 1, 10, 1000):
            for files in (1, 3, 100):
                value = calculate_score([_diag()] * n, files).value
                assert 0 <= value <= 100

    def test_custom_weights(self) -> None:
        weights = ScoreWeights.from_mapping({"severity": {"error": 10}})
        # 10 * 1.3 = 13 -> 100 - 13 = 87
        assert calculate_score([_diag()], 10, weights).value == 87


class TestScoreLabel:
    @pytest.mark.parametrize(
        ("value", "label"),
        [
            (100, "Excellent"),
            (90, "Excellent"),
            (89, "Good"),
            (75, "Good"),
            (74, "Fair"),
            (50, "Fair"),
            (49, "Poor"),
            (25, "Poor"),
            (24, "Critical"),
            (0, "Critical"),
        ],
    )
    def test_boundaries(self, value: int, label: str) -> None:
        assert score_label(value) == label


class TestScoreWeights:
    def test_defaults(self) -> None:
        weights = ScoreWeights()
        assert weights.severity_weight("warning") == 1.5
        assert weights.category_multiplier("performance") == 0.8

    def test_partial_override_keeps_defaults(self) -> None:
        weights = ScoreWeights.from_mapping({"category": {"security": 2}})
        assert weights.security == 2.0
        assert weights.error == 3.0

    @pytest.mark.parametrize(
        "data",
        [
            {"unknown": {}},
            {"severity": {"fatal": 1}},
            {"severity": {"error": -1}},
            {"severity": {"error": "high"}},
            {"category": [1, 2]},
        ],
    )
    def test_invalid(self, data: dict[str, object]) -> None:
        with pytest.raises(ConfigurationError):
            ScoreWeights.from_mapping(data)


class TestMinScore:
    @pytest.mark.parametrize(("raw", "expected"), [("0", 0), ("75", 75), (" 100 ", 100), (80, 80)])
    def test_valid(self, raw: str | int, expected: int) -> None:
        assert validate_min_score(raw) == expected

    def test_none(self) -> None:
        assert validate_min_score(None) is None

    @pytest.mark.parametrize("raw", ["abc", "-1", "101", "50.5", ""])
    def test_invalid(self, raw: str) -> None:
        with pytest.raises(ValidationError, match="Invalid --min-score value"):
            validate_min_score(raw)

    def test_gate(self) -> None:
        score = Score(value=80, label="Good")
        assert check_min_score(score, None)
        assert check_min_score(score, 80)
        assert not check_min_score(score, 81)
