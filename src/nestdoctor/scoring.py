"""Health score: weighted diagnostic penalty normalized by project size."""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any

from nestdoctor.errors import ConfigurationError, ValidationError
from nestdoctor.models import CATEGORIES, SEVERITIES, Score

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from nestdoctor.models import Diagnostic


# ---------------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoreWeights:
    """Severity weights and category multipliers.

    Configurable via the ``scoring`` section of the project config::

        scoring:
          severity: {error: 3, warning: 1.5}
          category: {security: 2}
    """

    # Severity weights
    error: float = 3.0
    warning: float = 1.5
    info: float = 0.5
    # Category multipliers
    security: float = 1.5
    correctness: float = 1.3
    architecture: float = 1.0
    performance: float = 0.8

    def severity_weight(self, severity: str) -> float:
        return float(getattr(self, severity))

    def category_multiplier(self, category: str) -> float:
        return float(getattr(self, category))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> ScoreWeights:
        """Build weights from a ``scoring`` config section; missing keys keep defaults.

        Raises
        ------
        ConfigurationError
            On unknown keys or values that are not non-negative numbers.
        """
        if not data:
            return cls()
        if not isinstance(data, dict):
            msg = "scoring must be a mapping with 'severity' and/or 'category' sections"
            raise ConfigurationError(msg)

        kwargs: dict[str, float] = {}
        sections = {"severity": SEVERITIES, "category": CATEGORIES}
        for section, data_section in data.items():
            allowed = sections.get(section)
            if allowed is None:
                msg = f"scoring: unknown section '{section}', expected one of {sorted(sections)}"
                raise ConfigurationError(msg)
            if not isinstance(data_section, dict):
                msg = f"scoring.{section} must be a mapping"
                raise ConfigurationError(msg)
            for key, value in data_section.items():
                if key not in allowed:
                    msg = f"scoring.{section}: unknown key '{key}'"
                    raise ConfigurationError(msg)
                if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                    msg = f"scoring.{section}.{key} must be a non-negative number, got {value!r}"
                    raise ConfigurationError(msg)
                kwargs[key] = float(value)

        defaults = cls()
        for f in fields(cls):
            kwargs.setdefault(f.name, getattr(defaults, f.name))
        return cls(**kwargs)


DEFAULT_WEIGHTS = ScoreWeights()


# ---------------------------------------------------------------------------
# Score
# ---------------------------------------------------------------------------


def score_label(value: int) -> str:
    """Map a score to its label.

    Ranges (inclusive):
      90-100 -> Excellent
      75-89  -> Good
      50-74  -> Fair
      25-49  -> Poor
      0-24   -> Critical
    """
    if value >= 90:
        return "Excellent"
    if value >= 75:
        return "Good"
    if value >= 50:
        return "Fair"
    if value >= 25:
        return "Poor"
    return "Critical"


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def calculate_score(
    diagnostics: Iterable[Diagnostic],
    file_count: int,
    weights: ScoreWeights | None = None,
) -> Score:
    """Reduce *diagnostics* to a 0-100 score.

    ``penalty`` is the sum of severity weight times category multiplier over
    all diagnostics; the score is ``100 - penalty / file_count * 10``,
    rounded half up and clamped.  An empty project scores 100.
    """
    if file_count <= 0:
        return Score(value=100, label=score_label(100))

    w = weights or DEFAULT_WEIGHTS
    penalty = sum(
        w.severity_weight(d.severity) * w.category_multiplier(d.category) for d in diagnostics
    )
    raw = 100 - penalty / file_count * 10
    value = max(0, min(100, _round_half_up(raw)))
    return Score(value=value, label=score_label(value))


# ---------------------------------------------------------------------------
# Minimum score gate
# ---------------------------------------------------------------------------


def validate_min_score(raw: str | int | None) -> int | None:
    """Parse a ``--min-score`` value; ``None`` means no gate.

    Raises
    ------
    ValidationError
        If the value is not an integer between 0 and 100.
    """
    if raw is None:
        return None
    msg = f'Invalid --min-score value: "{raw}". Must be an integer between 0 and 100.'
    if isinstance(raw, bool):
        raise ValidationError(msg)
    try:
        value = float(str(raw).strip())
    except ValueError as exc:
        raise ValidationError(msg) from exc
    if not value.is_integer() or not 0 <= value <= 100:
        raise ValidationError(msg)
    return int(value)


def check_min_score(score: Score, min_score: int | None) -> bool:
    """True when *score* meets *min_score* (always true without a gate)."""
    return min_score is None or score.value >= min_score
