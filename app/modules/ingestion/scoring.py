"""Quality scoring for validated payloads."""

from dataclasses import dataclass
from typing import AbstractSet


@dataclass(frozen=True)
class QualityWeights:
    """Relative weight of each sub-score in the overall quality score.

    Equal by default. Weights are normalized, so (2, 1, 1) and (0.5, 0.25,
    0.25) score identically.
    """

    completeness: float = 1.0
    accuracy: float = 1.0
    consistency: float = 1.0

    def __post_init__(self) -> None:
        if min(self.completeness, self.accuracy, self.consistency) < 0:
            raise ValueError("quality weights cannot be negative")
        if self.completeness + self.accuracy + self.consistency <= 0:
            raise ValueError("at least one quality weight must be positive")

    def combine(self, completeness: float, accuracy: float, consistency: float) -> float:
        total = self.completeness + self.accuracy + self.consistency
        return (
            completeness * self.completeness
            + accuracy * self.accuracy
            + consistency * self.consistency
        ) / total


@dataclass(frozen=True)
class QualityScores:
    completeness: float
    accuracy: float
    consistency: float
    overall: int


def score_fields(
    expected: AbstractSet[str],
    present: AbstractSet[str],
    accurate: AbstractSet[str],
    inconsistent: AbstractSet[str],
    weights: QualityWeights,
) -> QualityScores:
    """Score a payload over its expected fields.

    Args:
        expected: Required fields plus present optional fields
        present: Expected fields that have a value
        accurate: Present fields that passed type and format checks
        inconsistent: Fields involved in a violated consistency rule
        weights: Sub-score weighting

    Returns:
        Sub-scores as percentages and the weighted overall score (0-100)
    """
    if not expected:
        return QualityScores(100.0, 100.0, 100.0, 100)

    total = len(expected)
    completeness = 100.0 * len(present & expected) / total
    accuracy = 100.0 * len(accurate & expected) / total
    consistency = 100.0 * len((present & expected) - inconsistent) / total
    overall = round(weights.combine(completeness, accuracy, consistency))
    return QualityScores(
        round(completeness, 2),
        round(accuracy, 2),
        round(consistency, 2),
        max(0, min(100, overall)),
    )
