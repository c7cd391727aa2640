"""Performance scoring: weighted score, classification bands and risk tiers."""

import math
from typing import List, Tuple

from app.models import (
    METRIC_FIELDS,
    SUBJECTS,
    PerformanceLevel,
    Prediction,
    RiskTier,
    ScoredStudent,
    StudentMetrics,
)

# Fixed weights of the composite score; they sum to 1.0.
GRADE_WEIGHT = 0.6
ATTENDANCE_WEIGHT = 0.25
PARTICIPATION_WEIGHT = 0.15

# (lower bound, level, prediction, tier), highest band first. Bands are right-open.
PERFORMANCE_BANDS: List[Tuple[float, PerformanceLevel, Prediction, RiskTier]] = [
    (90.0, PerformanceLevel.EXCELLENT, Prediction.HIGH_ACHIEVER, RiskTier.LOW),
    (80.0, PerformanceLevel.GOOD, Prediction.WILL_IMPROVE, RiskTier.LOW),
    (70.0, PerformanceLevel.AVERAGE, Prediction.NEEDS_SUPPORT, RiskTier.MEDIUM),
    (60.0, PerformanceLevel.BELOW_AVERAGE, Prediction.AT_RISK, RiskTier.HIGH),
]
BOTTOM_BAND = (PerformanceLevel.AT_RISK, Prediction.CRITICAL, RiskTier.CRITICAL)

METRIC_MIN = 0.0
METRIC_MAX = 100.0


class InvalidMetricsError(ValueError):
    """Raised when a metric falls outside its [0, 100] domain."""

    def __init__(self, field: str, value):
        self.field = field
        self.value = value
        super().__init__(
            f"Invalid value for {field}: {value!r} (expected {METRIC_MIN:g}-{METRIC_MAX:g})"
        )


def validate_metrics(metrics: StudentMetrics) -> None:
    """
    Reject out-of-range metrics instead of clamping them.

    Args:
        metrics: Raw student metrics

    Raises:
        InvalidMetricsError: for the first field outside [0, 100] (NaN included)
    """
    for field in METRIC_FIELDS:
        value = getattr(metrics, field)
        try:
            numeric = float(value)
        except (TypeError, ValueError):
            raise InvalidMetricsError(field, value) from None
        if math.isnan(numeric) or not METRIC_MIN <= numeric <= METRIC_MAX:
            raise InvalidMetricsError(field, value)


def compute_average_grade(metrics: StudentMetrics) -> float:
    """Arithmetic mean of the six subject grades."""
    grades = [accessor(metrics) for _, accessor in SUBJECTS]
    return sum(grades) / len(grades)


def compute_performance_score(
    average_grade: float,
    attendance_rate: float,
    participation_score: float
) -> float:
    """
    Weighted composite score.

    performance = 0.6*average_grade + 0.25*attendance + 0.15*participation
    """
    return (
        average_grade * GRADE_WEIGHT
        + attendance_rate * ATTENDANCE_WEIGHT
        + participation_score * PARTICIPATION_WEIGHT
    )


def classify_performance(performance_score: float) -> Tuple[PerformanceLevel, Prediction, RiskTier]:
    """
    Map a performance score to its band.

    Args:
        performance_score: Composite score (0-100)

    Returns:
        Tuple of (performance_level, prediction, risk_tier)
    """
    for lower_bound, level, prediction, tier in PERFORMANCE_BANDS:
        if performance_score >= lower_bound:
            return level, prediction, tier
    return BOTTOM_BAND


def score(metrics: StudentMetrics) -> ScoredStudent:
    """
    Compute all derived fields for one student.

    The three derived labels always come from a single pass over the raw
    metrics, so they can never disagree with each other.

    Args:
        metrics: Raw student metrics

    Returns:
        ScoredStudent carrying the raw metrics and derived fields

    Raises:
        InvalidMetricsError: if any metric is outside [0, 100]
    """
    validate_metrics(metrics)

    average_grade = compute_average_grade(metrics)
    performance_score = compute_performance_score(
        average_grade, metrics.attendance_rate, metrics.participation_score
    )
    level, prediction, tier = classify_performance(performance_score)

    return ScoredStudent(
        math_grade=metrics.math_grade,
        science_grade=metrics.science_grade,
        english_grade=metrics.english_grade,
        history_grade=metrics.history_grade,
        arts_grade=metrics.arts_grade,
        pe_grade=metrics.pe_grade,
        attendance_rate=metrics.attendance_rate,
        participation_score=metrics.participation_score,
        average_grade=average_grade,
        performance_score=performance_score,
        performance_level=level,
        prediction=prediction,
        risk_tier=tier,
    )


def is_at_risk(risk_tier: RiskTier) -> bool:
    """A student is at risk when their tier is high or critical."""
    return risk_tier in (RiskTier.HIGH, RiskTier.CRITICAL)


def letter_grade(average_grade: float) -> str:
    """Convert a numeric average to a letter (A/B/C/D/F)."""
    if average_grade >= 90:
        return 'A'
    elif average_grade >= 80:
        return 'B'
    elif average_grade >= 70:
        return 'C'
    elif average_grade >= 60:
        return 'D'
    else:
        return 'F'


def generate_recommendations(scored: ScoredStudent) -> List[str]:
    """Build advisor recommendations from a scored student."""
    recommendations = []

    if scored.attendance_rate < 80:
        recommendations.append(
            "Improve attendance rate - current attendance is affecting overall performance"
        )

    if scored.participation_score < 70:
        recommendations.append("Increase class participation and engagement")

    weak_subjects = [name for name, accessor in SUBJECTS if accessor(scored) < 70]
    if weak_subjects:
        recommendations.append(f"Focus on improving grades in: {', '.join(weak_subjects)}")

    if scored.risk_tier == RiskTier.CRITICAL:
        recommendations.append(
            "Immediate intervention required - consider tutoring and additional support"
        )
    elif scored.risk_tier == RiskTier.HIGH:
        recommendations.append("Additional support recommended to prevent further decline")
    elif scored.risk_tier == RiskTier.MEDIUM:
        recommendations.append("Monitor progress closely and provide targeted assistance")

    return recommendations
