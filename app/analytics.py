"""Population analytics: overview stats, grade distribution and subject trends."""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from app.models import (
    SUBJECTS,
    GradeDistribution,
    OverviewStats,
    PerformanceLevel,
    ScoredStudent,
    SubjectPerformance,
)
from app.risk import letter_grade

DISTRIBUTION_BINS = [-np.inf, 70.0, 80.0, 90.0, np.inf]
DISTRIBUTION_LABELS = ['DF', 'C', 'B', 'A']


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Round halves towards positive infinity, like JavaScript's Math.round.

    Python's round() uses banker's rounding, which would turn 12.5% into 12.
    """
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def format_percentage(value: float) -> str:
    """Format as a one-decimal percentage string, e.g. 87.25 -> '87.3%'."""
    quantized = Decimal(value).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)
    return f"{quantized}%"


def students_frame(students: Sequence[ScoredStudent]) -> pd.DataFrame:
    """
    Build a DataFrame with one row per student.

    Columns: average_grade, attendance_rate and one column per subject name.
    """
    columns = ['average_grade', 'attendance_rate'] + [name for name, _ in SUBJECTS]
    rows = []
    for student in students:
        row = {
            'average_grade': float(student.average_grade),
            'attendance_rate': float(student.attendance_rate),
        }
        for name, accessor in SUBJECTS:
            row[name] = float(accessor(student))
        rows.append(row)
    return pd.DataFrame(rows, columns=columns, dtype=float)


def aggregate_overview(students: Sequence[ScoredStudent]) -> OverviewStats:
    """
    Overview statistics for the dashboard header.

    Args:
        students: Full current population (a snapshot)

    Returns:
        OverviewStats with the average grade as a letter and attendance as a percentage string
    """
    total = len(students)
    if total == 0:
        return OverviewStats(
            total_students=0,
            average_grade="N/A",
            attendance_rate="N/A",
            at_risk_students=0,
        )

    frame = students_frame(students)
    avg_grade = float(frame['average_grade'].mean())
    avg_attendance = float(frame['attendance_rate'].mean())
    # Counts the bottom performance band, not the "At Risk" prediction.
    at_risk_count = sum(
        1 for student in students if student.performance_level == PerformanceLevel.AT_RISK
    )

    return OverviewStats(
        total_students=total,
        average_grade=letter_grade(avg_grade),
        attendance_rate=format_percentage(avg_attendance),
        at_risk_students=at_risk_count,
    )


def aggregate_grade_distribution(students: Sequence[ScoredStudent]) -> GradeDistribution:
    """
    Percentage of students per letter band (D and F merged).

    Each bucket is rounded on its own, so the total may be 99 or 101.
    """
    total = len(students)
    if total == 0:
        return GradeDistribution(A=0, B=0, C=0, DF=0)

    frame = students_frame(students)
    letters = pd.cut(
        frame['average_grade'],
        bins=DISTRIBUTION_BINS,
        labels=DISTRIBUTION_LABELS,
        right=False,
    )
    counts = letters.value_counts()

    percentages = {
        label: int(round_half_up(int(counts.get(label, 0)) / total * 100))
        for label in DISTRIBUTION_LABELS
    }
    return GradeDistribution(**percentages)


def subject_averages(students: Sequence[ScoredStudent]) -> Dict[str, float]:
    """Unrounded mean grade per subject; empty for an empty population."""
    if not students:
        return {}
    frame = students_frame(students)
    return {name: float(frame[name].mean()) for name, _ in SUBJECTS}


def aggregate_subject_performance(
    students: Sequence[ScoredStudent],
    baseline: Optional[Mapping[str, float]] = None
) -> List[SubjectPerformance]:
    """
    Average grade per subject with a trend against an earlier baseline.

    Args:
        students: Full current population (a snapshot)
        baseline: Optional mapping of subject name -> earlier average

    Returns:
        One SubjectPerformance per subject in fixed order; change is None
        for subjects without a baseline value
    """
    averages = subject_averages(students)
    if not averages:
        return []

    baseline = baseline or {}
    results = []
    for name, _ in SUBJECTS:
        average = averages[name]
        previous = baseline.get(name)
        change = round_half_up(average - previous, 1) if previous is not None else None
        results.append(SubjectPerformance(
            subject=name,
            average=round_half_up(average, 1),
            change=change,
        ))
    return results
