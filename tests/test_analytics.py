"""Unit tests for population analytics."""

import pytest

from app.analytics import (
    aggregate_grade_distribution,
    aggregate_overview,
    aggregate_subject_performance,
    format_percentage,
    round_half_up,
    subject_averages,
)
from app.models import GradeDistribution, OverviewStats, PerformanceLevel, Prediction, StudentMetrics
from app.risk import score

SUBJECT_NAMES = ["Mathematics", "Science", "English", "History", "Arts", "PE"]


def scored(grades, attendance=90.0, participation=80):
    if isinstance(grades, int):
        grades = (grades,) * 6
    math, science, english, history, arts, pe = grades
    return score(StudentMetrics(
        math_grade=math,
        science_grade=science,
        english_grade=english,
        history_grade=history,
        arts_grade=arts,
        pe_grade=pe,
        attendance_rate=attendance,
        participation_score=participation,
    ))


def test_round_half_up():
    """Halves round up, unlike Python's round()."""
    assert round_half_up(12.5) == 13
    assert round_half_up(87.5) == 88
    assert round_half_up(33.333) == 33
    assert round_half_up(-12.5) == -12
    assert round_half_up(77.84, 1) == pytest.approx(77.8)
    assert round_half_up(77.86, 1) == pytest.approx(77.9)


def test_format_percentage():
    assert format_percentage(86.1) == "86.1%"
    assert format_percentage(87.25) == "87.3%"
    assert format_percentage(90) == "90.0%"
    assert format_percentage(99.96) == "100.0%"


def test_overview_empty():
    """Empty population returns the neutral result."""
    assert aggregate_overview([]) == OverviewStats(
        total_students=0,
        average_grade="N/A",
        attendance_rate="N/A",
        at_risk_students=0,
    )


def test_overview_values():
    students = [
        scored(85, attendance=90.0, participation=88),
        scored(40, attendance=50.0, participation=40),
    ]

    overview = aggregate_overview(students)

    assert overview.total_students == 2
    assert overview.average_grade == 'D'  # mean of 85 and 40 is 62.5
    assert overview.attendance_rate == "70.0%"
    assert overview.at_risk_students == 1


def test_overview_counts_bottom_level_not_prediction():
    """A Below Average student has the "At Risk" prediction but is not counted."""
    below_average = scored(65, attendance=65.0, participation=65)
    assert below_average.performance_level == PerformanceLevel.BELOW_AVERAGE
    assert below_average.prediction == Prediction.AT_RISK

    overview = aggregate_overview([below_average])
    assert overview.at_risk_students == 0


def test_grade_distribution_empty():
    assert aggregate_grade_distribution([]) == GradeDistribution(A=0, B=0, C=0, DF=0)


def test_grade_distribution_all_a():
    students = [scored(95) for _ in range(4)]
    assert aggregate_grade_distribution(students) == GradeDistribution(A=100, B=0, C=0, DF=0)


def test_grade_distribution_band_edges():
    """Bands are right-open: 90 is A, 89 is B, 70 is C, 69 is D/F."""
    students = [scored(90), scored(89), scored(70), scored(69)]
    assert aggregate_grade_distribution(students) == GradeDistribution(A=25, B=25, C=25, DF=25)


def test_grade_distribution_rounds_each_bucket_independently():
    """Percentages are not normalized to 100."""
    thirds = aggregate_grade_distribution([scored(95), scored(85), scored(75)])
    assert thirds == GradeDistribution(A=33, B=33, C=33, DF=0)
    assert thirds.A + thirds.B + thirds.C + thirds.DF == 99

    eighths = aggregate_grade_distribution([scored(95)] + [scored(50)] * 7)
    assert eighths == GradeDistribution(A=13, B=0, C=0, DF=88)
    assert eighths.A + eighths.DF == 101


def test_subject_performance_empty():
    assert aggregate_subject_performance([]) == []
    assert subject_averages([]) == {}


def test_subject_performance_single_student():
    """With one student each subject average is that student's grade."""
    student = scored((91, 72, 88, 65, 99, 100))

    results = aggregate_subject_performance([student])

    assert [r.subject for r in results] == SUBJECT_NAMES
    assert [r.average for r in results] == [91.0, 72.0, 88.0, 65.0, 99.0, 100.0]
    assert all(r.change is None for r in results)


def test_subject_performance_rounds_average():
    students = [scored((80, 70, 70, 70, 70, 70)), scored((81, 70, 70, 70, 70, 70)),
                scored((81, 70, 70, 70, 70, 70))]

    results = aggregate_subject_performance(students)

    assert results[0].average == pytest.approx(80.7)


def test_subject_performance_change_against_baseline():
    """Change is the difference from the baseline average, rounded to one decimal."""
    students = [scored((85, 70, 70, 70, 70, 70)), scored((90, 70, 70, 70, 70, 70))]
    baseline = {"Mathematics": 80.0, "Science": 71.25}

    results = {r.subject: r for r in aggregate_subject_performance(students, baseline)}

    assert results["Mathematics"].average == pytest.approx(87.5)
    assert results["Mathematics"].change == pytest.approx(7.5)
    assert results["Science"].change == pytest.approx(-1.2)
    assert results["English"].change is None


def test_subject_averages_unrounded():
    students = [scored((80, 70, 70, 70, 70, 70)), scored((81, 70, 70, 70, 70, 70)),
                scored((81, 70, 70, 70, 70, 70))]

    averages = subject_averages(students)

    assert list(averages) == SUBJECT_NAMES
    assert averages["Mathematics"] == pytest.approx(242 / 3)
    assert averages["PE"] == pytest.approx(70.0)


def test_aggregation_does_not_mutate_input():
    students = [scored(95), scored(40)]
    before = [s.model_dump() for s in students]

    aggregate_overview(students)
    aggregate_grade_distribution(students)
    aggregate_subject_performance(students)

    assert [s.model_dump() for s in students] == before
