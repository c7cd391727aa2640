"""Data models for the Student Performance Dashboard application."""

import math
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class PerformanceLevel(str, Enum):
    """Current standing derived from the performance score."""
    EXCELLENT = "Excellent"
    GOOD = "Good"
    AVERAGE = "Average"
    BELOW_AVERAGE = "Below Average"
    AT_RISK = "At Risk"


class Prediction(str, Enum):
    """Forward-looking label, one band name apart from PerformanceLevel."""
    HIGH_ACHIEVER = "High Achiever"
    WILL_IMPROVE = "Will Improve"
    NEEDS_SUPPORT = "Needs Support"
    AT_RISK = "At Risk"
    CRITICAL = "Critical"


class RiskTier(str, Enum):
    """Risk tiers, ordered from best to worst."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(RiskTier).index(self)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys for the browser UI."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StudentMetrics(CamelModel):
    """Raw per-student inputs to the scorer.

    No range constraints here: the scorer checks the [0, 100] domains itself
    and raises InvalidMetricsError naming the offending field.
    """
    model_config = ConfigDict(frozen=True)

    math_grade: int
    science_grade: int
    english_grade: int
    history_grade: int
    arts_grade: int
    pe_grade: int
    attendance_rate: float
    participation_score: int


class ScoredStudent(StudentMetrics):
    """StudentMetrics plus the fields derived from them by the scorer.

    Construction fails unless the derived fields match what the scorer
    computes from the raw metrics.
    """
    average_grade: float
    performance_score: float
    performance_level: PerformanceLevel
    prediction: Prediction
    risk_tier: RiskTier

    @model_validator(mode="after")
    def check_derived_fields(self):
        from app.risk import (
            classify_performance,
            compute_average_grade,
            compute_performance_score,
            validate_metrics,
        )

        validate_metrics(self)
        average_grade = compute_average_grade(self)
        performance_score = compute_performance_score(
            average_grade, self.attendance_rate, self.participation_score
        )
        if not math.isclose(self.average_grade, average_grade, abs_tol=1e-9):
            raise ValueError(
                f"average_grade {self.average_grade} does not match grades (expected {average_grade})"
            )
        if not math.isclose(self.performance_score, performance_score, abs_tol=1e-9):
            raise ValueError(
                f"performance_score {self.performance_score} does not match metrics "
                f"(expected {performance_score})"
            )
        expected = classify_performance(performance_score)
        if (self.performance_level, self.prediction, self.risk_tier) != expected:
            raise ValueError(
                "performance_level, prediction and risk_tier do not match the performance score"
            )
        return self


class Student(ScoredStudent):
    """A stored student record."""
    id: int
    name: str
    student_id: str
    grade_level: str
    section: str


# Closed set of subjects, in display order.
SUBJECTS: Tuple[Tuple[str, Callable[[StudentMetrics], int]], ...] = (
    ("Mathematics", lambda m: m.math_grade),
    ("Science", lambda m: m.science_grade),
    ("English", lambda m: m.english_grade),
    ("History", lambda m: m.history_grade),
    ("Arts", lambda m: m.arts_grade),
    ("PE", lambda m: m.pe_grade),
)

METRIC_FIELDS = (
    "math_grade",
    "science_grade",
    "english_grade",
    "history_grade",
    "arts_grade",
    "pe_grade",
    "attendance_rate",
    "participation_score",
)

PROFILE_FIELDS = ("name", "student_id", "grade_level", "section")


class StudentCreate(CamelModel):
    """Request body for creating a student."""
    name: str = Field(min_length=1)
    student_id: str = Field(min_length=1)
    grade_level: str
    section: str
    math_grade: int = Field(ge=0, le=100)
    science_grade: int = Field(ge=0, le=100)
    english_grade: int = Field(ge=0, le=100)
    history_grade: int = Field(ge=0, le=100)
    arts_grade: int = Field(ge=0, le=100)
    pe_grade: int = Field(ge=0, le=100)
    attendance_rate: float = Field(ge=0, le=100)
    participation_score: int = Field(ge=0, le=100)

    def to_metrics(self) -> StudentMetrics:
        return StudentMetrics(
            math_grade=self.math_grade,
            science_grade=self.science_grade,
            english_grade=self.english_grade,
            history_grade=self.history_grade,
            arts_grade=self.arts_grade,
            pe_grade=self.pe_grade,
            attendance_rate=self.attendance_rate,
            participation_score=self.participation_score,
        )


class StudentUpdate(CamelModel):
    """Partial update; only the fields that were sent are applied."""
    name: Optional[str] = Field(default=None, min_length=1)
    student_id: Optional[str] = Field(default=None, min_length=1)
    grade_level: Optional[str] = None
    section: Optional[str] = None
    math_grade: Optional[int] = Field(default=None, ge=0, le=100)
    science_grade: Optional[int] = Field(default=None, ge=0, le=100)
    english_grade: Optional[int] = Field(default=None, ge=0, le=100)
    history_grade: Optional[int] = Field(default=None, ge=0, le=100)
    arts_grade: Optional[int] = Field(default=None, ge=0, le=100)
    pe_grade: Optional[int] = Field(default=None, ge=0, le=100)
    attendance_rate: Optional[float] = Field(default=None, ge=0, le=100)
    participation_score: Optional[int] = Field(default=None, ge=0, le=100)


class OverviewStats(CamelModel):
    """Population overview shown on the dashboard header cards."""
    total_students: int
    average_grade: str
    attendance_rate: str
    at_risk_students: int


class GradeDistribution(BaseModel):
    """Percentage of students in each letter band, rounded independently."""
    A: int
    B: int
    C: int
    DF: int


class SubjectPerformance(BaseModel):
    """Subject average; change is None until a baseline has been recorded."""
    subject: str
    average: float
    change: Optional[float] = None


class SubjectBaseline(CamelModel):
    """Per-subject averages recorded at a point in time, used for trends."""
    recorded_at: datetime
    averages: Dict[str, float]


class RecommendationResponse(CamelModel):
    student_id: str
    risk_tier: RiskTier
    at_risk: bool
    recommendations: List[str]


class ImportRowError(CamelModel):
    """A roster row that could not be imported."""
    row: int
    student_id: Optional[str] = None
    message: str


class ImportResponse(CamelModel):
    """Response from roster import endpoint."""
    success: bool
    message: str
    created: List[Student]
    errors: List[ImportRowError]
