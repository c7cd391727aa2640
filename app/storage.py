"""In-memory student record store."""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from app.analytics import subject_averages
from app.models import (
    METRIC_FIELDS,
    PROFILE_FIELDS,
    Student,
    StudentCreate,
    StudentUpdate,
    SubjectBaseline,
)
from app.risk import score

logger = logging.getLogger(__name__)


class StudentNotFoundError(LookupError):
    """Raised when no record exists for the given id."""

    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(f"Student not found: {record_id}")


class DuplicateStudentIdError(ValueError):
    """Raised when an external student id is already taken."""

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__("Student ID already exists")


def build_student(record_id: int, data: StudentCreate) -> Student:
    """Score the metrics of a validated payload and stamp them onto a record."""
    scored = score(data.to_metrics())
    return Student(
        id=record_id,
        name=data.name,
        student_id=data.student_id,
        grade_level=data.grade_level,
        section=data.section,
        **scored.model_dump(),
    )


class StudentStore:
    """
    Thread-safe in-memory store of scored student records.

    Owns integer id allocation and the uniqueness of the external student id.
    Records are immutable; every create/update replaces the record with a
    freshly scored one.
    """

    def __init__(self):
        self._students: Dict[int, Student] = {}
        self._next_id = 1
        self._baseline: Optional[SubjectBaseline] = None
        self._lock = threading.RLock()

    def _find_by_student_id(self, student_id: str) -> Optional[Student]:
        for student in self._students.values():
            if student.student_id == student_id:
                return student
        return None

    def get(self, record_id: int) -> Student:
        with self._lock:
            student = self._students.get(record_id)
        if student is None:
            raise StudentNotFoundError(record_id)
        return student

    def get_by_student_id(self, student_id: str) -> Optional[Student]:
        with self._lock:
            return self._find_by_student_id(student_id)

    def all_students(self) -> List[Student]:
        return list(self.snapshot())

    def snapshot(self) -> Tuple[Student, ...]:
        """Point-in-time view of every record, in id order."""
        with self._lock:
            return tuple(self._students[key] for key in sorted(self._students))

    def create(self, data: StudentCreate) -> Student:
        """
        Insert a new record.

        Raises:
            DuplicateStudentIdError: if data.student_id is already used
            InvalidMetricsError: if a metric is outside [0, 100]
        """
        with self._lock:
            if self._find_by_student_id(data.student_id) is not None:
                raise DuplicateStudentIdError(data.student_id)

            student = build_student(self._next_id, data)
            self._students[student.id] = student
            self._next_id += 1

        logger.info("Created student %s (id=%d, %s)",
                    student.student_id, student.id, student.performance_level.value)
        return student

    def update(self, record_id: int, changes: StudentUpdate) -> Student:
        """
        Merge changed fields over an existing record and rescore it.

        Raises:
            StudentNotFoundError: if no record has record_id
            DuplicateStudentIdError: if the new student id belongs to another record
        """
        with self._lock:
            existing = self._students.get(record_id)
            if existing is None:
                raise StudentNotFoundError(record_id)

            merged = existing.model_dump(include=set(PROFILE_FIELDS + METRIC_FIELDS))
            merged.update(changes.model_dump(exclude_unset=True, exclude_none=True))
            data = StudentCreate(**merged)

            owner = self._find_by_student_id(data.student_id)
            if owner is not None and owner.id != record_id:
                raise DuplicateStudentIdError(data.student_id)

            student = build_student(record_id, data)
            self._students[record_id] = student

        logger.info("Updated student %s (id=%d, %s)",
                    student.student_id, student.id, student.performance_level.value)
        return student

    def delete(self, record_id: int) -> None:
        with self._lock:
            if self._students.pop(record_id, None) is None:
                raise StudentNotFoundError(record_id)
        logger.info("Deleted student id=%d", record_id)

    def search(self, query: str = "", grade_filter: Optional[str] = None) -> List[Student]:
        """
        Filter records by name/student id substring and grade level.

        A grade filter of "Grade 10" matches grade levels containing "10";
        "All Grades" or an empty filter matches everything.
        """
        needle = (query or "").lower()
        grade_token = None
        if grade_filter and grade_filter != "All Grades":
            grade_token = grade_filter.replace("Grade ", "")

        results = []
        for student in self.snapshot():
            matches_query = (
                not needle
                or needle in student.name.lower()
                or needle in student.student_id.lower()
            )
            matches_grade = grade_token is None or grade_token in student.grade_level
            if matches_query and matches_grade:
                results.append(student)
        return results

    def record_baseline(self) -> SubjectBaseline:
        """Replace the trend baseline with the current subject averages."""
        with self._lock:
            baseline = SubjectBaseline(
                recorded_at=datetime.now(timezone.utc),
                averages=subject_averages(self.snapshot()),
            )
            self._baseline = baseline
        logger.info("Recorded subject baseline over %d subjects", len(baseline.averages))
        return baseline

    def latest_baseline(self) -> Optional[SubjectBaseline]:
        with self._lock:
            return self._baseline

    def clear(self) -> None:
        with self._lock:
            self._students.clear()
            self._baseline = None
            self._next_id = 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._students)
