"""Sample roster used to seed an empty dashboard."""

import logging
from typing import List

from app.models import Student, StudentCreate
from app.storage import DuplicateStudentIdError, StudentStore

logger = logging.getLogger(__name__)


def _sample(name, student_id, grade_level, section, grades, attendance, participation) -> StudentCreate:
    math, science, english, history, arts, pe = grades
    return StudentCreate(
        name=name,
        student_id=student_id,
        grade_level=grade_level,
        section=section,
        math_grade=math,
        science_grade=science,
        english_grade=english,
        history_grade=history,
        arts_grade=arts,
        pe_grade=pe,
        attendance_rate=attendance,
        participation_score=participation,
    )


SAMPLE_STUDENTS: List[StudentCreate] = [
    _sample("Sarah Johnson", "STU001", "10th Grade", "Section A", (92, 88, 94, 87, 91, 95), 96, 88),
    _sample("Michael Chen", "STU002", "10th Grade", "Section A", (78, 82, 75, 80, 85, 90), 85, 75),
    _sample("Emma Rodriguez", "STU003", "11th Grade", "Section B", (95, 93, 89, 92, 88, 87), 98, 92),
    _sample("James Wilson", "STU004", "9th Grade", "Section A", (65, 68, 72, 70, 75, 80), 78, 65),
    _sample("Olivia Thompson", "STU005", "12th Grade", "Section B", (89, 91, 93, 88, 94, 92), 94, 89),
    _sample("David Kim", "STU006", "11th Grade", "Section C", (55, 60, 58, 62, 65, 70), 72, 55),
    _sample("Sophia Martinez", "STU007", "10th Grade", "Section B", (86, 84, 90, 85, 89, 88), 91, 84),
    _sample("Ryan Davis", "STU008", "9th Grade", "Section B", (73, 76, 78, 74, 82, 85), 83, 76),
    _sample("Isabella Garcia", "STU009", "12th Grade", "Section A", (97, 95, 96, 94, 93, 89), 99, 95),
    _sample("Ethan Brown", "STU010", "11th Grade", "Section A", (48, 52, 55, 50, 58, 65), 65, 48),
]


def load_sample_data(store: StudentStore) -> List[Student]:
    """
    Seed the store with the sample roster.

    Students whose id is already present are skipped, so calling this twice is harmless.

    Returns:
        The records that were created
    """
    logger.info("Loading sample data...")
    created = []
    for payload in SAMPLE_STUDENTS:
        try:
            created.append(store.create(payload))
        except DuplicateStudentIdError:
            logger.warning("Sample student %s already exists, skipping", payload.student_id)

    logger.info("Loaded %d of %d sample students", len(created), len(SAMPLE_STUDENTS))
    return created
