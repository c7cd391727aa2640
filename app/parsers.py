"""Roster file parsing (CSV / Excel) and CSV export."""

import csv
import logging
import re
from io import BytesIO, StringIO
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from pydantic import ValidationError

from app.models import ImportRowError, Student, StudentCreate

logger = logging.getLogger(__name__)

# Target field -> accepted header variations (already normalized)
ROSTER_COLUMNS: Dict[str, List[str]] = {
    "name": ["name", "student name", "studentname", "full name", "student"],
    "student_id": ["student id", "studentid", "student#", "student #", "student number", "studentnum", "id"],
    "grade_level": ["grade level", "gradelevel", "grade", "year", "class"],
    "section": ["section", "homeroom", "group"],
    "math_grade": ["math", "maths", "mathematics", "math grade", "mathgrade"],
    "science_grade": ["science", "science grade", "sciencegrade"],
    "english_grade": ["english", "english grade", "englishgrade"],
    "history_grade": ["history", "history grade", "historygrade"],
    "arts_grade": ["arts", "art", "arts grade", "artsgrade"],
    "pe_grade": ["pe", "physical education", "pe grade", "pegrade"],
    "attendance_rate": ["attendance", "attendance rate", "attendancerate", "attendance pct", "attended"],
    "participation_score": ["participation", "participation score", "participationscore"],
}

REQUIRED_COLUMNS = list(ROSTER_COLUMNS.keys())
NUMERIC_COLUMNS = [
    "math_grade", "science_grade", "english_grade", "history_grade",
    "arts_grade", "pe_grade", "participation_score",
]

EXPORT_HEADER = [
    'Name',
    'Student ID',
    'Grade Level',
    'Section',
    'Average Grade',
    'Attendance Rate',
    'Performance Level',
    'Prediction',
]


def normalize_col_name(col_name) -> str:
    """Normalize a column name for matching (lowercase, no dots/%/commas, single spaces)."""
    if pd.isna(col_name):
        return ""
    normalized = str(col_name).strip().lower()
    normalized = re.sub(r'[.,%]', '', normalized)
    normalized = re.sub(r'[_\-]+', ' ', normalized)
    normalized = re.sub(r'\s+', ' ', normalized)
    return normalized.strip()


def normalize_roster_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rename roster columns to the model's field names.

    Handles minor naming variations, e.g. "Student #", "Math Grade", "mathGrade".
    The first column matching a field wins; later duplicates are left as-is.

    Args:
        df: DataFrame straight from the uploaded file

    Returns:
        Copy of df with recognised columns renamed
    """
    df = df.copy()

    rename = {}
    taken = set()
    for orig_col in df.columns:
        normalized = normalize_col_name(orig_col)
        # camelCase headers exported by the dashboard UI
        decamel = normalize_col_name(re.sub(r'(?<=[a-z])([A-Z])', r' \1', str(orig_col)))
        for target, variations in ROSTER_COLUMNS.items():
            if target in taken:
                continue
            if normalized in variations or decamel in variations or normalized == target.replace('_', ' '):
                rename[orig_col] = target
                taken.add(target)
                break

    if rename:
        logger.debug("Renamed roster columns: %s", rename)
    else:
        logger.warning("No roster columns recognised. Original columns: %s", list(df.columns))

    return df.rename(columns=rename)


def parse_pct(x) -> float:
    """
    Parse one percentage cell, e.g. 88, "88%", " 0.9 ".

    Args:
        x: Raw cell value

    Returns:
        The number with any "%" stripped, or NaN when missing or unparseable
    """
    if x is None or pd.isna(x):
        return np.nan

    try:
        if isinstance(x, str):
            val_str = x.strip().replace('%', '').strip()
            if not val_str:
                return np.nan
            val = float(val_str)
        else:
            val = float(x)
    except (ValueError, TypeError):
        return np.nan

    if np.isinf(val):
        return np.nan
    return val


def normalize_pct(values: pd.Series) -> pd.Series:
    """
    Normalize a percentage column to the 0-100 scale.

    The scale is decided once for the whole column: it is read as 0-1
    fractions (e.g. 0.88) only when every value is <= 1 and at least one
    has a fractional part. Otherwise values are kept as 0-100 percentages,
    so a genuine 1% next to 85% stays 1.

    Args:
        values: Raw column values

    Returns:
        Float Series in 0-100 scale, NaN where a value is missing or unparseable
    """
    parsed = values.map(parse_pct).astype(float)
    present = parsed.dropna()
    if not present.empty and (present <= 1.0).all() and (present % 1 != 0).any():
        logger.debug("Percentage column %s read as 0-1 fractions", values.name)
        return parsed * 100.0
    return parsed


def clean_student_id(value) -> str:
    """Excel turns numeric ids like 1001 into 1001.0; strip that back."""
    if value is None or pd.isna(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def load_roster(file_bytes: bytes, filename: str) -> pd.DataFrame:
    """
    Load a roster from CSV or Excel bytes and normalize its columns.

    Args:
        file_bytes: Raw bytes of the uploaded file
        filename: Original filename; the extension selects the reader

    Returns:
        DataFrame with model field names as columns

    Raises:
        ValueError: if the file cannot be read or required columns are missing
    """
    lowered = filename.lower()
    try:
        if lowered.endswith('.csv'):
            df = pd.read_csv(BytesIO(file_bytes), dtype=object, skipinitialspace=True)
        elif lowered.endswith('.xlsx'):
            df = pd.read_excel(BytesIO(file_bytes), sheet_name=0, dtype=object, engine='openpyxl')
        else:
            raise ValueError("Invalid file type. Please upload a .csv or .xlsx file")
    except ValueError:
        raise
    except Exception as e:
        raise ValueError(f"Could not read roster file: {e}") from e

    df = df.dropna(how='all')
    df = normalize_roster_columns(df)

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(
            f"Missing required columns: {', '.join(missing)}. Found: {list(df.columns)}"
        )

    df['student_id'] = df['student_id'].map(clean_student_id)
    df['attendance_rate'] = normalize_pct(df['attendance_rate'])
    for col in NUMERIC_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors='coerce')

    logger.info("Loaded roster %s: %d rows", filename, len(df))
    return df[REQUIRED_COLUMNS].reset_index(drop=True)


def _row_value(value):
    """Convert pandas missing values and whole floats into plain Python values."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return int(value)
    if isinstance(value, np.integer):
        return int(value)
    return value


def parse_roster(df: pd.DataFrame) -> Tuple[List[Tuple[int, StudentCreate]], List[ImportRowError]]:
    """
    Validate each roster row into a StudentCreate payload.

    Row numbers in errors are 1-based data rows (the header is not counted).

    Returns:
        Tuple of ([(row number, payload), ...], row errors)
    """
    payloads: List[Tuple[int, StudentCreate]] = []
    errors: List[ImportRowError] = []

    for idx, record in enumerate(df.to_dict(orient='records'), start=1):
        values = {key: _row_value(value) for key, value in record.items()}
        for text_field in ('name', 'student_id', 'grade_level', 'section'):
            if values.get(text_field) is not None:
                values[text_field] = str(values[text_field])
        try:
            payloads.append((idx, StudentCreate(**values)))
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            logger.warning("Skipping roster row %d: %s", idx, problems)
            errors.append(ImportRowError(
                row=idx,
                student_id=values.get('student_id') or None,
                message=problems,
            ))

    return payloads, errors


def students_to_csv(students: Sequence[Student]) -> str:
    """Render student records as CSV text."""
    output = StringIO()
    writer = csv.writer(output)

    writer.writerow(EXPORT_HEADER)
    for student in students:
        writer.writerow([
            student.name,
            student.student_id,
            student.grade_level,
            student.section,
            f"{student.average_grade:.2f}",
            f"{student.attendance_rate:.2f}",
            student.performance_level.value,
            student.prediction.value,
        ])

    return output.getvalue()


def export_filename(prefix: str = "student_data", stamp: Optional[str] = None) -> str:
    """Download filename, optionally suffixed with a date stamp."""
    if stamp:
        return f"{prefix}_{stamp}.csv"
    return f"{prefix}.csv"
