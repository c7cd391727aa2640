"""Unit tests for parsers module."""

import csv
import math
from io import BytesIO, StringIO

import pandas as pd
import pytest

from app.parsers import (
    EXPORT_HEADER,
    REQUIRED_COLUMNS,
    load_roster,
    normalize_col_name,
    normalize_pct,
    parse_pct,
    normalize_roster_columns,
    parse_roster,
    students_to_csv,
)
from app.storage import StudentStore

ROSTER_CSV = (
    "Student Name,Student #,Grade Level,Section,Math,Science,English,History,Arts,PE,Attendance %,Participation\n"
    "Sarah Johnson,STU001,10th Grade,Section A,92,88,94,87,91,95,96,88\n"
    "Michael Chen,STU002,10th Grade,Section A,78,82,75,80,85,90,85,75\n"
    "Broken Row,STU003,9th Grade,Section B,120,82,75,80,85,90,85,75\n"
)


def test_normalize_col_name():
    assert normalize_col_name("  Student Name ") == "student name"
    assert normalize_col_name("Attendance %") == "attendance"
    assert normalize_col_name("math_grade") == "math grade"
    assert normalize_col_name("Grade.Level") == "gradelevel"
    assert normalize_col_name(None) == ""


def test_parse_pct():
    assert parse_pct(88) == 88.0
    assert parse_pct("85%") == 85.0
    assert parse_pct(" 0.9 ") == pytest.approx(0.9)
    assert math.isnan(parse_pct(None))
    assert math.isnan(parse_pct(""))
    assert math.isnan(parse_pct("abc"))
    assert math.isnan(parse_pct(float("inf")))


def test_normalize_pct_fraction_column():
    """A column of 0-1 fractions is scaled to percentages."""
    normalized = normalize_pct(pd.Series([0.5, "0.85", 1, None]))

    assert normalized.iloc[0] == pytest.approx(50.0)
    assert normalized.iloc[1] == pytest.approx(85.0)
    assert normalized.iloc[2] == pytest.approx(100.0)
    assert math.isnan(normalized.iloc[3])


def test_normalize_pct_keeps_small_percentages():
    """Low values next to ordinary percentages are real percentages, not fractions."""
    normalized = normalize_pct(pd.Series([1, 85, "0.5%", 96]))

    assert normalized.tolist() == [1.0, 85.0, 0.5, 96.0]


def test_normalize_pct_whole_numbers_are_percentages():
    assert normalize_pct(pd.Series([1, 0, 1])).tolist() == [1.0, 0.0, 1.0]


def test_normalize_roster_columns_variants():
    df = pd.DataFrame(columns=[
        "Student Name", "Student #", "Grade Level", "Section",
        "Mathematics", "Science Grade", "English", "History", "Art", "Physical Education",
        "Attendance Rate", "Participation Score",
    ])

    renamed = normalize_roster_columns(df)

    assert list(renamed.columns) == REQUIRED_COLUMNS


def test_normalize_roster_columns_camel_case():
    """Headers exported by the dashboard UI use camelCase."""
    df = pd.DataFrame(columns=[
        "name", "studentId", "gradeLevel", "section", "mathGrade", "scienceGrade",
        "englishGrade", "historyGrade", "artsGrade", "peGrade", "attendanceRate", "participationScore",
    ])

    renamed = normalize_roster_columns(df)

    assert list(renamed.columns) == REQUIRED_COLUMNS


def test_load_roster_csv():
    roster = load_roster(ROSTER_CSV.encode("utf-8"), "roster.csv")

    assert list(roster.columns) == REQUIRED_COLUMNS
    assert len(roster) == 3
    assert roster["student_id"].tolist() == ["STU001", "STU002", "STU003"]
    assert roster["attendance_rate"].iloc[0] == 96.0
    assert roster["attendance_rate"].iloc[1] == 85.0
    assert roster["math_grade"].iloc[2] == 120


def test_load_roster_excel():
    source = pd.DataFrame([{
        "Student Name": "Emma Rodriguez",
        "Student#": 1003,
        "Grade Level": "11th Grade",
        "Section": "Section B",
        "Math": 95, "Science": 93, "English": 89, "History": 92, "Arts": 88, "PE": 87,
        "Attendance": 0.98,
        "Participation": 92,
    }])
    buffer = BytesIO()
    source.to_excel(buffer, index=False, engine="openpyxl")

    roster = load_roster(buffer.getvalue(), "roster.xlsx")

    assert roster["student_id"].iloc[0] == "1003"
    assert roster["attendance_rate"].iloc[0] == pytest.approx(98.0)


def test_load_roster_missing_columns():
    with pytest.raises(ValueError, match="Missing required columns"):
        load_roster(b"Name,Math\nAda,90\n", "roster.csv")


def test_load_roster_unsupported_extension():
    with pytest.raises(ValueError, match="Invalid file type"):
        load_roster(b"anything", "roster.txt")


def test_parse_roster_splits_valid_and_invalid_rows():
    roster = load_roster(ROSTER_CSV.encode("utf-8"), "roster.csv")

    rows, errors = parse_roster(roster)

    assert [row for row, _ in rows] == [1, 2]
    assert [payload.student_id for _, payload in rows] == ["STU001", "STU002"]
    assert rows[0][1].math_grade == 92
    assert rows[1][1].attendance_rate == pytest.approx(85.0)

    assert len(errors) == 1
    assert errors[0].row == 3
    assert errors[0].student_id == "STU003"
    assert "math" in errors[0].message.lower()


def test_parse_roster_rejects_fractional_grades_and_blanks():
    csv_text = (
        "Name,Student ID,Grade Level,Section,Math,Science,English,History,Arts,PE,Attendance,Participation\n"
        "Half Point,STU010,9th Grade,Section A,90.5,80,80,80,80,80,90,80\n"
        "No Attendance,STU011,9th Grade,Section A,90,80,80,80,80,80,,80\n"
    )
    rows, errors = parse_roster(load_roster(csv_text.encode("utf-8"), "roster.csv"))

    assert rows == []
    assert [err.row for err in errors] == [1, 2]
    assert "attendance" in errors[1].message.lower()


def test_students_to_csv():
    store = StudentStore()
    roster = load_roster(ROSTER_CSV.encode("utf-8"), "roster.csv")
    rows, _ = parse_roster(roster)
    for _, payload in rows:
        store.create(payload)

    content = students_to_csv(store.snapshot())
    lines = list(csv.reader(StringIO(content)))

    assert lines[0] == EXPORT_HEADER
    assert len(lines) == 3
    assert lines[1][:4] == ["Sarah Johnson", "STU001", "10th Grade", "Section A"]
    assert lines[1][4] == "91.17"
    assert lines[1][5] == "96.00"
    assert lines[1][6] == "Excellent"
    assert lines[1][7] == "High Achiever"


def test_students_to_csv_empty():
    assert students_to_csv([]).strip() == ",".join(EXPORT_HEADER)


def test_parse_roster_keeps_one_percent_attendance():
    csv_text = (
        "Name,Student ID,Grade Level,Section,Math,Science,English,History,Arts,PE,Attendance,Participation\n"
        "Rarely Here,STU020,9th Grade,Section A,60,60,60,60,60,60,1,60\n"
        "Usually Here,STU021,9th Grade,Section A,80,80,80,80,80,80,85,80\n"
    )
    rows, errors = parse_roster(load_roster(csv_text.encode("utf-8"), "roster.csv"))

    assert errors == []
    assert rows[0][1].attendance_rate == 1.0
    assert rows[1][1].attendance_rate == 85.0


def test_load_roster_rejects_legacy_excel():
    with pytest.raises(ValueError, match="Invalid file type"):
        load_roster(b"\xd0\xcf\x11\xe0", "roster.xls")
