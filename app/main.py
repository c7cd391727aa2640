"""FastAPI main application for the Student Performance Dashboard."""

import logging
import os
import traceback
from datetime import datetime
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Request, Response, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.analytics import (
    aggregate_grade_distribution,
    aggregate_overview,
    aggregate_subject_performance,
)
from app.models import (
    GradeDistribution,
    ImportResponse,
    ImportRowError,
    OverviewStats,
    RecommendationResponse,
    Student,
    StudentCreate,
    StudentUpdate,
    SubjectBaseline,
    SubjectPerformance,
)
from app.parsers import export_filename, load_roster, parse_roster, students_to_csv
from app.risk import generate_recommendations, is_at_risk
from app.sample_data import load_sample_data
from app.storage import DuplicateStudentIdError, StudentNotFoundError, StudentStore

# Load environment variables
load_dotenv()

# Configuration
ALLOW_ORIGINS = os.getenv('ALLOW_ORIGINS', '*').split(',')
DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
LOAD_SAMPLE_DATA = os.getenv('LOAD_SAMPLE_DATA', 'False').lower() == 'true'
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

MAX_UPLOAD_SIZE_MB = int(os.getenv('MAX_UPLOAD_SIZE_MB', '10'))
MAX_UPLOAD_SIZE = MAX_UPLOAD_SIZE_MB * 1024 * 1024

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

router = APIRouter()


def get_store(request: Request) -> StudentStore:
    """Store owned by the running application."""
    return request.app.state.store


@router.get("/health")
async def health_check():
    """Health check endpoint to test server connectivity."""
    return {"status": "ok", "message": "Server is running"}


# Student records. Fixed paths are registered before /{record_id}.

@router.get("/api/students", response_model=List[Student])
async def list_students(store: StudentStore = Depends(get_store)):
    return store.all_students()


@router.get("/api/students/search", response_model=List[Student])
async def search_students(
    q: str = "",
    grade: Optional[str] = None,
    store: StudentStore = Depends(get_store)
):
    """Search by name or student id, optionally filtered by grade level."""
    return store.search(q, grade)


@router.get("/api/students/export.csv")
async def export_students(store: StudentStore = Depends(get_store)):
    """Download all students as CSV."""
    content = students_to_csv(store.snapshot())
    filename = export_filename(stamp=datetime.now().strftime('%Y-%m-%d'))
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.post("/api/students/import", response_model=ImportResponse)
async def import_students(
    file: UploadFile = File(...),
    store: StudentStore = Depends(get_store)
):
    """Import a roster file (CSV or Excel); valid rows are created, the rest reported."""
    file_bytes = await file.read()
    if len(file_bytes) > MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size: {MAX_UPLOAD_SIZE_MB}MB"
        )

    filename = file.filename or ""
    if not filename.lower().endswith((".csv", ".xlsx")):
        raise HTTPException(
            status_code=400,
            detail="Invalid file type. Please upload a .csv or .xlsx file"
        )

    try:
        roster = load_roster(file_bytes, filename)
    except ValueError as e:
        logger.warning("Roster %s rejected: %s", filename, e)
        raise HTTPException(status_code=400, detail=str(e))

    rows, errors = parse_roster(roster)

    created: List[Student] = []
    for row, payload in rows:
        try:
            created.append(store.create(payload))
        except DuplicateStudentIdError as e:
            errors.append(ImportRowError(
                row=row,
                student_id=payload.student_id,
                message=str(e),
            ))

    errors.sort(key=lambda err: err.row)
    logger.info("Imported %d students from %s (%d rows rejected)", len(created), filename, len(errors))

    return ImportResponse(
        success=not errors,
        message=f"Imported {len(created)} students" + (f", {len(errors)} rows rejected" if errors else ""),
        created=created,
        errors=errors,
    )


@router.get("/api/students/{record_id}", response_model=Student)
async def get_student(record_id: int, store: StudentStore = Depends(get_store)):
    return store.get(record_id)


@router.get("/api/students/{record_id}/recommendations", response_model=RecommendationResponse)
async def get_recommendations(record_id: int, store: StudentStore = Depends(get_store)):
    """Advisor recommendations for one student."""
    student = store.get(record_id)
    return RecommendationResponse(
        student_id=student.student_id,
        risk_tier=student.risk_tier,
        at_risk=is_at_risk(student.risk_tier),
        recommendations=generate_recommendations(student),
    )


@router.post("/api/students", response_model=Student, status_code=201)
async def create_student(data: StudentCreate, store: StudentStore = Depends(get_store)):
    return store.create(data)


@router.put("/api/students/{record_id}", response_model=Student)
async def update_student(
    record_id: int,
    changes: StudentUpdate,
    store: StudentStore = Depends(get_store)
):
    """Partial update; derived fields are recomputed from the merged record."""
    return store.update(record_id, changes)


@router.delete("/api/students/{record_id}", status_code=204)
async def delete_student(record_id: int, store: StudentStore = Depends(get_store)):
    store.delete(record_id)
    return Response(status_code=204)


# Analytics

@router.get("/api/analytics/overview", response_model=OverviewStats)
async def get_overview(store: StudentStore = Depends(get_store)):
    return aggregate_overview(store.snapshot())


@router.get("/api/analytics/grade-distribution", response_model=GradeDistribution)
async def get_grade_distribution(store: StudentStore = Depends(get_store)):
    return aggregate_grade_distribution(store.snapshot())


@router.get("/api/analytics/subject-performance", response_model=List[SubjectPerformance])
async def get_subject_performance(store: StudentStore = Depends(get_store)):
    """Subject averages, with change measured against the latest recorded baseline."""
    baseline = store.latest_baseline()
    return aggregate_subject_performance(
        store.snapshot(),
        baseline.averages if baseline else None
    )


@router.post("/api/analytics/baseline", response_model=SubjectBaseline, status_code=201)
async def record_baseline(store: StudentStore = Depends(get_store)):
    """Record current subject averages as the reference point for trends."""
    return store.record_baseline()


@router.post("/api/load-sample-data")
async def load_sample_data_endpoint(store: StudentStore = Depends(get_store)):
    created = load_sample_data(store)
    return {"message": "Sample data loaded successfully", "created": len(created)}


def add_exception_handlers(app: FastAPI) -> None:
    """Return JSON for every error path."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler_json(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail}
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler_json(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": "Validation error", "errors": jsonable_encoder(exc.errors())}
        )

    @app.exception_handler(StudentNotFoundError)
    async def not_found_handler(request: Request, exc: StudentNotFoundError):
        return JSONResponse(status_code=404, content={"detail": "Student not found"})

    # InvalidMetricsError and DuplicateStudentIdError are ValueErrors
    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions and return JSON."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        error_detail = str(exc)
        if DEBUG:
            error_detail = f"{str(exc)}\n\n{traceback.format_exc()}"

        return JSONResponse(
            status_code=500,
            content={
                "detail": f"Internal server error: {error_detail}",
                "type": type(exc).__name__
            }
        )


def create_app(store: Optional[StudentStore] = None, load_samples: Optional[bool] = None) -> FastAPI:
    """
    Build the application around its own student store.

    Args:
        store: Store to serve; a fresh empty one when omitted
        load_samples: Seed the sample roster; defaults to LOAD_SAMPLE_DATA
    """
    app = FastAPI(title="Student Performance Dashboard", version="1.0.0")
    app.state.store = store if store is not None else StudentStore()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    add_exception_handlers(app)
    app.include_router(router)

    if load_samples is None:
        load_samples = LOAD_SAMPLE_DATA
    if load_samples:
        load_sample_data(app.state.store)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
