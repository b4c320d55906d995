"""FastAPI main application for the BULL-S Sociometric Analyzer."""

import csv
import logging
import os
import traceback
from io import StringIO

from dotenv import load_dotenv
from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bulls.aggregation import aggregate_group
from bulls.classification import ClassificationRun, classify_students
from bulls.models import (
    AggregationBasis,
    ClassifyRequest,
    ClassifyResponse,
    GroupDashboard,
    StudentAnalysis,
    UploadResponse,
)
from bulls.parsers import (
    answers_from_frame,
    load_table,
    parse_question_tags,
    parse_thresholds,
    roster_from_frame,
)
from bulls.providers import (
    GroupNotFoundError,
    InMemoryDataSource,
    LiveDashboardProvider,
    SampleDashboardProvider,
    load_group_dashboard,
)
from bulls.recommendations import build_student_analysis

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s'
)
LOG = logging.getLogger(__name__)

app = FastAPI(title="BULL-S Sociometric Analyzer", version="1.0.0")

# CORS configuration
allow_origins = os.getenv('ALLOW_ORIGINS', '*').split(',')
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler_json(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions and return JSON."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler_json(request: Request, exc: RequestValidationError):
    """Handle validation errors and return JSON."""
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(exc)}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and return JSON."""
    LOG.exception("Unhandled error on %s", request.url.path)
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


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without non-serializable context objects."""
    return [
        {key: value for key, value in error.items() if key in ('type', 'loc', 'msg')}
        for error in exc.errors()
    ]


# Configuration
DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
THRESHOLDS = parse_thresholds(os.getenv('BULLS_THRESHOLDS', ''))
QUESTION_TAGS = parse_question_tags(os.getenv('BULLS_QUESTION_TAGS', ''))
AGGREGATION_BASIS = AggregationBasis(os.getenv('BULLS_AGGREGATION_BASIS', AggregationBasis.ROSTER.value))

MAX_UPLOAD_SIZE_MB = int(os.getenv('MAX_UPLOAD_SIZE_MB', '10'))
MAX_UPLOAD_SIZE = MAX_UPLOAD_SIZE_MB * 1024 * 1024

# Uploaded groups live in memory for the lifetime of the process
data_source = InMemoryDataSource(QUESTION_TAGS)
live_provider = LiveDashboardProvider(data_source, THRESHOLDS, AGGREGATION_BASIS)
sample_provider = SampleDashboardProvider()


def classify_loaded_group(group_id: str) -> ClassificationRun:
    """Classify an uploaded group or respond 404."""
    try:
        return live_provider.classify_group(group_id)
    except GroupNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


async def read_upload(file: UploadFile) -> bytes:
    file_bytes = await file.read()
    if len(file_bytes) > MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size: {MAX_UPLOAD_SIZE_MB}MB"
        )
    return file_bytes


@app.get("/health")
async def health_check():
    """Health check endpoint to test server connectivity."""
    return JSONResponse(content={"status": "ok", "message": "Server is running"})


@app.post("/classify", response_model=ClassifyResponse)
async def classify(request: ClassifyRequest):
    """Classify a roster against answers sent in the request body."""
    question_tags = dict(QUESTION_TAGS)
    if request.question_tags:
        question_tags.update(request.question_tags)

    run = classify_students(request.roster, request.answers, question_tags, THRESHOLDS)
    aggregate = aggregate_group(run, request.basis or AGGREGATION_BASIS)

    return ClassifyResponse(
        success=True,
        message=f"Successfully classified {len(run.results)} students",
        students=run.results,
        aggregate=aggregate,
        diagnostics=run.diagnostics
    )


@app.post("/groups/{group_id}/upload", response_model=UploadResponse)
async def upload_group(
    group_id: str,
    roster_file: UploadFile = File(...),
    answers_file: UploadFile = File(...)
):
    """Upload a group's roster and answers sheets (CSV or Excel)."""
    roster_bytes = await read_upload(roster_file)
    answers_bytes = await read_upload(answers_file)

    try:
        roster = roster_from_frame(load_table(roster_bytes, roster_file.filename), group_id=group_id)
        answers = answers_from_frame(load_table(answers_bytes, answers_file.filename))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not roster:
        raise HTTPException(status_code=400, detail="No student records found in the roster file.")

    data_source.put_group(group_id, roster, answers)

    return UploadResponse(
        success=True,
        message=f"Loaded {len(roster)} students and {len(answers)} answers",
        group_id=group_id,
        students=len(roster),
        answers=len(answers)
    )


@app.get("/groups")
async def list_groups():
    """Groups currently loaded."""
    return {"groups": data_source.group_ids()}


@app.get("/groups/{group_id}/dashboard", response_model=GroupDashboard)
async def group_dashboard(group_id: str):
    """Dashboard for a group; sample data when the group cannot be loaded."""
    return load_group_dashboard(group_id, live_provider, sample_provider)


@app.get("/groups/{group_id}/students/{student_id}", response_model=StudentAnalysis)
async def student_analysis(group_id: str, student_id: str):
    """Individual analysis of one student."""
    run = classify_loaded_group(group_id)
    result = run.by_student().get(student_id)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Student '{student_id}' not found in group '{group_id}'")
    return build_student_analysis(result, THRESHOLDS)


@app.get("/groups/{group_id}/download.csv")
async def download_csv(group_id: str):
    """Download a group's classification as CSV."""
    run = classify_loaded_group(group_id)

    output = StringIO()
    writer = csv.writer(output)

    writer.writerow([
        'Student ID',
        'Student Name',
        'Role',
        'Social Status',
        'Risk Level',
        'Victim Score',
        'Bully Score',
        'Positive Connections',
        'Negative Connections',
        'Popularity Index',
        'Rejection Index'
    ])

    for result in run.results:
        writer.writerow([
            result.student_id,
            result.student_name,
            result.role.value,
            result.social_status.value,
            result.risk_level.value,
            result.victim_score,
            result.bully_score,
            result.positive_connections,
            result.negative_connections,
            f"{result.popularity_index:.1f}",
            f"{result.rejection_index:.1f}"
        ])

    output.seek(0)

    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=bulls_classification_{group_id}.csv"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
