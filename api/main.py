# ============================================================================
# api/main.py
# ============================================================================
"""
FastAPI Backend for Patient Intake Update analysis

Runs on port 8000.
Accepts intake questionnaire submissions and serves the stored intake updates
and dashboard chips.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from intake_analysis.config import base_settings, logging_settings
from intake_analysis.core.chips import build_questionnaire_chips
from intake_analysis.core.intake import aggregate_intake
from intake_analysis.core.pipeline import IntakeUpdatePipeline
from intake_analysis.core.store import UNSPECIFIED
from intake_analysis.generator.client import close_clients
from intake_analysis.utils.exceptions import PersistenceError, StoreError, ValidationError
from intake_analysis.utils.logging import setup_logging

logger = logging.getLogger(__name__)

_pipeline: Optional[IntakeUpdatePipeline] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and data directories at startup; close clients on shutdown."""
    setup_logging(
        level=logging_settings.LOG_LEVEL,
        log_file=logging_settings.LOG_FILE,
        format_json=logging_settings.LOG_JSON,
    )
    base_settings.create_directories()
    logger.info("Intake update API started")
    yield
    await close_clients()
    logger.info("Intake update API stopped")


app = FastAPI(
    title="Patient Intake Update API",
    description="Turns patient intake questionnaires into structured physician updates",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS for the staff dashboard and the intake form
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_origin_regex=r"http://192\.168\.\d+\.\d+:\d+",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_pipeline() -> IntakeUpdatePipeline:
    """Process-wide pipeline, built on first use."""
    global _pipeline
    if _pipeline is None:
        _pipeline = IntakeUpdatePipeline()
    return _pipeline


# ============================================================================
# Models
# ============================================================================

class IntakeSubmission(BaseModel):
    """
    Intake questionnaire submission.

    Only patientName is required (checked by the pipeline so the error body
    matches the other validation failures). Nested fields are passed through
    untouched; the aggregator handles their many shapes.
    """
    model_config = ConfigDict(extra="allow")

    patientName: Optional[str] = None
    dob: Optional[Any] = None
    claimNumber: Optional[Any] = None
    doi: Optional[Any] = None
    language: Optional[Any] = None
    bodyAreas: Optional[Any] = None
    refill: Optional[Any] = None
    newAppointments: Optional[Any] = None
    adl: Optional[Any] = None
    therapies: Optional[Any] = None
    notes: Optional[Any] = None


# ============================================================================
# Error handlers
# ============================================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    if isinstance(exc, PersistenceError):
        message = "Failed to save patient intake update"
    else:
        message = "Failed to read patient intake update"
    return JSONResponse(status_code=500, content={"error": message})


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Patient Intake Update API"}


@app.get("/api/health")
async def health():
    """Health check for monitoring."""
    return {"status": "healthy"}


@app.get("/api/generator/health")
async def generator_health(pipeline: IntakeUpdatePipeline = Depends(get_pipeline)):
    """Narrative generator availability and call statistics."""
    status = await pipeline.client.health_check()
    status["statistics"] = pipeline.client.get_statistics()
    return status


@app.post("/api/patient-intake-update")
async def create_intake_update(
    submission: IntakeSubmission,
    pipeline: IntakeUpdatePipeline = Depends(get_pipeline),
):
    """
    Analyze an intake submission and store the resulting update.

    Returns the stored record, including degraded (timeout_fallback) records.
    """
    result = await pipeline.submit(submission.model_dump())
    return {"success": True, "data": result.to_dict()}


def _lookup_args(
    patientName: Optional[str],
    patient_name: Optional[str],
    claimNumber: Optional[str],
    claim_number: Optional[str],
) -> Dict[str, Any]:
    name = patientName or patient_name
    if not name or not name.strip():
        raise ValidationError("Patient name is required", field_name="patientName")

    claim = claimNumber if claimNumber is not None else claim_number
    return {
        "patient_name": name,
        "claim_number": UNSPECIFIED if claim is None else claim,
    }


@app.get("/api/patient-intake-update")
async def get_intake_update(
    patientName: Optional[str] = None,
    patient_name: Optional[str] = None,
    dob: Optional[str] = None,
    claimNumber: Optional[str] = None,
    claim_number: Optional[str] = None,
    pipeline: IntakeUpdatePipeline = Depends(get_pipeline),
):
    """Latest intake update for a patient (claim filter only when given)."""
    args = _lookup_args(patientName, patient_name, claimNumber, claim_number)
    record = pipeline.get_latest(dob=dob, **args)
    if record is None:
        return {
            "success": True,
            "data": None,
            "message": "No patient intake update found",
        }
    return {"success": True, "data": record.to_dict()}


@app.get("/api/patient-intake-update/chips")
async def get_intake_chips(
    patientName: Optional[str] = None,
    patient_name: Optional[str] = None,
    dob: Optional[str] = None,
    claimNumber: Optional[str] = None,
    claim_number: Optional[str] = None,
    pipeline: IntakeUpdatePipeline = Depends(get_pipeline),
):
    """Dashboard chips built from the latest intake update."""
    args = _lookup_args(patientName, patient_name, claimNumber, claim_number)
    record = pipeline.get_latest(dob=dob, **args)

    chips: List[Dict[str, str]] = []
    if record is not None:
        update = record.to_dict()
        intake = aggregate_intake(record.intake_data) if record.intake_data.get("patientName") else None
        chips = [chip.to_dict() for chip in build_questionnaire_chips(update, intake)]

    return {"success": True, "data": chips}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
