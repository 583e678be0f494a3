# Backend main entry point - patient registry API
import logging
import logging.config
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

import hn as hn_scheme
from errors import AlreadyExists, InternalFailure, NotFound, ValidationFailed
from models import PatientRecord
from registry import store
from seed import seed_data
from settings import get_settings
from validation import ValidationReport, normalize_patient

_settings = get_settings()

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "default"},
    },
    "root": {"handlers": ["console"], "level": _settings.log_level},
}
logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(__name__)

# Demo data is loaded once at startup; /demo/reset restores it
if _settings.demo_mode:
    seed_data(store)
    logger.info("DEMO_MODE on: seeded sample patients")

app = FastAPI(title="Clinic Patient Registry API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class PatientPayload(BaseModel):
    """Raw intake form fields. Types are loose on purpose; the validation engine does the checking."""
    model_config = ConfigDict(extra="ignore")

    hn: Optional[str] = None
    titlePrefix: Optional[str] = None
    fullName: Optional[str] = None
    gender: Optional[str] = None
    nickname: Optional[str] = None
    phone: Optional[str] = None
    age: Optional[Union[int, str]] = None
    dateOfBirth: Optional[str] = None  # YYYY-MM-DD
    photo: Optional[str] = None  # base64 or data: URL


class PatientResponse(BaseModel):
    hn: str
    fullName: str
    gender: str
    age: int
    nickname: Optional[str] = None
    phone: Optional[str] = None
    dateOfBirth: Optional[date] = None
    photo: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime


class Advisory(BaseModel):
    code: str
    message: str


class PatientWriteResponse(PatientResponse):
    advisories: Optional[Dict[str, Advisory]] = None


def _to_response(record: PatientRecord, report: Optional[ValidationReport] = None) -> Dict[str, Any]:
    body = record.to_dict()
    if report is not None and report.advisories():
        body["advisories"] = report.advisories()
    return body


# Error mapping
@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request: Request, exc: ValidationFailed):
    return JSONResponse(status_code=400, content={"detail": exc.message, "errors": exc.errors})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are reported like engine rejections: 400 with one reason per field."""
    errors: Dict[str, Dict[str, str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        field = str(loc[1]) if len(loc) > 1 else "body"
        errors.setdefault(field, {"code": "invalid_type", "message": err.get("msg", "Invalid value")})
    return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(AlreadyExists)
async def already_exists_handler(request: Request, exc: AlreadyExists):
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(InternalFailure)
async def internal_failure_handler(request: Request, exc: InternalFailure):
    logger.error("Registry failure on %s %s: %s", request.method, request.url.path, exc.message,
                 exc_info=exc.cause or exc)
    return JSONResponse(status_code=500, content={"detail": "Internal registry failure"})


def _resolve_hn(key: str) -> str:
    """Path key -> canonical HN. Accepts HN000001, hn1 or a bare surrogate like 1."""
    parsed = hn_scheme.resolve(key)
    if isinstance(parsed, hn_scheme.InvalidFormat):
        raise ValidationFailed(
            {"hn": {"code": parsed.reason, "message": parsed.message}},
            message="Invalid hospital number",
        )
    return parsed


def _validate(fields: Mapping[str, Any], path_hn: Optional[str] = None) -> ValidationReport:
    try:
        settings = get_settings()
    except ValueError as exc:
        # Environment changed to an unusable value after startup
        raise InternalFailure(str(exc), cause=exc) from exc
    report = normalize_patient(
        fields,
        age_mismatch_policy=settings.age_mismatch_policy,
        age_tolerance_years=settings.age_tolerance_years,
        max_photo_bytes=settings.max_photo_bytes,
    )
    errors = report.errors()
    body_hn = report.values.get("hn")
    if path_hn is not None and body_hn is not None and body_hn != path_hn:
        errors["hn"] = {"code": "immutable", "message": "Hospital number cannot be changed"}
    if errors:
        logger.info("Rejected patient fields: %s", ", ".join(f"{k}={v['code']}" for k, v in sorted(errors.items())))
        raise ValidationFailed(errors)
    return report


@app.get("/")
def read_root():
    return {"message": "Clinic Patient Registry API"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/patients", response_model=List[PatientResponse], response_model_exclude_none=True)
def list_patients():
    """All patients, newest first"""
    return [_to_response(r) for r in store.list()]


@app.get("/patients/{hn}", response_model=PatientResponse, response_model_exclude_none=True)
def get_patient(hn: str):
    return _to_response(store.get(_resolve_hn(hn)))


@app.post(
    "/patients",
    status_code=201,
    response_model=PatientWriteResponse,
    response_model_exclude_none=True,
)
def create_patient(payload: PatientPayload):
    """
    Validate and register a patient. When hn is omitted the next free
    hospital number is assigned.
    """
    report = _validate(payload.model_dump(exclude_unset=True))
    record = store.create(report.to_record())
    return _to_response(record, report)


@app.put("/patients/{hn}", response_model=PatientWriteResponse, response_model_exclude_none=True)
def update_patient(hn: str, payload: PatientPayload):
    """Replace every mutable field of an existing patient. hn and createdAt are kept."""
    canonical = _resolve_hn(hn)
    report = _validate(payload.model_dump(exclude_unset=True), path_hn=canonical)
    record = store.update(canonical, report.to_record().copy(hn=canonical))
    return _to_response(record, report)


@app.delete("/patients/{hn}", status_code=204)
def delete_patient(hn: str):
    store.delete(_resolve_hn(hn))
    return Response(status_code=204)


@app.get("/demo/status")
def demo_status():
    """Returns whether demo mode is enabled."""
    return {"demoMode": get_settings().demo_mode}


@app.post("/demo/reset")
def demo_reset():
    """Restore the sample patients. Only available when DEMO_MODE=true."""
    if not get_settings().demo_mode:
        raise HTTPException(status_code=404, detail="Demo reset not available")
    seeded = seed_data(store)
    return {"status": "ok", "patients": len(seeded)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
