import hashlib
import json
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile

from .analysis import analyze, analyze_payload
from .config import Settings, get_settings
from .dates import format_instant
from .logging_config import setup_logging
from .models import AnalysisResult, HealthResponse, ServiceInfo
from .security import TokenBucketLimiter, verify_signature
from .tables import PayloadError, table_from_csv_bytes
from .validator import ValidationOptions

VERSION = "0.1.0"

logger = setup_logging()

app = FastAPI(
    title="load-analyzer",
    description="Header mapping, validation and UTC date normalization for trucking load sheets",
    version=VERSION,
)


@lru_cache(maxsize=1)
def get_limiter() -> TokenBucketLimiter:
    return TokenBucketLimiter(requests_per_minute=get_settings().rate_limit_rpm)


def _client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded.split(",")[0].strip():
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "anon"


def _enforce_rate_limit(request: Request, request_id: str) -> None:
    allowed, retry_after = get_limiter().acquire(_client_key(request))
    if not allowed:
        logger.info("[%s] Rate limit exceeded, retry after %ss", request_id, retry_after)
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Try again in a moment.",
            headers={"Retry-After": str(retry_after)},
        )


def _enforce_size(size: int, settings: Settings, request_id: str) -> None:
    if size > settings.max_payload_bytes:
        logger.info("[%s] Payload too large: %d bytes", request_id, size)
        raise HTTPException(
            status_code=413,
            detail=f"Payload too large ({size} bytes, max {settings.max_payload_bytes}). Please reduce the number of rows.",
        )


def _enforce_signature(request: Request, signed: Any, settings: Settings, request_id: str) -> None:
    ok = verify_signature(
        settings.hmac_secret,
        signed,
        request.headers.get("x-ttc-timestamp"),
        request.headers.get("x-ttc-signature"),
    )
    if not ok:
        logger.info("[%s] Signature check failed", request_id)
        raise HTTPException(status_code=401, detail="Invalid signature")


@app.get("/health", response_model=HealthResponse)
def health():
    return {"ok": True}


@app.get("/", response_model=ServiceInfo)
def index():
    return {
        "message": "Load sheet analyzer",
        "version": VERSION,
        "endpoints": {
            "health": "/health",
            "analysis": "/analyze",
            "csv": "/analyze/csv",
        },
        "timestamp": format_instant(datetime.now(timezone.utc)),
    }


@app.post("/analyze", response_model=AnalysisResult, response_model_exclude_none=True)
async def analyze_sheet(request: Request):
    request_id = uuid.uuid4().hex[:8]
    settings = get_settings()
    _enforce_rate_limit(request, request_id)

    raw = await request.body()
    _enforce_size(len(raw), settings, request_id)
    try:
        payload = json.loads(raw or b"null")
    except (ValueError, RecursionError) as exc:
        raise HTTPException(status_code=400, detail="Bad body: request body is not valid JSON") from exc

    _enforce_signature(request, payload, settings, request_id)

    try:
        result = analyze_payload(payload, settings)
    except PayloadError as exc:
        logger.info("[%s] Invalid request body: %s", request_id, exc)
        raise HTTPException(status_code=400, detail=f"Bad body: {exc}") from exc

    result.meta.request_id = request_id
    logger.info(
        "[%s] Analysis done: rows=%d issues=%d ok=%s",
        request_id, result.meta.analyzed_rows, len(result.issues), result.ok,
    )
    return result


@app.post("/analyze/csv", response_model=AnalysisResult, response_model_exclude_none=True)
async def analyze_csv(
    request: Request,
    file: UploadFile = File(...),
    timezone_name: Optional[str] = Form(default=None, alias="timezone"),
):
    request_id = uuid.uuid4().hex[:8]
    settings = get_settings()
    _enforce_rate_limit(request, request_id)

    if not (file.filename or "").lower().endswith(".csv"):
        raise HTTPException(status_code=422, detail="Only CSV files are supported")

    raw = await file.read()
    _enforce_size(len(raw), settings, request_id)
    # CSV uploads are signed over the file's SHA-256 hex digest.
    _enforce_signature(request, hashlib.sha256(raw).hexdigest(), settings, request_id)

    try:
        table = table_from_csv_bytes(raw, max_rows=settings.max_rows, max_cols=settings.max_cols)
    except PayloadError as exc:
        raise HTTPException(status_code=400, detail=f"Bad file: {exc}") from exc

    result = analyze(
        table,
        timezone_name or settings.default_timezone,
        options=ValidationOptions(
            accepted_statuses=settings.accepted_statuses,
            future_horizon_days=settings.future_horizon_days,
        ),
    )
    result.meta.request_id = request_id
    logger.info(
        "[%s] CSV analysis done: rows=%d issues=%d ok=%s",
        request_id, result.meta.analyzed_rows, len(result.issues), result.ok,
    )
    return result
