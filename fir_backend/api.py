"""
FIR Service API
===============

FastAPI endpoints for FIR registration, case tracking and analytics.

Core Endpoints:
- GET    /health                              - Health check
- POST   /api/extract                         - Extract FIR fields from free text
- POST   /api/ai-lawyer/ask                  - Answer a legal question
- POST   /api/firs                            - Register a FIR
- GET    /api/firs/search                     - Filtered, paginated search
- GET    /api/firs/{fir_id}                   - Get FIR
- PATCH  /api/firs/{fir_id}/status            - Change status (appends history)
- GET    /api/firs/{fir_id}/pdf               - Printable FIR
- GET    /api/analytics/...                   - Distributions and monthly stats

The caller identity, where needed, comes from the X-User-Id header;
authentication happens upstream.

Run with:
    uvicorn fir_backend.api:app --host 0.0.0.0 --port 8000
"""

import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Header, Path, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .config import get_llm_mode, get_settings
from .db.models import utcnow
from .db.session import get_db, init_db
from .errors import ConflictError, FirServiceError, NotFoundError, StoreFailure, ValidationError
from .extraction import FirExtractor
from .legal_assistant import LegalAssistant
from .llm_client import close_llm_client, get_llm_client
from .renderer import render_fir_pdf
from .schemas import (
    CrimeTypeCount,
    EvidenceCreate,
    EvidenceOutput,
    ErrorResponse,
    ExtractionResult,
    ExtractRequest,
    FirCreate,
    FirOutput,
    HealthResponse,
    LegalAnswer,
    LegalQuestionRequest,
    MonthlyCount,
    NotificationCreate,
    NotificationOutput,
    PriorityCount,
    SearchResult,
    SortDirection,
    StatusChangeRequest,
    StatusCount,
    StatusUpdateCreate,
    StatusUpdateOutput,
    TimeRangeAnalytics,
    UserCreate,
    UserOutput,
)
from .store import FirStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="FIR Service",
    description="First Information Report registration, tracking and analytics",
    version=get_settings().service_version,
    docs_url="/docs",
    redoc_url="/redoc",
)


def _parse_cors_origins(raw: str) -> List[str]:
    origins: List[str] = []
    for item in raw.split(","):
        origin = item.strip().strip('"').strip("'").rstrip("/")
        if origin:
            origins.append(origin)
    return origins


_cors_raw = os.environ.get(
    "CORS_ALLOW_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"
)
CORS_ALLOW_ORIGINS = _parse_cors_origins(_cors_raw)
logger.info(f"CORS allow origins: {CORS_ALLOW_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)


# =============================================================================
# Dependencies
# =============================================================================

def get_store(db: Session = Depends(get_db)) -> FirStore:
    return FirStore(db)


def get_extractor() -> FirExtractor:
    return FirExtractor()


def get_legal_assistant() -> LegalAssistant:
    return LegalAssistant()


def _page_size(limit: Optional[int]) -> int:
    settings = get_settings()
    return min(limit or settings.default_page_size, settings.max_page_size)


def _require_user_header(x_user_id: Optional[int]) -> int:
    if x_user_id is None:
        raise ValidationError(
            "X-User-Id header is required",
            [{"field": "X-User-Id", "message": "header is required", "type": "missing"}],
        )
    return x_user_id


# =============================================================================
# Error handling
# =============================================================================

@app.exception_handler(FirServiceError)
async def service_error_handler(request: Request, exc: FirServiceError):
    """Map service errors to their HTTP status with a {message, code} body."""
    if isinstance(exc, StoreFailure):
        logger.error(f"Storage failure on {request.url.path}: {exc.message}")
    elif exc.status_code >= 500:
        logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed requests are 400s with field-level detail (inputs are not echoed)."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request", "code": "validation_error", "errors": errors},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler - always return valid JSON"""
    logger.error("Unhandled exception on %s: %s", request.url.path, exc.__class__.__name__, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"message": "Internal server error", "code": "internal_error"},
    )


# =============================================================================
# Lifecycle
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    settings = get_settings()
    logger.info(f"Starting FIR Service v{settings.service_version}")
    logger.info(f"LLM Mode: {settings.llm_mode}")
    for warning in settings.validate_llm_config():
        logger.warning(warning)
    init_db()


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    await close_llm_client()
    logger.info("FIR Service stopped")


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        version=settings.service_version,
        llm_mode=get_llm_mode(),
        llm_available=get_llm_client().available,
        timestamp=utcnow(),
    )


# =============================================================================
# Extraction
# =============================================================================

@app.post(
    "/api/extract",
    response_model=ExtractionResult,
    tags=["Extraction"],
    responses={
        400: {"model": ErrorResponse, "description": "Empty input"},
        503: {"model": ErrorResponse, "description": "Extraction failed after all attempts"},
    },
)
async def extract(request: ExtractRequest, extractor: FirExtractor = Depends(get_extractor)):
    """
    Extract structured FIR fields from a free-text description.

    The returned firId is provisional; nothing is stored until the client
    submits the (possibly edited) record to POST /api/firs.
    """
    return await extractor.extract(request.user_input)


@app.post("/api/gemini/process", response_model=ExtractionResult, tags=["Extraction"])
async def gemini_process(request: ExtractRequest, extractor: FirExtractor = Depends(get_extractor)):
    """Alias of /api/extract kept for existing clients"""
    return await extractor.extract(request.user_input)


@app.post(
    "/api/ai-lawyer/ask",
    response_model=LegalAnswer,
    tags=["Legal Assistant"],
    responses={
        400: {"model": ErrorResponse, "description": "Missing question"},
        503: {"model": ErrorResponse, "description": "No answer after all attempts"},
    },
)
async def ask_legal_question(
    request: LegalQuestionRequest, assistant: LegalAssistant = Depends(get_legal_assistant)
):
    """Answer a legal question (Indian law) in plain language. Nothing is stored."""
    return await assistant.ask(request.question)


# =============================================================================
# Users
# =============================================================================

@app.post("/api/users", response_model=UserOutput, status_code=201, tags=["Users"])
def create_user(request: UserCreate, store: FirStore = Depends(get_store)):
    return store.create_user(request)


@app.get("/api/users/{user_id}", response_model=UserOutput, tags=["Users"])
def get_user(user_id: int, store: FirStore = Depends(get_store)):
    user = store.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


@app.patch("/api/users/{user_id}", response_model=UserOutput, tags=["Users"])
def update_user(user_id: int, updates: Dict[str, Any] = Body(...), store: FirStore = Depends(get_store)):
    return store.update_user(user_id, updates)


# =============================================================================
# FIRs
# =============================================================================

@app.get("/api/firs", response_model=List[FirOutput], tags=["FIRs"])
def list_firs(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, gt=0),
    store: FirStore = Depends(get_store),
):
    """All FIRs, newest first"""
    return store.get_all_firs(page=page, limit=_page_size(limit))


@app.post("/api/firs", response_model=FirOutput, status_code=201, tags=["FIRs"])
def create_fir(
    request: FirCreate,
    store: FirStore = Depends(get_store),
    x_user_id: Optional[int] = Header(None, alias="X-User-Id"),
):
    """
    Register a FIR. Its REGISTERED history entry is written in the same
    transaction.

    When the identifier was generated here and collides with an existing
    case, a fresh one is drawn and the insert is retried once.
    """
    try:
        return store.create_fir(request, actor_id=x_user_id)
    except ConflictError:
        if request.fir_id is not None:
            raise
        logger.warning("Generated FIR identifier collided, retrying with a new one")
        return store.create_fir(request, actor_id=x_user_id)


@app.get("/api/firs/search", response_model=SearchResult, tags=["FIRs"])
def search_firs(
    query: Optional[str] = Query(None),
    status: Optional[List[str]] = Query(None),
    priority: Optional[List[int]] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    location: Optional[str] = Query(None),
    ipc_section: Optional[str] = Query(None, alias="ipcSection"),
    tags: Optional[List[str]] = Query(None),
    user_id: Optional[int] = Query(None, alias="userId"),
    officer_id: Optional[int] = Query(None, alias="officerId"),
    page: int = Query(1),
    limit: int = Query(10),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_direction: SortDirection = Query(SortDirection.DESC, alias="sortDirection"),
    store: FirStore = Depends(get_store),
):
    """
    Search FIRs. Predicates combine with AND; repeated ``status``,
    ``priority`` and ``tags`` parameters match any of their values.
    """
    params = {
        "query": query,
        "status": status,
        "priority": priority,
        "start_date": start_date,
        "end_date": end_date,
        "location": location,
        "ipc_section": ipc_section,
        "tags": tags,
        "user_id": user_id,
        "officer_id": officer_id,
        "page": page,
        "limit": limit,
        "sort_by": sort_by,
        "sort_direction": sort_direction,
    }
    return store.search_firs({k: v for k, v in params.items() if v is not None})


@app.get("/api/firs/user/{user_id}", response_model=List[FirOutput], tags=["FIRs"])
def list_firs_by_user(user_id: int, store: FirStore = Depends(get_store)):
    return store.get_firs_by_user(user_id)


@app.get("/api/firs/officer/{officer_id}", response_model=List[FirOutput], tags=["FIRs"])
def list_firs_by_officer(officer_id: int, store: FirStore = Depends(get_store)):
    return store.get_firs_by_officer(officer_id)


@app.get("/api/firs/{fir_id}", response_model=FirOutput, tags=["FIRs"])
def get_fir(fir_id: str, store: FirStore = Depends(get_store)):
    fir = store.get_fir(fir_id)
    if fir is None:
        raise NotFoundError(f"FIR {fir_id} not found")
    return fir


@app.patch("/api/firs/{fir_id}", response_model=FirOutput, tags=["FIRs"])
def update_fir(
    fir_id: str,
    updates: Dict[str, Any] = Body(...),
    store: FirStore = Depends(get_store),
    x_user_id: Optional[int] = Header(None, alias="X-User-Id"),
):
    return store.update_fir(fir_id, updates, actor_id=x_user_id)


@app.delete("/api/firs/{fir_id}", status_code=204, tags=["FIRs"])
def delete_fir(fir_id: str, store: FirStore = Depends(get_store)):
    store.delete_fir(fir_id)
    return Response(status_code=204)


@app.patch("/api/firs/{fir_id}/status", response_model=FirOutput, tags=["FIRs"])
def update_fir_status(
    fir_id: str,
    request: StatusChangeRequest,
    store: FirStore = Depends(get_store),
    x_user_id: Optional[int] = Header(None, alias="X-User-Id"),
):
    return store.update_fir_status(
        fir_id,
        request.status,
        actor_id=x_user_id,
        description=request.description,
        internal_note=request.internal_note,
        is_public=request.is_public,
    )


@app.get("/api/firs/{fir_id}/status-updates", response_model=List[StatusUpdateOutput], tags=["FIRs"])
def list_status_updates(
    fir_id: str,
    public_only: bool = Query(False, alias="publicOnly"),
    store: FirStore = Depends(get_store),
):
    if store.get_fir(fir_id) is None:
        raise NotFoundError(f"FIR {fir_id} not found")
    return store.get_status_updates(fir_id, public_only=public_only)


@app.post(
    "/api/firs/{fir_id}/status-updates",
    response_model=StatusUpdateOutput,
    status_code=201,
    tags=["FIRs"],
)
def create_status_update(
    fir_id: str,
    request: StatusUpdateCreate,
    store: FirStore = Depends(get_store),
    x_user_id: Optional[int] = Header(None, alias="X-User-Id"),
):
    if request.updated_by is None and x_user_id is not None:
        request = request.model_copy(update={"updated_by": x_user_id})
    return store.create_status_update(fir_id, request)


@app.get("/api/firs/{fir_id}/pdf", tags=["FIRs"])
def download_fir_pdf(fir_id: str, store: FirStore = Depends(get_store)):
    fir = store.get_fir(fir_id)
    if fir is None:
        raise NotFoundError(f"FIR {fir_id} not found")
    return Response(
        content=render_fir_pdf(fir),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{fir.fir_id}.pdf"'},
    )


# =============================================================================
# Evidence
# =============================================================================

@app.get("/api/firs/{fir_id}/evidence", response_model=List[EvidenceOutput], tags=["Evidence"])
def list_evidence(fir_id: str, store: FirStore = Depends(get_store)):
    if store.get_fir(fir_id) is None:
        raise NotFoundError(f"FIR {fir_id} not found")
    return store.get_evidence_by_fir(fir_id)


@app.post("/api/firs/{fir_id}/evidence", response_model=EvidenceOutput, status_code=201, tags=["Evidence"])
def add_evidence(
    fir_id: str,
    request: EvidenceCreate,
    store: FirStore = Depends(get_store),
    x_user_id: Optional[int] = Header(None, alias="X-User-Id"),
):
    if request.uploaded_by is None and x_user_id is not None:
        request = request.model_copy(update={"uploaded_by": x_user_id})
    return store.create_evidence(fir_id, request)


@app.get("/api/evidence/{evidence_id}", response_model=EvidenceOutput, tags=["Evidence"])
def get_evidence(evidence_id: int, store: FirStore = Depends(get_store)):
    item = store.get_evidence_by_id(evidence_id)
    if item is None:
        raise NotFoundError(f"Evidence {evidence_id} not found")
    return item


# =============================================================================
# Notifications
# =============================================================================

@app.get("/api/notifications", response_model=List[NotificationOutput], tags=["Notifications"])
def list_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    store: FirStore = Depends(get_store),
    x_user_id: Optional[int] = Header(None, alias="X-User-Id"),
):
    return store.get_user_notifications(_require_user_header(x_user_id), unread_only=unread_only)


@app.post("/api/notifications", response_model=NotificationOutput, status_code=201, tags=["Notifications"])
def create_notification(request: NotificationCreate, store: FirStore = Depends(get_store)):
    return store.create_notification(request)


@app.post("/api/notifications/read-all", tags=["Notifications"])
def mark_all_notifications_read(
    store: FirStore = Depends(get_store),
    x_user_id: Optional[int] = Header(None, alias="X-User-Id"),
):
    updated = store.mark_all_notifications_as_read(_require_user_header(x_user_id))
    return {"success": True, "updated": updated}


@app.post("/api/notifications/{notification_id}/read", tags=["Notifications"])
def mark_notification_read(notification_id: int, store: FirStore = Depends(get_store)):
    store.mark_notification_as_read(notification_id)
    return {"success": True}


# =============================================================================
# Analytics
# =============================================================================

@app.get("/api/analytics/crime-distribution", response_model=List[CrimeTypeCount], tags=["Analytics"])
def crime_distribution(store: FirStore = Depends(get_store)):
    return store.get_crime_type_distribution()


@app.get("/api/analytics/status-distribution", response_model=List[StatusCount], tags=["Analytics"])
def status_distribution(store: FirStore = Depends(get_store)):
    return store.get_status_distribution()


@app.get("/api/analytics/priority-distribution", response_model=List[PriorityCount], tags=["Analytics"])
def priority_distribution(store: FirStore = Depends(get_store)):
    return store.get_priority_distribution()


@app.get("/api/analytics/monthly-stats/{year}", response_model=List[MonthlyCount], tags=["Analytics"])
def monthly_stats(year: int = Path(...), store: FirStore = Depends(get_store)):
    return store.get_monthly_stats(year)


@app.get("/api/analytics/time-range", response_model=TimeRangeAnalytics, tags=["Analytics"])
def time_range_analytics(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    store: FirStore = Depends(get_store),
):
    """Defaults to the 30 days ending now."""
    end = end_date or utcnow()
    start = start_date or end - timedelta(days=30)
    return store.get_analytics_by_time_range(start, end)


# =============================================================================
# Main (for direct execution)
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "fir_backend.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
