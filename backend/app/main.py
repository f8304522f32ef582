"""
Pharmacy Checkout Backend: conversational order approval.

ARCHITECTURE:
- Intent parser: rule-based (product, quantity) extraction, NO AI
- Policy gate: not found / prescription / stock, fixed order
- Checkout state machine: Confirm -> Payment, one session per conversation
- SQLite/Postgres inventory: atomic check-and-decrement at pay time

SAFETY MODEL:
- Nothing is committed before explicit confirm AND pay
- Prescription-only medicines are always rejected
- Stock is re-checked inside the commit transaction

Every decision is traced and recorded in the run ledger.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import analytics, checkout, records
from app.core.config import settings
from app.core.exceptions import BusinessError, CollaboratorUnavailable
from app.db.init_db import init_db

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    1. Initialize database tables
    """
    logger.info("[*] Initializing database...")
    init_db()
    logger.info("[OK] Database initialized")

    yield


app = FastAPI(
    title="Pharmacy Checkout API",
    description="Conversational order approval. Resolve → Policy Gate → Confirm → Pay.",
    version="0.1.0",
    lifespan=lifespan,
)

# SECURITY: Restrict CORS to specific methods and headers (not wildcards)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Accept",
        "Origin",
        "X-Conversation-Id",
    ],  # Explicit headers only
    max_age=600,  # Cache preflight for 10 minutes
    expose_headers=["Content-Type"],
)


# SECURITY: Add security headers middleware
@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"  # Prevent MIME sniffing
    response.headers["X-Frame-Options"] = "DENY"  # Prevent clickjacking
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


@app.exception_handler(CollaboratorUnavailable)
async def collaborator_unavailable_handler(request: Request, exc: CollaboratorUnavailable):
    error = BusinessError.service_unavailable(str(exc))
    return JSONResponse(status_code=error.status_code, content={"detail": error.detail})


app.include_router(checkout.router, prefix="/checkout", tags=["checkout"])
app.include_router(records.router, tags=["records"])
app.include_router(analytics.router, prefix="/analytics", tags=["analytics"])


@app.get("/health")
def health():
    return {"status": "ok", "decision_engine": settings.DECISION_ENGINE, "stt_provider": settings.STT_PROVIDER}
