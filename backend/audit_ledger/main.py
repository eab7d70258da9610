"""
Audit Ledger — FastAPI Application Entry Point

Mounts the audit router, configures middleware and error mapping, and
initializes the database on startup.
"""
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from audit_ledger.config import get_settings
from audit_ledger.database import SessionLocal, init_db
from audit_ledger.errors import AuditValidationError, ChainConflictError, ExportRenderError
from audit_ledger.routes import audit_router
from audit_ledger.schemas.schemas import ErrorResponse, HealthResponse
from audit_ledger.utils.log import configure_logging

settings = get_settings()
configure_logging()
logger = logging.getLogger("audit_ledger.api")

# ─── Application Instance ───────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Tamper-evident audit ledger: per-tenant SHA-256 hash chains, "
        "integrity verification, and checksummed CSV / JSON / PDF exports."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# ─── Startup ─────────────────────────────────────────────────────────
BOOT_TIME = time.time()


@app.on_event("startup")
def on_startup():
    """Initialize database tables and log boot info."""
    init_db()
    logger.info(
        "%s v%s started (database=%s, debug=%s)",
        settings.APP_NAME, settings.APP_VERSION, settings.DATABASE_URL, settings.DEBUG,
    )


# ─── Middleware ──────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Export-Checksum", "X-Export-Row-Count", "X-Hash-Chain-Valid"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with timing."""
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 1)
    logger.info("%s %s -> %s (%sms)", request.method, request.url.path, response.status_code, duration)
    return response


# ─── Error Mapping ───────────────────────────────────────────────────

def _error(status_code: int, exc: Exception, error_code: str) -> JSONResponse:
    body = ErrorResponse(detail=str(exc), error_code=error_code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(AuditValidationError)
async def validation_error_handler(request: Request, exc: AuditValidationError):
    return _error(400, exc, "validation_error")


@app.exception_handler(ChainConflictError)
async def conflict_error_handler(request: Request, exc: ChainConflictError):
    return _error(409, exc, "sequence_conflict")


@app.exception_handler(ExportRenderError)
async def export_error_handler(request: Request, exc: ExportRenderError):
    return _error(500, exc, "export_failed")


# ─── API Routers ─────────────────────────────────────────────────────
app.include_router(audit_router)


@app.get("/health", tags=["Health"], response_model=HealthResponse)
def deep_health():
    """Health check including database connectivity."""
    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.warning("Health check: database unreachable", exc_info=True)
    finally:
        db.close()

    return {
        "status": "healthy" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "version": settings.APP_VERSION,
        "uptime_seconds": round(time.time() - BOOT_TIME, 1),
    }
