import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from permitflow.config import settings
from permitflow.database import engine
from permitflow.errors import ConflictError, UpstreamError, WorkflowError
from permitflow.middleware.logging_config import configure_logging

configure_logging(settings.log_level, settings.log_format)

from permitflow.api.applications import router as applications_router  # noqa: E402
from permitflow.api.audit import router as audit_router  # noqa: E402
from permitflow.api.directorate import router as directorate_router  # noqa: E402
from permitflow.api.fees import router as fees_router  # noqa: E402
from permitflow.api.me import router as me_router  # noqa: E402
from permitflow.api.ops import router as ops_router  # noqa: E402
from permitflow.api.payments import router as payments_router  # noqa: E402

logger = logging.getLogger("permitflow")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: verify DB connection
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("Permit workflow API started (%s)", settings.environment)
    yield
    await engine.dispose()


app = FastAPI(
    title="CEPA Permit Review Workflow",
    description="Permit applications, staged reviews, fees and payments",
    version="0.1.0",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────────────
origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)

# ── Security headers middleware ──────────────────────────────────────────────
from permitflow.middleware.security_headers import SecurityHeadersMiddleware  # noqa: E402

app.add_middleware(SecurityHeadersMiddleware)

# ── Rate limiting middleware (RATE_LIMIT_PER_MINUTE=0 disables it) ───────────
from permitflow.middleware.rate_limit import RateLimitMiddleware  # noqa: E402

if settings.rate_limit_per_minute > 0:
    app.add_middleware(RateLimitMiddleware)

# ── Request context middleware (request ID + timing) ─────────────────────────
from permitflow.middleware.request_context import RequestContextMiddleware  # noqa: E402

app.add_middleware(RequestContextMiddleware)

# ── Prometheus metrics middleware ────────────────────────────────────────────
from permitflow.middleware.metrics import PrometheusMiddleware  # noqa: E402

app.add_middleware(PrometheusMiddleware)


# ── Error handling ───────────────────────────────────────────────────────────

def _error_response(exc: WorkflowError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    if isinstance(exc, UpstreamError):
        logger.warning("%s %s: %s", request.method, request.url.path, exc.message)
    else:
        logger.debug("%s %s -> %s: %s", request.method, request.url.path, exc.error_code, exc.message)
    return _error_response(exc)


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    return _error_response(ConflictError("The record was changed by someone else; reload and resubmit"))


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.warning("Database error on %s %s: %s", request.method, request.url.path, exc)
    return _error_response(UpstreamError("Could not reach the data store; please resubmit"))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return detailed error info in development mode so 500s are debuggable."""
    tb = traceback.format_exc()
    logger.error(
        "Unhandled %s on %s %s: %s\n%s",
        type(exc).__name__, request.method, request.url.path, exc, tb,
    )
    if settings.environment == "development":
        return JSONResponse(
            status_code=500,
            content={"detail": f"{type(exc).__name__}: {exc}", "traceback": tb.splitlines()[-5:]},
        )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# Register API routers
app.include_router(applications_router)
app.include_router(fees_router)
app.include_router(payments_router)
app.include_router(directorate_router)
app.include_router(audit_router)
app.include_router(me_router)
app.include_router(ops_router)
