import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.api.deps import get_hasher, get_rules, get_settings, sweep_in_memory_state
from src.app_shell.config import validate_ops_rules
from src.core.errors import (
    AnalyticsError,
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def sweep_forever(interval_seconds: float) -> None:
    """Periodically prune the realtime buffer and expire dedupe keys."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            dropped, expired = sweep_in_memory_state()
        except Exception:
            logger.exception("In-memory sweep failed")
            continue
        if dropped or expired:
            logger.info("Swept %d buffered events, %d dedupe keys", dropped, expired)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Fail fast: a missing secret or bad rules file stops the boot
    rules = get_rules()
    validate_ops_rules(rules, settings.data_dir)
    SQLiteMigrator(settings.db_path, str(settings.migrations_dir)).run_migrations()
    get_hasher()
    logger.info("Rules loaded from %s", settings.rules_path)

    sweeper = asyncio.create_task(sweep_forever(rules.ops.sweep_interval_seconds))
    try:
        yield
    finally:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper


app = FastAPI(
    title="Zero Trust Analytics API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)


# --- Error mapping ---
_STATUS_BY_ERROR: dict[type[AnalyticsError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    UpstreamError: status.HTTP_502_BAD_GATEWAY,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(error: AnalyticsError) -> int:
    for error_type, code in _STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def analytics_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, AnalyticsError)
    code = status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.code, exc)
    body: dict[str, Any] = {
        "ok": False,
        "errors": [{"code": exc.code, "message": exc.message, "field": None}],
    }
    if isinstance(exc, ConflictError) and exc.from_status:
        body["from_status"] = exc.from_status
        body["to_status"] = exc.to_status
    return JSONResponse(status_code=code, content=body)


app.add_exception_handler(AnalyticsError, analytics_error_handler)


# --- Routers ---
from src.api.routes import (  # noqa: E402
    collect,
    imports,
    public_stats,
    realtime,
    shares,
    stats,
)

app.include_router(collect.router, prefix="/api/collect", tags=["Collect"])
app.include_router(realtime.router, prefix="/api/realtime", tags=["Realtime"])
app.include_router(stats.router, prefix="/api/stats", tags=["Stats"])
app.include_router(shares.router, prefix="/api/shares", tags=["Shares"])
app.include_router(public_stats.router, prefix="/api/public", tags=["Public"])
app.include_router(imports.router, prefix="/api/imports", tags=["Imports"])


# Tracker script runs on customer sites
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "api"}
