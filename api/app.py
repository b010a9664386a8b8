"""
FastAPI application factory.

Usage:
    python -m api.app                          # Dev server on port 8000
    APP_DB_PATH=/data/perf.sqlite python -m api.app

OpenAPI docs available at http://localhost:8000/docs after starting.

Logging is structured JSON when APP_LOG_FORMAT=json.  CORS origins come from
APP_CORS_ORIGINS.  Every error leaves the API in the envelope
``{"status": "ERROR", "message": ..., "error": {"code": ..., "details": ...}}``.
"""

import json
import logging
import sqlite3
import time
import uuid
import warnings
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import api.database as _db_mod
from api.database import get_db_path
from api.routes import catalog, performance, reference, reports
from performance.errors import PerformanceError
from performance.schema import SCHEMA_VERSION, create_database
from utils.config import AppConfig
from utils.database import get_table_count, table_exists

# ── Configuration ─────────────────────────────────────────────────────────────
_cfg = AppConfig.from_env()

# ── Structured JSON logging ──────────────────────────────────────────────────


class _JsonFormatter(logging.Formatter):
    """Emit log records as newline-delimited JSON."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Merge extra fields added via logger.info("...", extra={...})
        for key in ("method", "path", "status", "duration_ms", "client_ip",
                    "request_id", "user_id"):
            if hasattr(record, key):
                data[key] = getattr(record, key)
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data)


_logger = logging.getLogger("performance_api")
_handler = logging.StreamHandler()
if _cfg.log_format == "json":
    _handler.setFormatter(_JsonFormatter())
else:
    _handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
logging.basicConfig(handlers=[_handler], level=logging.INFO, force=True)

_HEALTH_TABLES = ("users", "modules", "topics", "questions", "performance_statistics")

_HTTP_CODES = {
    401: "UNAUTHENTICATED",
    403: "ACCESS_DENIED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    503: "UNAVAILABLE",
}


def _error_body(message: str, code: str, details=None) -> dict:
    error: dict = {"code": code}
    if details is not None:
        error["details"] = details
    return {"status": "ERROR", "message": message, "error": error}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Warn on startup when the database has not been created yet."""
    db_path = get_db_path()
    if not db_path.exists():
        warnings.warn(
            f"Database not found at {db_path}. "
            "Run 'python -m scripts.init_db' first.",
            stacklevel=2,
        )
    yield


def create_app(db_path: Path | None = None, config: AppConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_path: Override the database path (useful for testing).  The file is
            created and migrated to the current schema version.
        config: Override the environment-derived settings.

    Returns:
        Configured FastAPI application instance.
    """
    cfg = config or _cfg
    if db_path is not None:
        _db_mod._DB_PATH = Path(db_path)
        create_database(Path(db_path)).close()

    app = FastAPI(
        title="Performance Statistics API",
        summary="Monthly performance reporting for district field units.",
        description=(
            "## Performance Statistics API\n\n"
            "Field users answer a catalog of questions once per reporting month; "
            "administrators aggregate the finalized answers across the "
            "state → range → district → user hierarchy.\n\n"
            "### Key concepts\n"
            "- **Reporting month** is labelled `MMM YYYY` (e.g. `MAR 2025`).\n"
            "- **Statuses**: `INPROGRESS` facts may be edited; `SUCCESS` facts "
            "are locked after OTP verification.\n"
            "- **Reports** sum numeric answers only; Yes/No, dates and free "
            "text are never added up.\n"
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {
                "name": "performance-statistics",
                "description": "Monthly form, answer ledger, OTP finalization and summaries.",
            },
            {
                "name": "reports",
                "description": "Chart matrices and Excel exports over finalized facts.",
            },
            {
                "name": "catalog",
                "description": "Modules, topics, subtopics and questions (writes are ADMIN only).",
            },
            {
                "name": "reference",
                "description": "States, ranges and districts.",
            },
            {
                "name": "meta",
                "description": "Health check.",
            },
        ],
    )
    app.state.config = cfg

    # ── CORS middleware ───────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # ── Request logging middleware ────────────────────────────────────────────

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log each request with a short id that is echoed in X-Request-ID."""
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id
        start = time.monotonic()
        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path

        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        if cfg.log_format == "json":
            _logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 1),
                    "client_ip": client_ip,
                    "request_id": request_id,
                },
            )
        else:
            _logger.info(
                "method=%s path=%s status=%d duration_ms=%.1f ip=%s rid=%s",
                request.method, path, response.status_code, duration_ms,
                client_ip, request_id,
            )
        if duration_ms > 500:
            _logger.warning(
                "slow_request method=%s path=%s duration_ms=%.1f",
                request.method, path, duration_ms,
            )
        return response

    # ── Security headers ──────────────────────────────────────────────────────

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        """Add X-Content-Type-Options and X-Frame-Options to every response."""
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    # ── Error handling ────────────────────────────────────────────────────────

    @app.exception_handler(PerformanceError)
    async def performance_error_handler(request: Request, exc: PerformanceError):
        if exc.http_status >= 500:
            _logger.error("%s: %s", exc.code, exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=_error_body("Invalid request", "VALIDATION",
                                jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail), code),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content=_error_body(str(exc), "VALIDATION"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch unhandled exceptions and return JSON instead of a traceback."""
        request_id = getattr(request.state, "request_id", None)
        _logger.error("unhandled_error path=%s rid=%s", request.url.path,
                      request_id, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=_error_body("Internal server error", "INTERNAL",
                                {"correlationId": request_id}),
        )

    # ── Health check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["meta"], summary="Health check")
    def health():
        """Return 200 OK if the API is running and can reach the database."""
        db_path = get_db_path()
        if not db_path.exists():
            return JSONResponse(
                status_code=503,
                content=_error_body("Database not found", "UNAVAILABLE",
                                    {"database": str(db_path)}),
            )
        conn = sqlite3.connect(str(db_path))
        try:
            counts = {
                table: get_table_count(conn, table)
                for table in _HEALTH_TABLES
                if table_exists(conn, table)
            }
        except sqlite3.Error as exc:
            return JSONResponse(
                status_code=503,
                content=_error_body("Database unavailable", "UNAVAILABLE",
                                    {"error": str(exc)}),
            )
        finally:
            conn.close()
        return {
            "status": "SUCCESS",
            "message": "ok",
            "data": {
                "database": str(db_path),
                "schemaVersion": SCHEMA_VERSION,
                "tables": counts,
            },
        }

    # ── Register routers ──────────────────────────────────────────────────────

    prefix = "/api"
    app.include_router(performance.router, prefix=prefix)
    app.include_router(reports.router,     prefix=prefix)
    app.include_router(reference.router,   prefix=prefix)
    for router in catalog.routers:
        app.include_router(router, prefix=prefix)

    return app


# Singleton instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.app:app",
        host=_cfg.api_host,
        port=_cfg.api_port,
        reload=True,
        log_level="info",
    )
