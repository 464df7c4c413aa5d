"""
Leadflow - FastAPI Backend
Signal ingestion, workflow approval, agent dispatch and offer recompute.

Run: uvicorn leadflow.api.app:app --reload --port 8000
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from leadflow import __version__, config
from leadflow.api.routers import agents, cron, signals, workflows
from leadflow.db import connection, models
from leadflow.db.init_db import init_db
from leadflow.exceptions import LeadflowError
from leadflow.logging_config import setup_logging
from leadflow.runtime import build_runtime

logger = logging.getLogger("leadflow.api")

ALLOWED_ORIGINS = os.environ.get("LEADFLOW_CORS_ORIGINS", "http://localhost:3000,http://localhost:8000").split(",")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", "invalid"))
    return "; ".join(parts) or "Invalid request"


def create_app(runtime=None) -> FastAPI:
    """Build the app. A runtime passed in is used as-is and not shut down on exit."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        config.validate(strict=True)
        init_db()
        owned = app.state.runtime is None
        if owned:
            app.state.runtime = build_runtime()
        yield
        if owned:
            app.state.runtime.shutdown()

    app = FastAPI(
        title="Leadflow",
        description="Lead-intent orchestration: signals, workflow approval and agent dispatch.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(signals.router)
    app.include_router(workflows.router)
    app.include_router(agents.router)
    app.include_router(cron.router)

    # ─── ERROR SHAPE ─────────────────────────────────────────────

    @app.exception_handler(LeadflowError)
    async def leadflow_error(request: Request, exc: LeadflowError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        return _error(400, _validation_message(exc))

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")

    # ─── HEALTH CHECK ────────────────────────────────────────────

    @app.get("/health")
    def health(request: Request):
        rt = request.app.state.runtime
        try:
            with connection.get_db_conn() as conn:
                tables = conn.execute(
                    "SELECT COUNT(*) FROM sqlite_master WHERE type='table'"
                ).fetchone()[0]
            counts = models.get_table_counts()
        except Exception as e:
            return JSONResponse(status_code=500, content={
                "success": False, "status": "unhealthy", "error": str(e)})
        return {
            "success": True,
            "status": "healthy",
            "tables": tables,
            "counts": counts,
            "db_path": connection.DB_PATH,
            "agents": rt.registry.list() if rt else [],
            "trace_buffer": rt.tracer.snapshot()["buffered_traces"] if rt else 0,
            "alerts": rt.alerts.stats() if rt else {},
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("leadflow.api.app:app", host=config.API_HOST, port=config.API_PORT)
