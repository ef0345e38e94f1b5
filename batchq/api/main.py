"""
FastAPI application entry point.
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from batchq import __version__
from batchq.api.routes import health_router, queues_router, tasks_router
from batchq.config import get_settings
from batchq.db import close_db, get_engine, init_db
from batchq.observability.logging import setup_logging
from batchq.observability.metrics import get_metrics, setup_metrics
from batchq.observability.tracing import instrument_fastapi, instrument_sqlalchemy, setup_tracing

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Sets up observability and the database pool on startup and
    disposes the pool on shutdown.
    """
    setup_logging()
    setup_metrics()
    setup_tracing()
    await init_db()
    if get_settings().otel_enabled:
        instrument_sqlalchemy(get_engine().sync_engine)

    logger.info("Application started", extra={"version": __version__})

    yield

    await close_db()
    logger.info("Application shutdown")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Batch Queue API",
        description="Durable multi-tenant task queue with lease-based claiming",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def record_request_metrics(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        route = request.scope.get("route")
        get_metrics().record_api_request(
            method=request.method,
            endpoint=getattr(route, "path", request.url.path),
            status=response.status_code,
            duration_seconds=time.perf_counter() - start,
        )
        return response

    app.include_router(health_router)
    app.include_router(queues_router)
    app.include_router(tasks_router)

    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()

    uvicorn.run(
        "batchq.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


app = create_app()


if __name__ == "__main__":
    run()
