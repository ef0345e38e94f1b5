"""
Health, readiness and metrics routes.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from batchq import __version__
from batchq.db import get_async_session
from batchq.observability.metrics import get_metrics
from batchq.types.api import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


async def _database_reachable(session: AsyncSession) -> bool:
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Database check failed", extra={"error": str(exc)})
        return False
    finally:
        await session.rollback()
    return True


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Report service version and database connectivity.",
)
async def health_check(
    session: AsyncSession = Depends(get_async_session),
) -> HealthResponse:
    """
    A degraded status still answers 200: the process is up, the store is not.
    """
    healthy = await _database_reachable(session)

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=__version__,
        database="healthy" if healthy else "unhealthy",
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Answer 503 until the store accepts queries.",
)
async def readiness_check(
    session: AsyncSession = Depends(get_async_session),
) -> JSONResponse:
    ready = await _database_reachable(session)
    return JSONResponse(
        {"ready": ready},
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
    )


@router.get(
    "/live",
    summary="Liveness check",
)
async def liveness_check() -> dict:
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
)
async def metrics() -> Response:
    collector = get_metrics()
    return Response(
        content=collector.get_metrics(),
        media_type=collector.get_content_type(),
    )
