"""Health check endpoints."""
import logging

from fastapi import APIRouter, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError


logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    redis: str


async def check_redis_health(request: Request) -> str:
    """Check Redis connectivity. Returns 'connected' or 'unavailable'."""
    redis_client = request.app.state.services.redis_client
    if redis_client is None:
        return "unavailable"
    if await redis_client.ping():
        return "connected"
    return "unavailable"


async def check_database_health(request: Request) -> str:
    """Run a trivial query. Returns 'healthy', 'unhealthy' or 'unavailable'."""
    engine = request.app.state.services.engine
    if engine is None:
        return "unavailable"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.exception("Database health check failed")
        return "unhealthy"
    return "healthy"


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """
    Check application and database health.

    Note: App returns 'healthy' even if Redis is unavailable (degraded mode).
    Without Redis, change notifications only reach view sessions served by the
    same process.
    """
    db_status = await check_database_health(request)
    redis_status = await check_redis_health(request)

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        database=db_status,
        redis=redis_status,
    )
