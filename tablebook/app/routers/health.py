import logging

from fastapi import APIRouter, Depends, HTTPException
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from tablebook.app.core import redis_client as redis_module
from tablebook.app.db.session import get_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, bool]:
    """Basic liveness probe."""
    return {"ok": True}


@router.get("/readiness")
async def readiness(session: AsyncSession = Depends(get_session)) -> dict[str, bool]:
    """Ensure the reservation database and the hold store are reachable."""
    if redis_module.redis_client is None:
        raise HTTPException(status_code=503, detail="Redis unavailable")

    try:
        await session.execute(text("SELECT 1 FROM duration_policy LIMIT 1"))
    except (DBAPIError, OSError) as exc:
        logger.error("Readiness: database check failed: %r", exc)
        raise HTTPException(status_code=503, detail="Database unavailable") from exc

    try:
        await redis_module.redis_client.ping()
    except RedisError as exc:
        logger.error("Readiness: redis ping failed: %r", exc)
        raise HTTPException(status_code=503, detail="Redis unavailable") from exc

    return {"ready": True}
