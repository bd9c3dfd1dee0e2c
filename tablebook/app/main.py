from contextlib import asynccontextmanager

from fastapi import FastAPI

from tablebook.app.core.config import settings
from tablebook.app.core.log_config import setup_logging
from tablebook.app.core.redis_client import close_redis, init_redis
import tablebook.app.routers.availability as availability
import tablebook.app.routers.health as health
import tablebook.app.routers.reservations as reservations


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_redis()
    try:
        yield
    finally:
        await close_redis()


app = FastAPI(
    title="Table Booking API",
    lifespan=lifespan,
)

app.include_router(health.router, prefix=settings.API_PREFIX)
app.include_router(availability.router, prefix=settings.API_PREFIX)
app.include_router(reservations.router, prefix=settings.API_PREFIX)
