"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from redis.asyncio import Redis

from recovery_service.api.admin import router as admin_router
from recovery_service.api.recovery import router as recovery_router
from recovery_service.config import settings
from recovery_service.database.engine import dispose_db, init_db
from recovery_service.dependencies import build_coordinator
from recovery_service.mock_external_api.router import router as mock_api_router
from recovery_service.recovery.coordinator import RecoveryCoordinator

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


async def sweep_periodically(coordinator: RecoveryCoordinator, interval: float) -> None:
    """Purge expired codes every *interval* seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            report = await coordinator.purge_expired()
        except Exception:
            logger.exception("Periodic sweep of recovery codes failed")
            continue
        if report.count:
            logger.info("Periodic sweep removed %d expired code(s)", report.count)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s …", settings.app_name)
    if settings.mock_backend_enabled:
        await init_db()
        logger.info("Mock backend database initialised")

    redis = Redis.from_url(settings.redis_url) if settings.redis_url else None
    coordinator = build_coordinator(settings, redis=redis)
    app.state.coordinator = coordinator

    sweeper = None
    if settings.sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(
            sweep_periodically(coordinator, settings.sweep_interval_seconds)
        )

    yield

    logger.info("Shutting down %s …", settings.app_name)
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    await coordinator.wait_idle()
    if redis is not None:
        await redis.aclose()
    if settings.mock_backend_enabled:
        await dispose_db()


app = FastAPI(
    title=settings.app_name,
    description="Password recovery code issuing and delivery for the member portal",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(recovery_router)
app.include_router(admin_router)
if settings.mock_backend_enabled:
    app.include_router(mock_api_router)


@app.get("/health")
async def health_check():
    """Simple liveness probe."""
    return {"status": "healthy", "app": settings.app_name}
