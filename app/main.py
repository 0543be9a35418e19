"""Main FastAPI application."""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI

from app.core.config import settings
from app.core.dependencies import build_call_manager
from app.core.logging import setup_logging
from app.db.database import AsyncSessionLocal, close_db, init_db
from app.api import health
from app.api.webhooks import voice
from app.services.call_session.manager import CallSessionManager

logger = logging.getLogger(__name__)


async def sweep_loop(manager: CallSessionManager, interval_seconds: float) -> None:
    """Periodically re-run status detection for live calls."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            changed = await manager.sweep()
            if changed:
                logger.info(f"[SWEEP] Updated status for {changed} active calls")
        except Exception:
            logger.exception("[SWEEP] Status sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    manager = build_call_manager(settings, AsyncSessionLocal)
    app.state.call_manager = manager

    sweep_task = None
    if settings.sweep_interval_seconds > 0:
        sweep_task = asyncio.create_task(sweep_loop(manager, settings.sweep_interval_seconds))
    logger.info(
        f"[STARTUP] Orchestrator ready - extensions: {manager.registry.available_extension_count}, "
        f"dialer: {settings.dialer_api_url}"
    )

    yield

    # Shutdown
    if sweep_task is not None:
        sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweep_task
    await manager.shutdown()
    await manager.dispatcher.dialer.close()
    await close_db()
    logger.info("[SHUTDOWN] Orchestrator stopped")


app = FastAPI(
    title="Call Disposition Orchestrator",
    description="Call session lifecycle and dialer disposition orchestrator",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(voice.router, prefix="/webhooks", tags=["webhooks"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
