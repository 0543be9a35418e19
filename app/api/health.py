"""Health check endpoint."""
import logging
from fastapi import APIRouter, Depends, Request

from app.core.dependencies import get_call_manager
from app.services.call_session.manager import CallSessionManager

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(
    request: Request,
    manager: CallSessionManager = Depends(get_call_manager),
):
    """Health check endpoint."""
    logger.debug(
        f"[HEALTH] Health check requested - Client: {request.client.host if request.client else 'unknown'}"
    )
    return {
        "status": "healthy",
        "activeCalls": manager.registry.active_count,
        "availableExtensions": manager.registry.available_extension_count,
        "dialerCircuit": manager.dispatcher.breaker.state.value,
    }
