"""FastAPI dependencies and orchestrator wiring."""
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings
from app.core.errors import CallEndedError, ErrorCategory
from app.services.call_session.business_hours import BusinessHours
from app.services.call_session.extension_pool import AgentExtensionPool
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.registry import SessionRegistry
from app.services.detection.detector import StatusDetector
from app.services.dialer.client import DialerClient
from app.services.disposition.dispatcher import DispositionDispatcher
from app.services.persistence.audit import AuditRecorder
from app.services.resilience.circuit_breaker import CircuitBreakerRegistry
from app.services.resilience.executor import RetryExecutor

DIALER_SERVICE = "dialer"


def build_call_manager(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    dialer_client: Optional[DialerClient] = None,
) -> CallSessionManager:
    """Create the registry, detector, executor and dispatcher for one application."""
    audit = AuditRecorder(session_factory)
    business_hours = BusinessHours.from_settings(settings)

    registry = SessionRegistry(
        AgentExtensionPool(settings.agent_extensions),
        business_hours=business_hours,
        max_retries=settings.max_validation_retries,
    )
    breakers = CircuitBreakerRegistry(recorder=audit)
    dialer_breaker = breakers.create_circuit_breaker(
        DIALER_SERVICE,
        threshold=settings.dialer_breaker_threshold,
        reset_timeout_ms=settings.dialer_breaker_reset_ms,
        category=ErrorCategory.DIALER,
        ignored_exceptions=(CallEndedError,),
    )
    dispatcher = DispositionDispatcher(
        registry,
        RetryExecutor(recorder=audit),
        dialer_breaker,
        dialer_client or DialerClient(settings.dialer_api_url, timeout=settings.dialer_timeout_seconds),
        audit=audit,
        business_hours=business_hours,
        campaign_id=settings.dialer_campaign_id,
        callback_hour=settings.callback_hour,
    )
    return CallSessionManager(registry, StatusDetector(), dispatcher, audit=audit)


def get_call_manager(request: Request) -> CallSessionManager:
    """Get the application's call session manager."""
    return request.app.state.call_manager
