"""Audit recorder: best-effort writes of call outcomes and failures."""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import ErrorReport
from app.services.call_session.models import CallSession
from app.services.dialer.models import (
    CallbackRequest,
    CallbackResponse,
    DispositionRequest,
    DispositionResponse,
)
from app.services.persistence.calls import CallPersistenceService
from app.services.persistence.dispositions import DispositionPersistenceService
from app.services.persistence.errors import ErrorLogService

logger = logging.getLogger(__name__)


class AuditRecorder:
    """Writes audit rows, each in its own database session.

    Recording never raises: a failing audit store is logged and otherwise
    ignored so that it cannot break call handling.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record_error(self, report: ErrorReport) -> None:
        logger.debug(
            f"[AUDIT] {report.severity.value.upper()} {report.category.value} "
            f"{report.error_type.value} - call_id: {report.call_id}, message: {report.message}"
        )
        try:
            async with self.session_factory() as db:
                await ErrorLogService(db).log_error(report)
        except Exception:
            logger.exception(f"[AUDIT] Failed to write error log - call_id: {report.call_id}")

    async def record_disposition(
        self,
        call_id: Optional[str],
        request: DispositionRequest,
        response: DispositionResponse,
    ) -> None:
        try:
            async with self.session_factory() as db:
                await DispositionPersistenceService(db).create_disposition(call_id, request, response)
        except Exception:
            logger.exception(
                f"[AUDIT] Failed to write disposition - call_id: {call_id}, "
                f"disposition_id: {response.disposition_id}"
            )

    async def record_callback(
        self,
        call_id: Optional[str],
        request: CallbackRequest,
        response: CallbackResponse,
    ) -> None:
        try:
            async with self.session_factory() as db:
                await DispositionPersistenceService(db).create_callback(call_id, request, response)
        except Exception:
            logger.exception(
                f"[AUDIT] Failed to write callback - call_id: {call_id}, "
                f"callback_id: {response.callback_id}"
            )

    async def record_call_end(
        self,
        session: CallSession,
        end_reason: Optional[str] = None,
        transcript: Optional[str] = None,
        summary: Optional[str] = None,
        message_count: Optional[int] = None,
    ) -> None:
        try:
            async with self.session_factory() as db:
                await CallPersistenceService(db).record_call(
                    session,
                    end_reason=end_reason,
                    transcript=transcript,
                    summary=summary,
                    message_count=message_count,
                )
        except Exception:
            logger.exception(f"[AUDIT] Failed to write call record - call_id: {session.call_id}")
