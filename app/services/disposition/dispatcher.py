"""Disposition dispatcher: delivers at most one disposition per call."""
import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from app.core.errors import ErrorCategory
from app.core.logging import mask_phone_number
from app.services.call_session.business_hours import BusinessHours, default_callback_time
from app.services.call_session.models import CallSession, CallStatus, QualificationResult
from app.services.call_session.registry import SessionRegistry
from app.services.dialer.client import DialerClient, is_retryable_dialer_error
from app.services.dialer.models import CallbackRequest, DispositionMetadata, DispositionRequest
from app.services.disposition.codes import (
    DispositionCode,
    qualification_to_disposition,
    status_to_disposition,
)
from app.services.resilience.circuit_breaker import CircuitBreaker
from app.services.resilience.executor import RetryExecutor

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DispatchOutcome(str, Enum):
    """What happened to a dispatch request."""

    SENT = "SENT"
    ALREADY_SENT = "ALREADY_SENT"
    NO_DISPOSITION = "NO_DISPOSITION"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    IN_FLIGHT = "IN_FLIGHT"
    FAILED = "FAILED"


class DispatchResult(BaseModel):
    """Typed result of a disposition or callback dispatch."""

    outcome: DispatchOutcome
    call_id: str
    disposition_code: Optional[str] = None
    reference_id: Optional[str] = None  # dispositionId or callbackId
    scheduled_for: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == DispatchOutcome.SENT


class DispositionDispatcher:
    """Maps call outcomes to disposition codes and delivers them to the dialer.

    Every delivery goes through the dialer circuit breaker, which wraps the
    retry executor under the dialer category. Retries stop as soon as the
    call's session is gone. The dispatcher never raises: every path returns a
    DispatchResult.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        executor: RetryExecutor,
        breaker: CircuitBreaker,
        dialer: DialerClient,
        audit: Optional[Any] = None,
        business_hours: Optional[BusinessHours] = None,
        campaign_id: str = "",
        callback_hour: int = 10,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.registry = registry
        self.executor = executor
        self.breaker = breaker
        self.dialer = dialer
        self.audit = audit
        self.business_hours = business_hours or registry.business_hours
        self.campaign_id = campaign_id
        self.callback_hour = callback_hour
        self._clock = clock
        self._in_flight: Dict[str, asyncio.Event] = {}

    async def dispatch_outcome(
        self, call_id: str, phone_number: str, status: CallStatus
    ) -> DispatchResult:
        """
        Disposition a call from its detected status.

        LIVE_PERSON and UNKNOWN map to no code; those calls are dispositioned
        from their qualification result instead.
        """
        session, rejected = self._guard(call_id)
        if rejected:
            return rejected

        code = status_to_disposition(status)
        if code is None:
            logger.info(
                f"[DISPATCHER] No disposition for status - call_id: {call_id}, status: {status}"
            )
            return DispatchResult(outcome=DispatchOutcome.NO_DISPOSITION, call_id=call_id)

        metadata = DispositionMetadata(
            validated=session.validated,
            reason=f"Call status: {status}",
        )
        if session.qualification_result is not None:
            metadata.score = session.qualification_result.score
            metadata.classification_result = session.qualification_result.result.value

        return await self._deliver(session, phone_number, code, metadata)

    async def dispatch_qualification(
        self, call_id: str, phone_number: str, qualification: QualificationResult
    ) -> DispatchResult:
        """Save a qualification result on the session and disposition from it."""
        session, rejected = self._guard(call_id)
        if rejected:
            return rejected

        self.registry.save_qualification_result(call_id, qualification)
        code = qualification_to_disposition(qualification.result)
        metadata = DispositionMetadata(
            score=qualification.score,
            classification_result=qualification.result.value,
            validated=session.validated,
            reason=qualification.reason or None,
        )
        return await self._deliver(session, phone_number, code, metadata)

    async def schedule_callback(
        self,
        call_id: str,
        phone_number: str,
        callback_time: Optional[str] = None,
        reason: str = "Customer requested callback",
        notes: Optional[str] = None,
    ) -> DispatchResult:
        """
        Schedule a callback with the dialer, once per call.

        Args:
            call_id: Call identifier
            phone_number: Number to call back
            callback_time: ISO-8601 time; defaults to the next business day
                at the configured callback hour
            reason: Reason passed to the dialer
            notes: Free-form notes

        Returns:
            DispatchResult with the callback ID and scheduled time on success
        """
        session = self.registry.get_session(call_id)
        if session is None:
            logger.warning(f"[DISPATCHER] Callback for unknown session - call_id: {call_id}")
            return DispatchResult(outcome=DispatchOutcome.SESSION_NOT_FOUND, call_id=call_id)
        if session.callback_scheduled:
            logger.info(
                f"[DISPATCHER] Callback already scheduled - call_id: {call_id}, "
                f"callback_time: {session.callback_time}"
            )
            return DispatchResult(
                outcome=DispatchOutcome.ALREADY_SENT,
                call_id=call_id,
                scheduled_for=session.callback_time,
            )

        flight_key = f"callback:{call_id}"
        if flight_key in self._in_flight:
            return DispatchResult(outcome=DispatchOutcome.IN_FLIGHT, call_id=call_id)

        callback_time = callback_time or default_callback_time(
            self.business_hours, self._clock(), self.callback_hour
        )
        request = CallbackRequest(
            lead_id=self._lead_id(session),
            campaign_id=self.campaign_id,
            phone_number=phone_number,
            callback_date_time=callback_time,
            agent_id=session.agent_extension,
            reason=reason,
            notes=notes,
        )

        done = self._in_flight[flight_key] = asyncio.Event()
        try:
            response = await self._submit(
                call_id, "schedule_callback", lambda: self.dialer.schedule_callback(request)
            )
            self.registry.mark_callback_scheduled(call_id, response.scheduled_for)
        except Exception as e:
            logger.error(
                f"[DISPATCHER] Callback scheduling failed - call_id: {call_id}, "
                f"error: {type(e).__name__}: {e}"
            )
            return DispatchResult(
                outcome=DispatchOutcome.FAILED,
                call_id=call_id,
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            del self._in_flight[flight_key]
            done.set()

        if self.audit is not None:
            await self.audit.record_callback(call_id, request, response)

        logger.info(
            f"[DISPATCHER] Callback scheduled - call_id: {call_id}, "
            f"callback_id: {response.callback_id}, scheduled_for: {response.scheduled_for}"
        )
        return DispatchResult(
            outcome=DispatchOutcome.SENT,
            call_id=call_id,
            reference_id=response.callback_id,
            scheduled_for=response.scheduled_for,
        )

    async def wait_for_delivery(self, call_id: str) -> None:
        """Wait until the disposition delivery running for a call has settled."""
        done = self._in_flight.get(call_id)
        if done is not None:
            await done.wait()

    def _guard(self, call_id: str):
        session = self.registry.get_session(call_id)
        if session is None:
            logger.warning(f"[DISPATCHER] No session for disposition - call_id: {call_id}")
            return None, DispatchResult(outcome=DispatchOutcome.SESSION_NOT_FOUND, call_id=call_id)
        if session.disposition_sent:
            logger.info(
                f"[DISPATCHER] Disposition already sent, skipping - call_id: {call_id}, "
                f"code: {session.disposition_code}"
            )
            return session, DispatchResult(
                outcome=DispatchOutcome.ALREADY_SENT,
                call_id=call_id,
                disposition_code=session.disposition_code,
                reference_id=session.disposition_id,
            )
        if call_id in self._in_flight:
            logger.info(f"[DISPATCHER] Disposition already in flight - call_id: {call_id}")
            return session, DispatchResult(outcome=DispatchOutcome.IN_FLIGHT, call_id=call_id)
        return session, None

    async def _deliver(
        self,
        session: CallSession,
        phone_number: str,
        code: DispositionCode,
        metadata: DispositionMetadata,
    ) -> DispatchResult:
        call_id = session.call_id
        request = DispositionRequest(
            lead_id=self._lead_id(session),
            campaign_id=self.campaign_id,
            phone_number=phone_number,
            disposition=code.value,
            agent_id=session.agent_extension,
            call_duration=max(0, int((self._clock() - session.start_time).total_seconds())),
            metadata=metadata,
        )
        logger.info(
            f"[DISPATCHER] Sending disposition - call_id: {call_id}, "
            f"phone: {mask_phone_number(phone_number)}, code: {code}"
        )

        done = self._in_flight[call_id] = asyncio.Event()
        try:
            response = await self._submit(
                call_id, "submit_disposition", lambda: self.dialer.submit_disposition(request)
            )
            marked = self.registry.mark_disposition_sent(call_id, code.value, response.disposition_id)
        except Exception as e:
            logger.error(
                f"[DISPATCHER] Disposition delivery failed - call_id: {call_id}, code: {code}, "
                f"error: {type(e).__name__}: {e}"
            )
            return DispatchResult(
                outcome=DispatchOutcome.FAILED,
                call_id=call_id,
                disposition_code=code.value,
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            del self._in_flight[call_id]
            done.set()

        if not marked:
            logger.warning(
                f"[DISPATCHER] Disposition delivered but session could not be marked - "
                f"call_id: {call_id}, disposition_id: {response.disposition_id}"
            )
        if self.audit is not None:
            await self.audit.record_disposition(call_id, request, response)

        return DispatchResult(
            outcome=DispatchOutcome.SENT,
            call_id=call_id,
            disposition_code=code.value,
            reference_id=response.disposition_id,
        )

    async def _submit(self, call_id: str, operation: str, call: Callable):
        context = {"call_id": call_id, "operation": operation}
        return await self.breaker.execute(
            lambda: self.executor.execute_with_retry(
                call,
                ErrorCategory.DIALER,
                context,
                is_retryable=is_retryable_dialer_error,
                should_continue=lambda: self.registry.get_session(call_id) is not None,
            )
        )

    @staticmethod
    def _lead_id(session: CallSession) -> str:
        lead_id = session.metadata.get("lead_id")
        if not lead_id and session.qualification_result is not None:
            lead_id = session.qualification_result.user_id
        return str(lead_id or session.call_id)
