"""Call session manager."""
import logging
from enum import Enum
from typing import Any, List, Optional, Set

from app.core.errors import ErrorCategory, ErrorReport, ExtensionPoolExhaustedError
from app.core.logging import mask_phone_number
from app.services.call_session.events import (
    CallbackRequestEvent,
    CallStatusEvent,
    EndOfCallReport,
    QualificationEvent,
    SpeechUpdateEvent,
    TranscriptEvent,
    ValidationEvent,
    VoiceCallStatus,
)
from app.services.call_session.models import (
    CallSession,
    CallState,
    CallStatus,
    QualificationResult,
)
from app.services.call_session.registry import SessionRegistry
from app.services.detection.detector import CallSignals, StatusDetector
from app.services.disposition.dispatcher import (
    DispatchOutcome,
    DispatchResult,
    DispositionDispatcher,
)

logger = logging.getLogger(__name__)

# Transcript snippets kept per call for classification
MAX_TRANSCRIPT_SNIPPETS = 50


class ValidationAttemptResult(str, Enum):
    VALIDATED = "VALIDATED"
    RETRY = "RETRY"
    MAX_RETRIES_EXCEEDED = "MAX_RETRIES_EXCEEDED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"


class CallSessionManager:
    """Routes call lifecycle events through the registry, detector and dispatcher."""

    def __init__(
        self,
        registry: SessionRegistry,
        detector: StatusDetector,
        dispatcher: DispositionDispatcher,
        audit: Optional[Any] = None,
    ):
        self.registry = registry
        self.detector = detector
        self.dispatcher = dispatcher
        self.audit = audit
        self._finalizing: Set[str] = set()

    async def handle_status_event(self, event: CallStatusEvent) -> Optional[Any]:
        """
        Apply a voice-platform status update.

        ringing creates the session, in-progress starts silence tracking and
        ended finalizes the call.

        Returns:
            The CallSession for ringing/in-progress, the DispatchResult for
            ended, or None when the event could not be applied
        """
        call_id = event.call_id
        logger.info(f"[SESSION MANAGER] Status event - call_id: {call_id}, status: {event.status.value}")

        if event.status == VoiceCallStatus.ENDED:
            return await self.finalize_call(
                call_id, end_reason=event.end_reason, phone_number=event.phone_number
            )
        if call_id in self._finalizing:
            logger.info(f"[SESSION MANAGER] Ignoring status for ending call - call_id: {call_id}")
            return None

        session = self.registry.get_session(call_id)
        if session is None:
            session = await self._open_session(call_id, event.phone_number)
            if session is None:
                return None

        self.registry.update_metadata(call_id, "voice_status", event.status.value)
        if event.status == VoiceCallStatus.IN_PROGRESS:
            self.registry.update_state(call_id, CallState.IN_PROGRESS)
            self.detector.start_tracking(call_id)
        return session

    async def handle_end_of_call_report(self, report: EndOfCallReport) -> DispatchResult:
        return await self.finalize_call(
            report.call_id,
            end_reason=report.ended_reason,
            transcript=report.transcript,
            summary=report.summary,
            message_count=report.message_count,
            phone_number=report.phone_number,
        )

    async def handle_transcript(self, event: TranscriptEvent) -> bool:
        """Keep a bounded window of transcript snippets on the session."""
        session = self.registry.get_session(event.call_id)
        if session is None:
            logger.debug(f"[SESSION MANAGER] Transcript for unknown call - call_id: {event.call_id}")
            return False

        transcripts: List[str] = list(session.metadata.get("transcripts", []))
        transcripts.append(event.transcript)
        self.registry.update_metadata(
            event.call_id, "transcripts", transcripts[-MAX_TRANSCRIPT_SNIPPETS:]
        )
        if event.role == "user":
            self.detector.record_speech(event.call_id)
        return True

    async def handle_speech_update(self, event: SpeechUpdateEvent) -> bool:
        """Any speech start or stop restarts the silence gap."""
        if self.registry.get_session(event.call_id) is None:
            return False
        self.detector.record_speech(event.call_id)
        return True

    async def finalize_call(
        self,
        call_id: str,
        end_reason: Optional[str] = None,
        transcript: Optional[str] = None,
        summary: Optional[str] = None,
        message_count: Optional[int] = None,
        phone_number: Optional[str] = None,
    ) -> DispatchResult:
        """
        Classify a finished call, send its disposition and end the session.

        Only the first end event finalizes. One arriving while that
        finalization is still delivering returns IN_FLIGHT and leaves the
        session alone; one arriving afterwards finds no session.

        Args:
            call_id: Call identifier
            end_reason: Voice-platform end reason
            transcript: Full transcript from the end-of-call report
            summary: Call summary from the end-of-call report
            message_count: Number of messages exchanged
            phone_number: Number from the event, if the platform sent one

        Returns:
            DispatchResult of the disposition attempt
        """
        session = self.registry.get_session(call_id)
        if session is None:
            logger.info(f"[SESSION MANAGER] Call already finalized or unknown - call_id: {call_id}")
            return DispatchResult(outcome=DispatchOutcome.SESSION_NOT_FOUND, call_id=call_id)

        if call_id in self._finalizing:
            logger.info(f"[SESSION MANAGER] Call already finalizing - call_id: {call_id}")
            return DispatchResult(outcome=DispatchOutcome.IN_FLIGHT, call_id=call_id)

        self._finalizing.add(call_id)
        try:
            return await self._finalize(
                session, end_reason, transcript, summary, message_count, phone_number
            )
        finally:
            self._finalizing.discard(call_id)

    async def _finalize(
        self,
        session: CallSession,
        end_reason: Optional[str],
        transcript: Optional[str],
        summary: Optional[str],
        message_count: Optional[int],
        phone_number: Optional[str],
    ) -> DispatchResult:
        call_id = session.call_id
        self.registry.update_state(call_id, CallState.COMPLETING)
        phone_number = phone_number or session.phone_number

        transcripts = list(session.metadata.get("transcripts", []))
        if transcript:
            transcripts.append(transcript)
        status = self.detector.analyze(
            call_id,
            CallSignals(
                end_reason=end_reason,
                transcripts=transcripts or None,
                call_status=VoiceCallStatus.ENDED.value,
                started_at=session.start_time,
            ),
        )
        if status in (CallStatus.UNKNOWN, CallStatus.LIVE_PERSON) and session.status != CallStatus.UNKNOWN:
            # Keep what was detected while the call was live
            status = session.status
        if status != session.status:
            self.registry.update_status(call_id, status)
            self.registry.update_state(call_id, CallState.COMPLETING)

        logger.info(
            f"[SESSION MANAGER] Finalizing call - call_id: {call_id}, "
            f"phone: {mask_phone_number(phone_number)}, end_reason: {end_reason}, status: {status}"
        )

        result = await self._dispatch_final(session, phone_number, status)
        while result.outcome == DispatchOutcome.IN_FLIGHT:
            # A tool-driven delivery owns the call; let it settle first
            await self.dispatcher.wait_for_delivery(call_id)
            result = await self._dispatch_final(session, phone_number, status)

        self.detector.cleanup(call_id)
        ended = self.registry.end_session(call_id)
        if ended is not None and self.audit is not None:
            await self.audit.record_call_end(
                ended,
                end_reason=end_reason,
                transcript=transcript,
                summary=summary,
                message_count=message_count,
            )

        logger.info(
            f"[SESSION MANAGER] Call finalized - call_id: {call_id}, "
            f"disposition: {result.outcome.value}/{result.disposition_code}"
        )
        return result

    async def _dispatch_final(
        self, session: CallSession, phone_number: str, status: CallStatus
    ) -> DispatchResult:
        if session.qualification_result is not None and not session.disposition_sent:
            return await self.dispatcher.dispatch_qualification(
                session.call_id, phone_number, session.qualification_result
            )
        return await self.dispatcher.dispatch_outcome(session.call_id, phone_number, status)

    async def handle_qualification(self, event: QualificationEvent) -> DispatchResult:
        """Disposition a call from the qualification service's result."""
        session = self.registry.get_session(event.call_id)
        phone_number = event.phone_number or (session.phone_number if session else "")
        qualification = QualificationResult(
            result=event.result,
            score=event.score,
            reason=event.reason,
            user_id=event.user_id,
        )
        if session is not None and event.user_id:
            self.registry.update_metadata(event.call_id, "lead_id", event.user_id)
        return await self.dispatcher.dispatch_qualification(
            event.call_id, phone_number, qualification
        )

    async def handle_validation(self, event: ValidationEvent) -> ValidationAttemptResult:
        """
        Count a validation attempt.

        Once the attempt budget is spent further attempts are refused and a
        callback is scheduled for the caller.
        """
        call_id = event.call_id
        if self.registry.get_session(call_id) is None:
            return ValidationAttemptResult.SESSION_NOT_FOUND

        if event.valid:
            self.registry.mark_validated(call_id)
            return ValidationAttemptResult.VALIDATED

        if self.registry.has_exceeded_max_retries(call_id):
            return ValidationAttemptResult.MAX_RETRIES_EXCEEDED

        if self.registry.increment_retry_attempt(call_id):
            return ValidationAttemptResult.RETRY

        logger.warning(f"[SESSION MANAGER] Validation attempts exhausted - call_id: {call_id}")
        session = self.registry.get_session(call_id)
        await self.dispatcher.schedule_callback(
            call_id,
            session.phone_number,
            reason="Validation failed after maximum attempts",
        )
        return ValidationAttemptResult.MAX_RETRIES_EXCEEDED

    async def schedule_callback(self, event: CallbackRequestEvent) -> DispatchResult:
        session = self.registry.get_session(event.call_id)
        phone_number = event.phone_number or (session.phone_number if session else "")
        return await self.dispatcher.schedule_callback(
            event.call_id,
            phone_number,
            callback_time=event.callback_date_time,
            reason=event.reason,
            notes=event.notes,
        )

    async def sweep(self) -> int:
        """
        Re-run status detection for live calls.

        Only records detected statuses; dispositions are sent at call end.

        Returns:
            Number of sessions whose status changed
        """
        changed = 0
        for session in self.registry.get_active_sessions():
            if session.call_id in self._finalizing:
                continue
            voice_status = session.metadata.get("voice_status")
            if voice_status not in (VoiceCallStatus.RINGING.value, VoiceCallStatus.IN_PROGRESS.value):
                continue

            status = self.detector.analyze(
                session.call_id,
                CallSignals(
                    transcripts=session.metadata.get("transcripts") or None,
                    call_status=voice_status,
                    started_at=session.start_time,
                ),
            )
            if status != CallStatus.UNKNOWN and status != session.status:
                self.registry.update_status(session.call_id, status)
                changed += 1
        return changed

    async def _open_session(self, call_id: str, phone_number: Optional[str]) -> Optional[CallSession]:
        if not phone_number:
            logger.warning(f"[SESSION MANAGER] Cannot open session without phone number - call_id: {call_id}")
            return None
        try:
            return self.registry.create_session(call_id, phone_number)
        except ExtensionPoolExhaustedError as e:
            logger.error(f"[SESSION MANAGER] {e.message} - call_id: {call_id} left untracked")
            if self.audit is not None:
                await self.audit.record_error(
                    ErrorReport(
                        error_type=e.error_type,
                        category=ErrorCategory.VOICE_PLATFORM,
                        message=e.message,
                        call_id=call_id,
                        context={"pool_size": e.pool_size},
                        severity=e.severity,
                    )
                )
            return None

    async def shutdown(self) -> None:
        self.registry.shutdown()
