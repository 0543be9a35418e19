"""Session registry: authoritative in-memory state of active calls."""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from app.core.logging import mask_phone_number
from app.services.call_session.business_hours import BusinessHours
from app.services.call_session.extension_pool import AgentExtensionPool
from app.services.call_session.models import (
    CallSession,
    CallState,
    CallStatus,
    QualificationResult,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRegistry:
    """Owns every active CallSession and the agent extension pool.

    All mutations are synchronous and do no I/O, so a state transition for one
    call cannot interleave with another coroutine. Lookups for an unknown
    call_id return None (or False) instead of raising.
    """

    def __init__(
        self,
        extension_pool: AgentExtensionPool,
        business_hours: Optional[BusinessHours] = None,
        max_retries: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.extension_pool = extension_pool
        self.business_hours = business_hours or BusinessHours()
        self.max_retries = max_retries
        self._clock = clock
        self._sessions: Dict[str, CallSession] = {}

    def create_session(self, call_id: str, phone_number: str) -> CallSession:
        """
        Register a new call and lease an agent extension for it.

        Returns the existing session if the call is already registered.

        Raises:
            ExtensionPoolExhaustedError: if no extension is free
        """
        existing = self._sessions.get(call_id)
        if existing is not None:
            logger.debug(f"[SESSION REGISTRY] Session already exists - call_id: {call_id}")
            return existing

        agent_extension = self.extension_pool.lease()
        now = self._clock()
        session = CallSession(
            call_id=call_id,
            phone_number=phone_number,
            agent_extension=agent_extension,
            start_time=now,
            max_retries=self.max_retries,
            within_business_hours=self.business_hours.is_within(now),
        )
        self._sessions[call_id] = session

        logger.info(
            f"[SESSION REGISTRY] Session created - call_id: {call_id}, "
            f"phone: {mask_phone_number(phone_number)}, extension: {agent_extension}, "
            f"within_business_hours: {session.within_business_hours}"
        )
        return session

    def get_session(self, call_id: str) -> Optional[CallSession]:
        return self._sessions.get(call_id)

    def update_state(self, call_id: str, state: CallState) -> bool:
        session = self._sessions.get(call_id)
        if not session:
            return False
        session.state = state
        logger.debug(f"[SESSION REGISTRY] State updated - call_id: {call_id}, state: {state}")
        return True

    def update_status(self, call_id: str, status: CallStatus) -> bool:
        """Record a detected status; a detected status means the call connected."""
        session = self._sessions.get(call_id)
        if not session:
            return False
        session.status = status
        session.state = CallState.CONNECTED
        logger.info(
            f"[SESSION REGISTRY] Call status detected - call_id: {call_id}, status: {status}"
        )
        return True

    def update_metadata(self, call_id: str, key: str, value: Any) -> bool:
        session = self._sessions.get(call_id)
        if not session:
            return False
        session.metadata[key] = value
        return True

    def increment_retry_attempt(self, call_id: str) -> bool:
        """
        Count one validation attempt.

        Returns:
            True if another attempt is still permitted after this one. The
            counter never passes max_retries.
        """
        session = self._sessions.get(call_id)
        if not session:
            return False
        if session.retry_attempts >= session.max_retries:
            logger.warning(
                f"[SESSION REGISTRY] Validation attempt refused, max retries reached - "
                f"call_id: {call_id}, attempts: {session.retry_attempts}"
            )
            return False

        session.retry_attempts += 1
        logger.info(
            f"[SESSION REGISTRY] Validation attempt incremented - call_id: {call_id}, "
            f"attempts: {session.retry_attempts}/{session.max_retries}"
        )
        return session.retry_attempts < session.max_retries

    def has_exceeded_max_retries(self, call_id: str) -> bool:
        session = self._sessions.get(call_id)
        return session.retry_attempts >= session.max_retries if session else False

    def mark_validated(self, call_id: str, validated: bool = True) -> bool:
        session = self._sessions.get(call_id)
        if not session:
            return False
        session.validated = validated
        logger.info(f"[SESSION REGISTRY] Validation updated - call_id: {call_id}, validated: {validated}")
        return True

    def save_qualification_result(self, call_id: str, result: QualificationResult) -> bool:
        session = self._sessions.get(call_id)
        if not session:
            return False
        session.qualification_result = result
        logger.info(
            f"[SESSION REGISTRY] Qualification saved - call_id: {call_id}, "
            f"result: {result.result.value}, score: {result.score}"
        )
        return True

    def mark_disposition_sent(
        self, call_id: str, disposition_code: str, disposition_id: str
    ) -> bool:
        """
        Flip disposition_sent to True. The only place that does so.

        Returns:
            True on the false->true transition, False if already sent or unknown
        """
        session = self._sessions.get(call_id)
        if not session:
            return False
        if session.disposition_sent:
            logger.warning(
                f"[SESSION REGISTRY] Disposition already marked sent - call_id: {call_id}, "
                f"existing: {session.disposition_code}/{session.disposition_id}"
            )
            return False
        session.disposition_sent = True
        session.disposition_code = str(disposition_code)
        session.disposition_id = disposition_id
        logger.info(
            f"[SESSION REGISTRY] Disposition marked as sent - call_id: {call_id}, "
            f"code: {disposition_code}, disposition_id: {disposition_id}"
        )
        return True

    def mark_callback_scheduled(self, call_id: str, callback_time: str) -> bool:
        session = self._sessions.get(call_id)
        if not session:
            return False
        if session.callback_scheduled:
            return False
        session.callback_scheduled = True
        session.callback_time = callback_time
        logger.info(
            f"[SESSION REGISTRY] Callback marked as scheduled - call_id: {call_id}, "
            f"callback_time: {callback_time}"
        )
        return True

    def end_session(self, call_id: str) -> Optional[CallSession]:
        """
        Complete a session, free its extension and drop it from the registry.

        Returns:
            Snapshot of the ended session, or None for an unknown call_id
        """
        session = self._sessions.pop(call_id, None)
        if session is None:
            return None

        session.end_time = self._clock()
        session.state = CallState.COMPLETED
        self.extension_pool.release(session.agent_extension)

        logger.info(
            f"[SESSION REGISTRY] Session ended - call_id: {call_id}, "
            f"phone: {mask_phone_number(session.phone_number)}, "
            f"duration: {session.duration_seconds}s, "
            f"disposition: {session.disposition_code}, extension: {session.agent_extension}"
        )
        return session.snapshot()

    def get_active_sessions(self) -> List[CallSession]:
        return list(self._sessions.values())

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    @property
    def available_extension_count(self) -> int:
        return self.extension_pool.available_count()

    def shutdown(self) -> None:
        """Drop every session and return all extensions."""
        if self._sessions:
            logger.warning(
                f"[SESSION REGISTRY] Shutting down with {len(self._sessions)} active sessions"
            )
        self._sessions.clear()
        self.extension_pool.release_all()
