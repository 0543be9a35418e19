"""Call session models."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class CallState(str, Enum):
    """Lifecycle state of a call session."""

    PRE_CONNECT = "PRE_CONNECT"  # Created, not yet answered
    CONNECTED = "CONNECTED"  # Call status detected
    IN_PROGRESS = "IN_PROGRESS"  # Conversation under way
    COMPLETING = "COMPLETING"  # End received, disposition pending
    COMPLETED = "COMPLETED"  # Terminal; session removed from the registry

    def __str__(self) -> str:
        return self.value


class CallStatus(str, Enum):
    """Classified outcome of a call."""

    LIVE_PERSON = "LIVE_PERSON"
    VOICEMAIL = "VOICEMAIL"
    DEAD_AIR = "DEAD_AIR"  # 6+ seconds of silence
    BUSY = "BUSY"
    FAST_BUSY = "FAST_BUSY"  # Network congestion
    NO_ANSWER = "NO_ANSWER"  # Rang 30+ seconds
    DISCONNECTED = "DISCONNECTED"
    FAX_TONE = "FAX_TONE"
    IVR = "IVR"
    UNKNOWN = "UNKNOWN"

    def __str__(self) -> str:
        return self.value


class QualificationOutcome(str, Enum):
    """Result reported by the qualification service."""

    QUALIFIED = "QUALIFIED"
    NOT_QUALIFIED = "NOT_QUALIFIED"


class QualificationResult(BaseModel):
    """Qualification result with its score."""

    result: QualificationOutcome
    score: int = Field(ge=0, le=100)
    reason: str = ""
    user_id: Optional[str] = None


class CallSession(BaseModel):
    """In-memory record of one active call."""

    call_id: str
    phone_number: str
    state: CallState = CallState.PRE_CONNECT
    status: CallStatus = CallStatus.UNKNOWN
    agent_extension: str
    start_time: datetime
    end_time: Optional[datetime] = None

    # Domain validation attempts (independent of transport retries)
    retry_attempts: int = 0
    max_retries: int = 3

    validated: bool = False
    qualification_result: Optional[QualificationResult] = None

    disposition_sent: bool = False
    disposition_code: Optional[str] = None
    disposition_id: Optional[str] = None

    callback_scheduled: bool = False
    callback_time: Optional[str] = None

    within_business_hours: bool = True

    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def duration_seconds(self) -> int:
        """Elapsed call time, up to end_time when the call has ended."""
        end = self.end_time or datetime.now(self.start_time.tzinfo)
        return max(0, int((end - self.start_time).total_seconds()))

    def snapshot(self) -> "CallSession":
        """Detached copy for audit logging."""
        return self.model_copy(deep=True)
