"""Inbound events from the voice platform and the tool layer."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.services.call_session.models import QualificationOutcome


class VoiceCallStatus(str, Enum):
    """Call status as reported by the voice platform."""

    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    ENDED = "ended"


class SpeechStatus(str, Enum):
    STARTED = "started"
    STOPPED = "stopped"


class InboundEvent(BaseModel):
    """camelCase payloads, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    call_id: str = Field(..., min_length=1)


class CallStatusEvent(InboundEvent):
    """Call lifecycle status update."""

    phone_number: Optional[str] = None
    status: VoiceCallStatus
    end_reason: Optional[str] = None
    duration_seconds: Optional[int] = None


class EndOfCallReport(InboundEvent):
    """Final report sent by the voice platform when a call ends."""

    ended_reason: str
    transcript: Optional[str] = None
    summary: Optional[str] = None
    message_count: Optional[int] = None
    phone_number: Optional[str] = None
    duration_seconds: Optional[int] = None


class TranscriptEvent(InboundEvent):
    role: str = "user"
    transcript: str


class SpeechUpdateEvent(InboundEvent):
    role: str = "user"
    status: SpeechStatus


class QualificationEvent(InboundEvent):
    """Result posted by the qualification service."""

    phone_number: Optional[str] = None
    user_id: Optional[str] = None
    result: QualificationOutcome
    score: int = Field(..., ge=0, le=100)
    reason: str = ""


class ValidationEvent(InboundEvent):
    """Outcome of one identifier validation attempt."""

    valid: bool


class CallbackRequestEvent(InboundEvent):
    phone_number: Optional[str] = None
    callback_date_time: Optional[str] = None  # ISO 8601
    reason: str = "Customer requested callback"
    notes: Optional[str] = None
