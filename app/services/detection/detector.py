"""Call status detection from voice-platform signals."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from app.services.call_session.models import CallStatus
from app.services.detection.keywords import (
    DEAD_AIR_THRESHOLD_MS,
    END_REASON_PATTERNS,
    NO_ANSWER_THRESHOLD_MS,
)
from app.services.detection.strategies import TranscriptClassifier, default_classifiers

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallSignals(BaseModel):
    """Raw signals available for one call at analysis time."""

    end_reason: Optional[str] = None
    transcripts: Optional[List[str]] = None
    call_status: Optional[str] = None  # ringing, in-progress, ended
    started_at: Optional[datetime] = None


class StatusDetector:
    """Turns ambiguous call signals into a single CallStatus.

    Rules are applied in priority order and the first match wins: structured
    end reason, transcript classifiers (voicemail, IVR, fax tone by default),
    ringing timeout, silence gap, then live person / unknown.

    Silence is tracked per call as the time of the last speech event. Tracking
    starts when a call connects, resets on speech, and is dropped by
    ``cleanup`` when the call ends.
    """

    def __init__(
        self,
        classifiers: Optional[List[TranscriptClassifier]] = None,
        clock: Callable[[], datetime] = _utcnow,
        dead_air_threshold_ms: int = DEAD_AIR_THRESHOLD_MS,
        no_answer_threshold_ms: int = NO_ANSWER_THRESHOLD_MS,
    ):
        self.classifiers = classifiers if classifiers is not None else default_classifiers()
        self.dead_air_threshold_ms = dead_air_threshold_ms
        self.no_answer_threshold_ms = no_answer_threshold_ms
        self._clock = clock
        self._last_speech: Dict[str, datetime] = {}

    @property
    def tracked_call_count(self) -> int:
        return len(self._last_speech)

    def detect_status_from_end_reason(self, end_reason: Optional[str]) -> CallStatus:
        """Map a voice-platform end reason to a status."""
        if not end_reason:
            return CallStatus.UNKNOWN

        reason_lower = end_reason.lower()
        for pattern, status in END_REASON_PATTERNS:
            if pattern in reason_lower:
                return CallStatus(status)
        return CallStatus.UNKNOWN

    def classify_transcript(self, transcript: str) -> Optional[CallStatus]:
        """Run the transcript classifiers in order."""
        for classifier in self.classifiers:
            outcome = classifier.classify(transcript)
            if outcome is not None:
                return outcome
        return None

    def start_tracking(self, call_id: str) -> None:
        """Begin silence tracking when a call connects."""
        self._last_speech.setdefault(call_id, self._clock())

    def record_speech(self, call_id: str) -> None:
        """Speech was heard; the silence gap restarts."""
        self._last_speech[call_id] = self._clock()

    def silence_duration_ms(self, call_id: str) -> Optional[int]:
        """Milliseconds since the last speech event, None if not tracked."""
        last_speech = self._last_speech.get(call_id)
        if last_speech is None:
            return None
        elapsed = self._clock() - last_speech
        return elapsed // timedelta(milliseconds=1)

    def is_dead_air(self, call_id: str) -> bool:
        silence_ms = self.silence_duration_ms(call_id)
        if silence_ms is None or silence_ms < self.dead_air_threshold_ms:
            return False
        logger.warning(
            f"[STATUS DETECTOR] Dead air detected - call_id: {call_id}, "
            f"silence: {silence_ms / 1000:.1f}s"
        )
        return True

    def is_no_answer(self, started_at: datetime) -> bool:
        """Check whether a call has rung past the no-answer threshold."""
        elapsed = self._clock() - started_at
        return elapsed >= timedelta(milliseconds=self.no_answer_threshold_ms)

    def analyze(self, call_id: str, signals: CallSignals) -> CallStatus:
        """
        Determine the status of a call.

        Args:
            call_id: Call identifier, keys silence tracking
            signals: Signals currently known for the call

        Returns:
            Detected CallStatus (UNKNOWN when nothing matched)
        """
        status = self._analyze(call_id, signals)
        if signals.call_status == "ended":
            self.cleanup(call_id)
        logger.debug(f"[STATUS DETECTOR] call_id: {call_id}, status: {status}")
        return status

    def _analyze(self, call_id: str, signals: CallSignals) -> CallStatus:
        if signals.end_reason:
            status = self.detect_status_from_end_reason(signals.end_reason)
            if status != CallStatus.UNKNOWN:
                return status

        if signals.transcripts:
            combined = " ".join(signals.transcripts)
            outcome = self.classify_transcript(combined)
            if outcome is not None:
                return outcome

        if (
            signals.call_status == "ringing"
            and signals.started_at is not None
            and self.is_no_answer(signals.started_at)
        ):
            return CallStatus.NO_ANSWER

        if signals.call_status != "ended" and self.is_dead_air(call_id):
            return CallStatus.DEAD_AIR

        if signals.call_status == "in-progress" and signals.transcripts:
            return CallStatus.LIVE_PERSON

        return CallStatus.UNKNOWN

    def cleanup(self, call_id: str) -> None:
        """Discard silence tracking for an ended call."""
        if self._last_speech.pop(call_id, None) is not None:
            logger.debug(f"[STATUS DETECTOR] Tracking cleaned up - call_id: {call_id}")
