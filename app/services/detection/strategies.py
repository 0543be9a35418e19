"""Transcript classifiers used by the status detector."""
import re
from abc import ABC, abstractmethod
from typing import List, Optional

from app.services.call_session.models import CallStatus
from app.services.detection.keywords import (
    FAX_NOISE_MIN_LENGTH,
    FAX_TONE_PHRASES,
    IVR_KEYWORDS,
    VOICEMAIL_KEYWORDS,
)


class TranscriptClassifier(ABC):
    """Recognises one call outcome from transcript text."""

    outcome: CallStatus

    @abstractmethod
    def matches(self, transcript: str) -> bool:
        """Check whether the transcript indicates this classifier's outcome."""
        pass

    def classify(self, transcript: str) -> Optional[CallStatus]:
        """Return the outcome on a match, None otherwise."""
        return self.outcome if self.matches(transcript) else None


class KeywordClassifier(TranscriptClassifier):
    """Case-insensitive substring match against a keyword list."""

    def __init__(self, outcome: CallStatus, keywords: List[str]):
        self.outcome = outcome
        self.keywords = [keyword.lower() for keyword in keywords]

    def matches(self, transcript: str) -> bool:
        transcript_lower = transcript.lower()
        return any(keyword in transcript_lower for keyword in self.keywords)


class VoicemailClassifier(KeywordClassifier):
    def __init__(self, keywords: Optional[List[str]] = None):
        super().__init__(CallStatus.VOICEMAIL, keywords or VOICEMAIL_KEYWORDS)


class IVRClassifier(KeywordClassifier):
    def __init__(self, keywords: Optional[List[str]] = None):
        super().__init__(CallStatus.IVR, keywords or IVR_KEYWORDS)


class FaxToneClassifier(TranscriptClassifier):
    """Fax tones come through as empty, garbled or literal tone transcripts."""

    outcome = CallStatus.FAX_TONE

    def __init__(
        self,
        phrases: Optional[List[str]] = None,
        noise_min_length: int = FAX_NOISE_MIN_LENGTH,
    ):
        self.phrases = phrases or FAX_TONE_PHRASES
        self._noise = re.compile(rf"^[^a-z]{{{noise_min_length},}}$", re.IGNORECASE)

    def matches(self, transcript: str) -> bool:
        stripped = transcript.strip()
        if not stripped:
            return True
        if self._noise.match(stripped):
            return True
        transcript_lower = stripped.lower()
        return any(phrase in transcript_lower for phrase in self.phrases)


def default_classifiers() -> List[TranscriptClassifier]:
    """Classifiers in priority order: voicemail, IVR, fax tone."""
    return [VoicemailClassifier(), IVRClassifier(), FaxToneClassifier()]
