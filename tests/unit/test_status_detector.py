"""Unit tests for call status detection."""
import pytest

from app.services.call_session.models import CallStatus
from app.services.detection.detector import CallSignals, StatusDetector
from app.services.detection.strategies import (
    FaxToneClassifier,
    IVRClassifier,
    KeywordClassifier,
    VoicemailClassifier,
)


@pytest.fixture
def detector(clock):
    return StatusDetector(clock=clock)


class TestEndReason:
    """Test end-reason classification."""

    @pytest.mark.parametrize(
        "end_reason,expected",
        [
            ("voicemail", CallStatus.VOICEMAIL),
            ("customer-did-not-answer", CallStatus.NO_ANSWER),
            ("no-answer", CallStatus.NO_ANSWER),
            ("customer-disconnected", CallStatus.DISCONNECTED),
            ("pipeline-error-websocket-closed", CallStatus.DISCONNECTED),
            ("customer-busy", CallStatus.BUSY),
            ("Voicemail-Detected", CallStatus.VOICEMAIL),
        ],
    )
    def test_end_reason_patterns(self, detector, end_reason, expected):
        """Test end-reason substrings map to statuses."""
        assert detector.detect_status_from_end_reason(end_reason) == expected

    def test_unmatched_end_reason(self, detector):
        """Test an unrecognized end reason is UNKNOWN."""
        assert detector.detect_status_from_end_reason("assistant-ended-call") == CallStatus.UNKNOWN
        assert detector.detect_status_from_end_reason(None) == CallStatus.UNKNOWN

    def test_unmatched_end_reason_falls_through(self, detector):
        """Test transcripts are consulted when the end reason does not match."""
        signals = CallSignals(
            end_reason="customer-ended-call",
            transcripts=["Please leave a message after the tone"],
            call_status="ended",
        )

        assert detector.analyze("call-1", signals) == CallStatus.VOICEMAIL

    def test_end_reason_wins_over_transcript(self, detector):
        """Test a matched end reason takes priority over transcript content."""
        signals = CallSignals(
            end_reason="customer-busy",
            transcripts=["Please leave a message"],
            call_status="ended",
        )

        assert detector.analyze("call-1", signals) == CallStatus.BUSY


class TestTranscriptClassifiers:
    """Test transcript classifier strategies."""

    def test_voicemail_keywords(self):
        """Test voicemail phrases are case-insensitive."""
        classifier = VoicemailClassifier()

        assert classifier.classify("Sorry, I'm NOT AVAILABLE right now") == CallStatus.VOICEMAIL
        assert classifier.classify("Hi, who is this?") is None

    def test_ivr_keywords(self):
        """Test phone menu phrases."""
        assert IVRClassifier().classify("For billing, press 2") == CallStatus.IVR

    @pytest.mark.parametrize("transcript", ["", "   ", "~~~ ### 123 *** !!! %%%", "BEEP BEEP BEEP", "tone"])
    def test_fax_heuristics(self, transcript):
        """Test empty, noise-only and literal tone transcripts are fax tones."""
        assert FaxToneClassifier().classify(transcript) == CallStatus.FAX_TONE

    def test_short_noise_is_not_fax(self):
        """Test short non-alphabetic input stays unclassified."""
        assert FaxToneClassifier().classify("...") is None

    def test_classifier_order(self, detector):
        """Test voicemail beats IVR when both match."""
        assert detector.classify_transcript("Leave a message or press 1") == CallStatus.VOICEMAIL

    def test_custom_classifier_list(self, clock):
        """Test the classifier list is swappable."""
        detector = StatusDetector(
            classifiers=[KeywordClassifier(CallStatus.IVR, ["para español"])],
            clock=clock,
        )

        assert detector.classify_transcript("Para español, oprima") == CallStatus.IVR
        assert detector.classify_transcript("Please leave a message") is None


class TestSilenceTracking:
    """Test dead-air detection."""

    def test_dead_air_threshold(self, detector, clock):
        """Test 5,999 ms of silence is not dead air and 6,000 ms is."""
        detector.start_tracking("call-1")

        clock.advance(ms=5999)
        assert detector.is_dead_air("call-1") is False

        clock.advance(ms=1)
        assert detector.is_dead_air("call-1") is True

    def test_speech_resets_silence(self, detector, clock):
        """Test a speech event restarts the silence gap."""
        detector.start_tracking("call-1")
        clock.advance(ms=5000)

        detector.record_speech("call-1")
        clock.advance(ms=5000)

        assert detector.silence_duration_ms("call-1") == 5000
        assert detector.is_dead_air("call-1") is False

    def test_untracked_call_is_not_dead_air(self, detector):
        """Test calls without tracking never report dead air."""
        assert detector.silence_duration_ms("call-1") is None
        assert detector.is_dead_air("call-1") is False

    def test_start_tracking_keeps_existing_timestamp(self, detector, clock):
        """Test a repeated connect event does not reset the gap."""
        detector.start_tracking("call-1")
        clock.advance(ms=4000)
        detector.start_tracking("call-1")

        assert detector.silence_duration_ms("call-1") == 4000

    def test_dead_air_while_in_progress(self, detector, clock):
        """Test analysis reports dead air for a silent live call."""
        detector.start_tracking("call-1")
        clock.advance(seconds=7)

        status = detector.analyze("call-1", CallSignals(call_status="in-progress"))

        assert status == CallStatus.DEAD_AIR

    def test_ended_call_discards_tracking(self, detector, clock):
        """Test analysis of an ended call cleans up silence tracking."""
        detector.start_tracking("call-1")
        clock.advance(seconds=7)

        status = detector.analyze("call-1", CallSignals(call_status="ended"))

        assert status == CallStatus.UNKNOWN
        assert detector.tracked_call_count == 0


class TestAnalyze:
    """Test the full rule order."""

    def test_no_answer_after_ringing(self, detector, clock):
        """Test a call ringing for 30 seconds is NO_ANSWER."""
        started_at = clock.now
        clock.advance(ms=29999)
        assert detector.analyze("call-1", CallSignals(call_status="ringing", started_at=started_at)) == CallStatus.UNKNOWN

        clock.advance(ms=1)
        assert detector.analyze("call-1", CallSignals(call_status="ringing", started_at=started_at)) == CallStatus.NO_ANSWER

    def test_live_person(self, detector):
        """Test a connected call with ordinary speech is LIVE_PERSON."""
        signals = CallSignals(call_status="in-progress", transcripts=["Hi, yes, this is Maria."])

        assert detector.analyze("call-1", signals) == CallStatus.LIVE_PERSON

    def test_unknown_without_signals(self, detector):
        """Test nothing to go on is UNKNOWN."""
        assert detector.analyze("call-1", CallSignals()) == CallStatus.UNKNOWN

    def test_transcripts_are_joined(self, detector):
        """Test classification runs over all snippets together."""
        signals = CallSignals(call_status="in-progress", transcripts=["Sorry, I am", "unable to take your call"])

        assert detector.analyze("call-1", signals) == CallStatus.VOICEMAIL
