"""Unit tests for the session registry."""
from datetime import datetime, timezone

import pytest

from app.core.errors import ExtensionPoolExhaustedError
from app.services.call_session.business_hours import BusinessHours
from app.services.call_session.extension_pool import AgentExtensionPool
from app.services.call_session.models import CallState, CallStatus, QualificationOutcome, QualificationResult
from app.services.call_session.registry import SessionRegistry


class TestSessionLifecycle:
    """Test session creation and teardown."""

    def test_create_session(self, registry):
        """Test a new session starts pre-connect with a leased extension."""
        session = registry.create_session("call-1", "+15551234567")

        assert session.call_id == "call-1"
        assert session.state == CallState.PRE_CONNECT
        assert session.status == CallStatus.UNKNOWN
        assert session.agent_extension == "8001"
        assert session.max_retries == 3
        assert session.within_business_hours is True
        assert registry.available_extension_count == 5

    def test_create_session_idempotent(self, registry):
        """Test creating the same call twice does not lease a second extension."""
        first = registry.create_session("call-1", "+15551234567")
        second = registry.create_session("call-1", "+15551234567")

        assert first is second
        assert registry.active_count == 1
        assert registry.available_extension_count == 5

    def test_six_sessions_hold_distinct_extensions(self, registry):
        """Test every concurrent session holds its own extension."""
        sessions = [registry.create_session(f"call-{i}", f"+1555000000{i}") for i in range(6)]

        extensions = [session.agent_extension for session in sessions]
        assert len(set(extensions)) == 6
        assert registry.available_extension_count == 0

    def test_pool_exhaustion_rejects_session(self, registry):
        """Test a seventh concurrent call is rejected instead of sharing an extension."""
        for i in range(6):
            registry.create_session(f"call-{i}", f"+1555000000{i}")

        with pytest.raises(ExtensionPoolExhaustedError):
            registry.create_session("call-7", "+15550000007")
        assert registry.get_session("call-7") is None

    def test_end_session_releases_extension(self, registry, clock):
        """Test ending a session frees the extension and removes the session."""
        registry.create_session("call-1", "+15551234567")
        clock.advance(seconds=42)

        snapshot = registry.end_session("call-1")

        assert snapshot.state == CallState.COMPLETED
        assert snapshot.end_time == clock.now
        assert snapshot.duration_seconds == 42
        assert registry.get_session("call-1") is None
        assert registry.available_extension_count == 6

        # Extension is leasable again
        assert registry.create_session("call-2", "+15557654321").agent_extension == "8001"

    def test_end_unknown_session(self, registry):
        """Test ending an unknown call returns None."""
        assert registry.end_session("missing") is None

    def test_snapshot_is_detached(self, registry):
        """Test a snapshot does not share mutable state with the live session."""
        session = registry.create_session("call-1", "+15551234567")
        registry.update_metadata("call-1", "transcripts", ["hello"])

        snapshot = session.snapshot()
        snapshot.metadata["transcripts"].append("changed")

        assert registry.get_session("call-1").metadata["transcripts"] == ["hello"]

    def test_shutdown_releases_everything(self, registry):
        """Test shutdown clears sessions and frees every extension."""
        registry.create_session("call-1", "+15551234567")
        registry.create_session("call-2", "+15557654321")

        registry.shutdown()

        assert registry.active_count == 0
        assert registry.available_extension_count == 6


class TestSessionUpdates:
    """Test session setters."""

    def test_update_status_forces_connected(self, registry):
        """Test detecting a status moves the session to CONNECTED."""
        registry.create_session("call-1", "+15551234567")

        assert registry.update_status("call-1", CallStatus.VOICEMAIL) is True

        session = registry.get_session("call-1")
        assert session.status == CallStatus.VOICEMAIL
        assert session.state == CallState.CONNECTED

    def test_unknown_call_returns_false(self, registry):
        """Test setters on an unknown call return False instead of raising."""
        assert registry.get_session("missing") is None
        assert registry.update_state("missing", CallState.IN_PROGRESS) is False
        assert registry.update_status("missing", CallStatus.BUSY) is False
        assert registry.increment_retry_attempt("missing") is False
        assert registry.has_exceeded_max_retries("missing") is False
        assert registry.mark_validated("missing") is False
        assert registry.mark_disposition_sent("missing", "AM", "DISP-1") is False
        assert registry.mark_callback_scheduled("missing", "2025-01-16T10:00:00-05:00") is False

    def test_retry_bound(self, registry):
        """Test the validation counter stops at max_retries."""
        registry.create_session("call-1", "+15551234567")

        assert registry.increment_retry_attempt("call-1") is True  # 1
        assert registry.increment_retry_attempt("call-1") is True  # 2
        assert registry.increment_retry_attempt("call-1") is False  # 3, last permitted
        assert registry.has_exceeded_max_retries("call-1") is True

        # Further attempts are refused and never increment
        assert registry.increment_retry_attempt("call-1") is False
        assert registry.get_session("call-1").retry_attempts == 3

    def test_mark_disposition_sent_once(self, registry):
        """Test disposition_sent only flips once."""
        registry.create_session("call-1", "+15551234567")

        assert registry.mark_disposition_sent("call-1", "AM", "DISP-1") is True
        assert registry.mark_disposition_sent("call-1", "SALE", "DISP-2") is False

        session = registry.get_session("call-1")
        assert session.disposition_sent is True
        assert session.disposition_code == "AM"
        assert session.disposition_id == "DISP-1"

    def test_save_qualification_result(self, registry):
        """Test storing a qualification result."""
        registry.create_session("call-1", "+15551234567")
        result = QualificationResult(result=QualificationOutcome.QUALIFIED, score=92, reason="Eligible")

        assert registry.save_qualification_result("call-1", result) is True
        assert registry.get_session("call-1").qualification_result.score == 92

    def test_mark_callback_scheduled_once(self, registry):
        """Test the callback flag is write-once."""
        registry.create_session("call-1", "+15551234567")

        assert registry.mark_callback_scheduled("call-1", "2025-01-16T10:00:00-05:00") is True
        assert registry.mark_callback_scheduled("call-1", "2025-01-17T10:00:00-05:00") is False
        assert registry.get_session("call-1").callback_time == "2025-01-16T10:00:00-05:00"

    def test_active_sessions(self, registry):
        """Test listing active sessions."""
        registry.create_session("call-1", "+15551234567")
        registry.create_session("call-2", "+15557654321")

        call_ids = {session.call_id for session in registry.get_active_sessions()}
        assert call_ids == {"call-1", "call-2"}
        assert registry.active_count == 2


class TestBusinessHoursFlag:
    """Test within_business_hours is computed once at creation."""

    def test_after_hours_session(self):
        """Test a call created at 18:00 Eastern is outside business hours."""
        evening = datetime(2025, 1, 15, 23, 0, tzinfo=timezone.utc)  # 18:00 EST
        registry = SessionRegistry(
            AgentExtensionPool(["8001"]),
            business_hours=BusinessHours(),
            clock=lambda: evening,
        )

        session = registry.create_session("call-1", "+15551234567")

        assert session.within_business_hours is False

    def test_flag_not_reevaluated(self, registry, clock):
        """Test the flag keeps its creation-time value."""
        registry.create_session("call-1", "+15551234567")
        clock.advance(seconds=12 * 3600)

        registry.update_status("call-1", CallStatus.LIVE_PERSON)

        assert registry.get_session("call-1").within_business_hours is True
