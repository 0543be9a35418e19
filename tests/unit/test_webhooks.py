"""Unit tests for the webhook endpoints."""
PHONE = "+15551234567"


async def start_call(api_client, call_id="call-1"):
    response = await api_client.post(
        "/webhooks/voice/status",
        json={"callId": call_id, "phoneNumber": PHONE, "status": "ringing"},
    )
    assert response.status_code == 200
    response = await api_client.post(
        "/webhooks/voice/status",
        json={"callId": call_id, "status": "in-progress"},
    )
    assert response.status_code == 200
    return response.json()


class TestHealth:
    """Test the health endpoint."""

    async def test_health(self, api_client):
        """Test health reports capacity and circuit state."""
        response = await api_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "activeCalls": 0,
            "availableExtensions": 6,
            "dialerCircuit": "closed",
        }


class TestVoiceWebhooks:
    """Test voice platform webhooks."""

    async def test_status_creates_session(self, api_client):
        """Test ringing then in-progress acknowledges with the session state."""
        body = await start_call(api_client)

        assert body["received"] is True
        assert body["callId"] == "call-1"
        assert body["state"] == "IN_PROGRESS"
        assert body["agentExtension"] == "8001"

    async def test_voicemail_end_of_call(self, api_client, dialer_stub):
        """Test the end-of-call report dispositions once, duplicates acknowledged."""
        await start_call(api_client)

        first = await api_client.post(
            "/webhooks/voice/end-of-call",
            json={"callId": "call-1", "endedReason": "voicemail", "messageCount": 1},
        )
        second = await api_client.post(
            "/webhooks/voice/end-of-call",
            json={"callId": "call-1", "endedReason": "voicemail"},
        )

        assert first.status_code == 200
        assert first.json()["outcome"] == "SENT"
        assert first.json()["dispositionCode"] == "AM"
        assert second.status_code == 200
        assert second.json()["outcome"] == "SESSION_NOT_FOUND"
        assert len(dialer_stub.dispositions) == 1

    async def test_transcript_and_speech(self, api_client):
        """Test transcript and speech events are acknowledged."""
        await start_call(api_client)

        transcript = await api_client.post(
            "/webhooks/voice/transcript",
            json={"callId": "call-1", "role": "user", "transcript": "Hello?"},
        )
        speech = await api_client.post(
            "/webhooks/voice/speech",
            json={"callId": "call-1", "role": "user", "status": "stopped"},
        )

        assert transcript.json()["tracked"] is True
        assert speech.json()["tracked"] is True

    async def test_unknown_call_acknowledged(self, api_client):
        """Test events for unknown calls still return 200."""
        response = await api_client.post(
            "/webhooks/voice/status",
            json={"callId": "missing", "status": "ended"},
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "SESSION_NOT_FOUND"

    async def test_malformed_body_rejected(self, api_client):
        """Test an invalid payload is a client error."""
        response = await api_client.post("/webhooks/voice/status", json={"callId": "call-1", "status": "dialing"})

        assert response.status_code == 422


class TestToolWebhooks:
    """Test tool-layer webhooks."""

    async def test_qualification(self, api_client, dialer_stub):
        """Test a qualification result is dispositioned SALE."""
        await start_call(api_client)

        response = await api_client.post(
            "/webhooks/tools/qualification",
            json={"callId": "call-1", "userId": "USER-1", "result": "QUALIFIED", "score": 92},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["outcome"] == "SENT"
        assert body["dispositionCode"] == "SALE"
        assert body["referenceId"] == "DISP-1"
        assert dialer_stub.dispositions[0]["metadata"] == {"score": 92, "classificationResult": "QUALIFIED", "validated": False}

    async def test_validation(self, api_client):
        """Test validation attempts report the remaining budget."""
        await start_call(api_client)

        response = await api_client.post("/webhooks/tools/validation", json={"callId": "call-1", "valid": False})

        body = response.json()
        assert body["result"] == "RETRY"
        assert body["canRetry"] is True
        assert body["attempts"] == 1
        assert body["maxRetries"] == 3

    async def test_callback(self, api_client, dialer_stub):
        """Test a callback request is scheduled."""
        await start_call(api_client)

        response = await api_client.post(
            "/webhooks/tools/callback",
            json={"callId": "call-1", "reason": "Busy at work"},
        )

        body = response.json()
        assert body["outcome"] == "SENT"
        assert body["scheduledFor"] == "2025-01-16T10:00:00-05:00"
        assert dialer_stub.callbacks[0]["reason"] == "Busy at work"

    async def test_dialer_failure_still_acknowledged(self, api_client, dialer_stub):
        """Test a rejected disposition is reported in a 200 response."""
        await start_call(api_client)
        dialer_stub.fail_next(422)

        response = await api_client.post(
            "/webhooks/tools/qualification",
            json={"callId": "call-1", "result": "NOT_QUALIFIED", "score": 10},
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "FAILED"
        assert response.json()["error"]
