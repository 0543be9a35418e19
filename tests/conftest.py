"""Shared test fixtures and configuration."""
import asyncio
import json
import os
from datetime import datetime, timedelta, timezone
from typing import List

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SWEEP_INTERVAL_SECONDS", "0")

from app.main import app
from app.db.database import Base
from app.core.dependencies import get_call_manager
from app.core.errors import CallEndedError
from app.services.call_session.business_hours import BusinessHours
from app.services.call_session.extension_pool import AgentExtensionPool
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.registry import SessionRegistry
from app.services.detection.detector import StatusDetector
from app.services.dialer.client import DialerClient
from app.services.disposition.dispatcher import DispositionDispatcher
from app.services.persistence.audit import AuditRecorder
from app.services.resilience.circuit_breaker import CircuitBreaker
from app.services.resilience.executor import RetryExecutor


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_EXTENSIONS = ["8001", "8002", "8003", "8004", "8005", "8006"]

# Wednesday 2025-01-15 10:00 America/New_York
BUSINESS_HOURS_START = datetime(2025, 1, 15, 15, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock serving both wall-clock and monotonic time."""

    def __init__(self, start: datetime = BUSINESS_HOURS_START):
        self.now = start
        self._monotonic_ms = 0.0

    def __call__(self) -> datetime:
        return self.now

    def monotonic_ms(self) -> float:
        return self._monotonic_ms

    def advance(self, seconds: float = 0, ms: float = 0) -> None:
        total_ms = seconds * 1000 + ms
        self.now += timedelta(milliseconds=total_ms)
        self._monotonic_ms += total_ms


class DialerStub:
    """In-process dialer API behind httpx.MockTransport."""

    def __init__(self):
        self.requests: List[tuple] = []
        self.queued_statuses: List[int] = []
        self._counter = 0

    def fail_next(self, *status_codes: int) -> None:
        """Answer the next requests with these error statuses."""
        self.queued_statuses.extend(status_codes)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        # Yield like a real network round trip
        await asyncio.sleep(0)
        payload = json.loads(request.content)
        path = request.url.path
        self.requests.append((path, payload))

        if self.queued_statuses:
            return httpx.Response(self.queued_statuses.pop(0), json={"error": "stubbed failure"})

        self._counter += 1
        if path.endswith("/dispositions"):
            return httpx.Response(
                200,
                json={
                    "dispositionId": f"DISP-{self._counter}",
                    "timestamp": "2025-01-15T15:00:00Z",
                    "leadId": payload["leadId"],
                },
            )
        if path.endswith("/callbacks"):
            return httpx.Response(
                200,
                json={
                    "callbackId": f"CB-{self._counter}",
                    "scheduledFor": payload["callbackDateTime"],
                },
            )
        return httpx.Response(404, json={"error": "not found"})

    @property
    def dispositions(self) -> List[dict]:
        return [payload for path, payload in self.requests if path.endswith("/dispositions")]

    @property
    def callbacks(self) -> List[dict]:
        return [payload for path, payload in self.requests if path.endswith("/callbacks")]


class RecordingAudit:
    """Audit recorder double that keeps everything in memory."""

    def __init__(self):
        self.errors = []
        self.dispositions = []
        self.callbacks = []
        self.calls = []

    async def record_error(self, report):
        self.errors.append(report)

    async def record_disposition(self, call_id, request, response):
        self.dispositions.append((call_id, request, response))

    async def record_callback(self, call_id, request, response):
        self.callbacks.append((call_id, request, response))

    async def record_call_end(self, session, **fields):
        self.calls.append((session, fields))


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    """Session factory bound to the test database."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    """Delays (seconds) requested by the retry executor."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(seconds):
        sleeps.append(seconds)
    return _sleep


@pytest.fixture
def audit():
    return RecordingAudit()


@pytest.fixture
def dialer_stub():
    return DialerStub()


@pytest.fixture
async def dialer_client(dialer_stub):
    client = DialerClient(
        "http://dialer.test/api",
        transport=httpx.MockTransport(dialer_stub.handler),
    )
    yield client
    await client.close()


@pytest.fixture
def registry(clock):
    return SessionRegistry(
        AgentExtensionPool(TEST_EXTENSIONS),
        business_hours=BusinessHours(),
        max_retries=3,
        clock=clock,
    )


@pytest.fixture
def dialer_breaker(audit, clock):
    return CircuitBreaker(
        "dialer",
        threshold=5,
        reset_timeout_ms=60000,
        recorder=audit,
        clock=clock.monotonic_ms,
        ignored_exceptions=(CallEndedError,),
    )


@pytest.fixture
def dispatcher(registry, dialer_breaker, dialer_client, audit, clock, fake_sleep):
    return DispositionDispatcher(
        registry,
        RetryExecutor(recorder=audit, sleep=fake_sleep),
        dialer_breaker,
        dialer_client,
        audit=audit,
        campaign_id="TEST_CAMPAIGN",
        callback_hour=10,
        clock=clock,
    )


@pytest.fixture
def manager(registry, dispatcher, audit, clock):
    return CallSessionManager(registry, StatusDetector(clock=clock), dispatcher, audit=audit)


@pytest.fixture
async def api_client(manager):
    """ASGI client with the call manager dependency overridden."""
    app.dependency_overrides[get_call_manager] = lambda: manager
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def audit_recorder(session_factory):
    """Audit recorder writing to the test database."""
    return AuditRecorder(session_factory)
