"""Call persistence service."""
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.db.models import Call
from app.services.call_session.models import CallSession


def to_naive_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Columns store naive UTC."""
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


class CallPersistenceService:
    """Service for persisting finished calls."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record_call(
        self,
        session: CallSession,
        end_reason: Optional[str] = None,
        transcript: Optional[str] = None,
        summary: Optional[str] = None,
        message_count: Optional[int] = None,
    ) -> Call:
        """Write the call record for an ended session, updating it if already present."""
        call = await self.get_call_by_call_id(session.call_id)
        if call is None:
            call = Call(call_id=session.call_id)
            self.db.add(call)

        call.phone_number = session.phone_number
        call.start_time = to_naive_utc(session.start_time)
        call.end_time = to_naive_utc(session.end_time)
        call.duration_seconds = session.duration_seconds
        call.status = session.status.value
        call.end_reason = end_reason
        call.agent_extension = session.agent_extension
        call.is_business_hours = session.within_business_hours
        call.disposition_code = session.disposition_code
        call.transcript = transcript or "\n".join(session.metadata.get("transcripts", [])) or None
        call.summary = summary
        call.message_count = message_count

        await self.db.commit()
        await self.db.refresh(call)
        return call

    async def get_call_by_call_id(self, call_id: str) -> Optional[Call]:
        """Get call by voice-platform call ID."""
        result = await self.db.execute(
            select(Call).where(Call.call_id == call_id)
        )
        return result.scalar_one_or_none()
