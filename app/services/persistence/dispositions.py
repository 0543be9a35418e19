"""Disposition and callback persistence service."""
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.db.models import CallbackRecord, DispositionRecord
from app.services.dialer.models import (
    CallbackRequest,
    CallbackResponse,
    DispositionRequest,
    DispositionResponse,
)


class DispositionPersistenceService:
    """Service for persisting dialer dispositions and callbacks."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_disposition(
        self,
        call_id: Optional[str],
        request: DispositionRequest,
        response: DispositionResponse,
    ) -> DispositionRecord:
        """Store an accepted disposition. Returns the existing row for a known disposition ID."""
        existing = await self.get_disposition_by_id(response.disposition_id)
        if existing:
            return existing

        record = DispositionRecord(
            disposition_id=response.disposition_id,
            call_id=call_id,
            lead_id=request.lead_id,
            phone_number=request.phone_number,
            disposition_code=request.disposition,
            campaign_id=request.campaign_id,
            agent_id=request.agent_id,
            duration_seconds=request.call_duration,
            score=request.metadata.score,
            classification_result=request.metadata.classification_result,
            validated=request.metadata.validated,
            reason=request.metadata.reason,
        )
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        return record

    async def get_disposition_by_id(self, disposition_id: str) -> Optional[DispositionRecord]:
        result = await self.db.execute(
            select(DispositionRecord).where(DispositionRecord.disposition_id == disposition_id)
        )
        return result.scalar_one_or_none()

    async def get_dispositions_for_call(self, call_id: str) -> List[DispositionRecord]:
        result = await self.db.execute(
            select(DispositionRecord)
            .where(DispositionRecord.call_id == call_id)
            .order_by(DispositionRecord.timestamp)
        )
        return list(result.scalars().all())

    async def create_callback(
        self,
        call_id: Optional[str],
        request: CallbackRequest,
        response: CallbackResponse,
    ) -> CallbackRecord:
        """Store a scheduled callback in PENDING status."""
        existing = await self.get_callback_by_id(response.callback_id)
        if existing:
            return existing

        record = CallbackRecord(
            callback_id=response.callback_id,
            call_id=call_id,
            lead_id=request.lead_id,
            phone_number=request.phone_number,
            callback_datetime=response.scheduled_for,
            agent_id=request.agent_id,
            reason=request.reason,
            notes=request.notes,
            status="PENDING",
        )
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        return record

    async def get_callback_by_id(self, callback_id: str) -> Optional[CallbackRecord]:
        result = await self.db.execute(
            select(CallbackRecord).where(CallbackRecord.callback_id == callback_id)
        )
        return result.scalar_one_or_none()
