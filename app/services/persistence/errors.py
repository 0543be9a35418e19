"""Error log persistence service."""
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core.errors import ErrorReport
from app.db.models import ErrorLog
from app.services.persistence.calls import to_naive_utc


class ErrorLogService:
    """Service for persisting error reports."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_error(self, report: ErrorReport) -> ErrorLog:
        entry = ErrorLog(
            call_id=report.call_id,
            error_type=report.error_type.value,
            error_category=report.category.value,
            error_message=report.message,
            error_stack=report.stack,
            context=report.model_dump(mode="json")["context"],
            retry_attempt=report.retry_attempt,
            max_retries=report.max_retries,
            retry_successful=report.retry_successful,
            severity=report.severity.value,
            timestamp=to_naive_utc(report.timestamp),
        )
        self.db.add(entry)
        await self.db.commit()
        await self.db.refresh(entry)
        return entry

    async def get_errors_for_call(self, call_id: str) -> List[ErrorLog]:
        result = await self.db.execute(
            select(ErrorLog).where(ErrorLog.call_id == call_id).order_by(ErrorLog.timestamp)
        )
        return list(result.scalars().all())
