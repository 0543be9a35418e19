"""Database models."""
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, DateTime, Text, JSON
from sqlalchemy.ext.declarative import declarative_base

Base = declarative_base()


class Call(Base):
    """Finished call record, written when the session ends."""

    __tablename__ = "calls"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(String, unique=True, index=True, nullable=False)
    phone_number = Column(String, index=True, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    status = Column(String, index=True, nullable=True)  # LIVE_PERSON, VOICEMAIL, DEAD_AIR, ...
    end_reason = Column(String, nullable=True)
    agent_extension = Column(String, nullable=True)
    is_business_hours = Column(Boolean, default=True, nullable=False)
    disposition_code = Column(String, nullable=True)
    transcript = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    message_count = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class DispositionRecord(Base):
    """Disposition accepted by the dialer."""

    __tablename__ = "dispositions"

    id = Column(Integer, primary_key=True, index=True)
    disposition_id = Column(String, unique=True, nullable=False)
    call_id = Column(String, index=True, nullable=True)
    lead_id = Column(String, nullable=True)
    phone_number = Column(String, index=True, nullable=False)
    disposition_code = Column(String, index=True, nullable=False)  # SALE, NQI, NA, AM, ...
    campaign_id = Column(String, nullable=True)
    agent_id = Column(String, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    score = Column(Integer, nullable=True)
    classification_result = Column(String, nullable=True)  # QUALIFIED, NOT_QUALIFIED
    validated = Column(Boolean, nullable=True)
    reason = Column(Text, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True, nullable=False)


class CallbackRecord(Base):
    """Callback scheduled with the dialer."""

    __tablename__ = "callbacks"

    id = Column(Integer, primary_key=True, index=True)
    callback_id = Column(String, unique=True, nullable=False)
    call_id = Column(String, index=True, nullable=True)
    lead_id = Column(String, nullable=True)
    phone_number = Column(String, index=True, nullable=False)
    callback_datetime = Column(String, nullable=False)  # ISO 8601 with offset
    agent_id = Column(String, nullable=True)
    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String, default="PENDING", index=True, nullable=False)  # PENDING, COMPLETED, CANCELLED
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ErrorLog(Base):
    """Failure, recovered retry or circuit breaker event."""

    __tablename__ = "error_logs"

    id = Column(Integer, primary_key=True, index=True)
    call_id = Column(String, index=True, nullable=True)
    error_type = Column(String, index=True, nullable=False)
    error_category = Column(String, index=True, nullable=False)
    error_message = Column(Text, nullable=False)
    error_stack = Column(Text, nullable=True)
    context = Column(JSON, nullable=True)
    retry_attempt = Column(Integer, default=0, nullable=False)
    max_retries = Column(Integer, default=0, nullable=False)
    retry_successful = Column(Boolean, nullable=True)
    severity = Column(String, default="error", index=True, nullable=False)  # warning, error, critical
    timestamp = Column(DateTime, default=datetime.utcnow, index=True, nullable=False)
