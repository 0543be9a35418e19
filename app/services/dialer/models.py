"""Dialer API request and response models."""
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class DialerModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class DispositionMetadata(DialerModel):
    score: Optional[int] = None
    classification_result: Optional[str] = None
    validated: Optional[bool] = None
    reason: Optional[str] = None


class DispositionRequest(DialerModel):
    lead_id: str
    campaign_id: str
    phone_number: str
    disposition: str
    agent_id: str
    call_duration: int = 0
    metadata: DispositionMetadata = DispositionMetadata()


class DispositionResponse(DialerModel):
    disposition_id: str
    timestamp: Optional[str] = None
    lead_id: Optional[str] = None


class CallbackRequest(DialerModel):
    lead_id: str
    campaign_id: str
    phone_number: str
    callback_date_time: str  # ISO 8601
    agent_id: str
    reason: str
    notes: Optional[str] = None


class CallbackResponse(DialerModel):
    callback_id: str
    scheduled_for: str
