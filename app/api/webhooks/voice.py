"""Voice platform and tool webhook endpoints.

Every endpoint acknowledges with HTTP 200 once the body parses; processing
failures are reported in the JSON body, never as an error status.
"""
import logging
from fastapi import APIRouter, Depends

from app.core.dependencies import get_call_manager
from app.services.call_session.events import (
    CallbackRequestEvent,
    CallStatusEvent,
    EndOfCallReport,
    QualificationEvent,
    SpeechUpdateEvent,
    TranscriptEvent,
    ValidationEvent,
)
from app.services.call_session.manager import CallSessionManager, ValidationAttemptResult
from app.services.call_session.models import CallSession
from app.services.disposition.dispatcher import DispatchResult

router = APIRouter()
logger = logging.getLogger(__name__)


def _ack(call_id: str, **fields) -> dict:
    return {"received": True, "callId": call_id, **fields}


def _dispatch_ack(result: DispatchResult) -> dict:
    return _ack(
        result.call_id,
        outcome=result.outcome.value,
        dispositionCode=result.disposition_code,
        referenceId=result.reference_id,
        scheduledFor=result.scheduled_for,
        error=result.error,
    )


@router.post("/voice/status")
async def handle_status(
    event: CallStatusEvent,
    manager: CallSessionManager = Depends(get_call_manager),
):
    """Handle a call status update (ringing, in-progress, ended)."""
    logger.info(f"[WEBHOOK] Status update - call_id: {event.call_id}, status: {event.status.value}")
    try:
        result = await manager.handle_status_event(event)
    except Exception as e:
        logger.error(f"[WEBHOOK] Error handling status update - call_id: {event.call_id}: {e}", exc_info=True)
        return _ack(event.call_id, error=str(e))

    if isinstance(result, DispatchResult):
        return _dispatch_ack(result)
    if isinstance(result, CallSession):
        return _ack(event.call_id, state=result.state.value, agentExtension=result.agent_extension)
    return _ack(event.call_id, tracked=False)


@router.post("/voice/end-of-call")
async def handle_end_of_call(
    report: EndOfCallReport,
    manager: CallSessionManager = Depends(get_call_manager),
):
    """Handle the end-of-call report."""
    logger.info(
        f"[WEBHOOK] End-of-call report - call_id: {report.call_id}, reason: {report.ended_reason}"
    )
    try:
        result = await manager.handle_end_of_call_report(report)
    except Exception as e:
        logger.error(f"[WEBHOOK] Error handling end-of-call report - call_id: {report.call_id}: {e}", exc_info=True)
        return _ack(report.call_id, error=str(e))
    return _dispatch_ack(result)


@router.post("/voice/transcript")
async def handle_transcript(
    event: TranscriptEvent,
    manager: CallSessionManager = Depends(get_call_manager),
):
    tracked = await manager.handle_transcript(event)
    return _ack(event.call_id, tracked=tracked)


@router.post("/voice/speech")
async def handle_speech_update(
    event: SpeechUpdateEvent,
    manager: CallSessionManager = Depends(get_call_manager),
):
    tracked = await manager.handle_speech_update(event)
    return _ack(event.call_id, tracked=tracked)


@router.post("/tools/qualification")
async def handle_qualification(
    event: QualificationEvent,
    manager: CallSessionManager = Depends(get_call_manager),
):
    """Disposition a call from the qualification service's result."""
    logger.info(
        f"[WEBHOOK] Qualification result - call_id: {event.call_id}, "
        f"result: {event.result.value}, score: {event.score}"
    )
    try:
        result = await manager.handle_qualification(event)
    except Exception as e:
        logger.error(f"[WEBHOOK] Error handling qualification - call_id: {event.call_id}: {e}", exc_info=True)
        return _ack(event.call_id, error=str(e))
    return _dispatch_ack(result)


@router.post("/tools/validation")
async def handle_validation(
    event: ValidationEvent,
    manager: CallSessionManager = Depends(get_call_manager),
):
    """Count a validation attempt and tell the caller whether to try again."""
    try:
        result = await manager.handle_validation(event)
    except Exception as e:
        logger.error(f"[WEBHOOK] Error handling validation - call_id: {event.call_id}: {e}", exc_info=True)
        return _ack(event.call_id, error=str(e))

    session = manager.registry.get_session(event.call_id)
    return _ack(
        event.call_id,
        result=result.value,
        canRetry=result == ValidationAttemptResult.RETRY,
        attempts=session.retry_attempts if session else None,
        maxRetries=session.max_retries if session else None,
    )


@router.post("/tools/callback")
async def handle_callback_request(
    event: CallbackRequestEvent,
    manager: CallSessionManager = Depends(get_call_manager),
):
    """Schedule a callback with the dialer."""
    try:
        result = await manager.schedule_callback(event)
    except Exception as e:
        logger.error(f"[WEBHOOK] Error scheduling callback - call_id: {event.call_id}: {e}", exc_info=True)
        return _ack(event.call_id, error=str(e))
    return _dispatch_ack(result)
