"""Dialer HTTP client."""
import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from app.core.errors import DialerAPIError, is_retryable_error
from app.core.logging import mask_phone_number
from app.services.dialer.models import (
    CallbackRequest,
    CallbackResponse,
    DispositionRequest,
    DispositionResponse,
)

logger = logging.getLogger(__name__)


def is_retryable_dialer_error(error: Exception) -> bool:
    """Transport failures, 5xx and 429 are retried; rejections and bad bodies are not."""
    if isinstance(error, httpx.TransportError):
        return True
    return is_retryable_error(error)


class DialerClient:
    """Client for the dialer's disposition and callback endpoints.

    One attempt per call: retries and circuit breaking are applied by the
    caller through the retry executor.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def submit_disposition(self, request: DispositionRequest) -> DispositionResponse:
        """
        Submit a call disposition.

        Args:
            request: Disposition payload

        Returns:
            Dialer response carrying the disposition ID

        Raises:
            DialerAPIError: on an error status or malformed response body
            httpx.TransportError: on connection failures
        """
        logger.info(
            f"[DIALER] Sending disposition - lead_id: {request.lead_id}, "
            f"phone: {mask_phone_number(request.phone_number)}, "
            f"disposition: {request.disposition}"
        )
        data = await self._post("/dispositions", request.to_payload())
        try:
            response = DispositionResponse.model_validate(data)
        except ValidationError as e:
            raise DialerAPIError(f"Unexpected disposition response from dialer: {e}")

        logger.info(
            f"[DIALER] Disposition accepted - lead_id: {request.lead_id}, "
            f"disposition_id: {response.disposition_id}"
        )
        return response

    async def schedule_callback(self, request: CallbackRequest) -> CallbackResponse:
        """Schedule a callback. Raises like ``submit_disposition``."""
        logger.info(
            f"[DIALER] Scheduling callback - lead_id: {request.lead_id}, "
            f"phone: {mask_phone_number(request.phone_number)}, "
            f"callback_date_time: {request.callback_date_time}, reason: {request.reason}"
        )
        data = await self._post("/callbacks", request.to_payload())
        try:
            response = CallbackResponse.model_validate(data)
        except ValidationError as e:
            raise DialerAPIError(f"Unexpected callback response from dialer: {e}")

        logger.info(
            f"[DIALER] Callback scheduled - callback_id: {response.callback_id}, "
            f"scheduled_for: {response.scheduled_for}"
        )
        return response

    async def _post(self, path: str, payload: dict) -> dict:
        logger.debug(f"[DIALER] POST {path} - payload: {payload}")
        response = await self._client.post(path, json=payload)
        if response.status_code >= 400:
            raise DialerAPIError(
                f"Dialer API error {response.status_code} on POST {path}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError:
            raise DialerAPIError(f"Dialer returned a non-JSON body on POST {path}")

    async def close(self) -> None:
        await self._client.aclose()
