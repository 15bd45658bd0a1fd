"""Outgoing webhook delivery over aiohttp."""

from __future__ import annotations

import asyncio
from typing import Any

import aiohttp
import structlog

from boardflow.core.domain.errors import ActionConflict, CollaboratorUnavailable

logger = structlog.get_logger(__name__)

_ACTION_TYPE = "send_webhook"
_RESPONSE_PREVIEW_CHARS = 500


class AiohttpWebhookSender:
    """Send JSON webhooks with a per-request timeout.

    A new ClientSession is opened per call unless one is supplied; rules
    fire rarely enough that pooling is left to the embedding application.

    Args:
        timeout_seconds: Total request timeout.
        session: Optional shared session (not closed by this sender).
    """

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session

    async def send(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        method: str = "POST",
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Deliver the payload.

        Returns:
            ``status_code`` and the first characters of the response body.

        Raises:
            ActionConflict: On HTTP 409.
            CollaboratorUnavailable: On connection errors, timeouts and any
                other non-2xx/3xx status.
        """
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        kwargs: dict[str, Any] = {"headers": request_headers, "timeout": self._timeout}
        if method.upper() != "GET":
            kwargs["json"] = payload
        try:
            if self._session is not None:
                return await self._request(self._session, method, url, kwargs)
            async with aiohttp.ClientSession() as session:
                return await self._request(session, method, url, kwargs)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning(
                "webhook.delivery_failed",
                url=url,
                method=method,
                error=str(exc) or type(exc).__name__,
            )
            raise CollaboratorUnavailable(
                f"Webhook delivery failed: {str(exc) or type(exc).__name__}",
                action_type=_ACTION_TYPE,
                details={"url": url},
            ) from exc

    async def _request(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        kwargs: dict[str, Any],
    ) -> dict[str, Any]:
        async with session.request(method.upper(), url, **kwargs) as response:
            body = await response.text()
            status = response.status
        logger.debug("webhook.delivered", url=url, method=method, status_code=status)
        details = {"url": url, "status_code": status}
        if status == 409:
            raise ActionConflict(
                f"Webhook endpoint reported a conflict (HTTP {status})",
                action_type=_ACTION_TYPE,
                details=details,
            )
        if status >= 400:
            raise CollaboratorUnavailable(
                f"Webhook endpoint returned HTTP {status}",
                action_type=_ACTION_TYPE,
                details=details,
            )
        return {"status_code": status, "response": body[:_RESPONSE_PREVIEW_CHARS]}
