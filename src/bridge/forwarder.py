"""Forwards normalized inbound messages to the RaccoonAI webhook.

Single attempt per message; there is no retry or queueing at this layer.
"""

from __future__ import annotations

import logging

import httpx

from src.models import BridgeConfig, ForwardResult, InboundPayload

logger = logging.getLogger(__name__)


class WebhookForwarder:
    """POSTs InboundPayloads to the configured webhook URL."""

    def __init__(
        self,
        config: BridgeConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport

    async def forward(self, payload: InboundPayload) -> ForwardResult:
        if not self._config.enabled:
            return ForwardResult(success=False, error="Bridge is disabled")
        if not self._config.webhook_url:
            return ForwardResult(success=False, error="No webhook URL configured")

        url = self._config.webhook_url
        logger.debug("Forwarding message for user %s to %s", payload.user_id, url)
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(
                    url,
                    json=payload.to_wire(),
                    headers={"Content-Type": "application/json"},
                    timeout=self._config.request_timeout_seconds,
                )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Forward error: %s", exc)
            return ForwardResult(
                success=False, error=str(exc) or "Failed to forward message",
            )

        if not resp.is_success:
            detail = _read_body(resp)
            logger.warning("Forward failed: HTTP %s: %s", resp.status_code, detail)
            return ForwardResult(
                success=False, error=f"HTTP {resp.status_code}: {detail}",
            )

        return _parse_ack(resp)


def _read_body(resp: httpx.Response) -> str:
    try:
        return resp.text
    except (httpx.StreamError, UnicodeDecodeError):
        return "Unknown error"


def _parse_ack(resp: httpx.Response) -> ForwardResult:
    """Read the optional acknowledgement; an unparseable body still counts as success."""
    try:
        ack = resp.json()
    except ValueError:
        ack = None
    if not isinstance(ack, dict):
        return ForwardResult(success=True)

    success = ack.get("success")
    return ForwardResult(
        success=True if success is None else bool(success),
        session_id=ack.get("sessionId"),
        session_url=ack.get("sessionUrl"),
        error=ack.get("error"),
    )
