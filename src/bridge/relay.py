"""Bridge relay: inbound WhatsApp message -> RaccoonAI webhook -> acknowledgement."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from src.models import ForwardResult, InboundMessage, InboundPayload

if TYPE_CHECKING:
    from src.bridge.forwarder import WebhookForwarder
    from src.session.manager import ConnectionManager

logger = logging.getLogger(__name__)

ACK_TEMPLATE = "Working on it! See live progress: {session_url}"


class BridgeRelay:
    """Message callback registered on the ConnectionManager."""

    def __init__(
        self,
        manager: ConnectionManager,
        forwarder: WebhookForwarder,
    ) -> None:
        self._manager = manager
        self._forwarder = forwarder

    async def __call__(self, message: InboundMessage) -> None:
        await self.relay(message)

    async def relay(self, message: InboundMessage) -> ForwardResult:
        """Forward ``message`` and reply with the live session link, if any."""
        logger.info(
            "Received WhatsApp message from %s for user %s",
            message.from_, message.user_id,
        )
        result = await self._forwarder.forward(InboundPayload.from_message(message))

        if not result.success:
            logger.error("Failed to forward message: %s", result.error)
            return result

        logger.info("Message forwarded successfully (session: %s)", result.session_id)
        if result.session_url:
            ack = await self._manager.send_message(
                message.user_id,
                message.chat_id,
                ACK_TEMPLATE.format(session_url=result.session_url),
            )
            if not ack.success:
                logger.warning(
                    "Failed to send acknowledgement to %s: %s", message.chat_id, ack.error,
                )
        return result
