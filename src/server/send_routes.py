"""Outbound send endpoint used by RaccoonAI to reply through WhatsApp.

``POST /raccoonai/send`` resolves the target user (explicit ``userId`` or the
single connected user) and hands the message to the ConnectionManager.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from src.models import WHATSAPP_INTEGRATION_ID, OutboundPayload

if TYPE_CHECKING:
    from src.session.manager import ConnectionManager

logger = logging.getLogger(__name__)

SEND_PATH = "/raccoonai/send"


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def create_send_router(manager: ConnectionManager) -> APIRouter:
    """Create the outbound send router bound to ``manager``."""
    router = APIRouter()

    @router.api_route(
        SEND_PATH,
        methods=["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    )
    async def send(request: Request) -> JSONResponse:
        if request.method != "POST":
            return _error("Method not allowed", 405)

        try:
            payload = OutboundPayload.model_validate(json.loads(await request.body()))

            if not payload.integration_id or not payload.chat_id or not payload.text:
                return _error(
                    "Missing required fields: integrationId, chatId, text", 400,
                )

            user_id = payload.user_id
            if not user_id:
                connected = manager.get_connected_user_ids()
                if not connected:
                    return _error("No WhatsApp connections available", 500)
                if len(connected) > 1:
                    return _error("Multiple users connected, userId required", 400)
                user_id = connected[0]

            if payload.integration_id != WHATSAPP_INTEGRATION_ID:
                return _error(
                    f"Integration {payload.integration_id} not supported", 400,
                )

            result = await manager.send_message(
                user_id, payload.chat_id, payload.text, payload.media_url,
            )
            return JSONResponse(result.to_wire())
        except Exception as exc:
            logger.exception("Error handling outbound request")
            return _error(str(exc) or "Internal error", 500)

    return router
