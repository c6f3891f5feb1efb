"""Client for the RaccoonAI integrations listing."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from src.models import BridgeConfig, Integration

logger = logging.getLogger(__name__)

INTEGRATIONS_PATH = "/i/moltbot/integrations"


class IntegrationsClient:
    """Fetches user <-> integration credential bindings."""

    def __init__(
        self,
        config: BridgeConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport

    async def fetch(self) -> list[Integration]:
        """Return all integrations; any failure is logged and yields []."""
        api_url = self._config.raccoon_api_url
        if not api_url:
            logger.error("No RaccoonAI API URL configured")
            return []

        url = f"{api_url.rstrip('/')}{INTEGRATIONS_PATH}"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.get(
                    url, timeout=self._config.request_timeout_seconds,
                )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Error fetching integrations from %s: %s", url, exc)
            return []

        if not resp.is_success:
            logger.warning("Failed to fetch integrations: %s", resp.status_code)
            return []

        try:
            data = resp.json()
            return [
                Integration.model_validate(item)
                for item in data.get("integrations") or []
            ]
        except (ValueError, AttributeError, ValidationError) as exc:
            logger.warning("Malformed integrations response: %s", exc)
            return []
