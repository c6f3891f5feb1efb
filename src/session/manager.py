"""Connection manager for many users' WhatsApp sessions.

Owns the user_id -> Session map, discovers users from the RaccoonAI
integrations API, fans every session's inbound messages into one callback,
and routes outbound sends to the right session.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from src.bridge.integrations import IntegrationsClient
from src.credentials.store import CREDS_KEY, CredentialStore
from src.models import (
    WHATSAPP_INTEGRATION_ID,
    BridgeConfig,
    ConnectionStatus,
    InboundMessage,
    IntegrationMetadata,
    SendResult,
)
from src.session.normalizer import jid_to_phone
from src.session.protocol import ConnectionFactory
from src.session.retry import RECONNECT_DELAY_SECONDS
from src.session.session import OnMessage, Session, UserConnection

logger = logging.getLogger(__name__)

_NON_DIGIT_RE = re.compile(r"\D")


class ConnectionManager:
    """Manages one Session per RaccoonAI user."""

    def __init__(
        self,
        config: BridgeConfig,
        connection_factory: ConnectionFactory,
        credential_store: CredentialStore | None = None,
        integrations: IntegrationsClient | None = None,
        reconnect_delay_seconds: float = RECONNECT_DELAY_SECONDS,
    ) -> None:
        self._config = config
        self._connection_factory = connection_factory
        self._credential_store = credential_store or CredentialStore(config.credentials_dir)
        self._integrations = integrations or IntegrationsClient(config)
        self._reconnect_delay_seconds = reconnect_delay_seconds
        self._sessions: dict[str, Session] = {}
        self._on_message: OnMessage | None = None
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    def set_on_message(self, callback: OnMessage) -> None:
        self._on_message = callback

    async def initialize(self) -> None:
        """Connect every user with WhatsApp credentials; runs once."""
        async with self._init_lock:
            if self._initialized:
                logger.info("Connection manager already initialized")
                return

            logger.info("Initializing WhatsApp connections...")
            integrations = [
                i for i in await self._integrations.fetch()
                if i.integration_id == WHATSAPP_INTEGRATION_ID and i.credentials
            ]
            logger.info("Found %d WhatsApp integrations", len(integrations))

            for integration in integrations:
                try:
                    await self.connect_user(
                        integration.user_id,
                        integration.credentials or {},
                        integration.metadata,
                    )
                except Exception:
                    logger.exception("Failed to connect user %s", integration.user_id)

            self._initialized = True
            logger.info("Initialization complete")

    async def connect_user(
        self,
        user_id: str,
        credentials: dict[str, Any],
        metadata: IntegrationMetadata | None = None,
    ) -> None:
        """Write credentials and open a session; no-op if already connected."""
        existing = self._sessions.get(user_id)
        if existing is not None and existing.status == ConnectionStatus.CONNECTED:
            logger.info("User %s already connected", user_id)
            return

        auth_dir = await asyncio.to_thread(
            self._credential_store.write, user_id, credentials,
        )
        phone = _extract_phone(credentials, metadata)

        session = Session(
            user_id,
            auth_dir,
            self._connection_factory,
            self._credential_store,
            self._dispatch,
            phone=phone,
            reconnect_delay_seconds=self._reconnect_delay_seconds,
        )
        if existing is not None:
            await existing.close()
        self._sessions[user_id] = session

        logger.info(
            "Connecting WhatsApp for user %s (phone: %s)", user_id, phone or "unknown",
        )
        await session.start()

    async def send_message(
        self,
        user_id: str,
        chat_id: str,
        text: str,
        media_url: str | None = None,
    ) -> SendResult:
        session = self._sessions.get(user_id)
        if session is None:
            return SendResult(success=False, error="User not connected")
        return await session.send(chat_id, text, media_url)

    def get_session(self, user_id: str) -> Session | None:
        return self._sessions.get(user_id)

    def get_connection_status(self, user_id: str) -> UserConnection | None:
        session = self._sessions.get(user_id)
        return session.state if session is not None else None

    def get_connected_user_ids(self) -> list[str]:
        return [
            user_id for user_id, session in list(self._sessions.items())
            if session.status == ConnectionStatus.CONNECTED
        ]

    def get_user_id_by_phone(self, phone: str) -> str | None:
        """Find the user whose phone suffix-matches ``phone`` in either direction."""
        normalized = _NON_DIGIT_RE.sub("", phone)
        if not normalized:
            return None

        for user_id, session in list(self._sessions.items()):
            stored = _NON_DIGIT_RE.sub("", session.state.phone or "")
            if not stored:
                continue
            if stored.endswith(normalized) or normalized.endswith(stored):
                return user_id
        return None

    async def disconnect_user(self, user_id: str) -> None:
        session = self._sessions.pop(user_id, None)
        if session is not None:
            await session.close()
            logger.info("Disconnected user %s", user_id)

    async def shutdown(self) -> None:
        for user_id in list(self._sessions):
            await self.disconnect_user(user_id)
        self._initialized = False

    async def _dispatch(self, message: InboundMessage) -> None:
        if self._on_message is not None:
            await self._on_message(message)


def _extract_phone(
    credentials: dict[str, Any], metadata: IntegrationMetadata | None,
) -> str | None:
    if metadata is not None and metadata.phone:
        return metadata.phone
    creds = credentials.get(CREDS_KEY)
    if isinstance(creds, dict):
        me_id = (creds.get("me") or {}).get("id")
        if me_id:
            return jid_to_phone(me_id)
    return None
