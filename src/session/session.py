"""Per-user WhatsApp session.

A Session owns exactly one protocol connection at a time and consumes its
event stream in order:

    connecting -> connected -> disconnected | error

Close codes 515 (restart required) and 440 (connection replaced) trigger up to
``MAX_RECONNECT_ATTEMPTS`` delayed reconnects on a fresh connection. Code 401
(logged out) is terminal until credentials are re-supplied.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from src.credentials.store import CredentialStore
from src.models import ChatType, ConnectionStatus, InboundMessage, SendResult
from src.session.best_effort import best_effort
from src.session.normalizer import build_content, jid_to_phone, normalize_message
from src.session.protocol import (
    Closed,
    ConnectionEvent,
    ConnectionFactory,
    CredentialsUpdated,
    DisconnectReason,
    MessageReceived,
    Opened,
    ProtocolConnection,
)
from src.session.retry import RECONNECT_DELAY_SECONDS, ReconnectScheduler

logger = logging.getLogger(__name__)

MAX_RECONNECT_ATTEMPTS = 3
RECONNECT_CODES = frozenset({
    DisconnectReason.RESTART_REQUIRED,
    DisconnectReason.CONNECTION_REPLACED,
})

OnMessage = Callable[[InboundMessage], Awaitable[None]]


@dataclass
class UserConnection:
    """Lifecycle state of one user's session."""

    user_id: str
    auth_dir: Path
    status: ConnectionStatus = ConnectionStatus.CONNECTING
    socket: ProtocolConnection | None = None
    phone: str | None = None
    error: str | None = None
    reconnect_attempts: int = 0
    last_connected_at: datetime | None = None


class Session:
    """Drives one user's protocol connection and relays its messages."""

    def __init__(
        self,
        user_id: str,
        auth_dir: Path,
        connection_factory: ConnectionFactory,
        credential_store: CredentialStore,
        on_message: OnMessage,
        *,
        phone: str | None = None,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        reconnect_delay_seconds: float = RECONNECT_DELAY_SECONDS,
    ) -> None:
        self.state = UserConnection(user_id=user_id, auth_dir=auth_dir, phone=phone)
        self.reconnects = ReconnectScheduler(reconnect_delay_seconds)
        self._connection_factory = connection_factory
        self._credential_store = credential_store
        self._on_message = on_message
        self._max_reconnect_attempts = max_reconnect_attempts
        self._reader: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def user_id(self) -> str:
        return self.state.user_id

    @property
    def status(self) -> ConnectionStatus:
        return self.state.status

    async def start(self) -> None:
        """Open a fresh protocol connection, discarding any previous socket."""
        if self._reader is not None and self._reader is not asyncio.current_task():
            self._reader.cancel()
        connection = self._connection_factory(self.state.auth_dir)
        self.state.socket = connection
        self.state.status = ConnectionStatus.CONNECTING
        self._reader = asyncio.create_task(
            self._read_events(connection), name=f"whatsapp-session-{self.user_id}",
        )
        try:
            await connection.open()
        except Exception:
            self._reader.cancel()
            self.state.status = ConnectionStatus.DISCONNECTED
            self.state.error = "connect_failed"
            raise

    async def close(self) -> None:
        """Tear the session down; pending reconnects become no-ops."""
        self._closed = True
        self.reconnects.cancel()
        if self._reader is not None and self._reader is not asyncio.current_task():
            self._reader.cancel()
        if self.state.socket is not None:
            await best_effort("close connection", self.state.socket.close())
        self.state.status = ConnectionStatus.DISCONNECTED

    async def send(
        self, chat_id: str, text: str, media_url: str | None = None,
    ) -> SendResult:
        connection = self.state.socket
        if connection is None:
            return SendResult(success=False, error="User not connected")
        if self.state.status != ConnectionStatus.CONNECTED:
            return SendResult(
                success=False, error=f"Connection status: {self.state.status.value}",
            )

        try:
            message_id = await connection.send_message(
                chat_id, build_content(text, media_url),
            )
        except Exception as exc:
            logger.error("Failed to send message for user %s: %s", self.user_id, exc)
            return SendResult(success=False, error=str(exc) or "Send failed")
        return SendResult(success=True, message_id=message_id)

    async def handle_event(
        self, connection: ProtocolConnection, event: ConnectionEvent,
    ) -> None:
        """Apply one event from ``connection`` to the session state."""
        if self._closed or connection is not self.state.socket:
            return

        if isinstance(event, Opened):
            await self._on_open(connection, event)
        elif isinstance(event, Closed):
            code = event.reason_code
            self._on_close(int(code) if code is not None else None)
        elif isinstance(event, CredentialsUpdated):
            await self._persist_credentials(event.blob)
        elif isinstance(event, MessageReceived):
            if event.upsert_type == "notify":
                await self._handle_message(connection, event.raw)

    async def _read_events(self, connection: ProtocolConnection) -> None:
        async with contextlib.aclosing(connection.events()) as events:
            async for event in events:
                try:
                    await self.handle_event(connection, event)
                except Exception:
                    logger.exception(
                        "Error handling %s for user %s", type(event).__name__, self.user_id,
                    )
                if isinstance(event, Closed):
                    break

    async def _on_open(self, connection: ProtocolConnection, event: Opened) -> None:
        state = self.state
        state.status = ConnectionStatus.CONNECTED
        state.last_connected_at = datetime.now(UTC)
        state.reconnect_attempts = 0
        state.error = None
        if event.user_jid:
            state.phone = jid_to_phone(event.user_jid)
        logger.info("WhatsApp connected for user %s", self.user_id)

        await best_effort("presence update", connection.send_presence("available"))

    def _on_close(self, code: int | None) -> None:
        state = self.state
        logger.info("WhatsApp disconnected for user %s, code: %s", self.user_id, code)

        if (
            code in RECONNECT_CODES
            and state.reconnect_attempts < self._max_reconnect_attempts
            and state.status != ConnectionStatus.ERROR
        ):
            state.reconnect_attempts += 1
            state.status = ConnectionStatus.CONNECTING
            logger.info(
                "Reconnecting user %s (attempt %d)", self.user_id, state.reconnect_attempts,
            )
            self.reconnects.schedule(self._reconnect)
            return

        if code == DisconnectReason.LOGGED_OUT:
            state.status = ConnectionStatus.ERROR
            state.error = "logged_out"
            logger.error("User %s logged out from WhatsApp", self.user_id)
        else:
            state.status = ConnectionStatus.DISCONNECTED
            state.error = f"disconnect_{code}"

    async def _reconnect(self) -> None:
        if self._closed:
            logger.debug("Skipping reconnect for closed session %s", self.user_id)
            return
        await self.start()

    async def _persist_credentials(self, blob: dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(
                self._credential_store.save_creds, self.state.auth_dir, blob,
            )
        except Exception:
            logger.exception("Failed to persist credentials for user %s", self.user_id)

    async def _handle_message(
        self, connection: ProtocolConnection, raw: dict[str, Any],
    ) -> None:
        message = normalize_message(self.user_id, raw)
        if message is None:
            return

        metadata = message.metadata
        if metadata is not None and metadata.chat_type == ChatType.GROUP:
            group = await best_effort(
                "group metadata", connection.group_metadata(message.chat_id),
            )
            if group:
                metadata.group_subject = group.get("subject")

        logger.info("Received message for user %s from %s", self.user_id, message.from_)

        if metadata is not None and metadata.message_id:
            await best_effort("read receipt", connection.read_messages([{
                "remoteJid": message.chat_id,
                "id": metadata.message_id,
                "participant": metadata.sender_jid,
                "fromMe": False,
            }]))

        try:
            await self._on_message(message)
        except Exception:
            logger.exception("Error in message callback for user %s", self.user_id)
