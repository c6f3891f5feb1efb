"""Shared test fixtures for the RaccoonAI WhatsApp bridge."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest

from src.credentials.store import CredentialStore
from src.models import BridgeConfig
from src.session.protocol import Closed, ConnectionEvent

WAIT_TIMEOUT = 2.0


class FakeConnection:
    """In-memory ProtocolConnection driven by tests through ``emit``."""

    def __init__(self, auth_dir: Path, open_error: Exception | None = None) -> None:
        self.auth_dir = auth_dir
        self.open_error = open_error
        self.opened = False
        self.closed = False
        self.fail_non_critical = False
        self.send_error: Exception | None = None
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.presence: list[str] = []
        self.read_keys: list[dict[str, Any]] = []
        self.group_lookups: list[str] = []
        self.group_subjects: dict[str, str] = {}
        self._queue: asyncio.Queue[ConnectionEvent] = asyncio.Queue()

    async def events(self) -> AsyncGenerator[ConnectionEvent, None]:
        while True:
            event = await self._queue.get()
            try:
                yield event
            finally:
                # Runs once the consumer has finished with ``event`` or closed the stream.
                self._queue.task_done()
            if isinstance(event, Closed):
                return

    async def emit(self, event: ConnectionEvent) -> None:
        """Queue ``event`` and wait until the session has handled it."""
        await self._queue.put(event)
        await asyncio.wait_for(self._queue.join(), WAIT_TIMEOUT)

    async def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    async def close(self) -> None:
        self.closed = True

    async def send_message(self, jid: str, content: dict[str, Any]) -> str | None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((jid, content))
        return f"MSG{len(self.sent)}"

    async def send_presence(self, presence: str) -> None:
        if self.fail_non_critical:
            raise RuntimeError("presence failed")
        self.presence.append(presence)

    async def read_messages(self, keys: list[dict[str, Any]]) -> None:
        if self.fail_non_critical:
            raise RuntimeError("read receipt failed")
        self.read_keys.extend(keys)

    async def group_metadata(self, jid: str) -> dict[str, Any]:
        self.group_lookups.append(jid)
        if self.fail_non_critical:
            raise RuntimeError("group metadata failed")
        return {"id": jid, "subject": self.group_subjects.get(jid, "Family")}


class FakeConnectionFactory:
    """ConnectionFactory that records every connection it creates."""

    def __init__(self) -> None:
        self.connections: list[FakeConnection] = []
        self.open_error: Exception | None = None

    def __call__(self, auth_dir: Path) -> FakeConnection:
        connection = FakeConnection(auth_dir, open_error=self.open_error)
        self.connections.append(connection)
        return connection

    @property
    def latest(self) -> FakeConnection:
        return self.connections[-1]


@pytest.fixture
def connection_factory() -> FakeConnectionFactory:
    return FakeConnectionFactory()


@pytest.fixture
def credential_store(tmp_path: Path) -> CredentialStore:
    return CredentialStore(tmp_path / "credentials")


@pytest.fixture
def bridge_config(tmp_path: Path) -> BridgeConfig:
    return make_bridge_config(credentials_dir=str(tmp_path / "credentials"))


# --- Factory functions for test data ---


def make_bridge_config(**kwargs: Any) -> BridgeConfig:
    """Factory for BridgeConfig with sensible defaults."""
    defaults: dict[str, Any] = {
        "webhook_url": "http://raccoon.test/webhook",
        "raccoon_api_url": "http://raccoon.test/api",
        "enabled": True,
        "startup_delay_seconds": 0,
    }
    defaults.update(kwargs)
    return BridgeConfig(**defaults)


def make_raw_message(
    text: str | None = "hello",
    remote_jid: str | None = "15551234567@s.whatsapp.net",
    *,
    from_me: bool = False,
    participant: str | None = None,
    message_id: str | None = "3EB0ABCDEF",
    push_name: str | None = "Alice",
    timestamp: int | str | None = 1700000000,
    message: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Factory for a raw multi-device message."""
    key: dict[str, Any] = {"remoteJid": remote_jid, "fromMe": from_me, "id": message_id}
    if participant is not None:
        key["participant"] = participant
    return {
        "key": key,
        "message": message if message is not None else {"conversation": text},
        "pushName": push_name,
        "messageTimestamp": timestamp,
    }


def make_credentials(me_id: str = "15551234567:22@s.whatsapp.net") -> dict[str, Any]:
    """Factory for a credential map as delivered by the integrations API."""
    return {
        "creds": {"me": {"id": me_id, "name": "Alice"}, "registered": False},
        "app-state-sync-key-AAAA": {"keyData": "c2VjcmV0"},
        "pre-key-1": None,
    }


def fake_connection(auth_dir: Path) -> FakeConnection:
    """Module-level ConnectionFactory, importable as ``tests.conftest:fake_connection``."""
    return FakeConnection(auth_dir)
