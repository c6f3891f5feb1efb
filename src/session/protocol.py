"""Boundary between sessions and the WhatsApp multi-device client library.

The wire protocol (handshake, encryption, framing) is supplied by a client
library. Sessions only see the ``ProtocolConnection`` surface below and the
typed events it yields.
"""

from __future__ import annotations

import importlib
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Any, Protocol, Union


class DisconnectReason(IntEnum):
    """Close codes reported by the protocol client."""

    LOGGED_OUT = 401
    FORBIDDEN = 403
    CONNECTION_LOST = 408
    MULTIDEVICE_MISMATCH = 411
    CONNECTION_CLOSED = 428
    CONNECTION_REPLACED = 440
    BAD_SESSION = 500
    UNAVAILABLE_SERVICE = 503
    RESTART_REQUIRED = 515


# --- Events ---


@dataclass(frozen=True)
class Opened:
    """Handshake completed; ``user_jid`` is the authenticated account."""

    user_jid: str | None = None


@dataclass(frozen=True)
class Closed:
    reason_code: int | None = None


@dataclass(frozen=True)
class CredentialsUpdated:
    blob: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MessageReceived:
    """One raw message from an upsert batch.

    ``upsert_type`` is ``"notify"`` for live traffic; history syncs and
    appends use other values.
    """

    raw: dict[str, Any]
    upsert_type: str = "notify"


ConnectionEvent = Union[Opened, Closed, CredentialsUpdated, MessageReceived]


class ProtocolConnection(Protocol):
    """Socket-like client for one linked WhatsApp account."""

    def events(self) -> AsyncGenerator[ConnectionEvent, None]:
        """Yield events in emission order until the connection closes."""
        ...

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def send_message(self, jid: str, content: dict[str, Any]) -> str | None:
        """Send ``content`` to ``jid`` and return the message id, if known."""
        ...

    async def send_presence(self, presence: str) -> None: ...

    async def read_messages(self, keys: list[dict[str, Any]]) -> None: ...

    async def group_metadata(self, jid: str) -> dict[str, Any]: ...


class ConnectionFactory(Protocol):
    def __call__(self, auth_dir: Path) -> ProtocolConnection: ...


def load_connection_factory(target: str) -> ConnectionFactory:
    """Import a connection factory from a ``package.module:callable`` path."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(
            f"Invalid connection factory '{target}', expected 'module:callable'",
        )
    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"'{target}' is not callable")
    return factory
