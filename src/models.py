"""Shared Pydantic data models for the RaccoonAI WhatsApp bridge."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

WHATSAPP_INTEGRATION_ID = "whatsapp"

_DEFAULT_CREDENTIALS_DIR = str(Path.home() / ".clawdbot" / "credentials" / "whatsapp")
_FALSEY = {"0", "false", "no", "off"}

# --- Enums ---


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class ChatType(str, Enum):
    DIRECT = "direct"
    GROUP = "group"


# --- Configuration ---


class BridgeConfig(BaseModel):
    """Process-wide bridge settings, built once and passed to every component."""

    model_config = ConfigDict(frozen=True)

    webhook_url: str | None = None
    raccoon_api_url: str | None = None
    enabled: bool = True
    credentials_dir: str = _DEFAULT_CREDENTIALS_DIR
    startup_delay_seconds: float = Field(default=2.0, ge=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    @classmethod
    def from_env(cls) -> BridgeConfig:
        """Create BridgeConfig from RACCOON_* environment variables."""
        enabled = os.environ.get("RACCOON_BRIDGE_ENABLED", "true").strip().lower()
        return cls(
            webhook_url=os.environ.get("RACCOON_WEBHOOK_URL") or None,
            raccoon_api_url=os.environ.get("RACCOON_API_URL") or None,
            enabled=enabled not in _FALSEY,
            credentials_dir=os.environ.get(
                "RACCOON_CREDENTIALS_DIR", _DEFAULT_CREDENTIALS_DIR,
            ),
            startup_delay_seconds=float(os.environ.get("RACCOON_STARTUP_DELAY", "2.0")),
            request_timeout_seconds=float(
                os.environ.get("RACCOON_REQUEST_TIMEOUT", "30.0"),
            ),
        )


# --- Wire Models ---


class WireModel(BaseModel):
    """Base for camelCase JSON payloads exchanged with RaccoonAI."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MessageMetadata(WireModel):
    account_id: str | None = Field(default=None, alias="accountId")
    conversation_id: str | None = Field(default=None, alias="conversationId")
    chat_type: ChatType | None = Field(default=None, alias="chatType")
    sender_name: str | None = Field(default=None, alias="senderName")
    sender_jid: str | None = Field(default=None, alias="senderJid")
    group_subject: str | None = Field(default=None, alias="groupSubject")
    message_id: str | None = Field(default=None, alias="messageId")


class InboundMessage(WireModel):
    """A WhatsApp message normalized for delivery to the bridge callback."""

    user_id: str = Field(alias="userId")
    integration_id: str = Field(default=WHATSAPP_INTEGRATION_ID, alias="integrationId")
    chat_id: str = Field(alias="chatId")
    from_: str = Field(alias="from")
    text: str
    timestamp: int  # epoch milliseconds
    metadata: MessageMetadata | None = None


class InboundPayload(WireModel):
    """Body POSTed to the RaccoonAI webhook."""

    user_id: str = Field(alias="userId")
    integration_id: str = Field(alias="integrationId")
    chat_id: str = Field(alias="chatId")
    from_: str = Field(alias="from")
    text: str
    media: list[str] | None = None
    timestamp: int
    metadata: MessageMetadata | None = None

    @classmethod
    def from_message(cls, message: InboundMessage) -> InboundPayload:
        metadata = message.metadata or MessageMetadata()
        return cls(
            user_id=message.user_id,
            integration_id=message.integration_id,
            chat_id=message.chat_id,
            from_=message.from_,
            text=message.text,
            timestamp=message.timestamp,
            metadata=MessageMetadata(
                conversation_id=metadata.conversation_id,
                chat_type=metadata.chat_type,
                sender_name=metadata.sender_name,
            ),
        )


class MediaItem(WireModel):
    url: str
    mime_type: str | None = Field(default=None, alias="mimeType")
    filename: str | None = None


class OutboundPayload(WireModel):
    """Send request pushed by RaccoonAI to ``POST /raccoonai/send``.

    Required fields are validated by the route so a missing one maps to 400
    rather than a schema error.
    """

    integration_id: str | None = Field(default=None, alias="integrationId")
    chat_id: str | None = Field(default=None, alias="chatId")
    text: str | None = None
    user_id: str | None = Field(default=None, alias="userId")
    media: list[MediaItem] | None = None

    @property
    def media_url(self) -> str | None:
        if self.media:
            return self.media[0].url
        return None


class IntegrationMetadata(WireModel):
    phone: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")


class Integration(WireModel):
    """A user's credential binding as listed by the RaccoonAI integrations API."""

    user_id: str = Field(alias="userId")
    integration_id: str = Field(alias="integrationId")
    credentials: dict[str, Any] | None = None
    metadata: IntegrationMetadata | None = None


# --- Results ---


class SendResult(WireModel):
    success: bool
    message_id: str | None = Field(default=None, alias="messageId")
    error: str | None = None


class ForwardResult(WireModel):
    success: bool
    session_id: str | None = Field(default=None, alias="sessionId")
    session_url: str | None = Field(default=None, alias="sessionUrl")
    error: str | None = None
