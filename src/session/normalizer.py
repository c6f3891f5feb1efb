"""WhatsApp message normalization and outbound content building.

Raw messages use the multi-device client's shape::

    {
        "key": {"remoteJid": ..., "fromMe": ..., "id": ..., "participant": ...},
        "message": {"conversation": ..., "extendedTextMessage": {...}, ...},
        "pushName": ...,
        "messageTimestamp": ...,
    }
"""

from __future__ import annotations

import re
import time
from typing import Any

from src.models import ChatType, InboundMessage, MessageMetadata

_GROUP_SUFFIX = "@g.us"
_BROADCAST_SUFFIXES = ("@status", "@broadcast")

_IMAGE_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.IGNORECASE)
_VIDEO_RE = re.compile(r"\.(mp4|mov|avi|mkv|webm)$", re.IGNORECASE)
_AUDIO_RE = re.compile(r"\.(mp3|wav|ogg|m4a|opus)$", re.IGNORECASE)


def jid_to_phone(jid: str) -> str:
    """``"15551234567:22@s.whatsapp.net"`` -> ``"15551234567"``."""
    return jid.split("@")[0].split(":")[0]


def is_group_jid(jid: str) -> bool:
    return jid.endswith(_GROUP_SUFFIX)


def is_broadcast_jid(jid: str) -> bool:
    return jid.endswith(_BROADCAST_SUFFIXES)


def extract_text(message: dict[str, Any] | None) -> str:
    """Return the first non-empty text body or media caption."""
    if not message:
        return ""
    candidates = (
        message.get("conversation"),
        (message.get("extendedTextMessage") or {}).get("text"),
        (message.get("imageMessage") or {}).get("caption"),
        (message.get("videoMessage") or {}).get("caption"),
    )
    for text in candidates:
        if text:
            return text
    return ""


def normalize_message(user_id: str, raw: dict[str, Any]) -> InboundMessage | None:
    """Convert a raw message to an InboundMessage.

    Returns None for messages that must not reach the bridge: no chat jid,
    status/broadcast chats, our own messages, and empty text.
    """
    key = raw.get("key") or {}
    remote_jid = key.get("remoteJid")
    if not remote_jid:
        return None
    if is_broadcast_jid(remote_jid):
        return None
    if key.get("fromMe"):
        return None

    text = extract_text(raw.get("message"))
    if not text.strip():
        return None

    is_group = is_group_jid(remote_jid)
    participant = key.get("participant")
    sender = ""
    if is_group and participant:
        sender = jid_to_phone(participant)
    elif not is_group:
        sender = jid_to_phone(remote_jid)

    timestamp = _timestamp_ms(raw.get("messageTimestamp"))

    return InboundMessage(
        user_id=user_id,
        chat_id=remote_jid,
        from_=sender or remote_jid,
        text=text,
        timestamp=timestamp,
        metadata=MessageMetadata(
            conversation_id=remote_jid,
            chat_type=ChatType.GROUP if is_group else ChatType.DIRECT,
            sender_name=raw.get("pushName") or None,
            sender_jid=participant or None,
            message_id=key.get("id"),
        ),
    )


def _timestamp_ms(raw_ts: Any) -> int:
    """Epoch seconds (int, float, numeric string or Long dict) -> milliseconds."""
    try:
        if isinstance(raw_ts, dict):
            low = int(raw_ts.get("low") or 0) & 0xFFFFFFFF
            raw_ts = low + int(raw_ts.get("high") or 0) * 2**32
        seconds = int(float(raw_ts)) if raw_ts else 0
    except (TypeError, ValueError, OverflowError):
        seconds = 0
    if seconds:
        return seconds * 1000
    return int(time.time() * 1000)


def build_content(text: str, media_url: str | None = None) -> dict[str, Any]:
    """Build the outbound message envelope, classifying media by extension.

    Audio never carries a caption.
    """
    if not media_url:
        return {"text": text}

    caption = text or None
    if _IMAGE_RE.search(media_url):
        content: dict[str, Any] = {"image": {"url": media_url}, "caption": caption}
    elif _VIDEO_RE.search(media_url):
        content = {"video": {"url": media_url}, "caption": caption}
    elif _AUDIO_RE.search(media_url):
        return {"audio": {"url": media_url}}
    else:
        content = {"document": {"url": media_url}, "caption": caption}

    if caption is None:
        del content["caption"]
    return content
