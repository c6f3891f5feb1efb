"""Per-user credential directories for WhatsApp multi-device sessions.

Each user gets ``<base>/raccoon-<user_id>/`` holding one JSON file per
credential key. The primary record (``creds.json``) is patched with
``registered: true`` so the protocol client treats the set as already linked
instead of starting a fresh pairing flow.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CREDS_KEY = "creds"


class CredentialStore:
    """Writes opaque credential blobs received from RaccoonAI to disk."""

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir).expanduser()

    def auth_dir(self, user_id: str) -> Path:
        """Return the user's directory; ids that could escape ``base_dir`` are rejected."""
        if not user_id or "/" in user_id or "\\" in user_id or ".." in user_id:
            raise ValueError(f"Invalid user id for credential directory: {user_id!r}")
        return self.base_dir / f"raccoon-{user_id}"

    def write(self, user_id: str, credentials: dict[str, Any]) -> Path:
        """Write every non-null credential entry and return the auth directory."""
        auth_dir = self.auth_dir(user_id)
        auth_dir.mkdir(parents=True, exist_ok=True)

        for key, value in credentials.items():
            if value is None:
                continue
            _write_json(auth_dir / f"{key}.json", value)

        self._ensure_registered(auth_dir)
        logger.info("Wrote credentials for user %s to %s", user_id, auth_dir)
        return auth_dir

    def save_creds(self, auth_dir: Path, creds: dict[str, Any]) -> None:
        """Persist an updated primary credential record."""
        auth_dir.mkdir(parents=True, exist_ok=True)
        _write_json(auth_dir / f"{CREDS_KEY}.json", creds)

    def _ensure_registered(self, auth_dir: Path) -> None:
        creds_path = auth_dir / f"{CREDS_KEY}.json"
        if not creds_path.exists():
            return
        try:
            creds = json.loads(creds_path.read_text(encoding="utf-8"))
            if not creds.get("registered"):
                creds["registered"] = True
                _write_json(creds_path, creds)
        except (json.JSONDecodeError, AttributeError, OSError) as exc:
            logger.debug("Could not mark %s as registered: %s", creds_path, exc)


def _write_json(path: Path, value: Any) -> None:
    path.write_text(json.dumps(value, indent=2), encoding="utf-8")
