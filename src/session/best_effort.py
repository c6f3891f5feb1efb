"""Wrapper for non-critical protocol calls whose failure must not abort the caller."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def best_effort(operation: str, awaitable: Awaitable[T]) -> T | None:
    """Await ``awaitable``; log and return None if it raises."""
    try:
        return await awaitable
    except Exception as exc:
        logger.debug("Non-critical operation '%s' failed: %s", operation, exc)
        return None
