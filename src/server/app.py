"""FastAPI application hosting the RaccoonAI WhatsApp bridge."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections.abc import AsyncIterator

from fastapi import FastAPI

from src.bridge.forwarder import WebhookForwarder
from src.bridge.relay import BridgeRelay
from src.credentials.store import CredentialStore
from src.models import BridgeConfig
from src.server.send_routes import SEND_PATH, create_send_router
from src.session.manager import ConnectionManager
from src.session.protocol import load_connection_factory

logger = logging.getLogger(__name__)


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    config = BridgeConfig.from_env()
    connection_factory = load_connection_factory(
        os.environ["RACCOON_CONNECTION_FACTORY"],
    )
    manager = ConnectionManager(
        config,
        connection_factory,
        credential_store=CredentialStore(config.credentials_dir),
    )
    return create_app(config, manager)


def create_app(
    config: BridgeConfig,
    manager: ConnectionManager,
    forwarder: WebhookForwarder | None = None,
) -> FastAPI:
    """Create the bridge app; sessions start in the background after startup."""
    start_sessions = config.enabled and bool(config.raccoon_api_url)
    if start_sessions:
        manager.set_on_message(
            BridgeRelay(manager, forwarder or WebhookForwarder(config)),
        )

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "RaccoonAI Bridge initialized (enabled: %s, webhook: %s, api: %s)",
            config.enabled,
            config.webhook_url or "not set",
            config.raccoon_api_url or "not set",
        )
        init_task: asyncio.Task[None] | None = None
        if start_sessions:
            init_task = asyncio.create_task(
                _initialize_later(manager, config.startup_delay_seconds),
            )
        try:
            yield
        finally:
            if init_task is not None:
                init_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await init_task
            await manager.shutdown()

    app = FastAPI(docs_url=None, redoc_url=None, lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict[str, object]:
        return {
            "status": "ok",
            "connected_users": len(manager.get_connected_user_ids()),
        }

    app.include_router(create_send_router(manager))
    logger.info("RaccoonAI Bridge HTTP endpoint registered at %s", SEND_PATH)

    return app


async def _initialize_later(manager: ConnectionManager, delay_seconds: float) -> None:
    await asyncio.sleep(delay_seconds)
    try:
        await manager.initialize()
        logger.info("RaccoonAI Bridge: WhatsApp connections initialized")
    except Exception:
        logger.exception("RaccoonAI Bridge: Failed to initialize WhatsApp connections")
