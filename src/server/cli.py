"""Click CLI for running the bridge and managing WhatsApp credentials."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TextIO

import click
import uvicorn

from src.bridge.integrations import IntegrationsClient
from src.credentials.store import CredentialStore
from src.models import WHATSAPP_INTEGRATION_ID, BridgeConfig


@click.group()
@click.option("--log-level", default="INFO", help="Root log level.")
@click.pass_context
def cli(ctx: click.Context, log_level: str) -> None:
    """RaccoonAI WhatsApp bridge CLI."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = BridgeConfig.from_env()


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address.")
@click.option("--port", default=8080, type=int, help="Bind port.")
def serve(host: str, port: int) -> None:
    """Run the bridge HTTP server (config from RACCOON_* env vars)."""
    uvicorn.run(
        "src.server.app:create_app_from_env", factory=True, host=host, port=port,
    )


@cli.group("credentials")
def credentials_group() -> None:
    """Manage per-user credential directories."""


@credentials_group.command("write")
@click.argument("user_id")
@click.argument("credentials_file", type=click.File("r"))
@click.option("--base-dir", default=None, help="Override the credentials base directory.")
@click.pass_context
def credentials_write(
    ctx: click.Context, user_id: str, credentials_file: TextIO, base_dir: str | None,
) -> None:
    """Write a user's credentials from a JSON object of {key: blob}."""
    config: BridgeConfig = ctx.obj["config"]
    try:
        credentials = json.load(credentials_file)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"invalid JSON: {exc}") from exc
    if not isinstance(credentials, dict):
        raise click.BadParameter("credentials file must contain a JSON object")

    store = CredentialStore(base_dir or config.credentials_dir)
    try:
        auth_dir = store.write(user_id, credentials)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="USER_ID") from exc
    click.echo(str(auth_dir))


@cli.group("integrations")
def integrations_group() -> None:
    """Inspect the RaccoonAI integrations listing."""


@integrations_group.command("list")
@click.pass_context
def integrations_list(ctx: click.Context) -> None:
    """List WhatsApp integrations (credentials redacted)."""
    config: BridgeConfig = ctx.obj["config"]
    integrations = asyncio.run(IntegrationsClient(config).fetch())
    output = [
        {
            "userId": i.user_id,
            "phone": i.metadata.phone if i.metadata else None,
            "hasCredentials": bool(i.credentials),
        }
        for i in integrations
        if i.integration_id == WHATSAPP_INTEGRATION_ID
    ]
    click.echo(json.dumps(output, indent=2))
