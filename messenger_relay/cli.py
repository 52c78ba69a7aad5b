"""Click CLI for running and checking the Messenger relay."""

from __future__ import annotations

import json
import logging

import click
import uvicorn
from dotenv import load_dotenv
from pydantic import ValidationError

from messenger_relay.config import ConfigError, RelayConfig


@click.group()
@click.option("--env-file", default=".env", help="Dotenv file loaded before reading config.")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Log level for the relay and uvicorn.",
)
@click.pass_context
def cli(ctx: click.Context, env_file: str, log_level: str) -> None:
    """Messenger webhook relay to Dialogflow and Gemini."""
    ctx.ensure_object(dict)
    load_dotenv(env_file)
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj["log_level"] = log_level


def _load_config() -> RelayConfig:
    try:
        return RelayConfig.from_env()
    except (ConfigError, ValidationError) as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc


@cli.command()
@click.option("--host", default="0.0.0.0", help="Interface to bind.")
@click.option("--port", type=int, default=None, help="Port to bind (defaults to PORT).")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int | None) -> None:
    """Run the webhook server."""
    config = _load_config()
    bind_port = port or config.port
    click.echo(f"Server is running on port {bind_port}", err=True)
    uvicorn.run(
        "messenger_relay.proxy.app:create_app_from_env",
        factory=True,
        host=host,
        port=bind_port,
        log_level=ctx.obj["log_level"],
    )


@cli.command("check-config")
def check_config() -> None:
    """Validate the environment and print the non-secret settings."""
    config = _load_config()
    click.echo(json.dumps(config.public_summary(), indent=2))
