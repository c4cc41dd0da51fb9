"""Command line entry point for github-webhook-notify."""

import logging
import sys
from typing import Optional

import click
import uvicorn

from ghnotify import __version__
from ghnotify.config import load_config, settings
from ghnotify.errors import ConfigError
from ghnotify.logging import configure_logging, redact_secrets

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__)
def cli():
    """Relay GitHub webhook deliveries to Telegram chats."""


@cli.command()
@click.option(
    "--cfg",
    "-c",
    "config_path",
    default=None,
    help="Specify configure file location (default: GHNOTIFY_CONFIG_PATH or data/config.toml)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override GHNOTIFY_LOG_LEVEL",
)
def serve(config_path: Optional[str], log_level: Optional[str]):
    """Run the webhook server."""
    from ghnotify.main import create_app

    configure_logging((log_level or settings.log_level).upper())
    path = config_path or settings.config_path

    try:
        config = load_config(path)
    except ConfigError as e:
        logger.error(f"❌ {e}")
        sys.exit(1)

    secret = config.auth.signing_secret
    redact_secrets(
        config.telegram.bot_token,
        config.auth.url_token,
        secret.decode("utf-8") if secret else None,
    )

    app = create_app(config, settings)
    uvicorn.run(app, host=config.bind, port=config.port, log_config=None)


@cli.command("check-config")
@click.option("--cfg", "-c", "config_path", default=None, help="Configuration file to check")
def check_config(config_path: Optional[str]):
    """Validate a configuration file and print a summary."""
    configure_logging(settings.log_level)
    path = config_path or settings.config_path

    try:
        config = load_config(path)
    except ConfigError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(1)

    mechanisms = []
    if config.auth.signing_secret is not None:
        mechanisms.append("signature")
    if config.auth.url_token is not None:
        mechanisms.append("token")

    click.echo(f"Bind address: {config.bind_address}")
    click.echo(f"Authentication: {', '.join(mechanisms) or 'none (insecure)'}")
    defaults = ", ".join(str(c) for c in sorted(config.telegram.default_chats))
    click.echo(f"Default chats: {defaults or '-'}")
    click.echo(f"Repositories: {len(config.repositories)}")
    for name, route in sorted(config.repositories.items()):
        chats = "default" if route.chats is None else (
            ", ".join(str(c) for c in sorted(route.chats)) or "none"
        )
        line = f"  {name} -> {chats}"
        if route.branch_ignore:
            line += f" (ignoring {', '.join(sorted(route.branch_ignore))})"
        click.echo(line)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
