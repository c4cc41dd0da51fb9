"""Logging configuration for the application."""

import logging
from typing import Iterable, Optional

REDACTED = "<redacted>"


class RedactFilter(logging.Filter):
    """Replace secret values in rendered log messages."""

    def __init__(self, secrets: Iterable[Optional[str]]):
        super().__init__()
        self.secrets = [s for s in secrets if s]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self.secrets:
            redacted = redacted.replace(secret, REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO"):
    """Configure logging with standard format and levels.

    uvicorn is started with ``log_config=None`` so its loggers propagate to
    the root handler configured here.
    """
    logging.basicConfig(
        format="%(asctime)s %(levelname)7s %(message)s",
        datefmt="%H:%M:%S",
        level=level,
    )
    # httpx logs full request URLs, which embed the bot token
    logging.getLogger("httpx").setLevel(logging.WARNING)


def redact_secrets(*secrets: Optional[str]) -> RedactFilter:
    """Attach a ``RedactFilter`` for ``secrets`` to every root handler."""
    redactor = RedactFilter(secrets)
    for handler in logging.getLogger().handlers:
        handler.addFilter(redactor)
    return redactor
