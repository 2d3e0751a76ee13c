"""Logging setup: application log plus a separate security-audit channel."""

from __future__ import annotations

import os
import re
import sys

from loguru import logger

from .config import Settings

SECURITY_CHANNEL = "security"

# audit events; routed to security.log as well as the normal sinks
security_logger = logger.bind(channel=SECURITY_CHANNEL)

_EMAIL_RE = re.compile(r"^(.{2})(.*)(@.*)$")

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def redact_email(email: str | None) -> str:
    """Keep the first two characters and the domain: ``jo***@example.com``."""
    if not email:
        return "unknown"
    return _EMAIL_RE.sub(r"\1***\3", email)


def _is_security(record) -> bool:
    return record["extra"].get("channel") == SECURITY_CHANNEL


def configure_logging(settings: Settings) -> None:
    logger.remove()
    logger.add(sys.stdout, format=_CONSOLE_FORMAT, level=settings.log_level)

    if not settings.log_dir:
        return

    os.makedirs(settings.log_dir, exist_ok=True)
    serialize = settings.is_production
    logger.add(
        os.path.join(settings.log_dir, "app.log"),
        rotation="50 MB",
        retention="10 days",
        level=settings.log_level,
        serialize=serialize,
    )
    logger.add(
        os.path.join(settings.log_dir, "error.log"),
        rotation="50 MB",
        retention="30 days",
        level="ERROR",
        backtrace=True,
        serialize=serialize,
    )
    logger.add(
        os.path.join(settings.log_dir, "security.log"),
        rotation="50 MB",
        retention="90 days",
        level="INFO",
        filter=_is_security,
        serialize=True,
    )
