"""todo-api-worker: delivers queued verification emails."""

from __future__ import annotations

import sys
import time

import click
import redis
from loguru import logger

from .config import Settings
from .email_queue import EmailQueue
from .email_service import EmailSender
from .log import configure_logging


def _setup() -> tuple[Settings, EmailQueue]:
    settings = Settings.from_env()
    configure_logging(settings)
    return settings, EmailQueue.from_url(settings.redis_url, settings.email_queue_name)


def drain(queue: EmailQueue, sender: EmailSender, once: bool = False, poll_timeout: int = 5) -> int:
    """Process jobs until interrupted, or until the queue is empty when ``once`` is set."""
    processed = 0
    while True:
        try:
            result = queue.process_next(sender, timeout=0 if once else poll_timeout)
        except redis.ConnectionError as exc:
            if once:
                raise
            logger.error("Redis unavailable ({}), retrying", exc)
            time.sleep(poll_timeout)
            continue
        if result is None:
            if once:
                return processed
            continue
        processed += 1


@click.group()
def cli():
    """Email queue worker and maintenance commands."""


@cli.command()
@click.option("--once", is_flag=True, help="Exit when the queue is empty.")
@click.option("--poll-timeout", default=5, show_default=True, help="Seconds to block waiting for a job.")
def run(once: bool, poll_timeout: int):
    """Start processing verification emails."""
    settings, queue = _setup()
    sender = EmailSender.from_settings(settings)
    if not sender.is_configured:
        logger.warning("SMTP is not configured; jobs will complete without sending")

    queue.recover()
    logger.info("Email worker started on queue '{}'", queue.name)
    try:
        n = drain(queue, sender, once=once, poll_timeout=poll_timeout)
    except KeyboardInterrupt:
        logger.info("Email worker stopped")
        return
    click.echo(f"Processed {n} job(s)")


@cli.command()
def status():
    """Show queue counts."""
    _, queue = _setup()
    for name, count in queue.status().items():
        click.echo(f"{name:<10} {count}")


@cli.command()
def retry():
    """Move failed jobs back onto the waiting list."""
    _, queue = _setup()
    click.echo(f"Requeued {queue.retry_failed()} failed job(s)")


@cli.command()
def clean():
    """Drop failed jobs and reset the completed counter."""
    _, queue = _setup()
    queue.clean()
    click.echo("Queue cleaned")


def main():
    try:
        cli()
    except RuntimeError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
