"""Redis-backed queue for outbound email jobs.

Jobs are JSON documents kept in three redis lists (``waiting``, ``active``,
``failed``) plus a ``completed`` counter. A job moves ``waiting -> active``
while a worker sends it and is only removed from ``active`` once the send
finished, so a crashed worker leaves it behind for :meth:`EmailQueue.recover`.
Delivery is at-least-once and unordered across workers.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Optional, Protocol

import redis
from loguru import logger

from .log import redact_email
from .models import now_ms

JOB_VERIFICATION = "verification"


class VerificationSender(Protocol):
    def send_verification_email(self, to: str, token: str) -> bool: ...


class EmailQueue:
    def __init__(self, client: redis.Redis, name: str = "email"):
        self.r = client
        self.name = name

    @classmethod
    def from_url(cls, url: str, name: str = "email") -> "EmailQueue":
        return cls(redis.Redis.from_url(url, decode_responses=True), name)

    def _key(self, part: str) -> str:
        return f"{self.name}:{part}"

    @property
    def waiting_key(self) -> str:
        return self._key("waiting")

    @property
    def active_key(self) -> str:
        return self._key("active")

    @property
    def failed_key(self) -> str:
        return self._key("failed")

    @property
    def completed_key(self) -> str:
        return self._key("completed")

    def ping(self) -> bool:
        return bool(self.r.ping())

    def enqueue_verification(self, to: str, token: str, metadata: Optional[dict[str, Any]] = None) -> str:
        job = {
            "id": uuid.uuid4().hex,
            "type": JOB_VERIFICATION,
            "to": to,
            "token": token,
            "metadata": metadata or {},
            "attempts": 0,
            "queuedAt": now_ms(),
        }
        self.r.rpush(self.waiting_key, json.dumps(job))
        logger.info("Verification email job {} queued for {}", job["id"], redact_email(to))
        return job["id"]

    def process_next(self, sender: VerificationSender, timeout: int = 0) -> Optional[bool]:
        """Send one job. Returns None when the queue is empty, else whether it succeeded."""
        if timeout:
            raw = self.r.blmove(self.waiting_key, self.active_key, timeout, "LEFT", "RIGHT")
        else:
            raw = self.r.lmove(self.waiting_key, self.active_key, "LEFT", "RIGHT")
        if raw is None:
            return None

        job = json.loads(raw)
        to = job.get("to", "")
        try:
            if job.get("type") != JOB_VERIFICATION:
                raise ValueError(f"unknown email job type {job.get('type')!r}")
            sender.send_verification_email(to, job["token"])
        except Exception as exc:
            job["attempts"] = int(job.get("attempts", 0)) + 1
            job["lastError"] = type(exc).__name__
            job["failedAt"] = now_ms()
            pipe = self.r.pipeline()
            pipe.lrem(self.active_key, 1, raw)
            pipe.rpush(self.failed_key, json.dumps(job))
            pipe.execute()
            logger.opt(exception=exc).error(
                "Email job {} for {} failed (attempt {})", job.get("id"), redact_email(to), job["attempts"]
            )
            return False

        pipe = self.r.pipeline()
        pipe.lrem(self.active_key, 1, raw)
        pipe.incr(self.completed_key)
        pipe.execute()
        logger.info("Email job {} for {} completed", job.get("id"), redact_email(to))
        return True

    def status(self) -> dict[str, int]:
        return {
            "waiting": int(self.r.llen(self.waiting_key)),
            "active": int(self.r.llen(self.active_key)),
            "completed": int(self.r.get(self.completed_key) or 0),
            "failed": int(self.r.llen(self.failed_key)),
        }

    def _drain(self, src: str) -> int:
        n = 0
        while self.r.lmove(src, self.waiting_key, "LEFT", "RIGHT") is not None:
            n += 1
        return n

    def retry_failed(self) -> int:
        n = self._drain(self.failed_key)
        logger.info("Retried {} failed email jobs", n)
        return n

    def recover(self) -> int:
        """Put jobs left in ``active`` by a dead worker back on ``waiting``."""
        n = self._drain(self.active_key)
        if n:
            logger.warning("Recovered {} in-flight email jobs", n)
        return n

    def clean(self) -> None:
        self.r.delete(self.failed_key, self.completed_key)
        logger.info("Email queue cleaned")
