import dataclasses
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from todo_api.config import Settings
from todo_api.db import make_session_factory
from todo_api.main import create_app
from todo_api.models import Base
from todo_api.passwords import PasswordHasher

STRONG_PASSWORD = "Str0ng!Pass"


class RecordingEmailQueue:
    """Stands in for the redis queue; keeps jobs in memory."""

    def __init__(self, fail=False):
        self.jobs = []
        self.fail = fail

    def ping(self):
        return True

    def enqueue_verification(self, to, token, metadata=None):
        if self.fail:
            raise ConnectionError("redis is down")
        job_id = uuid.uuid4().hex
        self.jobs.append({"id": job_id, "to": to, "token": token, "metadata": metadata or {}})
        return job_id

    def last_token_for(self, email):
        for job in reversed(self.jobs):
            if job["to"] == email:
                return job["token"]
        return None


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        jwt_secret="test-secret-that-is-long-enough-for-hs256",
        bcrypt_rounds=4,
        rate_limit_enabled=False,
        log_dir=None,
    )


@pytest.fixture
def verifying_settings(settings):
    return dataclasses.replace(settings, require_email_verification=True)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as s:
        yield s


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
def email_queue():
    return RecordingEmailQueue()


def _client(settings, engine, email_queue):
    app = create_app(settings, engine=engine, email_queue=email_queue, configure_logs=False)
    return TestClient(app)


@pytest.fixture
def client(settings, engine, email_queue):
    with _client(settings, engine, email_queue) as c:
        yield c


@pytest.fixture
def verifying_client(verifying_settings, engine, email_queue):
    with _client(verifying_settings, engine, email_queue) as c:
        yield c
