from __future__ import annotations

import time
import uuid

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()

PRIORITIES = ("LOW", "MEDIUM", "HIGH")
STATUSES = ("TODO", "IN_PROGRESS", "DONE")

TOKEN_TYPE_EMAIL_VERIFICATION = "EMAIL_VERIFICATION"


def new_id() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    return int(time.time() * 1000)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True)  # stored lowercased
    name = Column(String(64), nullable=False)
    password = Column(String(255), nullable=False)  # bcrypt hash

    email_verified = Column(Boolean, nullable=False, default=False)
    email_verified_at = Column(BigInteger, nullable=True)  # unix ms
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(BigInteger, nullable=True)  # unix ms

    created_at = Column(BigInteger, nullable=False, default=now_ms)
    updated_at = Column(BigInteger, nullable=False, default=now_ms, onupdate=now_ms)


class VerificationToken(Base):
    __tablename__ = "user_tokens"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(1024), nullable=False)
    type = Column(String(32), nullable=False, default=TOKEN_TYPE_EMAIL_VERIFICATION)
    expires_at = Column(BigInteger, nullable=False)  # unix ms
    is_used = Column(Boolean, nullable=False, default=False)
    created_at = Column(BigInteger, nullable=False, default=now_ms)


class Todo(Base):
    __tablename__ = "todos"
    __table_args__ = (Index("ix_todos_user_pinned_created", "user_id", "pinned", "created_at"),)

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=False, default="")
    priority = Column(String(8), nullable=False, default="MEDIUM")  # LOW|MEDIUM|HIGH
    status = Column(String(16), nullable=False, default="TODO")  # TODO|IN_PROGRESS|DONE
    completed = Column(Boolean, nullable=False, default=False)
    pinned = Column(Boolean, nullable=False, default=False)
    due_date = Column(DateTime, nullable=False)  # naive UTC

    created_at = Column(BigInteger, nullable=False, default=now_ms)
    updated_at = Column(BigInteger, nullable=False, default=now_ms, onupdate=now_ms)
