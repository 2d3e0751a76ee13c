from __future__ import annotations

from typing import Optional

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ConflictError, InternalError, NotFoundError, messages
from .log import redact_email, security_logger
from .models import User, now_ms


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore:
    """Persistence for user records. Emails are normalized on every read and write."""

    def __init__(self, session: Session):
        self.s = session

    def find_by_email(self, email: str) -> Optional[User]:
        try:
            return self.s.execute(select(User).where(User.email == normalize_email(email))).scalars().first()
        except SQLAlchemyError as exc:
            logger.opt(exception=exc).error("Database error finding user by email {}", redact_email(email))
            raise InternalError(messages.DATABASE_ERROR) from None

    def find_by_id(self, user_id: str) -> User:
        try:
            u = self.s.get(User, user_id, populate_existing=True)
        except SQLAlchemyError as exc:
            logger.opt(exception=exc).error("Database error finding user {}", user_id)
            raise InternalError(messages.DATABASE_ERROR) from None
        if u is None:
            security_logger.warning("User {} not found by id", user_id)
            raise NotFoundError(messages.USER_NOT_FOUND)
        return u

    def create(
        self, email: str, name: str, password_hash: str, email_verified: bool = False, commit: bool = True
    ) -> User:
        """Insert a user. With ``commit=False`` the row is only flushed and the caller owns the transaction."""
        now = now_ms()
        u = User(
            email=normalize_email(email),
            name=name.strip(),
            password=password_hash,
            email_verified=email_verified,
            email_verified_at=now if email_verified else None,
            is_active=True,
        )
        self.s.add(u)
        try:
            if commit:
                self.s.commit()
            else:
                self.s.flush()
        except IntegrityError:
            # unique email index lost a race against a concurrent registration
            self.s.rollback()
            raise ConflictError(messages.EMAIL_EXISTS) from None
        except SQLAlchemyError as exc:
            self.s.rollback()
            logger.opt(exception=exc).error("User creation failed for {}", redact_email(email))
            raise InternalError(messages.DATABASE_ERROR) from None
        if commit:
            logger.info("User {} created ({})", u.id, redact_email(u.email))
        return u

    def _touch(self, user_id: str, **values) -> None:
        try:
            self.s.execute(update(User).where(User.id == user_id).values(updated_at=now_ms(), **values))
            self.s.commit()
        except SQLAlchemyError as exc:
            self.s.rollback()
            logger.opt(exception=exc).error("Database error updating user {}", user_id)
            raise InternalError(messages.DATABASE_ERROR) from None

    def update_last_login(self, user_id: str) -> None:
        self._touch(user_id, last_login_at=now_ms())

    def mark_verified(self, user_id: str) -> User:
        self._touch(user_id, email_verified=True, email_verified_at=now_ms())
        security_logger.info("User {} verified their email", user_id)
        return self.find_by_id(user_id)
