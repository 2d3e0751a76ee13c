from __future__ import annotations

import time
import uuid
from typing import Any, Optional

import jwt
from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings
from .errors import InternalError, UnauthorizedError, messages
from .log import redact_email, security_logger
from .models import TOKEN_TYPE_EMAIL_VERIFICATION, User, VerificationToken, now_ms

ACCESS_TOKEN_TYPE = "access_token"


class TokenService:
    """Signed access tokens plus persisted, single-use email verification tokens."""

    def __init__(self, session: Session, settings: Settings):
        self.s = session
        self.settings = settings

    def _encode(self, payload: dict[str, Any], ttl_seconds: int) -> str:
        now = int(time.time())
        claims = {
            **payload,
            "iat": now,
            "exp": now + ttl_seconds,
            "iss": self.settings.jwt_issuer,
            "aud": self.settings.jwt_audience,
        }
        return jwt.encode(claims, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)

    def _decode(self, token: str) -> dict[str, Any]:
        return jwt.decode(
            token,
            self.settings.jwt_secret,
            algorithms=[self.settings.jwt_algorithm],
            audience=self.settings.jwt_audience,
            issuer=self.settings.jwt_issuer,
            options={"require": ["exp", "iat", "sub"]},
        )

    # --- access tokens ---

    def issue_access_token(self, user: User) -> str:
        payload = {
            "sub": user.id,
            "email": user.email,
            "name": user.name,
            "emailVerified": bool(user.email_verified),
            "isActive": bool(user.is_active),
            "type": ACCESS_TOKEN_TYPE,
        }
        try:
            token = self._encode(payload, self.settings.jwt_access_ttl_seconds)
        except Exception as exc:
            logger.opt(exception=exc).error("Token generation failed for user {}", getattr(user, "id", "unknown"))
            raise InternalError(messages.TOKEN_GENERATION_FAILED) from None
        logger.debug("Access token issued for user {}", user.id)
        return token

    def decode_access_token(self, token: str) -> dict[str, Any]:
        try:
            claims = self._decode(token)
        except jwt.InvalidTokenError as exc:
            security_logger.warning("Rejected access token: {}", type(exc).__name__)
            raise UnauthorizedError(messages.INVALID_TOKEN) from None
        if claims.get("type") != ACCESS_TOKEN_TYPE:
            security_logger.warning("Rejected access token with type {!r}", claims.get("type"))
            raise UnauthorizedError(messages.INVALID_TOKEN)
        return claims

    # --- email verification tokens ---

    def _latest_verification_token(self, user_id: str) -> Optional[VerificationToken]:
        return (
            self.s.execute(
                select(VerificationToken)
                .where(
                    VerificationToken.user_id == user_id,
                    VerificationToken.type == TOKEN_TYPE_EMAIL_VERIFICATION,
                )
                .order_by(VerificationToken.created_at.desc())
            )
            .scalars()
            .first()
        )

    def issue_email_verification_token(self, user_id: str, email: str) -> str:
        """Hand out the live token or mint a new one.

        Read-then-write: two concurrent callers that both see no live token
        each insert one, and both stay individually redeemable once.
        """
        try:
            current = self._latest_verification_token(user_id)
            if current is not None and not current.is_used and current.expires_at > now_ms():
                return current.token

            if current is not None:
                # superseded: expired or already consumed
                self.s.execute(
                    delete(VerificationToken).where(
                        VerificationToken.user_id == user_id,
                        VerificationToken.type == TOKEN_TYPE_EMAIL_VERIFICATION,
                    )
                )

            ttl = self.settings.email_verification_ttl_seconds
            token = self._encode(
                {
                    "sub": user_id,
                    "email": email,
                    "type": TOKEN_TYPE_EMAIL_VERIFICATION,
                    "jti": uuid.uuid4().hex,
                },
                ttl,
            )
            self.s.add(
                VerificationToken(
                    user_id=user_id,
                    token=token,
                    type=TOKEN_TYPE_EMAIL_VERIFICATION,
                    expires_at=now_ms() + ttl * 1000,
                    is_used=False,
                )
            )
            self.s.commit()
        except Exception as exc:
            self.s.rollback()
            logger.opt(exception=exc).error(
                "Email verification token generation failed for user {} ({})", user_id, redact_email(email)
            )
            raise InternalError(messages.TOKEN_GENERATION_FAILED) from None

        logger.debug("Email verification token issued for user {} ({})", user_id, redact_email(email))
        return token

    def validate_email_verification_token(self, token: str) -> dict[str, str]:
        """Check and burn a verification token. Returns ``{"id", "email"}``."""
        try:
            claims = self._decode(token)
        except jwt.ExpiredSignatureError:
            security_logger.warning("Expired email verification token attempt")
            raise UnauthorizedError(messages.INVALID_VERIFICATION_TOKEN) from None
        except jwt.InvalidTokenError as exc:
            security_logger.warning("Invalid email verification token attempt: {}", type(exc).__name__)
            raise UnauthorizedError(messages.INVALID_VERIFICATION_TOKEN) from None

        if claims.get("type") != TOKEN_TYPE_EMAIL_VERIFICATION:
            security_logger.warning("Email verification token with wrong type {!r}", claims.get("type"))
            raise UnauthorizedError(messages.INVALID_VERIFICATION_TOKEN)

        user_id = claims["sub"]
        try:
            row = (
                self.s.execute(
                    select(VerificationToken).where(
                        VerificationToken.user_id == user_id,
                        VerificationToken.type == TOKEN_TYPE_EMAIL_VERIFICATION,
                        VerificationToken.token == token,
                    )
                )
                .scalars()
                .first()
            )
            if row is None:
                security_logger.warning("Unknown email verification token for user {}", user_id)
                raise UnauthorizedError(messages.INVALID_VERIFICATION_TOKEN)
            if row.is_used:
                security_logger.warning("Reused email verification token for user {}", user_id)
                raise UnauthorizedError(messages.VERIFICATION_TOKEN_ALREADY_USED)

            # conditional burn: only one concurrent redeemer can flip is_used
            res = self.s.execute(
                update(VerificationToken)
                .where(VerificationToken.id == row.id, VerificationToken.is_used.is_(False))
                .values(is_used=True)
            )
            self.s.commit()
        except SQLAlchemyError as exc:
            self.s.rollback()
            logger.opt(exception=exc).error("Database error validating verification token for user {}", user_id)
            raise InternalError(messages.DATABASE_ERROR) from None

        if res.rowcount != 1:
            raise UnauthorizedError(messages.VERIFICATION_TOKEN_ALREADY_USED)

        logger.debug("Email verification token consumed for user {}", user_id)
        return {"id": user_id, "email": claims.get("email", "")}
