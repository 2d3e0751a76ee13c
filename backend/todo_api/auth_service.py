from __future__ import annotations

from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from .config import Settings
from .email_queue import EmailQueue
from .errors import AppError, BadRequestError, ConflictError, InternalError, UnauthorizedError, messages
from .log import redact_email, security_logger
from .models import User
from .passwords import PasswordHasher
from .schemas import LoginOut, UserProfile, VerifyEmailOut
from .tokens import TokenService
from .users import UserStore


def to_profile(u: User) -> UserProfile:
    return UserProfile.model_validate(u)


class AuthService:
    """Login, registration, logout and email verification flows.

    Known failures (``AppError``) reach the caller untouched. Anything else is
    logged with the email redacted and replaced by a generic internal error.
    """

    def __init__(
        self,
        session: Session,
        settings: Settings,
        hasher: Optional[PasswordHasher] = None,
        email_queue: Optional[EmailQueue] = None,
    ):
        self.settings = settings
        self.users = UserStore(session)
        self.tokens = TokenService(session, settings)
        self.hasher = hasher or PasswordHasher(settings.bcrypt_rounds)
        self.email_queue = email_queue

    def _unexpected(self, operation: str, exc: Exception, email: Optional[str] = None) -> InternalError:
        logger.opt(exception=exc).critical(
            "Auth operation {} failed for {}: {}", operation, redact_email(email), type(exc).__name__
        )
        return InternalError(messages.INTERNAL_ERROR)

    def validate_credentials(self, email: str, password: str) -> Optional[UserProfile]:
        """None for unknown / inactive / wrong password; raises when the email is unverified."""
        try:
            u = self.users.find_by_email(email)
            if u is None or not u.is_active:
                security_logger.warning(
                    "Login attempt failed ({}) for {}",
                    "user_not_found" if u is None else "account_inactive",
                    redact_email(email),
                )
                return None

            if not self.hasher.verify(password, u.password):
                security_logger.warning("Invalid password attempt for user {} ({})", u.id, redact_email(email))
                return None

            if not u.email_verified:
                security_logger.warning("Login attempt with unverified email for user {}", u.id)
                raise UnauthorizedError(messages.EMAIL_NOT_VERIFIED)

            return to_profile(u)
        except AppError:
            raise
        except Exception as exc:
            raise self._unexpected("validate_credentials", exc, email) from None

    def login(self, email: str, password: str, ip: Optional[str] = None) -> LoginOut:
        try:
            u = self.users.find_by_email(email)
            if u is None:
                security_logger.warning("Login failed (user_not_found) for {} from {}", redact_email(email), ip)
                raise UnauthorizedError(messages.INVALID_CREDENTIALS)
            if not u.is_active:
                security_logger.warning("Login failed (account_inactive) for user {} from {}", u.id, ip)
                raise UnauthorizedError(messages.ACCOUNT_DEACTIVATED)
            if not u.email_verified:
                security_logger.warning("Login failed (email_not_verified) for user {} from {}", u.id, ip)
                raise UnauthorizedError(messages.EMAIL_NOT_VERIFIED)
            if not self.hasher.verify(password, u.password):
                security_logger.warning("Login failed (invalid_password) for user {} from {}", u.id, ip)
                raise UnauthorizedError(messages.INVALID_CREDENTIALS)

            access_token = self.tokens.issue_access_token(u)
            self.users.update_last_login(u.id)
            u = self.users.find_by_id(u.id)
        except AppError:
            raise
        except Exception as exc:
            raise self._unexpected("login", exc, email) from None

        logger.info("User {} logged in ({})", u.id, redact_email(u.email))
        return LoginOut(user=to_profile(u), access_token=access_token)

    def register(self, email: str, name: str, password: str, ip: Optional[str] = None) -> UserProfile:
        try:
            if self.users.find_by_email(email) is not None:
                security_logger.info("Registration failed: email already exists ({}) from {}", redact_email(email), ip)
                raise ConflictError(messages.EMAIL_EXISTS)

            if not self.hasher.validate_strength(password):
                security_logger.info("Registration failed: weak password ({}) from {}", redact_email(email), ip)
                raise BadRequestError(messages.WEAK_PASSWORD)

            pw_hash = self.hasher.hash(password)
            require = self.settings.require_email_verification
            # with verification on, the user row and its token commit together
            u = self.users.create(
                email=email, name=name, password_hash=pw_hash, email_verified=not require, commit=not require
            )

            if require:
                token = self.tokens.issue_email_verification_token(u.id, u.email)
                self._queue_verification(u, token, source="register")
        except AppError:
            raise
        except Exception as exc:
            raise self._unexpected("register", exc, email) from None

        logger.info("User {} registered ({})", u.id, redact_email(u.email))
        return to_profile(u)

    def _queue_verification(self, u: User, token: str, source: str) -> None:
        if self.email_queue is None:
            logger.warning("No email queue configured, verification email for user {} not sent", u.id)
            return
        try:
            self.email_queue.enqueue_verification(u.email, token, {"userId": u.id, "source": source})
        except Exception as exc:
            # the user row is committed; the resend endpoint can issue the email again
            logger.opt(exception=exc).error("Failed to queue verification email for {}", redact_email(u.email))

    def logout(self, user_id: str, ip: Optional[str] = None) -> None:
        # Access tokens are not revoked server side; they stay valid until they expire.
        logger.info("User {} logged out from {}", user_id, ip)

    def verify_email(self, token: str) -> VerifyEmailOut:
        try:
            claims = self.tokens.validate_email_verification_token(token)
            u = self.users.find_by_id(claims["id"])
            if u.email_verified:
                return VerifyEmailOut(is_verified=True, is_already_verified=True)

            self.users.mark_verified(u.id)
        except Exception as exc:
            logger.warning("Email verification failed: {}", exc if isinstance(exc, AppError) else type(exc).__name__)
            raise UnauthorizedError(messages.INVALID_VERIFICATION_TOKEN) from None

        logger.info("User {} verified email", u.id)
        return VerifyEmailOut(is_verified=True, is_already_verified=False)

    def resend_verification(self, email: str) -> None:
        """Queue a fresh (or the still-valid) verification email. Silent for unknown accounts."""
        if not self.settings.require_email_verification:
            return
        try:
            u = self.users.find_by_email(email)
            if u is None or not u.is_active or u.email_verified:
                security_logger.info("Verification resend ignored for {}", redact_email(email))
                return
            token = self.tokens.issue_email_verification_token(u.id, u.email)
            self._queue_verification(u, token, source="resend")
        except AppError:
            raise
        except Exception as exc:
            raise self._unexpected("resend_verification", exc, email) from None
