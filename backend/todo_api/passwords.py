from __future__ import annotations

import re

import bcrypt
from loguru import logger

from .errors import InternalError, messages

MIN_PASSWORD_LENGTH = 8
SYMBOLS = '!@#$%^&*(),.?":{}|<>'

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")
_SYMBOL = re.compile("[" + re.escape(SYMBOLS) + "]")

# bcrypt only ever reads the first 72 bytes of the secret
_BCRYPT_MAX_BYTES = 72


def validate_strength(pw: str) -> bool:
    return (
        len(pw) >= MIN_PASSWORD_LENGTH
        and _UPPER.search(pw) is not None
        and _LOWER.search(pw) is not None
        and _DIGIT.search(pw) is not None
        and _SYMBOL.search(pw) is not None
    )


def _secret(pw: str) -> bytes:
    return pw.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """bcrypt hashing with a configurable cost factor."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def hash(self, pw: str) -> str:
        try:
            return bcrypt.hashpw(_secret(pw), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        except Exception as exc:
            logger.opt(exception=exc).error("Error hashing password")
            raise InternalError(messages.HASHING_FAILED) from None

    def verify(self, pw: str, pw_hash: str) -> bool:
        try:
            return bcrypt.checkpw(_secret(pw), pw_hash.encode("utf-8"))
        except Exception as exc:
            logger.opt(exception=exc).error("Error comparing password")
            raise InternalError(messages.HASHING_FAILED) from None

    validate_strength = staticmethod(validate_strength)
