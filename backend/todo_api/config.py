from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Mapping

REQUIRED_ENV_VARS = ("JWT_SECRET", "DATABASE_URL")

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str | int) -> int:
    """Convert "20d" / "1h" / "30m" / "45s" / "3600" into seconds."""
    if isinstance(value, int):
        return value
    m = _DURATION_RE.match(value)
    if not m:
        raise ValueError(f"invalid duration: {value!r}")
    return int(m.group(1)) * _UNIT_SECONDS[m.group(2)]


def _bool(raw: str | None, default: bool = False) -> bool:
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _opt(raw: str | None) -> str | None:
    if raw is None or raw.strip() == "":
        return None
    return raw.strip()


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_access_ttl_seconds: int = 20 * 86400
    jwt_issuer: str = "todo-api"
    jwt_audience: str = "todo-app"
    email_verification_ttl_seconds: int = 3600
    bcrypt_rounds: int = 12
    require_email_verification: bool = False
    rate_limit_enabled: bool = True

    app_env: str = "dev"
    api_prefix: str = "/api"
    frontend_url: str = "http://localhost:3000"
    cors_origins: tuple[str, ...] = ("http://localhost:3000",)
    auth_cookie_name: str = "auth-token"

    redis_url: str = "redis://localhost:6379/0"
    email_queue_name: str = "email"

    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    email_from: str | None = None

    log_level: str = "INFO"
    log_dir: str | None = "logs"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ

        missing = [name for name in REQUIRED_ENV_VARS if not env.get(name)]
        if missing:
            raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

        frontend_url = env.get("FRONTEND_URL", "http://localhost:3000").rstrip("/")
        origins = env.get("CORS_ORIGINS", "").strip()
        cors_origins = tuple(o.strip() for o in origins.split(",") if o.strip()) if origins else (frontend_url,)

        return cls(
            database_url=env["DATABASE_URL"],
            jwt_secret=env["JWT_SECRET"],
            jwt_access_ttl_seconds=parse_duration(env.get("JWT_ACCESS_EXPIRES_IN", "20d")),
            jwt_issuer=env.get("JWT_ISSUER", "todo-api"),
            jwt_audience=env.get("JWT_AUDIENCE", "todo-app"),
            email_verification_ttl_seconds=parse_duration(env.get("EMAIL_VERIFICATION_EXPIRES_IN", "1h")),
            bcrypt_rounds=int(env.get("BCRYPT_ROUNDS", "12")),
            require_email_verification=_bool(env.get("REQUIRE_EMAIL_VERIFICATION")),
            rate_limit_enabled=_bool(env.get("RATE_LIMIT_ENABLED"), default=True),
            app_env=env.get("APP_ENV", "dev"),
            api_prefix=env.get("API_PREFIX", "/api").rstrip("/"),
            frontend_url=frontend_url,
            cors_origins=cors_origins,
            redis_url=env.get("REDIS_URL", "redis://localhost:6379/0"),
            email_queue_name=env.get("EMAIL_QUEUE_NAME", "email"),
            smtp_host=_opt(env.get("SMTP_HOST")),
            smtp_port=int(env.get("SMTP_PORT", "587")),
            smtp_user=_opt(env.get("SMTP_USER")),
            smtp_password=_opt(env.get("SMTP_PASSWORD")),
            email_from=_opt(env.get("EMAIL_FROM")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_dir=_opt(env.get("LOG_DIR", "logs")),
        )
