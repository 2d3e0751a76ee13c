from __future__ import annotations

import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from . import __version__
from .auth_routes import limiter
from .auth_routes import router as auth_router
from .config import Settings
from .db import get_engine, get_session, make_session_factory
from .email_queue import EmailQueue
from .errors import AppError, messages
from .log import configure_logging, security_logger
from .models import Base
from .passwords import PasswordHasher
from .responses import error_body, ok
from .responses import request_id as request_id_of
from .todo_routes import router as todo_router

SLOW_REQUEST_MS = 1000
STARTUP_DB_RETRIES = 30
AUDITED_STATUSES = (401, 403, 404, 409, 429)

_HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "TOO_MANY_REQUESTS",
}


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Assigns X-Request-ID and logs auth calls, writes and slow requests."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = request_id
        path = request.url.path
        if "/auth/" in path or request.method != "GET" or elapsed_ms > SLOW_REQUEST_MS:
            logger.info(
                "{} {} -> {} in {:.1f}ms [{}]", request.method, path, response.status_code, elapsed_ms, request_id
            )
        return response


def _audit(request: Request, status_code: int, message: str) -> None:
    if status_code not in AUDITED_STATUSES:
        return
    user_id = getattr(request.state, "user_id", None)
    client = request.client.host if request.client else None
    security_logger.warning(
        "{} {} -> {} ({}) user={} ip={}", request.method, request.url.path, status_code, message, user_id, client
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("{} {} -> {} {}", request.method, request.url.path, exc.status_code, exc.message)
        _audit(request, exc.status_code, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(request, exc.status_code, exc.message, exc.error),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
            details.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return JSONResponse(
            status_code=400,
            content=error_body(
                request, 400, messages.VALIDATION_FAILED, "VALIDATION_ERROR", validationErrors=details
            ),
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        _audit(request, 429, f"rate limit {exc.detail}")
        return JSONResponse(
            status_code=429,
            content=error_body(request, 429, messages.TOO_MANY_REQUESTS, "TOO_MANY_REQUESTS"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        _audit(request, exc.status_code, message)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(request, exc.status_code, message, _HTTP_ERROR_CODES.get(exc.status_code, "ERROR")),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        request_id = request_id_of(request)
        logger.opt(exception=exc).critical("{} {} -> 500 [{}]", request.method, request.url.path, request_id)
        return JSONResponse(
            status_code=500,
            content=error_body(request, 500, messages.INTERNAL_ERROR, "INTERNAL_ERROR"),
            headers={"X-Request-ID": request_id},
        )


def _init_db(engine: Engine) -> None:
    # the database may still be starting when the API boots
    last_exc: Exception | None = None
    for _ in range(STARTUP_DB_RETRIES):
        try:
            Base.metadata.create_all(bind=engine)
            return
        except Exception as exc:  # noqa: BLE001
            last_exc = exc
            logger.warning("Database not ready yet: {}", type(exc).__name__)
            time.sleep(1.0)
    raise RuntimeError(f"DB init failed after retries: {last_exc}")


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    email_queue: Optional[EmailQueue] = None,
    hasher: Optional[PasswordHasher] = None,
    configure_logs: bool = True,
) -> FastAPI:
    settings = settings or Settings.from_env()
    if configure_logs:
        configure_logging(settings)

    owns_engine = engine is None
    engine = engine or get_engine(settings.database_url)
    if email_queue is None:
        email_queue = EmailQueue.from_url(settings.redis_url, settings.email_queue_name)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _init_db(engine)
        app.state.started_at = time.time()
        logger.info("todo-api {} started (env={})", __version__, settings.app_env)
        yield
        if owns_engine:
            engine.dispose()
        logger.info("todo-api shut down")

    app = FastAPI(title="todo-api", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.email_queue = email_queue
    app.state.hasher = hasher or PasswordHasher(settings.bcrypt_rounds)
    app.state.limiter = limiter
    limiter.enabled = settings.rate_limit_enabled
    limiter.reset()
    app.state.started_at = time.time()

    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Request-ID"],
    )
    register_error_handlers(app)

    prefix = settings.api_prefix
    app.include_router(auth_router, prefix=prefix)
    app.include_router(todo_router, prefix=prefix)

    @app.get(f"{prefix}/health")
    def health(request: Request, s: Session = Depends(get_session)):
        checks = {"database": "ok", "redis": "ok"}
        try:
            s.execute(text("SELECT 1"))
        except Exception as exc:
            logger.error("Health check: database unavailable ({})", type(exc).__name__)
            checks["database"] = "unavailable"
        try:
            request.app.state.email_queue.ping()
        except Exception as exc:
            logger.warning("Health check: redis unavailable ({})", type(exc).__name__)
            checks["redis"] = "unavailable"
        data = {
            "status": "ok" if all(v == "ok" for v in checks.values()) else "degraded",
            "environment": settings.app_env,
            "uptime": round(time.time() - request.app.state.started_at, 3),
            "checks": checks,
        }
        return ok(request, data, "Health check completed")

    @app.get(f"{prefix}/health/ready")
    def ready(request: Request, s: Session = Depends(get_session)):
        try:
            s.execute(text("SELECT 1"))
        except Exception as exc:
            logger.error("Readiness check failed ({})", type(exc).__name__)
            return JSONResponse(
                status_code=503,
                content=error_body(request, 503, "Database service unavailable", "SERVICE_UNAVAILABLE"),
            )
        return ok(request, {"status": "ready", "checks": {"database": "ok"}}, "Service is ready")

    @app.get(f"{prefix}/health/live")
    def live(request: Request):
        data = {"status": "alive", "uptime": round(time.time() - request.app.state.started_at, 3)}
        return ok(request, data, "Service is alive")

    return app


def run() -> None:
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=int(os.environ.get("PORT", "3001")))
