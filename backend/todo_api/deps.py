from __future__ import annotations

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from .auth_service import AuthService
from .config import Settings
from .db import get_session
from .errors import AppError, UnauthorizedError, messages
from .log import security_logger
from .models import User
from .todos import TodoService
from .tokens import TokenService
from .users import UserStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_service(request: Request, s: Session = Depends(get_session)) -> AuthService:
    st = request.app.state
    return AuthService(s, st.settings, hasher=st.hasher, email_queue=st.email_queue)


def get_todo_service(s: Session = Depends(get_session)) -> TodoService:
    return TodoService(s)


def _extract_token(request: Request, authorization: str | None) -> str | None:
    if authorization:
        if not authorization.lower().startswith("bearer "):
            return None
        return authorization.split(" ", 1)[1].strip() or None
    return request.cookies.get(request.app.state.settings.auth_cookie_name)


def get_current_user(
    request: Request,
    authorization: str | None = Header(default=None),
    s: Session = Depends(get_session),
) -> User:
    """Bearer token first, then the auth cookie. The user is reloaded on every request."""
    token = _extract_token(request, authorization)
    if not token:
        raise UnauthorizedError(messages.AUTHENTICATION_REQUIRED)

    settings: Settings = request.app.state.settings
    claims = TokenService(s, settings).decode_access_token(token)
    try:
        u = UserStore(s).find_by_id(claims["sub"])
    except AppError:
        raise UnauthorizedError(messages.INVALID_TOKEN) from None
    if not u.is_active:
        security_logger.warning("Token presented for inactive user {}", u.id)
        raise UnauthorizedError(messages.INVALID_TOKEN)

    request.state.user_id = u.id
    return u
