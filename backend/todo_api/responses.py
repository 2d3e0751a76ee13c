from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from pydantic import BaseModel


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or "unknown"


def ok(request: Request, data: Any, message: str) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, mode="json")
    return {
        "success": True,
        "message": message,
        "data": data,
        "timestamp": _now_iso(),
        "requestId": request_id(request),
    }


def error_body(request: Request, status_code: int, message: str, error: str, **extra: Any) -> dict[str, Any]:
    body = {
        "success": False,
        "message": message,
        "error": error,
        "statusCode": status_code,
        "timestamp": _now_iso(),
        "path": request.url.path,
        "requestId": request_id(request),
    }
    body.update(extra)
    return body
