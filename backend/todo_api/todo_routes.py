from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from .deps import get_current_user, get_todo_service
from .models import User
from .responses import ok
from .schemas import TodoCreate, TodoQuery, TodoStatusIn, TodoUpdate
from .todos import TodoService

router = APIRouter(prefix="/todos", tags=["todos"])


def todo_query(
    search: Optional[str] = Query(default=None, max_length=255),
    priority: Optional[Literal["LOW", "MEDIUM", "HIGH", "ALL"]] = None,
    completed: Optional[Literal["true", "false", "ALL"]] = None,
    status_: Optional[Literal["TODO", "IN_PROGRESS", "DONE", "ALL"]] = Query(default=None, alias="status"),
    sort_by: Literal["date", "priority", "title"] = Query(default="date", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query(default="desc", alias="sortOrder"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> TodoQuery:
    if completed is None or completed == "ALL":
        done = completed
    else:
        done = completed == "true"
    return TodoQuery(
        search=search,
        priority=priority,
        completed=done,
        status=status_,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_todo(
    body: TodoCreate,
    request: Request,
    user: User = Depends(get_current_user),
    svc: TodoService = Depends(get_todo_service),
):
    return ok(request, svc.create(user.id, body), "Todo created successfully")


@router.get("")
def list_todos(
    request: Request,
    q: TodoQuery = Depends(todo_query),
    user: User = Depends(get_current_user),
    svc: TodoService = Depends(get_todo_service),
):
    return ok(request, svc.list(user.id, q), "Todos retrieved successfully")


@router.get("/counts")
def todo_counts(request: Request, user: User = Depends(get_current_user), svc: TodoService = Depends(get_todo_service)):
    return ok(request, svc.counts(user.id), "Todo counts retrieved successfully")


@router.get("/{todo_id}")
def get_todo(
    todo_id: str, request: Request, user: User = Depends(get_current_user), svc: TodoService = Depends(get_todo_service)
):
    return ok(request, svc.get(user.id, todo_id), "Todo retrieved successfully")


@router.put("/{todo_id}")
def update_todo(
    todo_id: str,
    body: TodoUpdate,
    request: Request,
    user: User = Depends(get_current_user),
    svc: TodoService = Depends(get_todo_service),
):
    return ok(request, svc.update(user.id, todo_id, body), "Todo updated successfully")


@router.delete("/{todo_id}")
def delete_todo(
    todo_id: str, request: Request, user: User = Depends(get_current_user), svc: TodoService = Depends(get_todo_service)
):
    result = svc.delete(user.id, todo_id)
    return ok(request, None, result.message)


@router.patch("/{todo_id}/toggle")
def toggle_todo(
    todo_id: str, request: Request, user: User = Depends(get_current_user), svc: TodoService = Depends(get_todo_service)
):
    return ok(request, svc.toggle_complete(user.id, todo_id), "Todo completion status toggled successfully")


@router.patch("/{todo_id}/pin")
def pin_todo(
    todo_id: str, request: Request, user: User = Depends(get_current_user), svc: TodoService = Depends(get_todo_service)
):
    return ok(request, svc.toggle_pin(user.id, todo_id), "Todo pin status toggled successfully")


@router.patch("/{todo_id}/status")
def set_status(
    todo_id: str,
    body: TodoStatusIn,
    request: Request,
    user: User = Depends(get_current_user),
    svc: TodoService = Depends(get_todo_service),
):
    return ok(request, svc.update_status(user.id, todo_id, body.status), "Todo status updated successfully")
