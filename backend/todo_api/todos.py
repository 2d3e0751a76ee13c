from __future__ import annotations

import math
import time
from contextlib import contextmanager
from typing import Iterator

from loguru import logger
from sqlalchemy import case, delete, func, not_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import InternalError, NotFoundError, messages
from .log import security_logger
from .models import Todo, now_ms
from .schemas import DeleteOut, TodoCounts, TodoCreate, TodoListOut, TodoOut, TodoQuery, TodoUpdate

ALL = "ALL"

_PRIORITY_RANK = case({"LOW": 1, "MEDIUM": 2, "HIGH": 3}, value=Todo.priority, else_=0)


def build_order_by(sort_by: str, sort_order: str) -> list:
    """Pinned first, then the requested key, then newest first."""
    asc = sort_order == "asc"

    def direct(col):
        return col.asc() if asc else col.desc()

    if sort_by == "priority":
        keys = [direct(_PRIORITY_RANK), Todo.created_at.desc()]
    elif sort_by == "title":
        keys = [direct(Todo.title), Todo.created_at.desc()]
    else:
        keys = [direct(Todo.created_at)]
    return [Todo.pinned.desc(), *keys, Todo.id.asc()]


def base_filters(user_id: str, q: TodoQuery) -> list:
    """Owner, search and priority; the population behind ``total`` and ``counts``."""
    where = [Todo.user_id == user_id]
    if q.search:
        where.append(
            or_(
                Todo.title.icontains(q.search, autoescape=True),
                Todo.description.icontains(q.search, autoescape=True),
            )
        )
    if q.priority and q.priority != ALL:
        where.append(Todo.priority == q.priority)
    return where


def full_filters(user_id: str, q: TodoQuery) -> list:
    where = base_filters(user_id, q)
    if q.completed is not None and q.completed != ALL:
        where.append(Todo.completed.is_(bool(q.completed)))
    if q.status and q.status != ALL:
        where.append(Todo.status == q.status)
    return where


class TodoService:
    """Per-user todo CRUD and the list/filter/paginate engine.

    Every lookup is scoped by ``(id, user_id)``: a todo owned by someone else is
    reported exactly like a missing one.
    """

    def __init__(self, session: Session):
        self.s = session

    @contextmanager
    def _db(self, operation: str, user_id: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.s.rollback()
            logger.opt(exception=exc).error("Todo operation {} failed for user {}", operation, user_id)
            raise InternalError(messages.DATABASE_ERROR) from None

    def _owned(self, user_id: str, todo_id: str):
        return (Todo.id == todo_id, Todo.user_id == user_id)

    def _not_found(self, user_id: str, todo_id: str, operation: str) -> NotFoundError:
        security_logger.warning("Todo {} not found or not owned by user {} ({})", todo_id, user_id, operation)
        return NotFoundError(messages.TODO_NOT_FOUND)

    def _load(self, user_id: str, todo_id: str, operation: str) -> Todo:
        with self._db(operation, user_id):
            t = (
                self.s.execute(
                    select(Todo).where(*self._owned(user_id, todo_id)).execution_options(populate_existing=True)
                )
                .scalars()
                .first()
            )
        if t is None:
            raise self._not_found(user_id, todo_id, operation)
        return t

    def create(self, user_id: str, data: TodoCreate) -> TodoOut:
        t = Todo(
            user_id=user_id,
            title=data.title,
            description=data.description,
            priority=data.priority,
            status=data.status or "TODO",
            completed=False,
            pinned=False,
            due_date=data.due_date,
        )
        with self._db("create", user_id):
            self.s.add(t)
            self.s.commit()
        logger.info("Todo {} created for user {}", t.id, user_id)
        return TodoOut.model_validate(t)

    def get(self, user_id: str, todo_id: str) -> TodoOut:
        return TodoOut.model_validate(self._load(user_id, todo_id, "get"))

    def list(self, user_id: str, q: TodoQuery) -> TodoListOut:
        started = time.perf_counter()
        base = base_filters(user_id, q)
        full = full_filters(user_id, q)
        skip = (q.page - 1) * q.limit

        with self._db("list", user_id):
            rows = (
                self.s.execute(
                    select(Todo).where(*full).order_by(*build_order_by(q.sort_by, q.sort_order)).offset(skip).limit(q.limit)
                )
                .scalars()
                .all()
            )
            filtered = self.s.execute(select(func.count()).select_from(Todo).where(*full)).scalar_one()
            counts = self._counts(base)

        logger.debug(
            "Listed {} of {} todos for user {} in {:.1f}ms",
            len(rows),
            filtered,
            user_id,
            (time.perf_counter() - started) * 1000,
        )
        return TodoListOut(
            todos=[TodoOut.model_validate(t) for t in rows],
            total=counts.all,
            filtered=filtered,
            counts=counts,
            page=q.page,
            limit=q.limit,
            total_pages=math.ceil(filtered / q.limit),
        )

    def _counts(self, where: list) -> TodoCounts:
        total, done = self.s.execute(
            select(
                func.count(),
                func.coalesce(func.sum(case((Todo.completed.is_(True), 1), else_=0)), 0),
            )
            .select_from(Todo)
            .where(*where)
        ).one()
        total, done = int(total), int(done)
        return TodoCounts(all=total, active=total - done, completed=done)

    def counts(self, user_id: str) -> TodoCounts:
        with self._db("counts", user_id):
            return self._counts([Todo.user_id == user_id])

    def update(self, user_id: str, todo_id: str, data: TodoUpdate) -> TodoOut:
        self._load(user_id, todo_id, "update")
        changes = data.changes()
        if changes:
            with self._db("update", user_id):
                self.s.execute(
                    update(Todo)
                    .where(*self._owned(user_id, todo_id))
                    .values(**changes, updated_at=now_ms())
                    .execution_options(synchronize_session=False)
                )
                self.s.commit()
            logger.info("Todo {} updated for user {}: {}", todo_id, user_id, sorted(changes))
        return self.get(user_id, todo_id)

    def delete(self, user_id: str, todo_id: str) -> DeleteOut:
        self._load(user_id, todo_id, "delete")
        with self._db("delete", user_id):
            self.s.execute(delete(Todo).where(*self._owned(user_id, todo_id)).execution_options(synchronize_session=False))
            self.s.commit()
        logger.info("Todo {} deleted for user {}", todo_id, user_id)
        return DeleteOut(success=True, message="Todo deleted successfully")

    def _flip(self, user_id: str, todo_id: str, column, operation: str) -> TodoOut:
        # single conditional UPDATE; concurrent toggles serialize in the store
        with self._db(operation, user_id):
            res = self.s.execute(
                update(Todo)
                .where(*self._owned(user_id, todo_id))
                .values({column: not_(column), Todo.updated_at: now_ms()})
                .execution_options(synchronize_session=False)
            )
            self.s.commit()
        if res.rowcount == 0:
            raise self._not_found(user_id, todo_id, operation)
        return self.get(user_id, todo_id)

    def toggle_complete(self, user_id: str, todo_id: str) -> TodoOut:
        return self._flip(user_id, todo_id, Todo.completed, "toggle_complete")

    def toggle_pin(self, user_id: str, todo_id: str) -> TodoOut:
        return self._flip(user_id, todo_id, Todo.pinned, "toggle_pin")

    def update_status(self, user_id: str, todo_id: str, status: str) -> TodoOut:
        # status and completed are independent; DONE does not imply completed
        return self.update(user_id, todo_id, TodoUpdate(status=status))
