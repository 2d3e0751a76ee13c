from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

Priority = Literal["LOW", "MEDIUM", "HIGH"]
Status = Literal["TODO", "IN_PROGRESS", "DONE"]
SortBy = Literal["date", "priority", "title"]
SortOrder = Literal["asc", "desc"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    def dump(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def _to_naive_utc(v: datetime) -> datetime:
    if v.tzinfo is not None:
        v = v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


# --- auth ---


class RegisterIn(CamelModel):
    email: EmailStr
    name: str = Field(min_length=2, max_length=50)
    password: str = Field(min_length=8, max_length=128)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters long")
        return v


class LoginIn(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8)


class VerifyEmailIn(CamelModel):
    token: str = Field(min_length=1)


class ResendVerificationIn(CamelModel):
    email: EmailStr


class UserProfile(CamelModel):
    id: str
    email: str
    name: str
    email_verified: bool
    is_active: bool
    last_login_at: Optional[int] = None
    created_at: int
    updated_at: int


class LoginOut(CamelModel):
    user: UserProfile
    access_token: str


class VerifyEmailOut(CamelModel):
    is_verified: bool
    is_already_verified: bool


# --- todos ---


class TodoCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=1000)
    priority: Priority = "MEDIUM"
    status: Optional[Status] = None
    due_date: datetime

    @field_validator("due_date")
    @classmethod
    def _due_utc(cls, v: datetime) -> datetime:
        return _to_naive_utc(v)


class TodoUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    priority: Optional[Priority] = None
    status: Optional[Status] = None
    completed: Optional[bool] = None
    pinned: Optional[bool] = None
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def _due_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_utc(v) if v is not None else v

    @model_validator(mode="after")
    def _no_explicit_nulls(self) -> "TodoUpdate":
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} must not be null")
        return self

    def changes(self) -> dict:
        """Only the fields the client actually sent."""
        return self.model_dump(exclude_unset=True)


class TodoStatusIn(CamelModel):
    status: Status


class TodoQuery(BaseModel):
    search: Optional[str] = None
    priority: Optional[Union[Priority, Literal["ALL"]]] = None
    completed: Optional[Union[bool, Literal["ALL"]]] = None
    status: Optional[Union[Status, Literal["ALL"]]] = None
    sort_by: SortBy = "date"
    sort_order: SortOrder = "desc"
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)


class TodoOut(CamelModel):
    id: str
    title: str
    description: str
    priority: Priority
    status: Status
    completed: bool
    pinned: bool
    due_date: datetime
    user_id: str
    created_at: int
    updated_at: int


class TodoCounts(CamelModel):
    all: int
    active: int
    completed: int


class TodoListOut(CamelModel):
    todos: list[TodoOut]
    total: int
    filtered: int
    counts: TodoCounts
    page: int
    limit: int
    total_pages: int


class DeleteOut(CamelModel):
    success: bool
    message: str
