# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel

from expense_flow.models.enums import UserRole


class UserResponse(BaseModel):
    """Public view of a user; never includes the password hash."""

    id: uuid.UUID
    username: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    manager_id: uuid.UUID | None
    created_at: datetime


class UserListResponse(BaseModel):
    items: list[UserResponse]
    total: int
