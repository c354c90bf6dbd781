# ruff: noqa: TC001
from __future__ import annotations

import uuid

from pydantic import BaseModel, EmailStr, Field

from expense_flow.models.enums import UserRole
from expense_flow.schemas.user import UserResponse


class RegisterPayload(BaseModel):
    """Request body for creating an account."""

    username: str = Field(min_length=3, max_length=150)
    password: str = Field(min_length=6, max_length=72)
    email: EmailStr
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: UserRole = UserRole.EMPLOYEE
    manager_id: uuid.UUID | None = None


class LoginPayload(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class AuthResponse(BaseModel):
    """Authenticated user plus a bearer token."""

    user: UserResponse
    token: str
    token_type: str = "bearer"
