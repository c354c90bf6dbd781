# ruff: noqa: TC003
from __future__ import annotations

import uuid

import sqlalchemy as sa
from sqlmodel import Field

from expense_flow.models.base import TimestampMixin, UUIDBase
from expense_flow.models.enums import UserRole


class User(UUIDBase, TimestampMixin, table=True):
    """A person who files and/or reviews expenses."""

    __tablename__ = "user_account"

    username: str = Field(max_length=150, unique=True, index=True)
    email: str = Field(max_length=255, unique=True, index=True)
    password_hash: str = Field(max_length=255)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    role: str = Field(
        default=UserRole.EMPLOYEE, max_length=20, index=True, sa_column_kwargs={"server_default": "employee"}
    )
    manager_id: uuid.UUID | None = Field(
        default=None,
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("user_account.id"), nullable=True, index=True),
    )
