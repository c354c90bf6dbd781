# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from expense_flow.models.base import TimestampMixin, UTCDateTime, UUIDBase, now_utc
from expense_flow.models.enums import ExpenseStatus


class Expense(UUIDBase, TimestampMixin, table=True):
    """An expense claim with its approval state."""

    __tablename__ = "expense"
    __table_args__ = (sa.Index("ix_expense_user_status", "user_id", "status"),)

    user_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("user_account.id"), nullable=False, index=True),
    )
    amount: Decimal = Field(sa_type=sa.Numeric(12, 2))  # ty: ignore[invalid-argument-type]
    category: str = Field(max_length=50)
    description: str
    status: str = Field(
        default=ExpenseStatus.PENDING, max_length=20, index=True, sa_column_kwargs={"server_default": "pending"}
    )
    receipt_url: str = Field(max_length=500)
    updated_at: datetime = Field(
        default_factory=now_utc,
        sa_type=UTCDateTime,  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )


class Comment(UUIDBase, TimestampMixin, table=True):
    """Reviewer note attached to an expense when its status changes."""

    __tablename__ = "expense_comment"

    expense_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("expense.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    user_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("user_account.id"), nullable=False),
    )
    content: str
