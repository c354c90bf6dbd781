# ruff: noqa: TC003
from __future__ import annotations

import uuid

import sqlalchemy as sa
from sqlmodel import Field

from expense_flow.models.base import TimestampMixin, UUIDBase


class AuditLog(UUIDBase, TimestampMixin, table=True):
    """Immutable record of every state-changing action in the system."""

    __tablename__ = "audit_log"

    user_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("user_account.id"), nullable=False, index=True),
    )
    expense_id: uuid.UUID | None = Field(
        default=None,
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("expense.id"), nullable=True, index=True),
    )
    action: str = Field(max_length=50)
    details: str | None = None
