# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from expense_flow.models.enums import ExpenseCategory, ExpenseStatus

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class CreateExpensePayload(BaseModel):
    """Validated fields of a new expense (the receipt travels separately)."""

    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    category: ExpenseCategory
    description: str = Field(min_length=1, max_length=2000)


class StatusUpdatePayload(BaseModel):
    """Request body for approving or rejecting an expense."""

    status: ExpenseStatus
    comment: str | None = Field(default=None, max_length=1000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ExpenseResponse(BaseModel):
    """Response schema for a single expense."""

    id: uuid.UUID
    user_id: uuid.UUID
    amount: Decimal
    category: ExpenseCategory
    description: str
    status: ExpenseStatus
    receipt_url: str
    created_at: datetime
    updated_at: datetime


class CommentResponse(BaseModel):
    id: uuid.UUID
    expense_id: uuid.UUID
    user_id: uuid.UUID
    content: str
    created_at: datetime


class ExpenseDetailResponse(BaseModel):
    """An expense together with its reviewer comments, oldest first."""

    expense: ExpenseResponse
    comments: list[CommentResponse]


class ExpenseStats(BaseModel):
    """Status counts plus the approved total for the current calendar month."""

    pending: int = 0
    approved: int = 0
    rejected: int = 0
    total: Decimal = Decimal("0.00")
