# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from expense_flow.models.enums import ExpenseCategory, ExpenseStatus, UserRole


class AuditExpenseSnapshot(BaseModel):
    """Current state of the expense an audit entry refers to."""

    id: uuid.UUID
    amount: Decimal
    category: ExpenseCategory
    status: ExpenseStatus
    owner_name: str


class ActivityLogEntry(BaseModel):
    """Audit entry enriched with actor and expense context at read time."""

    id: uuid.UUID
    user_id: uuid.UUID
    expense_id: uuid.UUID | None
    action: str
    details: str | None
    created_at: datetime
    user_name: str
    user_role: UserRole | None
    expense: AuditExpenseSnapshot | None


class ExpenseExportRow(BaseModel):
    """One CSV row of the expense export."""

    id: uuid.UUID
    amount: Decimal
    category: str
    description: str
    status: str
    submittedBy: str  # noqa: N815
    submittedDate: str  # noqa: N815
    updatedDate: str  # noqa: N815
