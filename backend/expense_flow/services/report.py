"""Reporting service: activity logs and CSV expense exports."""

from __future__ import annotations

import csv
import io
from datetime import date
from typing import TYPE_CHECKING

from expense_flow.exceptions import ForbiddenError
from expense_flow.models.enums import UserRole
from expense_flow.schemas.report import ActivityLogEntry, ExpenseExportRow
from expense_flow.services import audit, repository
from expense_flow.services.authorization import can_export_all, can_export_team
from expense_flow.services.identity import display_name

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from expense_flow.models.enums import ExpenseStatus
    from expense_flow.models.user import User

EXPORT_FIELDS = [
    "id",
    "amount",
    "category",
    "description",
    "status",
    "submittedBy",
    "submittedDate",
    "updatedDate",
]


async def get_activity_logs(session: AsyncSession, actor: User, limit: int) -> list[ActivityLogEntry]:
    """Admins read the global feed; everyone else reads their own actions."""
    if actor.role == UserRole.ADMIN:
        return await audit.recent_global(session, limit)
    return await audit.by_user(session, actor.id)


async def build_export_rows(
    session: AsyncSession,
    actor: User,
    status: ExpenseStatus | None = None,
) -> list[ExpenseExportRow]:
    """Rows for the CSV export: every expense for admins, direct reports' for managers."""
    if can_export_all(actor):
        pairs = await repository.find_expenses_for_export(session, status=status)
    elif can_export_team(actor):
        pairs = await repository.find_expenses_for_export(session, status=status, manager_id=actor.id)
    else:
        raise ForbiddenError("Only managers and admins can export expenses")

    return [
        ExpenseExportRow(
            id=expense.id,
            amount=expense.amount,
            category=expense.category,
            description=expense.description,
            status=expense.status,
            submittedBy=display_name(owner),
            submittedDate=expense.created_at.date().isoformat(),
            updatedDate=expense.updated_at.date().isoformat(),
        )
        for expense, owner in pairs
    ]


def render_csv(rows: list[ExpenseExportRow]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: str(v) for k, v in row.model_dump().items()})
    return buffer.getvalue()


def export_filename(actor: User, status: ExpenseStatus | None, today: date | None = None) -> str:
    name = "expenses"
    if status is not None:
        name += f"-{status.value}"
    if actor.role == UserRole.MANAGER:
        name += "-team"
    return f"{name}-{(today or date.today()).isoformat()}.csv"
