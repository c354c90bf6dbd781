"""Audit trail: append-only writes and enriched reads."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from expense_flow.models.audit import AuditLog
from expense_flow.models.expense import Expense
from expense_flow.schemas.report import ActivityLogEntry, AuditExpenseSnapshot
from expense_flow.services.identity import display_name
from expense_flow.services.repository import find_users_by_ids

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from expense_flow.models.enums import AuditAction


async def write_audit_log(
    session: AsyncSession,
    *,
    actor_id: uuid.UUID,
    action: AuditAction,
    details: str,
    expense_id: uuid.UUID | None = None,
) -> AuditLog:
    """Write an immutable audit log entry within the caller's transaction."""
    entry = AuditLog(
        user_id=actor_id,
        expense_id=expense_id,
        action=action.value,
        details=details,
    )
    session.add(entry)
    return entry


async def _enrich(session: AsyncSession, entries: list[AuditLog]) -> list[ActivityLogEntry]:
    """Attach actor names and a snapshot of each referenced expense.

    Lookups happen at read time so renamed users and later status changes
    are always reflected.
    """
    expense_ids = {e.expense_id for e in entries if e.expense_id is not None}
    expenses: dict[uuid.UUID, Expense] = {}
    if expense_ids:
        result = await session.execute(select(Expense).where(col(Expense.id).in_(expense_ids)))
        expenses = {x.id: x for x in result.scalars().all()}

    user_ids = {e.user_id for e in entries} | {x.user_id for x in expenses.values()}
    users = await find_users_by_ids(session, user_ids)

    items: list[ActivityLogEntry] = []
    for entry in entries:
        actor = users.get(entry.user_id)
        snapshot = None
        expense = expenses.get(entry.expense_id) if entry.expense_id is not None else None
        if expense is not None:
            snapshot = AuditExpenseSnapshot(
                id=expense.id,
                amount=expense.amount,
                category=expense.category,
                status=expense.status,
                owner_name=display_name(users.get(expense.user_id)),
            )
        items.append(
            ActivityLogEntry(
                id=entry.id,
                user_id=entry.user_id,
                expense_id=entry.expense_id,
                action=entry.action,
                details=entry.details,
                created_at=entry.created_at,
                user_name=display_name(actor),
                user_role=actor.role if actor is not None else None,
                expense=snapshot,
            )
        )
    return items


def _newest_first() -> tuple:
    return col(AuditLog.created_at).desc(), col(AuditLog.id).desc()


async def recent_global(session: AsyncSession, limit: int = 10) -> list[ActivityLogEntry]:
    """Most recent entries across the whole system."""
    result = await session.execute(select(AuditLog).order_by(*_newest_first()).limit(limit))
    return await _enrich(session, list(result.scalars().all()))


async def by_user(session: AsyncSession, user_id: uuid.UUID) -> list[ActivityLogEntry]:
    """Every entry where ``user_id`` was the actor."""
    result = await session.execute(
        select(AuditLog).where(col(AuditLog.user_id) == user_id).order_by(*_newest_first())
    )
    return await _enrich(session, list(result.scalars().all()))
