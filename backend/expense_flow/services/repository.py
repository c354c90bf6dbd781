"""Scoped data access for users, expenses and comments.

Team scoping is applied inside the SQL (a sub-select on the owner's
``manager_id``) so callers never receive rows outside the requested scope.
"""

# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, case, func, or_, select
from sqlmodel import col

from expense_flow.models.enums import ExpenseStatus
from expense_flow.models.expense import Comment, Expense
from expense_flow.models.user import User
from expense_flow.schemas.expense import ExpenseStats

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


# ---------------------------------------------------------------------------
# Scope helpers
# ---------------------------------------------------------------------------


def _direct_reports(manager_id: uuid.UUID) -> Any:
    return select(col(User.id)).where(col(User.manager_id) == manager_id)


def _scope_filter(user_id: uuid.UUID | None, manager_id: uuid.UUID | None) -> list[Any]:
    """Manager scope wins over user scope; neither means unscoped."""
    if manager_id is not None:
        return [col(Expense.user_id).in_(_direct_reports(manager_id))]
    if user_id is not None:
        return [col(Expense.user_id) == user_id]
    return []


def current_month_bounds(now: datetime | None = None) -> tuple[datetime, datetime]:
    """Start (inclusive) and end (exclusive) of the current local calendar month."""
    local_now = now.astimezone() if now is not None else datetime.now().astimezone()
    start = datetime(local_now.year, local_now.month, 1)
    if local_now.month == 12:
        end = datetime(local_now.year + 1, 1, 1)
    else:
        end = datetime(local_now.year, local_now.month + 1, 1)
    return start.astimezone(), end.astimezone()


def _newest_first() -> tuple[Any, Any]:
    return col(Expense.created_at).desc(), col(Expense.id).desc()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def find_user_by_username(session: AsyncSession, username: str) -> User | None:
    result = await session.execute(select(User).where(col(User.username) == username))
    return result.scalar_one_or_none()


async def find_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(func.lower(col(User.email)) == email.lower()))
    return result.scalar_one_or_none()


async def find_users(session: AsyncSession, role: str | None = None) -> list[User]:
    query = select(User).order_by(col(User.last_name), col(User.first_name))
    if role is not None:
        query = query.where(col(User.role) == role)
    result = await session.execute(query)
    return list(result.scalars().all())


async def find_direct_reports(session: AsyncSession, manager_id: uuid.UUID) -> list[User]:
    result = await session.execute(
        select(User).where(col(User.manager_id) == manager_id).order_by(col(User.last_name), col(User.first_name))
    )
    return list(result.scalars().all())


async def find_users_by_ids(session: AsyncSession, user_ids: set[uuid.UUID]) -> dict[uuid.UUID, User]:
    if not user_ids:
        return {}
    result = await session.execute(select(User).where(col(User.id).in_(user_ids)))
    return {u.id: u for u in result.scalars().all()}


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


async def find_expense(session: AsyncSession, expense_id: uuid.UUID) -> Expense | None:
    result = await session.execute(select(Expense).where(col(Expense.id) == expense_id))
    return result.scalar_one_or_none()


async def find_expenses_by_owner(session: AsyncSession, user_id: uuid.UUID) -> list[Expense]:
    """All expenses filed by one user, newest first."""
    result = await session.execute(
        select(Expense).where(col(Expense.user_id) == user_id).order_by(*_newest_first())
    )
    return list(result.scalars().all())


async def find_pending_for_manager(session: AsyncSession, manager_id: uuid.UUID) -> list[Expense]:
    """Pending expenses owned by direct reports of ``manager_id``, newest first."""
    result = await session.execute(
        select(Expense)
        .where(
            col(Expense.status) == ExpenseStatus.PENDING.value,
            *_scope_filter(None, manager_id),
        )
        .order_by(*_newest_first())
    )
    return list(result.scalars().all())


async def find_all_pending(session: AsyncSession) -> list[Expense]:
    result = await session.execute(
        select(Expense).where(col(Expense.status) == ExpenseStatus.PENDING.value).order_by(*_newest_first())
    )
    return list(result.scalars().all())


async def find_comments(session: AsyncSession, expense_id: uuid.UUID) -> list[Comment]:
    """Comments on an expense, oldest first."""
    result = await session.execute(
        select(Comment)
        .where(col(Comment.expense_id) == expense_id)
        .order_by(col(Comment.created_at).asc(), col(Comment.id).asc())
    )
    return list(result.scalars().all())


async def compute_stats(
    session: AsyncSession,
    user_id: uuid.UUID,
    manager_id: uuid.UUID | None = None,
    *,
    now: datetime | None = None,
) -> ExpenseStats:
    """Count expenses by status and total this month's approved amounts.

    Scoped to ``manager_id``'s direct reports when given, else to ``user_id``.
    """
    month_start, month_end = current_month_bounds(now)
    status = col(Expense.status)
    created = col(Expense.created_at)

    def _count(value: ExpenseStatus) -> Any:
        return func.coalesce(func.sum(case((status == value.value, 1), else_=0)), 0)

    approved_this_month = and_(
        status == ExpenseStatus.APPROVED.value,
        created >= month_start,
        created < month_end,
    )
    query = select(
        _count(ExpenseStatus.PENDING),
        _count(ExpenseStatus.APPROVED),
        _count(ExpenseStatus.REJECTED),
        func.coalesce(func.sum(case((approved_this_month, col(Expense.amount)), else_=0)), 0),
    ).where(*_scope_filter(user_id, manager_id))

    pending, approved, rejected, total = (await session.execute(query)).one()
    return ExpenseStats(
        pending=int(pending),
        approved=int(approved),
        rejected=int(rejected),
        total=Decimal(str(total)).quantize(Decimal("0.01")),
    )


async def search_expenses(
    session: AsyncSession,
    term: str,
    user_id: uuid.UUID | None = None,
    manager_id: uuid.UUID | None = None,
) -> list[Expense]:
    """Case-insensitive substring match on description and category."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    result = await session.execute(
        select(Expense)
        .where(
            *_scope_filter(user_id, manager_id),
            or_(
                col(Expense.description).ilike(pattern, escape="\\"),
                col(Expense.category).ilike(pattern, escape="\\"),
            ),
        )
        .order_by(*_newest_first())
    )
    return list(result.scalars().all())


async def find_expenses_for_export(
    session: AsyncSession,
    status: ExpenseStatus | None = None,
    manager_id: uuid.UUID | None = None,
) -> list[tuple[Expense, User]]:
    """Expenses joined with their owners, optionally team-scoped and filtered by status."""
    filters = _scope_filter(None, manager_id)
    if status is not None:
        filters.append(col(Expense.status) == status.value)
    result = await session.execute(
        select(Expense, User)
        .join(User, col(User.id) == col(Expense.user_id))
        .where(*filters)
        .order_by(col(Expense.created_at).asc(), col(Expense.id).asc())
    )
    return [(expense, owner) for expense, owner in result.all()]
