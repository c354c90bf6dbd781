# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlmodel import col

from expense_flow.exceptions import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from expense_flow.models.base import now_utc
from expense_flow.models.enums import AuditAction, ExpenseCategory, ExpenseStatus, UserRole
from expense_flow.models.expense import Comment, Expense
from expense_flow.schemas.expense import (
    CommentResponse,
    ExpenseDetailResponse,
    ExpenseResponse,
    ExpenseStats,
)
from expense_flow.services import notifier, repository
from expense_flow.services.audit import write_audit_log
from expense_flow.services.authorization import can_create, can_list_team, can_transition, can_view, ensure
from expense_flow.services.identity import display_name, get_user
from expense_flow.services.lifecycle import check_transition
from expense_flow.services.receipt_store import get_receipt_store, media_type_for, validate_receipt

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from expense_flow.models.user import User
    from expense_flow.schemas.expense import CreateExpensePayload, StatusUpdatePayload

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def build_expense_response(expense: Expense) -> ExpenseResponse:
    """Map an expense model to its response schema."""
    return ExpenseResponse(
        id=expense.id,
        user_id=expense.user_id,
        amount=expense.amount,
        category=ExpenseCategory(expense.category),
        description=expense.description,
        status=ExpenseStatus(expense.status),
        receipt_url=expense.receipt_url,
        created_at=expense.created_at,
        updated_at=expense.updated_at,
    )


def _build_comment_response(comment: Comment) -> CommentResponse:
    return CommentResponse(
        id=comment.id,
        expense_id=comment.expense_id,
        user_id=comment.user_id,
        content=comment.content,
        created_at=comment.created_at,
    )


async def _get_expense_or_404(session: AsyncSession, expense_id: uuid.UUID) -> Expense:
    """Fetch an expense by ID. Raises 404 if not found."""
    expense = await repository.find_expense(session, expense_id)
    if expense is None:
        raise NotFoundError("Expense not found")
    return expense


async def _get_viewable_expense(
    session: AsyncSession, actor: User, expense_id: uuid.UUID
) -> tuple[Expense, User | None]:
    expense = await _get_expense_or_404(session, expense_id)
    owner = await get_user(session, expense.user_id)
    if not can_view(actor, expense, owner):
        raise ForbiddenError("Not authorized to view this expense")
    return expense, owner


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def create_expense(
    session: AsyncSession,
    actor: User,
    payload: CreateExpensePayload,
    receipt_filename: str | None,
    receipt_data: bytes,
) -> ExpenseResponse:
    """File a new expense for ``actor``.

    1. Validate the receipt and store it.
    2. Insert the expense (pending, updated_at == created_at).
    3. Audit EXPENSE_CREATED in the same transaction.
    4. Commit; on failure remove the stored receipt.
    5. Notify the owner's manager, if any.
    """
    ensure(can_create(actor), "Not allowed to create expenses")
    description = payload.description.strip()
    if not description:
        raise ValidationError("Description is required", field="description")
    filename = validate_receipt(receipt_filename, receipt_data)

    store = get_receipt_store()
    receipt_key = await store.put(actor.id, filename, receipt_data)

    try:
        now = now_utc()
        expense = Expense(
            user_id=actor.id,
            amount=payload.amount,
            category=payload.category.value,
            description=description,
            status=ExpenseStatus.PENDING.value,
            receipt_url=receipt_key,
            created_at=now,
            updated_at=now,
        )
        session.add(expense)
        await session.flush()

        await write_audit_log(
            session,
            actor_id=actor.id,
            expense_id=expense.id,
            action=AuditAction.EXPENSE_CREATED,
            details=f"Expense created for ${expense.amount:.2f} in category {expense.category}",
        )

        await session.commit()
    except Exception:
        await store.delete(receipt_key)
        raise

    await session.refresh(expense)
    logger.info("Expense %s created by %s", expense.id, actor.username)

    if actor.manager_id is not None:
        manager = await get_user(session, actor.manager_id)
        if manager is not None:
            await notifier.dispatch(
                notifier.NewExpenseEvent(
                    manager_email=manager.email,
                    manager_name=display_name(manager),
                    employee_name=display_name(actor),
                    expense_id=expense.id,
                    amount=expense.amount,
                    category=expense.category,
                )
            )

    return build_expense_response(expense)


async def transition_expense(
    session: AsyncSession,
    actor: User,
    expense_id: uuid.UUID,
    payload: StatusUpdatePayload,
) -> ExpenseResponse:
    """Approve or reject a pending expense.

    The status write is a conditional update on ``status = 'pending'`` so
    that only one of several concurrent decisions can succeed. The optional
    comment and the audit entry commit in the same transaction.
    """
    expense = await _get_expense_or_404(session, expense_id)
    owner = await get_user(session, expense.user_id)
    if not can_transition(actor, expense, owner):
        raise ForbiddenError("Not authorized to update this expense")

    note = check_transition(expense.status, payload.status, payload.comment)
    target = ExpenseStatus(payload.status)
    now = now_utc()

    result = await session.execute(
        update(Expense)
        .where(
            col(Expense.id) == expense.id,
            col(Expense.status) == ExpenseStatus.PENDING.value,
        )
        .values(status=target.value, updated_at=now)
    )
    if result.rowcount != 1:  # type: ignore[attr-defined]
        raise InvalidStateError("Expense has already been processed")

    if note is not None:
        session.add(Comment(expense_id=expense.id, user_id=actor.id, content=note))

    await write_audit_log(
        session,
        actor_id=actor.id,
        expense_id=expense.id,
        action=AuditAction.for_status(target),
        details=f"Expense {target.value} by {actor.username}" + (f": {note}" if note else ""),
    )

    await session.commit()
    await session.refresh(expense)
    logger.info("Expense %s %s by %s", expense.id, target.value, actor.username)

    if owner is not None:
        await notifier.dispatch(
            notifier.StatusChangeEvent(
                owner_email=owner.email,
                owner_name=display_name(owner),
                expense_id=expense.id,
                amount=expense.amount,
                category=expense.category,
                status=target.value,
                comment=note,
            )
        )

    return build_expense_response(expense)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_expense_detail(session: AsyncSession, actor: User, expense_id: uuid.UUID) -> ExpenseDetailResponse:
    """An expense and its comments, for the owner, an admin or the direct manager."""
    expense, _owner = await _get_viewable_expense(session, actor, expense_id)
    comments = await repository.find_comments(session, expense.id)
    return ExpenseDetailResponse(
        expense=build_expense_response(expense),
        comments=[_build_comment_response(c) for c in comments],
    )


async def get_receipt(session: AsyncSession, actor: User, expense_id: uuid.UUID) -> tuple[bytes, str]:
    """Receipt bytes and media type, under the same rules as viewing the expense."""
    expense, _owner = await _get_viewable_expense(session, actor, expense_id)
    data = await get_receipt_store().get(expense.receipt_url)
    if data is None:
        raise NotFoundError("Receipt file not found")
    return data, media_type_for(expense.receipt_url)


async def list_my_expenses(session: AsyncSession, actor: User) -> list[ExpenseResponse]:
    expenses = await repository.find_expenses_by_owner(session, actor.id)
    return [build_expense_response(e) for e in expenses]


async def list_pending_approvals(session: AsyncSession, actor: User) -> list[ExpenseResponse]:
    """Managers see their direct reports' pending expenses; admins see all pending ones."""
    ensure(can_list_team(actor), "Only managers and admins can review expenses")
    if actor.role == UserRole.ADMIN:
        expenses = await repository.find_all_pending(session)
    else:
        expenses = await repository.find_pending_for_manager(session, actor.id)
    return [build_expense_response(e) for e in expenses]


async def get_stats(session: AsyncSession, actor: User) -> ExpenseStats:
    """Team stats for managers, personal stats for everyone else."""
    if actor.role == UserRole.MANAGER:
        return await repository.compute_stats(session, actor.id, manager_id=actor.id)
    return await repository.compute_stats(session, actor.id)


async def search_expenses(session: AsyncSession, actor: User, term: str) -> list[ExpenseResponse]:
    """Admins search everything, managers their team, employees their own expenses."""
    term = term.strip()
    if not term:
        raise ValidationError("Search term is required", field="query")
    if actor.role == UserRole.ADMIN:
        expenses = await repository.search_expenses(session, term)
    elif actor.role == UserRole.MANAGER:
        expenses = await repository.search_expenses(session, term, manager_id=actor.id)
    else:
        expenses = await repository.search_expenses(session, term, user_id=actor.id)
    return [build_expense_response(e) for e in expenses]
