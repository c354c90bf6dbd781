# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from decimal import Decimal

from fastapi import APIRouter, File, Form, Response, UploadFile, status

from expense_flow.api.deps import CurrentUserDep, ReviewerDep
from expense_flow.db import SessionDep
from expense_flow.models.enums import ExpenseCategory
from expense_flow.schemas.expense import (
    CreateExpensePayload,
    ExpenseDetailResponse,
    ExpenseResponse,
    ExpenseStats,
    StatusUpdatePayload,
)
from expense_flow.services import expense as expense_service
from expense_flow.services.receipt_store import read_upload

expenses_router = APIRouter(prefix="/expenses", tags=["expenses"])


@expenses_router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    session: SessionDep,
    user: CurrentUserDep,
    amount: Decimal = Form(gt=0, max_digits=12, decimal_places=2),
    category: ExpenseCategory = Form(),
    description: str = Form(min_length=1, max_length=2000),
    receipt: UploadFile | None = File(default=None),
) -> ExpenseResponse:
    """File a new expense with its receipt image."""
    payload = CreateExpensePayload(amount=amount, category=category, description=description)
    filename, data = await read_upload(receipt)
    return await expense_service.create_expense(session, user, payload, filename, data)


@expenses_router.get("/my-expenses", response_model=list[ExpenseResponse])
async def list_my_expenses(session: SessionDep, user: CurrentUserDep) -> list[ExpenseResponse]:
    """Expenses filed by the caller, newest first."""
    return await expense_service.list_my_expenses(session, user)


@expenses_router.get("/pending-approvals", response_model=list[ExpenseResponse])
async def list_pending_approvals(session: SessionDep, user: ReviewerDep) -> list[ExpenseResponse]:
    """Pending expenses awaiting the caller's decision (manager/admin only)."""
    return await expense_service.list_pending_approvals(session, user)


@expenses_router.get("/stats/summary", response_model=ExpenseStats)
async def get_stats(session: SessionDep, user: CurrentUserDep) -> ExpenseStats:
    return await expense_service.get_stats(session, user)


@expenses_router.get("/search/{query}", response_model=list[ExpenseResponse])
async def search_expenses(query: str, session: SessionDep, user: CurrentUserDep) -> list[ExpenseResponse]:
    """Search description and category within the caller's visibility."""
    return await expense_service.search_expenses(session, user, query)


@expenses_router.get("/{expense_id}", response_model=ExpenseDetailResponse)
async def get_expense(expense_id: uuid.UUID, session: SessionDep, user: CurrentUserDep) -> ExpenseDetailResponse:
    return await expense_service.get_expense_detail(session, user, expense_id)


@expenses_router.patch("/{expense_id}/status", response_model=ExpenseResponse)
async def update_expense_status(
    expense_id: uuid.UUID,
    payload: StatusUpdatePayload,
    session: SessionDep,
    user: ReviewerDep,
) -> ExpenseResponse:
    """Approve or reject a pending expense."""
    return await expense_service.transition_expense(session, user, expense_id, payload)


@expenses_router.get("/{expense_id}/receipt")
async def get_receipt(expense_id: uuid.UUID, session: SessionDep, user: CurrentUserDep) -> Response:
    data, media_type = await expense_service.get_receipt(session, user, expense_id)
    return Response(content=data, media_type=media_type)
