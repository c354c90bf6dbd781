"""Expense workflow: submit, view, approve, reject, receipts and notifications."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import select, update
from sqlmodel import col

from expense_flow.config import get_settings
from expense_flow.exceptions import InvalidStateError
from expense_flow.models import AuditLog, Comment, Expense, User
from expense_flow.schemas.expense import CreateExpensePayload, StatusUpdatePayload
from expense_flow.services import expense as expense_service

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession

    from expense_flow.services.notifier import RecordingNotifier
    from expense_flow.services.receipt_store import InMemoryReceiptStore

EXPENSES_URL = "/api/expenses"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def team(make_user: Callable[..., Awaitable[User]]) -> dict[str, User]:
    """Admin, two managers and one employee reporting to ``manager``."""
    admin = await make_user("admin", role="admin", first_name="Ada")
    manager = await make_user("manager", role="manager", first_name="Maria")
    other_manager = await make_user("other", role="manager", first_name="Oscar")
    employee = await make_user("employee", manager=manager, first_name="Eli")
    return {"admin": admin, "manager": manager, "other_manager": other_manager, "employee": employee}


# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------


async def _submit(
    client: AsyncClient,
    headers: dict[str, str],
    amount: str = "125.50",
    category: str = "travel",
    description: str = "Client meeting travel expenses",
    filename: str = "receipt.png",
    content: bytes = PNG_BYTES,
) -> Any:
    return await client.post(
        EXPENSES_URL,
        data={"amount": amount, "category": category, "description": description},
        files={"receipt": (filename, content, "image/png")},
        headers=headers,
    )


async def _decide(
    client: AsyncClient,
    headers: dict[str, str],
    expense_id: str | uuid.UUID,
    status: str,
    comment: str | None = None,
) -> Any:
    body: dict[str, Any] = {"status": status}
    if comment is not None:
        body["comment"] = comment
    return await client.patch(f"{EXPENSES_URL}/{expense_id}/status", json=body, headers=headers)


async def _audit_actions(session: AsyncSession, expense_id: str | uuid.UUID) -> list[str]:
    result = await session.execute(
        select(AuditLog)
        .where(col(AuditLog.expense_id) == uuid.UUID(str(expense_id)))
        .order_by(col(AuditLog.created_at))
    )
    return [e.action for e in result.scalars().all()]


# ---------------------------------------------------------------------------
# Submit
# ---------------------------------------------------------------------------


async def test_submit_creates_pending_expense(
    async_client: AsyncClient,
    db_session: AsyncSession,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    receipt_store: InMemoryReceiptStore,
) -> None:
    resp = await _submit(async_client, auth_headers(team["employee"]))
    assert resp.status_code == 201
    data = resp.json()
    assert data["status"] == "pending"
    assert Decimal(data["amount"]) == Decimal("125.50")
    assert data["category"] == "travel"
    assert data["user_id"] == str(team["employee"].id)
    assert datetime.fromisoformat(data["created_at"]) == datetime.fromisoformat(data["updated_at"])
    assert data["receipt_url"].startswith(str(team["employee"].id))
    assert len(receipt_store) == 1

    assert await _audit_actions(db_session, data["id"]) == ["EXPENSE_CREATED"]


async def test_submit_notifies_manager(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    notifier: RecordingNotifier,
) -> None:
    await _submit(async_client, auth_headers(team["employee"]))
    assert len(notifier.sent) == 1
    message = notifier.sent[0]
    assert message.to == "manager@example.com"
    assert message.subject == "New Expense Requires Your Approval"
    assert "$125.50" in message.text
    assert "Eli Tester" in message.text


async def test_submit_without_manager_sends_nothing(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    notifier: RecordingNotifier,
) -> None:
    resp = await _submit(async_client, auth_headers(team["other_manager"]))
    assert resp.status_code == 201
    assert notifier.sent == []


async def test_submit_requires_auth(async_client: AsyncClient) -> None:
    resp = await _submit(async_client, {})
    assert resp.status_code == 401


@pytest.mark.parametrize("amount", ["0", "-5", "abc"])
async def test_submit_rejects_bad_amount(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    amount: str,
) -> None:
    resp = await _submit(async_client, auth_headers(team["employee"]), amount=amount)
    assert resp.status_code == 422
    assert resp.json()["field"] == "amount"


async def test_submit_rejects_unknown_category(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
) -> None:
    resp = await _submit(async_client, auth_headers(team["employee"]), category="yachts")
    assert resp.status_code == 422
    assert resp.json()["field"] == "category"


async def test_submit_rejects_blank_description(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
) -> None:
    resp = await _submit(async_client, auth_headers(team["employee"]), description="   ")
    assert resp.status_code == 422
    assert resp.json()["field"] == "description"


async def test_submit_requires_receipt(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
) -> None:
    resp = await async_client.post(
        EXPENSES_URL,
        data={"amount": "10.00", "category": "meals", "description": "Lunch"},
        headers=auth_headers(team["employee"]),
    )
    assert resp.status_code == 422
    assert resp.json()["field"] == "receipt"


async def test_submit_rejects_non_image_receipt(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    receipt_store: InMemoryReceiptStore,
) -> None:
    resp = await _submit(async_client, auth_headers(team["employee"]), filename="invoice.pdf")
    assert resp.status_code == 422
    assert resp.json()["field"] == "receipt"
    assert len(receipt_store) == 0


async def test_submit_rejects_oversized_receipt(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    receipt_store: InMemoryReceiptStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(get_settings(), "max_receipt_bytes", 1024)
    resp = await _submit(async_client, auth_headers(team["employee"]), content=b"x" * 2048)
    assert resp.status_code == 422
    assert resp.json()["field"] == "receipt"
    assert len(receipt_store) == 0


async def test_submit_removes_receipt_when_persisting_fails(
    db_session: AsyncSession,
    team: dict[str, User],
    receipt_store: InMemoryReceiptStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def _broken_audit(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("audit log unavailable")

    monkeypatch.setattr(expense_service, "write_audit_log", _broken_audit)
    payload = CreateExpensePayload(amount=Decimal("10.00"), category="meals", description="Lunch")
    with pytest.raises(RuntimeError, match="audit log unavailable"):
        await expense_service.create_expense(db_session, team["employee"], payload, "receipt.png", PNG_BYTES)
    assert len(receipt_store) == 0


# ---------------------------------------------------------------------------
# Approve / reject
# ---------------------------------------------------------------------------


async def test_manager_approves_without_comment(
    async_client: AsyncClient,
    db_session: AsyncSession,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    notifier: RecordingNotifier,
) -> None:
    created = (await _submit(async_client, auth_headers(team["employee"]))).json()

    resp = await _decide(async_client, auth_headers(team["manager"]), created["id"], "approved")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "approved"
    assert datetime.fromisoformat(data["updated_at"]) >= datetime.fromisoformat(created["updated_at"])
    assert data["created_at"] == created["created_at"]

    detail = (await async_client.get(f"{EXPENSES_URL}/{created['id']}", headers=auth_headers(team["employee"]))).json()
    assert detail["comments"] == []
    assert await _audit_actions(db_session, created["id"]) == ["EXPENSE_CREATED", "EXPENSE_APPROVED"]

    owner_mail = notifier.sent[-1]
    assert owner_mail.to == "employee@example.com"
    assert owner_mail.subject.startswith("Expense APPROVED")


async def test_manager_rejects_with_comment(
    async_client: AsyncClient,
    db_session: AsyncSession,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    notifier: RecordingNotifier,
) -> None:
    created = (await _submit(async_client, auth_headers(team["employee"]))).json()

    resp = await _decide(
        async_client, auth_headers(team["manager"]), created["id"], "rejected", "  Missing itemised receipt "
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "rejected"

    detail = (await async_client.get(f"{EXPENSES_URL}/{created['id']}", headers=auth_headers(team["manager"]))).json()
    assert [c["content"] for c in detail["comments"]] == ["Missing itemised receipt"]
    assert detail["comments"][0]["user_id"] == str(team["manager"].id)
    assert await _audit_actions(db_session, created["id"]) == ["EXPENSE_CREATED", "EXPENSE_REJECTED"]
    assert "Missing itemised receipt" in notifier.sent[-1].text


async def test_approval_comment_is_recorded(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
) -> None:
    created = (await _submit(async_client, auth_headers(team["employee"]))).json()
    await _decide(async_client, auth_headers(team["admin"]), created["id"], "approved", "Fine")

    detail = (await async_client.get(f"{EXPENSES_URL}/{created['id']}", headers=auth_headers(team["admin"]))).json()
    assert [c["content"] for c in detail["comments"]] == ["Fine"]


async def test_reject_without_comment_changes_nothing(
    async_client: AsyncClient,
    db_session: AsyncSession,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    make_expense: Callable[..., Awaitable[Expense]],
) -> None:
    expense = await make_expense(team["employee"])
    before = expense.updated_at

    resp = await _decide(async_client, auth_headers(team["manager"]), expense.id, "rejected", "   ")
    assert resp.status_code == 422
    assert resp.json()["field"] == "comment"

    await db_session.refresh(expense)
    assert expense.status == "pending"
    assert expense.updated_at == before
    assert await _audit_actions(db_session, expense.id) == []


async def test_foreign_manager_cannot_decide(
    async_client: AsyncClient,
    db_session: AsyncSession,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    make_expense: Callable[..., Awaitable[Expense]],
) -> None:
    expense = await make_expense(team["employee"])

    resp = await _decide(async_client, auth_headers(team["other_manager"]), expense.id, "approved")
    assert resp.status_code == 403

    await db_session.refresh(expense)
    assert expense.status == "pending"


async def test_employee_cannot_decide(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    make_expense: Callable[..., Awaitable[Expense]],
) -> None:
    expense = await make_expense(team["employee"])
    resp = await _decide(async_client, auth_headers(team["employee"]), expense.id, "approved")
    assert resp.status_code == 403


async def test_manager_cannot_decide_own_expense(
    async_client: AsyncClient,
    make_user: Callable[..., Awaitable[User]],
    auth_headers: Callable[[User], dict[str, str]],
    make_expense: Callable[..., Awaitable[Expense]],
) -> None:
    director = await make_user("director", role="manager")
    lead = await make_user("lead", role="manager", manager=director)
    expense = await make_expense(lead)

    assert (await _decide(async_client, auth_headers(lead), expense.id, "approved")).status_code == 403
    assert (await _decide(async_client, auth_headers(director), expense.id, "approved")).status_code == 200


async def test_decided_expense_is_final(
    async_client: AsyncClient,
    db_session: AsyncSession,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    make_expense: Callable[..., Awaitable[Expense]],
) -> None:
    expense = await make_expense(team["employee"], status="approved")

    resp = await _decide(async_client, auth_headers(team["manager"]), expense.id, "rejected", "Changed my mind")
    assert resp.status_code == 409
    assert resp.json()["error"] == "InvalidStateError"

    await db_session.refresh(expense)
    assert expense.status == "approved"
    result = await db_session.execute(select(Comment).where(col(Comment.expense_id) == expense.id))
    assert result.scalars().all() == []


async def test_decide_unknown_expense(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
) -> None:
    resp = await _decide(async_client, auth_headers(team["admin"]), uuid.uuid4(), "approved")
    assert resp.status_code == 404


async def test_decide_with_invalid_status(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    make_expense: Callable[..., Awaitable[Expense]],
) -> None:
    expense = await make_expense(team["employee"])
    resp = await _decide(async_client, auth_headers(team["manager"]), expense.id, "paid")
    assert resp.status_code == 422
    assert resp.json()["field"] == "status"

    resp = await _decide(async_client, auth_headers(team["manager"]), expense.id, "pending")
    assert resp.status_code == 422
    assert resp.json()["field"] == "status"


async def test_concurrent_decision_loses_the_race(
    db_session: AsyncSession,
    team: dict[str, User],
    make_expense: Callable[..., Awaitable[Expense]],
) -> None:
    """If the row stopped being pending after it was read, the conditional update refuses."""
    expense = await make_expense(team["employee"])

    # Another reviewer decides it behind this session's back; the loaded copy still says pending.
    await db_session.execute(
        update(Expense)
        .where(col(Expense.id) == expense.id)
        .values(status="approved")
        .execution_options(synchronize_session=False)
    )
    assert expense.status == "pending"

    with pytest.raises(InvalidStateError):
        await expense_service.transition_expense(
            db_session,
            team["manager"],
            expense.id,
            StatusUpdatePayload(status="rejected", comment="Too late"),
        )

    assert await _audit_actions(db_session, expense.id) == []
    result = await db_session.execute(select(Comment).where(col(Comment.expense_id) == expense.id))
    assert result.scalars().all() == []


async def test_notification_failure_does_not_undo_decision(
    async_client: AsyncClient,
    db_session: AsyncSession,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    make_expense: Callable[..., Awaitable[Expense]],
    notifier: RecordingNotifier,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def _boom(message: object) -> None:
        raise ConnectionError("SMTP down")

    monkeypatch.setattr(notifier, "send", _boom)
    expense = await make_expense(team["employee"])

    resp = await _decide(async_client, auth_headers(team["manager"]), expense.id, "approved")
    assert resp.status_code == 200

    await db_session.refresh(expense)
    assert expense.status == "approved"


# ---------------------------------------------------------------------------
# View
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(("viewer", "expected"), [("employee", 200), ("manager", 200), ("admin", 200)])
async def test_view_allowed(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    make_expense: Callable[..., Awaitable[Expense]],
    viewer: str,
    expected: int,
) -> None:
    expense = await make_expense(team["employee"])
    resp = await async_client.get(f"{EXPENSES_URL}/{expense.id}", headers=auth_headers(team[viewer]))
    assert resp.status_code == expected
    assert resp.json()["expense"]["id"] == str(expense.id)


async def test_view_forbidden_for_foreign_manager(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    make_expense: Callable[..., Awaitable[Expense]],
) -> None:
    expense = await make_expense(team["employee"])
    resp = await async_client.get(f"{EXPENSES_URL}/{expense.id}", headers=auth_headers(team["other_manager"]))
    assert resp.status_code == 403


async def test_view_unknown_expense(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
) -> None:
    resp = await async_client.get(f"{EXPENSES_URL}/{uuid.uuid4()}", headers=auth_headers(team["employee"]))
    assert resp.status_code == 404


async def test_my_expenses_newest_first(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    make_expense: Callable[..., Awaitable[Expense]],
) -> None:
    older = await make_expense(team["employee"], created_at=datetime.fromisoformat("2025-01-01T09:00:00+00:00"))
    newer = await make_expense(team["employee"], created_at=datetime.fromisoformat("2025-02-01T09:00:00+00:00"))
    await make_expense(team["manager"])

    resp = await async_client.get(f"{EXPENSES_URL}/my-expenses", headers=auth_headers(team["employee"]))
    assert resp.status_code == 200
    assert [e["id"] for e in resp.json()] == [str(newer.id), str(older.id)]


# ---------------------------------------------------------------------------
# Receipts
# ---------------------------------------------------------------------------


async def test_receipt_download(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
) -> None:
    created = (await _submit(async_client, auth_headers(team["employee"]))).json()

    resp = await async_client.get(f"{EXPENSES_URL}/{created['id']}/receipt", headers=auth_headers(team["manager"]))
    assert resp.status_code == 200
    assert resp.content == PNG_BYTES
    assert resp.headers["content-type"] == "image/png"


async def test_receipt_download_forbidden(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
) -> None:
    created = (await _submit(async_client, auth_headers(team["employee"]))).json()
    resp = await async_client.get(
        f"{EXPENSES_URL}/{created['id']}/receipt", headers=auth_headers(team["other_manager"])
    )
    assert resp.status_code == 403


async def test_receipt_missing_from_store(
    async_client: AsyncClient,
    team: dict[str, User],
    auth_headers: Callable[[User], dict[str, str]],
    make_expense: Callable[..., Awaitable[Expense]],
) -> None:
    expense = await make_expense(team["employee"])
    resp = await async_client.get(f"{EXPENSES_URL}/{expense.id}/receipt", headers=auth_headers(team["employee"]))
    assert resp.status_code == 404
