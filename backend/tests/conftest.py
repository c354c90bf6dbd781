from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import datetime  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import TYPE_CHECKING  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from expense_flow.config import get_settings  # noqa: E402
from expense_flow.db import build_engine, get_session  # noqa: E402
from expense_flow.main import app  # noqa: E402
from expense_flow.models import Expense, SQLModel, User  # noqa: E402
from expense_flow.services.notifier import RecordingNotifier, set_notifier  # noqa: E402
from expense_flow.services.receipt_store import InMemoryReceiptStore, set_receipt_store  # noqa: E402
from expense_flow.services.security import create_access_token, hash_password  # noqa: E402

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterator

    from sqlalchemy.ext.asyncio import AsyncEngine

PASSWORD = "password123"


@pytest.fixture(scope="session")
async def engine() -> AsyncIterator[AsyncEngine]:
    """Session-scoped in-memory SQLite engine with every table created."""
    settings = get_settings()
    _engine = build_engine(settings.database_url)
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield _engine
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await _engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Yield a database session wrapped in a transaction that rolls back after each test."""
    async with engine.connect() as conn:
        txn = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False)
        yield session
        await session.close()
        await txn.rollback()


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncIterator[AsyncClient]:
    """Async HTTP client with the database session dependency overridden."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_session] = _override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Outbound service stubs
# ---------------------------------------------------------------------------


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def receipt_store() -> InMemoryReceiptStore:
    return InMemoryReceiptStore()


@pytest.fixture(autouse=True)
def _install_stubs(notifier: RecordingNotifier, receipt_store: InMemoryReceiptStore) -> Iterator[None]:
    """Keep every test away from SMTP and the local filesystem."""
    set_notifier(notifier)
    set_receipt_store(receipt_store)
    yield
    set_notifier(None)
    set_receipt_store(None)


# ---------------------------------------------------------------------------
# Data factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Insert a user directly; the password is always ``PASSWORD``."""

    async def _make(
        username: str,
        role: str = "employee",
        manager: User | None = None,
        first_name: str | None = None,
        last_name: str = "Tester",
    ) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            password_hash=hash_password(PASSWORD),
            first_name=first_name or username.capitalize(),
            last_name=last_name,
            role=role,
            manager_id=manager.id if manager is not None else None,
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _make


@pytest.fixture
def make_expense(db_session: AsyncSession) -> Callable[..., Awaitable[Expense]]:
    """Insert an expense row directly, bypassing receipt upload and audit."""

    async def _make(
        owner: User,
        amount: str = "125.50",
        category: str = "travel",
        description: str = "Client meeting travel expenses",
        status: str = "pending",
        created_at: datetime | None = None,
    ) -> Expense:
        expense = Expense(
            user_id=owner.id,
            amount=Decimal(amount),
            category=category,
            description=description,
            status=status,
            receipt_url=f"{owner.id}/receipt.png",
        )
        if created_at is not None:
            expense.created_at = created_at
            expense.updated_at = created_at
        db_session.add(expense)
        await db_session.flush()
        return expense

    return _make


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    """Build bearer headers for a user."""

    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(user.id, user.username, user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers
