"""Identity and role model: relationship predicates over users."""

# ruff: noqa: TC003
from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from expense_flow.models.enums import UserRole
from expense_flow.models.user import User

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def is_manager_of(manager_id: uuid.UUID, user: User | None) -> bool:
    """True iff ``user`` reports directly to ``manager_id``.

    Only the direct reference is checked; reporting chains are never walked.
    """
    return user is not None and user.manager_id is not None and user.manager_id == manager_id


def has_any_role(user: User, roles: Iterable[UserRole]) -> bool:
    return user.role in {UserRole(r).value for r in roles}


def display_name(user: User | None) -> str:
    if user is None:
        return "Unknown"
    return f"{user.first_name} {user.last_name}"


async def get_user(session: AsyncSession, user_id: uuid.UUID) -> User | None:
    result = await session.execute(select(User).where(col(User.id) == user_id))
    return result.scalar_one_or_none()
