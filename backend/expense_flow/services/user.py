# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from expense_flow.exceptions import AuthenticationError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from expense_flow.models.enums import AuditAction, UserRole
from expense_flow.models.user import User
from expense_flow.schemas.auth import AuthResponse
from expense_flow.schemas.user import UserListResponse, UserResponse
from expense_flow.services import repository
from expense_flow.services.audit import write_audit_log
from expense_flow.services.authorization import can_list_team, can_view_user, ensure
from expense_flow.services.identity import get_user, has_any_role
from expense_flow.services.security import create_access_token, hash_password, verify_password

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from expense_flow.schemas.auth import LoginPayload, RegisterPayload

logger = logging.getLogger(__name__)


def build_user_response(user: User) -> UserResponse:
    """Map a user model to its response schema."""
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=UserRole(user.role),
        manager_id=user.manager_id,
        created_at=user.created_at,
    )


def _build_list(users: list[User]) -> UserListResponse:
    return UserListResponse(items=[build_user_response(u) for u in users], total=len(users))


def _issue(user: User) -> AuthResponse:
    token = create_access_token(user.id, user.username, user.role)
    return AuthResponse(user=build_user_response(user), token=token)


async def _validate_manager(session: AsyncSession, manager_id: uuid.UUID | None) -> None:
    """A manager reference must point at an existing manager or admin."""
    if manager_id is None:
        return
    manager = await get_user(session, manager_id)
    if manager is None:
        raise ValidationError("Manager not found", field="manager_id")
    if not has_any_role(manager, (UserRole.MANAGER, UserRole.ADMIN)):
        raise ValidationError("Manager must have the manager or admin role", field="manager_id")


async def register_user(session: AsyncSession, payload: RegisterPayload) -> AuthResponse:
    """Create an account, audit it and return a bearer token."""
    if await repository.find_user_by_username(session, payload.username) is not None:
        raise ConflictError("Username already exists")
    if await repository.find_user_by_email(session, payload.email) is not None:
        raise ConflictError("Email already exists")
    await _validate_manager(session, payload.manager_id)

    user = User(
        username=payload.username,
        email=payload.email,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=payload.role.value,
        manager_id=payload.manager_id,
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise ConflictError("Username or email already exists") from None

    await write_audit_log(
        session,
        actor_id=user.id,
        action=AuditAction.USER_CREATED,
        details=f"User {user.username} was created with role {user.role}",
    )

    await session.commit()
    await session.refresh(user)
    logger.info("Registered user %s (%s)", user.username, user.role)
    return _issue(user)


async def login(session: AsyncSession, payload: LoginPayload) -> AuthResponse:
    user = await repository.find_user_by_username(session, payload.username)
    if user is None or not verify_password(payload.password, user.password_hash):
        raise AuthenticationError("Invalid username or password")
    return _issue(user)


async def list_users(session: AsyncSession, actor: User, role: str | None = None) -> UserListResponse:
    """All users, optionally filtered by role (manager/admin only)."""
    ensure(can_list_team(actor), "Only managers and admins can list users")
    if role is not None and role not in {r.value for r in UserRole}:
        raise ValidationError("Invalid role", field="role")
    return _build_list(await repository.find_users(session, role))


async def list_team(session: AsyncSession, actor: User) -> UserListResponse:
    """Direct reports of the calling manager or admin."""
    ensure(can_list_team(actor), "Only managers and admins have a team")
    return _build_list(await repository.find_direct_reports(session, actor.id))


async def get_user_detail(session: AsyncSession, actor: User, user_id: uuid.UUID) -> UserResponse:
    """Self, admins and the direct manager may read a user.

    Non-admins are denied before the lookup result is revealed, so a 404 is
    only ever returned to admins.
    """
    target = await get_user(session, user_id)
    if target is None:
        if actor.role != UserRole.ADMIN:
            raise ForbiddenError("Not authorized to access this user")
        raise NotFoundError("User not found")
    if not can_view_user(actor, target):
        raise ForbiddenError("Not authorized to access this user")
    return build_user_response(target)
