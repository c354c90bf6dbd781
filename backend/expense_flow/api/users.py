# ruff: noqa: TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter

from expense_flow.api.deps import CurrentUserDep, ReviewerDep
from expense_flow.db import SessionDep
from expense_flow.schemas.user import UserListResponse, UserResponse
from expense_flow.services import user as user_service

users_router = APIRouter(prefix="/users", tags=["users"])


@users_router.get("", response_model=UserListResponse)
async def list_users(session: SessionDep, user: ReviewerDep) -> UserListResponse:
    """List every user (manager/admin only)."""
    return await user_service.list_users(session, user)


@users_router.get("/by-role/{role}", response_model=UserListResponse)
async def list_users_by_role(role: str, session: SessionDep, user: ReviewerDep) -> UserListResponse:
    return await user_service.list_users(session, user, role)


@users_router.get("/team", response_model=UserListResponse)
async def list_team(session: SessionDep, user: ReviewerDep) -> UserListResponse:
    """Direct reports of the caller."""
    return await user_service.list_team(session, user)


@users_router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: uuid.UUID, session: SessionDep, user: CurrentUserDep) -> UserResponse:
    return await user_service.get_user_detail(session, user, user_id)
