# ruff: noqa: TC001
from __future__ import annotations

from fastapi import APIRouter, status

from expense_flow.api.deps import CurrentUserDep
from expense_flow.db import SessionDep
from expense_flow.schemas.auth import AuthResponse, LoginPayload, RegisterPayload
from expense_flow.schemas.user import UserResponse
from expense_flow.services import user as user_service

auth_router = APIRouter(prefix="/auth", tags=["auth"])


@auth_router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterPayload, session: SessionDep) -> AuthResponse:
    """Create an account and return a bearer token."""
    return await user_service.register_user(session, payload)


@auth_router.post("/login", response_model=AuthResponse)
async def login(payload: LoginPayload, session: SessionDep) -> AuthResponse:
    """Exchange username and password for a bearer token."""
    return await user_service.login(session, payload)


@auth_router.get("/me", response_model=UserResponse)
async def me(user: CurrentUserDep) -> UserResponse:
    return user_service.build_user_response(user)
