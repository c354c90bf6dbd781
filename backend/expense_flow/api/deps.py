from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from expense_flow.db import SessionDep
from expense_flow.exceptions import AuthenticationError, ForbiddenError
from expense_flow.models.enums import UserRole
from expense_flow.models.user import User
from expense_flow.services.identity import get_user, has_any_role
from expense_flow.services.security import decode_access_token

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    session: SessionDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> User:
    """Resolve the bearer token to the current user row.

    The row is re-read on every request so role and manager changes apply
    immediately.
    """
    if credentials is None:
        raise AuthenticationError()
    user_id = decode_access_token(credentials.credentials)
    user = await get_user(session, user_id)
    if user is None:
        raise AuthenticationError("Invalid user")
    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]


async def require_reviewer(user: CurrentUserDep) -> User:
    """Require the manager or admin role for the request."""
    if not has_any_role(user, (UserRole.MANAGER, UserRole.ADMIN)):
        raise ForbiddenError("Manager or admin access required")
    return user


ReviewerDep = Annotated[User, Depends(require_reviewer)]
