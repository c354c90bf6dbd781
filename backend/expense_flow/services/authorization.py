"""Authorization policy.

Pure decision functions: every relationship they need (the expense owner)
is resolved by the caller beforehand. Role checks always use the actor's
current role as loaded for the request.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from expense_flow.exceptions import ForbiddenError
from expense_flow.models.enums import UserRole
from expense_flow.services.identity import has_any_role, is_manager_of

if TYPE_CHECKING:
    from expense_flow.models.expense import Expense
    from expense_flow.models.user import User


def _manages(actor: User, owner: User | None) -> bool:
    return actor.role == UserRole.MANAGER and is_manager_of(actor.id, owner)


def can_view(actor: User, expense: Expense, owner: User | None) -> bool:
    """Owner, any admin, or the owner's direct manager."""
    return actor.id == expense.user_id or actor.role == UserRole.ADMIN or _manages(actor, owner)


def can_transition(actor: User, expense: Expense, owner: User | None) -> bool:
    """Any admin or the owner's direct manager, but never the owner."""
    if actor.id == expense.user_id:
        return False
    return actor.role == UserRole.ADMIN or _manages(actor, owner)


def can_create(actor: User) -> bool:
    return has_any_role(actor, UserRole)


def can_list_team(actor: User) -> bool:
    return has_any_role(actor, (UserRole.MANAGER, UserRole.ADMIN))


def can_export_all(actor: User) -> bool:
    return actor.role == UserRole.ADMIN


def can_export_team(actor: User) -> bool:
    return actor.role == UserRole.MANAGER


def can_view_user(actor: User, target: User) -> bool:
    """Self, any admin, or the target's direct manager."""
    return actor.id == target.id or actor.role == UserRole.ADMIN or _manages(actor, target)


def ensure(allowed: bool, message: str = "Access denied") -> None:
    """Raise 403 unless ``allowed``."""
    if not allowed:
        raise ForbiddenError(message)
