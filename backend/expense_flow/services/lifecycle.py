"""Expense status state machine."""

from __future__ import annotations

from expense_flow.exceptions import InvalidStateError, ValidationError
from expense_flow.models.enums import ExpenseStatus

ALLOWED_TRANSITIONS: dict[ExpenseStatus, frozenset[ExpenseStatus]] = {
    ExpenseStatus.PENDING: frozenset({ExpenseStatus.APPROVED, ExpenseStatus.REJECTED}),
    ExpenseStatus.APPROVED: frozenset(),
    ExpenseStatus.REJECTED: frozenset(),
}


def is_terminal(status: ExpenseStatus | str) -> bool:
    return not ALLOWED_TRANSITIONS[ExpenseStatus(status)]


def check_transition(
    current: ExpenseStatus | str,
    target: ExpenseStatus | str,
    comment: str | None = None,
) -> str | None:
    """Validate a status change and return the normalised comment.

    Raises InvalidStateError when the expense has already been decided,
    and ValidationError for an unknown target or a rejection without a
    reason. Approval comments are optional.
    """
    current_status = ExpenseStatus(current)
    if is_terminal(current_status):
        raise InvalidStateError(f"Expense is already {current_status.value}")

    if target not in {s.value for s in ALLOWED_TRANSITIONS[current_status]}:
        raise ValidationError("Status must be 'approved' or 'rejected'", field="status")

    note = comment.strip() if comment else ""
    if target == ExpenseStatus.REJECTED and not note:
        raise ValidationError("A comment is required when rejecting an expense", field="comment")
    return note or None
