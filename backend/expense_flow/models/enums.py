from __future__ import annotations

import enum


class UserRole(enum.StrEnum):
    """Fixed set of roles a user can hold."""

    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"


class ExpenseStatus(enum.StrEnum):
    """State machine for expense claims."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ExpenseCategory(enum.StrEnum):
    """Closed set of expense categories."""

    TRAVEL = "travel"
    MEALS = "meals"
    OFFICE = "office"
    CONFERENCE = "conference"
    SOFTWARE = "software"
    OTHER = "other"


class AuditAction(enum.StrEnum):
    """Action recorded in the audit log."""

    USER_CREATED = "USER_CREATED"
    EXPENSE_CREATED = "EXPENSE_CREATED"
    EXPENSE_APPROVED = "EXPENSE_APPROVED"
    EXPENSE_REJECTED = "EXPENSE_REJECTED"

    @classmethod
    def for_status(cls, status: ExpenseStatus) -> AuditAction:
        """Return the audit action recorded when an expense moves to ``status``."""
        return cls(f"EXPENSE_{status.value.upper()}")
