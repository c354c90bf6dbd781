from sqlmodel import SQLModel

from expense_flow.models.audit import AuditLog
from expense_flow.models.base import TimestampMixin, UUIDBase
from expense_flow.models.enums import AuditAction, ExpenseCategory, ExpenseStatus, UserRole
from expense_flow.models.expense import Comment, Expense
from expense_flow.models.user import User

__all__ = [
    "AuditAction",
    "AuditLog",
    "Comment",
    "Expense",
    "ExpenseCategory",
    "ExpenseStatus",
    "SQLModel",
    "TimestampMixin",
    "UUIDBase",
    "User",
    "UserRole",
]
