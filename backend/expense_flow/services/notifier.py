# ruff: noqa: TC003
from __future__ import annotations

import asyncio
import html
import logging
import smtplib
import uuid
from decimal import Decimal
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from expense_flow.config import Settings, get_settings

logger = logging.getLogger(__name__)


class EmailMessage(BaseModel):
    """A rendered notification ready for delivery."""

    to: str
    subject: str
    text: str
    html: str


class NewExpenseEvent(BaseModel):
    """An employee filed an expense that their manager must review."""

    manager_email: str
    manager_name: str
    employee_name: str
    expense_id: uuid.UUID
    amount: Decimal
    category: str

    def render(self) -> EmailMessage:
        summary = f"#{self.expense_id} from {self.employee_name} for ${self.amount:.2f} ({self.category})"
        safe_summary = (
            f"#{self.expense_id} from {html.escape(self.employee_name)} "
            f"for ${self.amount:.2f} ({html.escape(self.category)})"
        )
        return EmailMessage(
            to=self.manager_email,
            subject="New Expense Requires Your Approval",
            text=(
                f"Hello {self.manager_name},\n\n"
                f"A new expense request {summary} requires your approval.\n\n"
                "Please log in to ExpenseFlow to review this request.\n"
            ),
            html=(
                f"<p>Hello {html.escape(self.manager_name)},</p>"
                f"<p>A new expense request <strong>{safe_summary}</strong> requires your approval.</p>"
                "<p>Please log in to ExpenseFlow to review this request.</p>"
            ),
        )


class StatusChangeEvent(BaseModel):
    """An expense was approved or rejected; the owner is told."""

    owner_email: str
    owner_name: str
    expense_id: uuid.UUID
    amount: Decimal
    category: str
    status: str
    comment: str | None = None

    def render(self) -> EmailMessage:
        summary = f"#{self.expense_id} for ${self.amount:.2f} ({self.category})"
        comment_text = f"\nComment: {self.comment}\n" if self.comment else ""
        safe_summary = f"#{self.expense_id} for ${self.amount:.2f} ({html.escape(self.category)})"
        comment_html = f"<p><strong>Comment:</strong> {html.escape(self.comment)}</p>" if self.comment else ""
        return EmailMessage(
            to=self.owner_email,
            subject=f"Expense {self.status.upper()}: Your expense request has been {self.status}",
            text=(
                f"Hello {self.owner_name},\n\n"
                f"Your expense request {summary} has been {self.status}.\n"
                f"{comment_text}\n"
                "Please log in to ExpenseFlow to view details.\n"
            ),
            html=(
                f"<p>Hello {html.escape(self.owner_name)},</p>"
                f"<p>Your expense request <strong>{safe_summary}</strong> has been "
                f"<strong>{html.escape(self.status)}</strong>.</p>"
                f"{comment_html}"
                "<p>Please log in to ExpenseFlow to view details.</p>"
            ),
        )


NotificationEvent = NewExpenseEvent | StatusChangeEvent


@runtime_checkable
class Notifier(Protocol):
    """Interface for outbound notification delivery."""

    async def send(self, message: EmailMessage) -> None:
        """Deliver a message. May raise; callers decide how to handle it."""
        ...


class LoggingNotifier:
    """Writes notifications to the log instead of delivering them."""

    async def send(self, message: EmailMessage) -> None:
        logger.info("Notification to %s: %s", message.to, message.subject)


class RecordingNotifier:
    """In-memory notifier that keeps every message, for development and tests."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> None:
        self.sent.append(message)


class SmtpNotifier:
    """Delivers notifications through an SMTP relay."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def _deliver(self, message: EmailMessage) -> None:
        settings = self._settings
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = settings.email_from
        msg["To"] = message.to
        msg.attach(MIMEText(message.text, "plain"))
        msg.attach(MIMEText(message.html, "html"))

        with smtplib.SMTP(settings.smtp_host or "localhost", settings.smtp_port) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_username and settings.smtp_password:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(msg)

    async def send(self, message: EmailMessage) -> None:
        await asyncio.to_thread(self._deliver, message)
        logger.info("Email sent to %s: %s", message.to, message.subject)


def _default_notifier() -> Notifier:
    settings = get_settings()
    if settings.smtp_host:
        return SmtpNotifier(settings)
    return LoggingNotifier()


_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    """Return the configured notifier."""
    global _notifier
    if _notifier is None:
        _notifier = _default_notifier()
    return _notifier


def set_notifier(notifier: Notifier | None) -> None:
    """Override the notifier (for testing or production wiring)."""
    global _notifier
    _notifier = notifier


async def dispatch(event: NotificationEvent) -> bool:
    """Render and send ``event``. Delivery failures are logged, never raised."""
    message = event.render()
    try:
        await get_notifier().send(message)
    except Exception:
        logger.exception("Failed to deliver notification to %s", message.to)
        return False
    return True
