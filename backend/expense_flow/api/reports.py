# ruff: noqa: B008, TC001
from __future__ import annotations

from fastapi import APIRouter, Query, Response

from expense_flow.api.deps import CurrentUserDep, ReviewerDep
from expense_flow.config import get_settings
from expense_flow.db import SessionDep
from expense_flow.models.enums import ExpenseStatus
from expense_flow.schemas.report import ActivityLogEntry
from expense_flow.services import report as report_service

reports_router = APIRouter(prefix="/reports", tags=["reports"])


@reports_router.get("/activity-logs", response_model=list[ActivityLogEntry])
async def get_activity_logs(
    session: SessionDep,
    user: CurrentUserDep,
    limit: int | None = Query(default=None, ge=1, le=500),
) -> list[ActivityLogEntry]:
    """Global recent activity for admins, own activity for everyone else."""
    effective_limit = limit or get_settings().activity_log_default_limit
    return await report_service.get_activity_logs(session, user, effective_limit)


@reports_router.get("/export/expenses")
async def export_expenses(
    session: SessionDep,
    user: ReviewerDep,
    status: ExpenseStatus | None = Query(default=None),
) -> Response:
    """Download expenses as CSV: all for admins, direct reports' for managers."""
    rows = await report_service.build_export_rows(session, user, status)
    filename = report_service.export_filename(user, status)
    return Response(
        content=report_service.render_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
