"""Report API endpoints: /api/v1/reports/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.auth.dependencies import get_current_user, require_admin
from hikemeet.database import get_session
from hikemeet.db.models import Report, User
from hikemeet.errors import DomainError
from hikemeet.notifications.push import PushGateway, get_push_gateway
from hikemeet.reports.schemas import CreateReportRequest, ReportListResponse, ReportResponse, UpdateReportRequest
from hikemeet.reports.service import create_report, list_reports, update_report_status

router = APIRouter(prefix="/api/v1/reports", tags=["Reports"])


def _report_response(report: Report, reporter: User | None = None) -> ReportResponse:
    return ReportResponse(
        id=report.id,
        reporter_id=report.reporter_id,
        reporter_username=reporter.username if reporter else None,
        target_type=report.target_type,
        target_id=report.target_id,
        reason=report.reason,
        status=report.status,
        created_at=report.created_at,
    )


@router.post("", response_model=ReportResponse, status_code=201)
async def create_report_endpoint(
    body: CreateReportRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    push: PushGateway = Depends(get_push_gateway),
):
    """Submit a report. Every admin is notified."""
    try:
        report = await create_report(db, push, user.id, body.target_type, body.target_id, body.reason)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return _report_response(report, user)


@router.get("", response_model=ReportListResponse)
async def list_reports_endpoint(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    status: str | None = Query(None),
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """All reports (admin only)."""
    rows, total = await list_reports(db, page, per_page, status)
    return ReportListResponse(
        reports=[_report_response(r, reporter) for r, reporter in rows],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.patch("/{report_id}", response_model=ReportResponse)
async def update_report_endpoint(
    report_id: int,
    body: UpdateReportRequest,
    _admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    try:
        report = await update_report_status(db, report_id, body.status)
        await db.commit()
    except DomainError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return _report_response(report)
