"""Moderation reports: users flag users, posts and trips; admins triage."""

from __future__ import annotations

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hikemeet.db.models import Post, Report, Trip, User
from hikemeet.errors import NotFoundError, ValidationError
from hikemeet.notifications.push import PushGateway
from hikemeet.notifications.service import notify

logger = structlog.get_logger()

TARGET_MODELS = {"user": User, "post": Post, "trip": Trip}
REPORT_STATUSES = ("pending", "in_progress", "resolved")


async def create_report(
    db: AsyncSession,
    push: PushGateway | None,
    reporter_id: int,
    target_type: str,
    target_id: int,
    reason: str,
) -> Report:
    """File a report and notify every admin."""
    model = TARGET_MODELS.get(target_type)
    if model is None:
        raise ValidationError(f"Unknown report target type: {target_type}")
    found = await db.execute(select(model.id).where(model.id == target_id))
    if found.first() is None:
        raise NotFoundError(f"Reported {target_type} not found")

    report = Report(
        reporter_id=reporter_id,
        target_type=target_type,
        target_id=target_id,
        reason=reason,
        status="pending",
    )
    db.add(report)
    await db.flush()

    admins = await db.execute(select(User.id).where(User.role == "admin"))
    for admin_id in admins.scalars().all():
        if admin_id == reporter_id:
            continue
        await notify(
            db, push,
            to=admin_id,
            type_="report_created",
            title="New report submitted",
            body=f"A {target_type} has been reported and requires your attention.",
            actor=reporter_id,
            data={"reportId": report.id, "targetId": target_id, "targetType": target_type},
        )
    logger.info("report_created", report_id=report.id, target_type=target_type, target_id=target_id)
    return report


async def list_reports(
    db: AsyncSession,
    page: int = 1,
    per_page: int = 50,
    status: str | None = None,
) -> tuple[list[tuple[Report, User]], int]:
    """Reports newest first with their reporters (paginated)."""
    query = select(Report, User).join(User, User.id == Report.reporter_id)
    count_query = select(func.count()).select_from(Report)
    if status is not None:
        query = query.where(Report.status == status)
        count_query = count_query.where(Report.status == status)

    total = (await db.execute(count_query)).scalar_one()
    result = await db.execute(
        query.order_by(Report.created_at.desc(), Report.id.desc()).offset((page - 1) * per_page).limit(per_page)
    )
    return [(report, reporter) for report, reporter in result.all()], total


async def update_report_status(db: AsyncSession, report_id: int, status: str) -> Report:
    if status not in REPORT_STATUSES:
        raise ValidationError("Invalid status value")
    result = await db.execute(select(Report).where(Report.id == report_id))
    report = result.scalar_one_or_none()
    if report is None:
        raise NotFoundError("Report not found")
    report.status = status
    await db.flush()
    return report
