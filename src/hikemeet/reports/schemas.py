"""Pydantic schemas for report endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class CreateReportRequest(BaseModel):
    target_type: Literal["user", "post", "trip"]
    target_id: int
    reason: str = Field(..., min_length=3, max_length=2000)


class UpdateReportRequest(BaseModel):
    status: Literal["pending", "in_progress", "resolved"]


class ReportResponse(BaseModel):
    id: int
    reporter_id: int
    reporter_username: str | None = None
    target_type: str
    target_id: int
    reason: str
    status: str
    created_at: datetime


class ReportListResponse(BaseModel):
    reports: list[ReportResponse]
    total: int
    page: int
    per_page: int
