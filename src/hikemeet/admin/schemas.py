"""Pydantic schemas for admin endpoints."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from hikemeet.users.schemas import UserResponse


class SetRoleRequest(BaseModel):
    role: Literal["user", "admin"]


class AdminUserListResponse(BaseModel):
    users: list[UserResponse]
    total: int
    page: int
    per_page: int
