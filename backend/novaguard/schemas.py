from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=128)


class RegisterRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: str = Field(min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_]+$")
    password: str = Field(min_length=6, max_length=128)
    email: str = Field(max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AccountResponse(BaseModel):
    success: bool = True
    data: dict[str, Any]


class BlockIPRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True, populate_by_name=True)

    ip: str = Field(min_length=3, max_length=64)
    reason: str = Field(default="Blocked by admin", max_length=200)
    duration_minutes: Optional[int] = Field(default=None, ge=1, le=60 * 24 * 365, alias="durationMinutes")


class BlockedIPItem(BaseModel):
    ip: str
    blocked_at: str = Field(alias="blockedAt")
    expires_at: Optional[str] = Field(alias="expiresAt")
    remaining_minutes: Optional[int] = Field(alias="remainingMinutes")
    reason: str
    burst_count: int = Field(alias="burstCount")
    auth_attempts: int = Field(alias="authAttempts")
    login_failures: int = Field(alias="loginFailures")


class BlockedIPsResponse(BaseModel):
    success: bool = True
    data: list[BlockedIPItem]
    config: dict[str, Any]


class ActionResponse(BaseModel):
    success: bool = True
    message: str
