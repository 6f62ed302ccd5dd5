"""Schemas for operator endpoints."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field


class ResetResponse(BaseModel):
    message: str = "Daily metrics reset successfully."
    day: date
    keys_reset: int
    identities_reset: int
    cursor_reset: bool


class RegisteredIdentityResponse(BaseModel):
    identity_id: str
    day: date


class KeyUsageItem(BaseModel):
    index: int
    secret_id: str = Field(..., description="Fingerprint; upstream keys are never returned")
    hits: int
    remaining: int


class UsageReportResponse(BaseModel):
    day: date
    last_index: int
    identities_active: int
    keys: list[KeyUsageItem] = Field(default_factory=list)
