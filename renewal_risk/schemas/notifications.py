"""
schemas/notifications.py — Pydantic models for the notification feed

Business Rules:
- Feed items have the same shape whether they come from a per-entity row
  or from the user's bulk list ("kind" tells them apart)
- Snoozes need a user, a target and an end time; type is optional (None = all)

Called by: routers/notifications.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator


class NotificationOut(BaseModel):
    id: str
    kind: Literal["entity", "bulk"]
    type: str
    title: str
    message: str | None = None
    is_read: bool = False
    created_at: datetime
    scheduled_for: datetime | None = None
    related_entity_id: str | None = None
    related_account_id: str | None = None
    related_task_id: str | None = None
    details: dict[str, Any] | None = None


class MarkedRead(BaseModel):
    marked: int


# ── Snoozes ──────────────────────────────────────────────────────────


class SnoozeCreate(BaseModel):
    user_id: str
    target_id: str
    snoozed_until: datetime
    notification_type: str | None = None

    @field_validator("user_id", "target_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("notification_type")
    @classmethod
    def blank_type_means_all(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class SnoozeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    target_id: str
    notification_type: str | None = None
    snoozed_until: datetime
