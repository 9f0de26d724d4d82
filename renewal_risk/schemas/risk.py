"""
schemas/risk.py — Pydantic models for renewal risk and refresh endpoints

Called by: routers/risk.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel


class AccountRiskOut(BaseModel):
    account_id: str
    account_name: str | None = None
    status: Literal["at_risk", "safe", "no_data"]
    driving_estimate_id: str | None = None
    days_until_expiry: int | None = None
    expiry_date: date | None = None
    duplicate_groups: int = 0
    computed_at: datetime


class AtRiskAccountsOut(BaseModel):
    accounts: list[AccountRiskOut]
    count: int
    computed_at: datetime


class NeglectedAccountOut(BaseModel):
    account_id: str
    account_name: str
    segment: str
    threshold_days: int
    days_since_interaction: int | None = None
    last_interaction_at: datetime | None = None


class NeglectedAccountsOut(BaseModel):
    accounts: list[NeglectedAccountOut]
    count: int
    computed_at: datetime


class RefreshReportOut(BaseModel):
    accounts_processed: int
    notifications_created: int
    notifications_updated: int
    errors: int
