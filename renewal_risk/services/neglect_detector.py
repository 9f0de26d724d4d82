"""Neglected-account detection.

An account is neglected when nobody has logged an interaction with it for
longer than its segment allows. Priority segments (A/B by default) get the
short threshold, everything else the long one; a missing segment counts as C.
Archived accounts and accounts with ICP status "na" are never neglected.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from ..config import settings
from .renewal_resolver import local_today


@dataclass(frozen=True)
class NeglectedAccount:
    account_id: str
    account_name: str
    segment: str
    threshold_days: int
    days_since_interaction: int | None  # None = no interaction ever logged
    last_interaction_at: datetime | None

    @property
    def message(self) -> str:
        if self.days_since_interaction is None:
            return f"No interactions logged - account needs attention ({self.segment} segment)"
        days = self.days_since_interaction
        return (
            f"No contact in {days} day{'s' if days != 1 else ''} - account needs attention "
            f"({self.segment} segment, {self.threshold_days}+ day threshold)"
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "account_name": self.account_name,
            "segment": self.segment,
            "threshold_days": self.threshold_days,
            "days_since_interaction": self.days_since_interaction,
            "last_interaction_at": self.last_interaction_at.isoformat() if self.last_interaction_at else None,
        }


def threshold_for(segment: str | None) -> int:
    seg = (segment or "C").strip().upper()
    if seg in {s.upper() for s in settings.neglect_priority_segments}:
        return settings.neglect_priority_days
    return settings.neglect_default_days


def assess_neglect(
    account,
    last_interaction_at: datetime | None,
    now: datetime | date,
) -> NeglectedAccount | None:
    """Return a NeglectedAccount if ``account`` is overdue for contact, else None."""
    if account.archived:
        return None
    if (account.icp_status or "").strip().lower() == "na":
        return None

    segment = (account.revenue_segment or "C").strip().upper() or "C"
    threshold = threshold_for(segment)

    days_since = None
    if last_interaction_at is not None:
        days_since = (local_today(now) - local_today(last_interaction_at)).days
        if days_since <= threshold:
            return None

    return NeglectedAccount(
        account_id=str(account.id),
        account_name=account.name,
        segment=segment,
        threshold_days=threshold,
        days_since_interaction=days_since,
        last_interaction_at=last_interaction_at,
    )
