"""Renewal resolution within one service line.

For each estimate, a LATER estimate on the same line whose end date is
strictly later and whose days-until-expiry exceeds the lookahead window
marks it Renewed. Without such a successor the estimate's own days decide:

    days < 0             → Expired
    0 <= days <= window  → AtRisk
    days > window        → FutureSafe

An earlier estimate never cancels a later one. Day math is calendar-day
granularity in the business timezone; "now" is always passed in.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from zoneinfo import ZoneInfo

from ..config import settings
from .estimate_classifier import ClassifiedEstimate


class RenewalOutcome(str, Enum):
    AT_RISK = "at_risk"
    RENEWED = "renewed"
    FUTURE_SAFE = "future_safe"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ResolvedEstimate:
    estimate: ClassifiedEstimate
    outcome: RenewalOutcome
    days_until_expiry: int
    renewed_by: str | None = None

    @property
    def id(self) -> str:
        return self.estimate.id

    @property
    def contract_end(self) -> date:
        return self.estimate.estimate.contract_end


def local_today(now: datetime | date) -> date:
    """Calendar date of ``now`` in the business timezone.

    Naive datetimes are taken as UTC. A plain date is returned as-is.
    """
    if not isinstance(now, datetime):
        return now
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(settings.business_timezone)).date()


def days_until(end: date, today: date) -> int:
    return (end - today).days


def resolve_service_line(
    line: list[ClassifiedEstimate],
    now: datetime | date,
    window_days: int | None = None,
) -> list[ResolvedEstimate]:
    """Resolve every estimate on one service line.

    ``line`` must already be sorted by (contract_end, id), as returned by
    group_service_lines.
    """
    window = settings.risk_window_days if window_days is None else window_days
    today = local_today(now)
    days = [days_until(item.estimate.contract_end, today) for item in line]

    resolved = []
    for i, item in enumerate(line):
        end = item.estimate.contract_end
        successor = None
        for j in range(i + 1, len(line)):
            if line[j].estimate.contract_end > end and days[j] > window:
                successor = line[j].id
                break

        if successor is not None:
            outcome = RenewalOutcome.RENEWED
        elif days[i] < 0:
            outcome = RenewalOutcome.EXPIRED
        elif days[i] <= window:
            outcome = RenewalOutcome.AT_RISK
        else:
            outcome = RenewalOutcome.FUTURE_SAFE

        resolved.append(ResolvedEstimate(item, outcome, days[i], renewed_by=successor))
    return resolved
