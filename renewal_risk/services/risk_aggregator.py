"""Account-level risk aggregation.

Combines the per-line renewal outcomes of one account into a single
AccountRiskStatus:

  - any AtRisk estimate      → AT_RISK, driven by the soonest-expiring one
  - else any Won dated one   → SAFE
  - else                     → NO_DATA

Also reports duplicate at-risk groups: service lines that hold two or more
AtRisk estimates at the same time, which usually means the same contract
was imported twice.

Called by: services/risk_refresh_service.py
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Iterable

from ..config import settings
from .estimate_classifier import EstimateRecord, WonStatusRules, classify_all
from .renewal_resolver import RenewalOutcome, ResolvedEstimate, resolve_service_line
from .service_lines import ServiceLineKey, group_service_lines


class RiskStatus(str, Enum):
    AT_RISK = "at_risk"
    SAFE = "safe"
    NO_DATA = "no_data"


@dataclass(frozen=True)
class AccountRiskStatus:
    account_id: str
    status: RiskStatus
    driving_estimate_id: str | None
    days_until_expiry: int | None
    expiry_date: date | None
    computed_at: datetime

    @property
    def is_at_risk(self) -> bool:
        return self.status is RiskStatus.AT_RISK

    def to_payload(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "status": self.status.value,
            "driving_estimate_id": self.driving_estimate_id,
            "days_until_expiry": self.days_until_expiry,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "computed_at": self.computed_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AccountRiskStatus":
        expiry = payload.get("expiry_date")
        return cls(
            account_id=payload["account_id"],
            status=RiskStatus(payload["status"]),
            driving_estimate_id=payload.get("driving_estimate_id"),
            days_until_expiry=payload.get("days_until_expiry"),
            expiry_date=date.fromisoformat(expiry) if expiry else None,
            computed_at=datetime.fromisoformat(payload["computed_at"]),
        )


@dataclass(frozen=True)
class DuplicateRiskGroup:
    """Two or more AtRisk estimates on the same service line."""

    line: ServiceLineKey
    estimates: tuple[ResolvedEstimate, ...]

    @property
    def entity_id(self) -> str:
        # Stable per line so re-detection updates the same notification
        return f"{self.line.account_id}|{self.line.department}|{self.line.address}"

    def to_details(self) -> dict[str, Any]:
        return {
            "account_id": self.line.account_id,
            "department": self.line.department,
            "address": self.line.address,
            "estimates": [
                {
                    "id": r.id,
                    "estimate_number": r.estimate.estimate.estimate_number,
                    "contract_end": r.contract_end.isoformat(),
                    "days_until_expiry": r.days_until_expiry,
                }
                for r in self.estimates
            ],
        }


@dataclass
class AccountAssessment:
    status: AccountRiskStatus
    resolutions: list[ResolvedEstimate] = field(default_factory=list)
    duplicates: list[DuplicateRiskGroup] = field(default_factory=list)


def _as_utc(now: datetime | date) -> datetime:
    if isinstance(now, datetime):
        return now if now.tzinfo else now.replace(tzinfo=timezone.utc)
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc)


def aggregate_account_risk(
    account_id: str,
    resolutions: Iterable[ResolvedEstimate],
    has_won_dated: bool,
    now: datetime | date,
) -> AccountRiskStatus:
    """Fold resolved estimates into one AccountRiskStatus.

    ``has_won_dated`` covers Won estimates with an end date that could not be
    grouped (no department or address): they make the account SAFE rather
    than NO_DATA but never produce risk on their own.
    """
    at_risk = [r for r in resolutions if r.outcome is RenewalOutcome.AT_RISK]
    computed_at = _as_utc(now)

    if at_risk:
        driver = min(at_risk, key=lambda r: (r.days_until_expiry, r.id))
        return AccountRiskStatus(
            account_id=account_id,
            status=RiskStatus.AT_RISK,
            driving_estimate_id=driver.id,
            days_until_expiry=driver.days_until_expiry,
            expiry_date=driver.contract_end,
            computed_at=computed_at,
        )

    status = RiskStatus.SAFE if has_won_dated else RiskStatus.NO_DATA
    return AccountRiskStatus(account_id, status, None, None, None, computed_at)


def find_duplicate_risks(
    lines: dict[ServiceLineKey, list[ResolvedEstimate]],
) -> list[DuplicateRiskGroup]:
    groups = []
    for key, resolved in lines.items():
        at_risk = tuple(r for r in resolved if r.outcome is RenewalOutcome.AT_RISK)
        if len(at_risk) >= 2:
            groups.append(DuplicateRiskGroup(key, at_risk))
    return groups


def assess_account(
    account_id: str,
    estimates: Iterable[EstimateRecord],
    now: datetime | date,
    window_days: int | None = None,
    rules: WonStatusRules | None = None,
) -> AccountAssessment:
    """Run classify → group → resolve → aggregate for one account.

    Archived estimates are ignored. Pure: no I/O, ``now`` is explicit.
    """
    window = settings.risk_window_days if window_days is None else window_days
    live = [e for e in estimates if not e.archived]
    classified = classify_all(live, rules)

    resolved_lines = {
        key: resolve_service_line(line, now, window)
        for key, line in group_service_lines(classified).items()
    }
    resolutions = [r for line in resolved_lines.values() for r in line]
    has_won_dated = any(c.is_won and c.estimate.contract_end is not None for c in classified)

    return AccountAssessment(
        status=aggregate_account_risk(account_id, resolutions, has_won_dated, now),
        resolutions=resolutions,
        duplicates=find_duplicate_risks(resolved_lines),
    )
