"""Estimate classification — raw estimate record → Won / Lost / Pending.

Runs over every estimate on every aggregation pass, so it is pure, total,
and never raises. Unknown status text falls through to Pending.

Rules, in priority order:
  1. pipeline status == "sold"            → Won
  2. status in the won allow-list (exact) → Won
  3. "lost" anywhere in status            → Lost
  4. otherwise                            → Pending

Some legacy reports matched won statuses by substring and with extra
entries ("contract in progress", "billing + contract complete"). Those are
not reproduced here; the allow-lists are configuration (Settings.won_statuses).
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable

from ..config import settings


class Lifecycle(str, Enum):
    WON = "won"
    LOST = "lost"
    PENDING = "pending"


@dataclass(frozen=True)
class WonStatusRules:
    """Allow-lists that decide what counts as a won estimate."""

    statuses: frozenset[str]
    pipeline_statuses: frozenset[str]

    @classmethod
    def from_settings(cls) -> "WonStatusRules":
        return cls(
            statuses=frozenset(_clean(s) for s in settings.won_statuses),
            pipeline_statuses=frozenset(_clean(s) for s in settings.won_pipeline_statuses),
        )


@dataclass(frozen=True)
class EstimateRecord:
    """Read-only view of an estimate row, detached from the session."""

    id: str
    account_id: str
    division: str | None = None
    address: str | None = None
    status: str | None = None
    pipeline_status: str | None = None
    contract_end: date | None = None
    contract_start: date | None = None
    archived: bool = False
    estimate_number: str | None = None

    @classmethod
    def from_model(cls, est) -> "EstimateRecord":
        return cls(
            id=str(est.id),
            account_id=str(est.account_id),
            division=est.division,
            address=est.address,
            status=est.status,
            pipeline_status=est.pipeline_status,
            contract_end=_as_date(est.contract_end),
            contract_start=_as_date(est.contract_start),
            archived=bool(est.archived),
            estimate_number=est.estimate_number,
        )


@dataclass(frozen=True)
class ClassifiedEstimate:
    estimate: EstimateRecord
    lifecycle: Lifecycle

    @property
    def id(self) -> str:
        return self.estimate.id

    @property
    def is_won(self) -> bool:
        return self.lifecycle is Lifecycle.WON


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def classify_status(
    status: Any, pipeline_status: Any = None, rules: WonStatusRules | None = None
) -> Lifecycle:
    """Classify a status pair. Never raises."""
    rules = rules or WonStatusRules.from_settings()

    if _clean(pipeline_status) in rules.pipeline_statuses:
        return Lifecycle.WON

    status_clean = _clean(status)
    if status_clean in rules.statuses:
        return Lifecycle.WON
    if "lost" in status_clean:
        return Lifecycle.LOST
    return Lifecycle.PENDING


def classify(estimate: EstimateRecord, rules: WonStatusRules | None = None) -> ClassifiedEstimate:
    return ClassifiedEstimate(
        estimate=estimate,
        lifecycle=classify_status(estimate.status, estimate.pipeline_status, rules),
    )


def classify_all(
    estimates: Iterable[EstimateRecord], rules: WonStatusRules | None = None
) -> list[ClassifiedEstimate]:
    rules = rules or WonStatusRules.from_settings()
    return [classify(est, rules) for est in estimates]
