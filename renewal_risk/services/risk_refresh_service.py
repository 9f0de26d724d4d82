"""
risk_refresh_service.py — Batch risk refresh and cached risk reads.

The batch walks every live account, runs classify → group → resolve →
aggregate, and syncs the results into the notification feed and the cache.

Business Rules:
- Phase 1 commits once per account: its cache entry and its duplicate
  at-risk notifications land together or not at all
- A failing account is logged, rolled back and counted; the run continues
  and its existing bulk entries are carried into the rebuilt lists unchanged
- Duplicate alerts for archived accounts are deleted
- Task notifications are synced after the accounts, in their own transaction
- Phase 2 rebuilds each user's bulk list (renewal reminders + neglected
  accounts) in its own transaction, from the statuses committed in phase 1
- The global at-risk list is only cached when every account succeeded
- Read paths recompute on miss and write back; a failed write-back is
  logged and the computed payload is still returned

Called by: scheduler.py (risk_refresh job), routers/risk.py
Depends on: models, cache/notification_cache, services/*
"""

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..cache.keys import AT_RISK_ACCOUNTS_KEY, NEGLECTED_ACCOUNTS_KEY, account_risk_key
from ..cache.notification_cache import read_through, set_cached
from ..models import Account, Estimate, Interaction, User
from .estimate_classifier import EstimateRecord, WonStatusRules
from .neglect_detector import NeglectedAccount, assess_neglect
from .notification_service import (
    NEGLECTED_ACCOUNT,
    RENEWAL_REMINDER,
    SyncCounts,
    load_active_snoozes,
    neglect_draft,
    rebuild_bulk_notifications,
    renewal_draft,
    retire_duplicate_notifications,
    sync_duplicate_notifications,
    sync_task_notifications,
)
from .risk_aggregator import AccountAssessment, AccountRiskStatus, assess_account

log = logging.getLogger("renewal.risk_refresh")


@dataclass
class RefreshReport:
    accounts_processed: int = 0
    notifications_created: int = 0
    notifications_updated: int = 0
    errors: int = 0

    def add(self, counts: SyncCounts) -> None:
        self.notifications_created += counts.created
        self.notifications_updated += counts.updated

    def to_dict(self) -> dict:
        return asdict(self)


def _utc_now(now: datetime | None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now if now.tzinfo else now.replace(tzinfo=timezone.utc)


def _active_users(db: Session) -> list[User]:
    return db.query(User).filter(User.is_active.is_(True)).order_by(User.id).all()


def account_recipients(account: Account, active_users: list[User]) -> list[User]:
    """The account owner if active, otherwise every active user."""
    owners = [u for u in active_users if u.id == account.owner_id]
    return owners or list(active_users)


# ── Per-account computation ──────────────────────────────────────────────


def compute_account_risk(
    db: Session,
    account: Account,
    now: datetime | date,
    window_days: int | None = None,
    rules: WonStatusRules | None = None,
) -> AccountAssessment:
    estimates = db.query(Estimate).filter(Estimate.account_id == account.id).all()
    records = [EstimateRecord.from_model(e) for e in estimates]
    return assess_account(str(account.id), records, now, window_days, rules)


def _account_payload(account: Account, assessment: AccountAssessment) -> dict:
    payload = assessment.status.to_payload()
    payload["account_name"] = account.name
    payload["duplicate_groups"] = len(assessment.duplicates)
    return payload


def _cached_account_payload(db: Session, account: Account, now: datetime) -> dict:
    return read_through(
        db,
        account_risk_key(account.id),
        lambda: _account_payload(account, compute_account_risk(db, account, now)),
        now,
    )


def _commit_cache_write(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        log.warning("Cache write-back commit failed: %s", e)
        db.rollback()


# ── Neglected accounts ───────────────────────────────────────────────────


def find_neglected_accounts(db: Session, now: datetime) -> list[NeglectedAccount]:
    last_seen = dict(
        db.query(Interaction.account_id, func.max(Interaction.occurred_at))
        .group_by(Interaction.account_id)
        .all()
    )
    accounts = db.query(Account).filter(Account.archived.is_(False)).order_by(Account.id).all()

    neglected = []
    for account in accounts:
        found = assess_neglect(account, last_seen.get(account.id), now)
        if found:
            neglected.append(found)
    # Never-contacted first, then longest silence
    neglected.sort(
        key=lambda n: (n.days_since_interaction is not None, -(n.days_since_interaction or 0), n.account_id)
    )
    return neglected


def _neglected_payload(neglected: list[NeglectedAccount], now: datetime) -> dict:
    return {
        "accounts": [n.to_payload() for n in neglected],
        "count": len(neglected),
        "computed_at": now.isoformat(),
    }


def _at_risk_payload(entries: list[dict], now: datetime) -> dict:
    entries = sorted(entries, key=lambda p: (p["days_until_expiry"], p["account_id"]))
    return {"accounts": entries, "count": len(entries), "computed_at": now.isoformat()}


# ── Read paths ───────────────────────────────────────────────────────────


def get_account_risk(db: Session, account_id: str, now: datetime | None = None) -> dict | None:
    """Risk status for one account, served from cache when fresh. None if unknown."""
    now = _utc_now(now)
    account = db.get(Account, account_id)
    if account is None:
        return None
    payload = _cached_account_payload(db, account, now)
    _commit_cache_write(db)
    return payload


def get_at_risk_accounts(db: Session, now: datetime | None = None) -> dict:
    """Every live account that is currently at risk, soonest expiry first."""
    now = _utc_now(now)

    def compute():
        accounts = db.query(Account).filter(Account.archived.is_(False)).order_by(Account.id).all()
        entries = [_cached_account_payload(db, a, now) for a in accounts]
        return _at_risk_payload([p for p in entries if p["status"] == "at_risk"], now)

    payload = read_through(db, AT_RISK_ACCOUNTS_KEY, compute, now)
    _commit_cache_write(db)
    return payload


def get_neglected_accounts(db: Session, now: datetime | None = None) -> dict:
    now = _utc_now(now)
    payload = read_through(
        db, NEGLECTED_ACCOUNTS_KEY, lambda: _neglected_payload(find_neglected_accounts(db, now), now), now
    )
    _commit_cache_write(db)
    return payload


# ── Batch ────────────────────────────────────────────────────────────────


def run_risk_refresh(db: Session, now: datetime | None = None) -> dict:
    """Refresh risk, notifications and caches for every live account.

    Returns {accounts_processed, notifications_created, notifications_updated, errors}.
    """
    now = _utc_now(now)
    report = RefreshReport()
    snoozes = load_active_snoozes(db, now)
    active_users = _active_users(db)
    accounts = db.query(Account).filter(Account.archived.is_(False)).order_by(Account.id).all()
    account_ids = [a.id for a in accounts]

    # Phase 1: one transaction per account
    statuses: dict[str, AccountRiskStatus] = {}
    failed_ids: set[str] = set()
    at_risk_entries = []
    for account, account_id in zip(accounts, account_ids):
        try:
            assessment = compute_account_risk(db, account, now)
            payload = _account_payload(account, assessment)
            set_cached(db, account_risk_key(account_id), payload, now)
            counts = sync_duplicate_notifications(
                db, account, assessment.duplicates, account_recipients(account, active_users), snoozes
            )
            db.commit()
        except Exception as e:
            log.error("Risk refresh failed for account %s: %s", account_id, e)
            db.rollback()
            report.errors += 1
            failed_ids.add(account_id)
            continue

        report.accounts_processed += 1
        report.add(counts)
        statuses[account_id] = assessment.status
        if assessment.status.is_at_risk:
            at_risk_entries.append(payload)

    try:
        report.add(sync_task_notifications(db, now, snoozes))
        db.commit()
    except Exception as e:
        log.error("Task notification sync failed: %s", e)
        db.rollback()
        report.errors += 1

    # Archived accounts drop out of phase 1, so clear their duplicate alerts here
    try:
        archived = [a_id for (a_id,) in db.query(Account.id).filter(Account.archived.is_(True)).all()]
        removed = retire_duplicate_notifications(db, archived)
        db.commit()
        if removed:
            log.info("Removed %d duplicate alerts for archived accounts", removed)
    except Exception as e:
        log.error("Archived duplicate cleanup failed: %s", e)
        db.rollback()
        report.errors += 1

    # Phase 2: bulk lists, one transaction per user
    try:
        neglected = find_neglected_accounts(db, now)
    except Exception as e:
        log.error("Neglected account scan failed: %s", e)
        db.rollback()
        report.errors += 1
        neglected = None

    by_id = {a.id: a for a in accounts}
    at_risk = sorted(
        (s for s in statuses.values() if s.is_at_risk),
        key=lambda s: (s.days_until_expiry, s.account_id),
    )

    def keep_stale(entry: dict) -> bool:
        # Facts this run could not recompute stay as they were, read flag included
        if entry.get("type") == RENEWAL_REMINDER:
            return entry.get("related_account_id") in failed_ids
        if entry.get("type") == NEGLECTED_ACCOUNT:
            return neglected is None
        return False

    for user in active_users:
        user_id = user.id
        try:
            drafts = [
                renewal_draft(user_id, by_id[s.account_id], s)
                for s in at_risk
                if user in account_recipients(by_id[s.account_id], active_users)
            ]
            for n in neglected or []:
                account = by_id.get(n.account_id)
                if account is not None and user in account_recipients(account, active_users):
                    drafts.append(neglect_draft(user_id, n))
            report.add(rebuild_bulk_notifications(db, user_id, drafts, now, snoozes, carry_over=keep_stale))
            db.commit()
        except Exception as e:
            log.error("Bulk notification rebuild failed for user %s: %s", user_id, e)
            db.rollback()
            report.errors += 1

    # Global lists
    if not failed_ids:
        set_cached(db, AT_RISK_ACCOUNTS_KEY, _at_risk_payload(at_risk_entries, now), now)
    if neglected is not None:
        set_cached(db, NEGLECTED_ACCOUNTS_KEY, _neglected_payload(neglected, now), now)
    _commit_cache_write(db)

    result = report.to_dict()
    log.info(
        "Risk refresh: %d accounts, %d created, %d updated, %d errors",
        result["accounts_processed"],
        result["notifications_created"],
        result["notifications_updated"],
        result["errors"],
    )
    return result
