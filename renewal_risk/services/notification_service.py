"""
notification_service.py — Notification synchronization and the read side.

Two storage disciplines share one value type (NotificationDraft):

  per-entity  Notification rows, unique on (user_id, type, related_entity_id).
              Re-firing a fact refreshes the row in place. Task events and
              duplicate at-risk estimate alerts.
  bulk        One UserNotificationState document per user holding an ordered
              list. Replaced wholesale every refresh. Renewal reminders and
              neglected accounts.

Business Rules:
- Snoozes are checked before anything is emitted, for both disciplines
- Recomputing a fact never touches is_read
- user_id is mandatory on every read; nobody sees another user's feed
- Nothing here commits; callers own the transaction

Called by: services/risk_refresh_service.py, routers/notifications.py
Depends on: models, config
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Iterable

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..models import Notification, NotificationSnooze, Task, User, UserNotificationState
from .renewal_resolver import local_today

log = logging.getLogger("renewal.notifications")

TASK_OVERDUE = "task_overdue"
TASK_DUE_TODAY = "task_due_today"
TASK_REMINDER = "task_reminder"
DUPLICATE_AT_RISK = "duplicate_at_risk_estimates"
RENEWAL_REMINDER = "renewal_reminder"
NEGLECTED_ACCOUNT = "neglected_account"

TASK_TYPES = (TASK_OVERDUE, TASK_DUE_TODAY, TASK_REMINDER)
BULK_TYPES = (RENEWAL_REMINDER, NEGLECTED_ACCOUNT)

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"
SUPPRESSED = "suppressed"


@dataclass(frozen=True)
class NotificationDraft:
    """What a notification should say, before it is stored in either shape."""

    user_id: str
    type: str
    title: str
    message: str
    related_entity_id: str | None = None
    related_account_id: str | None = None
    related_task_id: str | None = None
    scheduled_for: datetime | None = None
    details: dict | None = None

    @property
    def target_id(self) -> str | None:
        """The id a snooze has to name to silence this notification."""
        if self.type in TASK_TYPES:
            return self.related_task_id
        return self.related_account_id or self.related_entity_id

    @property
    def entry_id(self) -> str:
        """Stable id for bulk-list entries, so read state survives rebuilds."""
        return f"{self.type}:{self.related_account_id or self.related_entity_id}"


@dataclass
class SyncCounts:
    created: int = 0
    updated: int = 0
    suppressed: int = 0

    def record(self, result: str) -> None:
        if result == CREATED:
            self.created += 1
        elif result == UPDATED:
            self.updated += 1
        elif result == SUPPRESSED:
            self.suppressed += 1

    def merge(self, other: "SyncCounts") -> None:
        self.created += other.created
        self.updated += other.updated
        self.suppressed += other.suppressed


# ── Snoozes ──────────────────────────────────────────────────────────────


@dataclass
class SnoozeIndex:
    """Active snoozes keyed by (user_id, target_id) → snoozed types (None = all)."""

    entries: dict[tuple[str, str], set[str | None]] = field(default_factory=dict)

    def add(self, user_id: str, target_id: str, notification_type: str | None) -> None:
        self.entries.setdefault((user_id, target_id), set()).add(notification_type)

    def is_snoozed(self, user_id: str, notification_type: str, target_id: str | None) -> bool:
        if not target_id:
            return False
        types = self.entries.get((user_id, target_id))
        if not types:
            return False
        return None in types or notification_type in types

    def covers(self, draft: NotificationDraft) -> bool:
        return self.is_snoozed(draft.user_id, draft.type, draft.target_id)


def load_active_snoozes(db: Session, now: datetime, user_id: str | None = None) -> SnoozeIndex:
    q = db.query(NotificationSnooze).filter(NotificationSnooze.snoozed_until > now)
    if user_id:
        q = q.filter(NotificationSnooze.user_id == user_id)
    index = SnoozeIndex()
    for s in q.all():
        index.add(s.user_id, s.target_id, s.notification_type)
    return index


def create_snooze(
    db: Session,
    user_id: str,
    target_id: str,
    snoozed_until: datetime,
    notification_type: str | None = None,
    now: datetime | None = None,
) -> NotificationSnooze:
    """Snooze a target for a user. Re-snoozing the same target moves the end time."""
    if not user_id:
        raise ValueError("user_id is required")
    if not target_id:
        raise ValueError("target_id is required")
    now = now or datetime.now(timezone.utc)
    if snoozed_until.tzinfo is None:
        snoozed_until = snoozed_until.replace(tzinfo=timezone.utc)
    if snoozed_until <= now:
        raise ValueError("snoozed_until must be in the future")

    q = db.query(NotificationSnooze).filter(
        NotificationSnooze.user_id == user_id,
        NotificationSnooze.target_id == target_id,
    )
    if notification_type is None:
        q = q.filter(NotificationSnooze.notification_type.is_(None))
    else:
        q = q.filter(NotificationSnooze.notification_type == notification_type)

    snooze = q.first()
    if snooze:
        snooze.snoozed_until = snoozed_until
    else:
        snooze = NotificationSnooze(
            user_id=user_id,
            target_id=target_id,
            notification_type=notification_type,
            snoozed_until=snoozed_until,
        )
        db.add(snooze)
    db.flush()
    log.info("Snoozed %s/%s for user %s until %s", notification_type or "*", target_id, user_id, snoozed_until)
    return snooze


def list_snoozes(db: Session, user_id: str, now: datetime | None = None, active_only: bool = True) -> list:
    if not user_id:
        raise ValueError("user_id is required")
    q = db.query(NotificationSnooze).filter(NotificationSnooze.user_id == user_id)
    if active_only:
        q = q.filter(NotificationSnooze.snoozed_until > (now or datetime.now(timezone.utc)))
    return q.order_by(NotificationSnooze.snoozed_until).all()


def delete_snooze(db: Session, user_id: str, snooze_id: int) -> bool:
    if not user_id:
        raise ValueError("user_id is required")
    snooze = (
        db.query(NotificationSnooze)
        .filter(NotificationSnooze.id == snooze_id, NotificationSnooze.user_id == user_id)
        .first()
    )
    if not snooze:
        return False
    db.delete(snooze)
    db.flush()
    return True


# ── Per-entity notifications ─────────────────────────────────────────────


def _find_entity_row(db: Session, draft: NotificationDraft) -> Notification | None:
    return (
        db.query(Notification)
        .filter(
            Notification.user_id == draft.user_id,
            Notification.type == draft.type,
            Notification.related_entity_id == draft.related_entity_id,
        )
        .first()
    )


def _refresh_row(row: Notification, draft: NotificationDraft) -> bool:
    """Copy draft content onto an existing row. Returns True if anything changed."""
    changed = False
    for attr in ("title", "message", "related_account_id", "related_task_id", "scheduled_for", "details"):
        value = getattr(draft, attr)
        if getattr(row, attr) != value:
            setattr(row, attr, value)
            changed = True
    return changed


def upsert_entity_notification(
    db: Session,
    draft: NotificationDraft,
    snoozes: SnoozeIndex | None = None,
) -> str:
    """Create or refresh the row for (user, type, related entity).

    Returns one of created / updated / unchanged / suppressed. The unique
    constraint only backstops a concurrent writer: the insert runs in a
    savepoint and a collision retries as an update-by-key.
    """
    if not draft.related_entity_id:
        raise ValueError("per-entity notifications need related_entity_id")
    if snoozes is not None and snoozes.covers(draft):
        return SUPPRESSED

    row = _find_entity_row(db, draft)
    if row is not None:
        return UPDATED if _refresh_row(row, draft) else UNCHANGED

    try:
        with db.begin_nested():
            db.add(
                Notification(
                    user_id=draft.user_id,
                    type=draft.type,
                    related_entity_id=draft.related_entity_id,
                    related_account_id=draft.related_account_id,
                    related_task_id=draft.related_task_id,
                    title=draft.title,
                    message=draft.message,
                    scheduled_for=draft.scheduled_for,
                    details=draft.details,
                )
            )
        return CREATED
    except IntegrityError:
        log.debug("Notification %s/%s for %s already exists, updating", draft.type, draft.related_entity_id, draft.user_id)
        row = _find_entity_row(db, draft)
        if row is None:
            raise
        return UPDATED if _refresh_row(row, draft) else UNCHANGED


def _task_draft(task: Task, user_id: str, today: date) -> NotificationDraft | None:
    days = (task.due_date - today).days
    plural = "s" if abs(days) != 1 else ""
    if days < 0:
        ntype, title = TASK_OVERDUE, "Task Overdue"
        message = f'"{task.title}" is overdue by {abs(days)} day{plural}'
    elif days == 0:
        ntype, title = TASK_DUE_TODAY, "Task Due Today"
        message = f'"{task.title}" is due today'
    elif days == 1:
        ntype, title = TASK_REMINDER, "Task Due Tomorrow"
        message = f'"{task.title}" is due tomorrow'
    elif days <= settings.task_reminder_days:
        ntype, title = TASK_REMINDER, "Task Due Soon"
        message = f'"{task.title}" is due in {days} days'
    else:
        return None

    return NotificationDraft(
        user_id=user_id,
        type=ntype,
        title=title,
        message=message,
        related_entity_id=str(task.id),
        related_account_id=task.related_account_id,
        related_task_id=str(task.id),
        scheduled_for=datetime.combine(task.due_date, time.min, tzinfo=timezone.utc),
        details={"due_date": task.due_date.isoformat(), "days_until_due": days},
    )


def task_recipients(task: Task, active_users: list[User]) -> list[User]:
    """Assignees (comma-separated emails), or every active user when unassigned."""
    emails = {e.strip().lower() for e in (task.assigned_to or "").split(",") if e.strip()}
    if not emails:
        return list(active_users)
    return [u for u in active_users if (u.email or "").lower() in emails]


def _mark_task_kinds_read(db: Session, user_id: str, task_id: str, keep: str | None) -> int:
    kinds = [t for t in TASK_TYPES if t != keep]
    return (
        db.query(Notification)
        .filter(
            Notification.user_id == user_id,
            Notification.related_entity_id == task_id,
            Notification.type.in_(kinds),
            Notification.is_read.is_(False),
        )
        .update({Notification.is_read: True}, synchronize_session="fetch")
    )


def retire_task_notifications(db: Session, task_ids: Iterable[str]) -> int:
    """Mark every unread task notification for the given tasks as read."""
    ids = [str(t) for t in task_ids]
    if not ids:
        return 0
    return (
        db.query(Notification)
        .filter(
            Notification.type.in_(TASK_TYPES),
            Notification.related_entity_id.in_(ids),
            Notification.is_read.is_(False),
        )
        .update({Notification.is_read: True}, synchronize_session="fetch")
    )


def sync_task_notifications(
    db: Session,
    now: datetime,
    snoozes: SnoozeIndex | None = None,
) -> SyncCounts:
    """Upsert overdue / due-today / reminder notifications for open tasks."""
    today = local_today(now)
    counts = SyncCounts()
    active_users = db.query(User).filter(User.is_active.is_(True)).all()

    open_tasks = (
        db.query(Task)
        .filter(
            Task.due_date.isnot(None),
            or_(Task.status.is_(None), Task.status != "completed"),
        )
        .all()
    )
    for task in open_tasks:
        recipients = task_recipients(task, active_users)
        if not recipients:
            log.debug("Task %s has no matching active assignee", task.id)
            continue
        for user in recipients:
            draft = _task_draft(task, user.id, today)
            if draft is not None and snoozes is not None and snoozes.covers(draft):
                # Leave the earlier kind as it is until the snooze ends
                counts.record(SUPPRESSED)
                continue
            _mark_task_kinds_read(db, user.id, str(task.id), draft.type if draft else None)
            if draft is None:
                continue
            counts.record(upsert_entity_notification(db, draft, snoozes))

    completed = [t.id for t in db.query(Task.id).filter(Task.status == "completed").all()]
    retired = retire_task_notifications(db, completed)
    if retired:
        log.info("Retired %d notifications for completed tasks", retired)
    return counts


def sync_duplicate_notifications(
    db: Session,
    account,
    duplicates: list,
    recipients: list[User],
    snoozes: SnoozeIndex | None = None,
) -> SyncCounts:
    """One notification per (user, duplicate group). Stale groups are removed."""
    counts = SyncCounts()
    current = set()
    for group in duplicates:
        current.add(group.entity_id)
        for user in recipients:
            draft = NotificationDraft(
                user_id=user.id,
                type=DUPLICATE_AT_RISK,
                title="Duplicate At-Risk Estimates Detected",
                message=(
                    f'Account "{account.name}" has {len(group.estimates)} at-risk estimates '
                    "with the same department and address. Please review."
                ),
                related_entity_id=group.entity_id,
                related_account_id=str(account.id),
                details=group.to_details(),
            )
            counts.record(upsert_entity_notification(db, draft, snoozes))

    stale = db.query(Notification).filter(
        Notification.type == DUPLICATE_AT_RISK,
        Notification.related_account_id == str(account.id),
    )
    if current:
        stale = stale.filter(Notification.related_entity_id.notin_(current))
    for row in stale.all():
        db.delete(row)
    return counts


def retire_duplicate_notifications(db: Session, account_ids: Iterable[str]) -> int:
    """Delete duplicate at-risk alerts for accounts the batch no longer scans."""
    ids = [str(a) for a in account_ids]
    if not ids:
        return 0
    rows = (
        db.query(Notification)
        .filter(Notification.type == DUPLICATE_AT_RISK, Notification.related_account_id.in_(ids))
        .all()
    )
    for row in rows:
        db.delete(row)
    return len(rows)


# ── Bulk notifications ───────────────────────────────────────────────────


def renewal_draft(user_id: str, account, status) -> NotificationDraft:
    days = status.days_until_expiry
    end = status.expiry_date
    when = f"{end:%b} {end.day}, {end.year}" if end else "unknown date"
    return NotificationDraft(
        user_id=user_id,
        type=RENEWAL_REMINDER,
        title=f"Renewal Coming Up: {account.name}",
        message=f"Contract renewal is in {days} day{'s' if days != 1 else ''} ({when})",
        related_account_id=str(account.id),
        details={
            "estimate_id": status.driving_estimate_id,
            "days_until_expiry": days,
            "expiry_date": status.expiry_date.isoformat() if status.expiry_date else None,
        },
    )


def neglect_draft(user_id: str, neglected) -> NotificationDraft:
    return NotificationDraft(
        user_id=user_id,
        type=NEGLECTED_ACCOUNT,
        title=f"Neglected Account: {neglected.account_name}",
        message=neglected.message,
        related_account_id=neglected.account_id,
        details={
            "segment": neglected.segment,
            "threshold_days": neglected.threshold_days,
            "days_since_interaction": neglected.days_since_interaction,
        },
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def rebuild_bulk_notifications(
    db: Session,
    user_id: str,
    drafts: Iterable[NotificationDraft],
    now: datetime,
    snoozes: SnoozeIndex | None = None,
    carry_over: Callable[[dict], bool] | None = None,
) -> SyncCounts:
    """Replace the user's bulk list with freshly derived entries.

    Entries keep is_read and created_at from the previous list when their
    stable id matches. Previous entries accepted by ``carry_over`` and not
    re-derived are kept unchanged; the batch uses this for facts it could
    not recompute this run. The list is assigned as a new object so the
    JSON column is flushed.
    """
    state = db.get(UserNotificationState, user_id)
    previous = {e.get("id"): e for e in (state.notifications if state else []) or []}
    counts = SyncCounts()
    entries = []
    seen = set()

    for draft in drafts:
        if snoozes is not None and snoozes.covers(draft):
            counts.record(SUPPRESSED)
            continue
        entry_id = draft.entry_id
        if entry_id in seen:
            continue
        seen.add(entry_id)

        prev = previous.get(entry_id)
        entry = {
            "id": entry_id,
            "type": draft.type,
            "title": draft.title,
            "message": draft.message,
            "related_account_id": draft.related_account_id,
            "related_task_id": draft.related_task_id,
            "related_entity_id": draft.related_entity_id,
            "scheduled_for": _iso(draft.scheduled_for),
            "details": draft.details,
            "is_read": bool(prev.get("is_read")) if prev else False,
            "created_at": prev.get("created_at") if prev else now.isoformat(),
        }
        if prev is None:
            counts.record(CREATED)
        elif any(prev.get(k) != entry[k] for k in ("title", "message", "details", "scheduled_for")):
            counts.record(UPDATED)
        entries.append(entry)

    if carry_over is not None:
        for entry_id, prev in previous.items():
            if entry_id in seen or not carry_over(prev):
                continue
            if snoozes is not None and snoozes.is_snoozed(user_id, prev.get("type"), prev.get("related_account_id")):
                continue
            seen.add(entry_id)
            entries.append(prev)

    if state is None:
        db.add(UserNotificationState(user_id=user_id, notifications=entries))
    elif entries != state.notifications:
        state.notifications = entries
    return counts


# ── Read side ────────────────────────────────────────────────────────────


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        ts = value
    elif value:
        ts = datetime.fromisoformat(value)
    else:
        return datetime.min.replace(tzinfo=timezone.utc)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _row_to_dict(row: Notification) -> dict:
    return {
        "id": str(row.id),
        "kind": "entity",
        "type": row.type,
        "title": row.title,
        "message": row.message,
        "is_read": bool(row.is_read),
        "created_at": _parse_ts(row.created_at),
        "scheduled_for": row.scheduled_for,
        "related_entity_id": row.related_entity_id,
        "related_account_id": row.related_account_id,
        "related_task_id": row.related_task_id,
        "details": row.details,
    }


def _entry_to_dict(entry: dict) -> dict:
    return {
        "id": entry["id"],
        "kind": "bulk",
        "type": entry.get("type"),
        "title": entry.get("title"),
        "message": entry.get("message"),
        "is_read": bool(entry.get("is_read")),
        "created_at": _parse_ts(entry.get("created_at")),
        "scheduled_for": _parse_ts(entry["scheduled_for"]) if entry.get("scheduled_for") else None,
        "related_entity_id": entry.get("related_entity_id"),
        "related_account_id": entry.get("related_account_id"),
        "related_task_id": entry.get("related_task_id"),
        "details": entry.get("details"),
    }


def list_notifications(
    db: Session,
    user_id: str,
    limit: int | None = None,
    unread_only: bool = False,
) -> list[dict]:
    """A user's per-entity rows and bulk entries, newest first."""
    if not user_id:
        raise ValueError("user_id is required")
    limit = limit or settings.notifications_default_limit
    if limit < 1:
        raise ValueError("limit must be positive")

    q = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    rows = [_row_to_dict(r) for r in q.order_by(Notification.created_at.desc()).limit(limit).all()]

    state = db.get(UserNotificationState, user_id)
    entries = [_entry_to_dict(e) for e in (state.notifications if state else []) or []]
    if unread_only:
        entries = [e for e in entries if not e["is_read"]]

    merged = sorted(rows + entries, key=lambda n: (n["created_at"], n["id"]), reverse=True)
    return merged[:limit]


def mark_read(db: Session, user_id: str, notification_id: str) -> bool:
    """Mark one notification (either shape) read. False if the user has no such id."""
    if not user_id:
        raise ValueError("user_id is required")
    notification_id = str(notification_id)

    if notification_id.isdigit():
        row = (
            db.query(Notification)
            .filter(Notification.id == int(notification_id), Notification.user_id == user_id)
            .first()
        )
        if not row:
            return False
        row.is_read = True
        return True

    state = db.get(UserNotificationState, user_id)
    if not state or not state.notifications:
        return False
    entries = [dict(e) for e in state.notifications]
    for entry in entries:
        if entry.get("id") == notification_id:
            entry["is_read"] = True
            state.notifications = entries
            return True
    return False


def mark_all_read(db: Session, user_id: str) -> int:
    if not user_id:
        raise ValueError("user_id is required")
    count = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session="fetch")
    )
    state = db.get(UserNotificationState, user_id)
    if state and state.notifications:
        unread = sum(1 for e in state.notifications if not e.get("is_read"))
        if unread:
            state.notifications = [{**e, "is_read": True} for e in state.notifications]
            count += unread
    return count
