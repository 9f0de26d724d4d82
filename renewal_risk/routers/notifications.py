"""
notifications.py — Notification feed and snooze API

Every endpoint is scoped by user_id; a user never reads or changes another
user's notifications. Service ValueErrors become 400s.

Called by: main.py (router mount)
Depends on: database, schemas/notifications, services/notification_service
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.notifications import MarkedRead, NotificationOut, SnoozeCreate, SnoozeOut
from ..services import notification_service as notifications

router = APIRouter()


@router.get("/api/notifications", response_model=list[NotificationOut])
async def list_notifications(
    user_id: str | None = None,
    limit: int | None = Query(None, ge=1, le=500),
    unread_only: bool = False,
    db: Session = Depends(get_db),
):
    """Per-entity and bulk notifications for one user, newest first."""
    try:
        return notifications.list_notifications(db, user_id, limit=limit, unread_only=unread_only)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/api/notifications/read-all", response_model=MarkedRead)
async def mark_all_read(user_id: str | None = None, db: Session = Depends(get_db)):
    try:
        marked = notifications.mark_all_read(db, user_id)
    except ValueError as e:
        raise HTTPException(400, str(e))
    db.commit()
    return {"marked": marked}


@router.post("/api/notifications/{notification_id}/read", response_model=MarkedRead)
async def mark_read(notification_id: str, user_id: str | None = None, db: Session = Depends(get_db)):
    try:
        found = notifications.mark_read(db, user_id, notification_id)
    except ValueError as e:
        raise HTTPException(400, str(e))
    if not found:
        raise HTTPException(404, "Notification not found")
    db.commit()
    return {"marked": 1}


# ── Snoozes ──────────────────────────────────────────────────────────


@router.get("/api/notifications/snoozes", response_model=list[SnoozeOut])
async def list_snoozes(
    user_id: str | None = None,
    include_expired: bool = False,
    db: Session = Depends(get_db),
):
    try:
        return notifications.list_snoozes(db, user_id, active_only=not include_expired)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/api/notifications/snoozes", response_model=SnoozeOut)
async def create_snooze(body: SnoozeCreate, db: Session = Depends(get_db)):
    """Snooze a target (account or task). Re-snoozing moves the end time."""
    try:
        snooze = notifications.create_snooze(
            db,
            body.user_id,
            body.target_id,
            body.snoozed_until,
            notification_type=body.notification_type,
        )
    except ValueError as e:
        raise HTTPException(400, str(e))
    db.commit()
    db.refresh(snooze)
    return snooze


@router.delete("/api/notifications/snoozes/{snooze_id}")
async def delete_snooze(snooze_id: int, user_id: str | None = None, db: Session = Depends(get_db)):
    try:
        deleted = notifications.delete_snooze(db, user_id, snooze_id)
    except ValueError as e:
        raise HTTPException(400, str(e))
    if not deleted:
        raise HTTPException(404, "Snooze not found")
    db.commit()
    return {"deleted": True}
