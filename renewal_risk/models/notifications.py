"""Notification models — per-entity rows, per-user bulk lists, snoozes."""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from ..database import UTCDateTime
from .base import Base


class Notification(Base):
    """Per-entity notification: one row per (user, type, related entity).

    Task events and duplicate at-risk estimate alerts live here. Re-firing
    the same fact refreshes the row in place.
    """

    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(50), nullable=False)
    related_entity_id = Column(String(100))
    related_account_id = Column(String(100))
    related_task_id = Column(String(100))
    title = Column(String(500), nullable=False)
    message = Column(Text)
    details = Column(JSON)
    is_read = Column(Boolean, default=False, nullable=False)
    scheduled_for = Column(UTCDateTime)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "type", "related_entity_id", name="uq_notification_user_type_entity"),
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_user_unread", "user_id", "is_read"),
    )


class UserNotificationState(Base):
    """Bulk notifications for one user, stored as a single JSON list.

    The list is replaced wholesale by every refresh run.
    """

    __tablename__ = "user_notification_states"
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    notifications = Column(JSON, nullable=False, default=list)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class NotificationSnooze(Base):
    """User-scoped suppression of notifications about one target.

    notification_type NULL means every notification kind for the target.
    """

    __tablename__ = "notification_snoozes"
    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    notification_type = Column(String(50))
    target_id = Column(String(100), nullable=False)
    snoozed_until = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "notification_type", "target_id", name="uq_snooze_user_type_target"),
        Index("ix_snoozes_until", "snoozed_until"),
    )
