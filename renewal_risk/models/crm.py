"""CRM models — Accounts, Estimates, Interactions, Tasks.

These tables are owned by the CRUD layer; the renewal engine only reads
them. Writes made through any Session still invalidate the risk cache
(see cache/invalidation.py).
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class Account(Base):
    """Customer account — the unit risk is aggregated to."""

    __tablename__ = "accounts"
    id = Column(String(100), primary_key=True)
    name = Column(String(255), nullable=False)
    archived = Column(Boolean, default=False, nullable=False)
    icp_status = Column(String(20))  # required | na | None
    revenue_segment = Column(String(5))  # A | B | C | D
    owner_id = Column(String(64), ForeignKey("users.id"))
    notes = Column(Text)

    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    estimates = relationship(
        "Estimate", back_populates="account", cascade="all, delete-orphan", passive_deletes=True
    )
    interactions = relationship(
        "Interaction", back_populates="account", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_accounts_archived", "archived"),
        Index("ix_accounts_owner", "owner_id"),
    )


class Estimate(Base):
    """Sales estimate / contract imported from the estimating system."""

    __tablename__ = "estimates"
    id = Column(String(100), primary_key=True)
    account_id = Column(
        String(100), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    estimate_number = Column(String(100))
    division = Column(String(255))  # department label, free text
    address = Column(String(500))  # site address, free text
    status = Column(String(100))
    pipeline_status = Column(String(100))
    contract_start = Column(Date)
    contract_end = Column(Date)
    archived = Column(Boolean, default=False, nullable=False)

    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    account = relationship("Account", back_populates="estimates")

    __table_args__ = (
        Index("ix_estimates_account", "account_id"),
        Index("ix_estimates_account_archived", "account_id", "archived"),
    )


class Interaction(Base):
    """Logged touchpoint with an account (call, email, meeting...)."""

    __tablename__ = "interactions"
    id = Column(String(100), primary_key=True)
    account_id = Column(
        String(100), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    kind = Column(String(50))  # call | email | meeting | note
    occurred_at = Column(UTCDateTime, nullable=False)

    account = relationship("Account", back_populates="interactions")

    __table_args__ = (Index("ix_interactions_account_time", "account_id", "occurred_at"),)


class Task(Base):
    """Follow-up task. Drives the per-entity task notifications."""

    __tablename__ = "tasks"
    id = Column(String(100), primary_key=True)
    title = Column(String(500), nullable=False)
    due_date = Column(Date)
    status = Column(String(30), default="todo")  # todo | in_progress | completed
    assigned_to = Column(Text)  # comma-separated user emails
    related_account_id = Column(String(100), ForeignKey("accounts.id", ondelete="SET NULL"))

    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_tasks_status_due", "status", "due_date"),)
