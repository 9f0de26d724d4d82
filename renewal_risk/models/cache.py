"""Cache model — precomputed risk aggregates, invalidated on mutation."""

from sqlalchemy import JSON, Column, String

from ..database import UTCDateTime
from .base import Base


class NotificationCache(Base):
    """One cached payload per key. No TTL: rows are deleted when stale."""

    __tablename__ = "notification_cache"
    cache_key = Column(String(255), primary_key=True)
    payload = Column(JSON, nullable=False)
    computed_at = Column(UTCDateTime, nullable=False)
