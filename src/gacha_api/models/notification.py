from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from gacha_api.db.base import Base


class NotificationCounter(Base):
    """Unread badge counter per user and notification type."""

    __tablename__ = "notification_counters"
    __table_args__ = (
        UniqueConstraint("user_id", "notification_type", name="uq_notification_counters_user_type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(String(64), nullable=False)
    notification_type = Column(String(32), nullable=False)
    unread_count = Column(Integer, nullable=False, default=0, server_default="0")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
