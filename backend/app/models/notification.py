from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.sql import func

from app.core.database import Base, JSONType


class Notification(Base):
    """In-app notification row written by InAppNotificationDispatcher."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, index=True)
    recipient_user_id = Column(String(64), nullable=False, index=True)
    kind = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    related_entity = Column(String(64), nullable=True)
    data = Column(JSONType, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
