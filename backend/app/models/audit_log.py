from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from app.core.database import Base, JSONType


class AuditLog(Base):
    """Administrative and anomaly events that are not part of the fee schedule trail."""

    __tablename__ = "audit_log"

    id = Column(String(36), primary_key=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    actor_type = Column(String(50), nullable=True)  # admin, processor, system
    actor_id = Column(String(64), nullable=True, index=True)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(36), nullable=True, index=True)
    details = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
