"""Audit log model."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String

from cafe_ops.db.base import Base


class AuditLogEntry(Base):
    """Audit log entry."""
    __tablename__ = "audit_log_entries"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(String(100), nullable=True, index=True)  # device id
    actor_role = Column(String(50), nullable=True)
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(50), nullable=True, index=True)
    entity_id = Column(String(50), nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), index=True)
