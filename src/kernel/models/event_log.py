"""
Immutable event log for audit trail.

All state mutations are logged here BEFORE commit.
This implements the append-only audit requirement.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, String, func, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, generate_id, utcnow


class EventType(str, Enum):
    """All event types for the audit log."""
    
    # Project events
    PROJECT_CREATED = "project.created"
    PROJECT_UPDATED = "project.updated"
    PROJECT_DELETED = "project.deleted"
    PROJECT_STATUS_CHANGED = "project.status_changed"
    
    # Resource events
    RESOURCE_CREATED = "resource.created"
    RESOURCE_UPDATED = "resource.updated"
    RESOURCE_DELETED = "resource.deleted"
    DEPENDENCY_CREATED = "dependency.created"
    DEPENDENCY_DELETED = "dependency.deleted"
    
    # Assignment events
    RESOURCE_ASSIGNED = "assignment.created"
    RESOURCE_UNASSIGNED = "assignment.deleted"
    PRIMARY_DEMOTED = "assignment.primary_demoted"
    ASSIGNMENTS_REORDERED = "assignment.reordered"
    
    # Import events
    IMPORT_APPLIED = "import.applied"
    IMPORT_ROLLED_BACK = "import.rolled_back"
    
    # Export events
    EXPORT_COMPLETED = "export.completed"
    EXPORT_BLOCKED = "export.blocked"


class EventLog(Base):
    """
    Immutable audit event log.
    
    This table is append-only - no updates or deletes allowed.
    All significant actions must be logged here before committing.
    """
    
    __tablename__ = "event_logs"
    
    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=generate_id,
    )
    
    # Event identification
    event_type: Mapped[EventType] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    
    # Entity reference; project ids are integers, resource ids hex strings
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    entity_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )
    
    # Actor (free-form; authentication lives outside this service)
    actor: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
    )
    
    # Event data
    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    
    request_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    
    # Timestamp (immutable)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    
    __table_args__ = (
        Index("ix_event_logs_entity", "entity_type", "entity_id"),
        Index("ix_event_logs_type_time", "event_type", "created_at"),
    )
    
    def __repr__(self) -> str:
        return f"<EventLog {self.event_type} {self.entity_type}:{self.entity_id}>"
