"""
Kernel Data Models

Core SQLAlchemy models: projects, shared resources, the assignment join,
dependency edges, export history and the audit log.
"""

from src.kernel.models.base import Base, TimestampMixin, generate_id, utcnow
from src.kernel.models.project import Project, ProjectStatus, ProjectPriority
from src.kernel.models.resource import (
    Agent,
    Rule,
    Hook,
    HookEvent,
    Resource,
    ResourceType,
    ResourceRef,
    RESOURCE_MODELS,
    sort_refs,
)
from src.kernel.models.assignment import Assignment, AssignmentOverride
from src.kernel.models.dependency import ResourceDependency, DependencyKind
from src.kernel.models.export_record import ExportRecord, ExportStatus
from src.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_id",
    "utcnow",
    # Project
    "Project",
    "ProjectStatus",
    "ProjectPriority",
    # Resources
    "Agent",
    "Rule",
    "Hook",
    "HookEvent",
    "Resource",
    "ResourceType",
    "ResourceRef",
    "RESOURCE_MODELS",
    "sort_refs",
    # Assignment
    "Assignment",
    "AssignmentOverride",
    # Dependencies
    "ResourceDependency",
    "DependencyKind",
    # Export
    "ExportRecord",
    "ExportStatus",
    # Event Log
    "EventLog",
    "EventType",
]
