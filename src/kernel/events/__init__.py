"""
Audit infrastructure.

Provides append-only audit logging with immutable events.
"""

from src.kernel.events.event_store import EventStore
from src.kernel.events.event_types import (
    BaseEvent,
    ProjectEvent,
    ResourceEvent,
    AssignmentEvent,
    ImportEvent,
    ExportEvent,
)

__all__ = [
    "EventStore",
    "BaseEvent",
    "ProjectEvent",
    "ResourceEvent",
    "AssignmentEvent",
    "ImportEvent",
    "ExportEvent",
]
