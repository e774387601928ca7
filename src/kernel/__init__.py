"""
Kernel Layer

Storage-facing foundations the assembly engine builds on:
- Data models (projects, shared resources, assignments, dependency edges)
- Resource repository (the persistence boundary, with transactions)
- Immutable Event Log (all mutations logged)

Architectural invariants:
- All state changes logged before commit; logs immutable
- Engines reach storage only through the repository
"""

from src.kernel.models import (
    Project,
    ProjectStatus,
    Agent,
    Rule,
    Hook,
    ResourceType,
    Assignment,
    ResourceDependency,
    DependencyKind,
    ExportRecord,
    EventLog,
    EventType,
)

__all__ = [
    # Project
    "Project",
    "ProjectStatus",
    # Resources
    "Agent",
    "Rule",
    "Hook",
    "ResourceType",
    # Assignments & dependencies
    "Assignment",
    "ResourceDependency",
    "DependencyKind",
    # Export
    "ExportRecord",
    # Event Log
    "EventLog",
    "EventType",
]
