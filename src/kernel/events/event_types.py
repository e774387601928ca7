"""
Event type definitions using Pydantic for validation.

These are the payload schemas for events logged to the audit trail.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BaseEvent(BaseModel):
    """Base event payload structure."""
    
    model_config = ConfigDict(extra="allow")
    
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ProjectEvent(BaseEvent):
    """Project-related event payloads."""
    
    slug: Optional[str] = None
    status: Optional[str] = None
    previous_status: Optional[str] = None


class ResourceEvent(BaseEvent):
    """Shared resource and dependency edge payloads."""
    
    resource_type: str
    name: Optional[str] = None
    changed_fields: List[str] = Field(default_factory=list)


class AssignmentEvent(BaseEvent):
    """Assignment change payloads."""
    
    project_id: int
    resources: List[str]
    is_primary: bool = False
    demoted: Optional[str] = None
    reason: Optional[str] = None


class ImportEvent(BaseEvent):
    """Bulk import payloads."""
    
    project_id: int
    plan_id: str
    seeds: List[str]
    added: List[str] = Field(default_factory=list)
    dependency_additions: List[str] = Field(default_factory=list)
    overrides: List[List[str]] = Field(default_factory=list)
    error: Optional[str] = None


class ExportEvent(BaseEvent):
    """Export payloads."""
    
    project_id: int
    template_version: str
    file_count: int = 0
    total_bytes: int = 0
    blocking_items: List[str] = Field(default_factory=list)
