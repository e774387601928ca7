"""
Assignment schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.engines.assembly.types import ConflictFinding
from src.kernel.models.resource import ResourceType
from src.schemas.common import OverridePair


class AssignmentCreate(BaseModel):
    """Assign one shared resource to a project."""

    resource_type: ResourceType
    resource_id: str = Field(..., min_length=1, max_length=32)
    is_primary: bool = False
    order: Optional[int] = Field(None, ge=0)
    config_overrides: Dict[str, Any] = Field(default_factory=dict)
    reason: Optional[str] = None
    overrides: List[OverridePair] = Field(default_factory=list)


class AssignmentUpdate(BaseModel):
    """Change project-local settings of an existing assignment."""

    config_overrides: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    make_primary: bool = False


class ReorderRequest(BaseModel):
    """New order of every assigned resource of one type."""

    resource_type: ResourceType
    ordered_ids: List[str]


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: int
    resource_type: str
    resource_id: str
    is_primary: bool
    assignment_order: int
    config_overrides: Dict[str, Any] = Field(default_factory=dict)
    assigned_by: Optional[str] = None
    assignment_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AssignmentResultResponse(BaseModel):
    """Created assignment plus what the change did around it."""

    assignment: AssignmentResponse
    demoted: List[str] = Field(default_factory=list)
    advisories: List[ConflictFinding] = Field(default_factory=list)


class UnassignResponse(BaseModel):
    removed: str
    advisories: List[ConflictFinding] = Field(default_factory=list)


class AvailableResourceResponse(BaseModel):
    resource_type: str
    resource_id: str
    name: str
    description: str = ""
    is_assigned: bool
    is_primary: bool = False
