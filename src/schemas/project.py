"""
Project schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.kernel.models.project import ProjectPriority, ProjectStatus


class ProjectCreate(BaseModel):
    """Project creation request."""
    
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    project_info: str = ""
    status: ProjectStatus = ProjectStatus.ACTIVE
    priority: ProjectPriority = ProjectPriority.MEDIUM
    category: Optional[str] = Field(None, max_length=100)
    tags: List[str] = Field(default_factory=list)
    ai_context_summary: Optional[str] = None
    include_in_ai_context: bool = True


class ProjectUpdate(BaseModel):
    """Project update request. Omitted fields are left unchanged."""
    
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    project_info: Optional[str] = None
    status: Optional[ProjectStatus] = None
    priority: Optional[ProjectPriority] = None
    category: Optional[str] = Field(None, max_length=100)
    tags: Optional[List[str]] = None
    ai_context_summary: Optional[str] = None
    include_in_ai_context: Optional[bool] = None


class ProjectResponse(BaseModel):
    """Project response."""
    
    model_config = ConfigDict(from_attributes=True)
    
    id: int
    slug: str
    name: str
    description: str
    project_info: str
    status: str
    priority: str
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    ai_context_summary: Optional[str] = None
    include_in_ai_context: bool = True
    created_at: datetime
    updated_at: datetime


class ProjectListResponse(BaseModel):
    """Project list item response."""
    
    id: int
    slug: str
    name: str
    status: str
    priority: str
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    assignment_count: int = 0
    updated_at: datetime


class ProjectEventResponse(BaseModel):
    """One audit trail entry of a project."""
    
    model_config = ConfigDict(from_attributes=True)
    
    id: str
    event_type: str
    actor: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    request_id: Optional[str] = None
    created_at: datetime
