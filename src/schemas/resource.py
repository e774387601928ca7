"""
Shared resource and dependency edge schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.kernel.models.dependency import DependencyKind
from src.kernel.models.resource import HookEvent, ResourceType


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------

class AgentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    display_name: Optional[str] = Field(None, max_length=200)
    description: str = ""
    role: str = Field("", max_length=200)
    style: str = Field("", max_length=200)
    prompt_content: str = ""
    agent_config: Dict[str, Any] = Field(default_factory=dict)
    icon: Optional[str] = Field(None, max_length=16)
    category: Optional[str] = Field(None, max_length=100)
    is_enabled: bool = True


class AgentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    display_name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    role: Optional[str] = Field(None, max_length=200)
    style: Optional[str] = Field(None, max_length=200)
    prompt_content: Optional[str] = None
    agent_config: Optional[Dict[str, Any]] = None
    icon: Optional[str] = Field(None, max_length=16)
    category: Optional[str] = Field(None, max_length=100)
    is_enabled: Optional[bool] = None


class AgentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    display_name: Optional[str] = None
    description: str
    role: str
    style: str
    prompt_content: str
    agent_config: Dict[str, Any] = Field(default_factory=dict)
    icon: Optional[str] = None
    category: Optional[str] = None
    is_enabled: bool
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

class RuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    rule_content: str = Field(..., min_length=1)
    category: str = Field("general", min_length=1, max_length=100)
    priority: int = 0
    tags: List[str] = Field(default_factory=list)
    is_active: bool = True


class RuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    rule_content: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    priority: Optional[int] = None
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None


class RuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    rule_content: str
    category: str
    priority: int
    tags: List[str] = Field(default_factory=list)
    is_active: bool
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------

class HookCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    trigger: HookEvent
    tool_matcher: Optional[str] = Field(None, max_length=200)
    command: str = Field(..., min_length=1)
    working_directory: Optional[str] = Field(None, max_length=500)
    timeout_ms: int = Field(60000, ge=1000, le=600000)
    is_enabled: bool = True


class HookUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    trigger: Optional[HookEvent] = None
    tool_matcher: Optional[str] = Field(None, max_length=200)
    command: Optional[str] = Field(None, min_length=1)
    working_directory: Optional[str] = Field(None, max_length=500)
    timeout_ms: Optional[int] = Field(None, ge=1000, le=600000)
    is_enabled: Optional[bool] = None


class HookResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    trigger: str
    tool_matcher: Optional[str] = None
    command: str
    working_directory: Optional[str] = None
    timeout_ms: int
    is_enabled: bool
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Dependency edges
# ---------------------------------------------------------------------------

class DependencyCreate(BaseModel):
    source_resource_type: ResourceType
    source_resource_id: str = Field(..., min_length=1, max_length=32)
    target_resource_type: ResourceType
    target_resource_id: str = Field(..., min_length=1, max_length=32)
    dependency_type: DependencyKind = DependencyKind.REQUIRES
    is_critical: bool = True
    dependency_reason: Optional[str] = None

    @model_validator(mode="after")
    def reject_self_edge(self) -> "DependencyCreate":
        if (
            self.source_resource_type == self.target_resource_type
            and self.source_resource_id == self.target_resource_id
        ):
            raise ValueError("a resource cannot depend on itself")
        return self


class DependencyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    source_resource_type: str
    source_resource_id: str
    target_resource_type: str
    target_resource_id: str
    dependency_type: str
    is_critical: bool
    dependency_reason: Optional[str] = None
    created_at: datetime
