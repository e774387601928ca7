"""
Pydantic schemas for API request/response validation.
"""

from src.schemas.common import (
    ErrorResponse,
    HealthResponse,
    OverridePair,
    PaginatedResponse,
    ResourceRefIn,
    SuccessResponse,
)
from src.schemas.project import (
    ProjectCreate,
    ProjectUpdate,
    ProjectResponse,
    ProjectListResponse,
    ProjectEventResponse,
)
from src.schemas.resource import (
    AgentCreate,
    AgentUpdate,
    AgentResponse,
    RuleCreate,
    RuleUpdate,
    RuleResponse,
    HookCreate,
    HookUpdate,
    HookResponse,
    DependencyCreate,
    DependencyResponse,
)
from src.schemas.assignment import (
    AssignmentCreate,
    AssignmentUpdate,
    AssignmentResponse,
    AssignmentResultResponse,
    AvailableResourceResponse,
    ReorderRequest,
    UnassignResponse,
)
from src.schemas.imports import (
    ImportApplyRequest,
    ImportPreviewRequest,
    ImportRejectRequest,
)
from src.schemas.export import (
    ExportBundleResponse,
    ExportedFileResponse,
    ExportRecordResponse,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "OverridePair",
    "PaginatedResponse",
    "ResourceRefIn",
    "SuccessResponse",
    "ProjectCreate",
    "ProjectUpdate",
    "ProjectResponse",
    "ProjectListResponse",
    "ProjectEventResponse",
    "AgentCreate",
    "AgentUpdate",
    "AgentResponse",
    "RuleCreate",
    "RuleUpdate",
    "RuleResponse",
    "HookCreate",
    "HookUpdate",
    "HookResponse",
    "DependencyCreate",
    "DependencyResponse",
    "AssignmentCreate",
    "AssignmentUpdate",
    "AssignmentResponse",
    "AssignmentResultResponse",
    "AvailableResourceResponse",
    "ReorderRequest",
    "UnassignResponse",
    "ImportApplyRequest",
    "ImportPreviewRequest",
    "ImportRejectRequest",
    "ExportBundleResponse",
    "ExportedFileResponse",
    "ExportRecordResponse",
]
