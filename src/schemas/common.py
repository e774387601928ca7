"""
Common schema types used across the API.
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator

from src.engines.assembly.types import ResourceOverride, pair_override
from src.kernel.models.resource import ResourceRef, ResourceType

T = TypeVar("T")


class ErrorResponse(BaseModel):
    """Standard error response."""
    
    detail: str
    code: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class SuccessResponse(BaseModel):
    """Standard success response."""
    
    message: str
    data: Optional[Any] = None


class PaginatedResponse(BaseModel, Generic[T]):
    """Paginated list response."""
    
    items: List[T]
    total: int
    page: int = 1
    page_size: int = 20
    has_more: bool = False
    
    @classmethod
    def create(
        cls,
        items: List[T],
        total: int,
        page: int = 1,
        page_size: int = 20,
    ) -> "PaginatedResponse[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            has_more=(page * page_size) < total,
        )


class HealthResponse(BaseModel):
    """Health check response."""
    
    status: str = "ok"
    version: str
    database: str = "connected"
    suggestions_configured: bool = False


class ResourceRefIn(BaseModel):
    """A (resource_type, resource_id) pair in a request body."""

    resource_type: ResourceType
    resource_id: str = Field(..., min_length=1, max_length=32)

    def to_ref(self) -> ResourceRef:
        return ResourceRef(resource_type=self.resource_type, resource_id=self.resource_id)


class OverridePair(BaseModel):
    """Two "type:id" keys the caller allows to coexist (or to stay unmet)."""

    resources: List[str] = Field(..., min_length=2, max_length=2)

    @field_validator("resources")
    @classmethod
    def validate_keys(cls, value: List[str]) -> List[str]:
        refs = [ResourceRef.parse(key) for key in value]
        if refs[0] == refs[1]:
            raise ValueError("an override names two different resources")
        return [ref.key for ref in refs]

    def to_override(self) -> ResourceOverride:
        first, second = (ResourceRef.parse(key) for key in self.resources)
        return pair_override(first, second)
