"""
Export schemas.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ExportedFileResponse(BaseModel):
    path: str
    size_bytes: int


class ExportBundleResponse(BaseModel):
    """Rendered bundle returned inline."""

    project_id: int
    template_version: str
    generated_at: str
    record_id: Optional[str] = None
    resources: List[str] = Field(default_factory=list)
    manifest: List[ExportedFileResponse] = Field(default_factory=list)
    total_bytes: int = 0
    files: Dict[str, str] = Field(default_factory=dict)


class ExportRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: int
    status: str
    export_format: str
    template_version: str
    included_resources: List[str] = Field(default_factory=list)
    file_manifest: List[ExportedFileResponse] = Field(default_factory=list)
    file_size: int
    error_message: Optional[str] = None
    processing_started_at: datetime
    processing_completed_at: datetime
    processing_duration_ms: int
    exported_by: Optional[str] = None
