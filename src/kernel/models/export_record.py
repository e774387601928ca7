"""
Export history. Rows are written once per export and never updated.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.kernel.models.base import Base, TimestampMixin, generate_id

if TYPE_CHECKING:
    from src.kernel.models.project import Project


class ExportStatus(str, Enum):
    """Outcome of one export run."""
    COMPLETED = "completed"
    FAILED = "failed"


class ExportRecord(Base, TimestampMixin):
    """Immutable record of one export operation."""

    __tablename__ = "export_history"

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=generate_id,
    )
    project_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[ExportStatus] = mapped_column(
        String(20),
        nullable=False,
        index=True,
    )
    export_format: Mapped[str] = mapped_column(
        String(20),
        default="claude-code",
        nullable=False,
    )
    template_version: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    # ["agent:<id>", "rule:<id>", ...] in render order
    included_resources: Mapped[list] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    # [{"path": ..., "size_bytes": ...}, ...]
    file_manifest: Mapped[list] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    file_size: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    error_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    processing_started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    processing_completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    processing_duration_ms: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    exported_by: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
    )

    project: Mapped["Project"] = relationship(
        "Project",
        back_populates="exports",
    )

    def __repr__(self) -> str:
        return f"<ExportRecord project={self.project_id} {self.status}>"
