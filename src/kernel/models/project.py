"""
Project models.
"""

from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.kernel.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from src.kernel.models.assignment import Assignment, AssignmentOverride
    from src.kernel.models.export_record import ExportRecord


class ProjectStatus(str, Enum):
    """Project lifecycle status."""
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    ON_HOLD = "on_hold"


class ProjectPriority(str, Enum):
    """Project priority."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Project(Base, TimestampMixin):
    """Container that resources are assigned to and exported from."""
    
    __tablename__ = "projects"
    
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    slug: Mapped[str] = mapped_column(
        String(120),
        unique=True,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    description: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False,
    )
    project_info: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False,
    )
    status: Mapped[ProjectStatus] = mapped_column(
        String(20),
        default=ProjectStatus.ACTIVE,
        nullable=False,
    )
    priority: Mapped[ProjectPriority] = mapped_column(
        String(20),
        default=ProjectPriority.MEDIUM,
        nullable=False,
    )
    category: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    tags: Mapped[list] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    
    # Cross-project AI context
    ai_context_summary: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    include_in_ai_context: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    
    # Relationships
    assignments: Mapped[List["Assignment"]] = relationship(
        "Assignment",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    exports: Mapped[List["ExportRecord"]] = relationship(
        "ExportRecord",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    overrides: Mapped[List["AssignmentOverride"]] = relationship(
        "AssignmentOverride",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Project {self.slug}>"
