"""
Project-resource assignment (the Project x Resource join entity).
"""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, JSON, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.kernel.models.base import Base, TimestampMixin, generate_id
from src.kernel.models.resource import ResourceType

if TYPE_CHECKING:
    from src.kernel.models.project import Project


class Assignment(Base, TimestampMixin):
    """Links one project to one shared resource with project-local settings."""

    __tablename__ = "project_resources"
    __table_args__ = (
        UniqueConstraint(
            "project_id", "resource_type", "resource_id",
            name="uq_project_resources_identity",
        ),
        # At most one primary per (project, resource_type)
        Index(
            "uq_project_resources_primary",
            "project_id", "resource_type",
            unique=True,
            sqlite_where=text("is_primary"),
            postgresql_where=text("is_primary"),
        ),
    )

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
    resource_type: Mapped[ResourceType] = mapped_column(
        String(20),
        nullable=False,
    )
    resource_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    is_primary: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    assignment_order: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    config_overrides: Mapped[dict] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )
    assigned_by: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
    )
    assignment_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    project: Mapped["Project"] = relationship(
        "Project",
        back_populates="assignments",
    )

    def __repr__(self) -> str:
        return f"<Assignment project={self.project_id} {self.resource_type}:{self.resource_id}>"


class AssignmentOverride(Base, TimestampMixin):
    """A resource pair the caller explicitly allowed for one project.

    Suppresses the declared-conflict or critical-dependency finding for that
    pair on every later validation of the project. Keys are "type:id" strings
    stored in sorted order.
    """

    __tablename__ = "project_resource_overrides"
    __table_args__ = (
        UniqueConstraint(
            "project_id", "first_resource", "second_resource",
            name="uq_project_resource_overrides_pair",
        ),
    )

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
    first_resource: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    second_resource: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    granted_by: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
    )

    project: Mapped["Project"] = relationship(
        "Project",
        back_populates="overrides",
    )

    def __repr__(self) -> str:
        return f"<AssignmentOverride project={self.project_id} {self.first_resource}~{self.second_resource}>"
