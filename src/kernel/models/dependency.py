"""
Directed dependency edges between shared resources.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin, generate_id
from src.kernel.models.resource import ResourceType


class DependencyKind(str, Enum):
    """Relation declared by an edge.

    REQUIRES pulls its target in (when critical), ENHANCES only suggests it,
    CONFLICTS forbids co-assignment.
    """
    REQUIRES = "requires"
    ENHANCES = "enhances"
    CONFLICTS = "conflicts"


class ResourceDependency(Base, TimestampMixin):
    """Edge (source_type, source_id) -> (target_type, target_id), project independent."""

    __tablename__ = "resource_dependencies"
    __table_args__ = (
        UniqueConstraint(
            "source_resource_type", "source_resource_id",
            "target_resource_type", "target_resource_id",
            "dependency_type",
            name="uq_resource_dependencies_edge",
        ),
        Index("idx_resource_dependencies_source", "source_resource_type", "source_resource_id"),
        Index("idx_resource_dependencies_target", "target_resource_type", "target_resource_id"),
    )

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=generate_id,
    )
    source_resource_type: Mapped[ResourceType] = mapped_column(
        String(20),
        nullable=False,
    )
    source_resource_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    target_resource_type: Mapped[ResourceType] = mapped_column(
        String(20),
        nullable=False,
    )
    target_resource_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    dependency_type: Mapped[DependencyKind] = mapped_column(
        String(20),
        default=DependencyKind.REQUIRES,
        nullable=False,
    )
    is_critical: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    dependency_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<ResourceDependency {self.source_resource_type}:{self.source_resource_id} "
            f"-{self.dependency_type}-> {self.target_resource_type}:{self.target_resource_id}>"
        )
