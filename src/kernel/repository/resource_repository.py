"""
Resource repository - the only way engines reach storage.

``ResourceRepository`` is the contract (no business rules live here);
``SqlResourceRepository`` implements it on one request-scoped AsyncSession.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.errors import AssemblyError, StorageTransactionFailed
from src.kernel.models.assignment import Assignment, AssignmentOverride
from src.kernel.models.dependency import ResourceDependency
from src.kernel.models.export_record import ExportRecord
from src.kernel.models.project import Project
from src.kernel.models.resource import (
    RESOURCE_MODELS,
    Resource,
    ResourceRef,
    ResourceType,
)
from src.kernel.slugs import slugify
from src.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ResourceRepository(ABC):
    """Storage contract consumed by the assembly engine."""

    @abstractmethod
    async def get_project(self, project_id: int) -> Optional[Project]:
        ...

    @abstractmethod
    async def get_resource(self, ref: ResourceRef) -> Optional[Resource]:
        ...

    @abstractmethod
    async def get_resources(self, refs: Iterable[ResourceRef]) -> Dict[ResourceRef, Resource]:
        ...

    @abstractmethod
    async def list_assignments(
        self,
        project_id: int,
        resource_type: Optional[ResourceType] = None,
    ) -> List[Assignment]:
        ...

    @abstractmethod
    async def list_resources(
        self,
        resource_type: ResourceType,
        include_disabled: bool = False,
    ) -> List[Resource]:
        ...

    @abstractmethod
    async def list_overrides(self, project_id: int) -> List[AssignmentOverride]:
        ...

    @abstractmethod
    async def delete_overrides_mentioning(self, project_id: int, ref: ResourceRef) -> None:
        ...

    @abstractmethod
    async def list_dependency_edges(
        self,
        sources: Optional[Iterable[ResourceRef]] = None,
    ) -> List[ResourceDependency]:
        """Edges whose source is one of ``sources`` (every edge when None)."""

    @abstractmethod
    async def list_export_records(self, project_id: int, limit: int = 50) -> List[ExportRecord]:
        ...

    @abstractmethod
    async def add(self, entity) -> None:
        ...

    @abstractmethod
    async def remove(self, entity) -> None:
        ...

    @abstractmethod
    async def flush(self) -> None:
        ...

    @abstractmethod
    async def run_in_transaction(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` atomically: commit on success, roll back on any error."""


class SqlResourceRepository(ResourceRepository):
    """
    SQLAlchemy implementation on a single AsyncSession.

    Usage:
        repo = SqlResourceRepository(session)
        assignment = await repo.run_in_transaction(lambda: assigner.stage(...))
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._depth = 0

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def run_in_transaction(self, fn: Callable[[], Awaitable[T]]) -> T:
        # Nested calls join the outermost transaction
        if self._depth:
            return await fn()

        self._depth += 1
        try:
            result = await fn()
            await self.session.commit()
            return result
        except AssemblyError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error(
                "Storage transaction rolled back",
                extra={"error_type": type(exc).__name__},
            )
            raise StorageTransactionFailed(
                f"Storage transaction failed: {type(exc).__name__}",
                details={"error_type": type(exc).__name__},
            ) from exc
        except Exception:
            await self.session.rollback()
            raise
        finally:
            self._depth -= 1

    async def add(self, entity) -> None:
        self.session.add(entity)

    async def remove(self, entity) -> None:
        await self.session.delete(entity)

    async def flush(self) -> None:
        await self.session.flush()

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def get_project(self, project_id: int) -> Optional[Project]:
        result = await self.session.execute(
            select(Project)
            .where(Project.id == project_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_project_by_slug(self, slug: str) -> Optional[Project]:
        result = await self.session.execute(
            select(Project)
            .where(Project.slug == slug)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_projects(self, status: Optional[str] = None) -> List[Project]:
        query = select(Project)
        if status:
            query = query.where(Project.status == status)
        query = query.order_by(Project.updated_at.desc(), Project.id.desc())
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def unique_slug(self, name: str, exclude_id: Optional[int] = None) -> str:
        """Slug of ``name``, suffixed -1, -2, ... until no other project uses it."""
        base = slugify(name, fallback="project")
        slug = base
        counter = 1
        while True:
            query = select(Project.id).where(Project.slug == slug)
            if exclude_id is not None:
                query = query.where(Project.id != exclude_id)
            existing = (await self.session.execute(query)).first()
            if not existing:
                return slug
            slug = f"{base}-{counter}"
            counter += 1

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    async def get_resource(self, ref: ResourceRef) -> Optional[Resource]:
        model = RESOURCE_MODELS[ref.resource_type]
        result = await self.session.execute(
            select(model)
            .where(model.id == ref.resource_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_resources(self, refs: Iterable[ResourceRef]) -> Dict[ResourceRef, Resource]:
        by_type: Dict[ResourceType, List[str]] = defaultdict(list)
        for ref in refs:
            by_type[ref.resource_type].append(ref.resource_id)

        found: Dict[ResourceRef, Resource] = {}
        for resource_type, ids in by_type.items():
            model = RESOURCE_MODELS[resource_type]
            result = await self.session.execute(
                select(model)
                .where(model.id.in_(ids))
                .execution_options(populate_existing=True)
            )
            for resource in result.scalars().all():
                found[ResourceRef.of(resource)] = resource
        return found

    async def list_resources(
        self,
        resource_type: ResourceType,
        include_disabled: bool = False,
    ) -> List[Resource]:
        model = RESOURCE_MODELS[resource_type]
        query = select(model)
        if not include_disabled:
            flag = model.is_active if resource_type == ResourceType.RULE else model.is_enabled
            query = query.where(flag.is_(True))
        query = query.order_by(model.name, model.id)
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def delete_resource(self, resource: Resource) -> int:
        """Delete a shared resource with its assignments and edges. Returns assignments removed."""
        ref = ResourceRef.of(resource)
        removed = await self.session.execute(
            delete(Assignment).where(
                and_(
                    Assignment.resource_type == ref.resource_type,
                    Assignment.resource_id == ref.resource_id,
                )
            )
        )
        await self.session.execute(
            delete(ResourceDependency).where(
                or_(
                    and_(
                        ResourceDependency.source_resource_type == ref.resource_type,
                        ResourceDependency.source_resource_id == ref.resource_id,
                    ),
                    and_(
                        ResourceDependency.target_resource_type == ref.resource_type,
                        ResourceDependency.target_resource_id == ref.resource_id,
                    ),
                )
            )
        )
        await self.session.execute(
            delete(AssignmentOverride).where(
                or_(
                    AssignmentOverride.first_resource == ref.key,
                    AssignmentOverride.second_resource == ref.key,
                )
            )
        )
        await self.session.delete(resource)
        return removed.rowcount or 0

    async def assignment_counts(self, project_ids: Iterable[int]) -> Dict[int, int]:
        """Assignments per project for list views."""
        ids = list(project_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(Assignment.project_id, func.count(Assignment.id))
            .where(Assignment.project_id.in_(ids))
            .group_by(Assignment.project_id)
        )
        return {project_id: count for project_id, count in result.all()}

    async def count_assignments_of(self, ref: ResourceRef) -> int:
        """How many projects share this resource."""
        result = await self.session.execute(
            select(func.count(Assignment.id)).where(
                and_(
                    Assignment.resource_type == ref.resource_type,
                    Assignment.resource_id == ref.resource_id,
                )
            )
        )
        return result.scalar() or 0

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    async def list_assignments(
        self,
        project_id: int,
        resource_type: Optional[ResourceType] = None,
    ) -> List[Assignment]:
        query = select(Assignment).where(Assignment.project_id == project_id)
        if resource_type is not None:
            query = query.where(Assignment.resource_type == resource_type)
        query = query.order_by(
            Assignment.resource_type,
            Assignment.is_primary.desc(),
            Assignment.assignment_order,
            Assignment.resource_id,
        )
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def list_overrides(self, project_id: int) -> List[AssignmentOverride]:
        result = await self.session.execute(
            select(AssignmentOverride)
            .where(AssignmentOverride.project_id == project_id)
            .order_by(AssignmentOverride.first_resource, AssignmentOverride.second_resource)
        )
        return list(result.scalars().all())

    async def delete_overrides_mentioning(self, project_id: int, ref: ResourceRef) -> None:
        await self.session.execute(
            delete(AssignmentOverride).where(
                and_(
                    AssignmentOverride.project_id == project_id,
                    or_(
                        AssignmentOverride.first_resource == ref.key,
                        AssignmentOverride.second_resource == ref.key,
                    ),
                )
            )
        )

    # ------------------------------------------------------------------
    # Dependency edges
    # ------------------------------------------------------------------

    async def list_dependency_edges(
        self,
        sources: Optional[Iterable[ResourceRef]] = None,
    ) -> List[ResourceDependency]:
        query = select(ResourceDependency)
        if sources is not None:
            refs = list(sources)
            if not refs:
                return []
            query = query.where(
                or_(*[
                    and_(
                        ResourceDependency.source_resource_type == ref.resource_type,
                        ResourceDependency.source_resource_id == ref.resource_id,
                    )
                    for ref in refs
                ])
            )
        query = query.order_by(
            ResourceDependency.source_resource_id,
            ResourceDependency.target_resource_id,
            ResourceDependency.dependency_type,
            ResourceDependency.id,
        )
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def get_dependency(self, dependency_id: str) -> Optional[ResourceDependency]:
        return await self.session.get(ResourceDependency, dependency_id)

    # ------------------------------------------------------------------
    # Export history
    # ------------------------------------------------------------------

    async def list_export_records(self, project_id: int, limit: int = 50) -> List[ExportRecord]:
        result = await self.session.execute(
            select(ExportRecord)
            .where(ExportRecord.project_id == project_id)
            .order_by(ExportRecord.processing_started_at.desc(), ExportRecord.id)
            .limit(limit)
        )
        return list(result.scalars().all())
