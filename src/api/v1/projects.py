"""
Project endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter, Query, status

from src.api.deps import Actor, Events, Repository
from src.kernel.errors import NotFound
from src.kernel.events.event_types import ProjectEvent
from src.kernel.models.event_log import EventType
from src.kernel.models.project import Project, ProjectStatus
from src.schemas.common import PaginatedResponse, SuccessResponse
from src.schemas.project import (
    ProjectCreate,
    ProjectEventResponse,
    ProjectListResponse,
    ProjectResponse,
    ProjectUpdate,
)

router = APIRouter()


def _enum_val(e):
    """Safely get enum value (SQLite may return str)."""
    return e.value if hasattr(e, "value") else e


async def _get_project_or_404(repo: Repository, project_id: int) -> Project:
    project = await repo.get_project(project_id)
    if project is None:
        raise NotFound(f"Project {project_id} not found", details={"project_id": project_id})
    return project


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    repo: Repository,
    events: Events,
    actor: Actor,
):
    """Create a project. The slug is derived from the name and made unique."""

    async def _create() -> Project:
        project = Project(
            slug=await repo.unique_slug(data.name),
            **data.model_dump(),
        )
        await repo.add(project)
        await repo.flush()
        await events.log_from_model(
            event_type=EventType.PROJECT_CREATED,
            entity_type="project",
            entity_id=project.id,
            actor=actor,
            payload_model=ProjectEvent(slug=project.slug, status=_enum_val(project.status)),
        )
        return project

    project = await repo.run_in_transaction(_create)
    return ProjectResponse.model_validate(project)


@router.get("", response_model=PaginatedResponse[ProjectListResponse])
async def list_projects(
    repo: Repository,
    status_filter: Optional[ProjectStatus] = Query(None, alias="status", description="Filter by status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """List projects, most recently updated first."""
    projects = await repo.list_projects(status_filter.value if status_filter else None)
    window = projects[(page - 1) * page_size: page * page_size]
    counts = await repo.assignment_counts(p.id for p in window)

    items = [
        ProjectListResponse(
            id=p.id,
            slug=p.slug,
            name=p.name,
            status=_enum_val(p.status),
            priority=_enum_val(p.priority),
            category=p.category,
            tags=list(p.tags or []),
            assignment_count=counts.get(p.id, 0),
            updated_at=p.updated_at,
        )
        for p in window
    ]
    return PaginatedResponse.create(items=items, total=len(projects), page=page, page_size=page_size)


@router.get("/by-slug/{slug}", response_model=ProjectResponse)
async def get_project_by_slug(slug: str, repo: Repository):
    project = await repo.get_project_by_slug(slug)
    if project is None:
        raise NotFound(f"Project '{slug}' not found", details={"slug": slug})
    return ProjectResponse.model_validate(project)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(project_id: int, repo: Repository):
    return ProjectResponse.model_validate(await _get_project_or_404(repo, project_id))


@router.get("/{project_id}/events", response_model=List[ProjectEventResponse])
async def list_project_events(
    project_id: int,
    repo: Repository,
    events: Events,
    event_type: Optional[EventType] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """Audit trail of the project, newest first."""
    await _get_project_or_404(repo, project_id)
    history = await events.get_entity_history(
        "project",
        project_id,
        event_types=[event_type] if event_type else None,
        limit=limit,
        offset=offset,
    )
    return [ProjectEventResponse.model_validate(e) for e in history]


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: int,
    data: ProjectUpdate,
    repo: Repository,
    events: Events,
    actor: Actor,
):
    """Update project fields. Renaming regenerates the slug."""

    async def _update() -> Project:
        project = await _get_project_or_404(repo, project_id)
        changes = data.model_dump(exclude_unset=True)
        previous_status = _enum_val(project.status)

        if "name" in changes and changes["name"] != project.name:
            project.slug = await repo.unique_slug(changes["name"], exclude_id=project.id)
        for field, value in changes.items():
            setattr(project, field, value)
        await repo.flush()

        new_status = _enum_val(project.status)
        if new_status != previous_status:
            await events.log_from_model(
                event_type=EventType.PROJECT_STATUS_CHANGED,
                entity_type="project",
                entity_id=project.id,
                actor=actor,
                payload_model=ProjectEvent(status=new_status, previous_status=previous_status),
            )
        await events.log(
            event_type=EventType.PROJECT_UPDATED,
            entity_type="project",
            entity_id=project.id,
            actor=actor,
            payload={"changed_fields": sorted(changes)},
        )
        return project

    project = await repo.run_in_transaction(_update)
    return ProjectResponse.model_validate(project)


@router.delete("/{project_id}", response_model=SuccessResponse)
async def delete_project(
    project_id: int,
    repo: Repository,
    events: Events,
    actor: Actor,
):
    """Delete a project with its assignments and export history. Shared resources stay."""

    async def _delete() -> None:
        project = await _get_project_or_404(repo, project_id)
        await events.log_from_model(
            event_type=EventType.PROJECT_DELETED,
            entity_type="project",
            entity_id=project.id,
            actor=actor,
            payload_model=ProjectEvent(slug=project.slug),
        )
        await repo.remove(project)
        await repo.flush()

    await repo.run_in_transaction(_delete)
    return SuccessResponse(message="Project deleted", data={"project_id": project_id})
