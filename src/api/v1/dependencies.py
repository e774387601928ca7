"""
Dependency edge endpoints.

Edges are project independent: every project that assigns the source sees them.
"""

from typing import List, Optional

from fastapi import APIRouter, Query, status

from src.api.deps import Actor, Events, Repository
from src.engines.assembly import DependencyGraphResolver, ExpansionPlan
from src.engines.assembly.storage import load_available, load_edge_closure
from src.kernel.errors import InvariantViolation, NotFound, ValidationError
from src.kernel.events.event_types import ResourceEvent
from src.kernel.models.dependency import ResourceDependency
from src.kernel.models.event_log import EventType
from src.kernel.models.resource import ResourceRef, ResourceType
from src.schemas.common import ResourceRefIn, SuccessResponse
from src.schemas.resource import DependencyCreate, DependencyResponse

router = APIRouter()


@router.post("", response_model=DependencyResponse, status_code=status.HTTP_201_CREATED)
async def create_dependency(
    data: DependencyCreate,
    repo: Repository,
    events: Events,
    actor: Actor,
):
    """Declare an edge between two existing resources."""
    source = ResourceRef(resource_type=data.source_resource_type, resource_id=data.source_resource_id)
    target = ResourceRef(resource_type=data.target_resource_type, resource_id=data.target_resource_id)

    async def _create() -> ResourceDependency:
        found = await repo.get_resources([source, target])
        for ref in (source, target):
            if ref not in found:
                raise NotFound(f"{ref.key} not found", details={"resource": ref.key})

        for edge in await repo.list_dependency_edges([source]):
            if (
                edge.target_resource_type == target.resource_type
                and edge.target_resource_id == target.resource_id
                and edge.dependency_type == data.dependency_type
            ):
                raise InvariantViolation(
                    f"{source.key} already {data.dependency_type.value} {target.key}",
                    invariant="unique_edge",
                    details={"dependency_id": edge.id},
                )

        dependency = ResourceDependency(**data.model_dump())
        await repo.add(dependency)
        await repo.flush()
        await events.log_from_model(
            event_type=EventType.DEPENDENCY_CREATED,
            entity_type="dependency",
            entity_id=dependency.id,
            actor=actor,
            payload_model=ResourceEvent(
                resource_type="dependency",
                name=f"{source.key} -{data.dependency_type.value}-> {target.key}",
            ),
        )
        return dependency

    return DependencyResponse.model_validate(await repo.run_in_transaction(_create))


@router.get("", response_model=List[DependencyResponse])
async def list_dependencies(
    repo: Repository,
    source_type: Optional[ResourceType] = Query(None),
    source_id: Optional[str] = Query(None, min_length=1, max_length=32),
):
    """All edges, or the outgoing edges of one resource."""
    if (source_type is None) != (source_id is None):
        raise ValidationError(
            "source_type and source_id must be given together",
            details={"field": "source_type" if source_type is None else "source_id"},
        )
    sources = None
    if source_type is not None:
        sources = [ResourceRef(resource_type=source_type, resource_id=source_id)]
    edges = await repo.list_dependency_edges(sources)
    return [DependencyResponse.model_validate(e) for e in edges]


@router.delete("/{dependency_id}", response_model=SuccessResponse)
async def delete_dependency(
    dependency_id: str,
    repo: Repository,
    events: Events,
    actor: Actor,
):
    async def _delete() -> None:
        dependency = await repo.get_dependency(dependency_id)
        if dependency is None:
            raise NotFound(f"Dependency {dependency_id} not found", details={"dependency_id": dependency_id})
        await events.log(
            event_type=EventType.DEPENDENCY_DELETED,
            entity_type="dependency",
            entity_id=dependency_id,
            actor=actor,
        )
        await repo.remove(dependency)
        await repo.flush()

    await repo.run_in_transaction(_delete)
    return SuccessResponse(message="Dependency deleted", data={"dependency_id": dependency_id})


@router.post("/resolve", response_model=ExpansionPlan)
async def resolve_dependencies(
    seeds: List[ResourceRefIn],
    repo: Repository,
    follow_enhancements: bool = Query(False),
):
    """Dependency closure of a resource selection, outside any project."""
    if not seeds:
        raise ValidationError("Give at least one resource", details={"field": "seeds"})
    refs = [s.to_ref() for s in seeds]
    edges = await load_edge_closure(repo, refs)
    available, _ = await load_available(repo, {e.target for e in edges} | set(refs))
    return DependencyGraphResolver().resolve(
        refs, edges, available=available, follow_enhancements=follow_enhancements,
    )
