"""
Project assignment endpoints.

All writes go through the ResourceAssigner, so every change is validated
against the post-change assignment set before it is stored.
"""

from typing import Annotated, List, Optional

from fastapi import APIRouter, Path, Query, status

from src.api.deps import Actor, Assigner
from src.engines.assembly import AssignmentOptions, pair_override
from src.kernel.errors import ValidationError
from src.kernel.models.resource import ResourceRef, ResourceType
from src.schemas.assignment import (
    AssignmentCreate,
    AssignmentResponse,
    AssignmentResultResponse,
    AssignmentUpdate,
    AvailableResourceResponse,
    ReorderRequest,
    UnassignResponse,
)

router = APIRouter()

ResourceId = Annotated[str, Path(min_length=1, max_length=32)]


def _parse_allow(project_ref: ResourceRef, allow: List[str]):
    """``allow`` keys name resources whose findings against ``project_ref`` may be ignored."""
    overrides = []
    for key in allow:
        try:
            other = ResourceRef.parse(key)
        except ValueError as exc:
            raise ValidationError(str(exc), details={"field": "allow", "value": key}) from exc
        if other != project_ref:
            overrides.append(pair_override(project_ref, other))
    return overrides


@router.post(
    "/projects/{project_id}/assignments",
    response_model=AssignmentResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_resource(
    project_id: int,
    data: AssignmentCreate,
    assigner: Assigner,
    actor: Actor,
):
    """
    Assign a shared resource to the project.

    Assigning a primary demotes the previous primary of the same type.
    Advisory findings come back with the result; blocking ones fail the call.
    """
    ref = ResourceRef(resource_type=data.resource_type, resource_id=data.resource_id)
    outcome = await assigner.assign(
        project_id,
        ref,
        AssignmentOptions(
            is_primary=data.is_primary,
            order=data.order,
            config_overrides=data.config_overrides,
            reason=data.reason,
            assigned_by=actor,
        ),
        overrides=[o.to_override() for o in data.overrides],
    )
    return AssignmentResultResponse(
        assignment=AssignmentResponse.model_validate(outcome.assignments[0]),
        demoted=[r.key for r in outcome.demoted],
        advisories=outcome.advisories,
    )


@router.get("/projects/{project_id}/assignments", response_model=List[AssignmentResponse])
async def list_assignments(
    project_id: int,
    assigner: Assigner,
    resource_type: Optional[ResourceType] = Query(None),
):
    """Assignments in render order: primary first, then by order."""
    assignments = await assigner.list_assignments(project_id, resource_type)
    return [AssignmentResponse.model_validate(a) for a in assignments]


@router.get(
    "/projects/{project_id}/available/{resource_type}",
    response_model=List[AvailableResourceResponse],
)
async def list_available(project_id: int, resource_type: ResourceType, assigner: Assigner):
    """Enabled resources of one type, flagged with whether this project uses them."""
    available = await assigner.available_resources(project_id, resource_type)
    return [
        AvailableResourceResponse(
            resource_type=item.ref.resource_type.value,
            resource_id=item.ref.resource_id,
            name=item.resource.name,
            description=item.resource.description or "",
            is_assigned=item.is_assigned,
            is_primary=item.is_primary,
        )
        for item in available
    ]


@router.patch(
    "/projects/{project_id}/assignments/{resource_type}/{resource_id}",
    response_model=AssignmentResponse,
)
async def configure_assignment(
    project_id: int,
    resource_type: ResourceType,
    resource_id: ResourceId,
    data: AssignmentUpdate,
    assigner: Assigner,
    actor: Actor,
):
    assignment = await assigner.configure(
        project_id,
        ResourceRef(resource_type=resource_type, resource_id=resource_id),
        config_overrides=data.config_overrides,
        reason=data.reason,
        make_primary=data.make_primary,
        actor=actor,
    )
    return AssignmentResponse.model_validate(assignment)


@router.delete(
    "/projects/{project_id}/assignments/{resource_type}/{resource_id}",
    response_model=UnassignResponse,
)
async def unassign_resource(
    project_id: int,
    resource_type: ResourceType,
    resource_id: ResourceId,
    assigner: Assigner,
    actor: Actor,
    allow: List[str] = Query([], description="type:id keys of dependents to leave unmet"),
):
    """Remove the assignment. The shared resource is not deleted."""
    ref = ResourceRef(resource_type=resource_type, resource_id=resource_id)
    report = await assigner.unassign(project_id, ref, overrides=_parse_allow(ref, allow), actor=actor)
    return UnassignResponse(removed=ref.key, advisories=report.advisory)


@router.put(
    "/projects/{project_id}/assignments/order",
    response_model=List[AssignmentResponse],
)
async def reorder_assignments(
    project_id: int,
    data: ReorderRequest,
    assigner: Assigner,
    actor: Actor,
):
    """Set the order of every assigned resource of one type."""
    assignments = await assigner.reorder(project_id, data.resource_type, data.ordered_ids, actor=actor)
    return [AssignmentResponse.model_validate(a) for a in assignments]
