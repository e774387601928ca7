"""
Shared resource endpoints: agents, rules and hooks.

The three resource kinds share one set of CRUD routes, registered per kind.
"""

from typing import Annotated, Type

from fastapi import APIRouter, Path, Query, status
from pydantic import BaseModel

from src.api.deps import Actor, Events, Repository
from src.kernel.errors import NotFound
from src.kernel.events.event_types import ResourceEvent
from src.kernel.models.event_log import EventType
from src.kernel.models.resource import RESOURCE_MODELS, ResourceRef, ResourceType
from src.schemas.common import SuccessResponse
from src.schemas.resource import (
    AgentCreate,
    AgentResponse,
    AgentUpdate,
    HookCreate,
    HookResponse,
    HookUpdate,
    RuleCreate,
    RuleResponse,
    RuleUpdate,
)

router = APIRouter()

ResourceId = Annotated[str, Path(min_length=1, max_length=32)]


async def _get_resource_or_404(repo: Repository, ref: ResourceRef):
    resource = await repo.get_resource(ref)
    if resource is None:
        raise NotFound(f"{ref.key} not found", details={"resource": ref.key})
    return resource


def _register(
    path: str,
    resource_type: ResourceType,
    create_schema: Type[BaseModel],
    update_schema: Type[BaseModel],
    response_schema: Type[BaseModel],
) -> None:
    model = RESOURCE_MODELS[resource_type]
    label = resource_type.value

    @router.post(
        f"/{path}",
        response_model=response_schema,
        status_code=status.HTTP_201_CREATED,
        name=f"create_{label}",
    )
    async def create(data: create_schema, repo: Repository, events: Events, actor: Actor):  # type: ignore[valid-type]
        async def _create():
            resource = model(**data.model_dump())
            await repo.add(resource)
            await repo.flush()
            await events.log_from_model(
                event_type=EventType.RESOURCE_CREATED,
                entity_type=label,
                entity_id=resource.id,
                actor=actor,
                payload_model=ResourceEvent(resource_type=label, name=resource.name),
            )
            return resource

        return response_schema.model_validate(await repo.run_in_transaction(_create))

    @router.get(f"/{path}", response_model=list[response_schema], name=f"list_{label}s")
    async def list_all(
        repo: Repository,
        include_disabled: bool = Query(False, description="Include disabled resources"),
    ):
        resources = await repo.list_resources(resource_type, include_disabled=include_disabled)
        return [response_schema.model_validate(r) for r in resources]

    @router.get(f"/{path}/{{resource_id}}", response_model=response_schema, name=f"get_{label}")
    async def get_one(resource_id: ResourceId, repo: Repository):
        ref = ResourceRef(resource_type=resource_type, resource_id=resource_id)
        return response_schema.model_validate(await _get_resource_or_404(repo, ref))

    @router.patch(f"/{path}/{{resource_id}}", response_model=response_schema, name=f"update_{label}")
    async def update(
        resource_id: ResourceId,
        data: update_schema,  # type: ignore[valid-type]
        repo: Repository,
        events: Events,
        actor: Actor,
    ):
        ref = ResourceRef(resource_type=resource_type, resource_id=resource_id)

        async def _update():
            resource = await _get_resource_or_404(repo, ref)
            changes = data.model_dump(exclude_unset=True)
            for field, value in changes.items():
                setattr(resource, field, value)
            await repo.flush()
            await events.log_from_model(
                event_type=EventType.RESOURCE_UPDATED,
                entity_type=label,
                entity_id=resource.id,
                actor=actor,
                payload_model=ResourceEvent(
                    resource_type=label,
                    name=resource.name,
                    changed_fields=sorted(changes),
                ),
            )
            return resource

        return response_schema.model_validate(await repo.run_in_transaction(_update))

    @router.delete(f"/{path}/{{resource_id}}", response_model=SuccessResponse, name=f"delete_{label}")
    async def delete(resource_id: ResourceId, repo: Repository, events: Events, actor: Actor):
        """Delete the shared resource everywhere: its assignments and edges go with it."""
        ref = ResourceRef(resource_type=resource_type, resource_id=resource_id)

        async def _delete() -> int:
            resource = await _get_resource_or_404(repo, ref)
            removed = await repo.delete_resource(resource)
            await events.log_from_model(
                event_type=EventType.RESOURCE_DELETED,
                entity_type=label,
                entity_id=resource_id,
                actor=actor,
                payload_model=ResourceEvent(
                    resource_type=label,
                    name=resource.name,
                    metadata={"assignments_removed": removed},
                ),
            )
            await repo.flush()
            return removed

        removed = await repo.run_in_transaction(_delete)
        return SuccessResponse(
            message=f"{label.capitalize()} deleted",
            data={"resource": ref.key, "assignments_removed": removed},
        )

    @router.get(f"/{path}/{{resource_id}}/usage", name=f"{label}_usage")
    async def usage(resource_id: ResourceId, repo: Repository):
        """How many projects currently use this resource."""
        ref = ResourceRef(resource_type=resource_type, resource_id=resource_id)
        await _get_resource_or_404(repo, ref)
        return {"resource": ref.key, "project_count": await repo.count_assignments_of(ref)}


_register("agents", ResourceType.AGENT, AgentCreate, AgentUpdate, AgentResponse)
_register("rules", ResourceType.RULE, RuleCreate, RuleUpdate, RuleResponse)
_register("hooks", ResourceType.HOOK, HookCreate, HookUpdate, HookResponse)
