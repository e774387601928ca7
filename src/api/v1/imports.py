"""
Bulk import endpoints.

Plans are not stored server side: preview returns the plan and the client
posts it back to apply or reject it. Apply re-validates against the live
assignment set, so a plan that went stale in between is refused.
"""

from fastapi import APIRouter

from src.api.deps import Actor, Orchestrator
from src.engines.assembly import ImportPlan
from src.kernel.errors import ValidationError
from src.schemas.imports import ImportApplyRequest, ImportPreviewRequest, ImportRejectRequest

router = APIRouter()


def _plan_for(project_id: int, plan: ImportPlan) -> ImportPlan:
    if plan.project_id != project_id:
        raise ValidationError(
            f"Plan {plan.id} belongs to project {plan.project_id}",
            details={"plan_id": plan.id, "project_id": project_id},
        )
    return plan


@router.post("/projects/{project_id}/imports/preview", response_model=ImportPlan)
async def preview_import(
    project_id: int,
    data: ImportPreviewRequest,
    orchestrator: Orchestrator,
):
    """Expand the seeds along dependency edges and report what an apply would do."""
    return await orchestrator.preview(
        project_id,
        [seed.to_ref() for seed in data.seeds],
        data.to_policy(),
    )


@router.post("/projects/{project_id}/imports/apply", response_model=ImportPlan)
async def apply_import(
    project_id: int,
    data: ImportApplyRequest,
    orchestrator: Orchestrator,
    actor: Actor,
):
    """Apply a previewed plan. Every planned assignment is inserted, or none is."""
    plan = _plan_for(project_id, data.plan)
    return await orchestrator.apply(
        plan,
        confirmed_overrides=[o.to_override() for o in data.confirmed_overrides],
        actor=actor,
    )


@router.post("/projects/{project_id}/imports/reject", response_model=ImportPlan)
async def reject_import(project_id: int, data: ImportRejectRequest, orchestrator: Orchestrator):
    return orchestrator.reject(_plan_for(project_id, data.plan))
