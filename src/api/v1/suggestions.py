"""
AI suggestion endpoint.

Suggestions are advisory only: nothing is assigned until the client calls
the assignment or import endpoints.
"""

from typing import List

from fastapi import APIRouter

from src.ai.suggestions import ResourceSuggestion
from src.api.deps import Suggestions

router = APIRouter()


@router.get("/projects/{project_id}/suggestions", response_model=List[ResourceSuggestion])
async def suggest_resources(project_id: int, service: Suggestions):
    """Resources the suggestion service recommends; empty when it is unset or unreachable."""
    return await service.suggest(project_id)
