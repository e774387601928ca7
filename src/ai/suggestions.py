"""
AI Suggestions - resource recommendations from an external service.

The service is a black box reached over HTTP. Its output is untrusted: every
item is validated, and suggestions naming unknown, disabled or already
assigned resources are dropped. Any provider failure is logged and yields
an empty list so assignment and export never depend on it.
"""

from typing import Dict, List, Optional, Protocol, Tuple

import httpx
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from src.config import Settings
from src.engines.assembly.storage import fingerprint_assignments, ref_of
from src.kernel.errors import NotFound
from src.kernel.models.resource import ResourceRef, ResourceType
from src.kernel.repository import ResourceRepository
from src.logging_config import get_logger

logger = get_logger(__name__)


class ResourceSuggestion(BaseModel):
    """One resource the service recommends for a project."""

    resource_type: ResourceType
    resource_id: str = Field(..., min_length=1, max_length=32)
    reason: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(resource_type=self.resource_type, resource_id=self.resource_id)


class SuggestionRequest(BaseModel):
    """Project context sent to the service."""

    project_id: int
    name: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    assigned: List[str] = Field(default_factory=list)
    max_items: int = 20


class SuggestionProvider(Protocol):
    async def suggest(self, request: SuggestionRequest) -> List[ResourceSuggestion]:
        ...


class NullSuggestionProvider:
    """Used when no suggestion service is configured."""

    async def suggest(self, request: SuggestionRequest) -> List[ResourceSuggestion]:
        return []


class HttpSuggestionProvider:
    """
    POSTs the project context to the configured service.

    Expected response: {"suggestions": [{"resource_type", "resource_id", "reason", "confidence"}]}
    """

    def __init__(
        self,
        url: str,
        token: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.token = token
        self.timeout = timeout
        self._client = client

    async def suggest(self, request: SuggestionRequest) -> List[ResourceSuggestion]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            if self._client is not None:
                response = await self._client.post(
                    self.url, json=request.model_dump(), headers=headers, timeout=self.timeout,
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        self.url, json=request.model_dump(), headers=headers, timeout=self.timeout,
                    )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            logger.warning("Suggestion service request failed: %s", exc)
            return []
        except ValueError as exc:
            logger.warning("Suggestion service returned invalid JSON: %s", exc)
            return []

        items = data.get("suggestions") if isinstance(data, dict) else None
        if not isinstance(items, list):
            logger.warning("Suggestion service response has no suggestions list")
            return []

        suggestions: List[ResourceSuggestion] = []
        for item in items:
            try:
                suggestions.append(ResourceSuggestion.model_validate(item))
            except PydanticValidationError:
                logger.debug("Dropping malformed suggestion", extra={"item": str(item)[:200]})
        return suggestions


class SuggestionCache:
    """
    Request-scoped memo of provider answers.

    Keyed by project and assignment fingerprint, so a change to the
    assignment set within the same request asks the provider again.
    """

    def __init__(self):
        self._entries: Dict[Tuple[int, str], List[ResourceSuggestion]] = {}

    def get(self, project_id: int, fingerprint: str) -> Optional[List[ResourceSuggestion]]:
        return self._entries.get((project_id, fingerprint))

    def put(self, project_id: int, fingerprint: str, suggestions: List[ResourceSuggestion]) -> None:
        self._entries[(project_id, fingerprint)] = list(suggestions)

    def __len__(self) -> int:
        return len(self._entries)


class SuggestionService:
    """
    Usage:
        service = SuggestionService(repo, build_provider(settings), SuggestionCache())
        suggestions = await service.suggest(project_id)
    """

    def __init__(
        self,
        repository: ResourceRepository,
        provider: SuggestionProvider,
        cache: Optional[SuggestionCache] = None,
        max_items: int = 20,
    ):
        self.repository = repository
        self.provider = provider
        self.cache = cache if cache is not None else SuggestionCache()
        self.max_items = max_items

    async def suggest(self, project_id: int) -> List[ResourceSuggestion]:
        project = await self.repository.get_project(project_id)
        if project is None:
            raise NotFound(f"Project {project_id} not found", details={"project_id": project_id})

        assignments = await self.repository.list_assignments(project_id)
        fingerprint = fingerprint_assignments(assignments)
        cached = self.cache.get(project_id, fingerprint)
        if cached is not None:
            return cached

        assigned = {ref_of(a) for a in assignments}
        request = SuggestionRequest(
            project_id=project_id,
            name=project.name,
            description=project.description or "",
            tags=list(project.tags or []),
            assigned=sorted(r.key for r in assigned),
            max_items=self.max_items,
        )
        raw = await self.provider.suggest(request)

        candidates = [s for s in raw if s.ref not in assigned]
        found = await self.repository.get_resources({s.ref for s in candidates}) if candidates else {}

        accepted: List[ResourceSuggestion] = []
        seen = set()
        for suggestion in candidates:
            resource = found.get(suggestion.ref)
            if resource is None or not resource.is_available or suggestion.ref in seen:
                continue
            seen.add(suggestion.ref)
            accepted.append(suggestion)
            if len(accepted) >= self.max_items:
                break

        logger.info(
            "AI suggestions fetched",
            extra={"received": len(raw), "accepted": len(accepted)},
        )
        self.cache.put(project_id, fingerprint, accepted)
        return accepted


def build_provider(settings: Settings) -> SuggestionProvider:
    """HTTP provider when a service URL is configured, otherwise a no-op."""
    if not settings.suggestion_service_url:
        return NullSuggestionProvider()
    return HttpSuggestionProvider(
        url=settings.suggestion_service_url,
        token=settings.suggestion_service_token,
        timeout=settings.suggestion_timeout_seconds,
    )
