"""
AI Isolation Zone - optional resource suggestions from an external service.

Suggestions are:
- Validated before surfacing to users
- Limited to existing, enabled, unassigned resources
- Never required for assignment or export
"""

from src.ai.suggestions import (
    HttpSuggestionProvider,
    NullSuggestionProvider,
    ResourceSuggestion,
    SuggestionCache,
    SuggestionProvider,
    SuggestionRequest,
    SuggestionService,
    build_provider,
)

__all__ = [
    "HttpSuggestionProvider",
    "NullSuggestionProvider",
    "ResourceSuggestion",
    "SuggestionCache",
    "SuggestionProvider",
    "SuggestionRequest",
    "SuggestionService",
    "build_provider",
]
