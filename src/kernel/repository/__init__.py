"""
Persistence boundary for the assembly engine.
"""

from src.kernel.repository.resource_repository import (
    ResourceRepository,
    SqlResourceRepository,
)

__all__ = [
    "ResourceRepository",
    "SqlResourceRepository",
]
