"""
Bulk import schemas.
"""

from typing import List

from pydantic import BaseModel, Field

from src.engines.assembly.import_orchestrator import ImportPlan, ImportPolicy
from src.schemas.common import OverridePair, ResourceRefIn


class ImportPreviewRequest(BaseModel):
    """Seeds to import and the caller's policy."""

    seeds: List[ResourceRefIn] = Field(..., min_length=1)
    include_advisory_enhancements: bool = False
    override_conflicts: List[OverridePair] = Field(default_factory=list)
    override_dependencies: List[OverridePair] = Field(default_factory=list)

    def to_policy(self) -> ImportPolicy:
        return ImportPolicy(
            include_advisory_enhancements=self.include_advisory_enhancements,
            override_conflicts=[o.to_override() for o in self.override_conflicts],
            override_dependencies=[o.to_override() for o in self.override_dependencies],
        )


class ImportApplyRequest(BaseModel):
    """A previewed plan sent back for application."""

    plan: ImportPlan
    confirmed_overrides: List[OverridePair] = Field(default_factory=list)


class ImportRejectRequest(BaseModel):
    plan: ImportPlan
