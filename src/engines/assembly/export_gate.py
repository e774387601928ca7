"""
Export Gate - decides if a project can be exported.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.engines.assembly.types import ConflictReport
from src.kernel.models.resource import ResourceRef


class ExportBlockReason(str, Enum):
    """Reasons export might be blocked."""
    NO_AGENT_ASSIGNED = "no_agent_assigned"
    BLOCKING_FINDING = "blocking_finding"
    MISSING_RESOURCE = "missing_resource"
    DISABLED_RESOURCE = "disabled_resource"


class ExportGateItem(BaseModel):
    """One failed check."""

    reason: ExportBlockReason
    message: str
    resources: List[str] = Field(default_factory=list)
    details: Optional[Dict[str, Any]] = None


class ExportDecision(BaseModel):
    """Decision on whether export is allowed."""

    project_id: int
    allowed: bool
    items: List[ExportGateItem] = Field(default_factory=list)

    def report(self) -> List[Dict[str, Any]]:
        return [item.model_dump(mode="json", exclude_none=True) for item in self.items]


class ExportGate:
    """
    Export is blocked if:
    - No agent is assigned
    - Any assignment points at a resource that no longer exists
    - Any assigned resource is disabled
    - The conflict detector reports a blocking finding on the persisted set
    """

    @classmethod
    def evaluate(
        cls,
        project_id: int,
        agent_count: int,
        missing: List[ResourceRef],
        disabled: List[ResourceRef],
        report: ConflictReport,
    ) -> ExportDecision:
        items: List[ExportGateItem] = []

        if agent_count < 1:
            items.append(ExportGateItem(
                reason=ExportBlockReason.NO_AGENT_ASSIGNED,
                message="Assign at least one agent before exporting",
            ))

        for ref in missing:
            items.append(ExportGateItem(
                reason=ExportBlockReason.MISSING_RESOURCE,
                message=f"{ref.key} is assigned but no longer exists",
                resources=[ref.key],
            ))

        for ref in disabled:
            items.append(ExportGateItem(
                reason=ExportBlockReason.DISABLED_RESOURCE,
                message=f"{ref.key} is assigned but disabled",
                resources=[ref.key],
            ))

        for finding in report.blocking:
            items.append(ExportGateItem(
                reason=ExportBlockReason.BLOCKING_FINDING,
                message=finding.message,
                resources=[r.key for r in finding.resources],
                details={"rule": finding.rule.value},
            ))

        return ExportDecision(project_id=project_id, allowed=not items, items=items)
