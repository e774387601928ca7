"""
Value types shared by the resolver, the conflict detector and the orchestrator.

Engine code works on these instead of ORM rows so resolution and detection
stay pure and testable without a database.
"""

from enum import Enum
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from src.kernel.errors import (
    AssemblyError,
    ConflictDetected,
    InvariantViolation,
    UnresolvedCriticalDependency,
)
from src.kernel.models.assignment import Assignment
from src.kernel.models.dependency import DependencyKind, ResourceDependency
from src.kernel.models.resource import ResourceRef, ResourceType


class DependencyEdge(BaseModel):
    """Directed edge source -> target with an explicit kind."""

    model_config = ConfigDict(frozen=True)

    source: ResourceRef
    target: ResourceRef
    kind: DependencyKind
    critical: bool = True
    reason: Optional[str] = None
    edge_id: Optional[str] = None

    @classmethod
    def from_model(cls, row: ResourceDependency) -> "DependencyEdge":
        return cls(
            source=ResourceRef(
                resource_type=ResourceType(row.source_resource_type),
                resource_id=row.source_resource_id,
            ),
            target=ResourceRef(
                resource_type=ResourceType(row.target_resource_type),
                resource_id=row.target_resource_id,
            ),
            kind=DependencyKind(row.dependency_type),
            critical=bool(row.is_critical),
            reason=row.dependency_reason,
            edge_id=row.id,
        )

    def sort_key(self) -> Tuple:
        return (
            self.source.sort_key(),
            self.target.sort_key(),
            self.kind.value,
            self.edge_id or "",
        )

    def describe(self) -> str:
        flag = "critical" if self.critical else "optional"
        return f"{self.source.key} -{self.kind.value}[{flag}]-> {self.target.key}"


def sort_edges(edges: Iterable[DependencyEdge]) -> List[DependencyEdge]:
    return sorted(set(edges), key=DependencyEdge.sort_key)


class ResourceOverride(BaseModel):
    """Caller's explicit permission for one resource pair.

    Names both resources; direction does not matter.
    """

    model_config = ConfigDict(frozen=True)

    first: ResourceRef
    second: ResourceRef

    def covers(self, a: ResourceRef, b: ResourceRef) -> bool:
        return {self.first, self.second} == {a, b}

    def keys(self) -> List[str]:
        return sorted([self.first.key, self.second.key])


def is_overridden(overrides: Iterable[ResourceOverride], a: ResourceRef, b: ResourceRef) -> bool:
    return any(o.covers(a, b) for o in overrides)


def pair_override(a: ResourceRef, b: ResourceRef) -> ResourceOverride:
    """Override for (a, b) with its members in canonical order."""
    first, second = sorted((a, b), key=lambda r: r.key)
    return ResourceOverride(first=first, second=second)


class CandidateAssignment(BaseModel):
    """One member of a candidate assignment set (persisted or proposed)."""

    ref: ResourceRef
    is_primary: bool = False
    order: int = 0
    proposed: bool = False

    @classmethod
    def from_model(cls, assignment: Assignment) -> "CandidateAssignment":
        return cls(
            ref=ResourceRef(
                resource_type=ResourceType(assignment.resource_type),
                resource_id=assignment.resource_id,
            ),
            is_primary=bool(assignment.is_primary),
            order=assignment.assignment_order,
        )


class FindingSeverity(str, Enum):
    """Whether a finding rejects the operation."""
    BLOCKING = "blocking"
    ADVISORY = "advisory"


class ConflictRule(str, Enum):
    """Detection rules, declared in evaluation order."""
    DUPLICATE_PRIMARY = "duplicate_primary"
    DUPLICATE_IDENTITY = "duplicate_identity"
    DECLARED_CONFLICT = "declared_conflict"
    UNRESOLVED_CRITICAL_DEPENDENCY = "unresolved_critical_dependency"
    MISSING_ENHANCEMENT = "missing_enhancement"

    @property
    def index(self) -> int:
        return list(ConflictRule).index(self) + 1


class ConflictFinding(BaseModel):
    """One rule hit against a candidate set."""

    rule: ConflictRule
    severity: FindingSeverity
    resources: List[ResourceRef]
    message: str
    edge_kind: Optional[DependencyKind] = None
    invariant: Optional[str] = None

    @property
    def blocking(self) -> bool:
        return self.severity == FindingSeverity.BLOCKING

    def sort_key(self) -> Tuple:
        return (self.rule.index, [r.sort_key() for r in self.resources], self.message)


# Error class raised for the first blocking finding of each rule
_RULE_ERRORS = {
    ConflictRule.DUPLICATE_PRIMARY: InvariantViolation,
    ConflictRule.DUPLICATE_IDENTITY: InvariantViolation,
    ConflictRule.DECLARED_CONFLICT: ConflictDetected,
    ConflictRule.UNRESOLVED_CRITICAL_DEPENDENCY: UnresolvedCriticalDependency,
}


class ConflictReport(BaseModel):
    """Ordered findings for one candidate set."""

    findings: List[ConflictFinding] = Field(default_factory=list)
    # Overrides that suppressed a blocking finding, in canonical form
    applied_overrides: List[ResourceOverride] = Field(default_factory=list)

    @property
    def blocking(self) -> List[ConflictFinding]:
        return [f for f in self.findings if f.blocking]

    @property
    def advisory(self) -> List[ConflictFinding]:
        return [f for f in self.findings if not f.blocking]

    @property
    def applicable(self) -> bool:
        return not self.blocking

    def to_error(self) -> Optional[AssemblyError]:
        """Error for the first blocking finding, carrying every finding."""
        blocking = self.blocking
        if not blocking:
            return None
        first = blocking[0]
        error_cls = _RULE_ERRORS[first.rule]
        details = {
            "rule": first.rule.value,
            "resources": [r.key for r in first.resources],
            "findings": [f.model_dump(mode="json") for f in self.findings],
        }
        if first.edge_kind is not None:
            details["edge_kind"] = first.edge_kind.value
        if error_cls is InvariantViolation:
            return InvariantViolation(first.message, invariant=first.invariant or first.rule.value, details=details)
        return error_cls(first.message, details=details)

    def raise_for_blocking(self) -> None:
        error = self.to_error()
        if error is not None:
            raise error


class ExpansionPlan(BaseModel):
    """Output of dependency resolution for one seed set."""

    seeds: List[ResourceRef]
    resolved: List[ResourceRef]
    added_by_dependency: List[ResourceRef] = Field(default_factory=list)
    # enhances edges whose target stayed outside the resolved set
    suggestions: List[DependencyEdge] = Field(default_factory=list)
    # non-critical requires edges (never force inclusion)
    optional: List[DependencyEdge] = Field(default_factory=list)
    # conflicts edges inside the resolved set, left to the conflict detector
    conflicts: List[DependencyEdge] = Field(default_factory=list)
    cycles: List[List[ResourceRef]] = Field(default_factory=list)
    unresolved_critical: List[DependencyEdge] = Field(default_factory=list)

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)
