"""
Import Orchestrator - bulk import as preview -> approve -> apply.

A plan is computed against a fingerprint of the project's assignment set.
Applying re-reads the live set; if it changed in a way that invalidates the
plan the apply fails with PlanStale and the caller previews again.

Plan lifecycle:
    requested -> previewed -> approved | rejected
    previewed | approved -> applied | rolled_back
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, Field

from src.engines.assembly.conflict_detector import ConflictDetector
from src.engines.assembly.dependency_resolver import DependencyGraphResolver
from src.engines.assembly.resource_assigner import (
    AssignmentOptions,
    AssignmentSpec,
    ResourceAssigner,
)
from src.engines.assembly.storage import (
    fingerprint_assignments,
    load_available,
    load_candidates,
    load_edge_closure,
    load_edges,
    load_overrides,
    next_orders,
    ref_of,
)
from src.engines.assembly.types import (
    CandidateAssignment,
    ConflictFinding,
    ConflictReport,
    DependencyEdge,
    ResourceOverride,
)
from src.kernel.errors import (
    AssemblyError,
    InvalidTransition,
    NotFound,
    PlanStale,
    ValidationError,
)
from src.kernel.events.event_store import EventStore
from src.kernel.events.event_types import ImportEvent
from src.kernel.models.base import generate_id, utcnow
from src.kernel.models.event_log import EventType
from src.kernel.models.resource import ResourceRef, sort_refs
from src.kernel.repository import ResourceRepository
from src.logging_config import bind_project, get_logger

logger = get_logger(__name__)


class ImportState(str, Enum):
    """Import plan lifecycle states."""
    REQUESTED = "requested"
    PREVIEWED = "previewed"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"
    ROLLED_BACK = "rolled_back"


# Valid transitions: from_state -> allowed to_states
_TRANSITIONS: Dict[ImportState, Set[ImportState]] = {
    ImportState.REQUESTED: {ImportState.PREVIEWED},
    ImportState.PREVIEWED: {ImportState.APPROVED, ImportState.REJECTED},
    ImportState.APPROVED: {ImportState.APPLIED, ImportState.ROLLED_BACK},
    ImportState.REJECTED: set(),
    ImportState.APPLIED: set(),
    ImportState.ROLLED_BACK: set(),
}


def valid_transitions(from_state: ImportState) -> List[ImportState]:
    """Return the states reachable from ``from_state`` in one step."""
    return sorted(_TRANSITIONS.get(from_state, set()), key=lambda s: s.value)


def can_transition(from_state: ImportState, to_state: ImportState) -> bool:
    return to_state in _TRANSITIONS.get(from_state, set())


class ImportPolicy(BaseModel):
    """Caller choices for one import."""

    include_advisory_enhancements: bool = False
    # Resource pairs allowed to coexist despite a conflicts edge
    override_conflicts: List[ResourceOverride] = Field(default_factory=list)
    # (source, target) pairs whose critical requires may stay unmet
    override_dependencies: List[ResourceOverride] = Field(default_factory=list)

    @property
    def overrides(self) -> List[ResourceOverride]:
        return [*self.override_conflicts, *self.override_dependencies]


class PlannedAssignment(BaseModel):
    """One resource the plan would insert."""

    ref: ResourceRef
    order: int
    # Seed chosen by the caller, or pulled in by a dependency edge
    via_dependency: bool = False
    via_enhancement: bool = False


class ImportPlan(BaseModel):
    """A previewed import, replayable by apply while the assignment set is unchanged."""

    id: str = Field(default_factory=generate_id)
    project_id: int
    seeds: List[ResourceRef]
    policy: ImportPolicy = Field(default_factory=ImportPolicy)
    to_add: List[PlannedAssignment] = Field(default_factory=list)
    already_assigned: List[ResourceRef] = Field(default_factory=list)
    dependency_additions: List[ResourceRef] = Field(default_factory=list)
    findings: List[ConflictFinding] = Field(default_factory=list)
    cycles: List[List[ResourceRef]] = Field(default_factory=list)
    suggestions: List[DependencyEdge] = Field(default_factory=list)
    unresolved: List[DependencyEdge] = Field(default_factory=list)
    basis_fingerprint: str = ""
    state: ImportState = ImportState.REQUESTED
    created_at: datetime = Field(default_factory=utcnow)
    error: Optional[str] = None

    @property
    def applicable(self) -> bool:
        return not any(f.blocking for f in self.findings)

    @property
    def refs_to_add(self) -> List[ResourceRef]:
        return [p.ref for p in self.to_add]

    def transition(self, to_state: ImportState) -> None:
        if not can_transition(self.state, to_state):
            raise InvalidTransition(
                f"Import plan cannot move from {self.state.value} to {to_state.value}",
                details={
                    "plan_id": self.id,
                    "from": self.state.value,
                    "to": to_state.value,
                    "allowed": [s.value for s in valid_transitions(self.state)],
                },
            )
        self.state = to_state


class ImportOrchestrator:
    """
    Computes and applies import plans for one repository.

    Usage:
        orchestrator = ImportOrchestrator(repo, assigner, event_store)
        plan = await orchestrator.preview(project_id, seeds)
        await orchestrator.apply(plan)
    """

    def __init__(
        self,
        repository: ResourceRepository,
        assigner: Optional[ResourceAssigner] = None,
        event_store: Optional[EventStore] = None,
        resolver: Optional[DependencyGraphResolver] = None,
        detector: Optional[ConflictDetector] = None,
    ):
        self.repository = repository
        self.event_store = event_store
        self.resolver = resolver or DependencyGraphResolver()
        self.detector = detector or ConflictDetector()
        self.assigner = assigner or ResourceAssigner(repository, event_store, self.detector)

    async def preview(
        self,
        project_id: int,
        seeds: Iterable[ResourceRef],
        policy: Optional[ImportPolicy] = None,
    ) -> ImportPlan:
        """
        Expand ``seeds`` along dependency edges and validate the result.

        Nothing is written. The returned plan is PREVIEWED, even when it
        carries blocking findings (``plan.applicable`` is then False).

        Raises:
            ValidationError: No seeds
            NotFound: Project missing, or a seed missing or disabled
        """
        seeds = sort_refs(seeds)
        if not seeds:
            raise ValidationError("An import needs at least one resource", details={"field": "seeds"})
        policy = policy or ImportPolicy()

        with bind_project(project_id):
            project = await self.repository.get_project(project_id)
            if project is None:
                raise NotFound(f"Project {project_id} not found", details={"project_id": project_id})

            plan = ImportPlan(project_id=project_id, seeds=seeds, policy=policy)
            await self._compute(plan)
            plan.transition(ImportState.PREVIEWED)

            logger.info(
                "Import previewed",
                extra={
                    "plan_id": plan.id,
                    "to_add": [p.ref.key for p in plan.to_add],
                    "blocking": len([f for f in plan.findings if f.blocking]),
                    "cycles": len(plan.cycles),
                },
            )
            return plan

    def approve(self, plan: ImportPlan) -> ImportPlan:
        plan.transition(ImportState.APPROVED)
        return plan

    def reject(self, plan: ImportPlan) -> ImportPlan:
        plan.transition(ImportState.REJECTED)
        return plan

    async def apply(
        self,
        plan: ImportPlan,
        confirmed_overrides: Iterable[ResourceOverride] = (),
        actor: Optional[str] = None,
    ) -> ImportPlan:
        """
        Insert every planned assignment in one transaction.

        A previewed plan is approved first: applying it is the approval.

        Raises:
            InvalidTransition: Plan is not previewed or approved
            PlanStale: The assignment set changed in a way the plan cannot absorb
            ConflictDetected / UnresolvedCriticalDependency / InvariantViolation:
                The plan still has blocking findings
        """
        if plan.state == ImportState.PREVIEWED:
            plan.transition(ImportState.APPROVED)
        if not can_transition(plan.state, ImportState.APPLIED):
            plan.transition(ImportState.APPLIED)

        overrides = [*plan.policy.overrides, *confirmed_overrides]

        with bind_project(plan.project_id):
            try:
                await self.repository.run_in_transaction(
                    lambda: self._apply(plan, overrides, actor)
                )
            except AssemblyError as exc:
                plan.transition(ImportState.ROLLED_BACK)
                plan.error = exc.message
                logger.warning(
                    "Import rolled back",
                    extra={"plan_id": plan.id, "error_code": exc.code},
                )
                await self._log_rollback(plan, actor, exc)
                raise

            plan.transition(ImportState.APPLIED)
            logger.info(
                "Import applied",
                extra={"plan_id": plan.id, "added": [p.ref.key for p in plan.to_add]},
            )
            return plan

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _compute(self, plan: ImportPlan) -> None:
        assignments, candidates = await load_candidates(self.repository, plan.project_id)
        assigned = {c.ref for c in candidates}

        seed_resources = await self.repository.get_resources(plan.seeds)
        for seed in plan.seeds:
            resource = seed_resources.get(seed)
            if resource is None or not resource.is_available:
                raise NotFound(f"{seed.key} does not exist or is disabled", details={"resource": seed.key})

        edges = await load_edge_closure(self.repository, plan.seeds)
        available, _ = await load_available(self.repository, {e.target for e in edges} | set(plan.seeds))
        expansion = self.resolver.resolve(
            plan.seeds,
            edges,
            available=available | assigned,
            follow_enhancements=plan.policy.include_advisory_enhancements,
        )

        seeds = set(plan.seeds)
        critical_pulls = self.resolver.resolve(plan.seeds, edges, available=available | assigned).resolved
        next_order = next_orders(assignments)

        to_add: List[PlannedAssignment] = []
        for ref in expansion.resolved:
            if ref in assigned:
                continue
            order = next_order.get(ref.resource_type, 0)
            next_order[ref.resource_type] = order + 1
            to_add.append(PlannedAssignment(
                ref=ref,
                order=order,
                via_dependency=ref not in seeds and ref in critical_pulls,
                via_enhancement=ref not in seeds and ref not in critical_pulls,
            ))

        proposed = candidates + [
            CandidateAssignment(ref=p.ref, order=p.order, proposed=True) for p in to_add
        ]
        report = await self._detect(plan.project_id, proposed, plan.policy.overrides)

        plan.to_add = to_add
        plan.already_assigned = sort_refs(r for r in expansion.resolved if r in assigned)
        plan.dependency_additions = [p.ref for p in to_add if p.via_dependency]
        plan.findings = report.findings
        plan.cycles = expansion.cycles
        plan.suggestions = expansion.suggestions
        plan.unresolved = expansion.unresolved_critical
        plan.basis_fingerprint = fingerprint_assignments(assignments)

    async def _detect(
        self,
        project_id: int,
        candidates: List[CandidateAssignment],
        overrides: List[ResourceOverride],
    ) -> ConflictReport:
        edges = await load_edges(self.repository, {c.ref for c in candidates})
        persisted = await load_overrides(self.repository, project_id)
        return self.detector.detect(candidates, edges, [*persisted, *overrides])

    async def _apply(
        self,
        plan: ImportPlan,
        overrides: List[ResourceOverride],
        actor: Optional[str],
    ) -> None:
        assignments, candidates = await load_candidates(self.repository, plan.project_id)
        live = fingerprint_assignments(assignments)

        if live != plan.basis_fingerprint:
            assigned = {ref_of(a) for a in assignments}
            clashes = sort_refs(r for r in plan.refs_to_add if r in assigned)
            proposed = candidates + [
                CandidateAssignment(ref=p.ref, order=p.order, proposed=True)
                for p in plan.to_add if p.ref not in assigned
            ]
            report = await self._detect(plan.project_id, proposed, overrides)
            if clashes or report.blocking:
                raise PlanStale(
                    "The project's assignments changed since this import was previewed",
                    details={
                        "plan_id": plan.id,
                        "already_assigned": [r.key for r in clashes],
                        "blocking": [f.model_dump(mode="json") for f in report.blocking],
                    },
                )

        specs = [
            AssignmentSpec(
                ref=p.ref,
                options=AssignmentOptions(
                    order=p.order,
                    reason="imported as dependency" if p.via_dependency else "imported",
                    assigned_by=actor,
                ),
            )
            for p in plan.to_add
        ]
        if specs:
            await self.assigner.stage(plan.project_id, specs, overrides, actor=actor)

        if self.event_store is not None:
            await self.event_store.log_from_model(
                event_type=EventType.IMPORT_APPLIED,
                entity_type="project",
                entity_id=plan.project_id,
                actor=actor,
                payload_model=ImportEvent(
                    project_id=plan.project_id,
                    plan_id=plan.id,
                    seeds=[r.key for r in plan.seeds],
                    added=[p.ref.key for p in plan.to_add],
                    dependency_additions=[r.key for r in plan.dependency_additions],
                    overrides=[o.keys() for o in overrides],
                ),
            )

    async def _log_rollback(self, plan: ImportPlan, actor: Optional[str], exc: AssemblyError) -> None:
        # The failed transaction is gone; the rollback event gets its own
        if self.event_store is None:
            return

        async def _record() -> None:
            await self.event_store.log_from_model(
                event_type=EventType.IMPORT_ROLLED_BACK,
                entity_type="project",
                entity_id=plan.project_id,
                actor=actor,
                payload_model=ImportEvent(
                    project_id=plan.project_id,
                    plan_id=plan.id,
                    seeds=[r.key for r in plan.seeds],
                    error=exc.code,
                ),
            )

        await self.repository.run_in_transaction(_record)
