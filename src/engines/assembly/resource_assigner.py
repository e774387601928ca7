"""
Resource Assigner - the only writer of project/resource assignments.

Every mutation is validated against the post-change assignment set through
the ConflictDetector before anything is written, and runs in one repository
transaction together with its audit events.

Primary handling: assigning a resource as primary demotes the current primary
of the same type in the same transaction.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from src.engines.assembly.conflict_detector import ConflictDetector
from src.engines.assembly.storage import (
    load_candidates,
    load_edges,
    load_overrides,
    next_orders,
    record_overrides,
    ref_of,
)
from src.engines.assembly.types import (
    CandidateAssignment,
    ConflictFinding,
    ConflictReport,
    ConflictRule,
    ResourceOverride,
)
from src.kernel.errors import (
    InvariantViolation,
    NotAssigned,
    NotFound,
    UnresolvedCriticalDependency,
    ValidationError,
)
from src.kernel.events.event_store import EventStore
from src.kernel.events.event_types import AssignmentEvent
from src.kernel.models.assignment import Assignment
from src.kernel.models.event_log import EventType
from src.kernel.models.project import Project
from src.kernel.models.resource import Resource, ResourceRef, ResourceType
from src.kernel.repository import ResourceRepository
from src.logging_config import bind_project, get_logger

logger = get_logger(__name__)


@dataclass
class AssignmentOptions:
    """Project-local settings for one assignment."""
    is_primary: bool = False
    order: Optional[int] = None
    config_overrides: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None
    assigned_by: Optional[str] = None


@dataclass
class AssignmentSpec:
    """One resource to stage, with its options."""
    ref: ResourceRef
    options: AssignmentOptions = field(default_factory=AssignmentOptions)


@dataclass
class AssignmentOutcome:
    """Result of an assign/stage call."""
    assignments: List[Assignment]
    report: ConflictReport
    demoted: List[ResourceRef] = field(default_factory=list)

    @property
    def advisories(self) -> List[ConflictFinding]:
        return self.report.advisory


@dataclass
class AvailableResource:
    """An enabled resource annotated with its assignment state in one project."""
    ref: ResourceRef
    resource: Resource
    is_assigned: bool
    is_primary: bool = False


def validate_options(options: AssignmentOptions) -> None:
    """Reject malformed options before any storage call."""
    if options.order is not None and (not isinstance(options.order, int) or options.order < 0):
        raise ValidationError(
            "assignment order must be a non-negative integer",
            details={"field": "order", "value": options.order},
        )
    if not isinstance(options.config_overrides, dict):
        raise ValidationError(
            "config_overrides must be a JSON object",
            details={"field": "config_overrides"},
        )


class ResourceAssigner:
    """
    Validated, transactional assignment changes for one repository.

    Usage:
        assigner = ResourceAssigner(repo, EventStore(session))
        outcome = await assigner.assign(project.id, ref, AssignmentOptions(is_primary=True))
    """

    def __init__(
        self,
        repository: ResourceRepository,
        event_store: Optional[EventStore] = None,
        detector: Optional[ConflictDetector] = None,
    ):
        self.repository = repository
        self.event_store = event_store
        self.detector = detector or ConflictDetector()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_assignments(
        self,
        project_id: int,
        resource_type: Optional[ResourceType] = None,
    ) -> List[Assignment]:
        await self._require_project(project_id)
        return await self.repository.list_assignments(project_id, resource_type)

    async def available_resources(
        self,
        project_id: int,
        resource_type: ResourceType,
    ) -> List[AvailableResource]:
        """Enabled resources of one type, flagged with whether the project uses them."""
        await self._require_project(project_id)
        assigned = {
            ref_of(a): a for a in await self.repository.list_assignments(project_id, resource_type)
        }
        resources = await self.repository.list_resources(resource_type)
        result = []
        for resource in resources:
            ref = ResourceRef.of(resource)
            assignment = assigned.get(ref)
            result.append(AvailableResource(
                ref=ref,
                resource=resource,
                is_assigned=assignment is not None,
                is_primary=bool(assignment.is_primary) if assignment else False,
            ))
        return result

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def assign(
        self,
        project_id: int,
        ref: ResourceRef,
        options: Optional[AssignmentOptions] = None,
        overrides: Iterable[ResourceOverride] = (),
    ) -> AssignmentOutcome:
        """
        Assign one resource to a project.

        Raises:
            ValidationError: Malformed options
            NotFound: Project or resource missing or disabled
            InvariantViolation: Resource already assigned
            ConflictDetected / UnresolvedCriticalDependency: Blocking finding
        """
        options = options or AssignmentOptions()
        validate_options(options)
        overrides = list(overrides)

        with bind_project(project_id):
            return await self.repository.run_in_transaction(
                lambda: self.stage(project_id, [AssignmentSpec(ref=ref, options=options)], overrides)
            )

    async def stage(
        self,
        project_id: int,
        specs: Sequence[AssignmentSpec],
        overrides: Iterable[ResourceOverride] = (),
        actor: Optional[str] = None,
    ) -> AssignmentOutcome:
        """
        Validate and insert a batch of assignments.

        Opens no transaction of its own; callers run it inside
        ``repository.run_in_transaction``.
        """
        for spec in specs:
            validate_options(spec.options)

        await self._require_project(project_id)
        refs = [spec.ref for spec in specs]
        resources = await self.repository.get_resources(refs)
        for ref in refs:
            resource = resources.get(ref)
            if resource is None or not resource.is_available:
                raise NotFound(
                    f"{ref.key} does not exist or is disabled",
                    details={"resource": ref.key},
                )

        assignments, candidates = await load_candidates(self.repository, project_id)

        # Demote the current primary of every type that receives a new primary
        primary_types = {spec.ref.resource_type for spec in specs if spec.options.is_primary}
        demote = [
            a for a in assignments
            if a.is_primary and ResourceType(a.resource_type) in primary_types
            and ref_of(a) not in refs
        ]
        demoted_refs = {ref_of(a) for a in demote}
        candidates = [
            c.model_copy(update={"is_primary": False}) if c.ref in demoted_refs else c
            for c in candidates
        ]

        next_order = next_orders(assignments)
        new_rows: List[Assignment] = []
        for spec in specs:
            resource_type = spec.ref.resource_type
            order = spec.options.order
            if order is None:
                order = next_order.get(resource_type, 0)
            next_order[resource_type] = max(next_order.get(resource_type, 0), order + 1)

            candidates.append(CandidateAssignment(
                ref=spec.ref,
                is_primary=spec.options.is_primary,
                order=order,
                proposed=True,
            ))
            new_rows.append(Assignment(
                project_id=project_id,
                resource_type=resource_type,
                resource_id=spec.ref.resource_id,
                is_primary=spec.options.is_primary,
                assignment_order=order,
                config_overrides=dict(spec.options.config_overrides),
                assigned_by=spec.options.assigned_by or actor,
                assignment_reason=spec.options.reason,
            ))

        report = await self._validate(project_id, candidates, overrides)
        report.raise_for_blocking()

        for assignment in demote:
            assignment.is_primary = False
        if demote:
            # Demotions reach storage before the new primary row
            await self.repository.flush()

        for row in new_rows:
            await self.repository.add(row)
        await self.repository.flush()

        persisted = await load_overrides(self.repository, project_id)
        await record_overrides(
            self.repository, project_id, report.applied_overrides, persisted, granted_by=actor,
        )

        demoted = sorted(demoted_refs, key=ResourceRef.sort_key)
        await self._log(
            EventType.RESOURCE_ASSIGNED,
            project_id,
            actor or (specs[0].options.assigned_by if specs else None),
            AssignmentEvent(
                project_id=project_id,
                resources=[spec.ref.key for spec in specs],
                is_primary=any(spec.options.is_primary for spec in specs),
                demoted=", ".join(r.key for r in demoted) or None,
                reason=specs[0].options.reason if len(specs) == 1 else None,
            ),
        )
        for ref in demoted:
            await self._log(
                EventType.PRIMARY_DEMOTED,
                project_id,
                actor,
                AssignmentEvent(project_id=project_id, resources=[ref.key]),
            )

        logger.info(
            "Assigned resources",
            extra={
                "resources": [spec.ref.key for spec in specs],
                "demoted": [r.key for r in demoted],
                "advisories": len(report.advisory),
            },
        )
        return AssignmentOutcome(assignments=new_rows, report=report, demoted=demoted)

    async def unassign(
        self,
        project_id: int,
        ref: ResourceRef,
        overrides: Iterable[ResourceOverride] = (),
        actor: Optional[str] = None,
    ) -> ConflictReport:
        """
        Remove one assignment. The shared resource itself is untouched.

        Raises:
            NotFound: Project missing
            NotAssigned: The resource is not assigned to the project
            UnresolvedCriticalDependency: A remaining resource critically requires it
        """
        overrides = list(overrides)

        async def _unassign() -> ConflictReport:
            await self._require_project(project_id)
            assignments, candidates = await load_candidates(self.repository, project_id)
            target = next((a for a in assignments if ref_of(a) == ref), None)
            if target is None:
                raise NotAssigned(
                    f"{ref.key} is not assigned to project {project_id}",
                    details={"resource": ref.key, "project_id": project_id},
                )

            remaining = [c for c in candidates if c.ref != ref]
            report = await self._validate(project_id, remaining, overrides)
            broken = [
                f for f in report.blocking
                if f.rule == ConflictRule.UNRESOLVED_CRITICAL_DEPENDENCY and f.resources[-1] == ref
            ]
            if broken:
                raise UnresolvedCriticalDependency(
                    f"{broken[0].resources[0].key} requires {ref.key}; removing it would break the project",
                    details={
                        "resource": ref.key,
                        "dependents": [f.resources[0].key for f in broken],
                        "edge_kind": "requires",
                    },
                )

            await self.repository.remove(target)
            await self.repository.delete_overrides_mentioning(project_id, ref)
            # Overrides that allowed this removal stay on record for later checks
            kept = [o for o in report.applied_overrides if ref in (o.first, o.second)]
            await record_overrides(self.repository, project_id, kept, [], granted_by=actor)
            await self.repository.flush()

            await self._log(
                EventType.RESOURCE_UNASSIGNED,
                project_id,
                actor,
                AssignmentEvent(
                    project_id=project_id,
                    resources=[ref.key],
                    is_primary=bool(target.is_primary),
                ),
            )
            logger.info("Unassigned resource", extra={"resource": ref.key})
            return report

        with bind_project(project_id):
            return await self.repository.run_in_transaction(_unassign)

    async def reorder(
        self,
        project_id: int,
        resource_type: ResourceType,
        ordered_ids: Sequence[str],
        actor: Optional[str] = None,
    ) -> List[Assignment]:
        """
        Rewrite assignment_order of one type to 0..n-1 following ``ordered_ids``.

        Raises:
            InvariantViolation: ``ordered_ids`` is not exactly the assigned set
        """
        ordered_ids = list(ordered_ids)
        if any(not isinstance(i, str) or not i for i in ordered_ids):
            raise ValidationError("resource ids must be non-empty strings", details={"field": "ordered_ids"})

        async def _reorder() -> List[Assignment]:
            await self._require_project(project_id)
            assignments = await self.repository.list_assignments(project_id, resource_type)
            by_id = {a.resource_id: a for a in assignments}

            counts = Counter(ordered_ids)
            duplicates = sorted(i for i, n in counts.items() if n > 1)
            missing = sorted(set(by_id) - set(ordered_ids))
            unexpected = sorted(set(ordered_ids) - set(by_id))
            if duplicates or missing or unexpected:
                raise InvariantViolation(
                    f"reorder list does not match the assigned {resource_type.value} set",
                    invariant="reorder_set_mismatch",
                    details={"missing": missing, "unexpected": unexpected, "duplicates": duplicates},
                )

            for index, resource_id in enumerate(ordered_ids):
                by_id[resource_id].assignment_order = index
            await self.repository.flush()

            await self._log(
                EventType.ASSIGNMENTS_REORDERED,
                project_id,
                actor,
                AssignmentEvent(
                    project_id=project_id,
                    resources=[f"{resource_type.value}:{i}" for i in ordered_ids],
                ),
            )
            return [by_id[i] for i in ordered_ids]

        with bind_project(project_id):
            return await self.repository.run_in_transaction(_reorder)

    async def configure(
        self,
        project_id: int,
        ref: ResourceRef,
        config_overrides: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
        make_primary: bool = False,
        actor: Optional[str] = None,
    ) -> Assignment:
        """Update project-local settings of an existing assignment, optionally promoting it."""
        if config_overrides is not None and not isinstance(config_overrides, dict):
            raise ValidationError("config_overrides must be a JSON object", details={"field": "config_overrides"})

        async def _configure() -> Assignment:
            await self._require_project(project_id)
            assignments, _ = await load_candidates(self.repository, project_id)
            target = next((a for a in assignments if ref_of(a) == ref), None)
            if target is None:
                raise NotAssigned(
                    f"{ref.key} is not assigned to project {project_id}",
                    details={"resource": ref.key, "project_id": project_id},
                )

            demoted: List[ResourceRef] = []
            if make_primary and not target.is_primary:
                for a in assignments:
                    if a.is_primary and a.resource_type == target.resource_type:
                        a.is_primary = False
                        demoted.append(ref_of(a))
                await self.repository.flush()
                target.is_primary = True

            if config_overrides is not None:
                target.config_overrides = dict(config_overrides)
            if reason is not None:
                target.assignment_reason = reason
            await self.repository.flush()

            for demoted_ref in demoted:
                await self._log(
                    EventType.PRIMARY_DEMOTED,
                    project_id,
                    actor,
                    AssignmentEvent(project_id=project_id, resources=[demoted_ref.key]),
                )
            return target

        with bind_project(project_id):
            return await self.repository.run_in_transaction(_configure)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require_project(self, project_id: int) -> Project:
        project = await self.repository.get_project(project_id)
        if project is None:
            raise NotFound(f"Project {project_id} not found", details={"project_id": project_id})
        return project

    async def _validate(
        self,
        project_id: int,
        candidates: List[CandidateAssignment],
        overrides: List[ResourceOverride],
    ) -> ConflictReport:
        edges = await load_edges(self.repository, {c.ref for c in candidates})
        persisted = await load_overrides(self.repository, project_id)
        return self.detector.detect(candidates, edges, [*persisted, *overrides])

    async def _log(
        self,
        event_type: EventType,
        project_id: int,
        actor: Optional[str],
        payload: AssignmentEvent,
    ) -> None:
        if self.event_store is None:
            return
        await self.event_store.log_from_model(
            event_type=event_type,
            entity_type="project",
            entity_id=project_id,
            actor=actor,
            payload_model=payload,
        )
