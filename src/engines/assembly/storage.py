"""
Snapshot helpers: read the persisted state the engines validate against.

The engines never query tables directly; these helpers turn repository rows
into the value types the resolver and detector consume.
"""

import hashlib
from typing import Dict, Iterable, List, Optional, Set, Tuple

from src.engines.assembly.types import (
    CandidateAssignment,
    DependencyEdge,
    ResourceOverride,
    sort_edges,
)
from src.kernel.models.assignment import Assignment, AssignmentOverride
from src.kernel.models.dependency import DependencyKind
from src.kernel.models.resource import Resource, ResourceRef, ResourceType
from src.kernel.repository import ResourceRepository


def ref_of(assignment: Assignment) -> ResourceRef:
    return ResourceRef(
        resource_type=ResourceType(assignment.resource_type),
        resource_id=assignment.resource_id,
    )


async def load_edges(repo: ResourceRepository, sources: Iterable[ResourceRef]) -> List[DependencyEdge]:
    """Every edge whose source is one of ``sources``."""
    rows = await repo.list_dependency_edges(list(sources))
    return sort_edges(DependencyEdge.from_model(row) for row in rows)


async def load_edge_closure(
    repo: ResourceRepository,
    seeds: Iterable[ResourceRef],
) -> List[DependencyEdge]:
    """
    Edges reachable from ``seeds`` by following requires/enhances targets.

    Enough for the resolver to expand the seeds without loading the whole
    edge corpus.
    """
    visited: Set[ResourceRef] = set()
    frontier = set(seeds)
    edges: Set[DependencyEdge] = set()

    while frontier:
        visited |= frontier
        batch = await load_edges(repo, frontier)
        edges.update(batch)
        frontier = {
            e.target for e in batch
            if e.kind in (DependencyKind.REQUIRES, DependencyKind.ENHANCES)
            and e.target not in visited
        }

    return sort_edges(edges)


async def load_available(
    repo: ResourceRepository,
    refs: Iterable[ResourceRef],
) -> Tuple[Set[ResourceRef], Dict[ResourceRef, Resource]]:
    """Refs that exist and are enabled, plus every resource found."""
    found = await repo.get_resources(set(refs))
    available = {ref for ref, resource in found.items() if resource.is_available}
    return available, found


async def load_candidates(
    repo: ResourceRepository,
    project_id: int,
) -> Tuple[List[Assignment], List[CandidateAssignment]]:
    """Persisted assignments of a project and their candidate form."""
    assignments = await repo.list_assignments(project_id)
    return assignments, [CandidateAssignment.from_model(a) for a in assignments]


def override_from_model(row: AssignmentOverride) -> ResourceOverride:
    return ResourceOverride(
        first=ResourceRef.parse(row.first_resource),
        second=ResourceRef.parse(row.second_resource),
    )


async def load_overrides(repo: ResourceRepository, project_id: int) -> List[ResourceOverride]:
    """Overrides previously granted for the project."""
    return [override_from_model(row) for row in await repo.list_overrides(project_id)]


async def record_overrides(
    repo: ResourceRepository,
    project_id: int,
    applied: Iterable[ResourceOverride],
    persisted: Iterable[ResourceOverride],
    granted_by: Optional[str] = None,
) -> List[ResourceOverride]:
    """Persist applied overrides the project does not hold yet. Returns the new ones."""
    known = {tuple(o.keys()) for o in persisted}
    added: List[ResourceOverride] = []
    for override in applied:
        first, second = override.keys()
        if (first, second) in known:
            continue
        known.add((first, second))
        await repo.add(AssignmentOverride(
            project_id=project_id,
            first_resource=first,
            second_resource=second,
            granted_by=granted_by,
        ))
        added.append(override)
    return added


def fingerprint_assignments(assignments: Iterable[Assignment]) -> str:
    """SHA-256 over the sorted (type, id, primary, order) lines of an assignment set."""
    lines = sorted(
        f"{ref_of(a).key}:{int(bool(a.is_primary))}:{a.assignment_order}"
        for a in assignments
    )
    return hashlib.sha256("\n".join(lines).encode("utf-8")).hexdigest()


def next_orders(assignments: Iterable[Assignment]) -> Dict[ResourceType, int]:
    """Per type, one past the highest assignment_order in use."""
    result: Dict[ResourceType, int] = {}
    for a in assignments:
        resource_type = ResourceType(a.resource_type)
        result[resource_type] = max(result.get(resource_type, 0), a.assignment_order + 1)
    return result
