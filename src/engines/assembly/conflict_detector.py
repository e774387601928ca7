"""
Conflict Detector - validates a candidate assignment set.

Rules run in a fixed order; findings are sorted by rule index and then by the
resources they name, so the same candidate set always yields the same report.

1. Duplicate primary per resource type          -> blocking
2. Duplicate (resource_type, resource_id)       -> blocking
3. conflicts edge between two present resources -> blocking unless overridden
4. Critical requires edge with missing target   -> blocking unless overridden
5. enhances (or optional requires) target absent -> advisory
"""

from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Sequence, Set

from src.engines.assembly.types import (
    CandidateAssignment,
    ConflictFinding,
    ConflictReport,
    ConflictRule,
    DependencyEdge,
    FindingSeverity,
    ResourceOverride,
    is_overridden,
    pair_override,
    sort_edges,
)
from src.kernel.models.dependency import DependencyKind
from src.kernel.models.resource import ResourceRef, ResourceType, sort_refs


class ConflictDetector:
    """
    Stateless rule engine over (candidates, edges, overrides).

    Usage:
        report = ConflictDetector().detect(candidates, edges, overrides)
        report.raise_for_blocking()
    """

    def detect(
        self,
        candidates: Sequence[CandidateAssignment],
        edges: Iterable[DependencyEdge],
        overrides: Iterable[ResourceOverride] = (),
    ) -> ConflictReport:
        overrides = list(overrides)
        edge_list = sort_edges(edges)
        present: Set[ResourceRef] = {c.ref for c in candidates}

        findings: List[ConflictFinding] = []
        applied: Set[ResourceOverride] = set()
        findings += self._duplicate_primaries(candidates)
        findings += self._duplicate_identities(candidates)
        findings += self._declared_conflicts(edge_list, present, overrides, applied)
        findings += self._unresolved_critical(edge_list, present, overrides, applied)
        findings += self._missing_enhancements(edge_list, present)

        findings.sort(key=ConflictFinding.sort_key)
        return ConflictReport(
            findings=findings,
            applied_overrides=sorted(applied, key=ResourceOverride.keys),
        )

    @staticmethod
    def _duplicate_primaries(candidates: Sequence[CandidateAssignment]) -> List[ConflictFinding]:
        primaries: Dict[ResourceType, List[ResourceRef]] = defaultdict(list)
        for c in candidates:
            if c.is_primary:
                primaries[c.ref.resource_type].append(c.ref)

        findings = []
        for resource_type in sorted(primaries, key=lambda t: t.value):
            refs = primaries[resource_type]
            if len(refs) > 1:
                findings.append(ConflictFinding(
                    rule=ConflictRule.DUPLICATE_PRIMARY,
                    severity=FindingSeverity.BLOCKING,
                    resources=sort_refs(refs),
                    message=f"{len(refs)} primary {resource_type.value} assignments; at most one is allowed",
                    invariant="one_primary_per_type",
                ))
        return findings

    @staticmethod
    def _duplicate_identities(candidates: Sequence[CandidateAssignment]) -> List[ConflictFinding]:
        counts = Counter(c.ref for c in candidates)
        return [
            ConflictFinding(
                rule=ConflictRule.DUPLICATE_IDENTITY,
                severity=FindingSeverity.BLOCKING,
                resources=[ref],
                message=f"{ref.key} is assigned {count} times",
                invariant="unique_assignment",
            )
            for ref, count in sorted(counts.items(), key=lambda item: item[0].sort_key())
            if count > 1
        ]

    @staticmethod
    def _declared_conflicts(
        edges: List[DependencyEdge],
        present: Set[ResourceRef],
        overrides: List[ResourceOverride],
        applied: Set[ResourceOverride],
    ) -> List[ConflictFinding]:
        findings = []
        seen: Set[frozenset] = set()
        for edge in edges:
            if edge.kind != DependencyKind.CONFLICTS:
                continue
            if edge.source not in present or edge.target not in present:
                continue
            pair = frozenset((edge.source, edge.target))
            if pair in seen:
                continue
            if is_overridden(overrides, edge.source, edge.target):
                applied.add(pair_override(edge.source, edge.target))
                continue
            seen.add(pair)
            findings.append(ConflictFinding(
                rule=ConflictRule.DECLARED_CONFLICT,
                severity=FindingSeverity.BLOCKING,
                resources=sort_refs(pair),
                message=f"{edge.source.key} conflicts with {edge.target.key}"
                + (f": {edge.reason}" if edge.reason else ""),
                edge_kind=edge.kind,
            ))
        return findings

    @staticmethod
    def _unresolved_critical(
        edges: List[DependencyEdge],
        present: Set[ResourceRef],
        overrides: List[ResourceOverride],
        applied: Set[ResourceOverride],
    ) -> List[ConflictFinding]:
        findings = []
        for edge in edges:
            if edge.kind != DependencyKind.REQUIRES or not edge.critical:
                continue
            if edge.source not in present or edge.target in present:
                continue
            if is_overridden(overrides, edge.source, edge.target):
                applied.add(pair_override(edge.source, edge.target))
                continue
            findings.append(ConflictFinding(
                rule=ConflictRule.UNRESOLVED_CRITICAL_DEPENDENCY,
                severity=FindingSeverity.BLOCKING,
                resources=[edge.source, edge.target],
                message=f"{edge.source.key} requires {edge.target.key}, which is not assigned",
                edge_kind=edge.kind,
            ))
        return findings

    @staticmethod
    def _missing_enhancements(
        edges: List[DependencyEdge],
        present: Set[ResourceRef],
    ) -> List[ConflictFinding]:
        findings = []
        for edge in edges:
            if edge.source not in present or edge.target in present:
                continue
            if edge.kind == DependencyKind.ENHANCES:
                message = f"{edge.target.key} would enhance {edge.source.key}"
            elif edge.kind == DependencyKind.REQUIRES and not edge.critical:
                message = f"{edge.source.key} optionally uses {edge.target.key}"
            elif edge.kind in (DependencyKind.REQUIRES, DependencyKind.CONFLICTS):
                continue
            else:
                raise ValueError(f"Unknown dependency kind: {edge.kind!r}")
            findings.append(ConflictFinding(
                rule=ConflictRule.MISSING_ENHANCEMENT,
                severity=FindingSeverity.ADVISORY,
                resources=[edge.source, edge.target],
                message=message,
                edge_kind=edge.kind,
            ))
        return findings
