"""Unit tests for the conflict detector."""

import pytest

from src.engines.assembly.conflict_detector import ConflictDetector
from src.engines.assembly.types import (
    CandidateAssignment,
    ConflictRule,
    DependencyEdge,
    FindingSeverity,
    pair_override,
)
from src.kernel.errors import ConflictDetected, InvariantViolation, UnresolvedCriticalDependency
from src.kernel.models.dependency import DependencyKind
from src.kernel.models.resource import ResourceRef, ResourceType

A1 = ResourceRef(resource_type=ResourceType.AGENT, resource_id="a1")
A2 = ResourceRef(resource_type=ResourceType.AGENT, resource_id="a2")
R1 = ResourceRef(resource_type=ResourceType.RULE, resource_id="r1")
R2 = ResourceRef(resource_type=ResourceType.RULE, resource_id="r2")


def cand(ref, primary=False, order=0) -> CandidateAssignment:
    return CandidateAssignment(ref=ref, is_primary=primary, order=order)


def edge(source, target, kind=DependencyKind.REQUIRES, critical=True) -> DependencyEdge:
    return DependencyEdge(source=source, target=target, kind=kind, critical=critical)


@pytest.fixture
def detector() -> ConflictDetector:
    return ConflictDetector()


def test_clean_set_has_no_findings(detector):
    report = detector.detect([cand(A1, primary=True), cand(R1)], [edge(A1, R1)])
    assert report.findings == []
    assert report.applicable
    report.raise_for_blocking()


def test_duplicate_primary_blocks(detector):
    report = detector.detect([cand(A1, primary=True), cand(A2, primary=True)], [])
    assert [f.rule for f in report.blocking] == [ConflictRule.DUPLICATE_PRIMARY]
    with pytest.raises(InvariantViolation) as exc_info:
        report.raise_for_blocking()
    assert exc_info.value.invariant == "one_primary_per_type"


def test_primaries_of_different_types_are_fine(detector):
    report = detector.detect([cand(A1, primary=True), cand(R1, primary=True)], [])
    assert report.findings == []


def test_duplicate_identity_blocks(detector):
    report = detector.detect([cand(A1), cand(A1)], [])
    assert [f.rule for f in report.blocking] == [ConflictRule.DUPLICATE_IDENTITY]
    with pytest.raises(InvariantViolation) as exc_info:
        report.raise_for_blocking()
    assert exc_info.value.details["resources"] == ["agent:a1"]


def test_declared_conflict_blocks_in_either_direction(detector):
    for source, target in ((A1, R1), (R1, A1)):
        report = detector.detect([cand(A1), cand(R1)], [edge(source, target, DependencyKind.CONFLICTS)])
        assert [f.rule for f in report.blocking] == [ConflictRule.DECLARED_CONFLICT]
        with pytest.raises(ConflictDetected) as exc_info:
            report.raise_for_blocking()
        assert exc_info.value.details["edge_kind"] == "conflicts"


def test_declared_conflict_pair_reported_once(detector):
    edges = [edge(A1, R1, DependencyKind.CONFLICTS), edge(R1, A1, DependencyKind.CONFLICTS)]
    report = detector.detect([cand(A1), cand(R1)], edges)
    assert len(report.findings) == 1


def test_override_suppresses_conflict_and_is_reported(detector):
    override = pair_override(R1, A1)
    report = detector.detect(
        [cand(A1), cand(R1)],
        [edge(A1, R1, DependencyKind.CONFLICTS)],
        [override],
    )
    assert report.findings == []
    assert report.applied_overrides == [override]


def test_unresolved_critical_dependency_blocks(detector):
    report = detector.detect([cand(A1)], [edge(A1, R1)])
    finding = report.blocking[0]
    assert finding.rule == ConflictRule.UNRESOLVED_CRITICAL_DEPENDENCY
    assert finding.resources == [A1, R1]
    with pytest.raises(UnresolvedCriticalDependency):
        report.raise_for_blocking()


def test_override_suppresses_unresolved_dependency(detector):
    report = detector.detect([cand(A1)], [edge(A1, R1)], [pair_override(A1, R1)])
    assert report.blocking == []
    assert len(report.applied_overrides) == 1


def test_missing_enhancement_is_advisory(detector):
    report = detector.detect(
        [cand(A1)],
        [edge(A1, R1, DependencyKind.ENHANCES), edge(A1, R2, critical=False)],
    )
    assert report.blocking == []
    assert [f.severity for f in report.advisory] == [FindingSeverity.ADVISORY, FindingSeverity.ADVISORY]
    assert {f.resources[1] for f in report.advisory} == {R1, R2}


def test_findings_sorted_by_rule_order(detector):
    candidates = [cand(A1, primary=True), cand(A2, primary=True), cand(R1)]
    edges = [
        edge(R1, R2),
        edge(A1, R1, DependencyKind.CONFLICTS),
        edge(A2, R2, DependencyKind.ENHANCES),
    ]
    report = detector.detect(candidates, edges)
    assert [f.rule for f in report.findings] == [
        ConflictRule.DUPLICATE_PRIMARY,
        ConflictRule.DECLARED_CONFLICT,
        ConflictRule.UNRESOLVED_CRITICAL_DEPENDENCY,
        ConflictRule.MISSING_ENHANCEMENT,
    ]
    # First blocking rule decides the error type
    with pytest.raises(InvariantViolation):
        report.raise_for_blocking()


def test_report_is_deterministic(detector):
    candidates = [cand(A1), cand(R1), cand(A2)]
    edges = [edge(A1, R2), edge(A2, R2), edge(A1, A2, DependencyKind.CONFLICTS)]
    first = detector.detect(candidates, edges)
    second = detector.detect(list(reversed(candidates)), list(reversed(edges)))
    assert first == second
