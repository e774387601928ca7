"""Unit tests for the dependency graph resolver."""

import pytest

from src.engines.assembly.dependency_resolver import DependencyGraphResolver
from src.engines.assembly.types import DependencyEdge
from src.kernel.models.dependency import DependencyKind
from src.kernel.models.resource import ResourceRef, ResourceType


def agent(resource_id: str) -> ResourceRef:
    return ResourceRef(resource_type=ResourceType.AGENT, resource_id=resource_id)


def rule(resource_id: str) -> ResourceRef:
    return ResourceRef(resource_type=ResourceType.RULE, resource_id=resource_id)


def edge(source, target, kind=DependencyKind.REQUIRES, critical=True) -> DependencyEdge:
    return DependencyEdge(source=source, target=target, kind=kind, critical=critical)


@pytest.fixture
def resolver() -> DependencyGraphResolver:
    return DependencyGraphResolver()


class TestClosure:
    """Critical requires edges pull their targets in transitively."""

    def test_transitive_requires(self, resolver):
        a, b, c = agent("a"), rule("b"), rule("c")
        plan = resolver.resolve([a], [edge(a, b), edge(b, c)])
        assert plan.resolved == [a, b, c]
        assert plan.added_by_dependency == [b, c]
        assert plan.seeds == [a]

    def test_non_critical_requires_is_not_pulled(self, resolver):
        a, b = agent("a"), rule("b")
        plan = resolver.resolve([a], [edge(a, b, critical=False)])
        assert plan.resolved == [a]
        assert [e.target for e in plan.optional] == [b]

    def test_enhances_only_suggested_by_default(self, resolver):
        a, b = agent("a"), rule("b")
        plan = resolver.resolve([a], [edge(a, b, DependencyKind.ENHANCES)])
        assert plan.resolved == [a]
        assert [e.target for e in plan.suggestions] == [b]

    def test_enhances_followed_when_asked(self, resolver):
        a, b = agent("a"), rule("b")
        plan = resolver.resolve([a], [edge(a, b, DependencyKind.ENHANCES)], follow_enhancements=True)
        assert plan.resolved == [a, b]
        assert plan.suggestions == []

    def test_conflicts_are_reported_not_followed(self, resolver):
        a, b = agent("a"), rule("b")
        plan = resolver.resolve([a, b], [edge(a, b, DependencyKind.CONFLICTS)])
        assert plan.resolved == [a, b]
        assert len(plan.conflicts) == 1

        plan = resolver.resolve([a], [edge(a, b, DependencyKind.CONFLICTS)])
        assert plan.resolved == [a]
        assert plan.conflicts == []

    def test_unavailable_target_is_unresolved(self, resolver):
        a, b = agent("a"), rule("b")
        plan = resolver.resolve([a], [edge(a, b)], available={a})
        assert plan.resolved == [a]
        assert [e.target for e in plan.unresolved_critical] == [b]

    def test_empty_seeds(self, resolver):
        plan = resolver.resolve([], [])
        assert plan.resolved == []
        assert plan.cycles == []


class TestDeterminism:
    def test_output_independent_of_seed_order(self, resolver):
        a, b, c = agent("a"), rule("b"), rule("c")
        edges = [edge(a, c), edge(b, c)]
        first = resolver.resolve([a, b], edges)
        second = resolver.resolve([b, a], list(reversed(edges)))
        assert first == second

    def test_sorted_by_resource_id(self, resolver):
        z, m, a = agent("z"), rule("m"), rule("a")
        plan = resolver.resolve([z], [edge(z, m), edge(z, a)])
        assert [r.resource_id for r in plan.resolved] == ["a", "m", "z"]

    def test_duplicate_seeds_collapse(self, resolver):
        a = agent("a")
        plan = resolver.resolve([a, a], [])
        assert plan.resolved == [a]


class TestCycles:
    def test_two_node_cycle_terminates(self, resolver):
        a, b = agent("a"), rule("b")
        plan = resolver.resolve([a], [edge(a, b), edge(b, a)])
        assert plan.resolved == [a, b]
        assert plan.has_cycles
        assert plan.cycles == [[a, b]]

    def test_cycle_rotated_to_smallest_member(self, resolver):
        a, b, c = rule("a"), rule("b"), rule("c")
        plan = resolver.resolve([c], [edge(c, a), edge(a, b), edge(b, c)])
        assert plan.cycles == [[a, b, c]]

    def test_self_loop(self, resolver):
        a = agent("a")
        plan = resolver.resolve([a], [edge(a, a)])
        assert plan.cycles == [[a]]

    def test_enhances_loop_is_not_a_cycle(self, resolver):
        a, b = agent("a"), rule("b")
        edges = [edge(a, b, DependencyKind.ENHANCES), edge(b, a, DependencyKind.ENHANCES)]
        plan = resolver.resolve([a], edges, follow_enhancements=True)
        assert plan.resolved == [a, b]
        assert plan.cycles == []
