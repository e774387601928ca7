"""
Dependency Graph Resolver - expands a seed selection along requires edges.

Algorithm:
1. Fixed-point closure: every critical ``requires`` edge whose source is in
   the working set pulls its target in (``enhances`` too when asked).
2. Coloring DFS over the requires edges of the induced subgraph reports
   cycles. Cycles never abort resolution; membership is idempotent so every
   node is visited once.
3. ``conflicts`` edges are only surfaced; the conflict detector judges them.

Output ordering is by resource id ascending, independent of seed order.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set

from src.engines.assembly.types import DependencyEdge, ExpansionPlan, sort_edges
from src.kernel.models.dependency import DependencyKind
from src.kernel.models.resource import ResourceRef, sort_refs
from src.logging_config import get_logger

logger = get_logger(__name__)

_WHITE, _GREY, _BLACK = 0, 1, 2


class UnknownEdgeKind(ValueError):
    """Edge kind outside requires/enhances/conflicts."""


class DependencyGraphResolver:
    """
    Pure resolver over an edge corpus.

    Usage:
        resolver = DependencyGraphResolver()
        plan = resolver.resolve(seeds, edges, available=known_refs)
    """

    def resolve(
        self,
        seeds: Iterable[ResourceRef],
        edges: Iterable[DependencyEdge],
        available: Optional[Set[ResourceRef]] = None,
        follow_enhancements: bool = False,
    ) -> ExpansionPlan:
        """
        Expand ``seeds`` to a dependency-complete set.

        Args:
            seeds: Resources the caller selected
            edges: Edge corpus (at least every edge whose source may join the set)
            available: Resources that exist; critical targets outside it are
                reported as unresolved instead of added. None trusts every target.
            follow_enhancements: Pull enhances targets in as well

        Returns:
            ExpansionPlan with deterministic ordering
        """
        seed_list = sort_refs(seeds)
        outgoing = self._index(edges)

        working: Set[ResourceRef] = set(seed_list)
        unresolved: Set[DependencyEdge] = set()
        frontier = list(seed_list)

        while frontier:
            next_frontier: List[ResourceRef] = []
            for node in sort_refs(frontier):
                for edge in outgoing.get(node, []):
                    if not self._pulls_target(edge, follow_enhancements):
                        continue
                    target = edge.target
                    if target in working:
                        continue
                    if available is not None and target not in available:
                        if edge.kind == DependencyKind.REQUIRES:
                            unresolved.add(edge)
                        continue
                    working.add(target)
                    next_frontier.append(target)
            frontier = next_frontier

        suggestions: Set[DependencyEdge] = set()
        optional: Set[DependencyEdge] = set()
        conflicts: Set[DependencyEdge] = set()
        for node in working:
            for edge in outgoing.get(node, []):
                if edge.kind == DependencyKind.REQUIRES:
                    if not edge.critical:
                        optional.add(edge)
                elif edge.kind == DependencyKind.ENHANCES:
                    if edge.target not in working:
                        suggestions.add(edge)
                elif edge.kind == DependencyKind.CONFLICTS:
                    if edge.target in working:
                        conflicts.add(edge)
                else:
                    raise UnknownEdgeKind(edge.kind)

        cycles = self.find_cycles(working, outgoing)
        if cycles:
            logger.warning(
                "Dependency cycle detected; members flagged for review",
                extra={"cycles": [[r.key for r in c] for c in cycles]},
            )

        resolved = sort_refs(working)
        seed_set = set(seed_list)
        return ExpansionPlan(
            seeds=seed_list,
            resolved=resolved,
            added_by_dependency=[r for r in resolved if r not in seed_set],
            suggestions=sort_edges(suggestions),
            optional=sort_edges(optional),
            conflicts=sort_edges(conflicts),
            cycles=cycles,
            unresolved_critical=sort_edges(unresolved),
        )

    @staticmethod
    def _index(edges: Iterable[DependencyEdge]) -> Dict[ResourceRef, List[DependencyEdge]]:
        outgoing: Dict[ResourceRef, List[DependencyEdge]] = defaultdict(list)
        for edge in sort_edges(edges):
            if edge.kind not in (DependencyKind.REQUIRES, DependencyKind.ENHANCES, DependencyKind.CONFLICTS):
                raise UnknownEdgeKind(edge.kind)
            outgoing[edge.source].append(edge)
        return outgoing

    @staticmethod
    def _pulls_target(edge: DependencyEdge, follow_enhancements: bool) -> bool:
        if edge.kind == DependencyKind.REQUIRES:
            return edge.critical
        if edge.kind == DependencyKind.ENHANCES:
            return follow_enhancements
        if edge.kind == DependencyKind.CONFLICTS:
            return False
        raise UnknownEdgeKind(edge.kind)

    @staticmethod
    def find_cycles(
        nodes: Set[ResourceRef],
        outgoing: Dict[ResourceRef, List[DependencyEdge]],
    ) -> List[List[ResourceRef]]:
        """
        Cycles among requires edges of the subgraph induced by ``nodes``.

        Each cycle is rotated to start at its smallest member and reported once.
        """
        color: Dict[ResourceRef, int] = {n: _WHITE for n in nodes}
        stack: List[ResourceRef] = []
        found: Dict[tuple, List[ResourceRef]] = {}

        def successors(node: ResourceRef) -> List[ResourceRef]:
            return sort_refs(
                e.target for e in outgoing.get(node, [])
                if e.kind == DependencyKind.REQUIRES and e.target in nodes
            )

        def visit(node: ResourceRef) -> None:
            color[node] = _GREY
            stack.append(node)
            for succ in successors(node):
                if color[succ] == _GREY:
                    cycle = stack[stack.index(succ):]
                    pivot = min(range(len(cycle)), key=lambda i: cycle[i].sort_key())
                    rotated = cycle[pivot:] + cycle[:pivot]
                    found.setdefault(tuple(r.key for r in rotated), rotated)
                elif color[succ] == _WHITE:
                    visit(succ)
            stack.pop()
            color[node] = _BLACK

        for node in sort_refs(nodes):
            if color[node] == _WHITE:
                visit(node)

        return [found[k] for k in sorted(found)]
