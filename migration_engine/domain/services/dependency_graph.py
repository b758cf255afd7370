import logging
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from migration_engine.domain.entities.schema import DatabaseObject
from migration_engine.domain.entities.migration import CircularDependency
from migration_engine.domain.entities.dependency import DependencyGraph, DependencyResolutionResult
from migration_engine.domain.exceptions import DependencyAnalysisError

logger = logging.getLogger(__name__)

_UNVISITED, _IN_PROGRESS, _DONE = 0, 1, 2


class DependencyGrapher:
    """
    Builds dependency graphs over database objects and orders them.
    Single Responsibility: graph construction, cycle detection, topological order.

    Traversals use an explicit stack of ``(node, next_neighbour)`` frames
    over integer node ids. ``max_depth`` bounds the longest dependency
    chain of a graph, counted in objects, whatever order it is walked in.
    """

    def __init__(self, max_depth: Optional[int] = None):
        self._max_depth = max_depth

    @property
    def max_depth(self) -> Optional[int]:
        return self._max_depth

    def build_graph(self, objects: Iterable[DatabaseObject]) -> DependencyGraph:
        """Build a fresh graph; edges point from an object to what it depends on."""
        graph = DependencyGraph()
        for obj in objects:
            graph.add_node(obj.key)
            for dep in obj.dependencies:
                graph.add_edge(obj.key, dep.target_key, dep.kind)
            for dependent in obj.dependents:
                graph.add_edge(dependent.target_key, obj.key, dependent.kind)

        logger.debug(f"[DependencyGrapher] Graph built: {len(graph)} nodes, {len(graph.edges)} edges")
        return graph

    def detect_cycles(self, graph: DependencyGraph) -> List[CircularDependency]:
        """Report every distinct cycle reachable by depth-first traversal from any root."""
        self._check_chain_depth(graph)
        state = [_UNVISITED] * len(graph)
        position = [-1] * len(graph)  # index of a node in the current path
        seen: Set[Tuple[int, ...]] = set()
        cycles: List[CircularDependency] = []

        for root in range(len(graph)):
            if state[root] != _UNVISITED:
                continue

            path = [root]
            stack = [(root, 0)]
            state[root] = _IN_PROGRESS
            position[root] = 0

            while stack:
                node, next_idx = stack[-1]
                neighbours = graph.adjacency[node]

                if next_idx >= len(neighbours):
                    stack.pop()
                    path.pop()
                    state[node] = _DONE
                    position[node] = -1
                    continue

                stack[-1] = (node, next_idx + 1)
                child = neighbours[next_idx]

                if state[child] == _IN_PROGRESS:
                    cycle = path[position[child]:]
                    canonical = self._canonical(cycle)
                    if canonical not in seen:
                        seen.add(canonical)
                        cycles.append(self._report(graph, cycle))
                elif state[child] == _UNVISITED:
                    state[child] = _IN_PROGRESS
                    position[child] = len(path)
                    path.append(child)
                    stack.append((child, 0))

        if cycles:
            logger.warning(f"[DependencyGrapher] {len(cycles)} circular dependencies detected")
        return cycles

    def topo_sort(self, graph: DependencyGraph) -> List[str]:
        """
        Order nodes so that every edge points from an earlier to a later node
        (dependents before their dependencies). A result shorter than the
        graph means a cycle was hit and only the committed prefix is returned.
        """
        post_order, complete = self._post_order(graph, range(len(graph) - 1, -1, -1))
        if not complete:
            logger.warning(
                f"[DependencyGrapher] Cycle hit during topological sort; "
                f"returning partial order of {len(post_order)}/{len(graph)} nodes"
            )
        return [graph.keys[i] for i in reversed(post_order)]

    def creation_order(self, graph: DependencyGraph) -> List[str]:
        """Dependencies before their dependents; partial on cycles like ``topo_sort``."""
        post_order, complete = self._post_order(graph, range(len(graph)))
        if not complete:
            logger.warning(
                f"[DependencyGrapher] Cycle hit during creation ordering; "
                f"returning partial order of {len(post_order)}/{len(graph)} nodes"
            )
        return [graph.keys[i] for i in post_order]

    def analyze(self, objects: Iterable[DatabaseObject]) -> DependencyResolutionResult:
        """Build, check and order in one call. Cycles are reported, never raised."""
        graph = self.build_graph(objects)
        cycles = self.detect_cycles(graph)
        order = self.topo_sort(graph)

        warnings = []
        if cycles:
            warnings.append(f"{len(cycles)} circular dependencies detected")
            warnings.extend(c.description for c in cycles)
        if len(order) < len(graph):
            warnings.append(f"Dependency order is partial: {len(order)} of {len(graph)} objects resolved")

        return DependencyResolutionResult(
            resolved=not cycles and len(order) == len(graph),
            order=order,
            circular_dependencies=cycles,
            warnings=warnings,
            complexity=self._complexity(len(graph.edges), cycles),
            edges=tuple(graph.edges),
        )

    def _post_order(self, graph: DependencyGraph, roots: Sequence[int]) -> Tuple[List[int], bool]:
        """Three-colour DFS. Returns (finished nodes, False if a back-edge aborted it)."""
        self._check_chain_depth(graph)
        state = [_UNVISITED] * len(graph)
        finished: List[int] = []

        for root in roots:
            if state[root] != _UNVISITED:
                continue
            stack = [(root, 0)]
            state[root] = _IN_PROGRESS

            while stack:
                node, next_idx = stack[-1]
                neighbours = graph.adjacency[node]

                if next_idx >= len(neighbours):
                    stack.pop()
                    state[node] = _DONE
                    finished.append(node)
                    continue

                stack[-1] = (node, next_idx + 1)
                child = neighbours[next_idx]
                if state[child] == _IN_PROGRESS:
                    return finished, False
                if state[child] == _UNVISITED:
                    state[child] = _IN_PROGRESS
                    stack.append((child, 0))

        return finished, True

    def _check_chain_depth(self, graph: DependencyGraph) -> None:
        """
        Raise when the longest chain of dependencies is longer than
        ``max_depth``. Chain lengths are memoised per node in a post-order
        walk; back-edges of cycles do not extend a chain.
        """
        if self._max_depth is None:
            return

        state = [_UNVISITED] * len(graph)
        chain = [0] * len(graph)

        for root in range(len(graph)):
            if state[root] != _UNVISITED:
                continue
            stack = [(root, 0)]
            state[root] = _IN_PROGRESS

            while stack:
                node, next_idx = stack[-1]
                neighbours = graph.adjacency[node]

                if next_idx >= len(neighbours):
                    stack.pop()
                    state[node] = _DONE
                    chain[node] = 1 + max(
                        (chain[c] for c in neighbours if state[c] == _DONE), default=0
                    )
                    if chain[node] > self._max_depth:
                        raise DependencyAnalysisError(
                            f"Dependency depth limit {self._max_depth} exceeded at {graph.keys[node]}"
                        )
                    continue

                stack[-1] = (node, next_idx + 1)
                child = neighbours[next_idx]
                if state[child] == _UNVISITED:
                    state[child] = _IN_PROGRESS
                    stack.append((child, 0))

    @staticmethod
    def _canonical(cycle: List[int]) -> Tuple[int, ...]:
        pivot = cycle.index(min(cycle))
        return tuple(cycle[pivot:] + cycle[:pivot])

    @staticmethod
    def _report(graph: DependencyGraph, cycle: List[int]) -> CircularDependency:
        keys = tuple(graph.keys[i] for i in cycle)
        return CircularDependency(
            objects=keys,
            severity="error",
            description=f"Circular dependency detected: {' -> '.join(keys + keys[:1])}",
        )

    @staticmethod
    def _complexity(edge_count: int, cycles: List[CircularDependency]) -> str:
        if cycles or edge_count > 20:
            return "complex"
        if edge_count > 10:
            return "moderate"
        return "simple"
