from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from migration_engine.domain.entities.migration import CircularDependency


@dataclass(frozen=True)
class DependencyEdge:
    """``from_key`` depends on ``to_key``."""
    from_key: str
    to_key: str
    kind: str = "depends_on"


@dataclass
class DependencyGraph:
    """
    Directed graph over object identity keys.
    Nodes live in an arena (``keys``) and edges reference them by index,
    so traversals work on integers instead of copying key paths.
    """
    keys: List[str] = field(default_factory=list)
    index: Dict[str, int] = field(default_factory=dict)
    adjacency: List[List[int]] = field(default_factory=list)
    edges: List[DependencyEdge] = field(default_factory=list)

    def add_node(self, key: str) -> int:
        if key not in self.index:
            self.index[key] = len(self.keys)
            self.keys.append(key)
            self.adjacency.append([])
        return self.index[key]

    def add_edge(self, from_key: str, to_key: str, kind: str = "depends_on") -> None:
        src = self.add_node(from_key)
        dst = self.add_node(to_key)
        if dst not in self.adjacency[src]:
            self.adjacency[src].append(dst)
            self.edges.append(DependencyEdge(from_key, to_key, kind))

    def dependencies_of(self, key: str) -> List[str]:
        if key not in self.index:
            return []
        return [self.keys[i] for i in self.adjacency[self.index[key]]]

    def __len__(self) -> int:
        return len(self.keys)

    def __contains__(self, key: str) -> bool:
        return key in self.index


@dataclass
class DependencyResolutionResult:
    resolved: bool
    order: List[str]
    circular_dependencies: List[CircularDependency] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    complexity: str = "simple"  # simple, moderate, complex
    edges: Tuple[DependencyEdge, ...] = field(default_factory=tuple)
