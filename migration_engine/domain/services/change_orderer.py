import logging
from typing import Dict, List, Optional

from migration_engine.domain.entities.difference import DifferenceKind, SchemaDifference
from migration_engine.domain.entities.dependency import DependencyGraph
from migration_engine.domain.services.dependency_graph import DependencyGrapher

logger = logging.getLogger(__name__)

# Drops free names first, creates come before data-dependent alters.
KIND_PRIORITY = {
    DifferenceKind.REMOVED: 1,
    DifferenceKind.ADDED: 2,
    DifferenceKind.MODIFIED: 3,
}


class ChangeOrderer:
    """
    Orders schema differences for safe execution.
    Single Responsibility: ordering only.
    """

    def __init__(self, grapher: Optional[DependencyGrapher] = None):
        self._grapher = grapher or DependencyGrapher()

    def order(
        self,
        differences: List[SchemaDifference],
        graph: Optional[DependencyGraph] = None,
    ) -> List[SchemaDifference]:
        """
        Stable partition Removed -> Added -> Modified. With a graph, each
        group is refined: drops run dependents-first, creates and alters
        run dependencies-first.
        """
        groups: Dict[DifferenceKind, List[SchemaDifference]] = {kind: [] for kind in KIND_PRIORITY}
        for difference in differences:
            groups[difference.kind].append(difference)

        if graph is not None and graph.edges:
            drop_rank = self._rank(self._grapher.topo_sort(graph))
            create_rank = self._rank(self._grapher.creation_order(graph))
            groups[DifferenceKind.REMOVED] = self._refine(groups[DifferenceKind.REMOVED], drop_rank)
            groups[DifferenceKind.ADDED] = self._refine(groups[DifferenceKind.ADDED], create_rank)
            groups[DifferenceKind.MODIFIED] = self._refine(groups[DifferenceKind.MODIFIED], create_rank)

        ordered = []
        for kind in sorted(KIND_PRIORITY, key=KIND_PRIORITY.get):
            ordered.extend(groups[kind])

        logger.info(
            f"[ChangeOrderer] Ordered {len(ordered)} changes: "
            f"{len(groups[DifferenceKind.REMOVED])} drops, {len(groups[DifferenceKind.ADDED])} creates, "
            f"{len(groups[DifferenceKind.MODIFIED])} alters"
        )
        return ordered

    @staticmethod
    def _rank(keys: List[str]) -> Dict[str, int]:
        return {key: position for position, key in enumerate(keys)}

    @staticmethod
    def _refine(group: List[SchemaDifference], rank: Dict[str, int]) -> List[SchemaDifference]:
        """Ranked members first in graph order; unranked keep their input order after them."""
        unranked_offset = len(rank)
        keyed = [
            (rank.get(difference.key, unranked_offset + position), position, difference)
            for position, difference in enumerate(group)
        ]
        keyed.sort(key=lambda item: (item[0], item[1]))
        return [difference for _, _, difference in keyed]
