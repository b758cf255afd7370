"""Unit tests for ChangeOrderer."""

import unittest

from migration_engine.domain.entities.difference import DifferenceKind
from migration_engine.domain.services.change_orderer import ChangeOrderer
from migration_engine.domain.services.dependency_graph import DependencyGrapher
from tests.fixtures.factories import MigrationDataFactory as F

ADDED, REMOVED, MODIFIED = DifferenceKind.ADDED, DifferenceKind.REMOVED, DifferenceKind.MODIFIED


class TestChangeOrderer(unittest.TestCase):
    """Test ordering of differences."""

    def setUp(self):
        self.grapher = DependencyGrapher()
        self.orderer = ChangeOrderer(self.grapher)
        self.graph = self.grapher.build_graph([
            F.table("users"),
            F.view("active_users", "SELECT * FROM users", reads=("table:public:users",)),
        ])

    def test_removed_then_added_then_modified(self):
        """Test the stable kind partition without a graph."""
        # Arrange
        differences = [
            F.difference(MODIFIED, "view", "m1"),
            F.difference(ADDED, "table", "a1"),
            F.difference(REMOVED, "table", "r1"),
            F.difference(ADDED, "table", "a2"),
            F.difference(REMOVED, "index", "r2"),
        ]

        # Act
        ordered = self.orderer.order(differences)

        # Assert
        self.assertEqual([d.object_name for d in ordered], ["r1", "r2", "a1", "a2", "m1"])

    def test_drops_run_dependents_first(self):
        """Test that a view is dropped before the table it reads."""
        differences = [F.difference(REMOVED, "table", "users"), F.difference(REMOVED, "view", "active_users")]

        ordered = self.orderer.order(differences, self.graph)

        self.assertEqual([d.object_name for d in ordered], ["active_users", "users"])

    def test_creates_run_dependencies_first(self):
        """Test that a table is created before the view reading it."""
        differences = [F.difference(ADDED, "view", "active_users"), F.difference(ADDED, "table", "users")]

        ordered = self.orderer.order(differences, self.graph)

        self.assertEqual([d.object_name for d in ordered], ["users", "active_users"])

    def test_unranked_differences_keep_input_order(self):
        """Test that objects missing from the graph follow the ranked ones."""
        # Arrange
        differences = [
            F.difference(ADDED, "sequence", "seq_b"),
            F.difference(ADDED, "view", "active_users"),
            F.difference(ADDED, "sequence", "seq_a"),
        ]

        # Act
        ordered = self.orderer.order(differences, self.graph)

        # Assert
        self.assertEqual([d.object_name for d in ordered], ["active_users", "seq_b", "seq_a"])

    def test_empty_input(self):
        """Test that no differences order to nothing."""
        self.assertEqual(self.orderer.order([], self.graph), [])


if __name__ == '__main__':
    unittest.main()
