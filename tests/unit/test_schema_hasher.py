"""Unit tests for SchemaHasher."""

import unittest

from migration_engine.domain.services.schema_hasher import SchemaHasher
from tests.fixtures.factories import MigrationDataFactory as F


class TestSchemaHasher(unittest.TestCase):

    def setUp(self):
        self.hasher = SchemaHasher()
        self.objects = [F.table("users"), F.view("v", "SELECT 1")]

    def test_hash_ignores_object_order(self):
        self.assertEqual(self.hasher.hash(self.objects), self.hasher.hash(list(reversed(self.objects))))

    def test_hash_changes_with_definition(self):
        changed = [F.table("users"), F.view("v", "SELECT 2")]

        self.assertNotEqual(self.hasher.hash(self.objects), self.hasher.hash(changed))

    def test_sha256_digest(self):
        self.assertEqual(len(self.hasher.hash(self.objects)), 64)

    def test_canonical_form(self):
        canonical = SchemaHasher.canonical_form([F.view("v", "SELECT 1"), F.table("a", definition="X")])

        self.assertEqual(canonical, "table:public:a:X|view:public:v:SELECT 1")

    def test_unknown_algorithm_uses_rolling_hash(self):
        """Test the fallback when the digest is unavailable."""
        # Arrange
        hasher = SchemaHasher(algorithm="not-a-digest")

        # Act
        digest = hasher.hash(self.objects)

        # Assert
        self.assertEqual(digest, SchemaHasher.rolling_hash(SchemaHasher.canonical_form(self.objects)))

    def test_rolling_hash(self):
        self.assertEqual(SchemaHasher.rolling_hash(""), "0")
        self.assertEqual(SchemaHasher.rolling_hash("a"), "61")

    def test_unhashable_input_uses_timestamp(self):
        """Test that a canonicalization failure still yields a hex string."""
        digest = self.hasher.hash([object()])

        self.assertGreater(int(digest, 16), 0)


if __name__ == '__main__':
    unittest.main()
