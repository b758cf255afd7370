"""Unit tests for SQLValidator."""

import unittest
from dataclasses import replace

from migration_engine.domain.entities.migration import GenerationWarning, Operation
from migration_engine.infrastructure.validators.sql_validator import SQLValidator
from tests.fixtures.factories import MigrationDataFactory as F


class TestSQLValidator(unittest.TestCase):
    """Test SQL validation."""

    def setUp(self):
        self.validator = SQLValidator()

    def test_valid_sql(self):
        is_valid, error = self.validator.validate_syntax("ALTER TABLE users ADD COLUMN age integer;")

        self.assertTrue(is_valid)
        self.assertIsNone(error)

    def test_empty_sql(self):
        self.assertEqual(self.validator.validate_syntax("  "), (False, "Empty SQL statement"))

    def test_drop_database_rejected(self):
        is_valid, error = self.validator.validate_syntax("DROP DATABASE production;")

        self.assertFalse(is_valid)
        self.assertEqual(error, "DROP DATABASE is not allowed")

    def test_truncate_is_unsafe(self):
        """Test that TRUNCATE needs explicit approval."""
        is_safe, warnings = self.validator.validate_safety(F.step(1, "TRUNCATE TABLE users;"))

        self.assertFalse(is_safe)
        self.assertIn("TRUNCATE requires explicit approval", warnings)

    def test_destructive_drop_warns(self):
        step = F.step(1, "DROP TABLE IF EXISTS public.t1 CASCADE;", operation=Operation.DROP)

        is_safe, warnings = self.validator.validate_safety(step)

        self.assertTrue(is_safe)
        self.assertEqual(warnings, ["Destructive operation: DROP table public.t1"])

    def test_not_null_column_without_default_warns(self):
        step = F.step(1, "ALTER TABLE users ADD COLUMN age integer NOT NULL;")

        _, warnings = self.validator.validate_safety(step)

        self.assertIn("Adding NOT NULL column without DEFAULT may fail on existing data", warnings)

    def test_build_validation_steps(self):
        """Test syntax, safety, manual and schema checks for a plan."""
        # Arrange
        drop = F.step(1, "DROP TABLE IF EXISTS public.t1 CASCADE;", operation=Operation.DROP)
        drop = replace(drop, verification_query="SELECT COUNT(*) FROM pg_tables")
        manual = replace(
            F.step(2, "-- needs manual definition"),
            generation_warnings=(GenerationWarning("placeholder", "needs manual definition"),),
        )

        # Act
        checks = self.validator.build_validation_steps([drop, manual])

        # Assert
        ids = [c.id for c in checks]
        self.assertEqual(ids, ["syntax_step_1", "safety_step_1", "schema_step_1", "syntax_step_2", "manual_step_2"])
        schema_check = checks[2]
        self.assertEqual(schema_check.expected_result, "0")
        self.assertEqual(schema_check.sql_query, "SELECT COUNT(*) FROM pg_tables")
        self.assertFalse(checks[4].passed)


if __name__ == '__main__':
    unittest.main()
