"""End-to-end tests for the HTTP API."""

import os
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from migration_engine.infrastructure.di_container import DIContainer
from migration_engine.presentation.api.app import create_app
from tests.fixtures.mock_services import CatalogSimulator, FakeQueryExecutor
from tests.fixtures.scenarios import SOURCE_CATALOG, build_provider

PAIR = {"source_ref": "source", "target_ref": "target"}


class TestApi(unittest.TestCase):
    """Test the endpoints over a container with fake transports."""

    def setUp(self):
        with patch.dict(os.environ, {}, clear=True):
            container = DIContainer().configure()
        self.catalog = CatalogSimulator(SOURCE_CATALOG)
        self.query_executor = FakeQueryExecutor(responder=self.catalog)
        container.override("snapshot_provider", build_provider())
        container.override("query_executor", self.query_executor)
        self.client = TestClient(create_app(container))

    def _plan(self):
        response = self.client.post("/api/v1/plan", json=PAIR)
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def _execute(self, plan_job_id, **options):
        response = self.client.post(
            "/api/v1/execute", json={"plan_job_id": plan_job_id, "target_ref": "source", **options}
        )
        self.assertEqual(response.status_code, 202, response.text)
        return response.json()

    def test_health_and_root(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "healthy"})
        self.assertIn("plan", self.client.get("/").json()["endpoints"])

    def test_compare(self):
        """Test the comparison document."""
        # Act
        response = self.client.post("/api/v1/compare", json={**PAIR, "mode": "lenient"})

        # Assert
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["summary"], {"Added": 4, "Removed": 2, "Modified": 1})
        self.assertEqual(data["source_object_count"], 4)

    def test_compare_rejects_bad_input(self):
        unknown_mode = self.client.post("/api/v1/compare", json={**PAIR, "mode": "fuzzy"})
        blank_ref = self.client.post("/api/v1/compare", json={"source_ref": "", "target_ref": "target"})

        self.assertEqual(unknown_mode.status_code, 400)
        self.assertEqual(blank_ref.status_code, 422)

    def test_plan(self):
        """Test the plan summary and the stored plan job."""
        # Act
        plan = self._plan()

        # Assert
        self.assertEqual(plan["steps_count"], 4)
        self.assertEqual(plan["risk_level"], "critical")
        self.assertTrue(plan["rollback_complete"])
        job = self.client.get(f"/api/v1/jobs/{plan['job_id']}").json()
        self.assertEqual(job["kind"], "plan")
        self.assertEqual(len(job["result"]["steps"]), 4)

    def test_plan_for_identical_schemas_is_empty(self):
        """Test that planning between identical schemas succeeds with nothing to do."""
        # Act
        response = self.client.post("/api/v1/plan", json={"source_ref": "target", "target_ref": "target"})

        # Assert
        self.assertEqual(response.status_code, 200, response.text)
        plan = response.json()
        self.assertIsNone(plan["job_id"])
        self.assertEqual(plan["steps_count"], 0)
        self.assertEqual(plan["risk_level"], "low")
        self.assertTrue(plan["rollback_complete"])
        self.assertIn("Schemas are identical - nothing to migrate", plan["warnings"])

    def test_execute_and_roll_back(self):
        """Test the background execution and rollback jobs."""
        # Arrange
        plan = self._plan()

        # Act
        execution = self._execute(plan["job_id"])
        execution_job = self.client.get(f"/api/v1/jobs/{execution['job_id']}").json()
        rollback = self.client.post(
            "/api/v1/rollback", json={"execution_job_id": execution["job_id"], "target_ref": "source"}
        )
        rollback_job = self.client.get(f"/api/v1/jobs/{rollback.json()['job_id']}").json()

        # Assert
        self.assertEqual(execution["status"], "pending")
        self.assertEqual(execution_job["status"], "completed")
        self.assertEqual(execution_job["result"]["completed_steps"], 4)
        self.assertEqual(rollback.status_code, 202)
        self.assertEqual(rollback_job["status"], "completed")
        self.assertEqual(self.catalog.present, set(SOURCE_CATALOG))

    def test_failed_execution_job(self):
        plan = self._plan()
        self.query_executor.failures = {"DROP TABLE": "permission denied"}

        execution = self._execute(plan["job_id"])
        job = self.client.get(f"/api/v1/jobs/{execution['job_id']}").json()

        self.assertEqual(job["status"], "failed")
        self.assertEqual(job["result"]["failed_steps"], 1)

    def test_dry_run_job(self):
        plan = self._plan()

        execution = self._execute(plan["job_id"], dry_run=True)
        job = self.client.get(f"/api/v1/jobs/{execution['job_id']}").json()

        self.assertEqual(job["status"], "completed")
        self.assertTrue(job["result"]["dry_run"])
        self.assertEqual(self.query_executor.executed, [])

    def test_cancel(self):
        """Test that cancellation is accepted for execution jobs only."""
        plan = self._plan()
        execution = self._execute(plan["job_id"])

        cancelled = self.client.post(f"/api/v1/jobs/{execution['job_id']}/cancel")
        plan_cancel = self.client.post(f"/api/v1/jobs/{plan['job_id']}/cancel")

        self.assertEqual(cancelled.status_code, 200)
        self.assertEqual(cancelled.json()["kind"], "execution")
        self.assertEqual(plan_cancel.status_code, 404)

    def test_unknown_jobs(self):
        self.assertEqual(self.client.get("/api/v1/jobs/missing").status_code, 404)
        response = self.client.post("/api/v1/execute", json={"plan_job_id": "missing", "target_ref": "source"})
        self.assertEqual(response.status_code, 404)


if __name__ == '__main__':
    unittest.main()
