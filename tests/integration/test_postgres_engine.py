"""Compare, plan, execute and roll back against a real PostgreSQL server."""

import os

import psycopg2
import pytest

from migration_engine.application.dtos.migration_dto import ExecutionOptions, MigrationRequest
from migration_engine.domain.entities.difference import ComparisonMode, ComparisonOptions
from migration_engine.domain.entities.execution import ExecutionStatus
from migration_engine.infrastructure.di_container import DIContainer

pytestmark = pytest.mark.skipif(
    not os.getenv("RUN_DOCKER_TESTS"), reason="set RUN_DOCKER_TESTS=1 to run tests against a PostgreSQL container"
)

SOURCE_SCHEMA = """
    CREATE TABLE users (id integer PRIMARY KEY);
    CREATE TABLE legacy (id integer PRIMARY KEY);
"""

TARGET_SCHEMA = """
    CREATE TABLE users (id integer PRIMARY KEY, email text);
    CREATE TABLE orders (id serial PRIMARY KEY, user_id integer REFERENCES users (id));
    CREATE INDEX idx_orders_user ON orders (user_id);
"""

LENIENT = ComparisonOptions(mode=ComparisonMode.LENIENT)


@pytest.fixture(scope="session")
def postgres_container():
    """Start PostgreSQL container for testing."""
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:15") as postgres:
        yield postgres


@pytest.fixture
def databases(postgres_container):
    """Fresh source and target databases on the container; yields their DSNs."""
    base = postgres_container.get_connection_url().replace("+psycopg2", "")
    admin = psycopg2.connect(base)
    admin.autocommit = True
    dsns = {}
    with admin.cursor() as cur:
        for name in ("migration_source", "migration_target"):
            cur.execute(f"DROP DATABASE IF EXISTS {name}")
            cur.execute(f"CREATE DATABASE {name}")
            dsns[name] = base.rsplit("/", 1)[0] + f"/{name}"
    for name, ddl in (("migration_source", SOURCE_SCHEMA), ("migration_target", TARGET_SCHEMA)):
        conn = psycopg2.connect(dsns[name])
        with conn.cursor() as cur:
            cur.execute(ddl)
        conn.commit()
        conn.close()
    yield {"source": dsns["migration_source"], "target": dsns["migration_target"]}
    admin.close()


def _tables(dsn):
    conn = psycopg2.connect(dsn)
    with conn.cursor() as cur:
        cur.execute("SELECT table_name FROM information_schema.tables WHERE table_schema = 'public'")
        tables = sorted(row[0] for row in cur.fetchall())
    conn.close()
    return tables


def test_migrates_source_to_target(databases):
    """Test that executing the plan on the source database makes it match the target."""
    # Arrange
    container = DIContainer().configure(connections=databases)
    orchestrator = container.get_orchestrator()

    # Act
    response = orchestrator.process(MigrationRequest("source", "target", comparison=LENIENT, execute=True))

    # Assert
    assert response.script is not None
    assert response.execution.status == ExecutionStatus.COMPLETED, [e.message for e in response.execution.execution_log]
    assert _tables(databases["source"]) == ["orders", "users"]
    remaining = container.get_compare_use_case().execute("source", "target", LENIENT)
    assert remaining.differences == []


def test_rollback_restores_source(databases):
    """Test that rolling back a completed execution brings the dropped table back."""
    # Arrange
    container = DIContainer().configure(connections=databases)
    orchestrator = container.get_orchestrator()
    response = orchestrator.process(MigrationRequest("source", "target", comparison=LENIENT, execute=True))

    # Act
    result = orchestrator.rollback(response.script, response.execution, "source", ExecutionOptions())

    # Assert
    assert result.status == ExecutionStatus.COMPLETED, [e.message for e in result.execution_log]
    assert _tables(databases["source"]) == ["legacy", "users"]


def test_snapshot_sees_catalog(databases):
    """Test the inspector against real catalogs."""
    provider = DIContainer().configure(connections=databases).get_snapshot_provider()

    keys = {o.key for o in provider.get_objects("target")}

    assert "table:public:orders" in keys
    assert "column:public:users.email" in keys
    assert "index:public:idx_orders_user" in keys
    assert [c.name for c in provider.get_table_columns("target", "public", "users")] == ["id", "email"]


def test_serial_default_depends_on_sequence(databases):
    """Test that a serial column's table is linked to the sequence its default calls."""
    provider = DIContainer().configure(connections=databases).get_snapshot_provider()

    objects = {o.key: o for o in provider.get_objects("target")}

    orders = objects["table:public:orders"]
    assert ("sequence:public:orders_id_seq", "uses_sequence") in [(d.target_key, d.kind) for d in orders.dependencies]
    assert "index:public:legacy_pkey" in {o.key for o in provider.get_objects("source")}
