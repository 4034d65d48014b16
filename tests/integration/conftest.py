"""Integration test fixtures providing ephemeral PostgreSQL via testcontainers.

The PostgresContainer is session-scoped to avoid the ~3s Docker startup per test.
The public schema is dropped and the ACL tables re-created per test
(function-scoped ``acl_store`` fixture) for isolation.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import asyncpg
import pytest
from pydantic import SecretStr
from testcontainers.postgres import PostgresContainer

from relayguard.core.pool import DatabaseConfig, Pool, PoolConfig, PoolLimitsConfig
from relayguard.core.store import AclStore


# ---------------------------------------------------------------------------
# Session-scoped container
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def pg_container() -> Iterator[PostgresContainer]:
    """Spawn an ephemeral PostgreSQL 16 container for the test session."""
    container = PostgresContainer("postgres:16-alpine")
    try:
        container.start()
    except Exception as e:  # noqa: BLE001
        pytest.skip(f"PostgreSQL container unavailable: {e}")
    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session")
def pg_dsn(pg_container: PostgresContainer) -> dict[str, str | int]:
    """Extract connection parameters from the running container."""
    return {
        "host": pg_container.get_container_host_ip(),
        "port": int(pg_container.get_exposed_port(5432)),
        "database": pg_container.dbname,
        "user": pg_container.username,
        "password": pg_container.password,
    }


# ---------------------------------------------------------------------------
# Function-scoped Pool / AclStore with fresh schema
# ---------------------------------------------------------------------------


@pytest.fixture
async def pg_pool(pg_dsn: dict[str, str | int]) -> AsyncIterator[Pool]:
    """Provide a connected Pool on an empty public schema."""
    host = str(pg_dsn["host"])
    port = int(pg_dsn["port"])
    database = str(pg_dsn["database"])
    user = str(pg_dsn["user"])
    password = str(pg_dsn["password"])

    conn = await asyncpg.connect(
        host=host, port=port, database=database, user=user, password=password
    )
    try:
        await conn.execute("DROP SCHEMA public CASCADE")
        await conn.execute("CREATE SCHEMA public")
    finally:
        await conn.close()

    config = PoolConfig(
        database=DatabaseConfig(
            host=host,
            port=port,
            database=database,
            user=user,
            password=SecretStr(password),
        ),
        limits=PoolLimitsConfig(min_size=2, max_size=5),
    )
    async with Pool(config=config) as pool:
        yield pool


@pytest.fixture
async def acl_store(pg_pool: Pool) -> AclStore:
    """Provide an AclStore with the ACL tables created."""
    return await AclStore.create(pg_pool)
