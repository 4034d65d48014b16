"""
Pytest configuration and shared fixtures for RelayGuard tests.

Provides:
- Environment isolation (no DATABASE_URL / RELAY_* leakage from the host)
- Mock fixtures for asyncpg connection, asyncpg pool, Pool and AclStore
- Sample pubkeys, event ids and a mock nostr_sdk.Event factory
"""

import logging
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from relayguard.core.pool import DatabaseConfig, Pool, PoolConfig
from relayguard.core.store import AclStore


ALICE = "a" * 64


# ============================================================================
# Logging / Environment
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Strip host environment variables that change config resolution."""
    for var in ("DATABASE_URL", "RELAY_PUBKEY", "RELAY_NAME", "RELAY_DESCRIPTION", "RELAY_ICON"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("DB_PASSWORD", "test_password")


# ============================================================================
# Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_connection() -> MagicMock:
    """Create a mock asyncpg connection."""
    conn = MagicMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)
    conn.execute = AsyncMock(return_value="INSERT 0 1")

    mock_transaction = MagicMock()
    mock_transaction.__aenter__ = AsyncMock(return_value=None)
    mock_transaction.__aexit__ = AsyncMock(return_value=None)
    conn.transaction = MagicMock(return_value=mock_transaction)

    return conn


@pytest.fixture
def mock_asyncpg_pool(mock_connection: MagicMock) -> MagicMock:
    """Create a mock asyncpg pool."""
    pool = MagicMock()
    pool.close = AsyncMock()

    mock_acquire = MagicMock()
    mock_acquire.__aenter__ = AsyncMock(return_value=mock_connection)
    mock_acquire.__aexit__ = AsyncMock(return_value=None)
    pool.acquire = MagicMock(return_value=mock_acquire)

    return pool


@pytest.fixture
def mock_pool(mock_asyncpg_pool: MagicMock, mock_connection: MagicMock) -> Pool:
    """Create a connected Pool with mocked internals."""
    config = PoolConfig(
        database=DatabaseConfig(
            host="localhost",
            port=5432,
            database="test_db",
            user="test_user",
        )
    )
    pool = Pool(config=config)
    pool._pool = mock_asyncpg_pool
    pool._is_connected = True
    pool._mock_connection = mock_connection  # type: ignore[attr-defined]
    return pool


@pytest.fixture
def store(mock_pool: Pool) -> AclStore:
    """Create an AclStore over the mocked pool (schema not applied)."""
    return AclStore(mock_pool)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def pool_config_dict() -> dict[str, Any]:
    """Sample pool configuration dictionary."""
    return {
        "database": {
            "host": "localhost",
            "port": 5432,
            "database": "test_db",
            "user": "test_user",
        },
        "limits": {"min_size": 2, "max_size": 10},
        "timeouts": {"acquisition": 5.0},
        "retry": {
            "max_attempts": 2,
            "initial_delay": 0.1,
            "max_delay": 0.2,
            "exponential_backoff": True,
        },
        "server_settings": {"application_name": "test_app", "timezone": "UTC"},
    }


# ============================================================================
# Sample Data
# ============================================================================


@pytest.fixture
def make_event() -> Any:
    """Factory for mock nostr_sdk.Event objects authored by a given pubkey."""

    def _make(pubkey: str = ALICE) -> MagicMock:
        event = MagicMock()
        event.author.return_value.to_hex.return_value = pubkey
        return event

    return _make
