"""
Async PostgreSQL connection pool built on asyncpg.

The pool is the connection handle the relay process opens once at startup
and shares between its event store and the
[AclStore][relayguard.core.store.AclStore]. The store only borrows it: the
process that created the pool is the one that closes it.

Query methods ([fetch()][relayguard.core.pool.Pool.fetch],
[fetchrow()][relayguard.core.pool.Pool.fetchrow],
[fetchval()][relayguard.core.pool.Pool.fetchval],
[execute()][relayguard.core.pool.Pool.execute]) retry on transient
connection errors (``InterfaceError``, ``ConnectionDoesNotExistError``) with
backoff unless the caller passes ``max_attempts=1``, which is how the ACL
store opts out of retries.

Examples:
    ```python
    pool = Pool.from_dict({"database": {"host": "db", "database": "relay"}})

    async with pool:
        await pool.execute("SELECT 1")

        async with pool.transaction() as conn:
            await conn.execute("INSERT INTO ...")
    ```
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator  # noqa: TC003
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Literal, cast

import asyncpg
from pydantic import BaseModel, Field, SecretStr, ValidationInfo, field_validator, model_validator

from .exceptions import StorageUnavailableError
from .logger import Logger
from .yaml import load_yaml


IsolationLevel = Literal["read_committed", "repeatable_read", "serializable"]


# ---------------------------------------------------------------------------
# Configuration Models
# ---------------------------------------------------------------------------


class DatabaseConfig(BaseModel):
    """PostgreSQL connection parameters.

    Two ways to locate the database, checked in this order:

    1. A full connection string in the environment variable named by
       ``dsn_env`` (default ``DATABASE_URL``).
    2. ``host``/``port``/``database``/``user`` with the password read from
       the environment variable named by ``password_env`` (default
       ``DB_PASSWORD``).

    Secrets are never read from configuration files directly.
    """

    host: str = Field(default="localhost", min_length=1, description="Database hostname")
    port: int = Field(default=5432, ge=1, le=65535, description="Database port")
    database: str = Field(default="relay", min_length=1, description="Database name")
    user: str = Field(default="postgres", min_length=1, description="Database user")
    dsn_env: str = Field(
        default="DATABASE_URL",
        min_length=1,
        description="Environment variable holding a full connection string",
    )
    password_env: str = Field(
        default="DB_PASSWORD",  # pragma: allowlist secret
        min_length=1,
        description="Environment variable name for database password",
    )
    dsn: SecretStr | None = Field(default=None, description="Connection string (from dsn_env)")
    password: SecretStr | None = Field(
        default=None, description="Database password (from password_env)"
    )

    @model_validator(mode="before")
    @classmethod
    def resolve_secrets(cls, data: Any) -> Any:
        """Resolve the DSN or password from the environment."""
        if not isinstance(data, dict):
            return data
        if data.get("dsn") is None:
            dsn = os.getenv(data.get("dsn_env", "DATABASE_URL"))
            if dsn:
                data["dsn"] = SecretStr(dsn)
        if data.get("dsn") is None and data.get("password") is None:
            env_var = data.get("password_env", "DB_PASSWORD")  # pragma: allowlist secret
            value = os.getenv(env_var)
            if not value:
                dsn_env = data.get("dsn_env", "DATABASE_URL")
                raise ValueError(f"neither {dsn_env} nor {env_var} environment variable is set")
            data["password"] = SecretStr(value)
        return data


class PoolLimitsConfig(BaseModel):
    """Connection pool size and recycling limits."""

    min_size: int = Field(default=1, ge=1, le=100, description="Minimum connections")
    max_size: int = Field(default=10, ge=1, le=200, description="Maximum connections")
    max_queries: int = Field(default=50_000, ge=100, description="Queries before recycling")
    max_inactive_connection_lifetime: float = Field(
        default=300.0, ge=0.0, description="Idle timeout (seconds)"
    )

    @field_validator("max_size")
    @classmethod
    def validate_max_size(cls, v: int, info: ValidationInfo) -> int:
        """Ensure max_size >= min_size."""
        min_size = info.data.get("min_size", 1)
        if v < min_size:
            raise ValueError(f"max_size ({v}) must be >= min_size ({min_size})")
        return v


class PoolTimeoutsConfig(BaseModel):
    """Timeout settings for pool operations (in seconds)."""

    acquisition: float = Field(default=10.0, ge=0.1, description="Connection acquisition timeout")


class PoolRetryConfig(BaseModel):
    """Backoff strategy for failed connection attempts.

    Exponential backoff doubles the delay each attempt
    (``initial_delay * 2^attempt``), linear backoff grows by
    ``initial_delay`` per attempt; both are capped at ``max_delay``.
    """

    max_attempts: int = Field(default=3, ge=1, le=10, description="Max retry attempts")
    initial_delay: float = Field(default=1.0, ge=0.1, description="Initial retry delay")
    max_delay: float = Field(default=10.0, ge=0.1, description="Maximum retry delay")
    exponential_backoff: bool = Field(default=True, description="Use exponential backoff")

    @field_validator("max_delay")
    @classmethod
    def validate_max_delay(cls, v: float, info: ValidationInfo) -> float:
        """Ensure max_delay >= initial_delay."""
        initial_delay = info.data.get("initial_delay", 1.0)
        if v < initial_delay:
            raise ValueError(f"max_delay ({v}) must be >= initial_delay ({initial_delay})")
        return v


class ServerSettingsConfig(BaseModel):
    """PostgreSQL session settings sent with every pooled connection.

    ``statement_timeout`` is in milliseconds and bounds every statement
    server-side, so no store operation can block indefinitely.
    """

    application_name: str = Field(default="relayguard", description="Application name")
    timezone: str = Field(default="UTC", description="Timezone")
    statement_timeout: int = Field(
        default=30_000, ge=0, description="Max statement execution time in ms (0=unlimited)"
    )


class PoolConfig(BaseModel):
    """Aggregate configuration for the connection pool."""

    database: DatabaseConfig = Field(default_factory=lambda: DatabaseConfig.model_validate({}))
    limits: PoolLimitsConfig = Field(default_factory=PoolLimitsConfig)
    timeouts: PoolTimeoutsConfig = Field(default_factory=PoolTimeoutsConfig)
    retry: PoolRetryConfig = Field(default_factory=PoolRetryConfig)
    server_settings: ServerSettingsConfig = Field(default_factory=ServerSettingsConfig)


# ---------------------------------------------------------------------------
# Pool Class
# ---------------------------------------------------------------------------


class Pool:
    """Async PostgreSQL connection pool manager.

    Wraps ``asyncpg.Pool`` with connect-time retry, transient-error retry on
    queries, and transactional context managers with a selectable isolation
    level.

    Note:
        Whoever calls [connect()][relayguard.core.pool.Pool.connect] owns the
        pool and must call [close()][relayguard.core.pool.Pool.close].
        [AclStore][relayguard.core.store.AclStore] never does either.
    """

    def __init__(self, config: PoolConfig | None = None) -> None:
        """Create a pool in the disconnected state.

        Args:
            config: Pool configuration. Defaults resolve the database
                location from ``DATABASE_URL`` or ``DB_PASSWORD``.
        """
        self._config = config or PoolConfig()
        self._pool: asyncpg.Pool[asyncpg.Record] | None = None
        self._is_connected: bool = False
        self._connection_lock = asyncio.Lock()
        self._logger = Logger("pool")

    @classmethod
    def from_yaml(cls, config_path: str) -> Pool:
        """Create a Pool from a YAML configuration file."""
        return cls.from_dict(load_yaml(config_path))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> Pool:
        """Create a Pool from a dictionary matching ``PoolConfig`` fields."""
        return cls(config=PoolConfig(**config_dict))

    def _retry_delay(self, attempt: int) -> float:
        retry = self._config.retry
        if retry.exponential_backoff:
            delay = retry.initial_delay * (2**attempt)
        else:
            delay = retry.initial_delay * (attempt + 1)
        return float(min(delay, retry.max_delay))

    def _connect_kwargs(self) -> dict[str, Any]:
        db = self._config.database
        kwargs: dict[str, Any] = {
            "min_size": self._config.limits.min_size,
            "max_size": self._config.limits.max_size,
            "max_queries": self._config.limits.max_queries,
            "max_inactive_connection_lifetime": (
                self._config.limits.max_inactive_connection_lifetime
            ),
            "timeout": self._config.timeouts.acquisition,
            "server_settings": {
                "application_name": self._config.server_settings.application_name,
                "timezone": self._config.server_settings.timezone,
                "statement_timeout": str(self._config.server_settings.statement_timeout),
            },
        }
        if db.dsn is not None:
            kwargs["dsn"] = db.dsn.get_secret_value()
        else:
            kwargs.update(
                host=db.host,
                port=db.port,
                database=db.database,
                user=db.user,
                password=db.password.get_secret_value() if db.password else None,
            )
        return kwargs

    # -------------------------------------------------------------------------
    # Connection Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Create the asyncpg pool, retrying with backoff on failure.

        Idempotent and guarded by a lock against concurrent creation.

        Raises:
            StorageUnavailableError: If all attempts are exhausted.
        """
        async with self._connection_lock:
            if self._is_connected:
                return

            db = self._config.database
            self._logger.info(
                "connection_starting",
                host="<dsn>" if db.dsn is not None else db.host,
                database=db.database,
            )

            for attempt in range(self._config.retry.max_attempts):
                try:
                    self._pool = await asyncpg.create_pool(**self._connect_kwargs())
                    self._is_connected = True
                    self._logger.info("connection_established")
                    return
                except (asyncpg.PostgresError, OSError, ConnectionError) as e:
                    if attempt + 1 >= self._config.retry.max_attempts:
                        self._logger.error("connection_failed", attempts=attempt + 1, error=str(e))
                        raise StorageUnavailableError(
                            f"Failed to connect after {attempt + 1} attempts: {e}"
                        ) from e

                    delay = self._retry_delay(attempt)
                    self._logger.warning(
                        "connection_retry", attempt=attempt + 1, delay=delay, error=str(e)
                    )
                    await asyncio.sleep(delay)

    async def close(self) -> None:
        """Close the pool and release all connections. Idempotent."""
        async with self._connection_lock:
            if self._pool is not None:
                try:
                    await self._pool.close()
                    self._logger.info("connection_closed")
                finally:
                    self._pool = None
                    self._is_connected = False

    # -------------------------------------------------------------------------
    # Connection Acquisition
    # -------------------------------------------------------------------------

    def acquire(self) -> AbstractAsyncContextManager[asyncpg.Connection[asyncpg.Record]]:
        """Acquire a connection, returned to the pool when the context exits.

        Raises:
            StorageUnavailableError: If the pool has not been connected.
        """
        if not self._is_connected or self._pool is None:
            raise StorageUnavailableError("Pool not connected. Call connect() first.")
        return cast(
            "AbstractAsyncContextManager[asyncpg.Connection[asyncpg.Record]]",
            self._pool.acquire(),
        )

    @asynccontextmanager
    async def transaction(
        self, isolation: IsolationLevel = "read_committed"
    ) -> AsyncIterator[asyncpg.Connection[asyncpg.Record]]:
        """Acquire a connection with an active transaction.

        Commits on normal exit and rolls back if an exception propagates out
        of the block.

        Args:
            isolation: Transaction isolation level.

        Examples:
            ```python
            async with pool.transaction() as conn:
                await conn.execute("INSERT INTO banned_events ...")
                await conn.execute("DELETE FROM allowed_events ...")
            ```
        """
        async with self.acquire() as conn, conn.transaction(isolation=isolation):
            yield conn

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    async def _execute_with_retry(
        self,
        operation: Literal["fetch", "fetchrow", "fetchval", "execute"],
        query: str,
        args: tuple[Any, ...],
        timeout: float | None,  # noqa: ASYNC109
        max_attempts: int | None = None,
    ) -> Any:
        """Run a named asyncpg connection method, retrying on dropped connections.

        Only ``InterfaceError`` and ``ConnectionDoesNotExistError`` are
        retried, each attempt on a freshly acquired connection. Query-level
        errors, including ``DataError`` for arguments the driver cannot
        encode, propagate immediately.
        """
        if max_attempts is None:
            max_attempts = self._config.retry.max_attempts

        for attempt in range(max_attempts):
            try:
                async with self.acquire() as conn:
                    method = getattr(conn, operation)
                    return await method(query, *args, timeout=timeout)
            except asyncpg.DataError:
                raise
            except (asyncpg.InterfaceError, asyncpg.ConnectionDoesNotExistError) as e:
                if attempt < max_attempts - 1:
                    delay = self._retry_delay(attempt)
                    self._logger.warning(
                        "query_retry",
                        operation=operation,
                        attempt=attempt + 1,
                        delay_s=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)
                    continue
                raise StorageUnavailableError(
                    f"{operation} failed after {max_attempts} attempts: {e}"
                ) from e

        raise RuntimeError("Unexpected state in _execute_with_retry")

    async def fetch(
        self,
        query: str,
        *args: Any,
        timeout: float | None = None,  # noqa: ASYNC109
        max_attempts: int | None = None,
    ) -> list[asyncpg.Record]:
        """Execute a query and return all rows (empty list if none)."""
        result = await self._execute_with_retry("fetch", query, args, timeout, max_attempts)
        return cast("list[asyncpg.Record]", result)

    async def fetchrow(
        self,
        query: str,
        *args: Any,
        timeout: float | None = None,  # noqa: ASYNC109
        max_attempts: int | None = None,
    ) -> asyncpg.Record | None:
        """Execute a query and return the first row, or None."""
        result = await self._execute_with_retry("fetchrow", query, args, timeout, max_attempts)
        return cast("asyncpg.Record | None", result)

    async def fetchval(
        self,
        query: str,
        *args: Any,
        timeout: float | None = None,  # noqa: ASYNC109
        max_attempts: int | None = None,
    ) -> Any:
        """Execute a query and return the first column of the first row."""
        return await self._execute_with_retry("fetchval", query, args, timeout, max_attempts)

    async def execute(
        self,
        query: str,
        *args: Any,
        timeout: float | None = None,  # noqa: ASYNC109
        max_attempts: int | None = None,
    ) -> str:
        """Execute a statement and return its status tag (e.g. ``"DELETE 1"``)."""
        result = await self._execute_with_retry("execute", query, args, timeout, max_attempts)
        return cast("str", result)

    async def ping(self, timeout: float | None = None) -> None:  # noqa: ASYNC109
        """Round-trip ``SELECT 1`` once, without retry.

        Raises:
            StorageUnavailableError: If the database cannot be reached.
        """
        try:
            await self.fetchval("SELECT 1", timeout=timeout, max_attempts=1)
        except StorageUnavailableError:
            raise
        except (asyncpg.PostgresError, OSError, TimeoutError) as e:
            raise StorageUnavailableError(f"database ping failed: {e}") from e

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        """Whether the pool has an active connection to the database."""
        return self._is_connected

    @property
    def config(self) -> PoolConfig:
        """The pool configuration (read-only)."""
        return self._config

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Pool:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any | None,
    ) -> None:
        await self.close()

    def __repr__(self) -> str:
        db = self._config.database
        host = "<dsn>" if db.dsn is not None else db.host
        return f"Pool(host={host}, database={db.database}, connected={self._is_connected})"
