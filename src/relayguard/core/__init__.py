"""Infrastructure layer: connection pool, ACL store, exceptions, logging, metrics.

Depends only on [relayguard.models][relayguard.models] and third-party
libraries (asyncpg, pydantic, PyYAML, prometheus_client).

Attributes:
    Pool: asyncpg pool wrapper with retry and transactional contexts.
    AclStore: Moderation and access-control tables over a borrowed Pool.
    Logger: Structured key=value / JSON logger.

Examples:
    ```python
    from relayguard.core import AclStore, Pool

    async with Pool.from_yaml("config/relayguard.yaml") as pool:
        store = await AclStore.create(pool)
    ```
"""

from .exceptions import (
    ConfigurationError,
    DatabaseError,
    InvalidArgumentError,
    NotFoundError,
    RelayGuardError,
    StorageUnavailableError,
    TransactionAbortedError,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .pool import (
    DatabaseConfig,
    Pool,
    PoolConfig,
    PoolLimitsConfig,
    PoolRetryConfig,
    PoolTimeoutsConfig,
    ServerSettingsConfig,
)
from .store import AclStore, AclStoreConfig, AclStoreTimeoutsConfig
from .yaml import load_yaml


__all__ = [
    "AclStore",
    "AclStoreConfig",
    "AclStoreTimeoutsConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "DatabaseError",
    "InvalidArgumentError",
    "Logger",
    "NotFoundError",
    "Pool",
    "PoolConfig",
    "PoolLimitsConfig",
    "PoolRetryConfig",
    "PoolTimeoutsConfig",
    "RelayGuardError",
    "ServerSettingsConfig",
    "StorageUnavailableError",
    "StructuredFormatter",
    "TransactionAbortedError",
    "format_kv_pairs",
    "load_yaml",
]
