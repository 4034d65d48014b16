"""RelayGuard -- moderation and access control for a private Nostr relay.

Persists allow/ban lists, a moderation queue, kind and IP filters, and
admin grants in PostgreSQL, and exposes them to a relay engine as policy
hooks plus a NIP-86 management dispatcher.

```text
            services        EventPolicy, ManagementApi, RelayInfo
               |
             core           Pool, AclStore, exceptions, logging, metrics
               |
            models          Frozen dataclasses (zero I/O)
```

Note:
    Top-level imports (``from relayguard import AclStore``) are resolved
    lazily on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("relayguard")

__all__ = [
    "AclStore",
    "AclStoreConfig",
    "AdminGrant",
    "EventPolicy",
    "EventReason",
    "IpReason",
    "Logger",
    "ManagementApi",
    "Nip86Method",
    "Pool",
    "PoolConfig",
    "PubkeyReason",
    "RelayGuardConfig",
    "RelayInfo",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "AclStore": ("relayguard.core", "AclStore"),
    "AclStoreConfig": ("relayguard.core", "AclStoreConfig"),
    "Logger": ("relayguard.core", "Logger"),
    "Pool": ("relayguard.core", "Pool"),
    "PoolConfig": ("relayguard.core", "PoolConfig"),
    "AdminGrant": ("relayguard.models", "AdminGrant"),
    "EventReason": ("relayguard.models", "EventReason"),
    "IpReason": ("relayguard.models", "IpReason"),
    "Nip86Method": ("relayguard.models", "Nip86Method"),
    "PubkeyReason": ("relayguard.models", "PubkeyReason"),
    "EventPolicy": ("relayguard.services", "EventPolicy"),
    "ManagementApi": ("relayguard.services", "ManagementApi"),
    "RelayGuardConfig": ("relayguard.services", "RelayGuardConfig"),
    "RelayInfo": ("relayguard.services", "RelayInfo"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value
        return value
    raise AttributeError(f"module 'relayguard' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
