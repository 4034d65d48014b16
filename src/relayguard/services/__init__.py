"""Relay-facing services built on the ACL store.

```text
relay engine --RejectEvent/RejectConnection--> EventPolicy --> AclStore
NIP-86 HTTP  --(caller, body)--> ManagementApi --> EventPolicy + AclStore
```

Attributes:
    EventPolicy: Write, connection and management authorization hooks.
    ManagementApi: NIP-86 JSON-RPC dispatcher.
    RelayInfo: Mutable NIP-11 document.
    RelayGuardConfig: Process configuration (pool, store, relay, management).
"""

from .configs import ManagementConfig, RelayConfig, RelayGuardConfig
from .management import ManagementApi
from .policy import EventPolicy
from .relay_info import RelayInfo


__all__ = [
    "EventPolicy",
    "ManagementApi",
    "ManagementConfig",
    "RelayConfig",
    "RelayGuardConfig",
    "RelayInfo",
]
