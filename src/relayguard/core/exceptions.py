"""RelayGuard exception hierarchy.

Provides typed exceptions for every failure the ACL store and its callers
can observe, so the relay engine can tell a rejected argument from a missing
row from an unreachable database, and let ``CancelledError`` propagate
untouched.

Exception hierarchy:

```text
RelayGuardError (base -- never raised directly)
├── ConfigurationError          -- config validation, missing keys, bad YAML
├── InvalidArgumentError        -- empty/nil/malformed required field
├── NotFoundError               -- expected row absent (strict removals)
└── DatabaseError               -- pool/store failures
    ├── StorageUnavailableError -- connection refused, statement failed
    └── TransactionAbortedError -- multi-statement transaction rolled back
```

Conflicts are always resolved by upsert inside the store and never surface,
so there is no conflict exception.

See Also:
    [AclStore][relayguard.core.store.AclStore]: Raises every exception in
        this module except
        [ConfigurationError][relayguard.core.exceptions.ConfigurationError].
    [ManagementApi][relayguard.services.management.ManagementApi]: Turns
        these exceptions into NIP-86 error responses.
"""

from __future__ import annotations


class RelayGuardError(Exception):
    """Base exception for all RelayGuard errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(RelayGuardError):
    """Invalid or missing configuration (YAML, env vars, CLI flags)."""


# ---------------------------------------------------------------------------
# Caller errors
# ---------------------------------------------------------------------------


class InvalidArgumentError(RelayGuardError, ValueError):
    """A required argument is empty, ``None``, or cannot be parsed.

    Raised before any statement reaches the database, so the store state is
    guaranteed untouched.
    """


class NotFoundError(RelayGuardError, LookupError):
    """An operation with strict-removal semantics matched no row.

    Only
    [remove_allowed_pubkey()][relayguard.core.store.AclStore.remove_allowed_pubkey]
    raises this today; other removals are idempotent.
    """


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


class DatabaseError(RelayGuardError):
    """Base for all database-related errors.

    See Also:
        [StorageUnavailableError][relayguard.core.exceptions.StorageUnavailableError]:
            Connection-level or single-statement failures.
        [TransactionAbortedError][relayguard.core.exceptions.TransactionAbortedError]:
            Failures inside a multi-statement transaction.
    """


class StorageUnavailableError(DatabaseError):
    """The backing database could not serve the request.

    Covers refused or dropped connections, exhausted pools, timeouts, and
    engine-reported statement failures. The store never retries; callers
    decide whether to retry, log, or fail closed.
    """


class TransactionAbortedError(DatabaseError):
    """A statement inside a multi-statement transaction failed.

    The whole transaction was rolled back before this was raised, so no
    partial multi-table state is observable. The original error is chained
    as ``__cause__``.
    """
