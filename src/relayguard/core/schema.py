"""DDL for the ten ACL tables.

Every table is keyed by its natural identifier and created with
``CREATE TABLE IF NOT EXISTS``, so applying the schema is idempotent. There
are no foreign keys: the cross-table invariants (an event is never both
allowed and banned, a kind is never both allowed and disallowed) are
enforced by [AclStore][relayguard.core.store.AclStore] transactions.

The schema is additive only. Adding a column to an existing table needs an
explicit migration step; ``IF NOT EXISTS`` will not alter a table that is
already there.
"""

from __future__ import annotations

from typing import Final


ALLOWED_PUBKEYS: Final = "allowed_pubkeys"
BANNED_PUBKEYS: Final = "banned_pubkeys"
EVENTS_NEEDING_MODERATION: Final = "events_needing_moderation"
ALLOWED_EVENTS: Final = "allowed_events"
BANNED_EVENTS: Final = "banned_events"
ALLOWED_KINDS: Final = "allowed_kinds"
DISALLOWED_KINDS: Final = "disallowed_kinds"
BLOCKED_IPS: Final = "blocked_ips"
ADMINS: Final = "admins"
RELAY_INFO: Final = "relay_info"

# Primary key column of each table; used to build purge statements.
KEY_COLUMNS: Final[dict[str, str]] = {
    ALLOWED_PUBKEYS: "pubkey",
    BANNED_PUBKEYS: "pubkey",
    EVENTS_NEEDING_MODERATION: "id",
    ALLOWED_EVENTS: "id",
    BANNED_EVENTS: "id",
    ALLOWED_KINDS: "kind",
    DISALLOWED_KINDS: "kind",
    BLOCKED_IPS: "ip",
    ADMINS: "pubkey",
    RELAY_INFO: "key",
}

SCHEMA_STATEMENTS: Final[tuple[str, ...]] = (
    f"""
    CREATE TABLE IF NOT EXISTS {ALLOWED_PUBKEYS} (
        pubkey VARCHAR(64) PRIMARY KEY,
        reason TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {BANNED_PUBKEYS} (
        pubkey VARCHAR(64) PRIMARY KEY,
        reason TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {EVENTS_NEEDING_MODERATION} (
        id VARCHAR(64) PRIMARY KEY,
        reason TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {ALLOWED_EVENTS} (
        id VARCHAR(64) PRIMARY KEY,
        reason TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {BANNED_EVENTS} (
        id VARCHAR(64) PRIMARY KEY,
        reason TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {ALLOWED_KINDS} (
        kind INTEGER PRIMARY KEY,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {DISALLOWED_KINDS} (
        kind INTEGER PRIMARY KEY,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {BLOCKED_IPS} (
        ip INET PRIMARY KEY,
        reason TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {ADMINS} (
        pubkey VARCHAR(64) PRIMARY KEY,
        methods TEXT[],
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {RELAY_INFO} (
        key VARCHAR(64) PRIMARY KEY,
        value TEXT,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
)
