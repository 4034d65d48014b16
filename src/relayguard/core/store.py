"""
Moderation and access-control store for a Nostr relay.

[AclStore][relayguard.core.store.AclStore] owns the ten ACL tables described
in [schema][relayguard.core.schema] and exposes the list-management and
lookup operations the relay engine calls: on the hot path when an event
arrives, and from the NIP-86 management surface when an operator acts.

Consistency rules between tables are enforced here, not by the schema:

* adjudicating an event (allow or ban) removes it from the moderation queue
  and from the opposite verdict list, atomically;
* allowing a kind removes it from the disallowed list and vice versa,
  atomically;
* [move_pubkey_to_banned()][relayguard.core.store.AclStore.move_pubkey_to_banned]
  bans a pubkey and drops it from the allow list, atomically.

All three share one primitive,
[_atomic_move()][relayguard.core.store.AclStore._atomic_move], which runs the
upsert and the purges in a single read-committed transaction behind a
transaction-scoped advisory lock on the key. Single-statement operations
rely on statement atomicity and run without an explicit transaction.

The store never retries and never caches: each call is one round trip (or
one transaction) and every failure is raised immediately as a
[DatabaseError][relayguard.core.exceptions.DatabaseError] subclass.

Examples:
    ```python
    async with Pool.from_dict(config["pool"]) as pool:
        store = await AclStore.create(pool)

        await store.flag_event_for_moderation(event_id, "reported")
        await store.ban_event(event_id, "confirmed spam")
        assert event_id not in {e.id for e in await store.list_events_needing_moderation()}
    ```
"""

from __future__ import annotations

import ipaddress  # noqa: TC003
from collections.abc import AsyncIterator, Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, TypeVar

import asyncpg
from nostr_sdk import NostrSdkError, PublicKey
from pydantic import BaseModel, Field

from relayguard.models import AdminGrant, EventReason, IpReason, PubkeyReason
from relayguard.models._validation import (
    normalize_ip,
    validate_key,
    validate_kind,
    validate_str_no_null,
)

from . import schema
from .exceptions import (
    InvalidArgumentError,
    NotFoundError,
    StorageUnavailableError,
    TransactionAbortedError,
)
from .logger import Logger


if TYPE_CHECKING:
    from .pool import Pool


T = TypeVar("T")

# Errors the backing engine or the driver can raise for a single call.
_DB_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    TimeoutError,
)

SCHEMA_LOCK_KEY = "relayguard:schema"


# ---------------------------------------------------------------------------
# Configuration Models
# ---------------------------------------------------------------------------


class AclStoreTimeoutsConfig(BaseModel):
    """Client-side timeouts for store round trips (seconds, None = no limit)."""

    query: float | None = Field(default=10.0, ge=0.1, description="Per-statement timeout")


class AclStoreConfig(BaseModel):
    """Aggregate configuration for the ACL store."""

    timeouts: AclStoreTimeoutsConfig = Field(default_factory=AclStoreTimeoutsConfig)


# ---------------------------------------------------------------------------
# Argument checks
# ---------------------------------------------------------------------------


def _require(check: Callable[[Any, str], Any], value: Any, name: str) -> Any:
    """Run a model validator and re-raise its failure as ``InvalidArgumentError``."""
    try:
        return check(value, name)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(str(e)) from e


def _require_reason(reason: str | None) -> str:
    if reason is None:
        return ""
    _require(validate_str_no_null, reason, "reason")
    return reason


def _hex_key(value: Any, name: str) -> str:
    """Validate a pubkey or event id and return it lowercased.

    nostr_sdk renders authors and ids as lowercase hex, so keys are stored
    that way or they would never match a lookup from the hot path.
    """
    validate_key(value, name)
    return str(value).lower()


def _pubkey(value: Any, name: str = "pubkey") -> str:
    """Like ``_hex_key``, additionally decoding ``npub1...`` keys to hex."""
    key = _hex_key(value, name)
    if key.startswith("npub1"):
        try:
            return PublicKey.parse(key).to_hex()
        except NostrSdkError as e:
            raise ValueError(f"{name} is not a valid npub: {e}") from e
    return key


def _lookup_key(check: Callable[[Any, str], str], value: Any, name: str) -> str | None:
    """Normalize a key for an existence lookup.

    Returns None for empty or malformed strings, which cannot name a stored
    row. Non-string values still raise ``InvalidArgumentError``.
    """
    if not value:
        return None
    try:
        return check(value, name)
    except TypeError as e:
        raise InvalidArgumentError(str(e)) from e
    except ValueError:
        return None


def _rows_affected(status: str) -> int:
    """Extract the row count from a status tag such as ``"DELETE 3"``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


# ---------------------------------------------------------------------------
# AclStore
# ---------------------------------------------------------------------------


class AclStore:
    """Durable allow/ban lists, moderation queue, kinds, IP blocks, and admin grants.

    The store borrows a connected [Pool][relayguard.core.pool.Pool]: it never
    opens or closes it, and [close()][relayguard.core.store.AclStore.close]
    is a no-op. Use [create()][relayguard.core.store.AclStore.create] to get
    an instance whose schema is guaranteed to exist.

    Upsert behaviour differs per operation on purpose:

    =========================  ==========================================
    operation                  on conflict
    =========================  ==========================================
    ``add_allowed_pubkey``     keep the existing row and reason
    ``ban_pubkey``             refresh the reason
    ``flag_event_for_...``     keep the first reason
    ``allow_event/ban_event``  refresh the reason
    ``allow/disallow_kind``    keep the existing row
    ``block_ip``               refresh the reason
    ``grant_admin``            replace the whole method set
    ``set_relay_info``         replace the value, bump ``updated_at``
    =========================  ==========================================
    """

    def __init__(self, pool: Pool, config: AclStoreConfig | None = None) -> None:
        """Wrap a borrowed pool. Does not touch the database.

        Args:
            pool: Connected pool owned by the caller.
            config: Store configuration; defaults when omitted.
        """
        self._pool = pool
        self._config = config or AclStoreConfig()
        self._logger = Logger("store")

    @classmethod
    async def create(cls, pool: Pool, config: AclStoreConfig | None = None) -> AclStore:
        """Build a store and make sure every ACL table exists.

        Raises:
            StorageUnavailableError: If any table could not be created. The
                store is not returned in that case.
        """
        store = cls(pool, config)
        await store.ensure_schema()
        return store

    @property
    def config(self) -> AclStoreConfig:
        return self._config

    @property
    def _timeout(self) -> float | None:
        return self._config.timeouts.query

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def ensure_schema(self) -> None:
        """Create every missing ACL table in one transaction. Idempotent.

        Concurrent ``CREATE TABLE IF NOT EXISTS`` can still collide in the
        catalog, so processes starting together serialize on an advisory
        lock first.

        Raises:
            StorageUnavailableError: If any ``CREATE TABLE`` fails.
        """
        try:
            async with self._pool.transaction() as conn:
                await conn.execute(
                    "SELECT pg_advisory_xact_lock(hashtext($1))",
                    SCHEMA_LOCK_KEY,
                    timeout=self._timeout,
                )
                for statement in schema.SCHEMA_STATEMENTS:
                    await conn.execute(statement, timeout=self._timeout)
        except StorageUnavailableError:
            raise
        except _DB_ERRORS as e:
            self._logger.error("schema_failed", error=str(e))
            raise StorageUnavailableError(f"failed to initialize ACL tables: {e}") from e
        self._logger.info("schema_ready", tables=len(schema.SCHEMA_STATEMENTS))

    async def health(self) -> None:
        """Round-trip a trivial query.

        Raises:
            StorageUnavailableError: If the database is unreachable.
        """
        await self._pool.ping(timeout=self._timeout)

    async def close(self) -> None:
        """No-op: the pool belongs to the caller and stays open."""
        self._logger.debug("store_released")

    async def __aenter__(self) -> AclStore:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Execution helpers
    # -------------------------------------------------------------------------

    async def _call(self, operation: str, method: str, query: str, *args: Any) -> Any:
        """Run one statement on the pool without retry, mapping driver errors."""
        try:
            return await getattr(self._pool, method)(
                query, *args, timeout=self._timeout, max_attempts=1
            )
        except StorageUnavailableError:
            raise
        except asyncpg.DataError as e:
            raise InvalidArgumentError(f"{operation}: {e}") from e
        except _DB_ERRORS as e:
            raise StorageUnavailableError(f"{operation} failed: {e}") from e

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[asyncpg.Connection[Any]]:
        """Open a read-committed transaction, mapping failures to store errors.

        Failures before the transaction starts raise
        [StorageUnavailableError][relayguard.core.exceptions.StorageUnavailableError];
        failures inside it roll everything back and raise
        [TransactionAbortedError][relayguard.core.exceptions.TransactionAbortedError].
        """
        started = False
        try:
            async with self._pool.transaction(isolation="read_committed") as conn:
                started = True
                yield conn
        except StorageUnavailableError:
            raise
        except asyncpg.DataError as e:
            raise InvalidArgumentError(f"{operation}: {e}") from e
        except _DB_ERRORS as e:
            if not started:
                raise StorageUnavailableError(f"{operation} failed: {e}") from e
            self._logger.warning("transaction_aborted", operation=operation, error=str(e))
            raise TransactionAbortedError(f"{operation} rolled back: {e}") from e

    async def _atomic_move(
        self,
        operation: str,
        *,
        scope: str,
        key: str | int,
        upsert: str,
        upsert_args: Sequence[Any],
        purge: Iterable[str],
    ) -> None:
        """Upsert into one table and delete ``key`` from others, all or nothing.

        A transaction-scoped advisory lock on ``scope:key`` serializes
        concurrent moves of the same key, so after two racing moves commit
        the key is in exactly one target table: the last committer's.

        Args:
            operation: Name used in logs and error messages.
            scope: Lock namespace (``"pubkey"``, ``"event"``, ``"kind"``).
            key: Natural key being moved.
            upsert: Insert statement for the target table.
            upsert_args: Parameters of ``upsert``.
            purge: Tables ``key`` is removed from, in order.

        Raises:
            TransactionAbortedError: If any statement fails; nothing is
                committed.
        """
        async with self._transaction(operation) as conn:
            await conn.execute(
                "SELECT pg_advisory_xact_lock(hashtext($1))",
                f"{scope}:{key}",
                timeout=self._timeout,
            )
            await conn.execute(upsert, *upsert_args, timeout=self._timeout)
            for table in purge:
                await conn.execute(
                    f"DELETE FROM {table} WHERE {schema.KEY_COLUMNS[table]} = $1",  # noqa: S608
                    key,
                    timeout=self._timeout,
                )

    async def _exists(self, operation: str, table: str, key: Any, cast: str = "") -> bool:
        column = schema.KEY_COLUMNS[table]
        query = f"SELECT EXISTS(SELECT 1 FROM {table} WHERE {column} = $1{cast})"  # noqa: S608
        return bool(await self._call(operation, "fetchval", query, key))

    def _build(self, factory: Callable[..., T], rows: Iterable[Any], table: str) -> list[T]:
        """Construct models from rows, skipping (and logging) malformed ones."""
        entries: list[T] = []
        for row in rows:
            try:
                entries.append(factory(*row.values()))
            except (TypeError, ValueError) as e:
                self._logger.warning("row_skipped", table=table, error=str(e))
        return entries

    async def _list_reasons(self, factory: Callable[..., T], table: str, key_expr: str) -> list[T]:
        column = schema.KEY_COLUMNS[table]
        rows = await self._call(
            f"list_{table}",
            "fetch",
            f"SELECT {key_expr}, reason FROM {table} ORDER BY created_at ASC, {column} ASC",  # noqa: S608
        )
        return self._build(factory, rows, table)

    # -------------------------------------------------------------------------
    # Pubkeys
    # -------------------------------------------------------------------------

    async def add_allowed_pubkey(self, pubkey: str, reason: str = "") -> None:
        """Add a pubkey to the allow list.

        Idempotent; an existing entry keeps its original reason. Pubkeys are stored as
        lowercase hex; ``npub1...`` keys are decoded first.

        Raises:
            InvalidArgumentError: If ``pubkey`` is empty or malformed.
        """
        pubkey = _require(_pubkey, pubkey, "pubkey")
        reason = _require_reason(reason)
        await self._call(
            "add_allowed_pubkey",
            "execute",
            f"INSERT INTO {schema.ALLOWED_PUBKEYS} (pubkey, reason) VALUES ($1, $2) "
            "ON CONFLICT (pubkey) DO NOTHING",
            pubkey,
            reason,
        )
        self._logger.info("pubkey_allowed", pubkey=pubkey, reason=reason)

    async def remove_allowed_pubkey(self, pubkey: str) -> None:
        """Remove a pubkey from the allow list.

        Raises:
            InvalidArgumentError: If ``pubkey`` is empty or malformed.
            NotFoundError: If the pubkey was not on the allow list.
        """
        pubkey = _require(_pubkey, pubkey, "pubkey")
        status = await self._call(
            "remove_allowed_pubkey",
            "execute",
            f"DELETE FROM {schema.ALLOWED_PUBKEYS} WHERE pubkey = $1",
            pubkey,
        )
        if _rows_affected(status) == 0:
            raise NotFoundError(f"pubkey {pubkey} not found in allowed list")
        self._logger.info("pubkey_unallowed", pubkey=pubkey)

    async def is_allowed_pubkey(self, pubkey: str) -> bool:
        """Return whether ``pubkey`` is on the allow list.

        Empty or malformed keys cannot be stored, so they return ``False``.
        """
        key = _lookup_key(_pubkey, pubkey, "pubkey")
        if key is None:
            return False
        return await self._exists("is_allowed_pubkey", schema.ALLOWED_PUBKEYS, key)

    async def ban_pubkey(self, pubkey: str, reason: str = "") -> None:
        """Add a pubkey to the ban list, refreshing the reason if already banned.

        Touches ``banned_pubkeys`` only; use
        [move_pubkey_to_banned()][relayguard.core.store.AclStore.move_pubkey_to_banned]
        to also drop the pubkey from the allow list in the same transaction.

        Raises:
            InvalidArgumentError: If ``pubkey`` is empty or malformed.
        """
        pubkey = _require(_pubkey, pubkey, "pubkey")
        reason = _require_reason(reason)
        await self._call(
            "ban_pubkey",
            "execute",
            f"INSERT INTO {schema.BANNED_PUBKEYS} (pubkey, reason) VALUES ($1, $2) "
            "ON CONFLICT (pubkey) DO UPDATE SET reason = EXCLUDED.reason",
            pubkey,
            reason,
        )
        self._logger.info("pubkey_banned", pubkey=pubkey, reason=reason)

    async def move_pubkey_to_banned(self, pubkey: str, reason: str = "") -> None:
        """Ban a pubkey and remove it from the allow list atomically.

        Raises:
            InvalidArgumentError: If ``pubkey`` is empty or malformed.
            TransactionAbortedError: If either step fails.
        """
        pubkey = _require(_pubkey, pubkey, "pubkey")
        reason = _require_reason(reason)
        await self._atomic_move(
            "move_pubkey_to_banned",
            scope="pubkey",
            key=pubkey,
            upsert=(
                f"INSERT INTO {schema.BANNED_PUBKEYS} (pubkey, reason) VALUES ($1, $2) "
                "ON CONFLICT (pubkey) DO UPDATE SET reason = EXCLUDED.reason"
            ),
            upsert_args=(pubkey, reason),
            purge=(schema.ALLOWED_PUBKEYS,),
        )
        self._logger.info("pubkey_banned", pubkey=pubkey, reason=reason, atomic=True)

    async def is_banned_pubkey(self, pubkey: str) -> bool:
        """Return whether ``pubkey`` is banned (``False`` when empty or malformed)."""
        key = _lookup_key(_pubkey, pubkey, "pubkey")
        if key is None:
            return False
        return await self._exists("is_banned_pubkey", schema.BANNED_PUBKEYS, key)

    async def list_allowed_pubkeys(self) -> list[PubkeyReason]:
        """Allowed pubkeys, oldest first."""
        return await self._list_reasons(PubkeyReason, schema.ALLOWED_PUBKEYS, "pubkey")

    async def list_banned_pubkeys(self) -> list[PubkeyReason]:
        """Banned pubkeys, oldest first."""
        return await self._list_reasons(PubkeyReason, schema.BANNED_PUBKEYS, "pubkey")

    # -------------------------------------------------------------------------
    # Event moderation
    # -------------------------------------------------------------------------

    async def flag_event_for_moderation(self, event_id: str, reason: str = "") -> None:
        """Queue an event for moderation; the first reason wins on repeat calls.

        Raises:
            InvalidArgumentError: If ``event_id`` is empty or malformed.
        """
        event_id = _require(_hex_key, event_id, "event id")
        reason = _require_reason(reason)
        await self._call(
            "flag_event_for_moderation",
            "execute",
            f"INSERT INTO {schema.EVENTS_NEEDING_MODERATION} (id, reason) VALUES ($1, $2) "
            "ON CONFLICT (id) DO NOTHING",
            event_id,
            reason,
        )
        self._logger.debug("event_flagged", id=event_id, reason=reason)

    async def allow_event(self, event_id: str, reason: str = "") -> None:
        """Mark an event allowed, clearing it from the queue and the ban list.

        Raises:
            InvalidArgumentError: If ``event_id`` is empty or malformed.
            TransactionAbortedError: If any step fails; prior state is kept.
        """
        await self._adjudicate_event(
            "allow_event",
            "event_allowed",
            event_id,
            reason,
            target=schema.ALLOWED_EVENTS,
            opposite=schema.BANNED_EVENTS,
        )

    async def ban_event(self, event_id: str, reason: str = "") -> None:
        """Mark an event banned, clearing it from the queue and the allow list.

        Raises:
            InvalidArgumentError: If ``event_id`` is empty or malformed.
            TransactionAbortedError: If any step fails; prior state is kept.
        """
        await self._adjudicate_event(
            "ban_event",
            "event_banned",
            event_id,
            reason,
            target=schema.BANNED_EVENTS,
            opposite=schema.ALLOWED_EVENTS,
        )

    async def _adjudicate_event(
        self,
        operation: str,
        log_event: str,
        event_id: str,
        reason: str,
        *,
        target: str,
        opposite: str,
    ) -> None:
        event_id = _require(_hex_key, event_id, "event id")
        reason = _require_reason(reason)
        await self._atomic_move(
            operation,
            scope="event",
            key=event_id,
            upsert=(
                f"INSERT INTO {target} (id, reason) VALUES ($1, $2) "
                "ON CONFLICT (id) DO UPDATE SET reason = EXCLUDED.reason"
            ),
            upsert_args=(event_id, reason),
            purge=(schema.EVENTS_NEEDING_MODERATION, opposite),
        )
        self._logger.info(log_event, id=event_id, reason=reason)

    async def is_banned_event(self, event_id: str) -> bool:
        """Return whether ``event_id`` is banned (``False`` when empty or malformed)."""
        key = _lookup_key(_hex_key, event_id, "event id")
        if key is None:
            return False
        return await self._exists("is_banned_event", schema.BANNED_EVENTS, key)

    async def list_events_needing_moderation(self) -> list[EventReason]:
        """Events awaiting a verdict, oldest first."""
        return await self._list_reasons(EventReason, schema.EVENTS_NEEDING_MODERATION, "id")

    async def list_allowed_events(self) -> list[EventReason]:
        """Allowed events, oldest first."""
        return await self._list_reasons(EventReason, schema.ALLOWED_EVENTS, "id")

    async def list_banned_events(self) -> list[EventReason]:
        """Banned events, oldest first."""
        return await self._list_reasons(EventReason, schema.BANNED_EVENTS, "id")

    # -------------------------------------------------------------------------
    # Kinds
    # -------------------------------------------------------------------------

    async def allow_kind(self, kind: int) -> None:
        """Put ``kind`` on the allow list and take it off the disallow list.

        Raises:
            InvalidArgumentError: If ``kind`` is not an int in ``0..65535``.
            TransactionAbortedError: If either step fails.
        """
        await self._move_kind("allow_kind", kind, schema.ALLOWED_KINDS, schema.DISALLOWED_KINDS)
        self._logger.info("kind_allowed", kind=kind)

    async def disallow_kind(self, kind: int) -> None:
        """Put ``kind`` on the disallow list and take it off the allow list.

        Raises:
            InvalidArgumentError: If ``kind`` is not an int in ``0..65535``.
            TransactionAbortedError: If either step fails.
        """
        await self._move_kind("disallow_kind", kind, schema.DISALLOWED_KINDS, schema.ALLOWED_KINDS)
        self._logger.info("kind_disallowed", kind=kind)

    async def _move_kind(self, operation: str, kind: int, target: str, opposite: str) -> None:
        _require(validate_kind, kind, "kind")
        await self._atomic_move(
            operation,
            scope="kind",
            key=kind,
            upsert=f"INSERT INTO {target} (kind) VALUES ($1) ON CONFLICT (kind) DO NOTHING",
            upsert_args=(kind,),
            purge=(opposite,),
        )

    async def list_allowed_kinds(self) -> list[int]:
        """Allowed kinds in ascending numeric order."""
        return await self._list_kinds(schema.ALLOWED_KINDS)

    async def list_disallowed_kinds(self) -> list[int]:
        """Disallowed kinds in ascending numeric order."""
        return await self._list_kinds(schema.DISALLOWED_KINDS)

    async def _list_kinds(self, table: str) -> list[int]:
        rows = await self._call(
            f"list_{table}", "fetch", f"SELECT kind FROM {table} ORDER BY kind ASC"  # noqa: S608
        )
        return [int(row["kind"]) for row in rows]

    # -------------------------------------------------------------------------
    # IP addresses
    # -------------------------------------------------------------------------

    async def block_ip(
        self, ip: str | ipaddress.IPv4Address | ipaddress.IPv6Address | None, reason: str = ""
    ) -> None:
        """Block an address, refreshing the reason if it is already blocked.

        Raises:
            InvalidArgumentError: If ``ip`` is ``None`` or not an IP literal.
        """
        address = _require(normalize_ip, ip, "ip")
        reason = _require_reason(reason)
        await self._call(
            "block_ip",
            "execute",
            f"INSERT INTO {schema.BLOCKED_IPS} (ip, reason) VALUES ($1::text::inet, $2) "
            "ON CONFLICT (ip) DO UPDATE SET reason = EXCLUDED.reason",
            address,
            reason,
        )
        self._logger.info("ip_blocked", ip=address, reason=reason)

    async def unblock_ip(self, ip: str | ipaddress.IPv4Address | ipaddress.IPv6Address | None) -> None:
        """Unblock an address. Unblocking an address that is not blocked succeeds.

        Raises:
            InvalidArgumentError: If ``ip`` is ``None`` or not an IP literal.
        """
        address = _require(normalize_ip, ip, "ip")
        status = await self._call(
            "unblock_ip",
            "execute",
            f"DELETE FROM {schema.BLOCKED_IPS} WHERE ip = $1::text::inet",
            address,
        )
        self._logger.info("ip_unblocked", ip=address, removed=_rows_affected(status))

    async def is_blocked_ip(self, ip: str | ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
        """Return whether ``ip`` is blocked.

        Raises:
            InvalidArgumentError: If ``ip`` is not an IP literal.
        """
        address = _require(normalize_ip, ip, "ip")
        return await self._exists("is_blocked_ip", schema.BLOCKED_IPS, address, "::text::inet")

    async def list_blocked_ips(self) -> list[IpReason]:
        """Blocked addresses, oldest first."""
        return await self._list_reasons(IpReason, schema.BLOCKED_IPS, "host(ip) AS ip")

    # -------------------------------------------------------------------------
    # Admin grants
    # -------------------------------------------------------------------------

    async def grant_admin(self, pubkey: str, methods: Iterable[str]) -> None:
        """Replace the method set granted to ``pubkey``.

        An empty set removes the grant, since an admin row never carries an
        empty method set.

        Raises:
            InvalidArgumentError: If ``pubkey`` or any method is malformed.
        """
        pubkey = _require(_pubkey, pubkey, "pubkey")
        try:
            grant = AdminGrant(pubkey, methods)  # type: ignore[arg-type]
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError(str(e)) from e

        if grant.is_empty:
            await self.revoke_admin(pubkey)
            return

        params = grant.to_db_params()
        await self._call(
            "grant_admin",
            "execute",
            f"INSERT INTO {schema.ADMINS} (pubkey, methods) VALUES ($1, $2::text[]) "
            "ON CONFLICT (pubkey) DO UPDATE SET methods = EXCLUDED.methods",
            params.pubkey,
            params.methods,
        )
        self._logger.info("admin_granted", pubkey=pubkey, methods=",".join(params.methods))

    async def revoke_admin(self, pubkey: str, methods: Iterable[str] = ()) -> None:
        """Revoke some or all of a pubkey's admin methods.

        With no ``methods`` the grant is deleted outright. Otherwise exactly
        the named methods are removed under a row lock, and the grant is
        deleted if nothing remains. Revoking from a non-admin is a no-op.

        Raises:
            InvalidArgumentError: If ``pubkey`` is empty or malformed.
            TransactionAbortedError: If a partial revocation fails.
        """
        pubkey = _require(_pubkey, pubkey, "pubkey")
        if isinstance(methods, str):
            raise InvalidArgumentError("methods must be an iterable of str, not a single str")
        removed = frozenset(methods)

        if not removed:
            await self._call(
                "revoke_admin",
                "execute",
                f"DELETE FROM {schema.ADMINS} WHERE pubkey = $1",
                pubkey,
            )
            self._logger.info("admin_revoked", pubkey=pubkey)
            return

        async with self._transaction("revoke_admin") as conn:
            current = await conn.fetchval(
                f"SELECT methods FROM {schema.ADMINS} WHERE pubkey = $1 FOR UPDATE",
                pubkey,
                timeout=self._timeout,
            )
            if current is None:
                return
            grant = AdminGrant(pubkey, frozenset(current)).without_methods(removed)
            if grant.is_empty:
                await conn.execute(
                    f"DELETE FROM {schema.ADMINS} WHERE pubkey = $1",
                    pubkey,
                    timeout=self._timeout,
                )
            else:
                await conn.execute(
                    f"UPDATE {schema.ADMINS} SET methods = $2::text[] WHERE pubkey = $1",
                    pubkey,
                    grant.to_db_params().methods,
                    timeout=self._timeout,
                )
        self._logger.info("admin_revoked", pubkey=pubkey, methods=",".join(sorted(removed)))

    async def get_admin_grant(self, pubkey: str) -> AdminGrant | None:
        """Return the grant for ``pubkey``, or None when it is not an admin."""
        key = _lookup_key(_pubkey, pubkey, "pubkey")
        if key is None:
            return None
        methods = await self._call(
            "get_admin_grant",
            "fetchval",
            f"SELECT methods FROM {schema.ADMINS} WHERE pubkey = $1",
            key,
        )
        if methods is None:
            return None
        return AdminGrant(key, frozenset(methods))

    async def is_admin(self, pubkey: str) -> bool:
        """Return whether ``pubkey`` holds any admin grant."""
        key = _lookup_key(_pubkey, pubkey, "pubkey")
        if key is None:
            return False
        return await self._exists("is_admin", schema.ADMINS, key)

    async def get_admin_methods(self, pubkey: str) -> frozenset[str] | None:
        """Return the granted method set, or None when ``pubkey`` is not an admin."""
        grant = await self.get_admin_grant(pubkey)
        return grant.methods if grant is not None else None

    async def list_admins(self) -> list[AdminGrant]:
        """All admin grants, oldest first."""
        rows = await self._call(
            "list_admins",
            "fetch",
            f"SELECT pubkey, methods FROM {schema.ADMINS} ORDER BY created_at ASC, pubkey ASC",
        )
        return self._build(
            lambda pubkey, methods: AdminGrant(pubkey, frozenset(methods or ())),
            rows,
            schema.ADMINS,
        )

    # -------------------------------------------------------------------------
    # Relay metadata
    # -------------------------------------------------------------------------

    async def set_relay_info(self, key: str, value: str) -> None:
        """Set a relay metadata value; the last write wins.

        Raises:
            InvalidArgumentError: If ``key`` is empty or too long, or
                ``value`` is not a string.
        """
        _require(validate_key, key, "key")
        _require(validate_str_no_null, value, "value")
        await self._call(
            "set_relay_info",
            "execute",
            f"INSERT INTO {schema.RELAY_INFO} (key, value, updated_at) "
            "VALUES ($1, $2, CURRENT_TIMESTAMP) "
            "ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = CURRENT_TIMESTAMP",
            key,
            value,
        )
        self._logger.info("relay_info_set", key=key)

    async def get_relay_info(self, key: str) -> str:
        """Return the value stored under ``key``, or ``""`` when unset."""
        _require(validate_key, key, "key")
        value = await self._call(
            "get_relay_info",
            "fetchval",
            f"SELECT value FROM {schema.RELAY_INFO} WHERE key = $1",
            key,
        )
        return value or ""

    async def get_all_relay_info(self) -> dict[str, str]:
        """Return every stored relay metadata key and value."""
        rows = await self._call(
            "get_all_relay_info",
            "fetch",
            f"SELECT key, value FROM {schema.RELAY_INFO} ORDER BY key ASC",
        )
        return {row["key"]: row["value"] or "" for row in rows}

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    async def count_entries(self) -> dict[str, int]:
        """Return the row count of every ACL table except ``relay_info``."""
        tables = [t for t in schema.KEY_COLUMNS if t != schema.RELAY_INFO]
        selects = ", ".join(f"(SELECT count(*) FROM {t}) AS {t}" for t in tables)
        row = await self._call("count_entries", "fetchrow", f"SELECT {selects}")  # noqa: S608
        if row is None:
            return dict.fromkeys(tables, 0)
        return {t: int(row[t]) for t in tables}

    def __repr__(self) -> str:
        return f"AclStore(pool={self._pool!r})"
