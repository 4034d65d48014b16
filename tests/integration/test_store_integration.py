"""Integration tests for AclStore against a real PostgreSQL.

Covers the cross-table guarantees that only a real database can show:
exclusive event verdicts and kind lists, atomic pubkey bans, concurrent
moves of the same key, rollback of failed moves, partial admin
revocation, INET normalization and insertion ordering.
"""

from __future__ import annotations

import asyncio

import pytest

from relayguard.core.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    TransactionAbortedError,
)
from relayguard.core.pool import Pool
from relayguard.core.store import AclStore
from relayguard.models import AdminGrant, EventReason, IpReason, PubkeyReason


pytestmark = pytest.mark.integration

ALICE = "a" * 64
BOB = "b" * 64
CAROL = "c" * 64
EVENT = "e" * 64


async def _in_table(pool: Pool, table: str, column: str, key: object) -> bool:
    query = f"SELECT EXISTS(SELECT 1 FROM {table} WHERE {column} = $1)"  # noqa: S608
    return bool(await pool.fetchval(query, key))


# ============================================================================
# Schema
# ============================================================================


class TestSchema:
    async def test_ensure_schema_is_idempotent(self, acl_store: AclStore):
        await acl_store.add_allowed_pubkey(ALICE, "friend")
        await acl_store.ensure_schema()
        assert await acl_store.is_allowed_pubkey(ALICE) is True

    async def test_health(self, acl_store: AclStore):
        await acl_store.health()

    async def test_empty_counts(self, acl_store: AclStore):
        counts = await acl_store.count_entries()
        assert set(counts.values()) == {0}
        assert "relay_info" not in counts

    async def test_concurrent_create(self, pg_pool: Pool):
        stores = await asyncio.gather(*(AclStore.create(pg_pool) for _ in range(4)))
        assert len(stores) == 4
        await stores[0].add_allowed_pubkey(ALICE)
        assert await stores[1].is_allowed_pubkey(ALICE) is True


# ============================================================================
# Pubkeys
# ============================================================================


class TestPubkeys:
    async def test_allow_is_idempotent_and_keeps_first_reason(self, acl_store: AclStore):
        await acl_store.add_allowed_pubkey(ALICE, "first")
        await acl_store.add_allowed_pubkey(ALICE, "second")
        assert await acl_store.list_allowed_pubkeys() == [PubkeyReason(ALICE, "first")]

    async def test_remove_missing_raises_not_found(self, acl_store: AclStore):
        with pytest.raises(NotFoundError, match="not found in allowed list"):
            await acl_store.remove_allowed_pubkey(ALICE)

    async def test_remove_allowed(self, acl_store: AclStore):
        await acl_store.add_allowed_pubkey(ALICE)
        await acl_store.remove_allowed_pubkey(ALICE)
        assert await acl_store.is_allowed_pubkey(ALICE) is False

    async def test_ban_refreshes_reason(self, acl_store: AclStore):
        await acl_store.ban_pubkey(ALICE, "spam")
        await acl_store.ban_pubkey(ALICE, "abuse")
        assert await acl_store.list_banned_pubkeys() == [PubkeyReason(ALICE, "abuse")]

    async def test_move_to_banned_clears_allow_list(self, acl_store: AclStore):
        await acl_store.add_allowed_pubkey(ALICE, "friend")
        await acl_store.move_pubkey_to_banned(ALICE, "turned bad")
        assert await acl_store.is_allowed_pubkey(ALICE) is False
        assert await acl_store.is_banned_pubkey(ALICE) is True

    async def test_move_to_banned_without_prior_allow(self, acl_store: AclStore):
        await acl_store.move_pubkey_to_banned(BOB)
        assert await acl_store.list_banned_pubkeys() == [PubkeyReason(BOB, "")]

    async def test_listed_in_insertion_order(self, acl_store: AclStore):
        for pubkey in (CAROL, ALICE, BOB):
            await acl_store.add_allowed_pubkey(pubkey)
        listed = [entry.pubkey for entry in await acl_store.list_allowed_pubkeys()]
        assert listed == [CAROL, ALICE, BOB]

    async def test_overlong_key_rejected_before_query(self, acl_store: AclStore):
        with pytest.raises(InvalidArgumentError):
            await acl_store.add_allowed_pubkey("f" * 65)

    async def test_keys_match_case_insensitively(self, acl_store: AclStore):
        await acl_store.add_allowed_pubkey("AB" * 32, "friend")
        assert await acl_store.is_allowed_pubkey("ab" * 32) is True
        assert await acl_store.is_allowed_pubkey("Ab" * 32) is True
        assert await acl_store.list_allowed_pubkeys() == [PubkeyReason("ab" * 32, "friend")]

    async def test_overlong_lookup_is_false(self, acl_store: AclStore):
        assert await acl_store.is_banned_pubkey("f" * 65) is False
        assert await acl_store.is_admin("f" * 65) is False


# ============================================================================
# Event moderation
# ============================================================================


class TestEventModeration:
    async def test_flag_then_ban(self, acl_store: AclStore, pg_pool: Pool):
        await acl_store.flag_event_for_moderation(EVENT, "reported")
        assert await acl_store.list_events_needing_moderation() == [EventReason(EVENT, "reported")]

        await acl_store.ban_event(EVENT, "confirmed spam")

        assert await acl_store.list_events_needing_moderation() == []
        assert await acl_store.list_banned_events() == [EventReason(EVENT, "confirmed spam")]
        assert await acl_store.is_banned_event(EVENT) is True
        assert not await _in_table(pg_pool, "allowed_events", "id", EVENT)

    async def test_flag_keeps_first_reason(self, acl_store: AclStore):
        await acl_store.flag_event_for_moderation(EVENT, "first")
        await acl_store.flag_event_for_moderation(EVENT, "second")
        assert await acl_store.list_events_needing_moderation() == [EventReason(EVENT, "first")]

    async def test_verdicts_are_exclusive(self, acl_store: AclStore, pg_pool: Pool):
        await acl_store.ban_event(EVENT, "spam")
        await acl_store.allow_event(EVENT, "appeal accepted")

        assert await acl_store.list_allowed_events() == [EventReason(EVENT, "appeal accepted")]
        assert await acl_store.list_banned_events() == []
        assert await acl_store.is_banned_event(EVENT) is False

        await acl_store.ban_event(EVENT, "spam again")
        assert await acl_store.list_allowed_events() == []
        assert not await _in_table(pg_pool, "allowed_events", "id", EVENT)

    async def test_concurrent_verdicts_leave_exactly_one(self, acl_store: AclStore, pg_pool: Pool):
        for i in range(10):
            event_id = f"{i:064x}"
            await acl_store.flag_event_for_moderation(event_id)
            await asyncio.gather(
                acl_store.allow_event(event_id, "ok"),
                acl_store.ban_event(event_id, "spam"),
            )
            allowed = await _in_table(pg_pool, "allowed_events", "id", event_id)
            banned = await _in_table(pg_pool, "banned_events", "id", event_id)
            assert allowed != banned
            assert not await _in_table(pg_pool, "events_needing_moderation", "id", event_id)


# ============================================================================
# Kinds
# ============================================================================


class TestKinds:
    async def test_allow_then_disallow_moves(self, acl_store: AclStore):
        await acl_store.allow_kind(1)
        await acl_store.allow_kind(1)
        await acl_store.disallow_kind(1)
        assert await acl_store.list_allowed_kinds() == []
        assert await acl_store.list_disallowed_kinds() == [1]

    async def test_sorted_numerically(self, acl_store: AclStore):
        for kind in (30023, 1, 7, 0):
            await acl_store.allow_kind(kind)
        assert await acl_store.list_allowed_kinds() == [0, 1, 7, 30023]

    async def test_concurrent_moves_leave_exactly_one(self, acl_store: AclStore):
        await asyncio.gather(acl_store.allow_kind(4), acl_store.disallow_kind(4))
        allowed = 4 in await acl_store.list_allowed_kinds()
        disallowed = 4 in await acl_store.list_disallowed_kinds()
        assert allowed != disallowed


# ============================================================================
# Rollback
# ============================================================================


async def _refuse_deletes(pool: Pool, table: str) -> None:
    """Make every DELETE on ``table`` fail, so a move aborts after its upsert."""
    await pool.execute(
        "CREATE OR REPLACE FUNCTION refuse_delete() RETURNS trigger AS $$ "
        "BEGIN RAISE EXCEPTION 'deletes refused'; END $$ LANGUAGE plpgsql"
    )
    await pool.execute(
        f"CREATE TRIGGER refuse_delete BEFORE DELETE ON {table} "
        "FOR EACH ROW EXECUTE FUNCTION refuse_delete()"
    )


class TestRollback:
    async def test_failed_allow_event_changes_nothing(self, acl_store: AclStore, pg_pool: Pool):
        await pg_pool.execute(
            "INSERT INTO events_needing_moderation (id, reason) VALUES ($1, 'reported')", EVENT
        )
        await pg_pool.execute("INSERT INTO banned_events (id, reason) VALUES ($1, 'spam')", EVENT)
        await _refuse_deletes(pg_pool, "banned_events")

        with pytest.raises(TransactionAbortedError):
            await acl_store.allow_event(EVENT, "appeal")

        assert await acl_store.list_events_needing_moderation() == [EventReason(EVENT, "reported")]
        assert await acl_store.list_banned_events() == [EventReason(EVENT, "spam")]
        assert not await _in_table(pg_pool, "allowed_events", "id", EVENT)

    async def test_failed_allow_kind_changes_nothing(self, acl_store: AclStore, pg_pool: Pool):
        await acl_store.disallow_kind(5)
        await _refuse_deletes(pg_pool, "disallowed_kinds")

        with pytest.raises(TransactionAbortedError):
            await acl_store.allow_kind(5)

        assert await acl_store.list_allowed_kinds() == []
        assert await acl_store.list_disallowed_kinds() == [5]


# ============================================================================
# IP addresses
# ============================================================================


class TestIps:
    async def test_block_then_unblock(self, acl_store: AclStore):
        await acl_store.block_ip("10.0.0.1", "scanner")
        assert await acl_store.is_blocked_ip("10.0.0.1") is True
        await acl_store.unblock_ip("10.0.0.1")
        assert await acl_store.is_blocked_ip("10.0.0.1") is False

    async def test_unblock_missing_is_noop(self, acl_store: AclStore):
        await acl_store.unblock_ip("192.0.2.1")
        assert await acl_store.list_blocked_ips() == []

    async def test_ipv6_normalized(self, acl_store: AclStore):
        await acl_store.block_ip("2001:DB8:0:0:0:0:0:1", "v6")
        assert await acl_store.is_blocked_ip("2001:db8::1") is True
        assert await acl_store.list_blocked_ips() == [IpReason("2001:db8::1", "v6")]

    async def test_reblock_refreshes_reason(self, acl_store: AclStore):
        await acl_store.block_ip("10.0.0.2", "first")
        await acl_store.block_ip("10.0.0.2", "second")
        assert await acl_store.list_blocked_ips() == [IpReason("10.0.0.2", "second")]


# ============================================================================
# Admin grants
# ============================================================================


class TestAdmins:
    async def test_grant_replaces_set(self, acl_store: AclStore):
        await acl_store.grant_admin(ALICE, ["banpubkey", "stats"])
        await acl_store.grant_admin(ALICE, ["banevent"])
        assert await acl_store.get_admin_methods(ALICE) == frozenset({"banevent"})

    async def test_partial_revoke(self, acl_store: AclStore):
        await acl_store.grant_admin(ALICE, ["banpubkey", "banevent", "stats"])
        await acl_store.revoke_admin(ALICE, ["stats"])
        assert await acl_store.get_admin_grant(ALICE) == AdminGrant(
            ALICE, frozenset({"banpubkey", "banevent"})
        )

    async def test_revoking_last_method_deletes_grant(self, acl_store: AclStore):
        await acl_store.grant_admin(ALICE, ["stats"])
        await acl_store.revoke_admin(ALICE, ["stats"])
        assert await acl_store.is_admin(ALICE) is False
        assert await acl_store.get_admin_grant(ALICE) is None

    async def test_full_revoke_and_missing_revoke(self, acl_store: AclStore):
        await acl_store.grant_admin(ALICE, ["stats"])
        await acl_store.revoke_admin(ALICE)
        await acl_store.revoke_admin(ALICE)
        await acl_store.revoke_admin(BOB, ["stats"])
        assert await acl_store.list_admins() == []

    async def test_empty_grant_removes(self, acl_store: AclStore):
        await acl_store.grant_admin(ALICE, ["stats"])
        await acl_store.grant_admin(ALICE, [])
        assert await acl_store.is_admin(ALICE) is False

    async def test_list_admins(self, acl_store: AclStore):
        await acl_store.grant_admin(BOB, ["stats"])
        await acl_store.grant_admin(ALICE, ["banevent"])
        assert [grant.pubkey for grant in await acl_store.list_admins()] == [BOB, ALICE]


# ============================================================================
# Relay metadata and statistics
# ============================================================================


class TestRelayInfoAndCounts:
    async def test_last_write_wins(self, acl_store: AclStore):
        assert await acl_store.get_relay_info("name") == ""
        await acl_store.set_relay_info("name", "first")
        await acl_store.set_relay_info("name", "second")
        await acl_store.set_relay_info("icon", "https://example.com/icon.png")
        assert await acl_store.get_relay_info("name") == "second"
        assert await acl_store.get_all_relay_info() == {
            "icon": "https://example.com/icon.png",
            "name": "second",
        }

    async def test_count_entries(self, acl_store: AclStore):
        await acl_store.add_allowed_pubkey(ALICE)
        await acl_store.add_allowed_pubkey(BOB)
        await acl_store.ban_event(EVENT)
        await acl_store.allow_kind(1)
        await acl_store.block_ip("10.0.0.1")
        await acl_store.grant_admin(CAROL, ["stats"])
        await acl_store.set_relay_info("name", "ignored")

        counts = await acl_store.count_entries()
        assert counts["allowed_pubkeys"] == 2
        assert counts["banned_events"] == 1
        assert counts["allowed_kinds"] == 1
        assert counts["blocked_ips"] == 1
        assert counts["admins"] == 1
        assert counts["banned_pubkeys"] == 0
