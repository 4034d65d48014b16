"""Shared constants for the models layer.

Enumerations and limits used by the store, the policy hooks, and the
management dispatcher. Placing them here keeps the models layer free of any
dependency on ``relayguard.core``.
"""

from __future__ import annotations

from enum import StrEnum


EVENT_KIND_MAX = 65_535
"""Largest valid Nostr event kind (kinds are unsigned 16-bit integers)."""

KEY_MAX_LENGTH = 64
"""Column width of every ``VARCHAR(64)`` key: pubkeys, event ids, info keys."""


class Nip86Method(StrEnum):
    """NIP-86 relay management method names.

    The string values are the exact ``method`` field of a JSON-RPC request
    and the entries stored in an admin grant's method set.

    See Also:
        [ManagementApi][relayguard.services.management.ManagementApi]:
            Dispatches each member to an
            [AclStore][relayguard.core.store.AclStore] operation.
    """

    SUPPORTED_METHODS = "supportedmethods"
    BAN_PUBKEY = "banpubkey"
    ALLOW_PUBKEY = "allowpubkey"
    LIST_BANNED_PUBKEYS = "listbannedpubkeys"
    LIST_ALLOWED_PUBKEYS = "listallowedpubkeys"
    LIST_EVENTS_NEEDING_MODERATION = "listeventsneedingmoderation"
    ALLOW_EVENT = "allowevent"
    BAN_EVENT = "banevent"
    LIST_BANNED_EVENTS = "listbannedevents"
    LIST_ALLOWED_EVENTS = "listallowedevents"
    CHANGE_RELAY_NAME = "changerelayname"
    CHANGE_RELAY_DESCRIPTION = "changerelaydescription"
    CHANGE_RELAY_ICON = "changerelayicon"
    ALLOW_KIND = "allowkind"
    DISALLOW_KIND = "disallowkind"
    LIST_ALLOWED_KINDS = "listallowedkinds"
    LIST_DISALLOWED_KINDS = "listdisallowedkinds"
    BLOCK_IP = "blockip"
    UNBLOCK_IP = "unblockip"
    LIST_BLOCKED_IPS = "listblockedips"
    GRANT_ADMIN = "grantadmin"
    REVOKE_ADMIN = "revokeadmin"
    STATS = "stats"


class RelayInfoKey(StrEnum):
    """Keys of the ``relay_info`` table editable through NIP-86."""

    NAME = "name"
    DESCRIPTION = "description"
    ICON = "icon"
