"""Relay hooks that decide who may write to and administer the relay.

Each hook returns a ``(reject, message)`` pair in the convention relay
engines use for their ``RejectEvent``-style hook chains: ``(False, "")``
lets the request through, ``(True, message)`` refuses it with ``message``
sent back to the client.

Every hook fails closed. If the [AclStore][relayguard.core.store.AclStore]
cannot answer, the request is rejected and the cause is logged; a storage
outage never turns into an open relay.
"""

from __future__ import annotations

import ipaddress  # noqa: TC003
from typing import TYPE_CHECKING, Protocol

from relayguard.core.exceptions import RelayGuardError
from relayguard.core.logger import Logger
from relayguard.core.metrics import record_policy_decision


if TYPE_CHECKING:
    from relayguard.core.store import AclStore

    from .configs import RelayConfig


PRIVATE_RELAY_MESSAGE = (
    "blocked: this is a private relay, only the owner and allowed pubkeys can write here"
)
BLOCKED_IP_MESSAGE = "blocked: your address is not allowed to connect"
AUTH_ERROR_MESSAGE = "error: could not check authorization"
AUTH_REQUIRED_MESSAGE = "unauthorized: authentication required"
NOT_GRANTED_MESSAGE = "unauthorized: you are not allowed to call this method"

Decision = tuple[bool, str]

_ACCEPT: Decision = (False, "")


class _PublicKey(Protocol):
    def to_hex(self) -> str: ...


class SignedEvent(Protocol):
    """The part of ``nostr_sdk.Event`` the write policy reads."""

    def author(self) -> _PublicKey: ...


class EventPolicy:
    """Authorization hooks backed by an AclStore.

    The owner pubkey from [RelayConfig][relayguard.services.configs.RelayConfig]
    is always authorized and never looked up.
    """

    def __init__(self, store: AclStore, relay: RelayConfig) -> None:
        self._store = store
        self._owner = relay.owner_pubkey
        self._logger = Logger("policy")

    @property
    def owner_pubkey(self) -> str:
        return self._owner

    def is_owner(self, pubkey: str) -> bool:
        return bool(self._owner) and pubkey.lower() == self._owner

    def _decide(self, hook: str, decision: Decision) -> Decision:
        record_policy_decision(hook, "rejected" if decision[0] else "accepted")
        return decision

    def _fail_closed(self, hook: str, error: RelayGuardError, **fields: str) -> Decision:
        self._logger.error(
            "authorization_check_failed",
            hook=hook,
            error_type=type(error).__name__,
            error=str(error),
            **fields,
        )
        record_policy_decision(hook, "error")
        return (True, AUTH_ERROR_MESSAGE)

    async def reject_event(self, event: SignedEvent) -> Decision:
        """Private relay write policy: only the owner and allowed pubkeys may write.

        Args:
            event: A ``nostr_sdk.Event`` (anything exposing
                ``author().to_hex()``).

        Returns:
            ``(False, "")`` to accept, ``(True, message)`` to reject.
        """
        author = event.author().to_hex()
        if self.is_owner(author):
            return self._decide("reject_event", _ACCEPT)

        try:
            allowed = await self._store.is_allowed_pubkey(author)
        except RelayGuardError as e:
            return self._fail_closed("reject_event", e, pubkey=author)

        if allowed:
            return self._decide("reject_event", _ACCEPT)
        self._logger.debug("event_rejected", pubkey=author)
        return self._decide("reject_event", (True, PRIVATE_RELAY_MESSAGE))

    async def reject_connection(
        self, ip: str | ipaddress.IPv4Address | ipaddress.IPv6Address
    ) -> Decision:
        """Refuse connections from blocked addresses."""
        try:
            blocked = await self._store.is_blocked_ip(ip)
        except RelayGuardError as e:
            return self._fail_closed("reject_connection", e, ip=str(ip))

        if blocked:
            self._logger.info("connection_rejected", ip=str(ip))
            return self._decide("reject_connection", (True, BLOCKED_IP_MESSAGE))
        return self._decide("reject_connection", _ACCEPT)

    async def reject_api_call(self, caller: str, method: str) -> Decision:
        """Allow the owner, or an admin whose grant includes ``method``.

        Args:
            caller: Authenticated pubkey of the caller (NIP-98), or ``""``.
            method: NIP-86 method name being called.
        """
        if not caller:
            return self._decide("reject_api_call", (True, AUTH_REQUIRED_MESSAGE))
        if self.is_owner(caller):
            return self._decide("reject_api_call", _ACCEPT)

        try:
            grant = await self._store.get_admin_grant(caller)
        except RelayGuardError as e:
            return self._fail_closed("reject_api_call", e, pubkey=caller, method=method)

        if grant is not None and grant.has_method(method):
            return self._decide("reject_api_call", _ACCEPT)
        self._logger.warning("api_call_rejected", pubkey=caller, method=method)
        return self._decide("reject_api_call", (True, NOT_GRANTED_MESSAGE))
