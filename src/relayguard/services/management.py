"""
NIP-86 relay management dispatcher.

[ManagementApi][relayguard.services.management.ManagementApi] takes a decoded
JSON-RPC body (``{"method": ..., "params": [...]}``) from an authenticated
caller and returns the NIP-86 response body (``{"result": ..., "error": ...}``).
HTTP transport and NIP-98 authentication stay with the host relay; this
module starts once the caller's pubkey is known.

Every failure becomes an error response. Nothing raised by the store
escapes [handle()][relayguard.services.management.ManagementApi.handle]:

| Cause                              | ``error``                          |
|------------------------------------|------------------------------------|
| malformed body or unknown method   | ``invalid request: ...``           |
| caller not owner or granted admin  | ``unauthorized: ...``              |
| bad params or ``InvalidArgument``  | ``invalid params: ...``            |
| ``NotFoundError``                  | ``not found: ...``                 |
| ``DatabaseError``                  | ``error: internal storage failure``|

Examples:
    ```python
    api = ManagementApi(store, policy, relay_info)
    await api.handle(owner, {"method": "banevent", "params": [event_id, "spam"]})
    # {"result": True, "error": None}
    ```
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from relayguard.core.exceptions import (
    DatabaseError,
    InvalidArgumentError,
    NotFoundError,
    RelayGuardError,
)
from relayguard.core.logger import Logger
from relayguard.core.metrics import record_management_call
from relayguard.models import Nip86Method, RelayInfoKey

from .configs import ManagementConfig


if TYPE_CHECKING:
    from relayguard.core.store import AclStore

    from .policy import EventPolicy
    from .relay_info import RelayInfo


STORAGE_FAILURE_MESSAGE = "error: internal storage failure"

Handler = Callable[[list[Any]], Awaitable[Any]]

_MISSING: Any = object()
_METHOD_NAMES = frozenset(m.value for m in Nip86Method)


def _response(result: Any = None, error: str | None = None) -> dict[str, Any]:
    return {"result": result, "error": error}


class _Params:
    """Positional parameter reader that turns shape errors into ``InvalidArgumentError``."""

    def __init__(self, method: str, params: list[Any], max_count: int) -> None:
        if len(params) > max_count:
            raise InvalidArgumentError(
                f"{method} takes at most {max_count} params, got {len(params)}"
            )
        self._method = method
        self._params = params

    def get(self, index: int, name: str, kind: type, default: Any = _MISSING) -> Any:
        if index >= len(self._params) or self._params[index] is None:
            if default is _MISSING:
                raise InvalidArgumentError(f"{self._method} requires {name}")
            return default
        value = self._params[index]
        if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
            raise InvalidArgumentError(
                f"{name} must be {kind.__name__}, got {type(value).__name__}"
            )
        return value

    def reason(self, index: int) -> str:
        return str(self.get(index, "reason", str, ""))

    def methods(self, index: int) -> list[str]:
        names = self.get(index, "methods", list, [])
        unknown = [m for m in names if not isinstance(m, str) or m not in _METHOD_NAMES]
        if unknown:
            raise InvalidArgumentError(f"unknown methods: {', '.join(map(str, unknown))}")
        return [str(m) for m in names]


class ManagementApi:
    """Authorize and dispatch NIP-86 management calls against an AclStore.

    ``banpubkey`` honours
    [ManagementConfig.atomic_pubkey_ban][relayguard.services.configs.ManagementConfig]:
    atomic by default, or the remove-then-ban sequence when disabled.
    ``changerelay*`` calls persist the value and update the shared
    [RelayInfo][relayguard.services.relay_info.RelayInfo] in place.
    """

    def __init__(
        self,
        store: AclStore,
        policy: EventPolicy,
        relay_info: RelayInfo,
        config: ManagementConfig | None = None,
    ) -> None:
        self._store = store
        self._policy = policy
        self._relay_info = relay_info
        self._config = config or ManagementConfig()
        self._logger = Logger("management")
        self._handlers: dict[Nip86Method, Handler] = {
            Nip86Method.SUPPORTED_METHODS: self._supported_methods,
            Nip86Method.BAN_PUBKEY: self._ban_pubkey,
            Nip86Method.ALLOW_PUBKEY: self._allow_pubkey,
            Nip86Method.LIST_BANNED_PUBKEYS: self._list_banned_pubkeys,
            Nip86Method.LIST_ALLOWED_PUBKEYS: self._list_allowed_pubkeys,
            Nip86Method.LIST_EVENTS_NEEDING_MODERATION: self._list_events_needing_moderation,
            Nip86Method.ALLOW_EVENT: self._allow_event,
            Nip86Method.BAN_EVENT: self._ban_event,
            Nip86Method.LIST_BANNED_EVENTS: self._list_banned_events,
            Nip86Method.LIST_ALLOWED_EVENTS: self._list_allowed_events,
            Nip86Method.CHANGE_RELAY_NAME: self._change_relay_name,
            Nip86Method.CHANGE_RELAY_DESCRIPTION: self._change_relay_description,
            Nip86Method.CHANGE_RELAY_ICON: self._change_relay_icon,
            Nip86Method.ALLOW_KIND: self._allow_kind,
            Nip86Method.DISALLOW_KIND: self._disallow_kind,
            Nip86Method.LIST_ALLOWED_KINDS: self._list_allowed_kinds,
            Nip86Method.LIST_DISALLOWED_KINDS: self._list_disallowed_kinds,
            Nip86Method.BLOCK_IP: self._block_ip,
            Nip86Method.UNBLOCK_IP: self._unblock_ip,
            Nip86Method.LIST_BLOCKED_IPS: self._list_blocked_ips,
            Nip86Method.GRANT_ADMIN: self._grant_admin,
            Nip86Method.REVOKE_ADMIN: self._revoke_admin,
            Nip86Method.STATS: self._stats,
        }

    @property
    def supported_methods(self) -> list[str]:
        return [m.value for m in self._handlers]

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def handle(self, caller_pubkey: str, payload: Any) -> dict[str, Any]:
        """Authorize and run one management call.

        Args:
            caller_pubkey: Authenticated pubkey of the caller, or ``""``.
            payload: Decoded JSON-RPC body.

        Returns:
            ``{"result": ..., "error": None}`` on success,
            ``{"result": None, "error": message}`` otherwise.
        """
        if not isinstance(payload, dict) or not isinstance(payload.get("method"), str):
            return _response(error="invalid request: expected an object with a method name")
        name = payload["method"]
        params = payload.get("params") or []
        if not isinstance(params, list):
            return _response(error="invalid request: params must be a list")

        try:
            method = Nip86Method(name)
        except ValueError:
            record_management_call("unknown", "invalid", 0.0)
            return _response(error=f"invalid request: unsupported method {name}")

        started = time.monotonic()
        outcome, response = await self._dispatch(caller_pubkey, method, params)
        record_management_call(method.value, outcome, time.monotonic() - started)
        return response

    async def _dispatch(
        self, caller: str, method: Nip86Method, params: list[Any]
    ) -> tuple[str, dict[str, Any]]:
        log = self._logger.bind(caller=caller or "-", method=method.value)

        reject, message = await self._policy.reject_api_call(caller, method.value)
        if reject:
            return "unauthorized", _response(error=message)

        try:
            result = await self._handlers[method](params)
        except InvalidArgumentError as e:
            log.info("call_invalid", error=str(e))
            return "invalid", _response(error=f"invalid params: {e}")
        except NotFoundError as e:
            log.info("call_not_found", error=str(e))
            return "not_found", _response(error=f"not found: {e}")
        except DatabaseError as e:
            log.error("call_failed", error_type=type(e).__name__, error=str(e))
            return "error", _response(error=STORAGE_FAILURE_MESSAGE)
        except RelayGuardError as e:
            log.error("call_failed", error_type=type(e).__name__, error=str(e))
            return "error", _response(error=f"error: {e}")

        log.debug("call_ok")
        return "ok", _response(result=result)

    # -------------------------------------------------------------------------
    # Pubkeys
    # -------------------------------------------------------------------------

    async def _supported_methods(self, params: list[Any]) -> list[str]:
        _Params("supportedmethods", params, 0)
        return self.supported_methods

    async def _ban_pubkey(self, params: list[Any]) -> bool:
        p = _Params("banpubkey", params, 2)
        pubkey, reason = p.get(0, "pubkey", str), p.reason(1)
        if self._config.atomic_pubkey_ban:
            await self._store.move_pubkey_to_banned(pubkey, reason)
            return True

        try:
            await self._store.remove_allowed_pubkey(pubkey)
        except (NotFoundError, DatabaseError) as e:
            self._logger.warning("unallow_before_ban_failed", pubkey=pubkey, error=str(e))
        await self._store.ban_pubkey(pubkey, reason)
        return True

    async def _allow_pubkey(self, params: list[Any]) -> bool:
        p = _Params("allowpubkey", params, 2)
        await self._store.add_allowed_pubkey(p.get(0, "pubkey", str), p.reason(1))
        return True

    async def _list_banned_pubkeys(self, params: list[Any]) -> list[dict[str, str]]:
        _Params("listbannedpubkeys", params, 0)
        return [e.to_dict() for e in await self._store.list_banned_pubkeys()]

    async def _list_allowed_pubkeys(self, params: list[Any]) -> list[dict[str, str]]:
        _Params("listallowedpubkeys", params, 0)
        return [e.to_dict() for e in await self._store.list_allowed_pubkeys()]

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    async def _list_events_needing_moderation(self, params: list[Any]) -> list[dict[str, str]]:
        _Params("listeventsneedingmoderation", params, 0)
        return [e.to_dict() for e in await self._store.list_events_needing_moderation()]

    async def _allow_event(self, params: list[Any]) -> bool:
        p = _Params("allowevent", params, 2)
        await self._store.allow_event(p.get(0, "event id", str), p.reason(1))
        return True

    async def _ban_event(self, params: list[Any]) -> bool:
        p = _Params("banevent", params, 2)
        await self._store.ban_event(p.get(0, "event id", str), p.reason(1))
        return True

    async def _list_banned_events(self, params: list[Any]) -> list[dict[str, str]]:
        _Params("listbannedevents", params, 0)
        return [e.to_dict() for e in await self._store.list_banned_events()]

    async def _list_allowed_events(self, params: list[Any]) -> list[dict[str, str]]:
        _Params("listallowedevents", params, 0)
        return [e.to_dict() for e in await self._store.list_allowed_events()]

    # -------------------------------------------------------------------------
    # Relay metadata
    # -------------------------------------------------------------------------

    async def _change_relay_info(self, method: str, key: RelayInfoKey, params: list[Any]) -> bool:
        value = _Params(method, params, 1).get(0, key.value, str)
        await self._store.set_relay_info(key.value, value)
        self._relay_info.apply(key, value)
        return True

    async def _change_relay_name(self, params: list[Any]) -> bool:
        return await self._change_relay_info("changerelayname", RelayInfoKey.NAME, params)

    async def _change_relay_description(self, params: list[Any]) -> bool:
        return await self._change_relay_info(
            "changerelaydescription", RelayInfoKey.DESCRIPTION, params
        )

    async def _change_relay_icon(self, params: list[Any]) -> bool:
        return await self._change_relay_info("changerelayicon", RelayInfoKey.ICON, params)

    # -------------------------------------------------------------------------
    # Kinds
    # -------------------------------------------------------------------------

    async def _allow_kind(self, params: list[Any]) -> bool:
        await self._store.allow_kind(_Params("allowkind", params, 1).get(0, "kind", int))
        return True

    async def _disallow_kind(self, params: list[Any]) -> bool:
        await self._store.disallow_kind(_Params("disallowkind", params, 1).get(0, "kind", int))
        return True

    async def _list_allowed_kinds(self, params: list[Any]) -> list[int]:
        _Params("listallowedkinds", params, 0)
        return await self._store.list_allowed_kinds()

    async def _list_disallowed_kinds(self, params: list[Any]) -> list[int]:
        _Params("listdisallowedkinds", params, 0)
        return await self._store.list_disallowed_kinds()

    # -------------------------------------------------------------------------
    # IP addresses
    # -------------------------------------------------------------------------

    async def _block_ip(self, params: list[Any]) -> bool:
        p = _Params("blockip", params, 2)
        await self._store.block_ip(p.get(0, "ip", str), p.reason(1))
        return True

    async def _unblock_ip(self, params: list[Any]) -> bool:
        # NIP-86 sends a reason with unblockip too; it is accepted and dropped.
        p = _Params("unblockip", params, 2)
        p.reason(1)
        await self._store.unblock_ip(p.get(0, "ip", str))
        return True

    async def _list_blocked_ips(self, params: list[Any]) -> list[dict[str, str]]:
        _Params("listblockedips", params, 0)
        return [e.to_dict() for e in await self._store.list_blocked_ips()]

    # -------------------------------------------------------------------------
    # Admins
    # -------------------------------------------------------------------------

    async def _grant_admin(self, params: list[Any]) -> bool:
        p = _Params("grantadmin", params, 2)
        await self._store.grant_admin(p.get(0, "pubkey", str), p.methods(1))
        return True

    async def _revoke_admin(self, params: list[Any]) -> bool:
        p = _Params("revokeadmin", params, 2)
        await self._store.revoke_admin(p.get(0, "pubkey", str), p.methods(1))
        return True

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    async def _stats(self, params: list[Any]) -> dict[str, Any]:
        _Params("stats", params, 0)
        counts = await self._store.count_entries()
        return {
            "name": self._relay_info.name,
            "version": self._relay_info.version,
            "software": self._relay_info.software,
            **counts,
        }
