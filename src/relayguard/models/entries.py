"""List entries returned by the ACL store's ``list_*`` queries.

Each entry is one row of a reason-carrying table, shaped the way NIP-86
responses expect it:

* [PubkeyReason][relayguard.models.entries.PubkeyReason] --
  ``allowed_pubkeys`` / ``banned_pubkeys``
* [EventReason][relayguard.models.entries.EventReason] --
  ``events_needing_moderation`` / ``allowed_events`` / ``banned_events``
* [IpReason][relayguard.models.entries.IpReason] -- ``blocked_ips``

``reason`` columns are nullable in PostgreSQL; a ``NULL`` reason is
normalized to the empty string so callers never have to special-case it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ._validation import normalize_ip, validate_key, validate_str_no_null


def _normalize_reason(entry: Any) -> None:
    if entry.reason is None:
        object.__setattr__(entry, "reason", "")
    validate_str_no_null(entry.reason, "reason")


@dataclass(frozen=True, slots=True)
class PubkeyReason:
    """A pubkey on the allow or ban list, with the reason given for it.

    Examples:
        ```python
        PubkeyReason("ab" * 32, "spam").to_dict()
        # {"pubkey": "abab...", "reason": "spam"}
        ```
    """

    pubkey: str
    reason: str = ""

    def __post_init__(self) -> None:
        validate_key(self.pubkey, "pubkey")
        _normalize_reason(self)

    def to_dict(self) -> dict[str, str]:
        return {"pubkey": self.pubkey, "reason": self.reason}


@dataclass(frozen=True, slots=True)
class EventReason:
    """An event id in one of the three moderation tables."""

    id: str
    reason: str = ""

    def __post_init__(self) -> None:
        validate_key(self.id, "id")
        _normalize_reason(self)

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "reason": self.reason}


@dataclass(frozen=True, slots=True)
class IpReason:
    """A blocked IP address in canonical text form.

    The address is normalized on construction, so ``"2001:DB8::0001"``
    becomes ``"2001:db8::1"``.
    """

    ip: str
    reason: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "ip", normalize_ip(self.ip))
        _normalize_reason(self)

    def to_dict(self) -> dict[str, str]:
        return {"ip": self.ip, "reason": self.reason}
