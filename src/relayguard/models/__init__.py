"""Pure frozen dataclasses with zero I/O for the relay ACL ledger.

The models layer is the bottom of the dependency stack: it imports only the
standard library. Every model uses ``@dataclass(frozen=True, slots=True)``
and validates in ``__post_init__`` so invalid instances never escape the
constructor.

Attributes:
    PubkeyReason: Entry of the allowed/banned pubkey lists.
    EventReason: Entry of the pending/allowed/banned event lists.
    IpReason: Entry of the blocked IP list, canonicalized on construction.
    AdminGrant: Set of NIP-86 methods granted to a pubkey.
    Nip86Method: Enum of NIP-86 management method names.
    RelayInfoKey: Enum of editable relay metadata keys.
"""

from .admin import AdminGrant, AdminGrantDbParams
from .constants import EVENT_KIND_MAX, KEY_MAX_LENGTH, Nip86Method, RelayInfoKey
from .entries import EventReason, IpReason, PubkeyReason


__all__ = [
    "EVENT_KIND_MAX",
    "KEY_MAX_LENGTH",
    "AdminGrant",
    "AdminGrantDbParams",
    "EventReason",
    "IpReason",
    "Nip86Method",
    "PubkeyReason",
    "RelayInfoKey",
]
