"""In-memory NIP-11 relay information document.

The relay serves [RelayInfo][relayguard.services.relay_info.RelayInfo] on its
NIP-11 endpoint. Defaults come from
[RelayConfig][relayguard.services.configs.RelayConfig]; values set through
the ``changerelay*`` management methods are persisted in the ``relay_info``
table and re-applied on startup by
[load_overrides()][relayguard.services.relay_info.RelayInfo.load_overrides].
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from relayguard.core.logger import Logger
from relayguard.models import RelayInfoKey


if TYPE_CHECKING:
    from relayguard.core.store import AclStore

    from .configs import RelayConfig


_logger = Logger("relay_info")


@dataclass(slots=True)
class RelayInfo:
    """Mutable NIP-11 document shared by the management API and the relay."""

    name: str
    description: str
    icon: str
    pubkey: str
    version: str
    software: str
    supported_nips: list[int] = field(default_factory=lambda: [11, 86])

    @classmethod
    def from_config(cls, config: RelayConfig) -> RelayInfo:
        return cls(
            name=config.name,
            description=config.description,
            icon=config.icon,
            pubkey=config.owner_pubkey,
            version=config.version,
            software=config.software,
        )

    def apply(self, key: RelayInfoKey | str, value: str) -> None:
        """Set one editable field by its ``relay_info`` key.

        Raises:
            ValueError: If ``key`` is not an editable field.
        """
        setattr(self, RelayInfoKey(key).value, value)

    async def load_overrides(self, store: AclStore) -> None:
        """Apply values previously persisted with ``changerelay*``.

        Unknown keys in the table are ignored; empty values keep the
        configured default.
        """
        stored = await store.get_all_relay_info()
        for key in RelayInfoKey:
            value = stored.get(key.value)
            if value:
                self.apply(key, value)
                _logger.debug("relay_info_override", key=key.value)

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-11 JSON document."""
        doc: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "software": self.software,
            "supported_nips": list(self.supported_nips),
        }
        if self.pubkey:
            doc["pubkey"] = self.pubkey
        if self.icon:
            doc["icon"] = self.icon
        return doc
