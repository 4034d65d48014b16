"""Pydantic configuration models for the relay policy services.

The process-level [RelayGuardConfig][relayguard.services.configs.RelayGuardConfig]
aggregates one section per component:

```yaml
pool:         # relayguard.core.pool.PoolConfig
  database:
    host: localhost
store:        # relayguard.core.store.AclStoreConfig
  timeouts:
    query: 10.0
relay:        # RelayConfig
  name: my relay
management:   # ManagementConfig
  atomic_pubkey_ban: true
```

Relay identity fields fall back to environment variables (``RELAY_PUBKEY``,
``RELAY_NAME``, ``RELAY_DESCRIPTION``, ``RELAY_ICON``) when the YAML leaves
them out, so a container can be configured without any file at all.
"""

from __future__ import annotations

import os
from pathlib import Path  # noqa: TC003
from typing import Any

from nostr_sdk import NostrSdkError, PublicKey
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from relayguard.core.exceptions import ConfigurationError
from relayguard.core.pool import PoolConfig
from relayguard.core.store import AclStoreConfig
from relayguard.core.yaml import load_yaml


_HEX_DIGITS = frozenset("0123456789abcdef")

DEFAULT_RELAY_NAME = "relayguard nostr relay"
DEFAULT_RELAY_DESCRIPTION = "a private nostr relay"
DEFAULT_SOFTWARE = "https://github.com/relayguard/relayguard"
DEFAULT_VERSION = "0.0.1"

# Field name -> environment variable consulted when the field is absent.
_RELAY_ENV_DEFAULTS: dict[str, str] = {
    "owner_pubkey": "RELAY_PUBKEY",
    "name": "RELAY_NAME",
    "description": "RELAY_DESCRIPTION",
    "icon": "RELAY_ICON",
}


class RelayConfig(BaseModel):
    """Relay identity: the owner allowed to write and administer, and NIP-11 fields.

    An empty ``owner_pubkey`` means the relay has no owner: only allow-listed
    pubkeys can write and only admins can call management methods.
    """

    owner_pubkey: str = Field(default="", description="Pubkey of the relay owner (hex or npub)")
    name: str = Field(default=DEFAULT_RELAY_NAME, description="NIP-11 name")
    description: str = Field(default=DEFAULT_RELAY_DESCRIPTION, description="NIP-11 description")
    icon: str = Field(default="", description="NIP-11 icon URL")
    version: str = Field(default=DEFAULT_VERSION, min_length=1, description="NIP-11 version")
    software: str = Field(default=DEFAULT_SOFTWARE, min_length=1, description="NIP-11 software")

    @model_validator(mode="before")
    @classmethod
    def apply_env_defaults(cls, data: Any) -> Any:
        """Fill missing identity fields from the environment."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for field_name, env_var in _RELAY_ENV_DEFAULTS.items():
            if data.get(field_name) is None:
                value = os.getenv(env_var)
                if value:
                    data[field_name] = value
                else:
                    data.pop(field_name, None)
        return data

    @field_validator("owner_pubkey")
    @classmethod
    def validate_owner_pubkey(cls, v: str) -> str:
        """Require 64 hex characters (case-insensitive), an npub, or empty.

        Bech32 ``npub1...`` keys are decoded and stored as hex.
        """
        v = v.strip().lower()
        if v.startswith("npub1"):
            try:
                return PublicKey.parse(v).to_hex()
            except NostrSdkError as e:
                raise ValueError(f"owner_pubkey is not a valid npub: {e}") from e
        if v and (len(v) != 64 or not set(v) <= _HEX_DIGITS):
            raise ValueError("owner_pubkey must be 64 hex characters")
        return v

    @property
    def has_owner(self) -> bool:
        return bool(self.owner_pubkey)


class ManagementConfig(BaseModel):
    """NIP-86 management surface behaviour.

    ``atomic_pubkey_ban`` selects how ``banpubkey`` is carried out. When
    true, the ban and the removal from the allow list commit together. When
    false, the pubkey is first removed from the allow list (a failure there
    is logged and ignored) and then banned in a separate statement.
    """

    atomic_pubkey_ban: bool = Field(default=True, description="Ban and un-allow in one transaction")


class RelayGuardConfig(BaseModel):
    """Top-level configuration for the relayguard process."""

    pool: PoolConfig = Field(default_factory=PoolConfig)
    store: AclStoreConfig = Field(default_factory=AclStoreConfig)
    relay: RelayConfig = Field(default_factory=lambda: RelayConfig.model_validate({}))
    management: ManagementConfig = Field(default_factory=ManagementConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RelayGuardConfig:
        """Validate a configuration mapping.

        Raises:
            ConfigurationError: If validation fails, with pydantic's report
                as the message.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> RelayGuardConfig:
        """Load and validate a YAML configuration file."""
        return cls.from_dict(load_yaml(config_path))
