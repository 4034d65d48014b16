"""Shared validation helpers for frozen dataclass models.

Private module. Used by ``__post_init__`` methods in sibling model modules
and by [AclStore][relayguard.core.store.AclStore] to reject malformed keys
before they reach PostgreSQL.
"""

from __future__ import annotations

import ipaddress
from typing import Any

from .constants import EVENT_KIND_MAX, KEY_MAX_LENGTH


def validate_str_no_null(value: Any, name: str) -> None:
    """Raise if *value* is not a ``str``, contains null bytes, or is not UTF-8 encodable.

    Lone surrogates (``"\\ud800"``) survive ``json.loads`` but cannot be sent
    to PostgreSQL.
    """
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if "\x00" in value:
        raise ValueError(f"{name} contains null bytes")
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValueError(f"{name} is not valid UTF-8: {e.reason}") from e


def validate_key(value: Any, name: str) -> None:
    """Raise if *value* is not a non-empty ``VARCHAR(64)``-sized string."""
    validate_str_no_null(value, name)
    if not value:
        raise ValueError(f"{name} cannot be empty")
    if len(value) > KEY_MAX_LENGTH:
        raise ValueError(f"{name} must be at most {KEY_MAX_LENGTH} characters, got {len(value)}")


def validate_kind(value: Any, name: str = "kind") -> None:
    """Raise if *value* is not an ``int`` in ``0..EVENT_KIND_MAX`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if not 0 <= value <= EVENT_KIND_MAX:
        raise ValueError(f"{name} must be between 0 and {EVENT_KIND_MAX}, got {value}")


def normalize_ip(value: Any, name: str = "ip") -> str:
    """Parse an IPv4/IPv6 literal and return its canonical text form.

    Accepts ``str`` or ``ipaddress`` address objects.

    Raises:
        ValueError: If *value* is ``None``, empty, or not an IP address.
    """
    if value is None:
        raise ValueError(f"{name} cannot be nil")
    if isinstance(value, ipaddress.IPv4Address | ipaddress.IPv6Address):
        return str(value)
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str or ip address, got {type(value).__name__}")
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError as e:
        raise ValueError(f"{name} is not a valid IP address: {value!r}") from e
