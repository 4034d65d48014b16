"""Administrative grant model.

An [AdminGrant][relayguard.models.admin.AdminGrant] is the set of NIP-86
methods a pubkey may call. In memory the methods are a ``frozenset``
(no duplicates, order irrelevant); at the storage boundary they are
persisted as a sorted ``TEXT[]`` and rebuilt as a set on read.

A grant with an empty method set is never persisted: absence of the row is
what "not an admin" means.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import NamedTuple

from ._validation import validate_key, validate_str_no_null


class AdminGrantDbParams(NamedTuple):
    """Positional parameters for the ``admins`` table upsert."""

    pubkey: str
    methods: list[str]


@dataclass(frozen=True, slots=True)
class AdminGrant:
    """The management methods granted to one pubkey.

    Attributes:
        pubkey: Grantee public key.
        methods: Method names this pubkey may call (accepts any iterable of
            strings; stored as a ``frozenset``).

    Examples:
        ```python
        grant = AdminGrant("ab" * 32, ["banpubkey", "allowpubkey", "banpubkey"])
        grant.methods            # frozenset({"banpubkey", "allowpubkey"})
        grant.to_db_params()     # AdminGrantDbParams(pubkey=..., methods=["allowpubkey", "banpubkey"])
        grant.without_methods(["banpubkey"]).methods   # frozenset({"allowpubkey"})
        ```
    """

    pubkey: str
    methods: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        validate_key(self.pubkey, "pubkey")
        if isinstance(self.methods, str):
            raise TypeError("methods must be an iterable of str, not a single str")
        methods = frozenset(self.methods)
        for method in methods:
            validate_str_no_null(method, "method")
            if not method:
                raise ValueError("method names cannot be empty")
        object.__setattr__(self, "methods", methods)

    @property
    def is_empty(self) -> bool:
        return not self.methods

    def has_method(self, method: str) -> bool:
        return method in self.methods

    def with_methods(self, methods: Iterable[str]) -> AdminGrant:
        """Return a grant with ``methods`` added."""
        return AdminGrant(self.pubkey, self.methods | frozenset(methods))

    def without_methods(self, methods: Iterable[str]) -> AdminGrant:
        """Return a grant with exactly the named ``methods`` removed."""
        return AdminGrant(self.pubkey, self.methods - frozenset(methods))

    def to_db_params(self) -> AdminGrantDbParams:
        """Return the row to persist, methods sorted for a stable ``TEXT[]``."""
        return AdminGrantDbParams(pubkey=self.pubkey, methods=sorted(self.methods))

    @classmethod
    def from_db_params(cls, params: AdminGrantDbParams) -> AdminGrant:
        return cls(pubkey=params.pubkey, methods=frozenset(params.methods or ()))
