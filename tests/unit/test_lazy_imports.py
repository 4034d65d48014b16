"""Tests for lazy import system in relayguard.__init__."""

from __future__ import annotations

import importlib
import sys

import pytest


class TestLazyImports:
    """Test PEP 562 lazy loading in relayguard.__init__."""

    def test_lazy_import_does_not_eagerly_load(self) -> None:
        """Importing relayguard does not load its subpackages."""
        saved = {name: mod for name, mod in sys.modules.items() if name.startswith("relayguard")}
        try:
            for name in saved:
                del sys.modules[name]

            importlib.import_module("relayguard")

            assert "relayguard.core" not in sys.modules
            assert "relayguard.models" not in sys.modules
            assert "relayguard.services" not in sys.modules
        finally:
            for name in [n for n in sys.modules if n.startswith("relayguard")]:
                del sys.modules[name]
            sys.modules.update(saved)

    def test_lazy_import_resolves_on_access(self) -> None:
        from relayguard import AclStore
        from relayguard.core.store import AclStore as DirectAclStore

        assert AclStore is DirectAclStore

    def test_lazy_import_caches_after_first_access(self) -> None:
        import relayguard

        _ = relayguard.ManagementApi
        assert "ManagementApi" in vars(relayguard)

    def test_lazy_import_invalid_attribute(self) -> None:
        import relayguard

        with pytest.raises(AttributeError, match="no_such_thing"):
            _ = getattr(relayguard, "no_such_thing")  # noqa: B009

    def test_all_exports_are_in_lazy_imports(self) -> None:
        import relayguard

        assert set(relayguard.__all__) == set(relayguard._LAZY_IMPORTS)

    def test_dir_lists_exports(self) -> None:
        import relayguard

        assert "EventPolicy" in dir(relayguard)
