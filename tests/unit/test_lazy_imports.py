"""Tests for lazy import system in ringlink.__init__."""

from __future__ import annotations

import importlib
import sys

import pytest


class TestLazyImports:
    """Test PEP 562 lazy loading in ringlink.__init__."""

    def test_lazy_import_does_not_eagerly_load(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Verify that importing ringlink does not eagerly load subpackages."""
        # Cached modules are restored when the test ends
        for mod in list(sys.modules):
            if mod == "ringlink" or mod.startswith("ringlink."):
                monkeypatch.delitem(sys.modules, mod)

        importlib.import_module("ringlink")

        assert "ringlink.core" not in sys.modules
        assert "ringlink.models" not in sys.modules
        assert "ringlink.services" not in sys.modules

    def test_lazy_import_resolves_on_access(self) -> None:
        from ringlink import HostedRing
        from ringlink.models.ring import HostedRing as DirectHostedRing

        assert HostedRing is DirectHostedRing

    def test_lazy_import_caches_after_first_access(self) -> None:
        """Verify that resolved attributes are cached in globals."""
        import ringlink

        _ = ringlink.MemoryRingStore

        assert "MemoryRingStore" in vars(ringlink)

    def test_lazy_import_invalid_attribute(self) -> None:
        import ringlink

        with pytest.raises(AttributeError, match="no_such_thing"):
            _ = getattr(ringlink, "no_such_thing")  # noqa: B009

    def test_all_exports_are_in_lazy_imports(self) -> None:
        """Verify that __all__ and _LAZY_IMPORTS are in sync."""
        import ringlink

        assert set(ringlink.__all__) == set(ringlink._LAZY_IMPORTS)
