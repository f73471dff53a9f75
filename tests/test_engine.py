"""
Runtime Facade Tests
====================

INVARIANTS TESTED:
==================
1. SymbolRef rebinds on applied transforms and stays put on blocked ones
2. Published symbols are never changed by a handle's modify()
3. Configuration defaults compose the way RuntimeConfig documents
4. construct accepts huge and deeply nested values without raising
"""

import pytest

from symbolspace import (
    CapabilityConfig,
    PruningConfig,
    RuntimeConfig,
    SymbolRuntime,
)
from symbolspace.contracts.base import Permission
from symbolspace.core.capability import CapabilityToken
from symbolspace.core.transform import Replace


class TestSymbolRef:

    def test_modify_rebinds(self):
        runtime = SymbolRuntime()
        ref = runtime.ref(runtime.construct({"count": 0}))
        original = ref.symbol

        assert ref.modify(lambda v: {"count": v["count"] + 1})
        assert ref.value == {"count": 1}
        assert original.value == {"count": 0}
        assert ref.symbol.parent == original.identity

    def test_blocked_modify_keeps_binding(self):
        runtime = SymbolRuntime()
        token = CapabilityToken.issue(now=0, permissions=Permission.READ)
        ref = runtime.ref(runtime.construct("fixed", capabilities=[token]))
        before = ref.symbol

        assert not ref.modify(lambda v: "changed")
        assert ref.symbol is before

    def test_undo(self):
        runtime = SymbolRuntime()
        ref = runtime.ref(runtime.construct(0))
        for _ in range(3):
            ref.modify(lambda v: v + 1)

        assert ref.undo(2)
        assert ref.value == 1
        assert not ref.undo(0)
        assert ref.value == 1


class TestConfiguration:

    def test_defaults_filled(self):
        config = RuntimeConfig()
        assert config.pruning.max_log_length == 1000
        assert config.capabilities.default_lifetime == 1000
        assert config.storage.backend_type == "memory"
        assert config.observability.enable_lineage

    def test_default_token_expiry_follows_config(self):
        runtime = SymbolRuntime(RuntimeConfig(capabilities=CapabilityConfig(default_lifetime=2)))
        symbol = runtime.construct("short lived")
        (token,) = symbol.capabilities
        assert token.expiry == symbol.coordinate + 2

        runtime.construct("tick")
        assert runtime.transform(symbol, lambda v: "changed") is symbol

    def test_pruning_config_is_live(self):
        config = PruningConfig()
        runtime = SymbolRuntime(RuntimeConfig(pruning=config))
        assert runtime.pruning_config is config

    def test_invalid_capability_config_rejected(self):
        with pytest.raises(ValueError):
            CapabilityConfig(intensity_decay=1.5)

    def test_issue_token_starts_now(self):
        runtime = SymbolRuntime()
        runtime.construct("a")
        token = runtime.issue_token(permissions=Permission.READ, lifetime=5)
        assert token.issued_at == 1
        assert token.expiry == 6


class TestSymbolViews:

    def test_structure_and_source(self):
        runtime = SymbolRuntime()
        symbol = runtime.construct({"count": 0})
        assert symbol.structure["properties"] == ["count"]
        assert symbol.source_code.startswith("construct(")

    def test_equality_follows_identity(self):
        first = SymbolRuntime().construct([1])
        second = SymbolRuntime().construct([1])
        assert first == second
        assert hash(first) == hash(second)
        assert len({first, second}) == 1


class TestConstructNeverFails:

    def test_huge_int(self):
        runtime = SymbolRuntime()
        symbol = runtime.construct(10 ** 5000)
        assert runtime.lookup(symbol.identity) is symbol
        assert symbol.source_code.startswith("construct(")

    def test_deep_nesting(self):
        value = []
        for _ in range(5000):
            value = [value]
        runtime = SymbolRuntime()
        symbol = runtime.construct(value)
        assert runtime.logical_clock() == 1

        child = runtime.transform(symbol, Replace([value, 1]))
        assert child.parent == symbol.identity
        assert runtime.revert(child).identity == symbol.identity
