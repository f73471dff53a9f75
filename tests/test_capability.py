"""
Capability Token Tests
======================

INVARIANTS TESTED:
==================
1. Expired tokens grant nothing, regardless of bits
2. Attenuation never widens permissions, lifetime or intensity
3. Tokens are immutable; attenuation allocates a new token
4. Token ids are deterministic over content and issue coordinate
"""

from dataclasses import FrozenInstanceError

import pytest
from hypothesis import given, strategies as st

from symbolspace.contracts.base import Permission
from symbolspace.core.capability import (
    CapabilityConfig,
    CapabilityToken,
    grants,
    strongest_intensity,
)


class TestChecks:

    def test_full_token_grants_everything(self):
        token = CapabilityToken.issue(now=0)
        for op in ("read", "write", "execute", "network"):
            assert token.can(op, 0)

    def test_unknown_operation_is_denied(self):
        token = CapabilityToken.issue(now=0)
        assert not token.can("teleport", 0)

    def test_expiry_is_logical(self):
        token = CapabilityToken(permissions=Permission.ALL, expiry=5)
        assert token.can("write", 4)
        assert token.is_expired(5)
        assert not token.can("write", 5)
        assert not token.can("read", 100)

    def test_read_only_token(self):
        token = CapabilityToken(permissions=Permission.READ, expiry=10)
        assert token.can("read", 0)
        assert not token.can("write", 0)

    def test_default_issue_uses_config(self):
        config = CapabilityConfig(default_lifetime=50)
        token = CapabilityToken.issue(now=10, config=config)
        assert token.expiry == 60
        assert token.issued_at == 10
        assert token.permissions == int(Permission.ALL)

    def test_permission_bits_are_masked(self):
        token = CapabilityToken(permissions=0xFF, expiry=1)
        assert token.permissions == int(Permission.ALL)

    def test_intensity_must_be_in_unit_interval(self):
        with pytest.raises(ValueError):
            CapabilityToken(intensity=1.5)

    def test_tokens_are_frozen(self):
        token = CapabilityToken.issue(now=0)
        with pytest.raises(FrozenInstanceError):
            token.permissions = 0


class TestAttenuation:

    def test_attenuation_removes_bits(self):
        token = CapabilityToken.issue(now=0)
        narrowed = token.attenuate(Permission.WRITE, now=0)
        assert narrowed.can("read", 0)
        assert not narrowed.can("write", 0)
        assert token.can("write", 0)

    def test_attenuation_caps_expiry(self):
        token = CapabilityToken(permissions=Permission.ALL, expiry=1000)
        narrowed = token.attenuate(Permission.NONE, now=10)
        assert narrowed.expiry == 110

    def test_attenuation_never_extends_expiry(self):
        token = CapabilityToken(permissions=Permission.ALL, expiry=20)
        narrowed = token.attenuate(Permission.NONE, now=10)
        assert narrowed.expiry == 20

    def test_attenuation_decays_intensity(self):
        token = CapabilityToken.issue(now=0)
        narrowed = token.attenuate(Permission.NETWORK, now=0)
        assert narrowed.intensity == pytest.approx(0.8)
        assert narrowed.attenuation_chain == (int(Permission.NETWORK),)

    def test_attenuated_token_has_new_id(self):
        token = CapabilityToken.issue(now=0)
        assert token.attenuate(Permission.WRITE, now=0).token_id != token.token_id

    @given(
        permissions=st.integers(min_value=0, max_value=15),
        restrictions=st.integers(min_value=0, max_value=15),
        expiry=st.integers(min_value=0, max_value=5000),
        now=st.integers(min_value=0, max_value=5000),
        intensity=st.floats(min_value=0.0, max_value=1.0),
    )
    def test_attenuation_is_monotone(self, permissions, restrictions, expiry, now, intensity):
        parent = CapabilityToken(permissions=permissions, expiry=expiry, intensity=intensity)
        child = parent.attenuate(restrictions, now)

        assert child.permissions & ~parent.permissions == 0
        assert child.permissions & restrictions == 0
        assert child.expiry <= parent.expiry
        assert child.intensity <= parent.intensity
        for op in ("read", "write", "execute", "network"):
            if child.can(op, now):
                assert parent.can(op, now)


class TestTokenSets:

    def test_grants_requires_one_valid_token(self):
        expired = CapabilityToken(permissions=Permission.ALL, expiry=1)
        read_only = CapabilityToken(permissions=Permission.READ, expiry=100)
        assert not grants([expired, read_only], "write", 5)
        assert grants([expired, read_only], "read", 5)

    def test_strongest_intensity(self):
        weak = CapabilityToken(permissions=Permission.WRITE, expiry=100, intensity=0.3)
        strong = CapabilityToken(permissions=Permission.WRITE, expiry=100, intensity=0.9)
        assert strongest_intensity([weak, strong], Permission.WRITE, 0) == 0.9
        assert strongest_intensity([], Permission.WRITE, 0) == 0.0

    @pytest.mark.parametrize("intensity,band", [
        (1.0, "blazing"),
        (0.7, "bright"),
        (0.5, "steady"),
        (0.3, "faint"),
        (0.1, "dormant"),
    ])
    def test_intensity_band(self, intensity, band):
        assert CapabilityToken(intensity=intensity).intensity_band == band

    def test_summary_round_trip_keeps_id(self):
        token = CapabilityToken.issue(now=3).attenuate(Permission.WRITE, now=4)
        restored = CapabilityToken.from_summary(token.summary())
        assert restored == token
