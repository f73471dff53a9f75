"""
Capability Tokens
=================

Bitset permission grants with logical expiry and decaying intensity.

INVARIANTS:
- Tokens are immutable; attenuation always allocates a new token
- attenuate() never widens: permissions(child) is a subset of
  permissions(parent), expiry(child) <= expiry(parent) and
  intensity(child) = intensity(parent) * decay
- An expired token grants NOTHING regardless of its bitset
- Expiry is compared against the logical clock, never wall-clock time
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional, Tuple, Union
import hashlib

from ..contracts.base import Permission
from ..contracts.events import TokenSummary


@dataclass
class CapabilityConfig:
    """Configuration for token issuance and attenuation."""
    default_permissions: int = int(Permission.ALL)
    default_lifetime: int = 1000  # logical ticks
    attenuation_window: int = 100  # max remaining lifetime of an attenuated token
    intensity_decay: float = 0.8

    def __post_init__(self):
        if self.default_lifetime < 0 or self.attenuation_window < 0:
            raise ValueError("token lifetimes must be non-negative")
        if not 0.0 <= self.intensity_decay < 1.0:
            raise ValueError("intensity_decay must be in [0, 1)")


@dataclass(frozen=True)
class CapabilityToken:
    """
    Immutable capability token.

    permissions: bitset (read=1, write=2, execute=4, network=8)
    expiry: logical timestamp at which the token stops granting
    intensity: 0.0 to 1.0, how aggressively a holder may rewrite structure
    attenuation_chain: removed-permission sets, oldest first
    """
    permissions: int = int(Permission.ALL)
    expiry: int = 1000
    intensity: float = 1.0
    attenuation_chain: Tuple[int, ...] = field(default_factory=tuple)
    issued_at: int = 0
    token_id: str = ""

    def __post_init__(self):
        if not 0.0 <= self.intensity <= 1.0:
            raise ValueError("intensity must be between 0.0 and 1.0")
        object.__setattr__(self, 'permissions', int(self.permissions) & int(Permission.ALL))
        if not self.token_id:
            object.__setattr__(self, 'token_id', self._generate_id())

    def _generate_id(self) -> str:
        seed = (
            f"{self.permissions}|{self.expiry}|{self.intensity!r}|"
            f"{','.join(str(r) for r in self.attenuation_chain)}|{self.issued_at}"
        )
        return f"tok_{hashlib.sha256(seed.encode('utf-8')).hexdigest()[:16]}"

    # -------------------------------------------------------------------------
    # Issuance
    # -------------------------------------------------------------------------

    @staticmethod
    def issue(
        now: int,
        permissions: Union[int, Permission, None] = None,
        lifetime: Optional[int] = None,
        intensity: float = 1.0,
        config: Optional[CapabilityConfig] = None
    ) -> CapabilityToken:
        """Issue a fresh token valid from logical time `now`."""
        config = config or CapabilityConfig()
        return CapabilityToken(
            permissions=int(config.default_permissions if permissions is None else permissions),
            expiry=now + (config.default_lifetime if lifetime is None else lifetime),
            intensity=intensity,
            issued_at=now,
        )

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    def is_expired(self, now: int) -> bool:
        return now >= self.expiry

    def can(self, operation: Union[str, Permission, int], now: int) -> bool:
        """False if expired or if the operation's bit is unset."""
        if isinstance(operation, str):
            bit = int(Permission.parse(operation))
        else:
            bit = int(operation)
        if bit == 0:
            return False
        return not self.is_expired(now) and (self.permissions & bit) == bit

    @property
    def permission_set(self) -> FrozenSet[Permission]:
        return frozenset(
            p for p in (Permission.READ, Permission.WRITE, Permission.EXECUTE, Permission.NETWORK)
            if self.permissions & int(p)
        )

    # -------------------------------------------------------------------------
    # Attenuation
    # -------------------------------------------------------------------------

    def attenuate(
        self,
        restrictions: Union[int, Permission],
        now: int,
        config: Optional[CapabilityConfig] = None
    ) -> CapabilityToken:
        """
        Derive a narrower token.

        Removes the restricted bits, caps expiry at now + attenuation
        window (never past the parent's expiry) and decays intensity.
        """
        config = config or CapabilityConfig()
        restrictions = int(restrictions) & int(Permission.ALL)
        return CapabilityToken(
            permissions=self.permissions & ~restrictions,
            expiry=min(self.expiry, now + config.attenuation_window),
            intensity=self.intensity * config.intensity_decay,
            attenuation_chain=self.attenuation_chain + (restrictions,),
            issued_at=now,
        )

    @property
    def intensity_band(self) -> str:
        if self.intensity > 0.8:
            return "blazing"
        if self.intensity > 0.6:
            return "bright"
        if self.intensity > 0.4:
            return "steady"
        if self.intensity > 0.2:
            return "faint"
        return "dormant"

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def summary(self) -> TokenSummary:
        return TokenSummary(
            token_id=self.token_id,
            permissions=self.permissions,
            expiry=self.expiry,
            intensity=self.intensity,
            attenuation_chain=self.attenuation_chain,
            issued_at=self.issued_at,
        )

    @staticmethod
    def from_summary(summary: TokenSummary) -> CapabilityToken:
        return CapabilityToken(
            permissions=summary.permissions,
            expiry=summary.expiry,
            intensity=summary.intensity,
            attenuation_chain=summary.attenuation_chain,
            issued_at=summary.issued_at,
            token_id=summary.token_id,
        )


CapabilitySet = FrozenSet[CapabilityToken]


def capability_set(tokens: Iterable[CapabilityToken]) -> CapabilitySet:
    return frozenset(tokens)


def grants(capabilities: Iterable[CapabilityToken], operation: Union[str, Permission], now: int) -> bool:
    """True iff at least one token is unexpired and carries the operation's bit."""
    return any(token.can(operation, now) for token in capabilities)


def strongest_intensity(capabilities: Iterable[CapabilityToken], operation: Union[str, Permission], now: int) -> float:
    """Highest intensity among the tokens granting an operation (0.0 if none)."""
    return max((t.intensity for t in capabilities if t.can(operation, now)), default=0.0)
