"""
Symbol Construction
===================

Root symbol construction against an explicit symbol space.

GUARANTEES:
- construct() never fails; malformed values are accepted opaquely
- The coordinate is the clock value before the single advance
- Omitted capabilities mean one full-permission token expiring
  default_lifetime ticks after the symbol's coordinate
"""

from __future__ import annotations
from typing import Iterable, List, Optional

from ..contracts.base import Timestamp
from ..contracts.events import AuditEventType, AuditLogEntry
from ..storage import SymbolSpace
from .capability import CapabilityConfig, CapabilityToken, capability_set
from .identity import SourceIntrospector, identity, shape_of, snapshot_value
from .symbol import Symbol, TransformationMetadata


class SymbolFactory:
    """Builds root symbols and registers them in the space."""

    def __init__(
        self,
        space: SymbolSpace,
        capability_config: Optional[CapabilityConfig] = None,
        introspector: Optional[SourceIntrospector] = None
    ):
        self._space = space
        self._capability_config = capability_config or CapabilityConfig()
        self._introspector = introspector
        self._audit_log: List[AuditLogEntry] = []
        self._audit_counter = 0

    @property
    def capability_config(self) -> CapabilityConfig:
        return self._capability_config

    def default_token(self, now: int) -> CapabilityToken:
        return CapabilityToken.issue(now, config=self._capability_config)

    def construct(
        self,
        value: object,
        capabilities: Optional[Iterable[CapabilityToken]] = None
    ) -> Symbol:
        owned = snapshot_value(value)
        symbol_identity = identity(owned, self._introspector)
        shape = shape_of(owned)
        tokens = capability_set(capabilities) if capabilities is not None else None

        def build(coordinate: int) -> Symbol:
            return Symbol(
                value=owned,
                identity=symbol_identity,
                shape=shape,
                capabilities=tokens if tokens is not None else capability_set([self.default_token(coordinate)]),
                coordinate=coordinate,
                metadata=TransformationMetadata.root(),
            )

        symbol = self._space.allocate(build)
        self._log_audit(
            action="symbol_constructed",
            logical_time=symbol.coordinate,
            entity_id=symbol.identity.value,
            metadata=(
                ("shape", shape.value),
                ("tokens", str(len(symbol.capabilities))),
            )
        )
        return symbol

    def _log_audit(
        self,
        action: str,
        logical_time: int,
        entity_id: Optional[str] = None,
        metadata: tuple = ()
    ):
        """Add entry to internal audit log."""
        self._audit_counter += 1
        self._audit_log.append(AuditLogEntry(
            entry_id=f"audit_construct_{self._audit_counter:06d}",
            event_type=AuditEventType.CONSTRUCTION,
            timestamp=Timestamp.now(),
            layer="core",
            action=action,
            logical_time=logical_time,
            entity_id=entity_id,
            metadata=metadata
        ))

    def get_audit_log(self) -> List[AuditLogEntry]:
        """Return copy of audit log entries."""
        return list(self._audit_log)
