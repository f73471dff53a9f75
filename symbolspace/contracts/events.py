"""
Event Contracts

Immutable records that cross layer boundaries: audit entries, metric points
and the persistence record format for the symbol space.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .base import Timestamp


# =============================================================================
# AUDIT CONTRACTS
# =============================================================================

class AuditEventType(Enum):
    """Explicit audit event types."""
    CONSTRUCTION = "construction"
    TRANSFORMATION = "transformation"
    REVERSION = "reversion"
    PRUNING = "pruning"
    STORAGE = "storage"
    ERROR = "error"
    SYSTEM = "system"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable audit log entry."""
    entry_id: str
    event_type: AuditEventType
    timestamp: Timestamp
    layer: str  # Which layer generated this
    action: str
    logical_time: int = 0
    entity_id: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def metadata_dict(self) -> Dict[str, str]:
        return dict(self.metadata)


@dataclass(frozen=True)
class MetricPoint:
    """Immutable metric data point."""
    metric_name: str
    value: float
    timestamp: Timestamp
    labels: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)


# =============================================================================
# PERSISTENCE CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class TokenSummary:
    """Serializable description of one capability token."""
    token_id: str
    permissions: int
    expiry: int
    intensity: float
    attenuation_chain: Tuple[int, ...] = ()
    issued_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'token_id': self.token_id,
            'permissions': self.permissions,
            'expiry': self.expiry,
            'intensity': self.intensity,
            'attenuation_chain': list(self.attenuation_chain),
            'issued_at': self.issued_at,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> TokenSummary:
        return TokenSummary(
            token_id=data['token_id'],
            permissions=int(data['permissions']),
            expiry=int(data['expiry']),
            intensity=float(data['intensity']),
            attenuation_chain=tuple(int(r) for r in data.get('attenuation_chain', ())),
            issued_at=int(data.get('issued_at', 0)),
        )


@dataclass(frozen=True)
class SymbolRecord:
    """
    Persistence record for one symbol.

    Identities are STORED, never recomputed on load. The operation log and
    transformation metadata are not part of the record; reloaded symbols
    start with an empty log.
    """
    identity: str
    value: Any
    capabilities: Tuple[TokenSummary, ...]
    ancestry: Tuple[str, ...]
    coordinate: int
    parent: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'identity': self.identity,
            'value': self.value,
            'capabilities': [t.to_dict() for t in self.capabilities],
            'ancestry': list(self.ancestry),
            'coordinate': self.coordinate,
            'parent': self.parent,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> SymbolRecord:
        return SymbolRecord(
            identity=data['identity'],
            value=data.get('value'),
            capabilities=tuple(TokenSummary.from_dict(t) for t in data.get('capabilities', ())),
            ancestry=tuple(data.get('ancestry', ())),
            coordinate=int(data['coordinate']),
            parent=data.get('parent'),
        )
