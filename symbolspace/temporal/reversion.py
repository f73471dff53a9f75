"""
Reversion Engine
================

Time travel over a symbol's ancestry.

INVARIANTS:
- Pure lookup traversal: NEVER allocates, NEVER mutates the space
- steps == 1 with a resolvable parent is a single O(1) lookup
- steps > 1 walks ancestry newest -> oldest, one hop per step
- A missing hop (pruned or evicted) stops the walk at the last
  resolved ancestor; this is a degraded result, not a fault
- steps == 0 or a root symbol returns the input unchanged
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

from ..contracts.base import Error, ErrorCode, Identity, Timestamp
from ..contracts.events import AuditEventType, AuditLogEntry
from ..core.symbol import Symbol
from ..storage import SymbolSpace


@dataclass(frozen=True)
class RevertOutcome:
    """
    Result of a reversion walk.

    degraded=True means fewer hops than requested were resolvable;
    missing names the identity that could not be found.
    """
    symbol: Symbol
    requested_steps: int
    resolved_steps: int
    missing: Optional[Identity] = None
    error: Optional[Error] = None

    @property
    def degraded(self) -> bool:
        return self.error is not None


class ReversionEngine:
    """Resolves earlier versions from the symbol space."""

    def __init__(self, space: SymbolSpace):
        self._space = space
        self._audit_log: List[AuditLogEntry] = []
        self._audit_counter = 0

    def revert(self, symbol: Symbol, steps: int = 1) -> Symbol:
        return self.revert_with_outcome(symbol, steps).symbol

    def revert_with_outcome(self, symbol: Symbol, steps: int = 1) -> RevertOutcome:
        if steps <= 0 or symbol.parent is None:
            return RevertOutcome(symbol=symbol, requested_steps=steps, resolved_steps=0)

        # Fast path: direct parent
        if steps == 1:
            parent = self._space.lookup(symbol.parent)
            if parent is not None:
                self._log_audit("reverted", parent.identity.value,
                                metadata=(("from", symbol.identity.value), ("steps", "1")))
                return RevertOutcome(symbol=parent, requested_steps=1, resolved_steps=1)

        current = symbol
        resolved = 0
        missing: Optional[Identity] = None
        for ancestor_id in reversed(symbol.ancestry):
            if resolved >= steps:
                break
            ancestor = self._space.lookup(ancestor_id)
            if ancestor is None:
                missing = ancestor_id
                break
            current = ancestor
            resolved += 1

        error = None
        if missing is not None:
            error = Error.create(
                ErrorCode.BROKEN_PROVENANCE,
                f"Cannot revert step {resolved + 1}: ancestor not found in space",
                identity=symbol.identity.value,
                missing=missing.value
            )
            self._log_audit("revert_degraded", current.identity.value,
                            event_type=AuditEventType.ERROR,
                            metadata=(("requested", str(steps)), ("resolved", str(resolved)),
                                      ("missing", missing.value)))
        else:
            self._log_audit("reverted", current.identity.value,
                            metadata=(("from", symbol.identity.value), ("steps", str(resolved))))

        return RevertOutcome(
            symbol=current,
            requested_steps=steps,
            resolved_steps=resolved,
            missing=missing,
            error=error,
        )

    def history(self, symbol: Symbol) -> List[Symbol]:
        """Resolvable ancestors, newest first, stopping at the first gap."""
        resolved: List[Symbol] = []
        for ancestor_id in reversed(symbol.ancestry):
            ancestor = self._space.lookup(ancestor_id)
            if ancestor is None:
                break
            resolved.append(ancestor)
        return resolved

    def _log_audit(
        self,
        action: str,
        entity_id: Optional[str] = None,
        event_type: AuditEventType = AuditEventType.REVERSION,
        metadata: tuple = ()
    ):
        """Add entry to internal audit log."""
        self._audit_counter += 1
        self._audit_log.append(AuditLogEntry(
            entry_id=f"audit_revert_{self._audit_counter:06d}",
            event_type=event_type,
            timestamp=Timestamp.now(),
            layer="temporal",
            action=action,
            logical_time=self._space.now(),
            entity_id=entity_id,
            metadata=metadata
        ))

    def get_audit_log(self) -> List[AuditLogEntry]:
        """Return copy of audit log entries."""
        return list(self._audit_log)
