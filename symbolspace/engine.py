"""
Engine Orchestration Module

This module provides the unified runtime interface over all layers
while maintaining strict boundary separation.

DESIGN PRINCIPLES:
==================
1. One SymbolSpace per runtime, passed explicitly into every engine
2. Several runtimes coexist in one process (no module-global state)
3. Every operation is synchronous and bounded; none raises for the
   degraded outcomes (blocked, broken provenance, malformed request)
4. All operations are traceable through observability
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from .contracts.base import Identity, Result, TimeRange
from .contracts.events import AuditLogEntry
from .core.capability import CapabilityConfig, CapabilityToken
from .core.factory import SymbolFactory
from .core.identity import SourceIntrospector
from .core.symbol import Symbol
from .core.transform import TransformOutcome, TransformationEngine
from .observability import ObservabilityConfig, ObservabilityEngine
from .storage import FileSymbolStore, SpaceState, StorageConfig, SymbolSpace, to_record
from .temporal.pruning import PruningConfig, RelevanceHeuristics, RelevancePruner
from .temporal.reversion import ReversionEngine, RevertOutcome


@dataclass
class RuntimeConfig:
    """Unified configuration for the entire runtime."""
    pruning: PruningConfig = None
    capabilities: CapabilityConfig = None
    storage: StorageConfig = None
    observability: ObservabilityConfig = None

    def __post_init__(self):
        self.pruning = self.pruning or PruningConfig()
        self.capabilities = self.capabilities or CapabilityConfig()
        self.storage = self.storage or StorageConfig()
        self.observability = self.observability or ObservabilityConfig()


class SymbolRuntime:
    """
    Unified runtime for versioned symbols.

    LAYER FLOW:
    ===========
    writes:    caller -> TransformationEngine -> new Symbol -> SymbolSpace
    reversion: caller -> ReversionEngine -> SymbolSpace -> existing Symbol
    """

    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        space: Optional[SymbolSpace] = None,
        heuristics: Optional[RelevanceHeuristics] = None,
        introspector: Optional[SourceIntrospector] = None
    ):
        self._config = config or RuntimeConfig()
        self._space = space or SymbolSpace()
        self._pruner = RelevancePruner(self._config.pruning, heuristics)
        self._factory = SymbolFactory(self._space, self._config.capabilities, introspector)
        self._transformer = TransformationEngine(self._space, self._pruner, introspector)
        self._reverter = ReversionEngine(self._space)
        self._observability = ObservabilityEngine(self._config.observability)

        self._store: Optional[FileSymbolStore] = None
        if self._config.storage.backend_type == "file":
            self._store = FileSymbolStore(self._config.storage.storage_dir)

    # =========================================================================
    # CORE INTERFACE
    # =========================================================================

    def construct(
        self,
        value: Any,
        capabilities: Optional[Iterable[CapabilityToken]] = None
    ) -> Symbol:
        """Create a root symbol and register it in the space."""
        symbol = self._factory.construct(value, capabilities)
        self._after_allocation(symbol, origin="construct")
        return symbol

    def transform(self, symbol: Symbol, request: Any) -> Symbol:
        """Derive a new symbol. Blocked transforms return `symbol` itself."""
        return self.transform_with_outcome(symbol, request).symbol

    def transform_with_outcome(self, symbol: Symbol, request: Any) -> TransformOutcome:
        outcome = self._transformer.transform_with_outcome(symbol, request)
        self._observability.collect_metric(
            "transforms_total", 1.0,
            {
                "outcome": "applied" if outcome.applied else outcome.error.code.name.lower(),
                "mode": outcome.mode.value if outcome.mode else "none",
            }
        )
        if outcome.applied:
            self._after_allocation(outcome.symbol, origin="transform")
        return outcome

    def revert_structurally(self, symbol: Symbol) -> TransformOutcome:
        outcome = self._transformer.revert_structurally(symbol)
        if outcome.applied:
            self._after_allocation(outcome.symbol, origin="structural_revert")
        return outcome

    def revert(self, symbol: Symbol, steps: int = 1) -> Symbol:
        """Resolve an earlier version; never allocates."""
        return self.revert_with_outcome(symbol, steps).symbol

    def revert_with_outcome(self, symbol: Symbol, steps: int = 1) -> RevertOutcome:
        outcome = self._reverter.revert_with_outcome(symbol, steps)
        self._observability.collect_metric(
            "reverts_total", 1.0, {"outcome": "degraded" if outcome.degraded else "resolved"}
        )
        return outcome

    def history(self, symbol: Symbol) -> List[Symbol]:
        return self._reverter.history(symbol)

    def lookup(self, identity: Identity) -> Optional[Symbol]:
        return self._space.lookup(identity)

    def logical_clock(self) -> int:
        return self._space.now()

    def ref(self, symbol: Symbol) -> SymbolRef:
        """Rebindable handle for 'modify in place' style code."""
        return SymbolRef(self, symbol)

    def issue_token(self, permissions: Optional[int] = None, lifetime: Optional[int] = None) -> CapabilityToken:
        """Issue a token valid from the current logical time."""
        return CapabilityToken.issue(
            self._space.now(),
            permissions=permissions,
            lifetime=lifetime,
            config=self._config.capabilities
        )

    def attenuate(self, token: CapabilityToken, restrictions: int) -> CapabilityToken:
        return token.attenuate(restrictions, self._space.now(), self._config.capabilities)

    def reset(self) -> None:
        """Empty the space and rewind the clock (lineage is cleared too)."""
        self._space.reset()
        lineage = self._observability.get_lineage()
        if lineage is not None:
            lineage.clear()

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    @property
    def pruning_config(self) -> PruningConfig:
        """Live pruning policy; edits apply to the next transformation."""
        return self._config.pruning

    @property
    def space(self) -> SymbolSpace:
        return self._space

    def snapshot(self) -> SpaceState:
        return self._space.snapshot()

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def save(self, store: Optional[FileSymbolStore] = None) -> Result:
        store = store or self._store
        if store is None:
            return Result.success(0)
        return store.save(self._space)

    def load(self, store: Optional[FileSymbolStore] = None) -> Result:
        store = store or self._store
        if store is None:
            return Result.success(0)
        result = store.load_into(self._space)
        if result.is_success:
            for symbol in self._space.symbols():
                self._observability.record_lineage(
                    symbol.identity.value,
                    [symbol.parent.value] if symbol.parent else None,
                    symbol.coordinate
                )
        return result

    # =========================================================================
    # OBSERVABILITY INTERFACE
    # =========================================================================

    def get_audit_log(
        self,
        time_range: Optional[TimeRange] = None,
        layers: Optional[List[str]] = None
    ) -> List[AuditLogEntry]:
        """Get unified audit log."""
        self._sync_audit_logs()
        return self._observability.get_unified_log(time_range, layers)

    def get_audit_report(self, time_range: Optional[TimeRange] = None) -> Dict:
        self._sync_audit_logs()
        return self._observability.generate_audit_report(time_range)

    def get_metrics(self):
        return self._observability.get_metrics()

    def get_lineage(self):
        return self._observability.get_lineage()

    def _sync_audit_logs(self):
        """Sync audit logs from all layers to observability."""
        self._observability.collect_all(self._factory.get_audit_log())
        self._observability.collect_all(self._transformer.get_audit_log())
        self._observability.collect_all(self._reverter.get_audit_log())
        self._observability.collect_all(self._space.get_audit_log())
        if self._store is not None:
            self._observability.collect_all(self._store.get_audit_log())

    def _after_allocation(self, symbol: Symbol, origin: str) -> None:
        self._observability.collect_metric("symbols_constructed_total", 1.0, {"origin": origin})
        self._observability.collect_metric("symbol_space_size", float(self._space.size))
        record = symbol.metadata.prune_record
        if record is not None:
            self._observability.collect_metric("log_entries_pruned_total", float(record.dropped_count))
        self._observability.record_lineage(
            symbol.identity.value,
            [symbol.parent.value] if symbol.parent else None,
            symbol.coordinate
        )
        if self._store is not None and self._config.storage.autosave:
            result = self._store.append(to_record(symbol))
            if result.is_failure:
                self._observability.collect_metric("storage_write_failures_total", 1.0, {"origin": origin})


class SymbolRef:
    """
    Rebinding handle over an immutable symbol.

    modify() derives a new symbol and points the handle at it; the
    previously published symbol is left untouched for other readers.
    """

    def __init__(self, runtime: SymbolRuntime, symbol: Symbol):
        self._runtime = runtime
        self._symbol = symbol

    @property
    def symbol(self) -> Symbol:
        return self._symbol

    @property
    def value(self) -> Any:
        return self._symbol.value

    @property
    def identity(self) -> Identity:
        return self._symbol.identity

    def modify(self, request: Any) -> bool:
        """Apply a transformation; returns False if it was blocked or failed."""
        outcome = self._runtime.transform_with_outcome(self._symbol, request)
        if outcome.applied:
            self._symbol = outcome.symbol
        return outcome.applied

    def undo(self, steps: int = 1) -> bool:
        """Rebind to an ancestor; returns False if nothing was resolved."""
        outcome = self._runtime.revert_with_outcome(self._symbol, steps)
        moved = outcome.resolved_steps > 0
        self._symbol = outcome.symbol
        return moved

    def __repr__(self) -> str:
        return f"SymbolRef({self._symbol!r})"
