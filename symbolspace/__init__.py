"""
SymbolSpace Runtime

This package implements a runtime for versioned, content-addressed values
("symbols") with pure transformation, multi-step reversion and
capability-gated mutation. Layers communicate only through explicit
contracts, never through shared mutable state.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Identity, Permission, ShapeTag, Error/Result, audit and record types

2. CORE SYMBOL LAYER (core/)
   - Responsibility: Identity hashing, capability tokens, construction,
     transformation, structural diffs
   - Outputs: Symbol (immutable)
   - MUST NOT: Mutate published symbols, resolve ancestors

3. TEMPORAL LAYER (temporal/)
   - Responsibility: Logical clock, operation log, relevance pruning,
     reversion
   - MUST NOT: Allocate during reversion, use wall-clock time for ordering

4. STORAGE LAYER (storage/)
   - Responsibility: Identity -> Symbol registry, clock ownership,
     record export/reload, JSON-lines file store
   - MUST NOT: Recompute identities, evict implicitly

5. OBSERVABILITY & AUDIT LAYER (observability/)
   - Responsibility: Audit log collection, metrics, lineage graph
   - MUST NOT: Modify system behavior

6. API (api/)
   - FastAPI surface over one runtime

CONSTRAINTS ENFORCED:
=====================
- Immutability-first: symbols, tokens and log entries are frozen
- Deterministic: identical values always hash to identical identities
- Explicit errors: blocked and degraded outcomes are queryable values
- Nothing is fatal: transform and revert never raise
"""

from .contracts.base import Error, ErrorCode, Identity, Permission, Result, ShapeTag
from .core.capability import CapabilityConfig, CapabilityToken
from .core.identity import extract_structure, identity, render_source, shape_of
from .core.symbol import StructuralDiff, Symbol
from .core.transform import ApplyFunction, Literal, Merge, Replace, TransformOutcome, parse_request
from .engine import RuntimeConfig, SymbolRef, SymbolRuntime
from .storage import FileSymbolStore, StorageConfig, SymbolSpace
from .temporal.pruning import PruningConfig, RelevancePruner
from .temporal.reversion import RevertOutcome

__version__ = "0.1.0"
