"""
Core Symbol Layer

RESPONSIBILITY: Identity hashing, capability tokens, symbol construction,
                transformation and structural diffs
ALLOWED INPUTS: Host values, transformation requests, capability tokens
OUTPUTS: Symbol (immutable), TransformOutcome

WHAT THIS LAYER MUST NOT DO:
============================
- Mutate a symbol after it has been published to the space
- Resolve ancestors (that's the temporal layer's job)
- Persist data (storage layer's job)
- Raise for degraded outcomes (blocked, failed, malformed)

BOUNDARY ENFORCEMENT:
=====================
- Every new symbol enters the space through SymbolSpace.allocate()
- Capability sets are shared by reference along a lineage
- Identity is computed once, from the owned snapshot of the value
"""
