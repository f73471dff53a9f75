"""
Temporal Layer

RESPONSIBILITY: Logical time, operation logs, relevance pruning, reversion
ALLOWED INPUTS: Symbols and their operation logs
OUTPUTS: OperationEntry (immutable), PruneRecord, RevertOutcome

WHAT THIS LAYER MUST NOT DO:
============================
- Read the wall clock for ordering (logical time only)
- Allocate symbols during reversion
- Touch identity, value or capabilities while pruning

TIME MODEL:
===========
A single integer counter per symbol space. A symbol's coordinate is the
counter value read immediately before the advance that created it.
Token expiry is compared against the same counter.
"""
