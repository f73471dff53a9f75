"""
Relevance Pruner
================

Bounded retention for per-symbol operation logs.

When a log grows past max_log_length, every entry is scored

    score(i) = exp(-age * temporal_decay)
             + structural(i) * structural_weight
             + ancestry(i)   * ancestry_weight
             + dependency(i) * dependency_weight

with age = n - i, and the top floor(max_log_length * retain_ratio)
entries are kept in their original order.

GUARANTEES:
- Pure: depends only on the log, the owning value and its coordinate
- Never alters identity, value or capabilities (operates on the log only)
- The most recently appended entry is always retained
- Every prune produces a PruneRecord describing what was dropped

This is lossy by intent: reverting past a pruned boundary degrades to
the reversion engine's missing-ancestor behavior.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Sequence, Tuple
import math

import numpy as np

from ..core.identity import PayloadSummary, summarize_payload
from .operation_log import OperationEntry, OperationKind, OperationLog


@dataclass
class PruningConfig:
    """
    Tunable pruning policy.

    Mutable on purpose: hosts adjust it at runtime and the next
    transformation picks up the new values.
    """
    max_log_length: int = 1000
    temporal_decay: float = 0.1
    structural_weight: float = 0.3
    ancestry_weight: float = 0.4
    dependency_weight: float = 0.3
    retain_ratio: float = 0.8
    dependency_window: int = 10

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if self.max_log_length < 1:
            raise ValueError("max_log_length must be at least 1")
        for name in ('temporal_decay', 'structural_weight', 'ancestry_weight', 'dependency_weight'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        if not 0.0 < self.retain_ratio <= 1.0:
            raise ValueError("retain_ratio must be in (0, 1]")
        if self.dependency_window < 0:
            raise ValueError("dependency_window must be non-negative")

    @property
    def retain_count(self) -> int:
        return max(1, math.floor(self.max_log_length * self.retain_ratio))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> PruningConfig:
        known = {k: v for k, v in data.items() if k in PruningConfig.__dataclass_fields__}
        return PruningConfig(**known)


@dataclass(frozen=True)
class PruneRecord:
    """Immutable record of one pruning pass."""
    original_length: int
    retained_length: int
    dropped_positions: Tuple[int, ...]
    policy: Tuple[Tuple[str, float], ...]

    @property
    def dropped_count(self) -> int:
        return self.original_length - self.retained_length


# =============================================================================
# HEURISTICS (pluggable)
# =============================================================================

class RelevanceHeuristics:
    """
    The three boolean relevance terms of the score.

    Operates on structured payload summaries (key sets and shallow
    value digests). Subclass to change what "relevant" means.
    """

    def structural(self, entry: OperationEntry, current: PayloadSummary) -> bool:
        """The entry wrote content still present in the current value."""
        return entry.kind == OperationKind.WRITE and bool(entry.summary.digests & current.digests)

    def ancestry(self, entry: OperationEntry, coordinate: int) -> bool:
        """The entry occurred at or before the owner's coordinate."""
        return entry.position <= coordinate

    def dependency(self, index: int, log: Sequence[OperationEntry], window: int) -> bool:
        """A recent entry's payload overlaps this one's."""
        if window <= 0:
            return False
        entry = log[index]
        start = max(0, len(log) - window)
        return any(
            log[j].summary.overlaps(entry.summary)
            for j in range(start, len(log))
            if j != index
        )


class RelevancePruner:
    """
    Scores and truncates operation logs.

    The config is held by reference so runtime edits take effect
    immediately.
    """

    def __init__(
        self,
        config: Optional[PruningConfig] = None,
        heuristics: Optional[RelevanceHeuristics] = None
    ):
        self._config = config or PruningConfig()
        self._heuristics = heuristics or RelevanceHeuristics()

    @property
    def config(self) -> PruningConfig:
        return self._config

    def needs_pruning(self, log: Sequence[OperationEntry]) -> bool:
        return len(log) > self._config.max_log_length

    def score(self, log: Sequence[OperationEntry], value: Any, coordinate: int) -> np.ndarray:
        """Score every entry of a log against its owner's value and coordinate."""
        config = self._config
        n = len(log)
        if n == 0:
            return np.zeros(0, dtype=float)

        current = summarize_payload(value)
        ages = n - np.arange(n, dtype=float)
        temporal = np.exp(-ages * config.temporal_decay)

        structural = np.array(
            [self._heuristics.structural(e, current) for e in log], dtype=float
        )
        ancestry = np.array(
            [self._heuristics.ancestry(e, coordinate) for e in log], dtype=float
        )
        dependency = np.array(
            [self._heuristics.dependency(i, log, config.dependency_window) for i in range(n)],
            dtype=float
        )

        return (
            temporal
            + structural * config.structural_weight
            + ancestry * config.ancestry_weight
            + dependency * config.dependency_weight
        )

    def prune(
        self,
        log: OperationLog,
        value: Any,
        coordinate: int
    ) -> Tuple[OperationLog, Optional[PruneRecord]]:
        """
        Prune a log if it exceeds the ceiling.

        Returns (log, None) when nothing was done.
        """
        log = tuple(log)
        if not self.needs_pruning(log):
            return log, None

        keep_count = min(self._config.retain_count, len(log))
        scores = self.score(log, value, coordinate)

        # newest entry is pinned; fill the rest by score (ties: newer first)
        newest = len(log) - 1
        order = np.lexsort((-np.arange(len(log)), -scores))
        keep = {newest}
        for index in order:
            if len(keep) >= keep_count:
                break
            keep.add(int(index))

        retained = tuple(entry for i, entry in enumerate(log) if i in keep)
        dropped = tuple(entry.position for i, entry in enumerate(log) if i not in keep)

        record = PruneRecord(
            original_length=len(log),
            retained_length=len(retained),
            dropped_positions=dropped,
            policy=tuple(sorted((k, float(v)) for k, v in self._config.to_dict().items())),
        )
        return retained, record
