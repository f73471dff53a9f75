"""
Observability & Audit Layer

RESPONSIBILITY: Audit logging, metrics, lineage tracking
ALLOWED INPUTS: Audit entries from every layer, symbols after publication
OUTPUTS: Unified audit log, metric series, lineage graph queries

WHAT THIS LAYER MUST NOT DO:
============================
- Modify symbols, the space or the clock
- Filter or interpret events (only record them)
- Block or delay other layer operations

BOUNDARY ENFORCEMENT:
=====================
- Receives immutable audit entries (frozen dataclasses)
- Collecting the same entry twice is a no-op (deduplicated by entry_id)
- Provides read-only access to logs, metrics and lineage
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple
from enum import Enum
import hashlib
import json

import networkx as nx

from ..contracts.base import Timestamp, TimeRange
from ..contracts.events import AuditEventType, AuditLogEntry, MetricPoint


# =============================================================================
# LOG COLLECTORS (One per layer)
# =============================================================================

class LogCollector:
    """
    Per-layer audit collector.

    Collectors are append-only - no modification of collected data.
    """

    def __init__(self, layer_name: str):
        self._layer_name = layer_name
        self._entries: List[AuditLogEntry] = []
        self._seen: Set[str] = set()

    def collect(self, entry: AuditLogEntry) -> bool:
        """Collect an audit entry. Returns False if already collected."""
        if entry.entry_id in self._seen:
            return False
        self._seen.add(entry.entry_id)
        self._entries.append(entry)
        return True

    def get_entries(
        self,
        time_range: Optional[TimeRange] = None,
        event_type: Optional[AuditEventType] = None
    ) -> List[AuditLogEntry]:
        """Get entries, optionally filtered."""
        entries = self._entries

        if time_range:
            entries = [
                e for e in entries
                if time_range.contains(e.timestamp)
            ]

        if event_type:
            entries = [e for e in entries if e.event_type == event_type]

        return list(entries)

    @property
    def layer_name(self) -> str:
        return self._layer_name

    @property
    def entry_count(self) -> int:
        return len(self._entries)


# =============================================================================
# METRICS COLLECTOR
# =============================================================================

class MetricType(Enum):
    """Types of metrics collected."""
    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass
class MetricDefinition:
    """Definition of a metric to collect."""
    name: str
    metric_type: MetricType
    description: str
    labels: Tuple[str, ...] = field(default_factory=tuple)


class MetricsCollector:
    """
    Append-only metric series.

    Counters are recorded as increments; total() sums them.
    """

    def __init__(self):
        self._metrics: Dict[str, List[MetricPoint]] = {}
        self._definitions: Dict[str, MetricDefinition] = {}
        self._register_default_metrics()

    def _register_default_metrics(self):
        """Register standard metrics."""
        defaults = [
            MetricDefinition(
                name="symbols_constructed_total",
                metric_type=MetricType.COUNTER,
                description="Symbols allocated in the space (roots and derived)",
                labels=("origin",)
            ),
            MetricDefinition(
                name="transforms_total",
                metric_type=MetricType.COUNTER,
                description="Transformation attempts by outcome",
                labels=("outcome", "mode")
            ),
            MetricDefinition(
                name="reverts_total",
                metric_type=MetricType.COUNTER,
                description="Reversion walks by outcome",
                labels=("outcome",)
            ),
            MetricDefinition(
                name="log_entries_pruned_total",
                metric_type=MetricType.COUNTER,
                description="Operation log entries dropped by the relevance pruner"
            ),
            MetricDefinition(
                name="storage_write_failures_total",
                metric_type=MetricType.COUNTER,
                description="Autosave writes the file store rejected",
                labels=("origin",)
            ),
            MetricDefinition(
                name="symbol_space_size",
                metric_type=MetricType.GAUGE,
                description="Number of symbols in the space"
            ),
        ]

        for definition in defaults:
            self.register_metric(definition)

    def register_metric(self, definition: MetricDefinition):
        """Register a new metric definition."""
        self._definitions[definition.name] = definition
        if definition.name not in self._metrics:
            self._metrics[definition.name] = []

    def record(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Record a metric data point."""
        if metric_name not in self._metrics:
            self._metrics[metric_name] = []

        label_tuple = tuple(sorted(labels.items())) if labels else ()

        point = MetricPoint(
            metric_name=metric_name,
            value=value,
            timestamp=Timestamp.now(),
            labels=label_tuple
        )
        self._metrics[metric_name].append(point)

    def get_metric(
        self,
        metric_name: str,
        labels: Optional[Dict[str, str]] = None
    ) -> List[MetricPoint]:
        """Get metric data points, optionally restricted to matching labels."""
        points = self._metrics.get(metric_name, [])
        if labels:
            wanted = set(labels.items())
            points = [p for p in points if wanted <= set(p.labels)]
        return list(points)

    def get_latest(self, metric_name: str) -> Optional[MetricPoint]:
        """Get the latest value for a metric."""
        points = self._metrics.get(metric_name, [])
        return points[-1] if points else None

    def total(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Sum of a counter's increments."""
        return sum(p.value for p in self.get_metric(metric_name, labels))


# =============================================================================
# LINEAGE TRACKER
# =============================================================================

class LineageTracker:
    """
    Directed provenance graph of symbol identities.

    Edges point parent -> child. Backed by networkx so lineage queries
    stay correct for branching histories (several children per parent).
    """

    def __init__(self):
        self._graph = nx.DiGraph()

    def record_lineage(
        self,
        entity_id: str,
        parent_ids: Optional[Iterable[str]] = None,
        coordinate: Optional[int] = None,
        entity_type: str = "symbol"
    ) -> None:
        """Record a node and its parent edges."""
        self._graph.add_node(entity_id, entity_type=entity_type, coordinate=coordinate)
        for parent_id in parent_ids or ():
            if parent_id == entity_id:
                # identical-content transform: no self loops
                continue
            if parent_id not in self._graph:
                self._graph.add_node(parent_id, entity_type=entity_type, coordinate=None)
            self._graph.add_edge(parent_id, entity_id)

    def contains(self, entity_id: str) -> bool:
        return entity_id in self._graph

    def get_ancestors(self, entity_id: str) -> Set[str]:
        if entity_id not in self._graph:
            return set()
        return set(nx.ancestors(self._graph, entity_id))

    def get_descendants(self, entity_id: str) -> Set[str]:
        if entity_id not in self._graph:
            return set()
        return set(nx.descendants(self._graph, entity_id))

    def get_lineage_path(self, from_id: str, to_id: str) -> Optional[List[str]]:
        """Shortest parent -> child path between two identities."""
        try:
            return nx.shortest_path(self._graph, source=from_id, target=to_id)
        except (nx.NetworkXNoPath, nx.NodeNotFound):
            return None

    def branch_points(self) -> List[str]:
        """Identities transformed more than once (history forks)."""
        return sorted(n for n, degree in self._graph.out_degree() if degree > 1)

    @property
    def node_count(self) -> int:
        return self._graph.number_of_nodes()

    def clear(self) -> None:
        self._graph.clear()


# =============================================================================
# OBSERVABILITY ENGINE (Orchestrates all observability)
# =============================================================================

@dataclass
class ObservabilityConfig:
    """Configuration for observability engine."""
    enable_metrics: bool = True
    enable_lineage: bool = True


class ObservabilityEngine:
    """
    Central Observability Engine.

    BOUNDARY ENFORCEMENT:
    - ONLY observes, never modifies
    - Provides read-only access to collected data
    """

    LAYERS = ('core', 'temporal', 'storage', 'engine')

    def __init__(self, config: Optional[ObservabilityConfig] = None):
        self._config = config or ObservabilityConfig()

        # Log collectors per layer
        self._collectors: Dict[str, LogCollector] = {
            name: LogCollector(name) for name in self.LAYERS
        }

        self._metrics = MetricsCollector() if self._config.enable_metrics else None
        self._lineage = LineageTracker() if self._config.enable_lineage else None

    def collect_audit(self, entry: AuditLogEntry) -> bool:
        """Collect an audit log entry from any layer."""
        collector = self._collectors.get(entry.layer)
        if collector is None:
            collector = self._collectors.setdefault(entry.layer, LogCollector(entry.layer))
        return collector.collect(entry)

    def collect_all(self, entries: Iterable[AuditLogEntry]) -> int:
        """Collect many entries; returns how many were new."""
        return sum(1 for entry in entries if self.collect_audit(entry))

    def collect_metric(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Collect a metric data point."""
        if self._metrics:
            self._metrics.record(metric_name, value, labels)

    def record_lineage(
        self,
        entity_id: str,
        parent_ids: Optional[Iterable[str]] = None,
        coordinate: Optional[int] = None
    ):
        """Record symbol lineage."""
        if self._lineage:
            self._lineage.record_lineage(entity_id, parent_ids, coordinate)

    def get_unified_log(
        self,
        time_range: Optional[TimeRange] = None,
        layers: Optional[List[str]] = None
    ) -> List[AuditLogEntry]:
        """Get unified log from all or specified layers, in logical order."""
        target_layers = layers or list(self._collectors.keys())

        all_entries = []
        for layer_name in target_layers:
            collector = self._collectors.get(layer_name)
            if collector:
                all_entries.extend(collector.get_entries(time_range=time_range))

        all_entries.sort(key=lambda e: (e.logical_time, e.timestamp.value))
        return all_entries

    def get_layer_log(
        self,
        layer_name: str,
        time_range: Optional[TimeRange] = None
    ) -> List[AuditLogEntry]:
        """Get log for a specific layer."""
        collector = self._collectors.get(layer_name)
        if not collector:
            return []
        return collector.get_entries(time_range=time_range)

    def get_metrics(self) -> Optional[MetricsCollector]:
        """Get metrics collector (read-only access)."""
        return self._metrics

    def get_lineage(self) -> Optional[LineageTracker]:
        """Get lineage tracker (read-only access)."""
        return self._lineage

    def generate_audit_report(
        self,
        time_range: Optional[TimeRange] = None
    ) -> Dict:
        """Generate audit summary."""
        entries = self.get_unified_log(time_range=time_range)

        by_layer: Dict[str, int] = {}
        by_type: Dict[str, int] = {}
        by_action: Dict[str, int] = {}

        for entry in entries:
            by_layer[entry.layer] = by_layer.get(entry.layer, 0) + 1
            by_type[entry.event_type.value] = by_type.get(entry.event_type.value, 0) + 1
            by_action[entry.action] = by_action.get(entry.action, 0) + 1

        summary = {
            'total_entries': len(entries),
            'by_layer': by_layer,
            'by_event_type': by_type,
            'by_action': by_action,
            'logical_range': {
                'start': entries[0].logical_time if entries else None,
                'end': entries[-1].logical_time if entries else None,
            },
        }
        summary['report_hash'] = hashlib.sha256(
            json.dumps(summary, sort_keys=True).encode()
        ).hexdigest()
        summary['generated_at'] = Timestamp.now().to_iso()
        return summary
