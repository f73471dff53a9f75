"""
Symbol Space (Storage Layer)

RESPONSIBILITY: Process-wide identity -> Symbol registry and logical clock
ALLOWED INPUTS: Fully built symbols from the core layer
OUTPUTS: Symbol lookups, SpaceState snapshots, SymbolRecord exports

WHAT THIS LAYER MUST NOT DO:
============================
- Compute values or apply transformations
- Recompute identities on load (they are stored, not derived)
- Evict entries implicitly (retention is a host decision)

CONCURRENCY:
============
Single logical writer. Every insert and clock advance happens under
one re-entrant lock; reads take the same lock so a torn counter/map
pair is never observed. Nothing here blocks on I/O except the
explicit file store.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import hashlib
import json
import os
import threading

from ..contracts.base import Error, ErrorCode, Identity, Result, Timestamp
from ..contracts.events import AuditEventType, AuditLogEntry, SymbolRecord
from ..core.capability import CapabilityToken, capability_set
from ..core.identity import shape_of
from ..core.symbol import Symbol
from ..domain.serialization import StrictSymbolEncoder, decode_value, encode_value
from ..temporal.clock import LogicalClock


@dataclass(frozen=True)
class SpaceState:
    """
    Immutable snapshot of the space.

    state_hash covers the sorted identity set and the clock value, so
    two spaces holding the same symbols at the same time hash equal.
    """
    clock: int
    size: int
    state_hash: str


class SymbolSpace:
    """
    Identity-keyed symbol registry with its logical clock.

    GUARANTEES:
    ===========
    1. One entry per identity (a later symbol with the same identity
       replaces the earlier one: same value, same address)
    2. The clock advances exactly once per allocate()
    3. Instances are independent; nothing is module-global
    """

    def __init__(self, clock: Optional[LogicalClock] = None):
        self._symbols: Dict[str, Symbol] = {}
        self._clock = clock or LogicalClock()
        self._lock = threading.RLock()
        self._audit_log: List[AuditLogEntry] = []
        self._audit_counter = 0

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    def allocate(self, build: Callable[[int], Symbol]) -> Symbol:
        """
        Reserve the next coordinate, build a symbol at it and insert it.

        The clock advance and the insert happen atomically.
        """
        with self._lock:
            coordinate = self._clock.advance()
            symbol = build(coordinate)
            self._symbols[symbol.identity.value] = symbol
            return symbol

    def insert(self, symbol: Symbol) -> None:
        """Insert an already-built symbol (used by reload)."""
        with self._lock:
            self._symbols[symbol.identity.value] = symbol
            self._clock.fast_forward(symbol.coordinate + 1)

    def remove(self, identity: Identity) -> Optional[Symbol]:
        """Host-driven eviction. Returns the removed symbol, if any."""
        with self._lock:
            removed = self._symbols.pop(identity.value, None)
        if removed is not None:
            self._log_audit("symbol_evicted", entity_id=identity.value)
        return removed

    def reset(self) -> None:
        """Empty the space and rewind the clock to zero."""
        with self._lock:
            self._symbols.clear()
            self._clock.reset()
        self._log_audit("space_reset")

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    def lookup(self, identity: Identity) -> Optional[Symbol]:
        with self._lock:
            return self._symbols.get(identity.value)

    def contains(self, identity: Identity) -> bool:
        with self._lock:
            return identity.value in self._symbols

    def now(self) -> int:
        with self._lock:
            return self._clock.now()

    @property
    def clock(self) -> LogicalClock:
        return self._clock

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._symbols)

    def identities(self) -> Tuple[Identity, ...]:
        with self._lock:
            return tuple(Identity(value=key) for key in self._symbols)

    def symbols(self) -> Tuple[Symbol, ...]:
        """All symbols ordered by coordinate."""
        with self._lock:
            return tuple(sorted(self._symbols.values(), key=lambda s: s.coordinate))

    def snapshot(self) -> SpaceState:
        with self._lock:
            keys = sorted(self._symbols)
            now = self._clock.now()
        state_hash = hashlib.sha256(f"{now}|{','.join(keys)}".encode()).hexdigest()
        return SpaceState(clock=now, size=len(keys), state_hash=state_hash)

    # -------------------------------------------------------------------------
    # Persistence records
    # -------------------------------------------------------------------------

    def export_records(self) -> List[SymbolRecord]:
        """Serialize the space to records, ordered by coordinate."""
        return [to_record(symbol) for symbol in self.symbols()]

    def load_records(self, records: Iterable[SymbolRecord]) -> int:
        """
        Rebuild symbols from records without recomputing identities.

        The clock is fast-forwarded past the highest loaded coordinate.
        Returns the number of symbols loaded.
        """
        count = 0
        with self._lock:
            for record in records:
                self.insert(from_record(record))
                count += 1
        self._log_audit("records_loaded", metadata=(("count", str(count)),))
        return count

    # -------------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------------

    def _log_audit(
        self,
        action: str,
        entity_id: Optional[str] = None,
        metadata: tuple = ()
    ):
        """Add entry to internal audit log."""
        self._audit_counter += 1
        entry = AuditLogEntry(
            entry_id=f"audit_storage_{self._audit_counter:06d}",
            event_type=AuditEventType.STORAGE,
            timestamp=Timestamp.now(),
            layer="storage",
            action=action,
            logical_time=self._clock.now(),
            entity_id=entity_id,
            metadata=metadata
        )
        self._audit_log.append(entry)

    def get_audit_log(self) -> List[AuditLogEntry]:
        """Return copy of audit log entries."""
        return list(self._audit_log)


# =============================================================================
# RECORD CONVERSION
# =============================================================================

def to_record(symbol: Symbol) -> SymbolRecord:
    return SymbolRecord(
        identity=symbol.identity.value,
        value=symbol.value,
        capabilities=tuple(
            sorted((t.summary() for t in symbol.capabilities), key=lambda s: s.token_id)
        ),
        ancestry=tuple(a.value for a in symbol.ancestry),
        coordinate=symbol.coordinate,
        parent=symbol.parent.value if symbol.parent else None,
    )


def from_record(record: SymbolRecord) -> Symbol:
    ancestry = tuple(Identity(value=a) for a in record.ancestry)
    parent = Identity(value=record.parent) if record.parent else (ancestry[-1] if ancestry else None)
    return Symbol(
        value=record.value,
        identity=Identity(value=record.identity),
        shape=shape_of(record.value),
        capabilities=capability_set(CapabilityToken.from_summary(t) for t in record.capabilities),
        coordinate=record.coordinate,
        ancestry=ancestry,
        parent=parent,
    )


# =============================================================================
# FILE STORE (reference host adapter)
# =============================================================================

@dataclass
class StorageConfig:
    """Configuration for symbol persistence."""
    backend_type: str = "memory"  # "memory" or "file"
    storage_dir: Optional[str] = None
    autosave: bool = False  # append every new symbol to the file store

    def __post_init__(self):
        if self.backend_type not in ("memory", "file"):
            raise ValueError(f"unknown backend_type: {self.backend_type}")
        if self.backend_type == "file" and not self.storage_dir:
            raise ValueError("file backend requires storage_dir")


class FileSymbolStore:
    """
    Append-only JSON-lines store for symbol records.

    Values are written in the tagged wire form of
    domain.serialization.encode_value, so tuples, sets, bytes and
    non-string keys reload unchanged. A later record for the same
    identity supersedes earlier ones on load. A record identical to
    the last one written for its identity is not written again.
    Callable values are written as tagged references and do not
    round-trip as callables.
    """

    def __init__(self, storage_dir: str):
        self._storage_dir = storage_dir
        self._symbols_file = os.path.join(storage_dir, "symbols.jsonl")
        os.makedirs(storage_dir, exist_ok=True)
        # identity -> last line written for it; None until first read
        self._written: Optional[Dict[str, str]] = None
        self._audit_log: List[AuditLogEntry] = []
        self._audit_counter = 0

    @property
    def path(self) -> str:
        return self._symbols_file

    def encode_record(self, record: SymbolRecord) -> str:
        data = record.to_dict()
        data['value'] = encode_value(record.value)
        return json.dumps(data, cls=StrictSymbolEncoder, sort_keys=True)

    def append(self, record: SymbolRecord) -> Result:
        """
        Write one record. Returns the identity on success, or None when
        an identical record was already on disk.
        """
        written = self._written_lines()
        if written.is_failure:
            return written
        try:
            line = self.encode_record(record)
        except (TypeError, ValueError, RecursionError) as e:
            return self._write_failure(record, f"Failed to encode symbol: {type(e).__name__}: {e}")
        if written.value.get(record.identity) == line:
            return Result.success(None)
        try:
            with open(self._symbols_file, 'a') as f:
                f.write(line + '\n')
        except OSError as e:
            return self._write_failure(record, f"Failed to write symbol: {e}")
        written.value[record.identity] = line
        return Result.success(record.identity)

    def save(self, space: SymbolSpace) -> Result:
        """Append every symbol in the space not already on disk."""
        written = 0
        for record in space.export_records():
            result = self.append(record)
            if result.is_failure:
                return Result.failure(result.error.with_context("written_before_failure", str(written)))
            if result.value is not None:
                written += 1
        return Result.success(written)

    def read_records(self) -> Result:
        """Read all records, last write wins per identity."""
        if not os.path.exists(self._symbols_file):
            return Result.success([])
        records: Dict[str, SymbolRecord] = {}
        with open(self._symbols_file, 'r') as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                    data['value'] = decode_value(data.get('value'))
                    record = SymbolRecord.from_dict(data)
                except (ValueError, KeyError, TypeError, AttributeError) as e:
                    return Result.failure(Error.create(
                        ErrorCode.STORAGE_CORRUPTION,
                        f"Corrupt record at line {line_number}: {e}",
                        path=self._symbols_file
                    ))
                records[record.identity] = record
        return Result.success(sorted(records.values(), key=lambda r: r.coordinate))

    def load_into(self, space: SymbolSpace) -> Result:
        result = self.read_records()
        if result.is_failure:
            return result
        return Result.success(space.load_records(result.value))

    def _written_lines(self) -> Result:
        """Last line on disk per identity, read once per store instance."""
        if self._written is not None:
            return Result.success(self._written)
        written: Dict[str, str] = {}
        if os.path.exists(self._symbols_file):
            with open(self._symbols_file, 'r') as f:
                for line_number, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        written[json.loads(line)['identity']] = line
                    except (ValueError, KeyError, TypeError) as e:
                        return Result.failure(Error.create(
                            ErrorCode.STORAGE_CORRUPTION,
                            f"Corrupt record at line {line_number}: {e}",
                            path=self._symbols_file
                        ))
        self._written = written
        return Result.success(written)

    def _write_failure(self, record: SymbolRecord, message: str) -> Result:
        error = Error.create(ErrorCode.STORAGE_CORRUPTION, message, identity=record.identity)
        self._log_audit("write_failed", record.coordinate, record.identity,
                        metadata=(("reason", message),))
        return Result.failure(error)

    # -------------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------------

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
            entry_id=f"audit_filestore_{self._audit_counter:06d}",
            event_type=AuditEventType.ERROR,
            timestamp=Timestamp.now(),
            layer="storage",
            action=action,
            logical_time=logical_time,
            entity_id=entity_id,
            metadata=metadata
        ))

    def get_audit_log(self) -> List[AuditLogEntry]:
        """Return copy of audit log entries."""
        return list(self._audit_log)
