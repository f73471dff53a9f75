"""
Symbol Space & Persistence Tests
================================

INVARIANTS TESTED:
==================
1. The clock advances exactly once per allocation
2. Instances are independent (no module-global state)
3. Exported records rebuild symbols without recomputing identities
4. The file store is append-only, last-write-wins on reload, and never
   rewrites an unchanged record
5. Reloaded values keep their stored identity (tuples, sets, int keys)
6. Corrupt files and unwritable values are reported as explicit errors, never raised
"""

import json

import pytest

from symbolspace.contracts.base import ErrorCode, Identity, Permission
from symbolspace.core.capability import CapabilityToken
from symbolspace.core.identity import identity
from symbolspace.engine import RuntimeConfig, SymbolRuntime
from symbolspace.storage import FileSymbolStore, StorageConfig, SymbolSpace, from_record, to_record
from symbolspace.temporal.clock import LogicalClock


def deeply_nested(depth):
    value = []
    for _ in range(depth):
        value = [value]
    return value


class TestLogicalClock:

    def test_advance_returns_previous_value(self):
        clock = LogicalClock()
        assert clock.advance() == 0
        assert clock.advance() == 1
        assert clock.now() == 2

    def test_fast_forward_never_rewinds(self):
        clock = LogicalClock(start=5)
        clock.fast_forward(3)
        assert clock.now() == 5
        clock.fast_forward(9)
        assert clock.now() == 9

    def test_negative_start_rejected(self):
        with pytest.raises(ValueError):
            LogicalClock(start=-1)


class TestSymbolSpace:

    def test_construct_advances_clock_once(self):
        runtime = SymbolRuntime()
        symbol = runtime.construct("a")
        assert symbol.coordinate == 0
        assert runtime.logical_clock() == 1
        assert runtime.lookup(symbol.identity) is symbol

    def test_spaces_are_independent(self):
        first = SymbolRuntime()
        second = SymbolRuntime()
        symbol = first.construct({"x": 1})
        assert second.lookup(symbol.identity) is None
        assert second.logical_clock() == 0

    def test_reset_empties_space_and_clock(self):
        runtime = SymbolRuntime()
        symbol = runtime.construct("a")
        runtime.reset()
        assert runtime.lookup(symbol.identity) is None
        assert runtime.logical_clock() == 0
        assert runtime.space.size == 0

    def test_same_content_shares_a_slot(self):
        runtime = SymbolRuntime()
        runtime.construct([1, 2])
        second = runtime.construct([1, 2])
        assert runtime.space.size == 1
        assert runtime.lookup(second.identity) is second

    def test_remove(self):
        space = SymbolSpace()
        runtime = SymbolRuntime(space=space)
        symbol = runtime.construct("gone")
        assert space.remove(symbol.identity) is symbol
        assert space.remove(symbol.identity) is None
        assert not space.contains(symbol.identity)

    def test_snapshot_hash_tracks_contents(self):
        left = SymbolRuntime()
        right = SymbolRuntime()
        left.construct("a")
        right.construct("a")
        assert left.snapshot() == right.snapshot()
        right.construct("b")
        assert left.snapshot().state_hash != right.snapshot().state_hash

    def test_symbols_ordered_by_coordinate(self):
        runtime = SymbolRuntime()
        for value in ("c", "a", "b"):
            runtime.construct(value)
        assert [s.value for s in runtime.space.symbols()] == ["c", "a", "b"]


class TestRecords:

    def test_record_round_trip_keeps_identity(self):
        runtime = SymbolRuntime()
        root = runtime.construct({"count": 0})
        child = runtime.transform(root, lambda v: {"count": 1})

        rebuilt = from_record(to_record(child))

        assert rebuilt.identity == child.identity
        assert rebuilt.parent == root.identity
        assert rebuilt.ancestry == child.ancestry
        assert rebuilt.coordinate == child.coordinate
        assert rebuilt.capabilities == child.capabilities
        assert rebuilt.operation_log == ()

    def test_identity_is_not_recomputed(self):
        runtime = SymbolRuntime()
        symbol = runtime.construct("value")
        record = to_record(symbol)
        forged = type(record)(
            identity="f" * 64,
            value=record.value,
            capabilities=record.capabilities,
            ancestry=record.ancestry,
            coordinate=record.coordinate,
        )
        assert from_record(forged).identity == Identity(value="f" * 64)

    def test_load_records_fast_forwards_clock(self):
        source = SymbolRuntime()
        for value in ("a", "b", "c"):
            source.construct(value)

        target = SymbolSpace()
        assert target.load_records(source.space.export_records()) == 3
        assert target.now() == 3


class TestFileStore:

    def test_save_and_load(self, tmp_path):
        store = FileSymbolStore(str(tmp_path))
        source = SymbolRuntime()
        root = source.construct({"count": 0})
        child = source.transform(root, lambda v: {"count": 1})
        assert source.save(store).value == 2

        target = SymbolRuntime()
        assert target.load(store).value == 2
        assert target.lookup(child.identity).value == {"count": 1}
        assert target.revert(target.lookup(child.identity)).identity == root.identity
        assert target.logical_clock() == source.logical_clock()

    def test_capabilities_survive_reload(self, tmp_path):
        store = FileSymbolStore(str(tmp_path))
        source = SymbolRuntime()
        token = CapabilityToken.issue(now=0, permissions=Permission.READ)
        symbol = source.construct("locked", capabilities=[token])
        source.save(store)

        target = SymbolRuntime()
        target.load(store)
        reloaded = target.lookup(symbol.identity)
        assert target.transform(reloaded, lambda v: "changed") is reloaded

    def test_last_write_wins(self, tmp_path):
        store = FileSymbolStore(str(tmp_path))
        runtime = SymbolRuntime()
        runtime.construct("a")
        runtime.save(store)
        runtime.construct("a")
        runtime.save(store)

        records = store.read_records().value
        assert len(records) == 1
        assert records[0].coordinate == 1
        with open(store.path) as f:
            assert len(f.readlines()) == 2

    def test_missing_file_is_empty(self, tmp_path):
        assert FileSymbolStore(str(tmp_path / "fresh")).read_records().value == []

    def test_corrupt_line_reported(self, tmp_path):
        store = FileSymbolStore(str(tmp_path))
        with open(store.path, "w") as f:
            f.write(json.dumps({"identity": "a" * 64, "coordinate": 0}) + "\n")
            f.write("{not json\n")

        result = store.read_records()

        assert result.is_failure
        assert result.error.code == ErrorCode.STORAGE_CORRUPTION

    def test_callables_written_as_references(self, tmp_path):
        store = FileSymbolStore(str(tmp_path))
        runtime = SymbolRuntime()
        runtime.construct(len)
        runtime.save(store)

        records = store.read_records().value
        assert records[0].value == {"__callable__": "builtins.len"}

    def test_autosave_appends_every_symbol(self, tmp_path):
        config = RuntimeConfig(
            storage=StorageConfig(backend_type="file", storage_dir=str(tmp_path), autosave=True)
        )
        runtime = SymbolRuntime(config)
        root = runtime.construct({"n": 0})
        runtime.transform(root, lambda v: {"n": 1})

        reloaded = SymbolRuntime(config)
        assert reloaded.load().value == 2

    def test_repeated_saves_do_not_grow_the_file(self, tmp_path):
        store = FileSymbolStore(str(tmp_path))
        runtime = SymbolRuntime()
        runtime.construct("a")
        assert runtime.save(store).value == 1
        assert runtime.save(store).value == 0

        runtime.construct("b")
        assert runtime.save(FileSymbolStore(str(tmp_path))).value == 1

        with open(store.path) as f:
            assert len(f.readlines()) == 2

    @pytest.mark.parametrize("value", [
        {"t": (1, 2), 1: "a"},
        {"t": (1, 2)},
        {"members": {3, 1, 2}, "frozen": frozenset({"x"})},
        (b"raw", bytearray(b"buf"), 1 + 2j),
        {"__tuple__": [1]},
        [10 ** 5000, -(10 ** 400)],
    ])
    def test_reloaded_value_keeps_its_identity(self, tmp_path, value):
        store = FileSymbolStore(str(tmp_path))
        source = SymbolRuntime()
        symbol = source.construct(value)
        assert source.save(store).is_success

        target = SymbolRuntime()
        target.load(store)
        reloaded = target.lookup(symbol.identity)

        assert reloaded is not None
        assert reloaded.value == value
        assert type(reloaded.value) is type(value)
        assert identity(reloaded.value) == symbol.identity

    def test_unwritable_value_reports_failure(self, tmp_path):
        store = FileSymbolStore(str(tmp_path))
        runtime = SymbolRuntime()
        runtime.construct("fine")
        runtime.construct(deeply_nested(5000))

        result = runtime.save(store)

        assert result.is_failure
        assert result.error.code == ErrorCode.STORAGE_CORRUPTION
        assert dict(result.error.context)["written_before_failure"] == "1"
        assert store.get_audit_log()[0].action == "write_failed"

    def test_autosave_failure_is_counted_and_audited(self, tmp_path):
        config = RuntimeConfig(
            storage=StorageConfig(backend_type="file", storage_dir=str(tmp_path), autosave=True)
        )
        runtime = SymbolRuntime(config)
        runtime.construct(deeply_nested(5000))

        assert runtime.get_metrics().total("storage_write_failures_total") == 1
        actions = [e.action for e in runtime.get_audit_log(layers=["storage"])]
        assert "write_failed" in actions

    def test_file_backend_requires_directory(self):
        with pytest.raises(ValueError):
            StorageConfig(backend_type="file")
