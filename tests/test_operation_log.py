"""
Operation Log Tests
===================

INVARIANTS TESTED:
==================
1. Every entry carries its precomputed inverse
2. Inverse kinds pair up (write/restore, move/move, mark/unmark, jump/jump_back)
3. Logs are tuples; appending never mutates the original
"""

import pytest

from symbolspace.temporal.operation_log import (
    OperationEntry,
    OperationKind,
    append_entry,
    replay_inverse,
)


class TestInverses:

    def test_write_inverse_is_restore(self):
        entry = OperationEntry.create(OperationKind.WRITE, {"count": 1}, 3, inverse_payload={"count": 0})
        assert entry.inverse.kind == OperationKind.RESTORE
        assert entry.inverse.payload == {"count": 0}
        assert entry.inverse.position == 3

    def test_move_inverse_negates(self):
        entry = OperationEntry.create(OperationKind.MOVE, 4, 0)
        assert entry.inverse.kind == OperationKind.MOVE
        assert entry.inverse.payload == -4

    def test_mark_inverse_is_unmark(self):
        entry = OperationEntry.create(OperationKind.MARK, "checkpoint", 2)
        assert entry.inverse.kind == OperationKind.UNMARK
        assert entry.inverse.payload == "checkpoint"

    def test_jump_inverse_returns_to_origin(self):
        entry = OperationEntry.create(OperationKind.JUMP, 10, 4)
        assert entry.inverse.kind == OperationKind.JUMP_BACK
        assert entry.inverse.payload == 4

    @pytest.mark.parametrize("kind", list(OperationKind))
    def test_double_inversion_restores_kind(self, kind):
        entry = OperationEntry.create(kind, 1, 0)
        assert entry.invert().invert().kind == kind

    def test_entries_are_frozen(self):
        entry = OperationEntry.create(OperationKind.MARK, "x", 0)
        with pytest.raises(AttributeError):
            entry.position = 5


class TestLogs:

    def test_append_returns_new_tuple(self):
        first = OperationEntry.create(OperationKind.MARK, "a", 0)
        second = OperationEntry.create(OperationKind.MARK, "b", 1)
        log = append_entry((), first)
        extended = append_entry(log, second)
        assert log == (first,)
        assert extended == (first, second)

    def test_replay_inverse_newest_first(self):
        log = (
            OperationEntry.create(OperationKind.MOVE, 1, 0),
            OperationEntry.create(OperationKind.MOVE, 2, 1),
            OperationEntry.create(OperationKind.MOVE, 3, 2),
        )
        inverses = replay_inverse(log, 2)
        assert [e.payload for e in inverses] == [-3, -2]
        assert replay_inverse(log, 0) == ()


class TestRendering:

    def test_to_code(self):
        entry = OperationEntry.create(OperationKind.WRITE, 5, 7)
        assert entry.to_code() == "(write 5 @7)"

    def test_to_structure(self):
        structure = OperationEntry.create(OperationKind.MARK, "m", 1).to_structure()
        assert structure["op"] == "mark"
        assert structure["pos"] == 1
        assert structure["reversible"] is True
