"""
Operation Log
=============

Immutable records of primitive effects, each carrying its inverse.

INVARIANTS:
- Entries are frozen once created
- Every entry is created together with its precomputed inverse:
    write   <-> restore
    move(d) <-> move(-d)
    mark    <-> unmark
    jump    <-> jump_back
- A log is a tuple; appending produces a new tuple (no mutation)
- Only the relevance pruner shortens a log, and it records doing so
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..core.identity import PayloadSummary, summarize_payload


class OperationKind(Enum):
    """Primitive effect kinds."""
    WRITE = "write"
    RESTORE = "restore"
    MOVE = "move"
    MARK = "mark"
    UNMARK = "unmark"
    JUMP = "jump"
    JUMP_BACK = "jump_back"


_INVERSE_KIND = {
    OperationKind.WRITE: OperationKind.RESTORE,
    OperationKind.RESTORE: OperationKind.WRITE,
    OperationKind.MOVE: OperationKind.MOVE,
    OperationKind.MARK: OperationKind.UNMARK,
    OperationKind.UNMARK: OperationKind.MARK,
    OperationKind.JUMP: OperationKind.JUMP_BACK,
    OperationKind.JUMP_BACK: OperationKind.JUMP,
}


@dataclass(frozen=True)
class OperationEntry:
    """
    One primitive effect.

    position is the logical coordinate the effect applies at.
    summary is the structured payload digest the pruner scores on.
    inverse is None only on entries that are themselves inverses.
    """
    kind: OperationKind
    payload: Any
    position: int
    summary: PayloadSummary = field(default_factory=PayloadSummary.empty, compare=False)
    inverse: Optional[OperationEntry] = field(default=None, compare=False)

    @staticmethod
    def create(
        kind: OperationKind,
        payload: Any,
        position: int,
        inverse_payload: Any = None,
        summary: Optional[PayloadSummary] = None
    ) -> OperationEntry:
        """
        Create an entry with its inverse.

        inverse_payload is what undoing needs: the previous value (or its
        identity) for write/restore, the return address for jumps.
        Moves and marks derive it from the payload.
        """
        summary = summary if summary is not None else summarize_payload(payload)
        inverse = OperationEntry(
            kind=_INVERSE_KIND[kind],
            payload=_inverse_payload(kind, payload, position, inverse_payload),
            position=position,
            summary=summary,
        )
        return OperationEntry(
            kind=kind,
            payload=payload,
            position=position,
            summary=summary,
            inverse=inverse,
        )

    def invert(self) -> OperationEntry:
        """
        The inverse entry. For entries created without one, computes it
        (its own inverse will then be this entry's kind).
        """
        if self.inverse is not None:
            return self.inverse
        return OperationEntry(
            kind=_INVERSE_KIND[self.kind],
            payload=_inverse_payload(self.kind, self.payload, self.position, None),
            position=self.position,
            summary=self.summary,
        )

    def to_structure(self) -> Dict[str, Any]:
        return {
            'op': self.kind.value,
            'data': self.payload,
            'pos': self.position,
            'reversible': True,
            'homoiconic': True,
        }

    def to_code(self) -> str:
        return f"({self.kind.value} {self.payload} @{self.position})"


def _inverse_payload(kind: OperationKind, payload: Any, position: int, inverse_payload: Any) -> Any:
    if kind == OperationKind.MOVE:
        return -payload
    if kind in (OperationKind.MARK, OperationKind.UNMARK):
        return payload
    if kind == OperationKind.JUMP:
        # jump back to where we jumped from
        return position if inverse_payload is None else inverse_payload
    if kind in (OperationKind.WRITE, OperationKind.RESTORE):
        return inverse_payload if inverse_payload is not None else payload
    return inverse_payload


OperationLog = Tuple[OperationEntry, ...]


def append_entry(log: OperationLog, entry: OperationEntry) -> OperationLog:
    """Append-only extension of a log."""
    return tuple(log) + (entry,)


def replay_inverse(log: OperationLog, count: int) -> Tuple[OperationEntry, ...]:
    """The inverses needed to undo the last `count` entries, newest first."""
    if count <= 0:
        return ()
    return tuple(entry.invert() for entry in reversed(log[-count:]))
