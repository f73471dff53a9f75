"""
Symbol
======

Immutable, identity-addressed versioned value with provenance.

INVARIANTS:
- A symbol is never mutated after it is published to the space
- identity is a pure function of value (shape + canonical content)
- coordinate is the logical clock value at construction
- ancestry lists ancestor identities oldest first; parent is its last element
- operation_log only grows along a lineage, except through recorded pruning

"Modifying" a symbol always means deriving a new one; see SymbolRef
for the rebinding convenience.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..contracts.base import Identity, Permission, ShapeTag
from .capability import CapabilitySet, grants
from .identity import (
    container_kind, digest, extract_structure, rebuild_from_view, render_source, shallow_view
)
from ..temporal.operation_log import OperationLog
from ..temporal.pruning import PruneRecord


# =============================================================================
# STRUCTURAL DIFF
# =============================================================================

@dataclass(frozen=True)
class Modification:
    key: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class Removal:
    key: str
    value: Any


@dataclass(frozen=True)
class StructuralDiff:
    """
    Shallow key-level difference between two values.

    additions: keys only in the new value
    removals: key + value only in the old value
    modifications: keys in both whose values differ
    old_container: how to rebuild the old value from its shallow view
    """
    additions: Tuple[str, ...] = ()
    removals: Tuple[Removal, ...] = ()
    modifications: Tuple[Modification, ...] = ()
    old_container: str = 'mapping'

    @property
    def is_empty(self) -> bool:
        return not (self.additions or self.removals or self.modifications)

    @property
    def touched_keys(self) -> Tuple[str, ...]:
        keys = list(self.additions)
        keys.extend(m.key for m in self.modifications)
        keys.extend(r.key for r in self.removals)
        return tuple(keys)

    def apply_inverse(self, new_value: Any) -> Any:
        """Rebuild the old value's shallow view from the new value."""
        view = shallow_view(new_value)
        for key in self.additions:
            view.pop(key, None)
        for removal in self.removals:
            view[removal.key] = removal.value
        for modification in self.modifications:
            view[modification.key] = modification.old_value
        return rebuild_from_view(view, self.old_container)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'additions': list(self.additions),
            'removals': [{'path': r.key, 'value': r.value} for r in self.removals],
            'modifications': [
                {'path': m.key, 'old_value': m.old_value, 'new_value': m.new_value}
                for m in self.modifications
            ],
        }


def compute_structural_diff(old_value: Any, new_value: Any) -> StructuralDiff:
    """
    Compare shallow views. Values are compared by digest, not ==, so
    objects with unusual equality semantics still diff deterministically.
    """
    old_view = shallow_view(old_value)
    new_view = shallow_view(new_value)

    additions = tuple(k for k in new_view if k not in old_view)
    removals = tuple(Removal(key=k, value=v) for k, v in old_view.items() if k not in new_view)
    modifications = tuple(
        Modification(key=k, old_value=old_view[k], new_value=v)
        for k, v in new_view.items()
        if k in old_view and digest(old_view[k]) != digest(v)
    )
    return StructuralDiff(
        additions=additions,
        removals=removals,
        modifications=modifications,
        old_container=container_kind(old_value),
    )


# =============================================================================
# TRANSFORMATION METADATA
# =============================================================================

@dataclass(frozen=True)
class InverseDescriptor:
    """Everything needed to reconstruct the parent of a derived symbol."""
    restore_identity: Identity
    restore_value: Any
    restore_log_length: int
    restore_structure: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class TransformationMetadata:
    """How a derived symbol came to be."""
    request: Any = None
    operands: Tuple[Identity, ...] = ()
    inverse: Optional[InverseDescriptor] = None
    diff: Optional[StructuralDiff] = None
    intensity: float = 0.0
    prune_record: Optional[PruneRecord] = None

    @staticmethod
    def root() -> TransformationMetadata:
        return TransformationMetadata()


# =============================================================================
# SYMBOL
# =============================================================================

@dataclass(frozen=True, eq=False)
class Symbol:
    """
    Versioned value.

    Equality and hashing follow identity: two symbols with the same
    identity address the same slot in the space.
    """
    value: Any
    identity: Identity
    shape: ShapeTag
    capabilities: CapabilitySet
    coordinate: int
    ancestry: Tuple[Identity, ...] = ()
    parent: Optional[Identity] = None
    operation_log: OperationLog = ()
    metadata: TransformationMetadata = field(default_factory=TransformationMetadata.root)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Symbol):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def is_write_capable(self, now: int) -> bool:
        """At least one token is unexpired and has the write bit."""
        return grants(self.capabilities, Permission.WRITE, now)

    def can(self, operation: str, now: int) -> bool:
        return grants(self.capabilities, operation, now)

    @property
    def structure(self) -> Dict[str, Any]:
        return extract_structure(self.value)

    @property
    def source_code(self) -> str:
        return render_source(self.value)

    @property
    def diff(self) -> Optional[StructuralDiff]:
        return self.metadata.diff

    def __repr__(self) -> str:
        return (
            f"Symbol({self.identity.short}, shape={self.shape.value}, "
            f"coord={self.coordinate}, depth={len(self.ancestry)})"
        )
