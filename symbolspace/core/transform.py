"""
Transformation Engine
=====================

Capability-gated derivation of new symbols from existing ones.

PIPELINE (per call):
1. Capability gate - no unexpired write token means a no-op that
   returns the input symbol itself (same identity)
2. Effect - exactly one of four explicit request variants:
   ApplyFunction / Replace / Merge / Literal
3. Derivation - new symbol sharing the capability set by reference,
   parent = input identity, ancestry extended by one, log extended by
   one write entry positioned at the input's coordinate
4. Diff + metadata - shallow structural diff, operand identities and
   an inverse descriptor sufficient to rebuild the parent
5. Pruning - the relevance pruner runs on the new log before publish

transform() NEVER raises. Callers that need a hard signal use
transform_with_outcome() or compare identities.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Union

from ..contracts.base import Error, ErrorCode, Permission, Timestamp
from ..contracts.events import AuditEventType, AuditLogEntry
from ..storage import SymbolSpace
from ..temporal.operation_log import OperationEntry, OperationKind, append_entry
from ..temporal.pruning import RelevancePruner
from .capability import strongest_intensity
from .identity import (
    SourceIntrospector, extract_structure, identity, shape_of, snapshot_value, summarize_payload
)
from .symbol import (
    InverseDescriptor, Symbol, TransformationMetadata, compute_structural_diff
)


# =============================================================================
# REQUEST VARIANTS
# =============================================================================

class TransformMode(Enum):
    FUNCTION = "function"
    REPLACE = "replace"
    MERGE = "merge"
    LITERAL = "literal"


@dataclass(frozen=True)
class ApplyFunction:
    """New value = fn(old value). fn receives a private copy."""
    fn: Callable[[Any], Any]
    description: str = ""
    mode = TransformMode.FUNCTION


@dataclass(frozen=True)
class Replace:
    """New value = value."""
    value: Any
    mode = TransformMode.REPLACE


@dataclass(frozen=True)
class Merge:
    """New value = shallow merge of fields over the old mapping."""
    fields: Mapping[str, Any]
    mode = TransformMode.MERGE


@dataclass(frozen=True)
class Literal:
    """Fallback: the request payload itself becomes the new value."""
    payload: Any
    mode = TransformMode.LITERAL


TransformRequest = Union[ApplyFunction, Replace, Merge, Literal]


def parse_request(raw: Any) -> TransformRequest:
    """
    Map a loosely shaped request onto an explicit variant.

    Recognized shapes:
        ApplyFunction / Replace / Merge / Literal instances
        a bare callable                         -> ApplyFunction
        {"operation": callable}                 -> ApplyFunction
        {"operation": "set", "value": v}        -> Replace
        {"operation": "merge", "data": {...}}   -> Merge
    Anything else becomes Literal(raw). Operation names are only
    compared when they are strings, so array-like or otherwise exotic
    operation values fall through to Literal as well. May still raise
    if the mapping itself misbehaves on lookup.
    """
    if isinstance(raw, (ApplyFunction, Replace, Merge, Literal)):
        return raw
    if callable(raw):
        return ApplyFunction(fn=raw)
    if isinstance(raw, Mapping) and "operation" in raw:
        operation = raw["operation"]
        if callable(operation):
            return ApplyFunction(fn=operation, description=str(raw.get("description", "")))
        if isinstance(operation, str):
            if operation == "set" and "value" in raw:
                return Replace(value=raw["value"])
            if operation == "merge" and isinstance(raw.get("data"), Mapping):
                return Merge(fields=raw["data"])
    return Literal(payload=raw)


def apply_request(request: TransformRequest, old_value: Any) -> Any:
    """Compute the new value for a request. May raise (ApplyFunction only)."""
    if isinstance(request, ApplyFunction):
        return request.fn(snapshot_value(old_value))
    if isinstance(request, Replace):
        return request.value
    if isinstance(request, Merge):
        base = dict(old_value) if isinstance(old_value, Mapping) else {}
        base.update(request.fields)
        return base
    return request.payload


def describe_request(request: TransformRequest) -> Any:
    """Serializable summary of a request for log payloads."""
    if isinstance(request, ApplyFunction):
        name = getattr(request.fn, '__qualname__', None) or type(request.fn).__qualname__
        return {'mode': request.mode.value, 'fn': name, 'description': request.description}
    if isinstance(request, Merge):
        return {'mode': request.mode.value, 'fields': sorted(str(k) for k in request.fields)}
    return {'mode': request.mode.value}


# =============================================================================
# OUTCOMES
# =============================================================================

@dataclass(frozen=True)
class TransformOutcome:
    """
    Result of one transformation attempt.

    applied=False means the input symbol was returned unchanged; error
    says why (PERMISSION_DENIED, MALFORMED_REQUEST or TRANSFORM_FAILED).
    """
    symbol: Symbol
    applied: bool
    mode: Optional[TransformMode] = None
    error: Optional[Error] = None

    @property
    def blocked(self) -> bool:
        return not self.applied


# =============================================================================
# ENGINE
# =============================================================================

class TransformationEngine:
    """
    Derives new symbols.

    BOUNDARY ENFORCEMENT:
    - NEVER mutates the input symbol
    - ONLY writes to the space through allocate()
    - Capabilities are shared, never narrowed, by a transform
    """

    def __init__(
        self,
        space: SymbolSpace,
        pruner: Optional[RelevancePruner] = None,
        introspector: Optional[SourceIntrospector] = None
    ):
        self._space = space
        self._pruner = pruner or RelevancePruner()
        self._introspector = introspector
        self._audit_log: List[AuditLogEntry] = []
        self._audit_counter = 0

    @property
    def pruner(self) -> RelevancePruner:
        return self._pruner

    def transform(self, symbol: Symbol, request: Any) -> Symbol:
        return self.transform_with_outcome(symbol, request).symbol

    def transform_with_outcome(self, symbol: Symbol, request: Any) -> TransformOutcome:
        now = self._space.now()

        # 1. Capability gate
        if not symbol.is_write_capable(now):
            error = Error.create(
                ErrorCode.PERMISSION_DENIED,
                "Transformation blocked: insufficient capabilities",
                identity=symbol.identity.value,
                now=now
            )
            self._log_audit("transform_blocked", now, symbol.identity.value,
                            event_type=AuditEventType.ERROR,
                            metadata=(("code", error.code.name),))
            return TransformOutcome(symbol=symbol, applied=False, error=error)

        # 2. Effect
        try:
            parsed = parse_request(request)
        except Exception as e:
            error = Error.create(
                ErrorCode.MALFORMED_REQUEST,
                f"Request could not be classified: {type(e).__name__}: {e}",
                identity=symbol.identity.value
            )
            self._log_audit("transform_malformed", now, symbol.identity.value,
                            event_type=AuditEventType.ERROR,
                            metadata=(("code", error.code.name),))
            return TransformOutcome(symbol=symbol, applied=False, error=error)

        try:
            new_value = apply_request(parsed, symbol.value)
        except Exception as e:
            error = Error.create(
                ErrorCode.TRANSFORM_FAILED,
                f"Transformation function raised {type(e).__name__}: {e}",
                identity=symbol.identity.value,
                mode=parsed.mode.value
            )
            self._log_audit("transform_failed", now, symbol.identity.value,
                            event_type=AuditEventType.ERROR,
                            metadata=(("code", error.code.name), ("mode", parsed.mode.value)))
            return TransformOutcome(symbol=symbol, applied=False, mode=parsed.mode, error=error)

        intensity = strongest_intensity(symbol.capabilities, Permission.WRITE, now)
        derived = self._derive(
            parent=symbol,
            new_value=new_value,
            kind=OperationKind.WRITE,
            request=parsed,
            payload=describe_request(parsed),
            intensity=intensity,
        )
        self._log_audit(
            "transform_applied", derived.coordinate, derived.identity.value,
            metadata=(
                ("mode", parsed.mode.value),
                ("parent", symbol.identity.value),
                ("changed", str(derived.identity != symbol.identity)),
            )
        )
        return TransformOutcome(symbol=derived, applied=True, mode=parsed.mode)

    def revert_structurally(self, symbol: Symbol) -> TransformOutcome:
        """
        Undo a symbol's own structural diff into a NEW symbol.

        Use when the parent has been evicted and single-step reversion
        cannot resolve it. Gated like any other write. Root symbols (no
        diff) come back unchanged.
        """
        now = self._space.now()
        diff = symbol.metadata.diff
        if diff is None:
            return TransformOutcome(
                symbol=symbol,
                applied=False,
                error=Error.create(
                    ErrorCode.BROKEN_PROVENANCE,
                    "No structural diff available for revert",
                    identity=symbol.identity.value
                )
            )
        if not symbol.is_write_capable(now):
            return TransformOutcome(
                symbol=symbol,
                applied=False,
                error=Error.create(
                    ErrorCode.PERMISSION_DENIED,
                    "Structural revert blocked: insufficient capabilities",
                    identity=symbol.identity.value
                )
            )

        restored_value = diff.apply_inverse(symbol.value)
        derived = self._derive(
            parent=symbol,
            new_value=restored_value,
            kind=OperationKind.RESTORE,
            request=None,
            payload={'mode': 'structural_revert'},
            intensity=strongest_intensity(symbol.capabilities, Permission.WRITE, now),
        )
        self._log_audit("structural_revert", derived.coordinate, derived.identity.value,
                        event_type=AuditEventType.REVERSION,
                        metadata=(("from", symbol.identity.value),))
        return TransformOutcome(symbol=derived, applied=True)

    # -------------------------------------------------------------------------
    # Derivation
    # -------------------------------------------------------------------------

    def _derive(
        self,
        parent: Symbol,
        new_value: Any,
        kind: OperationKind,
        request: Optional[TransformRequest],
        payload: Any,
        intensity: float
    ) -> Symbol:
        owned = snapshot_value(new_value)
        child_identity = identity(owned, self._introspector)
        diff = compute_structural_diff(parent.value, owned)

        entry = OperationEntry.create(
            kind=kind,
            payload={**payload, 'operand': parent.identity.value, 'result': child_identity.value},
            position=parent.coordinate,
            inverse_payload={'restore': parent.identity.value},
            summary=summarize_payload(owned, keys=list(diff.touched_keys)),
        )
        inverse = InverseDescriptor(
            restore_identity=parent.identity,
            restore_value=parent.value,
            restore_log_length=len(parent.operation_log),
            restore_structure=extract_structure(parent.value, self._introspector),
        )
        candidate_log = append_entry(parent.operation_log, entry)
        shape = shape_of(owned)
        def build(coordinate: int) -> Symbol:
            log, record = self._pruner.prune(candidate_log, owned, coordinate)
            return Symbol(
                value=owned,
                identity=child_identity,
                shape=shape,
                capabilities=parent.capabilities,
                coordinate=coordinate,
                ancestry=parent.ancestry + (parent.identity,),
                parent=parent.identity,
                operation_log=log,
                metadata=TransformationMetadata(
                    request=request,
                    operands=(parent.identity,),
                    inverse=inverse,
                    diff=diff,
                    intensity=intensity,
                    prune_record=record,
                ),
            )

        derived = self._space.allocate(build)
        record = derived.metadata.prune_record
        if record is not None:
            self._log_audit(
                "log_pruned", derived.coordinate, derived.identity.value,
                event_type=AuditEventType.PRUNING,
                metadata=(
                    ("original_length", str(record.original_length)),
                    ("retained_length", str(record.retained_length)),
                )
            )
        return derived

    # -------------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------------

    def _log_audit(
        self,
        action: str,
        logical_time: int,
        entity_id: Optional[str] = None,
        event_type: AuditEventType = AuditEventType.TRANSFORMATION,
        metadata: tuple = ()
    ):
        """Add entry to internal audit log."""
        self._audit_counter += 1
        self._audit_log.append(AuditLogEntry(
            entry_id=f"audit_transform_{self._audit_counter:06d}",
            event_type=event_type,
            timestamp=Timestamp.now(),
            layer="core",
            action=action,
            logical_time=logical_time,
            entity_id=entity_id,
            metadata=metadata
        ))

    def get_audit_log(self) -> List[AuditLogEntry]:
        """Return copy of audit log entries."""
        return list(self._audit_log)
