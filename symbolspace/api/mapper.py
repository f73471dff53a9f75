"""
API Mapper
==========

Transforms internal symbols, outcomes and audit entries into JSON DTOs.
Values go through StrictSymbolEncoder so callables, sets and bytes are
exposed as their tagged JSON forms, never smoothed into strings.
"""
import json
from typing import Any, Dict, List

from ..contracts.events import AuditLogEntry
from ..core.symbol import Symbol
from ..core.transform import TransformOutcome
from ..domain.serialization import to_json
from ..temporal.reversion import RevertOutcome


def json_safe(value: Any) -> Any:
    """Round-trip through the strict encoder to get plain JSON types."""
    return json.loads(to_json(value))


def map_symbol_to_dto(symbol: Symbol, now: int) -> Dict[str, Any]:
    """Map a Symbol to SymbolDTO."""
    return {
        "identity": symbol.identity.value,
        "shape": symbol.shape.value,
        "value": json_safe(symbol.value),
        "coordinate": symbol.coordinate,
        "parent": symbol.parent.value if symbol.parent else None,
        "ancestry": [a.value for a in symbol.ancestry],
        "write_capable": symbol.is_write_capable(now),
        "capabilities": [
            _map_token(token, now)
            for token in sorted(symbol.capabilities, key=lambda t: t.token_id)
        ],
        "operation_log": [json_safe(entry.to_structure()) for entry in symbol.operation_log],
        "diff": json_safe(symbol.diff.to_dict()) if symbol.diff else None,
        "source": symbol.source_code,
    }


def _map_token(token, now: int) -> Dict[str, Any]:
    return {
        "token_id": token.token_id,
        "permissions": sorted(p.name.lower() for p in token.permission_set),
        "expiry": token.expiry,
        "expired": token.is_expired(now),
        "intensity": token.intensity,
        "intensity_band": token.intensity_band,
    }


def map_transform_outcome(outcome: TransformOutcome, now: int) -> Dict[str, Any]:
    return {
        "applied": outcome.applied,
        "mode": outcome.mode.value if outcome.mode else None,
        "error": _map_error(outcome.error),
        "symbol": map_symbol_to_dto(outcome.symbol, now),
    }


def map_revert_outcome(outcome: RevertOutcome, now: int) -> Dict[str, Any]:
    return {
        "requested_steps": outcome.requested_steps,
        "resolved_steps": outcome.resolved_steps,
        "degraded": outcome.degraded,
        "missing": outcome.missing.value if outcome.missing else None,
        "error": _map_error(outcome.error),
        "symbol": map_symbol_to_dto(outcome.symbol, now),
    }


def map_audit_entries(entries: List[AuditLogEntry]) -> List[Dict[str, Any]]:
    return [
        {
            "entry_id": e.entry_id,
            "event_type": e.event_type.value,
            "timestamp": e.timestamp.to_iso(),
            "layer": e.layer,
            "action": e.action,
            "logical_time": e.logical_time,
            "entity_id": e.entity_id,
            "metadata": e.metadata_dict(),
        }
        for e in entries
    ]


def _map_error(error) -> Any:
    if error is None:
        return None
    return {
        "code": error.code.name,
        "message": error.message,
        "context": dict(error.context),
    }
