import json
from dataclasses import asdict, is_dataclass
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict

from ..contracts.base import Identity


class StrictSymbolEncoder(json.JSONEncoder):
    """
    JSON Encoder that prioritizes Fidelity over Flexibility.

    RULES:
    1. Dates MUST be ISO 8601 strings (UTC).
    2. Enums MUST use their .value.
    3. Decimals are written as floats.
    4. Sets -> Lists (sorted for determinism).
    5. Identities -> their hex value.
    6. Callables -> {"__callable__": qualified name}. They do not round-trip.
    7. Bytes -> {"__bytes__": hex}.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (set, frozenset)):
            return sorted(obj, key=lambda v: json.dumps(v, cls=StrictSymbolEncoder, sort_keys=True))
        if isinstance(obj, Identity):
            return obj.value
        if isinstance(obj, (bytes, bytearray)):
            return {"__bytes__": bytes(obj).hex()}
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        if is_dataclass(obj) and not isinstance(obj, type):
            return asdict(obj)
        if callable(obj):
            return {"__callable__": callable_reference(obj)}

        return super().default(obj)


def to_json(obj: Any, **kwargs: Any) -> str:
    """Serialize with the strict encoder and sorted keys."""
    return json.dumps(obj, cls=StrictSymbolEncoder, sort_keys=True, **kwargs)


def callable_reference(obj: Any) -> str:
    name = getattr(obj, "__qualname__", None) or type(obj).__qualname__
    return f"{getattr(obj, '__module__', '')}.{name}"


# =============================================================================
# TAGGED VALUE CODEC (persistence wire form)
# =============================================================================
#
# JSON has no tuples, sets, bytes, complex numbers or non-string keys,
# and json cannot write ints past the interpreter's digit limit. Those
# values are wrapped in single-key tag objects so a stored value decodes
# to one with the same identity. Plain dicts that could be mistaken for
# a tag are themselves written as "__map__" pairs.

_TAGS = frozenset({
    "__tuple__", "__set__", "__frozenset__", "__bytes__", "__bytearray__",
    "__complex__", "__int__", "__map__", "__callable__", "__object__",
})

# ints wider than this are written as hex
_MAX_PLAIN_INT_BITS = 1024


def _is_plain_mapping(value: Dict[Any, Any]) -> bool:
    if not all(isinstance(k, str) for k in value):
        return False
    return not (len(value) == 1 and next(iter(value)) in _TAGS)


def encode_value(value: Any) -> Any:
    """
    Convert a value into a JSON-encodable tagged tree.

    Enums are written as their value; callables and other objects as
    references. None of these round-trip. Raises RecursionError for
    pathologically deep values.
    """
    if value is None or isinstance(value, (bool, str, float)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, int):
        if value.bit_length() > _MAX_PLAIN_INT_BITS:
            return {"__int__": hex(value)}
        return value
    if isinstance(value, complex):
        return {"__complex__": [value.real, value.imag]}
    if isinstance(value, bytearray):
        return {"__bytearray__": bytes(value).hex()}
    if isinstance(value, bytes):
        return {"__bytes__": value.hex()}
    if isinstance(value, dict):
        if _is_plain_mapping(value):
            return {k: encode_value(v) for k, v in value.items()}
        return {"__map__": [[encode_value(k), encode_value(v)] for k, v in value.items()]}
    if isinstance(value, tuple):
        return {"__tuple__": [encode_value(v) for v in value]}
    if isinstance(value, list):
        return [encode_value(v) for v in value]
    if isinstance(value, (set, frozenset)):
        members = sorted((encode_value(v) for v in value), key=lambda v: json.dumps(v, sort_keys=True))
        return {"__frozenset__" if isinstance(value, frozenset) else "__set__": members}
    if callable(value):
        return {"__callable__": callable_reference(value)}
    try:
        state = json.loads(to_json(value))
    except (TypeError, ValueError):
        state = repr(value)
    return {"__object__": state}


def decode_value(node: Any) -> Any:
    """Inverse of encode_value. References decode to their tag objects."""
    if isinstance(node, list):
        return [decode_value(v) for v in node]
    if not isinstance(node, dict):
        return node
    if len(node) == 1:
        tag, body = next(iter(node.items()))
        if tag == "__tuple__":
            return tuple(decode_value(v) for v in body)
        if tag == "__set__":
            return {decode_value(v) for v in body}
        if tag == "__frozenset__":
            return frozenset(decode_value(v) for v in body)
        if tag == "__bytes__":
            return bytes.fromhex(body)
        if tag == "__bytearray__":
            return bytearray.fromhex(body)
        if tag == "__complex__":
            return complex(body[0], body[1])
        if tag == "__int__":
            return int(body, 16)
        if tag == "__map__":
            return {decode_value(k): decode_value(v) for k, v in body}
        if tag in _TAGS:
            return dict(node)
    return {k: decode_value(v) for k, v in node.items()}
