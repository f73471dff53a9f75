"""
Identity Hasher
===============

Deterministic, content-addressed identity for arbitrary values.

INVARIANTS:
- identity(v) == identity(v) across calls and across processes
- Shape is part of the identity: a list and a tuple with the same
  elements never collide, nor does the string "1" and the integer 1
- Canonical serialization is order-stable (mapping keys and set
  members are sorted by their canonical text) and type-annotated
- Total: any value hashes, including cyclic structures and objects
  with no stable serialization

The structural view (extract_structure, render_source) is the
homoiconic representation of a value. Callable introspection is
delegated to a pluggable SourceIntrospector supplied by the host.
"""

from __future__ import annotations
from dataclasses import dataclass, fields, is_dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Mapping, Optional, Set, Tuple
import copy
import hashlib
import inspect
import json

from ..contracts.base import Identity, ShapeTag


# Key used for the shallow view of values that have no keys of their own
SCALAR_KEY = "$"

_PRIMITIVE_TYPES = (type(None), bool, int, float, complex, str, bytes, bytearray)
_SEQUENCE_TYPES = (list, tuple, set, frozenset)


# =============================================================================
# CALLABLE INTROSPECTION (host capability)
# =============================================================================

class SourceIntrospector:
    """
    Describes callables for hashing and structural views.

    The default implementation uses the inspect module. Hosts that
    cannot read source (frozen apps, REPL lambdas) may substitute
    their own implementation.
    """

    def describe(self, fn: Callable) -> Dict[str, Any]:
        name = getattr(fn, '__qualname__', None) or getattr(fn, '__name__', None) or 'anonymous'
        return {
            'name': name,
            'module': getattr(fn, '__module__', None) or '',
            'arity': self.arity(fn),
            'body': self.source(fn),
            'code': self.code_digest(fn),
        }

    def source(self, fn: Callable) -> str:
        try:
            return inspect.getsource(fn).strip()
        except (OSError, TypeError):
            return repr(type(fn).__qualname__)

    def arity(self, fn: Callable) -> int:
        try:
            return len(inspect.signature(fn).parameters)
        except (TypeError, ValueError):
            return -1

    def code_digest(self, fn: Callable) -> str:
        code = getattr(fn, '__code__', None)
        if code is None:
            return ''
        return hashlib.sha256(_code_material(code)).hexdigest()[:16]


def _code_material(code: Any) -> bytes:
    """
    Bytecode, names and constants of a code object.

    Nested code objects (comprehensions, inner lambdas and defs) are
    walked instead of repr'd; their repr carries a memory address.
    """
    parts = [code.co_code, ','.join(code.co_names).encode('utf-8')]
    for const in code.co_consts:
        if inspect.iscode(const):
            parts.append(b'code:' + _code_material(const))
        else:
            parts.append(canonical_serialization(const).encode('utf-8'))
    return b'|'.join(parts)


_default_introspector = SourceIntrospector()


def set_default_introspector(introspector: SourceIntrospector) -> None:
    """Install the host's introspector for all subsequent hashing."""
    global _default_introspector
    _default_introspector = introspector


def get_default_introspector() -> SourceIntrospector:
    return _default_introspector


# =============================================================================
# SHAPE DETECTION
# =============================================================================

def shape_of(value: Any) -> ShapeTag:
    """Classify a value's runtime shape."""
    if isinstance(value, _PRIMITIVE_TYPES) or isinstance(value, Enum):
        return ShapeTag.PRIMITIVE
    if isinstance(value, Mapping):
        return ShapeTag.MAPPING
    if isinstance(value, _SEQUENCE_TYPES):
        return ShapeTag.SEQUENCE
    if callable(value):
        return ShapeTag.CALLABLE
    if is_dataclass(value):
        return ShapeTag.MAPPING
    return ShapeTag.OPAQUE


# =============================================================================
# CANONICAL SERIALIZATION
# =============================================================================
#
# The canonical form is a tagged JSON tree: every node is a list whose
# first element names the runtime type, so two values of different types
# never produce the same text. The tree is emitted as text by an explicit
# stack walk, never by recursion, so nesting depth is bounded only by
# memory and the result does not depend on the caller's stack depth.

_TEXT, _VALUE, _LEAVE = 0, 1, 2


@dataclass(frozen=True)
class _Child:
    value: Any


def _canonical_text(node: Any) -> str:
    return json.dumps(node, separators=(',', ':'), ensure_ascii=True)


def _scalar_node(value: Any) -> Optional[list]:
    if value is None:
        return ["none"]
    if isinstance(value, bool):
        return ["bool", value]
    if isinstance(value, Enum):
        return ["enum", type(value).__qualname__, value.name]
    if isinstance(value, int):
        # hex() has no digit limit, unlike str()
        return ["int", hex(value)]
    if isinstance(value, float):
        return ["float", repr(value)]
    if isinstance(value, complex):
        return ["complex", repr(value)]
    if isinstance(value, str):
        return ["str", value]
    if isinstance(value, (bytes, bytearray)):
        return [type(value).__name__, bytes(value).hex()]
    return None


def _joined(parts: List[Any]) -> List[Any]:
    """Interleave commas between parts."""
    out: List[Any] = []
    for index, part in enumerate(parts):
        if index:
            out.append(',')
        out.append(part)
    return out


def _object_state(value: Any) -> Optional[Dict[str, Any]]:
    try:
        return dict(vars(value))
    except TypeError:
        return None


def _safe_repr(value: Any) -> str:
    try:
        return repr(value)
    except Exception:
        return f"<{type(value).__qualname__}>"


def _expand(value: Any, introspector: SourceIntrospector) -> List[Any]:
    """
    One level of the canonical tree for a container value.

    Returns literal text pieces and _Child markers; children are
    serialized by the caller's walk.
    """
    qualname = _canonical_text(type(value).__qualname__)
    if isinstance(value, Mapping):
        items = sorted(
            ((canonical_serialization(k, introspector), v) for k, v in value.items()),
            key=lambda pair: pair[0]
        )
        body = _joined([['[', key, ',', _Child(v), ']'] for key, v in items])
        return ['["map",', qualname, ',['] + _flatten(body) + [']]']
    if isinstance(value, (list, tuple)):
        body = _joined([_Child(v) for v in value])
        return [f'["{type(value).__name__}",['] + body + [']]']
    if isinstance(value, (set, frozenset)):
        members = sorted(canonical_serialization(v, introspector) for v in value)
        return [f'["{type(value).__name__}",[', ','.join(members), ']]']
    if is_dataclass(value) and not isinstance(value, type):
        body = _joined([
            ['[', _canonical_text(f.name), ',', _Child(getattr(value, f.name)), ']']
            for f in fields(value)
        ])
        return ['["dataclass",', qualname, ',['] + _flatten(body) + [']]']
    if callable(value):
        description = introspector.describe(value)
        header = _canonical_text(["callable", description['name'], description['module'],
                                  description['body'], description['code']])
        cells = []
        for cell in getattr(value, '__closure__', None) or ():
            try:
                cells.append(_Child(cell.cell_contents))
            except ValueError:
                # empty cell
                cells.append('["empty"]')
        return [header[:-1], ',['] + _joined(cells) + [']]']
    module = _canonical_text(type(value).__module__)
    state = _object_state(value)
    if state is not None:
        return ['["object",', module, ',', qualname, ',', _Child(state), ']']
    return ['["object",', module, ',', qualname, ',', _canonical_text(["repr", _safe_repr(value)]), ']']


def _flatten(nested: List[Any]) -> List[Any]:
    out: List[Any] = []
    for part in nested:
        if isinstance(part, list):
            out.extend(part)
        else:
            out.append(part)
    return out


def iter_canonical(value: Any, introspector: Optional[SourceIntrospector] = None) -> Iterator[str]:
    """
    Yield the canonical serialization of a value in text chunks.

    Cycles are cut at the first revisit of a container on the current
    path and emitted as ["cycle", type].
    """
    introspector = introspector or _default_introspector
    stack: List[Tuple[int, Any]] = [(_VALUE, value)]
    path: Set[int] = set()
    while stack:
        kind, item = stack.pop()
        if kind == _TEXT:
            yield item
            continue
        if kind == _LEAVE:
            path.discard(item)
            continue
        node = _scalar_node(item)
        if node is not None:
            yield _canonical_text(node)
            continue
        marker = id(item)
        if marker in path:
            yield _canonical_text(["cycle", type(item).__qualname__])
            continue
        path.add(marker)
        stack.append((_LEAVE, marker))
        for part in reversed(_expand(item, introspector)):
            if isinstance(part, _Child):
                stack.append((_VALUE, part.value))
            else:
                stack.append((_TEXT, part))


def canonical_serialization(value: Any, introspector: Optional[SourceIntrospector] = None) -> str:
    """Canonical text of a value (stable across processes)."""
    return ''.join(iter_canonical(value, introspector))


def identity(value: Any, introspector: Optional[SourceIntrospector] = None) -> Identity:
    """
    Compute the identity of a value.

    identity = sha256(shape_tag | canonical_serialization)

    The serialization is streamed into the hash, so very large values
    are never held as one string.
    """
    hasher = hashlib.sha256(f"{shape_of(value).value}|".encode('utf-8'))
    for chunk in iter_canonical(value, introspector):
        hasher.update(chunk.encode('utf-8'))
    return Identity(value=hasher.hexdigest())


def digest(value: Any) -> str:
    """Short digest of a value, used in payload summaries."""
    return identity(value).value[:16]


# =============================================================================
# SHALLOW VIEWS
# =============================================================================

def shallow_view(value: Any) -> Dict[str, Any]:
    """
    Shallow key/property view of a value.

    Mappings expose their keys, lists and tuples their indices,
    dataclasses their fields. Everything else is a single scalar key.
    """
    if isinstance(value, Mapping):
        return {str(k): v for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return {str(i): v for i, v in enumerate(value)}
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name) for f in fields(value)}
    return {SCALAR_KEY: value}


def rebuild_from_view(view: Dict[str, Any], container: str) -> Any:
    """Inverse of shallow_view for the container kinds it understands."""
    if container == 'list' or container == 'tuple':
        ordered = [view[k] for k in sorted(view, key=lambda k: int(k))]
        return ordered if container == 'list' else tuple(ordered)
    if container == 'scalar':
        return view.get(SCALAR_KEY)
    return dict(view)


def container_kind(value: Any) -> str:
    if isinstance(value, Mapping) or (is_dataclass(value) and not isinstance(value, type)):
        return 'mapping'
    if isinstance(value, list):
        return 'list'
    if isinstance(value, tuple):
        return 'tuple'
    return 'scalar'


@dataclass(frozen=True)
class PayloadSummary:
    """
    Structured summary of a payload for relevance scoring.

    keys: shallow key set
    digests: digests of each shallow value plus the whole payload
    """
    keys: FrozenSet[str]
    digests: FrozenSet[str]

    @staticmethod
    def empty() -> PayloadSummary:
        return PayloadSummary(keys=frozenset(), digests=frozenset())

    def overlaps(self, other: PayloadSummary) -> bool:
        return bool(self.keys & other.keys) or bool(self.digests & other.digests)


def summarize_payload(payload: Any, keys: Optional[List[str]] = None) -> PayloadSummary:
    """
    Summarize a payload, optionally restricted to a subset of its keys.
    """
    if payload is None:
        return PayloadSummary.empty()
    view = shallow_view(payload)
    selected = [k for k in keys if k in view] if keys is not None else list(view)
    digests = {digest(view[k]) for k in selected}
    if keys is None:
        digests.add(digest(payload))
    return PayloadSummary(
        keys=frozenset(k for k in selected if k != SCALAR_KEY),
        digests=frozenset(digests)
    )


# =============================================================================
# HOMOICONIC VIEWS
# =============================================================================

def extract_structure(value: Any, introspector: Optional[SourceIntrospector] = None) -> Dict[str, Any]:
    """Structural (homoiconic) description of a value."""
    introspector = introspector or _default_introspector
    shape = shape_of(value)
    if shape == ShapeTag.CALLABLE:
        description = introspector.describe(value)
        return {
            'type': 'function',
            'name': description['name'],
            'arity': description['arity'],
            'body': description['body'],
            'homoiconic': True,
        }
    if shape in (ShapeTag.MAPPING, ShapeTag.SEQUENCE) and not isinstance(value, (set, frozenset)):
        view = shallow_view(value)
        return {
            'type': 'object' if shape == ShapeTag.MAPPING else 'sequence',
            'properties': list(view.keys()),
            'structure': {k: type(v).__name__ for k, v in view.items()},
            'homoiconic': True,
        }
    return {
        'type': type(value).__name__,
        'value': value if shape == ShapeTag.PRIMITIVE else _safe_repr(value),
        'homoiconic': True,
    }


def render_source(value: Any, introspector: Optional[SourceIntrospector] = None) -> str:
    """Render a constructor expression that rebuilds the value."""
    introspector = introspector or _default_introspector
    if shape_of(value) == ShapeTag.CALLABLE:
        return f"construct({introspector.source(value)})"
    try:
        return f"construct({json.dumps(value, indent=2, sort_keys=True)})"
    except (TypeError, ValueError, RecursionError):
        return f"construct({_safe_repr(value)})"


def snapshot_value(value: Any) -> Any:
    """
    Private copy of a value so later caller mutation cannot change a
    published symbol. Values that refuse to be copied are kept by reference.
    """
    if isinstance(value, _PRIMITIVE_TYPES) or callable(value):
        return value
    try:
        return copy.deepcopy(value)
    except (TypeError, copy.Error, RecursionError):
        return value
