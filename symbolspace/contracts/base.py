"""
Base Contracts and Shared Types

These are the foundational types used across all layers.
All types here are IMMUTABLE and represent pure data.
No behavior, no side effects, no dependencies.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Layers may import types but MUST NOT modify this module
- All types are frozen dataclasses for immutability guarantee
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple
from enum import Enum, IntFlag, auto


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for deterministic error handling.
    No condition in the core is fatal - these describe degraded outcomes.
    """
    # Capability errors
    PERMISSION_DENIED = auto()

    # Transformation errors
    MALFORMED_REQUEST = auto()
    TRANSFORM_FAILED = auto()

    # Reversion errors
    BROKEN_PROVENANCE = auto()

    # Storage errors
    STORAGE_CORRUPTION = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @staticmethod
    def create(code: ErrorCode, message: str, **context: object) -> Error:
        """Build an error stamped with the current UTC time."""
        return Error(
            code=code,
            message=message,
            timestamp=datetime.now(timezone.utc),
            context=tuple((key, str(value)) for key, value in sorted(context.items()))
        )

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            context=self.context + ((key, value),)
        )


@dataclass(frozen=True)
class Result:
    """
    Generic result type for operations that can fail.
    Either contains a value OR an error, never both.
    """
    value: Optional[object] = None
    error: Optional[Error] = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    @staticmethod
    def success(value: object) -> Result:
        return Result(value=value, error=None)

    @staticmethod
    def failure(error: Error) -> Result:
        return Result(value=None, error=error)


# =============================================================================
# IDENTITY TYPES (Immutable, hash-verified)
# =============================================================================

@dataclass(frozen=True)
class Identity:
    """
    Immutable content fingerprint.

    Fixed-width SHA-256 hex digest over a value's shape tag and canonical
    serialization. This is the ONLY key into the symbol space.
    """
    value: str

    def __post_init__(self):
        if not self.value or not isinstance(self.value, str):
            raise ValueError("Identity value must be a non-empty string")

    @property
    def short(self) -> str:
        return self.value[:12]

    def __str__(self) -> str:
        return self.value


class ShapeTag(Enum):
    """Runtime shape of a value. Part of every identity."""
    PRIMITIVE = "primitive"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    CALLABLE = "callable"
    OPAQUE = "opaque"


# =============================================================================
# PERMISSIONS
# =============================================================================

class Permission(IntFlag):
    """Capability permission bits."""
    NONE = 0
    READ = 1
    WRITE = 2
    EXECUTE = 4
    NETWORK = 8
    ALL = READ | WRITE | EXECUTE | NETWORK

    @staticmethod
    def parse(operation: str) -> Permission:
        """Map an operation name ('read', 'write', ...) to its bit."""
        try:
            return Permission[operation.upper()]
        except KeyError:
            return Permission.NONE


# =============================================================================
# TEMPORAL TYPES (Immutable, explicit semantics)
# =============================================================================

@dataclass(frozen=True)
class Timestamp:
    """
    Immutable wall-clock timestamp, used for audit records only.
    All timestamps are UTC, never local time. Core semantics never read it.
    """
    value: datetime

    def __post_init__(self):
        if self.value.tzinfo is None:
            object.__setattr__(self, 'value', self.value.replace(tzinfo=timezone.utc))

    @staticmethod
    def now() -> Timestamp:
        return Timestamp(value=datetime.now(timezone.utc))

    def to_iso(self) -> str:
        return self.value.isoformat()


@dataclass(frozen=True)
class TimeRange:
    """Immutable time range for audit queries."""
    start: Timestamp
    end: Timestamp

    def __post_init__(self):
        if self.start.value > self.end.value:
            raise ValueError("TimeRange start must be before or equal to end")

    def contains(self, timestamp: Timestamp) -> bool:
        return self.start.value <= timestamp.value <= self.end.value
