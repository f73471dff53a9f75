"""
Logical Clock
=============

Process-wide logical time for symbol coordinates and token expiry.

GUARANTEES:
- Monotonic: the value never decreases except on explicit reset()
- Advances EXACTLY once per symbol construction
- Never reads system time; expiry is purely logical
"""


class LogicalClock:
    """
    Monotonic integer clock.

    Not thread-safe on its own; the symbol space serializes every
    advance() behind its write lock.
    """

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError("clock start must be non-negative")
        self._value = start

    def now(self) -> int:
        """Current logical time (the coordinate the next symbol receives)."""
        return self._value

    def advance(self) -> int:
        """Return the current value, then increment by one."""
        current = self._value
        self._value += 1
        return current

    def fast_forward(self, value: int) -> None:
        """Move the clock forward to at least `value` (used on reload)."""
        if value > self._value:
            self._value = value

    def reset(self) -> None:
        self._value = 0

    def __repr__(self) -> str:
        return f"LogicalClock(now={self._value})"
