from __future__ import annotations


class IdSequence:
    """Monotonically increasing integer ids, scoped to one owner instance."""

    def __init__(self, start: int = 1) -> None:
        self._next = start

    def __call__(self) -> int:
        value = self._next
        self._next += 1
        return value

    def advance_past(self, taken: int) -> None:
        """Skip ahead so the next id is greater than ``taken``."""
        self._next = max(self._next, taken + 1)
