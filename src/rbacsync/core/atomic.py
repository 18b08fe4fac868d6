from __future__ import annotations

import threading


class AtomicVersion:
    """Integer cell shared between the poller, the listener and manual overrides.

    Every read and write goes through one lock, so a value is never observed
    half-written. Lost updates between independent writers are acceptable:
    the worst case is one extra reload on the next tick.
    """

    __slots__ = ("_value", "_lock")

    def __init__(self, initial: int = 0) -> None:
        self._value = int(initial)
        self._lock = threading.Lock()

    def get(self) -> int:
        with self._lock:
            return self._value

    def set(self, value: int) -> None:
        with self._lock:
            self._value = int(value)

    def __repr__(self) -> str:
        return f"AtomicVersion({self.get()})"


__all__ = ["AtomicVersion"]
