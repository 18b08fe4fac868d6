from __future__ import annotations

import threading
from typing import FrozenSet, List, Sequence, Tuple

from .model import PolicyRule

Grant = Tuple[str, str, str]


class InMemoryEnforcer:
    """Minimal thread-safe rule store answering exact (role, resource, action) lookups.

    It stands in for a full authorization engine in tests and small
    deployments. Readers take a snapshot of an immutable frozenset, so
    ``evaluate`` never blocks on a reload in progress.
    """

    def __init__(self, rules: Sequence[PolicyRule] = ()) -> None:
        self._lock = threading.RLock()
        self._grants: FrozenSet[Grant] = frozenset(r.as_policy() for r in rules)

    # -- PolicyEnforcer -------------------------------------------------------

    def clear_rules(self) -> None:
        with self._lock:
            self._grants = frozenset()

    def add_rules(self, rules: Sequence[PolicyRule]) -> bool:
        """Insert a batch of rules.

        Returns:
            False if at least one grant was already present, True otherwise.
        """
        incoming = [r.as_policy() for r in rules]
        with self._lock:
            current = self._grants
            fresh = frozenset(incoming) - current
            self._grants = current | fresh
        return len(fresh) == len(incoming)

    def evaluate(self, role: str, resource: str, action: str) -> bool:
        grants = self._grants
        return (str(role), resource, action) in grants

    # -- diagnostics ----------------------------------------------------------

    def rule_count(self) -> int:
        return len(self._grants)

    def grants(self) -> List[Grant]:
        return sorted(self._grants)


__all__ = ["InMemoryEnforcer"]
