from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from .model import PolicyRule


@runtime_checkable
class PolicyEnforcer(Protocol):
    """Authorization engine holding the live rule set.

    ``clear_rules`` and ``add_rules`` are expected to be guarded by the
    engine's own lock; evaluation may run concurrently with a reload.
    """

    def clear_rules(self) -> None: ...

    def add_rules(self, rules: Sequence[PolicyRule]) -> bool: ...

    def evaluate(self, role: str, resource: str, action: str) -> bool: ...


@runtime_checkable
class RuleLoader(Protocol):
    """Fetch the full rule set from one kind of source."""

    def load(self, query: str, resources: Sequence[str] = ()) -> List[PolicyRule]: ...


@runtime_checkable
class VersionChecker(Protocol):
    """Cheap probe for the monotonic version token of the rule store.

    Implementations never raise; every failure becomes ``None`` / ``False``.
    """

    def current_version(self) -> Optional[int]: ...

    def is_available(self) -> bool: ...

    def description(self) -> str: ...


class MetricsSink(Protocol):
    """Receiver for reload counters and durations."""

    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None: ...

    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None: ...


__all__ = ["PolicyEnforcer", "RuleLoader", "VersionChecker", "MetricsSink"]
