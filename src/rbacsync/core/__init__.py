from __future__ import annotations

from .atomic import AtomicVersion
from .enforcer import InMemoryEnforcer
from .model import PolicyRule, SourceDescriptor, SourceKind, VersionSourceDescriptor

__all__ = [
    "AtomicVersion",
    "InMemoryEnforcer",
    "PolicyRule",
    "SourceDescriptor",
    "SourceKind",
    "VersionSourceDescriptor",
]
