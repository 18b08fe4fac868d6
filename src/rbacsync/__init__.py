from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from . import core, store
from .config import Settings, load_settings
from .core.enforcer import InMemoryEnforcer
from .core.errors import (
    InvalidQueryForKind,
    MalformedRuleData,
    MalformedSource,
    PolicyApplyError,
    PolicyLoadError,
    RbacSyncError,
    SourceConfigError,
    SourceUnavailable,
    UnsupportedSourceKind,
)
from .core.model import PolicyRule, SourceDescriptor, SourceKind, VersionSourceDescriptor
from .events import PolicyEventListener, RedisPolicySubscriber, publish_reload
from .loader import PolicyLoader
from .polling import VersionPollingService
from .runtime import PolicySync
from .source import parse_source, parse_version_source


def _detect_version() -> str:
    try:
        return version("rbacsync")  # type: ignore[misc]
    except (PackageNotFoundError, TypeError):
        return "0.1.0"


__version__ = _detect_version()

__all__ = [
    "core",
    "store",
    "Settings",
    "load_settings",
    "InMemoryEnforcer",
    "PolicyRule",
    "SourceDescriptor",
    "SourceKind",
    "VersionSourceDescriptor",
    "parse_source",
    "parse_version_source",
    "PolicyLoader",
    "VersionPollingService",
    "PolicyEventListener",
    "RedisPolicySubscriber",
    "publish_reload",
    "PolicySync",
    "RbacSyncError",
    "SourceConfigError",
    "MalformedSource",
    "UnsupportedSourceKind",
    "InvalidQueryForKind",
    "PolicyLoadError",
    "SourceUnavailable",
    "MalformedRuleData",
    "PolicyApplyError",
    "__version__",
]
