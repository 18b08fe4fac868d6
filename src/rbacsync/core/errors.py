from __future__ import annotations


class RbacSyncError(Exception):
    """Base class for all rbacsync errors."""


# --- configuration time (fatal at startup) -----------------------------------


class SourceConfigError(RbacSyncError, ValueError):
    """A policy or version source string could not be turned into a descriptor."""


class MalformedSource(SourceConfigError):
    """Source string is blank, lacks the ``type:query`` separator or has an empty query."""


class UnsupportedSourceKind(SourceConfigError):
    """Source prefix is not one of the recognized kinds."""

    def __init__(self, kind: str, supported: tuple[str, ...]) -> None:
        self.kind = kind
        self.supported = supported
        super().__init__(
            f"Unsupported source type: {kind!r}. Supported types: {', '.join(supported)}"
        )


class InvalidQueryForKind(SourceConfigError):
    """Query does not fit the declared source kind."""

    def __init__(self, kind: str, query: str, reason: str) -> None:
        self.kind = kind
        self.query = query
        super().__init__(reason)


class ConfigError(RbacSyncError, ValueError):
    """Settings could not be read or are inconsistent."""


# --- fetch time (recoverable) ------------------------------------------------


class PolicyLoadError(RbacSyncError):
    """A single load attempt failed; the previous policy state is untouched."""


class SourceUnavailable(PolicyLoadError):
    """The source could not be reached or read (IO, connectivity, HTTP status)."""


class MalformedRuleData(PolicyLoadError):
    """The source answered, but rows or the response envelope have the wrong shape."""


class PolicyApplyError(RbacSyncError):
    """The engine rejected the new rule batch after it was cleared.

    The engine is left holding no rules, so every check is denied until the
    next successful reload.
    """


class VersionCheckFailure(RbacSyncError):
    """Current version could not be determined.

    Version checkers fold this into ``None``; it never reaches polling code.
    """


__all__ = [
    "RbacSyncError",
    "SourceConfigError",
    "MalformedSource",
    "UnsupportedSourceKind",
    "InvalidQueryForKind",
    "ConfigError",
    "PolicyLoadError",
    "SourceUnavailable",
    "MalformedRuleData",
    "PolicyApplyError",
    "VersionCheckFailure",
]
