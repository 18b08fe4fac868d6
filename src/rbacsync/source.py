"""Parse ``type:query`` source strings into typed descriptors.

Examples::

    database:SELECT * FROM auth.policy_rules
    resource:casbin/policy.csv
    api:https://iam.internal/v1/policy-rules

Parsing is pure and never cached; callers re-parse every time configuration
is read so a changed source takes effect on the next load.
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Tuple

from .core.errors import InvalidQueryForKind, MalformedSource, UnsupportedSourceKind
from .core.model import SourceDescriptor, SourceKind, VersionSourceDescriptor

logger = logging.getLogger("rbacsync.source")

POLICY_SOURCE_KINDS: Tuple[SourceKind, ...] = (SourceKind.DATABASE, SourceKind.FILE, SourceKind.HTTP)
VERSION_SOURCE_KINDS: Tuple[SourceKind, ...] = (SourceKind.DATABASE, SourceKind.HTTP)

_SELECT_RE = re.compile(r"^\s*SELECT\b", re.IGNORECASE)
_URL_RE = re.compile(r"^https?://[^\s/?#]+", re.IGNORECASE)


def _split(text: Optional[str]) -> Tuple[str, str]:
    if text is None or not str(text).strip():
        raise MalformedSource("Policy source cannot be null or empty")
    kind, sep, query = str(text).partition(":")
    if not sep:
        raise MalformedSource(f"Policy source must be in format 'type:query', got: {text!r}")
    kind = kind.strip().lower()
    query = query.strip()
    if not query:
        raise MalformedSource(f"Policy source query cannot be empty for type: {kind!r}")
    return kind, query


def _resolve_kind(kind: str, allowed: Tuple[SourceKind, ...]) -> SourceKind:
    for candidate in allowed:
        if candidate.value == kind:
            return candidate
    raise UnsupportedSourceKind(kind, tuple(k.value for k in allowed))


def _validate_query(kind: SourceKind, query: str) -> None:
    if kind is SourceKind.DATABASE:
        if not _SELECT_RE.match(query):
            raise InvalidQueryForKind(
                kind.value, query, "Database policy query must be a SELECT statement"
            )
    elif kind is SourceKind.FILE:
        if "csv" not in query.lower():
            raise InvalidQueryForKind(
                kind.value, query, "Resource policy query must reference a CSV file"
            )
    elif kind is SourceKind.HTTP:
        if not _URL_RE.match(query):
            raise InvalidQueryForKind(
                kind.value, query, "API policy query must be an absolute HTTP/HTTPS URL"
            )


def parse_source(text: Optional[str]) -> SourceDescriptor:
    """Parse a policy source string.

    Raises:
        MalformedSource: blank input, no ``:`` separator or blank query.
        UnsupportedSourceKind: prefix is not ``database``, ``resource`` or ``api``.
        InvalidQueryForKind: query does not fit the declared kind.
    """
    kind_name, query = _split(text)
    kind = _resolve_kind(kind_name, POLICY_SOURCE_KINDS)
    _validate_query(kind, query)
    logger.debug("Parsed policy source - type: %s, query: %s", kind.value, query)
    return SourceDescriptor(kind=kind, query=query)


def parse_version_source(text: Optional[str]) -> VersionSourceDescriptor:
    """Parse a version source string; static files carry no version and are rejected."""
    kind_name, query = _split(text)
    kind = _resolve_kind(kind_name, VERSION_SOURCE_KINDS)
    _validate_query(kind, query)
    logger.debug("Parsed version source - type: %s, query: %s", kind.value, query)
    return VersionSourceDescriptor(kind=kind, query=query)


__all__ = [
    "POLICY_SOURCE_KINDS",
    "VERSION_SOURCE_KINDS",
    "parse_source",
    "parse_version_source",
]
