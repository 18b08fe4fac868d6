from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..core.errors import PolicyLoadError, VersionCheckFailure
from ..core.model import SourceKind, VersionSourceDescriptor
from ..core.ports import VersionChecker
from .http_store import fetch_envelope, probe_endpoint
from .sql_store import make_engine

logger = logging.getLogger("rbacsync.store.version")

DEFAULT_VERSION_CODE = "policy_version"
DEFAULT_VERSION_QUERY = "SELECT version FROM auth_version WHERE code = :code"


def _coerce_version(value: Any) -> int:
    if value is None:
        raise VersionCheckFailure("version is null")
    if isinstance(value, bool):
        raise VersionCheckFailure(f"version must be an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise VersionCheckFailure(f"version must be an integer, got {value!r}")
    if isinstance(value, Decimal) and value != value.to_integral_value():
        raise VersionCheckFailure(f"version must be an integer, got {value!r}")
    if isinstance(value, str):
        value = value.strip()
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise VersionCheckFailure(f"version must be an integer, got {value!r}") from e


class SQLVersionChecker:
    """Read the version token with one scalar query.

    The query may reference ``:code``; it is bound to ``version_code``.
    """

    def __init__(
        self,
        engine: Union[Engine, str],
        query: str = DEFAULT_VERSION_QUERY,
        *,
        version_code: str = DEFAULT_VERSION_CODE,
    ) -> None:
        self.engine = make_engine(engine) if isinstance(engine, str) else engine
        self.query = query
        self.version_code = version_code

    def _params(self) -> Dict[str, Any]:
        return {"code": self.version_code} if ":code" in self.query else {}

    def current_version(self) -> Optional[int]:
        try:
            with self.engine.connect() as conn:
                value = conn.execute(text(self.query), self._params()).scalar()
            version = _coerce_version(value)
        except (SQLAlchemyError, VersionCheckFailure) as e:
            logger.debug("Failed to get version for code %s from database: %s", self.version_code, e)
            return None
        logger.debug("Retrieved version %d for code %s from database", version, self.version_code)
        return version

    def is_available(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1")).scalar()
        except SQLAlchemyError as e:
            logger.debug("Database version checker is not available: %s", e)
            return False
        return True

    def description(self) -> str:
        return f"Database-based version checker using query: {self.query}"


class HTTPVersionChecker:
    """Read the version token from an endpoint answering ``{"data": <int>}``."""

    def __init__(
        self,
        endpoint: Optional[str],
        *,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 5.0,
    ) -> None:
        self.endpoint = (endpoint or "").strip() or None
        self.headers = dict(headers or {})
        self.timeout = float(timeout)

    def current_version(self) -> Optional[int]:
        if self.endpoint is None:
            logger.debug("Version API endpoint not configured")
            return None
        try:
            data = fetch_envelope(self.endpoint, headers=self.headers, timeout=self.timeout)
            return _coerce_version(data)
        except (PolicyLoadError, VersionCheckFailure, RuntimeError) as e:
            logger.debug("Failed to get version from %s: %s", self.endpoint, e)
            return None

    def is_available(self) -> bool:
        if self.endpoint is None:
            logger.debug("Version API endpoint not configured")
            return False
        try:
            return probe_endpoint(self.endpoint, headers=self.headers, timeout=self.timeout)
        except RuntimeError as e:
            logger.debug("Version API endpoint is not available: %s", e)
            return False

    def description(self) -> str:
        return f"API-based version checker using HTTP calls to: {self.endpoint or 'not configured'}"


def build_version_checker(
    descriptor: VersionSourceDescriptor,
    *,
    engine: Union[Engine, str, None] = None,
    version_code: str = DEFAULT_VERSION_CODE,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 5.0,
) -> VersionChecker:
    """Pick the checker matching the descriptor's kind."""
    if descriptor.kind is SourceKind.DATABASE:
        if engine is None:
            raise ValueError("A database engine or URL is required for a database version source")
        return SQLVersionChecker(engine, descriptor.query, version_code=version_code)
    if descriptor.kind is SourceKind.HTTP:
        return HTTPVersionChecker(descriptor.query, headers=headers, timeout=timeout)
    raise ValueError(f"Version checking is not supported for source type: {descriptor.kind.value}")


__all__ = [
    "SQLVersionChecker",
    "HTTPVersionChecker",
    "build_version_checker",
    "DEFAULT_VERSION_CODE",
    "DEFAULT_VERSION_QUERY",
]
