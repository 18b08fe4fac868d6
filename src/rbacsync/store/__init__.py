from __future__ import annotations

from .file_store import CSVRuleLoader
from .http_store import HTTPRuleLoader
from .sql_store import SQLRuleLoader
from .version import HTTPVersionChecker, SQLVersionChecker, build_version_checker

__all__ = [
    "CSVRuleLoader",
    "HTTPRuleLoader",
    "SQLRuleLoader",
    "HTTPVersionChecker",
    "SQLVersionChecker",
    "build_version_checker",
]
