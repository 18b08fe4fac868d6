from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ..core.errors import MalformedRuleData, SourceUnavailable
from ..core.model import PolicyRule

logger = logging.getLogger("rbacsync.store.sql")

REQUIRED_COLUMNS: Tuple[str, ...] = ("id", "role_id", "resource_code", "action_code")
RESOURCE_COLUMN = "resource_code"

_WHERE_RE = re.compile(r"\bWHERE\b", re.IGNORECASE)
# Clauses that must stay after the injected predicate.
_TAIL_RE = re.compile(r"\b(GROUP\s+BY|ORDER\s+BY|HAVING|LIMIT|OFFSET|FETCH|FOR\s+UPDATE)\b", re.IGNORECASE)
_SET_OP_RE = re.compile(r"\b(UNION|INTERSECT|EXCEPT)\b", re.IGNORECASE)


def _top_level_mask(sql: str) -> List[bool]:
    """Flag each character that sits outside parentheses and quoted text."""
    mask: List[bool] = []
    depth = 0
    quote = ""
    for ch in sql:
        if quote:
            mask.append(False)
            if ch == quote:
                quote = ""
            continue
        if ch in ("'", '"'):
            quote = ch
            mask.append(False)
        elif ch == "(":
            depth += 1
            mask.append(False)
        elif ch == ")":
            depth = max(depth - 1, 0)
            mask.append(False)
        else:
            mask.append(depth == 0)
    return mask


def _find_top_level(pattern: re.Pattern[str], sql: str, mask: List[bool]) -> Optional[re.Match[str]]:
    for m in pattern.finditer(sql):
        if mask[m.start()]:
            return m
    return None


def make_engine(url: str, **kwargs: Any) -> Engine:
    """Create an engine with bounded pool waits and liveness checks.

    SQLite URLs get ``check_same_thread=False`` so the engine can be shared
    with the polling thread.
    """
    options: Dict[str, Any] = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_timeout"] = 10
    options.update(kwargs)
    return create_engine(url, **options)


def add_resource_filter(query: str, resources: Sequence[str]) -> Tuple[str, Dict[str, str]]:
    """Rewrite *query* so only rows for *resources* are returned.

    The filter values are never inlined: each becomes a named bind
    parameter (``:resource_0``, ``:resource_1``, ...). An existing WHERE
    predicate is parenthesised and AND-ed with the filter, otherwise a WHERE
    clause is introduced; trailing GROUP BY / ORDER BY / LIMIT clauses are
    kept after it. Only top-level clauses count; subqueries and window
    specifications are left alone. A top-level UNION/INTERSECT/EXCEPT is
    wrapped as a derived table and filtered from the outside.

    Returns:
        The rewritten SQL and the bind parameters.
    """
    sql = query.strip().rstrip(";").rstrip()
    if not resources:
        return sql, {}

    params = {f"resource_{i}": str(code) for i, code in enumerate(resources)}
    placeholders = ", ".join(f":{name}" for name in params)
    predicate = f"{RESOURCE_COLUMN} IN ({placeholders})"

    head, tail = sql, ""
    mask = _top_level_mask(sql)
    if _find_top_level(_SET_OP_RE, sql, mask):
        return f"SELECT * FROM ({sql}) AS policy_rules_src WHERE {predicate}", params

    tail_match = _find_top_level(_TAIL_RE, sql, mask)
    if tail_match:
        head = sql[: tail_match.start()].rstrip()
        tail = " " + sql[tail_match.start() :]

    where_match = _find_top_level(_WHERE_RE, head, mask)
    if where_match:
        existing = head[where_match.end() :].strip()
        head = f"{head[: where_match.start()]}WHERE ({existing}) AND {predicate}"
    else:
        head = f"{head} WHERE {predicate}"
    return head + tail, params


class SQLRuleLoader:
    """
    Rule loader executing a read query through SQLAlchemy.

    Each returned row must expose ``id``, ``role_id``, ``resource_code`` and
    ``action_code`` columns. Errors raised by the driver are reported as
    ``SourceUnavailable``; rows with the wrong shape as ``MalformedRuleData``.
    """

    def __init__(self, engine: Union[Engine, str]) -> None:
        self.engine = make_engine(engine) if isinstance(engine, str) else engine

    def load(self, query: str, resources: Sequence[str] = ()) -> List[PolicyRule]:
        sql, params = add_resource_filter(query, resources)
        logger.info("Loading policy rules from database with query: %s", sql)
        logger.debug("Resource filter: %s", list(resources))

        try:
            with self.engine.connect() as conn:
                result = conn.execute(text(sql), params)
                columns = tuple(result.keys())
                rows = [dict(row) for row in result.mappings()]
        except SQLAlchemyError as e:
            logger.error("Failed to load policy rules from database")
            raise SourceUnavailable(f"Database policy loading failed: {e}") from e

        missing = [c for c in REQUIRED_COLUMNS if c not in columns]
        if missing:
            raise MalformedRuleData(
                f"Policy query must return columns {', '.join(REQUIRED_COLUMNS)}; missing: {', '.join(missing)}"
            )

        rules = [PolicyRule.from_mapping(row) for row in rows]
        logger.info("Loaded %d policy rules from database", len(rules))
        return rules


__all__ = ["SQLRuleLoader", "add_resource_filter", "make_engine", "REQUIRED_COLUMNS"]
