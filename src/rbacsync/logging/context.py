from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar, Token
from typing import Optional

_reload_id: ContextVar[Optional[str]] = ContextVar("rbacsync_reload_id", default=None)


def gen_reload_id() -> str:
    return uuid.uuid4().hex


def set_current_reload_id(value: str) -> Token[Optional[str]]:
    return _reload_id.set(value)


def get_current_reload_id() -> Optional[str]:
    return _reload_id.get()


def clear_current_reload_id(token: Token[Optional[str]] | None = None) -> None:
    if token is not None:
        _reload_id.reset(token)
    else:
        _reload_id.set(None)


class ReloadIdFilter(logging.Filter):
    """Attach ``reload_id`` to every record so one reload can be followed across loggers."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.reload_id = get_current_reload_id() or "-"
        return True


__all__ = [
    "gen_reload_id",
    "set_current_reload_id",
    "get_current_reload_id",
    "clear_current_reload_id",
    "ReloadIdFilter",
]
