import logging

from rbacsync.logging.context import (
    ReloadIdFilter,
    clear_current_reload_id,
    gen_reload_id,
    get_current_reload_id,
    set_current_reload_id,
)


def _record():
    return logging.LogRecord("rbacsync.test", logging.INFO, __file__, 1, "msg", (), None)


def test_reload_ids_are_unique_hex():
    a, b = gen_reload_id(), gen_reload_id()
    assert a != b
    int(a, 16)


def test_filter_uses_dash_outside_a_reload():
    clear_current_reload_id()
    rec = _record()
    assert ReloadIdFilter().filter(rec) is True
    assert rec.reload_id == "-"


def test_filter_attaches_current_id_and_token_restores():
    token = set_current_reload_id("abc123")
    try:
        rec = _record()
        ReloadIdFilter().filter(rec)
        assert rec.reload_id == "abc123"
        assert get_current_reload_id() == "abc123"
    finally:
        clear_current_reload_id(token)
    assert get_current_reload_id() is None
