import json
import logging
import sys
import types

import pytest

from rbacsync.core.errors import MalformedRuleData, SourceUnavailable
from rbacsync.store.http_store import HTTPRuleLoader, build_url, fetch_envelope


class _Resp:
    def __init__(self, status=200, body=None, text=None):
        self.status_code = status
        self.headers = {"Content-Type": "application/json"}
        if text is not None:
            self.text = text
        else:
            self.text = json.dumps(body) if body is not None else ""

    def raise_for_status(self):
        if self.status_code >= 400:
            raise RuntimeError(f"HTTP {self.status_code}")


def _install_requests(monkeypatch, resp=None, capture=None, exc=None):
    def _get(url, headers=None, timeout=None):
        if capture is not None:
            capture.append(dict(url=url, headers=headers or {}, timeout=timeout))
        if exc is not None:
            raise exc
        return resp

    monkeypatch.setitem(sys.modules, "requests", types.SimpleNamespace(get=_get))


RULES = [
    {"id": 1, "roleId": 1, "resourceCode": "user", "actionCode": "read"},
    {"id": 2, "roleId": 2, "resourceCode": "user", "actionCode": "write"},
    {"id": 3, "roleId": 2, "resourceCode": "report", "actionCode": "export"},
]


def test_build_url_appends_filter_parameter():
    assert build_url("https://api/rules", []) == "https://api/rules"
    assert build_url("https://api/rules", ["user", "report"]) == "https://api/rules?resourceCode=user,report"
    assert build_url("https://api/rules?limit=5", ["a b"]) == "https://api/rules?limit=5&resourceCode=a%20b"


def test_loads_rules_from_envelope_and_sends_filter(monkeypatch):
    calls = []
    _install_requests(monkeypatch, _Resp(body={"code": 200, "data": RULES}), capture=calls)

    loader = HTTPRuleLoader(headers={"Authorization": "Bearer t"}, timeout=2.5)
    rules = loader.load("https://iam/v1/rules", ["user"])

    assert [r.key() for r in rules] == [(1, "user", "read"), (2, "user", "write")]
    assert calls[-1]["url"] == "https://iam/v1/rules?resourceCode=user"
    assert calls[-1]["headers"] == {"Authorization": "Bearer t"}
    assert calls[-1]["timeout"] == 2.5


def test_filter_is_applied_even_if_server_ignores_it(monkeypatch):
    _install_requests(monkeypatch, _Resp(body={"data": RULES}))
    rules = HTTPRuleLoader().load("https://iam/v1/rules", ["report"])
    assert [r.key() for r in rules] == [(2, "report", "export")]


def test_invalid_entries_are_dropped_with_warning(monkeypatch, caplog):
    data = RULES[:1] + [
        {"roleId": None, "resourceCode": "user", "actionCode": "read"},
        {"roleId": 3, "resourceCode": "  ", "actionCode": "read"},
        {"roleId": 3, "resourceCode": "doc", "actionCode": None},
        "garbage",
    ]
    _install_requests(monkeypatch, _Resp(body={"data": data}))
    caplog.set_level(logging.WARNING, logger="rbacsync.store.http")

    rules = HTTPRuleLoader().load("https://iam/v1/rules")
    assert [r.key() for r in rules] == [(1, "user", "read")]
    skipped = [r for r in caplog.records if "Skipping invalid policy rule" in r.getMessage()]
    assert len(skipped) == 4


@pytest.mark.parametrize("body", [{"data": None}, {"code": 204}])
def test_null_or_absent_data_means_no_rules(monkeypatch, body):
    _install_requests(monkeypatch, _Resp(body=body))
    assert HTTPRuleLoader().load("https://iam/v1/rules") == []


def test_empty_body_means_no_rules(monkeypatch):
    _install_requests(monkeypatch, _Resp(text="   "))
    assert HTTPRuleLoader().load("https://iam/v1/rules") == []


def test_http_error_status_is_source_unavailable(monkeypatch):
    _install_requests(monkeypatch, _Resp(status=503, body={"data": []}))
    with pytest.raises(SourceUnavailable):
        HTTPRuleLoader().load("https://iam/v1/rules")


def test_transport_error_is_source_unavailable(monkeypatch):
    _install_requests(monkeypatch, exc=ConnectionError("refused"))
    with pytest.raises(SourceUnavailable):
        HTTPRuleLoader().load("https://iam/v1/rules")


@pytest.mark.parametrize(
    "resp",
    [
        _Resp(text="<html>oops</html>"),
        _Resp(body=[1, 2, 3]),
        _Resp(body={"data": {"roleId": 1}}),
    ],
)
def test_unparseable_envelope_is_malformed(monkeypatch, resp):
    _install_requests(monkeypatch, resp)
    with pytest.raises(MalformedRuleData):
        HTTPRuleLoader().load("https://iam/v1/rules")


def test_content_bytes_are_used_when_text_missing(monkeypatch):
    class Resp:
        status_code = 200
        content = b'{"data": 7}'

        def raise_for_status(self): ...

    monkeypatch.setitem(sys.modules, "requests", types.SimpleNamespace(get=lambda *a, **k: Resp()))
    assert fetch_envelope("https://iam/v1/version") == 7


def test_missing_requests_raises_runtimeerror(monkeypatch):
    monkeypatch.setitem(sys.modules, "requests", None)
    with pytest.raises(RuntimeError, match="requests is required"):
        HTTPRuleLoader().load("https://iam/v1/rules")
