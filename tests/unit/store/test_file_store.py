import logging

import pytest

from rbacsync.core.errors import SourceUnavailable
from rbacsync.store.file_store import CSVRuleLoader


POLICY_CSV = """\
# role, resource, action
p,1,user,read

p,2,user,write
p,3,report,export
g,alice,1
p,x,user,delete
p,4,user
"""


def _write(tmp_path, text, name="policies.csv"):
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def test_filtered_csv_yields_exactly_matching_rules(tmp_path):
    _write(tmp_path, "p,1,user,read\np,2,user,write\n")
    loader = CSVRuleLoader(base_dir=str(tmp_path))
    rules = loader.load("policies.csv", ["user"])
    assert [(r.role_id, r.resource_code, r.action_code) for r in rules] == [
        (1, "user", "read"),
        (2, "user", "write"),
    ]


def test_skips_comments_blank_and_non_policy_rows(tmp_path):
    path = _write(tmp_path, POLICY_CSV)
    rules = CSVRuleLoader().load(str(path))
    assert [r.key() for r in rules] == [(1, "user", "read"), (2, "user", "write"), (3, "report", "export")]
    # rule id is the line number
    assert [r.id for r in rules] == [2, 4, 5]


def test_bad_role_id_is_logged_and_skipped(tmp_path, caplog):
    path = _write(tmp_path, POLICY_CSV)
    caplog.set_level(logging.WARNING, logger="rbacsync.store.file")
    rules = CSVRuleLoader().load(str(path))
    assert len(rules) == 3
    assert any("Invalid role ID" in rec.getMessage() for rec in caplog.records)


def test_filter_is_applied_after_parsing(tmp_path):
    path = _write(tmp_path, POLICY_CSV)
    rules = CSVRuleLoader().load(str(path), ["report", "missing"])
    assert [r.key() for r in rules] == [(3, "report", "export")]


def test_whitespace_around_fields_is_trimmed(tmp_path):
    path = _write(tmp_path, "  p , 7 , doc , view  \n")
    (rule,) = CSVRuleLoader().load(str(path))
    assert rule.key() == (7, "doc", "view")


def test_empty_file_yields_no_rules(tmp_path):
    path = _write(tmp_path, "")
    assert CSVRuleLoader().load(str(path)) == []


def test_missing_file_raises_source_unavailable(tmp_path):
    with pytest.raises(SourceUnavailable):
        CSVRuleLoader(base_dir=str(tmp_path)).load("nope.csv")


def test_package_resource(tmp_path, monkeypatch):
    pkg = tmp_path / "policy_pkg"
    (pkg / "conf").mkdir(parents=True)
    (pkg / "__init__.py").write_text("", encoding="utf-8")
    (pkg / "conf" / "policy.csv").write_text("p,5,invoice,approve\n", encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))

    rules = CSVRuleLoader().load("package:policy_pkg/conf/policy.csv")
    assert [r.key() for r in rules] == [(5, "invoice", "approve")]


@pytest.mark.parametrize("query", ["package:no_such_pkg_xyz/policy.csv", "package:/policy.csv"])
def test_bad_package_resource_raises_source_unavailable(query):
    with pytest.raises(SourceUnavailable):
        CSVRuleLoader().load(query)
