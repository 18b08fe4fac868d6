import threading

from rbacsync.core.atomic import AtomicVersion
from rbacsync.core.enforcer import InMemoryEnforcer
from rbacsync.core.model import PolicyRule
from rbacsync.core.ports import PolicyEnforcer


def test_atomic_version_basic_ops():
    v = AtomicVersion()
    assert v.get() == 0
    v.set(7)
    assert v.get() == 7
    assert "7" in repr(v)


def test_atomic_version_concurrent_writers_leave_a_written_value():
    v = AtomicVersion()
    written = set(range(1, 51))

    def writer(n):
        for _ in range(200):
            v.set(n)
            assert v.get() in written

    threads = [threading.Thread(target=writer, args=(n,)) for n in written]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert v.get() in written


def test_in_memory_enforcer_add_clear_evaluate():
    e = InMemoryEnforcer()
    assert isinstance(e, PolicyEnforcer)
    rules = [
        PolicyRule(id=1, role_id=1, resource_code="user", action_code="read"),
        PolicyRule(id=2, role_id=2, resource_code="user", action_code="write"),
    ]
    assert e.add_rules(rules) is True
    assert e.rule_count() == 2
    assert e.evaluate("1", "user", "read") is True
    assert e.evaluate(1, "user", "read") is True
    assert e.evaluate("1", "user", "write") is False

    # re-adding an existing grant is idempotent but reported
    assert e.add_rules(rules[:1]) is False
    assert e.rule_count() == 2

    e.clear_rules()
    assert e.rule_count() == 0
    assert e.evaluate("1", "user", "read") is False


def test_in_memory_enforcer_seeded_and_sorted_grants():
    e = InMemoryEnforcer([PolicyRule(id=1, role_id=3, resource_code="b", action_code="x"),
                          PolicyRule(id=2, role_id=3, resource_code="a", action_code="x")])
    assert e.grants() == [("3", "a", "x"), ("3", "b", "x")]
