import pytest

from rbacsync.core.enforcer import InMemoryEnforcer


@pytest.fixture()
def enforcer():
    return InMemoryEnforcer()
