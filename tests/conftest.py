"""
FILE: tests/conftest.py
Shared fixtures for title transfer tests.
"""

from pathlib import Path

import pytest

from src.api.routers.titles import reset_title_transfer_service_for_tests
from src.core.titles import LedgerContext
from src.infrastructure.ledger import InMemoryLedgerStore
from tests.factories import BUYER_CONVEYANCER, LAND_REGISTRY, ME


def _has_marker(item: pytest.Item, name: str) -> bool:
    return item.get_closest_marker(name) is not None


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if (
            _has_marker(item, "unit")
            or _has_marker(item, "integration")
            or _has_marker(item, "e2e")
        ):
            continue

        path = Path(str(item.fspath)).as_posix().lower()
        if "/tests/integration/" in path or "_integration.py" in path:
            item.add_marker(pytest.mark.integration)
            continue
        if "/tests/e2e/" in path:
            item.add_marker(pytest.mark.e2e)
            continue
        item.add_marker(pytest.mark.unit)


@pytest.fixture
def ledger_store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore(identity=ME, peers=[BUYER_CONVEYANCER, LAND_REGISTRY])


@pytest.fixture
def ledger_context(ledger_store: InMemoryLedgerStore) -> LedgerContext:
    return LedgerContext(store=ledger_store, participant=ME, query_timeout_seconds=1.0)


@pytest.fixture(autouse=True)
def in_memory_runtime_test_harness(monkeypatch: pytest.MonkeyPatch):
    """Keep every test on the in-memory ledger unless it opts into another backend."""

    monkeypatch.setenv("LEDGER_STORE_BACKEND", "IN_MEMORY")
    monkeypatch.setenv("LEDGER_NODE_IDENTITY", ME.x500_name)
    monkeypatch.delenv("LEDGER_POSTGRES_DSN", raising=False)
    monkeypatch.delenv("LEDGER_LISTENER_ENABLED", raising=False)
    monkeypatch.delenv("APP_PERSISTENCE_PROFILE", raising=False)
    monkeypatch.delenv("TITLE_PAYMENT_ACTIONS_ENABLED", raising=False)
    reset_title_transfer_service_for_tests()
    yield
    reset_title_transfer_service_for_tests()
