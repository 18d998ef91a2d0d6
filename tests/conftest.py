"""Shared fixtures for the theta-connector test suite."""

from __future__ import annotations

import pytest

from theta_connector.chain.memory_ledger import MemoryLedger
from theta_connector.connector import ThetaConnector
from theta_connector.core.config import Settings
from theta_connector.correlation.registry import EventRegistry


# ---------------------------------------------------------------------------
# Ledger / registry
# ---------------------------------------------------------------------------

@pytest.fixture
def ledger() -> MemoryLedger:
    return MemoryLedger()


@pytest.fixture
def registry() -> EventRegistry:
    return EventRegistry()


@pytest.fixture
def settings() -> Settings:
    return Settings()


# ---------------------------------------------------------------------------
# Connector
# ---------------------------------------------------------------------------

@pytest.fixture
def connector_factory():
    """Build connectors whose client factory always returns the given ledger."""

    def _make(ledger: MemoryLedger, settings: Settings | None = None) -> ThetaConnector:
        return ThetaConnector(settings or Settings(), client_factory=lambda p, s: ledger)

    return _make


@pytest.fixture
async def connector(ledger, settings, connector_factory):
    conn = connector_factory(ledger, settings)
    assert await conn.init() is True
    yield conn
    await conn.close()
