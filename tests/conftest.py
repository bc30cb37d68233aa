"""Shared pytest fixtures for kusto_client tests."""

from __future__ import annotations

from typing import Any

import pytest

from kusto_client.adapters.mock import MockKustoExecutor, MockTable, sample_catalog
from kusto_client.cache import ResolutionCache
from kusto_client.client import KustoClient
from kusto_client.config import ClientConfig
from tests.fixtures.fakes import MYCLUSTER_URI, OTHER_URI, FakeClock, FakeIdentityProvider, FakeManagementDirectory, record


@pytest.fixture
def identity():
    return FakeIdentityProvider()


@pytest.fixture
def management():
    """Subscription sub1 holding mycluster and other."""
    return FakeManagementDirectory({
        "sub1": [
            record("mycluster", MYCLUSTER_URI, location="westus", state="Running"),
            record("other", OTHER_URI, location="eastus", state="Stopped"),
        ],
    })


@pytest.fixture
def executor():
    """Mock executor serving mycluster (db1 with T1, T2 and Empty) and other (Samples)."""
    return MockKustoExecutor({
        "mycluster": {
            "db1": {
                "T1": MockTable(columns=[("Id", "Int32"), ("Name", "String")], rows=[(1, "a"), (2, "b")]),
                "T2": MockTable(columns=[("Value", "Real")], rows=[(0.5,)]),
                "Empty": MockTable(columns=[("Id", "Int32")], rows=[]),
            },
        },
        "other": sample_catalog(),
    })


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResolutionCache(clock=clock)


@pytest.fixture
def config_factory():
    """Factory fixture for ClientConfig with test-friendly defaults."""
    def _factory(**kwargs) -> ClientConfig:
        values: dict[str, Any] = {
            "application": "kusto-client-tests",
            "auth_method": "credential",
            "connection_string": None,
            "tenant": None,
            "retry_delay": 0.0,
            "retry_max_retries": 2,
            "executor": "mock",
        }
        values.update(kwargs)
        return ClientConfig(**values)
    return _factory


@pytest.fixture
def config(config_factory):
    return config_factory()


@pytest.fixture
def client(config, identity, management, executor, cache):
    return KustoClient(config=config, identity=identity, management=management, executor=executor, cache=cache)
