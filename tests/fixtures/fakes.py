"""Fake collaborators shared by the test suite."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

from kusto_client.auth import IdentityProvider
from kusto_client.directory import ClusterRecord, ManagementDirectory

MYCLUSTER_URI = "https://mycluster.westus.kusto.windows.net"
OTHER_URI = "https://other.eastus.kusto.windows.net"


class FakeCredential:
    """Async token credential that hands out a fixed token."""

    def __init__(self, tenant: str | None = None):
        self.tenant = tenant
        self.scopes: list[tuple[str, ...]] = []
        self.closed = False

    async def get_token(self, *scopes: str, **kwargs: Any) -> Any:
        self.scopes.append(scopes)
        return SimpleNamespace(token="fake-token", expires_on=0)

    async def close(self) -> None:
        self.closed = True


class FakeIdentityProvider(IdentityProvider):
    """Identity provider recording which tenants were asked for."""

    def __init__(self, error: BaseException | None = None):
        self.error = error
        self.requests: list[str | None] = []
        self.credentials: dict[str | None, FakeCredential] = {}

    async def get_credential(self, tenant: str | None = None) -> Any:
        self.requests.append(tenant)
        if self.error is not None:
            raise self.error
        return self.credentials.setdefault(tenant, FakeCredential(tenant))


class FakeManagementDirectory(ManagementDirectory):
    """In-memory management plane counting enumerations. ``pause`` yields to the loop between pages."""

    def __init__(
        self,
        clusters: dict[str, list[ClusterRecord]] | None = None,
        error: BaseException | None = None,
        pause: bool = False,
    ):
        self.clusters = clusters or {}
        self.error = error
        self.pause = pause
        self.calls: list[tuple[str, str | None, Any]] = []

    async def enumerate_clusters(self, subscription, tenant=None, retry_policy=None):
        self.calls.append((subscription, tenant, retry_policy))
        if self.error is not None:
            raise self.error
        for record in self.clusters.get(subscription, []):
            if self.pause:
                await asyncio.sleep(0)
            yield record


class FakeClock:
    """Manually advanced clock for cache expiry tests."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def record(name: str | None, endpoint: str | None, **kwargs: Any) -> ClusterRecord:
    return ClusterRecord(name=name, endpoint=endpoint, **kwargs)
