"""Cluster discovery through the management plane."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx

from .auth import IdentityProvider
from .cache import CLUSTERS_NAMESPACE, ResolutionCache, cache_key, memoize
from .config import ClientConfig
from .errors import KustoClientError, MissingRequiredArgument, ResourceNotFound, UpstreamError
from .resilience import RetryPolicy, retry_async

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClusterRecord:
    """A cluster as listed by the management directory."""
    name: str | None
    endpoint: str | None
    id: str | None = None
    location: str | None = None
    state: str | None = None
    data_ingestion_uri: str | None = None
    sku: dict[str, Any] | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_arm(cls, item: dict[str, Any]) -> ClusterRecord:
        """Build from an Azure Resource Manager ``Microsoft.Kusto/clusters`` resource."""
        properties = item.get("properties") or {}
        return cls(
            name=item.get("name"),
            endpoint=properties.get("uri"),
            id=item.get("id"),
            location=item.get("location"),
            state=properties.get("state"),
            data_ingestion_uri=properties.get("dataIngestionUri"),
            sku=item.get("sku"),
            raw=item,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "endpoint": self.endpoint,
            "id": self.id,
            "location": self.location,
            "state": self.state,
            "dataIngestionUri": self.data_ingestion_uri,
            "sku": self.sku,
        }


class ManagementDirectory(ABC):
    """Management-plane listing of clusters visible to a subscription."""

    @abstractmethod
    def enumerate_clusters(
        self,
        subscription: str,
        tenant: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> AsyncIterator[ClusterRecord]:
        """Yield every cluster record in the subscription."""
        ...


@dataclass
class ArmManagementDirectory(ManagementDirectory):
    """
    Cluster enumeration over the Azure Resource Manager REST API.

    Pages are followed through ``nextLink``; each page request is retried
    under the caller's RetryPolicy.
    """
    identity: IdentityProvider
    config: ClientConfig = field(default_factory=ClientConfig)
    transport: httpx.AsyncBaseTransport | None = None

    async def enumerate_clusters(
        self,
        subscription: str,
        tenant: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> AsyncIterator[ClusterRecord]:
        policy = retry_policy or self.config.retry_policy()
        base_url = self.config.management_url.rstrip("/")
        headers = await self._get_headers(tenant)

        url: str | None = f"{base_url}/subscriptions/{subscription}/providers/Microsoft.Kusto/clusters"
        params: dict[str, str] | None = {"api-version": self.config.management_api_version}

        # connect is bounded by the client timeout, each page by the network timeout
        timeout = httpx.Timeout(policy.network_timeout or None, connect=self.config.timeout or None)
        async with httpx.AsyncClient(
            timeout=timeout,
            transport=self.transport,
        ) as client:
            while url:
                page = await retry_async(self._get_page, policy, client, url, headers, params)
                for item in page.get("value", []):
                    yield ClusterRecord.from_arm(item)
                # nextLink already carries the query string
                url = page.get("nextLink")
                params = None

    async def _get_headers(self, tenant: str | None) -> dict[str, str]:
        credential = await self.identity.get_credential(tenant)
        scope = f"{self.config.management_url.rstrip('/')}/.default"
        token = await credential.get_token(scope)
        return {
            "Authorization": f"Bearer {token.token}",
            "User-Agent": self.config.application,
        }

    @staticmethod
    async def _get_page(
        client: httpx.AsyncClient,
        url: str,
        headers: dict[str, str],
        params: dict[str, str] | None,
    ) -> dict[str, Any]:
        response = await client.get(url, headers=headers, params=params)
        response.raise_for_status()
        return response.json()


@dataclass
class ClusterDirectory:
    """
    Cached lookup of clusters by subscription.

    The full enumeration is cached per (subscription, tenant); name lookups
    scan the cached list.
    """
    management: ManagementDirectory
    cache: ResolutionCache = field(default_factory=ResolutionCache)
    ttl: float = 3600.0

    def __post_init__(self) -> None:
        self._records = memoize(
            self.cache,
            lambda subscription, tenant=None, retry_policy=None: cache_key(CLUSTERS_NAMESPACE, subscription, tenant),
            self.ttl,
            self._enumerate,
        )

    async def list_clusters(
        self,
        subscription: str,
        tenant: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> list[str]:
        """Names of all clusters visible under ``subscription``."""
        require_arguments(subscription=subscription)
        records = await self._records(subscription, tenant, retry_policy)
        return [r.name for r in records if r.name]

    async def get_cluster(
        self,
        subscription: str,
        cluster_name: str,
        tenant: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> ClusterRecord:
        """
        Find a cluster by name (case-insensitive).

        Raises:
            ResourceNotFound: If no cluster in the subscription has that name
            UpstreamError: If the enumeration itself failed
        """
        require_arguments(subscription=subscription, cluster_name=cluster_name)
        wanted = cluster_name.strip().lower()
        for record in await self._records(subscription, tenant, retry_policy):
            if record.name.lower() == wanted:
                return record
        raise ResourceNotFound(
            f"Kusto cluster '{cluster_name}' not found in subscription '{subscription}'."
        )

    async def _enumerate(
        self,
        subscription: str,
        tenant: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> list[ClusterRecord]:
        logger.info(f"Enumerating clusters in subscription {subscription}")
        records: list[ClusterRecord] = []
        try:
            async for record in self.management.enumerate_clusters(subscription, tenant, retry_policy):
                if record is not None and record.name:
                    records.append(record)
        except KustoClientError:
            raise
        except Exception as e:
            raise UpstreamError(f"Error retrieving Kusto clusters: {e}", cause=e) from e
        return records


def require_arguments(**values: str | None) -> None:
    missing = [name for name, value in values.items() if not value or not value.strip()]
    if missing:
        raise MissingRequiredArgument(
            f"Missing required arguments: {', '.join(missing)}", missing=missing
        )
