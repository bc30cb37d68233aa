"""
Cluster addressing: endpoint or (subscription, cluster name).

A command names its target cluster in exactly one of two ways. This module
validates the combination, and turns either form into a single endpoint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Union

from .cache import CLUSTER_URI_NAMESPACE, ResolutionCache, cache_key
from .directory import ClusterDirectory
from .endpoints import normalize_endpoint, short_name
from .errors import InvalidEndpoint, MissingRequiredArgument, ResolutionFailed
from .resilience import RetryPolicy

logger = logging.getLogger(__name__)

__all__ = [
    "ByCoordinates",
    "ByEndpoint",
    "ClusterTarget",
    "EndpointResolver",
    "as_target",
    "short_name",
    "validate_addressing",
]

ADDRESSING_ERROR = (
    "Either --cluster-uri must be provided, "
    "or both --subscription and --cluster-name must be provided."
)


def _strip(value):
    return value.strip() if isinstance(value, str) else value


@dataclass(frozen=True)
class ByEndpoint:
    """Cluster addressed directly by its URI."""
    endpoint: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "endpoint", _strip(self.endpoint))


@dataclass(frozen=True)
class ByCoordinates:
    """Cluster addressed by subscription and cluster name."""
    subscription: str
    cluster_name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "subscription", _strip(self.subscription))
        object.__setattr__(self, "cluster_name", _strip(self.cluster_name))


ClusterTarget = Union[ByEndpoint, ByCoordinates]


def _present(value: str | None) -> bool:
    return bool(value and value.strip())


def validate_addressing(
    endpoint: str | None = None,
    subscription: str | None = None,
    cluster_name: str | None = None,
) -> ClusterTarget:
    """
    Pick the addressing mode for a set of bound arguments.

    An endpoint wins whenever present, and subscription/cluster name are then
    ignored. Otherwise both subscription and cluster name are required.

    Raises:
        MissingRequiredArgument: If neither form is complete
    """
    if _present(endpoint):
        return ByEndpoint(endpoint.strip())

    missing = []
    if not _present(subscription):
        missing.append("subscription")
    if not _present(cluster_name):
        missing.append("cluster-name")
    if missing:
        raise MissingRequiredArgument(ADDRESSING_ERROR, missing=["cluster-uri", *missing])

    return ByCoordinates(subscription.strip(), cluster_name.strip())


def as_target(target: ClusterTarget | str) -> ClusterTarget:
    """Accept a bare endpoint string where a target is expected."""
    if isinstance(target, (ByEndpoint, ByCoordinates)):
        return target
    if isinstance(target, str):
        return validate_addressing(endpoint=target)
    raise TypeError(f"Expected ByEndpoint, ByCoordinates or str, got {type(target).__name__}")


@dataclass
class EndpointResolver:
    """Resolve an addressing target to one canonical cluster endpoint."""
    directory: ClusterDirectory
    cache: ResolutionCache = field(default_factory=ResolutionCache)
    ttl: float = 3600.0

    async def resolve(
        self,
        target: ClusterTarget | str,
        tenant: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> str:
        """
        Return the endpoint for ``target``.

        Raises:
            InvalidEndpoint: If the endpoint is not a URI with a host
            ResourceNotFound: If the named cluster is not in the directory
            ResolutionFailed: If the directory record has no endpoint
        """
        target = as_target(target)
        if isinstance(target, ByEndpoint):
            return normalize_endpoint(target.endpoint)

        key = cache_key(CLUSTER_URI_NAMESPACE, target.subscription, tenant, target.cluster_name.lower())
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        record = await self.directory.get_cluster(
            target.subscription, target.cluster_name, tenant, retry_policy
        )
        if not record.endpoint or not record.endpoint.strip():
            raise ResolutionFailed(f"Could not retrieve URI for cluster '{target.cluster_name}'")

        try:
            endpoint = normalize_endpoint(record.endpoint)
        except InvalidEndpoint as e:
            raise InvalidEndpoint(
                f"Cluster '{target.cluster_name}' has an invalid URI: {record.endpoint!r}", cause=e
            ) from e

        logger.debug(f"Resolved cluster {target.cluster_name} to {endpoint}")
        self.cache.set(key, endpoint, self.ttl)
        return endpoint
