"""
Kusto Client - cluster discovery, metadata and queries for Azure Data Explorer.

Usage:
    from kusto_client import KustoClient, ByCoordinates

    client = KustoClient()
    tables = await client.list_tables(ByCoordinates("sub1", "mycluster"), "db1")
    rows = await client.query_items("https://help.kusto.windows.net", "Samples", "StormEvents | take 5")
"""

from .addressing import ByCoordinates, ByEndpoint, ClusterTarget, short_name, validate_addressing
from .auth import AuthMethod
from .client import (
    KustoClient,
    get_table_schema,
    list_clusters,
    list_databases,
    list_tables,
    query,
)
from .config import ClientConfig
from .errors import (
    InvalidEndpoint,
    KustoClientError,
    MissingArgument,
    MissingRequiredArgument,
    ResolutionFailed,
    ResourceNotFound,
    UnsupportedAuthMethod,
    UpstreamError,
)
from .resilience import RetryPolicy

__version__ = "0.1.0"

__all__ = [
    # Client
    "KustoClient",
    "ClientConfig",
    "RetryPolicy",
    "AuthMethod",
    # Addressing
    "ByEndpoint",
    "ByCoordinates",
    "ClusterTarget",
    "validate_addressing",
    "short_name",
    # Errors
    "KustoClientError",
    "MissingRequiredArgument",
    "MissingArgument",
    "InvalidEndpoint",
    "UnsupportedAuthMethod",
    "ResourceNotFound",
    "ResolutionFailed",
    "UpstreamError",
    # Convenience functions
    "list_clusters",
    "list_databases",
    "list_tables",
    "get_table_schema",
    "query",
]
