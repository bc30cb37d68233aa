"""Main client class and convenience functions."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from .adapters import QueryExecutor, RequestMetadata, TabularReader, get_executor
from .addressing import ClusterTarget, EndpointResolver, as_target
from .auth import AuthMethod, AzureIdentityProvider, ConnectionDescriptor, IdentityProvider, build_connection, ensure_supported
from .cache import ResolutionCache
from .config import ClientConfig
from .directory import ArmManagementDirectory, ClusterDirectory, ManagementDirectory, require_arguments
from .errors import KustoClientError, MissingRequiredArgument, UpstreamError
from .resilience import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


def quote_identifier(name: str) -> str:
    """Bracket-quote an entity name for use in command or query text."""
    return "['" + name.replace("\\", "\\\\").replace("'", "\\'") + "']"


def column_values(reader: TabularReader, column: str) -> list[Any]:
    """Read every row's value for ``column``."""
    names = [reader.get_name(i) for i in range(reader.field_count)]
    if column not in names:
        raise KeyError(f"Result has no '{column}' column (columns: {', '.join(names)})")
    index = names.index(column)
    values = []
    while reader.advance():
        values.append(reader.get_value(index))
    return values


def read_records(reader: TabularReader) -> list[dict[str, Any]]:
    """Read every row as a dict keyed by column name, in column order."""
    names = [reader.get_name(i) for i in range(reader.field_count)]
    records = []
    while reader.advance():
        records.append({name: reader.get_value(i) for i, name in enumerate(names)})
    return records


@dataclass
class KustoClient:
    """
    Client for cluster discovery, metadata and queries.

    Every data-plane operation takes a target that is either
    ``ByEndpoint(uri)``, ``ByCoordinates(subscription, cluster_name)`` or a
    bare endpoint string. Coordinates are resolved through the management
    directory (cached) before the operation runs.

    Usage:
        client = KustoClient()
        dbs = await client.list_databases("https://help.kusto.windows.net")
        tables = await client.list_tables(ByCoordinates("sub1", "mycluster"), "db1")
    """
    config: ClientConfig = field(default_factory=ClientConfig)
    identity: IdentityProvider | None = None
    management: ManagementDirectory | None = None
    executor: QueryExecutor | None = None
    cache: ResolutionCache = field(default_factory=ResolutionCache)

    directory: ClusterDirectory = field(init=False, repr=False)
    resolver: EndpointResolver = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.identity is None:
            self.identity = AzureIdentityProvider()
        if self.management is None:
            self.management = ArmManagementDirectory(self.identity, self.config)
        if self.executor is None:
            self.executor = get_executor(self.config.executor)
        self.directory = ClusterDirectory(self.management, self.cache, self.config.directory_cache_ttl)
        self.resolver = EndpointResolver(self.directory, self.cache, self.config.endpoint_cache_ttl)

    async def list_clusters(
        self,
        subscription: str,
        tenant: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> list[str]:
        """List cluster names in a subscription."""
        return await self.directory.list_clusters(subscription, self._tenant(tenant), retry_policy)

    async def get_cluster(
        self,
        subscription: str,
        cluster_name: str,
        tenant: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> dict[str, Any]:
        """Get the directory record of one cluster."""
        record = await self.directory.get_cluster(subscription, cluster_name, self._tenant(tenant), retry_policy)
        return record.to_dict()

    async def resolve_endpoint(
        self,
        target: ClusterTarget | str,
        tenant: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> str:
        """
        Resolve a target to its endpoint.

        Usually you don't need this - the data-plane methods resolve for you.
        """
        return await self.resolver.resolve(target, self._tenant(tenant), retry_policy)

    async def list_databases(
        self,
        target: ClusterTarget | str,
        *,
        tenant: str | None = None,
        auth_method: AuthMethod | str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> list[str]:
        """List database names on a cluster."""
        method = self._auth_method(auth_method)

        async def run(connection: ConnectionDescriptor, metadata: RequestMetadata) -> list[str]:
            reader = await self.executor.execute_control_command(
                connection, connection.cluster_name, ".show databases", metadata
            )
            return [str(v) for v in column_values(reader, "DatabaseName")]

        return await self._dispatch(
            target, "listing databases", run,
            tenant=tenant, method=method, retry_policy=retry_policy,
        )

    async def list_tables(
        self,
        target: ClusterTarget | str,
        database: str,
        *,
        tenant: str | None = None,
        auth_method: AuthMethod | str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> list[str]:
        """List table names in a database."""
        method = self._auth_method(auth_method)
        require_arguments(database=database)

        async def run(connection: ConnectionDescriptor, metadata: RequestMetadata) -> list[str]:
            reader = await self.executor.execute_control_command(connection, database, ".show tables", metadata)
            return [str(v) for v in column_values(reader, "TableName")]

        return await self._dispatch(
            target, f"listing tables in database '{database}'", run,
            tenant=tenant, method=method, retry_policy=retry_policy,
        )

    async def get_table_schema(
        self,
        target: ClusterTarget | str,
        database: str,
        table: str,
        *,
        tenant: str | None = None,
        auth_method: AuthMethod | str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> list[Any]:
        """Get a table's schema as parsed JSON fragments (one per result row)."""
        method = self._auth_method(auth_method)
        require_arguments(database=database, table=table)
        command = f".show table {quote_identifier(table)} schema as json"

        async def run(connection: ConnectionDescriptor, metadata: RequestMetadata) -> list[Any]:
            reader = await self.executor.execute_control_command(connection, database, command, metadata)
            return [json.loads(str(v)) for v in column_values(reader, "Schema")]

        return await self._dispatch(
            target, f"getting schema of table '{table}' in database '{database}'", run,
            tenant=tenant, method=method, retry_policy=retry_policy,
        )

    async def query_items(
        self,
        target: ClusterTarget | str,
        database: str,
        query: str,
        *,
        tenant: str | None = None,
        auth_method: AuthMethod | str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> list[dict[str, Any]]:
        """
        Run a query and return its rows as records.

        The query text is sent verbatim. Each record's keys are the result's
        column names in column order.
        """
        method = self._auth_method(auth_method)
        require_arguments(database=database, query=query)

        async def run(connection: ConnectionDescriptor, metadata: RequestMetadata) -> list[dict[str, Any]]:
            reader = await self.executor.execute_query(connection, database, query, metadata)
            return read_records(reader)

        return await self._dispatch(
            target, f"executing query in database '{database}'", run,
            tenant=tenant, method=method, retry_policy=retry_policy,
        )

    async def sample_table(
        self,
        target: ClusterTarget | str,
        database: str,
        table: str,
        limit: int = 10,
        *,
        tenant: str | None = None,
        auth_method: AuthMethod | str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> list[dict[str, Any]]:
        """Return up to ``limit`` arbitrary rows from a table."""
        self._auth_method(auth_method)
        require_arguments(table=table)
        if limit is None or int(limit) < 1:
            raise MissingRequiredArgument("limit must be a positive integer", missing=["limit"])
        query = f"{quote_identifier(table)} | sample {int(limit)}"
        return await self.query_items(
            target, database, query,
            tenant=tenant, auth_method=auth_method, retry_policy=retry_policy,
        )

    async def _dispatch(
        self,
        target: ClusterTarget | str,
        operation: str,
        run: Callable[[ConnectionDescriptor, RequestMetadata], Awaitable[T]],
        *,
        tenant: str | None,
        method: AuthMethod,
        retry_policy: RetryPolicy | None,
    ) -> T:
        """Resolve the target once, open a session descriptor and run the operation."""
        tenant = self._tenant(tenant)
        policy = retry_policy or self.config.retry_policy()

        endpoint = await self.resolver.resolve(as_target(target), tenant, policy)
        connection = await build_connection(
            endpoint,
            method,
            self.identity,
            tenant=tenant,
            connection_string=self.config.connection_string,
        )
        metadata = RequestMetadata(application=self.config.application, retry_policy=policy)

        try:
            return await run(connection, metadata)
        except KustoClientError:
            raise
        except Exception as e:
            raise UpstreamError(f"Error {operation} on cluster '{endpoint}': {e}", cause=e) from e

    def _auth_method(self, auth_method: AuthMethod | str | None) -> AuthMethod:
        # Checked before anything else so key auth fails the same way everywhere
        return ensure_supported(auth_method if auth_method is not None else self.config.auth_method)

    def _tenant(self, tenant: str | None) -> str | None:
        return tenant or self.config.tenant or None

    async def close(self) -> None:
        """Release credentials held by the identity provider."""
        close = getattr(self.identity, "close", None)
        if close is not None:
            await close()


# Module-level default client, with the event loop it was created on
_default_client: tuple[asyncio.AbstractEventLoop, KustoClient] | None = None


def _get_client() -> KustoClient:
    """
    Get or create the default client for the running event loop.

    Async credentials and HTTP sessions are bound to the loop that opened
    them, so each new loop (one per ``asyncio.run``) gets a fresh client.
    """
    global _default_client
    loop = asyncio.get_running_loop()
    if _default_client is None or _default_client[0] is not loop:
        _default_client = (loop, KustoClient(config=ClientConfig.load()))
    return _default_client[1]


async def list_clusters(subscription: str, tenant: str | None = None) -> list[str]:
    """
    List clusters in a subscription using the default client.

    Usage:
        from kusto_client import list_clusters
        names = await list_clusters("00000000-0000-0000-0000-000000000000")
    """
    return await _get_client().list_clusters(subscription, tenant)


async def list_databases(target: ClusterTarget | str, **kwargs: Any) -> list[str]:
    """List databases on a cluster using the default client."""
    return await _get_client().list_databases(target, **kwargs)


async def list_tables(target: ClusterTarget | str, database: str, **kwargs: Any) -> list[str]:
    """List tables in a database using the default client."""
    return await _get_client().list_tables(target, database, **kwargs)


async def get_table_schema(target: ClusterTarget | str, database: str, table: str, **kwargs: Any) -> list[Any]:
    """Get a table schema using the default client."""
    return await _get_client().get_table_schema(target, database, table, **kwargs)


async def query(target: ClusterTarget | str, database: str, text: str, **kwargs: Any) -> list[dict[str, Any]]:
    """
    Run a query using the default client.

    Usage:
        from kusto_client import query
        rows = await query("https://help.kusto.windows.net", "Samples", "StormEvents | take 5")
    """
    return await _get_client().query_items(target, database, text, **kwargs)
