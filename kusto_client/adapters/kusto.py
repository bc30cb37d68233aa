"""Kusto adapter - sessions through the azure-kusto-data async client."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, TYPE_CHECKING

from azure.kusto.data import ClientRequestProperties, KustoConnectionStringBuilder
from azure.kusto.data.aio import KustoClient as AzureKustoClient

from ..auth import AuthMethod
from ..resilience import retry_async
from .base import QueryExecutor, RequestMetadata, RowsReader, TabularReader

if TYPE_CHECKING:
    from ..auth import ConnectionDescriptor

logger = logging.getLogger(__name__)


class KustoTableReader(RowsReader):
    """TabularReader over an azure-kusto-data result table."""

    def __init__(self, table: Any):
        columns = [column.column_name for column in table.columns]
        super().__init__(
            columns,
            ([row[i] for i in range(len(columns))] for row in table),
        )


class KustoQueryExecutor(QueryExecutor):
    """
    Executor for Azure Data Explorer clusters.

    A new SDK client is opened for every call and closed when the primary
    result has been read into memory. Transient failures are retried under
    the request's RetryPolicy.
    """

    async def execute_control_command(
        self,
        connection: ConnectionDescriptor,
        scope: str,
        command: str,
        metadata: RequestMetadata | None = None,
    ) -> TabularReader:
        return await self._execute(connection, scope, command, metadata, control=True)

    async def execute_query(
        self,
        connection: ConnectionDescriptor,
        database: str,
        query: str,
        metadata: RequestMetadata | None = None,
    ) -> TabularReader:
        return await self._execute(connection, database, query, metadata, control=False)

    async def _execute(
        self,
        connection: ConnectionDescriptor,
        database: str,
        text: str,
        metadata: RequestMetadata | None,
        control: bool,
    ) -> TabularReader:
        policy = metadata.retry_policy if metadata else None
        properties = self._request_properties(metadata)

        async def _run() -> TabularReader:
            async with AzureKustoClient(self._connection_string_builder(connection)) as client:
                if control:
                    response = await client.execute_mgmt(database, text, properties)
                else:
                    response = await client.execute_query(database, text, properties)
            if not response.primary_results:
                return RowsReader([])
            return KustoTableReader(response.primary_results[0])

        logger.debug(f"Executing {'control command' if control else 'query'} on {connection.endpoint}/{database}")
        return await retry_async(_run, policy)

    @staticmethod
    def _connection_string_builder(connection: ConnectionDescriptor) -> KustoConnectionStringBuilder:
        if connection.auth_method is AuthMethod.CONNECTION_STRING:
            return KustoConnectionStringBuilder(connection.connection_string)

        kcsb = KustoConnectionStringBuilder.with_azure_token_credential(
            connection.endpoint, credential=connection.credential
        )
        if connection.tenant:
            kcsb.authority_id = connection.tenant
        return kcsb

    @staticmethod
    def _request_properties(metadata: RequestMetadata | None) -> ClientRequestProperties | None:
        if metadata is None:
            return None
        properties = ClientRequestProperties()
        properties.client_request_id = metadata.client_request_id
        properties.application = metadata.application
        if metadata.retry_policy and metadata.retry_policy.network_timeout:
            properties.set_option(
                ClientRequestProperties.request_timeout_option_name,
                timedelta(seconds=metadata.retry_policy.network_timeout),
            )
        return properties
