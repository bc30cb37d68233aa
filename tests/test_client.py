"""
Integration tests for KustoClient using the mock executor.

Tests the full flow: addressing -> resolution -> session -> command -> records
"""

from __future__ import annotations

import asyncio

import pytest

from kusto_client import ByCoordinates, ByEndpoint, KustoClient
from kusto_client.adapters.mock import MockKustoExecutor
from kusto_client.auth import AuthMethod
from kusto_client import client as client_module
from kusto_client.client import column_values, quote_identifier, read_records
from kusto_client.config import ClientConfig
from kusto_client.adapters import RowsReader
from kusto_client.errors import (
    InvalidEndpoint,
    MissingArgument,
    MissingRequiredArgument,
    ResourceNotFound,
    UnsupportedAuthMethod,
    UpstreamError,
)
from kusto_client.resilience import RetryPolicy

from tests.fixtures.fakes import MYCLUSTER_URI, FakeIdentityProvider


class RecordingExecutor(MockKustoExecutor):
    """Mock executor that also keeps the session and request metadata it was given."""

    def __init__(self, catalogs):
        super().__init__(catalogs)
        self.connections = []
        self.metadata = []

    async def execute_control_command(self, connection, scope, command, metadata=None):
        self.connections.append(connection)
        self.metadata.append(metadata)
        return await super().execute_control_command(connection, scope, command, metadata)

    async def execute_query(self, connection, database, query, metadata=None):
        self.connections.append(connection)
        self.metadata.append(metadata)
        return await super().execute_query(connection, database, query, metadata)


@pytest.fixture
def recording_client(config, identity, management, executor, cache):
    recorder = RecordingExecutor(executor.catalogs)
    return KustoClient(config=config, identity=identity, management=management, executor=recorder, cache=cache)


class TestKustoClientDiscovery:
    """Test cluster listing and lookup."""

    @pytest.mark.asyncio
    async def test_list_clusters(self, client):
        assert await client.list_clusters("sub1") == ["mycluster", "other"]

    @pytest.mark.asyncio
    async def test_get_cluster(self, client):
        cluster = await client.get_cluster("sub1", "MYCLUSTER")

        assert cluster["name"] == "mycluster"
        assert cluster["endpoint"] == MYCLUSTER_URI
        assert cluster["location"] == "westus"

    @pytest.mark.asyncio
    async def test_get_cluster_not_found(self, client):
        with pytest.raises(ResourceNotFound):
            await client.get_cluster("sub1", "nope")

    @pytest.mark.asyncio
    async def test_resolve_endpoint(self, client):
        assert await client.resolve_endpoint(ByCoordinates("sub1", "mycluster")) == MYCLUSTER_URI

    @pytest.mark.asyncio
    async def test_config_tenant_used_by_default(self, config_factory, identity, management, executor, cache):
        client = KustoClient(
            config=config_factory(tenant="tenant-x"),
            identity=identity, management=management, executor=executor, cache=cache,
        )

        await client.list_clusters("sub1")

        assert management.calls[0][1] == "tenant-x"


class TestKustoClientListTables:
    """Test table listing through both addressing modes."""

    @pytest.mark.asyncio
    async def test_list_tables_by_coordinates(self, client, executor):
        tables = await client.list_tables(ByCoordinates("sub1", "mycluster"), "db1")

        assert tables == ["T1", "T2", "Empty"]
        assert executor.call_log == [("control", "mycluster", "db1", ".show tables")]

    @pytest.mark.asyncio
    async def test_both_addressing_modes_agree(self, client, executor, management):
        by_coords = await client.list_tables(ByCoordinates("sub1", "mycluster"), "db1")
        by_endpoint = await client.list_tables(ByEndpoint(MYCLUSTER_URI), "db1")
        by_string = await client.list_tables(MYCLUSTER_URI, "db1")

        assert by_coords == by_endpoint == by_string
        assert executor.call_log[0] == executor.call_log[1] == executor.call_log[2]
        assert len(management.calls) == 1

    @pytest.mark.asyncio
    async def test_resolution_cached_across_operations(self, client, management):
        await client.list_tables(ByCoordinates("sub1", "mycluster"), "db1")
        await client.list_databases(ByCoordinates("sub1", "mycluster"))
        await client.query_items(ByCoordinates("sub1", "mycluster"), "db1", "T1")

        assert len(management.calls) == 1

    @pytest.mark.asyncio
    async def test_one_enumeration_after_ttl(self, client, management, clock):
        await client.list_tables(ByCoordinates("sub1", "mycluster"), "db1")
        clock.advance(client.config.directory_cache_ttl + 1)
        await client.list_tables(ByCoordinates("sub1", "mycluster"), "db1")
        await client.list_tables(ByCoordinates("sub1", "mycluster"), "db1")

        assert len(management.calls) == 2

    @pytest.mark.asyncio
    async def test_missing_database(self, client, executor):
        with pytest.raises(MissingRequiredArgument) as exc_info:
            await client.list_tables(ByEndpoint(MYCLUSTER_URI), "")

        assert exc_info.value.missing == ["database"]
        assert executor.call_log == []

    @pytest.mark.asyncio
    async def test_unknown_cluster_never_reaches_executor(self, client, executor):
        with pytest.raises(ResourceNotFound):
            await client.list_tables(ByCoordinates("sub1", "ghost"), "db1")
        assert executor.call_log == []

    @pytest.mark.asyncio
    async def test_invalid_endpoint(self, client):
        with pytest.raises(InvalidEndpoint):
            await client.list_tables("mycluster", "db1")

    @pytest.mark.asyncio
    async def test_unknown_database_is_upstream_error(self, client):
        with pytest.raises(UpstreamError) as exc_info:
            await client.list_tables(ByEndpoint(MYCLUSTER_URI), "nodb")

        assert MYCLUSTER_URI in str(exc_info.value)
        assert "nodb" in str(exc_info.value)
        assert isinstance(exc_info.value.cause, LookupError)


class TestKustoClientMetadata:
    """Test database listing and table schema."""

    @pytest.mark.asyncio
    async def test_list_databases_scoped_to_cluster(self, client, executor):
        databases = await client.list_databases(ByEndpoint(MYCLUSTER_URI))

        assert databases == ["db1"]
        assert executor.call_log == [("control", "mycluster", "mycluster", ".show databases")]

    @pytest.mark.asyncio
    async def test_get_table_schema(self, client, executor):
        schema = await client.get_table_schema(ByEndpoint(MYCLUSTER_URI), "db1", "T1")

        assert len(schema) == 1
        assert schema[0]["Name"] == "T1"
        assert [c["Name"] for c in schema[0]["OrderedColumns"]] == ["Id", "Name"]
        assert executor.call_log[0][3] == ".show table ['T1'] schema as json"

    @pytest.mark.asyncio
    async def test_get_table_schema_requires_table(self, client):
        with pytest.raises(MissingRequiredArgument) as exc_info:
            await client.get_table_schema(ByEndpoint(MYCLUSTER_URI), "db1", "")
        assert exc_info.value.missing == ["table"]


class TestKustoClientQuery:
    """Test queries and sampling."""

    @pytest.mark.asyncio
    async def test_query_items_in_column_order(self, client):
        rows = await client.query_items(ByEndpoint(MYCLUSTER_URI), "db1", "T1")

        assert rows == [{"Id": 1, "Name": "a"}, {"Id": 2, "Name": "b"}]
        assert list(rows[0].keys()) == ["Id", "Name"]

    @pytest.mark.asyncio
    async def test_query_text_sent_verbatim(self, client, executor):
        await client.query_items(ByEndpoint(MYCLUSTER_URI), "db1", "T1 | take 1")
        assert executor.call_log == [("query", "mycluster", "db1", "T1 | take 1")]

    @pytest.mark.asyncio
    async def test_zero_rows_is_empty_list(self, client):
        assert await client.query_items(ByEndpoint(MYCLUSTER_URI), "db1", "Empty") == []

    @pytest.mark.asyncio
    async def test_bad_query_is_upstream_error(self, client):
        with pytest.raises(UpstreamError, match="executing query"):
            await client.query_items(ByEndpoint(MYCLUSTER_URI), "db1", "T1 | where")

    @pytest.mark.asyncio
    async def test_sample_table(self, client, executor):
        rows = await client.sample_table(ByCoordinates("sub1", "other"), "Samples", "StormEvents", 2)

        assert len(rows) == 2
        assert executor.call_log == [("query", "other", "Samples", "['StormEvents'] | sample 2")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, -5])
    async def test_sample_table_limit_must_be_positive(self, client, executor, limit):
        with pytest.raises(MissingRequiredArgument):
            await client.sample_table(ByEndpoint(MYCLUSTER_URI), "db1", "T1", limit)
        assert executor.call_log == []


class TestKustoClientAuth:
    """Test session construction per auth method."""

    KEY_OPERATIONS = {
        "list_databases": lambda c: c.list_databases(ByEndpoint(MYCLUSTER_URI), auth_method="key"),
        "list_tables": lambda c: c.list_tables(ByCoordinates("sub1", "ghost"), "", auth_method="key"),
        "get_table_schema": lambda c: c.get_table_schema("not a uri", "", "", auth_method=AuthMethod.KEY),
        "query_items": lambda c: c.query_items(ByEndpoint(MYCLUSTER_URI), "db1", "T1", auth_method="Key"),
        "sample_table": lambda c: c.sample_table(ByEndpoint(MYCLUSTER_URI), "db1", "T1", 0, auth_method="key"),
    }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", sorted(KEY_OPERATIONS))
    async def test_key_auth_rejected_everywhere(self, client, executor, management, identity, operation):
        with pytest.raises(UnsupportedAuthMethod) as exc_info:
            await self.KEY_OPERATIONS[operation](client)

        assert exc_info.value.status_code == 400
        assert executor.call_log == []
        assert management.calls == []
        assert identity.requests == []

    @pytest.mark.asyncio
    async def test_key_auth_from_config(self, config_factory, identity, management, executor, cache):
        client = KustoClient(
            config=config_factory(auth_method="key"),
            identity=identity, management=management, executor=executor, cache=cache,
        )
        with pytest.raises(UnsupportedAuthMethod):
            await client.list_databases(ByEndpoint(MYCLUSTER_URI))

    @pytest.mark.asyncio
    async def test_credential_session(self, recording_client, identity):
        await recording_client.list_databases(ByEndpoint(MYCLUSTER_URI), tenant="tenant-a")

        connection = recording_client.executor.connections[0]
        assert connection.auth_method is AuthMethod.CREDENTIAL
        assert connection.credential is identity.credentials["tenant-a"]
        assert connection.tenant == "tenant-a"
        assert connection.endpoint == MYCLUSTER_URI

    @pytest.mark.asyncio
    async def test_connection_string_session(self, config_factory, identity, management, executor, cache):
        recorder = RecordingExecutor(executor.catalogs)
        client = KustoClient(
            config=config_factory(
                auth_method="connection-string",
                connection_string="Data Source=https://mycluster.westus.kusto.windows.net;Fed=True",
            ),
            identity=identity, management=management, executor=recorder, cache=cache,
        )

        assert await client.list_databases(ByEndpoint(MYCLUSTER_URI)) == ["db1"]

        connection = recorder.connections[0]
        assert connection.auth_method is AuthMethod.CONNECTION_STRING
        assert connection.connection_string.startswith("Data Source=")
        assert identity.requests == []

    @pytest.mark.asyncio
    async def test_connection_string_missing(self, client, executor):
        with pytest.raises(MissingArgument) as exc_info:
            await client.list_databases(ByEndpoint(MYCLUSTER_URI), auth_method="connection-string")

        assert exc_info.value.argument == "connection_string"
        assert executor.call_log == []

    @pytest.mark.asyncio
    async def test_identity_errors_propagate_unwrapped(self, config, management, executor, cache):
        class CredentialUnavailable(Exception):
            pass

        client = KustoClient(
            config=config,
            identity=FakeIdentityProvider(error=CredentialUnavailable("no identity")),
            management=management, executor=executor, cache=cache,
        )

        with pytest.raises(CredentialUnavailable):
            await client.list_databases(ByEndpoint(MYCLUSTER_URI))

    @pytest.mark.asyncio
    async def test_request_metadata(self, recording_client, config):
        await recording_client.query_items(ByEndpoint(MYCLUSTER_URI), "db1", "T1")
        await recording_client.query_items(ByEndpoint(MYCLUSTER_URI), "db1", "T1")

        first, second = recording_client.executor.metadata
        assert first.application == "kusto-client-tests"
        assert first.client_request_id.startswith("KustoClient;")
        assert first.client_request_id != second.client_request_id
        assert first.retry_policy == config.retry_policy()

    @pytest.mark.asyncio
    async def test_retry_policy_forwarded(self, recording_client, management):
        policy = RetryPolicy(delay=2, max_retries=5, mode="fixed")

        await recording_client.list_tables(ByCoordinates("sub1", "mycluster"), "db1", retry_policy=policy)

        assert management.calls[0][2] is policy
        assert recording_client.executor.metadata[0].retry_policy is policy


class TestReaderHelpers:
    """Tests for reading result tables."""

    def test_quote_identifier(self):
        assert quote_identifier("T1") == "['T1']"
        assert quote_identifier("it's") == "['it\\'s']"

    def test_column_values(self):
        reader = RowsReader(["A", "B"], [(1, "x"), (2, "y")])
        assert column_values(reader, "B") == ["x", "y"]

    def test_column_values_missing_column(self):
        with pytest.raises(KeyError, match="no 'C' column"):
            column_values(RowsReader(["A"], []), "C")

    def test_read_records(self):
        reader = RowsReader(["A", "B"], [(1, "x")])
        assert read_records(reader) == [{"A": 1, "B": "x"}]

    def test_value_before_advance(self):
        with pytest.raises(RuntimeError):
            RowsReader(["A"], [(1,)]).get_value(0)


class TestDefaultClient:
    """Tests for the module-level convenience functions."""

    @pytest.fixture(autouse=True)
    def default_config(self, monkeypatch, config_factory):
        config = config_factory(auth_method="connection-string", connection_string="Data Source=x;Fed=True")
        monkeypatch.setattr(ClientConfig, "load", lambda *args, **kwargs: config)
        monkeypatch.setattr(client_module, "_default_client", None)

    def test_one_client_per_event_loop(self):
        async def list_and_capture():
            databases = await client_module.list_databases("https://help.kusto.windows.net")
            return databases, client_module._get_client(), client_module._get_client()

        first_dbs, first, same = asyncio.run(list_and_capture())
        second_dbs, second, _ = asyncio.run(list_and_capture())

        assert first_dbs == second_dbs == ["Samples"]
        assert first is same
        assert second is not first

    def test_requires_running_loop(self):
        with pytest.raises(RuntimeError):
            client_module._get_client()
