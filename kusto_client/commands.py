"""
Command layer: argument binding, validation and structured responses.

Each command takes one flat CommandArgs and returns a CommandResponse.
Failures never escape ``Command.execute``; they become a status code and a
message on the response.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Awaitable, Callable, Mapping

from .addressing import ClusterTarget, validate_addressing
from .auth import AuthMethod, ensure_supported
from .client import KustoClient
from .errors import KustoClientError, MissingRequiredArgument, UnsupportedAuthMethod
from .resilience import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_LIMIT = 10


@dataclass
class CommandArgs:
    """Superset of the options every command may take."""
    subscription: str | None = None
    tenant: str | None = None
    cluster_uri: str | None = None
    cluster_name: str | None = None
    database: str | None = None
    table: str | None = None
    query: str | None = None
    limit: int | None = None
    auth_method: str | None = None
    retry_policy: RetryPolicy | None = None

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> CommandArgs:
        """
        Bind from a mapping of option names.

        Both ``cluster-uri`` and ``cluster_uri`` spellings are accepted;
        unknown keys are ignored.
        """
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in options.items():
            name = key.lstrip("-").replace("-", "_")
            if name in known and value is not None:
                values[name] = value
        if "limit" in values:
            values["limit"] = int(values["limit"])
        return cls(**values)

    def target(self) -> ClusterTarget:
        return validate_addressing(self.cluster_uri, self.subscription, self.cluster_name)


@dataclass
class CommandResponse:
    """Structured outcome of a command."""
    status: int = 200
    message: str = "Success"
    results: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status, "message": self.message}
        if self.error:
            data["error"] = self.error
        if self.results is not None:
            data["results"] = self.results
        return data


def handle_exception(response: CommandResponse, exc: BaseException) -> None:
    """Map an exception onto the response."""
    if isinstance(exc, KustoClientError):
        response.status = exc.status_code
    else:
        response.status = 500
    response.message = str(exc) or type(exc).__name__
    response.error = type(exc).__name__
    response.results = None


Handler = Callable[[KustoClient, CommandArgs], Awaitable[Any]]


@dataclass(frozen=True)
class Command:
    """A named operation with its required options."""
    name: str
    description: str
    handler: Handler
    required: tuple[str, ...] = ()
    addressed: bool = True
    result_key: str | None = None

    def validate(self, args: CommandArgs) -> ClusterTarget | None:
        """
        Check bound arguments before any remote call.

        Raises:
            UnsupportedAuthMethod: For key auth or an unknown auth method
            MissingRequiredArgument: For a missing option or an incomplete
                cluster address
        """
        try:
            ensure_supported(args.auth_method)
        except ValueError as e:
            raise UnsupportedAuthMethod(str(e)) from e

        target = args.target() if self.addressed else None

        missing = [name for name in self.required if _blank(getattr(args, name))]
        if missing:
            options = ", ".join(f"--{m.replace('_', '-')}" for m in missing)
            raise MissingRequiredArgument(f"Missing required options: {options}", missing=missing)
        return target

    async def execute(self, client: KustoClient, args: CommandArgs) -> CommandResponse:
        response = CommandResponse()
        try:
            self.validate(args)
        except KustoClientError as e:
            logger.warning(f"Invalid arguments for '{self.name}': {e}")
            handle_exception(response, e)
            return response

        try:
            results = await self.handler(client, args)
            response.results = self._wrap(results)
        except Exception as e:
            logger.error(
                f"An exception occurred running '{self.name}'. "
                f"Cluster: {args.cluster_name or args.cluster_uri}, Database: {args.database}, "
                f"Table: {args.table}, Query: {args.query}",
                exc_info=True,
            )
            handle_exception(response, e)
        return response

    def _wrap(self, results: Any) -> Any:
        # Zero elements is reported as no results, not as an error
        if results is None or (isinstance(results, (list, dict)) and not results):
            return None
        if self.result_key:
            return {self.result_key: results}
        return results


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _data_plane_kwargs(args: CommandArgs) -> dict[str, Any]:
    return {
        "tenant": args.tenant,
        "auth_method": AuthMethod.parse(args.auth_method) if args.auth_method else None,
        "retry_policy": args.retry_policy,
    }


async def _cluster_list(client: KustoClient, args: CommandArgs) -> Any:
    return await client.list_clusters(args.subscription, args.tenant, args.retry_policy)


async def _cluster_get(client: KustoClient, args: CommandArgs) -> Any:
    return await client.get_cluster(args.subscription, args.cluster_name, args.tenant, args.retry_policy)


async def _database_list(client: KustoClient, args: CommandArgs) -> Any:
    return await client.list_databases(args.target(), **_data_plane_kwargs(args))


async def _table_list(client: KustoClient, args: CommandArgs) -> Any:
    return await client.list_tables(args.target(), args.database, **_data_plane_kwargs(args))


async def _table_schema(client: KustoClient, args: CommandArgs) -> Any:
    return await client.get_table_schema(args.target(), args.database, args.table, **_data_plane_kwargs(args))


async def _table_sample(client: KustoClient, args: CommandArgs) -> Any:
    limit = args.limit if args.limit is not None else DEFAULT_SAMPLE_LIMIT
    return await client.sample_table(args.target(), args.database, args.table, limit, **_data_plane_kwargs(args))


async def _query(client: KustoClient, args: CommandArgs) -> Any:
    return await client.query_items(args.target(), args.database, args.query, **_data_plane_kwargs(args))


COMMANDS: dict[str, Command] = {
    cmd.name: cmd
    for cmd in (
        Command(
            "cluster list",
            "List all Kusto clusters in a subscription.",
            _cluster_list,
            required=("subscription",),
            addressed=False,
            result_key="clusters",
        ),
        Command(
            "cluster get",
            "Get details of one Kusto cluster by name.",
            _cluster_get,
            required=("subscription", "cluster_name"),
            addressed=False,
            result_key="cluster",
        ),
        Command(
            "database list",
            "List databases on a cluster.",
            _database_list,
            result_key="databases",
        ),
        Command(
            "table list",
            "List tables in a database.",
            _table_list,
            required=("database",),
            result_key="tables",
        ),
        Command(
            "table schema",
            "Get the schema of a table.",
            _table_schema,
            required=("database", "table"),
            result_key="schema",
        ),
        Command(
            "table sample",
            "Return a sample of rows from a table.",
            _table_sample,
            required=("database", "table"),
        ),
        Command(
            "query",
            "Execute a KQL query against a database. Results are returned as a list of records.",
            _query,
            required=("database", "query"),
        ),
    )
}


def get_command(name: str) -> Command:
    try:
        return COMMANDS[name]
    except KeyError:
        raise KeyError(f"Unknown command: {name!r}") from None
