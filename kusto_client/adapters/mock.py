"""Mock Kusto executor for demos and testing.

Serves a small in-memory catalog so commands can run without a real
cluster or credentials.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING

from .base import QueryExecutor, RequestMetadata, RowsReader, TabularReader

if TYPE_CHECKING:
    from ..auth import ConnectionDescriptor


# Sample data configuration
STORM_EVENTS = [
    ("2007-01-01T00:00:00Z", "FLORIDA", "Waterspout", 0),
    ("2007-01-02T03:15:00Z", "TEXAS", "Hail", 1200),
    ("2007-01-05T08:40:00Z", "KANSAS", "Tornado", 25000),
    ("2007-01-09T12:00:00Z", "OHIO", "Flood", 5000),
]

POPULATION = [
    ("FLORIDA", 21_538_187),
    ("TEXAS", 29_145_505),
    ("KANSAS", 2_937_880),
    ("OHIO", 11_799_448),
]

_SHOW_TABLE_SCHEMA = re.compile(r"^\.show\s+table\s+\[?'?(?P<table>[^'\]\s]+)'?\]?\s+schema\s+as\s+json$", re.I)
_SAMPLE = re.compile(r"^\[?'?(?P<table>[^'\]\s|]+)'?\]?\s*\|\s*(?:sample|take|limit)\s+(?P<n>\d+)$", re.I)
_TABLE_ONLY = re.compile(r"^\[?'?(?P<table>[^'\]\s|]+)'?\]?$")


@dataclass
class MockTable:
    """A table: ordered (name, type) columns plus rows."""
    columns: list[tuple[str, str]]
    rows: list[tuple[Any, ...]] = field(default_factory=list)

    def schema(self, name: str) -> dict[str, Any]:
        return {
            "Name": name,
            "OrderedColumns": [
                {"Name": col, "Type": f"System.{typ}", "CslType": typ.lower()}
                for col, typ in self.columns
            ],
        }


def sample_catalog() -> dict[str, dict[str, MockTable]]:
    """Default catalog: one database with two tables."""
    return {
        "Samples": {
            "StormEvents": MockTable(
                columns=[("StartTime", "DateTime"), ("State", "String"), ("EventType", "String"), ("DamageProperty", "Int32")],
                rows=list(STORM_EVENTS),
            ),
            "US_States": MockTable(
                columns=[("State", "String"), ("Population", "Int64")],
                rows=list(POPULATION),
            ),
        },
    }


class MockKustoExecutor(QueryExecutor):
    """
    In-memory executor understanding a handful of commands.

    Supported: ``.show databases``, ``.show tables``,
    ``.show table ['T'] schema as json``, and queries of the form ``T``,
    ``T | take N``, ``T | sample N``. Anything else raises ValueError.
    Without explicit catalogs a single cluster named ``help`` serves the
    sample catalog.
    Every call is appended to ``call_log`` as (kind, cluster, scope, text).
    """

    def __init__(self, catalogs: dict[str, dict[str, dict[str, MockTable]]] | None = None):
        # cluster short name -> database -> table
        self.catalogs = catalogs if catalogs is not None else {"help": sample_catalog()}
        self.call_log: list[tuple[str, str, str, str]] = []

    def add_cluster(self, cluster_name: str, databases: dict[str, dict[str, MockTable]] | None = None) -> None:
        self.catalogs[cluster_name.lower()] = databases if databases is not None else sample_catalog()

    async def execute_control_command(
        self,
        connection: ConnectionDescriptor,
        scope: str,
        command: str,
        metadata: RequestMetadata | None = None,
    ) -> TabularReader:
        cluster = connection.cluster_name
        self.call_log.append(("control", cluster, scope, command))
        databases = self._cluster(cluster)
        text = command.strip()

        if text.lower() == ".show databases":
            return RowsReader(
                ["DatabaseName", "PersistentStorage", "Version"],
                [(name, "", "v1.0") for name in databases],
            )

        if text.lower() == ".show tables":
            tables = self._database(databases, scope)
            return RowsReader(
                ["TableName", "DatabaseName", "Folder", "DocString"],
                [(name, scope, "", "") for name in tables],
            )

        if match := _SHOW_TABLE_SCHEMA.match(text):
            tables = self._database(databases, scope)
            name = match.group("table")
            table = self._table(tables, name)
            return RowsReader(
                ["TableName", "Schema", "DatabaseName", "Folder", "DocString"],
                [(name, json.dumps(table.schema(name)), scope, "", "")],
            )

        raise ValueError(f"Unsupported control command: {command}")

    async def execute_query(
        self,
        connection: ConnectionDescriptor,
        database: str,
        query: str,
        metadata: RequestMetadata | None = None,
    ) -> TabularReader:
        cluster = connection.cluster_name
        self.call_log.append(("query", cluster, database, query))
        tables = self._database(self._cluster(cluster), database)
        text = query.strip()

        if match := _SAMPLE.match(text):
            table = self._table(tables, match.group("table"))
            rows = table.rows[: int(match.group("n"))]
        elif match := _TABLE_ONLY.match(text):
            table = self._table(tables, match.group("table"))
            rows = table.rows
        else:
            raise ValueError(f"Syntax error: unsupported query '{query}'")

        return RowsReader([col for col, _ in table.columns], rows)

    def _cluster(self, cluster: str) -> dict[str, dict[str, MockTable]]:
        if cluster not in self.catalogs:
            raise ConnectionError(f"Cluster '{cluster}' is not reachable")
        return self.catalogs[cluster]

    @staticmethod
    def _database(databases: dict[str, dict[str, MockTable]], database: str) -> dict[str, MockTable]:
        if database not in databases:
            raise LookupError(f"Database '{database}' does not exist")
        return databases[database]

    @staticmethod
    def _table(tables: dict[str, MockTable], name: str) -> MockTable:
        if name not in tables:
            raise LookupError(f"Table '{name}' does not exist")
        return tables[name]
