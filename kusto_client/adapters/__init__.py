"""Query executors for the kusto client."""

from __future__ import annotations

from .base import QueryExecutor, RequestMetadata, RowsReader, TabularReader

__all__ = [
    "QueryExecutor",
    "RequestMetadata",
    "RowsReader",
    "TabularReader",
    "get_executor",
]


def get_executor(name: str = "kusto") -> QueryExecutor:
    """
    Create an executor by name.

    "kusto" talks to real clusters (needs azure-kusto-data);
    "mock" serves the in-memory sample catalog.
    """
    key = (name or "kusto").lower()
    if key == "kusto":
        from .kusto import KustoQueryExecutor
        return KustoQueryExecutor()
    if key == "mock":
        from .mock import MockKustoExecutor
        return MockKustoExecutor()
    raise ValueError(f"Unknown executor: {name!r} (expected 'kusto' or 'mock')")
