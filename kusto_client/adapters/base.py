"""Base executor interface for control commands and queries."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol, Sequence, TYPE_CHECKING, runtime_checkable

if TYPE_CHECKING:
    from ..auth import ConnectionDescriptor
    from ..resilience import RetryPolicy


@runtime_checkable
class TabularReader(Protocol):
    """Forward-only, row-at-a-time view over one result table."""

    @property
    def field_count(self) -> int: ...

    def get_name(self, index: int) -> str: ...

    def get_value(self, index: int) -> Any: ...

    def advance(self) -> bool: ...


class RowsReader:
    """TabularReader over in-memory column names and rows."""

    def __init__(self, columns: Sequence[str], rows: Iterable[Sequence[Any]] = ()):
        self._columns = list(columns)
        self._rows = iter(rows)
        self._current: Sequence[Any] | None = None

    @property
    def field_count(self) -> int:
        return len(self._columns)

    def get_name(self, index: int) -> str:
        return self._columns[index]

    def get_value(self, index: int) -> Any:
        if self._current is None:
            raise RuntimeError("advance() must be called before reading values")
        return self._current[index]

    def advance(self) -> bool:
        self._current = next(self._rows, None)
        return self._current is not None


@dataclass
class RequestMetadata:
    """Per-request properties sent along with a command or query."""

    application: str
    client_request_id: str = field(default_factory=lambda: f"KustoClient;{uuid.uuid4()}")
    retry_policy: RetryPolicy | None = None


class QueryExecutor(ABC):
    """
    Base class for query executors.

    An executor opens a session described by a ConnectionDescriptor and
    runs one control command or query, returning a reader over the primary
    result table.
    """

    @abstractmethod
    async def execute_control_command(
        self,
        connection: ConnectionDescriptor,
        scope: str,
        command: str,
        metadata: RequestMetadata | None = None,
    ) -> TabularReader:
        """
        Run a control command.

        Args:
            connection: Session descriptor for the target cluster
            scope: Database name, or the cluster short name for cluster-level commands
            command: Control command text
            metadata: Request properties

        Returns:
            Reader over the command's result table
        """
        ...

    @abstractmethod
    async def execute_query(
        self,
        connection: ConnectionDescriptor,
        database: str,
        query: str,
        metadata: RequestMetadata | None = None,
    ) -> TabularReader:
        """Run a query against ``database`` and return its primary result."""
        ...
