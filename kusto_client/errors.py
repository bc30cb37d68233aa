"""Exception types raised by the kusto client."""

from __future__ import annotations


class KustoClientError(Exception):
    """Base exception for kusto client errors."""

    status_code: int = 500

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class MissingRequiredArgument(KustoClientError):
    """Argument validation failed before any remote call."""
    status_code = 400

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = list(missing or [])


class MissingArgument(KustoClientError):
    """A value needed to build the session was not supplied."""
    status_code = 400

    def __init__(self, argument: str, message: str | None = None):
        super().__init__(message or f"Missing required value: {argument}")
        self.argument = argument


class InvalidEndpoint(KustoClientError):
    """Endpoint is not a URI with a host."""
    status_code = 400


class UnsupportedAuthMethod(KustoClientError):
    """Requested auth method is not supported by the data plane."""
    status_code = 400


class ResourceNotFound(KustoClientError):
    """Named cluster is not in the subscription's directory."""
    status_code = 404


class ResolutionFailed(KustoClientError):
    """Directory record was found but carries no endpoint."""
    status_code = 500


class UpstreamError(KustoClientError):
    """Failure surfaced by the directory or the query service."""
    status_code = 500
