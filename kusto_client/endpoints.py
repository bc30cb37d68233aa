"""Cluster endpoint parsing."""

from __future__ import annotations

from urllib.parse import urlsplit

from .errors import InvalidEndpoint


def normalize_endpoint(endpoint: str | None) -> str:
    """
    Trim and validate a cluster endpoint.

    Raises:
        InvalidEndpoint: If the value is empty, does not parse as a URI,
            or has no host.
    """
    value = (endpoint or "").strip()
    if not value:
        raise InvalidEndpoint("Cluster endpoint is empty")
    _host(value)
    return value


def short_name(endpoint: str) -> str:
    """
    Cluster short name: the leftmost DNS label of the endpoint host.

    ``short_name("https://mycluster.example.net/path") == "mycluster"``
    """
    return _host((endpoint or "").strip()).split(".")[0]


def _host(endpoint: str) -> str:
    try:
        host = urlsplit(endpoint).hostname
    except ValueError as e:
        raise InvalidEndpoint(f"Invalid cluster endpoint '{endpoint}': {e}", cause=e) from e
    if not host:
        raise InvalidEndpoint(f"Invalid cluster endpoint '{endpoint}': no host")
    return host
