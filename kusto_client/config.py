"""Client configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .resilience import RetryPolicy

# Config file search paths (in order of precedence, last wins)
CONFIG_SEARCH_PATHS = [
    Path.home() / ".kusto" / "client.yaml",  # User-level defaults
    Path(".kusto.yaml"),  # Project-level overrides
]

DEFAULT_MANAGEMENT_URL = "https://management.azure.com"
DEFAULT_MANAGEMENT_API_VERSION = "2023-08-15"


def _env(name: str, default: str | None = None) -> str | None:
    return os.environ.get(name, default)


@dataclass
class ClientConfig:
    """
    Configuration for the kusto client.

    Precedence (lowest to highest):
    1. Defaults
    2. ~/.kusto/client.yaml
    3. .kusto.yaml (project root)
    4. Environment variables (KUSTO_CLIENT_*)
    5. Constructor arguments
    """
    # Azure Resource Manager endpoint used for cluster discovery
    management_url: str = field(
        default_factory=lambda: _env("KUSTO_CLIENT_MANAGEMENT_URL", DEFAULT_MANAGEMENT_URL)
    )
    management_api_version: str = field(
        default_factory=lambda: _env("KUSTO_CLIENT_MANAGEMENT_API_VERSION", DEFAULT_MANAGEMENT_API_VERSION)
    )

    # Reported to the service with every request
    application: str = field(
        default_factory=lambda: _env("KUSTO_CLIENT_APPLICATION", "kusto-client")
    )

    # Management connect timeout (seconds); reads use the retry network timeout
    timeout: float = field(
        default_factory=lambda: float(_env("KUSTO_CLIENT_TIMEOUT", "30"))
    )

    # Resolution cache lifetimes (seconds, 0 = disabled)
    directory_cache_ttl: float = field(
        default_factory=lambda: float(_env("KUSTO_CLIENT_DIRECTORY_CACHE_TTL", "3600"))
    )
    endpoint_cache_ttl: float = field(
        default_factory=lambda: float(_env("KUSTO_CLIENT_ENDPOINT_CACHE_TTL", "3600"))
    )

    # Authentication: "credential" or "connection-string" ("key" is rejected)
    auth_method: str = field(
        default_factory=lambda: _env("KUSTO_CLIENT_AUTH_METHOD", "credential")
    )
    # Used only with the connection-string auth method (not read from files)
    connection_string: str | None = field(
        default_factory=lambda: _env("KUSTO_CONNECTION_STRING")
    )
    # Default tenant hint when the caller gives none
    tenant: str | None = field(
        default_factory=lambda: _env("KUSTO_CLIENT_TENANT")
    )

    # Retry policy forwarded to the directory and query collaborators
    retry_delay: float = field(
        default_factory=lambda: float(_env("KUSTO_CLIENT_RETRY_DELAY", "0.8"))
    )
    retry_max_delay: float = field(
        default_factory=lambda: float(_env("KUSTO_CLIENT_RETRY_MAX_DELAY", "60"))
    )
    retry_max_retries: int = field(
        default_factory=lambda: int(_env("KUSTO_CLIENT_RETRY_MAX_RETRIES", "3"))
    )
    retry_mode: str = field(
        default_factory=lambda: _env("KUSTO_CLIENT_RETRY_MODE", "exponential")
    )
    network_timeout: float = field(
        default_factory=lambda: float(_env("KUSTO_CLIENT_NETWORK_TIMEOUT", "100"))
    )

    # Query executor: "kusto" or "mock"
    executor: str = field(
        default_factory=lambda: _env("KUSTO_CLIENT_EXECUTOR", "kusto")
    )

    log_level: str = field(
        default_factory=lambda: _env("KUSTO_CLIENT_LOG_LEVEL", "WARNING")
    )

    def retry_policy(self) -> RetryPolicy:
        """Default retry policy built from this config."""
        return RetryPolicy(
            delay=self.retry_delay,
            max_delay=self.retry_max_delay,
            max_retries=self.retry_max_retries,
            mode=self.retry_mode,
            network_timeout=self.network_timeout,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientConfig:
        """Create config from dictionary. Environment variables override file values."""
        def pick(key: str, env_name: str, default: Any) -> Any:
            if env_name in os.environ:
                return os.environ[env_name]
            return data.get(key, default)

        return cls(
            management_url=pick("management_url", "KUSTO_CLIENT_MANAGEMENT_URL", DEFAULT_MANAGEMENT_URL),
            management_api_version=pick(
                "management_api_version", "KUSTO_CLIENT_MANAGEMENT_API_VERSION", DEFAULT_MANAGEMENT_API_VERSION
            ),
            application=pick("application", "KUSTO_CLIENT_APPLICATION", "kusto-client"),
            timeout=float(pick("timeout", "KUSTO_CLIENT_TIMEOUT", 30)),
            directory_cache_ttl=float(pick("directory_cache_ttl", "KUSTO_CLIENT_DIRECTORY_CACHE_TTL", 3600)),
            endpoint_cache_ttl=float(pick("endpoint_cache_ttl", "KUSTO_CLIENT_ENDPOINT_CACHE_TTL", 3600)),
            auth_method=pick("auth_method", "KUSTO_CLIENT_AUTH_METHOD", "credential"),
            connection_string=os.environ.get("KUSTO_CONNECTION_STRING"),
            tenant=pick("tenant", "KUSTO_CLIENT_TENANT", None),
            retry_delay=float(pick("retry_delay", "KUSTO_CLIENT_RETRY_DELAY", 0.8)),
            retry_max_delay=float(pick("retry_max_delay", "KUSTO_CLIENT_RETRY_MAX_DELAY", 60)),
            retry_max_retries=int(pick("retry_max_retries", "KUSTO_CLIENT_RETRY_MAX_RETRIES", 3)),
            retry_mode=pick("retry_mode", "KUSTO_CLIENT_RETRY_MODE", "exponential"),
            network_timeout=float(pick("network_timeout", "KUSTO_CLIENT_NETWORK_TIMEOUT", 100)),
            executor=pick("executor", "KUSTO_CLIENT_EXECUTOR", "kusto"),
            log_level=pick("log_level", "KUSTO_CLIENT_LOG_LEVEL", "WARNING"),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> ClientConfig:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def load(cls, config_file: str | Path | None = None) -> ClientConfig:
        """
        Load config with auto-discovery.

        Search order (last wins):
        1. ~/.kusto/client.yaml
        2. .kusto.yaml
        3. Explicit config_file argument
        4. Environment variables always override file values
        """
        import yaml

        merged: dict[str, Any] = {}

        for path in CONFIG_SEARCH_PATHS:
            if path.exists():
                with open(path, "r") as f:
                    data = yaml.safe_load(f) or {}
                merged.update(data)

        if config_file:
            with open(config_file, "r") as f:
                data = yaml.safe_load(f) or {}
            merged.update(data)

        return cls.from_dict(merged)
