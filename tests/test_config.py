"""Unit tests for client configuration."""

from __future__ import annotations

import os

import pytest

from kusto_client.config import ClientConfig
from kusto_client.resilience import RetryPolicy


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Strip KUSTO_* variables so defaults are predictable."""
    for name in list(os.environ):
        if name.startswith("KUSTO_"):
            monkeypatch.delenv(name)


class TestClientConfigDefaults:
    """Tests for default values and environment overrides."""

    def test_defaults(self):
        config = ClientConfig()

        assert config.management_url == "https://management.azure.com"
        assert config.management_api_version == "2023-08-15"
        assert config.auth_method == "credential"
        assert config.connection_string is None
        assert config.executor == "kusto"
        assert config.directory_cache_ttl == 3600

    def test_default_retry_policy(self):
        assert ClientConfig().retry_policy() == RetryPolicy(
            delay=0.8, max_delay=60, max_retries=3, mode="exponential", network_timeout=100
        )

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("KUSTO_CLIENT_TENANT", "tenant-env")
        monkeypatch.setenv("KUSTO_CLIENT_RETRY_MODE", "fixed")
        monkeypatch.setenv("KUSTO_CLIENT_RETRY_MAX_RETRIES", "0")
        monkeypatch.setenv("KUSTO_CONNECTION_STRING", "Data Source=env")

        config = ClientConfig()

        assert config.tenant == "tenant-env"
        assert config.connection_string == "Data Source=env"
        assert config.retry_policy().mode == "fixed"
        assert config.retry_policy().max_retries == 0


class TestClientConfigFiles:
    """Tests for YAML loading."""

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "client.yaml"
        path.write_text(
            "management_url: https://management.example.test\n"
            "endpoint_cache_ttl: 10\n"
            "retry_delay: 1.5\n"
            "executor: mock\n"
        )

        config = ClientConfig.from_yaml(path)

        assert config.management_url == "https://management.example.test"
        assert config.endpoint_cache_ttl == 10.0
        assert config.retry_delay == 1.5
        assert config.executor == "mock"

    def test_connection_string_never_read_from_file(self, tmp_path):
        path = tmp_path / "client.yaml"
        path.write_text("connection_string: Data Source=file\n")

        assert ClientConfig.from_yaml(path).connection_string is None

    def test_env_beats_file(self, tmp_path, monkeypatch):
        path = tmp_path / "client.yaml"
        path.write_text("application: from-file\n")
        monkeypatch.setenv("KUSTO_CLIENT_APPLICATION", "from-env")

        assert ClientConfig.from_yaml(path).application == "from-env"

    def test_load_merges_search_paths(self, tmp_path, monkeypatch):
        user = tmp_path / "user.yaml"
        user.write_text("application: user\ntenant: t-user\n")
        project = tmp_path / "project.yaml"
        project.write_text("application: project\n")
        explicit = tmp_path / "explicit.yaml"
        explicit.write_text("timeout: 5\n")
        monkeypatch.setattr("kusto_client.config.CONFIG_SEARCH_PATHS", [user, project, tmp_path / "absent.yaml"])

        config = ClientConfig.load(explicit)

        assert config.application == "project"
        assert config.tenant == "t-user"
        assert config.timeout == 5.0

    def test_empty_file(self, tmp_path):
        path = tmp_path / "client.yaml"
        path.write_text("")
        assert ClientConfig.from_yaml(path).application == "kusto-client"
