"""Authentication and session construction for the kusto client."""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from .endpoints import short_name
from .errors import MissingArgument, UnsupportedAuthMethod

logger = logging.getLogger(__name__)


class AuthMethod(str, enum.Enum):
    """How a session authenticates against the cluster."""
    CREDENTIAL = "credential"
    CONNECTION_STRING = "connection-string"
    KEY = "key"

    @classmethod
    def parse(cls, value: AuthMethod | str | None) -> AuthMethod:
        """Parse ``"credential"``, ``"ConnectionString"``, ``"connection_string"``... None gives the default."""
        if value is None or value == "":
            return cls.CREDENTIAL
        if isinstance(value, AuthMethod):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        if normalized == "connectionstring":
            normalized = "connection-string"
        try:
            return cls(normalized)
        except ValueError:
            choices = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown auth method {value!r}; expected one of: {choices}") from None


def ensure_supported(auth_method: AuthMethod | str | None) -> AuthMethod:
    """Reject auth methods the data plane does not accept."""
    method = AuthMethod.parse(auth_method)
    if method is AuthMethod.KEY:
        raise UnsupportedAuthMethod(
            "Key authentication is not supported. Supported types are: credential or connection string."
        )
    return method


class IdentityProvider(ABC):
    """Source of credential objects, optionally scoped to a tenant."""

    @abstractmethod
    async def get_credential(self, tenant: str | None = None) -> Any:
        """Return an async token credential for ``tenant`` (default tenant when None)."""
        ...


class TenantScopedCredential:
    """
    Borrowed view of a shared async credential, optionally pinned to a tenant.

    SDK clients close the credential they are given when they exit, so the
    view's ``close`` leaves the underlying credential open. Its owner
    closes it.
    """

    def __init__(self, credential: Any, tenant: str | None = None):
        self._credential = credential
        self.tenant = tenant

    async def get_token(self, *scopes: str, **kwargs: Any) -> Any:
        if self.tenant:
            kwargs.setdefault("tenant_id", self.tenant)
        return await self._credential.get_token(*scopes, **kwargs)

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> TenantScopedCredential:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


@dataclass
class AzureIdentityProvider(IdentityProvider):
    """
    Identity provider backed by azure-identity's DefaultAzureCredential.

    One credential object is kept per tenant so token caches are reused
    across calls. Callers receive a non-closing ``TenantScopedCredential``
    view; the real credentials are closed by ``close``.
    """
    exclude_interactive: bool = True

    _credentials: dict[str | None, TenantScopedCredential] = field(default_factory=dict, init=False, repr=False)
    _owned: list[Any] = field(default_factory=list, init=False, repr=False)

    async def get_credential(self, tenant: str | None = None) -> Any:
        cached = self._credentials.get(tenant)
        if cached is not None:
            return cached

        from azure.identity.aio import DefaultAzureCredential

        kwargs: dict[str, Any] = {"exclude_interactive_browser_credential": self.exclude_interactive}
        if tenant:
            kwargs["additionally_allowed_tenants"] = ["*"]

        owned = DefaultAzureCredential(**kwargs)
        self._owned.append(owned)
        credential = TenantScopedCredential(owned, tenant)

        logger.debug(f"Created credential for tenant {tenant or '<default>'}")
        self._credentials[tenant] = credential
        return credential

    async def close(self) -> None:
        owned = list(self._owned)
        self._owned.clear()
        self._credentials.clear()
        for credential in owned:
            await credential.close()


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Everything an executor needs to open a session against one cluster."""
    endpoint: str
    auth_method: AuthMethod
    credential: Any = field(default=None, repr=False, compare=False)
    connection_string: str | None = field(default=None, repr=False)
    tenant: str | None = None

    @property
    def cluster_name(self) -> str:
        """Short cluster name used to scope cluster-level control commands."""
        return short_name(self.endpoint)


async def build_connection(
    endpoint: str,
    auth_method: AuthMethod | str | None,
    identity: IdentityProvider,
    tenant: str | None = None,
    connection_string: str | None = None,
) -> ConnectionDescriptor:
    """
    Build the session descriptor for ``endpoint``.

    Key auth is rejected, connection-string auth needs a non-empty
    connection string, credential auth asks the identity provider. Errors
    raised by the identity provider propagate unchanged.
    """
    method = ensure_supported(auth_method)

    if method is AuthMethod.CONNECTION_STRING:
        if not connection_string or not connection_string.strip():
            raise MissingArgument(
                "connection_string",
                "Connection string auth requested but no connection string is configured "
                "(set KUSTO_CONNECTION_STRING).",
            )
        return ConnectionDescriptor(
            endpoint=endpoint,
            auth_method=method,
            connection_string=connection_string,
            tenant=tenant,
        )

    credential = await identity.get_credential(tenant)
    return ConnectionDescriptor(
        endpoint=endpoint,
        auth_method=method,
        credential=credential,
        tenant=tenant,
    )
