"""
Access token acquisition for calls to Azure Resource Manager.
"""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from shared.config import BaseConfig
from shared.errors import CredentialUnavailableError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

IMDS_ENDPOINT = "http://169.254.169.254/metadata/identity/oauth2/token"
IMDS_API_VERSION = "2018-02-01"
APP_SERVICE_API_VERSION = "2019-08-01"


@dataclass(frozen=True)
class AccessToken:
    """Bearer token plus its absolute expiry (epoch seconds)."""

    token: str
    expires_on: float


def scope_to_resource(scope: str) -> str:
    """Managed identity endpoints take a resource URI rather than a ``/.default`` scope."""
    if scope.endswith("/.default"):
        return scope[: -len(".default")]
    return scope


def _parse_token_payload(payload: Dict[str, Any], now: float) -> AccessToken:
    token = payload.get("access_token")
    if not isinstance(token, str) or not token:
        raise CredentialUnavailableError("Token response missing 'access_token'")

    expires_on = payload.get("expires_on")
    if expires_on is not None:
        try:
            return AccessToken(token=token, expires_on=float(expires_on))
        except (TypeError, ValueError):
            pass

    expires_in = payload.get("expires_in")
    try:
        return AccessToken(token=token, expires_on=now + float(expires_in))
    except (TypeError, ValueError):
        raise CredentialUnavailableError("Token response missing expiry") from None


class StaticTokenSource:
    """Serves a pre-issued token, for local development and tests."""

    name = "static"

    def __init__(self, token: str, lifetime_seconds: float = 3600.0):
        self.token = token
        self.lifetime_seconds = lifetime_seconds

    async def fetch(self, client: httpx.AsyncClient, scope: str, now: float) -> AccessToken:
        return AccessToken(token=self.token, expires_on=now + self.lifetime_seconds)


class ClientSecretTokenSource:
    """Client credentials flow against the Microsoft identity platform."""

    name = "client_secret"

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        authority_host: str = "https://login.microsoftonline.com",
    ):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.authority_host = authority_host.rstrip("/")

    async def fetch(self, client: httpx.AsyncClient, scope: str, now: float) -> AccessToken:
        response = await client.post(
            f"{self.authority_host}/{self.tenant_id}/oauth2/v2.0/token",
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": scope,
            },
        )
        response.raise_for_status()
        return _parse_token_payload(response.json(), now)


class ManagedIdentityTokenSource:
    """Managed identity via the App Service endpoint, or IMDS on plain VMs.

    A user-assigned identity is requested when ``client_id`` is set; if that
    fails the system-assigned identity is tried.
    """

    name = "managed_identity"

    def __init__(
        self,
        client_id: Optional[str] = None,
        environ: Optional[Dict[str, str]] = None,
    ):
        self.client_id = client_id
        self._environ = environ if environ is not None else os.environ
        self.logger = get_logger("inventory.auth.managed_identity")

    async def fetch(self, client: httpx.AsyncClient, scope: str, now: float) -> AccessToken:
        if self.client_id:
            try:
                return await self._request(client, scope, now, self.client_id)
            except (httpx.HTTPError, CredentialUnavailableError) as exc:
                self.logger.warning(
                    "User-assigned identity failed, falling back to system-assigned",
                    client_id=self.client_id,
                    error=str(exc),
                )
        return await self._request(client, scope, now, None)

    async def _request(
        self,
        client: httpx.AsyncClient,
        scope: str,
        now: float,
        client_id: Optional[str],
    ) -> AccessToken:
        params = {"resource": scope_to_resource(scope)}
        if client_id:
            params["client_id"] = client_id

        endpoint = self._environ.get("IDENTITY_ENDPOINT")
        identity_header = self._environ.get("IDENTITY_HEADER")
        if endpoint and identity_header:
            params["api-version"] = APP_SERVICE_API_VERSION
            headers = {"X-IDENTITY-HEADER": identity_header}
        else:
            endpoint = IMDS_ENDPOINT
            params["api-version"] = IMDS_API_VERSION
            headers = {"Metadata": "true"}

        response = await client.get(endpoint, params=params, headers=headers)
        response.raise_for_status()
        return _parse_token_payload(response.json(), now)


class CredentialProvider:
    """Caches one access token and refreshes it shortly before expiry.

    Refreshes are single-flight: concurrent callers wait on one lock and the
    cache is re-checked once the lock is held. Sources are tried in order and
    the first that succeeds wins.
    """

    def __init__(
        self,
        sources: Sequence[Any],
        scope: str = "https://management.azure.com/.default",
        *,
        refresh_margin_seconds: float = 300.0,
        http_timeout: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.time,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not sources:
            raise ValueError("At least one token source is required")
        self.sources: List[Any] = list(sources)
        self.scope = scope
        self.refresh_margin_seconds = refresh_margin_seconds
        self.metrics = metrics
        self.logger = get_logger("inventory.auth.credentials")

        self._clock = clock
        self._cached: Optional[AccessToken] = None
        # One lock per running loop.
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self._client = client or httpx.AsyncClient(timeout=http_timeout)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def clear_cache(self) -> None:
        self._cached = None

    def _is_valid(self, token: Optional[AccessToken]) -> bool:
        return token is not None and self._clock() < token.expires_on - self.refresh_margin_seconds

    async def get_token(self) -> AccessToken:
        """Return a cached token, refreshing it if it is close to expiry."""
        cached = self._cached
        if self._is_valid(cached):
            self.logger.debug("Returning cached token")
            return cached

        async with self._refresh_lock():
            if self._is_valid(self._cached):
                return self._cached

            self._cached = await self._refresh()
            return self._cached

    def _refresh_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def _refresh(self) -> AccessToken:
        errors: Dict[str, str] = {}
        for source in self.sources:
            try:
                token = await source.fetch(self._client, self.scope, self._clock())
            except (httpx.HTTPError, CredentialUnavailableError, ValueError) as exc:
                errors[source.name] = str(exc) or exc.__class__.__name__
                self._record(source.name, "error")
                self.logger.warning(
                    "Token source failed, trying next",
                    source=source.name,
                    error=errors[source.name],
                )
                continue

            self._record(source.name, "success")
            self.logger.info(
                "Successfully obtained and cached new token",
                source=source.name,
                expires_on=token.expires_on,
            )
            return token

        self.logger.error("Failed to acquire token", errors=errors)
        raise CredentialUnavailableError(details={"sources": errors})

    def _record(self, source: str, status: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("token_refresh_total", source=source, status=status)


def build_credential_provider(
    config: BaseConfig,
    metrics: Optional[MetricsCollector] = None,
) -> CredentialProvider:
    """Assemble the token source chain from configuration."""
    sources: List[Any] = []
    if config.static_access_token:
        sources.append(StaticTokenSource(config.static_access_token))
    if config.azure_tenant_id and config.azure_client_id and config.azure_client_secret:
        sources.append(
            ClientSecretTokenSource(
                config.azure_tenant_id,
                config.azure_client_id,
                config.azure_client_secret,
                authority_host=config.authority_host,
            )
        )
    sources.append(ManagedIdentityTokenSource(client_id=config.managed_identity_client_id))

    return CredentialProvider(
        sources,
        scope=config.token_scope,
        refresh_margin_seconds=config.token_refresh_margin_seconds,
        http_timeout=config.token_timeout_seconds,
        metrics=metrics,
    )
