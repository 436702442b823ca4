"""
Unit tests for access token acquisition and caching.
"""

import asyncio

import httpx
import pytest

from service_inventory.app.auth.credentials import (
    AccessToken,
    ClientSecretTokenSource,
    CredentialProvider,
    ManagedIdentityTokenSource,
    StaticTokenSource,
    build_credential_provider,
    scope_to_resource,
)
from shared.config import get_config
from shared.errors import CredentialUnavailableError

SCOPE = "https://management.azure.com/.default"


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingSource:
    """Token source that hands out numbered tokens."""

    name = "counting"

    def __init__(self, lifetime: float = 3600.0, delay: float = 0.0):
        self.lifetime = lifetime
        self.delay = delay
        self.calls = 0

    async def fetch(self, client, scope, now):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return AccessToken(token=f"token-{self.calls}", expires_on=now + self.lifetime)


class FailingSource:
    name = "failing"

    async def fetch(self, client, scope, now):
        raise httpx.ConnectError("no identity endpoint")


class TestCredentialProvider:
    """Test cases for CredentialProvider caching."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.mark.asyncio
    async def test_token_is_cached_until_refresh_margin(self, clock):
        source = CountingSource(lifetime=3600)
        provider = CredentialProvider([source], SCOPE, refresh_margin_seconds=300, clock=clock)

        first = await provider.get_token()
        clock.now += 3000
        second = await provider.get_token()
        clock.now += 301
        third = await provider.get_token()
        await provider.close()

        assert first.token == "token-1"
        assert second.token == "token-1"
        assert third.token == "token-2"
        assert source.calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, clock):
        source = CountingSource(delay=0.05)
        provider = CredentialProvider([source], SCOPE, clock=clock)

        tokens = await asyncio.gather(*(provider.get_token() for _ in range(5)))
        await provider.close()

        assert {token.token for token in tokens} == {"token-1"}
        assert source.calls == 1

    @pytest.mark.asyncio
    async def test_clear_cache_forces_refresh(self, clock):
        source = CountingSource()
        provider = CredentialProvider([source], SCOPE, clock=clock)

        await provider.get_token()
        provider.clear_cache()
        token = await provider.get_token()
        await provider.close()

        assert token.token == "token-2"

    @pytest.mark.asyncio
    async def test_falls_back_to_next_source(self, clock):
        provider = CredentialProvider([FailingSource(), CountingSource()], SCOPE, clock=clock)

        token = await provider.get_token()
        await provider.close()

        assert token.token == "token-1"

    @pytest.mark.asyncio
    async def test_all_sources_failing_raises(self, clock):
        provider = CredentialProvider([FailingSource()], SCOPE, clock=clock)

        with pytest.raises(CredentialUnavailableError) as exc_info:
            await provider.get_token()
        await provider.close()

        assert "failing" in exc_info.value.details["sources"]

    def test_provider_built_outside_a_loop_serves_several_loops(self, clock):
        """Contended refreshes work on every loop the provider is used from."""
        source = CountingSource(delay=0.01)
        provider = CredentialProvider([source], SCOPE, clock=clock)

        async def contend():
            return await asyncio.gather(*(provider.get_token() for _ in range(3)))

        first = asyncio.run(contend())
        provider.clear_cache()
        second = asyncio.run(contend())

        assert {token.token for token in first} == {"token-1"}
        assert {token.token for token in second} == {"token-2"}
        assert source.calls == 2

    def test_requires_a_source(self):
        with pytest.raises(ValueError):
            CredentialProvider([], SCOPE)


class TestTokenSources:
    """Test cases for the individual token sources."""

    @pytest.mark.asyncio
    async def test_static_source(self):
        async with httpx.AsyncClient() as client:
            token = await StaticTokenSource("abc", lifetime_seconds=60).fetch(client, SCOPE, 100.0)

        assert token == AccessToken(token="abc", expires_on=160.0)

    @pytest.mark.asyncio
    async def test_client_secret_source_posts_form(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"access_token": "aad-token", "expires_in": 3599})

        source = ClientSecretTokenSource("tenant-1", "client-1", "s3cret")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            token = await source.fetch(client, SCOPE, 1000.0)

        assert token == AccessToken(token="aad-token", expires_on=4599.0)
        assert str(seen[0].url) == "https://login.microsoftonline.com/tenant-1/oauth2/v2.0/token"
        body = seen[0].content.decode()
        assert "grant_type=client_credentials" in body
        assert "client_id=client-1" in body

    @pytest.mark.asyncio
    async def test_managed_identity_uses_imds_by_default(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"access_token": "mi-token", "expires_on": "1700003600"})

        source = ManagedIdentityTokenSource(environ={})
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            token = await source.fetch(client, SCOPE, 1_700_000_000.0)

        assert token == AccessToken(token="mi-token", expires_on=1_700_003_600.0)
        assert seen[0].url.host == "169.254.169.254"
        assert seen[0].headers["Metadata"] == "true"
        assert seen[0].url.params["resource"] == "https://management.azure.com/"

    @pytest.mark.asyncio
    async def test_managed_identity_uses_app_service_endpoint(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"access_token": "app-token", "expires_on": 1_700_003_600})

        source = ManagedIdentityTokenSource(
            client_id="user-assigned",
            environ={"IDENTITY_ENDPOINT": "http://localhost:8081/msi/token", "IDENTITY_HEADER": "hdr"},
        )
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            token = await source.fetch(client, SCOPE, 0.0)

        assert token.token == "app-token"
        assert seen[0].headers["X-IDENTITY-HEADER"] == "hdr"
        assert seen[0].url.params["client_id"] == "user-assigned"
        assert seen[0].url.params["api-version"] == "2019-08-01"

    @pytest.mark.asyncio
    async def test_user_assigned_failure_falls_back_to_system_assigned(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if "client_id" in request.url.params:
                return httpx.Response(400, json={"error": "invalid_request"})
            return httpx.Response(200, json={"access_token": "system-token", "expires_in": 600})

        source = ManagedIdentityTokenSource(client_id="missing", environ={})
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            token = await source.fetch(client, SCOPE, 0.0)

        assert token.token == "system-token"
        assert len(seen) == 2

    def test_scope_to_resource(self):
        assert scope_to_resource(SCOPE) == "https://management.azure.com/"
        assert scope_to_resource("https://example.com") == "https://example.com"


class TestBuildCredentialProvider:
    """Test cases for assembling the source chain from configuration."""

    @pytest.mark.asyncio
    async def test_chain_order_follows_configuration(self):
        config = get_config(
            "inventory",
            8000,
            static_access_token="local-token",
            azure_tenant_id="t",
            azure_client_id="c",
            azure_client_secret="s",
            managed_identity_client_id="mi",
        )

        provider = build_credential_provider(config)
        await provider.close()

        assert [source.name for source in provider.sources] == [
            "static", "client_secret", "managed_identity",
        ]
        assert provider.sources[2].client_id == "mi"
        assert provider.refresh_margin_seconds == config.token_refresh_margin_seconds

    @pytest.mark.asyncio
    async def test_managed_identity_is_the_default(self, monkeypatch):
        for name in ("AZURE_TENANT_ID", "AZURE_CLIENT_ID", "AZURE_CLIENT_SECRET", "GATEWAY_STATIC_ACCESS_TOKEN"):
            monkeypatch.delenv(name, raising=False)

        provider = build_credential_provider(get_config("inventory", 8000))
        await provider.close()

        assert [source.name for source in provider.sources] == ["managed_identity"]
