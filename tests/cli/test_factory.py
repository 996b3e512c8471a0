"""Tests for client wiring."""

import httpx
import pytest

from pexshell.cli.config import PexShellConfig
from pexshell.cli.factory import get_cache, get_client
from pexshell.services.authenticators import BasicAuthenticator
from tests.helpers import TARGET, MemorySecretStore


class EchoTransport(httpx.AsyncBaseTransport):
    def __init__(self):
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request):
        self.requests.append(request)
        return httpx.Response(200, json={}, request=request)


def test_get_cache_uses_given_dir(tmp_path):
    cache = get_cache(tmp_path)
    assert cache.directory == tmp_path / "schemas"


def test_client_wiring(tmp_path):
    cfg = PexShellConfig()
    cfg.http.max_concurrency = 2
    client = get_client(cfg, TARGET, secret_store=MemorySecretStore(), cache_dir=tmp_path)

    assert client.address == TARGET
    assert client.pipeline.schema is not None
    assert client.cache.directory == tmp_path / "schemas"


@pytest.mark.asyncio
async def test_client_fetches_schema_roots_through_session(credentials, tmp_path):
    cfg = PexShellConfig()
    cfg.schema_.apis = ["configuration"]
    http = EchoTransport()
    client = get_client(
        cfg, TARGET, secret_store=MemorySecretStore(), cache_dir=tmp_path, http_transport=http
    )

    async with client:
        await client.sessions.login(credentials, verify=False)
        cached = await client.cache.refresh(client.address)

    assert len(cached.model) == 0
    assert http.requests[0].url.path == "/api/admin/configuration/v1/"
    assert http.requests[0].headers["Authorization"] == BasicAuthenticator().cached_token(credentials).header
