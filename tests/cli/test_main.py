"""End-to-end tests for the pexshell entry point.

The HTTP layer is replaced with an httpx transport that routes by path;
everything above it (config, cache, sessions, pipeline, generated
commands) is real.
"""

import asyncio
import json
from unittest.mock import patch

import click
import httpx
import pytest

from pexshell import __version__
from pexshell.cli import main as cli_main
from pexshell.cli.factory import get_client
from pexshell.cli.main import EXIT_CODE_INTERRUPTED, build_cli, run
from pexshell.services.schema_cache import SchemaCache
from tests.helpers import (
    CONFERENCE_PATH,
    TARGET,
    FakeSchemaSource,
    MemorySecretStore,
    list_envelope,
    sample_documents,
    sample_roots,
)


class RoutingTransport(httpx.AsyncBaseTransport):
    """Answers with canned JSON per path and records every request."""

    def __init__(self, routes: dict[str, tuple[int, object]]):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request):
        self.requests.append(request)
        status, payload = self.routes.get(request.url.path, (404, {"error": "not found"}))
        return httpx.Response(
            status,
            content=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            request=request,
        )


@pytest.fixture
def env_user(monkeypatch):
    monkeypatch.setenv("PEX_ADDRESS", TARGET)
    monkeypatch.setenv("PEX_USER", "admin")
    monkeypatch.setenv("PEX_PASS", "hunter2")


@pytest.fixture
def cached_schema():
    source = FakeSchemaSource(TARGET, sample_roots(), sample_documents())
    return asyncio.run(SchemaCache(source_for=lambda target: source).refresh(TARGET))


@pytest.fixture
def http():
    transport = RoutingTransport({})

    def _client(cfg, address):
        return get_client(cfg, address, secret_store=MemorySecretStore(), http_transport=transport)

    with patch("pexshell.cli.main.get_client", side_effect=_client):
        yield transport


class TestBuiltins:
    def test_version(self, capsys):
        assert run(["version"]) == 0
        assert __version__ in capsys.readouterr().out

    def test_users_without_any(self, capsys):
        assert run(["users"]) == 0
        assert "No users" in capsys.readouterr().out

    def test_unknown_user_selection(self, capsys):
        assert run(["users", "--select", "ghost@mgr.example.com"]) == 1
        assert "Unknown user" in capsys.readouterr().err

    def test_cache_clear(self, cached_schema, capsys):
        assert run(["cache", "--clear"]) == 0
        assert "Removed 1" in capsys.readouterr().out

    def test_unknown_command_is_usage_error(self, capsys):
        assert run(["nonsense"]) == 2

    def test_missing_config_file(self, tmp_path, capsys):
        assert run(["--config", str(tmp_path / "absent.yaml"), "version"]) == 1
        assert "E-4002" in capsys.readouterr().err


class TestGeneratedCommands:
    """API commands come from the persisted schema."""

    def test_missing_cache_warns(self, env_user, capsys):
        assert run(["version"]) == 0
        assert "schema cache is missing" in capsys.readouterr().err

    def test_api_groups_attached_to_root(self, env_user, cached_schema):
        root = build_cli([])
        assert isinstance(root, click.Group)
        assert {"configuration", "status", "version", "login"} <= set(root.commands)
        assert "conference" in root.commands["configuration"].commands

    def test_list(self, env_user, cached_schema, http, capsys):
        http.routes[CONFERENCE_PATH] = (200, list_envelope([{"id": 1, "name": "alpha"}]))

        code = run(["configuration", "conference", "list", "--name__startswith", "a"])

        assert code == 0
        assert json.loads(capsys.readouterr().out) == [{"id": 1, "name": "alpha"}]
        request = http.requests[-1]
        assert request.url.params["name__startswith"] == "a"
        assert request.headers["Authorization"].startswith("Basic ")

    def test_stream(self, env_user, cached_schema, http, capsys):
        http.routes[CONFERENCE_PATH] = (200, list_envelope([{"id": 1}, {"id": 2}]))

        assert run(["configuration", "conference", "list", "--stream"]) == 0
        assert capsys.readouterr().out.splitlines() == ['{"id":1}', '{"id":2}']

    def test_get(self, env_user, cached_schema, http, capsys):
        http.routes[f"{CONFERENCE_PATH}7/"] = (200, {"id": 7, "name": "VMR"})

        assert run(["configuration", "conference", "get", "7"]) == 0
        assert json.loads(capsys.readouterr().out) == {"id": 7, "name": "VMR"}

    def test_validation_error_sends_nothing(self, env_user, cached_schema, http, capsys):
        code = run(["configuration", "conference", "list", "--max_callrate_in", "fast"])

        assert code == 1
        assert "E-2003" in capsys.readouterr().err
        assert http.requests == []

    def test_server_error(self, env_user, cached_schema, http, capsys):
        http.routes[CONFERENCE_PATH] = (500, {"error": "boom"})

        assert run(["configuration", "conference", "list"]) == 1
        assert "E-3003" in capsys.readouterr().err

    def test_interrupt(self, env_user, cached_schema, capsys):
        with patch.object(cli_main, "_execute", side_effect=KeyboardInterrupt):
            assert run(["configuration", "conference", "list"]) == EXIT_CODE_INTERRUPTED
