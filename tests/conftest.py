"""Root-level pytest fixtures for all tests.

Provides shared fixtures for:
- A parsed sample schema (conference, worker_vm, conference lock)
- Credentials and sessions wired to in-memory fakes
- Isolated config/cache/log directories
"""

import logging
from datetime import datetime, timezone

import pytest
from pydantic import SecretStr

from pexshell.models.invocation import Credentials
from pexshell.models.schema import SchemaModel
from pexshell.services.schema_parser import compute_fingerprint, parse_resource, parse_root
from pexshell.services.session_manager import SessionManager
from tests.helpers import (
    TARGET,
    CountingAuthenticator,
    MemorySecretStore,
    ScriptedTransport,
    sample_documents,
    sample_roots,
)


def build_sample_schema() -> SchemaModel:
    """Parse the sample documents the same way the schema cache does."""
    roots = sample_roots()
    documents = sample_documents()
    resources = [
        parse_resource(api, name, entry, documents[entry.schema_url], TARGET)
        for api, root in roots.items()
        for name, entry in parse_root(root, TARGET).items()
    ]
    return SchemaModel.build(resources, fingerprint=compute_fingerprint(TARGET, roots))


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Point every per-user directory at tmp_path and clear user env vars."""
    monkeypatch.setenv("PEXSHELL_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("PEXSHELL_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("PEXSHELL_LOG_DIR", str(tmp_path / "log"))
    for var in ("PEX_ADDRESS", "PEX_USER", "PEX_PASS", "PEX_LOG", "PEX_LOG_LEVEL", "PEX_LOG_TO_STDERR"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


@pytest.fixture(autouse=True)
def reset_pexshell_logger():
    """Undo handlers installed by configure_logging so caplog keeps working."""
    yield
    logger = logging.getLogger("pexshell")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def schema() -> SchemaModel:
    return build_sample_schema()


@pytest.fixture
def conference(schema):
    return schema.get("configuration/conference")


@pytest.fixture
def worker_vm(schema):
    return schema.get("status/worker_vm")


@pytest.fixture
def lock_command(schema):
    return schema.get("command/conference/lock")


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(address=TARGET, username="admin", secret=SecretStr("hunter2"))


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def secret_store() -> MemorySecretStore:
    return MemorySecretStore()


@pytest.fixture
def authenticator() -> CountingAuthenticator:
    return CountingAuthenticator()


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def sessions(transport, secret_store, authenticator, now) -> SessionManager:
    """Session manager using the counting authenticator for every kind."""
    return SessionManager(
        transport,
        secret_store=secret_store,
        authenticator_factory=lambda kind: authenticator,
        clock=lambda: now,
    )
