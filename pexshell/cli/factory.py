"""Wiring of the service layer for one target.

CLI commands never construct transports, sessions or caches themselves;
they ask ``get_client`` for a ``Client`` bound to the selected user.
"""

from dataclasses import dataclass
from pathlib import Path

import httpx

from pexshell.cli.config import PexShellConfig
from pexshell.models.invocation import CredentialKind
from pexshell.services.authenticators import Authenticator, authenticator_for
from pexshell.services.request_pipeline import RequestPipeline
from pexshell.services.schema_cache import SchemaCache
from pexshell.services.schema_source import HttpSchemaSource
from pexshell.services.secret_store import KeyringSecretStore, SecretStore
from pexshell.services.session_manager import SessionManager
from pexshell.services.transport import HttpxTransport


@dataclass
class Client:
    """Everything needed to talk to one target."""

    address: str
    transport: HttpxTransport
    sessions: SessionManager
    pipeline: RequestPipeline
    cache: SchemaCache

    async def __aenter__(self) -> "Client":
        await self.transport.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.transport.aclose()


def get_cache(cache_dir: Path | None = None) -> SchemaCache:
    """Offline cache access, for reading or clearing without a target."""
    return SchemaCache(cache_dir=cache_dir)


def get_client(
    config: PexShellConfig,
    address: str,
    secret_store: SecretStore | None = None,
    cache_dir: Path | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> Client:
    """Create a ``Client`` for ``address`` from configuration.

    Args:
        config: Loaded configuration.
        address: Normalised target address.
        secret_store: Credential persistence; defaults to the system keychain.
        cache_dir: Schema cache base directory; defaults to the user cache dir.
        http_transport: Optional httpx transport, used by tests.

    Returns:
        An unopened client; use it as an async context manager.
    """
    transport = HttpxTransport(
        base_url=address,
        verify=config.http.verify,
        timeout=config.http.timeout,
        max_concurrency=config.http.max_concurrency,
        transport=http_transport,
    )
    probe_path = config.schema_.probe_path

    def _authenticator(kind: CredentialKind) -> Authenticator:
        return authenticator_for(kind, probe_path=probe_path)

    sessions = SessionManager(
        transport,
        secret_store=secret_store if secret_store is not None else KeyringSecretStore(),
        authenticator_factory=_authenticator,
    )
    pipeline = RequestPipeline(transport, sessions)
    apis = tuple(config.schema_.apis)
    cache = SchemaCache(
        source_for=lambda target: HttpSchemaSource(pipeline, target, apis=apis),
        cache_dir=cache_dir,
    )
    return Client(
        address=transport.base_url,
        transport=transport,
        sessions=sessions,
        pipeline=pipeline,
        cache=cache,
    )
