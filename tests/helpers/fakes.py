"""In-memory stand-ins for the transport, secret store, authenticators and
schema source.
"""

import asyncio
import inspect
import json
from datetime import datetime
from typing import Any, Callable

from pexshell.errors import InvalidCredentialsError
from pexshell.models.invocation import (
    Credentials,
    HttpRequest,
    HttpResponse,
    Token,
    TokenScheme,
)
from pexshell.services.transport import TransportError


def json_response(
    status: int = 200, payload: Any = None, headers: dict[str, str] | None = None
) -> HttpResponse:
    """Build an ``HttpResponse`` with a JSON body (empty when payload is None)."""
    body = b"" if payload is None else json.dumps(payload).encode("utf-8")
    return HttpResponse(status=status, headers=dict(headers or {}), body=body)


def list_envelope(
    objects: list[dict[str, Any]],
    next_uri: str | None = None,
    total_count: int | None = None,
) -> dict[str, Any]:
    return {
        "meta": {
            "limit": 20,
            "next": next_uri,
            "offset": 0,
            "previous": None,
            "total_count": len(objects) if total_count is None else total_count,
        },
        "objects": objects,
    }


class ScriptedTransport:
    """Transport that replays queued responses and records every request.

    A queued item may be an ``HttpResponse`` or an exception to raise. A
    ``handler`` callable, when given, is used instead of the queue.
    """

    def __init__(
        self,
        responses: list[Any] | None = None,
        handler: Callable[[HttpRequest], Any] | None = None,
    ):
        self.requests: list[HttpRequest] = []
        self._responses = list(responses or [])
        self._handler = handler

    async def send(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        if self._handler is not None:
            result = self._handler(request)
            if inspect.isawaitable(result):
                result = await result
        else:
            if not self._responses:
                raise AssertionError(f"unexpected request: {request.method} {request.target}")
            result = self._responses.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    @property
    def authorization_headers(self) -> list[str | None]:
        return [r.headers.get("Authorization") for r in self.requests]


class FailingTransport:
    """Transport that cannot reach anything."""

    def __init__(self):
        self.calls = 0

    async def send(self, request: HttpRequest) -> HttpResponse:
        self.calls += 1
        raise TransportError("connection refused")


class MemorySecretStore:
    """Dict-backed secret store."""

    def __init__(self, entries: dict[tuple[str, str], Credentials] | None = None):
        self.entries = dict(entries or {})
        self.stored: list[Credentials] = []
        self.fail_on_store = False

    def store(self, credentials: Credentials) -> None:
        if credentials.ephemeral:
            return
        if self.fail_on_store:
            raise RuntimeError("keychain locked")
        self.stored.append(credentials)
        self.entries[(credentials.address, credentials.username)] = credentials

    def retrieve(self, address: str, username: str) -> Credentials | None:
        return self.entries.get((address, username))

    def erase(self, address: str, username: str) -> None:
        self.entries.pop((address, username), None)


class CountingAuthenticator:
    """Authenticator issuing ``token-1``, ``token-2``, ... and counting calls.

    Args:
        expires_at: Expiry stamped on every issued token.
        gate: When set, refreshes wait for it before completing.
        fail_refresh: Refreshes raise ``InvalidCredentialsError``.
    """

    def __init__(
        self,
        expires_at: datetime | None = None,
        gate: asyncio.Event | None = None,
        fail_refresh: bool = False,
    ):
        self.expires_at = expires_at
        self.gate = gate
        self.fail_refresh = fail_refresh
        self.authenticate_calls = 0
        self.refresh_calls = 0
        self.cached_calls = 0
        self._issued = 0

    def _issue(self) -> Token:
        self._issued += 1
        return Token(
            scheme=TokenScheme.BEARER,
            value=f"token-{self._issued}",
            expires_at=self.expires_at,
        )

    def cached_token(self, credentials: Credentials) -> Token | None:
        self.cached_calls += 1
        return Token(scheme=TokenScheme.BEARER, value="cached", expires_at=self.expires_at)

    async def authenticate(self, credentials: Credentials, transport) -> Token:
        self.authenticate_calls += 1
        return self._issue()

    async def refresh(self, credentials: Credentials, transport, current: Token | None) -> Token:
        self.refresh_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_refresh:
            raise InvalidCredentialsError(credentials.address)
        return self._issue()


class FakeSchemaSource:
    """Schema source serving documents from dicts.

    ``fail_paths`` maps a document path to the exception raised when it is
    fetched.
    """

    def __init__(
        self,
        target: str,
        roots: dict[str, Any],
        documents: dict[str, Any],
        fail_paths: dict[str, BaseException] | None = None,
    ):
        self._target = target
        self.roots = roots
        self.documents = documents
        self.fail_paths = dict(fail_paths or {})
        self.root_fetches = 0
        self.document_fetches = 0

    @property
    def target(self) -> str:
        return self._target

    @property
    def apis(self) -> tuple[str, ...]:
        return tuple(self.roots)

    async def fetch_root(self, api: str) -> Any:
        self.root_fetches += 1
        return self.roots[api]

    async def fetch_document(self, path: str) -> Any:
        self.document_fetches += 1
        if path in self.fail_paths:
            raise self.fail_paths[path]
        return self.documents[path]
