"""Invocation, result, credential and HTTP value types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, SecretStr

from pexshell.models.schema import FilterOperator, Operation

# Tokens expiring within this window are refreshed before use.
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)


class CredentialKind(str, Enum):
    BASIC = "basic"
    OAUTH2 = "oauth2"


class TokenScheme(str, Enum):
    BASIC = "Basic"
    BEARER = "Bearer"


class Token(BaseModel):
    """Authorization material for one session.

    A token without ``expires_at`` is never refreshed proactively; it is
    only replaced when a request comes back 401.
    """

    model_config = ConfigDict(frozen=True)

    scheme: TokenScheme
    value: SecretStr
    expires_at: datetime | None = None

    @property
    def header(self) -> str:
        return f"{self.scheme.value} {self.value.get_secret_value()}"

    def expires_soon(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expires_at - TOKEN_REFRESH_MARGIN <= now


class Credentials(BaseModel):
    """Login material for one target.

    Attributes:
        address: Target base URL.
        kind: Basic username/password or OAuth2 client credentials.
        username: Username, or OAuth2 client id.
        secret: Password, or PEM-encoded EC private key for OAuth2.
        ephemeral: Process-level overrides; never written to the secret store.
        token: Last OAuth2 access token, persisted alongside the secret.
    """

    model_config = ConfigDict(frozen=True)

    address: str
    kind: CredentialKind = CredentialKind.BASIC
    username: str
    secret: SecretStr
    ephemeral: bool = False
    token: Token | None = None

    @property
    def ident(self) -> str:
        return f"{self.username}@{self.address}"


@dataclass(frozen=True)
class Invocation:
    """A validated-shape request to run one operation on one resource.

    ``filters`` is an ordered sequence of ``(field, operator, value)``.
    """

    resource: str
    operation: Operation
    identifier: str | None = None
    values: dict[str, Any] = field(default_factory=dict)
    filters: tuple[tuple[str, FilterOperator, Any], ...] = ()
    limit: int | None = None
    cursor: str | None = None
    order_by: str | None = None

    def with_cursor(self, cursor: str | None) -> Invocation:
        return Invocation(
            resource=self.resource,
            operation=self.operation,
            identifier=self.identifier,
            values=self.values,
            filters=self.filters,
            limit=self.limit,
            cursor=cursor,
            order_by=self.order_by,
        )


@dataclass(frozen=True)
class ResultPage:
    """One page of decoded records.

    ``cursor`` is None on the final page.
    """

    records: tuple[dict[str, Any], ...] = ()
    cursor: str | None = None
    location: str | None = None
    total_count: int | None = None

    @property
    def is_last(self) -> bool:
        return self.cursor is None


@dataclass(frozen=True)
class HttpRequest:
    method: str
    path: str
    query: tuple[tuple[str, str], ...] = ()
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None

    @property
    def query_string(self) -> str:
        return urlencode(list(self.query))

    @property
    def target(self) -> str:
        """Path with query string, as sent on the wire."""
        qs = self.query_string
        return f"{self.path}?{qs}" if qs else self.path

    def with_headers(self, **headers: str) -> HttpRequest:
        merged = {**self.headers, **headers}
        return HttpRequest(
            method=self.method,
            path=self.path,
            query=self.query,
            headers=merged,
            body=self.body,
        )


@dataclass(frozen=True)
class HttpResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None
