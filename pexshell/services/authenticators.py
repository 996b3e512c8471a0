"""Authentication strategies used by the session manager.

An authenticator turns credentials into a ``Token`` with one network
round trip and knows nothing about sessions, waiters or persistence.

Basic:
    The token is the base64 ``user:password`` pair. It never expires on its
    own, so the session only refreshes it after a 401. Login and refresh
    both verify the pair with a cheap probe request.

OAuth2 client credentials:
    A short-lived ES256 client assertion (RFC 7523) signed with the client's
    EC private key is exchanged for a bearer token at ``/oauth/token/``.
    The token carries an expiry, so the session refreshes it proactively.
"""

import base64
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol
from urllib.parse import urlencode

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from pexshell.errors import AuthError, InvalidCredentialsError
from pexshell.models.invocation import (
    Credentials,
    CredentialKind,
    HttpRequest,
    Token,
    TokenScheme,
)
from pexshell.services.transport import Transport, TransportError
from pexshell.utils.redaction import sanitize_message

logger = logging.getLogger(__name__)

DEFAULT_PROBE_PATH = "/api/admin/status/v1/worker_vm/"
TOKEN_PATH = "/oauth/token/"
ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
ASSERTION_LIFETIME = timedelta(hours=1)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Authenticator(Protocol):
    """Obtains tokens for one credential kind."""

    def cached_token(self, credentials: Credentials) -> Token | None: ...

    async def authenticate(self, credentials: Credentials, transport: Transport) -> Token: ...

    async def refresh(
        self, credentials: Credentials, transport: Transport, current: Token | None
    ) -> Token: ...


class BasicAuthenticator:
    """HTTP basic authentication verified with a probe request."""

    def __init__(self, probe_path: str = DEFAULT_PROBE_PATH) -> None:
        self._probe_path = probe_path

    def cached_token(self, credentials: Credentials) -> Token | None:
        """Build the header value locally, without verifying it."""
        pair = f"{credentials.username}:{credentials.secret.get_secret_value()}"
        return Token(
            scheme=TokenScheme.BASIC,
            value=base64.b64encode(pair.encode("utf-8")).decode("ascii"),
        )

    async def authenticate(self, credentials: Credentials, transport: Transport) -> Token:
        token = self.cached_token(credentials)
        await self._probe(credentials.address, token, transport)
        return token

    async def refresh(
        self, credentials: Credentials, transport: Transport, current: Token | None
    ) -> Token:
        return await self.authenticate(credentials, transport)

    async def _probe(self, address: str, token: Token, transport: Transport) -> None:
        request = HttpRequest(
            method="GET",
            path=self._probe_path,
            query=(("limit", "1"),),
            headers={"Authorization": token.header, "Accept": "application/json"},
        )
        try:
            response = await transport.send(request)
        except TransportError as e:
            raise AuthError(address, f"Could not reach {address}: {e}") from e
        if response.status in (401, 403):
            raise InvalidCredentialsError(address)
        if not response.ok:
            raise AuthError(
                address, f"Login check against {address} failed with status {response.status}"
            )
        logger.debug("basic_auth_probe_ok address=%s", address)


class TokenResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    expires_in: int
    token_type: str = "Bearer"


def generate_token_id() -> str:
    """Return a random 36 character hex id for the ``jti`` claim."""
    return secrets.token_hex(18)


def sign_client_assertion(
    client_id: str,
    audience: str,
    private_key_pem: str,
    issued_at: datetime,
    token_id: str | None = None,
) -> str:
    """Build a compact ES256 JWT client assertion.

    Args:
        client_id: OAuth2 client id, used as issuer and subject.
        audience: Full token endpoint URL.
        private_key_pem: PEM-encoded P-256 private key.
        issued_at: Timestamp for ``iat``; ``exp`` is one hour later.
        token_id: ``jti`` claim; random when omitted.

    Returns:
        The signed assertion.

    Raises:
        ValueError: If the key cannot be loaded or is not a P-256 EC key.
    """
    key = serialization.load_pem_private_key(private_key_pem.encode("utf-8"), password=None)
    if not isinstance(key, ec.EllipticCurvePrivateKey) or not isinstance(
        key.curve, ec.SECP256R1
    ):
        raise ValueError("client key must be a P-256 EC private key")

    claims = {
        "iss": client_id,
        "aud": audience,
        "sub": client_id,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + ASSERTION_LIFETIME).timestamp()),
        "jti": token_id or generate_token_id(),
    }
    return jwt.encode(claims, key, algorithm="ES256", headers={"typ": "JWT"})


class OAuth2Authenticator:
    """OAuth2 client credentials grant with a signed client assertion."""

    def __init__(self, token_path: str = TOKEN_PATH, clock: Clock = _utcnow) -> None:
        self._token_path = token_path
        self._clock = clock

    def cached_token(self, credentials: Credentials) -> Token | None:
        """Return the persisted access token while it is still fresh."""
        token = credentials.token
        if token is None or token.expires_soon(self._clock()):
            return None
        return token

    async def authenticate(self, credentials: Credentials, transport: Transport) -> Token:
        address = credentials.address
        issued_at = self._clock()
        try:
            assertion = sign_client_assertion(
                client_id=credentials.username,
                audience=f"{address}{self._token_path}",
                private_key_pem=credentials.secret.get_secret_value(),
                issued_at=issued_at,
            )
        except ValueError as e:
            raise InvalidCredentialsError(address, f"Invalid OAuth2 client key: {e}") from e

        form = urlencode({
            "grant_type": "client_credentials",
            "client_assertion_type": ASSERTION_TYPE,
            "client_assertion": assertion,
        })
        request = HttpRequest(
            method="POST",
            path=self._token_path,
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
            body=form.encode("ascii"),
        )
        try:
            response = await transport.send(request)
        except TransportError as e:
            raise AuthError(address, f"Could not reach {address}: {e}") from e

        if response.status in (400, 401, 403):
            raise InvalidCredentialsError(address)
        if not response.ok:
            raise AuthError(
                address, f"Token request to {address} failed with status {response.status}"
            )
        try:
            body = TokenResponse.model_validate_json(response.body)
        except PydanticValidationError as e:
            detail = sanitize_message(response.body.decode("utf-8", errors="replace"))
            logger.warning("oauth2_token_malformed address=%s body=%s", address, detail)
            raise AuthError(address, f"Unexpected token response from {address}") from e
        if body.token_type.lower() != "bearer":
            raise AuthError(address, f"Unsupported token type '{body.token_type}'")

        logger.info("oauth2_token_issued address=%s expires_in=%d", address, body.expires_in)
        return Token(
            scheme=TokenScheme.BEARER,
            value=body.access_token,
            expires_at=issued_at + timedelta(seconds=body.expires_in),
        )

    async def refresh(
        self, credentials: Credentials, transport: Transport, current: Token | None
    ) -> Token:
        return await self.authenticate(credentials, transport)


def authenticator_for(kind: CredentialKind, probe_path: str = DEFAULT_PROBE_PATH) -> Authenticator:
    """Return the authenticator for a credential kind."""
    if kind is CredentialKind.OAUTH2:
        return OAuth2Authenticator()
    return BasicAuthenticator(probe_path=probe_path)
