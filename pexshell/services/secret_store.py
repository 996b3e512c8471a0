"""Credential storage in the system keychain.

Uses the `keyring` library which maps to:
  macOS: Keychain Access
  Windows: Windows Credential Manager
  Linux: Secret Service API

Entries live under the service name 'pexshell' with the account
``<username>@<address>``. The stored password is a small JSON document
holding the credential kind, the secret and, for OAuth2, the last access
token so a new process can reuse it until it expires.
"""

import json
import logging
from datetime import datetime
from typing import Protocol

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from pexshell.models.invocation import (
    CredentialKind,
    Credentials,
    Token,
    TokenScheme,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "pexshell"


class SecretStore(Protocol):
    """Persistence for login material, keyed by credential identity."""

    def store(self, credentials: Credentials) -> None: ...

    def retrieve(self, address: str, username: str) -> Credentials | None: ...

    def erase(self, address: str, username: str) -> None: ...


def _ident(address: str, username: str) -> str:
    return f"{username}@{address}"


class KeyringSecretStore:
    """Thin wrapper around keyring for credential CRUD."""

    def __init__(self, service_name: str = SERVICE_NAME) -> None:
        self._service = service_name

    def store(self, credentials: Credentials) -> None:
        """Persist credentials. Ephemeral credentials are ignored."""
        if credentials.ephemeral:
            logger.debug("Not storing ephemeral credentials for %s", credentials.address)
            return
        payload: dict = {
            "kind": credentials.kind.value,
            "secret": credentials.secret.get_secret_value(),
        }
        if credentials.token is not None:
            payload["token"] = {
                "scheme": credentials.token.scheme.value,
                "value": credentials.token.value.get_secret_value(),
                "expires_at": (
                    credentials.token.expires_at.isoformat()
                    if credentials.token.expires_at
                    else None
                ),
            }
        keyring.set_password(self._service, credentials.ident, json.dumps(payload))
        logger.info("Stored credentials: %s", credentials.ident)

    def retrieve(self, address: str, username: str) -> Credentials | None:
        """Load stored credentials. Returns None if not set or unreadable."""
        ident = _ident(address, username)
        try:
            raw = keyring.get_password(self._service, ident)
        except KeyringError:
            logger.warning("Keyring read failed for %s", ident, exc_info=True)
            return None
        if raw is None:
            return None
        return self._decode(address, username, raw)

    def erase(self, address: str, username: str) -> None:
        """Remove stored credentials, if any."""
        ident = _ident(address, username)
        try:
            keyring.delete_password(self._service, ident)
            logger.info("Deleted credentials: %s", ident)
        except PasswordDeleteError:
            logger.debug("Credentials %s not found for deletion", ident)

    @staticmethod
    def _decode(address: str, username: str, raw: str) -> Credentials | None:
        try:
            payload = json.loads(raw)
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            # Plain password entries written by older releases.
            return Credentials(address=address, username=username, secret=raw)
        if "secret" not in payload:
            logger.warning("Ignoring malformed keyring entry for %s", _ident(address, username))
            return None
        token = None
        token_data = payload.get("token")
        try:
            if isinstance(token_data, dict) and token_data.get("value"):
                expires_at = token_data.get("expires_at")
                token = Token(
                    scheme=TokenScheme(token_data.get("scheme", TokenScheme.BEARER.value)),
                    value=token_data["value"],
                    expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
                )
            return Credentials(
                address=address,
                username=username,
                kind=CredentialKind(payload.get("kind", CredentialKind.BASIC.value)),
                secret=payload["secret"],
                token=token,
            )
        except (TypeError, ValueError):
            # pydantic ValidationError is a ValueError.
            logger.warning("Ignoring malformed keyring entry for %s", _ident(address, username))
            return None
