"""Authenticated session ownership and single-flight token refresh.

The session manager is the only owner of the live token. Callers ask for
``current_token()`` before each request and call ``force_refresh()`` after
a 401; neither ever mutates the session directly.

State machine::

    LOGGED_OUT -> AUTHENTICATING -> AUTHENTICATED
    AUTHENTICATED -> REFRESHING -> AUTHENTICATED | LOGGED_OUT

At most one refresh runs per session. It is an ``asyncio.Task`` shared by
every caller that needs a new token; callers await it through
``asyncio.shield`` so a caller that gets cancelled never cancels the
refresh, and the session never stays in REFRESHING.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from pexshell.errors import AuthError, MissingCredentialsError, SessionExpiredError
from pexshell.models.invocation import Credentials, CredentialKind, Token
from pexshell.services.authenticators import Authenticator, authenticator_for
from pexshell.services.secret_store import SecretStore
from pexshell.services.transport import Transport

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOGGED_OUT = "logged_out"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


@dataclass
class Session:
    """Live session for one target. Mutated only by ``SessionManager``."""

    target: str
    credentials: Credentials
    token: Token | None = None
    state: SessionState = SessionState.LOGGED_OUT

    @property
    def username(self) -> str:
        return self.credentials.username


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Owns credentials and the current token for one target.

    Args:
        transport: Transport bound to the target.
        secret_store: Where non-ephemeral credentials are persisted.
        authenticator_factory: Returns the authenticator for a credential kind.
        clock: Current time, used for proactive refresh.
    """

    def __init__(
        self,
        transport: Transport,
        secret_store: SecretStore | None = None,
        authenticator_factory: Callable[[CredentialKind], Authenticator] = authenticator_for,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._transport = transport
        self._secret_store = secret_store
        self._authenticator_factory = authenticator_factory
        self._clock = clock
        self._session: Session | None = None
        self._authenticator: Authenticator | None = None
        self._login_lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[Token] | None = None
        # Bumped on every login/logout so a refresh started for an older
        # session cannot resurrect it.
        self._generation = 0

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state if self._session else SessionState.LOGGED_OUT

    def resolve_credentials(
        self,
        override: Credentials | None = None,
        address: str | None = None,
        username: str | None = None,
    ) -> Credentials:
        """Pick credentials: explicit override first, then the secret store.

        Raises:
            MissingCredentialsError: If neither source has credentials.
        """
        if override is not None:
            return override
        if address and username and self._secret_store is not None:
            stored = self._secret_store.retrieve(address, username)
            if stored is not None:
                return stored
        raise MissingCredentialsError(address or "the target")

    async def login(
        self,
        credentials: Credentials | None = None,
        *,
        address: str | None = None,
        username: str | None = None,
        verify: bool = True,
    ) -> Session:
        """Authenticate and make the resulting session current.

        Args:
            credentials: Explicit override credentials.
            address: Target address, for secret store lookup.
            username: Username or client id, for secret store lookup.
            verify: When False, reuse a token that can be built or loaded
                without a network call (basic header, unexpired OAuth2
                token); a bad token then surfaces on the first 401.

        Returns:
            The authenticated session.

        Raises:
            MissingCredentialsError: If no credentials are available.
            AuthError: If the target rejects the credentials or is unreachable.
        """
        creds = self.resolve_credentials(credentials, address, username)
        async with self._login_lock:
            self._generation += 1
            self._refresh_task = None
            authenticator = self._authenticator_factory(creds.kind)
            session = Session(
                target=creds.address,
                credentials=creds,
                state=SessionState.AUTHENTICATING,
            )
            self._session = session
            self._authenticator = authenticator
            logger.info("session_login target=%s user=%s", creds.address, creds.username)
            try:
                token = None if verify else authenticator.cached_token(creds)
                if token is None:
                    token = await authenticator.authenticate(creds, self._transport)
            except BaseException:
                session.state = SessionState.LOGGED_OUT
                logger.info("session_login_failed target=%s", creds.address)
                raise
            session.token = token
            session.state = SessionState.AUTHENTICATED
            self._persist(session)
            return session

    async def current_token(self) -> Token:
        """Return a usable token, refreshing first when it is about to expire.

        Raises:
            SessionExpiredError: If there is no session or a refresh failed.
        """
        session = self._require_session()
        if self._refresh_task is not None:
            return await asyncio.shield(self._refresh_task)
        token = session.token
        if token is None:
            raise SessionExpiredError(session.target)
        if token.expires_soon(self._clock()):
            logger.debug("session_token_expiring target=%s", session.target)
            return await self._join_refresh(session)
        return token

    async def force_refresh(self, stale: Token | None = None) -> Token:
        """Replace the token, joining any refresh already in flight.

        Args:
            stale: The token the caller found unusable. If the session
                already holds a different token, that one is returned
                without a network call.

        Raises:
            SessionExpiredError: If the refresh failed; the session is then
                logged out.
        """
        session = self._require_session()
        if self._refresh_task is None and stale is not None:
            current = session.token
            if current is not None and current is not stale:
                return current
        return await self._join_refresh(session)

    def logout(self, erase: bool = False) -> None:
        """Drop the session and, if asked, the persisted secret."""
        self._generation += 1
        self._refresh_task = None
        session = self._session
        self._session = None
        self._authenticator = None
        if session is None:
            return
        session.token = None
        session.state = SessionState.LOGGED_OUT
        if erase and self._secret_store is not None:
            self._secret_store.erase(session.target, session.username)
        logger.info("session_logout target=%s erase=%s", session.target, erase)

    def _require_session(self) -> Session:
        session = self._session
        if session is None or session.state in (
            SessionState.LOGGED_OUT,
            SessionState.AUTHENTICATING,
        ):
            target = session.target if session else "the target"
            raise SessionExpiredError(target, f"No active session for {target}.")
        return session

    async def _join_refresh(self, session: Session) -> Token:
        if self._refresh_task is None:
            session.state = SessionState.REFRESHING
            task = asyncio.create_task(self._refresh(session, self._generation))
            task.add_done_callback(_consume_result)
            self._refresh_task = task
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self, session: Session, generation: int) -> Token:
        authenticator = self._authenticator
        logger.info("session_refresh target=%s", session.target)
        try:
            if authenticator is None:
                raise SessionExpiredError(session.target)
            token = await authenticator.refresh(
                session.credentials, self._transport, session.token
            )
            if generation != self._generation:
                raise SessionExpiredError(session.target)
        except AuthError as e:
            self._expire(session)
            if isinstance(e, SessionExpiredError):
                raise
            raise SessionExpiredError(session.target) from e
        except BaseException:
            self._expire(session)
            raise
        finally:
            if self._refresh_task is asyncio.current_task():
                self._refresh_task = None

        session.token = token
        session.state = SessionState.AUTHENTICATED
        self._persist(session)
        return token

    def _expire(self, session: Session) -> None:
        session.token = None
        session.state = SessionState.LOGGED_OUT
        logger.warning("session_refresh_failed target=%s", session.target)

    def _persist(self, session: Session) -> None:
        creds = session.credentials
        if creds.ephemeral or self._secret_store is None:
            return
        if creds.kind is CredentialKind.OAUTH2:
            creds = creds.model_copy(update={"token": session.token})
            session.credentials = creds
        try:
            self._secret_store.store(creds)
        except Exception:
            logger.warning("Failed to persist credentials for %s", creds.ident, exc_info=True)


def _consume_result(task: asyncio.Task) -> None:
    # Mark the outcome as retrieved when every waiter has gone away.
    if not task.cancelled():
        task.exception()
