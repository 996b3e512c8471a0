"""HTTP transport collaborator.

Thin wrapper around ``httpx.AsyncClient`` that sends fully built
``HttpRequest`` values to one target and returns ``HttpResponse`` values.
Status codes are never interpreted here: a 401 or 500 is a normal
response. Only failures to get a response at all (DNS, refused
connection, timeout, TLS) raise ``TransportError``.

In-flight requests are bounded by an ``asyncio.Semaphore`` shared by every
caller of one transport instance.
"""

import asyncio
import logging
from typing import Protocol

import httpx

from pexshell.models.invocation import HttpRequest, HttpResponse
from pexshell.utils.redaction import redact_for_logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 5
DEFAULT_TIMEOUT = 30.0


class TransportError(Exception):
    """No response could be obtained from the target."""


class Transport(Protocol):
    """Anything that can turn an ``HttpRequest`` into an ``HttpResponse``."""

    async def send(self, request: HttpRequest) -> HttpResponse: ...


def normalize_address(address: str) -> str:
    """Return the address with a scheme and without a trailing slash.

    Addresses without a scheme default to https. Plain http is accepted but
    logged, since credentials would travel in clear text.
    """
    address = address.strip().rstrip("/")
    if address.startswith("http://"):
        logger.warning("Using insecure http for %s", address)
        return address
    if address.startswith("https://"):
        return address
    return f"https://{address}"


class HttpxTransport:
    """Transport implementation backed by httpx."""

    def __init__(
        self,
        base_url: str,
        verify: bool = True,
        timeout: float = DEFAULT_TIMEOUT,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize for one target.

        Args:
            base_url: Target address; a missing scheme defaults to https.
            verify: Whether to verify TLS certificates.
            timeout: Per-request timeout in seconds.
            max_concurrency: Maximum number of requests in flight.
            transport: Optional httpx transport, used by tests.
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._base_url = normalize_address(base_url)
        self._verify = verify
        self._timeout = timeout
        self._transport = transport
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> "HttpxTransport":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                verify=self._verify,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(self, request: HttpRequest) -> HttpResponse:
        """Send a request and return the raw response.

        Raises:
            TransportError: If no response was received.
        """
        client = self._ensure_client()
        async with self._semaphore:
            logger.debug(
                "http_request method=%s path=%s headers=%s",
                request.method,
                request.path,
                redact_for_logging(request.headers),
            )
            try:
                resp = await client.request(
                    request.method,
                    request.path,
                    params=list(request.query),
                    headers=request.headers,
                    content=request.body,
                )
            except httpx.TransportError as e:
                logger.debug("http_transport_error path=%s error=%s", request.path, type(e).__name__)
                raise TransportError(str(e) or type(e).__name__) from e

        logger.debug(
            "http_response method=%s path=%s status=%d",
            request.method,
            request.path,
            resp.status_code,
        )
        return HttpResponse(
            status=resp.status_code,
            headers=dict(resp.headers),
            body=resp.content,
        )
