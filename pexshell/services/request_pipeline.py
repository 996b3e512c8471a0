"""Authenticated execution of invocations.

Ties the schema model, the session manager, the request translator and the
transport together:

1. Resolve the resource (unknown name -> ``UnknownResourceError``).
2. Validate and build the request. Nothing touches the network before
   this succeeds.
3. Attach the current token and send.
4. On 401, refresh the session once and resend once. A second 401 is
   ``AuthFailedError``; there is no further retry.
5. Decode the response.

Transport failures are wrapped in ``PipelineTransportError`` and never
retried here.
"""

import json
import logging
from typing import Any, AsyncIterator

from pexshell.errors import (
    AuthFailedError,
    PipelineTransportError,
    UnexpectedShapeError,
    UnknownResourceError,
)
from pexshell.models.invocation import HttpRequest, HttpResponse, Invocation, ResultPage
from pexshell.models.schema import Operation, ResourceDefinition, SchemaModel
from pexshell.services.request_translator import api_error, build_request, decode_response
from pexshell.services.session_manager import SessionManager
from pexshell.services.transport import Transport, TransportError

logger = logging.getLogger(__name__)


class RequestPipeline:
    """Runs invocations against one target with one session."""

    def __init__(
        self,
        transport: Transport,
        sessions: SessionManager,
        schema: SchemaModel | None = None,
    ) -> None:
        self._transport = transport
        self._sessions = sessions
        self._schema = schema or SchemaModel()

    @property
    def schema(self) -> SchemaModel:
        return self._schema

    @schema.setter
    def schema(self, schema: SchemaModel) -> None:
        # Swapped wholesale after a refresh; never mutated.
        self._schema = schema

    def resolve(self, name: str) -> ResourceDefinition:
        resource = self._schema.resolve(name)
        if resource is None:
            raise UnknownResourceError(name)
        return resource

    async def execute(self, invocation: Invocation) -> ResultPage:
        """Run one invocation and return one page.

        Raises:
            UnknownResourceError: If the resource is not in the schema.
            ValidationError: If the invocation does not fit the resource.
            AuthError: If there is no session or it could not be refreshed.
            AuthFailedError: If the retried request is still unauthorized.
            PipelineTransportError: If the transport failed.
            ApiResponseError: For other non-success statuses.
            UnexpectedShapeError: If the response could not be decoded.
        """
        resource = self.resolve(invocation.resource)
        request = build_request(invocation, resource, token=None)
        response = await self._send_authenticated(request)
        return decode_response(resource, invocation.operation, response)

    async def paginate(
        self, invocation: Invocation, max_records: int | None = None
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield records of a listing, following cursors one page at a time.

        Args:
            invocation: A list invocation; its cursor is the starting offset.
            max_records: Stop after this many records. None means all.
        """
        if invocation.operation is not Operation.LIST:
            page = await self.execute(invocation)
            for record in page.records:
                yield record
            return

        remaining = max_records
        cursor = invocation.cursor
        while remaining is None or remaining > 0:
            page = await self.execute(invocation.with_cursor(cursor))
            for record in page.records:
                if remaining is not None:
                    if remaining <= 0:
                        return
                    remaining -= 1
                yield record
            if page.cursor is None:
                return
            if page.cursor == cursor:
                raise UnexpectedShapeError("meta.next", "cursor did not advance")
            logger.debug("pipeline_next_page resource=%s offset=%s", invocation.resource, page.cursor)
            cursor = page.cursor

    async def get_json(self, path: str) -> Any:
        """Authenticated GET of an arbitrary path, decoded as JSON.

        Used for schema documents, which are not resources themselves.
        """
        request = HttpRequest(method="GET", path=path, headers={"Accept": "application/json"})
        response = await self._send_authenticated(request)
        if not response.ok:
            raise api_error(response)
        try:
            return json.loads(response.body)
        except ValueError as e:
            raise UnexpectedShapeError("$", f"response is not JSON: {e}") from e

    async def _send_authenticated(self, request: HttpRequest) -> HttpResponse:
        token = await self._sessions.current_token()
        response = await self._send(request.with_headers(Authorization=token.header))
        if response.status != 401:
            return response

        logger.info("pipeline_unauthorized method=%s path=%s, refreshing session", request.method, request.path)
        token = await self._sessions.force_refresh(stale=token)
        response = await self._send(request.with_headers(Authorization=token.header))
        if response.status == 401:
            raise AuthFailedError(response.status)
        return response

    async def _send(self, request: HttpRequest) -> HttpResponse:
        try:
            return await self._transport.send(request)
        except TransportError as e:
            raise PipelineTransportError(e) from e
