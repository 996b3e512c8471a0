"""Where schema documents come from.

The schema cache only needs two things from a target: the API root
documents (cheap, used for the fingerprint) and individual resource schema
documents. ``HttpSchemaSource`` fetches both through the authenticated
request pipeline.
"""

import logging
from typing import Any, Protocol

from pexshell.errors import (
    AuthError,
    PipelineError,
    SchemaMalformedError,
    SchemaUnreachableError,
    UnexpectedShapeError,
)
from pexshell.services.request_pipeline import RequestPipeline

logger = logging.getLogger(__name__)

DEFAULT_API_GROUPS: tuple[str, ...] = (
    "configuration",
    "status",
    "history",
    "command/conference",
    "command/participant",
    "command/platform",
)


def api_root_path(api: str) -> str:
    """Return the root path of an API group.

    ``configuration`` -> ``/api/admin/configuration/v1/``;
    ``command/conference`` -> ``/api/admin/command/v1/conference/``.
    """
    group, _, sub = api.partition("/")
    if sub:
        return f"/api/admin/{group}/v1/{sub}/"
    return f"/api/admin/{group}/v1/"


class SchemaSource(Protocol):
    """Supplies raw schema documents for one target."""

    @property
    def target(self) -> str: ...

    @property
    def apis(self) -> tuple[str, ...]: ...

    async def fetch_root(self, api: str) -> Any: ...

    async def fetch_document(self, path: str) -> Any: ...


class HttpSchemaSource:
    """Fetches schema documents with authenticated GET requests."""

    def __init__(
        self,
        pipeline: RequestPipeline,
        target: str,
        apis: tuple[str, ...] = DEFAULT_API_GROUPS,
    ) -> None:
        self._pipeline = pipeline
        self._target = target
        self._apis = tuple(apis)

    @property
    def target(self) -> str:
        return self._target

    @property
    def apis(self) -> tuple[str, ...]:
        return self._apis

    async def fetch_root(self, api: str) -> Any:
        return await self.fetch_document(api_root_path(api))

    async def fetch_document(self, path: str) -> Any:
        """GET one schema document.

        Raises:
            SchemaUnreachableError: If the request failed or was rejected.
            SchemaMalformedError: If the body is not JSON.
            AuthError: If there is no usable session.
        """
        logger.debug("schema_fetch target=%s path=%s", self._target, path)
        try:
            return await self._pipeline.get_json(path)
        except AuthError:
            raise
        except UnexpectedShapeError as e:
            raise SchemaMalformedError(self._target, f"{path}: {e.detail}") from e
        except PipelineError as e:
            raise SchemaUnreachableError(self._target, cause=e) from e
