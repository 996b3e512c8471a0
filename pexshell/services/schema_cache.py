"""Persistent per-target cache of the parsed schema model.

One JSON file per target under ``<cache dir>/schemas/``::

    {"version": 1, "target": "https://mgr.example.com",
     "fingerprint": "<sha256>", "retrieved_at": "<iso8601>",
     "resources": [...]}

The fingerprint hashes the target address and every API root document.
``load`` re-fetches only the root documents to check it; a mismatch (or a
missing, unreadable or differently versioned file) triggers a full
refresh. A refresh either builds the whole model and replaces the file
atomically, or raises and leaves the previous file untouched.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from pexshell.errors import SchemaMalformedError
from pexshell.models.schema import CachedSchema, ResourceDefinition, SchemaModel
from pexshell.services.schema_parser import compute_fingerprint, parse_resource, parse_root
from pexshell.services.schema_source import SchemaSource
from pexshell.utils.paths import get_cache_dir

logger = logging.getLogger(__name__)

_CACHE_VERSION = 1


def target_key(target: str) -> str:
    """Stable file name stem for a target address."""
    return hashlib.sha256(target.encode("utf-8")).hexdigest()[:16]


class SchemaCache:
    """Loads, refreshes and persists schema models per target.

    Args:
        source_for: Returns the schema source for a target address.
        cache_dir: Base cache directory; defaults to the per-user cache dir.
    """

    def __init__(
        self,
        source_for: Callable[[str], SchemaSource] | None = None,
        cache_dir: Path | None = None,
    ) -> None:
        self._source_for = source_for
        self._dir = (cache_dir or get_cache_dir()) / "schemas"
        self._memory: dict[str, CachedSchema] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, target: str) -> Path:
        return self._dir / f"{target_key(target)}.json"

    def _lock_for(self, target: str) -> asyncio.Lock:
        lock = self._locks.get(target)
        if lock is None:
            lock = self._locks[target] = asyncio.Lock()
        return lock

    def _source(self, target: str) -> SchemaSource:
        if self._source_for is None:
            raise RuntimeError("SchemaCache has no schema source configured")
        return self._source_for(target)

    # -- public API ---------------------------------------------------------

    async def load(self, target: str) -> CachedSchema:
        """Return the cached schema if its fingerprint still matches.

        Raises:
            SchemaUnreachableError: If the target could not be queried.
            SchemaMalformedError: If a schema document could not be parsed.
        """
        async with self._lock_for(target):
            source = self._source(target)
            roots = await self._fetch_roots(source)
            fingerprint = compute_fingerprint(target, roots)

            cached = self._memory.get(target) or self._read_file(target)
            if cached is not None and cached.matches(fingerprint):
                self._memory[target] = cached
                logger.debug("schema_cache_hit target=%s", target)
                return cached

            reason = "missing" if cached is None else "fingerprint_mismatch"
            logger.info("schema_cache_recompute reason=%s target=%s", reason, target)
            return await self._rebuild(target, source, roots, fingerprint)

    async def refresh(self, target: str) -> CachedSchema:
        """Fetch the full schema, persist it and return it.

        Raises:
            SchemaUnreachableError: If any document could not be fetched.
            SchemaMalformedError: If any document could not be parsed.
        """
        async with self._lock_for(target):
            source = self._source(target)
            roots = await self._fetch_roots(source)
            fingerprint = compute_fingerprint(target, roots)
            logger.info("schema_cache_recompute reason=refresh target=%s", target)
            return await self._rebuild(target, source, roots, fingerprint)

    def read_persisted(self, target: str) -> CachedSchema | None:
        """Return the persisted schema without contacting the target."""
        cached = self._memory.get(target) or self._read_file(target)
        if cached is not None:
            self._memory[target] = cached
        return cached

    def invalidate(self, target: str) -> None:
        """Forget the schema for one target, in memory and on disk."""
        self._memory.pop(target, None)
        try:
            self.path_for(target).unlink()
            logger.info("schema_cache_invalidated target=%s", target)
        except FileNotFoundError:
            pass

    def clear(self) -> int:
        """Remove every cached schema. Returns the number of files removed."""
        self._memory.clear()
        removed = 0
        if not self._dir.exists():
            return removed
        for path in self._dir.glob("*.json"):
            path.unlink(missing_ok=True)
            removed += 1
        logger.info("schema_cache_cleared files=%d", removed)
        return removed

    # -- fetching -----------------------------------------------------------

    async def _fetch_roots(self, source: SchemaSource) -> dict[str, Any]:
        documents = await asyncio.gather(*(source.fetch_root(api) for api in source.apis))
        return dict(zip(source.apis, documents))

    async def _rebuild(
        self,
        target: str,
        source: SchemaSource,
        roots: dict[str, Any],
        fingerprint: str,
    ) -> CachedSchema:
        entries = [
            (api, name, entry)
            for api in source.apis
            for name, entry in parse_root(roots[api], target).items()
        ]
        documents = await asyncio.gather(
            *(source.fetch_document(entry.schema_url) for _, _, entry in entries)
        )
        resources: list[ResourceDefinition] = [
            parse_resource(api, name, entry, document, target)
            for (api, name, entry), document in zip(entries, documents)
        ]
        try:
            model = SchemaModel.build(resources, fingerprint=fingerprint)
        except ValueError as e:
            raise SchemaMalformedError(target, str(e)) from e

        cached = CachedSchema(
            model=model,
            target=target,
            fingerprint=fingerprint,
            retrieved_at=datetime.now(timezone.utc),
        )
        self._write_file(cached)
        self._memory[target] = cached
        logger.info(
            "schema_cache_stored target=%s resources=%d fingerprint=%s",
            target,
            len(model),
            fingerprint[:12],
        )
        return cached

    # -- persistence --------------------------------------------------------

    def _read_file(self, target: str) -> CachedSchema | None:
        path = self.path_for(target)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.info("schema_cache_discard reason=file_read_error error=%s", e)
            return None

        if not isinstance(raw, dict) or raw.get("version") != _CACHE_VERSION:
            logger.info("schema_cache_discard reason=version_mismatch")
            return None
        if raw.get("target") != target:
            logger.info("schema_cache_discard reason=target_mismatch")
            return None
        fingerprint = raw.get("fingerprint")
        if not isinstance(fingerprint, str) or not fingerprint:
            logger.info("schema_cache_discard reason=fingerprint_missing")
            return None
        try:
            model = SchemaModel.from_dict(
                {"fingerprint": fingerprint, "resources": raw.get("resources", [])}
            )
            retrieved_at = datetime.fromisoformat(raw["retrieved_at"])
        except (KeyError, TypeError, ValueError) as e:
            logger.info("schema_cache_discard reason=shape_invalid error=%s", e)
            return None
        return CachedSchema(
            model=model,
            target=target,
            fingerprint=fingerprint,
            retrieved_at=retrieved_at,
        )

    def _write_file(self, cached: CachedSchema) -> None:
        path = self.path_for(cached.target)
        payload = {
            "version": _CACHE_VERSION,
            "target": cached.target,
            "fingerprint": cached.fingerprint,
            "retrieved_at": cached.retrieved_at.isoformat(),
            "resources": cached.model.to_dict()["resources"],
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=path.stem, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, separators=(",", ":"))
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
