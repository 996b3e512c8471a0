"""Tests for the persistent schema cache."""

import asyncio
import json
from pathlib import Path

import pytest

from pexshell.errors import SchemaMalformedError, SchemaUnreachableError
from pexshell.services.schema_cache import SchemaCache, target_key
from tests.helpers import TARGET, FakeSchemaSource, sample_documents, sample_roots


@pytest.fixture
def source():
    return FakeSchemaSource(TARGET, sample_roots(), sample_documents())


@pytest.fixture
def cache_dir(tmp_path) -> Path:
    return tmp_path / "schema-cache"


def _cache(source, cache_dir) -> SchemaCache:
    return SchemaCache(source_for=lambda target: source, cache_dir=cache_dir)


class TestRefresh:
    """Tests for full schema fetches."""

    @pytest.mark.asyncio
    async def test_refresh_builds_and_persists(self, source, cache_dir):
        cache = _cache(source, cache_dir)
        cached = await cache.refresh(TARGET)

        assert len(cached.model) == 3
        assert cached.target == TARGET
        assert cached.model.fingerprint == cached.fingerprint
        path = cache.path_for(TARGET)
        assert path.name == f"{target_key(TARGET)}.json"
        raw = json.loads(path.read_text())
        assert raw["version"] == 1
        assert raw["fingerprint"] == cached.fingerprint

    @pytest.mark.asyncio
    async def test_refresh_then_load_is_identical(self, source, cache_dir):
        """A persisted schema loads back with identical resource definitions."""
        cached = await _cache(source, cache_dir).refresh(TARGET)

        fresh = _cache(source, cache_dir)
        loaded = await fresh.load(TARGET)
        assert dict(loaded.model.resources) == dict(cached.model.resources)
        assert loaded.fingerprint == cached.fingerprint
        # Only the root documents were fetched for the fingerprint check.
        assert source.document_fetches == 3

    @pytest.mark.asyncio
    async def test_malformed_document_keeps_previous_file(self, source, cache_dir):
        cache = _cache(source, cache_dir)
        await cache.refresh(TARGET)
        before = cache.path_for(TARGET).read_bytes()

        source.documents["/api/admin/status/v1/worker_vm/schema/"] = {"fields": "broken"}
        with pytest.raises(SchemaMalformedError):
            await cache.refresh(TARGET)
        assert cache.path_for(TARGET).read_bytes() == before

    @pytest.mark.asyncio
    async def test_unreachable_document_keeps_previous_file(self, source, cache_dir):
        cache = _cache(source, cache_dir)
        await cache.refresh(TARGET)
        before = cache.path_for(TARGET).read_bytes()

        source.fail_paths["/api/admin/status/v1/worker_vm/schema/"] = SchemaUnreachableError(TARGET)
        with pytest.raises(SchemaUnreachableError):
            await cache.refresh(TARGET)
        assert cache.path_for(TARGET).read_bytes() == before

    @pytest.mark.asyncio
    async def test_no_temp_files_left_behind(self, source, cache_dir):
        cache = _cache(source, cache_dir)
        await cache.refresh(TARGET)
        await cache.refresh(TARGET)
        assert [p.suffix for p in cache.directory.iterdir()] == [".json"]


    @pytest.mark.asyncio
    async def test_concurrent_loads_and_refresh_are_serialized(self, source, cache_dir):
        cache = _cache(source, cache_dir)

        results = await asyncio.gather(
            cache.load(TARGET),
            cache.load(TARGET),
            cache.load(TARGET),
            cache.refresh(TARGET),
        )

        # One rebuild for the first load, hits for the others, one for the refresh.
        assert source.document_fetches == 6
        assert len({r.fingerprint for r in results}) == 1
        raw = json.loads(cache.path_for(TARGET).read_text())
        assert raw["version"] == 1
        assert raw["fingerprint"] == results[-1].fingerprint
        persisted = _cache(source, cache_dir).read_persisted(TARGET)
        assert dict(persisted.model.resources) == dict(results[-1].model.resources)
        assert [p.suffix for p in cache.directory.iterdir()] == [".json"]


class TestLoad:
    """Tests for fingerprint-checked loading."""

    @pytest.mark.asyncio
    async def test_missing_cache_refreshes(self, source, cache_dir):
        cached = await _cache(source, cache_dir).load(TARGET)
        assert len(cached.model) == 3
        assert source.document_fetches == 3

    @pytest.mark.asyncio
    async def test_fingerprint_mismatch_refreshes(self, source, cache_dir):
        first = await _cache(source, cache_dir).refresh(TARGET)

        source.roots["status"]["extra"] = {
            "list_endpoint": "/api/admin/status/v1/extra/",
            "schema": "/api/admin/status/v1/worker_vm/schema/",
        }
        second = await _cache(source, cache_dir).load(TARGET)
        assert second.fingerprint != first.fingerprint
        assert second.model.get("status/extra") is not None

    @pytest.mark.asyncio
    async def test_other_version_is_discarded(self, source, cache_dir):
        cache = _cache(source, cache_dir)
        await cache.refresh(TARGET)
        path = cache.path_for(TARGET)
        raw = json.loads(path.read_text())
        raw["version"] = 99
        path.write_text(json.dumps(raw))

        assert _cache(source, cache_dir).read_persisted(TARGET) is None

    @pytest.mark.asyncio
    async def test_corrupt_file_is_discarded(self, source, cache_dir):
        cache = _cache(source, cache_dir)
        await cache.refresh(TARGET)
        cache.path_for(TARGET).write_text("{not json")

        fresh = _cache(source, cache_dir)
        assert fresh.read_persisted(TARGET) is None
        reloaded = await fresh.load(TARGET)
        assert len(reloaded.model) == 3


class TestOfflineAccess:
    """Tests for reading, invalidating and clearing without a source."""

    def test_read_persisted_without_file(self, cache_dir):
        assert SchemaCache(cache_dir=cache_dir).read_persisted(TARGET) is None

    @pytest.mark.asyncio
    async def test_read_persisted_without_source(self, source, cache_dir):
        await _cache(source, cache_dir).refresh(TARGET)
        offline = SchemaCache(cache_dir=cache_dir)
        cached = offline.read_persisted(TARGET)
        assert cached is not None
        assert cached.model.get("configuration/conference") is not None

    @pytest.mark.asyncio
    async def test_invalidate(self, source, cache_dir):
        cache = _cache(source, cache_dir)
        await cache.refresh(TARGET)
        cache.invalidate(TARGET)
        assert not cache.path_for(TARGET).exists()
        assert cache.read_persisted(TARGET) is None
        cache.invalidate(TARGET)

    @pytest.mark.asyncio
    async def test_clear(self, source, cache_dir):
        cache = _cache(source, cache_dir)
        await cache.refresh(TARGET)
        assert cache.clear() == 1
        assert cache.clear() == 0

    @pytest.mark.asyncio
    async def test_load_without_source_fails(self, cache_dir):
        with pytest.raises(RuntimeError):
            await SchemaCache(cache_dir=cache_dir).load(TARGET)
