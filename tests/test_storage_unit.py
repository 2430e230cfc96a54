# tests/test_storage_unit.py
import errno
import json

import pytest

import admin_api.services.storage as storage_mod
from admin_api.core.errors import AdminApiError, ErrorKind
from admin_api.services.storage import (
    OBJECT,
    CollectionRef,
    CollectionStore,
    LocalFileBackend,
    RedisBackend,
    build_storage_backend,
)


class DummyRedis:
    """Minimal async stand-in for redis.asyncio.Redis (get/set only)."""

    def __init__(self, values=None, fail=False):
        self.values = dict(values or {})
        self.fail = fail
        self.set_calls = []

    async def get(self, key):
        if self.fail:
            raise ConnectionError("redis down")
        return self.values.get(key)

    async def set(self, key, value):
        if self.fail:
            raise ConnectionError("redis down")
        self.set_calls.append(key)
        self.values[key] = value


@pytest.fixture
def ref(tmp_path):
    return CollectionRef(name="projects", path=tmp_path / "projects.json", key="sng:projects")


@pytest.fixture
def settings_ref(tmp_path):
    return CollectionRef(name="site-settings", path=tmp_path / "siteSettings.json", key="sng:site-settings", shape=OBJECT)


@pytest.mark.asyncio
async def test_local_read_strips_bom(ref):
    ref.path.write_text("\ufeff[{\"id\": \"a\"}]", encoding="utf-8")
    assert await LocalFileBackend().read(ref) == [{"id": "a"}]


@pytest.mark.asyncio
async def test_local_read_rejects_wrong_shape(ref, settings_ref):
    ref.path.write_text('{"id": "a"}', encoding="utf-8")
    with pytest.raises(AdminApiError) as exc:
        await LocalFileBackend().read(ref)
    assert exc.value.kind is ErrorKind.CORRUPT_DATA
    assert "projects.json" in exc.value.message

    settings_ref.path.write_text("[]", encoding="utf-8")
    with pytest.raises(AdminApiError):
        await LocalFileBackend().read(settings_ref)


@pytest.mark.asyncio
async def test_local_read_rejects_invalid_json(ref):
    ref.path.write_text("[{", encoding="utf-8")
    with pytest.raises(AdminApiError) as exc:
        await LocalFileBackend().read(ref)
    assert exc.value.status_code == 500


@pytest.mark.asyncio
async def test_local_missing_file_reads_empty(ref, settings_ref):
    assert await LocalFileBackend().read(ref) == []
    assert await LocalFileBackend().read(settings_ref) == {}


@pytest.mark.asyncio
async def test_local_write_is_indented_and_leaves_no_temp_files(ref):
    await LocalFileBackend().write(ref, [{"id": "a", "title": "Объект"}])
    text = ref.path.read_text(encoding="utf-8")
    assert text == '[\n  {\n    "id": "a",\n    "title": "Объект"\n  }\n]\n'
    assert [p.name for p in ref.path.parent.iterdir()] == ["projects.json"]


@pytest.mark.asyncio
async def test_crash_before_rename_keeps_original(ref, monkeypatch):
    original = '[{"id": "old"}]\n'
    ref.path.write_text(original, encoding="utf-8")

    async def crash(src, dst):
        raise RuntimeError("power loss")

    monkeypatch.setattr(storage_mod.aiofiles.os, "replace", crash)
    with pytest.raises(RuntimeError):
        await LocalFileBackend().write(ref, [{"id": "new"}])

    assert ref.path.read_text(encoding="utf-8") == original
    assert json.loads(ref.path.read_text(encoding="utf-8")) == [{"id": "old"}]
    assert [p.name for p in ref.path.parent.iterdir()] == ["projects.json"]


@pytest.mark.asyncio
async def test_read_only_filesystem_maps_to_distinct_error(ref, monkeypatch):
    async def read_only(src, dst):
        raise OSError(errno.EROFS, "Read-only file system")

    monkeypatch.setattr(storage_mod.aiofiles.os, "replace", read_only)
    with pytest.raises(AdminApiError) as exc:
        await LocalFileBackend().write(ref, [])
    assert exc.value.kind is ErrorKind.READ_ONLY_STORAGE
    assert exc.value.status_code == 503


@pytest.mark.asyncio
async def test_kv_seeds_missing_key_from_local_snapshot(ref):
    ref.path.write_text('[{"id": "seed"}]', encoding="utf-8")
    redis = DummyRedis()
    backend = RedisBackend(client=redis)

    assert await backend.read(ref) == [{"id": "seed"}]
    assert json.loads(redis.values["sng:projects"]) == [{"id": "seed"}]


@pytest.mark.asyncio
async def test_kv_accepts_structured_and_json_string_values(ref, settings_ref):
    backend = RedisBackend(client=DummyRedis({
        "sng:projects": [{"id": "a"}],
        "sng:site-settings": '{"careers": {}}',
    }))
    assert await backend.read(ref) == [{"id": "a"}]
    assert await backend.read(settings_ref) == {"careers": {}}


@pytest.mark.asyncio
@pytest.mark.parametrize("stored", ['{"id": "a"}', "not json", 42])
async def test_kv_invalid_payload_is_not_masked(ref, stored):
    backend = RedisBackend(client=DummyRedis({"sng:projects": stored}))
    with pytest.raises(AdminApiError) as exc:
        await backend.read(ref)
    assert exc.value.kind is ErrorKind.KV_INVALID_PAYLOAD
    assert exc.value.status_code == 500


@pytest.mark.asyncio
async def test_kv_transport_failure_is_unavailable(ref):
    backend = RedisBackend(client=DummyRedis(fail=True))
    for call in (backend.read(ref), backend.write(ref, [])):
        with pytest.raises(AdminApiError) as exc:
            await call
        assert exc.value.kind is ErrorKind.KV_UNAVAILABLE
        assert exc.value.status_code == 503


@pytest.mark.asyncio
async def test_collection_store_round_trip_through_kv(ref):
    redis = DummyRedis()
    store = CollectionStore(RedisBackend(client=redis))
    await store.write(ref, [{"id": "x"}])
    assert redis.set_calls == ["sng:projects"]
    assert await store.read(ref) == [{"id": "x"}]


def test_backend_selected_once_from_settings(settings):
    assert isinstance(build_storage_backend(settings), LocalFileBackend)
    settings.KV_URL = "redis://localhost:6379/0"
    assert isinstance(build_storage_backend(settings), RedisBackend)
