# admin_api/services/storage.py
"""
Collection storage.

A ``CollectionRef`` names one stored value: a JSON array (projects, vacancies,
documents) or a JSON object (site settings). It carries both the local file
path and the remote key so the same reference works with either backend.

Backends:
- LocalFileBackend: JSON files, atomic replace on write (temp sibling + os.replace).
- RedisBackend: one key per collection; missing keys are seeded from the local
  snapshot on first read.

The backend is chosen once by ``build_storage_backend`` and handed to
``CollectionStore``; nothing above this module checks which one is active.
"""

import errno
import json
import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol

import aiofiles
import aiofiles.os
import redis.asyncio as aioredis

from admin_api.core.config import Settings
from admin_api.core.errors import AdminApiError, ErrorKind

logger = logging.getLogger(__name__)

ARRAY = "array"
OBJECT = "object"


@dataclass(frozen=True)
class CollectionRef:
    name: str
    path: Path
    key: str
    shape: str = ARRAY

    @property
    def label(self) -> str:
        return self.path.name

    def empty(self) -> Any:
        return [] if self.shape == ARRAY else {}

    def accepts(self, value: Any) -> bool:
        if self.shape == ARRAY:
            return isinstance(value, list)
        return isinstance(value, dict)


def collection_ref(settings: Settings, name: str, filename: str, shape: str = ARRAY) -> CollectionRef:
    return CollectionRef(
        name=name,
        path=settings.data_dir / filename,
        key=f"{settings.KV_KEY_PREFIX}{name}",
        shape=shape,
    )


class StorageBackend(Protocol):
    name: str

    async def read(self, ref: CollectionRef) -> Any: ...

    async def write(self, ref: CollectionRef, value: Any) -> None: ...


def _shape_error(ref: CollectionRef) -> str:
    expected = "an array" if ref.shape == ARRAY else "an object"
    return f"{ref.label} must be {expected}"


def parse_local_payload(raw: str, ref: CollectionRef) -> Any:
    try:
        data = json.loads(raw.lstrip("\ufeff"))
    except ValueError as exc:
        raise AdminApiError(ErrorKind.CORRUPT_DATA, f"Failed to read {ref.label}: invalid JSON") from exc
    if not ref.accepts(data):
        raise AdminApiError(ErrorKind.CORRUPT_DATA, _shape_error(ref))
    return data


def dump_payload(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2) + "\n"


class LocalFileBackend:
    name = "local"

    async def read(self, ref: CollectionRef) -> Any:
        """
        Parse the whole file. A missing file reads as an empty collection/object
        (first run before any data was written).
        """
        try:
            async with aiofiles.open(ref.path, "r", encoding="utf-8") as fh:
                raw = await fh.read()
        except FileNotFoundError:
            logger.warning("%s not found, treating as empty", ref.path)
            return ref.empty()
        return parse_local_payload(raw, ref)

    async def write(self, ref: CollectionRef, value: Any) -> None:
        """
        Write to a uniquely-named sibling then rename over the target, so a
        reader sees either the old file or the new one, never a partial write.
        """
        target = ref.path
        tmp = target.with_name(f"{target.name}.tmp-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}")
        payload = dump_payload(value)
        try:
            await aiofiles.os.makedirs(target.parent, exist_ok=True)
            async with aiofiles.open(tmp, "w", encoding="utf-8") as out:
                await out.write(payload)
            await aiofiles.os.replace(tmp, target)
        except Exception as exc:
            await _discard(tmp)
            if isinstance(exc, OSError) and exc.errno == errno.EROFS:
                raise AdminApiError(ErrorKind.READ_ONLY_STORAGE) from exc
            raise


async def _discard(path: Path) -> None:
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove temp file %s: %r", path, exc)


def decode_remote_payload(payload: Any, ref: CollectionRef) -> Any:
    """
    Values come back either already structured (list/dict) or as a JSON
    string, depending on how they were written. Both are accepted; any other
    shape means the stored data is corrupted.
    """
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise AdminApiError(ErrorKind.KV_INVALID_PAYLOAD) from exc
    if isinstance(payload, str):
        try:
            payload = json.loads(payload.lstrip("\ufeff"))
        except ValueError as exc:
            raise AdminApiError(ErrorKind.KV_INVALID_PAYLOAD) from exc
    if not ref.accepts(payload):
        raise AdminApiError(ErrorKind.KV_INVALID_PAYLOAD)
    return payload


class RedisBackend:
    name = "kv"

    def __init__(self, url: Optional[str] = None, seed: Optional[LocalFileBackend] = None, client=None):
        self._url = url
        self._client = client
        self._seed = seed or LocalFileBackend()

    async def _get_client(self):
        if self._client is None:
            self._client = aioredis.from_url(self._url, decode_responses=True)
        return self._client

    async def read(self, ref: CollectionRef) -> Any:
        try:
            client = await self._get_client()
            payload = await client.get(ref.key)
        except Exception as exc:
            logger.error("KV read of %s failed: %r", ref.key, exc)
            raise AdminApiError(ErrorKind.KV_UNAVAILABLE) from exc

        if payload is None:
            initial = await self._seed.read(ref)
            logger.info("Seeding KV key %s from %s", ref.key, ref.path)
            await self._set(client, ref, initial)
            return initial

        return decode_remote_payload(payload, ref)

    async def write(self, ref: CollectionRef, value: Any) -> None:
        try:
            client = await self._get_client()
        except Exception as exc:
            raise AdminApiError(ErrorKind.KV_UNAVAILABLE) from exc
        await self._set(client, ref, value)

    async def _set(self, client, ref: CollectionRef, value: Any) -> None:
        try:
            await client.set(ref.key, json.dumps(value, ensure_ascii=False))
        except Exception as exc:
            logger.error("KV write of %s failed: %r", ref.key, exc)
            raise AdminApiError(ErrorKind.KV_UNAVAILABLE) from exc

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class CollectionStore:
    """Reads and writes whole collections through the configured backend."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    async def read(self, ref: CollectionRef) -> Any:
        value = await self.backend.read(ref)
        if not ref.accepts(value):
            raise AdminApiError(ErrorKind.CORRUPT_DATA, _shape_error(ref))
        return value

    async def write(self, ref: CollectionRef, value: Any) -> None:
        if not ref.accepts(value):
            raise ValueError(_shape_error(ref))
        await self.backend.write(ref, value)


def build_storage_backend(settings: Settings) -> StorageBackend:
    if settings.has_kv_storage:
        logger.info("Collections stored in KV (%s*)", settings.KV_KEY_PREFIX)
        return RedisBackend(settings.KV_URL)
    logger.info("Collections stored in local files under %s", settings.data_dir)
    return LocalFileBackend()
