# admin_api/services/assets.py
"""
Image uploads sent as data URLs.

- Validates MIME type against an allow-list, decodes base64, enforces a size ceiling
- Builds a collision-resistant public filename
- Persists through the configured backend: S3-compatible object store (R2/MinIO)
  or the local public uploads directory
"""

import asyncio
import base64
import binascii
import errno
import logging
import re
import time
import unicodedata
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Tuple

import aiofiles
import aiofiles.os
import boto3
from botocore.client import Config

from admin_api.core.config import Settings
from admin_api.core.errors import AdminApiError, ErrorKind

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/avif": "avif",
    "image/gif": "gif",
}
MAX_UPLOAD_BYTES = 6 * 1024 * 1024
CACHE_CONTROL = "public, max-age=31536000"

DATA_URL_RE = re.compile(r"^data:([^;]+);base64,([A-Za-z0-9+/=]+)$")
_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9_-]+")
_EXTENSION_RE = re.compile(r"\.[^/.]+$")


@dataclass
class UploadResult:
    id: str
    url: str
    size: int
    storage: str
    type: str

    def body(self) -> dict:
        return {"url": self.url, "size": self.size, "storage": self.storage, "type": self.type}


class AssetBackend(Protocol):
    name: str

    async def put(self, name: str, data: bytes, content_type: str) -> str: ...


def sanitize_base_name(filename: str) -> str:
    base = filename.replace("\\", "/").rsplit("/", 1)[-1]
    base = _EXTENSION_RE.sub("", base)
    safe = _UNSAFE_NAME_RE.sub("-", unicodedata.normalize("NFKD", base)).strip("-").lower()
    return safe or "image"


def unique_asset_name(filename: str, extension: str) -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{sanitize_base_name(filename)}.{extension}"


class LocalAssetBackend:
    name = "local"

    def __init__(self, directory: Path, url_prefix: str = "/uploads"):
        self.directory = Path(directory)
        self.url_prefix = url_prefix.rstrip("/")

    async def put(self, name: str, data: bytes, content_type: str) -> str:
        path = self.directory / name
        try:
            await aiofiles.os.makedirs(self.directory, exist_ok=True)
            async with aiofiles.open(path, "wb") as out:
                await out.write(data)
        except OSError as exc:
            if exc.errno == errno.EROFS:
                raise AdminApiError(ErrorKind.READ_ONLY_STORAGE) from exc
            raise
        return f"{self.url_prefix}/{name}"


class S3AssetBackend:
    name = "s3"

    def __init__(self, bucket: str, public_base_url: Optional[str] = None, client=None, prefix: str = "uploads/"):
        self.bucket = bucket
        self.public_base_url = (public_base_url or "").rstrip("/")
        self.prefix = prefix
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3AssetBackend":
        client = boto3.client(
            "s3",
            endpoint_url=str(settings.S3_ENDPOINT) if settings.S3_ENDPOINT else None,
            aws_access_key_id=settings.S3_ACCESS_KEY,
            aws_secret_access_key=settings.S3_SECRET_KEY,
            # signature s3v4 for compatibility (Cloudflare R2 & MinIO)
            config=Config(signature_version="s3v4"),
            region_name=(settings.S3_REGION or None),
        )
        public_base = settings.S3_PUBLIC_BASE_URL
        if not public_base and settings.S3_ENDPOINT:
            public_base = f"{str(settings.S3_ENDPOINT).rstrip('/')}/{settings.S3_BUCKET}"
        return cls(settings.S3_BUCKET, public_base, client=client)

    def _put_object(self, key: str, data: bytes, content_type: str) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            CacheControl=CACHE_CONTROL,
        )

    async def put(self, name: str, data: bytes, content_type: str) -> str:
        key = f"{self.prefix}{name}"
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._put_object, key, data, content_type)
        except Exception as exc:
            logger.error("S3 upload of %s failed: %r", key, exc)
            raise AdminApiError(ErrorKind.BLOB_UPLOAD_FAILED) from exc
        return f"{self.public_base_url}/{key}"


class UnconfiguredAssetBackend:
    """Serverless runtime without object storage: the local disk is not an option."""

    name = "none"

    async def put(self, name: str, data: bytes, content_type: str) -> str:
        raise AdminApiError(ErrorKind.BLOB_NOT_CONFIGURED)


def build_asset_backend(settings: Settings) -> AssetBackend:
    if settings.has_s3_storage:
        logger.info("Uploads stored in S3 bucket %s", settings.S3_BUCKET)
        return S3AssetBackend.from_settings(settings)
    if settings.SERVERLESS:
        logger.warning("Serverless runtime without S3_* settings: uploads are disabled")
        return UnconfiguredAssetBackend()
    return LocalAssetBackend(Path(settings.UPLOADS_DIR))


class AssetStore:
    def __init__(self, backend: AssetBackend, max_bytes: int = MAX_UPLOAD_BYTES):
        self.backend = backend
        self.max_bytes = max_bytes

    def decode(self, data_url: str) -> Tuple[str, str, bytes]:
        """Return (mime type, file extension, decoded bytes) or raise a 400/413 error."""
        match = DATA_URL_RE.match(data_url)
        if not match:
            raise AdminApiError(ErrorKind.VALIDATION, "Malformed dataUrl")

        mime_type = match.group(1).lower()
        extension = ALLOWED_IMAGE_TYPES.get(mime_type)
        if not extension:
            raise AdminApiError(ErrorKind.VALIDATION, "Only JPG, PNG, WEBP, AVIF and GIF images are supported")

        try:
            data = base64.b64decode(match.group(2), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise AdminApiError(ErrorKind.VALIDATION, "Could not decode the image") from exc

        if not data:
            raise AdminApiError(ErrorKind.VALIDATION, "File is empty")
        if len(data) > self.max_bytes:
            raise AdminApiError(
                ErrorKind.PAYLOAD_TOO_LARGE,
                f"File exceeds {self.max_bytes // (1024 * 1024)}MB",
            )
        return mime_type, extension, data

    async def upload(self, filename: str, data_url: str) -> UploadResult:
        mime_type, extension, data = self.decode(data_url)
        name = unique_asset_name(filename, extension)
        url = await self.backend.put(name, data, mime_type)
        return UploadResult(id=name, url=url, size=len(data), storage=self.backend.name, type=mime_type)
