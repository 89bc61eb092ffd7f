"""
Blob storage service for badge artifacts.
Supports a local-disk backend (served from /uploads) and the Supabase
Storage REST API.
"""

import asyncio
import os
from typing import List, Optional

import aiofiles
import aiohttp

from ..core.config import Settings
from ..core.exceptions import Conflict, InvalidInput, TransientStorageError
from ..utils.logger import get_logger

logger = get_logger("blob_storage_service")

ALLOWED_CONTENT_TYPES = ("application/json", "image/svg+xml", "image/png")


def _segments(key: str) -> List[str]:
    return [p for p in key.split("/") if p not in ("", ".", "..")]


class LocalStorageBackend:
    """Writes objects under `<root>/<bucket>/<key>`."""

    def __init__(self, root: str, bucket: str):
        self.root = root
        self.bucket = bucket

    def _path(self, key: str) -> str:
        return os.path.join(self.root, self.bucket, *_segments(key))

    async def put(self, key: str, content: bytes, content_type: str, overwrite: bool) -> None:
        path = self._path(key)
        # 'x' fails atomically when the file already exists
        mode = 'wb' if overwrite else 'xb'

        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            async with aiofiles.open(path, mode) as f:
                await f.write(content)
        except FileExistsError as e:
            raise Conflict(f"Object already exists: {key}", cause=e)
        except OSError as e:
            raise TransientStorageError(f"Local write failed for {key}", cause=e)


class SupabaseStorageBackend:
    """Talks to `<api_url>/storage/v1/object/<bucket>/<key>`."""

    def __init__(self, api_url: str, bucket: str, api_key: Optional[str], timeout: float = 30.0):
        self.api_url = api_url.rstrip("/")
        self.bucket = bucket
        self.api_key = api_key
        self.timeout = timeout

    async def put(self, key: str, content: bytes, content_type: str, overwrite: bool) -> None:
        url = f"{self.api_url}/storage/v1/object/{self.bucket}/{key}"
        headers = {
            "Content-Type": content_type,
            "x-upsert": "true" if overwrite else "false",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
            headers["apikey"] = self.api_key

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(url, data=content, headers=headers) as response:
                    if response.status < 300:
                        return
                    body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientStorageError(f"Storage request failed for {key}", cause=e)

        if response.status == 409 or "Duplicate" in body:
            raise Conflict(f"Object already exists: {key}")
        if response.status >= 500:
            raise TransientStorageError(f"Storage returned {response.status} for {key}: {body}")
        raise InvalidInput(f"Storage rejected {key} ({response.status}): {body}")


class BlobStorageService:
    """Service for managing badge artifact uploads."""

    def __init__(self, backend, base_url: str, bucket: str, max_size: int, folder: str = ""):
        self.backend = backend
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.max_size = max_size
        self.folder = folder.strip("/")

    @classmethod
    def from_settings(cls, settings: Settings, folder: Optional[str] = None) -> "BlobStorageService":
        if settings.storage_backend == "supabase":
            backend = SupabaseStorageBackend(
                api_url=settings.storage_base_url,
                bucket=settings.storage_bucket,
                api_key=settings.storage_api_key,
            )
            base_url = f"{settings.storage_base_url.rstrip('/')}/storage/v1/object/public"
        else:
            backend = LocalStorageBackend(settings.upload_root, settings.storage_bucket)
            base_url = settings.storage_base_url

        return cls(
            backend=backend,
            base_url=base_url,
            bucket=settings.storage_bucket,
            max_size=settings.max_upload_size,
            folder=settings.metadata_folder if folder is None else folder,
        )

    def object_key(self, key: str) -> str:
        """Namespace a caller key under this service's folder, dropping empty and dot segments."""
        parts = _segments(key)
        if self.folder:
            parts.insert(0, self.folder)
        return "/".join(parts)

    def public_url(self, key: str) -> str:
        """
        Public URL for a key. Pure string work, no I/O.

        Args:
            key: Caller key (without folder)

        Returns:
            str: URL of the object
        """
        return f"{self.base_url}/{self.bucket}/{self.object_key(key)}"

    async def upload(
        self,
        key: str,
        content: bytes,
        content_type: str = "application/json",
        overwrite: bool = False
    ) -> str:
        """
        Upload bytes under `key`.

        Args:
            key: Caller key (namespaced under the configured folder)
            content: Object body
            content_type: MIME type, one of ALLOWED_CONTENT_TYPES
            overwrite: Replace an existing object instead of failing

        Returns:
            str: Public URL of the stored object

        Raises:
            InvalidInput: Bad content type, empty or oversized content
            Conflict: Object exists and overwrite is False
            TransientStorageError: Backend unreachable or failing
        """
        if not key or not _segments(key):
            raise InvalidInput("Storage key is required")
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise InvalidInput(
                f"Content type {content_type} not allowed. Allowed types: {', '.join(ALLOWED_CONTENT_TYPES)}"
            )
        if not content:
            raise InvalidInput("Refusing to store empty content")
        if len(content) > self.max_size:
            raise InvalidInput(f"Content size exceeds maximum allowed size of {self.max_size} bytes")

        object_key = self.object_key(key)
        await self.backend.put(object_key, content, content_type, overwrite)

        url = self.public_url(key)
        logger.info(f"Object uploaded: {object_key} ({len(content)} bytes) to {url}")
        return url
