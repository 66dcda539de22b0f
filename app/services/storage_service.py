"""Artifact storage: local volume or Supabase storage."""

import asyncio
import secrets
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional, Protocol
from uuid import UUID

import httpx

from app.core.config import Settings
from app.core.exceptions import ConfigurationError, StorageError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class StoredObject:
    path: str
    size: int


class StorageService(Protocol):
    async def put(self, data: bytes, path: str, content_type: str = "application/octet-stream") -> StoredObject:
        ...

    async def get(self, path: str) -> bytes:
        ...


def build_object_path(design_week_id: UUID, filename: str) -> str:
    """Unique object key for an upload, keeping the sanitized extension."""
    suffix = PurePosixPath(filename).suffix.lower()
    return f"design-weeks/{design_week_id}/{int(time.time() * 1000)}-{secrets.token_hex(4)}{suffix}"


class VolumeStorageService:
    """Stores artifacts on a mounted volume beneath a fixed root directory."""

    def __init__(self, root: str):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if target != self.root and self.root not in target.parents:
            raise StorageError(f"Path escapes storage root: {path}")
        return target

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def put(self, data: bytes, path: str, content_type: str = "application/octet-stream") -> StoredObject:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as e:
            LOGGER.error(f"Error writing artifact to volume: {e}", exc_info=True, extra={"path": path})
            raise StorageError(f"Storage upload error: {e}", original_error=e) from e
        LOGGER.info("Stored artifact", extra={"path": path, "size": len(data)})
        return StoredObject(path=path, size=len(data))

    async def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except OSError as e:
            LOGGER.error(f"Error reading artifact from volume: {e}", extra={"path": path})
            raise StorageError(f"Storage read error: {e}", original_error=e) from e


class SupabaseStorageService:
    """Stores artifacts in a Supabase storage bucket through its REST API."""

    def __init__(self, url: str, service_role_key: str, bucket: str, timeout: int = 120):
        if not url or not service_role_key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for supabase storage")
        self.bucket = bucket
        self.timeout = timeout
        self.base_api_url = f"{url.rstrip('/')}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {service_role_key}",
            "apikey": service_role_key,
        }

    async def put(self, data: bytes, path: str, content_type: str = "application/octet-stream") -> StoredObject:
        upload_url = f"{self.base_api_url}/object/{self.bucket}/{path}"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    upload_url,
                    headers={**self.headers, "Content-Type": content_type},
                    content=data,
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            LOGGER.error(f"Error uploading file to Supabase: {str(e)}", exc_info=True)
            raise StorageError(f"Storage upload error: {str(e)}", original_error=e) from e

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to upload file to Supabase: {response.text}",
                extra={"bucket": self.bucket, "path": path, "status_code": response.status_code},
            )
            raise StorageError(f"Upload failed: {response.text}")
        return StoredObject(path=path, size=len(data))

    async def get(self, path: str) -> bytes:
        download_url = f"{self.base_api_url}/object/{self.bucket}/{path}"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(download_url, headers=self.headers, timeout=self.timeout)
        except httpx.HTTPError as e:
            LOGGER.error(f"Error downloading file from Supabase: {str(e)}", exc_info=True)
            raise StorageError(f"Storage download error: {str(e)}", original_error=e) from e

        if response.status_code != 200:
            LOGGER.error(
                f"Failed to download file from Supabase: {response.text}",
                extra={"bucket": self.bucket, "path": path, "status_code": response.status_code},
            )
            raise StorageError(f"Download failed: {response.text}")
        return response.content


def build_storage_service(settings: Settings, backend: Optional[str] = None) -> StorageService:
    backend = backend or settings.storage.backend
    if backend == "volume":
        return VolumeStorageService(settings.storage.path)
    if backend == "supabase":
        return SupabaseStorageService(
            url=settings.storage.supabase_url,
            service_role_key=settings.storage.supabase_service_role_key,
            bucket=settings.storage.bucket,
            timeout=settings.http_timeout,
        )
    raise ConfigurationError(f"Unsupported STORAGE_BACKEND: {backend}")
