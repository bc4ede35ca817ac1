"""
Object storage operations for the file processing worker.
Defines the storage contract and its Supabase Storage implementation.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional
from supabase import Client

from file_pipeline.core.errors import StorageError
from file_pipeline.core.models import FileMetadata

logger = logging.getLogger(__name__)

LIST_PAGE_SIZE = 100


class ObjectStorage(ABC):
    """Object storage contract consumed by the pipeline."""

    @abstractmethod
    async def head_object(self, bucket: str, key: str) -> FileMetadata:
        """Fetch size and content type without downloading the body."""

    @abstractmethod
    async def get_object(self, bucket: str, key: str) -> bytes:
        """Download the object body."""

    @abstractmethod
    async def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
        cache_control: Optional[str] = None,
    ) -> None:
        """Write (or overwrite) an object."""

    @abstractmethod
    async def copy_object(
        self,
        bucket: str,
        src_key: str,
        dst_key: str,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
        cache_control: Optional[str] = None,
    ) -> None:
        """Copy an object, replacing its content type and metadata."""

    @abstractmethod
    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object. Deleting a missing object is not an error."""

    @abstractmethod
    def public_url(self, bucket: str, key: str) -> str:
        """Public URL for an object."""


class SupabaseObjectStorage(ObjectStorage):
    """Object storage backed by Supabase Storage buckets."""

    def __init__(self, supabase_client: Client, public_base_url: Optional[str] = None):
        """
        Initialize storage operations.

        Args:
            supabase_client: Supabase client instance
            public_base_url: Optional base URL overriding Supabase public URLs
        """
        self.client = supabase_client
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    async def head_object(self, bucket: str, key: str) -> FileMetadata:
        folder, _, name = key.rpartition("/")
        offset = 0

        # search is a prefix match, so page until the exact name shows up
        while True:
            try:
                entries = self.client.storage.from_(bucket).list(
                    folder, {"search": name, "limit": LIST_PAGE_SIZE, "offset": offset}
                ) or []
            except Exception as e:
                raise StorageError(f"Failed to list {bucket}/{folder}: {e}") from e

            for entry in entries:
                if entry.get("name") == name:
                    metadata = entry.get("metadata") or {}
                    size = int(metadata.get("size") or metadata.get("contentLength") or 0)
                    content_type = metadata.get("mimetype") or "application/octet-stream"
                    logger.debug(f"Head {bucket}/{key}: {size} bytes, {content_type}")
                    return FileMetadata(size=size, content_type=content_type)

            if len(entries) < LIST_PAGE_SIZE:
                break
            offset += LIST_PAGE_SIZE

        raise StorageError(f"Object not found: {bucket}/{key}")

    async def get_object(self, bucket: str, key: str) -> bytes:
        try:
            content = self.client.storage.from_(bucket).download(key)
        except Exception as e:
            raise StorageError(f"Failed to download {bucket}/{key}: {e}") from e

        if isinstance(content, str):
            content = content.encode("utf-8")
        logger.debug(f"Downloaded {len(content)} bytes from {bucket}/{key}")
        return content

    async def put_object(self, bucket, key, body, content_type, metadata=None, cache_control=None):
        file_options = {"content-type": content_type, "upsert": "true"}
        if cache_control:
            file_options["cache-control"] = cache_control
        if metadata:
            file_options["metadata"] = metadata

        try:
            self.client.storage.from_(bucket).upload(path=key, file=body, file_options=file_options)
        except Exception as e:
            raise StorageError(f"Failed to upload {bucket}/{key}: {e}") from e

        logger.debug(f"Uploaded {len(body)} bytes to {bucket}/{key}")

    async def copy_object(self, bucket, src_key, dst_key, content_type, metadata=None, cache_control=None):
        # Storage copy keeps the source content type and metadata, so the body
        # is re-uploaded to the destination instead.
        body = await self.get_object(bucket, src_key)
        await self.put_object(bucket, dst_key, body, content_type, metadata, cache_control)

    async def delete_object(self, bucket: str, key: str) -> None:
        try:
            self.client.storage.from_(bucket).remove([key])
        except Exception as e:
            raise StorageError(f"Failed to delete {bucket}/{key}: {e}") from e

        logger.debug(f"Deleted {bucket}/{key}")

    def public_url(self, bucket: str, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{bucket}/{key}"
        return self.client.storage.from_(bucket).get_public_url(key)
