"""
Database operations for the file processing worker.
Persists file and error records with create-then-update semantics so that
redelivered events converge on a single record.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from postgrest.exceptions import APIError
from supabase import Client

from file_pipeline.core.errors import ConditionalCheckFailedError, PersistenceError
from file_pipeline.core.ids import generate_file_id, utc_now
from file_pipeline.core.models import ErrorRecord, FileRecord, ProcessingResult

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
MAX_UPDATE_ATTEMPTS = 3


class MetadataTable(ABC):
    """Single-table metadata store keyed by partition (pk) and sort (sk) key."""

    @abstractmethod
    async def put_if_absent(self, item: Dict[str, Any]) -> None:
        """Create the item; ConditionalCheckFailedError if (pk, sk) already exists."""

    @abstractmethod
    async def put(self, item: Dict[str, Any]) -> None:
        """Create the item unconditionally."""

    @abstractmethod
    async def get(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        """Fetch one item or None."""

    @abstractmethod
    async def update_if_version(
        self, pk: str, sk: str, fields: Dict[str, Any], expected_version: int
    ) -> Dict[str, Any]:
        """Compare-and-set update; ConditionalCheckFailedError on version mismatch."""

    @abstractmethod
    async def query(self, pk: str) -> List[Dict[str, Any]]:
        """All items in a partition."""

    @abstractmethod
    async def query_index(self, gsi1pk: str) -> List[Dict[str, Any]]:
        """All items under a secondary index key."""


def _is_unique_violation(error: Exception) -> bool:
    code = getattr(error, "code", None)
    return code == UNIQUE_VIOLATION or "duplicate key value" in str(error).lower()


class SupabaseMetadataTable(MetadataTable):
    """Metadata store on a Supabase (PostgREST) table with a unique (pk, sk) constraint."""

    def __init__(self, supabase_client: Client, table_name: str):
        """
        Initialize the table wrapper.

        Args:
            supabase_client: Supabase client instance
            table_name: Name of the records table
        """
        if not table_name:
            raise PersistenceError("FILES_TABLE_NAME is not set")
        self.client = supabase_client
        self.table_name = table_name

    def _table(self):
        return self.client.table(self.table_name)

    async def put_if_absent(self, item):
        try:
            self._table().insert(item).execute()
        except APIError as e:
            if _is_unique_violation(e):
                raise ConditionalCheckFailedError(f"Item {item['pk']}/{item['sk']} already exists") from e
            raise PersistenceError(f"Failed to insert {item['pk']}/{item['sk']}: {e}") from e

    async def put(self, item):
        try:
            self._table().insert(item).execute()
        except APIError as e:
            raise PersistenceError(f"Failed to insert {item['pk']}/{item['sk']}: {e}") from e

    async def get(self, pk, sk):
        try:
            result = self._table().select("*").eq("pk", pk).eq("sk", sk).execute()
        except APIError as e:
            raise PersistenceError(f"Failed to read {pk}/{sk}: {e}") from e

        if result.data:
            return result.data[0]
        return None

    async def update_if_version(self, pk, sk, fields, expected_version):
        try:
            result = (
                self._table()
                .update(fields)
                .eq("pk", pk)
                .eq("sk", sk)
                .eq("version", expected_version)
                .execute()
            )
        except APIError as e:
            raise PersistenceError(f"Failed to update {pk}/{sk}: {e}") from e

        if not result.data:
            raise ConditionalCheckFailedError(f"Version {expected_version} of {pk}/{sk} is stale")
        return result.data[0]

    async def query(self, pk):
        try:
            result = self._table().select("*").eq("pk", pk).order("sk").execute()
        except APIError as e:
            raise PersistenceError(f"Failed to query {pk}: {e}") from e
        return result.data or []

    async def query_index(self, gsi1pk):
        try:
            result = self._table().select("*").eq("gsi1pk", gsi1pk).order("gsi1sk").execute()
        except APIError as e:
            raise PersistenceError(f"Failed to query index {gsi1pk}: {e}") from e
        return result.data or []


class FileRecordStore:
    """Sole writer of durable file and error records."""

    def __init__(self, table: MetadataTable):
        self.table = table

    async def record_success(
        self,
        order_id: str,
        user_id: str,
        file_id: str,
        result: ProcessingResult,
        original_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Persist a processed file.

        Attempts a conditional create first; if a record with the same
        (order, file) key exists, updates its mutable fields and bumps version.

        Returns:
            The stored item

        Raises:
            PersistenceError: any failure other than the create conflict
        """
        timestamp = utc_now()
        record = FileRecord(
            pk=f"ORDER#{order_id}",
            sk=f"FILE#{file_id}",
            gsi1pk=f"USER#{user_id}",
            gsi1sk=f"FILE#{file_id}",
            file_id=file_id,
            order_id=order_id,
            user_id=user_id,
            original_key=original_key,
            original_name=result.original_name,
            processed_url=result.processed_url,
            thumbnail_url=result.thumbnail_url,
            metadata=result.metadata.model_dump(mode="json", exclude_none=True),
            status=result.status,
            processed_at=timestamp,
            created_at=timestamp,
            updated_at=timestamp,
        )
        item = record.model_dump(mode="json")

        try:
            await self.table.put_if_absent(item)
            logger.info(f"File record saved: {file_id} (order {order_id}, user {user_id})")
            return item
        except ConditionalCheckFailedError:
            logger.warning(f"File record {file_id} already exists, updating instead")

        return await self._update_existing(record.pk, record.sk, item)

    async def _update_existing(self, pk: str, sk: str, item: Dict[str, Any]) -> Dict[str, Any]:
        for attempt in range(1, MAX_UPDATE_ATTEMPTS + 1):
            current = await self.table.get(pk, sk)
            if current is None:
                raise PersistenceError(f"Record {pk}/{sk} disappeared during update")

            version = int(current.get("version", 1))
            fields = {
                "status": item["status"],
                "processed_url": item["processed_url"],
                "thumbnail_url": item["thumbnail_url"],
                "metadata": item["metadata"],
                "updated_at": item["updated_at"],
                "version": version + 1,
            }
            try:
                updated = await self.table.update_if_version(pk, sk, fields, version)
                logger.info(f"File record {sk} updated to version {version + 1}")
                return updated
            except ConditionalCheckFailedError:
                logger.warning(f"Concurrent update on {pk}/{sk} (attempt {attempt}/{MAX_UPDATE_ATTEMPTS})")

        raise PersistenceError(f"Could not update {pk}/{sk} after {MAX_UPDATE_ATTEMPTS} attempts")

    async def record_error(
        self, order_id: str, user_id: str, filename: str, error_message: str
    ) -> Optional[Dict[str, Any]]:
        """
        Persist a failed attempt. Never raises: a failure here must not mask
        the original processing error.

        Returns:
            The stored item, or None if it could not be written
        """
        error_id = generate_file_id()
        record = ErrorRecord(
            pk=f"ORDER#{order_id}",
            sk=f"ERROR#{error_id}",
            gsi1pk=f"USER#{user_id}",
            gsi1sk=f"ERROR#{error_id}",
            error_id=error_id,
            order_id=order_id,
            user_id=user_id,
            filename=filename,
            error_message=error_message,
            created_at=utc_now(),
        )
        item = record.model_dump(mode="json")

        try:
            await self.table.put(item)
            logger.info(f"Error record {error_id} saved for {filename} (order {order_id})")
            return item
        except Exception as e:
            logger.error(f"Failed to save error record for {filename} (original error: {error_message}): {e}")
            return None

    async def list_order_records(self, order_id: str) -> List[Dict[str, Any]]:
        """File and error records for an order."""
        return await self.table.query(f"ORDER#{order_id}")

    async def list_user_records(self, user_id: str) -> List[Dict[str, Any]]:
        """File and error records for a user, via the secondary index."""
        return await self.table.query_index(f"USER#{user_id}")
