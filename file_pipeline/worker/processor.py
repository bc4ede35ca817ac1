"""
Processing orchestrator for uploaded files.
Runs each delivered object through validation, content processing,
persistence and notification, isolating failures per file.
"""

import logging
from typing import Iterable, Optional

from file_pipeline.core.config import Config, ProcessingConfig
from file_pipeline.core.errors import FileValidationError, PersistenceError
from file_pipeline.core.models import BatchSummary, DeliveryRecord, FileOutcome, StorageKey
from file_pipeline.core.paths import extract_path_info, validate_file_path
from file_pipeline.service.notifications import AlertPublisher, NotificationDispatcher, TopicPublisher
from file_pipeline.worker.database import FileRecordStore, SupabaseMetadataTable
from file_pipeline.worker.processors import ContentProcessor
from file_pipeline.worker.storage import ObjectStorage, SupabaseObjectStorage
from file_pipeline.worker.validation import MetadataValidator

logger = logging.getLogger(__name__)


class IngestionDispatcher:
    """Orchestrates the processing pipeline for a batch of uploaded files."""

    def __init__(
        self,
        storage: ObjectStorage,
        store: FileRecordStore,
        notifier: NotificationDispatcher,
        alerts: AlertPublisher,
        processing_config: ProcessingConfig,
    ):
        """
        Initialize the dispatcher.

        Args:
            storage: Object storage holding uploads and processed artifacts
            store: Durable record store
            notifier: User notification dispatcher
            alerts: System alert publisher
            processing_config: Immutable processing policy
        """
        self.config = processing_config
        self.store = store
        self.notifier = notifier
        self.alerts = alerts
        self.validator = MetadataValidator(storage, processing_config)
        self.content = ContentProcessor(storage, processing_config)

    async def process_batch(self, records: Iterable[DeliveryRecord]) -> BatchSummary:
        """
        Process every record in the batch.

        Each record is handled independently. If any record hit an unexpected
        error, the first such error is re-raised once the whole batch has been
        attempted so the trigger source redelivers.

        Returns:
            BatchSummary with per-file outcomes
        """
        records = list(records)
        logger.info(f"Processing uploaded files: {len(records)} records")

        summary = BatchSummary(received=len(records))
        first_error: Optional[BaseException] = None

        for record in records:
            try:
                outcome = await self.process_record(record)
            except Exception as e:
                summary.failed += 1
                summary.outcomes.append(FileOutcome(key=record.key, state="failed", error=str(e)))
                if first_error is None:
                    first_error = e
                continue

            summary.outcomes.append(outcome)
            if outcome.state == "processed":
                summary.processed += 1
            elif outcome.state == "failed":
                summary.failed += 1
            else:
                summary.skipped += 1

        logger.info(
            f"Batch complete - processed: {summary.processed}, failed: {summary.failed}, skipped: {summary.skipped}"
        )

        if first_error is not None:
            raise first_error
        return summary

    async def process_record(self, record: DeliveryRecord) -> FileOutcome:
        """
        Process a single delivered object.

        Validation and processing failures are recorded and notified, not raised.
        Unexpected errors are recorded and alerted on a best-effort basis, then re-raised.
        """
        bucket, key = record.bucket, record.key
        logger.info(f"Processing file {bucket}/{key}")

        try:
            path = validate_file_path(key, self.config.upload_prefix)
            if not path.is_valid:
                logger.warning(f"Invalid file path, skipping {key}: {path.reason}")
                return FileOutcome(key=key, state="rejected", error=path.reason)

            storage_key = path.key

            try:
                metadata = await self.validator.validate(bucket, key)
            except FileValidationError as e:
                logger.error(f"File validation failed for {key}: {e}")
                await self._handle_failure(storage_key, str(e))
                return FileOutcome(key=key, state="failed", error=str(e))

            result = await self.content.process(bucket, key, storage_key.filename, metadata)
            if result.failed:
                logger.error(f"File processing failed for {key}: {result.error}")
                await self._handle_failure(storage_key, result.error)
                return FileOutcome(key=key, state="failed", result=result, error=result.error)

            try:
                await self.store.record_success(
                    storage_key.order_id, storage_key.user_id, result.file_id, result, original_key=key
                )
            except PersistenceError as e:
                # The artifact exists; the user still gets the success notification.
                logger.error(f"Failed to save file record {result.file_id} for {key}: {e}")

            await self.notifier.notify_success(storage_key.user_id, storage_key.order_id, result)

            logger.info(
                f"✅ File processed successfully: {key} -> {result.file_id} "
                f"({metadata.size} bytes, {metadata.content_type})"
            )
            return FileOutcome(key=key, state="processed", result=result)

        except Exception as e:
            logger.error(f"Unexpected error processing file {key}: {e}", exc_info=True)

            path_info = extract_path_info(key, self.config.upload_prefix)
            if path_info:
                await self._handle_failure(path_info, str(e))

            await self.alerts.send_alert(key, e)
            raise

    async def close(self):
        """Release the notification and alert HTTP clients."""
        await self.notifier.close()
        await self.alerts.close()

    async def _handle_failure(self, storage_key: StorageKey, error_message: str):
        """Record the failure and tell the user. Neither step raises."""
        await self.store.record_error(
            storage_key.order_id, storage_key.user_id, storage_key.filename, error_message
        )
        await self.notifier.notify_error(
            storage_key.user_id, storage_key.order_id, storage_key.filename, error_message
        )


def build_dispatcher(app_config: Config) -> IngestionDispatcher:
    """Wire the pipeline against Supabase and the configured topics."""
    client = app_config._get_supabase_client()
    processing_config = app_config.get_processing_config()

    storage = SupabaseObjectStorage(client, app_config.public_storage_base_url)
    store = FileRecordStore(SupabaseMetadataTable(client, app_config.files_table_name))

    notification_publisher = None
    if app_config.notification_topic_url:
        notification_publisher = TopicPublisher(app_config.notification_topic_url, app_config.topic_timeout)

    alert_publisher = None
    if app_config.alert_topic_url:
        alert_publisher = TopicPublisher(app_config.alert_topic_url, app_config.topic_timeout)

    logger.info(
        f"✅ File pipeline initialized (table: {app_config.files_table_name}, "
        f"notifications: {'on' if notification_publisher else 'off'}, alerts: {'on' if alert_publisher else 'off'})"
    )

    return IngestionDispatcher(
        storage=storage,
        store=store,
        notifier=NotificationDispatcher(notification_publisher),
        alerts=AlertPublisher(alert_publisher),
        processing_config=processing_config,
    )
