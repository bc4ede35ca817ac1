"""
Metadata validation for uploaded objects.
"""

import logging

from file_pipeline.core.config import ProcessingConfig
from file_pipeline.core.errors import (
    EmptyFileError,
    FileTooLargeError,
    MetadataFetchError,
    UnsupportedTypeError,
)
from file_pipeline.core.models import FileMetadata
from file_pipeline.worker.storage import ObjectStorage

logger = logging.getLogger(__name__)


class MetadataValidator:
    """Checks stored object size and content type against the upload policy."""

    def __init__(self, storage: ObjectStorage, processing_config: ProcessingConfig):
        self.storage = storage
        self.config = processing_config

    async def validate(self, bucket: str, key: str) -> FileMetadata:
        """
        Fetch object metadata (no body download) and validate it.

        Args:
            bucket: Storage bucket
            key: Object key

        Returns:
            Validated FileMetadata

        Raises:
            MetadataFetchError: storage could not report the object
            FileTooLargeError, EmptyFileError, UnsupportedTypeError: policy violations
        """
        try:
            metadata = await self.storage.head_object(bucket, key)
        except Exception as e:
            raise MetadataFetchError(e) from e

        if metadata.size > self.config.max_file_size:
            raise FileTooLargeError(metadata.size, self.config.max_file_size)

        if metadata.size <= 0:
            raise EmptyFileError()

        if metadata.content_type not in self.config.allowed_types:
            raise UnsupportedTypeError(metadata.content_type)

        logger.debug(f"Metadata valid for {key}: {metadata.size} bytes, {metadata.content_type}")
        return metadata
