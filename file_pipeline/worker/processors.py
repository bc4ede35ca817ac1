"""
Content processors for uploaded files.
One processor per file category; the category is chosen from the validated
content type before dispatch.
"""

import io
import logging
from functools import lru_cache
from typing import Dict

from PIL import Image, ImageOps, UnidentifiedImageError

from file_pipeline.core.config import ProcessingConfig
from file_pipeline.core.errors import DimensionsUnknownError, ScanRejectedError, UnsupportedTypeError
from file_pipeline.core.ids import generate_file_id, utc_now
from file_pipeline.core.models import (
    Dimensions,
    FileCategory,
    FileMetadata,
    ProcessingResult,
    ProcessingStatus,
    ResultMetadata,
)
from file_pipeline.core.paths import image_thumbnail_key, processed_key_for, video_thumbnail_key
from file_pipeline.worker.cleanup import ArtifactCleaner
from file_pipeline.worker.scanner import ContentScanner
from file_pipeline.worker.storage import ObjectStorage

logger = logging.getLogger(__name__)

PIL_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
    "image/gif": "GIF",
}


def classify(content_type: str, processing_config: ProcessingConfig) -> FileCategory:
    """
    Map a validated content type to its processing category.

    Raises:
        UnsupportedTypeError: content type is in none of the allow-lists
    """
    if content_type in processing_config.allowed_image_types:
        return FileCategory.IMAGE
    if content_type in processing_config.allowed_video_types:
        return FileCategory.VIDEO
    if content_type in processing_config.allowed_document_types:
        return FileCategory.DOCUMENT
    raise UnsupportedTypeError(content_type)


@lru_cache(maxsize=1)
def placeholder_thumbnail() -> bytes:
    """A 1x1 JPEG used as the thumbnail for videos."""
    buffer = io.BytesIO()
    Image.new("RGB", (1, 1), (0, 0, 0)).save(buffer, format="JPEG")
    return buffer.getvalue()


class BaseProcessor:
    """Shared plumbing for the category processors."""

    label = "File"

    def __init__(self, storage: ObjectStorage, processing_config: ProcessingConfig):
        self.storage = storage
        self.config = processing_config

    def _processed_key(self, key: str) -> str:
        return processed_key_for(key, self.config.upload_prefix, self.config.processed_prefix)

    def _failed(self, file_id: str, filename: str, metadata: FileMetadata, error: Exception) -> ProcessingResult:
        return ProcessingResult(
            file_id=file_id,
            original_name=filename,
            processed_url="",
            metadata=ResultMetadata(size=metadata.size, type=metadata.content_type),
            status=ProcessingStatus.FAILED,
            error=f"{self.label} processing failed: {error}",
        )

    async def process(self, bucket: str, key: str, filename: str, metadata: FileMetadata) -> ProcessingResult:
        raise NotImplementedError


class ImageProcessor(BaseProcessor):
    """Re-encodes images, writes a cover-fit thumbnail and removes the upload."""

    label = "Image"

    def __init__(self, storage: ObjectStorage, processing_config: ProcessingConfig, cleaner: ArtifactCleaner):
        super().__init__(storage, processing_config)
        self.cleaner = cleaner

    def _encode(self, image: Image.Image, content_type: str, size: int):
        """
        Re-encode the image according to policy.

        Returns:
            Tuple of (encoded bytes, final content type)
        """
        buffer = io.BytesIO()

        if content_type == "image/png" and size > self.config.png_webp_threshold:
            image.save(buffer, format="WEBP", quality=self.config.image_quality)
            return buffer.getvalue(), "image/webp"

        if content_type == "image/jpeg":
            if image.mode not in ("RGB", "L", "CMYK"):
                image = image.convert("RGB")
            image.save(buffer, format="JPEG", quality=self.config.image_quality, progressive=True)
            return buffer.getvalue(), content_type

        image_format = PIL_FORMATS.get(content_type) or image.format
        save_kwargs = {}
        if getattr(image, "is_animated", False):
            save_kwargs["save_all"] = True
        image.save(buffer, format=image_format, **save_kwargs)
        return buffer.getvalue(), content_type

    def _thumbnail(self, image: Image.Image) -> bytes:
        size = (self.config.thumbnail_width, self.config.thumbnail_height)
        thumb = ImageOps.fit(image, size, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))
        if thumb.mode != "RGB":
            thumb = thumb.convert("RGB")
        buffer = io.BytesIO()
        thumb.save(buffer, format="JPEG", quality=self.config.thumbnail_quality)
        return buffer.getvalue()

    async def process(self, bucket, key, filename, metadata):
        file_id = generate_file_id()
        processed_key = self._processed_key(key)
        thumbnail_key = image_thumbnail_key(processed_key)

        try:
            body = await self.storage.get_object(bucket, key)

            try:
                image = Image.open(io.BytesIO(body))
                image.load()
            except (UnidentifiedImageError, OSError) as e:
                raise DimensionsUnknownError() from e

            width, height = image.size
            if not width or not height:
                raise DimensionsUnknownError()

            # Saving every frame leaves the image on its last one
            thumbnail = self._thumbnail(image)
            processed, final_type = self._encode(image, metadata.content_type, metadata.size)

            await self.storage.put_object(
                bucket,
                processed_key,
                processed,
                final_type,
                metadata={
                    "processed-at": utc_now(),
                    "file-id": file_id,
                    "original-width": str(width),
                    "original-height": str(height),
                },
                cache_control=self.config.cache_control,
            )
            await self.storage.put_object(
                bucket,
                thumbnail_key,
                thumbnail,
                "image/jpeg",
                metadata={"processed-at": utc_now(), "file-id": file_id, "thumbnail": "true"},
                cache_control=self.config.cache_control,
            )

            await self.storage.delete_object(bucket, key)

            logger.info(
                f"Image processed successfully: {file_id} ({metadata.size} -> {len(processed)} bytes, "
                f"thumbnail {len(thumbnail)} bytes, {width}x{height})"
            )

            return ProcessingResult(
                file_id=file_id,
                original_name=filename,
                processed_url=self.storage.public_url(bucket, processed_key),
                thumbnail_url=self.storage.public_url(bucket, thumbnail_key),
                metadata=ResultMetadata(
                    size=len(processed),
                    type=final_type,
                    dimensions=Dimensions(width=width, height=height),
                ),
                status=ProcessingStatus.PROCESSED,
            )

        except Exception as e:
            logger.error(f"Image processing failed for {file_id}: {e}")
            await self.cleaner.remove_partial(bucket, [processed_key, thumbnail_key], file_id)
            return self._failed(file_id, filename, metadata, e)


class VideoProcessor(BaseProcessor):
    """Moves videos to the processed location with a placeholder thumbnail. No transcoding."""

    label = "Video"

    async def process(self, bucket, key, filename, metadata):
        file_id = generate_file_id()
        processed_key = self._processed_key(key)
        thumbnail_key = video_thumbnail_key(processed_key)

        try:
            await self.storage.copy_object(
                bucket,
                key,
                processed_key,
                metadata.content_type,
                metadata={"processed-at": utc_now(), "file-id": file_id},
                cache_control=self.config.cache_control,
            )
            await self.storage.put_object(
                bucket,
                thumbnail_key,
                placeholder_thumbnail(),
                "image/jpeg",
                metadata={
                    "processed-at": utc_now(),
                    "file-id": file_id,
                    "thumbnail": "true",
                    "placeholder": "true",
                },
                cache_control=self.config.cache_control,
            )
            await self.storage.delete_object(bucket, key)

            logger.info(f"Video processed successfully: {file_id} ({metadata.size} bytes)")

            return ProcessingResult(
                file_id=file_id,
                original_name=filename,
                processed_url=self.storage.public_url(bucket, processed_key),
                thumbnail_url=self.storage.public_url(bucket, thumbnail_key),
                metadata=ResultMetadata(size=metadata.size, type=metadata.content_type),
                status=ProcessingStatus.PROCESSED,
            )

        except Exception as e:
            # No partial-artifact cleanup here, unlike images.
            logger.error(f"Video processing failed for {file_id}: {e}")
            return self._failed(file_id, filename, metadata, e)


class DocumentProcessor(BaseProcessor):
    """Scans documents and moves clean ones to the processed location."""

    label = "Document"

    def __init__(self, storage: ObjectStorage, processing_config: ProcessingConfig, scanner: ContentScanner):
        super().__init__(storage, processing_config)
        self.scanner = scanner

    async def process(self, bucket, key, filename, metadata):
        file_id = generate_file_id()
        processed_key = self._processed_key(key)

        try:
            scan = await self.scanner.scan(bucket, key)
            if not scan.clean:
                raise ScanRejectedError(scan.threat)

            scanned_at = utc_now()
            await self.storage.copy_object(
                bucket,
                key,
                processed_key,
                metadata.content_type,
                metadata={
                    "processed-at": scanned_at,
                    "file-id": file_id,
                    "virus-scan": "clean",
                    "scan-timestamp": scanned_at,
                },
                cache_control=self.config.cache_control,
            )
            await self.storage.delete_object(bucket, key)

            logger.info(f"Document processed successfully: {file_id} ({metadata.size} bytes, {metadata.content_type})")

            return ProcessingResult(
                file_id=file_id,
                original_name=filename,
                processed_url=self.storage.public_url(bucket, processed_key),
                metadata=ResultMetadata(size=metadata.size, type=metadata.content_type),
                status=ProcessingStatus.PROCESSED,
            )

        except Exception as e:
            logger.error(f"Document processing failed for {file_id}: {e}")
            return self._failed(file_id, filename, metadata, e)


class ContentProcessor:
    """Selects the processor for a file's category and runs it."""

    def __init__(self, storage: ObjectStorage, processing_config: ProcessingConfig):
        self.config = processing_config
        cleaner = ArtifactCleaner(storage)
        scanner = ContentScanner(storage, processing_config.scan_window)
        self.processors: Dict[FileCategory, BaseProcessor] = {
            FileCategory.IMAGE: ImageProcessor(storage, processing_config, cleaner),
            FileCategory.VIDEO: VideoProcessor(storage, processing_config),
            FileCategory.DOCUMENT: DocumentProcessor(storage, processing_config, scanner),
        }

    async def process(self, bucket: str, key: str, filename: str, metadata: FileMetadata) -> ProcessingResult:
        try:
            category = classify(metadata.content_type, self.config)
            return await self.processors[category].process(bucket, key, filename, metadata)
        except Exception as e:
            return ProcessingResult(
                file_id=generate_file_id(),
                original_name=filename,
                processed_url="",
                metadata=ResultMetadata(size=metadata.size, type=metadata.content_type),
                status=ProcessingStatus.FAILED,
                error=str(e),
            )
