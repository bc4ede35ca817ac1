"""
Exception types for the file processing pipeline.
"""


class FilePipelineError(Exception):
    """Base class for pipeline errors."""


class FileValidationError(FilePipelineError):
    """The stored object does not satisfy the upload policy."""


class EmptyFileError(FileValidationError):
    def __init__(self):
        super().__init__("Empty file")


class FileTooLargeError(FileValidationError):
    def __init__(self, size: int, max_size: int):
        self.size = size
        self.max_size = max_size
        super().__init__(f"File too large: {size} bytes (max: {max_size} bytes)")


class UnsupportedTypeError(FileValidationError):
    def __init__(self, content_type: str):
        self.content_type = content_type
        super().__init__(f"Unsupported file type: {content_type}")


class MetadataFetchError(FileValidationError):
    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Failed to get file metadata: {cause}")


class ProcessingError(FilePipelineError):
    """A content processor could not transform the file."""


class DimensionsUnknownError(ProcessingError):
    def __init__(self):
        super().__init__("Could not determine image dimensions")


class ScanRejectedError(ProcessingError):
    def __init__(self, threat: str):
        self.threat = threat
        super().__init__(f"Virus scan failed: {threat}")


class StorageError(FilePipelineError):
    """Object storage backend failure."""


class PersistenceError(FilePipelineError):
    """Metadata store failure."""


class ConditionalCheckFailedError(PersistenceError):
    """A create-if-absent or compare-and-set write lost against existing data."""


class NotificationError(FilePipelineError):
    """Publishing to a topic failed."""
