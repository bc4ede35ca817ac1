"""
Data models for the file processing pipeline.
"""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List


class ProcessingStatus(str, Enum):
    PROCESSED = "processed"
    FAILED = "failed"


class FileCategory(str, Enum):
    """Closed set of content variants the processor handles."""
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"


class NotificationType(str, Enum):
    FILE_PROCESSED = "FILE_PROCESSED"
    FILE_PROCESSING_ERROR = "FILE_PROCESSING_ERROR"


class StorageKey(BaseModel):
    """Semantic identifiers parsed from an upload key."""
    user_id: str
    order_id: str
    filename: str


class PathValidationResult(BaseModel):
    is_valid: bool
    reason: Optional[str] = None
    key: Optional[StorageKey] = None


class FileMetadata(BaseModel):
    """Object metadata as reported by storage, not by the uploader."""
    size: int
    content_type: str


class ScanResult(BaseModel):
    clean: bool
    threat: Optional[str] = None


class Dimensions(BaseModel):
    width: int
    height: int


class ResultMetadata(BaseModel):
    size: int
    type: str
    dimensions: Optional[Dimensions] = None
    duration: Optional[float] = None


class ProcessingResult(BaseModel):
    file_id: str
    original_name: str
    processed_url: str = ""
    thumbnail_url: Optional[str] = None
    metadata: ResultMetadata
    status: ProcessingStatus
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == ProcessingStatus.FAILED


class FileRecord(BaseModel):
    """Durable record of a successfully processed file."""
    pk: str
    sk: str
    gsi1pk: str
    gsi1sk: str
    file_id: str
    order_id: str
    user_id: str
    original_key: Optional[str] = None
    original_name: str
    processed_url: str
    thumbnail_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    status: ProcessingStatus
    processed_at: str
    created_at: str
    updated_at: str
    type: str = "file"
    version: int = 1


class ErrorRecord(BaseModel):
    """Durable record of a failed processing attempt."""
    pk: str
    sk: str
    gsi1pk: str
    gsi1sk: str
    error_id: str
    order_id: str
    user_id: str
    filename: str
    error_message: str
    error_type: str = "FILE_PROCESSING_ERROR"
    status: str = "failed"
    created_at: str
    type: str = "error"


class NotificationMessage(BaseModel):
    user_id: str = Field(serialization_alias="userId")
    type: NotificationType
    title: str
    body: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str


class SystemAlert(BaseModel):
    service: str = "file-processing"
    error: str
    stack: Optional[str] = None
    s3_key: str = Field(serialization_alias="s3Key")
    timestamp: str
    severity: str = "ERROR"


class DeliveryRecord(BaseModel):
    """One object-created notification from the trigger source."""
    bucket: str
    key: str


class FileOutcome(BaseModel):
    key: str
    state: str  # processed | failed | rejected
    result: Optional[ProcessingResult] = None
    error: Optional[str] = None


class BatchSummary(BaseModel):
    received: int = 0
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    outcomes: List[FileOutcome] = Field(default_factory=list)
