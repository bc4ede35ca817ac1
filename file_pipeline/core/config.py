import os
from typing import Optional, Tuple
from supabase import create_client, Client
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict
import logging

load_dotenv()
logger = logging.getLogger(__name__)

MIB = 1024 * 1024

IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")
VIDEO_TYPES = ("video/mp4", "video/mpeg", "video/quicktime", "video/webm")
DOCUMENT_TYPES = (
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)


class ProcessingConfig(BaseModel):
    """Immutable processing policy handed to every pipeline component."""

    model_config = ConfigDict(frozen=True)

    max_file_size: int = 50 * MIB
    allowed_image_types: Tuple[str, ...] = IMAGE_TYPES
    allowed_video_types: Tuple[str, ...] = VIDEO_TYPES
    allowed_document_types: Tuple[str, ...] = DOCUMENT_TYPES
    thumbnail_width: int = 300
    thumbnail_height: int = 300
    png_webp_threshold: int = MIB
    image_quality: int = 85
    thumbnail_quality: int = 80
    scan_window: int = 10000
    cache_control: str = "max-age=31536000"
    upload_prefix: str = "uploads"
    processed_prefix: str = "processed"

    @property
    def allowed_types(self) -> Tuple[str, ...]:
        return self.allowed_image_types + self.allowed_video_types + self.allowed_document_types


class Config:
    """Configuration class for the file processing pipeline."""

    def __init__(self):
        # Supabase configuration (object storage + metadata table)
        self.supabase_url = os.getenv("SUPABASE_URL")
        self.supabase_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
        self.files_table_name = os.getenv("FILES_TABLE_NAME", "file_records")

        # Topics
        self.notification_topic_url = os.getenv("NOTIFICATION_TOPIC_URL") or None
        self.alert_topic_url = os.getenv("ALERT_TOPIC_URL") or None
        self.topic_timeout = float(os.getenv("TOPIC_TIMEOUT_SECONDS", "10"))

        # Processing policy
        self.max_file_size = int(os.getenv("MAX_FILE_SIZE_BYTES", str(50 * MIB)))
        self.thumbnail_width = int(os.getenv("THUMBNAIL_WIDTH", "300"))
        self.thumbnail_height = int(os.getenv("THUMBNAIL_HEIGHT", "300"))

        self.public_storage_base_url: Optional[str] = os.getenv("PUBLIC_STORAGE_BASE_URL") or None

    def _get_supabase_client(self) -> Client:
        """Get or create Supabase client."""
        return create_client(self.supabase_url, self.supabase_key)

    def get_processing_config(self) -> ProcessingConfig:
        """Get the immutable processing policy."""
        return ProcessingConfig(
            max_file_size=self.max_file_size,
            thumbnail_width=self.thumbnail_width,
            thumbnail_height=self.thumbnail_height,
        )


config = Config()
