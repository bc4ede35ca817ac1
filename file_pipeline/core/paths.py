"""
Upload key parsing and the naming convention for derived artifacts.

Uploads live at ``uploads/{userId}/{orderId}/{filename}``; processed artifacts
mirror them under ``processed/``.
"""

import re
from typing import Optional
from urllib.parse import unquote_plus

from file_pipeline.core.models import PathValidationResult, StorageKey

UPLOAD_PREFIX = "uploads"
PROCESSED_PREFIX = "processed"

UUID_PATTERN = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)
DISALLOWED_FILENAME_CHARS = re.compile(r'[<>:"|?*\x00-\x1f]')


def decode_event_key(raw_key: str) -> str:
    """Decode a URL-encoded object key from a delivery record (``+`` is a space)."""
    return unquote_plus(raw_key)


def validate_file_path(key: str, upload_prefix: str = UPLOAD_PREFIX) -> PathValidationResult:
    """
    Parse and validate an upload key. Never raises.

    Args:
        key: Decoded object key
        upload_prefix: Expected first path segment

    Returns:
        PathValidationResult with the parsed StorageKey when valid
    """
    parts = key.split("/")

    if len(parts) < 4:
        return PathValidationResult(is_valid=False, reason="Invalid path structure - too few parts")

    if parts[0] != upload_prefix:
        return PathValidationResult(is_valid=False, reason=f"Invalid path - must start with {upload_prefix}/")

    user_id, order_id = parts[1], parts[2]
    # Filenames may themselves contain "/"
    filename = "/".join(parts[3:])

    if not UUID_PATTERN.fullmatch(user_id):
        return PathValidationResult(is_valid=False, reason="Invalid userId format")

    if not UUID_PATTERN.fullmatch(order_id):
        return PathValidationResult(is_valid=False, reason="Invalid orderId format")

    if not filename:
        return PathValidationResult(is_valid=False, reason="Missing filename")

    if DISALLOWED_FILENAME_CHARS.search(filename):
        return PathValidationResult(is_valid=False, reason="Filename contains dangerous characters")

    return PathValidationResult(
        is_valid=True,
        key=StorageKey(user_id=user_id, order_id=order_id, filename=filename),
    )


def extract_path_info(key: str, upload_prefix: str = UPLOAD_PREFIX) -> Optional[StorageKey]:
    """Best-effort identifiers for error reporting; None when the key is unusable."""
    validation = validate_file_path(key, upload_prefix)
    return validation.key if validation.is_valid else None


def processed_key_for(key: str, upload_prefix: str = UPLOAD_PREFIX, processed_prefix: str = PROCESSED_PREFIX) -> str:
    """Map an upload key to its processed location."""
    if key.startswith(upload_prefix + "/"):
        return processed_prefix + key[len(upload_prefix):]
    return key.replace(upload_prefix + "/", processed_prefix + "/", 1)


def _split_extension(key: str):
    head, _, last = key.rpartition("/")
    stem, dot, ext = last.rpartition(".")
    if not dot or not stem:
        return key, ""
    prefix = f"{head}/" if head else ""
    return prefix + stem, "." + ext


def image_thumbnail_key(processed_key: str) -> str:
    """``photo.jpg`` -> ``photo_thumb.jpg``."""
    stem, ext = _split_extension(processed_key)
    return f"{stem}_thumb{ext}"


def video_thumbnail_key(processed_key: str) -> str:
    """``clip.mp4`` -> ``clip_thumb.jpg``."""
    stem, _ = _split_extension(processed_key)
    return f"{stem}_thumb.jpg"
