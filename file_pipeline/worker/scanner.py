"""
Heuristic content scan for uploaded documents.

This is a pattern check over the head of the payload, not antivirus.
"""

import logging
import re

from file_pipeline.core.models import ScanResult
from file_pipeline.worker.storage import ObjectStorage

logger = logging.getLogger(__name__)

SUSPICIOUS_PATTERNS = [
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"exec\s*\(", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
]

THREAT_DESCRIPTION = "Suspicious script content detected"


def scan_bytes(content: bytes, window: int = 10000) -> ScanResult:
    """Scan the first ``window`` bytes of ``content`` for suspicious patterns."""
    text = content[:window].decode("utf-8", errors="replace")
    for pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(text):
            return ScanResult(clean=False, threat=THREAT_DESCRIPTION)
    return ScanResult(clean=True)


class ContentScanner:
    """Runs the heuristic scan against a stored object."""

    def __init__(self, storage: ObjectStorage, window: int = 10000):
        self.storage = storage
        self.window = window

    async def scan(self, bucket: str, key: str) -> ScanResult:
        """
        Scan a stored document. Fails open: if the object cannot be read the
        document is reported clean and a warning is logged.
        """
        try:
            content = await self.storage.get_object(bucket, key)
        except Exception as e:
            logger.warning(f"Virus scan failed for {bucket}/{key}, assuming clean: {e}")
            return ScanResult(clean=True)

        return scan_bytes(content, self.window)
