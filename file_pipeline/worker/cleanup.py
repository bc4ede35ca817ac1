"""
Compensation for partially written derived artifacts.
"""

import logging
from typing import Iterable, List

from file_pipeline.worker.storage import ObjectStorage

logger = logging.getLogger(__name__)


class ArtifactCleaner:
    """Best-effort removal of artifacts left behind by a failed processing run."""

    def __init__(self, storage: ObjectStorage):
        self.storage = storage

    async def remove_partial(self, bucket: str, keys: Iterable[str], file_id: str = "") -> List[str]:
        """
        Delete each key, logging and swallowing failures.

        Returns:
            Keys whose deletion failed
        """
        failed = []
        for key in keys:
            try:
                await self.storage.delete_object(bucket, key)
            except Exception as e:
                logger.warning(f"Failed to clean up partial upload {key} (file {file_id}): {e}")
                failed.append(key)
        return failed
