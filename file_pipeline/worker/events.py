"""
Normalization of trigger payloads into delivery records.
"""

import logging
from typing import Any, Dict, List

from file_pipeline.core.models import DeliveryRecord
from file_pipeline.core.paths import decode_event_key

logger = logging.getLogger(__name__)


def parse_delivery_records(payload: Dict[str, Any]) -> List[DeliveryRecord]:
    """
    Accepts either an object-created record batch
    (``{"Records": [{"s3": {"bucket": {"name"}, "object": {"key"}}}]}``, URL-encoded keys)
    or a Supabase storage webhook (``{"type": "INSERT", "table": "objects", "record": {...}}``).

    Raises:
        ValueError: payload matches neither shape
    """
    if "Records" in payload:
        records = []
        for entry in payload["Records"] or []:
            s3 = entry.get("s3") or {}
            bucket = (s3.get("bucket") or {}).get("name")
            key = (s3.get("object") or {}).get("key")
            if not bucket or not key:
                logger.warning(f"Skipping malformed delivery record: {entry}")
                continue
            records.append(DeliveryRecord(bucket=bucket, key=decode_event_key(key)))
        return records

    if payload.get("table") == "objects" and isinstance(payload.get("record"), dict):
        if payload.get("type") != "INSERT":
            logger.debug(f"Ignoring storage webhook of type {payload.get('type')}")
            return []
        record = payload["record"]
        if not record.get("bucket_id") or not record.get("name"):
            raise ValueError("Storage webhook record is missing bucket_id or name")
        return [DeliveryRecord(bucket=record["bucket_id"], key=record["name"])]

    raise ValueError("Unrecognized storage event payload")
