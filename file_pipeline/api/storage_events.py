from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from typing import Optional
import logging

from file_pipeline.core.config import config
from file_pipeline.core.models import DeliveryRecord, FileOutcome
from file_pipeline.worker.events import parse_delivery_records
from file_pipeline.worker.processor import IngestionDispatcher, build_dispatcher

router = APIRouter()
logger = logging.getLogger(__name__)

# Dispatcher will be initialized lazily
_dispatcher: Optional[IngestionDispatcher] = None


def get_dispatcher() -> IngestionDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = build_dispatcher(config)
    return _dispatcher


async def close_dispatcher():
    global _dispatcher
    if _dispatcher is not None:
        await _dispatcher.close()
        _dispatcher = None


class ProcessFileRequest(BaseModel):
    bucket: str
    key: str


@router.post("/storage/events")
async def handle_storage_events(request: Request, dispatcher: IngestionDispatcher = Depends(get_dispatcher)):
    """
    Process a batch of object-created notifications.

    Responds 500 when any file hit an unexpected error so the sender redelivers.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")

    try:
        records = parse_delivery_records(payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        summary = await dispatcher.process_batch(records)
    except Exception as e:
        logger.error(f"Storage event batch failed, requesting redelivery: {e}")
        raise HTTPException(status_code=500, detail=f"Error processing storage events: {str(e)}")

    return {
        "received": summary.received,
        "processed": summary.processed,
        "failed": summary.failed,
        "skipped": summary.skipped,
    }


@router.post("/files/process", response_model=FileOutcome)
async def process_file_manually(body: ProcessFileRequest, dispatcher: IngestionDispatcher = Depends(get_dispatcher)):
    """Manually run the pipeline for one stored object."""
    try:
        return await dispatcher.process_record(DeliveryRecord(bucket=body.bucket, key=body.key))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error processing file: {str(e)}")
