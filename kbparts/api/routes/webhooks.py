import logging
import secrets
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from kbparts.config.settings import settings
from kbparts.core.errors import RecordNotFoundError
from kbparts.core.pipeline.ingestion import IngestionPipeline
from kbparts.models.document import ProcessingCallback

router = APIRouter()
logger = logging.getLogger(__name__)

def get_ingestion_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.ingestion_pipeline

@router.post("/webhooks/processing", summary="Status callback from the processing service")
def processing_callback(
    callback: ProcessingCallback,
    x_sync_secret: Optional[str] = Header(None),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)
):
    if not settings.sync_secret or not x_sync_secret or not secrets.compare_digest(x_sync_secret, settings.sync_secret):
        logger.error("Unauthorized processing callback")
        raise HTTPException(status_code=401, detail="Unauthorized")

    logger.info(f"Processing callback for {callback.document_id}: status={callback.status.value}")
    try:
        record = pipeline.apply_callback(callback)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail=f"Document {callback.document_id} not found.")
    return {"success": True, "document_id": record.id, "status": record.status}
