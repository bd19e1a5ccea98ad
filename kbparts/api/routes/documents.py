import logging
from typing import List
from fastapi import APIRouter, Depends, Request, HTTPException

from kbparts.core.errors import RecordNotFoundError
from kbparts.core.pipeline.ingestion import IngestionPipeline
from kbparts.models.document import DocumentGroup, DocumentRecord
from kbparts.models.upload import UploadSummary

router = APIRouter()
logger = logging.getLogger(__name__)

def get_ingestion_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.ingestion_pipeline

@router.get("/documents", response_model=List[DocumentGroup], summary="List logical documents with their parts regrouped")
def list_documents(pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)):
    try:
        return pipeline.list_groups()
    except Exception:
        logger.exception("Failed to list documents.")
        raise HTTPException(status_code=500, detail="Could not retrieve documents from storage.")

@router.get("/documents/records", response_model=List[DocumentRecord], summary="List stored part records as-is")
def list_records(pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)):
    try:
        return pipeline.document_store.list_records()
    except Exception:
        logger.exception("Failed to list document records.")
        raise HTTPException(status_code=500, detail="Could not retrieve documents from storage.")

@router.delete("/documents/{doc_id}", summary="Delete one stored part and its blob")
def delete_document(doc_id: str, pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)):
    logger.info(f"Deleting document {doc_id}")
    try:
        pipeline.delete_document(doc_id)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail=f"Document {doc_id} not found.")
    except Exception:
        logger.exception(f"Deletion failed for {doc_id}.")
        raise HTTPException(status_code=500, detail=f"Deletion failure for {doc_id}. Logs captured.")
    return {"doc_id": doc_id, "success": True}

@router.post("/documents/groups/{group_key}/retry", response_model=UploadSummary,
             summary="Re-trigger processing for the failed, pending and stuck parts of a document")
async def retry_group(group_key: str, pipeline: IngestionPipeline = Depends(get_ingestion_pipeline)):
    try:
        return await pipeline.retry_group(group_key)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail=f"Document group '{group_key}' not found.")
