from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field

class DocumentStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    processed = "processed"
    failed = "failed"
    error = "error"

FAILED_STATUSES = {DocumentStatus.failed, DocumentStatus.error}

class DocumentRecord(BaseModel):
    id: str
    name: str                        # may carry "_parteNdeM.pdf"
    status: DocumentStatus = DocumentStatus.pending
    chunk_count: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime
    file_path: str = ""              # storage key: "<epoch-ms>-<name>"
    file_size: int | None = None
    description: str | None = None

class DocumentGroup(BaseModel):
    """A logical document rebuilt from one or more stored parts. Never persisted."""
    group_key: str
    base_name: str
    is_multi_part: bool
    total_parts: int
    parts: list[DocumentRecord]      # head first, then ascending part number
    processed_count: int
    failed_count: int
    stuck_count: int
    total_chunks: int

class ProcessingCallback(BaseModel):
    document_id: str
    status: DocumentStatus = DocumentStatus.processed
    chunk_count: int | None = None
    chunks_created: int | None = None    # preferred over chunk_count when sent
    description: str | None = None
    error_message: str | None = None
