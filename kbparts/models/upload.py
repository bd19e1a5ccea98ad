from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field

class PartPayload(BaseModel):
    name: str
    data: bytes = Field(repr=False)
    page_range: str                  # "1-20", 1-indexed inclusive
    part_number: int = 1
    total_parts: int = 1

class SplitResult(BaseModel):
    parts: list[PartPayload]
    total_pages: int
    was_split: bool

class BatchProgress(BaseModel):
    total: int
    processed: int = 0
    failed: int = 0
    pending: int = 0                 # queued + in flight
    in_flight: int = 0
    paused: bool = False

class UploadSummary(BaseModel):
    total: int
    processed: int
    failed: int
    failed_parts: list[str] = []

class UploadJobStatus(str, Enum):
    queued = "queued"
    running = "running"
    paused = "paused"
    completed = "completed"
    completed_with_errors = "completed_with_errors"

class UploadJob(BaseModel):
    job_id: str
    filename: str
    total_pages: int
    was_split: bool
    status: UploadJobStatus
    progress: BatchProgress
    created_at: str
    completed_at: str | None = None
