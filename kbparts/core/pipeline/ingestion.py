import asyncio
import functools
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from kbparts.config.settings import settings
from kbparts.core.errors import (
    PartSubmissionError, ProcessingTriggerError, RecordNotFoundError, StorageLimitExceededError
)
from kbparts.core.group.grouper import DocumentGrouper
from kbparts.core.process.processing_client import ProcessingClient
from kbparts.core.split.pdf_splitter import PDFSplitter
from kbparts.core.upload.orchestrator import PauseToken, UploadBatch, UploadOrchestrator
from kbparts.models.document import DocumentGroup, DocumentRecord, DocumentStatus, ProcessingCallback
from kbparts.models.upload import BatchProgress, PartPayload, SplitResult, UploadSummary
from kbparts.storage.base import DocumentStore

logger = logging.getLogger(__name__)

class IngestionPipeline:
    """
    Orchestrates the multi-part upload flow:
    split -> submit parts (store + processing trigger) with bounded concurrency
    and the read side: record list -> grouped logical documents.
    """

    def __init__(self,
                 document_store: DocumentStore,
                 processing_client: ProcessingClient,
                 splitter: Optional[PDFSplitter] = None,
                 orchestrator: Optional[UploadOrchestrator] = None,
                 grouper: Optional[DocumentGrouper] = None,
                 storage_limit_bytes: Optional[int] = None):
        self.document_store = document_store
        self.processing_client = processing_client
        self.splitter = splitter or PDFSplitter()
        self.orchestrator = orchestrator or UploadOrchestrator()
        self.grouper = grouper or DocumentGrouper()
        self.storage_limit_bytes = storage_limit_bytes or settings.storage.storage_limit_bytes

    def prepare(self, data: bytes, filename: str) -> SplitResult:
        """Quota check, then split. Raises before anything is stored."""
        used = self.document_store.total_bytes()
        if used + len(data) > self.storage_limit_bytes:
            raise StorageLimitExceededError(
                f"'{filename}' needs {len(data)} bytes; {self.storage_limit_bytes - used} remaining"
            )
        split = self.splitter.split(data, filename)
        if split.was_split:
            logger.info(f"'{filename}' split into {len(split.parts)} parts ({split.total_pages} pages total)")
        return split

    def start_parts(self,
                    split: SplitResult,
                    description: Optional[str] = None,
                    progress_callback: Optional[Callable[[BatchProgress], None]] = None,
                    pause_token: Optional[PauseToken] = None) -> UploadBatch:
        """Schedules an already prepared split. Must be called from a running event loop."""
        submit = functools.partial(self.submit_part, description=description)
        return self.orchestrator.start(split.parts, submit, progress_callback, pause_token)

    async def start_upload(self,
                           data: bytes,
                           filename: str,
                           description: Optional[str] = None,
                           progress_callback: Optional[Callable[[BatchProgress], None]] = None,
                           pause_token: Optional[PauseToken] = None) -> Tuple[SplitResult, UploadBatch]:
        # Split in a worker thread; the loop also drives running batches
        split = await asyncio.to_thread(self.prepare, data, filename)
        batch = self.start_parts(split, description, progress_callback, pause_token)
        return split, batch

    async def upload(self,
                     data: bytes,
                     filename: str,
                     description: Optional[str] = None,
                     progress_callback: Optional[Callable[[BatchProgress], None]] = None) -> UploadSummary:
        _, batch = await self.start_upload(data, filename, description, progress_callback)
        return await batch.wait()

    async def submit_part(self, part: PartPayload, description: Optional[str] = None) -> DocumentRecord:
        """
        Stores one part and asks for it to be processed.
        A refused trigger leaves the part registered but marked failed, so it
        can be retried later without uploading it again.
        """
        try:
            record = await asyncio.to_thread(self.document_store.save_part, part.name, part.data, description)
        except Exception as e:
            raise PartSubmissionError(part.name, str(e)) from e
        return await self._start_processing(record)

    async def _start_processing(self, record: DocumentRecord, raise_on_failure: bool = False) -> DocumentRecord:
        if not self.processing_client.enabled:
            logger.warning(f"Processing disabled; '{record.name}' stays {record.status.value}")
            return record

        record = await asyncio.to_thread(
            self.document_store.update_record, record.id,
            status=DocumentStatus.processing, chunk_count=0
        )
        try:
            await self.processing_client.trigger(record, self.document_store.file_url(record))
        except ProcessingTriggerError as e:
            logger.error(f"Processing trigger failed for '{record.name}': {e}")
            record = await asyncio.to_thread(
                self.document_store.update_record, record.id,
                status=DocumentStatus.failed, description=f"Processing error: {e}"
            )
            if raise_on_failure:
                raise PartSubmissionError(record.name, str(e)) from e
        return record

    def list_groups(self, now: Optional[datetime] = None) -> List[DocumentGroup]:
        return self.grouper.group(self.document_store.list_records(), now=now)

    def find_group(self, group_key: str, now: Optional[datetime] = None) -> DocumentGroup:
        for group in self.list_groups(now=now):
            if group.group_key == group_key:
                return group
        raise RecordNotFoundError(group_key)

    async def retry_group(self,
                          group_key: str,
                          progress_callback: Optional[Callable[[BatchProgress], None]] = None) -> UploadSummary:
        """Re-triggers processing for the failed, pending and stuck parts of one group."""
        group = await asyncio.to_thread(self.find_group, group_key)
        parts = self.grouper.retryable_parts(group)
        logger.info(f"Retrying {len(parts)}/{group.total_parts} parts of '{group.base_name}'")
        retry = functools.partial(self._start_processing, raise_on_failure=True)
        return await self.orchestrator.run(parts, retry, progress_callback)

    def apply_callback(self, callback: ProcessingCallback) -> DocumentRecord:
        """Status report from the processing service."""
        changes = {"status": callback.status}

        chunk_count = callback.chunks_created if callback.chunks_created is not None else callback.chunk_count
        if chunk_count is not None:
            changes["chunk_count"] = chunk_count

        if callback.status == DocumentStatus.failed and callback.error_message:
            changes["description"] = f"Error: {callback.error_message}"
        elif callback.description:
            changes["description"] = callback.description

        record = self.document_store.update_record(callback.document_id, **changes)
        logger.info(f"Document {record.id} updated: status={record.status.value}, chunks={record.chunk_count}")
        return record

    def delete_document(self, doc_id: str) -> None:
        self.document_store.delete_record(doc_id)
