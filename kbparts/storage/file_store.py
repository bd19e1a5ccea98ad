import os
import json
import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from kbparts.config.settings import settings
from kbparts.core.errors import RecordNotFoundError, StorageLimitExceededError
from kbparts.models.document import DocumentRecord
from kbparts.storage.base import DocumentStore

logger = logging.getLogger(__name__)

class LocalDocumentStore(DocumentStore):
    """
    Implements DocumentStore using the local disk.
    - Blobs live under uploads_path as "<epoch-ms>-<name>".
    - Records live in a single JSON index, rewritten atomically on every change.
    """

    def __init__(self,
                 records_path: Optional[str] = None,
                 uploads_path: Optional[str] = None,
                 storage_limit_bytes: Optional[int] = None):
        cfg = settings.storage
        self.records_path = records_path or cfg.records_path
        self.uploads_path = uploads_path or cfg.uploads_path
        self.storage_limit_bytes = storage_limit_bytes or cfg.storage_limit_bytes
        self.index_path = os.path.join(self.records_path, "records.json")
        os.makedirs(self.records_path, exist_ok=True)
        os.makedirs(self.uploads_path, exist_ok=True)
        # Sync submissions run in worker threads
        self._lock = threading.Lock()

    def save_part(self, name: str, data: bytes, description: Optional[str] = None) -> DocumentRecord:
        with self._lock:
            records = self._load()
            used = sum(r.file_size or 0 for r in records.values())
            if used + len(data) > self.storage_limit_bytes:
                raise StorageLimitExceededError(
                    f"Storing '{name}' needs {len(data)} bytes; {self.storage_limit_bytes - used} remaining"
                )

            file_path = f"{int(time.time() * 1000)}-{os.path.basename(name)}"
            with open(os.path.join(self.uploads_path, file_path), "wb") as f:
                f.write(data)

            now = datetime.now(timezone.utc)
            record = DocumentRecord(
                id=uuid.uuid4().hex,
                name=name,
                created_at=now,
                updated_at=now,
                file_path=file_path,
                file_size=len(data),
                description=description
            )
            records[record.id] = record
            self._save(records)

        logger.info(f"Stored '{name}' ({len(data)} bytes) as {file_path}")
        return record

    def list_records(self) -> List[DocumentRecord]:
        with self._lock:
            records = list(self._load().values())
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    def get_record(self, doc_id: str) -> Optional[DocumentRecord]:
        with self._lock:
            return self._load().get(doc_id)

    def update_record(self, doc_id: str, **changes) -> DocumentRecord:
        with self._lock:
            records = self._load()
            if doc_id not in records:
                raise RecordNotFoundError(doc_id)
            changes.setdefault("updated_at", datetime.now(timezone.utc))
            updated = DocumentRecord.model_validate({**records[doc_id].model_dump(), **changes})
            records[doc_id] = updated
            self._save(records)
        return updated

    def delete_record(self, doc_id: str) -> None:
        with self._lock:
            records = self._load()
            record = records.pop(doc_id, None)
            if record is None:
                raise RecordNotFoundError(doc_id)
            self._save(records)

        blob = os.path.join(self.uploads_path, record.file_path)
        if record.file_path and os.path.exists(blob):
            os.remove(blob)
        logger.info(f"Deleted record {doc_id} ({record.name})")

    def total_bytes(self) -> int:
        with self._lock:
            return sum(r.file_size or 0 for r in self._load().values())

    def file_url(self, record: DocumentRecord) -> str:
        return Path(self.uploads_path, record.file_path).resolve().as_uri()

    def _load(self) -> Dict[str, DocumentRecord]:
        if not os.path.exists(self.index_path):
            return {}
        with open(self.index_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return {doc_id: DocumentRecord(**r) for doc_id, r in data.items()}

    def _save(self, records: Dict[str, DocumentRecord]) -> None:
        tmp_path = f"{self.index_path}.tmp"
        data = {doc_id: r.model_dump(mode="json") for doc_id, r in records.items()}
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.index_path)
