import uuid
from datetime import datetime, timedelta, timezone

import fitz  # PyMuPDF
import pytest

from kbparts.models.document import DocumentRecord, DocumentStatus

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

def make_record(name, status=DocumentStatus.processed, chunk_count=0, created_minutes_ago=0, updated_minutes_ago=None, **extra):
    created = NOW - timedelta(minutes=created_minutes_ago)
    updated = NOW - timedelta(minutes=updated_minutes_ago) if updated_minutes_ago is not None else created
    return DocumentRecord(
        id=extra.pop("id", uuid.uuid4().hex),
        name=name,
        status=status,
        chunk_count=chunk_count,
        created_at=created,
        updated_at=updated,
        **extra
    )

def make_pdf(pages: int) -> bytes:
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page()
        page.insert_text((72, 72), f"Page {i + 1}")
    data = doc.tobytes()
    doc.close()
    return data

@pytest.fixture
def now():
    return NOW

@pytest.fixture
def record():
    return make_record
