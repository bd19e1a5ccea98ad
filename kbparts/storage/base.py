from abc import ABC, abstractmethod
from typing import List, Optional
from kbparts.models.document import DocumentRecord

class DocumentStore(ABC):
    @abstractmethod
    def save_part(self, name: str, data: bytes, description: Optional[str] = None) -> DocumentRecord:
        """Persists the blob and registers a new pending record for it."""
        pass

    @abstractmethod
    def list_records(self) -> List[DocumentRecord]:
        pass

    @abstractmethod
    def get_record(self, doc_id: str) -> Optional[DocumentRecord]:
        pass

    @abstractmethod
    def update_record(self, doc_id: str, **changes) -> DocumentRecord:
        pass

    @abstractmethod
    def delete_record(self, doc_id: str) -> None:
        pass

    @abstractmethod
    def total_bytes(self) -> int:
        pass

    @abstractmethod
    def file_url(self, record: DocumentRecord) -> str:
        """Location the processing service should fetch the blob from."""
        pass
