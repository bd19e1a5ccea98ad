import fitz  # PyMuPDF
import logging
import math
from typing import List, Optional

from kbparts.config.settings import settings
from kbparts.core.errors import ConfigurationError, DocumentTooLargeError, InvalidDocumentError
from kbparts.core.parse.part_name import build_part_name
from kbparts.models.upload import PartPayload, SplitResult

logger = logging.getLogger(__name__)

MB = 1024 * 1024

class PDFSplitter:
    """
    Splits large PDFs into page-range parts before upload.
    Small files (under both the size and page limits) pass through untouched.
    """

    def __init__(self,
                 max_pages_per_part: Optional[int] = None,
                 max_single_upload_bytes: Optional[int] = None,
                 max_file_bytes: Optional[int] = None):
        cfg = settings.splitter
        self.max_pages_per_part = max_pages_per_part if max_pages_per_part is not None else cfg.max_pages_per_part
        self.max_single_upload_bytes = (max_single_upload_bytes if max_single_upload_bytes is not None
                                        else cfg.max_single_upload_mb * MB)
        self.max_file_bytes = max_file_bytes if max_file_bytes is not None else cfg.max_file_mb * MB

        for field in ("max_pages_per_part", "max_single_upload_bytes", "max_file_bytes"):
            if getattr(self, field) < 1:
                raise ConfigurationError(f"{field} must be >= 1, got {getattr(self, field)}")

    def split(self, data: bytes, filename: str) -> SplitResult:
        if len(data) > self.max_file_bytes:
            raise DocumentTooLargeError(
                f"'{filename}' is {len(data) / MB:.1f}MB; the limit is {self.max_file_bytes / MB:.0f}MB"
            )
        if not data[:5] == b"%PDF-":
            raise InvalidDocumentError(f"'{filename}' is not a valid PDF")

        try:
            source = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise InvalidDocumentError(f"'{filename}' could not be opened: {e}") from e

        try:
            total_pages = source.page_count
            if len(data) <= self.max_single_upload_bytes and total_pages <= self.max_pages_per_part:
                return SplitResult(
                    parts=[PartPayload(name=filename, data=data, page_range=f"1-{total_pages}")],
                    total_pages=total_pages,
                    was_split=False
                )

            parts = self._split_pages(source, filename, total_pages)
        finally:
            source.close()

        logger.info(f"Split '{filename}' ({total_pages} pages) into {len(parts)} parts")
        return SplitResult(parts=parts, total_pages=total_pages, was_split=True)

    def _split_pages(self, source: "fitz.Document", filename: str, total_pages: int) -> List[PartPayload]:
        base_name = filename[:-4] if filename.lower().endswith(".pdf") else filename
        num_parts = max(1, math.ceil(total_pages / self.max_pages_per_part))
        parts = []

        for i in range(num_parts):
            start_page = i * self.max_pages_per_part
            end_page = min(start_page + self.max_pages_per_part, total_pages)

            part_doc = fitz.open()
            part_doc.insert_pdf(source, from_page=start_page, to_page=end_page - 1)
            part_bytes = part_doc.tobytes(garbage=3, deflate=True)
            part_doc.close()

            parts.append(PartPayload(
                name=build_part_name(base_name, i + 1, num_parts),
                data=part_bytes,
                page_range=f"{start_page + 1}-{end_page}",
                part_number=i + 1,
                total_parts=num_parts
            ))
        return parts
