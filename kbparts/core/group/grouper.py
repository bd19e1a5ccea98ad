import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from kbparts.config.settings import settings
from kbparts.core.parse.part_name import (
    PartName, parse_name, normalize, strip_extension, strip_timestamp
)
from kbparts.models.document import (
    DocumentGroup, DocumentRecord, DocumentStatus, FAILED_STATUSES
)

logger = logging.getLogger(__name__)

def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

def is_stuck(record: DocumentRecord, now: datetime, stale_after: timedelta) -> bool:
    if record.status != DocumentStatus.processing:
        return False
    return _as_utc(now) - _as_utc(record.updated_at) > stale_after

class DocumentGrouper:
    """
    Rebuilds logical documents from the flat record list:
    dedup -> partition by base name -> reattach heads -> order -> aggregate.

    Never raises on odd names: anything the part parser rejects is a standalone
    document, and part numbers are only used for ordering.
    """

    def __init__(self, stale_after: Optional[timedelta] = None):
        if stale_after is None:
            stale_after = timedelta(minutes=settings.grouping.stale_after_minutes)
        self.stale_after = stale_after

    def group(self, records: Sequence[DocumentRecord], now: Optional[datetime] = None) -> List[DocumentGroup]:
        now = now or datetime.now(timezone.utc)
        survivors = self._deduplicate(records)

        # Partition
        buckets: Dict[str, List[DocumentRecord]] = {}
        standalone: List[DocumentRecord] = []
        for record in survivors:
            parsed = parse_name(record.name)
            if isinstance(parsed, PartName):
                buckets.setdefault(normalize(parsed.base), []).append(record)
            else:
                standalone.append(record)

        # Reattach unsuffixed heads to their series
        heads: Dict[str, List[DocumentRecord]] = {}
        remaining: List[DocumentRecord] = []
        for record in standalone:
            key = normalize(strip_extension(record.name))
            if key in buckets:
                heads.setdefault(key, []).append(record)
            else:
                remaining.append(record)

        groups = [self._standalone_group(r, now) for r in remaining]
        for key, members in buckets.items():
            ordered = heads.get(key, []) + sorted(members, key=self._part_number)
            groups.append(self._multi_part_group(key, ordered, has_head=key in heads, now=now))

        groups.sort(key=lambda g: _as_utc(g.parts[0].created_at), reverse=True)
        logger.debug(f"Grouped {len(records)} records into {len(groups)} documents")
        return groups

    def _deduplicate(self, records: Sequence[DocumentRecord]) -> List[DocumentRecord]:
        """One record per (logical document, part number); input order kept."""
        best: Dict[str, int] = {}
        for index, record in enumerate(records):
            key = dedup_key(record.name)
            current = best.get(key)
            if current is None or self._outranks(record, records[current]):
                best[key] = index

        kept = set(best.values())
        dropped = len(records) - len(kept)
        if dropped:
            logger.info(f"Dropped {dropped} duplicate document records")
        return [r for i, r in enumerate(records) if i in kept]

    @staticmethod
    def _outranks(candidate: DocumentRecord, incumbent: DocumentRecord) -> bool:
        if candidate.chunk_count != incumbent.chunk_count:
            return candidate.chunk_count > incumbent.chunk_count
        return _as_utc(candidate.created_at) > _as_utc(incumbent.created_at)

    @staticmethod
    def _part_number(record: DocumentRecord) -> int:
        parsed = parse_name(record.name)
        return parsed.number if isinstance(parsed, PartName) else 0

    def _standalone_group(self, record: DocumentRecord, now: datetime) -> DocumentGroup:
        return self._aggregate(
            group_key=dedup_key(record.name),
            base_name=record.name,
            parts=[record],
            is_multi_part=False,
            now=now
        )

    def _multi_part_group(self, key: str, parts: List[DocumentRecord], has_head: bool, now: datetime) -> DocumentGroup:
        first = parts[0]
        if has_head:
            base_name = strip_timestamp(first.name)
        else:
            parsed = parse_name(first.name)
            base = parsed.base if isinstance(parsed, PartName) else strip_extension(first.name)
            base_name = strip_timestamp(base)
        return self._aggregate(group_key=key, base_name=base_name, parts=parts, is_multi_part=True, now=now)

    def _aggregate(self, group_key: str, base_name: str, parts: List[DocumentRecord],
                   is_multi_part: bool, now: datetime) -> DocumentGroup:
        return DocumentGroup(
            group_key=group_key,
            base_name=base_name,
            is_multi_part=is_multi_part,
            total_parts=len(parts),
            parts=parts,
            processed_count=sum(1 for p in parts if p.status == DocumentStatus.processed),
            failed_count=sum(1 for p in parts if p.status in FAILED_STATUSES),
            stuck_count=sum(1 for p in parts if is_stuck(p, now, self.stale_after)),
            total_chunks=sum(p.chunk_count for p in parts)
        )

    def retryable_parts(self, group: DocumentGroup, now: Optional[datetime] = None) -> List[DocumentRecord]:
        """Failed, pending or stuck members; healthy members are left alone."""
        now = now or datetime.now(timezone.utc)
        return [
            p for p in group.parts
            if p.status in FAILED_STATUSES
            or p.status == DocumentStatus.pending
            or is_stuck(p, now, self.stale_after)
        ]

def dedup_key(name: str) -> str:
    parsed = parse_name(name)
    if isinstance(parsed, PartName):
        return f"{normalize(parsed.base)}__part{parsed.number}"
    return f"{normalize(name)}__part0"

def flatten_groups(groups: Sequence[DocumentGroup]) -> List[DocumentRecord]:
    return [record for group in groups for record in group.parts]

def group_documents(records: Sequence[DocumentRecord], now: Optional[datetime] = None) -> List[DocumentGroup]:
    return DocumentGrouper().group(records, now=now)
