import os
import re
from typing import Union
from pydantic import BaseModel

# "<base>_parte<N>de<M>.pdf" or "<base> parte<N>de<M>.pdf"
PART_PATTERN = re.compile(r"^(?P<base>.+?)[ _]parte(?P<number>\d+)de(?P<total>\d+)\.pdf$", re.IGNORECASE)
PART_SUFFIX = re.compile(r"[ _]parte\d+de\d+\.pdf$", re.IGNORECASE)
TIMESTAMP_PREFIX = re.compile(r"^\d{13,}-")

class StandaloneName(BaseModel):
    name: str

class PartName(BaseModel):
    base: str
    number: int
    total: int

ParsedName = Union[StandaloneName, PartName]

def parse_name(name: str) -> ParsedName:
    """
    Classifies a stored document name.
    N and M are taken as written: "parte0de2" or "parte5de3" still parse.
    """
    match = PART_PATTERN.match(name.strip())
    if match is None:
        return StandaloneName(name=name)
    return PartName(
        base=match.group("base"),
        number=int(match.group("number")),
        total=int(match.group("total"))
    )

def strip_timestamp(name: str) -> str:
    return TIMESTAMP_PREFIX.sub("", name)

def strip_extension(name: str) -> str:
    return os.path.splitext(name)[0]

def normalize(name: str) -> str:
    """Lower-case, trim, drop the upload timestamp prefix and any part suffix."""
    value = strip_timestamp(name.strip().lower())
    return PART_SUFFIX.sub("", value).strip()

def build_part_name(base: str, number: int, total: int) -> str:
    return f"{base}_parte{number}de{total}.pdf"
