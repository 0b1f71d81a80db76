"""
Utility functions shared by the sync engine.
"""
import hashlib
import uuid
from datetime import datetime, timezone
from typing import Iterable, Iterator, List, Optional, TypeVar

T = TypeVar('T')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """
    Treat naive datetimes as UTC.

    SQLite drops tzinfo on the way back out, Postgres does not; comparisons
    in Python need both sides aware.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def chunked(items: List[T], size: int) -> Iterator[List[T]]:
    """Yield successive slices of at most `size` items."""
    for start in range(0, len(items), size):
        yield items[start:start + size]


def dedupe(values: Iterable[T]) -> List[T]:
    """Drop None and duplicates, keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        if value is None or value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def md5_hex(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def new_dest_id() -> str:
    """32-char hex id, the format the destination platform uses for its UUIDs."""
    return uuid.uuid4().hex
