"""
Utility functions for the sync engine.
"""
import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, List, Optional, Sequence, TypeVar

T = TypeVar('T')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes.

    SQLite hands back naive values for timezone-aware columns, so every
    comparison against ``utcnow()`` goes through here first.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def stable_hash(payload: Any) -> str:
    """Hash a JSON-serializable value independent of key order"""
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return sha256_hex(encoded.encode("utf-8"))


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def lookup_path(record: Any, path: Optional[str]) -> Any:
    """
    Resolve a dotted path ("a.b.c") inside nested dicts.

    Keys that themselves contain dots are matched first, so flat CSV headers
    such as "Qty. Avail" still resolve.
    """
    if not path:
        return record
    if isinstance(record, dict) and path in record:
        return record[path]
    current = record
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def mask_secret(value: Optional[str], visible: int = 2) -> str:
    if not value:
        return ""
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{value[:visible]}{'*' * (len(value) - visible * 2)}{value[-visible:]}"


def first_present(values: Iterable[Any]) -> Any:
    for value in values:
        if not is_blank(value):
            return value
    return None
