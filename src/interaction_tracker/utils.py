"""
Utility functions for the interaction tracker.

Includes time helpers, id generation and recency selection used by eviction.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Sequence, TypeVar, Union

T = TypeVar("T")


def generate_id() -> str:
    """Generate a UUID string for batch identification."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_datetime(dt: Union[str, datetime]) -> datetime:
    """Parse datetime from string or return datetime object (always UTC)."""
    if isinstance(dt, str):
        return ensure_utc(datetime.fromisoformat(dt.replace("Z", "+00:00")))
    return ensure_utc(dt)


def most_recent(items: Sequence[T], keep: int, *, key) -> List[T]:
    """
    Select the `keep` most recent items by `key`, preserving original order.

    Ties on the key are broken by position: a later item counts as more recent.

    Args:
        items: Ordered sequence (oldest insert first)
        keep: Number of items to retain (<= 0 returns an empty list)
        key: Callable returning the item's timestamp

    Returns:
        New list holding the survivors in their original relative order
    """
    if keep <= 0:
        return []
    if keep >= len(items):
        return list(items)

    ranked = sorted(range(len(items)), key=lambda i: (key(items[i]), i), reverse=True)
    survivors = sorted(ranked[:keep])
    return [items[i] for i in survivors]
