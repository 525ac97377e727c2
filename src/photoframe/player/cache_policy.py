"""
Cache maintenance policy: bounded oldest-first eviction and version-stamp
freshness checks.
"""

import math
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from photoframe.common.logger import setup_logger

logger = setup_logger(__name__)

# Maximum number of photos kept in the local cache
DEFAULT_MAX_ITEMS = 300

# (id, cached_at, version_stamp)
EvictionEntry = Tuple[str, Optional[float], Optional[str]]


def parse_version_stamp(stamp: Any) -> Optional[float]:
    """
    Convert a version stamp to a Unix timestamp.

    Accepts ISO-8601 dates and datetimes (a trailing 'Z' means UTC) and
    epoch numbers in seconds or milliseconds. Naive datetimes are read as UTC.

    Returns:
        Seconds since the epoch, or None if the stamp cannot be parsed
    """
    if stamp is None or isinstance(stamp, bool):
        return None

    if isinstance(stamp, (int, float)):
        value = float(stamp)
        if not math.isfinite(value):
            return None
        # JavaScript timestamps are in milliseconds
        return value / 1000.0 if value > 1e11 else value

    text = str(stamp).strip()
    if not text:
        return None

    try:
        return parse_version_stamp(float(text))
    except ValueError:
        pass

    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def sort_newest_first(items: Iterable[Any], stamp_of: Callable[[Any], Any]) -> List[Any]:
    """
    Sort items by version stamp, newest first.

    The sort is stable: items with equal stamps keep their original order.
    Items whose stamp cannot be parsed go after every dated item.
    """
    indexed = list(items)
    keys = [parse_version_stamp(stamp_of(item)) for item in indexed]
    order = sorted(
        range(len(indexed)),
        key=lambda i: (keys[i] is None, -(keys[i] or 0.0), i)
    )
    return [indexed[i] for i in order]


def select_for_eviction(entries: Sequence[EvictionEntry], max_items: int) -> List[str]:
    """
    Pick the ids to delete so that at most max_items entries remain.

    Oldest first by cached_at, falling back to the version stamp when
    cached_at is missing; ties are broken by id.

    Args:
        entries: (id, cached_at, version_stamp) tuples
        max_items: Maximum number of entries to keep

    Returns:
        Ids to delete, oldest first
    """
    excess = len(entries) - max_items
    if excess <= 0:
        return []

    def age_key(entry: EvictionEntry):
        photo_id, cached_at, version_stamp = entry
        when = cached_at if cached_at is not None else parse_version_stamp(version_stamp)
        # Undated entries are treated as the oldest
        return (when if when is not None else float('-inf'), photo_id)

    oldest = sorted(entries, key=age_key)
    return [entry[0] for entry in oldest[:excess]]


def enforce_limit(store, max_items: int = DEFAULT_MAX_ITEMS) -> int:
    """
    Delete the oldest cached photos until the store holds at most max_items.

    Args:
        store: PhotoCacheStore to trim
        max_items: Maximum number of cached photos

    Returns:
        Number of photos removed
    """
    entries = store.get_eviction_entries()
    victims = select_for_eviction(entries, max_items)
    if not victims:
        return 0

    removed = sum(1 for photo_id in victims if store.delete(photo_id))
    logger.info(
        "Evicted %d of %d cached photos (limit %d)",
        removed, len(entries), max_items
    )
    return removed


def is_fresh(stored, version_stamp: Optional[str]) -> bool:
    """
    Check whether a stored record can be served without downloading again.

    A record is fresh when it has content and its version stamp equals the
    candidate's. A candidate without a version stamp (a source that never
    reports one) matches any stored record that has content.

    Args:
        stored: CachedPhoto, PhotoInfo or None
        version_stamp: Version stamp reported by the server
    """
    if stored is None or not stored.has_content:
        return False
    if version_stamp is None:
        return True
    return str(stored.version_stamp) == str(version_stamp)
