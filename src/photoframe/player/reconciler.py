"""
Photo list reconciliation for the photo frame.

Merges the server's photo list with the local cache and produces the ordered
display sequence. Photos already cached at the same version are served from
the cache; everything else is shown from its remote url right away while a
background task downloads it into the cache.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
from urllib.parse import quote

from photoframe.common.errors import PhotoFetchError, PhotoSourceError
from photoframe.common.logger import setup_logger
from photoframe.common.photo_client import PhotoClient
from photoframe.player.cache_policy import is_fresh, sort_newest_first
from photoframe.player.cache_store import CachedPhoto, PhotoCacheStore

logger = setup_logger(__name__)

# Maximum number of photos in the slideshow
DEFAULT_MAX_DISPLAY = 300


class SequenceStatus(Enum):
    """Where the display sequence came from."""
    ONLINE = "online"      # Built from the server's list
    OFFLINE = "offline"    # Server unreachable, built from the cache
    EMPTY = "empty"        # Nothing to show


@dataclass(frozen=True)
class PhotoRef:
    """A displayable photo: either backed by the local cache or by its remote url."""

    url: str
    version_stamp: Optional[str] = None
    photo_id: Optional[str] = None  # Set when the content is in the local cache

    @property
    def is_cached(self) -> bool:
        """True if the photo can be displayed from the local cache."""
        return self.photo_id is not None

    def to_dict(self, src: Optional[str] = None) -> Dict[str, Any]:
        """
        Args:
            src: Where the display loads the photo from (the remote url if None)
        """
        return {
            'url': self.url,
            'src': src or self.url,
            'version_stamp': self.version_stamp,
            'photo_id': self.photo_id,
            'cached': self.is_cached,
        }


@dataclass(frozen=True)
class DisplaySequence:
    """Ordered, newest-first list of photos eligible for the slideshow."""

    items: Tuple[PhotoRef, ...] = ()
    status: SequenceStatus = SequenceStatus.EMPTY

    def __len__(self) -> int:
        return len(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def urls(self) -> List[str]:
        return [ref.url for ref in self.items]

    def index_of(self, url: str) -> Optional[int]:
        """Position of url in the sequence, or None."""
        for index, ref in enumerate(self.items):
            if ref.url == url:
                return index
        return None

    def replace_ref(self, url: str, new_ref: PhotoRef) -> 'DisplaySequence':
        """Return a new sequence with the slot for url pointing at new_ref."""
        items = tuple(new_ref if ref.url == url else ref for ref in self.items)
        return replace(self, items=items)


class PhotoReconciler:
    """
    Builds display sequences from the server list and the local cache, and
    backfills the cache in the background.
    """

    def __init__(
        self,
        store: PhotoCacheStore,
        client: PhotoClient,
        server_url: str,
        max_display: int = DEFAULT_MAX_DISPLAY,
        backfill_workers: int = 2,
        on_backfilled: Optional[Callable[[str, PhotoRef], None]] = None
    ):
        """
        Args:
            store: Local photo cache
            client: Upload server client
            server_url: Origin used to resolve relative photo urls
            max_display: Maximum number of photos in a sequence
            backfill_workers: Threads downloading photos into the cache
            on_backfilled: Callback(url, cached_ref) after a photo was cached
        """
        self._store = store
        self._client = client
        self.server_url = server_url.rstrip('/')
        self.max_display = max_display
        self.on_backfilled = on_backfilled

        self._executor = ThreadPoolExecutor(
            max_workers=backfill_workers,
            thread_name_prefix="photo-backfill"
        )
        self._lock = threading.Lock()
        self._in_flight: Set[str] = set()
        self._pending: Set[Future] = set()
        self._closed = False

        # Statistics
        self._fetch_count = 0
        self._fetch_failures = 0

    # ─── URL resolution ─────────────────────────────────────────────

    def resolve_url(self, entry: Dict[str, Any]) -> Optional[str]:
        """
        Turn a server entry into an absolute photo url.

        Absolute urls pass through, site-relative urls are joined with the
        server origin, and entries with only a file name fall back to the
        /uploads/<file> convention.

        Returns:
            Absolute url, or None if the entry cannot be resolved
        """
        url = entry.get('url')
        if isinstance(url, str) and url:
            if url.startswith(('http://', 'https://')):
                return url
            if url.startswith('/'):
                return f"{self.server_url}{url}"

        file_name = entry.get('file')
        if isinstance(file_name, str) and file_name:
            return f"{self.server_url}/uploads/{quote(file_name)}"

        return None

    # ─── Reconciliation ─────────────────────────────────────────────

    def reconcile(self, server_list: Optional[List[Any]] = None) -> DisplaySequence:
        """
        Build the display sequence.

        Args:
            server_list: Photo entries from the server. If None, the list is
                fetched with the client; when that fails the sequence is
                built from the cache instead.

        Returns:
            DisplaySequence (never raises on network or cache failures)
        """
        if server_list is None:
            try:
                server_list = self._client.list_photos()
            except PhotoSourceError as e:
                logger.warning("Server unreachable - using cached photos: %s", e)
                return self.offline_sequence()

        if not isinstance(server_list, list):
            logger.warning(
                "Ignoring malformed photo list (%s) - using cached photos",
                type(server_list).__name__
            )
            return self.offline_sequence()

        entries = [entry for entry in server_list if isinstance(entry, dict)]
        ordered = sort_newest_first(entries, lambda entry: entry.get('lastModified'))
        ordered = ordered[:self.max_display]

        refs: List[PhotoRef] = []
        hits = 0
        dropped = 0
        for entry in ordered:
            url = self.resolve_url(entry)
            if url is None:
                dropped += 1
                continue

            stamp = entry.get('lastModified')
            stamp = str(stamp) if stamp is not None else None

            stored = self._store.get_info(url)
            if is_fresh(stored, stamp):
                refs.append(PhotoRef(url, stored.version_stamp, stored.id))
                hits += 1
            else:
                # Show the remote url now, swap to the cached copy once downloaded
                refs.append(PhotoRef(url, stamp))
                self._schedule_backfill(url, stamp)

        if dropped:
            logger.warning("Dropped %d photo entries without url or file", dropped)

        self._store.set_meta('last_sync', datetime.now(timezone.utc).isoformat())

        status = SequenceStatus.ONLINE if refs else SequenceStatus.EMPTY
        logger.info(
            "Reconciled %d photos (%d from cache, %d downloading)",
            len(refs), hits, len(refs) - hits
        )
        return DisplaySequence(tuple(refs), status)

    def offline_sequence(self) -> DisplaySequence:
        """Build the display sequence from the cache alone."""
        records = sort_newest_first(
            (info for info in self._store.get_all_info() if info.has_content),
            lambda info: info.version_stamp
        )
        refs = tuple(
            PhotoRef(info.url, info.version_stamp, info.id)
            for info in records[:self.max_display]
        )
        if not refs:
            logger.warning("Server unreachable and cache is empty")
            return DisplaySequence((), SequenceStatus.EMPTY)

        logger.info("Serving %d cached photos while offline", len(refs))
        return DisplaySequence(refs, SequenceStatus.OFFLINE)

    # ─── Background backfill ────────────────────────────────────────

    def _schedule_backfill(self, url: str, version_stamp: Optional[str]) -> bool:
        """Queue a download of url into the cache unless one is already running."""
        with self._lock:
            if self._closed or url in self._in_flight:
                return False
            self._in_flight.add(url)
            future = self._executor.submit(self._backfill, url, version_stamp)
            self._pending.add(future)
        future.add_done_callback(self._discard_pending)
        return True

    def _discard_pending(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _backfill(self, url: str, version_stamp: Optional[str]) -> Optional[PhotoRef]:
        """Download a photo, store it and publish the cache-backed reference."""
        try:
            with self._lock:
                self._fetch_count += 1
            content = self._client.fetch_content(url)

            record = CachedPhoto.create(url, content, version_stamp)
            if not self._store.put(record):
                logger.warning("Could not cache %s - keeping remote url", url)
                return None

            ref = PhotoRef(url, record.version_stamp, record.id)
            if self.on_backfilled:
                try:
                    self.on_backfilled(url, ref)
                except Exception as e:
                    logger.error("Error in backfill callback for %s: %s", url, e)
            return ref

        except PhotoFetchError as e:
            with self._lock:
                self._fetch_failures += 1
            logger.warning("Photo download failed - keeping remote url: %s", e)
            return None

        except Exception as e:
            with self._lock:
                self._fetch_failures += 1
            logger.error("Unexpected error caching %s: %s", url, e)
            return None

        finally:
            with self._lock:
                self._in_flight.discard(url)

    def wait_for_backfill(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for queued downloads to finish.

        Returns:
            True if nothing is left running
        """
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    @property
    def in_flight(self) -> Set[str]:
        """Urls currently being downloaded."""
        with self._lock:
            return set(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        """Get reconciler statistics."""
        with self._lock:
            in_flight = len(self._in_flight)
            fetches = self._fetch_count
            failures = self._fetch_failures
        return {
            'server_url': self.server_url,
            'in_flight': in_flight,
            'fetches': fetches,
            'fetch_failures': failures,
            'last_sync': self._store.get_meta('last_sync'),
        }

    def shutdown(self, wait_for_downloads: bool = False) -> None:
        """Stop accepting downloads and release the worker threads."""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait_for_downloads)
        logger.info("Reconciler shut down")
