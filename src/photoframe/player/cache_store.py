"""
Local SQLite Photo Cache for the photo frame.

Keeps downloaded photos on disk so the slideshow keeps running while the
upload server is unreachable.

Tables:
- photos: photo content keyed by a hash of its url, with version metadata
- metadata: small key/value bookkeeping (e.g. last successful sync time)

Cached content is handed to the display shell as files exported on demand
into a media directory next to the database (one file per photo id).

The cache is an optimization, not a correctness dependency: every SQLite
error is caught here and reported to the caller as None / False / [].
"""

import hashlib
import json
import os
import sqlite3
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Union

from photoframe.common.logger import setup_logger
from photoframe.player.cache_policy import DEFAULT_MAX_ITEMS, EvictionEntry, enforce_limit

logger = setup_logger(__name__)


def photo_id_for(url: str) -> str:
    """Derive the stable cache id of a photo from its url."""
    return hashlib.sha256(url.encode('utf-8')).hexdigest()


def local_version_stamp() -> str:
    """Version stamp used when the server does not report one."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class CachedPhoto:
    """A photo stored in the local cache."""

    id: str
    url: str
    content: bytes
    version_stamp: str
    cached_at: Optional[float] = None

    @classmethod
    def create(
        cls,
        url: str,
        content: bytes,
        version_stamp: Optional[str] = None
    ) -> 'CachedPhoto':
        """
        Build a record for a freshly downloaded photo.

        Args:
            url: Photo url (the cache key)
            content: Downloaded bytes
            version_stamp: Server last-modified value; a local timestamp if None
        """
        return cls(
            id=photo_id_for(url),
            url=url,
            content=content,
            version_stamp=str(version_stamp) if version_stamp is not None else local_version_stamp(),
            cached_at=time.time(),
        )

    @property
    def size(self) -> int:
        """Content size in bytes."""
        return len(self.content) if self.content else 0

    @property
    def has_content(self) -> bool:
        return bool(self.content)


@dataclass(frozen=True)
class PhotoInfo:
    """Metadata of a cached photo, read without its content."""

    id: str
    url: str
    version_stamp: Optional[str]
    cached_at: Optional[float]
    has_content: bool


class PhotoCacheStore:
    """
    SQLite-backed photo cache.

    Thread-safe: uses a connection per thread via thread-local storage, and
    every write runs in its own transaction.
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        max_items: int = DEFAULT_MAX_ITEMS,
        media_dir: Optional[Union[str, Path]] = None,
    ):
        """
        Args:
            db_path: Path of the SQLite database file
            max_items: Maximum number of cached photos before eviction
            media_dir: Where content is exported for display (<db dir>/media if None)
        """
        self.db_file = Path(db_path)
        self.max_items = max_items
        self.media_dir = Path(media_dir) if media_dir else self.db_file.parent / "media"
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._maintenance_lock = threading.Lock()

        # Ensure directory exists
        self.db_file.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()
        logger.info("PhotoCacheStore initialized: %s (max %d photos)", self.db_file, max_items)

    def _get_conn(self) -> sqlite3.Connection:
        """Get a thread-local SQLite connection."""
        if getattr(self._local, "conn", None) is None:
            conn = sqlite3.connect(
                str(self.db_file),
                timeout=10,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return self._local.conn

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS photos (
                id TEXT PRIMARY KEY,
                url TEXT UNIQUE NOT NULL,
                content BLOB NOT NULL,
                version_stamp TEXT,
                cached_at REAL
            );

            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_photos_version_stamp
                ON photos(version_stamp);
            CREATE INDEX IF NOT EXISTS idx_photos_cached_at
                ON photos(cached_at);
        """)
        conn.commit()
        logger.debug("Photo cache schema initialized")

    @staticmethod
    def _row_to_photo(row: sqlite3.Row) -> CachedPhoto:
        return CachedPhoto(
            id=row["id"],
            url=row["url"],
            content=bytes(row["content"]),
            version_stamp=row["version_stamp"],
            cached_at=row["cached_at"],
        )

    @staticmethod
    def _row_to_info(row: sqlite3.Row) -> PhotoInfo:
        return PhotoInfo(
            id=row["id"],
            url=row["url"],
            version_stamp=row["version_stamp"],
            cached_at=row["cached_at"],
            has_content=bool(row["has_content"]),
        )

    # ─── Photos ─────────────────────────────────────────────────────

    def get(self, url: str) -> Optional[CachedPhoto]:
        """
        Look up a cached photo by url.

        Returns:
            CachedPhoto, or None if missing or the store failed
        """
        try:
            row = self._get_conn().execute(
                "SELECT * FROM photos WHERE url = ?", (url,)
            ).fetchone()
        except sqlite3.Error as e:
            logger.error("Cache read failed for %s: %s", url, e)
            return None
        return self._row_to_photo(row) if row else None

    def get_by_id(self, photo_id: str) -> Optional[CachedPhoto]:
        """Look up a cached photo by id (None if missing or the store failed)."""
        try:
            row = self._get_conn().execute(
                "SELECT * FROM photos WHERE id = ?", (photo_id,)
            ).fetchone()
        except sqlite3.Error as e:
            logger.error("Cache read failed for id %s: %s", photo_id, e)
            return None
        return self._row_to_photo(row) if row else None

    def get_info(self, url: str) -> Optional[PhotoInfo]:
        """Look up the metadata of a cached photo by url, without its content."""
        try:
            row = self._get_conn().execute(
                "SELECT id, url, version_stamp, cached_at, "
                "length(content) > 0 AS has_content FROM photos WHERE url = ?",
                (url,)
            ).fetchone()
        except sqlite3.Error as e:
            logger.error("Cache read failed for %s: %s", url, e)
            return None
        return self._row_to_info(row) if row else None

    def get_all_info(self) -> List[PhotoInfo]:
        """Metadata of every cached photo, most recently cached first ([] on failure)."""
        try:
            rows = self._get_conn().execute(
                "SELECT id, url, version_stamp, cached_at, "
                "length(content) > 0 AS has_content FROM photos "
                "ORDER BY cached_at DESC, id ASC"
            ).fetchall()
        except sqlite3.Error as e:
            logger.error("Cache scan failed: %s", e)
            return []
        return [self._row_to_info(row) for row in rows]

    def content_path(self, photo_id: str) -> Optional[Path]:
        """
        Get a local file holding the cached content of a photo.

        The file is written on first use and removed again when the photo is
        replaced, evicted or the cache is cleared.

        Returns:
            Path of the exported file, or None if the photo is not cached
            or the export failed
        """
        path = self.media_dir / photo_id
        if path.is_file():
            return path

        record = self.get_by_id(photo_id)
        if record is None or not record.has_content:
            return None

        tmp_path = path.with_name(f".{photo_id}.{threading.get_ident()}.tmp")
        try:
            self.media_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'wb') as f:
                f.write(record.content)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error("Could not export cached photo %s: %s", photo_id, e)
            return None
        return path

    def _discard_export(self, photo_id: str) -> None:
        try:
            (self.media_dir / photo_id).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove exported photo %s: %s", photo_id, e)

    def _discard_all_exports(self) -> None:
        if not self.media_dir.is_dir():
            return
        for path in self.media_dir.iterdir():
            try:
                path.unlink()
            except OSError as e:
                logger.warning("Could not remove exported photo %s: %s", path.name, e)

    def put(self, record: CachedPhoto) -> bool:
        """
        Store a photo, replacing any previous version of the same url.

        Runs the eviction policy after a successful write.

        Returns:
            True if the record was stored, False if the store failed
        """
        cached_at = record.cached_at if record.cached_at is not None else time.time()
        conn = self._get_conn()
        try:
            with conn:
                conn.execute("""
                    INSERT INTO photos (id, url, content, version_stamp, cached_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        url = excluded.url,
                        content = excluded.content,
                        version_stamp = excluded.version_stamp,
                        cached_at = excluded.cached_at
                """, (
                    record.id,
                    record.url,
                    sqlite3.Binary(record.content),
                    record.version_stamp,
                    cached_at,
                ))
        except sqlite3.Error as e:
            logger.error("Cache write failed for %s: %s", record.url, e)
            return False

        logger.debug("Cached %s (%d bytes)", record.url, record.size)
        self._discard_export(record.id)
        self._run_maintenance()
        return True

    def delete(self, photo_id: str) -> bool:
        """Delete a cached photo by id. Deleting a missing id succeeds."""
        conn = self._get_conn()
        try:
            with conn:
                conn.execute("DELETE FROM photos WHERE id = ?", (photo_id,))
        except sqlite3.Error as e:
            logger.error("Cache delete failed for %s: %s", photo_id, e)
            return False
        self._discard_export(photo_id)
        return True

    def get_all(self) -> List[CachedPhoto]:
        """Get every cached photo, most recently cached first ([] on failure)."""
        try:
            rows = self._get_conn().execute(
                "SELECT * FROM photos ORDER BY cached_at DESC, id ASC"
            ).fetchall()
        except sqlite3.Error as e:
            logger.error("Cache scan failed: %s", e)
            return []
        return [self._row_to_photo(row) for row in rows]

    def get_eviction_entries(self) -> List[EvictionEntry]:
        """Get (id, cached_at, version_stamp) for every photo, without content."""
        rows = self._get_conn().execute(
            "SELECT id, cached_at, version_stamp FROM photos"
        ).fetchall()
        return [(row["id"], row["cached_at"], row["version_stamp"]) for row in rows]

    def count(self) -> int:
        """Number of cached photos (0 on failure)."""
        try:
            return self._get_conn().execute("SELECT COUNT(*) FROM photos").fetchone()[0]
        except sqlite3.Error as e:
            logger.error("Cache count failed: %s", e)
            return 0

    def clear(self) -> bool:
        """Delete every cached photo and all metadata."""
        conn = self._get_conn()
        try:
            with conn:
                conn.execute("DELETE FROM photos")
                conn.execute("DELETE FROM metadata")
        except sqlite3.Error as e:
            logger.error("Cache clear failed: %s", e)
            return False
        self._discard_all_exports()
        logger.info("Photo cache cleared")
        return True

    # ─── Maintenance ────────────────────────────────────────────────

    def _run_maintenance(self) -> None:
        """Trim the cache to max_items. Failures are logged, never raised."""
        with self._maintenance_lock:
            try:
                enforce_limit(self, self.max_items)
            except sqlite3.Error as e:
                logger.error("Cache eviction failed: %s", e)

    # ─── Metadata ───────────────────────────────────────────────────

    def get_meta(self, key: str, default: Any = None) -> Any:
        """Get a bookkeeping value."""
        try:
            row = self._get_conn().execute(
                "SELECT value FROM metadata WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            logger.error("Metadata read failed for %s: %s", key, e)
            return default
        if row is None:
            return default
        return json.loads(row["value"])

    def set_meta(self, key: str, value: Any) -> bool:
        """Store a JSON-serializable bookkeeping value."""
        conn = self._get_conn()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO metadata (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, json.dumps(value))
                )
        except sqlite3.Error as e:
            logger.error("Metadata write failed for %s: %s", key, e)
            return False
        return True

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.debug("Error closing cache connection: %s", e)
        self._local = threading.local()

    def __repr__(self) -> str:
        """String representation."""
        return f"PhotoCacheStore(db_file={self.db_file}, max_items={self.max_items})"
