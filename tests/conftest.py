"""
Pytest fixtures for photo frame tests.

Provides a temporary photo cache, a scripted photo server client and a
manually driven timer factory for the slideshow scheduler.
"""

import threading
from typing import Any, Dict, List, Optional, Set

import pytest

from photoframe.common.errors import PhotoFetchError, PhotoSourceError
from photoframe.player.cache_store import CachedPhoto, PhotoCacheStore
from photoframe.player.reconciler import DisplaySequence, PhotoRef, PhotoReconciler, SequenceStatus
from photoframe.player.settings import FrameSettings


SERVER_URL = 'http://frame.test'


class FakePhotoClient:
    """Scripted stand-in for PhotoClient that records every download."""

    REQUEST_TIMEOUT = 10
    DOWNLOAD_TIMEOUT = 60

    def __init__(self, photos: Optional[List[Any]] = None):
        self.photos = photos or []
        self.fail_list = False
        self.missing: Set[str] = set()
        self.fetch_calls: List[str] = []
        self.delete_calls = 0
        self.gate: Optional[threading.Event] = None
        self.upload_url = f"{SERVER_URL}/"

    def list_photos(self) -> List[Any]:
        if self.fail_list:
            raise PhotoSourceError("server unreachable")
        return list(self.photos)

    def fetch_content(self, url: str) -> bytes:
        self.fetch_calls.append(url)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if url in self.missing:
            raise PhotoFetchError(url, "404 Not Found")
        return f"image:{url}".encode()

    def delete_all(self) -> Dict[str, Any]:
        self.delete_calls += 1
        self.photos = []
        return {'ok': True, 'message': 'deleted'}


class FakeTimer:
    """Single-shot timer that only fires when the test says so."""

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    @property
    def active(self) -> bool:
        return self.started and not self.cancelled and not self.fired

    def fire(self):
        """Run the callback, as threading.Timer would after the interval."""
        self.fired = True
        self.function(*self.args, **self.kwargs)


class FakeTimerFactory:
    """Creates FakeTimers with the threading.Timer signature and keeps them."""

    def __init__(self):
        self.timers: List[FakeTimer] = []

    def __call__(self, interval, function, args=None, kwargs=None):
        timer = FakeTimer(interval, function, args, kwargs)
        self.timers.append(timer)
        return timer

    @property
    def armed(self) -> List[FakeTimer]:
        return [timer for timer in self.timers if timer.active]

    def fire_armed(self):
        """Fire the single armed timer."""
        armed = self.armed
        assert len(armed) == 1, f"expected one armed timer, found {len(armed)}"
        armed[0].fire()


def make_sequence(count: int, status: SequenceStatus = SequenceStatus.ONLINE) -> DisplaySequence:
    """Build a sequence of count remote photo refs."""
    return DisplaySequence(
        tuple(PhotoRef(f"{SERVER_URL}/uploads/{i}.jpg", f"2024-01-{(i % 28) + 1:02d}") for i in range(count)),
        status
    )


def make_record(url: str, version_stamp: str = '2024-01-01', cached_at: float = 1.0) -> CachedPhoto:
    record = CachedPhoto.create(url, f"image:{url}".encode(), version_stamp)
    record.cached_at = cached_at
    return record


@pytest.fixture
def store(tmp_path):
    """Temporary photo cache."""
    cache = PhotoCacheStore(tmp_path / "cache" / "photos.db")
    yield cache
    cache.close()


@pytest.fixture
def small_store(tmp_path):
    """Temporary photo cache limited to 5 photos."""
    cache = PhotoCacheStore(tmp_path / "small" / "photos.db", max_items=5)
    yield cache
    cache.close()


@pytest.fixture
def client():
    return FakePhotoClient()


@pytest.fixture
def reconciler(store, client):
    rec = PhotoReconciler(store, client, SERVER_URL)
    yield rec
    rec.shutdown(wait_for_downloads=True)


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def settings(tmp_path):
    return FrameSettings(str(tmp_path / "settings"))
