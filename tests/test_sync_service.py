"""Unit tests for the SyncService module.

Tests reconciliation passes feeding the slideshow, status tracking across
online/offline transitions, and the background sync loop.
"""

import time
from unittest import mock

import pytest

from photoframe.player.reconciler import SequenceStatus
from photoframe.player.scheduler import SlideshowScheduler
from photoframe.player.sync_service import SyncService

from conftest import SERVER_URL


def server_list(count):
    return [
        {'url': f"/uploads/{i}.jpg", 'lastModified': f"2024-01-{(i % 28) + 1:02d}T00:00:{i % 60:02d}Z"}
        for i in range(count)
    ]


@pytest.fixture
def scheduler(timers):
    sched = SlideshowScheduler(timer_factory=timers)
    yield sched
    sched.stop()


@pytest.fixture
def sync_service(reconciler, scheduler):
    service = SyncService(reconciler, scheduler, sync_interval=0.05)
    yield service
    service.stop()


class TestSyncNow:
    """Tests for single reconciliation passes."""

    def test_first_pass_starts_slideshow(self, sync_service, client, scheduler):
        client.photos = server_list(20)

        sequence = sync_service.sync_now()

        assert sequence.status == SequenceStatus.ONLINE
        assert scheduler.is_running
        assert scheduler.total_pages == 2
        assert sync_service.last_status == SequenceStatus.ONLINE

    def test_later_pass_updates_without_restart(self, sync_service, client, scheduler, timers):
        client.photos = server_list(31)
        sync_service.sync_now()
        timers.fire_armed()

        sync_service.sync_now()

        assert scheduler.current_page == 1
        assert len(timers.armed) == 1

    def test_empty_list_stops_slideshow(self, sync_service, client, scheduler, timers):
        client.photos = server_list(20)
        sync_service.sync_now()

        client.photos = []
        sequence = sync_service.sync_now()

        assert sequence.status == SequenceStatus.EMPTY
        assert not scheduler.is_running
        assert timers.armed == []

    def test_offline_counts_failures(self, sync_service, client, store):
        client.photos = server_list(3)
        sync_service.sync_now()
        sync_service._reconciler.wait_for_backfill(timeout=5)

        client.fail_list = True
        sequence = sync_service.sync_now()
        sync_service.sync_now()

        assert sequence.status == SequenceStatus.OFFLINE
        assert len(sequence) == 3
        assert sync_service.consecutive_failures == 2

        client.fail_list = False
        sync_service.sync_now()
        assert sync_service.consecutive_failures == 0

    def test_backfill_swaps_cached_copy_into_slideshow(self, sync_service, client, scheduler, reconciler):
        client.photos = server_list(2)

        sync_service.sync_now()
        assert reconciler.wait_for_backfill(timeout=5)

        assert all(ref.is_cached for ref in scheduler.sequence.items)

    def test_unexpected_error_returns_none(self, sync_service):
        with mock.patch.object(sync_service._reconciler, 'reconcile', side_effect=RuntimeError("boom")):
            assert sync_service.sync_now() is None
        assert sync_service.get_status()['total_failures'] == 1

    def test_on_sequence_callback(self, reconciler, scheduler, client):
        seen = []
        service = SyncService(reconciler, scheduler, on_sequence=seen.append)
        client.photos = server_list(1)

        service.sync_now()

        assert [sequence.urls for sequence in seen] == [[f"{SERVER_URL}/uploads/0.jpg"]]


class TestBackgroundLoop:
    """Tests for the background sync thread."""

    def test_start_runs_initial_sync(self, sync_service, client, scheduler):
        client.photos = server_list(5)

        sync_service.start()
        deadline = time.time() + 5
        while not scheduler.is_running and time.time() < deadline:
            time.sleep(0.01)

        assert sync_service.is_running
        assert scheduler.is_running

    def test_stop(self, sync_service):
        sync_service.start()
        sync_service.stop()

        assert not sync_service.is_running
        assert sync_service.get_status()['running'] is False

    def test_start_twice_is_harmless(self, sync_service):
        sync_service.start()
        thread = sync_service._thread
        sync_service.start()
        assert sync_service._thread is thread
