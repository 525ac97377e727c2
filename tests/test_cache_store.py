"""Unit tests for the PhotoCacheStore module.

Tests storing and reading photos, metadata bookkeeping, bounded eviction
and the rule that store failures never escape the cache boundary.
"""

import sqlite3
from unittest import mock

import pytest

from photoframe.player.cache_store import CachedPhoto, PhotoCacheStore, PhotoInfo, photo_id_for

from conftest import make_record


URL_A = 'http://frame.test/uploads/a.jpg'
URL_B = 'http://frame.test/uploads/b.jpg'


class TestCachedPhoto:
    """Tests for the CachedPhoto record."""

    def test_id_is_derived_from_url(self):
        record = CachedPhoto.create(URL_A, b'data', '2024-01-01')
        assert record.id == photo_id_for(URL_A)
        assert record.id == photo_id_for(URL_A)
        assert record.id != photo_id_for(URL_B)

    def test_missing_version_stamp_uses_local_time(self):
        record = CachedPhoto.create(URL_A, b'data')
        assert record.version_stamp
        assert record.cached_at is not None

    def test_size(self):
        assert CachedPhoto.create(URL_A, b'12345', 'v1').size == 5


class TestPutAndGet:
    """Tests for put/get/delete/get_all/clear."""

    def test_get_missing_returns_none(self, store):
        assert store.get(URL_A) is None

    def test_put_then_get(self, store):
        assert store.put(make_record(URL_A, '2024-01-01')) is True

        stored = store.get(URL_A)
        assert stored.url == URL_A
        assert stored.content == f"image:{URL_A}".encode()
        assert stored.version_stamp == '2024-01-01'

    def test_put_replaces_previous_version(self, store):
        store.put(make_record(URL_A, '2024-01-01'))
        updated = CachedPhoto.create(URL_A, b'new content', '2024-02-01')
        store.put(updated)

        assert store.count() == 1
        stored = store.get(URL_A)
        assert stored.content == b'new content'
        assert stored.version_stamp == '2024-02-01'

    def test_delete(self, store):
        record = make_record(URL_A)
        store.put(record)

        assert store.delete(record.id) is True
        assert store.get(URL_A) is None

    def test_delete_missing_id_succeeds(self, store):
        assert store.delete('no-such-id') is True

    def test_get_all_most_recently_cached_first(self, store):
        store.put(make_record(URL_A, cached_at=1.0))
        store.put(make_record(URL_B, cached_at=2.0))

        assert [record.url for record in store.get_all()] == [URL_B, URL_A]

    def test_clear(self, store):
        store.put(make_record(URL_A))
        store.set_meta('last_sync', 'yesterday')

        assert store.clear() is True
        assert store.get_all() == []
        assert store.get_meta('last_sync') is None

    def test_data_survives_reopen(self, tmp_path):
        path = tmp_path / "photos.db"
        first = PhotoCacheStore(path)
        first.put(make_record(URL_A))
        first.close()

        second = PhotoCacheStore(path)
        try:
            assert second.get(URL_A) is not None
        finally:
            second.close()


class TestMetadata:
    """Tests for the metadata table."""

    def test_default_when_missing(self, store):
        assert store.get_meta('last_sync', 'never') == 'never'

    def test_set_and_get(self, store):
        assert store.set_meta('last_sync', {'at': '2024-01-01T00:00:00'}) is True
        assert store.get_meta('last_sync') == {'at': '2024-01-01T00:00:00'}

    def test_overwrite(self, store):
        store.set_meta('count', 1)
        store.set_meta('count', 2)
        assert store.get_meta('count') == 2


class TestEviction:
    """Tests for the bounded cache size."""

    def test_put_beyond_limit_evicts_oldest(self, small_store):
        for i in range(8):
            small_store.put(make_record(f"http://frame.test/{i}.jpg", cached_at=float(i)))

        urls = {record.url for record in small_store.get_all()}
        assert small_store.count() == 5
        assert urls == {f"http://frame.test/{i}.jpg" for i in range(3, 8)}

    def test_default_limit_keeps_most_recent_300(self, store):
        for i in range(305):
            store.put(make_record(f"http://frame.test/{i}.jpg", cached_at=1000.0 + i))

        records = store.get_all()
        assert len(records) == 300
        assert {record.url for record in records} == {
            f"http://frame.test/{i}.jpg" for i in range(5, 305)
        }

    def test_no_eviction_under_limit(self, small_store):
        for i in range(5):
            small_store.put(make_record(f"http://frame.test/{i}.jpg", cached_at=float(i)))
        assert small_store.count() == 5

    def test_eviction_failure_does_not_fail_put(self, small_store):
        with mock.patch(
            'photoframe.player.cache_store.enforce_limit',
            side_effect=sqlite3.OperationalError("database is locked")
        ):
            assert small_store.put(make_record(URL_A)) is True
        assert small_store.get(URL_A) is not None


class TestStoreFailures:
    """Store errors surface as None/False/[] and never propagate."""

    @pytest.fixture
    def broken_store(self, store):
        conn = mock.MagicMock()
        conn.execute.side_effect = sqlite3.OperationalError("disk I/O error")
        with mock.patch.object(store, '_get_conn', return_value=conn):
            yield store

    def test_get_returns_none(self, broken_store):
        assert broken_store.get(URL_A) is None

    def test_put_returns_false_and_skips_eviction(self, broken_store):
        with mock.patch.object(broken_store, '_run_maintenance') as maintenance:
            assert broken_store.put(make_record(URL_A)) is False
        maintenance.assert_not_called()

    def test_delete_returns_false(self, broken_store):
        assert broken_store.delete('some-id') is False

    def test_get_all_returns_empty(self, broken_store):
        assert broken_store.get_all() == []

    def test_clear_returns_false(self, broken_store):
        assert broken_store.clear() is False

    def test_count_returns_zero(self, broken_store):
        assert broken_store.count() == 0

    def test_metadata_failures(self, broken_store):
        assert broken_store.get_meta('last_sync', 'never') == 'never'
        assert broken_store.set_meta('last_sync', 'now') is False

    def test_metadata_only_reads_fail_softly(self, broken_store):
        assert broken_store.get_info(URL_A) is None
        assert broken_store.get_all_info() == []
        assert broken_store.get_by_id('some-id') is None
        assert broken_store.content_path('some-id') is None


class TestMetadataReads:
    """Lookups used by reconciliation read metadata only."""

    def test_get_info(self, store):
        store.put(make_record(URL_A, '2024-01-01', cached_at=5.0))

        info = store.get_info(URL_A)

        assert info == PhotoInfo(photo_id_for(URL_A), URL_A, '2024-01-01', 5.0, True)
        assert not hasattr(info, 'content')

    def test_get_info_missing(self, store):
        assert store.get_info(URL_A) is None

    def test_get_all_info_most_recently_cached_first(self, store):
        store.put(make_record(URL_A, cached_at=1.0))
        store.put(make_record(URL_B, cached_at=2.0))

        assert [info.url for info in store.get_all_info()] == [URL_B, URL_A]

    def test_empty_content_is_reported(self, store):
        store.put(CachedPhoto.create(URL_A, b'', '2024-01-01'))
        assert store.get_info(URL_A).has_content is False


class TestContentAccess:
    """Cached content is readable by id and exportable for display."""

    def test_get_by_id(self, store):
        record = make_record(URL_A)
        store.put(record)

        assert store.get_by_id(record.id).content == f"image:{URL_A}".encode()
        assert store.get_by_id('no-such-id') is None

    def test_content_path_exports_bytes(self, store):
        record = make_record(URL_A)
        store.put(record)

        path = store.content_path(record.id)

        assert path.parent == store.media_dir
        assert path.read_bytes() == record.content

    def test_content_path_missing(self, store):
        assert store.content_path(photo_id_for(URL_A)) is None

    def test_replaced_content_is_exported_again(self, store):
        store.put(CachedPhoto.create(URL_A, b'old', '2024-01-01'))
        store.content_path(photo_id_for(URL_A))

        store.put(CachedPhoto.create(URL_A, b'new', '2024-02-01'))

        assert store.content_path(photo_id_for(URL_A)).read_bytes() == b'new'

    def test_delete_removes_export(self, store):
        record = make_record(URL_A)
        store.put(record)
        path = store.content_path(record.id)

        store.delete(record.id)

        assert not path.exists()
        assert store.content_path(record.id) is None

    def test_eviction_removes_export(self, small_store):
        first = make_record('http://frame.test/0.jpg', cached_at=0.0)
        small_store.put(first)
        path = small_store.content_path(first.id)

        for i in range(1, 6):
            small_store.put(make_record(f"http://frame.test/{i}.jpg", cached_at=float(i)))

        assert not path.exists()

    def test_clear_removes_exports(self, store):
        store.put(make_record(URL_A))
        store.put(make_record(URL_B))
        paths = [store.content_path(photo_id_for(url)) for url in (URL_A, URL_B)]

        store.clear()

        assert not any(path.exists() for path in paths)

    def test_export_failure_returns_none(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_bytes(b'')
        cache = PhotoCacheStore(tmp_path / "photos.db", media_dir=blocker / "media")
        try:
            record = make_record(URL_A)
            cache.put(record)
            assert cache.content_path(record.id) is None
        finally:
            cache.close()
