"""
Tests for Record Store

Tests upsert-by-identity, on-disk format, and concurrent writers.
"""

import json
import threading
from datetime import datetime, timedelta, timezone

import pytest


T0 = datetime(2024, 3, 5, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that advances one minute per call"""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        current = self.now
        self.now = self.now + timedelta(minutes=1)
        return current


def _record(record_id="wecom-1", title="修复登录问题", when=T0):
    from worklog.common.schemas import WorkLogRecord

    return WorkLogRecord(
        id=record_id,
        date=when.strftime("%Y-%m-%d"),
        category="bug",
        title=title,
        created_at=when,
        updated_at=when,
    )


class TestRecordStore:
    """Tests for RecordStore"""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def store(self, tmp_path, clock):
        from worklog.intake.record_store import RecordStore

        return RecordStore(data_path=tmp_path / "data" / "dev-logs.json", clock=clock)

    def test_empty_store(self, store):
        assert store.list_all() == []
        assert store.get("missing") is None

    def test_insert_creates_file(self, store):
        store.upsert(_record())

        assert store.data_path.exists()
        data = json.loads(store.data_path.read_text(encoding="utf-8"))
        assert len(data) == 1
        assert data[0]["id"] == "wecom-1"
        assert data[0]["title"] == "修复登录问题"
        assert "createdAt" in data[0]

    def test_insert_sets_updated_at(self, store):
        stored = store.upsert(_record(when=T0 - timedelta(days=1)))

        assert stored.created_at == T0 - timedelta(days=1)
        assert stored.updated_at == T0

    def test_upsert_same_id_replaces(self, store):
        first = store.upsert(_record(title="first"))
        second = store.upsert(_record(title="second", when=T0 + timedelta(hours=1)))

        records = store.list_all()
        assert len(records) == 1
        assert records[0].title == "second"
        # created_at fixed by the first write, updated_at by the second
        assert records[0].created_at == first.created_at
        assert records[0].updated_at == T0 + timedelta(minutes=1)
        assert second.updated_at == records[0].updated_at

    def test_distinct_ids_kept_in_insertion_order(self, store):
        for i in range(3):
            store.upsert(_record(record_id=f"wecom-{i}"))

        assert [r.id for r in store.list_all()] == ["wecom-0", "wecom-1", "wecom-2"]

    def test_get(self, store):
        store.upsert(_record(record_id="a", title="alpha"))
        store.upsert(_record(record_id="b", title="beta"))

        assert store.get("b").title == "beta"

    def test_other_instance_sees_writes(self, store, tmp_path):
        from worklog.intake.record_store import RecordStore

        store.upsert(_record())
        other = RecordStore(data_path=store.data_path)

        assert [r.id for r in other.list_all()] == ["wecom-1"]

    def test_reads_legacy_records(self, store):
        store.data_path.parent.mkdir(parents=True)
        store.data_path.write_text(json.dumps([{
            "id": "old-1",
            "date": "2023-12-01",
            "type": "meeting",
            "title": "周会",
            "relatedMessages": ["周会纪要"],
            "createdAt": "2023-12-01T08:00:00Z",
            "updatedAt": "2023-12-01T08:00:00Z",
        }]), encoding="utf-8")

        record = store.get("old-1")

        assert record.category.value == "meeting"
        assert record.source_messages == ["周会纪要"]

    @pytest.mark.parametrize("content", ["{not json", '{"id": "x"}', '[{"id": ""}]'])
    def test_corrupt_file_fails(self, store, content):
        from worklog.common.errors import PersistenceFault

        store.data_path.parent.mkdir(parents=True)
        store.data_path.write_text(content, encoding="utf-8")

        with pytest.raises(PersistenceFault):
            store.list_all()
        with pytest.raises(PersistenceFault):
            store.upsert(_record())

        # The corrupt file is left untouched
        assert store.data_path.read_text(encoding="utf-8") == content

    def test_no_temp_files_left_behind(self, store):
        store.upsert(_record(record_id="a"))
        store.upsert(_record(record_id="b"))

        assert [p.name for p in store.data_path.parent.iterdir()] == ["dev-logs.json"]


class TestConcurrentUpserts:
    """Tests for concurrent writers on one store"""

    def test_distinct_ids_all_survive(self, tmp_path):
        from worklog.intake.record_store import RecordStore

        store = RecordStore(data_path=tmp_path / "dev-logs.json")
        errors = []

        def worker(n):
            try:
                store.upsert(_record(record_id=f"wecom-{n}", title=f"record {n}"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(r.id for r in store.list_all()) == sorted(f"wecom-{n}" for n in range(20))

    def test_same_id_ends_with_one_record(self, tmp_path):
        from worklog.intake.record_store import RecordStore

        store = RecordStore(data_path=tmp_path / "dev-logs.json")

        threads = [
            threading.Thread(target=store.upsert, args=(_record(title=f"v{n}"),))
            for n in range(10)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        records = store.list_all()
        assert len(records) == 1
        assert records[0].title in {f"v{n}" for n in range(10)}
