"""Tests for KeyValueStore."""

import json
import logging

import pytest

from lofireads import storage
from lofireads.storage import ORDERS_KEY, STORAGE_KEYS, WISHLIST_KEY, KeyValueStore


class TestKeyValueStore:
    """Tests for KeyValueStore class."""

    def test_get_missing_returns_default(self, kv):
        assert kv.get(ORDERS_KEY, []) == []
        assert kv.get(WISHLIST_KEY, {"x": 1}) == {"x": 1}
        assert kv.get("anything") is None

    def test_set_then_get(self, kv):
        assert kv.set(WISHLIST_KEY, {"guest": [{"book": {"id": "1"}}]}) is True
        assert kv.get(WISHLIST_KEY, {}) == {"guest": [{"book": {"id": "1"}}]}

    def test_set_writes_json_file(self, kv):
        kv.set(ORDERS_KEY, [1, 2, 3])

        path = kv.data_dir / f"{ORDERS_KEY}.json"
        assert json.loads(path.read_text()) == [1, 2, 3]

    def test_malformed_document_falls_back_to_default(self, kv, caplog):
        kv.data_dir.mkdir(parents=True)
        (kv.data_dir / f"{ORDERS_KEY}.json").write_text("{not json")

        with caplog.at_level(logging.ERROR, logger="lofireads.storage"):
            assert kv.get(ORDERS_KEY, []) == []
        assert "Failed to get" in caplog.text

    def test_wrong_type_falls_back_to_default(self, kv):
        kv.set(WISHLIST_KEY, ["not", "a", "map"])

        assert kv.get(WISHLIST_KEY, {}) == {}

    def test_stored_null_returns_default(self, kv):
        kv.set(WISHLIST_KEY, None)

        assert kv.get(WISHLIST_KEY, {}) == {}

    def test_unserializable_value_is_not_written(self, kv):
        kv.set(ORDERS_KEY, [1])

        assert kv.set(ORDERS_KEY, [object()]) is False
        assert kv.get(ORDERS_KEY, []) == [1]

    def test_unwritable_directory_reports_failure(self, temp_dir):
        blocker = temp_dir / "blocked"
        blocker.write_text("a file, not a directory")
        kv = KeyValueStore(blocker, latency_scale=0)

        assert kv.set(ORDERS_KEY, [1]) is False

    def test_remove(self, kv):
        kv.set(ORDERS_KEY, [1])

        assert kv.remove(ORDERS_KEY) is True
        assert kv.get(ORDERS_KEY, []) == []
        # Removing again is fine
        assert kv.remove(ORDERS_KEY) is True

    def test_clear_all(self, kv):
        for key in STORAGE_KEYS:
            kv.set(key, [key])

        kv.clear_all()

        for key in STORAGE_KEYS:
            assert kv.get(key) is None

    def test_transaction_writes_back(self, kv):
        with kv.transaction(ORDERS_KEY, []) as txn:
            txn.value.append({"id": "a"})
        with kv.transaction(ORDERS_KEY, []) as txn:
            txn.value.append({"id": "b"})

        assert kv.get(ORDERS_KEY, []) == [{"id": "a"}, {"id": "b"}]

    def test_transaction_can_replace_value(self, kv):
        kv.set(ORDERS_KEY, [1, 2, 3])

        with kv.transaction(ORDERS_KEY, []) as txn:
            txn.value = [v for v in txn.value if v != 2]

        assert kv.get(ORDERS_KEY, []) == [1, 3]

    def test_transaction_discarded_on_exception(self, kv):
        kv.set(ORDERS_KEY, [1])

        with pytest.raises(RuntimeError):
            with kv.transaction(ORDERS_KEY, []) as txn:
                txn.value.append(2)
                raise RuntimeError("boom")

        assert kv.get(ORDERS_KEY, []) == [1]

    def test_transaction_on_unwritable_directory_does_not_raise(self, temp_dir):
        blocker = temp_dir / "blocked"
        blocker.write_text("")
        kv = KeyValueStore(blocker, latency_scale=0)

        with kv.transaction(ORDERS_KEY, []) as txn:
            txn.value.append(1)

    def test_delay_disabled_by_default_scale(self, kv, monkeypatch):
        calls = []
        monkeypatch.setattr(storage.time, "sleep", calls.append)

        kv.delay(300)

        assert calls == []

    def test_delay_scaled(self, temp_dir, monkeypatch):
        calls = []
        monkeypatch.setattr(storage.time, "sleep", calls.append)
        kv = KeyValueStore(temp_dir, latency_scale=0.5)

        kv.delay(200)

        assert calls == [pytest.approx(0.1)]

    def test_default_data_dir_is_module_setting(self, temp_dir, monkeypatch):
        monkeypatch.setattr(storage, "DATA_DIR", temp_dir / "shop")

        assert KeyValueStore().data_dir == temp_dir / "shop"


class TestParseRecords:
    def test_malformed_records_are_skipped(self, caplog):
        raw = [{"n": 1}, {"other": 2}, "junk", {"n": 3}]

        with caplog.at_level(logging.ERROR, logger="lofireads.storage"):
            values = storage.parse_records(ORDERS_KEY, raw, lambda r: int(r["n"]))

        assert values == [1, 3]
        assert sum("Skipping malformed record" in m for m in caplog.messages) == 2

    def test_all_valid(self):
        assert storage.parse_records(ORDERS_KEY, [{"n": "7"}], lambda r: int(r["n"])) == [7]
