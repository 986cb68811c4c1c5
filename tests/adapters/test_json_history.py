import json

from desktop_dictate.adapters.json_history import JsonHistoryStore


class TestJsonHistoryStore:
    def test_missing_file_is_empty(self, tmp_path):
        assert JsonHistoryStore(tmp_path / "history.json").entries() == []

    def test_add_records_language_hints(self, tmp_path):
        store = JsonHistoryStore(tmp_path / "history.json")
        entry = store.add("Hello world", ["en", "de"])
        assert entry.language == "en,de"
        assert entry.timestamp > 0
        assert store.entries() == [entry]

    def test_newest_first(self, tmp_path):
        store = JsonHistoryStore(tmp_path / "history.json")
        store.add("first", ["en"])
        store.add("second", ["en"])
        assert [e.text for e in store.entries()] == ["second", "first"]

    def test_limit_keeps_most_recent(self, tmp_path):
        store = JsonHistoryStore(tmp_path / "history.json", limit=3)
        for i in range(5):
            store.add(f"entry {i}", ["en"])
        assert [e.text for e in store.entries()] == ["entry 4", "entry 3", "entry 2"]

    def test_clear(self, tmp_path):
        store = JsonHistoryStore(tmp_path / "history.json")
        store.add("gone", ["en"])
        store.clear()
        assert store.entries() == []

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "history.json"
        JsonHistoryStore(path).add("x", ["en"])
        assert path.exists()

    def test_file_format(self, tmp_path):
        path = tmp_path / "history.json"
        JsonHistoryStore(path).add("saved", ["en"])
        data = json.loads(path.read_text())
        assert data[0]["text"] == "saved"
        assert set(data[0]) == {"text", "timestamp", "language"}

    def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text("{broken")
        store = JsonHistoryStore(path)
        assert store.entries() == []
        store.add("recovered", ["en"])
        assert [e.text for e in store.entries()] == ["recovered"]

    def test_undecodable_file_is_ignored(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_bytes(b"\xff\xfe\x00garbage")
        store = JsonHistoryStore(path)
        assert store.entries() == []
        store.add("recovered", ["en"])
        assert [e.text for e in store.entries()] == ["recovered"]

    def test_malformed_entries_skipped(self, tmp_path):
        path = tmp_path / "history.json"
        path.write_text(json.dumps([{"text": "ok", "timestamp": 1, "language": "en"}, {"oops": 1}]))
        assert [e.text for e in JsonHistoryStore(path).entries()] == ["ok"]
