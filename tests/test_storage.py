"""Tests for the JSON file and SQL response stores."""
from __future__ import annotations

import json
import threading

import pytest

from survey_backend.config import Settings
from survey_backend.storage import DuplicateResponseError, JsonFileStore, SqlStore, StorageError, build_store


def _record(response_id: str, **extra) -> dict:
    record = {"id": response_id, "timestamp": "2026-01-01T00:00:00+00:00", "answers": {"q1": "1"}}
    record.update(extra)
    return record


@pytest.fixture(params=["json", "sql"])
def any_store(request, tmp_path):
    if request.param == "json":
        return JsonFileStore(tmp_path / "responses.json", tmp_path / "emails.json")
    return SqlStore("sqlite://")


class TestStoreContract:
    def test_empty(self, any_store):
        assert any_store.list_responses() == []
        assert any_store.count_responses() == 0
        assert any_store.get_response("missing") is None

    def test_append_preserves_order(self, any_store):
        assert any_store.add_response(_record("a")) == 1
        assert any_store.add_response(_record("b")) == 2
        assert any_store.add_response(_record("c")) == 3
        assert [r["id"] for r in any_store.list_responses()] == ["a", "b", "c"]
        assert any_store.count_responses() == 3

    def test_duplicate_id_is_rejected(self, any_store):
        any_store.add_response(_record("a"))
        with pytest.raises(DuplicateResponseError):
            any_store.add_response(_record("a", dominantCategory="B"))
        assert any_store.count_responses() == 1
        assert "dominantCategory" not in any_store.get_response("a")

    def test_get_response(self, any_store):
        any_store.add_response(_record("a", dominantCategory="B"))
        assert any_store.get_response("a")["dominantCategory"] == "B"

    def test_attach_contact(self, any_store):
        any_store.add_response(_record("a"))
        updated = any_store.attach_contact("a", {"email": "someone@example.org"})
        assert updated["contact"] == {"email": "someone@example.org"}
        assert any_store.get_response("a")["contact"]["email"] == "someone@example.org"
        assert any_store.attach_contact("missing", {"email": "x@example.org"}) is None

    def test_clear(self, any_store):
        any_store.add_response(_record("a"))
        any_store.add_response(_record("b"))
        assert any_store.clear_responses() == 2
        assert any_store.count_responses() == 0

    def test_emails(self, any_store):
        any_store.add_email({"id": "e1", "recipient": "a@example.org", "status": "sent"})
        any_store.add_email({"id": "e2", "recipient": "b@example.org", "status": "failed"})
        assert [e["id"] for e in any_store.list_emails()] == ["e1", "e2"]


class TestJsonFileStore:
    def test_file_is_a_json_array(self, tmp_path):
        store = JsonFileStore(tmp_path / "data" / "responses.json", tmp_path / "data" / "emails.json")
        store.add_response(_record("a"))
        data = json.loads((tmp_path / "data" / "responses.json").read_text(encoding="utf-8"))
        assert isinstance(data, list)
        assert data[0]["id"] == "a"

    def test_no_temp_files_left_behind(self, tmp_path):
        store = JsonFileStore(tmp_path / "responses.json", tmp_path / "emails.json")
        store.add_response(_record("a"))
        assert sorted(p.name for p in tmp_path.iterdir()) == ["responses.json"]

    def test_corrupt_file_raises(self, tmp_path):
        (tmp_path / "responses.json").write_text("{not json", encoding="utf-8")
        store = JsonFileStore(tmp_path / "responses.json", tmp_path / "emails.json")
        with pytest.raises(StorageError):
            store.list_responses()

    def test_write_failure_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        store = JsonFileStore(blocker / "responses.json", blocker / "emails.json")
        with pytest.raises(StorageError):
            store.add_response(_record("a"))

    def test_concurrent_writers_do_not_lose_records(self, tmp_path):
        path = tmp_path / "responses.json"
        stores = [JsonFileStore(path, tmp_path / "emails.json") for _ in range(4)]

        def submit(store, prefix):
            for i in range(10):
                store.add_response(_record(f"{prefix}-{i}"))

        threads = [threading.Thread(target=submit, args=(s, n)) for n, s in enumerate(stores)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert stores[0].count_responses() == 40


def test_build_store_selects_backend(tmp_path):
    assert isinstance(build_store(Settings(data_dir=tmp_path)), JsonFileStore)
    assert isinstance(build_store(Settings(data_dir=tmp_path, database_url="sqlite://")), SqlStore)
