"""Tests for gemcrawl.storage.checkpoint."""

from __future__ import annotations

import json
import os
from unittest.mock import patch

import pytest

from gemcrawl.crawler.url_frontier import CrawlEntry
from gemcrawl.storage.checkpoint import CheckpointStore, PersistenceError


ENTRIES = {
    "gemini://example.org:1965/": CrawlEntry(status=20, meta="text/gemini"),
    "gemini://example.org:1965/a": CrawlEntry(
        referrers=["gemini://example.org:1965/", "gemini://example.org:1965/"],
        timed_out=True,
    ),
}


class TestSave:
    def test_writes_entry_table(self, tmp_path):
        path = tmp_path / "checkpoint.json"
        CheckpointStore(path).save(ENTRIES)

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["storage_version"] == "1.0"
        assert data["entries"]["gemini://example.org:1965/a"] == {
            "referrers": ["gemini://example.org:1965/", "gemini://example.org:1965/"],
            "timed_out": True,
            "malformed": False,
            "status": 0,
            "meta": "",
        }

    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "checkpoint.json"
        CheckpointStore(path).save(ENTRIES)
        assert path.exists()

    def test_no_temp_files_left(self, tmp_path):
        path = tmp_path / "checkpoint.json"
        store = CheckpointStore(path)
        store.save(ENTRIES)
        store.save(ENTRIES)
        assert os.listdir(tmp_path) == ["checkpoint.json"]
        assert store.get_stats()["saves"] == 2

    def test_failed_write_keeps_previous_checkpoint(self, tmp_path):
        path = tmp_path / "checkpoint.json"
        store = CheckpointStore(path)
        store.save(ENTRIES)
        before = path.read_bytes()

        with patch("gemcrawl.storage.checkpoint.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError):
                store.save({})

        assert path.read_bytes() == before
        assert os.listdir(tmp_path) == ["checkpoint.json"]
        assert store.get_stats()["failed_saves"] == 1

    def test_unwritable_location(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(PersistenceError):
            CheckpointStore(blocker / "checkpoint.json").save(ENTRIES)


class TestLoad:
    def test_round_trip(self, tmp_path):
        store = CheckpointStore(tmp_path / "checkpoint.json")
        store.save(ENTRIES)
        assert store.load() == ENTRIES

    def test_keys_canonicalized(self, tmp_path):
        path = tmp_path / "checkpoint.json"
        path.write_text(json.dumps({"entries": {"gemini://Example.org/x": {"status": 51}}}))
        assert CheckpointStore(path).load() == {
            "gemini://example.org:1965/x": CrawlEntry(status=51)
        }

    def test_keys_with_same_canonical_form_rejected(self, tmp_path):
        path = tmp_path / "checkpoint.json"
        path.write_text(json.dumps({"entries": {
            "gemini://example.org/": {"status": 20},
            "gemini://example.org:1965/": {"status": 51},
        }}))
        with pytest.raises(PersistenceError, match="Duplicate entry"):
            CheckpointStore(path).load()

    def test_missing_file(self, tmp_path):
        with pytest.raises(PersistenceError):
            CheckpointStore(tmp_path / "missing.json").load()

    def test_corrupt_json(self, tmp_path):
        path = tmp_path / "checkpoint.json"
        path.write_text("{not json")
        with pytest.raises(PersistenceError):
            CheckpointStore(path).load()

    @pytest.mark.parametrize("content", [
        [],
        {"entries": []},
        {"entries": {"gemini://example.org/": "nope"}},
        {"entries": {"https://example.org/": {}}},
        {"entries": {"gemini://example.org/": {"status": "abc"}}},
        {"entries": {"gemini://example.org/": {"timed_out": "false"}}},
        {"entries": {"gemini://example.org/": {"referrers": "gemini://example.org/"}}},
    ])
    def test_invalid_structure(self, tmp_path, content):
        path = tmp_path / "checkpoint.json"
        path.write_text(json.dumps(content))
        with pytest.raises(PersistenceError):
            CheckpointStore(path).load()
